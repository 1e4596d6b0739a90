"""Cross-referencing between TMDB ids and IMDb ids."""

from __future__ import annotations

import logging
from typing import Any

from ..errors import UpstreamError
from ..models import IMDB_ID_RE, ContentType
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)

_FIND_RESULT_KEYS: dict[str, str] = {"movie": "movie_results", "series": "tv_results"}


def looks_like_imdb_id(value: object) -> bool:
    return isinstance(value, str) and bool(IMDB_ID_RE.match(value.strip()))


def normalize_imdb_id(value: object) -> str | None:
    """Return a stripped IMDb id, or ``None`` for blank/malformed values."""

    if not isinstance(value, str):
        return None
    candidate = value.strip()
    if not IMDB_ID_RE.match(candidate):
        return None
    return candidate


class IdentifierResolver:
    """Resolves one id space from the other through TMDB lookups.

    Nothing is cached here; persisted records act as the cache.
    """

    def __init__(self, tmdb_client: TMDBClient):
        self._tmdb = tmdb_client

    async def rating_id_for_catalog_id(
        self, tmdb_id: int, content_type: ContentType
    ) -> str | None:
        """Return the IMDb id linked to a TMDB title, if TMDB knows one."""

        try:
            payload = await self._tmdb.external_ids(content_type, tmdb_id)
        except UpstreamError as exc:
            if exc.is_not_found:
                return None
            raise
        return normalize_imdb_id(payload.get("imdb_id"))

    async def catalog_id_for_rating_id(
        self, imdb_id: str, content_type: ContentType
    ) -> int | None:
        """Return the TMDB id for an IMDb id.

        When TMDB reports several matches the first one in the order TMDB
        returned them wins.
        """

        try:
            payload = await self._tmdb.find_by_external_id(imdb_id)
        except UpstreamError as exc:
            if exc.is_not_found:
                return None
            raise
        return first_matching_id(payload, content_type)


def first_matching_id(payload: dict[str, Any], content_type: ContentType) -> int | None:
    results = payload.get(_FIND_RESULT_KEYS[content_type]) or []
    for entry in results:
        if not isinstance(entry, dict):
            continue
        candidate = entry.get("id")
        if isinstance(candidate, int):
            return candidate
    return None
