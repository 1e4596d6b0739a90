"""In-memory directory of TMDB genre names."""

from __future__ import annotations

import logging
from types import MappingProxyType
from typing import Iterable, Mapping

from ..models import CONTENT_TYPES, ContentType
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)


class GenreDirectory:
    """Maps TMDB genre ids to names for movies and series.

    Each kind's mapping is built off to the side and swapped in with a single
    assignment, so readers only ever see a complete directory.
    """

    def __init__(self, tmdb_client: TMDBClient):
        self._tmdb = tmdb_client
        self._directories: dict[str, Mapping[int, str]] = {
            content_type: MappingProxyType({}) for content_type in CONTENT_TYPES
        }
        self._loaded: set[str] = set()

    async def load(self, content_type: ContentType) -> Mapping[int, str]:
        """Fetch the genre list for ``content_type`` and replace the mapping."""

        entries = await self._tmdb.genre_list(content_type)
        mapping: dict[int, str] = {}
        for entry in entries:
            genre_id = entry.get("id")
            name = entry.get("name")
            if isinstance(genre_id, int) and isinstance(name, str) and name.strip():
                mapping[genre_id] = name.strip()

        directory = MappingProxyType(mapping)
        self._directories[content_type] = directory
        self._loaded.add(content_type)
        logger.info("Loaded %s %s genres from TMDB", len(mapping), content_type)
        return directory

    async def load_all(self) -> None:
        """Load every kind; any failure propagates to the caller."""

        for content_type in CONTENT_TYPES:
            await self.load(content_type)

    async def refresh(self) -> None:
        await self.load_all()

    def is_loaded(self, content_type: ContentType) -> bool:
        return content_type in self._loaded

    def resolve_names(
        self, genre_ids: Iterable[object] | None, content_type: ContentType
    ) -> list[str]:
        """Return names for ``genre_ids`` in order, dropping unknown ids."""

        directory = self._directories.get(content_type, {})
        names: list[str] = []
        for raw_id in genre_ids or ():
            try:
                genre_id = int(raw_id)  # type: ignore[arg-type]
            except (TypeError, ValueError):
                continue
            name = directory.get(genre_id)
            if name is not None:
                names.append(name)
        return names

    def genre_id_for_name(self, name: str, content_type: ContentType) -> int | None:
        """Case-insensitive reverse lookup used for discovery by genre."""

        target = (name or "").strip().casefold()
        if not target:
            return None
        for genre_id, genre_name in self._directories[content_type].items():
            if genre_name.casefold() == target:
                return genre_id
        return None

    def names(self, content_type: ContentType) -> list[str]:
        return sorted(self._directories[content_type].values())
