"""Normalisation of raw TMDB payloads into stored title records."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Sequence

from pydantic import ValidationError

from ..models import (
    NOT_AVAILABLE,
    ContentType,
    Movie,
    SeasonSummary,
    Series,
)
from .genres import GenreDirectory
from .identifiers import IdentifierResolver, normalize_imdb_id
from .store import ContentStore

logger = logging.getLogger(__name__)

TOP_CAST_SIZE = 5

# Credit tie-breaks, highest priority first. The first tier that matches any
# crew member wins; within a tier TMDB's listed order is kept.
DIRECTOR_JOB_PRECEDENCE: Mapping[str, tuple[frozenset[str], ...]] = {
    "movie": (frozenset({"Director"}),),
    "series": (),
}
WRITER_JOB_PRECEDENCE: Mapping[str, tuple[frozenset[str], ...]] = {
    "movie": (frozenset({"Writer", "Screenplay"}),),
    "series": (frozenset({"Creator"}), frozenset({"Writer", "Screenplay"})),
}

_DATE_FIELDS: Mapping[str, str] = {"movie": "release_date", "series": "first_air_date"}
_TITLE_FIELDS: Mapping[str, tuple[str, ...]] = {
    "movie": ("title", "original_title", "name"),
    "series": ("name", "original_name", "title"),
}


def extract_year(date_value: object) -> str:
    if isinstance(date_value, str) and len(date_value.strip()) >= 4:
        return date_value.strip()[:4]
    return NOT_AVAILABLE


def format_runtime(minutes: object) -> str:
    if isinstance(minutes, (int, float)) and not isinstance(minutes, bool) and minutes > 0:
        return f"{int(minutes)} min"
    return NOT_AVAILABLE


def format_rating(vote_average: object) -> str:
    if isinstance(vote_average, (int, float)) and not isinstance(vote_average, bool) and vote_average:
        return f"{float(vote_average):.1f}"
    return NOT_AVAILABLE


def format_count(value: object) -> str:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return NOT_AVAILABLE


def _crew_names(
    crew: Sequence[Mapping[str, Any]],
    tiers: Iterable[frozenset[str]],
    *,
    first_only: bool = False,
) -> list[str]:
    for jobs in tiers:
        names = [
            str(member["name"])
            for member in crew
            if member.get("job") in jobs and member.get("name")
        ]
        if names:
            return names[:1] if first_only else list(dict.fromkeys(names))
    return []


def _crew(credits: Mapping[str, Any] | None) -> list[Mapping[str, Any]]:
    crew = (credits or {}).get("crew") or []
    return [member for member in crew if isinstance(member, Mapping)]


def pick_director(credits: Mapping[str, Any] | None, content_type: ContentType) -> str:
    names = _crew_names(
        _crew(credits), DIRECTOR_JOB_PRECEDENCE[content_type], first_only=True
    )
    return names[0] if names else NOT_AVAILABLE


def pick_writers(credits: Mapping[str, Any] | None, content_type: ContentType) -> str:
    names = _crew_names(_crew(credits), WRITER_JOB_PRECEDENCE[content_type])
    return ", ".join(names) if names else NOT_AVAILABLE


def pick_actors(credits: Mapping[str, Any] | None, limit: int = TOP_CAST_SIZE) -> str:
    cast = (credits or {}).get("cast") or []
    names = [
        str(member["name"])
        for member in cast
        if isinstance(member, Mapping) and member.get("name")
    ][:limit]
    return ", ".join(names) if names else NOT_AVAILABLE


def genre_ids_from(raw: Mapping[str, Any]) -> list[object]:
    """Listing payloads carry ``genre_ids``; detail payloads carry ``genres``."""

    if raw.get("genre_ids"):
        return list(raw["genre_ids"])
    genres = raw.get("genres") or []
    return [entry.get("id") for entry in genres if isinstance(entry, Mapping)]


def embedded_imdb_id(raw: Mapping[str, Any]) -> str | None:
    candidate = normalize_imdb_id(raw.get("imdb_id"))
    if candidate:
        return candidate
    external = raw.get("external_ids")
    if isinstance(external, Mapping):
        return normalize_imdb_id(external.get("imdb_id"))
    return None


def _season_summaries(raw: Mapping[str, Any]) -> list[SeasonSummary]:
    seasons: list[SeasonSummary] = []
    for entry in raw.get("seasons") or []:
        if not isinstance(entry, Mapping):
            continue
        try:
            seasons.append(SeasonSummary.model_validate(dict(entry)))
        except ValidationError:
            logger.debug("Skipping malformed season entry %s", entry)
    return seasons


class SchemaMapper:
    """Turns TMDB movie/series payloads into :class:`Movie` / :class:`Series`."""

    def __init__(
        self,
        genres: GenreDirectory,
        resolver: IdentifierResolver,
        store: ContentStore | None = None,
    ):
        self._genres = genres
        self._resolver = resolver
        self._store = store

    async def map_record(
        self,
        raw: Mapping[str, Any],
        content_type: ContentType,
        credits: Mapping[str, Any] | None = None,
    ) -> Movie | Series | None:
        """Return the normalized record, or ``None`` when TMDB's id is missing."""

        tmdb_id = raw.get("id")
        if not isinstance(tmdb_id, int) or isinstance(tmdb_id, bool):
            return None

        imdb_id = await self._resolve_imdb_id(raw, tmdb_id, content_type)

        fields: dict[str, Any] = {
            "tmdb_id": tmdb_id,
            "imdb_id": imdb_id,
            "title": self._title(raw, content_type, tmdb_id),
            "year": extract_year(raw.get(_DATE_FIELDS[content_type])),
            "plot": raw.get("overview") or None,
            "poster": raw.get("poster_path"),
            "backdrop": raw.get("backdrop_path"),
            "genres": self._genres.resolve_names(genre_ids_from(raw), content_type),
            "rating": format_rating(raw.get("vote_average")),
            "playable_url": await self._curated_url(content_type, imdb_id, tmdb_id),
        }
        if credits is not None:
            fields["director"] = pick_director(credits, content_type)
            fields["writer"] = pick_writers(credits, content_type)
            fields["actors"] = pick_actors(credits)

        if content_type == "movie":
            return Movie(runtime=format_runtime(raw.get("runtime")), **fields)
        return Series(
            total_seasons=format_count(raw.get("number_of_seasons")),
            episode_count=format_count(raw.get("number_of_episodes")),
            seasons=_season_summaries(raw),
            **fields,
        )

    async def _resolve_imdb_id(
        self, raw: Mapping[str, Any], tmdb_id: int, content_type: ContentType
    ) -> str | None:
        embedded = embedded_imdb_id(raw)
        if embedded:
            return embedded
        try:
            return await self._resolver.rating_id_for_catalog_id(tmdb_id, content_type)
        except Exception as exc:
            logger.warning(
                "IMDb id lookup failed for %s %s: %s", content_type, tmdb_id, exc
            )
            return None

    async def _curated_url(
        self, content_type: ContentType, imdb_id: str | None, tmdb_id: int
    ) -> str | None:
        if self._store is None:
            return None
        try:
            return await self._store.find_playable_url(
                content_type, imdb_id=imdb_id, tmdb_id=tmdb_id
            )
        except Exception as exc:
            logger.warning(
                "Playable URL lookup failed for %s %s: %s",
                content_type,
                imdb_id or tmdb_id,
                exc,
            )
            return None

    @staticmethod
    def _title(raw: Mapping[str, Any], content_type: ContentType, tmdb_id: int) -> str:
        for key in _TITLE_FIELDS[content_type]:
            value = raw.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
        return f"TMDB {tmdb_id}"
