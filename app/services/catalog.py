"""Orchestrates TMDB fetches, mapping and reconciliation for the API."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Mapping, Sequence

from sqlalchemy.exc import SQLAlchemyError

from ..config import Settings
from ..errors import InvalidInputError, NotFoundError, UpstreamError
from ..models import CONTENT_TYPES, ContentType, Movie, Series
from .genres import GenreDirectory
from .identifiers import IdentifierResolver, looks_like_imdb_id
from .mapper import SchemaMapper
from .store import ContentStore
from .tmdb import TMDBClient

logger = logging.getLogger(__name__)


class CatalogService:
    """Entry point used by the route layer.

    Listing flows run item by item: each raw entry is mapped, then stored
    with :meth:`ContentStore.upsert_if_absent`. A failing item never fails
    the whole listing.
    """

    def __init__(
        self,
        settings: Settings,
        tmdb_client: TMDBClient,
        genres: GenreDirectory,
        resolver: IdentifierResolver,
        store: ContentStore,
        mapper: SchemaMapper | None = None,
    ):
        self._settings = settings
        self._tmdb = tmdb_client
        self._genres = genres
        self._resolver = resolver
        self._store = store
        self._mapper = mapper or SchemaMapper(genres, resolver, store)

    @property
    def store(self) -> ContentStore:
        return self._store

    @property
    def genres(self) -> GenreDirectory:
        return self._genres

    def _page_count(self, pages: int | None) -> int:
        if pages is None:
            return self._settings.listing_page_count
        return max(1, min(int(pages), 10))

    async def list_category(
        self, content_type: ContentType, category: str, *, pages: int | None = None
    ) -> list[Movie | Series]:
        """Return a TMDB listing (trending, popular...) reconciled with the store."""

        raw_items = await self._tmdb.listing(
            content_type, category, pages=self._page_count(pages)
        )
        return await self._reconcile_items(raw_items, content_type)

    async def discover_by_genre(
        self, content_type: ContentType, genre_name: str, *, pages: int | None = None
    ) -> list[Movie | Series]:
        genre_id = self._genres.genre_id_for_name(genre_name, content_type)
        if genre_id is None:
            raise NotFoundError(f"Unknown {content_type} genre: {genre_name}")
        raw_items = await self._tmdb.discover(
            content_type, genre_id, pages=self._page_count(pages)
        )
        return await self._reconcile_items(raw_items, content_type)

    async def search(
        self, query: str, *, pages: int | None = None
    ) -> dict[str, list[Movie | Series]]:
        needle = (query or "").strip()
        if not needle:
            raise InvalidInputError("Search query is required.")
        results: dict[str, list[Movie | Series]] = {}
        for content_type in CONTENT_TYPES:
            raw_items = await self._tmdb.search(
                content_type, needle, pages=self._page_count(pages)
            )
            results[content_type] = await self._reconcile_items(raw_items, content_type)
        return {"movies": results["movie"], "series": results["series"]}

    async def get_detail(
        self,
        content_type: ContentType,
        external_id: str | int,
        *,
        playable_url: str | None = None,
    ) -> Movie | Series:
        """Fetch a title with credits and refresh its stored copy."""

        tmdb_id = await self._resolve_tmdb_id(content_type, external_id)
        try:
            raw = await self._tmdb.details(content_type, tmdb_id)
            credits = await self._tmdb.credits(content_type, tmdb_id)
        except UpstreamError as exc:
            if exc.is_not_found:
                raise NotFoundError(
                    f"{content_type} {external_id} was not found on TMDB"
                ) from exc
            raise

        record = await self._mapper.map_record(raw, content_type, credits=credits)
        if record is None:
            raise NotFoundError(f"{content_type} {external_id} could not be mapped")
        return await self._store.upsert_merge(record, playable_url=playable_url)

    async def set_playable_url(
        self, content_type: ContentType, external_id: str | int, url: str
    ) -> Movie | Series:
        """Set the curated URL, creating the record from TMDB if needed."""

        cleaned = (url or "").strip()
        if not cleaned:
            raise InvalidInputError("A playable URL is required.")
        try:
            return await self._store.set_playable_url(content_type, external_id, cleaned)
        except NotFoundError:
            logger.info(
                "%s %s not stored yet; fetching from TMDB", content_type, external_id
            )
        return await self.get_detail(content_type, external_id, playable_url=cleaned)

    async def seasons(self, tv_id: int) -> list[dict[str, Any]]:
        payload = await self._passthrough(self._tmdb.details("series", tv_id), tv_id)
        return list(payload.get("seasons") or [])

    async def season_episodes(self, tv_id: int, season_number: int) -> list[dict[str, Any]]:
        payload = await self._passthrough(
            self._tmdb.season(tv_id, season_number), tv_id
        )
        return list(payload.get("episodes") or [])

    def genre_names(self, content_type: ContentType) -> list[str]:
        return self._genres.names(content_type)

    async def refresh_genres(self) -> dict[str, list[str]]:
        """Reload both genre directories and return the new names."""

        await self._genres.refresh()
        return {
            content_type: self._genres.names(content_type)
            for content_type in CONTENT_TYPES
        }

    async def local_title(
        self, content_type: ContentType, external_id: str
    ) -> Movie | Series:
        record = await self._store.find(content_type, external_id)
        if record is None:
            raise NotFoundError(f"{content_type} {external_id} is not stored")
        return record

    async def local_titles(self, content_type: ContentType) -> list[Movie | Series]:
        return await self._store.list_records(content_type)

    async def local_by_genre(
        self, content_type: ContentType, genre_name: str
    ) -> list[Movie | Series]:
        return await self._store.by_genre(
            content_type, genre_name, limit=self._settings.local_result_limit
        )

    async def local_top_rated(self, content_type: ContentType) -> list[Movie | Series]:
        return await self._store.top_rated(
            content_type, limit=self._settings.local_result_limit
        )

    async def local_genres(self, content_type: ContentType) -> list[str]:
        return await self._store.distinct_genres(content_type)

    async def local_search(self, query: str) -> dict[str, list[Movie | Series]]:
        return await self._store.search(query, limit=self._settings.local_result_limit)

    async def _reconcile_items(
        self,
        raw_items: Sequence[Mapping[str, Any]],
        content_type: ContentType,
    ) -> list[Movie | Series]:
        records: list[Movie | Series] = []
        for raw in raw_items:
            try:
                record = await self._mapper.map_record(raw, content_type)
            except Exception:
                logger.exception(
                    "Failed to map %s item %s", content_type, raw.get("id")
                )
                continue
            if record is None or not record.has_identifier():
                logger.debug("Dropping %s item without usable id", content_type)
                continue

            try:
                records.append(await self._store.upsert_if_absent(record))
            except (SQLAlchemyError, InvalidInputError) as exc:
                logger.warning(
                    "Could not store %s %s: %s",
                    content_type,
                    record.imdb_id or record.tmdb_id,
                    exc,
                )
                records.append(record)
        return records

    async def _resolve_tmdb_id(
        self, content_type: ContentType, external_id: str | int
    ) -> int:
        if looks_like_imdb_id(external_id):
            tmdb_id = await self._resolver.catalog_id_for_rating_id(
                str(external_id).strip(), content_type
            )
            if tmdb_id is None:
                raise NotFoundError(
                    f"No TMDB {content_type} matches IMDb id {external_id}"
                )
            return tmdb_id
        try:
            return int(str(external_id).strip())
        except ValueError:
            raise InvalidInputError(
                f"{external_id!r} is neither a TMDB id nor an IMDb id"
            ) from None

    @staticmethod
    async def _passthrough(request: Awaitable[dict[str, Any]], tv_id: int) -> dict[str, Any]:
        try:
            return await request
        except UpstreamError as exc:
            if exc.is_not_found:
                raise NotFoundError(f"series {tv_id} was not found on TMDB") from exc
            raise
