"""Persistence of normalized titles with curated-field reconciliation."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pydantic import TypeAdapter
from sqlalchemy import Float, String, cast, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import MovieDocument, SeriesDocument
from ..errors import InvalidInputError, NotFoundError
from ..models import (
    CONTENT_TYPES,
    NOT_AVAILABLE,
    ContentRecord,
    ContentType,
    Movie,
    Series,
)
from .identifiers import looks_like_imdb_id

logger = logging.getLogger(__name__)

DOCUMENT_MODELS: dict[str, type[MovieDocument] | type[SeriesDocument]] = {
    "movie": MovieDocument,
    "series": SeriesDocument,
}

# Everything the catalog may refresh; ``playable_url`` is curated locally.
_SHARED_FIELDS = (
    "title",
    "year",
    "plot",
    "poster",
    "backdrop",
    "genres",
    "rating",
    "director",
    "writer",
    "actors",
)
_KIND_FIELDS: dict[str, tuple[str, ...]] = {
    "movie": ("runtime",),
    "series": ("total_seasons", "episode_count", "seasons"),
}

SEARCH_FIELDS = ("title", "plot", "genres", "actors", "director")

_RECORD_ADAPTER: TypeAdapter[Movie | Series] = TypeAdapter(ContentRecord)


class ContentStore:
    """Reconciles TMDB-derived records with what is already stored.

    Lookups always prefer the IMDb id and fall back to the TMDB id when the
    IMDb id is unknown. Curated ``playable_url`` values are only written by
    :meth:`set_playable_url` or an explicit override to :meth:`upsert_merge`.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def upsert_if_absent(self, record: Movie | Series) -> Movie | Series:
        """Insert ``record`` unless it is already stored; never overwrite."""

        self._require_identifier(record)
        async with self._session_factory() as session:
            existing = await self._locate(
                session, record.type, imdb_id=record.imdb_id, tmdb_id=record.tmdb_id
            )
            if existing is not None:
                return self._to_record(record.type, existing)

            document = self._new_document(record)
            session.add(document)
            await session.commit()
            logger.debug(
                "Stored new %s %s", record.type, record.imdb_id or record.tmdb_id
            )
            return self._to_record(record.type, document)

    async def upsert_merge(
        self, record: Movie | Series, playable_url: str | None = None
    ) -> Movie | Series:
        """Insert or refresh ``record`` while keeping the curated URL.

        ``playable_url`` replaces the stored value only when supplied.
        """

        self._require_identifier(record)
        async with self._session_factory() as session:
            document = await self._locate(
                session, record.type, imdb_id=record.imdb_id, tmdb_id=record.tmdb_id
            )
            if document is None:
                document = self._new_document(record)
                document.playable_url = playable_url
                session.add(document)
            else:
                self._apply_fields(document, record)
                if playable_url is not None:
                    document.playable_url = playable_url
                document.updated_at = datetime.utcnow()
            await session.commit()
            return self._to_record(record.type, document)

    async def set_playable_url(
        self, content_type: ContentType, external_id: str | int, url: str
    ) -> Movie | Series:
        """Set the curated URL on an existing record; never creates one."""

        async with self._session_factory() as session:
            document = await self._find_by_external_id(
                session, content_type, external_id
            )
            if document is None:
                raise NotFoundError(f"{content_type} {external_id} is not stored")
            document.playable_url = url
            document.updated_at = datetime.utcnow()
            await session.commit()
            logger.info("Updated playable URL for %s %s", content_type, external_id)
            return self._to_record(content_type, document)

    async def find(
        self, content_type: ContentType, external_id: str | int
    ) -> Movie | Series | None:
        async with self._session_factory() as session:
            document = await self._find_by_external_id(
                session, content_type, external_id
            )
            if document is None:
                return None
            return self._to_record(content_type, document)

    async def find_playable_url(
        self,
        content_type: ContentType,
        *,
        imdb_id: str | None = None,
        tmdb_id: int | None = None,
    ) -> str | None:
        if not imdb_id and tmdb_id is None:
            return None
        async with self._session_factory() as session:
            document = await self._locate(
                session, content_type, imdb_id=imdb_id, tmdb_id=tmdb_id
            )
            return document.playable_url if document is not None else None

    async def list_records(
        self, content_type: ContentType, *, limit: int | None = None
    ) -> list[Movie | Series]:
        model = DOCUMENT_MODELS[content_type]
        stmt = select(model).order_by(model.id)
        if limit is not None:
            stmt = stmt.limit(limit)
        return await self._fetch_records(content_type, stmt)

    async def by_genre(
        self, content_type: ContentType, genre_name: str, *, limit: int = 50
    ) -> list[Movie | Series]:
        """Return stored titles whose genres contain ``genre_name`` (any case)."""

        model = DOCUMENT_MODELS[content_type]
        stmt = (
            select(model)
            .where(cast(model.genres, String).icontains(genre_name, autoescape=True))
            .order_by(model.id)
            .limit(limit)
        )
        return await self._fetch_records(content_type, stmt)

    async def top_rated(
        self, content_type: ContentType, *, limit: int = 50
    ) -> list[Movie | Series]:
        model = DOCUMENT_MODELS[content_type]
        stmt = (
            select(model)
            .where(model.rating != NOT_AVAILABLE)
            .order_by(cast(model.rating, Float).desc(), model.id)
            .limit(limit)
        )
        return await self._fetch_records(content_type, stmt)

    async def distinct_genres(self, content_type: ContentType) -> list[str]:
        """Return the sorted set of genre names across stored titles."""

        model = DOCUMENT_MODELS[content_type]
        async with self._session_factory() as session:
            result = await session.execute(select(model.genres))
            names: set[str] = set()
            for genres in result.scalars():
                for name in genres or []:
                    if isinstance(name, str) and name.strip():
                        names.add(name.strip())
        return sorted(names)

    async def search(
        self, query: str, *, limit: int = 50
    ) -> dict[str, list[Movie | Series]]:
        """Case-insensitive substring search over both kinds."""

        needle = (query or "").strip()
        if not needle:
            raise InvalidInputError("Search query is required.")

        results: dict[str, list[Movie | Series]] = {}
        for content_type in CONTENT_TYPES:
            model = DOCUMENT_MODELS[content_type]
            conditions = [
                cast(getattr(model, field), String).icontains(needle, autoescape=True)
                if field == "genres"
                else getattr(model, field).icontains(needle, autoescape=True)
                for field in SEARCH_FIELDS
            ]
            stmt = select(model).where(or_(*conditions)).order_by(model.id).limit(limit)
            results[content_type] = await self._fetch_records(content_type, stmt)
        return {"movies": results["movie"], "series": results["series"]}

    async def _fetch_records(self, content_type: ContentType, stmt) -> list[Movie | Series]:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [
                self._to_record(content_type, document)
                for document in result.scalars().all()
            ]

    async def _locate(
        self,
        session: AsyncSession,
        content_type: ContentType,
        *,
        imdb_id: str | None,
        tmdb_id: int | None,
    ) -> MovieDocument | SeriesDocument | None:
        model = DOCUMENT_MODELS[content_type]
        if imdb_id:
            result = await session.execute(select(model).where(model.imdb_id == imdb_id))
            document = result.scalar_one_or_none()
            if document is not None:
                return document
        if tmdb_id is not None:
            # Also reached when the IMDb id missed: a title stored before its
            # IMDb id was known must not be inserted a second time.
            result = await session.execute(select(model).where(model.tmdb_id == tmdb_id))
            document = result.scalar_one_or_none()
            if document is not None and imdb_id and document.imdb_id not in (None, imdb_id):
                logger.warning(
                    "%s TMDB id %s is stored with IMDb id %s, not %s",
                    content_type,
                    tmdb_id,
                    document.imdb_id,
                    imdb_id,
                )
            return document
        return None

    async def _find_by_external_id(
        self,
        session: AsyncSession,
        content_type: ContentType,
        external_id: str | int,
    ) -> MovieDocument | SeriesDocument | None:
        model = DOCUMENT_MODELS[content_type]
        if looks_like_imdb_id(external_id):
            stmt = select(model).where(model.imdb_id == str(external_id).strip())
        else:
            try:
                tmdb_id = int(str(external_id).strip())
            except ValueError:
                return None
            stmt = select(model).where(model.tmdb_id == tmdb_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    @staticmethod
    def _require_identifier(record: Movie | Series) -> None:
        if not record.has_identifier():
            raise InvalidInputError(
                f"{record.type} {record.title!r} has neither a TMDB nor an IMDb id"
            )

    def _new_document(self, record: Movie | Series) -> MovieDocument | SeriesDocument:
        document = DOCUMENT_MODELS[record.type]()
        document.tmdb_id = record.tmdb_id
        document.imdb_id = record.imdb_id
        document.playable_url = record.playable_url
        self._apply_fields(document, record)
        now = datetime.utcnow()
        document.created_at = now
        document.updated_at = now
        return document

    @staticmethod
    def _apply_fields(
        document: MovieDocument | SeriesDocument, record: Movie | Series
    ) -> None:
        dumped = record.model_dump(mode="json")
        for field in (*_SHARED_FIELDS, *_KIND_FIELDS[record.type]):
            setattr(document, field, dumped[field])
        # Fill ids learned since the last sync without dropping known ones.
        if record.imdb_id and not document.imdb_id:
            document.imdb_id = record.imdb_id
        if record.tmdb_id is not None and document.tmdb_id is None:
            document.tmdb_id = record.tmdb_id

    @staticmethod
    def _to_record(
        content_type: ContentType, document: MovieDocument | SeriesDocument
    ) -> Movie | Series:
        data: dict[str, Any] = {
            "type": content_type,
            "tmdb_id": document.tmdb_id,
            "imdb_id": document.imdb_id,
            "playable_url": document.playable_url,
        }
        for field in (*_SHARED_FIELDS, *_KIND_FIELDS[content_type]):
            data[field] = getattr(document, field)
        return _RECORD_ADAPTER.validate_python(data)
