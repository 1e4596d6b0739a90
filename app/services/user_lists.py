"""Per-user "my list" storage."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..db_models import UserListDocument
from ..errors import DuplicateItemError, InvalidInputError, NotFoundError
from ..models import ListItem, UserList
from .identifiers import normalize_imdb_id

logger = logging.getLogger(__name__)


class UserListStore:
    """Stores one list document per user; lists are created on first add."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_list(self, user_id: str) -> UserList:
        """Return the user's list, or an empty one if nothing was saved yet."""

        user_id = self._require_user(user_id)
        async with self._session_factory() as session:
            document = await self._load(session, user_id)
            if document is None:
                return UserList(user_id=user_id, items=[])
            return self._to_model(document)

    async def add_item(self, user_id: str, item: ListItem) -> UserList:
        user_id = self._require_user(user_id)
        if not item.has_identifier():
            raise InvalidInputError("Item must carry a TMDB or IMDb id.")

        async with self._session_factory() as session:
            document = await self._load(session, user_id)
            if document is None:
                now = datetime.utcnow()
                document = UserListDocument(
                    user_id=user_id, items=[], created_at=now, updated_at=now
                )
                session.add(document)

            current = self._items(document)
            if any(
                existing.matches(tmdb_id=item.tmdb_id, imdb_id=item.imdb_id)
                for existing in current
            ):
                raise DuplicateItemError("Item already in list!")

            # Reassign so SQLAlchemy notices the JSON change.
            document.items = [
                *(entry.model_dump(mode="json") for entry in current),
                item.model_dump(mode="json"),
            ]
            document.updated_at = datetime.utcnow()
            await session.commit()
            logger.info(
                "Added %s %s to list of %s",
                item.type,
                item.imdb_id or item.tmdb_id,
                user_id,
            )
            return self._to_model(document)

    async def remove_item(
        self,
        user_id: str,
        *,
        tmdb_id: int | None = None,
        imdb_id: str | None = None,
    ) -> UserList:
        """Remove every item matching either id."""

        user_id = self._require_user(user_id)
        imdb_id = normalize_imdb_id(imdb_id) if imdb_id else None
        if tmdb_id is None and not imdb_id:
            raise InvalidInputError("Either a TMDB id or an IMDb id is required.")

        async with self._session_factory() as session:
            document = await self._load(session, user_id)
            if document is None:
                raise NotFoundError("User list not found.")

            current = self._items(document)
            remaining = [
                entry
                for entry in current
                if not entry.matches(tmdb_id=tmdb_id, imdb_id=imdb_id)
            ]
            if len(remaining) == len(current):
                raise NotFoundError("Item not found in your list.")

            document.items = [entry.model_dump(mode="json") for entry in remaining]
            document.updated_at = datetime.utcnow()
            await session.commit()
            return self._to_model(document)

    @staticmethod
    async def _load(session: AsyncSession, user_id: str) -> UserListDocument | None:
        result = await session.execute(
            select(UserListDocument).where(UserListDocument.user_id == user_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _require_user(user_id: str) -> str:
        cleaned = (user_id or "").strip()
        if not cleaned:
            raise InvalidInputError("User ID is required.")
        return cleaned

    @staticmethod
    def _items(document: UserListDocument) -> list[ListItem]:
        return [ListItem.model_validate(entry) for entry in document.items or []]

    def _to_model(self, document: UserListDocument) -> UserList:
        return UserList(user_id=document.user_id, items=self._items(document))
