"""SQLAlchemy ORM models backing the persistent state."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base


class _TitleColumns:
    """Columns shared by stored movies and series."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # NULL never collides with NULL, which gives sparse uniqueness for both ids.
    tmdb_id: Mapped[int | None] = mapped_column(Integer, unique=True, nullable=True)
    imdb_id: Mapped[str | None] = mapped_column(String(32), unique=True, nullable=True)
    title: Mapped[str] = mapped_column(String(500))
    year: Mapped[str] = mapped_column(String(8), default="N/A")
    plot: Mapped[str | None] = mapped_column(Text, nullable=True)
    poster: Mapped[str | None] = mapped_column(String(512), nullable=True)
    backdrop: Mapped[str | None] = mapped_column(String(512), nullable=True)
    genres: Mapped[list[str]] = mapped_column(JSON, default=list)
    rating: Mapped[str] = mapped_column(String(8), default="N/A")
    director: Mapped[str] = mapped_column(Text, default="N/A")
    writer: Mapped[str] = mapped_column(Text, default="N/A")
    actors: Mapped[str] = mapped_column(Text, default="N/A")
    playable_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class MovieDocument(_TitleColumns, Base):
    """Persisted movie record."""

    __tablename__ = "movies"

    runtime: Mapped[str] = mapped_column(String(32), default="N/A")


class SeriesDocument(_TitleColumns, Base):
    """Persisted series record with its embedded season summaries."""

    __tablename__ = "series"

    total_seasons: Mapped[str] = mapped_column(String(16), default="N/A")
    episode_count: Mapped[str] = mapped_column(String(16), default="N/A")
    seasons: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)


class UserListDocument(Base):
    """A user's saved titles, stored as one document per user."""

    __tablename__ = "user_lists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), unique=True)
    items: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
