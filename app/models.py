"""Pydantic models describing stored titles and user lists."""

from __future__ import annotations

import re
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

ContentType = Literal["movie", "series"]

CONTENT_TYPES: tuple[ContentType, ...] = ("movie", "series")

# TMDB names the series kind "tv" in every path.
TMDB_MEDIA_PATHS: dict[str, str] = {"movie": "movie", "series": "tv"}

_CONTENT_TYPE_ALIASES: dict[str, ContentType] = {
    "movie": "movie",
    "movies": "movie",
    "film": "movie",
    "series": "series",
    "tv": "series",
    "show": "series",
    "shows": "series",
}

NOT_AVAILABLE = "N/A"

IMDB_ID_RE = re.compile(r"^tt\d+$")


def parse_content_type(value: str) -> ContentType:
    """Map route-style kind names (``movies``, ``tv``...) onto a content type."""

    normalized = (value or "").strip().lower()
    try:
        return _CONTENT_TYPE_ALIASES[normalized]
    except KeyError:
        raise ValueError(f"Unsupported content type: {value!r}") from None


def tmdb_media_path(content_type: ContentType) -> str:
    return TMDB_MEDIA_PATHS[content_type]


class SeasonSummary(BaseModel):
    """A season entry embedded in a series record."""

    id: int | None = None
    season_number: int | None = None
    name: str | None = None
    overview: str | None = None
    air_date: str | None = None
    episode_count: int | None = None
    poster_path: str | None = None


class TitleRecord(BaseModel):
    """Fields shared by every normalized title."""

    model_config = ConfigDict(populate_by_name=True)

    tmdb_id: int | None = Field(
        default=None,
        validation_alias=AliasChoices("tmdb_id", "tmdbId"),
        serialization_alias="tmdbId",
    )
    imdb_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("imdb_id", "imdbID", "imdbId"),
        serialization_alias="imdbID",
    )
    title: str
    year: str = NOT_AVAILABLE
    plot: str | None = None
    poster: str | None = None
    backdrop: str | None = None
    genres: list[str] = Field(default_factory=list)
    rating: str = NOT_AVAILABLE
    director: str = NOT_AVAILABLE
    writer: str = NOT_AVAILABLE
    actors: str = NOT_AVAILABLE
    playable_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("playable_url", "playableUrl"),
        serialization_alias="playableUrl",
    )

    def has_identifier(self) -> bool:
        """Return whether the record carries at least one usable id."""

        return self.tmdb_id is not None or bool(self.imdb_id)

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON payload served by the API."""

        return self.model_dump(mode="json", by_alias=True)


class Movie(TitleRecord):
    type: Literal["movie"] = "movie"
    runtime: str = NOT_AVAILABLE


class Series(TitleRecord):
    type: Literal["series"] = "series"
    total_seasons: str = Field(
        default=NOT_AVAILABLE,
        validation_alias=AliasChoices("total_seasons", "totalSeasons"),
        serialization_alias="totalSeasons",
    )
    episode_count: str = Field(
        default=NOT_AVAILABLE,
        validation_alias=AliasChoices("episode_count", "numberOfEpisodes"),
        serialization_alias="numberOfEpisodes",
    )
    seasons: list[SeasonSummary] = Field(default_factory=list)


ContentRecord = Annotated[Union[Movie, Series], Field(discriminator="type")]


class ListItem(BaseModel):
    """A title saved to a user's list."""

    model_config = ConfigDict(populate_by_name=True)

    tmdb_id: int | None = Field(
        default=None,
        validation_alias=AliasChoices("tmdb_id", "tmdbId"),
        serialization_alias="tmdbId",
    )
    imdb_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("imdb_id", "imdbID", "imdbId"),
        serialization_alias="imdbID",
    )
    title: str = Field(min_length=1)
    poster: str | None = None
    type: ContentType
    year: str | None = None

    @field_validator("imdb_id", mode="before")
    @classmethod
    def _normalize_imdb_id(cls, value: object) -> object:
        """Strip the IMDb id; blank means absent, anything else must be tt-shaped."""

        if value is None:
            return None
        if not isinstance(value, str):
            return value
        candidate = value.strip()
        if not candidate:
            return None
        if not IMDB_ID_RE.match(candidate):
            raise ValueError(f"Invalid IMDb id: {value!r}")
        return candidate

    def has_identifier(self) -> bool:
        return self.tmdb_id is not None or bool(self.imdb_id)

    def matches(self, *, tmdb_id: int | None = None, imdb_id: str | None = None) -> bool:
        """Return whether either supplied id refers to this item."""

        if imdb_id and self.imdb_id == imdb_id:
            return True
        if tmdb_id is not None and self.tmdb_id == tmdb_id:
            return True
        return False


class UserList(BaseModel):
    """All items saved by one user."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(
        validation_alias=AliasChoices("user_id", "userId"),
        serialization_alias="userId",
    )
    items: list[ListItem] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
