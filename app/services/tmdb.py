"""Read-only client for The Movie Database (TMDB) API."""

from __future__ import annotations

import logging
from typing import Any, Mapping

import httpx

from ..config import Settings
from ..errors import NotFoundError, UpstreamError
from ..models import ContentType, tmdb_media_path

logger = logging.getLogger(__name__)

MOVIE_CATEGORIES: dict[str, str] = {
    "trending": "/trending/movie/week",
    "popular": "/movie/popular",
    "top_rated": "/movie/top_rated",
    "now_playing": "/movie/now_playing",
    "upcoming": "/movie/upcoming",
}
SERIES_CATEGORIES: dict[str, str] = {
    "trending": "/trending/tv/week",
    "popular": "/tv/popular",
    "top_rated": "/tv/top_rated",
    "airing_today": "/tv/airing_today",
    "on_the_air": "/tv/on_the_air",
}
LISTING_CATEGORIES: dict[str, dict[str, str]] = {
    "movie": MOVIE_CATEGORIES,
    "series": SERIES_CATEGORIES,
}


class TMDBClient:
    """Thin passthrough over TMDB read endpoints.

    Every call issues exactly one request per page; there is no retry,
    backoff or caching here. Failures surface as :class:`UpstreamError`
    and the caller decides what to do with them.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient):
        self._settings = settings
        self._client = http_client

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._settings.tmdb_api_key:
            headers["Authorization"] = f"Bearer {self._settings.tmdb_api_key}"
        return headers

    def _build_params(self, query: Mapping[str, Any] | None) -> dict[str, Any]:
        params: dict[str, Any] = {"language": self._settings.tmdb_language}
        if query:
            params.update(
                {key: value for key, value in query.items() if value is not None}
            )
        return params

    async def fetch_json(
        self, path: str, query: Mapping[str, Any] | None = None
    ) -> dict[str, Any]:
        """Return the decoded JSON body for a TMDB read endpoint."""

        if not path.startswith("/"):
            path = f"/{path}"
        params = self._build_params(query)
        try:
            response = await self._client.get(
                path, params=params, headers=self._headers()
            )
        except httpx.HTTPError as exc:
            logger.warning("TMDB request to %s failed: %s", path, exc)
            raise UpstreamError(None, str(exc) or exc.__class__.__name__) from exc

        if response.status_code >= 400:
            message = self._error_message(response)
            logger.warning(
                "TMDB request to %s returned %s: %s",
                path,
                response.status_code,
                message,
            )
            raise UpstreamError(response.status_code, message)

        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamError(
                response.status_code, f"Unexpected non-JSON response from {path}"
            ) from exc
        if not isinstance(data, dict):
            raise UpstreamError(
                response.status_code, f"Unexpected response structure from {path}"
            )
        return data

    async def fetch_pages(
        self,
        path: str,
        query: Mapping[str, Any] | None = None,
        *,
        pages: int = 1,
    ) -> list[dict[str, Any]]:
        """Fetch ``pages`` pages sequentially and concatenate their results."""

        collected: list[dict[str, Any]] = []
        page = 1
        while page <= max(pages, 1):
            payload = await self.fetch_json(path, {**(query or {}), "page": page})
            results = payload.get("results") or []
            collected.extend(entry for entry in results if isinstance(entry, dict))

            total_pages = payload.get("total_pages")
            if isinstance(total_pages, int) and page >= total_pages:
                break
            page += 1
        return collected

    async def genre_list(self, content_type: ContentType) -> list[dict[str, Any]]:
        payload = await self.fetch_json(f"/genre/{tmdb_media_path(content_type)}/list")
        genres = payload.get("genres") or []
        return [entry for entry in genres if isinstance(entry, dict)]

    async def details(self, content_type: ContentType, tmdb_id: int) -> dict[str, Any]:
        return await self.fetch_json(f"/{tmdb_media_path(content_type)}/{tmdb_id}")

    async def credits(self, content_type: ContentType, tmdb_id: int) -> dict[str, Any]:
        return await self.fetch_json(
            f"/{tmdb_media_path(content_type)}/{tmdb_id}/credits"
        )

    async def external_ids(
        self, content_type: ContentType, tmdb_id: int
    ) -> dict[str, Any]:
        return await self.fetch_json(
            f"/{tmdb_media_path(content_type)}/{tmdb_id}/external_ids"
        )

    async def find_by_external_id(
        self, external_id: str, *, source: str = "imdb_id"
    ) -> dict[str, Any]:
        return await self.fetch_json(
            f"/find/{external_id}", {"external_source": source}
        )

    async def season(self, tv_id: int, season_number: int) -> dict[str, Any]:
        return await self.fetch_json(f"/tv/{tv_id}/season/{season_number}")

    async def search(
        self, content_type: ContentType, query: str, *, pages: int = 1
    ) -> list[dict[str, Any]]:
        return await self.fetch_pages(
            f"/search/{tmdb_media_path(content_type)}",
            {"query": query, "include_adult": "false"},
            pages=pages,
        )

    async def discover(
        self, content_type: ContentType, genre_id: int, *, pages: int = 1
    ) -> list[dict[str, Any]]:
        return await self.fetch_pages(
            f"/discover/{tmdb_media_path(content_type)}",
            {"with_genres": genre_id, "sort_by": "popularity.desc"},
            pages=pages,
        )

    async def listing(
        self, content_type: ContentType, category: str, *, pages: int = 1
    ) -> list[dict[str, Any]]:
        """Fetch one of the paginated listing endpoints (trending, popular...)."""

        categories = LISTING_CATEGORIES[content_type]
        path = categories.get(category.replace("-", "_"))
        if path is None:
            raise NotFoundError(
                f"Unknown {content_type} category {category!r}; "
                f"expected one of {', '.join(sorted(categories))}"
            )
        return await self.fetch_pages(path, pages=pages)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        if isinstance(data, dict):
            message = data.get("status_message") or data.get("message")
            if message:
                return str(message)
        return response.text or response.reason_phrase
