"""Shared builders for TMDB fakes and settings."""

from __future__ import annotations

from typing import Any

import httpx

from app.config import Settings

TMDB_TEST_URL = "https://tmdb.example.com"

Routes = dict[str, Any]

NOT_FOUND_BODY = {
    "status_code": 34,
    "status_message": "The resource you requested could not be found.",
}

GENRE_ROUTES: Routes = {
    "/genre/movie/list": {
        "genres": [
            {"id": 28, "name": "Action"},
            {"id": 18, "name": "Drama"},
            {"id": 878, "name": "Science Fiction"},
        ]
    },
    "/genre/tv/list": {
        "genres": [
            {"id": 18, "name": "Drama"},
            {"id": 10765, "name": "Sci-Fi & Fantasy"},
        ]
    },
}


def build_settings(**overrides: Any) -> Settings:
    """Return a settings object with defaults suitable for tests."""

    base: dict[str, Any] = {"TMDB_API_KEY": "test-token"}
    base.update(overrides)
    return Settings(_env_file=None, **base)  # type: ignore[arg-type]


def tmdb_transport(
    routes: Routes, requests: list[httpx.Request] | None = None
) -> httpx.MockTransport:
    """Serve canned TMDB payloads keyed by request path.

    A route value may be a dict (served as JSON with status 200), an
    ``httpx.Response``, or a callable receiving the request. Unknown paths
    answer with TMDB's 404 body.
    """

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        route = routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json=NOT_FOUND_BODY)
        if callable(route):
            route = route(request)
        if isinstance(route, httpx.Response):
            return route
        return httpx.Response(200, json=route)

    return httpx.MockTransport(handler)


def tmdb_http_client(
    routes: Routes, requests: list[httpx.Request] | None = None
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=tmdb_transport(routes, requests), base_url=TMDB_TEST_URL
    )
