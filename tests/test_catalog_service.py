from __future__ import annotations

import asyncio
from typing import Any

import httpx
import pytest
from sqlalchemy.exc import IntegrityError

from app.database import Database
from app.errors import InvalidInputError, NotFoundError, UpstreamError
from app.models import Movie
from app.services.catalog import CatalogService
from app.services.genres import GenreDirectory
from app.services.identifiers import IdentifierResolver
from app.services.store import ContentStore
from app.services.tmdb import TMDBClient

from helpers import GENRE_ROUTES, build_settings, tmdb_http_client

MATRIX_LISTING_ENTRY = {
    "id": 603,
    "title": "The Matrix",
    "release_date": "1999-03-30",
    "genre_ids": [28, 878],
    "vote_average": 8.2,
    "poster_path": "/matrix.jpg",
}

MATRIX_DETAILS = {
    "id": 603,
    "imdb_id": "tt0133093",
    "title": "The Matrix",
    "release_date": "1999-03-30",
    "genres": [{"id": 28, "name": "Action"}, {"id": 878, "name": "Science Fiction"}],
    "vote_average": 8.2,
    "runtime": 136,
    "overview": "A hacker learns the truth about his reality.",
}

MATRIX_CREDITS = {
    "cast": [
        {"name": "Keanu Reeves", "order": 0},
        {"name": "Laurence Fishburne", "order": 1},
    ],
    "crew": [
        {"name": "Lana Wachowski", "job": "Director"},
        {"name": "Lilly Wachowski", "job": "Director"},
        {"name": "Lana Wachowski", "job": "Writer"},
    ],
}


def _routes(**extra: Any) -> dict[str, Any]:
    routes: dict[str, Any] = dict(GENRE_ROUTES)
    routes.update(extra)
    return routes


async def _build_service(
    tmp_path,
    routes: dict[str, Any],
    requests: list[httpx.Request] | None = None,
    store_cls: type[ContentStore] = ContentStore,
) -> tuple[CatalogService, Database, httpx.AsyncClient]:
    settings = build_settings()
    http_client = tmdb_http_client(routes, requests)
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    await database.create_all()

    tmdb = TMDBClient(settings, http_client)
    genres = GenreDirectory(tmdb)
    await genres.load_all()
    resolver = IdentifierResolver(tmdb)
    store = store_cls(database.session_factory)
    return CatalogService(settings, tmdb, genres, resolver, store), database, http_client


async def _close(database: Database, http_client: httpx.AsyncClient) -> None:
    await http_client.aclose()
    await database.dispose()


def test_listing_isolates_failing_items(tmp_path) -> None:
    """One broken entry never fails the listing."""

    routes = _routes(
        **{
            "/movie/popular": {
                "page": 1,
                "total_pages": 1,
                "results": [
                    MATRIX_LISTING_ENTRY,
                    {"id": "broken", "title": "No numeric id"},
                    {"id": 13, "title": "Forrest Gump", "genre_ids": [18]},
                ],
            },
            "/movie/603/external_ids": {"imdb_id": "tt0133093"},
            "/movie/13/external_ids": httpx.Response(
                500, json={"status_message": "Internal error"}
            ),
        }
    )

    async def runner() -> None:
        service, database, http_client = await _build_service(tmp_path, routes)

        records = await service.list_category("movie", "popular")

        assert [record.title for record in records] == ["The Matrix", "Forrest Gump"]
        matrix, forrest = records
        assert matrix.imdb_id == "tt0133093"
        assert matrix.genres == ["Action", "Science Fiction"]
        assert matrix.year == "1999"
        assert forrest.imdb_id is None
        assert forrest.tmdb_id == 13

        stored = await service.local_titles("movie")
        assert len(stored) == 2

        await _close(database, http_client)

    asyncio.run(runner())


def test_listing_keeps_curated_fields(tmp_path) -> None:
    routes = _routes(
        **{
            "/trending/movie/week": {
                "total_pages": 1,
                "results": [dict(MATRIX_LISTING_ENTRY, title="Matrix, The")],
            },
            "/movie/603/external_ids": {"imdb_id": "tt0133093"},
        }
    )

    async def runner() -> None:
        service, database, http_client = await _build_service(tmp_path, routes)
        await service.store.upsert_merge(
            Movie(tmdb_id=603, imdb_id="tt0133093", title="The Matrix"),
            playable_url="https://t.me/matrix/1",
        )

        records = await service.list_category("movie", "trending")

        assert len(records) == 1
        assert records[0].playable_url == "https://t.me/matrix/1"
        assert records[0].title == "The Matrix"

        await _close(database, http_client)

    asyncio.run(runner())


def test_unknown_category_is_not_found(tmp_path) -> None:
    async def runner() -> None:
        service, database, http_client = await _build_service(tmp_path, _routes())

        with pytest.raises(NotFoundError):
            await service.list_category("series", "upcoming")

        await _close(database, http_client)

    asyncio.run(runner())


def test_discover_by_genre_name(tmp_path) -> None:
    requests: list[httpx.Request] = []
    routes = _routes(
        **{
            "/discover/tv": {
                "total_pages": 1,
                "results": [
                    {
                        "id": 1399,
                        "name": "Game of Thrones",
                        "first_air_date": "2011-04-17",
                        "genre_ids": [10765, 18],
                        "vote_average": 8.4,
                    }
                ],
            },
            "/tv/1399/external_ids": {"imdb_id": "tt0944947"},
        }
    )

    async def runner() -> None:
        service, database, http_client = await _build_service(tmp_path, routes, requests)

        records = await service.discover_by_genre("series", "sci-fi & fantasy")

        assert [record.title for record in records] == ["Game of Thrones"]
        assert records[0].genres == ["Sci-Fi & Fantasy", "Drama"]
        discover = [r for r in requests if r.url.path == "/discover/tv"][0]
        assert discover.url.params["with_genres"] == "10765"

        with pytest.raises(NotFoundError):
            await service.discover_by_genre("series", "Western")

        await _close(database, http_client)

    asyncio.run(runner())


def test_search_requires_query(tmp_path) -> None:
    async def runner() -> None:
        service, database, http_client = await _build_service(tmp_path, _routes())

        with pytest.raises(InvalidInputError):
            await service.search("  ")

        await _close(database, http_client)

    asyncio.run(runner())


def test_detail_refreshes_stored_record_with_credits(tmp_path) -> None:
    routes = _routes(
        **{
            "/movie/603": MATRIX_DETAILS,
            "/movie/603/credits": MATRIX_CREDITS,
        }
    )

    async def runner() -> None:
        service, database, http_client = await _build_service(tmp_path, routes)
        await service.store.upsert_merge(
            Movie(tmdb_id=603, imdb_id="tt0133093", title="Old title"),
            playable_url="https://t.me/matrix/1",
        )

        detail = await service.get_detail("movie", "603")

        assert isinstance(detail, Movie)
        assert detail.title == "The Matrix"
        assert detail.runtime == "136 min"
        assert detail.director == "Lana Wachowski"
        assert detail.actors == "Keanu Reeves, Laurence Fishburne"
        assert detail.playable_url == "https://t.me/matrix/1"

        stored = await service.store.find("movie", "tt0133093")
        assert stored is not None
        assert stored.title == "The Matrix"

        await _close(database, http_client)

    asyncio.run(runner())


def test_detail_by_imdb_id(tmp_path) -> None:
    requests: list[httpx.Request] = []
    routes = _routes(
        **{
            "/find/tt0133093": {"movie_results": [{"id": 603}], "tv_results": []},
            "/movie/603": MATRIX_DETAILS,
            "/movie/603/credits": MATRIX_CREDITS,
        }
    )

    async def runner() -> None:
        service, database, http_client = await _build_service(tmp_path, routes, requests)

        detail = await service.get_detail("movie", "tt0133093")

        assert detail.tmdb_id == 603
        find = [r for r in requests if r.url.path.startswith("/find/")][0]
        assert find.url.params["external_source"] == "imdb_id"

        with pytest.raises(NotFoundError):
            await service.get_detail("series", "tt0133093")
        with pytest.raises(InvalidInputError):
            await service.get_detail("movie", "the-matrix")

        await _close(database, http_client)

    asyncio.run(runner())


def test_detail_missing_on_tmdb_is_not_found(tmp_path) -> None:
    routes = _routes(
        **{"/movie/500": httpx.Response(503, json={"status_message": "Unavailable"})}
    )

    async def runner() -> None:
        service, database, http_client = await _build_service(tmp_path, routes)

        with pytest.raises(NotFoundError):
            await service.get_detail("movie", 999)
        with pytest.raises(UpstreamError) as excinfo:
            await service.get_detail("movie", 500)
        assert excinfo.value.status == 503

        await _close(database, http_client)

    asyncio.run(runner())


def test_set_playable_url_creates_record_from_tmdb(tmp_path) -> None:
    routes = _routes(
        **{
            "/movie/603": MATRIX_DETAILS,
            "/movie/603/credits": MATRIX_CREDITS,
        }
    )

    async def runner() -> None:
        service, database, http_client = await _build_service(tmp_path, routes)

        created = await service.set_playable_url("movie", "603", " https://t.me/matrix/1 ")

        assert created.playable_url == "https://t.me/matrix/1"
        assert created.imdb_id == "tt0133093"

        updated = await service.set_playable_url("movie", "tt0133093", "https://t.me/matrix/2")
        assert updated.playable_url == "https://t.me/matrix/2"
        assert len(await service.local_titles("movie")) == 1

        with pytest.raises(InvalidInputError):
            await service.set_playable_url("movie", "603", "   ")

        await _close(database, http_client)

    asyncio.run(runner())


def test_season_passthrough(tmp_path) -> None:
    routes = _routes(
        **{
            "/tv/1399": {"id": 1399, "seasons": [{"season_number": 1, "name": "Season 1"}]},
            "/tv/1399/season/1": {"episodes": [{"episode_number": 1, "name": "Winter Is Coming"}]},
        }
    )

    async def runner() -> None:
        service, database, http_client = await _build_service(tmp_path, routes)

        seasons = await service.seasons(1399)
        episodes = await service.season_episodes(1399, 1)

        assert seasons == [{"season_number": 1, "name": "Season 1"}]
        assert episodes[0]["name"] == "Winter Is Coming"
        with pytest.raises(NotFoundError):
            await service.season_episodes(1399, 9)

        await _close(database, http_client)

    asyncio.run(runner())


class ConflictingStore(ContentStore):
    """Store whose insert of TMDB id 13 loses a uniqueness race."""

    async def upsert_if_absent(self, record):  # type: ignore[override]
        if record.tmdb_id == 13:
            raise IntegrityError(
                "INSERT INTO movies", {}, Exception("UNIQUE constraint failed: movies.tmdb_id")
            )
        return await super().upsert_if_absent(record)


def test_listing_survives_store_write_failure(tmp_path) -> None:
    routes = _routes(
        **{
            "/movie/popular": {
                "total_pages": 1,
                "results": [
                    {"id": 13, "title": "Forrest Gump", "genre_ids": [18]},
                    MATRIX_LISTING_ENTRY,
                ],
            },
            "/movie/13/external_ids": {"imdb_id": "tt0109830"},
            "/movie/603/external_ids": {"imdb_id": "tt0133093"},
        }
    )

    async def runner() -> None:
        service, database, http_client = await _build_service(
            tmp_path, routes, store_cls=ConflictingStore
        )

        records = await service.list_category("movie", "popular")

        assert [record.title for record in records] == ["Forrest Gump", "The Matrix"]
        forrest = records[0]
        assert forrest.imdb_id == "tt0109830"
        assert forrest.genres == ["Drama"]

        stored = await service.local_titles("movie")
        assert [record.title for record in stored] == ["The Matrix"]

        await _close(database, http_client)

    asyncio.run(runner())


def test_local_title_lookup(tmp_path) -> None:
    async def runner() -> None:
        service, database, http_client = await _build_service(tmp_path, _routes())
        await service.store.upsert_if_absent(
            Movie(tmdb_id=603, imdb_id="tt0133093", title="The Matrix")
        )

        assert (await service.local_title("movie", "tt0133093")).tmdb_id == 603
        assert (await service.local_title("movie", "603")).title == "The Matrix"
        with pytest.raises(NotFoundError):
            await service.local_title("series", "603")

        await _close(database, http_client)

    asyncio.run(runner())


def test_refresh_genres_reports_reloaded_names(tmp_path) -> None:
    movie_versions = iter(
        [
            GENRE_ROUTES["/genre/movie/list"],
            {"genres": [{"id": 99, "name": "Documentary"}]},
        ]
    )
    routes = _routes(
        **{"/genre/movie/list": lambda _: httpx.Response(200, json=next(movie_versions))}
    )

    async def runner() -> None:
        service, database, http_client = await _build_service(tmp_path, routes)
        assert service.genre_names("movie") == ["Action", "Drama", "Science Fiction"]

        refreshed = await service.refresh_genres()

        assert refreshed == {
            "movie": ["Documentary"],
            "series": ["Drama", "Sci-Fi & Fantasy"],
        }
        assert service.genre_names("movie") == ["Documentary"]

        await _close(database, http_client)

    asyncio.run(runner())
