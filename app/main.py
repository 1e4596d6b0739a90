"""Entry point for the FastAPI-powered StreamShelf backend."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, Sequence

import httpx
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .config import settings
from .database import Database
from .errors import DuplicateItemError, InvalidInputError, NotFoundError, UpstreamError
from .models import ContentType, ListItem, Movie, Series, parse_content_type
from .services.catalog import CatalogService
from .services.genres import GenreDirectory
from .services.identifiers import IdentifierResolver
from .services.store import ContentStore
from .services.tmdb import TMDBClient
from .services.user_lists import UserListStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app: FastAPI


@asynccontextmanager
async def lifespan(_: FastAPI):
    exit_stack = AsyncExitStack()
    if not settings.tmdb_api_key:
        logger.error("TMDB_API_KEY is not set; TMDB requests will be rejected.")
    tmdb_http_client = await exit_stack.enter_async_context(
        httpx.AsyncClient(
            base_url=settings.tmdb_base_url,
            timeout=httpx.Timeout(settings.tmdb_timeout_seconds, connect=10.0),
        )
    )
    database = Database(settings.database_url)
    await database.create_all()

    tmdb = TMDBClient(settings, tmdb_http_client)
    genres = GenreDirectory(tmdb)
    try:
        await genres.load_all()
    except Exception:
        logger.critical("Could not load TMDB genres; refusing to start.")
        await database.dispose()
        await exit_stack.aclose()
        raise

    store = ContentStore(database.session_factory)
    catalog_service = CatalogService(
        settings, tmdb, genres, IdentifierResolver(tmdb), store
    )

    app.state.catalog_service = catalog_service
    app.state.user_lists = UserListStore(database.session_factory)
    app.state.database = database

    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await database.dispose()
        await exit_stack.aclose()


def create_app() -> FastAPI:
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Movie and series catalog cached from TMDB, with per-user lists",
        version="1.0.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT"],
        allow_headers=["*"],
    )

    register_routes(fastapi_app)
    return fastapi_app


def get_catalog_service(app: FastAPI) -> CatalogService:
    service = getattr(app.state, "catalog_service", None)
    if not isinstance(service, CatalogService):
        raise RuntimeError("Catalog service not initialised")
    return service


def get_user_lists(app: FastAPI) -> UserListStore:
    store = getattr(app.state, "user_lists", None)
    if not isinstance(store, UserListStore):
        raise RuntimeError("User list store not initialised")
    return store


class AddItemRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(validation_alias=AliasChoices("userId", "user_id"))
    item: ListItem


class RemoveItemRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(validation_alias=AliasChoices("userId", "user_id"))
    tmdb_id: int | None = Field(
        default=None, validation_alias=AliasChoices("tmdbId", "tmdb_id")
    )
    imdb_id: str | None = Field(
        default=None, validation_alias=AliasChoices("imdbID", "imdbId", "imdb_id")
    )


class PlayableUrlRequest(BaseModel):
    url: str = Field(
        min_length=1,
        validation_alias=AliasChoices("url", "playableUrl", "telegramPlayableUrl"),
    )


def _content_type(value: str) -> ContentType:
    try:
        return parse_content_type(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _payloads(records: Sequence[Movie | Series]) -> list[dict[str, Any]]:
    return [record.to_payload() for record in records]


def register_routes(fastapi_app: FastAPI) -> None:
    _register_error_handlers(fastapi_app)

    @fastapi_app.get("/", response_class=PlainTextResponse)
    async def root() -> str:
        return f"{settings.app_name} backend is running!"

    @fastapi_app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @fastapi_app.get("/api/search")
    async def search(q: str = "", pages: int | None = Query(default=None, ge=1)) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        results = await service.search(q, pages=pages)
        return JSONResponse({key: _payloads(value) for key, value in results.items()})

    @fastapi_app.post("/api/genres/refresh")
    async def refresh_genres() -> dict[str, list[str]]:
        service = get_catalog_service(fastapi_app)
        return await service.refresh_genres()

    @fastapi_app.get("/api/genres/{kind}")
    async def genre_names(kind: str) -> dict[str, list[str]]:
        service = get_catalog_service(fastapi_app)
        return {"genres": service.genre_names(_content_type(kind))}

    @fastapi_app.get("/api/mylist/{user_id}")
    async def get_my_list(user_id: str) -> JSONResponse:
        user_list = await get_user_lists(fastapi_app).get_list(user_id)
        return JSONResponse(user_list.to_payload())

    @fastapi_app.post("/api/mylist/add", status_code=201)
    async def add_to_my_list(body: AddItemRequest) -> JSONResponse:
        user_list = await get_user_lists(fastapi_app).add_item(body.user_id, body.item)
        return JSONResponse(
            {
                "message": "Item added to list successfully!",
                "userList": user_list.to_payload(),
            },
            status_code=201,
        )

    @fastapi_app.post("/api/mylist/remove")
    async def remove_from_my_list(body: RemoveItemRequest) -> JSONResponse:
        user_list = await get_user_lists(fastapi_app).remove_item(
            body.user_id, tmdb_id=body.tmdb_id, imdb_id=body.imdb_id
        )
        return JSONResponse(
            {
                "message": "Item removed from list successfully!",
                "userList": user_list.to_payload(),
            }
        )

    @fastapi_app.get("/api/library/search")
    async def library_search(q: str = "") -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        results = await service.local_search(q)
        return JSONResponse({key: _payloads(value) for key, value in results.items()})

    @fastapi_app.get("/api/library/genres/{kind}")
    async def library_genres(kind: str) -> dict[str, list[str]]:
        service = get_catalog_service(fastapi_app)
        return {"genres": await service.local_genres(_content_type(kind))}

    @fastapi_app.get("/api/library/{kind}/genre/{genre_name}")
    async def library_by_genre(kind: str, genre_name: str) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        records = await service.local_by_genre(_content_type(kind), genre_name)
        return JSONResponse(_payloads(records))

    @fastapi_app.get("/api/library/{kind}/top-rated")
    async def library_top_rated(kind: str) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        records = await service.local_top_rated(_content_type(kind))
        return JSONResponse(_payloads(records))

    @fastapi_app.get("/api/library/{kind}/title/{external_id}")
    async def library_title(kind: str, external_id: str) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        record = await service.local_title(_content_type(kind), external_id)
        return JSONResponse(record.to_payload())

    @fastapi_app.get("/api/library/{kind}")
    async def library_titles(kind: str) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        records = await service.local_titles(_content_type(kind))
        return JSONResponse(_payloads(records))

    @fastapi_app.get("/api/series/{tv_id}/seasons")
    async def series_seasons(tv_id: int) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        return JSONResponse(await service.seasons(tv_id))

    @fastapi_app.get("/api/series/{tv_id}/season/{season_number}/episodes")
    async def season_episodes(tv_id: int, season_number: int) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        return JSONResponse(await service.season_episodes(tv_id, season_number))

    @fastapi_app.get("/api/{kind}/genre/{genre_name}")
    async def discover_by_genre(
        kind: str, genre_name: str, pages: int | None = Query(default=None, ge=1)
    ) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        records = await service.discover_by_genre(
            _content_type(kind), genre_name, pages=pages
        )
        return JSONResponse(_payloads(records))

    @fastapi_app.get("/api/{kind}/detail/{external_id}")
    async def title_detail(kind: str, external_id: str) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        record = await service.get_detail(_content_type(kind), external_id)
        return JSONResponse(record.to_payload())

    @fastapi_app.put("/api/{kind}/{external_id}/playable-url")
    async def set_playable_url(
        kind: str, external_id: str, body: PlayableUrlRequest
    ) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        record = await service.set_playable_url(
            _content_type(kind), external_id, body.url
        )
        return JSONResponse(record.to_payload())

    @fastapi_app.get("/api/{kind}/{category}")
    async def category_listing(
        kind: str, category: str, pages: int | None = Query(default=None, ge=1)
    ) -> JSONResponse:
        service = get_catalog_service(fastapi_app)
        records = await service.list_category(
            _content_type(kind), category, pages=pages
        )
        return JSONResponse(_payloads(records))


def _register_error_handlers(fastapi_app: FastAPI) -> None:
    def _message(status_code: int, message: str) -> JSONResponse:
        return JSONResponse({"message": message}, status_code=status_code)

    async def not_found(_: Request, exc: Exception) -> JSONResponse:
        return _message(404, str(exc))

    async def duplicate(_: Request, exc: Exception) -> JSONResponse:
        return _message(409, str(exc))

    async def invalid(_: Request, exc: Exception) -> JSONResponse:
        return _message(400, str(exc))

    async def upstream(_: Request, exc: Exception) -> JSONResponse:
        logger.warning("Upstream failure: %s", exc)
        return _message(502, "Failed to fetch data from the external catalog.")

    fastapi_app.add_exception_handler(NotFoundError, not_found)
    fastapi_app.add_exception_handler(DuplicateItemError, duplicate)
    fastapi_app.add_exception_handler(InvalidInputError, invalid)
    fastapi_app.add_exception_handler(UpstreamError, upstream)


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
