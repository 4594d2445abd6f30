"""HTTP surface: tap redirects and the tag creation scaffold.

Routes:
- GET  /tag/{slug}    -> redirect, acknowledgment page, or creation scaffold
- GET  /tag/create    -> creation form for an unknown tag
- POST /tag/create    -> store the tag's target URL
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from html import escape

from fastapi import FastAPI, Form, HTTPException, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from twag.adapters.base import AsyncCacheStore, AsyncContentSystem, AsyncSessionStore
from twag.adapters.memory import (
    AsyncMemoryCacheStore,
    AsyncMemoryContentSystem,
    AsyncMemorySessionStore,
)
from twag.adapters.sqlite import AsyncSqliteCacheStore
from twag.config import Settings
from twag.engine import CREATE_PATH, TapEngine
from twag.errors import InvalidTagId, MalformedTap
from twag.ids import TagId
from twag.types import Acknowledgment, Action, Resolution

logger = logging.getLogger(__name__)

_PAGE = """<!doctype html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body>
{body}
</body>
</html>
"""

# Cookie lifetime; interaction state itself expires much sooner.
SESSION_MAX_AGE = 60 * 60 * 24 * 365


def _render(title: str, body: str) -> str:
    return _PAGE.format(title=escape(title), body=body)


def _acknowledgment_page(resolution: Resolution) -> HTMLResponse:
    failed = resolution.acknowledgment is Acknowledgment.FAILED
    body = f"<p>{escape(resolution.message or '')}</p>"
    if resolution.target_url:
        body += f'\n<p><a href="{escape(resolution.target_url)}">Open {resolution.tag}</a></p>'
    return HTMLResponse(
        _render("Not updated" if failed else "Updated", body),
        status_code=502 if failed else 200,
    )


def _create_form(tag: TagId, tap_count: int | None) -> str:
    action = f"{CREATE_PATH}?id={tag}"
    if tap_count is not None:
        action += f"&tap_count={tap_count}"
    return _render(
        f"New tag {tag}",
        f"<h1>Tag {tag} is not set up yet</h1>\n"
        f'<form method="post" action="{escape(action)}">\n'
        '<label>Target URL <input type="url" name="target_url" required></label>\n'
        '<button type="submit">Create</button>\n'
        "</form>",
    )


def _tag_param(raw: str | None) -> TagId:
    if not raw:
        raise HTTPException(status_code=400, detail="Missing id")
    try:
        return TagId.parse(raw)
    except InvalidTagId as e:
        raise HTTPException(status_code=400, detail=str(e)) from None


def create_app(engine: TapEngine, settings: Settings | None = None) -> FastAPI:
    """Build the ASGI app around an engine. The engine is closed on shutdown."""
    settings = settings or Settings()
    cookie_name = settings.session_cookie

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await engine.close()

    app = FastAPI(title="twag", lifespan=lifespan)
    app.state.engine = engine

    @app.exception_handler(RequestValidationError)
    async def invalid_request(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": jsonable_encoder(exc.errors())})

    # Registered before /tag/{slug} so "create" is never taken for a slug.
    @app.get(CREATE_PATH, response_class=HTMLResponse)
    async def create_form(
        tag_id: str | None = Query(None, alias="id"),
        tap_count: int | None = Query(None, ge=0),
    ) -> HTMLResponse:
        """Scaffold for a tag that has no target yet."""
        tag = _tag_param(tag_id)
        return HTMLResponse(_create_form(tag, tap_count))

    @app.post(CREATE_PATH)
    async def create_tag(
        tag_id: str | None = Query(None, alias="id"),
        tap_count: int | None = Query(None, ge=0),
        target_url_query: str | None = Query(None, alias="target_url"),
        target_url: str | None = Form(None),
    ) -> Response:
        """Store a tag's target URL, then send the tapper there."""
        tag = _tag_param(tag_id)
        target_url = target_url or target_url_query
        if not target_url:
            raise HTTPException(status_code=400, detail="Missing target_url")

        await engine.register(tag, target_url, tap_count=tap_count)
        return RedirectResponse(target_url, status_code=303)

    @app.get("/tag/{slug}")
    async def tap(slug: str, request: Request) -> Response:
        """Resolve a tap."""
        session = request.cookies.get(cookie_name)
        new_session = session is None
        if new_session:
            session = uuid.uuid4().hex

        try:
            resolution = await engine.resolve(slug, session=session)
        except MalformedTap as e:
            raise HTTPException(status_code=400, detail=str(e)) from None

        response: Response
        if resolution.action is Action.ACKNOWLEDGE:
            response = _acknowledgment_page(resolution)
        else:
            # Temporary; a cached redirect would skip the tap.
            response = RedirectResponse(resolution.target_url or "/", status_code=307)
        if new_session:
            response.set_cookie(
                cookie_name,
                session,
                max_age=SESSION_MAX_AGE,
                httponly=True,
                samesite="lax",
            )
        return response

    return app


def _cache_store(settings: Settings, redis_client: object | None) -> AsyncCacheStore:
    if settings.cache_backend == "sqlite":
        return AsyncSqliteCacheStore(settings.database_path)
    if settings.cache_backend == "redis":
        from twag.adapters.redis import AsyncRedisCacheStore

        return AsyncRedisCacheStore(redis_client)
    return AsyncMemoryCacheStore()


def _session_store(settings: Settings, redis_client: object | None) -> AsyncSessionStore:
    if settings.session_backend == "redis":
        from twag.adapters.redis import AsyncRedisSessionStore

        return AsyncRedisSessionStore(redis_client)
    return AsyncMemorySessionStore()


def _content_system(settings: Settings) -> AsyncContentSystem:
    if settings.notion is None:
        logger.warning("Notion is not configured; using an empty in-memory content system")
        return AsyncMemoryContentSystem()
    from twag.adapters.notion import AsyncNotionContentSystem

    notion = settings.notion
    return AsyncNotionContentSystem(
        notion.token,
        notion.database_id,
        tag_property=notion.tag_property,
        kind_property=notion.kind_property,
        container_property=notion.container_property,
    )


def build_engine(settings: Settings) -> TapEngine:
    """Wire an engine from settings."""
    redis_client = None
    if "redis" in (settings.cache_backend, settings.session_backend):
        import redis.asyncio as redis

        redis_client = redis.from_url(settings.redis_url)

    return TapEngine(
        cache=_cache_store(settings, redis_client),
        sessions=_session_store(settings, redis_client),
        content=_content_system(settings),
        window=settings.interaction_window_ms,
        lookup_timeout=settings.lookup_timeout_ms,
        dispatch_timeout=settings.dispatch_timeout_ms,
    )
