"""Tests for the HTTP routes."""

import httpx
import pytest
from fastapi import FastAPI

from twag import (
    AsyncMemoryCacheStore,
    AsyncMemoryContentSystem,
    PageRef,
    TagId,
    TapEngine,
)
from twag.app import build_engine, create_app
from twag.config import Settings

BELONGING_URL = "https://www.notion.so/112233445566778899aabbccddeeff00"
CONTAINER_PAGE = PageRef("aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee")


@pytest.fixture
def app(engine: TapEngine) -> FastAPI:
    """The ASGI app around the shared test engine."""
    return create_app(engine, Settings(session_cookie="twag_session"))


@pytest.fixture
async def client(app: FastAPI):
    """An HTTP client talking to the app in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


class TestTapRoute:
    """Tests for GET /tag/{slug}."""

    @pytest.mark.asyncio
    async def test_redirects_to_target(self, client: httpx.AsyncClient) -> None:
        """Known tags get a temporary redirect and a session cookie."""
        response = await client.get("/tag/AABBCCDDEE0011x1")
        assert response.status_code == 307
        assert response.headers["location"] == BELONGING_URL
        assert "twag_session" in response.cookies

    @pytest.mark.asyncio
    async def test_unknown_tag_redirects_to_create(self, client: httpx.AsyncClient) -> None:
        """Unknown tags are sent to the creation scaffold."""
        response = await client.get("/tag/00000000000000x3")
        assert response.status_code == 307
        assert response.headers["location"] == "/tag/create?id=00000000000000&tap_count=3"

    @pytest.mark.asyncio
    async def test_malformed_slug(self, client: httpx.AsyncClient) -> None:
        """Slugs without a tag id are rejected."""
        response = await client.get("/tag/not-a-tag")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_move_and_undo_pages(
        self, client: httpx.AsyncClient, content: AsyncMemoryContentSystem
    ) -> None:
        """The cookie ties taps together into a move and an undo."""
        first = await client.get("/tag/AABBCCDDEE0011")
        assert first.status_code == 307

        moved = await client.get("/tag/0123456789ABCD")
        assert moved.status_code == 200
        assert "Moved AABBCCDDEE0011." in moved.text
        assert await content.get_container(TagId("AABBCCDDEE0011")) == CONTAINER_PAGE

        undone = await client.get("/tag/0123456789ABCD")
        assert undone.status_code == 200
        assert "Undid the move of AABBCCDDEE0011." in undone.text

    @pytest.mark.asyncio
    async def test_existing_cookie_is_kept(self, client: httpx.AsyncClient) -> None:
        """A session cookie is only issued once."""
        client.cookies.set("twag_session", "abc")
        response = await client.get("/tag/AABBCCDDEE0011")
        assert "set-cookie" not in response.headers


class TestCreateRoutes:
    """Tests for /tag/create."""

    @pytest.mark.asyncio
    async def test_form(self, client: httpx.AsyncClient) -> None:
        """The scaffold renders a form posting back with the tap count."""
        response = await client.get("/tag/create?id=00000000000000&tap_count=3")
        assert response.status_code == 200
        assert 'name="target_url"' in response.text
        assert "/tag/create?id=00000000000000&amp;tap_count=3" in response.text

    @pytest.mark.asyncio
    async def test_form_rejects_bad_id(self, client: httpx.AsyncClient) -> None:
        """Invalid ids are a client error."""
        response = await client.get("/tag/create?id=xyz")
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_create_from_form(
        self, client: httpx.AsyncClient, cache: AsyncMemoryCacheStore
    ) -> None:
        """Posting the form stores the target and redirects there."""
        response = await client.post(
            "/tag/create?id=00000000000000&tap_count=3",
            data={"target_url": "https://example.com/bike"},
        )
        assert response.status_code == 303
        assert response.headers["location"] == "https://example.com/bike"

        entry = await cache.get(TagId("00000000000000"))
        assert entry is not None
        assert entry.target_url == "https://example.com/bike"
        assert entry.access_count == 3
        assert entry.last_seen_tap_count == 3

        tapped = await client.get("/tag/00000000000000x4")
        assert tapped.headers["location"] == "https://example.com/bike"

    @pytest.mark.asyncio
    async def test_create_from_query(
        self, client: httpx.AsyncClient, cache: AsyncMemoryCacheStore
    ) -> None:
        """target_url may also come in the query string."""
        response = await client.post(
            "/tag/create",
            params={"id": "00000000000000", "target_url": "https://example.com/bike"},
        )
        assert response.status_code == 303
        entry = await cache.get(TagId("00000000000000"))
        assert entry is not None
        assert entry.access_count == 1

    @pytest.mark.asyncio
    async def test_create_requires_target(self, client: httpx.AsyncClient) -> None:
        """A missing target URL is a client error."""
        response = await client.post("/tag/create?id=00000000000000")
        assert response.status_code == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("tap_count", ["²", "-1", "3.5", "abc"])
    async def test_form_rejects_bad_tap_count(
        self, client: httpx.AsyncClient, tap_count: str
    ) -> None:
        """Only non-negative integers are tap counts."""
        response = await client.get(
            "/tag/create", params={"id": "AABBCCDDEE0011", "tap_count": tap_count}
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_create_rejects_bad_tap_count(
        self, client: httpx.AsyncClient, cache: AsyncMemoryCacheStore
    ) -> None:
        """A bad tap count is refused before anything is stored."""
        response = await client.post(
            "/tag/create",
            params={"id": "00000000000000", "tap_count": "²"},
            data={"target_url": "https://example.com/bike"},
        )
        assert response.status_code == 400
        assert await cache.get(TagId("00000000000000")) is None

    @pytest.mark.asyncio
    async def test_form_requires_id(self, client: httpx.AsyncClient) -> None:
        """The scaffold needs an id."""
        response = await client.get("/tag/create")
        assert response.status_code == 400


class TestBuildEngine:
    """Tests for build_engine."""

    @pytest.mark.asyncio
    async def test_memory_backends(self) -> None:
        """Default settings run entirely in memory."""
        engine = build_engine(Settings())
        result = await engine.resolve("AABBCCDDEE0011")
        assert result.target_url == "/tag/create?id=AABBCCDDEE0011"
        await engine.close()

    @pytest.mark.asyncio
    async def test_sqlite_cache(self, tmp_path) -> None:
        """The sqlite backend persists registrations."""
        engine = build_engine(
            Settings(cache_backend="sqlite", database_path=tmp_path / "tags.db")
        )
        await engine.register(TagId("AABBCCDDEE0011"), "https://example.com/a")
        result = await engine.resolve("AABBCCDDEE0011")
        assert result.target_url == "https://example.com/a"
        await engine.close()
