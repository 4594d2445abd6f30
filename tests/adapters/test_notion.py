"""Tests for the Notion content system using mocked HTTP responses."""

import json
from typing import Any

import pytest

# Skip all tests if httpx is not installed
pytest.importorskip("httpx")

import httpx
import respx

from twag import (
    Action,
    AsyncMemoryCacheStore,
    AsyncMemorySessionStore,
    ContentLookupError,
    MutationFailure,
    PageNotFound,
    PageRef,
    TagCacheEntry,
    TagId,
    TagKind,
    TapEngine,
)
from twag.adapters.notion import AsyncNotionContentSystem

BASE = "https://api.test.dev"
DATABASE = "0f0e0d0c-0b0a-0908-0706-050403020100"
QUERY_URL = f"{BASE}/v1/databases/{DATABASE}/query"

TAG = TagId("AABBCCDDEE0011")
PAGE_ID = "11223344-5566-7788-99aa-bbccddeeff00"
BOX_ID = "aaaaaaaa-bbbb-cccc-dddd-eeeeeeeeeeee"


def notion_page(
    page_id: str = PAGE_ID,
    *,
    kind: str | None = "Belonging",
    kind_type: str = "select",
    containers: list[str] | None = None,
    title: str = "Camera",
) -> dict[str, Any]:
    """A page object shaped like the Notion API's."""
    properties: dict[str, Any] = {
        "Name": {"type": "title", "title": [{"plain_text": title}]},
        "Tag": {"type": "rich_text", "rich_text": [{"plain_text": str(TAG)}]},
        "Kind": {"type": kind_type, kind_type: {"name": kind} if kind else None},
        "Container": {
            "type": "relation",
            "relation": [{"id": c} for c in (containers or [])],
        },
    }
    return {
        "object": "page",
        "id": page_id,
        "url": f"https://www.notion.so/Camera-{page_id.replace('-', '')}",
        "properties": properties,
    }


@pytest.fixture
async def notion():
    """A Notion content system pointed at the mock API."""
    system = AsyncNotionContentSystem(
        token="secret_test", database_id=DATABASE.replace("-", ""), base_url=BASE
    )
    yield system
    await system.disconnect()


class TestResolve:
    """Reads from the Notion database."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_resolve_by_tag(self, notion: AsyncNotionContentSystem) -> None:
        """Tags are found by querying the tag property."""
        route = respx.post(QUERY_URL).mock(
            return_value=httpx.Response(200, json={"results": [notion_page()]})
        )

        info = await notion.resolve_page(TAG)
        assert info.page == PageRef(PAGE_ID)
        assert info.kind is TagKind.BELONGING
        assert info.url.endswith("112233445566778899aabbccddeeff00")

        request = route.calls[0].request
        assert request.headers["Authorization"] == "Bearer secret_test"
        assert request.headers["Notion-Version"] == "2022-06-28"
        assert json.loads(request.content)["filter"] == {
            "property": "Tag",
            "rich_text": {"equals": "AABBCCDDEE0011"},
        }

    @respx.mock
    @pytest.mark.asyncio
    async def test_resolve_by_page(self, notion: AsyncNotionContentSystem) -> None:
        """Page ids are fetched directly."""
        respx.get(f"{BASE}/v1/pages/{BOX_ID}").mock(
            return_value=httpx.Response(
                200, json=notion_page(BOX_ID, kind="Container", kind_type="status")
            )
        )
        info = await notion.resolve_page(PageRef(BOX_ID))
        assert info.kind is TagKind.CONTAINER

    @respx.mock
    @pytest.mark.asyncio
    async def test_missing_tag(self, notion: AsyncNotionContentSystem) -> None:
        """No results means PageNotFound."""
        respx.post(QUERY_URL).mock(return_value=httpx.Response(200, json={"results": []}))
        with pytest.raises(PageNotFound):
            await notion.resolve_page(TAG)

    @respx.mock
    @pytest.mark.asyncio
    async def test_missing_page(self, notion: AsyncNotionContentSystem) -> None:
        """A 404 for a page id means PageNotFound."""
        respx.get(f"{BASE}/v1/pages/{BOX_ID}").mock(
            return_value=httpx.Response(404, json={"message": "Could not find page"})
        )
        with pytest.raises(PageNotFound):
            await notion.resolve_page(PageRef(BOX_ID))

    @respx.mock
    @pytest.mark.asyncio
    async def test_duplicate_tag(self, notion: AsyncNotionContentSystem) -> None:
        """Two pages with one tag is a lookup error, not a guess."""
        respx.post(QUERY_URL).mock(
            return_value=httpx.Response(
                200, json={"results": [notion_page(), notion_page(BOX_ID)]}
            )
        )
        with pytest.raises(ContentLookupError, match="More than one"):
            await notion.resolve_page(TAG)

    @respx.mock
    @pytest.mark.asyncio
    async def test_api_error_message(self, notion: AsyncNotionContentSystem) -> None:
        """Errors carry the API's message."""
        respx.post(QUERY_URL).mock(
            return_value=httpx.Response(429, json={"message": "Rate limited"})
        )
        with pytest.raises(ContentLookupError, match="Rate limited"):
            await notion.resolve_page(TAG)

    @respx.mock
    @pytest.mark.asyncio
    async def test_network_error(self, notion: AsyncNotionContentSystem) -> None:
        """Transport failures become lookup errors."""
        respx.post(QUERY_URL).mock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(ContentLookupError, match="ConnectError"):
            await notion.resolve_page(TAG)

    @respx.mock
    @pytest.mark.asyncio
    async def test_non_json_success(self, notion: AsyncNotionContentSystem) -> None:
        """A 200 that is not JSON, such as a captive portal, is a lookup error."""
        respx.post(QUERY_URL).mock(
            return_value=httpx.Response(200, text="<html>captive</html>")
        )
        with pytest.raises(ContentLookupError, match="HTTP 200: invalid JSON"):
            await notion.classify(TAG)

    @respx.mock
    @pytest.mark.asyncio
    async def test_non_json_success_still_redirects_cached_tag(
        self, notion: AsyncNotionContentSystem
    ) -> None:
        """The engine falls back to the cached target when Notion answers HTML."""
        respx.post(QUERY_URL).mock(
            return_value=httpx.Response(200, text="<html>captive</html>")
        )
        cache = AsyncMemoryCacheStore()
        await cache.upsert(TagCacheEntry(id=TAG, target_url="https://example.com/camera"))
        engine = TapEngine(
            cache=cache, sessions=AsyncMemorySessionStore(), content=notion
        )

        result = await engine.resolve("AABBCCDDEE0011x1", session="session-1")
        assert result.action is Action.REDIRECT
        assert result.target_url == "https://example.com/camera"

    @respx.mock
    @pytest.mark.asyncio
    async def test_classify_unrecognized_kind(
        self, notion: AsyncNotionContentSystem
    ) -> None:
        """Kinds other than belonging or container are unknown."""
        respx.post(QUERY_URL).mock(
            return_value=httpx.Response(200, json={"results": [notion_page(kind="Shelf")]})
        )
        assert await notion.classify(TAG) is TagKind.UNKNOWN

    @respx.mock
    @pytest.mark.asyncio
    async def test_classify_empty_kind(self, notion: AsyncNotionContentSystem) -> None:
        """An unset kind is unknown."""
        respx.post(QUERY_URL).mock(
            return_value=httpx.Response(200, json={"results": [notion_page(kind=None)]})
        )
        assert await notion.classify(TAG) is TagKind.UNKNOWN


class TestContainer:
    """Reading and writing the container relation."""

    @respx.mock
    @pytest.mark.asyncio
    async def test_get_container(self, notion: AsyncNotionContentSystem) -> None:
        """The first related page is the container."""
        respx.post(QUERY_URL).mock(
            return_value=httpx.Response(
                200, json={"results": [notion_page(containers=[BOX_ID])]}
            )
        )
        assert await notion.get_container(TAG) == PageRef(BOX_ID)

    @respx.mock
    @pytest.mark.asyncio
    async def test_get_container_empty(self, notion: AsyncNotionContentSystem) -> None:
        """No related page means no container."""
        respx.post(QUERY_URL).mock(
            return_value=httpx.Response(200, json={"results": [notion_page()]})
        )
        assert await notion.get_container(TAG) is None

    @respx.mock
    @pytest.mark.asyncio
    async def test_set_relation(self, notion: AsyncNotionContentSystem) -> None:
        """Setting a container patches the relation property."""
        respx.post(QUERY_URL).mock(
            return_value=httpx.Response(200, json={"results": [notion_page()]})
        )
        route = respx.patch(f"{BASE}/v1/pages/{PAGE_ID}").mock(
            return_value=httpx.Response(200, json=notion_page(containers=[BOX_ID]))
        )

        await notion.set_relation(TAG, PageRef(BOX_ID))
        assert json.loads(route.calls[0].request.content) == {
            "properties": {"Container": {"relation": [{"id": BOX_ID}]}}
        }

        await notion.set_relation(TAG, None)
        assert json.loads(route.calls[1].request.content) == {
            "properties": {"Container": {"relation": []}}
        }

    @respx.mock
    @pytest.mark.asyncio
    async def test_set_relation_failure(self, notion: AsyncNotionContentSystem) -> None:
        """Rejected writes raise MutationFailure."""
        respx.post(QUERY_URL).mock(
            return_value=httpx.Response(200, json={"results": [notion_page()]})
        )
        respx.patch(f"{BASE}/v1/pages/{PAGE_ID}").mock(
            return_value=httpx.Response(400, json={"message": "Invalid relation"})
        )
        with pytest.raises(MutationFailure, match="Invalid relation"):
            await notion.set_relation(TAG, PageRef(BOX_ID))

    @respx.mock
    @pytest.mark.asyncio
    async def test_set_relation_unknown_tag(self, notion: AsyncNotionContentSystem) -> None:
        """Writing to an unknown belonging is a MutationFailure."""
        respx.post(QUERY_URL).mock(return_value=httpx.Response(200, json={"results": []}))
        with pytest.raises(MutationFailure):
            await notion.set_relation(TAG, PageRef(BOX_ID))
