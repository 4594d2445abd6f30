"""Notion as the content system.

Items live in one Notion database. Each page carries the tag id in a
text property, its kind (Belonging / Container) in a select property,
and its container in a relation property.
"""

from __future__ import annotations

import logging
from typing import Any, cast

import httpx

from twag.errors import ContentLookupError, MutationFailure, PageNotFound
from twag.ids import PageRef, TagId
from twag.types import PageInfo, TagKind

logger = logging.getLogger(__name__)

NOTION_API_URL = "https://api.notion.com"
NOTION_VERSION = "2022-06-28"

_KIND_NAMES = {
    "belonging": TagKind.BELONGING,
    "item": TagKind.BELONGING,
    "container": TagKind.CONTAINER,
    "box": TagKind.CONTAINER,
}


class NotionError(Exception):
    """A failed Notion API call."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AsyncNotionContentSystem:
    """Async Notion client implementing the content-system protocol."""

    def __init__(
        self,
        token: str,
        database_id: str,
        *,
        tag_property: str = "Tag",
        kind_property: str = "Kind",
        container_property: str = "Container",
        base_url: str = NOTION_API_URL,
        timeout: float = 10.0,
    ) -> None:
        self._database = PageRef.parse(database_id)
        self._tag_property = tag_property
        self._kind_property = kind_property
        self._container_property = container_property
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Notion-Version": NOTION_VERSION,
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    async def _request(
        self, method: str, endpoint: str, body: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        """Make a request to the Notion API."""
        try:
            response = await self._client.request(method, endpoint, json=body)
        except httpx.HTTPError as e:
            raise NotionError(f"{type(e).__name__}: {e}") from e
        if not response.is_success:
            try:
                error = response.json().get("message", "Request failed")
            except Exception:
                error = f"HTTP {response.status_code}"
            raise NotionError(error, response.status_code)
        try:
            return cast(dict[str, Any], response.json())
        except ValueError as e:
            raise NotionError(
                f"HTTP {response.status_code}: invalid JSON", response.status_code
            ) from e

    async def _find_tag_page(self, tag: TagId) -> dict[str, Any]:
        try:
            data = await self._request(
                "POST",
                f"/v1/databases/{self._database}/query",
                {
                    "filter": {
                        "property": self._tag_property,
                        "rich_text": {"equals": str(tag)},
                    },
                    "page_size": 2,
                },
            )
        except NotionError as e:
            raise ContentLookupError(f"Looking up {tag} failed: {e}") from e

        results = data.get("results") or []
        if not results:
            raise PageNotFound(f"No page for tag {tag}")
        if len(results) > 1:
            raise ContentLookupError(f"More than one page for tag {tag}")
        return cast(dict[str, Any], results[0])

    async def _get_page(self, ref: PageRef) -> dict[str, Any]:
        try:
            return await self._request("GET", f"/v1/pages/{ref}")
        except NotionError as e:
            if e.status_code == 404:
                raise PageNotFound(f"No page {ref}") from e
            raise ContentLookupError(f"Fetching page {ref} failed: {e}") from e

    def _page_info(self, page: dict[str, Any]) -> PageInfo:
        try:
            ref = PageRef.parse(page["id"])
        except (KeyError, ValueError) as e:
            raise ContentLookupError(f"Malformed page payload: {e}") from e
        properties = page.get("properties", {})
        return PageInfo(
            page=ref,
            url=page.get("url") or f"https://www.notion.so/{ref.compact}",
            kind=self._kind(properties),
        )

    def _kind(self, properties: dict[str, Any]) -> TagKind:
        prop = properties.get(self._kind_property) or {}
        option = prop.get(prop.get("type", "select")) or {}
        name = option.get("name") if isinstance(option, dict) else None
        if not name:
            return TagKind.UNKNOWN
        return _KIND_NAMES.get(name.strip().lower(), TagKind.UNKNOWN)

    def _container(self, properties: dict[str, Any]) -> PageRef | None:
        prop = properties.get(self._container_property)
        if prop is None:
            raise ContentLookupError(
                f"Page has no {self._container_property!r} relation property"
            )
        related = prop.get("relation") or []
        if not related:
            return None
        try:
            return PageRef.parse(related[0]["id"])
        except (KeyError, ValueError) as e:
            raise ContentLookupError(f"Malformed relation payload: {e}") from e

    async def resolve_page(self, ref: TagId | PageRef) -> PageInfo:
        """Look up a page by tag (database query) or page id."""
        if isinstance(ref, TagId):
            page = await self._find_tag_page(ref)
        else:
            page = await self._get_page(ref)
        return self._page_info(page)

    async def classify(self, tag: TagId) -> TagKind:
        """Classify a tag from its page's kind property."""
        page = await self._find_tag_page(tag)
        return self._kind(page.get("properties", {}))

    async def get_container(self, belonging: TagId) -> PageRef | None:
        """Read a belonging's container relation."""
        page = await self._find_tag_page(belonging)
        return self._container(page.get("properties", {}))

    async def set_relation(self, belonging: TagId, container: PageRef | None) -> None:
        """Replace a belonging's container relation. Setting is idempotent."""
        try:
            page = await self._find_tag_page(belonging)
        except ContentLookupError as e:
            raise MutationFailure(str(e)) from e

        relation = [] if container is None else [{"id": str(container)}]
        try:
            await self._request(
                "PATCH",
                f"/v1/pages/{page['id']}",
                {"properties": {self._container_property: {"relation": relation}}},
            )
        except NotionError as e:
            raise MutationFailure(f"Updating {belonging} failed: {e}") from e
        logger.debug("Set container of %s to %s", belonging, container)

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

