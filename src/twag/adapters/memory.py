"""In-memory collaborators, for development and tests."""

import asyncio
from collections import OrderedDict

from twag.errors import MutationFailure, PageNotFound
from twag.ids import PageRef, TagId
from twag.types import InteractionState, PageInfo, TagCacheEntry, TagKind


class AsyncMemoryCacheStore:
    """Async in-memory tag cache with optional LRU eviction."""

    def __init__(self, max_items: int | None = None) -> None:
        self._entries: OrderedDict[TagId, TagCacheEntry] = OrderedDict()
        self._max_items = max_items
        self._lock = asyncio.Lock()

    async def get(self, tag: TagId) -> TagCacheEntry | None:
        """Get the cache entry for a tag."""
        async with self._lock:
            entry = self._entries.get(tag)
            if entry:
                self._entries.move_to_end(tag)  # LRU touch
            return entry

    async def upsert(self, entry: TagCacheEntry) -> None:
        """Create or replace the cache entry for ``entry.id``."""
        async with self._lock:
            self._entries[entry.id] = entry
            self._entries.move_to_end(entry.id)
            if self._max_items and len(self._entries) > self._max_items:
                self._entries.popitem(last=False)

    async def disconnect(self) -> None:
        """Disconnect from the storage backend (no-op for memory)."""
        pass


class AsyncMemorySessionStore:
    """Async in-memory session state with compare-and-swap.

    A single lock makes each call atomic. Sessions beyond ``max_items`` are
    evicted oldest-first, which at worst drops a pending interaction.
    """

    def __init__(self, max_items: int | None = 10_000) -> None:
        self._states: OrderedDict[str, InteractionState] = OrderedDict()
        self._max_items = max_items
        self._lock = asyncio.Lock()

    async def get(self, session: str) -> InteractionState | None:
        """Get the stored state, or None when there is none."""
        async with self._lock:
            return self._states.get(session)

    async def compare_and_swap(
        self,
        session: str,
        expected: InteractionState | None,
        new: InteractionState | None,
    ) -> bool:
        """Replace the state only if it still equals ``expected``."""
        async with self._lock:
            if self._states.get(session) != expected:
                return False
            if new is None:
                self._states.pop(session, None)
                return True
            self._states[session] = new
            self._states.move_to_end(session)
            if self._max_items and len(self._states) > self._max_items:
                self._states.popitem(last=False)
            return True

    async def delete(self, session: str) -> None:
        """Forget a session."""
        async with self._lock:
            self._states.pop(session, None)

    async def disconnect(self) -> None:
        """Disconnect from the storage backend (no-op for memory)."""
        pass


class AsyncMemoryContentSystem:
    """Async in-memory stand-in for the content system."""

    def __init__(self) -> None:
        self._by_tag: dict[TagId, PageInfo] = {}
        self._by_page: dict[PageRef, PageInfo] = {}
        self._containers: dict[PageRef, PageRef | None] = {}
        self._lock = asyncio.Lock()

    def add_page(
        self,
        info: PageInfo,
        *,
        tag: TagId | None = None,
        container: PageRef | None = None,
    ) -> None:
        """Register a page, optionally reachable by tag and inside a container."""
        self._by_page[info.page] = info
        if tag is not None:
            self._by_tag[tag] = info
        self._containers[info.page] = container

    async def resolve_page(self, ref: TagId | PageRef) -> PageInfo:
        """Look up a page by tag or page id."""
        index = self._by_tag if isinstance(ref, TagId) else self._by_page
        async with self._lock:
            info = index.get(ref)  # type: ignore[call-overload]
        if info is None:
            raise PageNotFound(f"No page for {ref}")
        return info

    async def classify(self, tag: TagId) -> TagKind:
        """Classify a tag by its page's kind."""
        info = await self.resolve_page(tag)
        return info.kind

    async def get_container(self, belonging: TagId) -> PageRef | None:
        """Current container of a belonging."""
        info = await self.resolve_page(belonging)
        async with self._lock:
            return self._containers.get(info.page)

    async def set_relation(self, belonging: TagId, container: PageRef | None) -> None:
        """Set or clear a belonging's container."""
        try:
            info = await self.resolve_page(belonging)
        except PageNotFound as e:
            raise MutationFailure(str(e)) from e
        async with self._lock:
            self._containers[info.page] = container

    async def disconnect(self) -> None:
        """Nothing to close."""
        pass
