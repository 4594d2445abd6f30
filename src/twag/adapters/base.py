"""Collaborator protocols the engine depends on."""

from typing import Protocol, runtime_checkable

from twag.ids import PageRef, TagId
from twag.types import InteractionState, PageInfo, TagCacheEntry, TagKind


@runtime_checkable
class AsyncCacheStore(Protocol):
    """Tag -> target URL cache. Single-key operations only."""

    async def get(self, tag: TagId) -> TagCacheEntry | None:
        """Get the cache entry for a tag."""
        ...

    async def upsert(self, entry: TagCacheEntry) -> None:
        """Create or replace the cache entry for ``entry.id``."""
        ...

    async def disconnect(self) -> None:
        """Disconnect from the storage backend."""
        ...


@runtime_checkable
class AsyncSessionStore(Protocol):
    """Ephemeral interaction state keyed by session token."""

    async def get(self, session: str) -> InteractionState | None:
        """Get the stored state, or None when there is none."""
        ...

    async def compare_and_swap(
        self,
        session: str,
        expected: InteractionState | None,
        new: InteractionState | None,
    ) -> bool:
        """Replace the state only if it still equals ``expected``.

        ``None`` on either side means "no state". Returns False on conflict.
        """
        ...

    async def delete(self, session: str) -> None:
        """Forget a session."""
        ...

    async def disconnect(self) -> None:
        """Disconnect from the storage backend."""
        ...


@runtime_checkable
class AsyncContentSystem(Protocol):
    """The authoritative store of items and their containment."""

    async def resolve_page(self, ref: TagId | PageRef) -> PageInfo:
        """Look up a page. Raises ContentLookupError (PageNotFound if absent)."""
        ...

    async def classify(self, tag: TagId) -> TagKind:
        """Classify a tag. Raises ContentLookupError."""
        ...

    async def get_container(self, belonging: TagId) -> PageRef | None:
        """Current container of a belonging. Raises ContentLookupError."""
        ...

    async def set_relation(self, belonging: TagId, container: PageRef | None) -> None:
        """Set (or with None, clear) a belonging's container. Raises MutationFailure."""
        ...

    async def disconnect(self) -> None:
        """Close any underlying connection."""
        ...
