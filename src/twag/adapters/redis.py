"""Redis cache and session stores."""

from __future__ import annotations

import json
from typing import Any

from twag.ids import PageRef, TagId
from twag.types import (
    AwaitingUndo,
    Idle,
    InteractionState,
    PendingContainer,
    TagCacheEntry,
)

# KEYS[1] = session key; ARGV = expected, new, expire-at ms.
# Empty strings stand for "no state".
_COMPARE_AND_SWAP = """
local current = redis.call('GET', KEYS[1])
if current == false then current = '' end
if current ~= ARGV[1] then return 0 end
if ARGV[2] == '' then
  redis.call('DEL', KEYS[1])
else
  redis.call('SET', KEYS[1], ARGV[2], 'PXAT', ARGV[3])
end
return 1
"""


def _serialize_entry(entry: TagCacheEntry) -> str:
    """Serialize a cache entry to JSON."""
    return json.dumps(
        {
            "id": str(entry.id),
            "target_url": entry.target_url,
            "last_accessed": entry.last_accessed,
            "access_count": entry.access_count,
            "last_seen_tap_count": entry.last_seen_tap_count,
        }
    )


def _deserialize_entry(data: bytes | str) -> TagCacheEntry:
    """Deserialize JSON to a cache entry."""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    obj = json.loads(data)
    return TagCacheEntry(
        id=TagId(obj["id"]),
        target_url=obj["target_url"],
        last_accessed=obj["last_accessed"],
        access_count=obj["access_count"],
        last_seen_tap_count=obj["last_seen_tap_count"],
    )


def _optional(value: object) -> str | None:
    return None if value is None else str(value)


def serialize_state(state: InteractionState | None) -> str:
    """Serialize interaction state to canonical JSON ('' for no state).

    Output is deterministic so the compare-and-swap script can compare
    encoded values byte for byte.
    """
    if state is None:
        return ""
    if isinstance(state, Idle):
        payload: dict[str, Any] = {"type": "idle"}
    elif isinstance(state, PendingContainer):
        payload = {
            "type": "pending_container",
            "belonging": str(state.belonging),
            "container_hint": _optional(state.container_hint),
            "started_at": state.started_at,
            "expires_at": state.expires_at,
        }
    else:
        payload = {
            "type": "awaiting_undo",
            "belonging": str(state.belonging),
            "previous_container": _optional(state.previous_container),
            "new_container": str(state.new_container),
            "container_tag": str(state.container_tag),
            "committed_at": state.committed_at,
            "expires_at": state.expires_at,
        }
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def deserialize_state(data: bytes | str | None) -> InteractionState | None:
    """Inverse of serialize_state."""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    if not data:
        return None
    obj = json.loads(data)
    kind = obj["type"]
    if kind == "idle":
        return Idle()
    if kind == "pending_container":
        hint = obj["container_hint"]
        return PendingContainer(
            belonging=TagId(obj["belonging"]),
            started_at=obj["started_at"],
            expires_at=obj["expires_at"],
            container_hint=TagId(hint) if hint else None,
        )
    if kind == "awaiting_undo":
        previous = obj["previous_container"]
        return AwaitingUndo(
            belonging=TagId(obj["belonging"]),
            previous_container=PageRef(previous) if previous else None,
            new_container=PageRef(obj["new_container"]),
            container_tag=TagId(obj["container_tag"]),
            committed_at=obj["committed_at"],
            expires_at=obj["expires_at"],
        )
    raise ValueError(f"Unknown interaction state type: {kind!r}")


def _expires_at(state: InteractionState) -> int | None:
    if isinstance(state, (PendingContainer, AwaitingUndo)):
        return state.expires_at
    return None


class AsyncRedisCacheStore:
    """Async Redis tag cache."""

    def __init__(
        self,
        client: Any,  # redis.asyncio.Redis
        *,
        prefix: str = "twag",
    ) -> None:
        self._client = client
        self._prefix = prefix

    def _tag_key(self, tag: TagId) -> str:
        """Generate full Redis key for a tag's cache entry."""
        return f"{self._prefix}:tag:{tag}"

    async def get(self, tag: TagId) -> TagCacheEntry | None:
        """Get the cache entry for a tag."""
        data = await self._client.get(self._tag_key(tag))
        if data is None:
            return None
        return _deserialize_entry(data)

    async def upsert(self, entry: TagCacheEntry) -> None:
        """Create or replace the cache entry (no expiry)."""
        await self._client.set(self._tag_key(entry.id), _serialize_entry(entry))

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        await self._client.aclose()


class AsyncRedisSessionStore:
    """Async Redis session store with atomic compare-and-swap.

    Keys expire with the state they hold, so abandoned sessions clean
    themselves up. Idle is stored as no key at all.
    """

    def __init__(
        self,
        client: Any,  # redis.asyncio.Redis
        *,
        prefix: str = "twag",
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._cas = client.register_script(_COMPARE_AND_SWAP)

    def _session_key(self, session: str) -> str:
        """Generate full Redis key for a session's state."""
        return f"{self._prefix}:session:{session}"

    async def get(self, session: str) -> InteractionState | None:
        """Get the stored state, or None when there is none."""
        data = await self._client.get(self._session_key(session))
        return deserialize_state(data)

    async def compare_and_swap(
        self,
        session: str,
        expected: InteractionState | None,
        new: InteractionState | None,
    ) -> bool:
        """Replace the state only if it still equals ``expected``."""
        expected = None if isinstance(expected, Idle) else expected
        new = None if isinstance(new, Idle) else new
        result = await self._cas(
            keys=[self._session_key(session)],
            args=[
                serialize_state(expected),
                serialize_state(new),
                _expires_at(new) if new is not None else 0,
            ],
        )
        return bool(result)

    async def delete(self, session: str) -> None:
        """Forget a session."""
        await self._client.delete(self._session_key(session))

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        await self._client.aclose()
