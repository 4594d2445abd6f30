"""Collaborator adapters: cache stores, session stores, content systems."""

from contextlib import suppress

from twag.adapters.base import (
    AsyncCacheStore,
    AsyncContentSystem,
    AsyncSessionStore,
)
from twag.adapters.memory import (
    AsyncMemoryCacheStore,
    AsyncMemoryContentSystem,
    AsyncMemorySessionStore,
)
from twag.adapters.sqlite import AsyncSqliteCacheStore

# Optional adapters - only available when dependencies are installed
with suppress(ImportError):
    from twag.adapters.redis import AsyncRedisCacheStore, AsyncRedisSessionStore

with suppress(ImportError):
    from twag.adapters.notion import AsyncNotionContentSystem

__all__ = [
    "AsyncCacheStore",
    "AsyncContentSystem",
    "AsyncMemoryCacheStore",
    "AsyncMemoryContentSystem",
    "AsyncMemorySessionStore",
    "AsyncNotionContentSystem",
    "AsyncRedisCacheStore",
    "AsyncRedisSessionStore",
    "AsyncSessionStore",
    "AsyncSqliteCacheStore",
]
