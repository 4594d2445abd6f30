"""twag - NFC/QR tag redirects with tap-to-move belongings."""

from contextlib import suppress

# Adapters
from twag.adapters import (
    AsyncCacheStore,
    AsyncContentSystem,
    AsyncMemoryCacheStore,
    AsyncMemoryContentSystem,
    AsyncMemorySessionStore,
    AsyncSessionStore,
    AsyncSqliteCacheStore,
)
from twag.dispatcher import MutationDispatcher

# Duration parsing
from twag.duration import parse_duration

# Engine
from twag.engine import TapEngine
from twag.errors import (
    ContentLookupError,
    InvalidPageRef,
    InvalidTagId,
    MalformedTap,
    MutationFailure,
    PageNotFound,
    TwagError,
)
from twag.ids import PageRef, TagId
from twag.interaction import transition
from twag.tap import TagDescriptor, parse_tap

# Core types
from twag.types import (
    Acknowledgment,
    Action,
    AwaitingUndo,
    Duration,
    Idle,
    PageInfo,
    PendingContainer,
    ReplayVerdict,
    Resolution,
    RevertContainer,
    SetContainer,
    TagCacheEntry,
    TagKind,
    TapEvent,
)

# Optional adapter imports - only available when dependencies are installed
with suppress(ImportError):
    from twag.adapters import AsyncRedisCacheStore, AsyncRedisSessionStore

with suppress(ImportError):
    from twag.adapters import AsyncNotionContentSystem

__version__ = "0.1.0"

__all__ = [
    "Acknowledgment",
    "Action",
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
    "AwaitingUndo",
    "ContentLookupError",
    "Duration",
    "Idle",
    "InvalidPageRef",
    "InvalidTagId",
    "MalformedTap",
    "MutationDispatcher",
    "MutationFailure",
    "PageInfo",
    "PageNotFound",
    "PageRef",
    "PendingContainer",
    "ReplayVerdict",
    "Resolution",
    "RevertContainer",
    "SetContainer",
    "TagCacheEntry",
    "TagDescriptor",
    "TagId",
    "TagKind",
    "TapEngine",
    "TapEvent",
    "TwagError",
    "parse_duration",
    "parse_tap",
    "transition",
]
