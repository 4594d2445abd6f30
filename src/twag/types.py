"""Core types for tap resolution."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TypeAlias

from twag.ids import PageRef, TagId

# Unix timestamp in milliseconds
Timestamp: TypeAlias = int

# Duration type alias
Duration: TypeAlias = str | int  # "30s", "2m" or milliseconds


class TagKind(enum.Enum):
    """What a tag points at, as classified by the content system."""

    BELONGING = "belonging"
    CONTAINER = "container"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class PageInfo:
    """What the content system knows about a tag's page."""

    page: PageRef
    url: str
    kind: TagKind = TagKind.UNKNOWN


@dataclass(frozen=True, slots=True)
class TagCacheEntry:
    """Derived, disposable tag -> target URL record. Never authoritative."""

    id: TagId
    target_url: str
    last_accessed: Timestamp | None = None
    access_count: int = 0
    last_seen_tap_count: int | None = None


# -----------------------------------------------------------------------------
# Interaction state
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Idle:
    """No pending interaction."""


@dataclass(frozen=True, slots=True)
class PendingContainer:
    """A belonging was tapped; waiting for a container tap."""

    belonging: TagId
    started_at: Timestamp
    expires_at: Timestamp
    container_hint: TagId | None = None


@dataclass(frozen=True, slots=True)
class AwaitingUndo:
    """A move was committed; tapping the same container again undoes it."""

    belonging: TagId
    previous_container: PageRef | None
    new_container: PageRef
    container_tag: TagId
    committed_at: Timestamp
    expires_at: Timestamp


InteractionState: TypeAlias = Idle | PendingContainer | AwaitingUndo

IDLE = Idle()


# -----------------------------------------------------------------------------
# Mutation intents
# -----------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SetContainer:
    """Put ``belonging`` inside ``container``."""

    belonging: TagId
    container: PageRef


@dataclass(frozen=True, slots=True)
class RevertContainer:
    """Restore ``belonging`` to ``container``; ``None`` clears the relation."""

    belonging: TagId
    container: PageRef | None


MutationIntent: TypeAlias = SetContainer | RevertContainer


@dataclass(frozen=True, slots=True)
class TapEvent:
    """A validated, fresh tap as seen by the state machine.

    ``page`` is the tapped tag's page when it classified as a container.
    ``current_container`` is the pending belonging's container before the
    move, looked up by the caller only when a move is about to commit.
    """

    tag: TagId
    kind: TagKind
    now: Timestamp
    page: PageRef | None = None
    current_container: PageRef | None = None


# -----------------------------------------------------------------------------
# Resolution outcome
# -----------------------------------------------------------------------------


class Action(enum.Enum):
    """What the HTTP layer should do with a tap."""

    REDIRECT = "redirect"
    ACKNOWLEDGE = "acknowledge"
    CREATE = "create"


class Acknowledgment(enum.Enum):
    """Outcome shown to the user after a move or undo."""

    MOVED = "moved"
    UNDONE = "undone"
    FAILED = "failed"
    DELAYED = "delayed"


class ReplayVerdict(enum.Enum):
    """Classification of a tap counter against the last one seen."""

    FRESH = "fresh"
    NO_COUNTER = "no_counter"
    STALE = "stale"


@dataclass(frozen=True, slots=True)
class Resolution:
    """Result of resolving one tap."""

    action: Action
    tag: TagId | None
    target_url: str | None = None
    counter: int | None = None
    verdict: ReplayVerdict | None = None
    intent: MutationIntent | None = None
    acknowledgment: Acknowledgment | None = None
    message: str | None = None
