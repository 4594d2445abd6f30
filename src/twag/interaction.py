"""Multi-tap move/undo state machine.

``transition(state, event, window_ms)`` is a pure function: the same
inputs always give the same ``(next_state, intent)``. Expiry is checked
against ``event.now`` on every call; there are no timers.

    Idle --belonging B--> PendingContainer(B)
    PendingContainer(B) --container C--> AwaitingUndo(B, C)   emits SetContainer(B, C)
    AwaitingUndo(B, C) --container C--> Idle                  emits RevertContainer(B, prev)
"""

from __future__ import annotations

from dataclasses import dataclass

from twag.types import (
    IDLE,
    AwaitingUndo,
    Idle,
    InteractionState,
    MutationIntent,
    PendingContainer,
    RevertContainer,
    SetContainer,
    TagKind,
    TapEvent,
    Timestamp,
)

DEFAULT_WINDOW_MS = 120_000


@dataclass(frozen=True, slots=True)
class Transition:
    """Next state plus at most one mutation intent."""

    state: InteractionState
    intent: MutationIntent | None = None


def is_expired(state: InteractionState, now: Timestamp) -> bool:
    """True when a non-idle state is at or past its expiry."""
    if isinstance(state, (PendingContainer, AwaitingUndo)):
        return state.expires_at <= now
    return False


def live_state(state: InteractionState | None, now: Timestamp) -> InteractionState:
    """The state as it should be seen at ``now``: missing or expired reads as Idle."""
    if state is None or is_expired(state, now):
        return IDLE
    return state


def transition(
    state: InteractionState | None,
    event: TapEvent,
    window_ms: int = DEFAULT_WINDOW_MS,
) -> Transition:
    """Apply one tap to the interaction state."""
    current = live_state(state, event.now)
    kind = event.kind

    # A container we could not resolve to a page is treated as unknown.
    if kind is TagKind.CONTAINER and event.page is None:
        kind = TagKind.UNKNOWN

    if kind is TagKind.BELONGING:
        hint = current.container_tag if isinstance(current, AwaitingUndo) else None
        return Transition(
            PendingContainer(
                belonging=event.tag,
                started_at=event.now,
                expires_at=event.now + window_ms,
                container_hint=hint,
            )
        )

    if kind is TagKind.UNKNOWN or event.page is None:
        return Transition(IDLE)
    page = event.page

    if isinstance(current, PendingContainer):
        return Transition(
            AwaitingUndo(
                belonging=current.belonging,
                previous_container=event.current_container,
                new_container=page,
                container_tag=event.tag,
                committed_at=event.now,
                expires_at=event.now + window_ms,
            ),
            SetContainer(belonging=current.belonging, container=page),
        )

    if isinstance(current, AwaitingUndo) and page == current.new_container:
        return Transition(
            IDLE,
            RevertContainer(
                belonging=current.belonging, container=current.previous_container
            ),
        )

    # Idle, or a different container while awaiting undo.
    return Transition(IDLE)


def needs_current_container(
    state: InteractionState | None, kind: TagKind, now: Timestamp
) -> bool:
    """Whether the caller must look up the pending belonging's container first."""
    return kind is TagKind.CONTAINER and isinstance(
        live_state(state, now), PendingContainer
    )


def needs_page(state: InteractionState | None, kind: TagKind, now: Timestamp) -> bool:
    """Whether the tapped tag must be resolved to a page for this transition."""
    return kind is TagKind.CONTAINER and not isinstance(live_state(state, now), Idle)
