"""Tap engine: from a raw slug to a redirect, acknowledgment or create page."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TypeVar
from urllib.parse import urlencode

from twag import replay
from twag.adapters.base import AsyncCacheStore, AsyncContentSystem, AsyncSessionStore
from twag.dispatcher import MutationDispatcher
from twag.duration import format_duration, parse_duration
from twag.errors import ContentLookupError, MalformedTap, PageNotFound
from twag.ids import PageRef, TagId
from twag.interaction import (
    DEFAULT_WINDOW_MS,
    needs_current_container,
    needs_page,
    transition,
)
from twag.locks import KeyedLock
from twag.tap import parse_tap
from twag.types import (
    Acknowledgment,
    Action,
    Duration,
    Idle,
    MutationIntent,
    PageInfo,
    ReplayVerdict,
    Resolution,
    RevertContainer,
    TagCacheEntry,
    TagKind,
    TapEvent,
    Timestamp,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

CREATE_PATH = "/tag/create"
CAS_ATTEMPTS = 3


def _now_ms() -> Timestamp:
    return int(time.time() * 1000)


def create_url(tag: TagId, counter: int | None = None, *, path: str = CREATE_PATH) -> str:
    """Where an unknown tag is sent to be set up."""
    params = {"id": str(tag)}
    if counter is not None:
        params["tap_count"] = str(counter)
    return f"{path}?{urlencode(params)}"


class TapEngine:
    """Resolves taps and drives the move/undo interaction.

    The redirect never waits on anything but the cache, a bounded content
    lookup, and (only when a move or undo commits) a bounded write.
    """

    def __init__(
        self,
        *,
        cache: AsyncCacheStore,
        sessions: AsyncSessionStore,
        content: AsyncContentSystem,
        dispatcher: MutationDispatcher | None = None,
        window: Duration = DEFAULT_WINDOW_MS,
        lookup_timeout: Duration = "3s",
        dispatch_timeout: Duration = "2s",
        create_path: str = CREATE_PATH,
        clock: Callable[[], Timestamp] = _now_ms,
    ) -> None:
        self._cache = cache
        self._sessions = sessions
        self._content = content
        self._dispatcher = dispatcher or MutationDispatcher(content)
        self._window_ms = parse_duration(window)
        self._lookup_timeout_ms = parse_duration(lookup_timeout)
        self._dispatch_timeout_ms = parse_duration(dispatch_timeout)
        self._create_path = create_path
        self._clock = clock
        self._tag_locks = KeyedLock()
        self._session_locks = KeyedLock()

    @property
    def window_ms(self) -> int:
        return self._window_ms

    @property
    def dispatcher(self) -> MutationDispatcher:
        return self._dispatcher

    async def resolve(
        self,
        slug: str,
        *,
        session: str | None = None,
        now: Timestamp | None = None,
    ) -> Resolution:
        """Resolve one tap.

        Raises MalformedTap only when no tag id can be recovered from
        ``slug``. A broken counter suffix still redirects, without
        touching interaction state.
        """
        now = self._clock() if now is None else now
        try:
            descriptor = parse_tap(slug)
        except MalformedTap as e:
            if e.tag is None:
                raise
            logger.info("Ignoring bad counter suffix: %s", e)
            target, _, _ = await self._locate(e.tag, None, now)
            return self._redirect_or_create(e.tag, None, None, target)

        tag, counter = descriptor.id, descriptor.counter
        logger.debug("Tap %s counter=%s session=%s", tag, counter, session)

        target, verdict, info = await self._locate(tag, counter, now)
        if target is None:
            return self._redirect_or_create(tag, counter, verdict, None)

        if verdict is ReplayVerdict.STALE:
            logger.info("Stale tap on %s (counter %s); redirecting only", tag, counter)
        if session is None or not replay.allows_mutation(verdict):
            return self._redirect_or_create(tag, counter, verdict, target)

        intent = await self._interact(session, tag, info, now)
        if intent is None:
            return self._redirect_or_create(tag, counter, verdict, target)

        if self._dispatch_timeout_ms == 0:
            # Detached: answer at once, the write lands later.
            self._dispatcher.dispatch_in_background(intent)
            acknowledgment = Acknowledgment.DELAYED
        else:
            acknowledgment = await self._dispatcher.dispatch(
                intent, timeout_ms=self._dispatch_timeout_ms
            )
        return Resolution(
            action=Action.ACKNOWLEDGE,
            tag=tag,
            target_url=target,
            counter=counter,
            verdict=verdict,
            intent=intent,
            acknowledgment=acknowledgment,
            message=self._message(intent, acknowledgment),
        )

    async def register(
        self,
        tag: TagId,
        target_url: str,
        *,
        tap_count: int | None = None,
        now: Timestamp | None = None,
    ) -> TagCacheEntry:
        """Create (or replace) a tag's cache entry from the creation form.

        The tap that led here counts as the first access, and its counter
        becomes the replay baseline.
        """
        now = self._clock() if now is None else now
        entry = TagCacheEntry(
            id=tag,
            target_url=target_url,
            last_accessed=now,
            access_count=tap_count or 1,
            last_seen_tap_count=tap_count,
        )
        async with self._tag_locks.hold(str(tag)):
            await self._cache.upsert(entry)
        logger.info("Registered %s -> %s", tag, target_url)
        return entry

    # -------------------------------------------------------------------------
    # Cache and replay guard
    # -------------------------------------------------------------------------

    async def _locate(
        self, tag: TagId, counter: int | None, now: Timestamp
    ) -> tuple[str | None, ReplayVerdict, PageInfo | None]:
        """Find the redirect target and record the access.

        Holds the tag's lock so ``last_seen_tap_count`` is read and written
        as one step.
        """
        async with self._tag_locks.hold(str(tag)):
            entry = await self._cache_get(tag)
            last_seen = entry.last_seen_tap_count if entry else None
            verdict = replay.check(last_seen, counter)

            info: PageInfo | None = None
            if entry is not None:
                target = entry.target_url
            else:
                # First resolution: the cache entry is created lazily.
                info = await self._lookup(
                    self._content.resolve_page(tag), f"resolve {tag}"
                )
                if info is None:
                    return None, verdict, None
                target = info.url

            await self._cache_put(
                TagCacheEntry(
                    id=tag,
                    target_url=target,
                    last_accessed=now,
                    access_count=(entry.access_count if entry else 0) + 1,
                    last_seen_tap_count=replay.advance(last_seen, counter),
                )
            )
            return target, verdict, info

    async def _cache_get(self, tag: TagId) -> TagCacheEntry | None:
        try:
            return await self._cache.get(tag)
        except Exception:
            logger.warning("Cache read for %s failed", tag, exc_info=True)
            return None

    async def _cache_put(self, entry: TagCacheEntry) -> None:
        try:
            await self._cache.upsert(entry)
        except Exception:
            logger.warning("Cache write for %s failed", entry.id, exc_info=True)

    # -------------------------------------------------------------------------
    # Interaction
    # -------------------------------------------------------------------------

    async def _lookup(self, call: Awaitable[T], what: str) -> T | None:
        """Await a content-system read; failures and timeouts become None."""
        try:
            return await asyncio.wait_for(call, self._lookup_timeout_ms / 1000)
        except PageNotFound:
            logger.info("Lookup %s: not found", what)
        except (ContentLookupError, TimeoutError) as e:
            logger.warning("Lookup %s degraded: %s", what, str(e) or type(e).__name__)
        return None

    async def _interact(
        self,
        session: str,
        tag: TagId,
        info: PageInfo | None,
        now: Timestamp,
    ) -> MutationIntent | None:
        """Advance the session's state for a fresh tap.

        The session lock serializes taps within this process; the store's
        compare-and-swap covers other processes.
        """
        async with self._session_locks.hold(session):
            kind = await self._classify(tag, info)
            page: PageRef | None = info.page if info else None
            pages_loaded = info is not None

            for _ in range(CAS_ATTEMPTS):
                try:
                    stored = await self._sessions.get(session)
                except Exception:
                    logger.warning("Session read for %s failed", session, exc_info=True)
                    return None

                if needs_page(stored, kind, now) and not pages_loaded:
                    resolved = await self._lookup(
                        self._content.resolve_page(tag), f"page of {tag}"
                    )
                    page = resolved.page if resolved else None
                    pages_loaded = True

                event_kind = kind
                current_container: PageRef | None = None
                if needs_current_container(stored, kind, now):
                    belonging = stored.belonging  # type: ignore[union-attr]
                    try:
                        current_container = await asyncio.wait_for(
                            self._content.get_container(belonging),
                            self._lookup_timeout_ms / 1000,
                        )
                    except (ContentLookupError, TimeoutError) as e:
                        logger.warning("Container of %s unknown: %s", belonging, e)
                        event_kind = TagKind.UNKNOWN

                event = TapEvent(
                    tag=tag,
                    kind=event_kind,
                    now=now,
                    page=page,
                    current_container=current_container,
                )
                result = transition(stored, event, self._window_ms)
                new_state = None if isinstance(result.state, Idle) else result.state
                logger.debug(
                    "Session %s: %s -> %s",
                    session,
                    type(stored).__name__ if stored else "Idle",
                    type(result.state).__name__,
                )
                if new_state == stored and result.intent is None:
                    return None
                try:
                    swapped = await self._sessions.compare_and_swap(
                        session, stored, new_state
                    )
                except Exception:
                    logger.warning("Session write for %s failed", session, exc_info=True)
                    return None
                if swapped:
                    return result.intent

            logger.warning("Session %s kept changing; treating tap as plain", session)
            return None

    async def _classify(self, tag: TagId, info: PageInfo | None) -> TagKind:
        if info is not None:
            return info.kind
        kind = await self._lookup(self._content.classify(tag), f"kind of {tag}")
        return kind or TagKind.UNKNOWN

    # -------------------------------------------------------------------------
    # Results
    # -------------------------------------------------------------------------

    def _redirect_or_create(
        self,
        tag: TagId,
        counter: int | None,
        verdict: ReplayVerdict | None,
        target: str | None,
    ) -> Resolution:
        if target is None:
            return Resolution(
                action=Action.CREATE,
                tag=tag,
                target_url=create_url(tag, counter, path=self._create_path),
                counter=counter,
                verdict=verdict,
            )
        return Resolution(
            action=Action.REDIRECT,
            tag=tag,
            target_url=target,
            counter=counter,
            verdict=verdict,
        )

    def _message(
        self,
        intent: MutationIntent,
        acknowledgment: Acknowledgment,
    ) -> str:
        belonging = intent.belonging
        if acknowledgment is Acknowledgment.DELAYED:
            return f"Update to {belonging} may be delayed."
        if acknowledgment is Acknowledgment.FAILED:
            return (
                f"Could not update {belonging}. "
                "Tap it, then the container, to try again."
            )
        if isinstance(intent, RevertContainer):
            return f"Undid the move of {belonging}."
        return (
            f"Moved {belonging}. Tap the same container again within "
            f"{format_duration(self._window_ms)} to undo."
        )

    async def close(self) -> None:
        """Finish in-flight writes and disconnect collaborators."""
        await self._dispatcher.drain()
        await self._cache.disconnect()
        await self._sessions.disconnect()
        await self._content.disconnect()
