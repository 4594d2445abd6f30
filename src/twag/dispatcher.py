"""Mutation dispatcher: turns intents into content-system writes."""

from __future__ import annotations

import asyncio
import logging

from twag.adapters.base import AsyncContentSystem
from twag.errors import ContentLookupError, MutationFailure
from twag.types import Acknowledgment, MutationIntent, RevertContainer

logger = logging.getLogger(__name__)


class MutationDispatcher:
    """Applies mutation intents against the content system.

    Intents are set-relation writes, so applying one twice has the same
    effect as applying it once. Nothing here touches interaction state.
    """

    def __init__(self, content: AsyncContentSystem) -> None:
        self._content = content
        self._background_tasks: set[asyncio.Task[None]] = set()

    async def apply(self, intent: MutationIntent) -> None:
        """Write the intent's relation. Raises MutationFailure."""
        try:
            await self._content.set_relation(intent.belonging, intent.container)
        except ContentLookupError as e:
            raise MutationFailure(str(e)) from e
        logger.info(
            "Applied %s",
            type(intent).__name__,
            extra={
                "belonging": str(intent.belonging),
                "container": str(intent.container),
            },
        )

    async def dispatch(self, intent: MutationIntent, *, timeout_ms: int) -> Acknowledgment:
        """Apply an intent, waiting at most ``timeout_ms`` for the outcome.

        On timeout the write keeps running in the background and the
        caller gets DELAYED. Failures come back as FAILED, never raised.
        """
        task = self._track(intent)
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout_ms / 1000)
        except TimeoutError:
            logger.warning(
                "%s still running after %d ms", type(intent).__name__, timeout_ms
            )
            return Acknowledgment.DELAYED
        except Exception:
            # Logged by _finished.
            return Acknowledgment.FAILED
        if isinstance(intent, RevertContainer):
            return Acknowledgment.UNDONE
        return Acknowledgment.MOVED

    def dispatch_in_background(self, intent: MutationIntent) -> None:
        """Fire and forget; failures are only logged."""
        self._track(intent)

    def _track(self, intent: MutationIntent) -> asyncio.Task[None]:
        task = asyncio.create_task(self.apply(intent))
        self._background_tasks.add(task)
        task.add_done_callback(self._finished)
        return task

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._background_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Mutation failed: %s", error)

    @property
    def pending(self) -> int:
        """Number of writes still in flight."""
        return len(self._background_tasks)

    async def drain(self) -> None:
        """Wait for in-flight writes to finish."""
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks, return_exceptions=True)
