"""
Mutation concurrency guard.

Single choke point for everything that touches the cart over the
network:
- at most one call in flight per cart; later calls queue behind it and
  build their request only after the previous response was applied
- identical load requests inside the dedupe window share one call
- is_mutating is exposed so the UI can disable controls
"""

import asyncio
from typing import Awaitable, Callable, Optional, TypeVar
import structlog

from exceptions import CartBusyError
from services.dedupe_cache import RequestDedupeCache, DEFAULT_WINDOW_SECONDS

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class MutationGuard:
    """
    Serializes cart calls and suppresses duplicate loads.

    Does not cancel an in-flight call; it only decides when the next
    one may start.
    """

    def __init__(
        self,
        dedupe_cache: Optional[RequestDedupeCache] = None,
        dedupe_window_seconds: float = DEFAULT_WINDOW_SECONDS
    ):
        self.dedupe_cache = dedupe_cache or RequestDedupeCache(dedupe_window_seconds)
        self._lock = asyncio.Lock()
        self._outstanding = 0

    @property
    def is_mutating(self) -> bool:
        """True while any admitted call (running or queued) is outstanding."""
        return self._outstanding > 0

    async def run_exclusive(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str = "cart_call"
    ) -> T:
        """
        Run operation once every earlier admitted call has finished.

        The operation builds its request inside the exclusive section, so
        it always sees the state left by the previous response. Admitting
        a mutation drops recorded loads: a later load must fetch again.
        """
        self.dedupe_cache.clear()
        return await self._run_locked(operation, label)

    async def _run_locked(self, operation: Callable[[], Awaitable[T]], label: str) -> T:
        self._outstanding += 1
        if self._lock.locked():
            logger.debug("cart_call_queued", label=label, outstanding=self._outstanding)
        try:
            async with self._lock:
                logger.debug("cart_call_started", label=label)
                return await operation()
        finally:
            self._outstanding -= 1

    async def try_run_exclusive(
        self,
        operation: Callable[[], Awaitable[T]],
        label: str = "cart_call"
    ) -> T:
        """
        Run operation only if nothing is outstanding.

        Raises:
            CartBusyError: If another call is in flight or queued
        """
        if self.is_mutating:
            logger.info("cart_call_rejected_busy", label=label)
            raise CartBusyError()
        return await self.run_exclusive(operation, label)

    async def load(self, signature: str, operation: Callable[[], Awaitable[T]]) -> T:
        """
        Run a load unless an identical one started inside the dedupe window.

        A suppressed duplicate awaits the original call's result instead of
        issuing a second request. Callers that apply the result to state
        must do so inside operation, so a duplicate never applies it twice.
        """
        existing = self.dedupe_cache.get(signature)
        if existing is not None:
            logger.info("duplicate_load_suppressed", signature=signature, finished=existing.done())
            return await asyncio.shield(existing)

        task = asyncio.ensure_future(self._run_locked(operation, label=signature))
        self.dedupe_cache.put(signature, task)
        task.add_done_callback(lambda t: self._forget_failed(signature, t))
        return await asyncio.shield(task)

    def _forget_failed(self, signature: str, task: asyncio.Future) -> None:
        """A failed load must not be replayed to a later caller."""
        if task.cancelled() or task.exception() is not None:
            if self.dedupe_cache.get(signature) is task:
                self.dedupe_cache.discard(signature)
