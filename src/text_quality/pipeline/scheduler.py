"""Debounced dispatch of dirty paragraph indices."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)

Dispatch = Callable[[frozenset[int]], Awaitable[None]]


def running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class DebouncedScheduler:
    """A single pending timer plus an accumulating set of indices.

    Every `submit` adds indices and restarts the quiet window. When the window
    elapses the set is drained and cleared in one step, then handed to
    `dispatch`, which is called synchronously; the awaitable it returns runs
    as one task.

    Timers live on `loop` when one is given, otherwise on the loop running at
    submit time. Submissions from outside that loop are handed over with
    `call_soon_threadsafe` and applied in order.
    """

    def __init__(
        self,
        delay_seconds: float,
        dispatch: Dispatch,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
    ) -> None:
        self.delay_seconds = delay_seconds
        self._dispatch = dispatch
        self._loop = loop
        self._pending: set[int] = set()
        self._handle: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> frozenset[int]:
        return frozenset(self._pending)

    @property
    def scheduled(self) -> bool:
        return self._handle is not None

    def event_loop(self) -> asyncio.AbstractEventLoop:
        """The loop timers are scheduled on; raises RuntimeError if there is none."""

        loop = self._loop or running_loop()
        if loop is None:
            raise RuntimeError(
                "DebouncedScheduler needs a running event loop or an explicit `loop`"
            )
        return loop

    def submit(self, indices: Iterable[int], *, remap: dict[int, int] | None = None) -> None:
        """Queue `indices`, first moving already pending ones through `remap`.

        Pending indices missing from `remap` are dropped; the caller is
        expected to resubmit whatever is still dirty at its new position.
        """

        batch = frozenset(indices)
        if not batch and remap is None:
            return
        loop = self.event_loop()
        if running_loop() is loop:
            self._arm(batch, remap)
        else:
            loop.call_soon_threadsafe(self._arm, batch, remap)

    def cancel(self) -> None:
        """Drop the pending timer and indices; in-flight dispatches keep running."""

        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._pending:
            logger.debug("Dropping %d pending dirty indices", len(self._pending))
        self._pending.clear()

    async def flush(self) -> None:
        """Fire immediately if something is pending, then wait for all dispatches."""

        if self._handle is not None:
            self._handle.cancel()
            self._fire()
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _arm(self, batch: frozenset[int], remap: dict[int, int] | None) -> None:
        if remap is not None and self._pending:
            moved = {remap[index] for index in self._pending if index in remap}
            if len(moved) != len(self._pending):
                logger.debug(
                    "Dropped %d pending indices with no new position",
                    len(self._pending) - len(moved),
                )
            self._pending = moved
        self._pending.update(batch)
        if not self._pending:
            self.cancel()
            return
        if not batch and self._handle is not None:
            return
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self.event_loop().call_later(self.delay_seconds, self._fire)

    def _fire(self) -> None:
        self._handle = None
        indices = frozenset(self._pending)
        self._pending.clear()
        if not indices:
            return
        # dispatch runs synchronously so it can register state before the task starts
        task = asyncio.get_running_loop().create_task(_await(self._dispatch(indices)))
        self._tasks.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Debounced rescoring failed", exc_info=task.exception())


async def _await(awaitable: Awaitable[None]) -> None:
    await awaitable
