from typing import Awaitable, Callable, Optional, TypeVar
import asyncio
import logging

logger = logging.getLogger(__name__)

R = TypeVar("R")


def _retrieve_outcome(link: asyncio.Future) -> None:
    # Marks the exception retrieved when the caller stopped waiting for it.
    if not link.cancelled() and link.exception() is not None:
        logger.debug("Queued simulation failed: %r", link.exception())


class SimulationQueue:
    """Runs simulation tasks one at a time, in submission order.

    Each enqueued task is chained after the current tail. The previous task's
    outcome is waited for but never inspected, so a failed simulation cannot
    poison the ones queued behind it. The caller of ``enqueue`` still receives
    its own task's result or exception. Cancelling a waiting caller only stops
    that caller from waiting; the queued task still runs in its turn.

    There is no priority, cancellation or timeout: a task that never finishes
    stalls every task queued after it.
    """

    def __init__(self):
        self._tail: Optional[asyncio.Future] = None
        self.submitted = 0

    def _previous(self, loop: asyncio.AbstractEventLoop) -> Optional[asyncio.Future]:
        previous = self._tail
        if previous is None or previous.done():
            return None
        if previous.get_loop() is not loop:
            # A tail from another event loop can never be awaited from this one.
            logger.debug("Discarding simulation queue tail bound to a different event loop")
            return None
        return previous

    async def enqueue(self, task: Callable[[], Awaitable[R]]) -> R:
        """Run ``task`` once every previously enqueued task has finished.

        Args:
            task: Zero-argument callable returning an awaitable

        Returns:
            Whatever the awaited task returns
        """
        loop = asyncio.get_running_loop()
        previous = self._previous(loop)
        self.submitted += 1
        position = self.submitted

        async def run_after_previous():
            if previous is not None:
                # asyncio.wait never raises the previous task's exception
                await asyncio.wait({previous})
            logger.debug("Starting queued simulation #%d", position)
            return await task()

        self._tail = loop.create_task(run_after_previous())
        self._tail.add_done_callback(_retrieve_outcome)
        # The chain link must outlive a cancelled caller, or the next task
        # would start while this one is still running.
        return await asyncio.shield(self._tail)


# Lazy queue: Don't instantiate at import time
_queue: Optional[SimulationQueue] = None


def get_simulation_queue() -> SimulationQueue:
    """Get the process-wide simulation queue."""
    global _queue
    if _queue is None:
        _queue = SimulationQueue()
    return _queue
