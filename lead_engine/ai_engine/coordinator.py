"""
lead_engine/ai_engine/coordinator.py — Latest-request-wins for per-lead AI calls.

The dashboard re-triggers scoring on (debounced) input changes, so several
enrichment calls for one lead can be in flight at once. Only the most recently
issued one may be applied: issuing a newer request cancels the older task and
the older caller receives None.
"""

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LatestRequestCoordinator:
    """
    Tracks one in-flight task and the newest generation per key.

    Generations come from one counter shared by all keys, so a number is never
    reused and a key's entry can be dropped as soon as its newest request ends.
    """

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._generation: dict[Hashable, int] = {}
        self._inflight: dict[Hashable, asyncio.Task] = {}

    def in_flight(self, key: Hashable) -> bool:
        task = self._inflight.get(key)
        return task is not None and not task.done()

    @property
    def tracked_keys(self) -> int:
        return len(self._generation)

    async def run(
        self,
        key: Hashable,
        factory: Callable[[], Awaitable[T]],
        stale: Any = None,
    ) -> Optional[T]:
        """
        Run factory() as the newest request for `key`.

        Returns the result, or `stale` (None by default) if a newer request for
        the same key was issued before this one finished. Cancellation of the
        caller itself propagates and cancels the underlying task.
        """
        generation = next(self._counter)
        self._generation[key] = generation

        previous = self._inflight.get(key)
        if previous is not None and not previous.done():
            logger.debug("Superseding in-flight AI request for %s.", key)
            previous.cancel()

        task = asyncio.ensure_future(factory())
        self._inflight[key] = task
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            if self._inflight.get(key) is task:
                del self._inflight[key]
            latest = self._generation.get(key) == generation
            if latest:
                del self._generation[key]

        if task.cancelled() or not latest:
            logger.debug("Discarding stale AI response for %s (generation %d).", key, generation)
            return stale
        return task.result()
