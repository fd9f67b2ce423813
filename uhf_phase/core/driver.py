# uhf_phase/core/driver.py

"""Loops that feed the sampler and the router from an event source."""

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, Optional, Union

from uhf_phase.core.phase import BatchPhaseSampler, PhaseCycleResult
from uhf_phase.core.router import MatchCounters, StreamEventRouter
from uhf_phase.source.base import BaseEventSource, SubscriptionHandle

DEFAULT_CYCLE_TIMEOUT_MS = 800

ResultCallback = Callable[[PhaseCycleResult], Union[None, Awaitable[None]]]

logger = logging.getLogger(__name__)


class PhaseCycleDriver:
    """
    Repeatedly asks the source for a batch and runs the sampler over it.

    Source failures are not retried; they propagate to the caller and end
    the run.
    """

    def __init__(self, source: BaseEventSource, sampler: BatchPhaseSampler,
                 cycle_timeout_ms: int = DEFAULT_CYCLE_TIMEOUT_MS):
        if cycle_timeout_ms <= 0:
            raise ValueError("cycle_timeout_ms must be positive")
        self._source = source
        self._sampler = sampler
        self._cycle_timeout_ms = cycle_timeout_ms
        self._cycles_run = 0

        if not source.per_antenna_records:
            logger.warning("Source merges antennas into single records; "
                           "per-antenna phase series may stay empty.")

    @property
    def cycles_run(self) -> int:
        return self._cycles_run

    async def run_cycle(self) -> PhaseCycleResult:
        """Reads one batch and returns its phase deltas."""
        batch = await self._source.get_batch(self._cycle_timeout_ms)
        result = self._sampler.sample(batch)
        self._cycles_run += 1
        logger.debug(f"Cycle {self._cycles_run}: {result.total_reads} tags found, {result.paired_count} deltas")
        return result

    async def run(self, max_cycles: Optional[int] = None, on_result: Optional[ResultCallback] = None,
                  stop_event: Optional[asyncio.Event] = None) -> int:
        """
        Runs cycles until `max_cycles` is reached or `stop_event` is set.

        Returns:
            The number of cycles completed by this call.
        """
        completed = 0
        logger.info(f"Phase difference for tag {self._sampler.target} "
                    f"(antennas {self._sampler.antennas[0]}/{self._sampler.antennas[1]})")
        while max_cycles is None or completed < max_cycles:
            if stop_event is not None and stop_event.is_set():
                logger.info("Stop requested, ending phase cycles.")
                break
            result = await self.run_cycle()
            completed += 1
            if on_result is not None:
                outcome = on_result(result)
                if inspect.isawaitable(outcome):
                    await outcome
        return completed


async def run_filtered_session(source: BaseEventSource, router: StreamEventRouter, duration: float,
                               stop_event: Optional[asyncio.Event] = None) -> MatchCounters:
    """
    Runs one background read session and returns the final counters.

    The router's callbacks are subscribed to the source for `duration`
    seconds (or until `stop_event` is set). Subscription failures propagate;
    the router is stopped before they do.
    """
    handle: Optional[SubscriptionHandle] = None
    await router.start()
    try:
        handle = await source.subscribe(router.event_callback, router.exception_callback)
        if stop_event is None:
            await asyncio.sleep(duration)
        else:
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=duration)
                logger.info("Stop requested, ending background session early.")
            except asyncio.TimeoutError:
                pass
        await source.unsubscribe(handle)
        handle = None
    finally:
        if handle is not None:
            # Session aborted; make sure the source stops calling us.
            try:
                await source.unsubscribe(handle)
            except Exception as e:
                logger.error(f"Failed to remove subscription {handle.id} during abort: {e}")
        await router.stop()

    counters = router.counters
    logger.info(f"Matching tags: {counters.matched}")
    logger.info(f"Non-matching tags: {counters.non_matched}")
    return counters
