# uhf_phase/core/router.py

import asyncio
import concurrent.futures
import inspect
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Union

from uhf_phase.core.events import ReadException, TagReadEvent
from uhf_phase.core.status import SubscriptionStatus

# Predicate over the raw identifier bytes
FilterPredicate = Callable[[bytes], bool]
# Sinks may be plain functions or coroutine functions
MatchSink = Callable[[TagReadEvent], Union[None, Awaitable[None]]]
ExceptionSink = Callable[[str], Union[None, Awaitable[None]]]

logger = logging.getLogger(__name__)

_EVENT = "event"
_EXCEPTION = "exception"
_STOP = object()


def epc_equals(target_hex: str) -> FilterPredicate:
    """Predicate matching identifiers whose upper-case hex equals `target_hex` exactly."""
    def predicate(identifier: bytes) -> bool:
        return identifier.hex().upper() == target_hex
    predicate.__name__ = f"epc_equals({target_hex})"
    return predicate


def format_read_exception(error: Union[ReadException, Exception, str]) -> str:
    """Renders a delivery error the way it is shown to the operator."""
    return f"Error:{error}"


class CountMode(Enum):
    """How non-matching reads are counted."""
    MATCHES_ONLY = "matches_only"  # non_matched is never incremented
    BOTH = "both"


@dataclass
class MatchCounters:
    matched: int = 0
    non_matched: int = 0

    def snapshot(self) -> "MatchCounters":
        return replace(self)


async def _call_sink(sink: Callable[[Any], Any], value: Any) -> None:
    result = sink(value)
    if inspect.isawaitable(result):
        await result


class StreamEventRouter:
    """
    Filters a background stream of tag reads and keeps match counters.

    Callbacks handed to the event source only enqueue. A single consumer task
    drains the queue, so the counters have exactly one writer no matter how
    many producers deliver concurrently. `stop()` enqueues a stop marker and
    waits for the consumer, which makes the counters final once it returns.
    """

    def __init__(self, predicate: FilterPredicate, count_mode: CountMode = CountMode.MATCHES_ONLY,
                 match_sink: Optional[MatchSink] = None, exception_sink: Optional[ExceptionSink] = None,
                 max_queue_size: int = 0):
        """
        Args:
            predicate: Filter applied to each non-empty identifier.
            count_mode: MATCHES_ONLY leaves non_matched at zero; BOTH counts misses too.
            match_sink: Called with every matching event (sync or async).
            exception_sink: Called with every formatted delivery error (sync or async).
                            Errors are logged when no sink is given.
            max_queue_size: Bound of the delivery queue, 0 for unbounded.
        """
        if not callable(predicate):
            raise TypeError("predicate must be callable")
        if max_queue_size < 0:
            raise ValueError("max_queue_size must be >= 0")

        self._predicate = predicate
        self._count_mode = count_mode
        self._match_sink = match_sink
        self._exception_sink = exception_sink
        self._max_queue_size = max_queue_size

        self._counters = MatchCounters()
        self._status = SubscriptionStatus.IDLE
        self._queue: Optional[asyncio.Queue] = None
        self._consumer_task: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def status(self) -> SubscriptionStatus:
        return self._status

    @property
    def is_running(self) -> bool:
        return self._status == SubscriptionStatus.RUNNING

    @property
    def count_mode(self) -> CountMode:
        return self._count_mode

    @property
    def counters(self) -> MatchCounters:
        """Copy of the counters. Only final after `stop()` has returned."""
        return self._counters.snapshot()

    @property
    def event_callback(self) -> Callable[[TagReadEvent], Awaitable[None]]:
        return self.on_event

    @property
    def exception_callback(self) -> Callable[[Any], Awaitable[None]]:
        return self.on_exception

    # --- Lifecycle ---

    async def start(self) -> None:
        """Starts the consumer task on the running loop."""
        if self._status in (SubscriptionStatus.RUNNING, SubscriptionStatus.STOPPING):
            logger.warning(f"Router already {self._status.name.lower()}, start ignored.")
            return
        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._consumer_task = asyncio.create_task(self._consume())
        self._status = SubscriptionStatus.RUNNING
        logger.info(f"Router started (mode={self._count_mode.value}, predicate={getattr(self._predicate, '__name__', repr(self._predicate))})")

    async def stop(self) -> None:
        """Stops delivery and waits until every queued item has been handled. Idempotent."""
        if self._status == SubscriptionStatus.STOPPING and self._consumer_task:
            await self._wait_for_consumer(self._consumer_task)
            return
        if self._status != SubscriptionStatus.RUNNING:
            logger.debug(f"Router not running ({self._status.name}), stop ignored.")
            return

        self._status = SubscriptionStatus.STOPPING
        await self._queue.put(_STOP)
        await self._wait_for_consumer(self._consumer_task)
        logger.info(f"Router stopped: matched={self._counters.matched}, non_matched={self._counters.non_matched}")

    async def _wait_for_consumer(self, task: asyncio.Task) -> None:
        # Stays STOPPING if the caller is cancelled while the consumer still drains.
        try:
            await asyncio.shield(task)
        finally:
            if task.done() and self._consumer_task is task:
                self._consumer_task = None
                self._status = SubscriptionStatus.STOPPED

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    # --- Callbacks handed to the event source ---

    async def on_event(self, event: TagReadEvent) -> None:
        """Event callback: enqueues one delivered read."""
        if self._status != SubscriptionStatus.RUNNING:
            logger.debug(f"Router not running, dropping event {event.epc_hex}")
            return
        await self._queue.put((_EVENT, event))

    async def on_exception(self, error: Union[ReadException, Exception, str]) -> None:
        """Exception callback: enqueues one delivery-layer error."""
        if self._status != SubscriptionStatus.RUNNING:
            logger.debug(f"Router not running, dropping exception report: {error}")
            return
        await self._queue.put((_EXCEPTION, error))

    def submit_threadsafe(self, event: TagReadEvent) -> concurrent.futures.Future:
        """Delivers an event from a thread other than the router's loop."""
        return self._run_threadsafe(self.on_event(event))

    def report_exception_threadsafe(self, error: Union[ReadException, Exception, str]) -> concurrent.futures.Future:
        """Delivers an error report from a thread other than the router's loop."""
        return self._run_threadsafe(self.on_exception(error))

    def _run_threadsafe(self, coro) -> concurrent.futures.Future:
        if self._loop is None:
            coro.close()
            raise RuntimeError("Router has never been started; no loop to deliver to.")
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    # --- Consumer ---

    async def _consume(self) -> None:
        logger.debug("Router consumer started.")
        while True:
            item = await self._queue.get()
            try:
                if item is _STOP:
                    break
                kind, payload = item
                if kind == _EVENT:
                    await self._handle_event(payload)
                else:
                    await self._handle_exception(payload)
            finally:
                self._queue.task_done()
        logger.debug("Router consumer finished.")

    async def _handle_event(self, event: TagReadEvent) -> None:
        if not event.identifier:
            logger.debug(f"Ignoring read with empty identifier on antenna {event.antenna}")
            return

        try:
            matched = self._predicate(event.identifier)
        except Exception as e:
            logger.exception(f"Predicate failed for {event.epc_hex}, read skipped: {e}")
            return

        if matched:
            self._counters.matched += 1
            logger.info(f"Background read: {event.epc_hex} ant:{event.antenna}")
            if self._match_sink:
                try:
                    await _call_sink(self._match_sink, event)
                except Exception as e:
                    logger.exception(f"Error in match sink for {event.epc_hex}: {e}")
        elif self._count_mode == CountMode.BOTH:
            self._counters.non_matched += 1

    async def _handle_exception(self, error: Union[ReadException, Exception, str]) -> None:
        message = format_read_exception(error)
        if self._exception_sink is None:
            logger.error(message)
            return
        try:
            await _call_sink(self._exception_sink, message)
        except Exception as e:
            logger.exception(f"Error in exception sink while reporting '{message}': {e}")
