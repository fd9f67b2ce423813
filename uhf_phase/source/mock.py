# uhf_phase/source/mock.py

import asyncio
import logging
from collections import deque
from typing import Iterable, List, Optional, Union

from uhf_phase.core.events import ReadException, TagReadEvent
from uhf_phase.core.exceptions import DeviceError, SourceError
from uhf_phase.source.base import BaseEventSource

logger = logging.getLogger(__name__)

StreamItem = Union[TagReadEvent, ReadException, Exception]


class MockEventSource(BaseEventSource):
    """
    An in-memory event source for testing and simulation.

    Batches are queued up front and handed out one per get_batch() call.
    Stream items (events or error reports) are pushed by the test and
    delivered in order to every subscriber from a background task.
    """

    def __init__(self, per_antenna_records: bool = True, name: str = "Mock"):
        """
        Args:
            per_antenna_records: Value reported by the capability flag.
            name: A name for this mock instance for logging purposes.
        """
        super().__init__(per_antenna_records=per_antenna_records)
        self._name = name
        self._batch_queue: deque[Union[List[TagReadEvent], Exception]] = deque()
        self._stream_queue: deque[StreamItem] = deque()
        self._data_available_event = asyncio.Event()
        self._drained_event = asyncio.Event()
        self._drained_event.set()
        self._delivery_task: Optional[asyncio.Task] = None
        self._connection_delay = 0.0
        self._delivery_delay = 0.0
        self.batch_requests: List[int] = []

        logger.info(f"MockEventSource '{self._name}' initialized.")

    async def connect(self) -> None:
        """Simulates opening the reader."""
        async with self._connection_lock:
            if self._connected:
                logger.warning(f"[{self._name}] Already connected.")
                return
            logger.info(f"[{self._name}] Simulating connection...")
            await asyncio.sleep(self._connection_delay)
            self._connected = True
            self._delivery_task = asyncio.create_task(self._delivery_loop())
            logger.info(f"[{self._name}] Mock source connected.")

    async def disconnect(self) -> None:
        """Simulates closing the reader."""
        async with self._connection_lock:
            if not self._connected:
                return
            logger.info(f"[{self._name}] Simulating disconnection...")
            self._connected = False
            if self._delivery_task and not self._delivery_task.done():
                self._delivery_task.cancel()
                try:
                    await self._delivery_task
                except asyncio.CancelledError:
                    logger.debug(f"[{self._name}] Delivery task cancelled.")
            self._delivery_task = None
            self._drained_event.set()
            logger.info(f"[{self._name}] Mock source disconnected.")

    async def get_batch(self, timeout_ms: int) -> List[TagReadEvent]:
        """Returns the next queued batch, or an empty one after `timeout_ms`."""
        if not self._connected:
            raise DeviceError(f"[{self._name}] Cannot read: source not connected.")
        self.batch_requests.append(timeout_ms)

        if not self._batch_queue:
            await asyncio.sleep(timeout_ms / 1000)
            logger.debug(f"[{self._name}] No batch queued, returning empty batch.")
            return []

        batch = self._batch_queue.popleft()
        if isinstance(batch, Exception):
            logger.debug(f"[{self._name}] Raising queued batch error: {batch}")
            raise batch
        logger.debug(f"[{self._name}] Returning batch of {len(batch)} reads.")
        return list(batch)

    async def _delivery_loop(self) -> None:
        """Delivers pushed stream items to the current subscribers."""
        logger.info(f"[{self._name}] Mock delivery loop started.")
        try:
            while self._connected:
                await self._data_available_event.wait()

                while self._stream_queue:
                    item = self._stream_queue.popleft()
                    await asyncio.sleep(self._delivery_delay)
                    await self._deliver(item)

                self._data_available_event.clear()
                self._drained_event.set()
        except asyncio.CancelledError:
            logger.info(f"[{self._name}] Mock delivery loop cancelled.")
            raise
        finally:
            logger.info(f"[{self._name}] Mock delivery loop stopped.")

    async def _deliver(self, item: StreamItem) -> None:
        async with self._delivery_lock:
            subscribers = self._active_subscriptions()
            if not subscribers:
                logger.debug(f"[{self._name}] No subscribers, dropping {item!r}")
                return
            for on_event, on_exception in subscribers:
                try:
                    if isinstance(item, TagReadEvent):
                        await on_event(item)
                    else:
                        await on_exception(item)
                except Exception as e:
                    logger.exception(f"[{self._name}] Error in subscriber callback: {e}")

    # --- Mock Control Methods ---

    def add_batch(self, events: Iterable[TagReadEvent]) -> None:
        """Queues the batch returned by the next get_batch() call."""
        self._batch_queue.append(list(events))

    def add_batch_error(self, error: SourceError) -> None:
        """Queues an error raised by the next get_batch() call."""
        self._batch_queue.append(error)

    def push_event(self, event: TagReadEvent) -> None:
        """Pushes one read onto the background stream."""
        self._push(event)

    def push_events(self, events: Iterable[TagReadEvent]) -> None:
        for event in events:
            self._push(event)

    def push_exception(self, error: Union[ReadException, Exception]) -> None:
        """Pushes one delivery-layer error onto the background stream."""
        self._push(error)

    def _push(self, item: StreamItem) -> None:
        self._stream_queue.append(item)
        self._drained_event.clear()
        self._data_available_event.set()

    async def wait_until_delivered(self, timeout: float = 1.0) -> None:
        """Waits until every pushed item has been handed to the subscribers."""
        await asyncio.wait_for(self._drained_event.wait(), timeout=timeout)

    def set_connection_delay(self, delay: float) -> None:
        self._connection_delay = max(0, delay)

    def set_delivery_delay(self, delay: float) -> None:
        """Sets the simulated delay before each stream item is delivered."""
        self._delivery_delay = max(0, delay)
