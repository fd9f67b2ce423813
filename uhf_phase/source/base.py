# uhf_phase/source/base.py

import asyncio
import inspect
import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Dict, List

from uhf_phase.core.events import TagReadEvent
from uhf_phase.core.exceptions import SubscriptionError

# Callbacks handed to subscribe(); both must be async functions
EventCallback = Callable[[TagReadEvent], Coroutine[Any, Any, None]]
ExceptionCallback = Callable[[Any], Coroutine[Any, Any, None]]

logger = logging.getLogger(__name__)

_handle_ids = itertools.count(1)


@dataclass(frozen=True)
class SubscriptionHandle:
    """Opaque token returned by subscribe() and passed back to unsubscribe()."""
    id: int


class BaseEventSource(ABC):
    """
    Abstract base class for anything that delivers decoded tag reads.

    The reader layer behind it (radio protocol, transport, region and
    antenna configuration) is outside this library. A source offers two
    delivery modes: finite batches on request, and a background push stream
    to subscribed callbacks.
    """

    def __init__(self, per_antenna_records: bool = True):
        """
        Args:
            per_antenna_records: True when the reader emits one record per
                                 antenna for a tag instead of merging antennas.
        """
        self._per_antenna_records = per_antenna_records
        self._connected = False
        self._connection_lock = asyncio.Lock()
        self._delivery_lock = asyncio.Lock()  # held while the callbacks for one item run
        self._subscriptions: Dict[SubscriptionHandle, tuple[EventCallback, ExceptionCallback]] = {}

    @property
    def per_antenna_records(self) -> bool:
        """Capability flag: each read represents exactly one antenna."""
        return self._per_antenna_records

    @abstractmethod
    async def connect(self) -> None:
        """
        Opens the source.

        Raises:
            ConnectionError: If the source cannot be opened.
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Closes the source. Safe to call even if not connected."""
        pass

    @abstractmethod
    async def get_batch(self, timeout_ms: int) -> List[TagReadEvent]:
        """
        Reads for up to `timeout_ms` and returns every tag read of that cycle.

        Raises:
            ReadTimeoutError: If the reader did not answer in time.
            DeviceError: If the reader reported a fault.
        """
        pass

    def is_connected(self) -> bool:
        """Returns True if the source is currently connected, False otherwise."""
        return self._connected

    async def subscribe(self, on_event: EventCallback, on_exception: ExceptionCallback) -> SubscriptionHandle:
        """
        Registers callbacks for background reading.

        Raises:
            TypeError: If a callback is not an async function.
            SubscriptionError: If the source is not connected.
        """
        for callback in (on_event, on_exception):
            if not inspect.iscoroutinefunction(callback):
                raise TypeError("Subscription callbacks must be async functions (defined with 'async def')")
        if not self.is_connected():
            raise SubscriptionError("Cannot subscribe: source not connected.")

        handle = SubscriptionHandle(next(_handle_ids))
        self._subscriptions[handle] = (on_event, on_exception)
        logger.info(f"Subscription {handle.id} registered ({getattr(on_event, '__name__', repr(on_event))})")
        await self._on_subscriptions_changed()
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        """
        Removes a subscription. No callback of it runs after this returns.

        Raises:
            SubscriptionError: If the handle is unknown.
        """
        if handle not in self._subscriptions:
            raise SubscriptionError(f"Unknown subscription handle {handle.id}.")
        async with self._delivery_lock:
            del self._subscriptions[handle]
        logger.info(f"Subscription {handle.id} removed")
        await self._on_subscriptions_changed()

    async def _on_subscriptions_changed(self) -> None:
        """Hook for subclasses that start or stop background reading on demand."""
        pass

    def _active_subscriptions(self) -> List[tuple[EventCallback, ExceptionCallback]]:
        return list(self._subscriptions.values())

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
