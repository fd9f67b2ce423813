"""Event source implementations for the uhf_phase library."""

from .base import BaseEventSource, SubscriptionHandle
from .mock import MockEventSource

__all__ = [
    'BaseEventSource',
    'SubscriptionHandle',
    'MockEventSource'
]
