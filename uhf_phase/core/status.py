# uhf_phase/core/status.py

from enum import Enum, auto

class SubscriptionStatus(Enum):
    """Represents the delivery state of a background router."""
    IDLE = auto()
    RUNNING = auto()
    STOPPING = auto()
    STOPPED = auto()

    def __str__(self):
        return self.name
