"""Core components of the uhf_phase library."""

from .exceptions import (
    UhfPhaseError,
    SourceError,
    ConnectionError,
    ReadTimeoutError,
    DeviceError,
    SubscriptionError,
    ConfigurationError
)
from .status import SubscriptionStatus
from .events import TagReadEvent, ReadException
from .phase import correct_phase_delta, AntennaPhaseSeries, PhaseCycleResult, BatchPhaseSampler
from .router import CountMode, MatchCounters, StreamEventRouter, epc_equals, format_read_exception
from .driver import PhaseCycleDriver, run_filtered_session

__all__ = [
    'UhfPhaseError',
    'SourceError',
    'ConnectionError',
    'ReadTimeoutError',
    'DeviceError',
    'SubscriptionError',
    'ConfigurationError',
    'SubscriptionStatus',
    'TagReadEvent',
    'ReadException',
    'correct_phase_delta',
    'AntennaPhaseSeries',
    'PhaseCycleResult',
    'BatchPhaseSampler',
    'CountMode',
    'MatchCounters',
    'StreamEventRouter',
    'epc_equals',
    'format_read_exception',
    'PhaseCycleDriver',
    'run_filtered_session'
]
