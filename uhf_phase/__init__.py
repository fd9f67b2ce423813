"""uhf_phase - Phase-difference estimation and filtered background counting for UHF RFID reads."""

from .core import (
    TagReadEvent,
    ReadException,
    correct_phase_delta,
    BatchPhaseSampler,
    PhaseCycleResult,
    StreamEventRouter,
    CountMode,
    MatchCounters,
    epc_equals,
    PhaseCycleDriver,
    run_filtered_session,
    SubscriptionStatus,
    UhfPhaseError,
    SourceError,
    ConnectionError,
    ReadTimeoutError,
    DeviceError,
    SubscriptionError,
    ConfigurationError
)
from .source import BaseEventSource, MockEventSource, SubscriptionHandle
from .utils.config import SessionConfig, PhaseSettings, FilterSettings, load_config

__version__ = '0.1.0'

__all__ = [
    # Data model
    'TagReadEvent',
    'ReadException',
    # Phase estimation
    'correct_phase_delta',
    'BatchPhaseSampler',
    'PhaseCycleResult',
    'PhaseCycleDriver',
    # Background filtering
    'StreamEventRouter',
    'CountMode',
    'MatchCounters',
    'epc_equals',
    'run_filtered_session',
    'SubscriptionStatus',
    # Exceptions
    'UhfPhaseError',
    'SourceError',
    'ConnectionError',
    'ReadTimeoutError',
    'DeviceError',
    'SubscriptionError',
    'ConfigurationError',
    # Sources
    'BaseEventSource',
    'MockEventSource',
    'SubscriptionHandle',
    # Configuration
    'SessionConfig',
    'PhaseSettings',
    'FilterSettings',
    'load_config',
]
