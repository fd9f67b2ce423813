# uhf_phase/utils/config.py
"""
Settings for the phase sampler and the background filter, loadable from JSON.

Example file::

    {
      "phase": {"target_epc": "300833B2DDD9014000000000", "antenna_a": 1,
                "antenna_b": 2, "cycle_timeout_ms": 800},
      "filter": {"target_epc": "300833B2DDD9014000000000",
                 "count_mode": "matches_only", "duration_s": 5.0}
    }
"""
import json
import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional

from uhf_phase.core.driver import DEFAULT_CYCLE_TIMEOUT_MS
from uhf_phase.core.exceptions import ConfigurationError
from uhf_phase.core.phase import DEFAULT_ANTENNA_A, DEFAULT_ANTENNA_B, BatchPhaseSampler
from uhf_phase.core.router import CountMode, StreamEventRouter, epc_equals, ExceptionSink, MatchSink

logger = logging.getLogger(__name__)

DEFAULT_TARGET_EPC = "300833B2DDD9014000000000"
DEFAULT_SESSION_DURATION_S = 5.0


@dataclass
class PhaseSettings:
    """Batch phase-difference settings."""
    target_epc: str = DEFAULT_TARGET_EPC
    antenna_a: int = DEFAULT_ANTENNA_A
    antenna_b: int = DEFAULT_ANTENNA_B
    cycle_timeout_ms: int = DEFAULT_CYCLE_TIMEOUT_MS

    def validate(self) -> None:
        _check_epc(self.target_epc, "phase.target_epc")
        for name in ("antenna_a", "antenna_b"):
            value = getattr(self, name)
            if not _is_int(value) or value < 1:
                raise ConfigurationError(f"phase.{name} must be a positive integer, got {value!r}")
        if self.antenna_a == self.antenna_b:
            raise ConfigurationError("phase.antenna_a and phase.antenna_b must differ")
        if not _is_int(self.cycle_timeout_ms) or self.cycle_timeout_ms <= 0:
            raise ConfigurationError(f"phase.cycle_timeout_ms must be a positive integer, got {self.cycle_timeout_ms!r}")

    def build_sampler(self) -> BatchPhaseSampler:
        return BatchPhaseSampler(self.target_epc, antenna_a=self.antenna_a, antenna_b=self.antenna_b)


@dataclass
class FilterSettings:
    """Background read filter settings."""
    target_epc: str = DEFAULT_TARGET_EPC
    count_mode: CountMode = CountMode.MATCHES_ONLY
    duration_s: float = DEFAULT_SESSION_DURATION_S

    def validate(self) -> None:
        _check_epc(self.target_epc, "filter.target_epc")
        if not isinstance(self.count_mode, CountMode):
            raise ConfigurationError(f"filter.count_mode must be a CountMode, got {self.count_mode!r}")
        if not _is_number(self.duration_s) or self.duration_s <= 0:
            raise ConfigurationError(f"filter.duration_s must be positive, got {self.duration_s!r}")

    def build_router(self, match_sink: Optional[MatchSink] = None,
                     exception_sink: Optional[ExceptionSink] = None) -> StreamEventRouter:
        return StreamEventRouter(epc_equals(self.target_epc), count_mode=self.count_mode,
                                 match_sink=match_sink, exception_sink=exception_sink)


@dataclass
class SessionConfig:
    phase: PhaseSettings = field(default_factory=PhaseSettings)
    filter: FilterSettings = field(default_factory=FilterSettings)

    def validate(self) -> None:
        self.phase.validate()
        self.filter.validate()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionConfig":
        """Builds and validates a config from a plain dict (e.g. parsed JSON)."""
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a JSON object")
        phase_data = _section(data, "phase")
        filter_data = _section(data, "filter")

        if "count_mode" in filter_data:
            try:
                filter_data["count_mode"] = CountMode(filter_data["count_mode"])
            except (ValueError, TypeError):
                allowed = ", ".join(m.value for m in CountMode)
                raise ConfigurationError(
                    f"filter.count_mode must be one of: {allowed}; got {filter_data['count_mode']!r}") from None

        config = cls(phase=_build(PhaseSettings, phase_data, "phase"),
                     filter=_build(FilterSettings, filter_data, "filter"))
        config.validate()
        return config


def _check_epc(value: Any, name: str) -> None:
    if not isinstance(value, str) or not value:
        raise ConfigurationError(f"{name} must be a non-empty hex string")
    try:
        bytes.fromhex(value)
    except ValueError:
        raise ConfigurationError(f"{name} is not valid hex: {value!r}") from None
    if value != value.upper():
        # Identifiers are compared as upper-case hex.
        raise ConfigurationError(f"{name} must be upper-case hex, got {value!r}")


def _is_int(value: Any) -> bool:
    # JSON true/false load as bool, which is an int subclass.
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _section(data: Dict[str, Any], section: str) -> Dict[str, Any]:
    value = data.get(section, {})
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{section}' must be a JSON object, got {value!r}")
    return dict(value)


def _build(settings_cls, data: Dict[str, Any], section: str):
    known = {f.name for f in fields(settings_cls)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"Unknown key(s) in '{section}': {', '.join(sorted(unknown))}")
    return settings_cls(**data)


def load_config(filepath: str) -> SessionConfig:
    """
    Loads settings from a JSON file.

    A missing file yields the defaults (with a warning); unreadable JSON or
    invalid values raise ConfigurationError.
    """
    if not os.path.exists(filepath):
        logger.warning(f"Config file not found at {filepath}. Using defaults.")
        return SessionConfig()

    try:
        with open(filepath, 'r') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Error decoding config JSON from {filepath}: {e}")
        raise ConfigurationError(f"Invalid JSON: {e}", path=filepath) from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read config: {e}", path=filepath) from e

    config = SessionConfig.from_dict(data)
    logger.info(f"Loaded config from {filepath}")
    return config
