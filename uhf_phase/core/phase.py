# uhf_phase/core/phase.py

"""
Per-cycle phase difference estimation for one tag seen by two antennas.

The reader reports phase modulo 360, but with two antennas the difference
is only meaningful modulo 180, so raw differences are folded onto the
(-90, 90] branch instead of being reduced modulo 360.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional, Tuple, Union

from uhf_phase.core.events import TagReadEvent

logger = logging.getLogger(__name__)

DEFAULT_ANTENNA_A = 1
DEFAULT_ANTENNA_B = 2


def correct_phase_delta(raw: int) -> int:
    """
    Folds a raw phase difference into (-90, 90].

    Applied once only: values far outside +/-270 are not fully reduced.
    Exactly -90 and 90 are returned unchanged.
    """
    if raw < -90:
        return raw + 180
    elif raw > 90:
        return raw - 180
    return raw


def _mean_toward_zero(samples: List[int]) -> int:
    total = sum(samples)
    count = len(samples)
    quotient = abs(total) // count
    return quotient if total >= 0 else -quotient


@dataclass
class AntennaPhaseSeries:
    """Phase samples for one (identifier, antenna) pair, in arrival order."""
    antenna: int
    samples: List[int] = field(default_factory=list)

    def append(self, phase: int) -> None:
        self.samples.append(phase)

    def __len__(self) -> int:
        return len(self.samples)

    def __getitem__(self, index: int) -> int:
        return self.samples[index]

    def __iter__(self) -> Iterator[int]:
        return iter(self.samples)


@dataclass(frozen=True)
class PhaseCycleResult:
    """What one sampling cycle exposes for display."""
    deltas: Tuple[int, ...]
    antenna_a_count: int
    antenna_b_count: int
    total_reads: int
    average_delta: Optional[int] = None

    @property
    def paired_count(self) -> int:
        return len(self.deltas)


class BatchPhaseSampler:
    """
    Extracts the target tag's phase samples from one batch of reads and
    reports corrected deltas between antenna A and antenna B.

    Samples are paired strictly by arrival index within each antenna's own
    series. If the antennas are not read in lockstep this mispairs samples;
    the behaviour is kept because re-pairing by time changes the output.
    """

    def __init__(self, target: Union[str, bytes], antenna_a: int = DEFAULT_ANTENNA_A,
                 antenna_b: int = DEFAULT_ANTENNA_B):
        """
        Args:
            target: EPC of the tag to follow, as upper-case hex or raw bytes.
                    Hex strings are compared exactly (case-sensitive).
            antenna_a: Antenna port whose phase is the minuend.
            antenna_b: Antenna port whose phase is the subtrahend.
        """
        if isinstance(target, (bytes, bytearray)):
            target = bytes(target).hex().upper()
        if not target:
            raise ValueError("Target identifier must not be empty")
        if antenna_a < 1 or antenna_b < 1:
            raise ValueError("Antenna ports must be positive integers")
        if antenna_a == antenna_b:
            raise ValueError(f"Antenna ports must differ, got {antenna_a} twice")

        self._target = target
        self._antenna_a = antenna_a
        self._antenna_b = antenna_b

    @property
    def target(self) -> str:
        return self._target

    @property
    def antennas(self) -> Tuple[int, int]:
        return self._antenna_a, self._antenna_b

    def collect(self, events: Iterable[TagReadEvent]) -> Tuple[AntennaPhaseSeries, AntennaPhaseSeries]:
        """Splits the target's phases per antenna, ignoring every other read."""
        series_a = AntennaPhaseSeries(self._antenna_a)
        series_b = AntennaPhaseSeries(self._antenna_b)
        for event in events:
            if event.epc_hex != self._target:
                continue
            if event.antenna == self._antenna_a:
                series_a.append(event.phase)
            elif event.antenna == self._antenna_b:
                series_b.append(event.phase)
        return series_a, series_b

    @staticmethod
    def pair_deltas(series_a: AntennaPhaseSeries, series_b: AntennaPhaseSeries) -> List[int]:
        """Corrected A-B differences for every index present in both series."""
        n = min(len(series_a), len(series_b))
        return [correct_phase_delta(series_a[i] - series_b[i]) for i in range(n)]

    @staticmethod
    def average_delta(series_a: AntennaPhaseSeries, series_b: AntennaPhaseSeries) -> Optional[int]:
        """
        Corrected difference of the per-antenna integer means, or None when
        either antenna has no samples this cycle.
        """
        if not len(series_a) or not len(series_b):
            return None
        raw = _mean_toward_zero(series_a.samples) - _mean_toward_zero(series_b.samples)
        return correct_phase_delta(raw)

    def sample(self, events: Iterable[TagReadEvent]) -> PhaseCycleResult:
        """Runs one cycle over a complete batch. Zero pairs is a valid result."""
        events = list(events)
        series_a, series_b = self.collect(events)
        deltas = self.pair_deltas(series_a, series_b)
        result = PhaseCycleResult(
            deltas=tuple(deltas),
            antenna_a_count=len(series_a),
            antenna_b_count=len(series_b),
            total_reads=len(events),
            average_delta=self.average_delta(series_a, series_b),
        )
        logger.debug(f"Cycle for {self._target}: {result.total_reads} reads, "
                     f"ant {self._antenna_a}={result.antenna_a_count}, ant {self._antenna_b}={result.antenna_b_count}, "
                     f"deltas={list(result.deltas)}")
        return result
