# uhf_phase/core/events.py

"""Decoded tag-read data shared by the batch and background paths."""

import datetime
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class TagReadEvent:
    """
    One observation of a tag by one antenna, as delivered by the reader layer.

    `phase` is the raw signed value reported by the reader; it is not
    normalised here and may exceed +/-180.
    """
    identifier: bytes
    antenna: int
    phase: int
    rssi: Optional[int] = None
    frequency: Optional[int] = None
    timestamp: Optional[datetime.datetime] = None

    @property
    def epc_hex(self) -> str:
        """Identifier as upper-case hex without separators."""
        return self.identifier.hex().upper()

    def __str__(self):
        return f"EPC: {self.epc_hex} | Ant: {self.antenna} | Phase: {self.phase} | RSSI: {self.rssi}"


@dataclass(frozen=True)
class ReadException:
    """A delivery-layer error reported while background reading is active."""
    description: str
    status_code: Optional[int] = None
    error: Optional[Exception] = None

    def __str__(self):
        if self.status_code is not None:
            return f"{self.description} (0x{self.status_code:02X})"
        return self.description
