"""Base classes shared by memory telemetry backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True, slots=True)
class MemorySnapshot:
    """Point-in-time memory figures the engine plans against."""

    used_bytes: int
    total_bytes: int
    limit_bytes: int

    def headroom(self, reserve: int = 0) -> int:
        """Bytes left before ``limit_bytes`` (minus ``reserve``), floored at zero."""

        return max(0, self.limit_bytes - self.used_bytes - reserve)


class TelemetryError(RuntimeError):
    """Base class for telemetry failures."""


class TelemetryUnavailable(TelemetryError):
    """No supported memory-bound backend could be detected."""


class UnboundedLimit(TelemetryError):
    """The backend reports no enforced memory ceiling."""


class TelemetryParseError(TelemetryError):
    """A telemetry source held content that is not a decimal integer."""


class MemoryTelemetry(ABC):
    """Source of used/total/limit figures."""

    label: str = "unknown"

    @abstractmethod
    def snapshot(self) -> MemorySnapshot:
        """Read fresh figures. Never cached across calls."""

    @property
    def baseline_usage_bytes(self) -> Optional[int]:
        return None


__all__ = [
    "MemorySnapshot",
    "MemoryTelemetry",
    "TelemetryError",
    "TelemetryParseError",
    "TelemetryUnavailable",
    "UnboundedLimit",
]
