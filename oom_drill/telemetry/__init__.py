"""Memory telemetry providers the allocation engine plans against."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Union

from .base import (
    MemorySnapshot,
    MemoryTelemetry,
    TelemetryError,
    TelemetryParseError,
    TelemetryUnavailable,
    UnboundedLimit,
)
from .cgroup import (
    CgroupMemoryTelemetry,
    CgroupReader,
    CgroupV1Reader,
    CgroupV2Reader,
    detect_cgroup_reader,
)
from .process import ProcessMemoryTelemetry

BACKENDS = ("process", "container")


def build_telemetry(
    backend: str,
    *,
    process_max_bytes: Optional[int] = None,
    cgroup_root: Union[str, Path] = "/sys/fs/cgroup",
) -> MemoryTelemetry:
    """Construct the backend named by ``backend``. Runs detection exactly once."""

    if backend == "process":
        return ProcessMemoryTelemetry(max_bytes=process_max_bytes)
    if backend == "container":
        return CgroupMemoryTelemetry(root=cgroup_root)
    raise TelemetryUnavailable(f"unknown telemetry backend {backend!r}; expected one of: {', '.join(BACKENDS)}")


__all__ = [
    "BACKENDS",
    "CgroupMemoryTelemetry",
    "CgroupReader",
    "CgroupV1Reader",
    "CgroupV2Reader",
    "MemorySnapshot",
    "MemoryTelemetry",
    "ProcessMemoryTelemetry",
    "TelemetryError",
    "TelemetryParseError",
    "TelemetryUnavailable",
    "UnboundedLimit",
    "build_telemetry",
    "detect_cgroup_reader",
]
