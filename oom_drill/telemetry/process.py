from __future__ import annotations

import logging
import os
import resource
from typing import Optional

import psutil

from .base import MemorySnapshot, MemoryTelemetry

logger = logging.getLogger("oom_drill.telemetry")


def detect_process_ceiling() -> int:
    """Return the address-space soft limit if one is set, else physical memory."""

    soft, _hard = resource.getrlimit(resource.RLIMIT_AS)
    if soft != resource.RLIM_INFINITY and soft > 0:
        return int(soft)
    return int(psutil.virtual_memory().total)


class ProcessMemoryTelemetry(MemoryTelemetry):
    """Measures this interpreter's own footprint against a fixed ceiling."""

    label = "process"

    def __init__(self, max_bytes: Optional[int] = None, process: Optional[psutil.Process] = None) -> None:
        self._process = process or psutil.Process(os.getpid())
        self._limit = int(max_bytes) if max_bytes else detect_process_ceiling()
        logger.info("[telemetry.process] pid=%s limit_mb=%d", self._process.pid, self._limit // (1024 * 1024))

    @property
    def limit_bytes(self) -> int:
        return self._limit

    def snapshot(self) -> MemorySnapshot:
        info = self._process.memory_info()
        return MemorySnapshot(used_bytes=int(info.rss), total_bytes=int(info.vms), limit_bytes=self._limit)
