"""cgroup memory controller readers (v1 and v2 layouts)."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

from .base import (
    MemorySnapshot,
    MemoryTelemetry,
    TelemetryParseError,
    TelemetryUnavailable,
    UnboundedLimit,
)

logger = logging.getLogger("oom_drill.telemetry")

DEFAULT_CGROUP_ROOT = Path("/sys/fs/cgroup")

# cgroup v1 reports "no limit" as a page-aligned value close to 2**63.
V1_UNLIMITED_THRESHOLD = 1 << 62

UNBOUNDED_TOKEN = "max"


def _read_int(path: Path) -> int:
    try:
        raw = path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise TelemetryParseError(f"unable to read {path}: {exc}") from exc
    try:
        return int(raw)
    except ValueError:
        raise TelemetryParseError(f"{path} does not hold a decimal integer: {raw!r}") from None


class CgroupReader(ABC):
    """Reads limit and usage for one cgroup file layout."""

    def __init__(self, root: Union[str, Path] = DEFAULT_CGROUP_ROOT) -> None:
        self.root = Path(root)

    @abstractmethod
    def limit_bytes(self) -> int:
        ...

    @abstractmethod
    def usage_bytes(self) -> int:
        ...

    @abstractmethod
    def version_label(self) -> str:
        ...


class CgroupV2Reader(CgroupReader):
    @property
    def limit_path(self) -> Path:
        return self.root / "memory.max"

    @property
    def usage_path(self) -> Path:
        return self.root / "memory.current"

    def limit_bytes(self) -> int:
        try:
            raw = self.limit_path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise TelemetryParseError(f"unable to read {self.limit_path}: {exc}") from exc
        if raw == UNBOUNDED_TOKEN:
            raise UnboundedLimit(f"{self.limit_path} is unlimited; set a container memory limit")
        try:
            return int(raw)
        except ValueError:
            raise TelemetryParseError(f"{self.limit_path} does not hold a decimal integer: {raw!r}") from None

    def usage_bytes(self) -> int:
        return _read_int(self.usage_path)

    def version_label(self) -> str:
        return "v2"


class CgroupV1Reader(CgroupReader):
    @property
    def limit_path(self) -> Path:
        return self.root / "memory" / "memory.limit_in_bytes"

    @property
    def usage_path(self) -> Path:
        return self.root / "memory" / "memory.usage_in_bytes"

    def limit_bytes(self) -> int:
        return _read_int(self.limit_path)

    def usage_bytes(self) -> int:
        return _read_int(self.usage_path)

    def version_label(self) -> str:
        return "v1"


def detect_cgroup_reader(root: Union[str, Path] = DEFAULT_CGROUP_ROOT) -> CgroupReader:
    """Pick the reader for whichever layout is mounted. v2 wins when both exist."""

    for reader in (CgroupV2Reader(root), CgroupV1Reader(root)):
        if reader.limit_path.exists():
            return reader
    raise TelemetryUnavailable(f"no cgroup memory controller detected under {root}")


class CgroupMemoryTelemetry(MemoryTelemetry):
    """Container-level telemetry with a baseline captured before any load."""

    def __init__(self, reader: Optional[CgroupReader] = None, *, root: Union[str, Path] = DEFAULT_CGROUP_ROOT) -> None:
        self._reader = reader or detect_cgroup_reader(root)
        self.label = f"cgroup-{self._reader.version_label()}"

        # Fails fast on "max" so an unbounded container never starts serving
        limit = self._reader.limit_bytes()
        self._baseline = self._reader.usage_bytes()

        if self._reader.version_label() == "v1" and limit >= V1_UNLIMITED_THRESHOLD:
            logger.warning(
                "[telemetry.cgroup] v1 limit=%d looks unlimited; exhaustion will track host memory", limit
            )
        logger.info(
            "[telemetry.cgroup] detected cgroup %s | limit=%dMB | baseline=%dMB",
            self._reader.version_label(),
            limit // (1024 * 1024),
            self._baseline // (1024 * 1024),
        )

    @property
    def version(self) -> str:
        return self._reader.version_label()

    @property
    def baseline_usage_bytes(self) -> int:
        return self._baseline

    def snapshot(self) -> MemorySnapshot:
        limit = self._reader.limit_bytes()
        used = self._reader.usage_bytes()
        return MemorySnapshot(used_bytes=used, total_bytes=limit, limit_bytes=limit)
