"""Buffers kept alive on purpose to apply memory pressure."""

from __future__ import annotations

import logging
import random
from collections import deque
from dataclasses import dataclass
from typing import Deque, List

logger = logging.getLogger("oom_drill.engine")


@dataclass(slots=True)
class RetainedChunk:
    """One allocated buffer. Never shared outside the store."""

    data: bytearray
    size: int


class RetentionStore:
    """Owns the retained chunks and the recent-allocation window.

    Not thread-safe on its own: the allocation engine serializes every call
    under its lock.

    The recent window is bookkeeping only. A chunk falling out of it stays in
    ``retained``, so window churn never relieves memory pressure.
    """

    def __init__(
        self,
        *,
        chunk_bytes: int = 1 << 20,
        max_chunks: int = 2_147_483_647,
        touch_pages: bool = True,
        touch_stride: int = 4096,
        recent_window: int = 64,
    ) -> None:
        self.chunk_bytes = chunk_bytes
        self.max_chunks = max_chunks
        self.touch_pages = touch_pages
        self.touch_stride = touch_stride
        self._retained: List[RetainedChunk] = []
        self._recent: Deque[RetainedChunk] = deque(maxlen=recent_window)
        self._retained_bytes = 0
        self._cap_logged = False

    @property
    def chunk_count(self) -> int:
        return len(self._retained)

    @property
    def retained_bytes(self) -> int:
        return self._retained_bytes

    @property
    def recent_count(self) -> int:
        return len(self._recent)

    def allocate(self, nbytes: int) -> int:
        """Allocate ``nbytes`` in chunks and retain them; return bytes retained.

        Stops early once ``max_chunks`` are held, so the caller's planned total
        may not be reached.
        """

        remaining = nbytes
        retained = 0
        while remaining > 0 and len(self._retained) < self.max_chunks:
            size = min(remaining, self.chunk_bytes)
            buf = bytearray(size)
            if self.touch_pages:
                # bytearray pages are lazily zero-mapped; a write forces them resident
                for offset in range(0, size, self.touch_stride):
                    buf[offset] = 1
            chunk = RetainedChunk(data=buf, size=size)
            self._recent.append(chunk)
            self._retained.append(chunk)
            self._retained_bytes += size
            retained += size
            remaining -= size

        if remaining > 0 and not self._cap_logged:
            self._cap_logged = True
            logger.warning(
                "[engine.retain] max_retained_chunks=%d reached; %d planned bytes not allocated",
                self.max_chunks,
                remaining,
            )
        return retained

    def evict_random(self, target_bytes: int, rng: random.Random) -> int:
        """Drop uniformly chosen chunks until ``target_bytes`` are freed or none remain.

        Swap-with-last removal: O(1) per chunk, insertion order not preserved.
        """

        released = 0
        while released < target_bytes and self._retained:
            idx = rng.randrange(len(self._retained))
            last = self._retained.pop()
            if idx < len(self._retained):
                removed = self._retained[idx]
                self._retained[idx] = last
            else:
                removed = last
            self._retained_bytes -= removed.size
            released += removed.size
        return released
