from __future__ import annotations

import time


class StartupClock:
    """Uptime measured from service construction."""

    def __init__(self) -> None:
        self._started = time.monotonic()

    def uptime_seconds(self) -> float:
        return time.monotonic() - self._started

    def uptime_millis(self) -> int:
        return int(self.uptime_seconds() * 1000)
