from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .engine import AllocationEngine
from .policies import AllocationPolicy

logger = logging.getLogger("oom_drill.watchdog")

ARMED = "armed"
FIRED = "fired"


class DeadlineWatchdog:
    """Periodically asks the engine to force exhaustion after the time-bound deadline.

    The armed/fired flag lives on the engine so that the check-and-fire is
    covered by the engine lock; this class only drives the ticks.
    """

    JOB_ID = "deadline_watchdog"

    def __init__(self, engine: AllocationEngine, *, interval_seconds: Optional[float] = None) -> None:
        self.engine = engine
        self.interval_seconds = interval_seconds or engine.config.time_tick_interval_seconds
        self._scheduler: Optional[BackgroundScheduler] = None

    @property
    def state(self) -> str:
        return FIRED if self.engine.deadline_triggered else ARMED

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def is_relevant(self) -> bool:
        cfg = self.engine.config
        return (
            cfg.policy is AllocationPolicy.TIME
            and cfg.auto_allocate_on_deadline
            and cfg.policy in self.engine.supported_policies
        )

    def tick(self) -> bool:
        try:
            fired = self.engine.on_deadline()
        except Exception as exc:
            logger.error("[watchdog.tick] on_deadline failed: %s", exc, exc_info=True)
            raise
        if fired:
            logger.info("[watchdog.tick] deadline fired; state=%s", self.state)
        return fired

    def start(self) -> bool:
        if self._scheduler is not None:
            return True
        if not self.is_relevant():
            logger.info("[watchdog] policy=%s; not starting deadline ticker", self.engine.policy.value)
            return False
        self._scheduler = BackgroundScheduler(timezone="UTC")
        self._scheduler.add_job(
            self.tick,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            coalesce=True,
            max_instances=1,
        )
        self._scheduler.start()
        logger.info(
            "[watchdog] started ticker interval=%.2fs deadline=%ds",
            self.interval_seconds,
            self.engine.config.duration_seconds,
        )
        return True

    def shutdown(self) -> None:
        if self._scheduler is None:
            return
        scheduler, self._scheduler = self._scheduler, None
        if scheduler.running:
            scheduler.shutdown(wait=False)
        logger.info("[watchdog] stopped ticker state=%s", self.state)
