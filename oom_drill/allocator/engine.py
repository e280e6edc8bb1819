"""Allocation policy engine.

Each inbound unit of load calls :meth:`AllocationEngine.on_invoke`, which reads
fresh telemetry, decides how many bytes to retain under the active policy and
realizes that through the :class:`RetentionStore`. Everything that reads
telemetry and then mutates state happens under one lock, so two concurrent
callers never plan against the same stale headroom.
"""

from __future__ import annotations

import logging
import random
import threading
from typing import Callable, Dict, FrozenSet, Optional

from oom_drill.schemas import AllocationResult, AllocatorStatus
from oom_drill.telemetry import MemorySnapshot, MemoryTelemetry

from .clock import StartupClock
from .errors import UnsupportedPolicy, ceil_div, checked_mul
from .policies import AllocationPolicy, AllocatorConfig
from .retention import RetentionStore

logger = logging.getLogger("oom_drill.engine")


class AllocationEngine:
    """Drives the host process toward its own memory ceiling."""

    target = "process"
    supported_policies: FrozenSet[AllocationPolicy] = frozenset(AllocationPolicy)

    def __init__(
        self,
        config: AllocatorConfig,
        telemetry: MemoryTelemetry,
        *,
        clock: Optional[StartupClock] = None,
        store: Optional[RetentionStore] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config
        self._telemetry = telemetry
        self._clock = clock or StartupClock()
        self._store = store or RetentionStore(
            chunk_bytes=config.allocation_chunk_bytes,
            max_chunks=config.max_retained_chunks,
            touch_pages=config.touch_pages,
            touch_stride=config.touch_stride_bytes,
            recent_window=config.recent_window_size,
        )
        self._rng = rng or random.Random(config.random_seed)
        self._lock = threading.Lock()

        self._request_count = 0
        self._virtual_applied = 0
        self._deadline_triggered = False

        self._handlers: Dict[AllocationPolicy, Callable[[], AllocationResult]] = {
            AllocationPolicy.REQUEST: self._apply_request_bound,
            AllocationPolicy.TIME: self._apply_time_bound,
            AllocationPolicy.REALISTIC: self._apply_realistic,
        }

    @property
    def policy(self) -> AllocationPolicy:
        return self.config.policy

    @property
    def telemetry(self) -> MemoryTelemetry:
        return self._telemetry

    @property
    def store(self) -> RetentionStore:
        return self._store

    @property
    def request_count(self) -> int:
        return self._request_count

    @property
    def virtual_applied(self) -> int:
        return self._virtual_applied

    @property
    def deadline_triggered(self) -> bool:
        return self._deadline_triggered

    # ------------------------------------------------------------------
    # Public contract
    # ------------------------------------------------------------------

    def on_invoke(self) -> AllocationResult:
        with self._lock:
            self._ensure_supported()
            self._request_count += 1
            return self._handlers[self.policy]()

    def on_deadline(self) -> bool:
        """Allocate all remaining headroom once the time-bound deadline passes.

        Returns True only for the single call that fired.
        """

        cfg = self.config
        if cfg.policy is not AllocationPolicy.TIME or cfg.policy not in self.supported_policies:
            return False
        if not cfg.auto_allocate_on_deadline:
            return False
        if self._deadline_triggered or self._clock.uptime_seconds() < cfg.duration_seconds:
            return False

        with self._lock:
            if self._deadline_triggered:
                return False
            self._deadline_triggered = True
            remaining = self.remaining_headroom()
            retained = self._store.allocate(remaining) if remaining > 0 else 0

        logger.warning(
            "[engine.deadline] fired after %.1fs remaining=%d retained=%d chunks=%d",
            self._clock.uptime_seconds(),
            remaining,
            retained,
            self._store.chunk_count,
        )
        return True

    def status(self) -> AllocatorStatus:
        with self._lock:
            snap = self._telemetry.snapshot()
            return AllocatorStatus(
                policy=self.policy.value,
                request_count=self._request_count,
                retained_chunks=self._store.chunk_count,
                retained_bytes=self._store.retained_bytes,
                recent_window_chunks=self._store.recent_count,
                used_bytes=snap.used_bytes,
                total_bytes=snap.total_bytes,
                limit_bytes=snap.limit_bytes,
                baseline_usage_bytes=self._telemetry.baseline_usage_bytes,
                telemetry_backend=self._telemetry.label,
                uptime_ms=self._clock.uptime_millis(),
                request_total=self.config.request_total,
                duration_seconds=self.config.duration_seconds,
                target_rate=self.config.target_rate,
                virtual_applied=self._virtual_applied,
                deadline_triggered=self._deadline_triggered,
            )

    def remaining_headroom(self, snapshot: Optional[MemorySnapshot] = None) -> int:
        snap = snapshot or self._telemetry.snapshot()
        return snap.headroom(self._reserve_bytes())

    # ------------------------------------------------------------------
    # Policies (caller holds the lock)
    # ------------------------------------------------------------------

    def _apply_request_bound(self) -> AllocationResult:
        n = self._request_count
        requests_left = max(1, self.config.request_total - (n - 1))
        remaining = self.remaining_headroom()
        planned = max(1, ceil_div(remaining, requests_left))
        planned = self._final_request_bytes(n, remaining, planned)

        self._store.allocate(planned)
        logger.debug(
            "[engine.request] n=%d requests_left=%d remaining=%d bytes=%d", n, requests_left, remaining, planned
        )
        return self._build_result(planned, 0, requests_left, remaining)

    def _apply_time_bound(self) -> AllocationResult:
        cfg = self.config
        total_units = max(1, checked_mul(cfg.duration_seconds, cfg.target_rate))
        elapsed = int(self._clock.uptime_seconds())
        expected = min(total_units, checked_mul(elapsed, cfg.target_rate))

        applied_before = self._virtual_applied
        # Sparse traffic catches up the whole missed deficit; the call itself is one unit
        units_now = max(0, expected - applied_before) + 1
        remaining_units = max(1, total_units - applied_before)

        remaining = self.remaining_headroom()
        bytes_per_unit = max(1, ceil_div(remaining, remaining_units))
        planned = checked_mul(bytes_per_unit, units_now)

        self._virtual_applied = applied_before + units_now
        self._store.allocate(planned)
        logger.debug(
            "[engine.time] elapsed=%ds units=%d remaining_units=%d bytes=%d",
            elapsed,
            units_now,
            remaining_units,
            planned,
        )
        return self._build_result(planned, 0, remaining_units, remaining)

    def _apply_realistic(self) -> AllocationResult:
        cfg = self.config
        allocated = 0
        released = 0
        if self._rng.random() < cfg.realistic_alloc_probability:
            self._store.allocate(cfg.realistic_alloc_chunk_bytes)
            allocated = cfg.realistic_alloc_chunk_bytes
        if self._rng.random() < cfg.realistic_dealloc_probability and self._store.chunk_count:
            released = self._store.evict_random(cfg.realistic_dealloc_target_bytes, self._rng)
        logger.debug("[engine.realistic] allocated=%d released=%d chunks=%d", allocated, released, self._store.chunk_count)
        return self._build_result(allocated, released, -1)

    # ------------------------------------------------------------------
    # Hooks for target-specific engines
    # ------------------------------------------------------------------

    def _reserve_bytes(self) -> int:
        return 0

    def _final_request_bytes(self, n: int, remaining: int, planned: int) -> int:
        return planned

    def _ensure_supported(self) -> None:
        if self.policy not in self.supported_policies:
            raise UnsupportedPolicy(f"{self.policy.value} policy is not implemented for {self.target} targets")

    def _build_result(
        self, allocated: int, released: int, units_left: int, remaining: Optional[int] = None
    ) -> AllocationResult:
        # Planned policies report the headroom they planned against; churn reports it afterwards
        snap = self._telemetry.snapshot()
        if remaining is None:
            remaining = self.remaining_headroom(snap)
        return AllocationResult(
            policy=self.policy.value,
            request_count=self._request_count,
            bytes_allocated=allocated,
            bytes_released=released,
            retained_chunks=self._store.chunk_count,
            used_bytes=snap.used_bytes,
            total_bytes=snap.total_bytes,
            limit_bytes=snap.limit_bytes,
            bytes_remaining=remaining,
            units_left=units_left,
            uptime_ms=self._clock.uptime_millis(),
        )


class ContainerAllocationEngine(AllocationEngine):
    """Targets the container's cgroup limit instead of the process ceiling.

    Keeps ``safety_margin_bytes`` out of the plan, then on the final planned
    request overshoots by ``overshoot_multiplier`` so the limit is crossed even
    if earlier usage readings were conservative.
    """

    target = "container"
    supported_policies = frozenset({AllocationPolicy.REQUEST})

    def _reserve_bytes(self) -> int:
        return self.config.safety_margin_bytes

    def _final_request_bytes(self, n: int, remaining: int, planned: int) -> int:
        if n < self.config.request_total:
            return planned
        overshoot = checked_mul(self.config.overshoot_multiplier, self.config.safety_margin_bytes + remaining)
        logger.warning("[engine.request] n=%d final request; overshooting limit with bytes=%d", n, overshoot)
        return overshoot
