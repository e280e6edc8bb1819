"""Policy selection and the tunables that shape an allocation drill."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AllocationPolicy(str, Enum):
    """How the engine schedules exhaustion."""

    REQUEST = "request"
    """Deplete headroom linearly across a fixed number of requests."""

    TIME = "time"
    """Deplete headroom against a virtual request rate over a fixed duration."""

    REALISTIC = "realistic"
    """Probabilistic allocate/free churn with no fixed exhaustion point."""

    @classmethod
    def parse(cls, value: str) -> "AllocationPolicy":
        normalized = (value or "").strip().lower()
        try:
            return cls(normalized)
        except ValueError:
            allowed = ", ".join(p.value for p in cls)
            raise ValueError(f"unknown OOM policy {value!r}; expected one of: {allowed}") from None


class AllocatorConfig(BaseModel):
    """Immutable configuration owned by the allocation engine."""

    model_config = ConfigDict(frozen=True)

    policy: AllocationPolicy = AllocationPolicy.REQUEST

    # Request-bound
    request_total: int = Field(default=100, ge=1)

    # Time-bound
    duration_seconds: int = Field(default=30, ge=1)
    target_rate: int = Field(default=10_000, ge=1)
    auto_allocate_on_deadline: bool = True
    time_tick_interval_seconds: float = Field(default=0.5, gt=0.0)

    # Realistic
    realistic_alloc_probability: float = Field(default=0.7, ge=0.0, le=1.0)
    realistic_alloc_chunk_bytes: int = Field(default=1 << 20, ge=1)
    realistic_dealloc_probability: float = Field(default=0.3, ge=0.0, le=1.0)
    realistic_dealloc_target_bytes: int = Field(default=256 * 1024, ge=1)
    random_seed: Optional[int] = None

    # Common
    touch_pages: bool = True
    touch_stride_bytes: int = Field(default=4096, ge=1)
    max_retained_chunks: int = Field(default=2_147_483_647, ge=0)
    recent_window_size: int = Field(default=64, ge=1)
    allocation_chunk_bytes: int = Field(default=1 << 20, ge=1)

    # Container-bound
    safety_margin_bytes: int = Field(default=20 * 1024 * 1024, ge=0)
    overshoot_multiplier: int = Field(default=10, ge=1)
    """Scale applied to ``safety_margin + remaining`` on the final planned request."""


__all__ = ["AllocationPolicy", "AllocatorConfig"]
