"""Allocation policy engine and its collaborators."""

from .clock import StartupClock
from .engine import AllocationEngine, ContainerAllocationEngine
from .errors import AllocatorError, ArithmeticOverflow, UnsupportedPolicy
from .policies import AllocationPolicy, AllocatorConfig
from .retention import RetainedChunk, RetentionStore
from .watchdog import DeadlineWatchdog

__all__ = [
    "AllocationEngine",
    "AllocationPolicy",
    "AllocatorConfig",
    "AllocatorError",
    "ArithmeticOverflow",
    "ContainerAllocationEngine",
    "DeadlineWatchdog",
    "RetainedChunk",
    "RetentionStore",
    "StartupClock",
    "UnsupportedPolicy",
]
