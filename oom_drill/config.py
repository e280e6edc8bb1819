import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

from oom_drill.allocator.policies import AllocationPolicy, AllocatorConfig

# Load .env once when module is imported. `override=True` ensures that values
# defined in a local .env take precedence over the container environment, so a
# drill can be re-tuned without rebuilding the image.
load_dotenv(override=True)


def get_env_value(name: str, default: Optional[str] = None) -> Optional[str]:
    """Fetch an environment value, falling back to ``default`` when unset."""

    value = os.environ.get(name)
    if value is None:
        return default
    return value


def _get_bool_env(name: str, default: str = "false") -> bool:
    value = get_env_value(name)
    if value is None:
        value = default
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _get_int_env(name: str, default: str) -> int:
    value = get_env_value(name)
    try:
        return int(value if value is not None else default)
    except (TypeError, ValueError):
        return int(default)


def _get_float_env(name: str, default: str) -> float:
    value = get_env_value(name)
    try:
        return float(value if value is not None else default)
    except (TypeError, ValueError):
        return float(default)


# =============================
# Policy selection
# =============================


@lru_cache(maxsize=1)
def get_oom_policy() -> AllocationPolicy:
    return AllocationPolicy.parse(get_env_value("CRASH_OOM_POLICY", "request") or "request")


@lru_cache(maxsize=1)
def get_request_total() -> int:
    return _get_int_env("CRASH_REQ_TOTAL", "100")


@lru_cache(maxsize=1)
def get_time_duration_seconds() -> int:
    return _get_int_env("CRASH_TIME_DURATION_SECONDS", "30")


@lru_cache(maxsize=1)
def get_time_target_rate() -> int:
    return _get_int_env("CRASH_TIME_TARGET_RPS", "10000")


@lru_cache(maxsize=1)
def is_auto_allocate_on_deadline() -> bool:
    return _get_bool_env("CRASH_TIME_AUTO_ALLOCATE_ON_DEADLINE", "true")


@lru_cache(maxsize=1)
def get_time_tick_interval_seconds() -> float:
    return _get_float_env("CRASH_TIME_TICK_SECONDS", "0.5")


@lru_cache(maxsize=1)
def get_realistic_alloc_probability() -> float:
    return _get_float_env("CRASH_REALISTIC_ALLOC_PROB", "0.7")


@lru_cache(maxsize=1)
def get_realistic_alloc_chunk_bytes() -> int:
    return _get_int_env("CRASH_REALISTIC_ALLOC_SIZE_BYTES", "1048576")


@lru_cache(maxsize=1)
def get_realistic_dealloc_probability() -> float:
    return _get_float_env("CRASH_REALISTIC_DEALLOC_PROB", "0.3")


@lru_cache(maxsize=1)
def get_realistic_dealloc_target_bytes() -> int:
    return _get_int_env("CRASH_REALISTIC_DEALLOC_SIZE_BYTES", "262144")


# =============================
# Allocation realization
# =============================


@lru_cache(maxsize=1)
def is_touch_pages_enabled() -> bool:
    return _get_bool_env("CRASH_TOUCH_PAGES", "true")


@lru_cache(maxsize=1)
def get_touch_stride_bytes() -> int:
    return _get_int_env("CRASH_TOUCH_STRIDE_BYTES", "4096")


@lru_cache(maxsize=1)
def get_max_retained_chunks() -> int:
    return _get_int_env("CRASH_MAX_RETAINED_CHUNKS", "2147483647")


@lru_cache(maxsize=1)
def get_recent_window_size() -> int:
    return _get_int_env("CRASH_RECENT_WINDOW", "64")


@lru_cache(maxsize=1)
def get_safety_margin_bytes() -> int:
    return _get_int_env("CRASH_SYSTEM_SAFETY_BYTES", "20971520")


@lru_cache(maxsize=1)
def get_allocation_chunk_bytes() -> int:
    return _get_int_env("CRASH_CHUNK_BYTES", "1048576")


@lru_cache(maxsize=1)
def get_overshoot_multiplier() -> int:
    return _get_int_env("CRASH_OVERSHOOT_MULTIPLIER", "10")


@lru_cache(maxsize=1)
def get_random_seed() -> Optional[int]:
    value = get_env_value("CRASH_RANDOM_SEED")
    if value is None or value.strip() == "":
        return None
    try:
        return int(value)
    except ValueError:
        return None


# =============================
# Telemetry backends
# =============================


@lru_cache(maxsize=1)
def get_telemetry_backend() -> str:
    val = (get_env_value("CRASH_TELEMETRY_BACKEND", "process") or "process").strip().lower()
    # Accept the cgroup spelling used in container manifests
    if val == "cgroup":
        return "container"
    return val


@lru_cache(maxsize=1)
def get_process_max_bytes() -> Optional[int]:
    value = _get_int_env("CRASH_PROCESS_MAX_BYTES", "0")
    return value if value > 0 else None


@lru_cache(maxsize=1)
def get_cgroup_root() -> str:
    return get_env_value("CRASH_CGROUP_ROOT", "/sys/fs/cgroup") or "/sys/fs/cgroup"


def load_allocator_config() -> AllocatorConfig:
    """Assemble the immutable allocator configuration from the environment."""

    return AllocatorConfig(
        policy=get_oom_policy(),
        request_total=get_request_total(),
        duration_seconds=get_time_duration_seconds(),
        target_rate=get_time_target_rate(),
        auto_allocate_on_deadline=is_auto_allocate_on_deadline(),
        time_tick_interval_seconds=get_time_tick_interval_seconds(),
        realistic_alloc_probability=get_realistic_alloc_probability(),
        realistic_alloc_chunk_bytes=get_realistic_alloc_chunk_bytes(),
        realistic_dealloc_probability=get_realistic_dealloc_probability(),
        realistic_dealloc_target_bytes=get_realistic_dealloc_target_bytes(),
        touch_pages=is_touch_pages_enabled(),
        touch_stride_bytes=get_touch_stride_bytes(),
        max_retained_chunks=get_max_retained_chunks(),
        recent_window_size=get_recent_window_size(),
        safety_margin_bytes=get_safety_margin_bytes(),
        allocation_chunk_bytes=get_allocation_chunk_bytes(),
        overshoot_multiplier=get_overshoot_multiplier(),
        random_seed=get_random_seed(),
    )


def clear_config_cache() -> None:
    """Drop memoized env lookups (tests re-read the environment)."""

    for getter in (
        get_oom_policy,
        get_request_total,
        get_time_duration_seconds,
        get_time_target_rate,
        is_auto_allocate_on_deadline,
        get_time_tick_interval_seconds,
        get_realistic_alloc_probability,
        get_realistic_alloc_chunk_bytes,
        get_realistic_dealloc_probability,
        get_realistic_dealloc_target_bytes,
        is_touch_pages_enabled,
        get_touch_stride_bytes,
        get_max_retained_chunks,
        get_recent_window_size,
        get_safety_margin_bytes,
        get_allocation_chunk_bytes,
        get_overshoot_multiplier,
        get_random_seed,
        get_telemetry_backend,
        get_process_max_bytes,
        get_cgroup_root,
    ):
        getter.cache_clear()
