import pytest
from pydantic import ValidationError

from oom_drill import config
from oom_drill.allocator import AllocationPolicy, AllocatorConfig


@pytest.fixture(autouse=True)
def _fresh_config_cache():
    config.clear_config_cache()
    yield
    config.clear_config_cache()


def test_defaults_match_documented_values():
    cfg = AllocatorConfig()

    assert cfg.policy is AllocationPolicy.REQUEST
    assert cfg.request_total == 100
    assert cfg.duration_seconds == 30
    assert cfg.target_rate == 10_000
    assert cfg.allocation_chunk_bytes == 1 << 20
    assert cfg.recent_window_size == 64
    assert cfg.overshoot_multiplier == 10
    assert cfg.safety_margin_bytes == 20 * 1024 * 1024


def test_environment_populates_config(monkeypatch):
    monkeypatch.setenv("CRASH_OOM_POLICY", "Time")
    monkeypatch.setenv("CRASH_TIME_DURATION_SECONDS", "10")
    monkeypatch.setenv("CRASH_TIME_TARGET_RPS", "2")
    monkeypatch.setenv("CRASH_TIME_AUTO_ALLOCATE_ON_DEADLINE", "no")
    monkeypatch.setenv("CRASH_TOUCH_PAGES", "false")
    monkeypatch.setenv("CRASH_MAX_RETAINED_CHUNKS", "16")
    monkeypatch.setenv("CRASH_RANDOM_SEED", "99")

    cfg = config.load_allocator_config()

    assert cfg.policy is AllocationPolicy.TIME
    assert cfg.duration_seconds == 10
    assert cfg.target_rate == 2
    assert cfg.auto_allocate_on_deadline is False
    assert cfg.touch_pages is False
    assert cfg.max_retained_chunks == 16
    assert cfg.random_seed == 99


def test_malformed_numbers_fall_back_to_defaults(monkeypatch):
    monkeypatch.setenv("CRASH_REQ_TOTAL", "lots")
    monkeypatch.setenv("CRASH_REALISTIC_ALLOC_PROB", "often")
    monkeypatch.setenv("CRASH_RANDOM_SEED", "seed")

    cfg = config.load_allocator_config()

    assert cfg.request_total == 100
    assert cfg.realistic_alloc_probability == 0.7
    assert cfg.random_seed is None


def test_unknown_policy_is_rejected(monkeypatch):
    monkeypatch.setenv("CRASH_OOM_POLICY", "chaos")

    with pytest.raises(ValueError, match="unknown OOM policy"):
        config.load_allocator_config()


def test_out_of_range_probability_fails_validation():
    with pytest.raises(ValidationError):
        AllocatorConfig(realistic_dealloc_probability=1.5)


def test_request_total_must_be_positive():
    with pytest.raises(ValidationError):
        AllocatorConfig(request_total=0)


def test_config_is_immutable():
    cfg = AllocatorConfig()

    with pytest.raises(ValidationError):
        cfg.request_total = 5


def test_backend_accepts_cgroup_alias(monkeypatch):
    monkeypatch.setenv("CRASH_TELEMETRY_BACKEND", "cgroup")

    assert config.get_telemetry_backend() == "container"


def test_process_ceiling_zero_means_detect(monkeypatch):
    monkeypatch.setenv("CRASH_PROCESS_MAX_BYTES", "0")
    assert config.get_process_max_bytes() is None

    config.clear_config_cache()
    monkeypatch.setenv("CRASH_PROCESS_MAX_BYTES", "4096")
    assert config.get_process_max_bytes() == 4096
