import time

import pytest

from oom_drill.allocator import DeadlineWatchdog
from oom_drill.telemetry import TelemetryParseError
from tests.fixtures.fake_telemetry import FakeClock, make_engine


def _time_engine(clock, **overrides):
    params = dict(policy="time", duration_seconds=10, target_rate=2, time_tick_interval_seconds=0.05)
    params.update(overrides)
    return make_engine(limit=1000, clock=clock, **params)


def test_tick_moves_from_armed_to_fired():
    clock = FakeClock(3.0)
    engine, _ = _time_engine(clock)
    watchdog = DeadlineWatchdog(engine)

    assert watchdog.state == "armed"
    assert watchdog.tick() is False

    clock.advance(7.0)
    assert watchdog.tick() is True
    assert watchdog.state == "fired"
    assert watchdog.tick() is False
    assert engine.store.retained_bytes == 1000


def test_tick_failure_is_reraised_and_not_retried():
    clock = FakeClock(10.0)
    engine, telemetry = _time_engine(clock)
    telemetry.fail_with = TelemetryParseError("memory.current does not hold a decimal integer")
    watchdog = DeadlineWatchdog(engine)

    with pytest.raises(TelemetryParseError):
        watchdog.tick()
    assert watchdog.state == "fired"

    telemetry.fail_with = None
    assert watchdog.tick() is False
    assert watchdog.tick() is False
    assert engine.store.chunk_count == 0


def test_ticker_not_started_for_request_policy():
    engine, _ = make_engine(limit=1000, policy="request")
    watchdog = DeadlineWatchdog(engine)

    assert watchdog.start() is False
    assert watchdog.running is False


def test_ticker_not_started_when_auto_allocate_disabled():
    engine, _ = _time_engine(FakeClock(), auto_allocate_on_deadline=False)

    assert DeadlineWatchdog(engine).start() is False


def test_background_ticker_fires_after_deadline():
    clock = FakeClock(10.0)
    engine, _ = _time_engine(clock)
    watchdog = DeadlineWatchdog(engine)

    assert watchdog.start() is True
    try:
        assert watchdog.running is True
        deadline = time.monotonic() + 5.0
        while not engine.deadline_triggered and time.monotonic() < deadline:
            time.sleep(0.02)
    finally:
        watchdog.shutdown()

    assert watchdog.state == "fired"
    assert watchdog.running is False
    assert engine.store.retained_bytes == 1000
