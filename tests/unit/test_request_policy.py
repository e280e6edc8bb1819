"""Request-bound policy: linear depletion across a fixed number of calls."""
import threading

import pytest

from oom_drill.telemetry import TelemetryParseError
from tests.fixtures.fake_telemetry import make_engine


def test_four_requests_split_thousand_bytes_evenly():
    engine, _ = make_engine(limit=1000, request_total=4)

    results = [engine.on_invoke() for _ in range(4)]

    assert [r.bytes_allocated for r in results] == [250, 250, 250, 250]
    assert [r.units_left for r in results] == [4, 3, 2, 1]
    assert [r.request_count for r in results] == [1, 2, 3, 4]
    assert [r.bytes_remaining for r in results] == [1000, 750, 500, 250]
    assert engine.remaining_headroom() == 0
    assert engine.store.retained_bytes == 1000
    assert all(r.policy == "request" for r in results)


@pytest.mark.parametrize("request_total", [1, 3, 7, 10])
@pytest.mark.parametrize("budget", [1000, 12_345, 999_999])
def test_headroom_reaches_zero_by_final_request(request_total, budget):
    engine, _ = make_engine(limit=budget, request_total=request_total, allocation_chunk_bytes=4096)

    allocated = 0
    previous = engine.remaining_headroom()
    for _ in range(request_total):
        result = engine.on_invoke()
        allocated += result.bytes_allocated
        assert result.bytes_remaining <= previous
        previous = result.bytes_remaining

    assert allocated >= budget
    assert engine.remaining_headroom() == 0


def test_uneven_budget_rounds_up_and_self_corrects():
    engine, _ = make_engine(limit=1000, request_total=3)

    sizes = [engine.on_invoke().bytes_allocated for _ in range(3)]

    assert sizes == [334, 333, 333]
    assert sum(sizes) == 1000


def test_requests_after_total_allocate_at_least_one_byte():
    engine, _ = make_engine(limit=100, request_total=2)
    engine.on_invoke()
    engine.on_invoke()

    extra = engine.on_invoke()

    assert extra.units_left == 1
    assert extra.bytes_allocated == 1
    assert extra.bytes_remaining == 0


def test_plan_tracks_external_usage_growth():
    engine, telemetry = make_engine(limit=1000, request_total=4)
    engine.on_invoke()

    # Something else in the process grabbed 350 bytes between calls
    telemetry.base_used = 350
    second = engine.on_invoke()

    assert second.bytes_allocated == 134  # ceil(400 / 3)


def test_status_does_not_mutate_counters():
    engine, _ = make_engine(limit=1000, request_total=4)
    engine.on_invoke()
    before = (engine.request_count, engine.virtual_applied, engine.store.chunk_count)

    for _ in range(3):
        status = engine.status()

    assert (engine.request_count, engine.virtual_applied, engine.store.chunk_count) == before
    assert status.request_count == 1
    assert status.retained_chunks == 1
    assert status.retained_bytes == 250
    assert status.request_total == 4
    assert status.telemetry_backend == "fake"
    assert status.deadline_triggered is False


def test_concurrent_invocations_are_serialized():
    engine, _ = make_engine(limit=10_000_000, request_total=1000)
    totals = []
    lock = threading.Lock()

    def worker():
        for _ in range(10):
            result = engine.on_invoke()
            with lock:
                totals.append(result.bytes_allocated)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert engine.request_count == 80
    assert engine.store.retained_bytes == sum(totals)


def test_telemetry_parse_error_fails_the_call_without_allocating():
    engine, telemetry = make_engine(limit=1000, request_total=4)
    telemetry.fail_with = TelemetryParseError("memory.current does not hold a decimal integer")

    with pytest.raises(TelemetryParseError):
        engine.on_invoke()

    assert engine.store.chunk_count == 0
