from importlib import reload
import warnings

warnings.filterwarnings(
    "ignore",
    category=DeprecationWarning,
    message=r"(?s).*on_event is deprecated",
)

import pytest
from fastapi.testclient import TestClient

from oom_drill.allocator import AllocationEngine
from tests.fixtures.fake_telemetry import FakeClock, make_engine


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def _prepare_app(monkeypatch: pytest.MonkeyPatch, engine: AllocationEngine):
    monkeypatch.setenv("CRASH_TELEMETRY_BACKEND", "process")

    import oom_drill.dependencies.allocator as deps
    import oom_drill.app as app_module
    reload(app_module)

    monkeypatch.setattr(deps, "_engine", None)
    monkeypatch.setattr(deps, "_watchdog", None)

    def _init_stub() -> AllocationEngine:
        deps._engine = engine
        return engine

    monkeypatch.setattr(app_module, "init_allocator", _init_stub)
    return app_module


@pytest.fixture
def api_engine(clock: FakeClock) -> AllocationEngine:
    engine, _telemetry = make_engine(limit=1000, clock=clock, request_total=4)
    return engine


@pytest.fixture
def api_client(monkeypatch: pytest.MonkeyPatch, api_engine: AllocationEngine):
    app_module = _prepare_app(monkeypatch, api_engine)
    with TestClient(app_module.app) as client:
        yield client
