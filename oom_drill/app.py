from datetime import datetime, timezone
import logging
from os import getenv
import time as _time

from fastapi import FastAPI, Request

from oom_drill.dependencies.allocator import init_allocator, shutdown_allocator
from oom_drill.routers.alloc import router as alloc_router
from oom_drill.schemas import HealthResponse

app = FastAPI(title="OOM Drill API", version="0.1.0")

logger = logging.getLogger("oom_drill.api")
if not logger.handlers:
	_handler = logging.StreamHandler()
	_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
	logger.addHandler(_handler)
_level_name = getenv("LOG_LEVEL", "INFO").upper()
_level = getattr(logging, _level_name, logging.INFO)
if not isinstance(_level, int):
	_level = logging.INFO
logger.setLevel(_level)
# Has its own handler; propagating would print every line twice
logger.propagate = False

# Root logger fallback (so engine/telemetry/watchdog loggers still emit)
_root = logging.getLogger()
if not _root.handlers:
	_root_handler = logging.StreamHandler()
	_root_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s [%(name)s] %(message)s"))
	_root.addHandler(_root_handler)
	_root.setLevel(_level)


# Request/response logging middleware (minimal, no bodies)
@app.middleware("http")
async def _log_requests(request: Request, call_next):
	start = _time.perf_counter()
	path = request.url.path
	method = request.method
	client = request.client.host if request.client else "-"
	try:
		response = await call_next(request)
		status = getattr(response, "status_code", 200)
	except Exception as exc:  # pragma: no cover
		elapsed_ms = int(((_time.perf_counter() - start) * 1000))
		logger.exception("[http] %s %s error=%s client=%s latency_ms=%s", method, path, exc.__class__.__name__, client, elapsed_ms)
		raise
	elapsed_ms = int(((_time.perf_counter() - start) * 1000))
	logger.info("[http] %s %s status=%s client=%s latency_ms=%s", method, path, status, client, elapsed_ms)
	return response


@app.on_event("startup")
def _on_startup() -> None:
	# Telemetry detection failures (no cgroup, unbounded limit) abort startup
	engine = init_allocator()
	logger.info(
		"[startup] policy=%s request_total=%d duration_s=%d target_rate=%d touch_pages=%s",
		engine.policy.value,
		engine.config.request_total,
		engine.config.duration_seconds,
		engine.config.target_rate,
		engine.config.touch_pages,
	)


@app.on_event("shutdown")
def _on_shutdown() -> None:
	shutdown_allocator()


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
	return HealthResponse(status="ok", time=datetime.now(timezone.utc).isoformat())


app.include_router(alloc_router)
