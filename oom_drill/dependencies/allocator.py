import logging
import threading
from typing import Optional

from fastapi import HTTPException

from oom_drill.allocator import AllocationEngine, AllocatorConfig, ContainerAllocationEngine, DeadlineWatchdog
from oom_drill.config import get_cgroup_root, get_process_max_bytes, get_telemetry_backend, load_allocator_config
from oom_drill.telemetry import CgroupMemoryTelemetry, MemoryTelemetry, build_telemetry

logger = logging.getLogger("oom_drill.api")

_engine: Optional[AllocationEngine] = None
_watchdog: Optional[DeadlineWatchdog] = None
_init_lock = threading.Lock()


def build_engine(config: AllocatorConfig, telemetry: MemoryTelemetry) -> AllocationEngine:
	"""Pick the engine matching the telemetry target."""
	if isinstance(telemetry, CgroupMemoryTelemetry):
		return ContainerAllocationEngine(config, telemetry)
	return AllocationEngine(config, telemetry)


def init_allocator() -> AllocationEngine:
	"""Build the process-wide engine and start its watchdog. Telemetry errors propagate."""
	global _engine, _watchdog
	with _init_lock:
		if _engine is not None:
			return _engine
		config = load_allocator_config()
		telemetry = build_telemetry(
			get_telemetry_backend(),
			process_max_bytes=get_process_max_bytes(),
			cgroup_root=get_cgroup_root(),
		)
		engine = build_engine(config, telemetry)
		watchdog = DeadlineWatchdog(engine)
		watchdog.start()
		_engine, _watchdog = engine, watchdog
		logger.info(
			"[startup] policy=%s target=%s telemetry=%s",
			config.policy.value, engine.target, telemetry.label,
		)
		return engine


def shutdown_allocator() -> None:
	global _engine, _watchdog
	with _init_lock:
		if _watchdog is not None:
			_watchdog.shutdown()
		_engine, _watchdog = None, None


def get_allocator() -> AllocationEngine:
	"""FastAPI dependency returning the engine; 503 before startup completes."""
	if _engine is None:
		raise HTTPException(status_code=503, detail="Allocator not initialized")
	return _engine


def get_watchdog() -> Optional[DeadlineWatchdog]:
	return _watchdog
