from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class AllocationResult(BaseModel):
	policy: str
	request_count: int
	bytes_allocated: int
	bytes_released: int = 0
	retained_chunks: int
	used_bytes: int
	total_bytes: int
	limit_bytes: int
	bytes_remaining: int
	# requests left (request), remaining virtual units (time), -1 (realistic)
	units_left: int
	uptime_ms: int


class AllocatorStatus(BaseModel):
	policy: str
	request_count: int
	retained_chunks: int
	retained_bytes: int
	recent_window_chunks: int
	used_bytes: int
	total_bytes: int
	limit_bytes: int
	baseline_usage_bytes: Optional[int] = None
	telemetry_backend: str
	uptime_ms: int
	request_total: int
	duration_seconds: int
	target_rate: int
	virtual_applied: int
	deadline_triggered: bool


class HealthResponse(BaseModel):
	status: str
	time: str
