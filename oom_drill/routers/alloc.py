"""
Allocation API Router

One GET /alloc/hit is one unit of inbound load for the allocation engine.
GET /alloc/status is read-only introspection.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException

from oom_drill.allocator import AllocationEngine, ArithmeticOverflow, UnsupportedPolicy
from oom_drill.dependencies.allocator import get_allocator
from oom_drill.schemas import AllocationResult, AllocatorStatus
from oom_drill.telemetry import TelemetryError

logger = logging.getLogger("oom_drill.alloc_api")

router = APIRouter(prefix="/alloc", tags=["alloc"])


# =============================================================================
# GET /alloc/hit - one invocation of the active policy
# =============================================================================

@router.get("/hit", response_model=AllocationResult)
def hit(engine: AllocationEngine = Depends(get_allocator)):
    """
    Apply the active allocation policy once.

    Returns 503 when telemetry cannot be read, 501 when the policy has no
    path on this target, 500 when planning overflows.
    """
    try:
        result = engine.on_invoke()
    except TelemetryError as e:
        logger.error("[alloc.api.hit] telemetry_error=%s", e)
        raise HTTPException(status_code=503, detail=f"Memory telemetry unavailable: {e}")
    except UnsupportedPolicy as e:
        logger.error("[alloc.api.hit] unsupported_policy=%s", e)
        raise HTTPException(status_code=501, detail=str(e))
    except ArithmeticOverflow as e:
        logger.error("[alloc.api.hit] overflow=%s", e)
        raise HTTPException(status_code=500, detail=str(e))

    logger.debug(
        "[alloc.api.hit] policy=%s n=%d bytes=%d chunks=%d remaining=%d",
        result.policy, result.request_count, result.bytes_allocated,
        result.retained_chunks, result.bytes_remaining,
    )
    return result


# =============================================================================
# GET /alloc/status - read-only snapshot
# =============================================================================

@router.get("/status", response_model=AllocatorStatus)
def status(engine: AllocationEngine = Depends(get_allocator)):
    try:
        return engine.status()
    except TelemetryError as e:
        logger.error("[alloc.api.status] telemetry_error=%s", e)
        raise HTTPException(status_code=503, detail=f"Memory telemetry unavailable: {e}")
