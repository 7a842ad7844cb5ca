"""
Shutter Routes - Timed, Interval, Change-Detection and Programmable Capture

Provides endpoints for driving the shutter service:
- Start one of the four capture automations (starting one stops the others)
- Stop whatever is running
- Read the published progress state (countdown, capture count, diff meter, current step)
- Adjust change sensitivity while running
- Poll recent capture events

All start endpoints capture a fixed region given in the request body.
"""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
from typing import List, Optional
import logging
from routes import get_deps
from shutter_models import NormalizedRect, ProgramStep, Region
from utils.error_handler import ServiceUnavailableError, handle_api_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/shutter", tags=["shutter"])


# Request Models
class DelayedRequest(BaseModel):
    seconds: int = Field(3, ge=0)


class IntervalRequest(BaseModel):
    seconds: float = Field(5.0, gt=0)
    max_count: int = Field(0, ge=0)


class ChangeDetectionRequest(BaseModel):
    region: Region
    sensitivity: Optional[float] = Field(None, gt=0, le=1)
    sub_rect: Optional[NormalizedRect] = None


class ProgramRequest(BaseModel):
    region: Region
    steps: List[ProgramStep] = Field(..., min_length=1)


class SensitivityRequest(BaseModel):
    sensitivity: float = Field(..., gt=0, le=1)


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _require_service():
    deps = get_deps()
    if not deps.shutter_service:
        raise ServiceUnavailableError("shutter_service")
    return deps.shutter_service


def _fixed_region(region: Region):
    """Region provider for a region that never moves"""
    return lambda: region


def _state_response():
    service = _require_service()
    return {"success": True, "state": service.state.model_dump(mode="json")}


# =============================================================================
# STATE
# =============================================================================

@router.get("/state")
async def get_shutter_state():
    """Get the published shutter state"""
    try:
        return _state_response()
    except Exception as e:
        return handle_api_error(e)


@router.get("/captures")
async def get_recent_captures(count: int = 50):
    """Get recent capture events, oldest first"""
    deps = get_deps()
    if not deps.capture_sink or not hasattr(deps.capture_sink, "get_recent"):
        raise HTTPException(status_code=503, detail="Capture history not available")

    events = deps.capture_sink.get_recent(count)
    return {
        "success": True,
        "count": len(events),
        "captures": [event.model_dump(mode="json") for event in events]
    }


@router.get("/program/step-types")
async def get_step_types():
    """List the step types accepted in programs"""
    try:
        service = _require_service()
        return {"success": True, "step_types": service.step_scheduler.get_supported_step_types()}
    except Exception as e:
        return handle_api_error(e)


# =============================================================================
# START / STOP
# =============================================================================

@router.post("/delayed")
async def start_delayed(request: DelayedRequest):
    """Capture once after a countdown"""
    try:
        logger.info(f"[API] Start delayed capture ({request.seconds}s)")
        _require_service().start_delayed(request.seconds)
        return _state_response()
    except Exception as e:
        return handle_api_error(e)


@router.post("/interval")
async def start_interval(request: IntervalRequest):
    """Capture now and then every N seconds"""
    try:
        logger.info(f"[API] Start interval capture ({request.seconds}s, max={request.max_count})")
        _require_service().start_interval(request.seconds, request.max_count)
        return _state_response()
    except Exception as e:
        return handle_api_error(e)


@router.post("/change-detection")
async def start_change_detection(request: ChangeDetectionRequest):
    """Capture now and whenever the monitored region changes"""
    try:
        logger.info(f"[API] Start change detection on {request.region}")
        _require_service().start_change_detection(
            _fixed_region(request.region),
            sensitivity=request.sensitivity,
            sub_rect=request.sub_rect,
        )
        return _state_response()
    except Exception as e:
        return handle_api_error(e)


@router.post("/program")
async def start_program(request: ProgramRequest):
    """Run a capture program"""
    try:
        logger.info(f"[API] Start program ({len(request.steps)} steps) on {request.region}")
        _require_service().start_programmable(request.steps, _fixed_region(request.region))
        return _state_response()
    except Exception as e:
        return handle_api_error(e)


@router.post("/sensitivity")
async def set_sensitivity(request: SensitivityRequest):
    """Adjust change sensitivity"""
    try:
        _require_service().set_sensitivity(request.sensitivity)
        return _state_response()
    except Exception as e:
        return handle_api_error(e)


@router.post("/stop")
async def stop_all():
    """Stop the active automation (no-op when idle)"""
    try:
        logger.info("[API] Stop all")
        _require_service().stop_all()
        return _state_response()
    except Exception as e:
        return handle_api_error(e)
