"""
Shutter - Models

Pydantic models for capture regions, program steps and published shutter state.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional, List, Tuple

from pydantic import BaseModel, ConfigDict, Field


class StepType(str, Enum):
    """Program step type"""
    CAPTURE = "capture"  # Notify sink, then store a new baseline image
    WAIT = "wait"  # Sleep for wait_seconds
    WAIT_FOR_CHANGE = "wait_for_change"  # Poll until diff > sensitivity
    WAIT_FOR_STABLE = "wait_for_stable"  # Poll until diff <= sensitivity
    LOOP = "loop"  # Repeat children loop_count times (0 = forever)


class ShutterMode(str, Enum):
    """Which automation currently owns the shutter"""
    IDLE = "idle"
    DELAYED = "delayed"
    INTERVAL = "interval"
    CHANGE_DETECTION = "change_detection"
    PROGRAMMABLE = "programmable"


class Region(BaseModel):
    """Axis-aligned rectangle in absolute display coordinates"""
    x: float = 0
    y: float = 0
    width: float = Field(..., ge=0)
    height: float = Field(..., ge=0)

    def pixel_bounds(self) -> Tuple[int, int, int, int]:
        """Return (left, top, right, bottom) rounded to whole screen pixels."""
        return (
            int(round(self.x)),
            int(round(self.y)),
            int(round(self.x + self.width)),
            int(round(self.y + self.height)),
        )

    @property
    def is_empty(self) -> bool:
        """True when the region covers no whole pixel once rounded for capture."""
        left, top, right, bottom = self.pixel_bounds()
        return right <= left or bottom <= top

    def resolve(self, sub_rect: Optional["NormalizedRect"]) -> "Region":
        """Map a normalized sub-rectangle onto this region. None means the whole region."""
        if sub_rect is None:
            return self
        left, top, right, bottom = sub_rect.clamped_edges()
        return Region(
            x=self.x + left * self.width,
            y=self.y + top * self.height,
            width=(right - left) * self.width,
            height=(bottom - top) * self.height,
        )


class NormalizedRect(BaseModel):
    """Sub-rectangle of a region, expressed as fractions in [0, 1]"""
    x: float = Field(0.0, ge=0, le=1)
    y: float = Field(0.0, ge=0, le=1)
    width: float = Field(1.0, ge=0, le=1)
    height: float = Field(1.0, ge=0, le=1)

    def clamped_edges(self):
        """Return (left, top, right, bottom) clipped to the unit square."""
        right = min(1.0, self.x + self.width)
        bottom = min(1.0, self.y + self.height)
        return self.x, self.y, max(self.x, right), max(self.y, bottom)

    @property
    def is_empty(self) -> bool:
        left, top, right, bottom = self.clamped_edges()
        return right <= left or bottom <= top


class ProgramStep(BaseModel):
    """One node of a user-authored capture program"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    step_type: StepType
    wait_seconds: float = Field(1.0, ge=0)  # WAIT
    sensitivity: float = Field(0.05, gt=0, le=1)  # WAIT_FOR_CHANGE / WAIT_FOR_STABLE
    loop_count: int = Field(1, ge=0)  # LOOP, 0 = repeat until stopped
    children: List["ProgramStep"] = Field(default_factory=list)  # LOOP only
    monitor_sub_rect: Optional[NormalizedRect] = None  # None = whole region
    description: Optional[str] = None


ProgramStep.model_rebuild()


class ShutterState(BaseModel):
    """Observable progress state, written only by the active mode"""
    is_active: bool = False
    active_mode: ShutterMode = ShutterMode.IDLE
    countdown: int = 0
    capture_count: int = 0
    max_capture_count: int = 0
    sensitivity: float = 0.05
    current_diff: float = 0.0
    current_step_id: Optional[str] = None


class CaptureEvent(BaseModel):
    """Payload handed to a capture sink once per logical capture"""
    mode: ShutterMode
    capture_number: int
    step_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)
