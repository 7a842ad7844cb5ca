"""
Shutter - Capture Sinks
Receivers of capture notifications (persistence, UI flash, ...)
"""

import logging
from collections import deque
from typing import Callable, List, Protocol

from shutter_models import CaptureEvent

logger = logging.getLogger(__name__)


class CaptureSink(Protocol):
    """Notified once per logical capture event. Return value is ignored."""

    def on_capture(self, event: CaptureEvent) -> None:
        ...


class CallbackCaptureSink:
    """Adapts a plain callable to the CaptureSink interface"""

    def __init__(self, callback: Callable[[CaptureEvent], None]):
        self.callback = callback

    def on_capture(self, event: CaptureEvent) -> None:
        self.callback(event)


class RecentCapturesSink:
    """
    Keeps a circular buffer of recent capture events

    Used by the HTTP surface so clients can poll for captures they missed.
    """

    def __init__(self, max_buffer: int = 100):
        self.events: deque = deque(maxlen=max_buffer)

    def on_capture(self, event: CaptureEvent) -> None:
        self.events.append(event)
        logger.info(
            f"[CaptureSink] Capture #{event.capture_number} ({event.mode.value}"
            f"{', step ' + event.step_id if event.step_id else ''})"
        )

    def get_recent(self, count: int = 50) -> List[CaptureEvent]:
        """Get recent capture events, oldest first"""
        if count <= 0:
            return []
        return list(self.events)[-count:]
