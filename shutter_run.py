"""
Shutter - Run Plumbing
Per-run cancellation, state publishing and off-loop capture shared by every mode
"""

import asyncio
import logging
from typing import Optional

from PIL import Image

from change_detector import image_difference
from shutter_models import CaptureEvent, Region, ShutterMode, ShutterState
from utils.error_handler import CaptureError

logger = logging.getLogger(__name__)


class ShutterRun:
    """
    Everything one active mode needs to talk to the outside world

    A run owns a cancellation event. Once it is set, every suspension point
    returns immediately and every state write or capture notification made
    through this run is refused, so a superseded run can never touch the
    state of its successor.
    """

    def __init__(
        self,
        mode: ShutterMode,
        state: ShutterState,
        capture_provider,
        capture_sink=None,
        poll_interval: float = 0.5,
        tick_seconds: float = 1.0,
    ):
        self.mode = mode
        self.state = state
        self.capture_provider = capture_provider
        self.capture_sink = capture_sink
        self.poll_interval = poll_interval
        self.tick_seconds = tick_seconds
        self._cancel_event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self):
        self._cancel_event.set()

    async def sleep(self, seconds: float) -> bool:
        """
        Suspend for `seconds`, waking early on cancellation

        Returns:
            True if the full duration elapsed, False if the run was cancelled
        """
        if self.cancelled:
            return False
        if seconds <= 0:
            await asyncio.sleep(0)
            return not self.cancelled

        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return not self.cancelled
        return False

    def publish(self, **fields) -> bool:
        """Write state fields unless the run has been cancelled."""
        if self.cancelled:
            return False
        for name, value in fields.items():
            setattr(self.state, name, value)
        return True

    def notify(self, step_id: Optional[str] = None) -> bool:
        """
        Count a capture and hand it to the sink

        Returns:
            False if the run was cancelled and nothing was sent
        """
        if self.cancelled:
            return False

        self.state.capture_count += 1
        event = CaptureEvent(
            mode=self.mode,
            capture_number=self.state.capture_count,
            step_id=step_id,
        )

        if self.capture_sink is not None:
            try:
                self.capture_sink.on_capture(event)
            except Exception as e:
                logger.error(f"[ShutterRun] Capture sink failed: {e}", exc_info=True)

        return True

    async def capture(self, region: Region) -> Optional[Image.Image]:
        """
        Capture a region off the event loop thread

        Returns:
            The bitmap, or None if the provider failed or the run was
            cancelled while the capture was in flight
        """
        if region.is_empty:
            logger.warning(f"[ShutterRun] Cannot capture empty region {region}")
            return None

        try:
            image = await asyncio.to_thread(self.capture_provider.capture_region, region)
        except CaptureError as e:
            logger.warning(f"[ShutterRun] Capture failed for {self.mode.value}: {e}")
            return None

        if self.cancelled:
            return None
        return image

    async def difference(self, reference: Image.Image, current: Image.Image) -> float:
        """Diff score computed off the event loop thread"""
        return await asyncio.to_thread(image_difference, reference, current)
