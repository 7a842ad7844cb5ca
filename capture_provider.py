"""
Shutter - Capture Provider
Region capture interface consumed by the shutter engine, plus a Pillow implementation
"""

import logging
from typing import Protocol

from PIL import Image, ImageGrab

from shutter_models import Region
from utils.error_handler import CaptureError

logger = logging.getLogger(__name__)


class CaptureProvider(Protocol):
    """
    Produces a bitmap of a screen region.

    Implementations raise CaptureError when no bitmap can be produced and
    must tolerate being called several times per second. Calls are blocking;
    the engine runs them off the event loop thread.
    """

    def capture_region(self, region: Region) -> Image.Image:
        ...


class ScreenCaptureProvider:
    """Captures screen regions with Pillow's ImageGrab"""

    def __init__(self, all_screens: bool = True):
        """
        Initialize screen capture provider

        Args:
            all_screens: Grab across every attached display (Windows/macOS)
        """
        self.all_screens = all_screens
        logger.info("[CaptureProvider] Initialized")

    def capture_region(self, region: Region) -> Image.Image:
        bbox = region.pixel_bounds()
        if region.is_empty:
            raise CaptureError("Region has zero area", region=region.model_dump())

        try:
            image = ImageGrab.grab(bbox=bbox, all_screens=self.all_screens)
        except OSError as e:
            logger.warning(f"[CaptureProvider] Grab failed for {bbox}: {e}")
            raise CaptureError(f"Screen grab failed: {e}", region=region.model_dump()) from e

        return image.convert("RGB")
