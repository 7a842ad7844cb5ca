"""Shared pytest configuration and fixtures for the Shutter test suite."""

import asyncio
import sys
import threading
import time
from pathlib import Path
from typing import Callable, List, Optional

import pytest
from PIL import Image

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from shutter_models import CaptureEvent, Region  # noqa: E402
from utils.error_handler import CaptureError  # noqa: E402


BLACK = (0, 0, 0)
WHITE = (255, 255, 255)

REGION = Region(x=10, y=20, width=200, height=100)


def solid(color, size=(40, 20)) -> Image.Image:
    return Image.new("RGB", size, color)


# =============================================================================
# Fakes
# =============================================================================

class FakeCaptureProvider:
    """
    Returns scripted frames in order

    Each script entry is an image or an exception instance to raise. Once the
    script is exhausted the last image is repeated.
    """

    def __init__(self, frames: Optional[List] = None, default: Optional[Image.Image] = None):
        self.frames = list(frames or [])
        self.last = default if default is not None else solid(BLACK)
        self.calls: List[Region] = []
        self._lock = threading.Lock()

    def capture_region(self, region: Region) -> Image.Image:
        with self._lock:
            self.calls.append(region)
            if self.frames:
                item = self.frames.pop(0)
                if isinstance(item, Exception):
                    raise item
                self.last = item
            return self.last


class FailingCaptureProvider(FakeCaptureProvider):
    def capture_region(self, region: Region) -> Image.Image:
        with self._lock:
            self.calls.append(region)
        raise CaptureError("display unavailable")


class RecordingSink:
    """Records every capture event, plus how many provider calls preceded it"""

    def __init__(self, provider: Optional[FakeCaptureProvider] = None):
        self.events: List[CaptureEvent] = []
        self.calls_at_event: List[int] = []
        self.provider = provider

    def on_capture(self, event: CaptureEvent) -> None:
        self.events.append(event)
        if self.provider is not None:
            self.calls_at_event.append(len(self.provider.calls))

    @property
    def step_ids(self):
        return [event.step_id for event in self.events]


async def wait_until(condition: Callable[[], bool], timeout: float = 2.0, interval: float = 0.01):
    """Poll an async-world condition, failing the test on timeout"""
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


# =============================================================================
# Shared Fixtures
# =============================================================================

@pytest.fixture
def provider() -> FakeCaptureProvider:
    return FakeCaptureProvider()


@pytest.fixture
def sink(provider) -> RecordingSink:
    return RecordingSink(provider)


@pytest.fixture
def region_provider():
    return lambda: REGION
