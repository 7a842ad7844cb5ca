"""
Shutter - Timer Modes
Delayed, interval and change-detection automations. Each one is a flat
timer or poll loop running inside a single ShutterRun.
"""

import asyncio
import logging
from typing import Callable, Optional

from shutter_models import NormalizedRect, Region
from shutter_run import ShutterRun

logger = logging.getLogger(__name__)


async def run_delayed(run: ShutterRun, seconds: int):
    """Count down once per tick, capture once at zero"""
    remaining = seconds
    run.publish(countdown=remaining)

    while True:
        if not await run.sleep(run.tick_seconds):
            return

        remaining -= 1
        if not run.publish(countdown=max(remaining, 0)):
            return

        if remaining <= 0:
            logger.info("[TimerModes] Delayed countdown reached zero")
            run.notify()
            return


async def run_interval(run: ShutterRun, seconds: float, max_count: int = 0):
    """
    Capture immediately, then every `seconds`

    Stops on its own once max_count captures were taken (0 = unbounded).
    Ticks are scheduled against the loop clock so slow sinks do not drift the period.
    """
    def reached_max() -> bool:
        return max_count > 0 and run.state.capture_count >= max_count

    if not run.notify() or reached_max():
        return

    loop = asyncio.get_running_loop()
    next_tick = loop.time() + seconds

    while True:
        if not await run.sleep(max(0.0, next_tick - loop.time())):
            return
        next_tick += seconds

        if not run.notify():
            return

        if reached_max():
            logger.info(f"[TimerModes] Interval reached {max_count} captures")
            return


async def run_change_detection(
    run: ShutterRun,
    region_provider: Callable[[], Region],
    sub_rect: Optional[NormalizedRect] = None,
):
    """
    Capture immediately, then capture again whenever the monitored area changes

    The reference image is replaced after every accepted change, so each
    comparison is against the latest captured state. Sensitivity is read from
    the published state on every poll so it can be adjusted while running.
    """
    if not run.notify():
        return

    region = region_provider().resolve(sub_rect)
    if region.is_empty:
        logger.warning(f"[TimerModes] Invalid monitor region: {region}")
        return

    reference = await run.capture(region)
    if reference is None:
        logger.warning(f"[TimerModes] Failed to capture reference image for region: {region}")
        return

    while True:
        if not await run.sleep(run.poll_interval):
            return

        region = region_provider().resolve(sub_rect)
        if region.is_empty:
            continue

        current = await run.capture(region)
        if current is None:
            return

        diff = await run.difference(reference, current)
        if not run.publish(current_diff=diff):
            return

        if diff > run.state.sensitivity:
            logger.debug(f"[TimerModes] Change detected (diff={diff:.4f})")
            if not run.notify():
                return
            reference = current
