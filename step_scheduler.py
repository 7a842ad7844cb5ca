"""
Shutter - Step Scheduler
Interpreter for user-authored capture programs
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from PIL import Image

from change_detector import crop_normalized
from shutter_models import ProgramStep, Region, StepType
from shutter_run import ShutterRun

logger = logging.getLogger(__name__)


@dataclass
class ExecutionContext:
    """Ephemeral per-run state, owned by the run's own task"""
    region_provider: Callable[[], Region]
    run: ShutterRun
    last_captured_image: Optional[Image.Image] = None

    @property
    def cancelled(self) -> bool:
        return self.run.cancelled


class StepScheduler:
    """
    Executes a program of steps strictly in order

    Handlers return True to continue and False to end the run. A run ends
    early when it is cancelled or when a capture fails; there is no retry.
    Cancellation is observed at every suspension point, including those of
    children nested in loops.
    """

    def __init__(self):
        self.step_handlers = {
            StepType.CAPTURE: self._execute_capture,
            StepType.WAIT: self._execute_wait,
            StepType.WAIT_FOR_CHANGE: self._execute_wait_for_change,
            StepType.WAIT_FOR_STABLE: self._execute_wait_for_stable,
            StepType.LOOP: self._execute_loop,
        }

        logger.info("[StepScheduler] Initialized")

    async def run(self, steps: Sequence[ProgramStep], ctx: ExecutionContext):
        """
        Execute a complete program

        Args:
            steps: Top-level program steps
            ctx: Execution context for this run
        """
        logger.info(f"[StepScheduler] Starting program ({len(steps)} top-level steps)")

        try:
            completed = await self._run_steps(steps, ctx)
        finally:
            ctx.last_captured_image = None

        if completed:
            logger.info("[StepScheduler] Program completed")
        elif ctx.cancelled:
            logger.info("[StepScheduler] Program cancelled")
        else:
            logger.warning("[StepScheduler] Program aborted")

    async def _run_steps(self, steps: Sequence[ProgramStep], ctx: ExecutionContext) -> bool:
        for step in steps:
            if ctx.cancelled:
                return False
            if not ctx.run.publish(current_step_id=step.id):
                return False

            logger.debug(f"  Executing: {step.description or step.step_type.value} ({step.id})")

            handler = self.step_handlers.get(step.step_type)
            if not handler:
                raise ValueError(f"Unknown step type: {step.step_type}")

            if not await handler(step, ctx):
                return False

        return True

    # ============================================================================
    # Step Handlers
    # ============================================================================

    async def _execute_capture(self, step: ProgramStep, ctx: ExecutionContext) -> bool:
        """Notify the sink, then store the full region as the new baseline"""
        if not ctx.run.notify(step_id=step.id):
            return False

        image = await ctx.run.capture(ctx.region_provider())
        if image is None:
            if not ctx.cancelled:
                logger.warning(f"  Capture step {step.id} failed, ending program")
            return False

        ctx.last_captured_image = image
        return True

    async def _execute_wait(self, step: ProgramStep, ctx: ExecutionContext) -> bool:
        """Wait/delay step"""
        logger.debug(f"  Waiting {step.wait_seconds:.1f}s")
        return await ctx.run.sleep(step.wait_seconds)

    async def _execute_wait_for_change(self, step: ProgramStep, ctx: ExecutionContext) -> bool:
        """Poll until the monitored area differs from the reference by more than sensitivity"""
        return await self._poll_until(step, ctx, want_change=True)

    async def _execute_wait_for_stable(self, step: ProgramStep, ctx: ExecutionContext) -> bool:
        """Poll until the monitored area is within sensitivity of the reference"""
        return await self._poll_until(step, ctx, want_change=False)

    async def _execute_loop(self, step: ProgramStep, ctx: ExecutionContext) -> bool:
        """Repeat children loop_count times, or until cancelled when loop_count is 0"""
        if not step.children:
            return True

        iteration = 0
        while step.loop_count == 0 or iteration < step.loop_count:
            if ctx.cancelled:
                return False

            if not await self._run_steps(step.children, ctx):
                return False

            iteration += 1
            # Children may never suspend (e.g. nested empty loops); yield so stop can run
            await asyncio.sleep(0)

        return True

    async def _poll_until(self, step: ProgramStep, ctx: ExecutionContext, want_change: bool) -> bool:
        label = "change" if want_change else "stable"

        region = ctx.region_provider().resolve(step.monitor_sub_rect)
        if region.is_empty:
            logger.info(f"  Monitored area for {step.id} is empty, treating wait-for-{label} as satisfied")
            return True

        if ctx.last_captured_image is not None:
            reference = crop_normalized(ctx.last_captured_image, step.monitor_sub_rect)
            if reference is None:
                return True
        else:
            reference = await ctx.run.capture(region)
            if reference is None:
                return False

        while True:
            if not await ctx.run.sleep(ctx.run.poll_interval):
                return False

            region = ctx.region_provider().resolve(step.monitor_sub_rect)
            if region.is_empty:
                return True

            current = await ctx.run.capture(region)
            if current is None:
                return False

            diff = await ctx.run.difference(reference, current)
            if not ctx.run.publish(current_diff=diff):
                return False

            logger.debug(f"  [{label}] diff={diff:.4f} sensitivity={step.sensitivity:.4f}")

            if want_change and diff > step.sensitivity:
                return True
            if not want_change and diff <= step.sensitivity:
                return True

    def get_supported_step_types(self) -> list:
        """Get list of supported step types"""
        return [step_type.value for step_type in self.step_handlers.keys()]
