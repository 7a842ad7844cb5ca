"""
Shutter - Shutter Service
Owns which automation is active, enforces mutual exclusion and publishes state
"""

import asyncio
import logging
from typing import Callable, Coroutine, Optional, Sequence, Set

from shutter_models import NormalizedRect, ProgramStep, Region, ShutterMode, ShutterState
from shutter_run import ShutterRun
from step_scheduler import ExecutionContext, StepScheduler
from timer_modes import run_change_detection, run_delayed, run_interval

logger = logging.getLogger(__name__)


class ShutterService:
    """
    Start/stop API for the capture automations

    State machine: Idle -> Active(mode) -> Idle. Starting any mode first stops
    the active one. Natural completion and every failure path return to Idle
    on their own; nothing is raised to the caller once a run has started.

    All methods must be called from the event loop thread. start_* require a
    running loop since each run is an asyncio task.
    """

    def __init__(
        self,
        capture_provider,
        capture_sink=None,
        poll_interval: float = 0.5,
        tick_seconds: float = 1.0,
        sensitivity: float = 0.05,
    ):
        """
        Initialize shutter service

        Args:
            capture_provider: CaptureProvider used for every region capture
            capture_sink: Optional CaptureSink notified once per capture
            poll_interval: Period (s) of change/stability polling
            tick_seconds: Period (s) of the delayed countdown
            sensitivity: Initial change-detection sensitivity
        """
        self.capture_provider = capture_provider
        self.capture_sink = capture_sink
        self.poll_interval = poll_interval
        self.tick_seconds = tick_seconds
        self.step_scheduler = StepScheduler()

        self._state = ShutterState(sensitivity=sensitivity)
        self._run: Optional[ShutterRun] = None
        self._task: Optional[asyncio.Task] = None

        # Stopped runs that have not observed their cancellation yet
        self._retired_tasks: Set[asyncio.Task] = set()

        logger.info("[ShutterService] Initialized")

    @property
    def state(self) -> ShutterState:
        """Snapshot of the published state"""
        return self._state.model_copy()

    @property
    def is_active(self) -> bool:
        return self._run is not None

    # ============================================================================
    # Start / Stop
    # ============================================================================

    def start_delayed(self, seconds: int):
        """Capture once after a `seconds` countdown"""
        if seconds < 0:
            raise ValueError(f"Countdown cannot be negative, got {seconds}")

        run = self._begin(ShutterMode.DELAYED)
        run.publish(countdown=seconds)
        logger.info(f"[ShutterService] Delayed capture in {seconds}s")
        self._launch(run, run_delayed(run, seconds))

    def start_interval(self, seconds: float, max_count: int = 0):
        """Capture now and every `seconds` until max_count captures (0 = until stopped)"""
        if seconds <= 0:
            raise ValueError(f"Interval must be positive, got {seconds}")
        if max_count < 0:
            raise ValueError(f"max_count cannot be negative, got {max_count}")

        run = self._begin(ShutterMode.INTERVAL)
        run.publish(max_capture_count=max_count)
        logger.info(f"[ShutterService] Interval capture every {seconds}s (max={max_count or 'unbounded'})")
        self._launch(run, run_interval(run, seconds, max_count))

    def start_change_detection(
        self,
        region_provider: Callable[[], Region],
        sensitivity: Optional[float] = None,
        sub_rect: Optional[NormalizedRect] = None,
    ):
        """Capture now and again whenever the (sub)region changes by more than sensitivity"""
        if sensitivity is not None:
            self._validate_sensitivity(sensitivity)

        run = self._begin(ShutterMode.CHANGE_DETECTION)
        if sensitivity is not None:
            run.publish(sensitivity=sensitivity)
        logger.info(f"[ShutterService] Change detection started (sensitivity={self._state.sensitivity:.2f})")
        self._launch(run, run_change_detection(run, region_provider, sub_rect))

    def start_programmable(self, steps: Sequence[ProgramStep], region_provider: Callable[[], Region]):
        """Run a capture program against the region returned by region_provider"""
        run = self._begin(ShutterMode.PROGRAMMABLE)
        ctx = ExecutionContext(region_provider=region_provider, run=run)
        logger.info(f"[ShutterService] Program started ({len(steps)} steps)")
        self._launch(run, self.step_scheduler.run(list(steps), ctx))

    def stop_all(self):
        """Cancel the active mode and return to Idle. Safe to call while idle."""
        run, task = self._run, self._task
        if run is None:
            return

        logger.info(f"[ShutterService] Stopping {run.mode.value}")
        run.cancel()
        self._run = None
        self._task = None
        self._reset_to_idle()

        if task is not None and not task.done():
            self._retired_tasks.add(task)
            task.add_done_callback(self._retired_tasks.discard)

    def set_sensitivity(self, sensitivity: float):
        """Adjust change sensitivity; a running change detection picks it up on its next poll"""
        self._validate_sensitivity(sensitivity)
        self._state.sensitivity = sensitivity

    async def wait_idle(self):
        """Wait until the active run (if any) has finished"""
        task = self._task
        if task is not None:
            await asyncio.shield(task)

    async def shutdown(self):
        """Stop everything and wait for all run tasks to exit"""
        task = self._task
        self.stop_all()
        pending = set(self._retired_tasks)
        if task is not None:
            pending.add(task)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("[ShutterService] Shut down")

    # ============================================================================
    # Internals
    # ============================================================================

    def _begin(self, mode: ShutterMode) -> ShutterRun:
        asyncio.get_running_loop()  # raises before any state changes when called off-loop
        self.stop_all()

        self._state.is_active = True
        self._state.active_mode = mode
        self._state.countdown = 0
        self._state.capture_count = 0
        self._state.max_capture_count = 0
        self._state.current_diff = 0.0
        self._state.current_step_id = None

        run = ShutterRun(
            mode,
            self._state,
            self.capture_provider,
            capture_sink=self.capture_sink,
            poll_interval=self.poll_interval,
            tick_seconds=self.tick_seconds,
        )
        self._run = run
        return run

    def _launch(self, run: ShutterRun, coro: Coroutine):
        self._task = asyncio.create_task(self._supervise(run, coro))

    async def _supervise(self, run: ShutterRun, coro: Coroutine):
        try:
            await coro
        except Exception as e:
            logger.error(f"[ShutterService] {run.mode.value} run error: {e}", exc_info=True)
        finally:
            if self._run is run:
                logger.info(f"[ShutterService] {run.mode.value} finished ({self._state.capture_count} captures)")
                run.cancel()
                self._run = None
                self._task = None
                self._reset_to_idle()

    def _reset_to_idle(self):
        # capture_count and max_capture_count stay readable until the next start
        self._state.is_active = False
        self._state.active_mode = ShutterMode.IDLE
        self._state.countdown = 0
        self._state.current_diff = 0.0
        self._state.current_step_id = None

    @staticmethod
    def _validate_sensitivity(sensitivity: float):
        if not 0 < sensitivity <= 1:
            raise ValueError(f"Sensitivity must be in (0, 1], got {sensitivity}")
