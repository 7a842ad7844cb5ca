"""Tests for mode ownership, mutual exclusion and the Idle/Active state machine."""

import asyncio

import pytest

from capture_sink import CallbackCaptureSink
from shutter_models import ProgramStep, ShutterMode, StepType
from shutter_service import ShutterService

from conftest import BLACK, REGION, WHITE, FailingCaptureProvider, FakeCaptureProvider, solid, wait_until

TICK = 0.02


@pytest.fixture
def service(provider, sink):
    return ShutterService(provider, capture_sink=sink, poll_interval=TICK, tick_seconds=TICK)


def capture(step_id):
    return ProgramStep(id=step_id, step_type=StepType.CAPTURE)


class TestStateMachine:
    async def test_idle_stop_is_noop(self, service):
        before = service.state
        service.stop_all()
        service.stop_all()
        assert service.state == before
        assert not service.is_active

    async def test_state_snapshot_is_read_only(self, service):
        snapshot = service.state
        snapshot.is_active = True
        assert not service.state.is_active

    def test_start_requires_running_loop(self, service):
        with pytest.raises(RuntimeError):
            service.start_delayed(1)
        assert not service.state.is_active

    async def test_invalid_arguments_raise(self, service):
        with pytest.raises(ValueError):
            service.start_interval(0)
        with pytest.raises(ValueError):
            service.start_interval(1, max_count=-1)
        with pytest.raises(ValueError):
            service.start_delayed(-1)
        with pytest.raises(ValueError):
            service.set_sensitivity(0)
        assert not service.is_active


class TestDelayed:
    async def test_countdown_then_single_capture(self, service, sink):
        service.start_delayed(3)
        state = service.state
        assert state.is_active
        assert state.active_mode == ShutterMode.DELAYED
        assert state.countdown == 3

        await asyncio.wait_for(service.wait_idle(), timeout=1.0)

        assert len(sink.events) == 1
        assert not service.state.is_active
        assert service.state.active_mode == ShutterMode.IDLE

    async def test_negative_countdown_leaves_active_run_alone(self, service):
        service.start_delayed(100)
        with pytest.raises(ValueError):
            service.start_delayed(-3)

        state = service.state
        assert state.active_mode == ShutterMode.DELAYED
        assert state.countdown >= 0
        await service.shutdown()


class TestInterval:
    async def test_max_count_three_completes_on_its_own(self, service, sink):
        service.start_interval(0.05, max_count=3)
        assert service.state.max_capture_count == 3

        await asyncio.wait_for(service.wait_idle(), timeout=1.0)

        state = service.state
        assert len(sink.events) == 3
        assert not state.is_active
        assert state.capture_count == 3
        assert state.max_capture_count == 3

    async def test_unbounded_until_stopped(self, service, sink):
        service.start_interval(TICK)
        await wait_until(lambda: len(sink.events) >= 3)

        service.stop_all()
        count = len(sink.events)
        await asyncio.sleep(TICK * 5)

        assert len(sink.events) == count
        assert not service.state.is_active

    async def test_stop_from_inside_sink(self, provider):
        events = []
        service = ShutterService(provider, poll_interval=TICK, tick_seconds=TICK)

        def on_capture(event):
            events.append(event)
            if len(events) == 2:
                service.stop_all()

        service.capture_sink = CallbackCaptureSink(on_capture)
        service.start_interval(TICK)
        await wait_until(lambda: not service.is_active)
        await asyncio.sleep(TICK * 5)

        assert len(events) == 2


class TestChangeDetection:
    async def test_start_sets_sensitivity_and_counts_changes(self, sink):
        provider = FakeCaptureProvider([solid(BLACK), solid(BLACK), solid(WHITE)])
        service = ShutterService(provider, capture_sink=sink, poll_interval=TICK)

        service.start_change_detection(lambda: REGION, sensitivity=0.2)
        assert service.state.sensitivity == 0.2

        await wait_until(lambda: service.state.capture_count == 2)
        assert service.state.active_mode == ShutterMode.CHANGE_DETECTION
        await service.shutdown()

    async def test_capture_failure_returns_to_idle(self, sink):
        service = ShutterService(FailingCaptureProvider(), capture_sink=sink, poll_interval=TICK)
        service.start_change_detection(lambda: REGION)

        await asyncio.wait_for(service.wait_idle(), timeout=1.0)

        assert not service.state.is_active
        assert len(sink.events) == 1

    async def test_set_sensitivity_while_idle(self, service):
        service.set_sensitivity(0.15)
        assert service.state.sensitivity == 0.15


class TestProgrammable:
    async def test_program_completes_and_returns_to_idle(self, service, sink, region_provider):
        steps = [ProgramStep(id="l", step_type=StepType.LOOP, loop_count=2, children=[capture("a"), capture("b")])]
        service.start_programmable(steps, region_provider)
        assert service.state.active_mode == ShutterMode.PROGRAMMABLE

        await asyncio.wait_for(service.wait_idle(), timeout=1.0)

        state = service.state
        assert sink.step_ids == ["a", "b", "a", "b"]
        assert state.capture_count == 4
        assert not state.is_active
        assert state.current_step_id is None

    async def test_infinite_program_halts_within_one_poll(self, service, sink, region_provider):
        steps = [
            ProgramStep(id="l", step_type=StepType.LOOP, loop_count=0, children=[
                capture("shot"),
                ProgramStep(id="w", step_type=StepType.WAIT, wait_seconds=60),
            ]),
        ]
        service.start_programmable(steps, region_provider)
        await wait_until(lambda: len(sink.events) == 1)

        service.stop_all()
        assert not service.state.is_active
        await asyncio.wait_for(service.shutdown(), timeout=0.5)

        assert len(sink.events) == 1

    async def test_capture_failure_ends_program(self, sink, region_provider):
        service = ShutterService(FailingCaptureProvider(), capture_sink=sink, poll_interval=TICK)
        service.start_programmable([capture("a"), capture("b")], region_provider)

        await asyncio.wait_for(service.wait_idle(), timeout=1.0)

        assert sink.step_ids == ["a"]
        assert not service.state.is_active

    async def test_sink_errors_do_not_end_run(self, provider, region_provider):
        calls = []

        def explode(event):
            calls.append(event)
            raise RuntimeError("disk full")

        service = ShutterService(provider, capture_sink=CallbackCaptureSink(explode), poll_interval=TICK)
        service.start_programmable([capture("a"), capture("b")], region_provider)
        await asyncio.wait_for(service.wait_idle(), timeout=1.0)

        assert [e.step_id for e in calls] == ["a", "b"]


class TestMutualExclusion:
    async def test_new_mode_supersedes_old(self, service, sink):
        service.start_interval(TICK)
        await wait_until(lambda: len(sink.events) >= 2)

        service.start_delayed(2)
        switched_at = len(sink.events)
        state = service.state
        assert state.active_mode == ShutterMode.DELAYED
        assert state.capture_count == 0

        await asyncio.wait_for(service.wait_idle(), timeout=1.0)

        later = sink.events[switched_at:]
        assert [e.mode for e in later] == [ShutterMode.DELAYED]
        assert not service.state.is_active

    async def test_superseded_program_stops_writing_state(self, sink, region_provider):
        slow = ProgramStep(id="slow", step_type=StepType.WAIT, wait_seconds=60)
        service = ShutterService(FakeCaptureProvider(), capture_sink=sink, poll_interval=TICK)
        service.start_programmable([capture("old"), slow, capture("never")], region_provider)
        await wait_until(lambda: service.state.current_step_id == "slow")

        service.start_interval(10, max_count=0)
        await asyncio.sleep(TICK * 3)

        state = service.state
        assert state.active_mode == ShutterMode.INTERVAL
        assert state.current_step_id is None
        assert sink.step_ids == ["old", None]
        await service.shutdown()

    async def test_every_start_variant_stops_previous(self, service, sink, region_provider):
        service.start_interval(TICK)
        service.start_change_detection(region_provider)
        service.start_programmable([ProgramStep(id="w", step_type=StepType.WAIT, wait_seconds=60)], region_provider)
        service.start_delayed(100)
        await asyncio.sleep(TICK * 5)

        # Superseded runs were cancelled before their tasks ever ran
        assert sink.events == []
        assert service.state.active_mode == ShutterMode.DELAYED

        await asyncio.wait_for(service.shutdown(), timeout=0.5)
        assert not service.state.is_active

