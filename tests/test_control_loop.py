import asyncio
import dataclasses
import logging
import time

import pytest

from backlightd.core.errors import ActuatorPermissionDenied, ActuatorWriteFailed, SamplerError
from backlightd.domain.controller import BrightnessController
from backlightd.domain.models import CircadianCurve, StatusConfig, TransitionConfig
from backlightd.domain.schedule import CircadianBias
from backlightd.domain.smoothing import Ema
from backlightd.drivers.backlight_sim import SimulatedBacklight
from backlightd.sensors.simulated_luma_sensor import SimulatedLumaSensor
from backlightd.services.control_loop import ControlLoop
from backlightd.services.sampler import Sampler
from backlightd.services.status import StatusReporter


class SlowLumaSensor(SimulatedLumaSensor):
    def __init__(self, luma: float, delay_s: float):
        super().__init__(luma=luma)
        self._delay_s = delay_s

    def read_luma(self, half_precision: bool = False) -> float:
        time.sleep(self._delay_s)
        return super().read_luma(half_precision)


class ReadOnlyBacklight(SimulatedBacklight):
    async def write_brightness(self, value: int) -> None:
        raise ActuatorPermissionDenied("/sys/class/backlight/sim/brightness")


def _loop(sensor, backlight, profile, sampler_cfg, transition, stop, capture_interval_s=0.02):
    controller = BrightnessController(profile, Ema(1.0), CircadianBias(CircadianCurve(enabled=False)))
    return ControlLoop(
        sampler=Sampler(sensor, sampler_cfg, stop=stop, retry_backoff_s=0.001),
        backlight=backlight,
        controller=controller,
        status=StatusReporter(StatusConfig()),
        transition=transition,
        capture_interval_s=capture_interval_s,
        stop=stop,
    )


def _assert_bounded_steps(writes, start, max_step):
    prev = start
    for w in writes:
        assert abs(w - prev) <= max_step
        prev = w


def test_converges_to_mapped_target(profile, fast_sampler_cfg, fast_transition_cfg):
    sensor = SimulatedLumaSensor(luma=0.4)
    backlight = SimulatedBacklight(value=100)

    async def go():
        loop = _loop(sensor, backlight, profile, fast_sampler_cfg, fast_transition_cfg, asyncio.Event())
        await loop.run_phase(0.3)
        return loop

    loop = asyncio.run(go())

    assert asyncio.run(backlight.read_brightness()) == 438
    assert backlight.writes == sorted(backlight.writes)
    assert max(backlight.writes) == 438
    _assert_bounded_steps(backlight.writes, 100, fast_transition_cfg.step_max)
    assert loop.live.target == 438
    assert loop.live.ticks >= 1
    assert not sensor.is_open


def test_run_duration_ends_with_the_step_under_way(profile, fast_sampler_cfg):
    sensor = SimulatedLumaSensor(luma=0.4)
    backlight = SimulatedBacklight(value=100)
    slow = TransitionConfig(step_interval_s=0.05, step_divisor=20, step_max=10, max_failures=3)

    async def go():
        loop = _loop(sensor, backlight, profile, fast_sampler_cfg, slow, asyncio.Event())
        started = time.monotonic()
        await loop.run_phase(0.2)
        return time.monotonic() - started

    elapsed = asyncio.run(go())
    # Stepping 100 -> 438 at 10 per 50ms would take well over a second
    assert elapsed < 0.2 + 0.15
    assert backlight.writes
    assert backlight.writes[-1] < 438


def test_stop_during_warmup_returns_promptly(profile, fast_sampler_cfg, fast_transition_cfg):
    sensor = SlowLumaSensor(luma=0.4, delay_s=0.1)
    backlight = SimulatedBacklight(value=100)
    cfg = dataclasses.replace(fast_sampler_cfg, warmup_frames=40)

    async def go():
        stop = asyncio.Event()
        loop = _loop(sensor, backlight, profile, cfg, fast_transition_cfg, stop)
        asyncio.get_running_loop().call_later(0.1, stop.set)
        started = time.monotonic()
        await loop.run_phase(None)
        return time.monotonic() - started

    assert asyncio.run(go()) < 1.0
    assert sensor.reads < 10
    assert backlight.writes == []
    assert not sensor.is_open


def test_new_target_redirects_transition(profile, fast_sampler_cfg):
    sensor = SimulatedLumaSensor()
    sensor.set_script([0.4, 0.4, 0.05])
    backlight = SimulatedBacklight(value=100)
    transition = TransitionConfig(step_interval_s=0.01, step_divisor=4, step_max=50, max_failures=3)

    async def go():
        loop = _loop(sensor, backlight, profile, fast_sampler_cfg, transition, asyncio.Event(),
                     capture_interval_s=0.05)
        await loop.run_phase(0.6)

    asyncio.run(go())

    peak = max(backlight.writes)
    assert 100 < peak < 438
    assert backlight.writes[-1] == 1
    _assert_bounded_steps(backlight.writes, 100, transition.step_max)


def test_stop_finishes_transition_without_new_target(profile, fast_sampler_cfg):
    sensor = SimulatedLumaSensor(luma=0.4)
    backlight = SimulatedBacklight(value=100)
    slow = TransitionConfig(step_interval_s=0.01, step_divisor=20, step_max=10, max_failures=3)

    async def go():
        stop = asyncio.Event()
        loop = _loop(sensor, backlight, profile, fast_sampler_cfg, slow, stop)

        def request_stop():
            stop.set()
            sensor.set_manual(0.8)

        asyncio.get_running_loop().call_later(0.05, request_stop)
        await asyncio.wait_for(loop.run_phase(None), timeout=5.0)
        return loop

    loop = asyncio.run(go())
    assert backlight.writes[-1] == 438
    assert max(backlight.writes) == 438
    assert loop.live.target == 438


def test_external_change_is_walked_back(profile, fast_sampler_cfg, fast_transition_cfg):
    sensor = SimulatedLumaSensor(luma=0.4)
    backlight = SimulatedBacklight(value=438)

    async def go():
        stop = asyncio.Event()
        loop = _loop(sensor, backlight, profile, fast_sampler_cfg, fast_transition_cfg, stop)
        aio = asyncio.get_running_loop()
        aio.call_later(0.1, backlight.set_external, 600)
        aio.call_later(0.4, stop.set)
        await loop.run_phase(None)

    asyncio.run(go())

    assert backlight.writes[-1] == 438
    assert backlight.writes == sorted(backlight.writes, reverse=True)
    _assert_bounded_steps(backlight.writes, 600, fast_transition_cfg.step_max)


def test_single_write_failure_is_retried(profile, fast_sampler_cfg, fast_transition_cfg, caplog):
    caplog.set_level(logging.DEBUG, logger="backlightd")
    sensor = SimulatedLumaSensor(luma=0.4)
    backlight = SimulatedBacklight(value=100)
    backlight.fail_next(1)

    async def go():
        loop = _loop(sensor, backlight, profile, fast_sampler_cfg, fast_transition_cfg, asyncio.Event())
        await loop.run_phase(0.2)

    asyncio.run(go())
    assert backlight.writes[-1] == 438
    assert "retrying once" in caplog.text
    assert "abandoned" not in caplog.text


def test_repeated_write_failures_are_fatal(profile, fast_sampler_cfg, fast_transition_cfg):
    sensor = SimulatedLumaSensor(luma=0.4)
    backlight = SimulatedBacklight(value=100)
    backlight.fail_next(1000)

    async def go():
        loop = _loop(sensor, backlight, profile, fast_sampler_cfg, fast_transition_cfg, asyncio.Event())
        await asyncio.wait_for(loop.run_phase(None), timeout=5.0)

    with pytest.raises(ActuatorWriteFailed):
        asyncio.run(go())
    assert backlight.writes == []
    assert not sensor.is_open


def test_permission_denied_is_fatal_immediately(profile, fast_sampler_cfg, fast_transition_cfg):
    sensor = SimulatedLumaSensor(luma=0.4)

    async def go():
        loop = _loop(sensor, ReadOnlyBacklight(value=100), profile, fast_sampler_cfg,
                     fast_transition_cfg, asyncio.Event())
        await asyncio.wait_for(loop.run_phase(None), timeout=5.0)
        return loop

    with pytest.raises(ActuatorPermissionDenied):
        asyncio.run(go())


def test_persistent_capture_failure_is_fatal(profile, fast_sampler_cfg, fast_transition_cfg):
    sensor = SimulatedLumaSensor(luma=0.4)
    sensor.fail_next(1000)
    backlight = SimulatedBacklight(value=100)

    async def go():
        loop = _loop(sensor, backlight, profile, fast_sampler_cfg, fast_transition_cfg, asyncio.Event())
        await asyncio.wait_for(loop.run_phase(None), timeout=5.0)

    with pytest.raises(SamplerError):
        asyncio.run(go())
    assert backlight.writes == []


def test_status_is_recorded_each_phase(profile, fast_sampler_cfg, fast_transition_cfg):
    sensor = SimulatedLumaSensor(luma=0.4)
    backlight = SimulatedBacklight(value=100)

    async def go():
        loop = _loop(sensor, backlight, profile, fast_sampler_cfg, fast_transition_cfg, asyncio.Event())
        await loop.run_phase(0.1)
        return loop

    loop = asyncio.run(go())
    status = loop._status
    assert status.emitted >= 1
    assert status.last_event.target_brightness == 438
