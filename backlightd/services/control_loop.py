from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from ..core.errors import ActuatorPermissionDenied, ActuatorUnreadable, ActuatorWriteFailed
from ..core.timeutil import now_utc
from ..domain.controller import BrightnessController
from ..domain.interfaces import Backlight
from ..domain.models import StatusEvent, TransitionConfig
from ..domain.transition import step_toward
from .sampler import Sampler, until_stopped
from .status import StatusReporter


logger = logging.getLogger(__name__)


@dataclass
class LiveState:
    target: Optional[int] = None
    actual: Optional[int] = None
    ticks: int = 0
    steps: int = 0


class ControlLoop:
    """Sample -> smooth -> map on the outer tick, step the backlight on the inner tick.

    Both cadences run as tasks on one event loop. The outer task publishes
    the latest target; the inner task is the only writer to the backlight
    and re-reads the real value before each step, so a new target redirects
    it on its next step.
    """

    def __init__(
        self,
        sampler: Sampler,
        backlight: Backlight,
        controller: BrightnessController,
        status: StatusReporter,
        transition: TransitionConfig,
        capture_interval_s: float,
        stop: asyncio.Event,
    ) -> None:
        self._sampler = sampler
        self._backlight = backlight
        self._controller = controller
        self._status = status
        self._transition = transition
        self._capture_interval_s = capture_interval_s
        self._stop = stop

        self._target: Optional[int] = None
        self._pending = False
        self._target_changed = asyncio.Event()
        self._phase_over = asyncio.Event()
        self._halted = False
        self._write_failures = 0

        self.live = LiveState()

    async def run_phase(self, duration: Optional[float] = None) -> None:
        """Run both cadences for ``duration`` seconds (forever if None) or until stopped.

        When the duration runs out the step under way is the last one. When
        stopped, the transition toward the last issued target is completed
        before returning.
        """
        loop = asyncio.get_running_loop()
        deadline = None if duration is None else loop.time() + duration
        self._phase_over.clear()
        self._halted = False
        self._pending = False

        async with self._sampler:
            logger.info(
                "Control loop started (capture=%.0fms step=%.0fms duration=%s)",
                self._capture_interval_s * 1000,
                self._transition.step_interval_s * 1000,
                "unbounded" if duration is None else f"{duration:.1f}s",
            )
            outer = asyncio.create_task(self._sample_loop(deadline), name="sample_loop")
            inner = asyncio.create_task(self._step_loop(), name="step_loop")
            try:
                done, _ = await asyncio.wait({outer, inner}, return_when=asyncio.FIRST_COMPLETED)
                if outer in done and outer.exception() is None:
                    self._finish_phase(drain=self._stop.is_set())
                    await inner
                else:
                    # The stepping task only ends early on a fatal error
                    (outer if outer in done else inner).result()
            finally:
                self._finish_phase(drain=False)
                for t in (outer, inner):
                    if not t.done():
                        t.cancel()
                await asyncio.gather(outer, inner, return_exceptions=True)
        logger.info("Control loop stopped (ticks=%d steps=%d)", self.live.ticks, self.live.steps)

    def _finish_phase(self, drain: bool) -> None:
        # drain: keep stepping toward the issued target; otherwise stop after the current step
        self._halted = not drain
        self._phase_over.set()
        self._target_changed.set()

    def _issue_target(self, target: int) -> None:
        self._target = target
        self._pending = True
        self.live.target = target
        self._target_changed.set()

    async def _sample_loop(self, deadline: Optional[float]) -> None:
        loop = asyncio.get_running_loop()
        while not self._stop.is_set():
            if deadline is not None and loop.time() >= deadline:
                logger.info("Run duration expired")
                return
            tick_start = loop.time()

            # 1) Capture (SamplerError after retries is fatal)
            completed, sample = await until_stopped(self._sampler.capture(), self._stop)
            if not completed or self._stop.is_set():
                # No new target once cancellation has been observed
                return

            # 2) Smooth + circadian + map
            decision = self._controller.decide(sample.raw_luma)
            self.live.ticks += 1

            # 3) Hand the target to the stepping task (also re-arms an abandoned cycle)
            if decision.target is not None:
                self._issue_target(decision.target)

            # 4) Status
            if self.live.target is not None:
                await self._status.record(
                    StatusEvent(
                        ts_utc=now_utc(),
                        smoothed_luma=decision.smoothed_luma,
                        target_brightness=self.live.target,
                        actual_brightness=self.live.actual,
                    )
                )

            # 5) Sleep until next tick, deadline or stop
            timeout = self._capture_interval_s - (loop.time() - tick_start)
            if deadline is not None:
                timeout = min(timeout, deadline - loop.time())
            if timeout > 0:
                try:
                    await asyncio.wait_for(self._stop.wait(), timeout=timeout)
                except asyncio.TimeoutError:
                    pass

    async def _step_loop(self) -> None:
        while not self._halted:
            if not self._pending or self._target is None:
                if self._phase_over.is_set():
                    return
                self._target_changed.clear()
                await self._target_changed.wait()
                continue

            target = self._target
            if not await self._step_once(target):
                continue
            await asyncio.sleep(self._transition.step_interval_s)

    async def _step_once(self, target: int) -> bool:
        """One bounded adjustment toward ``target``; False when the cycle ended."""
        try:
            current = await self._backlight.read_brightness()
        except ActuatorUnreadable as e:
            self._abandon_cycle(e)
            return False
        self.live.actual = current

        if current == target:
            if self._target == target:
                self._pending = False
                logger.debug("Target %d reached", target)
            return False

        nxt = step_toward(target, current, self._transition.step_divisor, self._transition.step_max)
        try:
            await self._write_with_retry(nxt)
        except ActuatorPermissionDenied:
            raise
        except ActuatorWriteFailed as e:
            self._abandon_cycle(e)
            return False

        self._write_failures = 0
        self.live.actual = nxt
        self.live.steps += 1
        return True

    async def _write_with_retry(self, value: int) -> None:
        try:
            await self._backlight.write_brightness(value)
        except ActuatorPermissionDenied:
            raise
        except ActuatorWriteFailed as e:
            logger.debug("Backlight write failed, retrying once: %s", e)
            await self._backlight.write_brightness(value)

    def _abandon_cycle(self, err: Exception) -> None:
        self._pending = False
        self._write_failures += 1
        logger.warning(
            "Backlight step abandoned (%d/%d consecutive): %s",
            self._write_failures, self._transition.max_failures, err,
        )
        if self._write_failures >= self._transition.max_failures:
            raise ActuatorWriteFailed(
                f"Backlight {self._backlight.backlight_id} failed {self._write_failures} times in a row: {err}"
            ) from err
