from __future__ import annotations
import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..domain.models import DaemonConfig, DaemonMode

logger = logging.getLogger(__name__)

RunPhase = Callable[[Optional[float]], Awaitable[None]]


class DaemonState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    EXITED = "exited"


class DaemonScheduler:
    """Decides when the control loop runs.

    boot:     Running for run_duration, then Exited.
    interval: Running (run_duration) and Paused (pause_interval) alternate.
    realtime: Running until stopped.

    ``run_phase(duration)`` performs one Running period; ``stop`` cancels
    the schedule at the next boundary in every mode.
    """

    def __init__(self, cfg: DaemonConfig, run_phase: RunPhase, stop: asyncio.Event) -> None:
        self._cfg = cfg
        self._run_phase = run_phase
        self._stop = stop
        self.state = DaemonState.IDLE
        self.history: list[tuple[float, DaemonState]] = []

    def _enter(self, state: DaemonState) -> None:
        self.state = state
        self.history.append((asyncio.get_running_loop().time(), state))
        logger.info("Daemon state -> %s", state.value)

    async def run(self) -> None:
        mode = self._cfg.effective_mode
        if self._cfg.interval_boot and self._cfg.mode is not DaemonMode.INTERVAL:
            logger.info("interval_boot is set: forcing interval mode")
        logger.info("Starting in %s mode", mode.value)

        try:
            if mode is DaemonMode.BOOT:
                self._enter(DaemonState.RUNNING)
                logger.info("Running for %.1f seconds", self._cfg.run_duration)
                await self._run_phase(self._cfg.run_duration)

            elif mode is DaemonMode.REALTIME:
                self._enter(DaemonState.RUNNING)
                await self._run_phase(None)

            else:
                while not self._stop.is_set():
                    self._enter(DaemonState.RUNNING)
                    await self._run_phase(self._cfg.run_duration)
                    if self._stop.is_set():
                        break

                    self._enter(DaemonState.PAUSED)
                    logger.info("Pausing for %.1f seconds", self._cfg.pause_interval)
                    try:
                        await asyncio.wait_for(self._stop.wait(), timeout=self._cfg.pause_interval)
                    except asyncio.TimeoutError:
                        pass
        finally:
            self._enter(DaemonState.EXITED)
