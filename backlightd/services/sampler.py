from __future__ import annotations
import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Awaitable, Optional, TypeVar

from ..core.errors import CaptureFailed, DeviceUnavailable
from ..core.timeutil import now_utc
from ..domain.models import Sample, SamplerConfig
from ..sensors.base import LumaSensor


logger = logging.getLogger(__name__)

T = TypeVar("T")


async def until_stopped(aw: Awaitable[T], stop: Optional[asyncio.Event]) -> tuple[bool, Optional[T]]:
    """Await ``aw`` unless ``stop`` fires first; returns (completed, result)."""
    if stop is None:
        return True, await aw
    work = asyncio.ensure_future(aw)
    stopper = asyncio.ensure_future(stop.wait())
    try:
        await asyncio.wait({work, stopper}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        stopper.cancel()
    if work.done():
        return True, work.result()
    work.cancel()
    await asyncio.gather(work, return_exceptions=True)
    return False, None


class Sampler:
    """Captures luma samples from a sensor it owns.

    Every device call runs on a single worker thread owned by the sampler,
    under a timeout, so calls never overlap and a stuck camera cannot hold
    up shutdown for longer than ``read_timeout_s``. A call that times out
    is followed by a close, so the next attempt reopens the device.
    Failures are retried ``max_retries`` times before being raised.
    """

    def __init__(
        self,
        sensor: LumaSensor,
        cfg: SamplerConfig,
        stop: Optional[asyncio.Event] = None,
        retry_backoff_s: float = 0.1,
        max_backoff_s: float = 1.0,
    ) -> None:
        self._sensor = sensor
        self._cfg = cfg
        self._stop = stop
        self._retry_backoff_s = retry_backoff_s
        self._max_backoff_s = max_backoff_s
        self._executor: Optional[ThreadPoolExecutor] = None
        self._warmed_up = False
        self._last_error_log: Optional[float] = None

    @property
    def sensor(self) -> LumaSensor:
        return self._sensor

    def _stopped(self) -> bool:
        return self._stop is not None and self._stop.is_set()

    def _device(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix=f"sampler-{self._sensor.sensor_id}"
            )
        return self._executor

    async def _call(self, fn, *args):
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(self._device(), fn, *args), timeout=self._cfg.read_timeout_s
            )
        except asyncio.TimeoutError:
            # Queued behind the stuck call, so it runs once that returns
            self._device().submit(self._sensor.close)
            raise CaptureFailed(
                f"{self._sensor.sensor_id} did not respond within {self._cfg.read_timeout_s:.1f}s"
            ) from None

    async def start(self) -> None:
        """Open the device and discard warmup frames while exposure settles.

        Returns early, without finishing warmup, once ``stop`` is set.
        """
        opened, _ = await until_stopped(self._with_retries(self._open_once), self._stop)
        if not opened or self._stopped():
            return
        if self._warmed_up or self._cfg.warmup_frames <= 0:
            self._warmed_up = True
            return
        logger.info("Warming up %s (%d frames)", self._sensor.sensor_id, self._cfg.warmup_frames)
        for _ in range(self._cfg.warmup_frames):
            completed, _ = await until_stopped(self._discard_frame(), self._stop)
            if not completed or self._stopped():
                logger.info("Warmup of %s interrupted", self._sensor.sensor_id)
                return
        self._warmed_up = True
        logger.info("%s ready", self._sensor.sensor_id)

    async def close(self) -> None:
        self._warmed_up = False
        if self._executor is None:
            self._sensor.close()
            return
        close = asyncio.get_running_loop().run_in_executor(self._executor, self._sensor.close)
        try:
            await asyncio.wait_for(asyncio.shield(close), timeout=self._cfg.read_timeout_s)
        except asyncio.TimeoutError:
            logger.warning("%s busy; it is released when the pending call returns", self._sensor.sensor_id)

    async def __aenter__(self) -> "Sampler":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def _open_once(self) -> None:
        if not self._sensor.is_open:
            await self._call(self._sensor.open)

    async def _discard_frame(self) -> None:
        try:
            await self._call(self._sensor.read_luma, self._cfg.half_precision)
        except CaptureFailed as e:
            logger.debug("Warmup frame dropped: %s", e)

    def _open_and_read(self) -> float:
        if not self._sensor.is_open:
            self._sensor.open()
        return self._sensor.read_luma(self._cfg.half_precision)

    async def _with_retries(self, op):
        backoff = self._retry_backoff_s
        attempts = self._cfg.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return await op()
            except DeviceUnavailable as e:
                self._device().submit(self._sensor.close)
                self._warn_throttled("Camera unavailable (attempt %d/%d): %s", attempt, attempts, e)
                if attempt == attempts:
                    raise
            except CaptureFailed as e:
                self._warn_throttled("Camera capture failed (attempt %d/%d): %s", attempt, attempts, e)
                if attempt == attempts:
                    raise
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, self._max_backoff_s)

    async def capture(self) -> Sample:
        raw = await self._with_retries(lambda: self._call(self._open_and_read))
        return Sample(ts_utc=now_utc(), raw_luma=min(max(float(raw), 0.0), 1.0))

    def _warn_throttled(self, msg: str, *args) -> None:
        now = time.monotonic()
        if self._last_error_log is None or now - self._last_error_log >= self._cfg.error_throttle_s:
            logger.warning(msg, *args)
            self._last_error_log = now
        else:
            logger.debug(msg, *args)
