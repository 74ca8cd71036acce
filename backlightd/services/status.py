from __future__ import annotations
import logging
import sqlite3
import time
from typing import Callable, Optional

from ..core.log import STATUS
from ..domain.interfaces import Repository
from ..domain.models import StatusConfig, StatusEvent

logger = logging.getLogger(__name__)


class StatusReporter:
    """Rate-limits status events.

    An event goes out at least every ``interval_s``; when the target moved by
    more than ``min_brightness_change`` since the last emitted event the
    faster ``fast_interval_s`` cadence applies instead.
    """

    def __init__(
        self,
        cfg: StatusConfig,
        repo: Optional[Repository] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cfg = cfg
        self._repo = repo
        self._clock = clock
        self._last_event: Optional[StatusEvent] = None
        self._last_emit_at: Optional[float] = None
        self.emitted = 0

    @property
    def last_event(self) -> Optional[StatusEvent]:
        return self._last_event

    def due(self, event: StatusEvent, now: float) -> bool:
        if self._last_event is None or self._last_emit_at is None:
            return True
        delta = abs(event.target_brightness - self._last_event.target_brightness)
        interval = self._cfg.fast_interval_s if delta > self._cfg.min_brightness_change else self._cfg.interval_s
        return now - self._last_emit_at >= interval

    async def record(self, event: StatusEvent) -> bool:
        now = self._clock()
        if not self.due(event, now):
            return False

        self._last_event = event
        self._last_emit_at = now
        self.emitted += 1
        logger.log(
            STATUS,
            "Status: luma=%.3f target=%d actual=%s",
            event.smoothed_luma,
            event.target_brightness,
            "?" if event.actual_brightness is None else event.actual_brightness,
        )
        if self._repo is not None:
            try:
                await self._repo.insert_status(event)
            except (sqlite3.Error, OSError) as e:
                logger.warning("Failed to persist status event: %s", e)
        return True
