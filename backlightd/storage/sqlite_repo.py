from __future__ import annotations
import aiosqlite
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional
from ..domain.models import CalibrationProfile, StatusEvent

CALIBRATION_PREFIX = "calibration."


class SQLiteRepository:
    def __init__(self, path: str) -> None:
        self._path = str(Path(path).expanduser())

    @property
    def path(self) -> str:
        return self._path

    async def init(self) -> None:
        Path(self._path).parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            await db.execute(
                """
                CREATE TABLE IF NOT EXISTS status_events (
                    ts_utc TEXT NOT NULL,
                    smoothed_luma REAL NOT NULL,
                    target_brightness INTEGER NOT NULL,
                    actual_brightness INTEGER
                )
                """
            )
            await db.execute("CREATE INDEX IF NOT EXISTS idx_status_ts ON status_events(ts_utc)")
            await db.commit()

    async def get_all_settings(self) -> Dict[str, str]:
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute("SELECT key, value FROM settings")
            rows = await cur.fetchall()
        return {k: v for k, v in rows}

    async def set_settings_batch(self, updates: Dict[str, str]) -> None:
        """Upsert all ``updates`` in one transaction: all keys change or none do."""
        now = datetime.now(timezone.utc).isoformat()
        async with aiosqlite.connect(self._path) as db:
            for key, value in updates.items():
                await db.execute(
                    "INSERT INTO settings(key, value, updated_at) VALUES (?, ?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
                    (key, value, now),
                )
            await db.commit()

    async def load_calibration(self) -> Optional[CalibrationProfile]:
        stored = await self.get_all_settings()
        values = {
            k[len(CALIBRATION_PREFIX):]: v
            for k, v in stored.items()
            if k.startswith(CALIBRATION_PREFIX)
        }
        if not values:
            return None
        return CalibrationProfile.from_store(values)

    async def save_calibration(self, profile: CalibrationProfile) -> None:
        await self.set_settings_batch(
            {CALIBRATION_PREFIX + k: v for k, v in profile.to_store().items()}
        )

    async def insert_status(self, e: StatusEvent) -> None:
        async with aiosqlite.connect(self._path) as db:
            await db.execute(
                "INSERT INTO status_events(ts_utc,smoothed_luma,target_brightness,actual_brightness) VALUES (?,?,?,?)",
                (e.ts_utc.isoformat(), float(e.smoothed_luma), int(e.target_brightness), e.actual_brightness),
            )
            await db.commit()
