"""Persisted scan settings and the root directory registry.

Scan settings live as key/value rows in `system_settings` so that the web
application and the updater share them through the catalog. Values are read
at well-defined points (start of a run, start of a scheduling cycle); a change
takes effect on the next cycle.
"""

from datetime import datetime, time
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from loguru import logger
from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medialib.core.config import settings as app_settings
from medialib.core.models import MediaDirectory, MediaType, SystemSetting

MANUAL_SCAN_REQUESTED = "manual_scan_requested"
UPDATE_PERIOD = "update_period"
UPDATE_START_TIME = "update_start_time"
LAST_UPDATE = "last_update"
LAST_SCAN = "last_scan"
AUDIO_FILE_EXTENSIONS = "audio_file_extensions"
VIDEO_FILE_EXTENSIONS = "video_file_extensions"

SETTING_KEYS = (
    MANUAL_SCAN_REQUESTED,
    UPDATE_PERIOD,
    UPDATE_START_TIME,
    LAST_UPDATE,
    LAST_SCAN,
    AUDIO_FILE_EXTENSIONS,
    VIDEO_FILE_EXTENSIONS,
)


class UpdatePeriod(str, Enum):
    NEVER = "never"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"

    @classmethod
    def parse(cls, value: Optional[str]) -> "UpdatePeriod":
        """Parse a stored period, falling back to NEVER on anything unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            logger.warning(f"Invalid update period {value!r}, falling back to 'never'")
            return cls.NEVER


def split_extensions(value: str) -> List[str]:
    """Split a whitespace-separated extension list, keeping order and dropping repeats."""
    return list(dict.fromkeys(value.split()))


def _parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _parse_time(value: Optional[str], default: time) -> time:
    if not value:
        return default
    try:
        return time.fromisoformat(value.strip())
    except ValueError:
        logger.warning(f"Invalid update start time {value!r}, using {default}")
        return default


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.strip())
    except ValueError:
        logger.warning(f"Invalid timestamp setting {value!r}, ignoring")
        return None


class ScanSettings(BaseModel):
    """Snapshot of the persisted scan settings."""

    manual_scan_requested: bool = False
    update_period: UpdatePeriod = UpdatePeriod.NEVER
    update_start_time: time = time(0, 0)
    last_update: Optional[datetime] = None
    last_scan: Optional[datetime] = None
    audio_file_extensions: List[str] = Field(default_factory=list)
    video_file_extensions: List[str] = Field(default_factory=list)

    def extensions_for(self, media_type: MediaType) -> List[str]:
        if media_type is MediaType.AUDIO:
            return self.audio_file_extensions
        return self.video_file_extensions

    @classmethod
    def from_rows(cls, rows: Dict[str, str]) -> "ScanSettings":
        """Build settings from raw key/value rows, applying defaults and never raising."""
        audio = rows.get(AUDIO_FILE_EXTENSIONS)
        video = rows.get(VIDEO_FILE_EXTENSIONS)
        return cls(
            manual_scan_requested=_parse_bool(rows.get(MANUAL_SCAN_REQUESTED)),
            update_period=UpdatePeriod.parse(
                rows.get(UPDATE_PERIOD, app_settings.DEFAULT_UPDATE_PERIOD)
            ),
            update_start_time=_parse_time(
                rows.get(UPDATE_START_TIME), app_settings.DEFAULT_UPDATE_START_TIME
            ),
            last_update=_parse_datetime(rows.get(LAST_UPDATE)),
            last_scan=_parse_datetime(rows.get(LAST_SCAN)),
            audio_file_extensions=(
                split_extensions(audio)
                if audio is not None
                else list(app_settings.DEFAULT_AUDIO_EXTENSIONS)
            ),
            video_file_extensions=(
                split_extensions(video)
                if video is not None
                else list(app_settings.DEFAULT_VIDEO_EXTENSIONS)
            ),
        )


class SettingsStore:
    """Reads and writes scan settings and root directories in the catalog.

    Every method opens its own short session so callers never hold a
    transaction across a scan.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def load(self) -> ScanSettings:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SystemSetting.key, SystemSetting.value).where(
                    SystemSetting.key.in_(SETTING_KEYS)
                )
            )
            rows = {row.key: row.value for row in result.all()}
        return ScanSettings.from_rows(rows)

    async def _set_many(self, values: Dict[str, str]) -> None:
        async with self.session_factory() as session:
            async with session.begin():
                for key, value in values.items():
                    await session.merge(SystemSetting(key=key, value=value))

    async def save(self, scan_settings: ScanSettings) -> None:
        """Persist the user-editable part of the settings."""
        await self._set_many(
            {
                MANUAL_SCAN_REQUESTED: str(scan_settings.manual_scan_requested).lower(),
                UPDATE_PERIOD: scan_settings.update_period.value,
                UPDATE_START_TIME: scan_settings.update_start_time.isoformat(),
                AUDIO_FILE_EXTENSIONS: " ".join(scan_settings.audio_file_extensions),
                VIDEO_FILE_EXTENSIONS: " ".join(scan_settings.video_file_extensions),
            }
        )

    async def set_update_schedule(self, period: UpdatePeriod, start_time: time) -> None:
        await self._set_many(
            {UPDATE_PERIOD: period.value, UPDATE_START_TIME: start_time.isoformat()}
        )

    async def set_extensions(self, media_type: MediaType, extensions: List[str]) -> None:
        key = AUDIO_FILE_EXTENSIONS if media_type is MediaType.AUDIO else VIDEO_FILE_EXTENSIONS
        await self._set_many({key: " ".join(extensions)})

    async def request_manual_scan(self) -> None:
        await self._set_many({MANUAL_SCAN_REQUESTED: "true"})

    async def set_last_update(self, when: datetime) -> None:
        await self._set_many({LAST_UPDATE: when.isoformat()})

    async def mark_scan_completed(self, when: datetime) -> None:
        """Record a completed run and clear any pending manual request."""
        await self._set_many(
            {LAST_SCAN: when.isoformat(), MANUAL_SCAN_REQUESTED: "false"}
        )

    # ========== Root directory registry ==========

    async def list_root_directories(
        self, media_type: Optional[MediaType] = None
    ) -> List[MediaDirectory]:
        """Return configured roots in configuration (insertion) order."""
        stmt = select(MediaDirectory).order_by(MediaDirectory.id)
        if media_type is not None:
            stmt = stmt.where(MediaDirectory.type == media_type.value)
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def add_root_directory(self, path: Path, media_type: MediaType) -> MediaDirectory:
        path_str = str(Path(path).resolve())
        async with self.session_factory() as session:
            async with session.begin():
                existing = await session.scalar(
                    select(MediaDirectory).where(MediaDirectory.path == path_str)
                )
                if existing:
                    existing.type = media_type.value
                    directory = existing
                else:
                    directory = MediaDirectory(path=path_str, type=media_type.value)
                    session.add(directory)
        logger.info(f"Registered {media_type.value} root directory {path_str}")
        return directory

    async def remove_root_directory(self, path: Path) -> bool:
        path_str = str(Path(path).resolve())
        async with self.session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    delete(MediaDirectory).where(MediaDirectory.path == path_str)
                )
        return result.rowcount > 0
