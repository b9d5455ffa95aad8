from datetime import time
from pathlib import Path
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MEDIALIB_",
        extra="ignore",
    )

    # Project Paths
    BASE_DIR: Path = Path(__file__).resolve().parent.parent.parent
    DATA_DIR: Path = BASE_DIR.parent / "data"

    # Database
    DB_NAME: str = "medialib.db"
    DB_BACKUP_RETENTION: int = 5

    @property
    def DB_PATH(self) -> Path:
        return self.DATA_DIR / self.DB_NAME

    @property
    def DB_URL(self) -> str:
        # Use forward slashes so Windows paths work in the URL (no backslash escapes)
        path = self.DB_PATH.resolve().as_posix()
        return f"sqlite+aiosqlite:///{path}"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_RETENTION: str = "10 days"
    LOG_ROTATION: str = "10 MB"

    DB_ECHO: bool = False  # SQLAlchemy query logging

    # Scan defaults, used until the catalog holds its own scan settings
    DEFAULT_AUDIO_EXTENSIONS: List[str] = [
        ".mp3", ".ogg", ".oga", ".aac", ".m4a", ".flac", ".wav", ".wma",
        ".aif", ".aiff", ".ape", ".mpc", ".shn", ".opus", ".wv",
    ]
    DEFAULT_VIDEO_EXTENSIONS: List[str] = [
        ".avi", ".mkv", ".mp4", ".m4v", ".mov", ".mpeg", ".mpg", ".webm", ".wmv",
    ]
    DEFAULT_UPDATE_PERIOD: str = "never"
    DEFAULT_UPDATE_START_TIME: time = time(0, 0)

    # Updater
    UPDATER_IDLE_POLL_SECONDS: float = 60.0
    COVER_FILE_NAMES: List[str] = ["cover", "folder", "front"]
    COVER_FILE_EXTENSIONS: List[str] = [".jpg", ".jpeg", ".png"]

    # External tools
    FFPROBE_PATH: Optional[Path] = None


settings = Settings()

# Ensure data directory exists
settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
