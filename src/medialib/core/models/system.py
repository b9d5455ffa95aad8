"""System models: SystemSetting, MediaDirectory."""

from enum import Enum
from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from medialib.core.models.base import Base, TimestampMixin


class MediaType(str, Enum):
    AUDIO = "audio"
    VIDEO = "video"


class SystemSetting(Base, TimestampMixin):
    """Persistent storage for dynamic application settings."""

    __tablename__ = "system_settings"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(String)
    description: Mapped[Optional[str]] = mapped_column(String, nullable=True)


class MediaDirectory(Base, TimestampMixin):
    """A configured root folder scanned for one media type."""

    __tablename__ = "media_directories"

    id: Mapped[int] = mapped_column(primary_key=True)
    path: Mapped[str] = mapped_column(String, unique=True)
    type: Mapped[str] = mapped_column(String, index=True)

    @property
    def media_type(self) -> MediaType:
        return MediaType(self.type)
