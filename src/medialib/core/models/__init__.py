"""SQLAlchemy models for the media catalog.

Submodules:
- base: Base, TimestampMixin
- library: Artist, Release, Cluster, Track, Video (+ track_clusters link table)
- system: SystemSetting, MediaDirectory
"""

from medialib.core.models.base import Base, TimestampMixin
from medialib.core.models.library import (
    GENRE_CLUSTER,
    NONE_NAME,
    Artist,
    Cluster,
    CoverType,
    Release,
    Track,
    Video,
    track_clusters,
)
from medialib.core.models.system import MediaDirectory, MediaType, SystemSetting

__all__ = [
    "Base",
    "TimestampMixin",
    "NONE_NAME",
    "GENRE_CLUSTER",
    "Artist",
    "Release",
    "Cluster",
    "CoverType",
    "Track",
    "Video",
    "track_clusters",
    "MediaDirectory",
    "MediaType",
    "SystemSetting",
]
