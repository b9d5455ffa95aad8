"""Library models: Artist, Release, Cluster, Track, Video."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Table,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from medialib.core.models.base import Base, TimestampMixin

# Name shared by the placeholder artist, release and cluster rows that stand
# in for missing tags.
NONE_NAME = "<None>"
GENRE_CLUSTER = "genre"


class CoverType(str, Enum):
    EMBEDDED = "embedded"
    EXTERNAL_FILE = "external_file"
    NONE = "none"


track_clusters = Table(
    "track_clusters",
    Base.metadata,
    Column(
        "track_id",
        ForeignKey("tracks.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "cluster_id",
        ForeignKey("clusters.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Artist(Base, TimestampMixin):
    """A performer as tagged in the files. Names are not unique."""

    __tablename__ = "artists"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String, index=True)
    musicbrainz_id: Mapped[Optional[str]] = mapped_column(
        String(36), unique=True, index=True, nullable=True
    )

    @property
    def is_none(self) -> bool:
        return self.name == NONE_NAME and not self.musicbrainz_id


class Release(Base, TimestampMixin):
    """An album or other release grouping tracks."""

    __tablename__ = "releases"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String, index=True)
    musicbrainz_id: Mapped[Optional[str]] = mapped_column(
        String(36), unique=True, index=True, nullable=True
    )

    @property
    def is_none(self) -> bool:
        return self.name == NONE_NAME and not self.musicbrainz_id


class Cluster(Base, TimestampMixin):
    """A genre-like tag. `type` namespaces the name (e.g. "genre")."""

    __tablename__ = "clusters"
    __table_args__ = (
        UniqueConstraint("type", "name", name="uq_cluster_type_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    type: Mapped[str] = mapped_column(String, index=True)
    name: Mapped[str] = mapped_column(String, index=True)

    @property
    def is_none(self) -> bool:
        return self.name == NONE_NAME


class Track(Base, TimestampMixin):
    """An audio file known to the catalog."""

    __tablename__ = "tracks"
    __table_args__ = (
        Index("idx_track_release_disc_number", "release_id", "disc_number", "track_number"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    path: Mapped[str] = mapped_column(String, unique=True, index=True)
    checksum: Mapped[Optional[bytes]] = mapped_column(
        LargeBinary(4), index=True, nullable=True
    )
    artist_id: Mapped[int] = mapped_column(ForeignKey("artists.id"), index=True)
    release_id: Mapped[int] = mapped_column(ForeignKey("releases.id"), index=True)

    name: Mapped[str] = mapped_column(String)
    genres: Mapped[str] = mapped_column(String, default="")
    track_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_track_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    disc_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    total_disc_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    duration: Mapped[float] = mapped_column(Float, default=0.0)
    date: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    original_date: Mapped[Optional[datetime]] = mapped_column(nullable=True)
    musicbrainz_id: Mapped[Optional[str]] = mapped_column(
        String(36), index=True, nullable=True
    )
    cover_type: Mapped[str] = mapped_column(String, default=CoverType.NONE.value)
    last_write_time: Mapped[datetime] = mapped_column()
    added_time: Mapped[datetime] = mapped_column()

    artist: Mapped["Artist"] = relationship()
    release: Mapped["Release"] = relationship()
    clusters: Mapped[List["Cluster"]] = relationship(
        secondary=track_clusters, passive_deletes=True
    )


class Video(Base, TimestampMixin):
    """A video file known to the catalog."""

    __tablename__ = "videos"

    id: Mapped[int] = mapped_column(primary_key=True)
    path: Mapped[str] = mapped_column(String, unique=True, index=True)
    name: Mapped[str] = mapped_column(String)
    duration: Mapped[float] = mapped_column(Float, default=0.0)
    last_write_time: Mapped[datetime] = mapped_column()
