"""Read-only report of tracks that look like duplicates."""

from dataclasses import dataclass, field
from typing import Any, List

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medialib.core.models import Track


@dataclass
class DuplicateGroup:
    """Tracks sharing one recording MBID or one checksum.

    Attributes:
        kind: "mbid" or "checksum".
        key: The shared value (checksum rendered as hex).
        paths: Paths of the tracks in the group, in release/disc/track order.
    """

    kind: str
    key: str
    paths: List[str] = field(default_factory=list)


class DuplicateDetector:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def find_duplicates(self) -> List[DuplicateGroup]:
        logger.info("Checking duplicated audio files")
        async with self.session_factory() as session:
            groups = await self._groups(session, "mbid", Track.musicbrainz_id)
            groups += await self._groups(session, "checksum", Track.checksum)

        for group in groups:
            logger.info(
                f"Found duplicated {group.kind} [{group.key}], "
                f"{len(group.paths)} files: {', '.join(group.paths)}"
            )
        logger.info("Checking duplicated audio files done!")
        return groups

    @staticmethod
    async def _groups(session: AsyncSession, kind: str, column: Any) -> List[DuplicateGroup]:
        shared = (
            select(column)
            .where(column.is_not(None), func.length(column) > 0)
            .group_by(column)
            .having(func.count() > 1)
        )
        result = await session.execute(
            select(column, Track.path)
            .where(column.in_(shared))
            .order_by(
                column,
                Track.release_id,
                Track.disc_number,
                Track.track_number,
                Track.path,
            )
        )

        groups: List[DuplicateGroup] = []
        for value, path in result.all():
            key = value.hex() if isinstance(value, bytes) else str(value)
            if not groups or groups[-1].key != key:
                groups.append(DuplicateGroup(kind=kind, key=key))
            groups[-1].paths.append(path)
        return groups
