"""Consistency sweep: stale row removal and orphan reclamation.

Stale rows are those whose file vanished, moved outside every configured root
of its media type, or no longer matches the extension allow-list. Orphans are
artists, releases and clusters no track references any more; the "<None>"
sentinels are kept. Row removal must run before orphan reclamation since
removing rows is what creates orphans.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence

from loguru import logger
from sqlalchemy import and_, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medialib.core.models import (
    NONE_NAME,
    Artist,
    Cluster,
    MediaType,
    Release,
    Track,
    Video,
    track_clusters,
)
from medialib.core.stats import ScanStats
from medialib.worker.walker import is_supported


@dataclass
class OrphanCounts:
    clusters: int = 0
    artists: int = 0
    releases: int = 0

    @property
    def total(self) -> int:
        return self.clusters + self.artists + self.releases


def is_path_in_root(path: Path, root: Path) -> bool:
    """True if `root` is a strict ancestor of `path` (lexical comparison)."""
    return root in path.parents


def check_file(path: Path, roots: Sequence[Path], extensions: Iterable[str]) -> bool:
    """Whether a catalogued file still belongs in the catalog."""
    try:
        if not path.is_file():
            logger.info(f"Missing file '{path}'")
            return False
        if not any(is_path_in_root(path, root) for root in roots):
            logger.info(f"Out of root file '{path}'")
            return False
        if not is_supported(path, extensions):
            logger.info(f"File format no longer supported for '{path}'")
            return False
        return True
    except OSError as e:
        logger.error(f"Caught exception while checking file '{path}': {e}")
        return False


class ConsistencySweeper:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def remove_stale(
        self,
        media_type: MediaType,
        roots: Sequence[Path],
        extensions: Iterable[str],
        stats: ScanStats,
        should_stop: Optional[Callable[[], bool]] = None,
    ) -> None:
        """Delete every row of `media_type` whose file fails `check_file`.

        Each removal is its own transaction. `should_stop` is polled between
        rows.
        """
        model = Track if media_type is MediaType.AUDIO else Video
        extensions = list(extensions)
        logger.info(f"Checking {media_type.value} files...")

        async with self.session_factory() as session:
            result = await session.execute(select(model.id, model.path).order_by(model.id))
            rows = result.all()

        for row in rows:
            if should_stop and should_stop():
                logger.info("Sweep interrupted")
                return
            if check_file(Path(row.path), roots, extensions):
                continue
            if await self._remove(model, row.id):
                stats.removed += 1

        logger.info(f"Check {media_type.value} files done!")

    async def _remove(self, model, row_id: int) -> bool:
        async with self.session_factory() as session:
            async with session.begin():
                if model is Track:
                    await session.execute(
                        delete(track_clusters).where(track_clusters.c.track_id == row_id)
                    )
                result = await session.execute(delete(model).where(model.id == row_id))
        return result.rowcount > 0

    async def reclaim_orphans(self) -> OrphanCounts:
        """Delete clusters, artists and releases with no tracks, sentinels exempt."""
        counts = OrphanCounts()

        logger.debug("Checking clusters...")
        async with self.session_factory() as session:
            async with session.begin():
                orphans = await self._names(
                    session,
                    select(Cluster.name).where(
                        Cluster.name != NONE_NAME,
                        Cluster.id.not_in(select(track_clusters.c.cluster_id)),
                    ),
                )
                result = await session.execute(
                    delete(Cluster).where(
                        Cluster.name != NONE_NAME,
                        Cluster.id.not_in(select(track_clusters.c.cluster_id)),
                    )
                )
                counts.clusters = result.rowcount
        for name in orphans:
            logger.debug(f"Removing orphan cluster '{name}'")

        logger.debug("Checking artists...")
        counts.artists = await self._reclaim(Artist, Track.artist_id)
        logger.debug("Checking releases...")
        counts.releases = await self._reclaim(Release, Track.release_id)

        if counts.total:
            logger.info(
                f"Reclaimed orphans: {counts.clusters} clusters, "
                f"{counts.artists} artists, {counts.releases} releases"
            )
        return counts

    async def _reclaim(self, model, track_fk) -> int:
        not_sentinel = or_(model.name != NONE_NAME, model.musicbrainz_id.is_not(None))
        unreferenced = model.id.not_in(select(track_fk))
        async with self.session_factory() as session:
            async with session.begin():
                names = await self._names(
                    session, select(model.name).where(and_(not_sentinel, unreferenced))
                )
                result = await session.execute(
                    delete(model).where(and_(not_sentinel, unreferenced))
                )
        for name in names:
            logger.debug(f"Removing orphan {model.__tablename__[:-1]} '{name}'")
        return result.rowcount

    @staticmethod
    async def _names(session: AsyncSession, stmt) -> List[str]:
        result = await session.execute(stmt)
        return list(result.scalars().all())
