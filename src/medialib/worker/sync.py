"""Per-file reconciliation between the filesystem and the catalog.

`SyncEngine.sync_file` decides whether a file is skipped, added, modified,
removed or rejected, and applies the change in its own transaction. Every
failure is contained at the file boundary and reported as a `SyncResult`,
so one bad file never aborts a run.

Typical usage example:
    engine = SyncEngine(session_factory, audio_parser=MutagenParser())
    result = await engine.sync_file(Path("/music/a.mp3"), MediaType.AUDIO)
"""

import asyncio
import concurrent.futures
import inspect
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, Union

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from medialib.core.config import settings
from medialib.core.exceptions import ParseError, ValidityError
from medialib.core.models import CoverType, MediaType, Track, Video, track_clusters
from medialib.core.scanner_config import ScannerConfig
from medialib.core.stats import SyncResult
from medialib.worker.checksum import compute_checksum
from medialib.worker.metadata import MetadataParser, PropertyBag
from medialib.worker.resolver import EntityResolver


@dataclass(frozen=True)
class TrackChange:
    """A committed change to a track row.

    Attributes:
        updated: True when the track was added or modified, False when removed.
        track_id: Catalog id of the track.
        musicbrainz_id: Recording MBID, if tagged.
        path: Path of the backing file.
    """

    updated: bool
    track_id: int
    musicbrainz_id: Optional[str]
    path: str


TrackChangedCallback = Callable[[TrackChange], Union[None, Awaitable[None]]]


def last_write_time(path: Path) -> datetime:
    """Modification time of `path` as naive UTC, truncated to whole seconds."""
    mtime = int(os.stat(path).st_mtime)
    return datetime.fromtimestamp(mtime, tz=timezone.utc).replace(tzinfo=None)


def find_external_cover(path: Path) -> bool:
    """True if a cover image (cover.jpg, folder.png, ...) sits next to `path`."""
    try:
        siblings = os.listdir(path.parent)
    except OSError:
        return False
    names = {n.lower() for n in settings.COVER_FILE_NAMES}
    extensions = {e.lower() for e in settings.COVER_FILE_EXTENSIONS}
    for sibling in siblings:
        stem, ext = os.path.splitext(sibling)
        if stem.lower() in names and ext.lower() in extensions:
            return True
    return False


class SyncEngine:
    """Reconciles single files with Track and Video rows.

    Attributes:
        session_factory: Factory for the short per-file sessions.
        audio_parser: Parser used for audio roots.
        video_parser: Parser used for video roots (videos are rejected if None).
        config: Scanner tuning (chunk size, worker count).
        executor: Thread pool for parsing, hashing and cover lookups.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audio_parser: MetadataParser,
        video_parser: Optional[MetadataParser] = None,
        config: Optional[ScannerConfig] = None,
        on_track_changed: Optional[TrackChangedCallback] = None,
    ):
        self.session_factory = session_factory
        self.audio_parser = audio_parser
        self.video_parser = video_parser
        self.config = config or ScannerConfig()
        self.on_track_changed = on_track_changed
        self.executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=self.config.metadata_workers
        )
        # One catalog writer at a time so lookup-or-create never races
        self._write_lock = asyncio.Lock()

    def close(self) -> None:
        self.executor.shutdown(wait=False)

    async def _run_blocking(self, func: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, func, *args)

    async def sync_file(self, path: Path, media_type: MediaType) -> SyncResult:
        """Reconcile one file with the catalog. Never raises."""
        try:
            if media_type is MediaType.AUDIO:
                return await self._sync_audio(path)
            return await self._sync_video(path)
        except Exception as e:
            self._handle_file_error(path, e)
            return SyncResult.SCAN_ERROR

    # ========== Shared steps ==========

    async def _is_unchanged(self, model: Type[Union[Track, Video]], path_str: str, lwt: datetime) -> bool:
        async with self.session_factory() as session:
            stored = await session.scalar(
                select(model.last_write_time).where(model.path == path_str)
            )
        return stored is not None and stored == lwt

    async def _parse(self, parser: Optional[MetadataParser], path: Path) -> Optional[PropertyBag]:
        if parser is None:
            logger.warning(f"No parser configured for '{path}'")
            return None
        try:
            return await self._run_blocking(parser.parse, path)
        except ParseError as e:
            logger.warning(f"Scan error: {e}")
            return None

    @staticmethod
    def _check_validity(path: Path, bag: PropertyBag, media_type: MediaType) -> None:
        """Raise ValidityError unless the file has a stream and a positive duration."""
        streams = bag.audio_streams if media_type is MediaType.AUDIO else bag.video_streams
        if streams <= 0:
            raise ValidityError(path, f"no {media_type.value} stream found")
        if bag.duration is None or bag.duration <= 0:
            raise ValidityError(path, "no duration or duration <= 0")

    async def _reject(self, model: Type[Union[Track, Video]], path_str: str, error: ValidityError) -> SyncResult:
        logger.info(f"Skipped '{error.path}' ({error.reason})")
        removed = await self._remove_row(model, path_str)
        return SyncResult.REMOVED if removed else SyncResult.NOT_IMPORTED

    async def _remove_row(self, model: Type[Union[Track, Video]], path_str: str) -> bool:
        change = None
        async with self._write_lock:
            async with self.session_factory() as session:
                async with session.begin():
                    row = await session.scalar(select(model).where(model.path == path_str))
                    if row is None:
                        return False
                    if model is Track:
                        await session.execute(
                            delete(track_clusters).where(track_clusters.c.track_id == row.id)
                        )
                        change = TrackChange(False, row.id, row.musicbrainz_id, row.path)
                    await session.delete(row)
        logger.info(f"Removed '{path_str}'")
        if change:
            await self._notify(change)
        return True

    async def _notify(self, change: TrackChange) -> None:
        if self.on_track_changed is None:
            return
        try:
            outcome = self.on_track_changed(change)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.opt(exception=e).error(f"Track change listener failed for {change.path}")

    def _handle_file_error(self, path: Path, error: Exception) -> None:
        """Centralized error handling for file processing."""
        if isinstance(error, OSError):
            # Permission denied, file vanished between walk and sync, etc.
            logger.warning(f"File I/O error for {path}: {error}")
        elif isinstance(error, SQLAlchemyError):
            logger.warning(f"Catalog write failed for {path}, change dropped: {error}")
        else:
            logger.opt(exception=error).error(
                f"Failed to process {path}: {type(error).__name__}: {error}"
            )

    # ========== Audio ==========

    async def _sync_audio(self, path: Path) -> SyncResult:
        path_str = str(path)
        lwt = last_write_time(path)

        # Skip file if last write is the same
        if await self._is_unchanged(Track, path_str, lwt):
            return SyncResult.SKIPPED

        bag = await self._parse(self.audio_parser, path)
        if bag is None:
            return SyncResult.SCAN_ERROR

        try:
            self._check_validity(path, bag, MediaType.AUDIO)
        except ValidityError as e:
            return await self._reject(Track, path_str, e)

        checksum = await self._run_blocking(
            compute_checksum, path, self.config.checksum_chunk_size
        )
        if bag.has_cover:
            cover_type = CoverType.EMBEDDED
        elif await self._run_blocking(find_external_cover, path):
            cover_type = CoverType.EXTERNAL_FILE
        else:
            cover_type = CoverType.NONE

        async with self._write_lock:
            async with self.session_factory() as session:
                async with session.begin():
                    result, track = await self._write_track(
                        session, path, bag, checksum, cover_type, lwt
                    )
                    change = TrackChange(True, track.id, track.musicbrainz_id, track.path)

        logger.info(f"{'Adding' if result is SyncResult.ADDED else 'Updating'} '{path}'")
        await self._notify(change)
        return result

    async def _write_track(
        self,
        session: AsyncSession,
        path: Path,
        bag: PropertyBag,
        checksum: bytes,
        cover_type: CoverType,
        lwt: datetime,
    ) -> Tuple[SyncResult, Track]:
        track = await session.scalar(
            select(Track)
            .where(Track.path == str(path))
            .options(selectinload(Track.clusters))
        )

        resolver = EntityResolver(session)
        artist = await resolver.resolve_artist(bag.artist, bag.musicbrainz_artist_id)
        release = await resolver.resolve_release(bag.album, bag.musicbrainz_album_id)
        clusters = await resolver.resolve_clusters(bag.genres)

        if track is None:
            track = Track(
                path=str(path),
                added_time=datetime.now(timezone.utc).replace(tzinfo=None),
                clusters=[],
            )
            session.add(track)
            result = SyncResult.ADDED
        else:
            # Detach from previous clusters before reattaching the new set
            track.clusters.clear()
            result = SyncResult.MODIFIED

        track.clusters.extend(clusters)
        track.genres = ", ".join(c.name for c in clusters)
        track.artist = artist
        track.release = release
        track.checksum = checksum
        track.last_write_time = lwt
        track.name = bag.title or path.name
        track.duration = float(bag.duration)
        track.track_number = bag.track_number
        track.total_track_number = bag.total_track
        track.disc_number = bag.disc_number
        track.total_disc_number = bag.total_disc
        track.original_date = bag.original_date
        # A file with only an original date gets it as date too, to ease filtering
        track.date = bag.date or bag.original_date
        track.musicbrainz_id = (bag.musicbrainz_recording_id or "").strip() or None
        track.cover_type = cover_type.value

        await session.flush()
        return result, track

    # ========== Video ==========

    async def _sync_video(self, path: Path) -> SyncResult:
        path_str = str(path)
        lwt = last_write_time(path)

        if await self._is_unchanged(Video, path_str, lwt):
            return SyncResult.SKIPPED

        bag = await self._parse(self.video_parser, path)
        if bag is None:
            return SyncResult.SCAN_ERROR

        try:
            self._check_validity(path, bag, MediaType.VIDEO)
        except ValidityError as e:
            return await self._reject(Video, path_str, e)

        async with self._write_lock:
            async with self.session_factory() as session:
                async with session.begin():
                    video = await session.scalar(select(Video).where(Video.path == path_str))
                    if video is None:
                        video = Video(path=path_str)
                        session.add(video)
                        result = SyncResult.ADDED
                    else:
                        result = SyncResult.MODIFIED
                    video.name = path.name
                    video.duration = float(bag.duration)
                    video.last_write_time = lwt

        logger.debug(f"{'Adding' if result is SyncResult.ADDED else 'Updating'} video '{path}'")
        return result
