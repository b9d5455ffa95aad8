"""Library updater: wires scheduler, sweep, walk/sync and duplicate detection.

One full run:
    refresh extensions -> stale row sweep (audio, video) -> walk + sync every
    root in configuration order -> orphan reclamation -> duplicate detection
    -> persist timestamps -> scan-complete notification

Typical usage example:
    updater = Updater(AsyncSessionLocal)
    updater.on_scan_complete(lambda stats: print(stats))
    updater.start()
    ...
    await updater.stop()
"""

import asyncio
import inspect
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Union

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medialib.core.exceptions import CatalogError
from medialib.core.models import MediaType
from medialib.core.scanner_config import ScannerConfig
from medialib.core.settings_store import ScanSettings, SettingsStore
from medialib.core.stats import ScanStats
from medialib.worker.duplicates import DuplicateDetector
from medialib.worker.metadata import FFprobeParser, MetadataParser, MutagenParser
from medialib.worker.scheduler import Scheduler, SchedulerState
from medialib.worker.sweeper import ConsistencySweeper
from medialib.worker.sync import SyncEngine, TrackChange
from medialib.worker.walker import walk

ScanCompleteCallback = Callable[[ScanStats], Union[None, Awaitable[None]]]
TrackChangedCallback = Callable[[TrackChange], Union[None, Awaitable[None]]]


class Updater:
    """Keeps the catalog in sync with the configured root directories.

    Attributes:
        session_factory: Factory for catalog sessions.
        store: Persisted scan settings and root directory registry.
        config: Scanner tuning.
        scheduler: The scan loop driving `run_once`.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        audio_parser: Optional[MetadataParser] = None,
        video_parser: Optional[MetadataParser] = None,
        config: Optional[ScannerConfig] = None,
        clock: Callable[[], datetime] = datetime.now,
        idle_poll_seconds: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.config = config or ScannerConfig()
        self.store = SettingsStore(session_factory)
        self.sync_engine = SyncEngine(
            session_factory,
            audio_parser=audio_parser or MutagenParser(),
            video_parser=video_parser if video_parser is not None else FFprobeParser(),
            config=self.config,
            on_track_changed=self._emit_track_changed,
        )
        self.sweeper = ConsistencySweeper(session_factory)
        self.duplicates = DuplicateDetector(session_factory)
        self.scheduler = Scheduler(
            self.store.load,
            self.run_once,
            idle_poll_seconds=idle_poll_seconds,
            clock=clock,
        )
        self._clock = clock
        self._stop_requested = False
        self._scan_complete_listeners: List[ScanCompleteCallback] = []
        self._track_changed_listeners: List[TrackChangedCallback] = []

    # ========== Lifecycle ==========

    @property
    def state(self) -> SchedulerState:
        return self.scheduler.state

    def start(self) -> None:
        """Arm the scheduler and enter the scan loop (as a background task)."""
        self._stop_requested = False
        self.scheduler.start()

    async def stop(self) -> None:
        """Cancel the pending timer and halt the loop.

        A run in progress finishes the file it is working on and starts no
        further root directory.
        """
        self.request_stop()
        await self.scheduler.stop()

    async def restart(self) -> None:
        await self.stop()
        self.start()

    async def wait(self) -> None:
        """Block until the loop exits; raises CatalogError on run-level failure."""
        await self.scheduler.wait()

    async def close(self) -> None:
        await self.stop()
        self.sync_engine.close()

    def request_stop(self) -> None:
        """Ask the current run to stop at the next file or root boundary."""
        self._stop_requested = True

    def stop_requested(self) -> bool:
        return self._stop_requested

    async def request_scan(self) -> None:
        """Persist a manual scan request and wake the scheduler."""
        await self.store.request_manual_scan()
        self.scheduler.wake()

    # ========== Listeners ==========

    def on_scan_complete(self, callback: ScanCompleteCallback) -> None:
        self._scan_complete_listeners.append(callback)

    def on_track_changed(self, callback: TrackChangedCallback) -> None:
        self._track_changed_listeners.append(callback)

    async def _dispatch(self, listeners: list, payload) -> None:
        for callback in listeners:
            try:
                outcome = callback(payload)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as e:
                logger.opt(exception=e).error(f"Listener {callback!r} failed")

    async def _emit_track_changed(self, change: TrackChange) -> None:
        await self._dispatch(self._track_changed_listeners, change)

    # ========== Run ==========

    async def run_once(self) -> ScanStats:
        """Perform one full scan run and return its statistics.

        Raises:
            CatalogError: If the catalog cannot be read or written at the run
                level (settings, roots, sweep). Per-file failures never raise.
        """
        # A stop request ends the run it was made in, not the next one
        self._stop_requested = False
        stats = ScanStats()
        logger.info("Starting library scan...")

        try:
            scan_settings = await self.store.load()
            roots = await self.store.list_root_directories()

            for media_type in (MediaType.AUDIO, MediaType.VIDEO):
                await self.sweeper.remove_stale(
                    media_type,
                    [Path(r.path) for r in roots if r.media_type is media_type],
                    scan_settings.extensions_for(media_type),
                    stats,
                    should_stop=self.stop_requested,
                )

            for root in roots:
                if self.stop_requested():
                    break
                logger.info(f"Processing root directory '{root.path}'...")
                await self._process_root(Path(root.path), root.media_type, scan_settings, stats)
                logger.info(f"Processing root directory '{root.path}' DONE")

            await self.sweeper.reclaim_orphans()

            completed = not self.stop_requested()
            stats.interrupted = not completed
            if completed:
                groups = await self.duplicates.find_duplicates()
                stats.duplicate_groups = len(groups)

            now = self._clock()
            if stats.changes > 0:
                await self.store.set_last_update(now)
            # Save the last scan only if it has been completed
            if completed:
                await self.store.mark_scan_completed(now)
        except SQLAlchemyError as e:
            raise CatalogError(f"Catalog unavailable during scan: {e}") from e

        if completed:
            logger.success(f"Scan complete. {stats}")
            await self._dispatch(self._scan_complete_listeners, stats)
        else:
            logger.warning(f"Scan interrupted. {stats}")
        return stats

    async def _process_root(
        self,
        root: Path,
        media_type: MediaType,
        scan_settings: ScanSettings,
        stats: ScanStats,
    ) -> None:
        extensions = scan_settings.extensions_for(media_type)
        semaphore = asyncio.Semaphore(self.config.max_concurrent_files)
        in_flight: set = set()
        seen = 0

        async def sync_one(file_path: Path) -> None:
            try:
                stats.record(await self.sync_engine.sync_file(file_path, media_type))
            finally:
                semaphore.release()

        async for file_path in walk(root, extensions):
            await semaphore.acquire()
            if self.stop_requested():
                semaphore.release()
                break
            seen += 1
            if seen % self.config.progress_log_interval == 0:
                logger.info(
                    f"Scanned {seen} files in '{root}' "
                    f"({stats.added} added, {stats.modified} modified)"
                )
            task = asyncio.create_task(sync_one(file_path))
            in_flight.add(task)
            task.add_done_callback(in_flight.discard)

        if in_flight:
            await asyncio.gather(*in_flight)
