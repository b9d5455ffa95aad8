import argparse
import asyncio
import sys
from datetime import time
from pathlib import Path

from loguru import logger

from medialib.core.db import AsyncSessionLocal, init_db
from medialib.core.exceptions import CatalogError
from medialib.core.logger import setup_logging
from medialib.core.models import MediaType
from medialib.core.settings_store import SettingsStore, UpdatePeriod
from medialib.worker.updater import Updater


async def run_scan() -> int:
    """Run one full scan immediately, ignoring the schedule."""
    await init_db()
    updater = Updater(AsyncSessionLocal)
    try:
        stats = await updater.run_once()
    except CatalogError:
        logger.exception("Scan failed")
        return 1
    finally:
        await updater.close()
    return 0 if not stats.interrupted else 1


async def run_serve() -> int:
    """Run the scheduled updater until interrupted or failed."""
    await init_db()
    updater = Updater(AsyncSessionLocal)
    updater.start()
    logger.info("Updater started, waiting for scheduled scans")
    try:
        await updater.wait()
    except CatalogError:
        logger.exception("Updater stopped after a catalog failure")
        return 1
    finally:
        await updater.close()
    return 0


async def run_add_root(path: str, media_type: MediaType) -> int:
    root = Path(path)
    if not root.is_dir():
        logger.error(f"Not a directory: {root}")
        return 2
    await init_db()
    await SettingsStore(AsyncSessionLocal).add_root_directory(root, media_type)
    return 0


async def run_remove_root(path: str) -> int:
    await init_db()
    if await SettingsStore(AsyncSessionLocal).remove_root_directory(Path(path)):
        logger.info(f"Removed root directory {path}")
        return 0
    logger.warning(f"No root directory registered at {path}")
    return 1


async def run_list_roots() -> int:
    await init_db()
    for root in await SettingsStore(AsyncSessionLocal).list_root_directories():
        print(f"{root.type}\t{root.path}")
    return 0


async def run_schedule(period: str, start_time: str) -> int:
    try:
        parsed_time = time.fromisoformat(start_time)
    except ValueError:
        logger.error(f"Invalid start time '{start_time}', expected HH:MM")
        return 2
    await init_db()
    await SettingsStore(AsyncSessionLocal).set_update_schedule(
        UpdatePeriod(period), parsed_time
    )
    logger.info(f"Scan schedule set to {period} at {parsed_time:%H:%M}")
    return 0


async def run_set_extensions(media_type: MediaType, extensions: list) -> int:
    await init_db()
    await SettingsStore(AsyncSessionLocal).set_extensions(media_type, extensions)
    logger.info(f"{media_type.value} extensions set to {' '.join(extensions)}")
    return 0


async def run_request_scan() -> int:
    """Flag a manual scan; a running `serve` picks it up on its next poll."""
    await init_db()
    await SettingsStore(AsyncSessionLocal).request_manual_scan()
    logger.info("Manual scan requested")
    return 0


def main(argv=None) -> int:
    setup_logging()
    parser = argparse.ArgumentParser(description="Medialib Worker")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init-db", help="Initialize Database Tables")

    subparsers.add_parser("scan", help="Run one full library scan now")

    subparsers.add_parser("serve", help="Run the scheduled updater")

    add_parser = subparsers.add_parser("add-root", help="Register a root directory")
    add_parser.add_argument("path", help="Directory to scan")
    add_parser.add_argument(
        "--type",
        choices=[t.value for t in MediaType],
        default=MediaType.AUDIO.value,
        help="Media type stored under this root",
    )

    remove_parser = subparsers.add_parser(
        "remove-root", help="Unregister a root directory"
    )
    remove_parser.add_argument("path", help="Registered directory")

    subparsers.add_parser("list-roots", help="List registered root directories")

    schedule_parser = subparsers.add_parser(
        "schedule", help="Set the automatic scan period"
    )
    schedule_parser.add_argument(
        "period", choices=[p.value for p in UpdatePeriod], help="Scan period"
    )
    schedule_parser.add_argument(
        "--start-time", default="00:00", help="Time of day (HH:MM)"
    )

    ext_parser = subparsers.add_parser(
        "extensions", help="Set the file extensions scanned for a media type"
    )
    ext_parser.add_argument("type", choices=[t.value for t in MediaType])
    ext_parser.add_argument("extensions", nargs="+", help="e.g. .mp3 .flac")

    subparsers.add_parser("request-scan", help="Ask the running updater to scan now")

    args = parser.parse_args(argv)

    try:
        if args.command == "init-db":
            asyncio.run(init_db())
            return 0
        elif args.command == "scan":
            return asyncio.run(run_scan())
        elif args.command == "serve":
            return asyncio.run(run_serve())
        elif args.command == "add-root":
            return asyncio.run(run_add_root(args.path, MediaType(args.type)))
        elif args.command == "remove-root":
            return asyncio.run(run_remove_root(args.path))
        elif args.command == "list-roots":
            return asyncio.run(run_list_roots())
        elif args.command == "schedule":
            return asyncio.run(run_schedule(args.period, args.start_time))
        elif args.command == "extensions":
            return asyncio.run(
                run_set_extensions(MediaType(args.type), args.extensions)
            )
        elif args.command == "request-scan":
            return asyncio.run(run_request_scan())
        else:
            parser.print_help()
            return 2
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130


def run() -> None:
    sys.exit(main())


if __name__ == "__main__":
    run()
