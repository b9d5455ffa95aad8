"""Directory walker producing candidate media files under a root."""

import asyncio
import os
from pathlib import Path
from typing import AsyncIterator, Iterable, List

from loguru import logger


def is_supported(path: Path, extensions: Iterable[str]) -> bool:
    """Case-sensitive match of the file suffix against dot-prefixed extensions."""
    return path.suffix in extensions


def _list_dir(path: str) -> List[os.DirEntry]:
    with os.scandir(path) as it:
        return list(it)


async def walk(root: Path, extensions: Iterable[str]) -> AsyncIterator[Path]:
    """Lazily yield regular files under `root` whose suffix is allowed.

    Directories are listed in the default executor. Symlinks are not
    followed. Unreadable or vanished entries are logged and skipped so one bad
    subtree never stops the rest of the walk. Each call is a fresh walk.
    """
    allowed = frozenset(extensions)
    if not allowed:
        logger.warning(f"No extensions configured, nothing to walk under {root}")
        return

    loop = asyncio.get_running_loop()
    pending: List[str] = [str(root)]
    while pending:
        current = pending.pop()
        try:
            entries = await loop.run_in_executor(None, _list_dir, current)
        except FileNotFoundError:
            logger.warning(f"Directory vanished or missing: {current}")
            continue
        except PermissionError:
            logger.warning(f"Permission denied: {current}")
            continue
        except OSError as e:
            logger.warning(f"Error scanning directory {current}: {e}")
            continue

        subdirs = []
        for entry in sorted(entries, key=lambda e: e.name):
            try:
                if entry.is_symlink():
                    logger.debug(f"Skipping symlink {entry.path}")
                elif entry.is_dir(follow_symlinks=False):
                    subdirs.append(entry.path)
                elif entry.is_file(follow_symlinks=False):
                    path = Path(entry.path)
                    if is_supported(path, allowed):
                        yield path
            except OSError as e:
                logger.warning(f"Skipping unreadable entry {entry.path}: {e}")

        # Reverse so subdirectories pop in name order
        pending.extend(reversed(subdirs))
