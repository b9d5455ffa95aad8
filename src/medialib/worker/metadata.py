"""Metadata parser interface and the default mutagen/ffprobe adapters.

The sync engine only depends on `MetadataParser`: anything with a
`parse(path) -> PropertyBag` method that raises `ParseError` on unreadable
files can be plugged in.
"""

import json
import shutil
import subprocess  # nosec B404 - subprocess is required for ffprobe invocation
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional, Protocol, runtime_checkable

import mutagen
from loguru import logger
from mutagen import MutagenError

from medialib.core.config import settings
from medialib.core.exceptions import ParseError
from medialib.core.utils import parse_position, parse_tag_date


@dataclass
class PropertyBag:
    """Typed properties extracted from one media file.

    Stream counts are zero and optional tags are None/empty when absent.
    Duration is in seconds.
    """

    audio_streams: int = 0
    video_streams: int = 0
    duration: Optional[float] = None
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    genres: List[str] = field(default_factory=list)
    track_number: Optional[int] = None
    total_track: Optional[int] = None
    disc_number: Optional[int] = None
    total_disc: Optional[int] = None
    date: Optional[datetime] = None
    original_date: Optional[datetime] = None
    musicbrainz_recording_id: Optional[str] = None
    musicbrainz_artist_id: Optional[str] = None
    musicbrainz_album_id: Optional[str] = None
    has_cover: Optional[bool] = None


@runtime_checkable
class MetadataParser(Protocol):
    """Protocol for metadata parsers used by the sync engine."""

    def parse(self, path: Path) -> PropertyBag:
        """Parse a file. Blocking; called from a worker thread.

        Raises:
            ParseError: If the file cannot be read.
        """
        ...


def _first(tags: Any, *keys: str) -> Optional[str]:
    """First non-empty value among `keys` in a mutagen tag mapping."""
    if not tags:
        return None
    for key in keys:
        try:
            values = tags.get(key)
        except (KeyError, ValueError):
            continue
        if not values:
            continue
        if isinstance(values, (list, tuple)):
            values = values[0]
        text = str(values).strip()
        if text:
            return text
    return None


class MutagenParser:
    """Audio metadata via mutagen's "easy" tag interface."""

    def parse(self, path: Path) -> PropertyBag:
        try:
            audio = mutagen.File(path, easy=True)
        except (MutagenError, OSError) as e:
            raise ParseError(path, str(e)) from e
        if audio is None:
            raise ParseError(path, "unrecognized format")

        tags = audio.tags
        info = audio.info
        bag = PropertyBag()

        if info is not None:
            bag.duration = getattr(info, "length", None)
            # mutagen exposes one logical audio stream per file
            bag.audio_streams = 1 if getattr(info, "channels", 1) else 0

        bag.title = _first(tags, "title")
        bag.artist = _first(tags, "artist", "albumartist")
        bag.album = _first(tags, "album")
        if tags:
            bag.genres = [g.strip() for g in (tags.get("genre") or []) if g.strip()]

        bag.track_number, bag.total_track = parse_position(_first(tags, "tracknumber"))
        if bag.total_track is None:
            bag.total_track = parse_position(_first(tags, "tracktotal", "totaltracks"))[0]
        bag.disc_number, bag.total_disc = parse_position(_first(tags, "discnumber"))
        if bag.total_disc is None:
            bag.total_disc = parse_position(_first(tags, "disctotal", "totaldiscs"))[0]

        bag.date = parse_tag_date(_first(tags, "date", "year"))
        bag.original_date = parse_tag_date(_first(tags, "originaldate"))
        bag.musicbrainz_recording_id = _first(tags, "musicbrainz_trackid")
        bag.musicbrainz_artist_id = _first(tags, "musicbrainz_artistid")
        bag.musicbrainz_album_id = _first(tags, "musicbrainz_albumid")
        bag.has_cover = self._has_cover(path)
        return bag

    @staticmethod
    def _has_cover(path: Path) -> bool:
        """Look for embedded artwork through the non-easy interface."""
        try:
            raw = mutagen.File(path)
        except (MutagenError, OSError):
            return False
        if raw is None:
            return False
        if getattr(raw, "pictures", None):  # FLAC
            return True
        tags = raw.tags
        if not tags:
            return False
        keys = list(tags.keys())
        return any(
            str(k).startswith("APIC")  # ID3
            or k == "covr"  # MP4
            or str(k).lower() == "metadata_block_picture"  # Vorbis comments
            for k in keys
        )


class FFprobeParser:
    """Video metadata via ffprobe's JSON output."""

    def __init__(self, ffprobe_path: Optional[Path] = None, timeout: float = 60):
        found = ffprobe_path or settings.FFPROBE_PATH or shutil.which("ffprobe")
        self._ffprobe_path = Path(found) if found else None
        self._timeout = timeout
        if self._ffprobe_path is None:
            logger.warning("ffprobe not found in PATH. Video files will not be imported.")

    def parse(self, path: Path) -> PropertyBag:
        if self._ffprobe_path is None:
            raise ParseError(path, "ffprobe is not available")

        try:
            result = subprocess.run(  # nosec B603 - ffprobe path comes from config or PATH
                [
                    str(self._ffprobe_path),
                    "-v",
                    "error",
                    "-print_format",
                    "json",
                    "-show_streams",
                    "-show_format",
                    str(path),
                ],
                capture_output=True,
                text=True,
                errors="replace",
                check=True,
                timeout=self._timeout,
            )
            data = json.loads(result.stdout)
        except subprocess.TimeoutExpired as e:
            raise ParseError(path, f"ffprobe timed out after {e.timeout}s") from e
        except subprocess.CalledProcessError as e:
            raise ParseError(path, f"ffprobe failed: {e.stderr or e}") from e
        except json.JSONDecodeError as e:
            raise ParseError(path, f"invalid ffprobe output: {e}") from e
        except OSError as e:
            raise ParseError(path, str(e)) from e

        return self.bag_from_probe(data)

    @staticmethod
    def bag_from_probe(data: dict) -> PropertyBag:
        streams = data.get("streams") or []
        fmt = data.get("format") or {}
        tags = {k.lower(): v for k, v in (fmt.get("tags") or {}).items()}

        duration = None
        try:
            if fmt.get("duration") is not None:
                duration = float(fmt["duration"])
        except (TypeError, ValueError):
            duration = None

        return PropertyBag(
            audio_streams=sum(1 for s in streams if s.get("codec_type") == "audio"),
            video_streams=sum(
                1
                for s in streams
                if s.get("codec_type") == "video"
                and not (s.get("disposition") or {}).get("attached_pic")
            ),
            duration=duration,
            title=tags.get("title") or None,
        )
