import pytest

from medialib.core.models import MediaType
from medialib.worker.duplicates import DuplicateDetector
from medialib.worker.sync import SyncEngine

from conftest import audio_bag, write_file

T0 = 1_700_000_000


@pytest.fixture
async def sync_engine(session_factory, parser):
    engine = SyncEngine(session_factory, audio_parser=parser)
    yield engine
    engine.close()


@pytest.mark.asyncio
async def test_groups_by_mbid_and_checksum(sync_engine, parser, session_factory, media_root):
    files = {
        "a.mp3": (b"one", audio_bag(musicbrainz_recording_id="rec-1", track_number=2)),
        "b.mp3": (b"two", audio_bag(musicbrainz_recording_id="rec-1", track_number=1)),
        "c.mp3": (b"same", audio_bag()),
        "d.mp3": (b"same", audio_bag()),
        "e.mp3": (b"unique", audio_bag(musicbrainz_recording_id="rec-2")),
    }
    for name, (content, bag) in files.items():
        path = write_file(media_root / name, content, mtime=T0)
        parser.set(path, bag)
        await sync_engine.sync_file(path, MediaType.AUDIO)

    groups = await DuplicateDetector(session_factory).find_duplicates()

    by_kind = {(g.kind, g.key): g.paths for g in groups}
    assert by_kind[("mbid", "rec-1")] == [
        str(media_root / "b.mp3"),
        str(media_root / "a.mp3"),
    ]
    checksum_groups = [g for g in groups if g.kind == "checksum"]
    assert len(checksum_groups) == 1
    assert checksum_groups[0].paths == [str(media_root / "c.mp3"), str(media_root / "d.mp3")]
    assert len(checksum_groups[0].key) == 8
    assert len(groups) == 2


@pytest.mark.asyncio
async def test_no_duplicates_in_empty_catalog(session_factory):
    assert await DuplicateDetector(session_factory).find_duplicates() == []
