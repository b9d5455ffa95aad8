"""Tests for stale row removal and orphan reclamation."""

from pathlib import Path

import pytest
from sqlalchemy import func, select

from medialib.core.models import NONE_NAME, Artist, Cluster, MediaType, Release, Track, Video
from medialib.core.stats import ScanStats
from medialib.worker.sweeper import ConsistencySweeper, check_file, is_path_in_root
from medialib.worker.sync import SyncEngine

from conftest import FakeParser, audio_bag, video_bag, write_file

T0 = 1_700_000_000


@pytest.fixture
async def sync_engine(session_factory, parser):
    engine = SyncEngine(session_factory, audio_parser=parser, video_parser=FakeParser())
    yield engine
    engine.close()


async def add_track(sync_engine, parser, path, **tags):
    write_file(path, mtime=T0)
    parser.set(path, audio_bag(**tags))
    await sync_engine.sync_file(path, MediaType.AUDIO)


async def names(session_factory, model):
    async with session_factory() as session:
        result = await session.execute(select(model.name).order_by(model.name))
        return list(result.scalars().all())


def test_is_path_in_root_is_lexical():
    assert is_path_in_root(Path("/music/a/b.mp3"), Path("/music"))
    assert is_path_in_root(Path("/music/b.mp3"), Path("/music"))
    # A sibling sharing the prefix is not inside
    assert not is_path_in_root(Path("/music2/b.mp3"), Path("/music"))
    assert not is_path_in_root(Path("/music"), Path("/music"))


def test_check_file(media_root, tmp_path):
    inside = write_file(media_root / "a.mp3")
    outside = write_file(tmp_path.resolve() / "elsewhere" / "b.mp3")
    text = write_file(media_root / "c.txt")

    assert check_file(inside, [media_root], [".mp3"])
    assert not check_file(media_root / "missing.mp3", [media_root], [".mp3"])
    assert not check_file(outside, [media_root], [".mp3"])
    assert not check_file(text, [media_root], [".mp3"])
    assert not check_file(inside, [], [".mp3"])


@pytest.mark.asyncio
async def test_remove_stale_tracks(sync_engine, parser, session_factory, media_root, tmp_path):
    kept = media_root / "kept.mp3"
    deleted = media_root / "deleted.mp3"
    moved_root = tmp_path.resolve() / "old_root"
    out_of_root = moved_root / "x.mp3"
    for path in (kept, deleted, out_of_root):
        await add_track(sync_engine, parser, path, genres=["Rock"])
    deleted.unlink()

    stats = ScanStats()
    await ConsistencySweeper(session_factory).remove_stale(
        MediaType.AUDIO, [media_root], [".mp3"], stats
    )

    async with session_factory() as session:
        result = await session.execute(select(Track.path))
        remaining = list(result.scalars().all())
    assert remaining == [str(kept)]
    assert stats.removed == 2


@pytest.mark.asyncio
async def test_remove_stale_on_extension_change(sync_engine, parser, session_factory, media_root):
    await add_track(sync_engine, parser, media_root / "a.mp3")
    await add_track(sync_engine, parser, media_root / "b.flac")

    stats = ScanStats()
    await ConsistencySweeper(session_factory).remove_stale(
        MediaType.AUDIO, [media_root], [".flac"], stats
    )

    assert stats.removed == 1
    async with session_factory() as session:
        paths = list((await session.execute(select(Track.path))).scalars().all())
    assert paths == [str(media_root / "b.flac")]


@pytest.mark.asyncio
async def test_remove_stale_videos_only_touches_videos(sync_engine, parser, session_factory, media_root):
    await add_track(sync_engine, parser, media_root / "a.mp3")
    film = write_file(media_root / "film.mkv", mtime=T0)
    sync_engine.video_parser.set(film, video_bag())
    await sync_engine.sync_file(film, MediaType.VIDEO)
    film.unlink()

    stats = ScanStats()
    await ConsistencySweeper(session_factory).remove_stale(
        MediaType.VIDEO, [media_root], [".mkv"], stats
    )

    assert stats.removed == 1
    async with session_factory() as session:
        assert await session.scalar(select(func.count()).select_from(Video)) == 0
        assert await session.scalar(select(func.count()).select_from(Track)) == 1


@pytest.mark.asyncio
async def test_remove_stale_honours_stop(sync_engine, parser, session_factory, media_root):
    for name in ("a.mp3", "b.mp3"):
        await add_track(sync_engine, parser, media_root / name)

    stats = ScanStats()
    await ConsistencySweeper(session_factory).remove_stale(
        MediaType.AUDIO, [], [".mp3"], stats, should_stop=lambda: True
    )
    assert stats.removed == 0


@pytest.mark.asyncio
async def test_reclaim_orphans_keeps_sentinels(sync_engine, parser, session_factory, media_root):
    tagged = media_root / "tagged.mp3"
    untagged = media_root / "untagged.mp3"
    await add_track(sync_engine, parser, tagged, artist="A", album="R", genres=["Rock"])
    await add_track(sync_engine, parser, untagged)
    tagged.unlink()
    untagged.unlink()

    sweeper = ConsistencySweeper(session_factory)
    await sweeper.remove_stale(MediaType.AUDIO, [media_root], [".mp3"], ScanStats())
    counts = await sweeper.reclaim_orphans()

    assert (counts.artists, counts.releases, counts.clusters) == (1, 1, 1)
    assert await names(session_factory, Artist) == [NONE_NAME]
    assert await names(session_factory, Release) == [NONE_NAME]
    assert await names(session_factory, Cluster) == [NONE_NAME]


@pytest.mark.asyncio
async def test_reclaim_orphans_after_retag(sync_engine, parser, session_factory, media_root):
    path = media_root / "song.mp3"
    await add_track(sync_engine, parser, path, artist="Old", genres=["Rock"])
    write_file(path, mtime=T0 + 60)
    parser.set(path, audio_bag(artist="New", genres=["Jazz"]))
    await sync_engine.sync_file(path, MediaType.AUDIO)

    counts = await ConsistencySweeper(session_factory).reclaim_orphans()

    assert counts.artists == 1
    assert counts.clusters == 1
    assert await names(session_factory, Artist) == ["New"]
    assert await names(session_factory, Cluster) == ["Jazz"]


@pytest.mark.asyncio
async def test_reclaim_orphans_keeps_mbid_entity_named_like_sentinel(session_factory):
    async with session_factory() as session:
        async with session.begin():
            session.add(Artist(name=NONE_NAME, musicbrainz_id="real-mbid"))

    counts = await ConsistencySweeper(session_factory).reclaim_orphans()

    # Not a sentinel, so it is reclaimed like any other orphan
    assert counts.artists == 1
    assert await names(session_factory, Artist) == []
