"""Tests for persisted scan settings and the root directory registry."""

from datetime import datetime, time

import pytest

from medialib.core.config import settings
from medialib.core.models import MediaType, SystemSetting
from medialib.core.settings_store import (
    UPDATE_PERIOD,
    ScanSettings,
    SettingsStore,
    UpdatePeriod,
    split_extensions,
)


def test_update_period_parse_falls_back_to_never():
    assert UpdatePeriod.parse("weekly") is UpdatePeriod.WEEKLY
    assert UpdatePeriod.parse(" Daily ") is UpdatePeriod.DAILY
    assert UpdatePeriod.parse("fortnightly") is UpdatePeriod.NEVER
    assert UpdatePeriod.parse(None) is UpdatePeriod.NEVER


def test_split_extensions_drops_repeats():
    assert split_extensions(" .mp3  .flac .mp3\n.ogg ") == [".mp3", ".flac", ".ogg"]


def test_from_rows_defaults():
    scan_settings = ScanSettings.from_rows({})

    assert scan_settings.manual_scan_requested is False
    assert scan_settings.update_period is UpdatePeriod.NEVER
    assert scan_settings.update_start_time == settings.DEFAULT_UPDATE_START_TIME
    assert scan_settings.audio_file_extensions == settings.DEFAULT_AUDIO_EXTENSIONS
    assert scan_settings.video_file_extensions == settings.DEFAULT_VIDEO_EXTENSIONS
    assert scan_settings.last_scan is None


def test_from_rows_never_raises_on_garbage():
    scan_settings = ScanSettings.from_rows(
        {
            "update_period": "every other tuesday",
            "update_start_time": "25:99",
            "last_scan": "yesterday",
            "manual_scan_requested": "maybe",
        }
    )

    assert scan_settings.update_period is UpdatePeriod.NEVER
    assert scan_settings.update_start_time == settings.DEFAULT_UPDATE_START_TIME
    assert scan_settings.last_scan is None
    assert scan_settings.manual_scan_requested is False


def test_empty_extension_row_means_no_extensions():
    scan_settings = ScanSettings.from_rows({"audio_file_extensions": ""})
    assert scan_settings.extensions_for(MediaType.AUDIO) == []


@pytest.mark.asyncio
async def test_load_defaults_from_empty_catalog(session_factory):
    scan_settings = await SettingsStore(session_factory).load()
    assert scan_settings.update_period is UpdatePeriod.NEVER
    assert scan_settings.manual_scan_requested is False


@pytest.mark.asyncio
async def test_save_and_load(session_factory):
    store = SettingsStore(session_factory)
    await store.save(
        ScanSettings(
            update_period=UpdatePeriod.WEEKLY,
            update_start_time=time(2, 30),
            audio_file_extensions=[".flac"],
            video_file_extensions=[".mkv", ".mp4"],
        )
    )

    loaded = await store.load()
    assert loaded.update_period is UpdatePeriod.WEEKLY
    assert loaded.update_start_time == time(2, 30)
    assert loaded.audio_file_extensions == [".flac"]
    assert loaded.video_file_extensions == [".mkv", ".mp4"]


@pytest.mark.asyncio
async def test_corrupted_period_row_loads_as_never(session_factory):
    async with session_factory() as session:
        async with session.begin():
            session.add(SystemSetting(key=UPDATE_PERIOD, value="sometimes"))

    loaded = await SettingsStore(session_factory).load()
    assert loaded.update_period is UpdatePeriod.NEVER


@pytest.mark.asyncio
async def test_manual_request_cleared_by_completed_scan(session_factory):
    store = SettingsStore(session_factory)
    await store.request_manual_scan()
    assert (await store.load()).manual_scan_requested is True

    finished = datetime(2024, 5, 15, 10, 0)
    await store.mark_scan_completed(finished)

    loaded = await store.load()
    assert loaded.manual_scan_requested is False
    assert loaded.last_scan == finished


@pytest.mark.asyncio
async def test_last_update_persisted(session_factory):
    store = SettingsStore(session_factory)
    when = datetime(2024, 1, 1, 12, 0)
    await store.set_last_update(when)

    loaded = await store.load()
    assert loaded.last_update == when
    assert loaded.last_scan is None


@pytest.mark.asyncio
async def test_set_update_schedule_overwrites(session_factory):
    store = SettingsStore(session_factory)
    await store.set_update_schedule(UpdatePeriod.DAILY, time(1, 0))
    await store.set_update_schedule(UpdatePeriod.MONTHLY, time(3, 0))

    loaded = await store.load()
    assert loaded.update_period is UpdatePeriod.MONTHLY
    assert loaded.update_start_time == time(3, 0)


@pytest.mark.asyncio
async def test_root_directory_registry(session_factory, tmp_path):
    store = SettingsStore(session_factory)
    music = tmp_path / "music"
    films = tmp_path / "films"
    music.mkdir()
    films.mkdir()

    await store.add_root_directory(music, MediaType.AUDIO)
    await store.add_root_directory(films, MediaType.VIDEO)

    roots = await store.list_root_directories()
    assert [r.path for r in roots] == [str(music.resolve()), str(films.resolve())]
    assert [r.media_type for r in roots] == [MediaType.AUDIO, MediaType.VIDEO]

    audio_roots = await store.list_root_directories(MediaType.AUDIO)
    assert [r.path for r in audio_roots] == [str(music.resolve())]

    assert await store.remove_root_directory(music) is True
    assert await store.remove_root_directory(music) is False
    assert [r.path for r in await store.list_root_directories()] == [str(films.resolve())]


@pytest.mark.asyncio
async def test_add_root_twice_updates_type(session_factory, tmp_path):
    store = SettingsStore(session_factory)
    await store.add_root_directory(tmp_path, MediaType.AUDIO)
    await store.add_root_directory(tmp_path, MediaType.VIDEO)

    roots = await store.list_root_directories()
    assert len(roots) == 1
    assert roots[0].media_type is MediaType.VIDEO
