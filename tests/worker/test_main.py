from unittest.mock import AsyncMock, patch

import pytest

from medialib.core.models import MediaType
from medialib.worker import main as worker_main


@pytest.fixture(autouse=True)
def no_logging_setup():
    with patch.object(worker_main, "setup_logging"):
        yield


def test_no_command_prints_help(capsys):
    assert worker_main.main([]) == 2
    assert "usage" in capsys.readouterr().out


def test_scan_dispatches():
    with patch.object(worker_main, "run_scan", new=AsyncMock(return_value=0)) as run_scan:
        assert worker_main.main(["scan"]) == 0
    run_scan.assert_awaited_once()


def test_add_root_passes_media_type():
    with patch.object(worker_main, "run_add_root", new=AsyncMock(return_value=0)) as add_root:
        assert worker_main.main(["add-root", "/srv/films", "--type", "video"]) == 0
    add_root.assert_awaited_once_with("/srv/films", MediaType.VIDEO)


def test_schedule_rejects_bad_time():
    assert worker_main.main(["schedule", "daily", "--start-time", "25:00"]) == 2


def test_schedule_rejects_unknown_period():
    with pytest.raises(SystemExit):
        worker_main.main(["schedule", "fortnightly"])


def test_add_root_rejects_missing_directory(tmp_path):
    assert worker_main.main(["add-root", str(tmp_path / "missing")]) == 2


def test_keyboard_interrupt_exit_code():
    with patch.object(
        worker_main, "run_serve", new=AsyncMock(side_effect=KeyboardInterrupt)
    ):
        assert worker_main.main(["serve"]) == 130
