import os
import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Union

import pytest
from sqlalchemy.pool import StaticPool

from medialib.core.db import make_engine, make_session_factory
from medialib.core.exceptions import ParseError
from medialib.core.models import Base
from medialib.worker.metadata import PropertyBag

# In-memory catalog shared by every connection of one test
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def db_engine():
    """Fresh in-memory catalog per test."""
    engine = make_engine(
        TEST_DB_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(db_engine):
    return make_session_factory(db_engine)


@pytest.fixture(scope="function")
async def file_session_factory(tmp_path):
    """On-disk catalog for tests whose sessions overlap (one connection each)."""
    engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield make_session_factory(engine)
    await engine.dispose()


@pytest.fixture(scope="function")
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


class FakeParser:
    """Scripted MetadataParser: returns the bag (or raises the error) set for a path.

    Unknown paths raise ParseError. `on_parse` runs before each lookup, from
    the worker thread.
    """

    def __init__(self):
        self.results: Dict[Path, Union[PropertyBag, Exception]] = {}
        self.calls = []
        self.on_parse: Optional[Callable[[Path], None]] = None
        self._lock = threading.Lock()

    def set(self, path: Path, result: Union[PropertyBag, Exception]) -> None:
        self.results[Path(path)] = result

    def parse(self, path: Path) -> PropertyBag:
        with self._lock:
            self.calls.append(Path(path))
        if self.on_parse is not None:
            self.on_parse(Path(path))
        result = self.results.get(Path(path))
        if result is None:
            raise ParseError(path, "no scripted result")
        if isinstance(result, Exception):
            raise result
        return result


def audio_bag(**kwargs) -> PropertyBag:
    """A valid audio PropertyBag; keyword arguments override fields."""
    kwargs.setdefault("audio_streams", 1)
    kwargs.setdefault("duration", 180.0)
    return PropertyBag(**kwargs)


def video_bag(**kwargs) -> PropertyBag:
    kwargs.setdefault("video_streams", 1)
    kwargs.setdefault("audio_streams", 1)
    kwargs.setdefault("duration", 3600.0)
    return PropertyBag(**kwargs)


def write_file(path: Path, content: bytes = b"data", mtime: Optional[int] = None) -> Path:
    """Create `path` (and parents) with `content`, optionally forcing its mtime."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def media_root(tmp_path) -> Path:
    """Resolved temporary directory so stored roots and walked paths agree."""
    root = tmp_path.resolve() / "media"
    root.mkdir()
    return root


@pytest.fixture
def parser() -> FakeParser:
    return FakeParser()
