import datetime
import shutil
from typing import Any, AsyncGenerator, Optional

from loguru import logger
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from medialib.core.config import settings
from medialib.core.models import Base


def make_engine(url: Optional[str] = None, **kwargs: Any) -> AsyncEngine:
    """Build an async engine for the catalog.

    The sqlite timeout lets SQLite wait instead of failing immediately with
    "database is locked" when another process holds the write lock.
    """
    url = url or settings.DB_URL
    kwargs.setdefault("echo", settings.DB_ECHO)
    kwargs.setdefault(
        "connect_args", {"check_same_thread": False, "timeout": 30}
    )
    async_engine = create_async_engine(url, **kwargs)
    if url.startswith("sqlite"):
        event.listen(async_engine.sync_engine, "connect", set_sqlite_pragma)
    return async_engine


def make_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=bind, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Sets performance and integrity pragmas for SQLite.

    WAL lets readers keep browsing the catalog while the updater writes.
    Foreign keys are off by default in SQLite; the track/cluster link table
    relies on ON DELETE CASCADE.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA synchronous=NORMAL")
    cursor.execute("PRAGMA busy_timeout=30000")  # 30 seconds
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


engine = make_engine()

# Session Factory
AsyncSessionLocal = make_session_factory(engine)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session from the default factory."""
    async with AsyncSessionLocal() as session:
        yield session


async def backup_db() -> None:
    """Create a point-in-time backup of the current database file.

    Keeps the last DB_BACKUP_RETENTION copies next to the database.
    """
    src = settings.DB_PATH
    if not src.exists():
        return

    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    dst = src.parent / f"{settings.DB_NAME}.{timestamp}.bak"

    try:
        shutil.copy2(src, dst)
        logger.info(f"Database backed up to {dst}")

        max_backups = settings.DB_BACKUP_RETENTION
        backups = sorted(src.parent.glob(f"{settings.DB_NAME}.*.bak"))
        if len(backups) > max_backups:
            for b in backups[:-max_backups]:
                b.unlink()
    except (OSError, shutil.Error) as e:
        logger.error(f"Failed to backup database: {e}")


async def init_db(force: bool = False, bind: Optional[AsyncEngine] = None) -> None:
    """Initialize database tables according to current models.

    Args:
        force: If True, drops all existing tables and re-creates them.
            The database file is backed up first.
        bind: Engine to initialize (defaults to the module engine).
    """
    settings.DATA_DIR.mkdir(parents=True, exist_ok=True)
    if force:
        logger.warning(
            "FORCED database initialization. Existing data might be lost."
        )
        await backup_db()

    async with (bind or engine).begin() as conn:
        if force:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ready.")
