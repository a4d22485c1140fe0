"""
Async database setup with SQLAlchemy and aiosqlite.

Holds the job history and the owner-facing message inbox. Request handlers
and every worker write to it concurrently, so each connection runs in WAL
mode and waits on a locked database instead of failing straight away.
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker

from app.config import DATABASE_URL, ensure_directories
from app.models import Base


SQLITE_BUSY_TIMEOUT_MS = 5000


def create_engine(url: str = DATABASE_URL) -> AsyncEngine:
    """Create an async engine whose SQLite connections use WAL and a busy timeout."""
    new_engine = create_async_engine(url, echo=False, future=True)

    if new_engine.dialect.name == 'sqlite':
        @event.listens_for(new_engine.sync_engine, 'connect')
        def _set_sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA journal_mode=WAL')
            cursor.execute('PRAGMA synchronous=NORMAL')
            cursor.execute(f'PRAGMA busy_timeout={SQLITE_BUSY_TIMEOUT_MS}')
            cursor.close()

    return new_engine


engine = create_engine()

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db():
    """Create data directories and any missing tables."""
    ensure_directories()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections."""
    await engine.dispose()


def get_session_factory() -> async_sessionmaker:
    """Dependency that provides the session factory used by background services."""
    return async_session_factory


async def get_db():
    """
    Dependency that provides an async database session.

    Usage:
        @app.get('/jobs')
        async def list_jobs(db: AsyncSession = Depends(get_db)):
            ...
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
