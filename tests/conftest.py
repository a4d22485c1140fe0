"""
Pytest fixtures for testing.
"""
from pathlib import Path
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import fakeredis
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models import Base
from app.database import create_engine, get_db, get_session_factory
from app.dependencies import get_file_store, get_reporter
from app.redis_client import get_redis
from app.services.openai_service import OpenAIService
from app.services.status_reporter import InboxReporter
from app.services.uploads import FileStore


@pytest.fixture
def test_db_url(tmp_path):
    """Generate test database URL."""
    return f'sqlite+aiosqlite:///{tmp_path / "test.db"}'


@pytest_asyncio.fixture
async def test_engine(test_db_url):
    """Create a test database engine."""
    engine = create_engine(test_db_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture
async def test_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def fake_redis():
    """In-memory stand-in for the shared store."""
    redis = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield redis
    await redis.flushall()
    await redis.aclose()


@pytest.fixture
def audio_dir(tmp_path) -> Path:
    path = tmp_path / 'audio'
    path.mkdir()
    return path


@pytest.fixture
def file_store(tmp_path) -> FileStore:
    return FileStore(tmp_path / 'uploads')


@pytest.fixture
def reporter(session_factory, audio_dir) -> InboxReporter:
    return InboxReporter(session_factory, audio_dir)


@pytest.fixture
def mock_provider():
    """Provider client returning one fake opus blob per call."""
    provider = MagicMock(spec=OpenAIService)
    provider.synthesize = AsyncMock(side_effect=lambda text, **kwargs: f'<{text[:10]}>'.encode())
    provider.enhance_text = AsyncMock(side_effect=lambda text: f'Enhanced: {text}')
    provider.transcribe = AsyncMock(return_value='hello from a voice note')
    return provider


@pytest_asyncio.fixture
async def client(session_factory, fake_redis, file_store, reporter):
    """Create a test client with the shared store and database swapped out."""
    from server import app

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_file_store] = lambda: file_store
    app.dependency_overrides[get_reporter] = lambda: reporter

    # ASGITransport does not run the lifespan, so no workers are started
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as client:
        yield client

    app.dependency_overrides.clear()
