"""
FastAPI dependencies that assemble services from the shared store and the
database session factory.

Tests override ``get_redis``, ``get_session_factory`` and ``get_file_store``
and everything below follows.
"""
from fastapi import Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.database import get_session_factory
from app.redis_client import get_redis
from app.services.admission import AdmissionService
from app.services.job_queue import JobQueue
from app.services.job_records import JobRecords
from app.services.preferences import PreferenceStore
from app.services.rate_limiter import RateLimiter
from app.services.status_reporter import InboxReporter
from app.services.uploads import FileStore


def get_rate_limiter(redis: Redis = Depends(get_redis)) -> RateLimiter:
    return RateLimiter(redis)


def get_preference_store(redis: Redis = Depends(get_redis)) -> PreferenceStore:
    return PreferenceStore(redis)


def get_job_queue(redis: Redis = Depends(get_redis)) -> JobQueue:
    return JobQueue(redis)


def get_file_store() -> FileStore:
    return FileStore()


def get_reporter(session_factory: async_sessionmaker = Depends(get_session_factory)) -> InboxReporter:
    return InboxReporter(session_factory)


def get_admission_service(
    limiter: RateLimiter = Depends(get_rate_limiter),
    preferences: PreferenceStore = Depends(get_preference_store),
    queue: JobQueue = Depends(get_job_queue),
    reporter: InboxReporter = Depends(get_reporter),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    uploads: FileStore = Depends(get_file_store),
) -> AdmissionService:
    return AdmissionService(
        limiter=limiter,
        preferences=preferences,
        queue=queue,
        reporter=reporter,
        records=JobRecords(session_factory),
        uploads=uploads,
    )
