"""
Job history: one row per job in the ``jobs`` table, updated at each
lifecycle transition.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.models import JobRecord, JobStatus
from app.schemas.envelope import Job

logger = logging.getLogger(__name__)


class JobRecords:
    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def create(self, job: Job, char_count: int) -> JobRecord:
        record = JobRecord(
            id=job.id,
            kind=job.kind,
            owner_id=job.owner_id,
            status=JobStatus.enqueued.value,
            char_count=char_count,
            created_at=job.enqueued_at,
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()
        return record

    async def _transition(self, job_id: str, status: JobStatus, **fields) -> Optional[JobRecord]:
        async with self._session_factory() as session:
            result = await session.execute(select(JobRecord).where(JobRecord.id == job_id))
            record = result.scalar_one_or_none()
            if record is None:
                logger.warning('Job record %s not found', job_id)
                return None

            record.status = status.value
            for name, value in fields.items():
                setattr(record, name, value)
            await session.commit()
            return record

    async def mark_claimed(self, job_id: str) -> Optional[JobRecord]:
        return await self._transition(job_id, JobStatus.claimed, claimed_at=datetime.utcnow())

    async def mark_succeeded(
        self,
        job_id: str,
        duration_ms: int,
        chunk_count: int,
        audio_size_bytes: int,
    ) -> Optional[JobRecord]:
        return await self._transition(
            job_id,
            JobStatus.succeeded,
            completed_at=datetime.utcnow(),
            duration_ms=duration_ms,
            chunk_count=chunk_count,
            audio_size_bytes=audio_size_bytes,
        )

    async def mark_failed(self, job_id: str, error_message: str, duration_ms: Optional[int] = None) -> Optional[JobRecord]:
        return await self._transition(
            job_id,
            JobStatus.failed,
            completed_at=datetime.utcnow(),
            error_message=error_message,
            duration_ms=duration_ms,
        )
