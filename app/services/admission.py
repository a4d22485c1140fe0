"""
Admission: gate a request through the rate limiter and put it on the queue.

Order of operations for every request:
    1. RateLimiter.check; a minute-limit hit is rejected before anything else
    2. preference snapshot for the envelope
    3. status message ("Processing..."), whose handle travels with the job
    4. upload saved, job history row, enqueue; any failure here undoes the
       earlier steps and answers QueueUnavailableError
    5. soft-limit notice, once per day, then mark_notified
    6. RateLimiter.increment, only once the job is safely queued

Shared store errors before enqueue also surface as QueueUnavailableError.
Enqueue never waits for the job to run.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

from redis.exceptions import RedisError

from app.schemas.envelope import Job, PlainTextJob, EnhancedTextJob, DocumentJob, VoiceJob, Preferences
from app.services.documents import DocumentService
from app.services.errors import EmptyTextError, QueueUnavailableError, RateLimitExceeded, UnsupportedFormatError
from app.services.job_queue import JobQueue
from app.services.job_records import JobRecords
from app.services.preferences import PreferenceStore
from app.services.rate_limiter import RateLimiter
from app.services.status_reporter import StatusReporter
from app.services.uploads import FileStore

logger = logging.getLogger(__name__)

STATUS_PROCESSING = 'Processing...'

T = TypeVar('T')


@dataclass
class Admission:
    job: Job
    notice: Optional[str] = None


class AdmissionService:
    def __init__(
        self,
        limiter: RateLimiter,
        preferences: PreferenceStore,
        queue: JobQueue,
        reporter: StatusReporter,
        records: JobRecords,
        uploads: FileStore,
        documents: Optional[DocumentService] = None,
    ):
        self.limiter = limiter
        self.preferences = preferences
        self.queue = queue
        self.reporter = reporter
        self.records = records
        self.uploads = uploads
        self.documents = documents or DocumentService()

    async def submit_text(self, owner_id: str, text: str, enhance: bool = False) -> Admission:
        """Queue text for synthesis; weighed by its length against the daily budget."""
        text = text.strip()
        if not text:
            raise EmptyTextError('Empty text submitted', 'Please send some text to read aloud.')

        job_type = EnhancedTextJob if enhance else PlainTextJob
        return await self._admit(owner_id, len(text), lambda **fields: job_type(text=text, **fields))

    async def submit_document(
        self,
        owner_id: str,
        data: bytes,
        file_name: str,
        mime_type: Optional[str] = None,
    ) -> Admission:
        if self.documents.detect_format(file_name, mime_type) is None:
            raise UnsupportedFormatError(f'Unsupported document {file_name!r} ({mime_type})')

        return await self._admit(
            owner_id,
            0,
            lambda **fields: DocumentJob(file_name=file_name, mime_type=mime_type, **fields),
            data=data,
        )

    async def submit_voice(self, owner_id: str, data: bytes, mime_type: Optional[str] = None) -> Admission:
        return await self._admit(
            owner_id,
            0,
            lambda **fields: VoiceJob(mime_type=mime_type, **fields),
            data=data,
        )

    async def _admit(
        self,
        owner_id: str,
        weight: int,
        build: Callable[..., Job],
        data: Optional[bytes] = None,
    ) -> Admission:
        result = await self._read_store(owner_id, self.limiter.check(owner_id, weight))
        if not result.allowed:
            raise RateLimitExceeded(result.reason.value, self.limiter.requests_per_minute)

        preferences: Preferences = await self._read_store(owner_id, self.preferences.get(owner_id))

        job_id = str(uuid.uuid4())
        handle = None
        file_id = None
        recorded = False
        try:
            handle = await self.reporter.post(owner_id, STATUS_PROCESSING)

            fields = {}
            if data is not None:
                file_id = fields['file_id'] = self.uploads.save(data)

            job = build(
                id=job_id,
                owner_id=owner_id,
                status_handle=handle,
                enqueued_at=datetime.utcnow(),
                preferences=preferences,
                **fields,
            )
            await self.records.create(job, weight)
            recorded = True
            await self.queue.enqueue(job)
        except Exception as e:
            logger.error('Could not enqueue job %s for owner %s: %s', job_id, owner_id, e)
            await self._abandon(job_id, handle, file_id, recorded)
            raise QueueUnavailableError(f'Enqueue failed: {e}') from e

        notice = None
        if result.notify:
            notice = await self._send_daily_notice(owner_id)

        try:
            await self.limiter.increment(owner_id, weight)
        except RedisError as e:
            # The job is already queued; only the usage count is lost
            logger.error('Could not record usage for %s after enqueuing %s: %s', owner_id, job_id, e)

        return Admission(job=job, notice=notice)

    async def _send_daily_notice(self, owner_id: str) -> str:
        notice = (
            f'You have used your daily budget of {self.limiter.chars_per_day} characters. '
            'Your requests will still be processed.'
        )
        try:
            await self.reporter.send_text(owner_id, notice)
        except Exception as e:
            logger.warning('Could not send daily limit notice to %s: %s', owner_id, e)
        try:
            await self.limiter.mark_notified(owner_id)
        except RedisError as e:
            logger.warning('Could not mark %s as notified: %s', owner_id, e)
        return notice

    async def _abandon(self, job_id: str, handle: Optional[str], file_id: Optional[str], recorded: bool):
        """Undo the side effects of a job that never made it onto the queue."""
        if handle is not None:
            try:
                await self.reporter.delete(handle)
            except Exception as e:
                logger.warning('Could not delete status message %s: %s', handle, e)

        if recorded:
            try:
                await self.records.mark_failed(job_id, 'Enqueue failed')
            except Exception as e:
                logger.warning('Could not mark job %s failed: %s', job_id, e)

        if file_id:
            self.uploads.discard(file_id)

    async def _read_store(self, owner_id: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except RedisError as e:
            logger.error('Shared store unavailable while admitting a job for %s: %s', owner_id, e)
            raise QueueUnavailableError(f'Admission failed: {e}') from e
