"""
Background worker pool for speech jobs.
"""
import asyncio
import logging
import time
from typing import List, Optional

from app.config import WORKER_POOL_SIZE, QUEUE_POLL_INTERVAL, JOB_TIMEOUT, SHUTDOWN_TIMEOUT
from app.database import async_session_factory
from app.redis_client import get_redis
from app.schemas.envelope import Job, DocumentJob, VoiceJob
from app.services.assembler import AudioAssembler
from app.services.documents import DocumentService
from app.services.errors import UnsupportedJobError, user_message_for
from app.services.job_queue import ClaimedJob, JobQueue
from app.services.job_records import JobRecords
from app.services.openai_service import get_openai_service
from app.services.pipeline import SpeechPipeline
from app.services.status_reporter import StatusChannel, StatusReporter, InboxReporter
from app.services.uploads import FileStore

logger = logging.getLogger(__name__)


class WorkerPool:
    """
    Fixed number of asyncio workers pulling from one shared queue.

    Each worker runs one job to a terminal state before claiming the next,
    so at most ``size`` jobs are in flight. A failing job is reported to its
    owner and never stops the worker.
    """

    def __init__(
        self,
        queue: JobQueue,
        pipeline: SpeechPipeline,
        reporter: StatusReporter,
        records: JobRecords,
        uploads: FileStore,
        size: int = WORKER_POOL_SIZE,
        poll_interval: float = QUEUE_POLL_INTERVAL,
        job_timeout: float = JOB_TIMEOUT,
        shutdown_timeout: float = SHUTDOWN_TIMEOUT,
    ):
        self.queue = queue
        self.pipeline = pipeline
        self.reporter = reporter
        self.records = records
        self.uploads = uploads
        self.size = size
        self.poll_interval = poll_interval
        self.job_timeout = job_timeout
        self.shutdown_timeout = shutdown_timeout
        self._running = False
        self._tasks: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Recover abandoned jobs, then start the workers."""
        try:
            await self.queue.requeue_inflight()
        except Exception:
            logger.exception('Could not requeue in-flight jobs')
        self._running = True
        self._tasks = [
            asyncio.create_task(self._worker_loop(i), name=f'speech-worker-{i}')
            for i in range(self.size)
        ]
        logger.info('Started %d speech workers', self.size)

    async def stop(self):
        """
        Stop the workers gracefully.

        Running jobs get ``shutdown_timeout`` seconds to finish; after that they
        are cancelled and stay in the in-flight list until the next start.
        """
        self._running = False
        if not self._tasks:
            return

        tasks, self._tasks = self._tasks, []
        done, pending = await asyncio.wait(tasks, timeout=self.shutdown_timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning('Cancelled %d worker(s) still running at shutdown', len(pending))
            await asyncio.gather(*pending, return_exceptions=True)

    async def _worker_loop(self, worker_id: int):
        """Main processing loop - claims jobs until stopped."""
        while self._running:
            try:
                claimed = await self.queue.claim()
                if claimed is None:
                    await asyncio.sleep(self.poll_interval)
                    continue

                await self._process(claimed)

            except Exception:
                # Log but don't crash the loop
                logger.exception('Error in speech worker %d', worker_id)
                await asyncio.sleep(self.poll_interval)

    async def _process(self, claimed: ClaimedJob):
        if claimed.job is None:
            await self._reject(claimed)
        else:
            await self._execute(claimed.job)
        # Not reached on cancellation, so the envelope is recovered on restart
        await self.queue.ack(claimed)

    async def _execute(self, job: Job):
        channel = StatusChannel(self.reporter, job.owner_id, job.status_handle)
        await self._record(self.records.mark_claimed(job.id))
        logger.info('Job %s (%s) claimed for owner %s', job.id, job.kind, job.owner_id)

        start_time = time.monotonic()
        try:
            result = await asyncio.wait_for(self.pipeline.run(job, channel), timeout=self.job_timeout)
        except Exception as e:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.error(
                'Job %s for owner %s failed: %s',
                job.id, job.owner_id, str(e) or type(e).__name__,
                exc_info=True,
            )
            await channel.fail(user_message_for(e))
            await self._record(self.records.mark_failed(job.id, str(e) or type(e).__name__, duration_ms))
        else:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            logger.info(
                'Job %s delivered %d chunk(s), %d bytes in %dms',
                job.id, result.chunk_count, result.audio_size_bytes, duration_ms,
            )
            await self._record(self.records.mark_succeeded(
                job.id,
                duration_ms=duration_ms,
                chunk_count=result.chunk_count,
                audio_size_bytes=result.audio_size_bytes,
            ))

        # Cancelled jobs skip this and keep their upload for the retry
        if isinstance(job, (DocumentJob, VoiceJob)):
            self.uploads.discard(job.file_id)

    async def _reject(self, claimed: ClaimedJob):
        """Terminal failure for an envelope that could not be parsed."""
        job_id = claimed.peek('id')
        owner_id = claimed.peek('owner_id')
        logger.error('Rejecting job %s for owner %s: %s', job_id, owner_id, claimed.error)

        if owner_id:
            channel = StatusChannel(self.reporter, owner_id, claimed.peek('status_handle'))
            await channel.fail(UnsupportedJobError.user_message)
        if job_id:
            await self._record(self.records.mark_failed(job_id, f'Unreadable envelope: {claimed.error}'))

        file_id = claimed.peek('file_id')
        if file_id:
            self.uploads.discard(file_id)

    async def _record(self, update):
        """Apply a job history update; failures are only logged."""
        try:
            await update
        except Exception:
            logger.exception('Could not update job history')


# Singleton instance
_worker_pool: Optional[WorkerPool] = None


def get_worker_pool() -> WorkerPool:
    """Get the worker pool singleton, wired to the shared store and database."""
    global _worker_pool
    if _worker_pool is None:
        uploads = FileStore()
        _worker_pool = WorkerPool(
            queue=JobQueue(get_redis()),
            pipeline=SpeechPipeline(
                provider=get_openai_service(),
                assembler=AudioAssembler(),
                documents=DocumentService(),
                uploads=uploads,
            ),
            reporter=InboxReporter(async_session_factory),
            records=JobRecords(async_session_factory),
            uploads=uploads,
        )
    return _worker_pool


def reset_worker_pool():
    """Reset the worker pool singleton (for testing)."""
    global _worker_pool
    _worker_pool = None
