"""
Background processing tests.

Tests for job history transitions and the worker pool, using a fakeredis
queue and the SQLite inbox.
"""
import asyncio
import json
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models import JobRecord, JobStatus
from app.schemas.envelope import PlainTextJob, DocumentJob
from app.services.errors import TerminalProviderError, UnsupportedJobError
from app.services.job_queue import JobQueue
from app.services.job_records import JobRecords
from app.services.pipeline import PipelineResult, SpeechPipeline
from app.redis_client import reset_redis
from app.services.openai_service import reset_openai_service
from app.services.worker_pool import WorkerPool, get_worker_pool, reset_worker_pool


def _job(job_id: str, owner_id: str = 'owner', text: str = 'Hello.') -> PlainTextJob:
    return PlainTextJob(
        id=job_id,
        owner_id=owner_id,
        status_handle=f'status-{job_id}',
        enqueued_at=datetime.utcnow(),
        text=text,
    )


async def wait_until(predicate, timeout: float = 5.0):
    """Poll ``predicate`` (sync or async) until it is truthy."""
    deadline = asyncio.get_running_loop().time() + timeout
    while True:
        result = predicate()
        if asyncio.iscoroutine(result):
            result = await result
        if result:
            return
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError('condition not met in time')
        await asyncio.sleep(0.01)


@pytest_asyncio.fixture
async def queue(fake_redis):
    return JobQueue(fake_redis, name='workers')


@pytest.fixture
def records(session_factory):
    return JobRecords(session_factory)


@pytest.fixture
def pipeline():
    pipeline = MagicMock(spec=SpeechPipeline)
    pipeline.run = AsyncMock(return_value=PipelineResult(char_count=6, chunk_count=1, audio_size_bytes=4))
    return pipeline


@pytest.fixture
def status_reporter():
    return AsyncMock()


@pytest.fixture
def make_pool(queue, pipeline, status_reporter, records, file_store):
    def make(**kwargs):
        options = dict(size=3, poll_interval=0.01, job_timeout=5.0, shutdown_timeout=1.0)
        options.update(kwargs)
        return WorkerPool(
            queue=queue,
            pipeline=pipeline,
            reporter=status_reporter,
            records=records,
            uploads=file_store,
            **options,
        )
    return make


async def _record(session_factory, job_id):
    async with session_factory() as session:
        result = await session.execute(select(JobRecord).where(JobRecord.id == job_id))
        return result.scalar_one_or_none()


class TestJobRecords:
    """Tests for job history transitions."""

    @pytest.mark.asyncio
    async def test_job_starts_as_enqueued(self, records, test_session: AsyncSession):
        """Newly created records are enqueued."""
        await records.create(_job('1'), char_count=6)

        result = await test_session.execute(select(JobRecord).where(JobRecord.id == '1'))
        saved = result.scalar_one()

        assert saved.status == JobStatus.enqueued.value
        assert saved.kind == 'plain_text'
        assert saved.char_count == 6

    @pytest.mark.asyncio
    async def test_claimed_then_succeeded(self, records, session_factory):
        await records.create(_job('1'), char_count=6)

        await records.mark_claimed('1')
        claimed = await _record(session_factory, '1')
        assert claimed.status == JobStatus.claimed.value
        assert claimed.claimed_at is not None

        await records.mark_succeeded('1', duration_ms=1500, chunk_count=3, audio_size_bytes=12345)
        done = await _record(session_factory, '1')
        assert done.status == JobStatus.succeeded.value
        assert done.completed_at is not None
        assert done.duration_ms == 1500
        assert done.chunk_count == 3
        assert done.audio_size_bytes == 12345

    @pytest.mark.asyncio
    async def test_failed(self, records, session_factory):
        await records.create(_job('1'), char_count=6)

        await records.mark_failed('1', 'Provider rejected input', duration_ms=100)

        failed = await _record(session_factory, '1')
        assert failed.status == JobStatus.failed.value
        assert failed.error_message == 'Provider rejected input'

    @pytest.mark.asyncio
    async def test_missing_record_is_ignored(self, records):
        assert await records.mark_claimed('missing') is None


class TestWorkerPool:
    """Tests for WorkerPool."""

    def test_pool_creates(self, make_pool):
        pool = make_pool()

        assert pool.size == 3
        assert pool.is_running is False

    @pytest.mark.asyncio
    async def test_starts_and_stops(self, make_pool):
        pool = make_pool()

        await pool.start()
        assert pool.is_running is True
        assert len(pool._tasks) == 3

        await pool.stop()
        assert pool.is_running is False
        assert pool._tasks == []

    @pytest.mark.asyncio
    async def test_successful_job(self, make_pool, queue, records, pipeline, session_factory, fake_redis):
        await records.create(_job('1'), char_count=6)
        await queue.enqueue(_job('1'))
        pool = make_pool()

        await pool.start()
        await wait_until(lambda: pipeline.run.await_count == 1)
        await wait_until(self._status_is(session_factory, '1', JobStatus.succeeded))
        await pool.stop()

        record = await _record(session_factory, '1')
        assert record.chunk_count == 1
        assert record.audio_size_bytes == 4
        assert await fake_redis.llen(queue.processing_key) == 0

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_pool_size(self, make_pool, queue, pipeline):
        active = 0
        peak = 0
        done = 0

        async def slow_run(job, channel):
            nonlocal active, peak, done
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.05)
            active -= 1
            done += 1
            return PipelineResult(char_count=1, chunk_count=1, audio_size_bytes=1)

        pipeline.run.side_effect = slow_run
        for i in range(8):
            await queue.enqueue(_job(str(i)))
        pool = make_pool(size=3)

        await pool.start()
        await wait_until(lambda: done == 8)
        await pool.stop()

        assert peak == 3

    @pytest.mark.asyncio
    async def test_failure_clears_status_and_reports(self, make_pool, queue, records, pipeline, status_reporter, session_factory):
        pipeline.run.side_effect = TerminalProviderError('401 from provider', user_message='Bad credentials.')
        await records.create(_job('1'), char_count=6)
        await queue.enqueue(_job('1'))
        pool = make_pool()

        await pool.start()
        await wait_until(lambda: status_reporter.send_text.await_count == 1)
        await wait_until(self._status_is(session_factory, '1', JobStatus.failed))
        await pool.stop()

        names = [call[0] for call in status_reporter.mock_calls]
        assert names.index('delete') < names.index('send_text')
        status_reporter.delete.assert_awaited_once_with('status-1')
        status_reporter.send_text.assert_awaited_once_with('owner', 'Bad credentials.')
        record = await _record(session_factory, '1')
        assert '401' in record.error_message

    @pytest.mark.asyncio
    async def test_loop_survives_failed_job(self, make_pool, queue, pipeline):
        pipeline.run.side_effect = [
            RuntimeError('unexpected'),
            PipelineResult(char_count=1, chunk_count=1, audio_size_bytes=1),
        ]
        await queue.enqueue(_job('1'))
        await queue.enqueue(_job('2'))
        pool = make_pool(size=1)

        await pool.start()
        await wait_until(lambda: pipeline.run.await_count == 2)
        await pool.stop()

        assert [call.args[0].id for call in pipeline.run.await_args_list] == ['1', '2']

    @pytest.mark.asyncio
    async def test_job_timeout_is_terminal(self, make_pool, queue, pipeline, status_reporter):
        async def hang(job, channel):
            await asyncio.sleep(10)

        pipeline.run.side_effect = hang
        await queue.enqueue(_job('1'))
        pool = make_pool(job_timeout=0.05)

        await pool.start()
        await wait_until(lambda: status_reporter.send_text.await_count == 1)
        await pool.stop()

        message = status_reporter.send_text.await_args.args[1]
        assert 'too long' in message

    @pytest.mark.asyncio
    async def test_unreadable_envelope_fails_cleanly(self, make_pool, queue, pipeline, status_reporter, fake_redis):
        raw = json.dumps({'kind': 'video', 'id': 'x', 'owner_id': 'o-9', 'status_handle': 'h-9'})
        await fake_redis.lpush(queue.pending_key, raw)
        pool = make_pool()

        await pool.start()
        await wait_until(lambda: status_reporter.send_text.await_count == 1)
        await pool.stop()

        pipeline.run.assert_not_awaited()
        status_reporter.delete.assert_awaited_once_with('h-9')
        status_reporter.send_text.assert_awaited_once_with('o-9', UnsupportedJobError.user_message)
        assert await fake_redis.llen(queue.processing_key) == 0

    @pytest.mark.asyncio
    async def test_uploads_discarded_after_job(self, make_pool, queue, pipeline, file_store):
        file_id = file_store.save(b'document body')
        job = DocumentJob(
            id='1', owner_id='owner', status_handle='h', enqueued_at=datetime.utcnow(),
            file_id=file_id, file_name='notes.txt',
        )
        await queue.enqueue(job)
        pool = make_pool()

        await pool.start()
        await wait_until(lambda: not (file_store.root / file_id).exists())
        await pool.stop()

        assert pipeline.run.await_count == 1

    @pytest.mark.asyncio
    async def test_shutdown_leaves_running_job_for_recovery(self, make_pool, queue, pipeline, fake_redis):
        started = asyncio.Event()

        async def block(job, channel):
            started.set()
            await asyncio.Event().wait()

        pipeline.run.side_effect = block
        await queue.enqueue(_job('1'))
        pool = make_pool(shutdown_timeout=0.05)

        await pool.start()
        await asyncio.wait_for(started.wait(), timeout=5)
        await pool.stop()

        assert await fake_redis.llen(queue.processing_key) == 1
        assert await queue.requeue_inflight() == 1
        assert (await queue.claim()).job.id == '1'

    @pytest.mark.asyncio
    async def test_start_requeues_inflight_jobs(self, make_pool, queue, pipeline):
        await queue.enqueue(_job('1'))
        await queue.claim()
        pool = make_pool()

        await pool.start()
        await wait_until(lambda: pipeline.run.await_count == 1)
        await pool.stop()

    @staticmethod
    def _status_is(session_factory, job_id, status):
        async def check():
            record = await _record(session_factory, job_id)
            return record is not None and record.status == status.value
        return check


class TestWorkerPoolSingleton:
    """Tests for the worker pool singleton."""

    def test_singleton(self):
        reset_worker_pool()
        try:
            assert get_worker_pool() is get_worker_pool()
        finally:
            reset_worker_pool()
            reset_openai_service()
            reset_redis()
