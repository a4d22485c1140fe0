"""
Durable FIFO job queue in the shared store.

Two Redis lists:
    pending     new envelopes are pushed on the left, claimed from the right
    processing  claimed envelopes, removed when the worker acknowledges

Claiming moves an envelope atomically from ``pending`` to ``processing``, so
exactly one worker gets it. Envelopes left in ``processing`` by a crashed
process are moved back by ``requeue_inflight`` when the pool starts.
"""
import json
import logging
from dataclasses import dataclass
from typing import Optional

from pydantic import ValidationError
from redis.asyncio import Redis

from app.config import KEY_PREFIX
from app.schemas.envelope import Job, parse_job, dump_job

logger = logging.getLogger(__name__)


@dataclass
class ClaimedJob:
    """
    An envelope taken off the queue.

    ``job`` is None when the envelope could not be parsed (for example an
    unknown kind); ``error`` then says why and ``raw`` is all there is.
    """
    raw: str
    job: Optional[Job] = None
    error: Optional[str] = None

    def peek(self, field: str) -> Optional[str]:
        """Best-effort read of a top-level envelope field from ``raw``."""
        try:
            data = json.loads(self.raw)
        except ValueError:
            return None
        if isinstance(data, dict) and isinstance(data.get(field), str):
            return data[field]
        return None


class JobQueue:
    def __init__(self, redis: Redis, name: str = 'jobs', key_prefix: str = KEY_PREFIX):
        self._redis = redis
        self.pending_key = f'{key_prefix}:queue:{name}:pending'
        self.processing_key = f'{key_prefix}:queue:{name}:processing'

    async def enqueue(self, job: Job) -> str:
        """Persist the envelope; returns the job id."""
        await self._redis.lpush(self.pending_key, dump_job(job))
        logger.info('Enqueued job %s (%s) for owner %s', job.id, job.kind, job.owner_id)
        return job.id

    async def claim(self) -> Optional[ClaimedJob]:
        """Take the oldest pending envelope, or None if the queue is empty."""
        raw = await self._redis.lmove(self.pending_key, self.processing_key, 'RIGHT', 'LEFT')
        if raw is None:
            return None

        try:
            return ClaimedJob(raw=raw, job=parse_job(raw))
        except ValidationError as e:
            logger.error('Unreadable job envelope: %s', e)
            return ClaimedJob(raw=raw, error=str(e))

    async def ack(self, claimed: ClaimedJob):
        """Remove a finished envelope from the processing list."""
        await self._redis.lrem(self.processing_key, 1, claimed.raw)

    async def requeue_inflight(self) -> int:
        """Move envelopes abandoned in ``processing`` back to the front of ``pending``."""
        moved = 0
        while await self._redis.lmove(self.processing_key, self.pending_key, 'LEFT', 'RIGHT') is not None:
            moved += 1
        if moved:
            logger.warning('Requeued %d in-flight job(s) from a previous run', moved)
        return moved

    async def depth(self) -> int:
        return await self._redis.llen(self.pending_key)

    async def ping(self) -> bool:
        """True if the shared store answers."""
        try:
            return bool(await self._redis.ping())
        except Exception as e:
            logger.warning('Queue store unreachable: %s', e)
            return False
