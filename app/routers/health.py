"""
Health check endpoint.
"""
import logging
from typing import Optional
from pydantic import BaseModel
from fastapi import APIRouter, Depends
from redis.exceptions import RedisError

from app.config import APP_VERSION
from app.dependencies import get_job_queue
from app.services.job_queue import JobQueue

logger = logging.getLogger(__name__)


router = APIRouter(tags=['health'])


class HealthResponse(BaseModel):
    """Health check response schema."""
    status: str
    queue_connectivity: bool
    queue_depth: Optional[int]
    version: str


@router.get('/health', response_model=HealthResponse)
async def health_check(queue: JobQueue = Depends(get_job_queue)) -> HealthResponse:
    """
    Check server health status.

    Reports whether the shared queue store answers and how many jobs are
    waiting. The service stays up (status 'degraded') while the store is down.
    """
    connected = await queue.ping()
    depth = None
    if connected:
        try:
            depth = await queue.depth()
        except RedisError as e:
            logger.warning('Queue depth unavailable: %s', e)
            connected = False

    return HealthResponse(
        status='ok' if connected else 'degraded',
        queue_connectivity=connected,
        queue_depth=depth,
        version=APP_VERSION,
    )
