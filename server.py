#!/usr/bin/env python3
"""
SpeakEasy FastAPI Server

Turns text, documents and voice notes into speech. Requests are rate
limited, queued in Redis and processed by a small pool of background
workers; results land in each owner's message inbox.
"""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from app.config import APP_NAME, APP_VERSION, SERVER_HOST, SERVER_PORT, LOG_LEVEL, WORKER_POOL_SIZE
from app.database import init_db, close_db
from app.redis_client import get_redis, close_redis
from app.services.openai_service import close_openai_service
from app.services.worker_pool import get_worker_pool, reset_worker_pool
from app.routers import health_router, jobs_router, messages_router, preferences_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan context manager.

    Startup:
        - Initialize database and create tables
        - Check the shared store
        - Requeue jobs left in flight by a previous run and start the workers

    Shutdown:
        - Stop the workers (in-flight jobs get a grace period)
        - Close the provider client, the shared store and the database
    """
    logging.basicConfig(
        level=LOG_LEVEL,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )
    print(f'Starting {APP_NAME} v{APP_VERSION}...')

    print('Initializing database...')
    await init_db()

    print('Connecting to shared store...')
    try:
        await get_redis().ping()
        print('Shared store reachable.')
    except Exception as e:
        # Workers keep polling; /health reports the outage
        print(f'Shared store not reachable yet: {e}')

    print(f'Starting {WORKER_POOL_SIZE} workers...')
    worker_pool = get_worker_pool()
    await worker_pool.start()

    print(f'Server ready at http://{SERVER_HOST}:{SERVER_PORT}')
    print('API documentation available at /docs')

    yield

    print('Shutting down...')

    await worker_pool.stop()
    reset_worker_pool()

    await close_openai_service()
    await close_redis()
    await close_db()

    print('Shutdown complete.')


# Create FastAPI application
app = FastAPI(
    title=APP_NAME,
    description='Rate-limited, queue-backed text-to-speech service.',
    version=APP_VERSION,
    lifespan=lifespan,
)

# Register routers
app.include_router(health_router)
app.include_router(jobs_router)
app.include_router(messages_router)
app.include_router(preferences_router)


if __name__ == '__main__':
    uvicorn.run(
        app,
        host=SERVER_HOST,
        port=SERVER_PORT,
        reload=False,
        log_level=LOG_LEVEL.lower(),
    )
