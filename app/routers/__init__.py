"""
FastAPI routers.
"""
from app.routers.health import router as health_router
from app.routers.jobs import router as jobs_router
from app.routers.messages import router as messages_router
from app.routers.preferences import router as preferences_router

__all__ = ['health_router', 'jobs_router', 'messages_router', 'preferences_router']
