"""
Pydantic schemas for API request/response validation and the queue envelope.
"""
from app.schemas.envelope import (
    Job,
    PlainTextJob,
    EnhancedTextJob,
    DocumentJob,
    VoiceJob,
    Preferences,
    parse_job,
    dump_job,
)
from app.schemas.job import JobCreate, JobAccepted, JobResponse, JobListResponse
from app.schemas.message import MessageResponse, MessageListResponse
from app.schemas.preferences import (
    PreferencesResponse,
    PreferencesUpdate,
    VoiceListResponse,
    UsageResponse,
)

__all__ = [
    'Job',
    'PlainTextJob',
    'EnhancedTextJob',
    'DocumentJob',
    'VoiceJob',
    'Preferences',
    'parse_job',
    'dump_job',
    'JobCreate',
    'JobAccepted',
    'JobResponse',
    'JobListResponse',
    'MessageResponse',
    'MessageListResponse',
    'PreferencesResponse',
    'PreferencesUpdate',
    'VoiceListResponse',
    'UsageResponse',
]
