"""
Job history model.

The queue envelope in Redis is the unit of work; this table records what
happened to it so owners and operators can look a job up afterwards.
"""
import enum
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer

from app.models.base import Base


class JobStatus(str, enum.Enum):
    """Lifecycle states for speech jobs."""
    enqueued = 'enqueued'
    claimed = 'claimed'
    succeeded = 'succeeded'
    failed = 'failed'


class JobRecord(Base):
    """
    Represents one speech job.

    Attributes:
        id: Job identifier assigned at enqueue time
        kind: plain_text, enhanced_text, document or voice_transcript
        owner_id: Requesting owner (user or conversation)
        status: Current lifecycle state
        char_count: Characters weighed against the daily budget at admission
        chunk_count: Number of chunks synthesized
        created_at: When the job was enqueued
        claimed_at: When a worker picked the job up
        completed_at: When the job reached a terminal state
        error_message: Error details if failed
        duration_ms: Time from claim to terminal state
        audio_size_bytes: Size of the delivered audio
    """
    __tablename__ = 'jobs'

    id = Column(String(36), primary_key=True)
    kind = Column(String(32), nullable=False)
    owner_id = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=JobStatus.enqueued.value)
    char_count = Column(Integer, nullable=False, default=0)
    chunk_count = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    claimed_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    audio_size_bytes = Column(Integer, nullable=True)

    def __repr__(self):
        return f'<JobRecord {self.id} kind={self.kind} status={self.status}>'
