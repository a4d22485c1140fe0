"""
Pydantic schemas for Job API operations.
"""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict


class JobCreate(BaseModel):
    """Schema for submitting text for speech synthesis."""
    owner_id: str = Field(..., min_length=1, max_length=100, description='Requesting user or conversation')
    text: str = Field(..., min_length=1, description='The text to synthesize')
    enhance: bool = Field(False, description='Normalise punctuation and numbers before synthesis')


class JobAccepted(BaseModel):
    """Returned as soon as a job has been admitted and queued."""
    id: str
    kind: str
    owner_id: str
    status: str
    notice: Optional[str] = None


class JobResponse(BaseModel):
    """Schema for job response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    kind: str
    owner_id: str
    status: str
    char_count: int
    chunk_count: Optional[int]
    created_at: datetime
    claimed_at: Optional[datetime]
    completed_at: Optional[datetime]
    error_message: Optional[str]
    duration_ms: Optional[int]
    audio_size_bytes: Optional[int]


class JobListResponse(BaseModel):
    """Schema for paginated job list response."""
    jobs: List[JobResponse]
    total: int
    limit: int
    offset: int
