"""
Pydantic schemas for voice preferences and usage.
"""
from typing import Optional, List
from pydantic import BaseModel, Field

from app.schemas.envelope import MIN_SPEED, MAX_SPEED


class PreferencesResponse(BaseModel):
    voice: str
    speed: float
    instructions: Optional[str] = None


class PreferencesUpdate(BaseModel):
    """Partial update; an empty ``instructions`` string clears the tone."""
    voice: Optional[str] = None
    speed: Optional[float] = Field(None, ge=MIN_SPEED, le=MAX_SPEED)
    instructions: Optional[str] = None


class VoiceListResponse(BaseModel):
    voices: List[str]
    default: str


class UsageResponse(BaseModel):
    owner_id: str
    minute_requests: int
    minute_limit: int
    day_chars: int
    day_limit: int
