"""
Pydantic schemas for the message inbox.
"""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, ConfigDict


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    kind: str
    text: Optional[str]
    audio_size_bytes: Optional[int]
    created_at: datetime
    updated_at: Optional[datetime]


class MessageListResponse(BaseModel):
    messages: List[MessageResponse]
