"""
Queue job envelope.

Each job kind is its own model carrying exactly the fields it needs; the
``kind`` field is the discriminator used to parse envelopes read back from
the queue.
"""
from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


DEFAULT_VOICE = 'alloy'
MIN_SPEED = 0.25
MAX_SPEED = 4.0


class Preferences(BaseModel):
    """Immutable voice settings snapshot taken when a job is admitted."""
    model_config = ConfigDict(frozen=True)

    voice: str = DEFAULT_VOICE
    speed: float = Field(default=1.0, ge=MIN_SPEED, le=MAX_SPEED)
    instructions: Optional[str] = None


class _JobBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    owner_id: str
    status_handle: Optional[str] = None
    enqueued_at: datetime
    preferences: Preferences = Field(default_factory=Preferences)


class PlainTextJob(_JobBase):
    kind: Literal['plain_text'] = 'plain_text'
    text: str


class EnhancedTextJob(_JobBase):
    """Text that is run through the enhancement step before synthesis."""
    kind: Literal['enhanced_text'] = 'enhanced_text'
    text: str


class DocumentJob(_JobBase):
    kind: Literal['document'] = 'document'
    file_id: str
    file_name: Optional[str] = None
    mime_type: Optional[str] = None


class VoiceJob(_JobBase):
    """Voice note that is transcribed, then enhanced, then synthesized."""
    kind: Literal['voice_transcript'] = 'voice_transcript'
    file_id: str
    mime_type: Optional[str] = None


Job = Annotated[
    Union[PlainTextJob, EnhancedTextJob, DocumentJob, VoiceJob],
    Field(discriminator='kind'),
]

_job_adapter: TypeAdapter = TypeAdapter(Job)


def parse_job(raw: str) -> Job:
    """Parse a JSON envelope; raises pydantic.ValidationError for unknown kinds."""
    return _job_adapter.validate_json(raw)


def dump_job(job: Job) -> str:
    return job.model_dump_json()
