"""
Owner-facing message inbox.

This is the built-in transport: status messages, notices, errors and
delivered audio all land here, one row per message.
"""
import enum
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Text, DateTime, Integer

from app.models.base import Base


class MessageKind(str, enum.Enum):
    status = 'status'
    text = 'text'
    audio = 'audio'


class Message(Base):
    __tablename__ = 'messages'

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(100), nullable=False, index=True)
    kind = Column(String(10), nullable=False)
    text = Column(Text, nullable=True)
    audio_path = Column(Text, nullable=True)
    audio_size_bytes = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f'<Message {self.id} owner={self.owner_id} kind={self.kind}>'
