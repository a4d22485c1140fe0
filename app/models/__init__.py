"""
SQLAlchemy models.
"""
from app.models.base import Base
from app.models.job import JobRecord, JobStatus
from app.models.message import Message, MessageKind

__all__ = ['Base', 'JobRecord', 'JobStatus', 'Message', 'MessageKind']
