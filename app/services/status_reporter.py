"""
Owner-facing transport: status messages, notices and audio delivery.

``StatusReporter`` is the callback interface the worker talks to; the
built-in ``InboxReporter`` stores everything as rows in the ``messages``
table so clients can poll ``/owners/{owner_id}/messages``.

``StatusChannel`` wraps the single status message of one job and makes the
split explicit: progress updates, clearing and notices are best-effort
(failures are logged and dropped), audio delivery is fatal to the job.
"""
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional, Protocol

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import AUDIO_DIR, AUDIO_EXTENSION
from app.models import Message, MessageKind

logger = logging.getLogger(__name__)


class StatusReporter(Protocol):
    async def post(self, owner_id: str, text: str) -> str:
        """Create a status message and return its handle."""
        ...

    async def update(self, handle: str, text: str) -> None:
        ...

    async def delete(self, handle: str) -> None:
        ...

    async def send_text(self, owner_id: str, text: str) -> str:
        ...

    async def deliver_audio(self, owner_id: str, audio: bytes, caption: Optional[str] = None) -> str:
        ...


class InboxReporter:
    """
    ``StatusReporter`` backed by the SQLite message inbox.

    Delivered audio is written to ``audio_dir/{message_id}.{extension}``.
    """

    def __init__(self, session_factory: async_sessionmaker, audio_dir: Optional[Path] = None):
        self._session_factory = session_factory
        self.audio_dir = audio_dir or AUDIO_DIR

    async def _add(self, message: Message) -> str:
        if message.id is None:
            message.id = str(uuid.uuid4())
        async with self._session_factory() as session:
            session.add(message)
            await session.commit()
        return message.id

    async def post(self, owner_id: str, text: str) -> str:
        return await self._add(Message(owner_id=owner_id, kind=MessageKind.status.value, text=text))

    async def update(self, handle: str, text: str) -> None:
        async with self._session_factory() as session:
            result = await session.execute(select(Message).where(Message.id == handle))
            message = result.scalar_one_or_none()
            if message is None:
                raise LookupError(f'Status message {handle} not found')
            message.text = text
            message.updated_at = datetime.utcnow()
            await session.commit()

    async def delete(self, handle: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(Message).where(Message.id == handle))
            await session.commit()

    async def send_text(self, owner_id: str, text: str) -> str:
        return await self._add(Message(owner_id=owner_id, kind=MessageKind.text.value, text=text))

    async def deliver_audio(self, owner_id: str, audio: bytes, caption: Optional[str] = None) -> str:
        message = Message(id=str(uuid.uuid4()), owner_id=owner_id, kind=MessageKind.audio.value, text=caption)
        self.audio_dir.mkdir(parents=True, exist_ok=True)
        path = self.audio_dir / f'{message.id}.{AUDIO_EXTENSION}'
        path.write_bytes(audio)

        message.audio_path = str(path)
        message.audio_size_bytes = len(audio)
        try:
            return await self._add(message)
        except Exception:
            path.unlink(missing_ok=True)
            raise


class StatusChannel:
    """
    The status message of one job.

    At most one status message exists per job; ``clear`` removes it and is
    safe to call more than once.
    """

    def __init__(self, reporter: StatusReporter, owner_id: str, handle: Optional[str] = None):
        self.reporter = reporter
        self.owner_id = owner_id
        self.handle = handle

    async def progress(self, text: str):
        if self.handle is None:
            return
        try:
            await self.reporter.update(self.handle, text)
        except Exception as e:
            logger.warning('Progress update for %s failed: %s', self.owner_id, e)

    async def clear(self):
        handle, self.handle = self.handle, None
        if handle is None:
            return
        try:
            await self.reporter.delete(handle)
        except Exception as e:
            logger.warning('Could not delete status message %s: %s', handle, e)

    async def notify(self, text: str):
        """Send a side message (e.g. a transcription) without failing the job."""
        try:
            await self.reporter.send_text(self.owner_id, text)
        except Exception as e:
            logger.warning('Notice to %s failed: %s', self.owner_id, e)

    async def deliver(self, audio: bytes, caption: Optional[str] = None):
        """Clear the status message, then hand over the audio. Errors propagate."""
        await self.clear()
        await self.reporter.deliver_audio(self.owner_id, audio, caption)

    async def fail(self, user_message: str):
        await self.clear()
        try:
            await self.reporter.send_text(self.owner_id, user_message)
        except Exception:
            logger.exception('Could not send error message to %s', self.owner_id)
