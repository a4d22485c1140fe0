"""
Speech pipeline run by a worker for one claimed job.

Every job kind is first reduced to plain text, then chunked, synthesized
chunk by chunk in index order, assembled and delivered:

    PlainTextJob     text as submitted
    EnhancedTextJob  text normalised by the provider's enhancement step
    DocumentJob      text extracted from the uploaded document
    VoiceJob         voice note transcribed, then enhanced
"""
import asyncio
import functools
import logging
import mimetypes
from dataclasses import dataclass
from typing import List, Optional, Tuple

from app.config import MAX_CHUNK_LENGTH
from app.schemas.envelope import Job, PlainTextJob, EnhancedTextJob, DocumentJob, VoiceJob, Preferences
from app.services.assembler import AudioAssembler, ChunkAudio
from app.services.chunker import split_text
from app.services.documents import DocumentService
from app.services.errors import EmptyTextError, UnsupportedFormatError, UnsupportedJobError
from app.services.openai_service import OpenAIService
from app.services.status_reporter import StatusChannel
from app.services.uploads import FileStore

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    char_count: int
    chunk_count: int
    audio_size_bytes: int


class SpeechPipeline:
    def __init__(
        self,
        provider: OpenAIService,
        assembler: AudioAssembler,
        documents: DocumentService,
        uploads: FileStore,
        max_chunk_length: int = MAX_CHUNK_LENGTH,
    ):
        self.provider = provider
        self.assembler = assembler
        self.documents = documents
        self.uploads = uploads
        self.max_chunk_length = max_chunk_length

    async def run(self, job: Job, channel: StatusChannel) -> PipelineResult:
        """
        Execute ``job`` to delivery.

        Raises whatever the failing step raised; the caller turns it into
        the owner-facing error message.
        """
        text, caption = await self._resolve_text(job, channel)
        return await self._speak(text, job.preferences, channel, caption)

    async def _resolve_text(self, job: Job, channel: StatusChannel) -> Tuple[str, Optional[str]]:
        if isinstance(job, PlainTextJob):
            return job.text, None

        if isinstance(job, EnhancedTextJob):
            return await self.provider.enhance_text(job.text), None

        if isinstance(job, DocumentJob):
            return await self._extract_document(job, channel)

        if isinstance(job, VoiceJob):
            audio = self.uploads.read(job.file_id)
            transcript = (await self.provider.transcribe(audio, _voice_filename(job.mime_type))).strip()
            if not transcript:
                raise EmptyTextError(f'Empty transcription for job {job.id}')
            await channel.notify(f'Transcription: {transcript}')
            return await self.provider.enhance_text(transcript), None

        raise UnsupportedJobError(f'Unsupported job kind: {getattr(job, "kind", type(job).__name__)}')

    async def _extract_document(self, job: DocumentJob, channel: StatusChannel) -> Tuple[str, Optional[str]]:
        await channel.progress('Downloading/Parsing document...')

        fmt = self.documents.detect_format(job.file_name or '', job.mime_type)
        if fmt is None:
            raise UnsupportedFormatError(f'Unsupported document {job.file_name!r} ({job.mime_type})')

        data = self.uploads.read(job.file_id)
        loop = asyncio.get_running_loop()
        parsed = await loop.run_in_executor(
            None,
            functools.partial(self.documents.parse, data, fmt, job.file_name),
        )
        if not parsed.text:
            raise EmptyTextError(f'No text extracted from {job.file_name!r}')

        logger.info('Extracted %d characters from %s for job %s', len(parsed.text), fmt, job.id)
        await channel.progress(f'Extracted {len(parsed.text)} characters. Generating audio...')
        return parsed.text, parsed.title or job.file_name

    async def _speak(
        self,
        text: str,
        preferences: Preferences,
        channel: StatusChannel,
        caption: Optional[str],
    ) -> PipelineResult:
        chunks = split_text(text, self.max_chunk_length)
        if not chunks:
            raise EmptyTextError('Nothing to synthesize')

        total = len(chunks)
        segments: List[ChunkAudio] = []
        for chunk in chunks:
            audio = await self.provider.synthesize(
                chunk.text,
                voice=preferences.voice,
                speed=preferences.speed,
                instructions=preferences.instructions,
            )
            segments.append(ChunkAudio(chunk.index, audio))
            if total > 1:
                await channel.progress(f'{chunk.index + 1}/{total}')

        combined = await self.assembler.assemble(segments)
        await channel.deliver(combined, caption)

        return PipelineResult(
            char_count=sum(len(c.text) for c in chunks),
            chunk_count=total,
            audio_size_bytes=len(combined),
        )


def _voice_filename(mime_type: Optional[str]) -> str:
    ext = mimetypes.guess_extension(mime_type or '') if mime_type else None
    return f'voice{ext or ".ogg"}'
