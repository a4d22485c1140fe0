"""
Document text extraction.

Reduces pdf, docx, txt and md uploads to plain text before synthesis.
"""
import io
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from app.services.errors import UnsupportedFormatError

logger = logging.getLogger(__name__)


SUPPORTED_FORMATS = ['pdf', 'docx', 'txt', 'md']

MIME_TYPES = {
    'application/pdf': 'pdf',
    'application/vnd.openxmlformats-officedocument.wordprocessingml.document': 'docx',
    'text/plain': 'txt',
    'text/markdown': 'md',
}


@dataclass
class ParsedDocument:
    text: str
    title: Optional[str] = None
    page_count: Optional[int] = None


def clean_text(text: str) -> str:
    """Normalise line endings and collapse runs of blanks."""
    text = text.replace('\r\n', '\n').replace('\r', '\n')
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()


class DocumentService:
    def detect_format(self, filename: str, mime_type: Optional[str] = None) -> Optional[str]:
        """Extension first, MIME type as fallback; None if unsupported."""
        ext = Path(filename or '').suffix.lower().lstrip('.')
        if ext in SUPPORTED_FORMATS:
            return ext
        if mime_type:
            return MIME_TYPES.get(mime_type.split(';')[0].strip().lower())
        return None

    def parse(self, data: bytes, fmt: str, filename: Optional[str] = None) -> ParsedDocument:
        if fmt == 'pdf':
            return self._parse_pdf(data)
        if fmt == 'docx':
            return self._parse_docx(data)
        if fmt in ('txt', 'md'):
            return ParsedDocument(text=clean_text(data.decode('utf-8', errors='replace')), title=filename)
        raise UnsupportedFormatError(f'Unsupported format: {fmt}')

    def _parse_pdf(self, data: bytes) -> ParsedDocument:
        from pypdf import PdfReader

        reader = PdfReader(io.BytesIO(data))
        page_texts = [(page.extract_text() or '').strip() for page in reader.pages]
        title = None
        if reader.metadata is not None and reader.metadata.title:
            title = str(reader.metadata.title)

        logger.debug('Extracted %d pdf pages', len(page_texts))
        return ParsedDocument(
            text=clean_text('\n\n'.join(page_texts)),
            title=title,
            page_count=len(page_texts),
        )

    def _parse_docx(self, data: bytes) -> ParsedDocument:
        import docx2txt

        text = docx2txt.process(io.BytesIO(data)) or ''
        return ParsedDocument(text=clean_text(text))
