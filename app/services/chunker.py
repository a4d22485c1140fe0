"""
Text chunking for speech synthesis.

The provider rejects input above a fixed length, so long text is split into
ordered chunks that are synthesized one by one and concatenated afterwards
with no silence inserted. Cuts therefore go where a reader would pause.

Boundary choice, scanning backward from ``max_len`` in the remaining text:
    1. Paragraph break, only if it lies past half of the window
    2. Sentence terminator (. ! ? …) followed by whitespace
    3. Clause separator (, ; :) followed by whitespace
    4. Hard cut at exactly ``max_len``

Chunks are trimmed and empty chunks dropped; nothing but whitespace is lost.

Example:
    >>> chunks = split_text('First sentence. Second one is longer.', max_len=20)
    >>> [c.text for c in chunks]
    ['First sentence.', 'Second one is longer.']
"""
import re
from dataclasses import dataclass
from typing import List, Optional

from app.config import MAX_CHUNK_LENGTH


PARAGRAPH_BREAK = re.compile(r'\n[ \t\r]*\n')
SENTENCE_TERMINATORS = '.!?…'
CLAUSE_SEPARATORS = ',;:'


@dataclass(frozen=True)
class Chunk:
    """
    Ordered fragment of the source text.

    Attributes:
        index: Zero-based position; defines assembly order
        text: Trimmed chunk text, at most ``max_len`` characters
        is_last: True for the final chunk
    """
    index: int
    text: str
    is_last: bool


def split_text(text: str, max_len: int = MAX_CHUNK_LENGTH) -> List[Chunk]:
    """
    Split ``text`` into chunks of at most ``max_len`` characters.

    Returns a single chunk when the trimmed text already fits, and an empty
    list for blank input.
    """
    if max_len < 1:
        raise ValueError('max_len must be positive')

    remaining = text.strip()
    pieces: List[str] = []

    while remaining:
        if len(remaining) <= max_len:
            pieces.append(remaining)
            break

        cut = _find_cut(remaining, max_len)
        piece = remaining[:cut].strip()
        if piece:
            pieces.append(piece)
        remaining = remaining[cut:].lstrip()

    return [
        Chunk(index=i, text=piece, is_last=(i == len(pieces) - 1))
        for i, piece in enumerate(pieces)
    ]


def _find_cut(remaining: str, max_len: int) -> int:
    """Position in ``remaining`` where the next chunk ends (exclusive)."""
    window = remaining[:max_len]

    cut = _last_paragraph_break(window)
    if cut is not None and cut > max_len // 2:
        return cut

    for marks in (SENTENCE_TERMINATORS, CLAUSE_SEPARATORS):
        cut = _last_mark_before_space(remaining, max_len, marks)
        if cut is not None:
            return cut

    return max_len


def _last_paragraph_break(window: str) -> Optional[int]:
    last = None
    for match in PARAGRAPH_BREAK.finditer(window):
        last = match.start()
    return last


def _last_mark_before_space(remaining: str, max_len: int, marks: str) -> Optional[int]:
    # remaining is longer than max_len, so remaining[i + 1] always exists
    for i in range(max_len - 1, 0, -1):
        if remaining[i] in marks and remaining[i + 1].isspace():
            return i + 1
    return None
