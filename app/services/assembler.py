"""
Concatenate per-chunk audio into one playable file.

Chunks are written to a per-job scratch directory, listed in index order in
an ffconcat manifest and joined by a single ffmpeg stream-copy run (no
re-encoding). The scratch directory is removed on every exit path.
"""
import asyncio
import functools
import logging
import subprocess
import tempfile
from pathlib import Path
from typing import List, NamedTuple, Optional, Sequence

from app.config import FFMPEG_PATH, ASSEMBLY_TIMEOUT, AUDIO_EXTENSION, SCRATCH_DIR
from app.services.errors import AssemblyError

logger = logging.getLogger(__name__)


class ChunkAudio(NamedTuple):
    """Synthesized audio for the chunk at ``index``."""
    index: int
    audio: bytes


def _ffconcat_line(path: Path) -> str:
    escaped = str(path).replace('\\', '\\\\').replace("'", "'\\''")
    return f"file '{escaped}'\n"


class AudioAssembler:
    """
    Joins chunk audio in index order.

    Single-chunk input is returned untouched without touching the disk.
    """

    def __init__(
        self,
        ffmpeg_path: str = FFMPEG_PATH,
        scratch_dir: Optional[Path] = None,
        timeout: float = ASSEMBLY_TIMEOUT,
        extension: str = AUDIO_EXTENSION,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.scratch_dir = scratch_dir
        self.timeout = timeout
        self.extension = extension

    async def assemble(self, segments: Sequence[ChunkAudio]) -> bytes:
        """
        Concatenate ``segments`` ordered by chunk index, whatever order they
        were passed in.

        Raises:
            AssemblyError: Missing/duplicate indices or ffmpeg failure
        """
        ordered = sorted(segments, key=lambda s: s.index)
        indices = [s.index for s in ordered]
        if indices != list(range(len(ordered))):
            raise AssemblyError(f'Chunk indices are not contiguous from 0: {indices}')

        if len(ordered) == 1:
            return ordered[0].audio

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            functools.partial(self._assemble_sync, ordered),
        )

    def _assemble_sync(self, ordered: List[ChunkAudio]) -> bytes:
        scratch_dir = self.scratch_dir or SCRATCH_DIR
        with tempfile.TemporaryDirectory(prefix='assemble-', dir=str(scratch_dir)) as tmp:
            tmp_path = Path(tmp)

            manifest = tmp_path / 'concat.txt'
            with open(manifest, 'w', encoding='utf-8') as f:
                for segment in ordered:
                    chunk_path = tmp_path / f'chunk_{segment.index:04d}.{self.extension}'
                    chunk_path.write_bytes(segment.audio)
                    f.write(_ffconcat_line(chunk_path))

            output_path = tmp_path / f'combined.{self.extension}'
            cmd = [
                self.ffmpeg_path,
                '-hide_banner',
                '-loglevel',
                'error',
                '-y',
                '-f',
                'concat',
                '-safe',
                '0',
                '-i',
                str(manifest),
                '-c',
                'copy',
                str(output_path),
            ]
            logger.debug('Running %s', ' '.join(cmd))

            try:
                proc = subprocess.run(
                    cmd,
                    check=False,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                )
            except FileNotFoundError as e:
                raise AssemblyError(f'ffmpeg not found at {self.ffmpeg_path}') from e
            except subprocess.TimeoutExpired as e:
                raise AssemblyError(f'ffmpeg timed out after {self.timeout}s', diagnostics=str(e.stderr or '')) from e

            if proc.returncode != 0:
                logger.error('ffmpeg exited with %d: %s', proc.returncode, proc.stderr.strip())
                raise AssemblyError(
                    f'ffmpeg exited with status {proc.returncode}',
                    diagnostics=proc.stderr,
                )

            return output_path.read_bytes()
