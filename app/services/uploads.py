"""
Storage for uploaded documents and voice notes awaiting a worker.
"""
import logging
import re
import uuid
from pathlib import Path
from typing import Optional

from app.config import UPLOADS_DIR
from app.services.errors import UploadNotFoundError

logger = logging.getLogger(__name__)

_FILE_ID = re.compile(r'^[0-9a-f]{32}$')


class FileStore:
    def __init__(self, root: Optional[Path] = None):
        self.root = root or UPLOADS_DIR

    def _path(self, file_id: str) -> Path:
        if not _FILE_ID.match(file_id):
            raise UploadNotFoundError(f'Invalid file id: {file_id!r}')
        return self.root / file_id

    def save(self, data: bytes) -> str:
        """Persist ``data`` and return its opaque file id."""
        self.root.mkdir(parents=True, exist_ok=True)
        file_id = uuid.uuid4().hex
        self._path(file_id).write_bytes(data)
        return file_id

    def read(self, file_id: str) -> bytes:
        path = self._path(file_id)
        if not path.exists():
            raise UploadNotFoundError(f'Upload {file_id} not found')
        return path.read_bytes()

    def discard(self, file_id: str):
        try:
            self._path(file_id).unlink(missing_ok=True)
        except UploadNotFoundError:
            pass
        except OSError as e:
            logger.warning('Could not remove upload %s: %s', file_id, e)
