import logging
import os
import shutil
import uuid
from pathlib import Path

from django.conf import settings

from apps.uploads.exceptions import ChunkNotFoundError, StorageError

logger = logging.getLogger(__name__)


class ChunkStore:
    """
    Local-disk storage for raw chunk bytes during the upload window.
    Not the permanent asset store: everything here is deleted once the
    session is assembled or reaped.

    Storage keys are relative to the root: "session_<id>/chunk_<n>.tmp".
    """

    def __init__(self, base_path=None):
        self.base_path = Path(base_path or settings.UPLOAD_CHUNK_ROOT)
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create base storage directory: {e}") from e

    def store(self, session_id, chunk_number, stream):
        """
        Writes the chunk bytes and returns their storage key.

        The bytes go to a unique temporary file that is then renamed over the
        final key, so a concurrent retry of the same chunk number replaces the
        previous copy whole (last write wins) and a crash never leaves a
        partially written file under the final key.
        """
        if chunk_number is None or chunk_number < 1:
            raise ValueError("Chunk number must be positive")
        if stream is None:
            raise ValueError("stream cannot be None")

        key = self.storage_key(session_id, chunk_number)
        final_path = self._path(key)
        temp_path = final_path.with_name(f".{final_path.name}.{uuid.uuid4().hex}.part")

        try:
            final_path.parent.mkdir(parents=True, exist_ok=True)
            if hasattr(stream, 'seek'):
                stream.seek(0)
            with open(temp_path, 'wb') as destination:
                shutil.copyfileobj(stream, destination)
            os.replace(temp_path, final_path)
        except PermissionError as e:
            self._remove_quietly(temp_path)
            raise StorageError(f"Permission denied: {e}") from e
        except OSError as e:
            self._remove_quietly(temp_path)
            raise StorageError(f"Failed to store chunk {chunk_number} of session {session_id}: {e}") from e

        logger.debug(f"Stored chunk {chunk_number} of session {session_id} at {key}")
        return key

    def exists(self, storage_key):
        if not storage_key:
            return False
        try:
            return self._path(storage_key).is_file()
        except StorageError:
            return False

    def size(self, storage_key):
        if not self.exists(storage_key):
            raise ChunkNotFoundError(f"Chunk not found: {storage_key}")
        try:
            return self._path(storage_key).stat().st_size
        except OSError as e:
            raise StorageError(f"Failed to stat chunk {storage_key}: {e}") from e

    def read(self, storage_key):
        """
        Opens the chunk for binary reading. The caller closes the file.
        """
        if not storage_key:
            raise ValueError("Storage key cannot be blank")
        if not self.exists(storage_key):
            raise ChunkNotFoundError(f"Chunk not found: {storage_key}")
        try:
            return open(self._path(storage_key), 'rb')
        except OSError as e:
            raise StorageError(f"Failed to read chunk {storage_key}: {e}") from e

    def delete(self, storage_key):
        """
        Deletes a chunk. Returns False if there was nothing to delete.
        """
        if not self.exists(storage_key):
            return False
        try:
            self._path(storage_key).unlink()
            return True
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete chunk {storage_key}: {e}") from e

    def delete_session(self, session_id):
        """
        Removes every stored chunk of a session along with its directory.
        Returns the number of chunk files removed.
        """
        session_dir = self.base_path / f"session_{session_id}"
        if not session_dir.is_dir():
            return 0
        removed = sum(1 for path in session_dir.iterdir() if path.is_file() and path.suffix == '.tmp')
        try:
            shutil.rmtree(session_dir)
        except OSError as e:
            raise StorageError(f"Failed to remove chunk directory of session {session_id}: {e}") from e
        logger.debug(f"Removed {removed} chunk file(s) for session {session_id}")
        return removed

    def storage_stats(self):
        stats = {
            'backend_type': 'local_filesystem',
            'base_path': str(self.base_path),
            'total_chunks': 0,
            'total_size': 0,
        }
        for path in self.base_path.glob('session_*/chunk_*.tmp'):
            if path.is_file():
                stats['total_chunks'] += 1
                stats['total_size'] += path.stat().st_size
        return stats

    @staticmethod
    def storage_key(session_id, chunk_number):
        return f"session_{session_id}/chunk_{int(chunk_number)}.tmp"

    def _path(self, storage_key):
        path = (self.base_path / storage_key).resolve()
        if not path.is_relative_to(self.base_path.resolve()):
            raise StorageError(f"Storage key escapes the chunk root: {storage_key}")
        return path

    @staticmethod
    def _remove_quietly(path):
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temporary chunk file {path}: {e}")
