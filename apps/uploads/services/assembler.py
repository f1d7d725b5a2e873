import logging
import os
import shutil
import uuid
from pathlib import Path

from django.conf import settings
from django.utils import timezone

from apps.uploads.exceptions import AssemblyConflict, AssemblyError, InvalidTransition, StorageError
from apps.uploads.models import Chunk, UploadSession
from apps.uploads.repository import BaseUploadRepository, UploadRepositoryDjango
from apps.uploads.services.chunk_store import ChunkStore
from apps.uploads.state_machine import Status

logger = logging.getLogger(__name__)


class AssembledFile:
    def __init__(self, path, size):
        self.path = path
        self.size = size

    def __repr__(self):
        return f"<AssembledFile {self.path} ({self.size} bytes)>"


class UploadAssembler:
    """
    Concatenates a session's chunks, in chunk number order, into one local
    file and hands the session over to virus scanning.

    The assembling -> virus_scanning compare-and-swap decides which attempt
    wins when two run at once; chunks are only deleted after that commit.
    """

    def __init__(self, session: UploadSession, repository: BaseUploadRepository = None, chunk_store=None):
        if session is None:
            raise ValueError("session is required")
        self.session = session
        self.repository = repository or UploadRepositoryDjango()
        self.chunk_store = chunk_store or ChunkStore()
        self.assembly_root = Path(settings.UPLOAD_ASSEMBLY_ROOT)

    def can_assemble(self):
        return self.session.status == Status.ASSEMBLING and not self._completeness_problems()

    def assembly_status(self):
        chunks = list(self.repository.list_chunks(self.session))
        completed = [chunk for chunk in chunks if chunk.status == Chunk.Status.COMPLETED]
        return {
            'ready': self.can_assemble(),
            'status': self.session.status,
            'total_chunks': self.session.chunks_count,
            'completed_chunks': len(completed),
            'missing_chunks': self.session.missing_chunks,
            'problems': self._completeness_problems(),
        }

    def assemble(self):
        """
        Builds the assembled file and moves the session to virus_scanning.

        Returns:
            AssembledFile with the path and byte size of the result.
        Raises:
            AssemblyError: the chunks cannot produce the declared file; the session is now 'failed'.
            AssemblyConflict: a concurrent attempt already assembled (or the session moved on).
        """
        session = self.session
        session.refresh_from_db()
        if session.status != Status.ASSEMBLING:
            raise AssemblyConflict(f"Upload session {session.id} is {session.status}, not assembling")

        problems = self._completeness_problems()
        if problems:
            self._fail(f"Upload incomplete: {'; '.join(problems)}")

        chunks = list(self.repository.list_chunks(session))
        for chunk in chunks:
            if not self.chunk_store.exists(chunk.storage_key):
                self._fail(f"Chunk file missing for chunk {chunk.chunk_number}")

        path = self._assembly_path()
        logger.info(f"Assembling {len(chunks)} chunks of session {session.id} into {path}")

        try:
            size = self._concatenate(chunks, path)
        except (StorageError, OSError) as e:
            self._remove_file(path)
            self._fail(f"Chunk read failed: {e}")

        if size != session.total_size:
            self._remove_file(path)
            self._fail(f"Assembled size {size} does not match declared size {session.total_size}")

        now = timezone.now()
        try:
            self.session = self.repository.transition(
                session,
                Status.VIRUS_SCANNING,
                from_statuses=[Status.ASSEMBLING],
                stage='assembly',
                data={'assembled_size': size, 'chunks_count': len(chunks), 'assembled_at': now.isoformat()},
                assembled_file_path=str(path),
                virus_scan_queued_at=now,
            )
        except (InvalidTransition, UploadSession.DoesNotExist) as e:
            # Lost to a concurrent attempt or a cancellation; the winner's file stays
            self._remove_file(path)
            raise AssemblyConflict(f"Upload session {session.id} was not assembling anymore: {e}") from e
        self.repository.record_event(self.session, 'virus_scan', {'status': 'scanning', 'queued_at': now.isoformat()})

        self._discard_chunks(chunks)
        logger.info(f"Assembled session {session.id}: {size} bytes at {path}")
        return AssembledFile(str(path), size)

    def _completeness_problems(self):
        """
        Lists why the chunk set does not cover exactly 1..chunks_count, all completed.
        Empty when assembly may proceed.
        """
        chunks = list(self.repository.list_chunks(self.session))
        numbers = [chunk.chunk_number for chunk in chunks]
        expected = set(range(1, self.session.chunks_count + 1))
        problems = []

        missing = sorted(expected - set(numbers))
        if missing:
            problems.append(f"missing chunks {', '.join(map(str, missing))}")
        extra = sorted(set(numbers) - expected)
        if extra:
            problems.append(f"unexpected chunks {', '.join(map(str, extra))}")
        if len(numbers) != len(set(numbers)):
            problems.append("duplicate chunk numbers")
        not_completed = [chunk.chunk_number for chunk in chunks if chunk.status != Chunk.Status.COMPLETED]
        if not_completed:
            problems.append(f"chunks not completed: {', '.join(map(str, not_completed))}")
        return problems

    def _assembly_path(self):
        extension = os.path.splitext(self.session.filename)[1]
        self.assembly_root.mkdir(parents=True, exist_ok=True)
        return self.assembly_root / f"assembled_{self.session.id}_{uuid.uuid4().hex[:16]}{extension}"

    def _concatenate(self, chunks, path):
        size = 0
        with open(path, 'wb') as destination:
            for chunk in sorted(chunks, key=lambda c: c.chunk_number):
                with self.chunk_store.read(chunk.storage_key) as source:
                    shutil.copyfileobj(source, destination)
                size = destination.tell()
                logger.debug(f"Appended chunk {chunk.chunk_number} of session {self.session.id} ({size} bytes so far)")
        return os.path.getsize(path)

    def _discard_chunks(self, chunks):
        for chunk in chunks:
            try:
                self.chunk_store.delete(chunk.storage_key)
            except StorageError as e:
                logger.warning(f"Could not delete chunk file {chunk.storage_key}: {e}")
        deleted = self.repository.delete_chunks(self.session)
        logger.debug(f"Removed {deleted} chunk record(s) of session {self.session.id}")

    def _fail(self, message):
        logger.error(f"Assembly of session {self.session.id} failed: {message}")
        try:
            self.session = self.repository.transition(
                self.session,
                Status.FAILED,
                from_statuses=[Status.ASSEMBLING],
                stage='assembly',
                data={'error': message},
            )
        except (InvalidTransition, UploadSession.DoesNotExist) as e:
            raise AssemblyConflict(f"Upload session {self.session.id} was not assembling anymore: {e}") from e
        raise AssemblyError(message)

    @staticmethod
    def _remove_file(path):
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove assembled file {path}: {e}")
