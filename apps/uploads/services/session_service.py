import hashlib
import io
import logging
import re

from django.conf import settings
from django.db import IntegrityError, transaction

from apps.messaging.job_publisher import upload_job_publisher
from apps.uploads.exceptions import BlockedFileError, DuplicateUploadError, InvalidTransition, UploadValidationError
from apps.uploads.file_security import FileSecurityInspector
from apps.uploads.models import Chunk, UploadSession
from apps.uploads.repository import BaseUploadRepository, UploadRepositoryDjango
from apps.uploads.services.chunk_store import ChunkStore
from apps.uploads.state_machine import ACCEPTING_CHUNKS_STATUSES, CANCELLABLE_STATUSES, FAILURE_STATUSES, Status

logger = logging.getLogger(__name__)

MD5_PATTERN = re.compile(r'^[a-f0-9]{32}$', re.IGNORECASE)

# Enough of the first chunk to recognise executable headers
SECURITY_HEAD_BYTES = 64

UNSAFE_FILENAME_PATTERNS = [
    re.compile(r'^\s*$'),  # Only whitespace
    re.compile(r'^\.+$'),  # Only dots
    re.compile(r'\.\.'),  # Parent directory traversal
    re.compile(r'[/\\]'),  # Path separators
    re.compile(r'[<>:"|*?\x00]'),  # Windows forbidden chars
    re.compile(r'^(CON|PRN|AUX|NUL|COM[1-9]|LPT[1-9])(\.|$)', re.IGNORECASE),  # Windows reserved names
]


class ChunkReceipt:
    """
    What the client gets back after a chunk upload.
    """

    def __init__(self, chunk, session, ready_for_assembly):
        self.chunk = chunk
        self.session = session
        self.ready_for_assembly = ready_for_assembly

    def to_dict(self):
        return {
            'chunk': {
                'chunk_number': self.chunk.chunk_number,
                'size': self.chunk.size,
                'checksum': self.chunk.checksum,
                'status': self.chunk.status,
            },
            'upload_session': {
                'id': str(self.session.id),
                'status': self.session.status,
                'progress_percentage': self.session.progress_percentage,
            },
            'ready_for_assembly': self.ready_for_assembly,
        }


class UploadSessionService:
    """
    Entry point for clients of the upload pipeline: declare an upload, send
    its chunks, signal completion, cancel, and poll status.
    Background stages (assembly, scanning, finalization) are dispatched
    through the job publisher.
    """

    def __init__(self, repository: BaseUploadRepository = None, chunk_store=None, job_publisher=None):
        if repository is None:
            repository = UploadRepositoryDjango()
        if not isinstance(repository, BaseUploadRepository):
            raise TypeError("repository must be an instance of BaseUploadRepository")
        self.repository = repository
        self.chunk_store = chunk_store or ChunkStore()
        self.job_publisher = job_publisher or upload_job_publisher

    def create_session(self, workspace_id, user_id, filename, total_size, chunks_count, container_id=None, metadata=None):
        """
        Declares a new upload. Rejects the request if another active session
        already targets the same filename in the same location; the database
        constraint is what decides when two requests race.
        """
        filename = (filename or '').strip()
        self._validate_filename(filename)
        self._validate_sizes(total_size, chunks_count)
        if metadata is not None and not isinstance(metadata, dict):
            raise UploadValidationError("metadata must be a dictionary")

        security = FileSecurityInspector(filename, (metadata or {}).get('content_type')).inspect()
        if security.blocked:
            logger.warning(f"Rejected blocked file type {filename} for workspace {workspace_id}")
            raise BlockedFileError(f"File type is not allowed for security reasons. {security.threats[-1]}")

        try:
            session = self.repository.create_session(
                workspace_id=workspace_id,
                user_id=user_id,
                filename=filename,
                total_size=total_size,
                chunks_count=chunks_count,
                container_id=container_id,
                metadata=metadata,
            )
        except IntegrityError as e:
            logger.warning(f"Rejected duplicate upload of {filename} to workspace {workspace_id} / container {container_id}")
            raise DuplicateUploadError(f"'{filename}' is already being uploaded to this location") from e

        if security.has_findings:
            self.repository.record_event(session, 'security', security.to_dict())

        logger.info(f"Created upload session {session.id} for {filename} ({total_size} bytes in {chunks_count} chunks)")
        return session

    def upload_chunk(self, session_id, chunk_number, payload, checksum=None):
        """
        Stores one chunk and marks it completed.

        Args:
            session_id: The upload session the chunk belongs to.
            chunk_number: 1-based sequence number.
            payload: bytes or a binary file object.
            checksum: Optional MD5 hex digest of the payload; verified when it looks like one.
        Returns:
            ChunkReceipt, whose ready_for_assembly tells the client it can call complete_upload().
        """
        session = self.repository.get_session(session_id)
        stream = io.BytesIO(payload) if isinstance(payload, (bytes, bytearray)) else payload

        if not isinstance(chunk_number, int) or chunk_number < 1 or chunk_number > session.chunks_count:
            raise UploadValidationError(
                f"Invalid chunk number. Expected 1-{session.chunks_count}, got {chunk_number}"
            )
        if session.status not in ACCEPTING_CHUNKS_STATUSES:
            raise UploadValidationError(f"Upload session is not accepting chunks. Status: {session.status}")

        digest, size = self._md5(stream)
        if size == 0:
            raise UploadValidationError("Chunk cannot be empty")
        if checksum and MD5_PATTERN.match(checksum) and checksum.lower() != digest:
            raise UploadValidationError(f"Checksum mismatch. Expected: {digest}, Got: {checksum}")

        if chunk_number == 1:
            self._inspect_content(session, stream)

        storage_key = self.chunk_store.store(session.id, chunk_number, stream)

        # A torn or raced write must not be trusted as complete
        stored_size = self.chunk_store.size(storage_key)
        if stored_size != size:
            self.repository.upsert_chunk(session, chunk_number, size, digest, storage_key, Chunk.Status.FAILED)
            raise UploadValidationError(
                f"Chunk {chunk_number} was not stored intact ({stored_size} of {size} bytes)"
            )

        chunk = self.repository.upsert_chunk(session, chunk_number, size, digest, storage_key, Chunk.Status.COMPLETED)
        logger.debug(f"Chunk {chunk_number}/{session.chunks_count} of session {session.id} completed ({size} bytes)")

        if session.status == Status.PENDING:
            try:
                session = self.repository.transition(
                    session, Status.UPLOADING, from_statuses=[Status.PENDING], stage='chunk',
                    data={'first_chunk': chunk_number},
                )
            except InvalidTransition:
                # Another chunk of the same session got there first
                session.refresh_from_db()
        else:
            self.repository.touch_session(session)

        ready = self.is_complete(session)
        if ready:
            logger.info(f"All {session.chunks_count} chunks of session {session.id} received, ready for assembly")
        return ChunkReceipt(chunk, session, ready)

    def complete_upload(self, session_id):
        """
        The client's "all chunks sent" signal. Moves the session to
        'assembling' and dispatches the assembly job, but only if every chunk
        is present.
        """
        session = self.repository.get_session(session_id)
        if session.status not in ACCEPTING_CHUNKS_STATUSES:
            raise InvalidTransition(
                f"Upload session {session.id} cannot be completed from {session.status}",
                current_status=session.status,
                target_status=Status.ASSEMBLING,
            )

        missing = session.missing_chunks
        if not self.is_complete(session):
            raise UploadValidationError(
                f"Upload session not ready for assembly. Missing chunks: {', '.join(map(str, missing))}"
            )

        session = self.repository.transition(
            session,
            Status.ASSEMBLING,
            from_statuses=ACCEPTING_CHUNKS_STATUSES,
            stage='session',
            data={'completed_chunks': session.chunks_count},
        )
        transaction.on_commit(lambda: self.job_publisher.enqueue('uploads.assemble', session.id))
        return session

    def cancel_session(self, session_id, reason=None):
        session = self.repository.get_session(session_id)
        if session.status not in CANCELLABLE_STATUSES:
            raise InvalidTransition(
                f"Cannot cancel upload session {session.id} from {session.status}",
                current_status=session.status,
                target_status=Status.CANCELLED,
            )
        session = self.repository.transition(
            session,
            Status.CANCELLED,
            from_statuses=CANCELLABLE_STATUSES,
            data={'reason': reason} if reason else None,
        )
        logger.info(f"Cancelled upload session {session.id}")
        return session

    def get_status(self, session_id):
        session = self.repository.get_session(session_id)
        status = {
            'id': str(session.id),
            'filename': session.filename,
            'status': session.status,
            'total_size': session.total_size,
            'chunks_count': session.chunks_count,
            'completed_chunks': session.completed_chunks_count,
            'progress_percentage': session.progress_percentage,
            'missing_chunks': session.missing_chunks,
            'uploaded_size': session.uploaded_size,
            'recommended_chunk_size': session.recommended_chunk_size,
            'metadata': session.pipeline_metadata(),
            'error': None,
        }
        if session.status in FAILURE_STATUSES:
            status['error'] = session.last_error() or f"Upload {session.status.replace('_', ' ')}"
        return status

    def is_complete(self, session: UploadSession):
        """
        True iff exactly chunk numbers 1..chunks_count exist, all completed.
        """
        numbers = list(session.chunks.values_list('chunk_number', 'status'))
        if len(numbers) != session.chunks_count:
            return False
        if any(status != Chunk.Status.COMPLETED for _, status in numbers):
            return False
        return sorted(number for number, _ in numbers) == list(range(1, session.chunks_count + 1))

    def _inspect_content(self, session, stream):
        """
        Looks at the start of the file for content that contradicts its name.
        Only findings the filename alone did not already explain are recorded.
        """
        head = stream.read(SECURITY_HEAD_BYTES)
        stream.seek(0)
        content_type = (session.metadata or {}).get('content_type')
        by_name = FileSecurityInspector(session.filename, content_type).inspect()
        with_content = FileSecurityInspector(session.filename, content_type).inspect(head=head)
        if len(with_content.threats) > len(by_name.threats):
            self.repository.record_event(session, 'security', {**with_content.to_dict(), 'chunk_number': 1})

    @staticmethod
    def _md5(stream):
        if hasattr(stream, 'seek'):
            stream.seek(0)
        digest = hashlib.md5()
        size = 0
        for block in iter(lambda: stream.read(64 * 1024), b''):
            digest.update(block)
            size += len(block)
        if hasattr(stream, 'seek'):
            stream.seek(0)
        return digest.hexdigest(), size

    @staticmethod
    def _validate_filename(filename):
        if not filename:
            raise UploadValidationError("filename is required")
        if len(filename) > 255:
            raise UploadValidationError("filename is too long (maximum 255 characters)")
        for pattern in UNSAFE_FILENAME_PATTERNS:
            if pattern.search(filename):
                raise UploadValidationError("filename contains unsafe characters or patterns")

    @staticmethod
    def _validate_sizes(total_size, chunks_count):
        if not isinstance(total_size, int) or total_size <= 0:
            raise UploadValidationError("total_size must be a positive integer")
        if total_size > settings.UPLOAD_MAX_FILE_SIZE:
            raise UploadValidationError(
                f"total_size cannot exceed {settings.UPLOAD_MAX_FILE_SIZE} bytes"
            )
        if not isinstance(chunks_count, int) or chunks_count <= 0:
            raise UploadValidationError("chunks_count must be a positive integer")
        if chunks_count > total_size:
            raise UploadValidationError("chunks_count cannot exceed total_size")
