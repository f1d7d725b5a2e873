import logging
from abc import ABC, abstractmethod

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from .exceptions import InvalidTransition
from .models import Chunk, UploadEvent, UploadSession
from .state_machine import Status, sources_for, validate_transition

logger = logging.getLogger(__name__)


class BaseUploadRepository(ABC):
    """
    Abstract base class for upload repository implementations.
    Defines the contract for managing UploadSession, Chunk and UploadEvent objects.
    """

    @abstractmethod
    def create_session(self, workspace_id, user_id, filename, total_size, chunks_count, container_id=None, metadata=None):
        """
        Creates and returns a new UploadSession in 'pending' status.
        Raises IntegrityError if an active session already claims the filename.
        """
        pass

    @abstractmethod
    def get_session(self, session_id):
        """
        Retrieves an UploadSession by its ID.
        """
        pass

    @abstractmethod
    def transition(self, session, to_status, from_statuses=None, stage='session', data=None, **fields):
        """
        Moves a session to `to_status` if it is currently in one of
        `from_statuses` (default: every legal source), persisting `fields`
        and appending one event, atomically. Raises InvalidTransition otherwise.
        """
        pass

    @abstractmethod
    def record_event(self, session, stage, data=None):
        """
        Appends an event that does not change the session status.
        """
        pass

    @abstractmethod
    def touch_session(self, session):
        """
        Marks the session as recently active.
        """
        pass

    @abstractmethod
    def upsert_chunk(self, session, chunk_number, size, checksum, storage_key, status):
        """
        Creates or replaces the Chunk record for (session, chunk_number).
        """
        pass

    @abstractmethod
    def list_chunks(self, session):
        """
        Returns the session's chunks ordered by chunk number.
        """
        pass

    @abstractmethod
    def delete_chunks(self, session):
        """
        Deletes all Chunk records of a session. Returns the number deleted.
        """
        pass

    @abstractmethod
    def delete_session(self, session):
        pass

    @abstractmethod
    def find_expired_sessions(self, stale_before, retention_before, after_pk=None, limit=50):
        """
        Returns up to `limit` sessions, ordered by primary key, that are
        abandoned (pending/uploading and idle since `stale_before`) or
        failed/cancelled and untouched since `retention_before`.
        """
        pass

    @abstractmethod
    def find_stuck_sessions(self, status, stale_before, after_pk=None, limit=50):
        """
        Returns up to `limit` sessions, ordered by primary key, sitting in
        `status` without an update since `stale_before`.
        """
        pass


class UploadRepositoryDjango(BaseUploadRepository):
    """
    Django ORM implementation of the BaseUploadRepository.
    Encapsulates all database interactions related to upload sessions and their chunks.
    """

    def create_session(self, workspace_id, user_id, filename, total_size, chunks_count, container_id=None, metadata=None):
        with transaction.atomic():
            session = UploadSession.objects.create(
                workspace_id=workspace_id,
                container_id=container_id,
                user_id=user_id,
                filename=filename,
                total_size=total_size,
                chunks_count=chunks_count,
                metadata=metadata or {},
                status=Status.PENDING,
            )
            UploadEvent.objects.create(
                upload_session=session,
                stage='session',
                to_status=Status.PENDING,
                data={'total_size': total_size, 'chunks_count': chunks_count},
            )
        return session

    def get_session(self, session_id):
        return UploadSession.objects.get(pk=session_id)

    def transition(self, session, to_status, from_statuses=None, stage='session', data=None, **fields):
        to_status = Status(to_status)
        if from_statuses is None:
            sources = sources_for(to_status)
        else:
            sources = [Status(status) for status in from_statuses]
            for source in sources:
                validate_transition(source, to_status)

        with transaction.atomic():
            current = (
                UploadSession.objects.select_for_update()
                .filter(pk=session.pk)
                .values_list('status', flat=True)
                .first()
            )
            if current is None:
                raise UploadSession.DoesNotExist(f"Upload session {session.pk} no longer exists")
            if current not in sources:
                raise InvalidTransition(
                    f"Cannot transition upload session {session.pk} from {current} to {to_status}",
                    current_status=current,
                    target_status=to_status,
                )

            # The status filter makes this a compare-and-swap even without row locks
            updated = UploadSession.objects.filter(pk=session.pk, status=current).update(
                status=to_status,
                updated_at=timezone.now(),
                **fields,
            )
            if not updated:
                raise InvalidTransition(
                    f"Upload session {session.pk} changed status concurrently",
                    current_status=current,
                    target_status=to_status,
                )

            UploadEvent.objects.create(
                upload_session_id=session.pk,
                stage=stage,
                from_status=current,
                to_status=to_status,
                data=data or {},
            )

        logger.info(f"Upload session {session.pk}: {current} -> {to_status} ({stage})")
        session.refresh_from_db()
        return session

    def record_event(self, session, stage, data=None):
        return UploadEvent.objects.create(
            upload_session_id=session.pk,
            stage=stage,
            data=data or {},
        )

    def touch_session(self, session):
        UploadSession.objects.filter(pk=session.pk).update(updated_at=timezone.now())

    def upsert_chunk(self, session, chunk_number, size, checksum, storage_key, status):
        values = {
            'size': size,
            'checksum': checksum or '',
            'storage_key': storage_key,
            'status': status,
        }
        try:
            with transaction.atomic():
                chunk, _ = Chunk.objects.update_or_create(
                    upload_session=session,
                    chunk_number=chunk_number,
                    defaults=values,
                )
        except IntegrityError:
            # A concurrent retry of the same chunk number created the row first
            logger.debug(f"Chunk {chunk_number} of session {session.pk} created concurrently, updating instead")
            Chunk.objects.filter(upload_session=session, chunk_number=chunk_number).update(
                updated_at=timezone.now(), **values
            )
            chunk = Chunk.objects.get(upload_session=session, chunk_number=chunk_number)
        return chunk

    def list_chunks(self, session):
        return session.chunks.order_by('chunk_number')

    def delete_chunks(self, session):
        deleted, _ = Chunk.objects.filter(upload_session=session).delete()
        return deleted

    def delete_session(self, session):
        UploadSession.objects.filter(pk=session.pk).delete()

    def find_expired_sessions(self, stale_before, retention_before, after_pk=None, limit=50):
        queryset = UploadSession.objects.filter(
            Q(status__in=(Status.PENDING, Status.UPLOADING), updated_at__lt=stale_before)
            | Q(
                status__in=(Status.FAILED, Status.FINALIZATION_FAILED, Status.VIRUS_SCAN_FAILED, Status.CANCELLED),
                updated_at__lt=retention_before,
            )
        )
        return self._batch(queryset, after_pk, limit)

    def find_stuck_sessions(self, status, stale_before, after_pk=None, limit=50):
        queryset = UploadSession.objects.filter(status=status, updated_at__lt=stale_before)
        return self._batch(queryset, after_pk, limit)

    def _batch(self, queryset, after_pk, limit):
        if after_pk is not None:
            queryset = queryset.filter(pk__gt=after_pk)
        return list(queryset.order_by('pk')[:limit])
