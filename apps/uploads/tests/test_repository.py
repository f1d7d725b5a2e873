"""
Tests for UploadRepositoryDjango, in particular the compare-and-swap
status transition.
"""
import uuid
from datetime import timedelta

import pytest
from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.uploads.exceptions import InvalidTransition
from apps.uploads.models import Chunk, UploadEvent, UploadSession
from apps.uploads.repository import UploadRepositoryDjango
from apps.uploads.state_machine import Status
from apps.uploads.tests.factories import ChunkFactory, UploadSessionFactory


def age(session, **delta):
    UploadSession.objects.filter(pk=session.pk).update(updated_at=timezone.now() - timedelta(**delta))


@pytest.mark.django_db
class TestCreateSession:

    def test_create_session_records_event(self):
        repo = UploadRepositoryDjango()
        session = repo.create_session(uuid.uuid4(), uuid.uuid4(), 'track.wav', 2044, 2, metadata={'file_type': 'audio'})

        assert session.status == Status.PENDING
        assert session.metadata == {'file_type': 'audio'}
        event = session.events.get()
        assert event.to_status == Status.PENDING
        assert event.data == {'total_size': 2044, 'chunks_count': 2}

    def test_duplicate_active_session_raises_integrity_error(self):
        repo = UploadRepositoryDjango()
        workspace_id = uuid.uuid4()
        repo.create_session(workspace_id, uuid.uuid4(), 'track.wav', 2044, 2)

        with pytest.raises(IntegrityError), transaction.atomic():
            repo.create_session(workspace_id, uuid.uuid4(), 'track.wav', 100, 1)

        assert UploadEvent.objects.count() == 1


@pytest.mark.django_db
class TestTransition:

    def test_transition_updates_status_fields_and_appends_event(self):
        repo = UploadRepositoryDjango()
        session = UploadSessionFactory(status=Status.ASSEMBLING)
        queued_at = timezone.now()

        session = repo.transition(
            session,
            Status.VIRUS_SCANNING,
            stage='assembly',
            data={'assembled_size': 2044},
            assembled_file_path='/tmp/assembled.wav',
            virus_scan_queued_at=queued_at,
        )

        assert session.status == Status.VIRUS_SCANNING
        assert session.assembled_file_path == '/tmp/assembled.wav'
        assert session.virus_scan_queued_at == queued_at
        event = session.events.get()
        assert (event.stage, event.from_status, event.to_status) == ('assembly', 'assembling', 'virus_scanning')
        assert event.data == {'assembled_size': 2044}

    def test_illegal_transition_raises_and_changes_nothing(self):
        repo = UploadRepositoryDjango()
        session = UploadSessionFactory(status=Status.COMPLETED)

        with pytest.raises(InvalidTransition):
            repo.transition(session, Status.UPLOADING)

        session.refresh_from_db()
        assert session.status == Status.COMPLETED
        assert not session.events.exists()

    def test_compare_and_swap_rejects_stale_source(self):
        repo = UploadRepositoryDjango()
        session = UploadSessionFactory(status=Status.ASSEMBLING)
        stale = UploadSession.objects.get(pk=session.pk)

        repo.transition(session, Status.VIRUS_SCANNING, from_statuses=[Status.ASSEMBLING])

        with pytest.raises(InvalidTransition) as exc_info:
            repo.transition(stale, Status.FAILED, from_statuses=[Status.ASSEMBLING])

        assert exc_info.value.current_status == Status.VIRUS_SCANNING
        session.refresh_from_db()
        assert session.status == Status.VIRUS_SCANNING
        assert session.events.count() == 1

    def test_from_statuses_are_validated_against_the_table(self):
        repo = UploadRepositoryDjango()
        session = UploadSessionFactory(status=Status.FINALIZING)

        with pytest.raises(InvalidTransition):
            repo.transition(session, Status.CANCELLED, from_statuses=[Status.FINALIZING])

    def test_transition_of_deleted_session(self):
        repo = UploadRepositoryDjango()
        session = UploadSessionFactory(status=Status.PENDING)
        UploadSession.objects.filter(pk=session.pk).delete()

        with pytest.raises(UploadSession.DoesNotExist):
            repo.transition(session, Status.UPLOADING)


@pytest.mark.django_db
class TestChunks:

    def test_upsert_chunk_creates_then_replaces(self):
        repo = UploadRepositoryDjango()
        session = UploadSessionFactory()

        repo.upsert_chunk(session, 1, 10, 'a' * 32, 'key', Chunk.Status.FAILED)
        chunk = repo.upsert_chunk(session, 1, 12, 'b' * 32, 'key', Chunk.Status.COMPLETED)

        assert session.chunks.count() == 1
        assert chunk.size == 12
        assert chunk.status == Chunk.Status.COMPLETED

    def test_list_and_delete_chunks(self):
        repo = UploadRepositoryDjango()
        session = UploadSessionFactory(chunks_count=3)
        for number in (3, 1, 2):
            ChunkFactory(upload_session=session, chunk_number=number)

        assert [chunk.chunk_number for chunk in repo.list_chunks(session)] == [1, 2, 3]
        assert repo.delete_chunks(session) == 3
        assert not session.chunks.exists()


@pytest.mark.django_db
class TestFinders:

    def test_find_expired_sessions(self):
        repo = UploadRepositoryDjango()
        now = timezone.now()

        abandoned = UploadSessionFactory(status=Status.UPLOADING)
        age(abandoned, hours=2)
        fresh = UploadSessionFactory(status=Status.PENDING)
        old_failure = UploadSessionFactory(status=Status.VIRUS_SCAN_FAILED)
        age(old_failure, hours=25)
        recent_failure = UploadSessionFactory(status=Status.CANCELLED)
        age(recent_failure, hours=2)
        old_completed = UploadSessionFactory(status=Status.COMPLETED)
        age(old_completed, days=3)

        expired = repo.find_expired_sessions(now - timedelta(hours=1), now - timedelta(hours=24))

        assert {s.pk for s in expired} == {abandoned.pk, old_failure.pk}
        assert fresh.pk not in {s.pk for s in expired}

    def test_batches_follow_primary_key_order(self):
        repo = UploadRepositoryDjango()
        sessions = UploadSessionFactory.create_batch(5, status=Status.PENDING)
        for session in sessions:
            age(session, hours=2)
        stale_before = timezone.now() - timedelta(hours=1)

        first = repo.find_expired_sessions(stale_before, stale_before, limit=3)
        second = repo.find_expired_sessions(stale_before, stale_before, after_pk=first[-1].pk, limit=3)

        assert len(first) == 3
        assert len(second) == 2
        assert [s.pk for s in first + second] == sorted(s.pk for s in sessions)

    def test_find_stuck_sessions(self):
        repo = UploadRepositoryDjango()
        stuck = UploadSessionFactory(status=Status.ASSEMBLING)
        age(stuck, hours=2)
        UploadSessionFactory(status=Status.ASSEMBLING)
        age(UploadSessionFactory(status=Status.VIRUS_SCANNING), hours=2)

        found = repo.find_stuck_sessions(Status.ASSEMBLING, timezone.now() - timedelta(hours=1))

        assert [s.pk for s in found] == [stuck.pk]
