"""
Tests for the upload models: constraints, derived properties and the
folded pipeline metadata.
"""
import uuid

import pytest
from django.db import IntegrityError, transaction

from apps.uploads.models import GB, MB, Chunk, UploadSession
from apps.uploads.state_machine import Status
from apps.uploads.tests.factories import ChunkFactory, UploadEventFactory, UploadSessionFactory


@pytest.mark.django_db
class TestActiveFilenameConstraint:

    def test_two_active_sessions_at_root_collide(self):
        first = UploadSessionFactory(filename='track.wav', status=Status.UPLOADING)

        with pytest.raises(IntegrityError), transaction.atomic():
            UploadSessionFactory(workspace_id=first.workspace_id, filename='track.wav')

    def test_two_active_sessions_in_container_collide(self):
        container_id = uuid.uuid4()
        first = UploadSessionFactory(filename='track.wav', container_id=container_id)

        with pytest.raises(IntegrityError), transaction.atomic():
            UploadSessionFactory(workspace_id=first.workspace_id, container_id=container_id, filename='track.wav')

    def test_same_filename_in_other_container_is_allowed(self):
        first = UploadSessionFactory(filename='track.wav', container_id=uuid.uuid4())
        UploadSessionFactory(workspace_id=first.workspace_id, container_id=uuid.uuid4(), filename='track.wav')
        UploadSessionFactory(workspace_id=first.workspace_id, container_id=None, filename='track.wav')

        assert UploadSession.objects.filter(filename='track.wav').count() == 3

    def test_same_filename_in_other_workspace_is_allowed(self):
        UploadSessionFactory(filename='track.wav')
        UploadSessionFactory(filename='track.wav')

        assert UploadSession.objects.filter(filename='track.wav').count() == 2

    @pytest.mark.parametrize('status', [
        Status.VIRUS_SCANNING,
        Status.FINALIZING,
        Status.COMPLETED,
        Status.FAILED,
        Status.CANCELLED,
    ])
    def test_inactive_session_releases_the_slot(self, status):
        first = UploadSessionFactory(filename='track.wav', status=status)
        UploadSessionFactory(workspace_id=first.workspace_id, filename='track.wav')

        assert UploadSession.objects.filter(workspace_id=first.workspace_id).count() == 2


@pytest.mark.django_db
class TestSessionCheckConstraints:

    def test_total_size_must_be_positive(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            UploadSessionFactory(total_size=0)

    def test_chunks_count_must_be_positive(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            UploadSessionFactory(chunks_count=0)

    def test_chunk_numbers_are_unique_per_session(self):
        session = UploadSessionFactory()
        ChunkFactory(upload_session=session, chunk_number=1)

        with pytest.raises(IntegrityError), transaction.atomic():
            ChunkFactory(upload_session=session, chunk_number=1)


@pytest.mark.django_db
class TestUploadSessionProperties:

    def test_progress_and_missing_chunks(self):
        session = UploadSessionFactory(chunks_count=4, total_size=4000)
        ChunkFactory(upload_session=session, chunk_number=1, size=1000)
        ChunkFactory(upload_session=session, chunk_number=3, size=1000)
        ChunkFactory(upload_session=session, chunk_number=4, size=1000, status=Chunk.Status.FAILED)

        assert session.completed_chunk_numbers() == [1, 3]
        assert session.completed_chunks_count == 2
        assert session.missing_chunks == [2, 4]
        assert session.progress_percentage == 50.0
        assert session.uploaded_size == 2000
        assert session.remaining_size == 2000

    def test_progress_of_empty_session(self):
        session = UploadSessionFactory()

        assert session.progress_percentage == 0.0
        assert session.missing_chunks == [1, 2]
        assert session.uploaded_size == 0

    @pytest.mark.parametrize('total_size, expected', [
        (5 * MB, 1 * MB),
        (10 * MB, 1 * MB),
        (500 * MB, 5 * MB),
        (2 * GB, 10 * MB),
        (6 * GB, 25 * MB),
    ])
    def test_recommended_chunk_size(self, total_size, expected):
        session = UploadSession(total_size=total_size, chunks_count=1)

        assert session.recommended_chunk_size == expected

    def test_target_path(self):
        container_id = uuid.uuid4()

        assert UploadSession(filename='a.wav').target_path == '/a.wav'
        assert UploadSession(filename='a.wav', container_id=container_id).target_path == f'/{container_id}/a.wav'

    def test_status_helpers(self):
        assert UploadSession(status=Status.ASSEMBLING).is_active
        assert not UploadSession(status=Status.VIRUS_SCANNING).is_active
        assert UploadSession(status=Status.CANCELLED).is_terminal
        assert not UploadSession(status=Status.FINALIZING).is_terminal

    def test_file_type_comes_from_client_metadata(self):
        assert UploadSession(metadata={'file_type': 'audio'}).file_type == 'audio'
        assert UploadSession(metadata={}).file_type is None


@pytest.mark.django_db
class TestPipelineMetadata:

    def test_events_are_folded_per_stage(self):
        session = UploadSessionFactory()
        UploadEventFactory(upload_session=session, stage='virus_scan', data={'status': 'queued', 'scanner': 'clamav'})
        UploadEventFactory(upload_session=session, stage='virus_scan', data={'status': 'clean'})
        UploadEventFactory(upload_session=session, stage='finalization', data={'asset_id': 'abc'})
        UploadEventFactory(upload_session=session, stage='session', data={'ignored': True})

        assert session.pipeline_metadata() == {
            'virus_scan': {'status': 'clean', 'scanner': 'clamav'},
            'finalization': {'asset_id': 'abc'},
        }

    def test_last_error_is_the_most_recent_one(self):
        session = UploadSessionFactory()
        UploadEventFactory(upload_session=session, stage='virus_scan', data={'error': 'first'})
        UploadEventFactory(upload_session=session, stage='assembly', data={'error': 'second'})
        UploadEventFactory(upload_session=session, stage='assembly', data={'ok': True})

        assert session.last_error() == 'second'

    def test_last_error_without_errors(self):
        assert UploadSessionFactory().last_error() is None
