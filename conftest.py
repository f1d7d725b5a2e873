"""
Shared pytest fixtures for the stemdrop project.
"""
import uuid
from unittest.mock import Mock, patch

import pytest

from apps.messaging.job_publisher import UploadJobPublisher
from apps.storage_providers.models import StorageProvider
from apps.storage_providers.providers import PLATFORM_FILESYSTEM
from apps.uploads.jobs import run_job
from apps.uploads.scanners.base import BaseScanner, ScanResult
from apps.uploads.services.chunk_store import ChunkStore
from apps.uploads.services.session_service import UploadSessionService
from apps.uploads.tests.factories import make_payload


@pytest.fixture(autouse=True)
def upload_settings(settings, tmp_path):
    """Points every storage root at tmp_path and runs jobs inline without backoff."""
    settings.UPLOAD_CHUNK_ROOT = tmp_path / 'chunks'
    settings.UPLOAD_ASSEMBLY_ROOT = tmp_path / 'assembly'
    settings.MEDIA_ROOT = tmp_path / 'media'
    settings.UPLOAD_JOBS_EAGER = True
    settings.UPLOAD_JOB_MAX_ATTEMPTS = 3
    settings.UPLOAD_JOB_BACKOFF_BASE = 0
    settings.UPLOAD_DURABLE_STORAGE_PROVIDER = 'local_default'
    return settings


@pytest.fixture(autouse=True)
def stub_scanner():
    """
    Replaces the configured scanner with a stub that reports every file clean.
    Tests change the verdict through scan.return_value / scan.side_effect.
    """
    scanner = Mock(spec=BaseScanner)
    scanner.name = 'stub'
    scanner.scan.side_effect = lambda path: ScanResult(clean=True, scanner='stub', file_size=None)
    with patch('apps.uploads.services.virus_scan_service.get_scanner', return_value=scanner):
        yield scanner


@pytest.fixture
def durable_provider(db, tmp_path):
    """Creates the filesystem StorageProvider finalized assets are attached to."""
    return StorageProvider.objects.create(
        name='local_default',
        platform=PLATFORM_FILESYSTEM,
        config={'location': str(tmp_path / 'assets')},
    )


@pytest.fixture
def chunk_store(upload_settings):
    return ChunkStore()


@pytest.fixture
def job_publisher():
    """A publisher that records jobs instead of running them."""
    return Mock(spec=UploadJobPublisher)


@pytest.fixture
def upload_service(chunk_store, job_publisher):
    return UploadSessionService(chunk_store=chunk_store, job_publisher=job_publisher)


@pytest.fixture
def workspace_id():
    return uuid.uuid4()


@pytest.fixture
def user_id():
    return uuid.uuid4()


@pytest.fixture
def uploaded_session(db, upload_service, workspace_id, user_id, django_capture_on_commit_callbacks):
    """
    Factory fixture: declares a session, uploads the given chunks and
    optionally signals completion (which leaves it in 'assembling', since
    the job publisher is a mock).

    Usage: uploaded_session(payloads={1: b'..', 2: b'..'}, chunks_count=2, complete=True)
    """
    def _make(payloads=None, chunks_count=None, filename='track.wav', total_size=None, complete=False, order=None):
        if payloads is None:
            payloads = {1: make_payload(1), 2: make_payload(2)}
        chunks_count = chunks_count or len(payloads)
        if total_size is None:
            total_size = sum(len(payload) for payload in payloads.values())

        session = upload_service.create_session(
            workspace_id=workspace_id,
            user_id=user_id,
            filename=filename,
            total_size=total_size,
            chunks_count=chunks_count,
        )
        for number in order or sorted(payloads):
            upload_service.upload_chunk(session.id, number, payloads[number])
        if complete:
            with django_capture_on_commit_callbacks(execute=True):
                upload_service.complete_upload(session.id)
        session.refresh_from_db()
        return session

    return _make


@pytest.fixture
def run_stage(django_capture_on_commit_callbacks):
    """
    Runs one pipeline job and releases whatever it dispatched on commit,
    which the test transaction would otherwise hold back.
    """
    def _run(name, session_id, **kwargs):
        with django_capture_on_commit_callbacks(execute=True):
            return run_job(name, session_id, **kwargs)

    return _run
