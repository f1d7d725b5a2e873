"""
Background stages of the upload pipeline.

Each job runs one stage for one session. Errors listed in `discard_on` are
business outcomes the stage already recorded on the session, so they are
never retried. Anything else is retried with exponential backoff, and
`on_exhausted` moves the session to the stage's failure status once the
attempts run out.
"""
import logging

from django.conf import settings
from django.db import transaction

from apps.messaging.job_publisher import upload_job_publisher
from apps.uploads.exceptions import (
    AssemblyError,
    FinalizationError,
    InvalidTransition,
    ScanFileNotFoundError,
)
from apps.uploads.models import UploadSession
from apps.uploads.repository import UploadRepositoryDjango
from apps.uploads.services.assembler import UploadAssembler
from apps.uploads.services.finalizer import Finalizer
from apps.uploads.services.virus_scan_service import VirusScanService
from apps.uploads.state_machine import Status

logger = logging.getLogger(__name__)


class UploadJob:
    name = None
    # Stage to dispatch once perform() reports that the session moved forward
    next_job = None
    discard_on = (InvalidTransition, UploadSession.DoesNotExist)

    def __init__(self, max_attempts=None):
        self.max_attempts = max_attempts or settings.UPLOAD_JOB_MAX_ATTEMPTS

    def perform(self, session_id):
        """
        Runs the stage. Returns True when the next stage should be dispatched.
        """
        raise NotImplementedError

    def on_exhausted(self, session_id, error):
        pass

    @staticmethod
    def backoff(attempt):
        return settings.UPLOAD_JOB_BACKOFF_BASE * 2 ** (attempt - 1)


class AssembleUploadJob(UploadJob):
    name = 'uploads.assemble'
    next_job = 'uploads.virus_scan'
    discard_on = UploadJob.discard_on + (AssemblyError,)

    def perform(self, session_id):
        session = UploadRepositoryDjango().get_session(session_id)
        UploadAssembler(session).assemble()
        return True

    def on_exhausted(self, session_id, error):
        repository = UploadRepositoryDjango()
        try:
            repository.transition(
                repository.get_session(session_id),
                Status.FAILED,
                from_statuses=[Status.ASSEMBLING],
                stage='assembly',
                data={'error': f"Assembly failed: {error}"},
            )
        except (InvalidTransition, UploadSession.DoesNotExist) as e:
            logger.info(f"Not failing session {session_id} after exhausted assembly: {e}")


class VirusScanJob(UploadJob):
    name = 'uploads.virus_scan'
    next_job = 'uploads.finalize'
    discard_on = UploadJob.discard_on + (ScanFileNotFoundError,)

    def perform(self, session_id):
        session = VirusScanService().scan_session(session_id)
        return session is not None and session.status == Status.FINALIZING

    def on_exhausted(self, session_id, error):
        VirusScanService().fail_session(session_id, f"Virus scan failed: {error}")


class FinalizeUploadJob(UploadJob):
    name = 'uploads.finalize'
    discard_on = UploadJob.discard_on + (FinalizationError,)

    def perform(self, session_id):
        Finalizer().finalize(session_id)
        return False

    def on_exhausted(self, session_id, error):
        Finalizer().fail_session(session_id, f"Finalization failed: {error}")


JOB_REGISTRY = {
    job_class.name: job_class
    for job_class in (AssembleUploadJob, VirusScanJob, FinalizeUploadJob)
}


def run_job(name, session_id, attempt=1, publisher=None):
    """
    Executes one attempt of a job and schedules whatever comes next: the
    following stage on success, a delayed retry on a transient failure.
    Both are dispatched once the current transaction commits.

    Returns True if this attempt succeeded.
    """
    job_class = JOB_REGISTRY.get(name)
    if not job_class:
        raise ValueError(f"Unknown upload job: {name}")
    publisher = publisher or upload_job_publisher
    job = job_class()

    logger.info(f"Running {name} for session {session_id} (attempt {attempt}/{job.max_attempts})")
    try:
        advance = job.perform(session_id)
    except job.discard_on as e:
        logger.warning(f"Discarding {name} for session {session_id}: {e}")
        return False
    except Exception as e:
        if attempt >= job.max_attempts:
            logger.error(f"{name} for session {session_id} failed after {attempt} attempts: {e}", exc_info=True)
            job.on_exhausted(session_id, e)
            return False
        delay = job.backoff(attempt)
        logger.warning(f"{name} for session {session_id} failed on attempt {attempt}: {e}. Retrying in {delay}s")
        transaction.on_commit(lambda: publisher.enqueue(name, session_id, attempt=attempt + 1, delay=delay))
        return False

    if advance and job.next_job:
        transaction.on_commit(lambda: publisher.enqueue(job.next_job, session_id))
    return True
