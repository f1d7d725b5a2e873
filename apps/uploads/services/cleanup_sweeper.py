import logging
import os
from datetime import timedelta

from django.conf import settings
from django.utils import timezone

from apps.uploads.exceptions import InvalidTransition
from apps.uploads.repository import BaseUploadRepository, UploadRepositoryDjango
from apps.uploads.services.chunk_store import ChunkStore
from apps.uploads.state_machine import Status

logger = logging.getLogger(__name__)

# status, failure status, staleness setting, error
STUCK_STAGES = (
    (Status.ASSEMBLING, Status.FAILED, 'UPLOAD_ASSEMBLY_STALE_AFTER',
     'Assembly timeout - upload session stuck in assembling state'),
    (Status.VIRUS_SCANNING, Status.VIRUS_SCAN_FAILED, 'UPLOAD_PIPELINE_STALE_AFTER',
     'Virus scan timeout - upload session stuck in virus_scanning state'),
    (Status.FINALIZING, Status.FINALIZATION_FAILED, 'UPLOAD_PIPELINE_STALE_AFTER',
     'Finalization timeout - upload session stuck in finalizing state'),
)


class CleanupSweeper:
    """
    Periodic maintenance of the upload tables and temporary files.

    - Abandoned sessions (pending/uploading, idle past UPLOAD_STALE_AFTER) and
      failed or cancelled sessions older than UPLOAD_RETENTION_FAILED are
      deleted along with their chunk files and assembled file.
    - Sessions stuck in 'assembling' past UPLOAD_ASSEMBLY_STALE_AFTER are
      failed, which releases their filename slot.
    - Sessions stuck in 'virus_scanning' or 'finalizing' past
      UPLOAD_PIPELINE_STALE_AFTER (a crashed worker, a lost job message) are
      moved to that stage's failure status.

    Each session is handled on its own; one failure never stops the batch.
    """

    def __init__(self, repository: BaseUploadRepository = None, chunk_store=None, batch_size=None):
        self.repository = repository or UploadRepositoryDjango()
        self.chunk_store = chunk_store or ChunkStore()
        self.batch_size = batch_size or settings.UPLOAD_CLEANUP_BATCH_SIZE

    def sweep(self, now=None):
        now = now or timezone.now()
        stats = {
            'expired_deleted': 0,
            'expired_errors': 0,
            'stuck_failed': 0,
            'stuck_errors': 0,
        }
        self._sweep_expired(now, stats)
        for status, failure_status, setting_name, error in STUCK_STAGES:
            stale_before = now - timedelta(seconds=getattr(settings, setting_name))
            self._sweep_stuck(status, failure_status, stale_before, error, stats)

        logger.info(
            f"Upload cleanup: deleted {stats['expired_deleted']} expired session(s), "
            f"failed {stats['stuck_failed']} stuck session(s), "
            f"{stats['expired_errors'] + stats['stuck_errors']} error(s)"
        )
        return stats

    def _sweep_expired(self, now, stats):
        stale_before = now - timedelta(seconds=settings.UPLOAD_STALE_AFTER)
        retention_before = now - timedelta(seconds=settings.UPLOAD_RETENTION_FAILED)

        after_pk = None
        while True:
            batch = self.repository.find_expired_sessions(stale_before, retention_before, after_pk, self.batch_size)
            if not batch:
                break
            for session in batch:
                try:
                    self.delete_session(session)
                    stats['expired_deleted'] += 1
                except Exception as e:
                    stats['expired_errors'] += 1
                    logger.error(f"Failed to clean up upload session {session.id}: {e}", exc_info=True)
            after_pk = batch[-1].pk

    def _sweep_stuck(self, status, failure_status, stale_before, error, stats):
        after_pk = None
        while True:
            batch = self.repository.find_stuck_sessions(status, stale_before, after_pk, self.batch_size)
            if not batch:
                break
            for session in batch:
                try:
                    self.repository.transition(
                        session,
                        failure_status,
                        from_statuses=[status],
                        stage='cleanup',
                        data={'error': error},
                    )
                    stats['stuck_failed'] += 1
                    logger.warning(f"Failed upload session {session.id} stuck in {status}")
                except InvalidTransition as e:
                    # Finished its stage between the query and the update
                    logger.info(f"Stuck session {session.id} moved on before cleanup: {e}")
                except Exception as e:
                    stats['stuck_errors'] += 1
                    logger.error(f"Failed to reset stuck upload session {session.id}: {e}", exc_info=True)
            after_pk = batch[-1].pk

    def delete_session(self, session):
        """
        Deletes a session's chunk files, assembled file and rows.
        """
        removed = self.chunk_store.delete_session(session.id)

        if session.assembled_file_path:
            try:
                os.remove(session.assembled_file_path)
            except FileNotFoundError:
                pass

        self.repository.delete_session(session)
        logger.debug(f"Deleted upload session {session.id} ({session.status}) and {removed} chunk file(s)")
