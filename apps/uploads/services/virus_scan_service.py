import logging
import os

from django.utils import timezone

from apps.uploads.exceptions import (
    InvalidTransition,
    ScanError,
    ScanFileNotFoundError,
    ScanTimeoutError,
    ScannerUnavailableError,
)
from apps.uploads.repository import BaseUploadRepository, UploadRepositoryDjango
from apps.uploads.scanners import get_scanner
from apps.uploads.state_machine import Status

logger = logging.getLogger(__name__)

SCAN_CLEAN = 'clean'
SCAN_INFECTED = 'infected'
SCAN_SKIPPED = 'skipped'
SCAN_FAILED = 'failed'


class VirusScanService:
    """
    Runs the scanner on an assembled file and turns the verdict into a
    status transition:

        clean        -> finalizing
        unavailable  -> finalizing, annotated as skipped
        infected     -> virus_scan_failed, file deleted
        file missing -> virus_scan_failed
        timeout / other scanner errors are re-raised so the job retries them
    """

    def __init__(self, repository: BaseUploadRepository = None, scanner=None):
        self.repository = repository or UploadRepositoryDjango()
        self._scanner = scanner

    @property
    def scanner(self):
        if self._scanner is None:
            self._scanner = get_scanner()
        return self._scanner

    def scan_session(self, session_id):
        """
        Returns the session after its scan outcome was applied, or None when
        the session is no longer waiting for a scan (e.g. it was cancelled).
        """
        session = self.repository.get_session(session_id)
        if session.status != Status.VIRUS_SCANNING:
            logger.info(f"Skipping virus scan of session {session.id}: status is {session.status}")
            return None

        file_path = session.assembled_file_path
        logger.info(f"Scanning {file_path} for session {session.id} with {self.scanner.name}")

        try:
            result = self.scanner.scan(file_path)
        except ScanFileNotFoundError as e:
            return self._apply(session, Status.VIRUS_SCAN_FAILED, {
                'status': SCAN_FAILED,
                'scanner': self.scanner.name,
                'error': f"Assembled file not found: {e}",
            })
        except ScannerUnavailableError as e:
            logger.warning(f"Scanner unavailable for session {session.id}, continuing without a scan: {e}")
            return self._apply(session, Status.FINALIZING, {
                'status': SCAN_SKIPPED,
                'scanner': self.scanner.name,
                'reason': 'scanner_unavailable',
                'error': str(e),
            })
        except ScanTimeoutError as e:
            self._record_attempt(session, f"Virus scan timed out: {e}")
            raise
        except ScanError as e:
            self._record_attempt(session, f"Virus scan error: {e}")
            raise

        if result.clean:
            return self._apply(session, Status.FINALIZING, {
                'status': SCAN_CLEAN,
                **result.to_dict(),
            })

        logger.warning(f"Virus detected in session {session.id}: {result.virus_name}")
        session = self._apply(session, Status.VIRUS_SCAN_FAILED, {
            'status': SCAN_INFECTED,
            **result.to_dict(),
            'error': f"Virus detected: {result.virus_name}",
        })
        if session is not None:
            self._delete_infected_file(file_path)
        return session

    def fail_session(self, session_id, error):
        """
        Marks a session whose scan attempts are exhausted. No effect if the
        session already left virus_scanning.
        """
        session = self.repository.get_session(session_id)
        return self._apply(session, Status.VIRUS_SCAN_FAILED, {
            'status': SCAN_FAILED,
            'error': str(error),
        })

    def _apply(self, session, to_status, scan_data):
        data = dict(scan_data)
        data['completed_at'] = timezone.now().isoformat()

        try:
            return self.repository.transition(
                session,
                to_status,
                from_statuses=[Status.VIRUS_SCANNING],
                stage='virus_scan',
                data=data,
                virus_scan_completed_at=timezone.now(),
            )
        except InvalidTransition as e:
            # Cancelled (or already handled) while the scanner was running
            logger.info(f"Discarding scan outcome for session {session.id}: {e}")
            return None

    def _record_attempt(self, session, message):
        logger.warning(f"Scan attempt for session {session.id} failed: {message}")
        self.repository.record_event(session, 'virus_scan', {'last_attempt_error': message})

    @staticmethod
    def _delete_infected_file(file_path):
        if not file_path:
            return
        try:
            os.remove(file_path)
            logger.info(f"Deleted infected file {file_path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Could not delete infected file {file_path}: {e}")
