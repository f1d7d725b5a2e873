import logging
import os

from django.db import IntegrityError, transaction
from django.utils import timezone

from apps.assets.content_types import resolve_content_type
from apps.assets.exceptions import DurableStorageError
from apps.assets.repository import AssetRepositoryDjango, BaseAssetRepository
from apps.assets.services.storage_service import DurableStorageService
from apps.uploads.exceptions import FinalizationError, InvalidTransition
from apps.uploads.repository import BaseUploadRepository, UploadRepositoryDjango
from apps.uploads.state_machine import Status

logger = logging.getLogger(__name__)


class Finalizer:
    """
    Promotes a scanned, assembled file to a permanent Asset.

    The durable upload happens outside any transaction; the Asset row and the
    finalizing -> completed transition commit together, so a session is
    completed if and only if its Asset exists.
    """

    def __init__(self, repository: BaseUploadRepository = None, storage_service=None,
                 asset_repository: BaseAssetRepository = None):
        self.repository = repository or UploadRepositoryDjango()
        self.asset_repository = asset_repository or AssetRepositoryDjango()
        self._storage_service = storage_service

    @property
    def storage_service(self):
        if self._storage_service is None:
            self._storage_service = DurableStorageService()
        return self._storage_service

    def finalize(self, session_id):
        """
        Returns the session's Asset, creating it if needed. Returns None when
        the session is not finalizing and has no Asset.

        Raises:
            FinalizationError: the assembled file is gone; the session is now 'finalization_failed'.
            StorageAttachError: durable storage failed; the caller may retry.
        """
        session = self.repository.get_session(session_id)

        existing = self.asset_repository.get_asset_for_session(session.id)
        if existing:
            logger.info(f"Session {session.id} already finalized as asset {existing.id}")
            if session.status == Status.FINALIZING:
                self._complete(session, existing)
            return existing

        if session.status != Status.FINALIZING:
            logger.info(f"Skipping finalization of session {session.id}: status is {session.status}")
            return None

        file_path = session.assembled_file_path
        if not file_path or not os.path.isfile(file_path):
            self.fail_session(session.id, f"Assembled file not found: {file_path}")
            raise FinalizationError(f"Assembled file not found for session {session.id}: {file_path}")

        file_size = os.path.getsize(file_path)
        content_type = resolve_content_type(session.filename)
        logger.info(f"Finalizing session {session.id}: {session.filename} ({file_size} bytes, {content_type})")

        with open(file_path, 'rb') as stream:
            storage_ref = self.storage_service.attach(stream, session.filename, content_type)

        try:
            with transaction.atomic():
                asset = self.asset_repository.create_asset(
                    upload_session=session,
                    filename=session.filename,
                    file_size=file_size,
                    content_type=content_type,
                    metadata=self._asset_metadata(session),
                    storage_provider=self.storage_service.provider_model,
                    storage_ref=storage_ref,
                )
                self._complete(session, asset)
        except IntegrityError:
            # A concurrent finalize created the Asset first
            self._discard(storage_ref)
            existing = self.asset_repository.get_asset_for_session(session.id)
            if existing is None:
                raise
            logger.info(f"Session {session.id} was finalized concurrently as asset {existing.id}")
            return existing
        except InvalidTransition as e:
            # Rolled back: the session left finalizing while we uploaded
            self._discard(storage_ref)
            logger.warning(f"Finalization of session {session.id} abandoned: {e}")
            return None

        self._remove_assembled_file(file_path)
        logger.info(f"Session {session.id} completed as asset {asset.id}")
        return asset

    def fail_session(self, session_id, error):
        """
        Moves a finalizing session to finalization_failed. No effect otherwise.
        """
        session = self.repository.get_session(session_id)
        try:
            return self.repository.transition(
                session,
                Status.FINALIZATION_FAILED,
                from_statuses=[Status.FINALIZING],
                stage='finalization',
                data={'error': str(error), 'failed_at': timezone.now().isoformat()},
            )
        except InvalidTransition as e:
            logger.info(f"Not marking session {session.id} finalization_failed: {e}")
            return None

    def _complete(self, session, asset):
        return self.repository.transition(
            session,
            Status.COMPLETED,
            from_statuses=[Status.FINALIZING],
            stage='finalization',
            data={
                'asset_id': str(asset.id),
                'asset_filename': asset.filename,
                'file_size': asset.file_size,
                'finalized_at': timezone.now().isoformat(),
            },
            completed_at=timezone.now(),
        )

    def _asset_metadata(self, session):
        pipeline = session.pipeline_metadata()
        upload_duration = None
        if session.created_at:
            upload_duration = round((timezone.now() - session.created_at).total_seconds(), 3)
        return {
            **(session.metadata or {}),
            'upload_session_id': str(session.id),
            'chunks_count': session.chunks_count,
            'upload_duration': upload_duration,
            'virus_scan': pipeline.get('virus_scan', {}),
        }

    def _discard(self, storage_ref):
        try:
            self.storage_service.discard(storage_ref)
        except DurableStorageError as e:
            logger.warning(f"Could not discard orphaned attachment {storage_ref}: {e}")

    @staticmethod
    def _remove_assembled_file(file_path):
        try:
            os.remove(file_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove assembled file {file_path}: {e}")
