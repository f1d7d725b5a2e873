from abc import ABC, abstractmethod
from .models import Asset


class BaseAssetRepository(ABC):
    """
    Abstract base class for asset repository implementations.
    """

    @abstractmethod
    def create_asset(self, upload_session, filename, file_size, content_type, metadata, storage_provider, storage_ref):
        """
        Creates and returns a new Asset promoted from the given upload session.
        """
        pass

    @abstractmethod
    def get_asset(self, asset_id):
        pass

    @abstractmethod
    def get_asset_for_session(self, upload_session_id):
        """
        Returns the Asset created from the given session, or None.
        """
        pass

    @abstractmethod
    def list_assets(self, workspace_id, container_id=None):
        pass


class AssetRepositoryDjango(BaseAssetRepository):
    """
    Django ORM implementation of the BaseAssetRepository.
    """

    def create_asset(self, upload_session, filename, file_size, content_type, metadata, storage_provider, storage_ref):
        """
        Creates the Asset row. Raises IntegrityError if the session already
        has one (one-to-one column).
        """
        return Asset.objects.create(
            upload_session=upload_session,
            workspace_id=upload_session.workspace_id,
            container_id=upload_session.container_id,
            user_id=upload_session.user_id,
            filename=filename,
            file_size=file_size,
            content_type=content_type,
            metadata=metadata,
            storage_provider=storage_provider,
            storage_ref=storage_ref,
        )

    def get_asset(self, asset_id):
        return Asset.objects.get(pk=asset_id)

    def get_asset_for_session(self, upload_session_id):
        return Asset.objects.filter(upload_session_id=upload_session_id).first()

    def list_assets(self, workspace_id, container_id=None):
        return Asset.objects.filter(workspace_id=workspace_id, container_id=container_id)
