from django.conf import settings

from apps.storage_providers.providers import PROVIDER_REGISTRY
from apps.storage_providers.repository import StorageProviderRepositoryDjango
from apps.assets.exceptions import StorageAttachError, StorageRetrieveError


class DurableStorageService:
    """
    A service that abstracts the interaction with the durable storage providers
    finalized assets live in. It delegates the actual attach/open operations
    to the specific provider's implementation.
    """

    def __init__(self, provider_name=None, provider_repository=None):
        """
        Initializes the service with a specific provider, given its name.

        Args:
            provider_name: Name of the StorageProvider row to use. Defaults to
                the durable provider configured in settings.
            provider_repository: Optional repository for fetching provider config
        """
        if provider_repository is None:
            provider_repository = StorageProviderRepositoryDjango()

        if provider_name is None:
            provider = provider_repository.get_durable_provider()
            provider_name = settings.UPLOAD_DURABLE_STORAGE_PROVIDER
        else:
            provider = provider_repository.get_provider_by_name(provider_name)
        if not provider:
            raise ValueError(f"Storage provider '{provider_name}' not found.")

        provider_class = PROVIDER_REGISTRY.get(provider.platform)
        if not provider_class:
            raise ValueError(f"Unsupported storage provider platform: {provider.platform}")

        self.provider = provider_class(provider.config)
        self.provider_model = provider
        self.provider_name = provider_name

    def attach(self, stream, filename, content_type):
        """
        Attaches bytes under a filename/content type and returns the stable
        reference the provider gave back.
        """
        if not filename:
            raise ValueError("filename cannot be empty")

        try:
            result = self.provider.attach(stream, filename, content_type)

            if not result:
                raise StorageAttachError("Provider returned no reference")
            if not isinstance(result, dict):
                raise StorageAttachError(f"Provider returned invalid type: {type(result)}")
            return result

        except StorageAttachError:
            raise
        except Exception as e:
            raise StorageAttachError(f"Failed to attach {filename}: {str(e)}") from e

    def open(self, ref):
        if not ref:
            raise ValueError("ref cannot be empty")

        try:
            return self.provider.open(ref)
        except Exception as e:
            raise StorageRetrieveError(f"Failed to open attached file: {str(e)}") from e

    def discard(self, ref):
        """
        Deletes an attachment that will never be referenced (e.g. after losing a race).
        """
        try:
            self.provider.delete(ref)
        except Exception as e:
            raise StorageAttachError(f"Failed to discard attached file: {str(e)}") from e

    def url(self, ref):
        return self.provider.url(ref)
