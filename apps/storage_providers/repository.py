import logging
from abc import ABC, abstractmethod

from django.conf import settings
from django.db import IntegrityError, transaction

from .models import StorageProvider
from .providers import PLATFORM_CHOICES, PROVIDER_REGISTRY

logger = logging.getLogger(__name__)


class BaseStorageProviderRepository(ABC):
    """
    Abstract base class for storage provider repository implementations.
    Defines how the durable storage backends of finalized assets are looked up and registered.
    """

    @abstractmethod
    def get_provider_by_id(self, provider_id):
        pass

    @abstractmethod
    def get_provider_by_name(self, name):
        """
        Returns the StorageProvider with this name, or None.
        """
        pass

    @abstractmethod
    def get_durable_provider(self):
        """
        Returns the provider finalized assets are attached to
        (settings.UPLOAD_DURABLE_STORAGE_PROVIDER), or None if it is not registered.
        """
        pass

    @abstractmethod
    def list_providers(self):
        pass

    @abstractmethod
    def create_provider(self, name, platform, config):
        """
        Registers a new provider after checking its platform can be built from `config`.
        """
        pass

    @abstractmethod
    def ensure_provider(self, name, platform, config):
        """
        Returns (provider, created). An existing provider with this name is
        returned untouched, whatever its platform and config.
        """
        pass


class StorageProviderRepositoryDjango(BaseStorageProviderRepository):
    """
    Django ORM implementation of the BaseStorageProviderRepository.
    """

    def __init__(self):
        self.model = StorageProvider

    def get_provider_by_id(self, provider_id):
        provider = self.model.objects.filter(pk=provider_id).first()
        if not provider:
            logger.warning(f"No storage provider found with ID: {provider_id}")
        return provider

    def get_provider_by_name(self, name):
        provider = self.model.objects.filter(name=name).first()
        if provider:
            logger.debug(f"Using storage provider {provider.name} ({provider.platform})")
        else:
            logger.warning(f"No storage provider found with name: {name}")
        return provider

    def get_durable_provider(self):
        return self.get_provider_by_name(settings.UPLOAD_DURABLE_STORAGE_PROVIDER)

    def list_providers(self):
        return self.model.objects.order_by('name')

    def create_provider(self, name, platform, config):
        """
        Raises ValueError on a missing field, a duplicate name, an unknown
        platform or a config the platform's provider class rejects.
        """
        self._validate(name, platform, config)

        try:
            with transaction.atomic():
                provider = self.model.objects.create(name=name, platform=platform, config=config)
        except IntegrityError as e:
            logger.error(f"Failed to create provider: Provider with name '{name}' already exists")
            raise ValueError(f"Storage provider with name '{name}' already exists.") from e

        logger.info(f"Registered storage provider {provider.name} (ID: {provider.id}, Platform: {provider.platform})")
        return provider

    def ensure_provider(self, name, platform, config):
        existing = self.model.objects.filter(name=name).first()
        if existing:
            return existing, False
        return self.create_provider(name, platform, config), True

    def _validate(self, name, platform, config):
        if not name or not platform or config is None:
            raise ValueError("Name, platform, and config are required to create a storage provider.")

        platforms = [choice[0] for choice in PLATFORM_CHOICES]
        if platform not in platforms:
            logger.error(f"Failed to create provider {name}: Invalid platform '{platform}'")
            raise ValueError(f"Invalid platform '{platform}'. Must be one of {platforms}")

        if not isinstance(config, dict):
            raise ValueError("Config must be a dictionary.")

        # Providers check their own required keys when built
        try:
            PROVIDER_REGISTRY[platform](config)
        except ValueError as e:
            logger.error(f"Failed to create provider {name}: {e}")
            raise
