"""
Factory classes for generating storage provider test data.
"""
import factory
from factory.django import DjangoModelFactory
from faker import Faker

from apps.storage_providers.models import StorageProvider
from apps.storage_providers.providers import PLATFORM_FILESYSTEM

fake = Faker()


class StorageProviderFactory(DjangoModelFactory):
    """Factory for creating StorageProvider instances."""

    class Meta:
        model = StorageProvider

    name = factory.Sequence(lambda n: f'test_provider_{n}')
    platform = PLATFORM_FILESYSTEM
    config = factory.LazyFunction(lambda: {
        'location': f'/tmp/stemdrop-tests/{fake.uuid4()}',
    })
