"""
Tests for StorageProviderRepositoryDjango and the create_default_provider command.
"""
from io import StringIO

import pytest
from django.core.management import call_command

from apps.storage_providers.models import StorageProvider
from apps.storage_providers.providers import PLATFORM_DEFAULT_STORAGE, PLATFORM_FILESYSTEM
from apps.storage_providers.repository import StorageProviderRepositoryDjango
from apps.storage_providers.tests.factories import StorageProviderFactory


@pytest.mark.django_db
class TestStorageProviderRepository:
    """Test cases for the storage provider repository."""

    def test_get_provider_by_name(self):
        provider = StorageProviderFactory(name='archive')
        repo = StorageProviderRepositoryDjango()

        assert repo.get_provider_by_name('archive') == provider
        assert repo.get_provider_by_name('missing') is None

    def test_get_provider_by_id(self):
        provider = StorageProviderFactory()
        repo = StorageProviderRepositoryDjango()

        assert repo.get_provider_by_id(provider.id) == provider
        assert repo.get_provider_by_id(provider.id + 1000) is None

    def test_list_providers(self):
        StorageProviderFactory.create_batch(3)

        assert StorageProviderRepositoryDjango().list_providers().count() == 3

    def test_get_durable_provider(self, upload_settings):
        provider = StorageProviderFactory(name='archive')
        repo = StorageProviderRepositoryDjango()

        upload_settings.UPLOAD_DURABLE_STORAGE_PROVIDER = 'missing'
        assert repo.get_durable_provider() is None

        upload_settings.UPLOAD_DURABLE_STORAGE_PROVIDER = 'archive'
        assert repo.get_durable_provider() == provider

    def test_create_provider(self, tmp_path):
        """Test creating a provider with a valid platform and config."""
        provider = StorageProviderRepositoryDjango().create_provider(
            'local', PLATFORM_FILESYSTEM, {'location': str(tmp_path)}
        )

        assert provider.pk is not None
        assert provider.platform == PLATFORM_FILESYSTEM
        assert str(provider) == 'local'

    @pytest.mark.parametrize('name, platform, config, message', [
        ('', PLATFORM_FILESYSTEM, {}, 'required'),
        ('local', '', {}, 'required'),
        ('local', PLATFORM_FILESYSTEM, None, 'required'),
        ('local', 'Dropbox', {}, 'Invalid platform'),
        ('local', PLATFORM_DEFAULT_STORAGE, ['not', 'a', 'dict'], 'must be a dictionary'),
        ('local', PLATFORM_FILESYSTEM, {'base_url': '/media/'}, "requires a 'location'"),
    ])
    def test_create_provider_validation(self, name, platform, config, message):
        with pytest.raises(ValueError, match=message):
            StorageProviderRepositoryDjango().create_provider(name, platform, config)

        assert not StorageProvider.objects.exists()

    def test_create_duplicate_provider(self):
        StorageProviderFactory(name='local')

        with pytest.raises(ValueError, match='already exists'):
            StorageProviderRepositoryDjango().create_provider('local', PLATFORM_DEFAULT_STORAGE, {})

    def test_ensure_provider_is_idempotent(self, tmp_path):
        repo = StorageProviderRepositoryDjango()

        first, created = repo.ensure_provider('local', PLATFORM_FILESYSTEM, {'location': str(tmp_path)})
        second, created_again = repo.ensure_provider('local', PLATFORM_DEFAULT_STORAGE, {})

        assert created is True
        assert created_again is False
        assert second == first
        assert second.platform == PLATFORM_FILESYSTEM


@pytest.mark.django_db
class TestCreateDefaultProviderCommand:

    def test_creates_provider_once(self, upload_settings, tmp_path):
        out = StringIO()

        call_command('create_default_provider', location=str(tmp_path / 'assets'), stdout=out)
        call_command('create_default_provider', stdout=out)

        provider = StorageProvider.objects.get()
        assert provider.name == upload_settings.UPLOAD_DURABLE_STORAGE_PROVIDER
        assert provider.platform == PLATFORM_FILESYSTEM
        assert provider.config['location'] == str(tmp_path / 'assets')
        assert "Created storage provider 'local_default'" in out.getvalue()
        assert 'already exists' in out.getvalue()

    def test_defaults_to_media_root(self, upload_settings, monkeypatch):
        monkeypatch.delenv('ASSET_STORAGE_ROOT', raising=False)

        call_command('create_default_provider', stdout=StringIO())

        assert StorageProvider.objects.get().config['location'] == str(upload_settings.MEDIA_ROOT)

    def test_default_storage_flag(self):
        call_command('create_default_provider', '--default-storage', stdout=StringIO())

        provider = StorageProvider.objects.get()
        assert provider.platform == PLATFORM_DEFAULT_STORAGE
        assert provider.config == {}
