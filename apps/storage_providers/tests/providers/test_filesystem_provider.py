"""
Unit tests for the Django-storage backed providers.

FileSystemStorageProvider writes into pytest's tmp_path; DefaultStorageProvider
goes through default_storage, which the test settings point at MEDIA_ROOT.
"""
import io
import os

import pytest

from apps.storage_providers.providers import (
    PLATFORM_DEFAULT_STORAGE,
    PLATFORM_FILESYSTEM,
    PROVIDER_REGISTRY,
    DefaultStorageProvider,
    FileSystemStorageProvider,
)


@pytest.fixture
def provider(tmp_path):
    return FileSystemStorageProvider({
        'location': str(tmp_path / 'assets'),
        'base_url': '/media/',
    })


@pytest.mark.unit
class TestFileSystemProviderInitialization:
    """Test filesystem provider initialization."""

    def test_init_with_valid_config(self, provider, tmp_path):
        """Test initializing the provider with a location."""
        assert provider.config['location'] == str(tmp_path / 'assets')
        assert provider.get_storage().location == str(tmp_path / 'assets')

    def test_init_without_location_raises_error(self):
        """Test that a config without a location is rejected."""
        with pytest.raises(ValueError, match="requires a 'location'"):
            FileSystemStorageProvider({})

    def test_registry(self):
        assert PROVIDER_REGISTRY[PLATFORM_FILESYSTEM] is FileSystemStorageProvider
        assert PROVIDER_REGISTRY[PLATFORM_DEFAULT_STORAGE] is DefaultStorageProvider


@pytest.mark.unit
class TestFileSystemProviderAttach:
    """Test attaching, reopening and deleting bytes."""

    def test_attach_returns_reference(self, provider, tmp_path):
        """Test that attach stores the bytes and describes them in the reference."""
        ref = provider.attach(io.BytesIO(b'RIFF audio bytes'), 'track.wav', 'audio/wav')

        assert ref['name'].startswith('assets/')
        assert ref['name'].endswith('/track.wav')
        assert ref['filename'] == 'track.wav'
        assert ref['content_type'] == 'audio/wav'
        assert ref['size'] == 16
        assert os.path.isfile(tmp_path / 'assets' / ref['name'])

    def test_same_filename_never_collides(self, provider):
        """Test that two attachments of the same filename get distinct references."""
        first = provider.attach(io.BytesIO(b'one'), 'track.wav', 'audio/wav')
        second = provider.attach(io.BytesIO(b'two'), 'track.wav', 'audio/wav')

        assert first['name'] != second['name']
        with provider.open(first) as f:
            assert f.read() == b'one'

    def test_unsafe_filename_is_sanitized(self, provider):
        """Test that the stored name cannot escape the provider's location."""
        ref = provider.attach(io.BytesIO(b'data'), 'my mix (final).wav', 'audio/wav')

        assert ref['name'].endswith('/my_mix_final.wav')
        assert ref['filename'] == 'my mix (final).wav'

    def test_open_round_trip(self, provider):
        ref = provider.attach(io.BytesIO(b'\x00\x01\x02' * 1000), 'stems.zip', 'application/zip')

        with provider.open(ref) as f:
            assert f.read() == b'\x00\x01\x02' * 1000

    def test_open_without_name_raises_error(self, provider):
        with pytest.raises(ValueError):
            provider.open({})

    def test_exists_and_delete(self, provider):
        """Test that delete removes the bytes and tolerates a second call."""
        ref = provider.attach(io.BytesIO(b'data'), 'track.wav', 'audio/wav')
        assert provider.exists(ref)

        provider.delete(ref)
        provider.delete(ref)

        assert not provider.exists(ref)
        assert not provider.exists({})

    def test_url(self, provider):
        ref = provider.attach(io.BytesIO(b'data'), 'track.wav', 'audio/wav')

        assert provider.url(ref) == f"/media/{ref['name']}"
        assert provider.url({}) is None


class TestDefaultStorageProvider:
    """Test the provider backed by Django's default storage."""

    def test_attach_uses_default_storage(self, upload_settings):
        provider = DefaultStorageProvider({'key_prefix': 'stems'})

        ref = provider.attach(io.BytesIO(b'data'), 'track.wav', 'audio/wav')

        assert ref['name'].startswith('stems/')
        assert os.path.isfile(os.path.join(upload_settings.MEDIA_ROOT, ref['name']))
        provider.delete(ref)
        assert not provider.exists(ref)
