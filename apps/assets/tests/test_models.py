"""
Unit tests for the Asset model and content type helpers.
"""
import uuid

import pytest
from django.db import IntegrityError

from apps.assets.content_types import resolve_content_type, resolve_file_type
from apps.assets.models import Asset
from apps.assets.tests.factories import AssetFactory
from apps.uploads.tests.factories import UploadSessionFactory


@pytest.mark.unit
class TestContentTypes:

    @pytest.mark.parametrize('filename, content_type', [
        ('track.wav', 'audio/wav'),
        ('TRACK.WAV', 'audio/wav'),
        ('mix.final.mp3', 'audio/mpeg'),
        ('take.aif', 'audio/aiff'),
        ('clip.mov', 'video/quicktime'),
        ('notes.txt', 'text/plain'),
        ('stems.zip', 'application/zip'),
        ('project.logicx', 'application/octet-stream'),
        ('README', 'application/octet-stream'),
        ('', 'application/octet-stream'),
    ])
    def test_resolve_content_type(self, filename, content_type):
        assert resolve_content_type(filename) == content_type

    @pytest.mark.parametrize('filename, file_type', [
        ('track.flac', 'audio'),
        ('clip.mp4', 'video'),
        ('cover.png', 'image'),
        ('cover.bmp', 'image'),
        ('lyrics.pdf', 'document'),
        ('lyrics.md', 'text'),
        ('session.als', 'other'),
    ])
    def test_resolve_file_type(self, filename, file_type):
        assert resolve_file_type(filename) == file_type


@pytest.mark.django_db
class TestAssetModel:
    """Test cases for the Asset model."""

    def test_create_asset(self):
        asset = AssetFactory(filename='track.wav')

        assert asset.pk is not None
        assert asset.file_extension == '.wav'
        assert asset.file_type == 'audio'
        assert asset.full_path == '/track.wav'

    def test_full_path_in_container(self):
        container_id = uuid.uuid4()
        asset = AssetFactory(filename='track.wav', container_id=container_id)

        assert asset.full_path == f'/{container_id}/track.wav'

    @pytest.mark.parametrize('file_size, expected', [
        (512, '512.0 B'),
        (2048, '2.0 KB'),
        (5 * 1024 * 1024, '5.0 MB'),
        (3 * 1024 ** 3, '3.0 GB'),
    ])
    def test_humanized_size(self, file_size, expected):
        asset = AssetFactory.build(file_size=file_size)

        assert asset.humanized_size == expected
        assert str(asset) == f'{asset.filename} ({expected})'

    def test_one_asset_per_upload_session(self):
        session = UploadSessionFactory()
        AssetFactory(upload_session=session)

        with pytest.raises(IntegrityError):
            AssetFactory(upload_session=session)

    def test_assets_without_session_do_not_conflict(self):
        AssetFactory.create_batch(2, upload_session=None)

        assert Asset.objects.count() == 2

    def test_annotate_merges_metadata(self):
        asset = AssetFactory(metadata={'file_type': 'audio', 'bpm': 120})

        asset.annotate(bpm=128, key='A minor')

        asset.refresh_from_db()
        assert asset.metadata == {'file_type': 'audio', 'bpm': 128, 'key': 'A minor'}

    def test_deleting_session_keeps_asset(self):
        session = UploadSessionFactory()
        asset = AssetFactory(upload_session=session)

        session.delete()

        asset.refresh_from_db()
        assert asset.upload_session is None
