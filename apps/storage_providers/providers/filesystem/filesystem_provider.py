import logging
import uuid

from django.core.files import File as DjangoFile
from django.core.files.storage import FileSystemStorage, default_storage
from django.utils.text import get_valid_filename

from ..base import BaseStorageProvider

logger = logging.getLogger(__name__)


class DjangoStorageProvider(BaseStorageProvider):
    """
    Attaches assets through a Django storage backend. Each attachment gets its
    own random prefix, so two assets with the same filename never collide.
    """

    key_prefix = 'assets'

    def get_storage(self):
        raise NotImplementedError

    def attach(self, stream, filename: str, content_type: str) -> dict:
        storage = self.get_storage()
        name = f"{self.key_prefix}/{uuid.uuid4().hex}/{get_valid_filename(filename)}"

        logger.info(f"Attaching {filename} ({content_type}) as {name}")
        saved_name = storage.save(name, DjangoFile(stream, name=filename))
        size = storage.size(saved_name)
        logger.debug(f"Attached {saved_name} ({size} bytes)")

        return {
            "name": saved_name,
            "filename": filename,
            "content_type": content_type,
            "size": size,
        }

    def open(self, ref: dict):
        name = ref.get("name")
        if not name:
            raise ValueError("ref must contain 'name'")
        return self.get_storage().open(name, 'rb')

    def exists(self, ref: dict) -> bool:
        name = ref.get("name")
        return bool(name) and self.get_storage().exists(name)

    def delete(self, ref: dict):
        name = ref.get("name")
        if not name:
            return
        storage = self.get_storage()
        if storage.exists(name):
            storage.delete(name)
            logger.info(f"Deleted attached file: {name}")
        else:
            logger.warning(f"Attached file already missing: {name}")

    def url(self, ref: dict):
        name = ref.get("name")
        if not name:
            return None
        try:
            return self.get_storage().url(name)
        except NotImplementedError:
            return None


class FileSystemStorageProvider(DjangoStorageProvider):
    """
    Stores assets on local disk under config['location'].
    Optional config['base_url'] is used to build download URLs.
    """

    def __init__(self, config):
        super().__init__(config)
        location = self.config.get('location')
        if not location:
            raise ValueError("Filesystem storage provider requires a 'location' in its config")
        self.storage = FileSystemStorage(location=location, base_url=self.config.get('base_url'))

    def get_storage(self):
        return self.storage


class DefaultStorageProvider(DjangoStorageProvider):
    """
    Stores assets in whatever STORAGES['default'] is configured to
    (local media root, S3 through django-storages, ...).
    """

    def __init__(self, config):
        super().__init__(config)
        self.key_prefix = self.config.get('key_prefix', self.key_prefix)

    def get_storage(self):
        return default_storage
