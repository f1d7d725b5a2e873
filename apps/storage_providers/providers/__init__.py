from .base import BaseStorageProvider
from .filesystem.filesystem_provider import DefaultStorageProvider, FileSystemStorageProvider
# Add more providers as needed

# Platform constants
PLATFORM_FILESYSTEM = "Filesystem"
PLATFORM_DEFAULT_STORAGE = "DefaultStorage"

# List of supported platforms for validation and selection
# The first element is the value stored in DB, the second is the human-readable name
# (see https://docs.djangoproject.com/en/5.2/ref/models/fields/#django.db.models.Field.choices)
PLATFORM_CHOICES = [
    (PLATFORM_FILESYSTEM, "Local filesystem"),
    (PLATFORM_DEFAULT_STORAGE, "Django default storage"),
]

# Centralized provider registry
PROVIDER_REGISTRY = {
    PLATFORM_FILESYSTEM: FileSystemStorageProvider,
    PLATFORM_DEFAULT_STORAGE: DefaultStorageProvider,
    # Add more providers as needed
}

__all__ = [
    'PROVIDER_REGISTRY',
    'PLATFORM_FILESYSTEM',
    'PLATFORM_DEFAULT_STORAGE',
    'PLATFORM_CHOICES',
    'BaseStorageProvider',
    'FileSystemStorageProvider',
    'DefaultStorageProvider',
]
