from django.apps import AppConfig


class StorageProvidersConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.storage_providers'
