import os

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from apps.storage_providers.providers import PLATFORM_DEFAULT_STORAGE, PLATFORM_FILESYSTEM
from apps.storage_providers.repository import StorageProviderRepositoryDjango


class Command(BaseCommand):
    help = 'Registers the durable storage provider finalized assets are attached to, if it does not exist'

    def add_arguments(self, parser):
        parser.add_argument('--location', help='Directory assets are stored in (defaults to ASSET_STORAGE_ROOT or MEDIA_ROOT)')
        parser.add_argument(
            '--default-storage',
            action='store_true',
            help="Attach assets through STORAGES['default'] instead of a local directory",
        )

    def handle(self, *args, **options):
        name = settings.UPLOAD_DURABLE_STORAGE_PROVIDER

        if options['default_storage']:
            platform, config = PLATFORM_DEFAULT_STORAGE, {}
            target = "Django's default storage"
        else:
            location = options.get('location') or os.getenv('ASSET_STORAGE_ROOT') or str(settings.MEDIA_ROOT)
            platform, config = PLATFORM_FILESYSTEM, {'location': location, 'base_url': settings.MEDIA_URL}
            target = location

        try:
            provider, created = StorageProviderRepositoryDjango().ensure_provider(name, platform, config)
        except ValueError as e:
            raise CommandError(str(e)) from e

        if created:
            self.stdout.write(self.style.SUCCESS(f"Created storage provider '{provider.name}' at {target}."))
        else:
            self.stdout.write(self.style.WARNING(f"Storage provider '{provider.name}' already exists."))
