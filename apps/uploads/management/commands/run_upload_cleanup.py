import logging
import time

from django.conf import settings
from django.core.management.base import BaseCommand

from apps.uploads.services.cleanup_sweeper import CleanupSweeper

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Deletes expired upload sessions and fails uploads stuck in a pipeline stage, once or on an interval.'

    def add_arguments(self, parser):
        parser.add_argument('--once', action='store_true', help='Run a single sweep and exit')
        parser.add_argument(
            '--interval',
            type=int,
            default=settings.UPLOAD_CLEANUP_INTERVAL,
            help='Seconds between sweeps (default: UPLOAD_CLEANUP_INTERVAL)',
        )

    def handle(self, *args, **options):
        sweeper = CleanupSweeper()

        if options['once']:
            self._sweep(sweeper)
            return

        self.stdout.write(self.style.SUCCESS(f"--- Upload Cleanup Sweeper (every {options['interval']}s) ---"))
        try:
            while True:
                try:
                    self._sweep(sweeper)
                except Exception as e:
                    logger.error(f"Upload cleanup sweep failed: {e}", exc_info=True)
                    self.stderr.write(self.style.ERROR(f"Sweep failed: {e}"))
                time.sleep(options['interval'])
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING('\nSweeper stopped by user.'))

    def _sweep(self, sweeper):
        stats = sweeper.sweep()
        self.stdout.write(self.style.SUCCESS(
            f"Deleted {stats['expired_deleted']} expired session(s), "
            f"failed {stats['stuck_failed']} stuck session(s)."
        ))
        errors = stats['expired_errors'] + stats['stuck_errors']
        if errors:
            self.stderr.write(self.style.ERROR(f"{errors} session(s) could not be cleaned up, see logs."))
