"""
Management command to recover media stuck in `processing`.

A record stays in `processing` forever if the worker dies between
confirmation and completion. This re-queues such records while attempts
remain and marks the rest failed.
"""
from django.conf import settings
from django.core.management.base import BaseCommand

from media.tasks import reconcile


class Command(BaseCommand):
    help = 'Re-queue or fail media records stuck in processing'

    def add_arguments(self, parser):
        parser.add_argument(
            '--timeout',
            type=int,
            default=settings.MEDIA_PROCESSING_TIMEOUT,
            help='Seconds in processing before a record counts as stuck'
        )
        parser.add_argument(
            '--max-attempts',
            type=int,
            default=settings.MEDIA_MAX_PROCESSING_ATTEMPTS,
            help='Processing attempts allowed before giving up'
        )

    def handle(self, *args, **options):
        result = reconcile(timeout_seconds=options['timeout'], max_attempts=options['max_attempts'])
        if not result['requeued'] and not result['failed']:
            self.stdout.write(self.style.SUCCESS("No stuck media found"))
            return
        for media_id in result['requeued']:
            self.stdout.write(f"Re-queued {media_id}")
        for media_id in result['failed']:
            self.stdout.write(self.style.WARNING(f"Failed {media_id}"))
        self.stdout.write(self.style.SUCCESS(
            f"Re-queued {len(result['requeued'])}, failed {len(result['failed'])}"
        ))
