"""Management command to clean up finished recalculation jobs."""

from datetime import timedelta

from django.core.management.base import BaseCommand

from django_temporal_records import conf
from django_temporal_records.models import RecalculationJob
from django_temporal_records.progress import DatabaseProgressTracker


class Command(BaseCommand):
    help = 'Delete completed, failed and cancelled recalculation jobs past retention'

    def add_arguments(self, parser):
        parser.add_argument(
            '--minutes',
            type=int,
            default=None,
            help='Delete terminal jobs idle longer than this many minutes '
                 '(default: TEMPORAL_RECORDS_JOB_RETENTION_SECONDS)'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show count of jobs that would be deleted without actually deleting'
        )

    def handle(self, *args, **options):
        minutes = options['minutes']
        dry_run = options['dry_run']
        if minutes is None:
            retention = timedelta(seconds=conf.job_retention_seconds())
        else:
            retention = timedelta(minutes=minutes)

        tracker = DatabaseProgressTracker(retention=retention)

        if dry_run:
            qs = tracker.expired_jobs()
            self.stdout.write(
                f'Would delete {qs.count()} recalculation jobs '
                f'(idle longer than {retention})'
            )
            for status in RecalculationJob.TERMINAL_STATUSES:
                status_count = qs.filter(status=status).count()
                if status_count > 0:
                    self.stdout.write(f'  - {status.label}: {status_count}')
        else:
            deleted = tracker.sweep()
            self.stdout.write(
                self.style.SUCCESS(f'Deleted {deleted} recalculation jobs')
            )
