"""Tests for cleanup_recalculation_jobs management command."""

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.utils import timezone

from django_temporal_records.models import RecalculationJob


def make_job(job_id, status, minutes_ago):
    return RecalculationJob.objects.create(
        job_id=job_id,
        status=status,
        last_updated=timezone.now() - timedelta(minutes=minutes_ago),
    )


@pytest.mark.django_db
class TestCleanupRecalculationJobsCommand:
    """Test suite for cleanup_recalculation_jobs command."""

    def test_deletes_old_terminal_jobs(self):
        """Completed, failed and cancelled jobs past retention are deleted."""
        make_job('done', RecalculationJob.Status.COMPLETED, 120)
        make_job('failed', RecalculationJob.Status.FAILED, 120)
        make_job('cancelled', RecalculationJob.Status.CANCELLED, 120)
        make_job('recent', RecalculationJob.Status.COMPLETED, 5)

        out = StringIO()
        call_command('cleanup_recalculation_jobs', '--minutes=60', stdout=out)

        assert list(RecalculationJob.objects.values_list('job_id', flat=True)) == ['recent']
        assert 'Deleted 3 recalculation jobs' in out.getvalue()

    def test_preserves_running_jobs(self):
        """In-flight jobs are never deleted, however old."""
        make_job('stuck', RecalculationJob.Status.RUNNING, 600)
        make_job('queued', RecalculationJob.Status.STARTING, 600)

        call_command('cleanup_recalculation_jobs', '--minutes=60', stdout=StringIO())

        assert RecalculationJob.objects.count() == 2

    def test_default_retention_from_settings(self, settings):
        """Without --minutes, TEMPORAL_RECORDS_JOB_RETENTION_SECONDS applies."""
        settings.TEMPORAL_RECORDS_JOB_RETENTION_SECONDS = 600
        make_job('old', RecalculationJob.Status.COMPLETED, 11)
        make_job('new', RecalculationJob.Status.COMPLETED, 9)

        call_command('cleanup_recalculation_jobs', stdout=StringIO())

        assert list(RecalculationJob.objects.values_list('job_id', flat=True)) == ['new']

    def test_dry_run_does_not_delete(self):
        """--dry-run reports counts by status without deleting."""
        make_job('done', RecalculationJob.Status.COMPLETED, 120)
        make_job('failed', RecalculationJob.Status.FAILED, 120)

        out = StringIO()
        call_command('cleanup_recalculation_jobs', '--minutes=60', '--dry-run', stdout=out)

        output = out.getvalue()
        assert RecalculationJob.objects.count() == 2
        assert 'Would delete 2 recalculation jobs' in output
        assert 'Completed: 1' in output
        assert 'Failed: 1' in output
