from django.core.management.base import BaseCommand

from assessments.jobs import run_job
from assessments.models import AnswerIngestionJob


class Command(BaseCommand):
    help = 'Grades queued answer submissions (the worker for the deferred ingestion backend)'

    def add_arguments(self, parser):
        parser.add_argument('--limit', type=int, default=None, help='Process at most this many jobs')
        parser.add_argument('--retry-failed', action='store_true', help='Also retry jobs that failed before')

    def handle(self, *args, **options):
        statuses = [AnswerIngestionJob.Status.PENDING]
        if options['retry_failed']:
            statuses.append(AnswerIngestionJob.Status.FAILED)

        job_ids = AnswerIngestionJob.objects.filter(status__in=statuses).values_list('id', flat=True)
        if options['limit']:
            job_ids = job_ids[:options['limit']]

        succeeded = failed = 0
        for job_id in list(job_ids):
            job = run_job(job_id)
            if job is None:
                continue
            if job.status == AnswerIngestionJob.Status.SUCCEEDED:
                succeeded += 1
            else:
                failed += 1
                self.stdout.write(self.style.ERROR(f"Job {job.pk} failed: {job.error}"))

        self.stdout.write(self.style.SUCCESS(f"Processed {succeeded + failed} jobs ({succeeded} succeeded, {failed} failed)"))
