"""
Answer ingestion queue.

Submitted answers are persisted as an ``AnswerIngestionJob`` and graded
outside the request. The queue backend is picked by the
``ANSWER_INGESTION_BACKEND`` setting:

    thread     run in a background thread with its own DB connection
    immediate  run in-process right after the request's transaction commits
    deferred   leave the job pending for ``manage.py process_answer_jobs``

Usage:
    from assessments.jobs import enqueue_answers

    job_id = enqueue_answers(student, exam, [{"question": 1, "answer": 3}])
"""
import logging
import threading
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import connections, transaction
from django.utils import timezone

from .models import AnswerIngestionJob, StudentAnswer, StudentResult

logger = logging.getLogger(__name__)

BACKENDS = ('thread', 'immediate', 'deferred')


def _backend():
    backend = settings.ANSWER_INGESTION_BACKEND
    if backend not in BACKENDS:
        raise ImproperlyConfigured(
            f"ANSWER_INGESTION_BACKEND must be one of {', '.join(BACKENDS)}, got {backend!r}"
        )
    return backend


def enqueue_answers(student, exam, answers):
    """
    Queue grading of ``answers`` for ``student`` in ``exam``.

    The job row is written in the caller's transaction and only dispatched
    once that transaction commits, so a rolled back submission never
    reaches the worker.

    Returns:
        The id of the created AnswerIngestionJob.
    """
    backend = _backend()
    job = AnswerIngestionJob.objects.create(student=student, exam=exam, payload=list(answers))
    logger.info(f"Enqueued answer ingestion job {job.pk} (exam={exam.pk}, student={student.pk}, backend={backend})")
    transaction.on_commit(lambda: dispatch(job.pk, backend))
    return job.pk


def dispatch(job_id, backend=None):
    backend = backend or _backend()
    if backend == 'immediate':
        return run_job(job_id)
    if backend == 'thread':
        return run_in_background(run_job, job_id)
    logger.info(f"Job {job_id} left for the worker")
    return None


def run_in_background(target_fn, job_id):
    """Run ``target_fn(job_id)`` in a daemon thread and release its DB connection afterwards."""
    def wrapper():
        try:
            target_fn(job_id)
        except Exception:
            logger.error(f"Background job {job_id} crashed outside of run_job", exc_info=True)
        finally:
            connections.close_all()

    thread = threading.Thread(target=wrapper, daemon=True, name=f"answer-ingestion-{job_id}")
    thread.start()
    logger.info(f"Launched background task: {target_fn.__name__} (job_id={job_id})")
    return thread


def run_job(job_id):
    """
    Move one job pending (or failed) → running → succeeded | failed.

    Returns the job, or ``None`` when it was already taken by another worker
    or finished.
    """
    with transaction.atomic():
        job = (
            AnswerIngestionJob.objects.select_for_update()
            .filter(pk=job_id, status__in=[AnswerIngestionJob.Status.PENDING, AnswerIngestionJob.Status.FAILED])
            .first()
        )
        if job is None:
            logger.info(f"Job {job_id} is not runnable, skipping")
            return None
        job.status = AnswerIngestionJob.Status.RUNNING
        job.attempts += 1
        job.started_at = timezone.now()
        job.save(update_fields=['status', 'attempts', 'started_at'])

    try:
        with transaction.atomic():
            result = insert_answers(job)
    except Exception as e:
        logger.error(f"Answer ingestion job {job.pk} failed: {e}", exc_info=True)
        job.status = AnswerIngestionJob.Status.FAILED
        job.error = str(e)
        job.finished_at = timezone.now()
        job.save(update_fields=['status', 'error', 'finished_at'])
        return job

    job.status = AnswerIngestionJob.Status.SUCCEEDED
    job.error = ''
    job.finished_at = timezone.now()
    job.save(update_fields=['status', 'error', 'finished_at'])
    logger.info(f"Answer ingestion job {job.pk} succeeded (result={result.pk}, score={result.score})")
    return job


def insert_answers(job):
    """
    Store the student's answers for the job's exam and grade them.

    Items look like ``{"question": <id>, "answer": <id or null>}``. Items
    naming a question outside the exam are dropped; an answer that does not
    belong to its question counts as blank. When a question appears twice
    the last item wins.
    """
    exam = job.exam
    questions = {q.pk: q for q in exam.questions.prefetch_related('answers')}

    chosen_by_question = {}
    for item in job.payload:
        if not isinstance(item, dict):
            logger.warning(f"Job {job.pk}: ignoring malformed answer item {item!r}")
            continue
        question = questions.get(item.get('question'))
        if question is None:
            logger.warning(f"Job {job.pk}: question {item.get('question')!r} is not part of exam {exam.pk}")
            continue

        answer_id = item.get('answer')
        chosen = None
        if answer_id is not None:
            chosen = next((a for a in question.answers.all() if a.pk == answer_id), None)
            if chosen is None:
                logger.warning(f"Job {job.pk}: answer {answer_id!r} does not belong to question {question.pk}")
        chosen_by_question[question.pk] = chosen

    for question_id, chosen in chosen_by_question.items():
        StudentAnswer.objects.update_or_create(
            student=job.student, exam=exam, question_id=question_id,
            defaults={'answer': chosen},
        )

    correct = sum(1 for chosen in chosen_by_question.values() if chosen is not None and chosen.is_correct)
    wrong = sum(1 for chosen in chosen_by_question.values() if chosen is not None and not chosen.is_correct)
    total = len(questions)
    blank = total - correct - wrong

    score = Decimal('0.00')
    if total:
        score = (Decimal(correct * 100) / Decimal(total)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    result, _ = StudentResult.objects.update_or_create(
        student=job.student, exam=exam,
        defaults={
            'teacher_id': exam.teacher_id,
            'correct_count': correct,
            'wrong_count': wrong,
            'blank_count': blank,
            'score': score,
        },
    )
    return result
