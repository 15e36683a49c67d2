"""
Student side of an exam: start, finish and results.

State of one (student, exam) pair:

    NotStarted --start--> InProgress --finish--> Finished

``start`` creates the ExamSession, ``finish`` stamps it and queues the
answers for grading. Neither transition can run twice: the eligibility
checks refuse it and the unique (student, exam) constraint backs them up
under concurrent requests.
"""
import logging

from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.translation import gettext as _

from cores.outcomes import Ok, ineligible, not_found
from exams.models import Exam
from exams.services import ExamService
from .jobs import enqueue_answers
from .models import ExamSession, StudentResult

logger = logging.getLogger(__name__)


def start_exam(user, exam_id, now=None):
    now = now or timezone.now()
    exam = (
        Exam.objects.filter(id=exam_id)
        .select_related('lesson', 'teacher')
        .prefetch_related('questions__answers')
        .first()
    )
    if exam is None:
        return not_found(_("Exam not found."))

    failure = ExamService(exam, user).check_exam_availability(now)
    if failure:
        logger.info(f"Student {user.pk} cannot start exam {exam.pk}: {failure.detail}")
        return failure

    try:
        with transaction.atomic():
            ExamSession.objects.create(student=user, exam=exam, started_at=now)
    except IntegrityError:
        logger.warning(f"Concurrent start for exam {exam.pk} by student {user.pk}")
        return ineligible(_("You have already started this exam."))

    logger.info(f"Student {user.pk} started exam {exam.pk}")
    return Ok(exam)


def finish_exam(user, exam_id, answers, now=None):
    now = now or timezone.now()
    exam = Exam.objects.filter(id=exam_id).first()
    if exam is None:
        return not_found(_("Exam not found."))

    with transaction.atomic():
        session = ExamSession.objects.select_for_update().filter(exam=exam, student=user).first()
        if session is None:
            return not_found(_("You have not started this exam."))

        failure = ExamService(exam, user).can_user_finish_exam(session, now)
        if failure:
            logger.info(f"Student {user.pk} cannot finish exam {exam.pk}: {failure.detail}")
            return failure

        session.finished_at = now
        session.save(update_fields=['finished_at'])
        job_id = enqueue_answers(user, exam, answers)

    logger.info(f"Student {user.pk} finished exam {exam.pk}; answers queued as job {job_id}")
    return Ok([], _("Your exam was submitted successfully."))


def get_result(user, exam_id):
    result = (
        StudentResult.objects.select_related('exam__teacher')
        .filter(student=user, exam_id=exam_id)
        .first()
    )
    if result is None:
        logger.info(f"No result yet for student {user.pk} on exam {exam_id}")
        return not_found(_("Result not found."))
    return Ok(result)


def result_queryset(user):
    return (
        StudentResult.objects.select_related('exam__teacher')
        .filter(student=user)
        .order_by('-created_at', '-id')
    )
