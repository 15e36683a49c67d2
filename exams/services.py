"""
Exam management and the eligibility rules for taking an exam.

Every function here receives the acting user explicitly and returns an
``Ok``/``Err`` outcome from ``cores.outcomes``.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.db import DatabaseError
from django.utils import timezone
from django.utils.translation import gettext as _

from cores.outcomes import Ok, Err, ErrorKind, ineligible, invalid, not_found, forbidden
from .models import Exam, Lesson, Question

logger = logging.getLogger(__name__)

ORDER_DIRECTIONS = ('asc', 'desc')


class ExamService:
    """Decides whether ``user`` may start or finish ``exam`` at a given moment."""

    def __init__(self, exam, user):
        self.exam = exam
        self.user = user

    def check_exam_availability(self, now=None):
        """Returns ``None`` when the student may start, otherwise an eligibility ``Err``."""
        from assessments.models import ExamSession

        now = now or timezone.now()
        exam = self.exam

        if not getattr(self.user, 'is_student', False):
            return ineligible(_("Only students can take exams."))
        if not exam.lesson.students.filter(pk=self.user.pk).exists():
            return ineligible(_("You are not enrolled in this lesson."))
        if now < exam.started_at:
            return ineligible(_("The exam has not started yet."))
        if now > exam.finished_at:
            return ineligible(_("The exam is over."))
        if not exam.questions.exists():
            return ineligible(_("The exam has no questions yet."))
        if ExamSession.objects.filter(student=self.user, exam=exam).exists():
            return ineligible(_("You have already started this exam."))
        return None

    def can_user_finish_exam(self, session, now=None):
        now = now or timezone.now()

        if session.finished_at is not None:
            return ineligible(_("You have already finished this exam."))
        deadline = self.exam.finished_at + timedelta(seconds=settings.EXAM_FINISH_GRACE_SECONDS)
        if now > deadline:
            return ineligible(_("The exam time is over."))
        return None


def create_exam(user, lesson_id, duration, title, started_at, description=None):
    lesson = Lesson.objects.filter(id=lesson_id, teacher=user).first()
    if lesson is None:
        # Same answer for "missing" and "not yours"
        return not_found(_("Lesson not found."))

    try:
        exam = Exam.objects.create(
            lesson=lesson,
            teacher=user,
            duration=duration,
            description=description,
            started_at=started_at,
            finished_at=Exam.compute_finished_at(started_at, duration),
            title=title,
        )
    except DatabaseError as e:
        logger.exception(f"Could not create exam for lesson {lesson_id}")
        return Err(ErrorKind.INTERNAL, str(e))

    logger.info(f"Teacher {user.pk} created exam {exam.pk} for lesson {lesson.pk}")
    return Ok([], _("Exam created."))


def select_exam_questions(user, lesson_id, exam_id, question_ids):
    """Attaches the accepted questions among ``question_ids``; never detaches."""
    exam = Exam.objects.filter(id=exam_id, lesson_id=lesson_id, lesson__teacher=user).first()
    if exam is None:
        return not_found(_("Exam not found."))

    accepted_ids = list(
        Question.objects.filter(id__in=question_ids, is_accepted=True).values_list('id', flat=True)
    )
    # add() skips rows that already exist, so repeated calls only grow the set
    exam.questions.add(*accepted_ids)

    skipped = set(question_ids) - set(accepted_ids)
    if skipped:
        logger.info(f"Exam {exam.pk}: ignored unaccepted or unknown questions {sorted(skipped)}")
    return Ok([], _("Exam questions saved."))


def exam_queryset(title=None, order=None):
    order = (order or 'desc').lower()
    if order not in ORDER_DIRECTIONS:
        return invalid(_("Order must be 'asc' or 'desc'."))

    exams = Exam.objects.select_related('teacher')
    if title:
        exams = exams.filter(title__icontains=title)
    if order == 'asc':
        exams = exams.order_by('created_at', 'id')
    else:
        exams = exams.order_by('-created_at', '-id')
    return Ok(exams)


def get_exam_for_teacher(user, exam_id):
    exam = (
        Exam.objects.filter(id=exam_id)
        .select_related('lesson', 'teacher')
        .prefetch_related('questions__answers')
        .first()
    )
    if exam is None:
        return not_found(_("Exam not found."))
    if exam.teacher_id != user.pk and not user.is_staff:
        return forbidden(_("Only the teacher of this exam can view it."))
    return Ok(exam)
