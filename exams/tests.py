from datetime import datetime, timedelta, timezone as dt_timezone

from django.contrib.auth import get_user_model
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from assessments.models import ExamSession
from cores.outcomes import ErrorKind
from .models import Exam, Lesson, Question, QuestionAnswer
from .services import ExamService

User = get_user_model()


def make_user(name, role):
    return User.objects.create_user(
        username=name, email=f"{name}@school.test", password="secret-pass-123", role=role,
        first_name=name.title(), last_name="Tester",
    )


def make_question(text, accepted=True, correct="4", wrong=("3", "5")):
    question = Question.objects.create(text=text, is_accepted=accepted)
    QuestionAnswer.objects.create(question=question, text=correct, is_correct=True)
    for option in wrong:
        QuestionAnswer.objects.create(question=question, text=option, is_correct=False)
    return question


class ExamFixturesMixin:
    def setUp(self):
        self.teacher = make_user("teacher", User.Role.TEACHER)
        self.other_teacher = make_user("intruder", User.Role.TEACHER)
        self.student = make_user("student", User.Role.STUDENT)
        self.admin = make_user("admin", User.Role.ADMIN)
        self.lesson = Lesson.objects.create(title="Mathematics", teacher=self.teacher)
        self.lesson.students.add(self.student)

    def make_exam(self, title="Midterm", started_at=None, duration=60, lesson=None):
        return Exam.objects.create(
            lesson=lesson or self.lesson,
            teacher=(lesson or self.lesson).teacher,
            title=title,
            duration=duration,
            started_at=started_at or timezone.now() - timedelta(minutes=10),
        )


class CreateExamTests(ExamFixturesMixin, APITestCase):
    def url(self, lesson_id=None):
        return reverse('lesson-exam-create', args=[lesson_id or self.lesson.id])

    def test_create_exam_derives_finish_time_from_duration(self):
        started = int((timezone.now() + timedelta(days=1)).timestamp())
        self.client.force_authenticate(self.teacher)

        response = self.client.post(self.url(), {
            'duration': 60, 'title': 'Final', 'startedAt': started, 'description': 'Chapters 1-4',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data'], [])
        self.assertIn('message', response.data)

        exam = Exam.objects.get(title='Final')
        self.assertEqual(exam.started_at, datetime.fromtimestamp(started, tz=dt_timezone.utc))
        self.assertEqual(exam.finished_at - exam.started_at, timedelta(minutes=60))
        self.assertEqual(exam.teacher, self.teacher)
        self.assertEqual(exam.description, 'Chapters 1-4')

    def test_teacher_cannot_create_exam_for_foreign_lesson(self):
        self.client.force_authenticate(self.other_teacher)

        response = self.client.post(self.url(), {
            'duration': 30, 'title': 'Hijack', 'startedAt': 1700000000,
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['success'])
        self.assertFalse(Exam.objects.exists())

    def test_missing_lesson_is_not_found(self):
        self.client.force_authenticate(self.teacher)
        response = self.client.post(self.url(9999), {
            'duration': 30, 'title': 'Ghost', 'startedAt': 1700000000,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_required_fields_are_validated(self):
        self.client.force_authenticate(self.teacher)

        response = self.client.post(self.url(), {'duration': 30}, format='json')

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertIn('title', response.data['data'])
        self.assertIn('startedAt', response.data['data'])
        self.assertTrue(response.data['message'])

    def test_duration_must_be_positive(self):
        self.client.force_authenticate(self.teacher)
        response = self.client.post(self.url(), {
            'duration': 0, 'title': 'Zero', 'startedAt': 1700000000,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('duration', response.data['data'])

    def test_duration_above_column_limit_is_rejected(self):
        self.client.force_authenticate(self.teacher)
        response = self.client.post(self.url(), {
            'duration': 10 ** 12, 'title': 'Forever', 'startedAt': 1700000000,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('duration', response.data['data'])
        self.assertFalse(Exam.objects.exists())

    def test_finish_time_past_max_date_is_rejected(self):
        self.client.force_authenticate(self.teacher)
        # 9999-12-31 23:46:40 UTC; one more hour does not fit in a datetime
        response = self.client.post(self.url(), {
            'duration': 60, 'title': 'Last minute', 'startedAt': 253402300000,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])
        self.assertIn('duration', response.data['data'])
        self.assertFalse(Exam.objects.exists())

    def test_students_cannot_create_exams(self):
        self.client.force_authenticate(self.student)
        response = self.client.post(self.url(), {
            'duration': 30, 'title': 'Nope', 'startedAt': 1700000000,
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(response.data['success'])

    def test_anonymous_request_is_rejected_with_envelope(self):
        response = self.client.post(self.url(), {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])


class SelectExamQuestionsTests(ExamFixturesMixin, APITestCase):
    def setUp(self):
        super().setUp()
        self.exam = self.make_exam()
        self.q1 = make_question("2+2?")
        self.q2 = make_question("3+1?")
        self.q3 = make_question("1+3?")
        self.pending = make_question("draft", accepted=False)
        self.client.force_authenticate(self.teacher)

    def url(self, lesson_id=None, exam_id=None):
        return reverse('lesson-exam-questions', args=[lesson_id or self.lesson.id, exam_id or self.exam.id])

    def test_only_accepted_questions_are_attached(self):
        response = self.client.post(self.url(), {'questions': [self.q1.id, self.pending.id]}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(set(self.exam.questions.values_list('id', flat=True)), {self.q1.id})

    def test_repeated_calls_union_without_duplicates(self):
        self.client.post(self.url(), {'questions': [self.q1.id, self.q2.id]}, format='json')
        self.client.post(self.url(), {'questions': [self.q2.id, self.q3.id]}, format='json')
        self.client.post(self.url(), {'questions': [self.q2.id, self.q3.id]}, format='json')

        self.assertEqual(
            sorted(self.exam.questions.values_list('id', flat=True)),
            sorted([self.q1.id, self.q2.id, self.q3.id]),
        )
        self.assertEqual(Exam.questions.through.objects.filter(exam=self.exam).count(), 3)

    def test_exam_must_belong_to_lesson(self):
        other_lesson = Lesson.objects.create(title="Physics", teacher=self.teacher)
        response = self.client.post(self.url(lesson_id=other_lesson.id), {'questions': [self.q1.id]}, format='json')

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(self.exam.questions.exists())

    def test_other_teacher_cannot_select_questions(self):
        self.client.force_authenticate(self.other_teacher)
        response = self.client.post(self.url(), {'questions': [self.q1.id]}, format='json')
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(self.exam.questions.exists())

    def test_questions_must_be_a_non_empty_list(self):
        response = self.client.post(self.url(), {'questions': []}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        response = self.client.post(self.url(), {'questions': 'abc'}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)


class ExamListTests(ExamFixturesMixin, APITestCase):
    def setUp(self):
        super().setUp()
        self.url = reverse('exams-list')
        self.client.force_authenticate(self.student)

    def test_default_page_size_is_twenty(self):
        for i in range(25):
            self.make_exam(title=f"Quiz {i}")

        response = self.client.get(self.url)

        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['count'], 25)
        self.assertEqual(len(response.data['data']['results']), 20)
        self.assertIsNotNone(response.data['data']['next'])

    def test_per_page_and_page(self):
        for i in range(7):
            self.make_exam(title=f"Quiz {i}")

        response = self.client.get(self.url, {'perPage': 5, 'page': 2})

        self.assertEqual(len(response.data['data']['results']), 2)

    @override_settings(EXAM_LIST_MAX_PAGE_SIZE=3)
    def test_per_page_is_capped(self):
        for i in range(5):
            self.make_exam(title=f"Quiz {i}")
        response = self.client.get(self.url, {'perPage': 50})
        self.assertEqual(len(response.data['data']['results']), 3)

    def test_title_filter_is_case_insensitive_substring(self):
        self.make_exam(title="Algebra Midterm")
        self.make_exam(title="basic ALGEBRA")
        self.make_exam(title="Geometry")

        response = self.client.get(self.url, {'title': 'algebra'})

        titles = {exam['title'] for exam in response.data['data']['results']}
        self.assertEqual(titles, {"Algebra Midterm", "basic ALGEBRA"})

    def test_ordering_defaults_to_newest_first(self):
        first = self.make_exam(title="first")
        second = self.make_exam(title="second")

        newest = self.client.get(self.url).data['data']['results']
        oldest = self.client.get(self.url, {'order': 'asc'}).data['data']['results']

        self.assertEqual([e['id'] for e in newest], [second.id, first.id])
        self.assertEqual([e['id'] for e in oldest], [first.id, second.id])

    def test_invalid_order_is_rejected(self):
        response = self.client.get(self.url, {'order': 'sideways'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])

    def test_teacher_is_attached(self):
        self.make_exam()
        exam = self.client.get(self.url).data['data']['results'][0]
        self.assertEqual(exam['teacher']['id'], self.teacher.id)
        self.assertEqual(exam['teacher']['full_name'], "Teacher Tester")

    def test_page_out_of_range_is_not_found(self):
        response = self.client.get(self.url, {'page': 9})
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['success'])


class ExamDetailTests(ExamFixturesMixin, APITestCase):
    def setUp(self):
        super().setUp()
        self.exam = self.make_exam()
        self.exam.questions.add(make_question("2+2?"))

    def test_owner_sees_questions_with_answer_keys(self):
        self.client.force_authenticate(self.teacher)

        response = self.client.get(reverse('exams-detail', args=[self.exam.id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual(data['id'], self.exam.id)
        self.assertEqual(data['lesson']['title'], "Mathematics")
        answers = data['questions'][0]['answers']
        self.assertEqual(sum(1 for a in answers if a['is_correct']), 1)

    def test_other_teacher_is_forbidden(self):
        self.client.force_authenticate(self.other_teacher)
        response = self.client.get(reverse('exams-detail', args=[self.exam.id]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertFalse(response.data['success'])

    def test_students_cannot_view_answer_keys(self):
        self.client.force_authenticate(self.student)
        response = self.client.get(reverse('exams-detail', args=[self.exam.id]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_missing_exam(self):
        self.client.force_authenticate(self.teacher)
        response = self.client.get(reverse('exams-detail', args=[424242]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)


class QuestionBankTests(ExamFixturesMixin, APITestCase):
    payload = {
        'text': 'Capital of France?',
        'answers': [
            {'text': 'Paris', 'is_correct': True},
            {'text': 'Lyon', 'is_correct': False},
        ],
    }

    def test_teacher_submits_question_pending_review(self):
        self.client.force_authenticate(self.teacher)

        response = self.client.post(reverse('questions-list'), self.payload, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        question = Question.objects.get(text='Capital of France?')
        self.assertFalse(question.is_accepted)
        self.assertEqual(question.author, self.teacher)
        self.assertEqual(question.answers.count(), 2)

    def test_question_needs_exactly_one_correct_answer(self):
        self.client.force_authenticate(self.teacher)
        payload = dict(self.payload, answers=[
            {'text': 'Paris', 'is_correct': True},
            {'text': 'Lyon', 'is_correct': True},
        ])
        response = self.client.post(reverse('questions-list'), payload, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('answers', response.data['data'])

    def test_admin_accepts_question(self):
        question = make_question("pending", accepted=False)
        self.client.force_authenticate(self.admin)

        response = self.client.post(reverse('questions-accept', args=[question.id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        question.refresh_from_db()
        self.assertTrue(question.is_accepted)

    def test_teacher_cannot_accept_question(self):
        question = make_question("pending", accepted=False)
        self.client.force_authenticate(self.teacher)
        response = self.client.post(reverse('questions-accept', args=[question.id]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_filter_accepted(self):
        make_question("yes", accepted=True)
        make_question("no", accepted=False)
        self.client.force_authenticate(self.teacher)

        response = self.client.get(reverse('questions-list'), {'accepted': '1'})

        self.assertEqual([q['text'] for q in response.data['data']['results']], ["yes"])


class ExamServiceTests(ExamFixturesMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.start = timezone.now().replace(microsecond=0)
        self.exam = self.make_exam(started_at=self.start, duration=60)
        self.exam.questions.add(make_question("2+2?"))
        self.service = ExamService(self.exam, self.student)

    def test_window_bounds_are_inclusive(self):
        self.assertIsNone(self.service.check_exam_availability(now=self.start))
        self.assertIsNone(self.service.check_exam_availability(now=self.start + timedelta(minutes=60)))

    def test_rejects_before_and_after_window(self):
        early = self.service.check_exam_availability(now=self.start - timedelta(seconds=1))
        late = self.service.check_exam_availability(now=self.start + timedelta(minutes=60, seconds=1))

        self.assertEqual(early.kind, ErrorKind.ELIGIBILITY)
        self.assertEqual(late.kind, ErrorKind.ELIGIBILITY)

    def test_rejects_students_outside_the_lesson(self):
        outsider = make_user("outsider", User.Role.STUDENT)
        failure = ExamService(self.exam, outsider).check_exam_availability(now=self.start)
        self.assertEqual(failure.kind, ErrorKind.ELIGIBILITY)

    def test_rejects_teachers(self):
        failure = ExamService(self.exam, self.teacher).check_exam_availability(now=self.start)
        self.assertIsNotNone(failure)

    def test_rejects_exam_without_questions(self):
        empty = self.make_exam(title="empty", started_at=self.start)
        failure = ExamService(empty, self.student).check_exam_availability(now=self.start)
        self.assertIsNotNone(failure)

    def test_rejects_second_start(self):
        ExamSession.objects.create(student=self.student, exam=self.exam, started_at=self.start)
        failure = self.service.check_exam_availability(now=self.start)
        self.assertEqual(failure.kind, ErrorKind.ELIGIBILITY)

    def test_finish_rules(self):
        session = ExamSession.objects.create(student=self.student, exam=self.exam, started_at=self.start)

        self.assertIsNone(self.service.can_user_finish_exam(session, now=self.start + timedelta(minutes=60)))
        self.assertIsNotNone(
            self.service.can_user_finish_exam(session, now=self.start + timedelta(minutes=60, seconds=1))
        )

        session.finished_at = self.start + timedelta(minutes=5)
        self.assertIsNotNone(self.service.can_user_finish_exam(session, now=self.start + timedelta(minutes=6)))

    @override_settings(EXAM_FINISH_GRACE_SECONDS=30)
    def test_finish_grace_period(self):
        session = ExamSession.objects.create(student=self.student, exam=self.exam, started_at=self.start)
        self.assertIsNone(
            self.service.can_user_finish_exam(session, now=self.start + timedelta(minutes=60, seconds=30))
        )
