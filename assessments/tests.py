from datetime import timedelta
from io import StringIO
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.test import TestCase, override_settings
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase, APITransactionTestCase

from exams.models import Exam, Lesson, Question, QuestionAnswer
from . import jobs
from .jobs import enqueue_answers, insert_answers, run_job
from .models import AnswerIngestionJob, ExamSession, StudentAnswer, StudentResult

User = get_user_model()


class ExamFlowMixin:
    def setUp(self):
        self.teacher = User.objects.create_user(
            username="teacher", email="teacher@school.test", password="secret-pass-123",
            role=User.Role.TEACHER, first_name="Tina", last_name="Teacher",
        )
        self.student = User.objects.create_user(
            username="student", email="student@school.test", password="secret-pass-123",
            role=User.Role.STUDENT,
        )
        self.lesson = Lesson.objects.create(title="Mathematics", teacher=self.teacher)
        self.lesson.students.add(self.student)
        self.exam = self.make_exam()

    def make_exam(self, title="Midterm", started_at=None, duration=60, questions=3):
        exam = Exam.objects.create(
            lesson=self.lesson, teacher=self.teacher, title=title, duration=duration,
            started_at=started_at or timezone.now() - timedelta(minutes=30),
        )
        for i in range(questions):
            question = Question.objects.create(text=f"{title} question {i}", is_accepted=True)
            QuestionAnswer.objects.create(question=question, text="right", is_correct=True)
            QuestionAnswer.objects.create(question=question, text="wrong", is_correct=False)
            exam.questions.add(question)
        return exam

    def key(self, question, correct=True):
        return question.answers.get(is_correct=correct).id

    def start(self, exam=None):
        return self.client.post(reverse('start-exam', args=[(exam or self.exam).id]))

    def finish(self, answers, exam=None):
        return self.client.post(reverse('finish-exam', args=[(exam or self.exam).id]), {'answers': answers}, format='json')


@override_settings(ANSWER_INGESTION_BACKEND='immediate')
class StartExamTests(ExamFlowMixin, APITestCase):
    def setUp(self):
        super().setUp()
        self.client.force_authenticate(self.student)

    def test_start_returns_questions_without_answer_keys(self):
        response = self.start()

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        data = response.data['data']
        self.assertEqual(data['id'], self.exam.id)
        self.assertEqual(len(data['questions']), 3)
        for question in data['questions']:
            self.assertEqual(len(question['answers']), 2)
            for answer in question['answers']:
                self.assertNotIn('is_correct', answer)

        session = ExamSession.objects.get(student=self.student, exam=self.exam)
        self.assertIsNone(session.finished_at)
        self.assertEqual(session.status, "in_progress")

    def test_second_start_is_rejected(self):
        self.start()
        response = self.start()

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertFalse(response.data['success'])
        self.assertEqual(ExamSession.objects.filter(student=self.student, exam=self.exam).count(), 1)

    def test_concurrent_duplicate_start_hits_unique_constraint(self):
        ExamSession.objects.create(student=self.student, exam=self.exam, started_at=timezone.now())

        with mock.patch('assessments.services.ExamService.check_exam_availability', return_value=None):
            response = self.start()

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertEqual(ExamSession.objects.count(), 1)

    def test_start_inside_window_succeeds(self):
        exam = self.make_exam(title="window", started_at=timezone.now() - timedelta(minutes=59), duration=60)
        self.assertEqual(self.start(exam).status_code, status.HTTP_200_OK)

    def test_start_after_window_is_rejected(self):
        exam = self.make_exam(title="closed", started_at=timezone.now() - timedelta(minutes=61), duration=60)

        response = self.start(exam)

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertFalse(ExamSession.objects.filter(exam=exam).exists())

    def test_start_before_window_is_rejected(self):
        exam = self.make_exam(title="later", started_at=timezone.now() + timedelta(hours=1))
        self.assertEqual(self.start(exam).status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)

    def test_missing_exam(self):
        response = self.client.post(reverse('start-exam', args=[987654]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['success'])

    def test_unexpected_errors_become_failure_envelope(self):
        with mock.patch('assessments.services.ExamService.check_exam_availability', side_effect=RuntimeError("boom")):
            response = self.start()

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertEqual(response.data, {'success': False, 'data': [], 'message': 'boom'})


@override_settings(ANSWER_INGESTION_BACKEND='immediate')
class FinishExamTests(ExamFlowMixin, APITestCase):
    def setUp(self):
        super().setUp()
        self.client.force_authenticate(self.student)
        self.q1, self.q2, self.q3 = self.exam.questions.order_by('id')

    def test_finish_without_start_is_not_found(self):
        response = self.finish([{'question': self.q1.id, 'answer': self.key(self.q1)}])

        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['success'])
        self.assertFalse(AnswerIngestionJob.objects.exists())

    def test_finish_grades_answers_after_commit(self):
        self.start()

        with self.captureOnCommitCallbacks(execute=True):
            response = self.finish([
                {'question': self.q1.id, 'answer': self.key(self.q1)},
                {'question': self.q2.id, 'answer': self.key(self.q2, correct=False)},
                {'question': self.q3.id, 'answer': None},
            ])

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data'], [])

        session = ExamSession.objects.get(student=self.student, exam=self.exam)
        self.assertIsNotNone(session.finished_at)

        job = AnswerIngestionJob.objects.get()
        self.assertEqual(job.status, AnswerIngestionJob.Status.SUCCEEDED)
        self.assertEqual(job.attempts, 1)

        result = StudentResult.objects.get(student=self.student, exam=self.exam)
        self.assertEqual((result.correct_count, result.wrong_count, result.blank_count), (1, 1, 1))
        self.assertEqual(str(result.score), "33.33")
        self.assertEqual(result.teacher, self.teacher)
        self.assertEqual(StudentAnswer.objects.filter(student=self.student).count(), 3)

    def test_second_finish_is_rejected_and_keeps_first_timestamp(self):
        self.start()
        answers = [{'question': self.q1.id, 'answer': self.key(self.q1)}]
        with self.captureOnCommitCallbacks(execute=True):
            self.finish(answers)
        first = ExamSession.objects.get(student=self.student, exam=self.exam).finished_at

        response = self.finish(answers)

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertFalse(response.data['success'])
        self.assertEqual(ExamSession.objects.get(student=self.student, exam=self.exam).finished_at, first)
        self.assertEqual(AnswerIngestionJob.objects.count(), 1)

    def test_finish_after_exam_closed_is_rejected(self):
        closed = self.make_exam(title="closed", started_at=timezone.now() - timedelta(hours=2), duration=60)
        ExamSession.objects.create(
            student=self.student, exam=closed, started_at=closed.started_at + timedelta(minutes=1)
        )

        response = self.finish([{'question': self.q1.id, 'answer': None}], exam=closed)

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertIsNone(ExamSession.objects.get(exam=closed).finished_at)

    def test_answers_are_required(self):
        self.start()
        response = self.client.post(reverse('finish-exam', args=[self.exam.id]), {}, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('answers', response.data['data'])

    @override_settings(ANSWER_INGESTION_BACKEND='deferred')
    def test_deferred_jobs_are_drained_by_worker(self):
        self.start()
        with self.captureOnCommitCallbacks(execute=True):
            self.finish([{'question': self.q1.id, 'answer': self.key(self.q1)}])

        job = AnswerIngestionJob.objects.get()
        self.assertEqual(job.status, AnswerIngestionJob.Status.PENDING)
        self.assertFalse(StudentResult.objects.exists())

        out = StringIO()
        call_command('process_answer_jobs', stdout=out)

        job.refresh_from_db()
        self.assertEqual(job.status, AnswerIngestionJob.Status.SUCCEEDED)
        self.assertIn("1 succeeded", out.getvalue())
        self.assertEqual(StudentResult.objects.get().correct_count, 1)


@override_settings(ANSWER_INGESTION_BACKEND='thread')
class ThreadBackendTests(ExamFlowMixin, APITransactionTestCase):
    def setUp(self):
        super().setUp()
        self.client.force_authenticate(self.student)
        self.threads = []
        launch = jobs.run_in_background

        def capture(target_fn, job_id):
            thread = launch(target_fn, job_id)
            self.threads.append(thread)
            return thread

        patcher = mock.patch('assessments.jobs.run_in_background', side_effect=capture)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_finish_grades_answers_in_background_thread(self):
        q1, q2, q3 = self.exam.questions.order_by('id')
        self.start()

        with mock.patch.object(jobs.connections, 'close_all', wraps=jobs.connections.close_all) as close_all:
            response = self.finish([
                {'question': q1.id, 'answer': self.key(q1)},
                {'question': q2.id, 'answer': self.key(q2)},
                {'question': q3.id, 'answer': None},
            ])
            self.assertEqual(len(self.threads), 1)
            self.threads[0].join(timeout=10)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertFalse(self.threads[0].is_alive())
        self.assertTrue(self.threads[0].name.startswith("answer-ingestion-"))
        close_all.assert_called_once_with()

        job = AnswerIngestionJob.objects.get()
        self.assertEqual(job.status, AnswerIngestionJob.Status.SUCCEEDED)
        result = StudentResult.objects.get(student=self.student, exam=self.exam)
        self.assertEqual((result.correct_count, result.wrong_count, result.blank_count), (2, 0, 1))


class IngestionJobTests(ExamFlowMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.q1, self.q2, self.q3 = self.exam.questions.order_by('id')

    def make_job(self, payload):
        return AnswerIngestionJob.objects.create(student=self.student, exam=self.exam, payload=payload)

    def test_insert_answers_skips_foreign_questions_and_answers(self):
        stranger = Question.objects.create(text="not in exam", is_accepted=True)
        job = self.make_job([
            {'question': self.q1.id, 'answer': self.key(self.q1)},
            {'question': stranger.id, 'answer': None},
            {'question': self.q2.id, 'answer': self.key(self.q1)},
            "garbage",
        ])

        result = insert_answers(job)

        self.assertEqual((result.correct_count, result.wrong_count, result.blank_count), (1, 0, 2))
        self.assertFalse(StudentAnswer.objects.filter(question=stranger).exists())
        self.assertIsNone(StudentAnswer.objects.get(question=self.q2).answer)

    def test_last_answer_for_a_question_wins(self):
        job = self.make_job([
            {'question': self.q1.id, 'answer': self.key(self.q1, correct=False)},
            {'question': self.q1.id, 'answer': self.key(self.q1)},
        ])
        result = insert_answers(job)
        self.assertEqual(result.correct_count, 1)
        self.assertEqual(StudentAnswer.objects.filter(question=self.q1).count(), 1)

    def test_full_marks(self):
        job = self.make_job([{'question': q.id, 'answer': self.key(q)} for q in (self.q1, self.q2, self.q3)])
        self.assertEqual(str(insert_answers(job).score), "100.00")

    def test_failed_job_is_recorded_and_can_be_retried(self):
        job = self.make_job([{'question': self.q1.id, 'answer': self.key(self.q1)}])

        with mock.patch('assessments.jobs.insert_answers', side_effect=RuntimeError("database went away")):
            run_job(job.pk)

        job.refresh_from_db()
        self.assertEqual(job.status, AnswerIngestionJob.Status.FAILED)
        self.assertEqual(job.error, "database went away")
        self.assertFalse(StudentResult.objects.exists())

        call_command('process_answer_jobs', stdout=StringIO())
        job.refresh_from_db()
        self.assertEqual(job.status, AnswerIngestionJob.Status.FAILED)

        call_command('process_answer_jobs', '--retry-failed', stdout=StringIO())
        job.refresh_from_db()
        self.assertEqual(job.status, AnswerIngestionJob.Status.SUCCEEDED)
        self.assertEqual(job.attempts, 2)
        self.assertEqual(job.error, '')

    def test_finished_job_is_not_run_again(self):
        job = self.make_job([])
        run_job(job.pk)
        self.assertIsNone(run_job(job.pk))

    @override_settings(ANSWER_INGESTION_BACKEND='celery')
    def test_unknown_backend_is_a_configuration_error(self):
        from django.core.exceptions import ImproperlyConfigured
        with self.assertRaises(ImproperlyConfigured):
            enqueue_answers(self.student, self.exam, [])


class ResultTests(ExamFlowMixin, APITestCase):
    def setUp(self):
        super().setUp()
        self.client.force_authenticate(self.student)

    def grade(self, exam, student=None, score="50.00"):
        return StudentResult.objects.create(
            student=student or self.student, exam=exam, teacher=exam.teacher,
            correct_count=1, wrong_count=1, blank_count=1, score=score,
        )

    def test_result_not_ready_is_not_found(self):
        response = self.client.get(reverse('exam-result', args=[self.exam.id]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertFalse(response.data['success'])

    def test_missing_result_is_logged(self):
        with self.assertLogs('assessments.services', level='INFO') as logs:
            self.client.get(reverse('exam-result', args=[self.exam.id]))

        self.assertIn(f"No result yet for student {self.student.pk} on exam {self.exam.id}", logs.output[0])

    def test_result_includes_exam_and_teacher(self):
        self.grade(self.exam)

        response = self.client.get(reverse('exam-result', args=[self.exam.id]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        data = response.data['data']
        self.assertEqual(data['score'], "50.00")
        self.assertEqual(data['exam']['id'], self.exam.id)
        self.assertEqual(data['exam']['teacher']['full_name'], "Tina Teacher")

    def test_other_students_results_are_invisible(self):
        classmate = User.objects.create_user(
            username="classmate", email="classmate@school.test", password="secret-pass-123",
        )
        self.grade(self.exam, student=classmate)

        response = self.client.get(reverse('exam-result', args=[self.exam.id]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

        listing = self.client.get(reverse('student-results'))
        self.assertEqual(listing.data['data']['count'], 0)

    def test_all_results_page_size_is_ten(self):
        for i in range(12):
            self.grade(self.make_exam(title=f"exam {i}", questions=0))

        response = self.client.get(reverse('student-results'))

        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['data']['count'], 12)
        self.assertEqual(len(response.data['data']['results']), 10)

        second = self.client.get(reverse('student-results'), {'page': 2, 'perPage': 50})
        self.assertEqual(len(second.data['data']['results']), 2)
