# assessments/models.py
from django.db import models
from django.conf import settings
from exams.models import Exam, Question, QuestionAnswer


class ExamSession(models.Model):
    """Tracks a student's single attempt at an exam."""
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='exam_sessions')
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name='sessions')
    started_at = models.DateTimeField()
    finished_at = models.DateTimeField(null=True, blank=True)  # When they submitted

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['student', 'exam'], name='unique_exam_session_per_student'),
        ]

    @property
    def status(self):
        if self.finished_at:
            return "finished"
        return "in_progress"

    def __str__(self):
        return f"{self.student} - {self.exam.title}"


class StudentAnswer(models.Model):
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='answers')
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name='student_answers')
    question = models.ForeignKey(Question, on_delete=models.CASCADE)
    # Null means the question was left blank
    answer = models.ForeignKey(QuestionAnswer, null=True, blank=True, on_delete=models.SET_NULL)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['student', 'exam', 'question'], name='unique_student_answer'),
        ]


class StudentResult(models.Model):
    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='results')
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name='results')
    teacher = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='graded_results'
    )

    correct_count = models.PositiveIntegerField(default=0)
    wrong_count = models.PositiveIntegerField(default=0)
    blank_count = models.PositiveIntegerField(default=0)
    score = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=['student', 'exam'], name='unique_result_per_student'),
        ]

    def __str__(self):
        return f"{self.student} - {self.exam.title}: {self.score}"


class AnswerIngestionJob(models.Model):
    """Queued hand-off of submitted answers to grading; kept for operators to inspect."""

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        RUNNING = "running", "Running"
        SUCCEEDED = "succeeded", "Succeeded"
        FAILED = "failed", "Failed"

    student = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='ingestion_jobs')
    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name='ingestion_jobs')
    payload = models.JSONField(default=list)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    attempts = models.PositiveIntegerField(default=0)
    error = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    started_at = models.DateTimeField(null=True, blank=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ['created_at', 'id']

    def __str__(self):
        return f"Job {self.pk} ({self.status}) exam={self.exam_id} student={self.student_id}"
