# school_platform/exams/models.py
from datetime import timedelta

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class Lesson(models.Model):
    title = models.CharField(max_length=255)
    # The teacher exclusively owns the lesson and every exam under it
    teacher = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='lessons')
    students = models.ManyToManyField(settings.AUTH_USER_MODEL, related_name='enrolled_lessons', blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.title


class Question(models.Model):
    text = models.TextField()
    # Questions sit in the bank until an admin accepts them
    is_accepted = models.BooleanField(default=False)
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL, null=True, blank=True, related_name='authored_questions'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.text[:50]}..."


class QuestionAnswer(models.Model):
    """One of the options of a question; ``is_correct`` is the answer key."""
    question = models.ForeignKey(Question, related_name='answers', on_delete=models.CASCADE)
    text = models.CharField(max_length=255)
    is_correct = models.BooleanField(default=False)

    def __str__(self):
        return self.text


class Exam(models.Model):
    lesson = models.ForeignKey(Lesson, on_delete=models.CASCADE, related_name='exams')
    teacher = models.ForeignKey(settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name='exams')
    title = models.CharField(max_length=255)
    description = models.TextField(blank=True, null=True)

    duration = models.PositiveIntegerField(validators=[MinValueValidator(1)], help_text="Minutes")
    started_at = models.DateTimeField()
    finished_at = models.DateTimeField()

    questions = models.ManyToManyField(Question, related_name='exams', blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    @staticmethod
    def compute_finished_at(started_at, duration):
        return started_at + timedelta(minutes=duration)

    def save(self, *args, **kwargs):
        if self.started_at is not None and self.duration:
            self.finished_at = self.compute_finished_at(self.started_at, self.duration)
        super().save(*args, **kwargs)

    def __str__(self):
        return self.title
