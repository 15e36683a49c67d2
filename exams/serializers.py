# school_platform/exams/serializers.py
from datetime import datetime, timezone as dt_timezone

from django.db import transaction
from rest_framework import serializers

from users.serializers import TeacherSerializer
from .models import Exam, Lesson, Question, QuestionAnswer

# --- Helper Serializers ---


class LessonSerializer(serializers.ModelSerializer):
    class Meta:
        model = Lesson
        fields = ['id', 'title']


class QuestionAnswerSerializer(serializers.ModelSerializer):
    class Meta:
        model = QuestionAnswer
        fields = ['id', 'text', 'is_correct']


class PublicQuestionAnswerSerializer(serializers.ModelSerializer):
    """Answer option without its key, for students taking the exam."""
    class Meta:
        model = QuestionAnswer
        fields = ['id', 'text']


# --- Quiz (exam + questions) ---

class QuizQuestionSerializer(serializers.ModelSerializer):
    answers = serializers.SerializerMethodField()

    class Meta:
        model = Question
        fields = ['id', 'text', 'answers']

    def get_answers(self, obj):
        # Answers are always eager-loaded with the keys; only the shape decides what leaves
        if self.context.get('reveal_answers'):
            return QuestionAnswerSerializer(obj.answers.all(), many=True).data
        return PublicQuestionAnswerSerializer(obj.answers.all(), many=True).data


class QuizSerializer(serializers.ModelSerializer):
    lesson = LessonSerializer(read_only=True)
    questions = QuizQuestionSerializer(many=True, read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'description', 'duration', 'started_at', 'finished_at',
            'lesson', 'questions',
        ]


# --- Exam Serializers ---

class ExamListSerializer(serializers.ModelSerializer):
    teacher = TeacherSerializer(read_only=True)

    class Meta:
        model = Exam
        fields = [
            'id', 'title', 'description', 'lesson_id', 'teacher',
            'duration', 'started_at', 'finished_at', 'created_at',
        ]


class ExamCreateSerializer(serializers.Serializer):
    # Minutes; capped at the PositiveIntegerField limit
    duration = serializers.IntegerField(min_value=1, max_value=2147483647)
    title = serializers.CharField(max_length=255)
    # Unix timestamp in seconds
    startedAt = serializers.IntegerField(min_value=0)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate_startedAt(self, value):
        try:
            return datetime.fromtimestamp(value, tz=dt_timezone.utc)
        except (OverflowError, OSError, ValueError):
            raise serializers.ValidationError("startedAt is not a valid timestamp.")

    def validate(self, attrs):
        try:
            Exam.compute_finished_at(attrs['startedAt'], attrs['duration'])
        except OverflowError:
            raise serializers.ValidationError({'duration': "The exam would finish past the supported date range."})
        return attrs


class ExamQuestionsSerializer(serializers.Serializer):
    questions = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)


# --- Question bank ---

class QuestionSerializer(serializers.ModelSerializer):
    answers = QuestionAnswerSerializer(many=True)

    class Meta:
        model = Question
        fields = ['id', 'text', 'is_accepted', 'author', 'answers', 'created_at']
        read_only_fields = ['is_accepted', 'author', 'created_at']

    def validate_answers(self, value):
        if len(value) < 2:
            raise serializers.ValidationError("A question needs at least two answers.")
        if sum(1 for answer in value if answer.get('is_correct')) != 1:
            raise serializers.ValidationError("Exactly one answer must be marked correct.")
        return value

    @transaction.atomic
    def create(self, validated_data):
        answers = validated_data.pop('answers')
        question = Question.objects.create(**validated_data)
        QuestionAnswer.objects.bulk_create(
            QuestionAnswer(question=question, **answer) for answer in answers
        )
        return question
