from rest_framework import serializers

from exams.models import Exam
from users.serializers import TeacherSerializer
from .models import StudentResult


class ResultExamSerializer(serializers.ModelSerializer):
    teacher = TeacherSerializer(read_only=True)

    class Meta:
        model = Exam
        fields = ['id', 'title', 'started_at', 'finished_at', 'teacher']


class ResultSerializer(serializers.ModelSerializer):
    exam = ResultExamSerializer(read_only=True)

    class Meta:
        model = StudentResult
        fields = ['id', 'exam', 'correct_count', 'wrong_count', 'blank_count', 'score', 'created_at']


class AnswerSubmitSerializer(serializers.Serializer):
    question = serializers.IntegerField()
    # null leaves the question blank
    answer = serializers.IntegerField(allow_null=True, required=False, default=None)


class ExamFinishSerializer(serializers.Serializer):
    answers = AnswerSubmitSerializer(many=True, allow_empty=False)
