from django.contrib import admin

from .models import ExamSession, StudentAnswer, StudentResult, AnswerIngestionJob


@admin.register(ExamSession)
class ExamSessionAdmin(admin.ModelAdmin):
    list_display = ('student', 'exam', 'started_at', 'finished_at', 'status')
    list_filter = ('exam',)


@admin.register(StudentResult)
class StudentResultAdmin(admin.ModelAdmin):
    list_display = ('student', 'exam', 'correct_count', 'wrong_count', 'blank_count', 'score')


@admin.register(AnswerIngestionJob)
class AnswerIngestionJobAdmin(admin.ModelAdmin):
    list_display = ('id', 'exam', 'student', 'status', 'attempts', 'created_at', 'finished_at')
    list_filter = ('status',)
    readonly_fields = ('payload', 'error', 'attempts', 'started_at', 'finished_at')


admin.site.register(StudentAnswer)
