from django.contrib import admin

from .models import Lesson, Exam, Question, QuestionAnswer


class QuestionAnswerInline(admin.TabularInline):
    model = QuestionAnswer
    extra = 2


@admin.register(Question)
class QuestionAdmin(admin.ModelAdmin):
    list_display = ('id', '__str__', 'is_accepted', 'author')
    list_filter = ('is_accepted',)
    inlines = [QuestionAnswerInline]


@admin.register(Exam)
class ExamAdmin(admin.ModelAdmin):
    list_display = ('title', 'lesson', 'teacher', 'started_at', 'finished_at')
    readonly_fields = ('finished_at',)
    filter_horizontal = ('questions',)


admin.site.register(Lesson)
