from django.urls import path, include
from rest_framework.routers import DefaultRouter
from .views import ExamViewSet, QuestionViewSet, LessonExamCreateView, ExamQuestionSelectView

router = DefaultRouter()
router.register(r'exams', ExamViewSet, basename='exams')
router.register(r'questions', QuestionViewSet, basename='questions')

urlpatterns = [
    path('lessons/<int:lesson_id>/exams/', LessonExamCreateView.as_view(), name='lesson-exam-create'),
    path(
        'lessons/<int:lesson_id>/exams/<int:exam_id>/questions/',
        ExamQuestionSelectView.as_view(),
        name='lesson-exam-questions',
    ),
    path('', include(router.urls)),
]
