from django.urls import path
from .views import StartExamView, FinishExamView, ExamResultView, StudentResultListView

urlpatterns = [
    # --- Student Exam Flow ---
    path('exams/<int:exam_id>/start/', StartExamView.as_view(), name='start-exam'),
    path('exams/<int:exam_id>/finish/', FinishExamView.as_view(), name='finish-exam'),
    path('exams/<int:exam_id>/result/', ExamResultView.as_view(), name='exam-result'),
    path('results/', StudentResultListView.as_view(), name='student-results'),
]
