from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),

    # --- Authentication & Profile ---
    path('api/', include('users.urls')),

    # --- Student Exam Flow & Results ---
    path('api/', include('assessments.urls')),

    # --- Lessons, Exams & Question Bank ---
    path('api/', include('exams.urls')),
]
