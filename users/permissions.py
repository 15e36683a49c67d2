from rest_framework import permissions


class IsTeacher(permissions.BasePermission):
    """Only teachers (and staff) may manage lessons, exams and the question bank."""
    message = "Only teachers can perform this action."

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.is_staff or getattr(request.user, 'is_teacher', False)


class IsPlatformAdmin(permissions.BasePermission):
    message = "Only administrators can perform this action."

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.is_staff or getattr(request.user, 'role', '') == 'admin'
