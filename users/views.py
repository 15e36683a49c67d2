import logging

from rest_framework import generics, permissions, status
from rest_framework_simplejwt.views import TokenObtainPairView
from django.utils.translation import gettext as _

from cores.responses import respond_with_template
from .serializers import RegisterSerializer, CustomTokenObtainPairSerializer, UserSerializer

logger = logging.getLogger(__name__)


class RegisterView(generics.CreateAPIView):
    serializer_class = RegisterSerializer
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save()
        logger.info(f"Registered {user.role} account {user.pk}")
        return respond_with_template(
            True, UserSerializer(user).data, _("Registration completed."), status.HTTP_201_CREATED
        )


class CustomLoginView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer
    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        return respond_with_template(True, response.data)


class UserProfileView(generics.RetrieveUpdateAPIView):
    serializer_class = UserSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_object(self):
        return self.request.user

    def retrieve(self, request, *args, **kwargs):
        return respond_with_template(True, self.get_serializer(request.user).data)

    def update(self, request, *args, **kwargs):
        partial = kwargs.pop('partial', False)
        serializer = self.get_serializer(request.user, data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return respond_with_template(True, serializer.data, _("Profile updated."))
