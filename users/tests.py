from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIRequestFactory, APITestCase

from .permissions import IsTeacher

User = get_user_model()


class AuthTests(APITestCase):
    def setUp(self):
        self.user = User.objects.create_user(
            username="sara", email="sara@school.test", password="secret-pass-123",
            role=User.Role.TEACHER, first_name="Sara", last_name="Karimi",
        )

    def test_register_creates_student_by_default(self):
        response = self.client.post(reverse('register'), {
            'email': 'new@school.test', 'first_name': 'New', 'last_name': 'Student', 'password': 'long-enough-pw',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertTrue(response.data['success'])
        self.assertEqual(User.objects.get(email='new@school.test').role, User.Role.STUDENT)
        self.assertNotIn('password', response.data['data'])

    def test_register_cannot_claim_admin_role(self):
        response = self.client.post(reverse('register'), {
            'email': 'root@school.test', 'password': 'long-enough-pw', 'role': 'admin',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertFalse(response.data['success'])

    def test_login_with_email_returns_tokens_and_user(self):
        response = self.client.post(reverse('login'), {
            'email': 'sara@school.test', 'password': 'secret-pass-123',
        }, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data['success'])
        self.assertIn('access', response.data['data'])
        self.assertEqual(response.data['data']['user']['role'], 'teacher')

    def test_login_with_username(self):
        response = self.client.post(reverse('login'), {
            'email': 'sara', 'password': 'secret-pass-123',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_200_OK)

    def test_wrong_password(self):
        response = self.client.post(reverse('login'), {
            'email': 'sara@school.test', 'password': 'nope',
        }, format='json')
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(response.data['success'])

    def test_access_token_authenticates_requests(self):
        login = self.client.post(reverse('login'), {
            'email': 'sara@school.test', 'password': 'secret-pass-123',
        }, format='json')
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {login.data['data']['access']}")

        response = self.client.get(reverse('user-profile'))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['data']['email'], 'sara@school.test')

    def test_profile_update_cannot_change_role(self):
        self.client.force_authenticate(self.user)

        response = self.client.patch(reverse('user-profile'), {'first_name': 'S.', 'role': 'admin'}, format='json')

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.first_name, 'S.')
        self.assertEqual(self.user.role, User.Role.TEACHER)

    def test_profile_payload_fields(self):
        self.client.force_authenticate(self.user)

        response = self.client.get(reverse('user-profile'))

        self.assertEqual(
            set(response.data['data']),
            {'id', 'username', 'email', 'first_name', 'last_name', 'role', 'is_staff'},
        )


class IsTeacherPermissionTests(TestCase):
    def setUp(self):
        self.factory = APIRequestFactory()

    def allowed(self, user):
        request = self.factory.get('/')
        request.user = user
        return IsTeacher().has_permission(request, None)

    def test_teacher_role_is_allowed(self):
        teacher = User(username="t", email="t@school.test", role=User.Role.TEACHER)
        self.assertTrue(teacher.is_teacher)
        self.assertTrue(self.allowed(teacher))

    def test_student_and_admin_roles_are_refused(self):
        self.assertFalse(self.allowed(User(username="s", email="s@school.test", role=User.Role.STUDENT)))
        self.assertFalse(self.allowed(User(username="a", email="a@school.test", role=User.Role.ADMIN)))

    def test_staff_is_allowed_whatever_the_role(self):
        self.assertTrue(self.allowed(User(username="x", email="x@school.test", is_staff=True)))

    def test_anonymous_is_refused(self):
        self.assertFalse(self.allowed(AnonymousUser()))
