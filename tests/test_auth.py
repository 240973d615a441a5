from datetime import timedelta

import pytest
from django.conf import settings
from django.utils import timezone
from rest_framework_simplejwt.tokens import AccessToken

from mis_app.models import AuditLog, User
from tests.conftest import make_user

pytestmark = pytest.mark.django_db


def login(client, email, password):
    return client.post('/api/auth/login', {'email': email, 'password': password}, format='json')


class TestLogin:

    def test_login_sets_http_only_cookie(self, anon_client, admin_user):
        response = login(anon_client, 'admin@ktyc.ac.ke', 'Passw0rd!')

        assert response.status_code == 200
        body = response.json()
        assert body['success'] is True
        assert body['user']['email'] == 'admin@ktyc.ac.ke'
        assert body['user']['role'] == 'ADMIN'

        cookie = response.cookies[settings.AUTH_COOKIE_NAME]
        assert cookie['httponly']
        assert cookie['max-age'] == settings.AUTH_COOKIE_MAX_AGE

        token = AccessToken(cookie.value)
        assert token['email'] == 'admin@ktyc.ac.ke'
        assert token['role'] == 'ADMIN'

    def test_email_is_case_insensitive(self, anon_client, admin_user):
        response = login(anon_client, '  ADMIN@ktyc.ac.ke ', 'Passw0rd!')
        assert response.status_code == 200

    def test_missing_fields(self, anon_client):
        response = anon_client.post('/api/auth/login/', {'email': 'a@b.co'}, format='json')
        assert response.status_code == 400
        assert response.json() == {'success': False, 'error': 'Email and password are required'}

    def test_unknown_email_and_bad_password_look_the_same(self, anon_client, admin_user):
        unknown = login(anon_client, 'nobody@ktyc.ac.ke', 'Passw0rd!')
        wrong = login(anon_client, 'admin@ktyc.ac.ke', 'wrong-password')

        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json()['error'] == wrong.json()['error'] == 'Invalid email or password'
        assert settings.AUTH_COOKIE_NAME not in wrong.cookies

    def test_inactive_account_is_refused_without_cookie(self, anon_client):
        make_user('gone@ktyc.ac.ke', 'STAFF', is_active=False)

        response = login(anon_client, 'gone@ktyc.ac.ke', 'Passw0rd!')

        assert response.status_code == 403
        assert 'inactive' in response.json()['error']
        assert settings.AUTH_COOKIE_NAME not in response.cookies

    def test_every_attempt_is_audited(self, anon_client, admin_user):
        login(anon_client, 'admin@ktyc.ac.ke', 'wrong-password')
        login(anon_client, 'admin@ktyc.ac.ke', 'Passw0rd!')

        outcomes = list(
            AuditLog.objects.filter(event_type='USER_LOGIN').order_by('id').values_list('new_values', flat=True)
        )
        assert [o['status'] for o in outcomes] == ['bad_password', 'success']


class TestSession:

    def test_me_returns_current_user(self, admin_client):
        response = admin_client.get('/api/auth/me')
        assert response.status_code == 200
        assert response.json()['user']['email'] == 'admin@ktyc.ac.ke'

    def test_me_without_cookie(self, anon_client):
        response = anon_client.get('/api/auth/me/')
        assert response.status_code == 401
        assert response.json() == {'success': False, 'error': 'Not authenticated'}

    def test_expired_token_is_rejected(self, anon_client, admin_user):
        token = AccessToken.for_user(admin_user)
        token.set_exp(from_time=timezone.now() - timedelta(hours=25))
        anon_client.cookies[settings.AUTH_COOKIE_NAME] = str(token)

        response = anon_client.get('/api/auth/me')

        assert response.status_code == 401
        assert response.json()['error'] == 'Invalid or expired token'

    def test_deactivated_user_loses_session(self, admin_client, admin_user):
        User.objects.filter(pk=admin_user.pk).update(is_active=False)

        response = admin_client.get('/api/auth/me')

        assert response.status_code == 401
        assert response.json()['error'] == 'User not found or inactive'

    def test_verify_always_answers_200(self, anon_client, admin_client):
        anonymous = anon_client.get('/api/auth/verify')
        assert anonymous.status_code == 200
        assert anonymous.json() == {'success': True, 'authenticated': False}

        signed_in = admin_client.get('/api/auth/verify')
        assert signed_in.status_code == 200
        assert signed_in.json()['authenticated'] is True
        assert signed_in.json()['user']['role'] == 'ADMIN'

    def test_garbage_cookie_does_not_break_verify(self, anon_client):
        anon_client.cookies[settings.AUTH_COOKIE_NAME] = 'not-a-jwt'
        response = anon_client.get('/api/auth/verify')
        assert response.json()['authenticated'] is False

    def test_logout_clears_cookie(self, admin_client):
        response = admin_client.post('/api/auth/logout')

        assert response.status_code == 200
        assert response.cookies[settings.AUTH_COOKIE_NAME].value == ''

    def test_api_rejects_requests_without_cookie(self, anon_client):
        response = anon_client.get('/api/students/')
        assert response.status_code == 401
        assert response.json()['success'] is False


class TestRegister:

    def payload(self, **overrides):
        data = {
            'email': 'new.tutor@ktyc.ac.ke',
            'password': 'longenough',
            'first_name': 'Mercy',
            'last_name': 'Wairimu',
            'role': 'TEACHER',
        }
        data.update(overrides)
        return data

    def test_register_creates_account(self, anon_client):
        response = anon_client.post('/api/auth/register', self.payload(), format='json')

        assert response.status_code == 201
        assert response.json()['message'] == 'Account created successfully. Please log in.'
        user = User.objects.get(email='new.tutor@ktyc.ac.ke')
        assert user.role == 'TEACHER'
        assert user.check_password('longenough')
        assert AuditLog.objects.filter(event_type='USER_REGISTER', user=user).exists()
        assert settings.AUTH_COOKIE_NAME not in response.cookies

    def test_privileged_role_falls_back_to_staff(self, anon_client):
        anon_client.post('/api/auth/register', self.payload(role='SUPER_ADMIN'), format='json')
        assert User.objects.get(email='new.tutor@ktyc.ac.ke').role == 'STAFF'

    @pytest.mark.parametrize('overrides, error', [
        ({'last_name': ''}, 'Email, password, first name, and last name are required'),
        ({'email': 'not-an-email'}, 'Invalid email format'),
        ({'password': 'short'}, 'Password must be at least 8 characters long'),
    ])
    def test_invalid_input(self, anon_client, overrides, error):
        response = anon_client.post('/api/auth/register', self.payload(**overrides), format='json')
        assert response.status_code == 400
        assert response.json()['error'] == error

    def test_duplicate_email(self, anon_client, admin_user):
        response = anon_client.post('/api/auth/register', self.payload(email='ADMIN@ktyc.ac.ke'), format='json')
        assert response.status_code == 409
