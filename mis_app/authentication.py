# authentication.py
import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import AccessToken

from .exceptions import Unauthenticated

logger = logging.getLogger(__name__)
User = get_user_model()


def issue_token(user):
    """Signed 24h access token carrying the user's id, email, role and names."""
    token = AccessToken.for_user(user)
    token['email'] = user.email
    token['role'] = user.role
    token['first_name'] = user.first_name
    token['last_name'] = user.last_name
    return str(token)


def set_auth_cookie(response, raw_token):
    response.set_cookie(
        settings.AUTH_COOKIE_NAME,
        raw_token,
        max_age=settings.AUTH_COOKIE_MAX_AGE,
        path='/',
        secure=settings.AUTH_COOKIE_SECURE,
        httponly=True,
        samesite='Lax',
    )
    return response


def clear_auth_cookie(response):
    response.delete_cookie(settings.AUTH_COOKIE_NAME, path='/', samesite='Lax')
    return response


def user_from_cookie(request):
    """Decode the auth cookie and re-fetch the live user row.

    Raises ``Unauthenticated`` with the message the auth endpoints report:
    missing cookie, bad/expired token, or a user that is gone or inactive.
    """
    raw_token = request.COOKIES.get(settings.AUTH_COOKIE_NAME)
    if not raw_token:
        raise Unauthenticated('Not authenticated')

    try:
        token = AccessToken(raw_token)
    except TokenError as e:
        logger.info(f"Rejected auth token: {str(e)}")
        raise Unauthenticated('Invalid or expired token')

    user_id = token.get(api_settings.USER_ID_CLAIM)
    user = User.objects.filter(**{api_settings.USER_ID_FIELD: user_id}).first()
    if user is None or not user.is_active:
        raise Unauthenticated('User not found or inactive')
    return user


class CookieJWTAuthentication(JWTAuthentication):
    """Reads the access token from the ``auth-token`` cookie, falling back to
    the ``Authorization: Bearer`` header."""

    def authenticate(self, request):
        raw_token = request.COOKIES.get(settings.AUTH_COOKIE_NAME)
        if raw_token is None:
            return super().authenticate(request)

        validated_token = self.get_validated_token(raw_token)
        user = self.get_user(validated_token)
        if not user.is_active:
            return None
        return user, validated_token
