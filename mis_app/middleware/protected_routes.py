# middleware/protected_routes.py
from urllib.parse import urlencode

from django.conf import settings
from django.http import HttpResponseRedirect
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.tokens import AccessToken
import logging

logger = logging.getLogger(__name__)


class ProtectedRouteMiddleware:
    """Redirects page requests under the protected prefixes to the login page
    when the auth cookie is missing or no longer verifies. API routes are left
    to the DRF authentication classes."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        path = request.path
        prefixes = getattr(settings, 'MIS_PROTECTED_PREFIXES', [])
        if not any(path.startswith(prefix) for prefix in prefixes):
            return self.get_response(request)

        token = request.COOKIES.get(settings.AUTH_COOKIE_NAME)
        if not token:
            return self.redirect_to_login(path)

        try:
            AccessToken(token)
        except TokenError:
            logger.warning(f"Expired or invalid session on {path}")
            return self.redirect_to_login(path, session_expired=True)

        return self.get_response(request)

    def redirect_to_login(self, path, session_expired=False):
        params = {'redirect': path}
        if session_expired:
            params['sessionExpired'] = 'true'
        return HttpResponseRedirect(f"{settings.MIS_LOGIN_URL}?{urlencode(params)}")
