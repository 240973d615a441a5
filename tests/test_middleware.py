from datetime import timedelta

import pytest
from django.conf import settings
from django.test import Client
from django.utils import timezone
from rest_framework_simplejwt.tokens import AccessToken

from mis_app.authentication import issue_token

pytestmark = pytest.mark.django_db


@pytest.fixture
def browser():
    return Client()


def test_protected_page_without_cookie_redirects_to_login(browser):
    response = browser.get('/dashboard/overview/')

    assert response.status_code == 302
    assert response['Location'] == '/login?redirect=%2Fdashboard%2Foverview%2F'


def test_expired_cookie_flags_session_expired(browser, admin_user):
    token = AccessToken.for_user(admin_user)
    token.set_exp(from_time=timezone.now() - timedelta(hours=25))
    browser.cookies[settings.AUTH_COOKIE_NAME] = str(token)

    response = browser.get('/finance/payments/')

    assert response.status_code == 302
    assert response['Location'] == '/login?redirect=%2Ffinance%2Fpayments%2F&sessionExpired=true'


def test_valid_cookie_passes_through(browser, admin_user):
    browser.cookies[settings.AUTH_COOKIE_NAME] = issue_token(admin_user)

    response = browser.get('/hostel/blocks/')

    # No page is served at this path, so reaching the router means the guard let it through
    assert response.status_code == 404


@pytest.mark.parametrize('path', ['/api/students/', '/login', '/'])
def test_unprotected_paths_are_not_redirected(browser, path):
    response = browser.get(path)
    assert response.status_code != 302
