import os
import subprocess
import sys
from pathlib import Path

import pytest
from django.core.management import call_command
from rest_framework.settings import api_settings

from mis_app.authentication import CookieJWTAuthentication
from mis_app.handlers import envelope_exception_handler

ROOT = Path(__file__).resolve().parent.parent


def test_django_setup_in_a_fresh_interpreter():
    env = dict(os.environ, DJANGO_SETTINGS_MODULE='college_mis.settings')
    result = subprocess.run(
        [sys.executable, '-c', 'import django; django.setup(); import mis_app.admin, mis_app.urls'],
        cwd=ROOT, env=env, capture_output=True, text=True,
    )
    assert result.returncode == 0, result.stderr


def test_rest_framework_settings_resolve():
    assert api_settings.DEFAULT_AUTHENTICATION_CLASSES == [CookieJWTAuthentication]
    assert api_settings.EXCEPTION_HANDLER is envelope_exception_handler


def test_system_checks_pass():
    call_command('check')


@pytest.mark.django_db
def test_api_root_answers(admin_client):
    assert admin_client.get('/api/').status_code == 200
