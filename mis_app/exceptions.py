# exceptions.py
from rest_framework import status
from rest_framework.response import Response


class MISError(Exception):
    """Base for expected failures surfaced as ``{'success': False, 'error': ...}``."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationFailed(MISError):
    status_code = status.HTTP_400_BAD_REQUEST


class BusinessRuleViolation(MISError):
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthenticated(MISError):
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(MISError):
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(MISError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, resource='Resource', details=None, message=None):
        super().__init__(message or f"{resource} not found", details)


class Conflict(MISError):
    status_code = status.HTTP_409_CONFLICT


def error_response(exc):
    body = {'success': False, 'error': exc.message}
    if exc.details:
        body['details'] = exc.details
    return Response(body, status=exc.status_code)

