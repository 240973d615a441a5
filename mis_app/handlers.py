# handlers.py
from rest_framework.views import exception_handler

from .exceptions import MISError, error_response


def envelope_exception_handler(exc, context):
    """DRF EXCEPTION_HANDLER: wraps framework errors (auth, 404, parse) in the envelope."""
    if isinstance(exc, MISError):
        return error_response(exc)

    response = exception_handler(exc, context)
    if response is None:
        return None

    data = response.data
    if isinstance(data, dict) and 'detail' in data:
        response.data = {'success': False, 'error': str(data['detail'])}
    else:
        response.data = {'success': False, 'error': 'Validation failed', 'details': data}
    return response
