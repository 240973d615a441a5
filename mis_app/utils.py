# utils.py
import math
import uuid
import logging

from django.utils import timezone
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response

from .models import AuditLog

logger = logging.getLogger(__name__)


def client_ip(request):
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def audit(request, event_type, table_name, record_id=None, operation=None,
          old_values=None, new_values=None, changed_fields=None, user=None):
    """Write an AuditLog row carrying the request context.

    ``user`` overrides ``request.user`` for flows that run before
    authentication (login, register).
    """
    actor = user
    if actor is None and getattr(request, 'user', None) is not None and request.user.is_authenticated:
        actor = request.user

    return AuditLog.objects.create(
        event_type=event_type,
        user=actor,
        username=actor.email if actor else None,
        user_role=actor.role if actor else None,
        table_name=table_name,
        record_id=str(record_id) if record_id is not None else None,
        operation=operation,
        old_values=old_values,
        new_values=new_values,
        changed_fields=changed_fields or [],
        ip_address=client_ip(request),
        user_agent=request.META.get('HTTP_USER_AGENT', ''),
        endpoint=request.path,
        http_method=request.method,
        request_id=uuid.uuid4(),
    )


def current_academic_year(date=None):
    # Academic year starts in September
    date = date or timezone.now().date()
    if date.month >= 9:
        return f"{date.year}/{date.year + 1}"
    return f"{date.year - 1}/{date.year}"


def current_session(date=None):
    date = date or timezone.now().date()
    if date.month >= 9:
        return 'SEPT_DEC'
    if date.month <= 4:
        return 'JAN_APRIL'
    return 'MAY_AUGUST'


def round2(value):
    return round(float(value or 0), 2)


class EnvelopePagination(PageNumberPagination):
    page_size = 10
    page_size_query_param = 'limit'
    max_page_size = 500

    def get_paginated_response(self, data):
        total = self.page.paginator.count
        limit = self.page.paginator.per_page
        return Response({
            'success': True,
            'data': data,
            'pagination': {
                'total': total,
                'total_pages': math.ceil(total / limit) if limit else 0,
                'current_page': self.page.number,
                'limit': limit,
            }
        })


class LargeEnvelopePagination(EnvelopePagination):
    page_size = 50
