# services/procurement.py

"""
Procurement Ledger

Requests are numbered PR/<year>/<NNNN> and move through
PENDING -> APPROVED|REJECTED, APPROVED -> IN_PROGRESS -> COMPLETED.
Priority, justification and reviewer comments are kept as ``Key: value``
lines appended to the description.
"""

from decimal import Decimal
import logging
import re

from django.utils import timezone

from ..exceptions import BusinessRuleViolation, ValidationFailed
from ..models import ProcurementRequest

logger = logging.getLogger(__name__)


def next_request_number(year=None):
    # Count based, so two concurrent creates can receive the same number
    year = year or timezone.now().year
    prefix = f"PR/{year}/"
    count = ProcurementRequest.objects.filter(request_number__startswith=prefix).count()
    return f"{prefix}{count + 1:04d}"


def parse_description(description):
    """``Key Name: value`` lines of a description as ``{'key_name': 'value'}``."""
    parsed = {}
    for line in (description or '').split('\n'):
        if not line.strip() or ':' not in line:
            continue
        key, value = line.split(':', 1)
        if key.strip():
            parsed[re.sub(r'\s+', '_', key.strip().lower())] = value.strip()
    return parsed


def _append(description, text, separator='\n\n'):
    return f"{description}{separator}{text}"


def _current_year_requests():
    return ProcurementRequest.objects.filter(created_at__year=timezone.now().year)


class ProcurementService:

    @staticmethod
    def create(requested_by, department, description, estimated_cost, priority=None, justification=None):
        if priority:
            description = _append(description, f"Priority: {priority}\nJustification: {justification or 'N/A'}")

        request = ProcurementRequest.objects.create(
            request_number=next_request_number(),
            requested_by=requested_by,
            department=department,
            description=description,
            estimated_cost=estimated_cost,
            status='PENDING',
        )
        logger.info(f"Procurement request {request.request_number} raised by {requested_by}")
        return request

    @staticmethod
    def update(request, department=None, description=None, estimated_cost=None,
               priority=None, justification=None, category=None):
        if department:
            request.department = department
        if description:
            request.description = description
        if estimated_cost:
            request.estimated_cost = estimated_cost

        if priority:
            request.description = _append(request.description, f"Updated Priority: {priority}", '\n')
        if justification:
            request.description = _append(request.description, f"Updated Justification: {justification}", '\n')
        if category:
            request.description = _append(request.description, f"Category: {category}", '\n')

        request.save()
        return request

    @staticmethod
    def transition(request, new_status, actor=None, comments=None, label=None):
        """Move a request along its lifecycle, refusing illegal moves."""
        valid = [code for code, _ in ProcurementRequest.STATUS_CHOICES]
        if new_status not in valid:
            raise ValidationFailed(f"Invalid status: {new_status}")

        if not request.can_transition_to(new_status):
            raise BusinessRuleViolation(
                f"Cannot move procurement request from {request.status} to {new_status}"
            )

        old_status = request.status
        request.status = new_status
        if new_status in ('APPROVED', 'REJECTED'):
            request.approved_at = timezone.now()
            if actor:
                request.approved_by = actor
        if comments:
            request.description = _append(request.description, f"{label or f'Status Update to {new_status}'}: {comments}")

        request.save()
        logger.info(f"Procurement {request.request_number}: {old_status} -> {new_status}")
        return request

    @staticmethod
    def approve(request, approved_by, comments=None):
        return ProcurementService.transition(request, 'APPROVED', approved_by, comments, 'Approval Comments')

    @staticmethod
    def reject(request, approved_by, comments=None):
        return ProcurementService.transition(request, 'REJECTED', approved_by, comments, 'Rejection Comments')

    @staticmethod
    def delete(request):
        if request.status != 'PENDING':
            raise BusinessRuleViolation('Can only delete pending requests')
        request.delete()

    @staticmethod
    def summary(department=None, date_from=None, date_to=None):
        requests = ProcurementRequest.objects.all()
        if department:
            requests = requests.filter(department=department)
        if date_from:
            requests = requests.filter(created_at__date__gte=date_from)
        if date_to:
            requests = requests.filter(created_at__date__lte=date_to)

        by_status = {code: 0 for code, _ in ProcurementRequest.STATUS_CHOICES}
        by_department = {}
        total_value = Decimal('0')
        for request in requests:
            total_value += request.estimated_cost
            by_status[request.status] += 1
            bucket = by_department.setdefault(request.department, {'count': 0, 'value': Decimal('0')})
            bucket['count'] += 1
            bucket['value'] += request.estimated_cost

        return {
            'total': sum(by_status.values()),
            'total_value': total_value,
            'by_status': by_status,
            'by_department': by_department,
        }

    @staticmethod
    def department_budget(department):
        budget = {
            'total_requested': Decimal('0'),
            'total_approved': Decimal('0'),
            'total_spent': Decimal('0'),
            'pending': Decimal('0'),
            'approved_with_comments': [],
            'rejected_with_comments': [],
        }

        for request in _current_year_requests().filter(department=department):
            budget['total_requested'] += request.estimated_cost

            if request.status in ('APPROVED', 'COMPLETED'):
                budget['total_approved'] += request.estimated_cost
                budget['approved_with_comments'].append({
                    'request_number': request.request_number,
                    'comments': parse_description(request.description).get('approval_comments'),
                })
            if request.status == 'COMPLETED':
                budget['total_spent'] += request.estimated_cost
            if request.status == 'PENDING':
                budget['pending'] += request.estimated_cost
            if request.status == 'REJECTED':
                budget['rejected_with_comments'].append({
                    'request_number': request.request_number,
                    'comments': parse_description(request.description).get('rejection_comments'),
                })

        return budget

    @staticmethod
    def dashboard_stats():
        requests = list(_current_year_requests())
        return {
            'total_requests': len(requests),
            'total_value': sum((r.estimated_cost for r in requests), Decimal('0')),
            'pending_count': sum(1 for r in requests if r.status == 'PENDING'),
            'approved_count': sum(1 for r in requests if r.status == 'APPROVED'),
            'completed_count': sum(1 for r in requests if r.status == 'COMPLETED'),
        }
