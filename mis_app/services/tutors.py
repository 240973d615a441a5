# services/tutors.py

"""Tutor roster: employee codes and subject assignments."""

import re
import logging

from django.conf import settings
from django.db import IntegrityError, transaction

from ..exceptions import Conflict, NotFound, ValidationFailed
from ..models import Class, Subject, Tutor, TutorSubjectAssignment

logger = logging.getLogger(__name__)


def next_employee_code():
    """``<PREFIX>/TUT/<nnnn>``, one past the highest code issued so far."""
    prefix = f"{settings.MIS_INSTITUTION_PREFIX}/TUT/"

    highest = 0
    for code in Tutor.objects.filter(employee_code__startswith=prefix).values_list('employee_code', flat=True):
        match = re.match(r'^' + re.escape(prefix) + r'(\d+)$', code)
        if match:
            highest = max(highest, int(match.group(1)))

    return f"{prefix}{highest + 1:04d}"


def _lookup(model, value, resource):
    if value in (None, ''):
        raise ValidationFailed(f"{resource} is required")
    try:
        return model.objects.get(pk=int(value))
    except (TypeError, ValueError):
        raise ValidationFailed(f"Invalid {resource.lower()} id: {value}")
    except model.DoesNotExist:
        raise NotFound(resource)


def assign_subject(tutor, subject_id, class_id=None):
    subject = _lookup(Subject, subject_id, 'Subject')
    school_class = _lookup(Class, class_id, 'Class') if class_id not in (None, '') else None

    if tutor.subject_assignments.filter(subject=subject).exists():
        raise Conflict('This tutor is already assigned to this subject')

    try:
        with transaction.atomic():
            assignment = TutorSubjectAssignment.objects.create(
                tutor=tutor, subject=subject, school_class=school_class
            )
    except IntegrityError:
        raise Conflict('This tutor is already assigned to this subject')

    logger.info(f"Tutor {tutor.employee_code} assigned to {subject.code}")
    return assignment


def remove_assignment(tutor, subject_id):
    assignment = tutor.subject_assignments.filter(subject_id=subject_id).select_related('subject').first()
    if assignment is None:
        raise NotFound('Subject assignment')
    assignment.delete()
    logger.info(f"Tutor {tutor.employee_code} unassigned from {assignment.subject.code}")
    return assignment
