# services/students.py

"""
Student directory operations.

Search composition, admission numbering and the find-or-create helpers used
when a student is registered against a department/programme by name.
"""

import re
import logging

from django.conf import settings
from django.db.models import Count, Q
from django.utils import timezone

from ..exceptions import NotFound, ValidationFailed
from ..models import Student, Department, Programme, Class

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 100
NAME_FIELDS = ('first_name', 'last_name', 'middle_name')


def _any_name_matches(token):
    query = Q()
    for field in NAME_FIELDS:
        query |= Q(**{f"{field}__icontains": token})
    return query


def free_text_query(search, identifiers=True):
    """Build the Q for a free-text directory search.

    Several whitespace separated words: every word must hit one of the
    name fields. A single word may also hit the admission number, and with
    ``identifiers`` the email, phone number and ID number.
    """
    words = (search or '').split()
    if not words:
        return Q()

    if len(words) > 1:
        query = Q()
        for word in words:
            query &= _any_name_matches(word)
        return query

    word = words[0]
    query = _any_name_matches(word) | Q(admission_no__icontains=word)
    if identifiers:
        query |= (
            Q(email__icontains=word) |
            Q(phone_number__contains=word) |
            Q(id_number__contains=word)
        )
    return query


ID_FILTERS = [
    ('class_id', 'current_class_id'),
    ('department_id', 'department_id'),
    ('programme_id', 'programme_id'),
]


def id_filter(filters, param):
    value = str(filters[param]).strip()
    if not value.isdigit():
        raise ValidationFailed(f"Invalid {param}: {value}")
    return int(value)


def filter_students(filters, identifiers=True):
    filters = filters or {}
    queryset = Student.objects.all()

    search = (filters.get('search') or '').strip()
    if search:
        queryset = queryset.filter(free_text_query(search, identifiers=identifiers))

    for param, field in ID_FILTERS:
        if filters.get(param):
            queryset = queryset.filter(**{field: id_filter(filters, param)})
    if filters.get('academic_status'):
        queryset = queryset.filter(academic_status=filters['academic_status'])
    if filters.get('gender'):
        queryset = queryset.filter(gender=filters['gender'])
    if filters.get('session'):
        queryset = queryset.filter(session=filters['session'])

    return queryset


def search_students(filters):
    """All filters AND together; at most 100 rows, ordered by last then first name."""
    queryset = filter_students(filters).select_related('current_class', 'programme', 'department')
    return queryset.order_by('last_name', 'first_name')[:SEARCH_LIMIT]


def count_students(filters):
    # Counting only matches names and admission number for a single word
    return filter_students(filters, identifiers=False).count()


def get_student_details(student_id):
    if student_id is None or str(student_id).strip() == '':
        raise ValidationFailed('Student ID is required')
    if not str(student_id).strip().isdigit():
        raise NotFound('Student')

    student = (
        Student.objects
        .select_related('current_class__programme', 'programme__department', 'department')
        .prefetch_related('subject_registrations__subject', 'marks__subject', 'fee_payments')
        .filter(pk=str(student_id).strip())
        .first()
    )
    if student is None:
        raise NotFound('Student')
    return student


def verify_admission_number(admission_no):
    student = (
        Student.objects
        .select_related('current_class', 'programme')
        .filter(admission_no=admission_no)
        .first()
    )
    if student is None:
        raise NotFound('Student')
    return student


def next_admission_number():
    """``<PREFIX>/S/<n>/<yy>`` where n follows the highest issued number."""
    prefix = f"{settings.MIS_INSTITUTION_PREFIX}/S/"
    year = timezone.now().strftime('%y')

    highest = 0
    for admission_no in Student.objects.filter(admission_no__startswith=prefix).values_list('admission_no', flat=True):
        match = re.match(r'^' + re.escape(prefix) + r'(\d+)/', admission_no)
        if match:
            highest = max(highest, int(match.group(1)))

    return f"{prefix}{highest + 1}/{year}"


# ==================== FIND OR CREATE ====================
def department_code_for(name):
    initials = ''.join(word[0] for word in name.split() if word and word[0].isalpha())
    return initials.upper()[:4] or name[:4].upper()


def find_or_create_department(name):
    name = name.strip()
    department = Department.objects.filter(name__iexact=name).first()
    if department:
        return department

    code = department_code_for(name)
    base_code, suffix = code, 1
    while Department.objects.filter(code=code).exists():
        suffix += 1
        code = f"{base_code}{suffix}"

    department = Department.objects.create(code=code, name=name, is_active=True)
    logger.info(f"Created department {department.code} for '{name}'")
    return department


def programme_level_for(name):
    lowered = name.lower()
    if 'artisan' in lowered:
        return 'ARTISAN'
    if 'higher diploma' in lowered:
        return 'HIGHER_DIPLOMA'
    if 'certificate' in lowered:
        return 'CERTIFICATE'
    return 'DIPLOMA'


def find_or_create_programme(name, department):
    name = name.strip()
    programme = Programme.objects.filter(name__iexact=name).first()
    if programme:
        return programme

    level = programme_level_for(name)
    base_code = re.sub(r'[^A-Z]', '', ''.join(w[0] for w in name.upper().split() if w))[:6] or 'PRG'
    code, suffix = base_code, 1
    while Programme.objects.filter(code=code).exists():
        suffix += 1
        code = f"{base_code}{suffix}"

    programme = Programme.objects.create(
        code=code,
        name=name,
        department=department,
        level=level,
        duration=1 if level in ('ARTISAN', 'CERTIFICATE') else 2,
        award_scheme='General',
        is_active=True,
    )
    logger.info(f"Created programme {programme.code} for '{name}'")
    return programme


def resolve_department(value):
    """Accept a department id or a department name."""
    if value in (None, ''):
        return None
    if str(value).isdigit():
        department = Department.objects.filter(pk=int(value)).first()
        if department is None:
            raise NotFound('Department')
        return department
    return find_or_create_department(str(value))


def resolve_programme(value, department=None):
    if value in (None, ''):
        return None
    if str(value).isdigit():
        programme = Programme.objects.filter(pk=int(value)).first()
        if programme is None:
            raise NotFound('Programme')
        return programme
    if department is None:
        raise ValidationFailed('A department is required to register a new programme')
    return find_or_create_programme(str(value), department)


def student_statistics():
    by_status = dict(Student.objects.values_list('academic_status').annotate(n=Count('id')))
    by_gender = dict(Student.objects.values_list('gender').annotate(n=Count('id')))
    by_session = dict(Student.objects.exclude(session__isnull=True).values_list('session').annotate(n=Count('id')))

    return {
        'total': Student.objects.count(),
        'by_status': {code: by_status.get(code, 0) for code, _ in Student.ACADEMIC_STATUS_CHOICES},
        'by_gender': by_gender,
        'by_session': by_session,
        'active_classes': Class.objects.filter(status='Active').count(),
    }
