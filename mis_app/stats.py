# stats.py
"""
Dashboard aggregates.

Every function is read-only and independent of the others; filters are the
optional ``academic_year`` / ``session`` (and ``status`` for the headline
student count).
"""
import logging
from datetime import datetime

from django.db.models import Count, Sum, Value, FloatField
from django.db.models.functions import Coalesce
from django.utils import timezone

from .models import (
    Applicant, AuditLog, Class, Department, FeePayment, HostelBlock, HostelBooking, Student,
)

logger = logging.getLogger(__name__)

ACTIVE_BOOKING_STATUSES = ['CONFIRMED', 'CHECKED_IN']


def _scoped(queryset, academic_year=None, session=None):
    if academic_year:
        queryset = queryset.filter(academic_year=academic_year)
    if session:
        queryset = queryset.filter(session=session)
    return queryset


def _active_students(academic_year=None, session=None):
    return _scoped(Student.objects.filter(academic_status='ACTIVE'), academic_year, session)


def dashboard_stats(academic_year=None, session=None, status=None):
    students = _scoped(Student.objects.filter(academic_status=status or 'ACTIVE'), academic_year, session)

    revenue = _scoped(FeePayment.objects.filter(status='COMPLETED'), academic_year, session).aggregate(
        total=Coalesce(Sum('amount_paid'), Value(0), output_field=FloatField())
    )['total']

    bookings = _scoped(HostelBooking.objects.filter(status__in=ACTIVE_BOOKING_STATUSES), academic_year, session)

    return {
        'total_students': students.count(),
        'active_classes': Class.objects.filter(status='Active').count(),
        'total_departments': Department.objects.filter(is_active=True).count(),
        'total_revenue': revenue or 0,
        'active_hostel_bookings': bookings.count(),
    }


def students_by_gender(academic_year=None, session=None):
    counts = dict(
        _active_students(academic_year, session).values_list('gender').annotate(n=Count('id'))
    )
    return [
        {'gender': 'Male', 'count': counts.get('MALE', 0)},
        {'gender': 'Female', 'count': counts.get('FEMALE', 0)},
        {'gender': 'Others', 'count': counts.get('OTHER', 0)},
    ]


def students_by_department(academic_year=None, session=None):
    students = _active_students(academic_year, session)
    total = students.count()

    rows = []
    for row in students.values('department__name').annotate(count=Count('id')):
        rows.append({
            'name': row['department__name'] or 'Unknown',
            'count': row['count'],
            'percentage': round(row['count'] / total * 100) if total else 0,
        })
    rows.sort(key=lambda r: r['count'], reverse=True)
    return rows


def subject_registration_stats(academic_year=None, session=None):
    students = _active_students(academic_year, session)
    total = students.count()
    registered = students.filter(subject_registrations__isnull=False).distinct().count()
    return {'registered': registered, 'not_registered': total - registered}


def student_record(academic_year=None, session=None):
    students = _scoped(Student.objects.all(), academic_year, session)
    return {
        'active': students.filter(academic_status='ACTIVE').count(),
        'inactive': students.exclude(academic_status='ACTIVE').count(),
    }


def applicant_totals(academic_year=None):
    """Applicant counts; a numeric ``academic_year`` narrows to that calendar year."""
    applicants = Applicant.objects.all()
    if academic_year:
        try:
            year = int(str(academic_year).split('/')[0])
        except ValueError:
            year = None
        if year:
            tz = timezone.get_current_timezone()
            applicants = applicants.filter(
                created_at__gte=timezone.make_aware(datetime(year, 1, 1), tz),
                created_at__lt=timezone.make_aware(datetime(year + 1, 1, 1), tz),
            )

    genders = dict(applicants.values_list('gender').annotate(n=Count('id')))
    statuses = dict(applicants.values_list('status').annotate(n=Count('id')))
    return {
        'total': applicants.count(),
        'male': genders.get('MALE', 0),
        'female': genders.get('FEMALE', 0),
        'others': genders.get('OTHER', 0),
        'pending': statuses.get('PENDING', 0),
        'approved': statuses.get('APPROVED', 0),
        'rejected': statuses.get('REJECTED', 0),
    }


def academic_years():
    return list(
        Student.objects.exclude(academic_year__isnull=True).exclude(academic_year='')
        .values_list('academic_year', flat=True).distinct().order_by('-academic_year')
    )


def sessions():
    return list(
        Student.objects.exclude(session__isnull=True).exclude(session='')
        .values_list('session', flat=True).distinct().order_by('session')
    )


def hostel_occupancy(academic_year=None, session=None):
    capacity = HostelBlock.objects.aggregate(total=Coalesce(Sum('total_capacity'), Value(0)))['total']
    bookings = _scoped(HostelBooking.objects.filter(status__in=ACTIVE_BOOKING_STATUSES), academic_year, session)
    active = bookings.count()
    by_gender = dict(bookings.values_list('block__gender').annotate(n=Count('id')))

    return {
        'total_capacity': capacity,
        'active_bookings': active,
        'occupancy_rate': round(active / capacity * 100) if capacity else 0,
        'male_occupancy': by_gender.get('MALE', 0),
        'female_occupancy': by_gender.get('FEMALE', 0),
    }


def recent_activities(limit=10):
    return [
        {
            'time': entry.event_time.strftime('%Y-%m-%d %H:%M'),
            'event': entry.event_type,
            'table': entry.table_name,
            'record_id': entry.record_id,
            'user': entry.username or 'System',
            'details': entry.new_values or {},
        }
        for entry in AuditLog.objects.all()[:limit]
    ]
