# services/reporting.py

"""
Student reporting desk.

Students report in at the start of each session. A report snapshots the
student's class, programme and department at the time of reporting so
later transfers do not rewrite history. The overview aggregates the
directory (optionally narrowed by department, class, session, academic
year or status) into headline counts, class performance for the current
month and a per-department and per-session breakdown.
"""

import logging

from django.db.models import Avg, Count, Max, Q
from django.utils import timezone

from ..exceptions import NotFound, ValidationFailed
from ..models import Class, Department, MarksEntry, Student, StudentReport
from .students import free_text_query, id_filter

logger = logging.getLogger(__name__)

RECENT_REPORTS = 10
DEFAULT_BRANCH = 'Main Campus'


def session_label(session):
    return session.replace('_', '-') if session else 'N/A'


def filtered_students(filters):
    filters = filters or {}
    queryset = Student.objects.all()

    if filters.get('department_id'):
        queryset = queryset.filter(department_id=id_filter(filters, 'department_id'))
    if filters.get('class_id'):
        queryset = queryset.filter(current_class_id=id_filter(filters, 'class_id'))
    for param in ('session', 'academic_year', 'academic_status'):
        if filters.get(param):
            queryset = queryset.filter(**{param: filters[param]})

    return queryset


def _class_performance(students, filters):
    classes = Class.objects.filter(status='Active').order_by('code')
    if filters.get('class_id'):
        classes = classes.filter(pk=id_filter(filters, 'class_id'))

    month_start = timezone.now().date().replace(day=1)
    performance = []
    for school_class in classes:
        members = students.filter(current_class=school_class)
        rows = members.annotate(
            attended=Count('attendance_records', filter=Q(
                attendance_records__date__gte=month_start, attendance_records__status='PRESENT')),
            recorded=Count('attendance_records', filter=Q(attendance_records__date__gte=month_start)),
        ).filter(recorded__gt=0).values_list('attended', 'recorded')
        rates = [attended / recorded * 100 for attended, recorded in rows]

        average = MarksEntry.objects.filter(
            student__in=members, total__isnull=False
        ).exclude(total=0).aggregate(average=Avg('total'))['average']

        performance.append({
            'class_id': school_class.id,
            'code': school_class.code,
            'name': school_class.name,
            'student_count': members.count(),
            'attendance_rate': round(sum(rates) / len(rates), 1) if rates else 0,
            'average_score': round(float(average), 1) if average is not None else 0,
        })
    return performance


def _department_stats(students, filters):
    departments = Department.objects.order_by('name')
    if filters.get('department_id'):
        departments = departments.filter(pk=id_filter(filters, 'department_id'))

    stats = []
    for department in departments:
        counts = students.filter(department=department).aggregate(
            student_count=Count('id'),
            active_count=Count('id', filter=Q(academic_status='ACTIVE')),
            male_count=Count('id', filter=Q(gender='MALE')),
            female_count=Count('id', filter=Q(gender='FEMALE')),
        )
        stats.append({'department_id': department.id, 'name': department.name, **counts})
    return stats


def _session_breakdown(students, total):
    rows = students.exclude(session__isnull=True).values('session').annotate(count=Count('id')).order_by('session')
    return [{
        'session': session_label(row['session']),
        'count': row['count'],
        'percentage': round(row['count'] / total * 100) if total else 0,
    } for row in rows]


def overview(filters):
    filters = filters or {}
    students = filtered_students(filters)

    by_status = dict(students.values_list('academic_status').annotate(count=Count('id')))
    total = sum(by_status.values())

    reports = StudentReport.objects.select_related('reported_by')
    if any(filters.get(param) for param in ('department_id', 'class_id', 'session', 'academic_year', 'academic_status')):
        reports = reports.filter(student__in=students)

    return {
        'stats': {
            'total': total,
            'active': by_status.get('ACTIVE', 0),
            'inactive': by_status.get('INACTIVE', 0),
            'graduated': by_status.get('GRADUATED', 0),
            'suspended': by_status.get('SUSPENDED', 0),
        },
        'class_performance': _class_performance(students, filters),
        'department_stats': _department_stats(students, filters),
        'session_breakdown': _session_breakdown(students, total),
        'recent_reports': list(reports.order_by('-reported_at')[:RECENT_REPORTS]),
    }


def students_for_reporting(filters):
    """Directory ordered by admission number, each row carrying its report count and latest report."""
    filters = filters or {}
    queryset = filtered_students(filters)

    search = (filters.get('search') or '').strip()
    if search:
        queryset = queryset.filter(free_text_query(search, identifiers=False))

    return queryset.select_related('current_class', 'programme', 'department').annotate(
        report_count=Count('reports'),
        last_reported=Max('reports__reported_at'),
    ).order_by('admission_no')


def create_report(student_id, reported_by=None):
    if student_id in (None, ''):
        raise ValidationFailed('Student is required')
    try:
        student = Student.objects.select_related(
            'current_class', 'programme', 'department'
        ).get(pk=int(student_id))
    except (TypeError, ValueError):
        raise ValidationFailed(f"Invalid student id: {student_id}")
    except Student.DoesNotExist:
        raise NotFound('Student')

    if not student.session:
        raise ValidationFailed('Student has no session to report for')

    report = StudentReport.objects.create(
        student=student,
        admission_no=student.admission_no,
        student_name=f"{student.first_name} {student.last_name}",
        session=student.session,
        branch=DEFAULT_BRANCH,
        class_code=student.current_class.code if student.current_class else '',
        programme=student.programme.name if student.programme else '',
        department=student.department.name if student.department else '',
        reported_by=reported_by,
    )
    logger.info(f"Student {student.admission_no} reported for {student.session}")
    return report
