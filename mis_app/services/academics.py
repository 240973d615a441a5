# services/academics.py
import logging
from collections import OrderedDict

from django.db import IntegrityError, transaction
from django.utils import timezone

from ..exceptions import NotFound
from ..models import AttendanceRecord, ExamResult, MarksEntry, Student
from ..utils import round2

logger = logging.getLogger(__name__)

GRADE_BANDS = [
    (90, 'A+'),
    (80, 'A'),
    (75, 'B+'),
    (70, 'B'),
    (65, 'C+'),
    (60, 'C'),
    (50, 'D'),
]


def calculate_grade(score):
    score = float(score or 0)
    for threshold, grade in GRADE_BANDS:
        if score >= threshold:
            return grade
    return 'E'


def calculate_competence(score):
    """C (competent) from 80, P (pass) from 60, otherwise I (incomplete)."""
    score = float(score or 0)
    if score >= 80:
        return 'C'
    if score >= 60:
        return 'P'
    return 'I'


def attendance_rate(present, late, total):
    if not total:
        return 0
    return round2((present + late) / total * 100)


def tally(statuses):
    counts = {'total': 0, 'present': 0, 'absent': 0, 'late': 0, 'excused': 0}
    for value in statuses:
        counts['total'] += 1
        key = value.lower()
        if key in counts:
            counts[key] += 1
    counts['attendance_rate'] = attendance_rate(counts['present'], counts['late'], counts['total'])
    return counts


# ==================== ATTENDANCE ====================
class AttendanceService:

    @staticmethod
    def bulk_record(records, recorded_by=None):
        """Insert what is new; rows clashing on (student, class, subject, date) are skipped."""
        inserted = 0
        today = timezone.now().date()
        for data in records:
            # NULL subjects never collide in the unique index, so look first
            if AttendanceRecord.objects.filter(
                student=data['student'],
                school_class=data['school_class'],
                subject=data.get('subject'),
                date=data.get('date') or today,
            ).exists():
                continue
            try:
                with transaction.atomic():
                    AttendanceRecord.objects.create(recorded_by=recorded_by, **data)
                inserted += 1
            except IntegrityError:
                continue
        logger.info(f"Bulk attendance: {inserted} of {len(records)} rows inserted")
        return inserted

    @staticmethod
    def student_statistics(student_id, start_date=None, end_date=None):
        records = AttendanceRecord.objects.select_related('school_class').filter(student_id=student_id)
        if start_date and end_date:
            records = records.filter(date__gte=start_date, date__lte=end_date)
        records = list(records.order_by('-date'))
        return records, tally(r.status for r in records)

    @staticmethod
    def class_register(class_id, date):
        """Every student in the class with their status for ``date`` (or NOT_MARKED)."""
        students = Student.objects.filter(current_class_id=class_id).order_by('admission_no')
        marked = {
            r.student_id: r
            for r in AttendanceRecord.objects.filter(school_class_id=class_id, date=date)
        }

        register = []
        for student in students:
            record = marked.get(student.id)
            register.append({
                'id': student.id,
                'admission_no': student.admission_no,
                'first_name': student.first_name,
                'middle_name': student.middle_name,
                'last_name': student.last_name,
                'status': record.status if record else 'NOT_MARKED',
                'attendance_id': record.id if record else None,
            })
        return register

    @staticmethod
    def report(start_date, end_date, class_id=None):
        records = AttendanceRecord.objects.select_related('student', 'student__current_class').filter(
            date__gte=start_date, date__lte=end_date,
        )
        if class_id:
            records = records.filter(school_class_id=class_id)

        grouped = OrderedDict()
        for record in records.order_by('student__last_name', 'student__first_name'):
            grouped.setdefault(record.student, []).append(record.status)

        report = []
        for student, statuses in grouped.items():
            row = tally(statuses)
            row['student'] = {
                'id': student.id,
                'admission_no': student.admission_no,
                'first_name': student.first_name,
                'last_name': student.last_name,
                'class_code': student.current_class.code if student.current_class else None,
            }
            report.append(row)
        return report


# ==================== MARKS ====================
class MarksService:

    @staticmethod
    def module_average(student_id, subject_id, session=None):
        marks = MarksEntry.objects.filter(student_id=student_id, subject_id=subject_id)
        if session:
            marks = marks.filter(session=session)
        marks = list(marks)
        if not marks:
            raise NotFound(message='No marks found')

        written = [m.cat for m in marks if m.cat is not None]
        practical = [m.practical for m in marks if m.practical is not None]

        written_avg = sum(written) / len(written) if written else 0
        practical_avg = sum(practical) / len(practical) if practical else 0

        return {
            'written_average': round2(written_avg),
            'practical_average': round2(practical_avg),
            'overall_average': round2((written_avg + practical_avg) / 2),
            'written_count': len(written),
            'practical_count': len(practical),
        }

    @staticmethod
    def bulk_create(entries, entered_by=None):
        with transaction.atomic():
            created = [MarksEntry.objects.create(entered_by=entered_by, **data) for data in entries]
        return created


# ==================== EXAMS ====================
class TranscriptService:

    @staticmethod
    def build(student_id):
        student = (
            Student.objects
            .select_related('current_class', 'programme', 'department')
            .filter(pk=student_id)
            .first()
        )
        if student is None:
            raise NotFound('Student')

        marks_by_session = OrderedDict()
        for mark in MarksEntry.objects.select_related('subject').filter(student=student).order_by('session', 'subject__code'):
            marks_by_session.setdefault(mark.session, []).append(mark)

        results = ExamResult.objects.select_related('exam_schedule').filter(student=student).order_by('session')
        return student, marks_by_session, list(results)
