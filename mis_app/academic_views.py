# academic_views.py
import logging

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.response import Response

from .exceptions import MISError, BusinessRuleViolation, Conflict, ValidationFailed, error_response
from .models import (
    AttendanceRecord, Break, Building, ExamResult, ExamSchedule, MarksEntry, Room, Subject,
    SubjectRegistration, TimetableEntry, Tutor,
)
from .serializers import (
    AttendanceRecordSerializer, BreakSerializer, BuildingSerializer, ExamResultSerializer,
    ExamScheduleSerializer, MarksEntrySerializer, RoomSerializer, StudentListSerializer,
    SubjectRegistrationSerializer, SubjectSerializer, TimetableEntrySerializer, TutorSerializer,
    TutorSubjectAssignmentSerializer,
)
from .services.academics import (
    AttendanceService, MarksService, TranscriptService, calculate_competence, calculate_grade,
)
from .services import tutors as roster
from .utils import audit
from .viewsets import AuditedModelViewSet, STAFF_ROLES, TEACHING_ROLES, validation_failed

logger = logging.getLogger(__name__)


def _rows(request, key):
    rows = request.data.get(key) if hasattr(request.data, 'get') else request.data
    if not isinstance(rows, list) or not rows:
        raise ValidationFailed(f"'{key}' must be a non-empty list")
    return rows


# ==================== SUBJECTS ====================
class SubjectViewSet(AuditedModelViewSet):
    queryset = Subject.objects.all().order_by('code')
    serializer_class = SubjectSerializer
    resource_name = 'Subject'
    audit_table = 'subjects'
    conflict_message = 'A subject with this code already exists'
    write_roles = STAFF_ROLES

    def get_queryset(self):
        queryset = super().get_queryset()
        search = self.request.query_params.get('search')
        if self.action == 'list' and search:
            queryset = queryset.filter(Q(code__icontains=search) | Q(name__icontains=search))
        return queryset

    def check_unique(self, data, instance=None):
        others = Subject.objects.exclude(pk=instance.pk) if instance else Subject.objects.all()
        if data.get('code') and others.filter(code=data['code']).exists():
            raise Conflict(self.conflict_message)

    @action(detail=True, methods=['get'])
    def students(self, request, pk=None):
        subject = self.get_object()
        registrations = subject.registrations.select_related('student').order_by('student__admission_no')
        return Response({
            'success': True,
            'data': SubjectRegistrationSerializer(registrations, many=True).data
        })


class SubjectRegistrationViewSet(AuditedModelViewSet):
    queryset = SubjectRegistration.objects.select_related('student', 'subject').order_by('-created_at')
    serializer_class = SubjectRegistrationSerializer
    http_method_names = ['get', 'post', 'delete', 'head', 'options']
    resource_name = 'Subject registration'
    audit_table = 'subject_registrations'
    audit_event = 'SUBJECT_REGISTRATION'
    conflict_message = 'Student is already registered for this subject'
    write_roles = STAFF_ROLES

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            params = self.request.query_params
            for param, field in [('student', 'student_id'), ('subject', 'subject_id'),
                                 ('class_code', 'class_code'), ('cohort', 'cohort')]:
                if params.get(param):
                    queryset = queryset.filter(**{field: params[param]})
        return queryset

    def check_unique(self, data, instance=None):
        if SubjectRegistration.objects.filter(student=data['student'], subject=data['subject']).exists():
            raise Conflict(self.conflict_message)

    @action(detail=False, methods=['post'])
    def bulk(self, request):
        try:
            self.check_write_permission(request, 'create')
            rows = _rows(request, 'registrations')
        except MISError as e:
            return error_response(e)

        created, skipped, errors = 0, 0, []
        for index, row in enumerate(rows):
            serializer = self.get_serializer(data=row)
            if not serializer.is_valid():
                errors.append({'index': index, 'errors': serializer.errors})
                continue
            try:
                self.check_unique(serializer.validated_data)
                with transaction.atomic():
                    serializer.save()
                created += 1
            except (Conflict, IntegrityError):
                skipped += 1

        logger.info(f"Bulk subject registration: {created} created, {skipped} duplicates skipped")
        return Response({
            'success': True,
            'message': f"{created} registrations created",
            'data': {'created': created, 'skipped': skipped, 'errors': errors}
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path=r'student/(?P<student_id>\d+)')
    def for_student(self, request, student_id=None):
        registrations = self.get_queryset().filter(student_id=student_id).order_by('subject__code')
        return Response({'success': True, 'data': self.get_serializer(registrations, many=True).data})


# ==================== ATTENDANCE ====================
class AttendanceViewSet(AuditedModelViewSet):
    queryset = AttendanceRecord.objects.select_related('student', 'school_class', 'subject').order_by('-date')
    serializer_class = AttendanceRecordSerializer
    resource_name = 'Attendance record'
    audit_table = 'attendance'
    audit_event = 'ATTENDANCE'
    conflict_message = 'Attendance already recorded for this student on this date'
    write_roles = TEACHING_ROLES

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            params = self.request.query_params
            if params.get('student'):
                queryset = queryset.filter(student_id=params['student'])
            if params.get('class'):
                queryset = queryset.filter(school_class_id=params['class'])
            if params.get('subject'):
                queryset = queryset.filter(subject_id=params['subject'])
            if params.get('status'):
                queryset = queryset.filter(status=params['status'])
            if params.get('start_date'):
                queryset = queryset.filter(date__gte=params['start_date'])
            if params.get('end_date'):
                queryset = queryset.filter(date__lte=params['end_date'])
        return queryset

    def get_save_kwargs(self):
        return {'recorded_by': self.request.user}

    def check_unique(self, data, instance=None):
        if instance is not None:
            return
        duplicate = AttendanceRecord.objects.filter(
            student=data['student'],
            school_class=data['school_class'],
            subject=data.get('subject'),
            date=data.get('date', timezone.now().date()),
        )
        if duplicate.exists():
            raise Conflict(self.conflict_message)

    @action(detail=False, methods=['post'])
    def bulk(self, request):
        try:
            self.check_write_permission(request, 'record')
            rows = _rows(request, 'records')
        except MISError as e:
            return error_response(e)

        serializer = self.get_serializer(data=rows, many=True)
        if not serializer.is_valid():
            return validation_failed(serializer)

        count = AttendanceService.bulk_record(serializer.validated_data, recorded_by=request.user)
        self._audit('INSERT', None, new_values={'count': count, 'source': 'bulk'})
        return Response({
            'success': True,
            'message': f"{count} attendance records saved",
            'data': {'count': count}
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path=r'student/(?P<student_id>\d+)')
    def for_student(self, request, student_id=None):
        records, stats = AttendanceService.student_statistics(
            student_id,
            request.query_params.get('start_date'),
            request.query_params.get('end_date'),
        )
        return Response({
            'success': True,
            'data': {
                'records': self.get_serializer(records, many=True).data,
                'statistics': stats,
            }
        })

    @action(detail=False, methods=['get'], url_path=r'class/(?P<class_id>\d+)')
    def for_class(self, request, class_id=None):
        date = request.query_params.get('date') or timezone.now().date().isoformat()
        return Response({
            'success': True,
            'data': {
                'date': date,
                'students': AttendanceService.class_register(class_id, date),
            }
        })

    @action(detail=False, methods=['get'])
    def report(self, request):
        start_date = request.query_params.get('start_date')
        end_date = request.query_params.get('end_date')
        if not start_date or not end_date:
            return error_response(ValidationFailed('start_date and end_date are required'))

        try:
            data = AttendanceService.report(start_date, end_date, request.query_params.get('class_id'))
            return Response({'success': True, 'data': data})
        except Exception as e:
            logger.error(f"Error building attendance report: {str(e)}")
            return Response({
                'success': False,
                'error': 'Failed to generate attendance report'
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


# ==================== MARKS ====================
class MarksViewSet(AuditedModelViewSet):
    queryset = MarksEntry.objects.select_related('student', 'subject').order_by('-created_at')
    serializer_class = MarksEntrySerializer
    resource_name = 'Marks entry'
    audit_table = 'marks'
    audit_event = 'MARKS'
    write_roles = TEACHING_ROLES

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            params = self.request.query_params
            for param, field in [('student', 'student_id'), ('subject', 'subject_id'),
                                 ('class_code', 'class_code'), ('session', 'session'),
                                 ('exam_type', 'exam_type')]:
                if params.get(param):
                    queryset = queryset.filter(**{field: params[param]})
        return queryset

    def get_save_kwargs(self):
        return {'entered_by': self.request.user}

    @action(detail=False, methods=['post'])
    def bulk(self, request):
        try:
            self.check_write_permission(request, 'enter')
            rows = _rows(request, 'marks')
        except MISError as e:
            return error_response(e)

        serializer = self.get_serializer(data=rows, many=True)
        if not serializer.is_valid():
            return validation_failed(serializer)

        created = MarksService.bulk_create(serializer.validated_data, entered_by=request.user)
        self._audit('INSERT', None, new_values={'count': len(created), 'source': 'bulk'})
        return Response({
            'success': True,
            'message': f"{len(created)} marks entries created",
            'data': self.get_serializer(created, many=True).data
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path=r'student/(?P<student_id>\d+)')
    def for_student(self, request, student_id=None):
        marks = self.get_queryset().filter(student_id=student_id).order_by('session', 'subject__code')
        return Response({'success': True, 'data': self.get_serializer(marks, many=True).data})

    @action(detail=False, methods=['get'])
    def average(self, request):
        student_id = request.query_params.get('student_id')
        subject_id = request.query_params.get('subject_id')
        try:
            if not student_id or not subject_id:
                raise ValidationFailed('student_id and subject_id are required')
            data = MarksService.module_average(student_id, subject_id, request.query_params.get('session'))
            return Response({'success': True, 'data': data})
        except MISError as e:
            return error_response(e)


# ==================== EXAMS ====================
class ExamScheduleViewSet(AuditedModelViewSet):
    queryset = ExamSchedule.objects.prefetch_related('subjects').order_by('-exam_start_date')
    serializer_class = ExamScheduleSerializer
    resource_name = 'Exam schedule'
    audit_table = 'exam_schedules'
    audit_event = 'EXAM_SCHEDULE'
    write_roles = STAFF_ROLES

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            params = self.request.query_params
            if params.get('session'):
                queryset = queryset.filter(session=params['session'])
            if params.get('exam_type'):
                queryset = queryset.filter(exam_type=params['exam_type'])
        return queryset


class ExamResultViewSet(AuditedModelViewSet):
    queryset = ExamResult.objects.select_related('student', 'exam_schedule').order_by('-created_at')
    serializer_class = ExamResultSerializer
    resource_name = 'Exam result'
    audit_table = 'exam_results'
    audit_event = 'EXAM_RESULT'
    write_roles = TEACHING_ROLES

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            params = self.request.query_params
            for param, field in [('student', 'student_id'), ('exam_schedule', 'exam_schedule_id'),
                                 ('session', 'session'), ('class_code', 'class_code')]:
                if params.get(param):
                    queryset = queryset.filter(**{field: params[param]})
        return queryset

    def get_write_data(self, request):
        return self.with_competence(dict(request.data.items()))

    @staticmethod
    def with_competence(data):
        # A numeric overall performance implies the competence band
        if not data.get('competence') and data.get('overall_performance') not in (None, ''):
            try:
                data['competence'] = calculate_competence(float(data['overall_performance']))
            except (TypeError, ValueError):
                pass
        return data

    @action(detail=False, methods=['post'])
    def bulk(self, request):
        try:
            self.check_write_permission(request, 'create')
            rows = [self.with_competence(dict(row)) for row in _rows(request, 'results')]
        except MISError as e:
            return error_response(e)

        serializer = self.get_serializer(data=rows, many=True)
        if not serializer.is_valid():
            return validation_failed(serializer)

        with transaction.atomic():
            results = serializer.save()
        self._audit('INSERT', None, new_values={'count': len(results), 'source': 'bulk'})
        return Response({
            'success': True,
            'message': f"{len(results)} exam results created",
            'data': self.get_serializer(results, many=True).data
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path=r'student/(?P<student_id>\d+)')
    def for_student(self, request, student_id=None):
        results = self.get_queryset().filter(student_id=student_id)
        return Response({'success': True, 'data': self.get_serializer(results, many=True).data})

    @action(detail=False, methods=['get'], url_path=r'transcript/(?P<student_id>\d+)')
    def transcript(self, request, student_id=None):
        try:
            student, marks_by_session, results = TranscriptService.build(student_id)
        except MISError as e:
            return error_response(e)

        return Response({
            'success': True,
            'data': {
                'student': StudentListSerializer(student).data,
                'marks_by_session': {
                    session: MarksEntrySerializer(marks, many=True).data
                    for session, marks in marks_by_session.items()
                },
                'results': self.get_serializer(results, many=True).data,
            }
        })

    @action(detail=False, methods=['get'])
    def grade(self, request):
        try:
            score = float(request.query_params.get('score'))
        except (TypeError, ValueError):
            return error_response(ValidationFailed('A numeric score is required'))
        return Response({
            'success': True,
            'data': {'score': score, 'grade': calculate_grade(score), 'competence': calculate_competence(score)}
        })


# ==================== TIMETABLE ====================
class BuildingViewSet(AuditedModelViewSet):
    queryset = Building.objects.all().order_by('title')
    serializer_class = BuildingSerializer
    resource_name = 'Building'
    audit_table = 'buildings'
    write_roles = STAFF_ROLES

    def check_delete(self, instance):
        if instance.rooms.exists():
            raise BusinessRuleViolation('Cannot delete building with rooms. Delete rooms first.')


class RoomViewSet(AuditedModelViewSet):
    queryset = Room.objects.select_related('building').order_by('title')
    serializer_class = RoomSerializer
    resource_name = 'Room'
    audit_table = 'rooms'
    write_roles = STAFF_ROLES

    def get_queryset(self):
        queryset = super().get_queryset()
        building = self.request.query_params.get('building')
        if self.action == 'list' and building:
            queryset = queryset.filter(building_id=building)
        return queryset

    def check_delete(self, instance):
        if instance.timetable_entries.exists():
            raise BusinessRuleViolation('Cannot delete room being used in timetable. Remove from schedule first.')


class BreakViewSet(AuditedModelViewSet):
    queryset = Break.objects.all().order_by('sr_no')
    serializer_class = BreakSerializer
    resource_name = 'Break'
    audit_table = 'breaks'
    write_roles = STAFF_ROLES


class TimetableEntryViewSet(AuditedModelViewSet):
    queryset = TimetableEntry.objects.select_related(
        'school_class', 'subject', 'tutor', 'room'
    ).order_by('day_of_week', 'start_time')
    serializer_class = TimetableEntrySerializer
    resource_name = 'Timetable entry'
    audit_table = 'timetable'
    audit_event = 'TIMETABLE'
    write_roles = STAFF_ROLES

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            params = self.request.query_params
            if params.get('class'):
                queryset = queryset.filter(school_class_id=params['class'])
            if params.get('tutor'):
                queryset = queryset.filter(tutor_id=params['tutor'])
            if params.get('day'):
                queryset = queryset.filter(day_of_week=params['day'])
        return queryset


# ==================== TUTORS ====================
class TutorViewSet(AuditedModelViewSet):
    """Tutor roster with subject assignments; codes are issued as ``KTYC/TUT/nnnn`` when omitted."""
    queryset = Tutor.objects.all().order_by('-created_at')
    serializer_class = TutorSerializer
    resource_name = 'Tutor'
    audit_table = 'tutors'
    conflict_message = 'A tutor with these details already exists'
    write_roles = STAFF_ROLES

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            params = self.request.query_params
            search = (params.get('search') or '').strip()
            if search:
                queryset = queryset.filter(
                    Q(employee_code__icontains=search) |
                    Q(first_name__icontains=search) |
                    Q(last_name__icontains=search) |
                    Q(email__icontains=search)
                )
            is_active = params.get('is_active')
            if is_active in ('true', 'false'):
                queryset = queryset.filter(is_active=is_active == 'true')
        return queryset

    def get_write_data(self, request):
        data = dict(request.data.items())
        if self.action == 'create' and not data.get('employee_code'):
            data['employee_code'] = roster.next_employee_code()
        return data

    def check_unique(self, data, instance=None):
        others = Tutor.objects.exclude(pk=instance.pk) if instance else Tutor.objects.all()
        if data.get('employee_code') and others.filter(employee_code=data['employee_code']).exists():
            raise Conflict('A tutor with this employee code already exists')
        if data.get('email') and others.filter(email__iexact=data['email']).exists():
            raise Conflict('A tutor with this email already exists')

    def check_delete(self, instance):
        if instance.subject_assignments.exists():
            raise BusinessRuleViolation(
                'Cannot delete tutor with active subject assignments. Remove assignments first.'
            )

    @action(detail=False, methods=['get'], url_path='generate-employee-code')
    def generate_employee_code(self, request):
        return Response({'success': True, 'data': {'employee_code': roster.next_employee_code()}})

    @action(detail=True, methods=['post'], url_path='assign-subject')
    def assign_subject(self, request, pk=None):
        try:
            self.check_write_permission(request, 'update')
            tutor = self.get_object()
            assignment = roster.assign_subject(tutor, request.data.get('subject'), request.data.get('school_class'))
        except MISError as e:
            return error_response(e)

        data = TutorSubjectAssignmentSerializer(assignment).data
        audit(request, 'TUTOR_SUBJECT_ASSIGN', 'tutor_subject_assignments',
              record_id=assignment.pk, operation='INSERT', new_values=data)
        return Response({
            'success': True,
            'message': 'Subject assigned successfully',
            'data': data
        }, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['delete'], url_path=r'subjects/(?P<subject_id>\d+)')
    def remove_subject(self, request, pk=None, subject_id=None):
        try:
            self.check_write_permission(request, 'update')
            tutor = self.get_object()
            assignment = roster.remove_assignment(tutor, subject_id)
        except MISError as e:
            return error_response(e)

        audit(request, 'TUTOR_SUBJECT_REMOVE', 'tutor_subject_assignments', record_id=assignment.subject_id,
              operation='DELETE', old_values={'tutor': tutor.pk, 'subject': assignment.subject_id})
        return Response({'success': True, 'message': 'Subject assignment removed successfully'})
