# student_views.py
import logging
from datetime import datetime
from io import BytesIO

import pandas as pd
from django.db import IntegrityError, transaction
from django.db.models import Count, Q
from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response

from .exceptions import MISError, BusinessRuleViolation, Conflict, ValidationFailed, error_response
from .models import Class, Department, Programme, Student, StudentReport, GENDER_CHOICES, SESSION_CHOICES
from .serializers import (
    ClassDetailSerializer, ClassSerializer, DepartmentSerializer, ProgrammeSerializer, ReportingStudentSerializer,
    StudentDetailSerializer, StudentListSerializer, StudentReportSerializer, StudentSerializer,
)
from .services import reporting
from .services import students as directory
from .utils import LargeEnvelopePagination
from .viewsets import AuditedModelViewSet, STAFF_ROLES

logger = logging.getLogger(__name__)

XLSX_CONTENT_TYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'

TEMPLATE_ROW = {
    'admission_no': 'KTYC/S/1/25',
    'first_name': 'Jane',
    'middle_name': 'Chebet',
    'last_name': 'Wanjiru',
    'gender': 'FEMALE',
    'date_of_birth': '2005-03-14',
    'nationality': 'Kenyan',
    'id_number': '12345678',
    'email': 'jane.wanjiru@example.com',
    'phone_number': '0712345678',
    'county': 'Nairobi',
    'academic_year': '2024/2025',
    'session': 'SEPT_DEC',
    'department': 'Information Communication Technology',
    'programme': 'Diploma in Information Technology',
    'current_class': '',
    'guardian_name': 'Peter Wanjiru',
    'guardian_phone': '0723456789',
    'guardian_relation': 'Father',
}


def _clean_cell(value):
    """Spreadsheet cell to a serializer-friendly value."""
    if value is None:
        return None
    if isinstance(value, pd.Timestamp):
        return None if pd.isna(value) else value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, float):
        if pd.isna(value):
            return None
        if value.is_integer():
            return int(value)
    if isinstance(value, str):
        return value.strip() or None
    return value


# ==================== STUDENTS ====================
class StudentViewSet(AuditedModelViewSet):
    """Student directory: CRUD, search, admission numbers and spreadsheet import."""
    queryset = Student.objects.select_related('current_class', 'programme', 'department').order_by('-created_at')
    serializer_class = StudentSerializer
    resource_name = 'Student'
    audit_table = 'students'
    conflict_message = 'A student with these details already exists'
    write_roles = STAFF_ROLES

    def get_serializer_class(self):
        if self.action in ['list', 'search']:
            return StudentListSerializer
        if self.action == 'details':
            return StudentDetailSerializer
        return super().get_serializer_class()

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            search = (self.request.query_params.get('search') or '').strip()
            if search:
                queryset = queryset.filter(
                    Q(admission_no__icontains=search) |
                    Q(first_name__icontains=search) |
                    Q(last_name__icontains=search) |
                    Q(email__icontains=search)
                )
        return queryset

    def get_write_data(self, request):
        return self.resolve_structure(dict(request.data.items()), creating=self.action == 'create')

    # Departments and programmes created from names must not outlive a rejected write
    def create(self, request, *args, **kwargs):
        with transaction.atomic():
            response = super().create(request, *args, **kwargs)
            if response.status_code >= 400:
                transaction.set_rollback(True)
        return response

    def update(self, request, *args, **kwargs):
        with transaction.atomic():
            response = super().update(request, *args, **kwargs)
            if response.status_code >= 400:
                transaction.set_rollback(True)
        return response

    def resolve_structure(self, data, creating=False):
        """Department / programme may arrive as ids or names; names are found or created."""
        if creating and not data.get('admission_no'):
            data['admission_no'] = directory.next_admission_number()

        department = directory.resolve_department(data.get('department'))
        if department is not None:
            data['department'] = department.pk

        programme = directory.resolve_programme(data.get('programme'), department)
        if programme is not None:
            data['programme'] = programme.pk
            if department is None:
                data['department'] = programme.department_id

        return data

    def check_unique(self, data, instance=None):
        others = Student.objects.all()
        if instance is not None:
            others = others.exclude(pk=instance.pk)

        if data.get('admission_no') and others.filter(admission_no=data['admission_no']).exists():
            raise Conflict('A student with this admission number already exists')
        if data.get('id_number') and others.filter(id_number=data['id_number']).exists():
            raise Conflict('A student with this ID number already exists')

    # ---- search ----
    @action(detail=False, methods=['get'])
    def search(self, request):
        try:
            students = directory.search_students(request.query_params)
            serializer = self.get_serializer(students, many=True)
            return Response({'success': True, 'data': serializer.data, 'count': len(serializer.data)})
        except MISError as e:
            return error_response(e)
        except Exception as e:
            logger.error(f"Error searching students: {str(e)}")
            return Response({
                'success': False,
                'error': 'Failed to search students'
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    @action(detail=False, methods=['get'], url_path='search-count')
    def search_count(self, request):
        try:
            return Response({'success': True, 'data': {'count': directory.count_students(request.query_params)}})
        except MISError as e:
            return error_response(e)
        except Exception as e:
            logger.error(f"Error counting students: {str(e)}")
            return Response({
                'success': False,
                'error': 'Failed to count students'
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    @action(detail=False, methods=['get'], url_path='search-filters')
    def search_filters(self, request):
        data = {
            'classes': list(Class.objects.filter(status='Active').values('id', 'code', 'name')),
            'departments': list(Department.objects.filter(is_active=True).values('id', 'code', 'name')),
            'programmes': list(
                Programme.objects.filter(is_active=True).values('id', 'code', 'name', 'department_id')
            ),
            'academic_statuses': [
                {'value': value, 'label': label} for value, label in Student.ACADEMIC_STATUS_CHOICES
            ],
            'genders': [{'value': value, 'label': label} for value, label in GENDER_CHOICES],
            'sessions': [{'value': value, 'label': label} for value, label in SESSION_CHOICES],
        }
        return Response({'success': True, 'data': data})

    @action(detail=True, methods=['get'])
    def details(self, request, pk=None):
        try:
            student = directory.get_student_details(pk)
            return Response({'success': True, 'data': self.get_serializer(student).data})
        except MISError as e:
            return error_response(e)

    @action(detail=False, methods=['get'], url_path=r'verify/(?P<admission_no>.+)')
    def verify(self, request, admission_no=None):
        try:
            student = directory.verify_admission_number(admission_no)
            return Response({
                'success': True,
                'data': {
                    'id': student.id,
                    'admission_no': student.admission_no,
                    'full_name': student.full_name,
                    'academic_status': student.academic_status,
                    'class_code': student.current_class.code if student.current_class else None,
                    'programme_name': student.programme.name if student.programme else None,
                }
            })
        except MISError as e:
            return error_response(e)

    # ---- numbering and statistics ----
    @action(detail=False, methods=['get'], url_path='generate-admission-number')
    def generate_admission_number(self, request):
        try:
            return Response({'success': True, 'data': {'admission_no': directory.next_admission_number()}})
        except Exception as e:
            logger.error(f"Error generating admission number: {str(e)}")
            return Response({
                'success': False,
                'error': 'Failed to generate admission number'
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    @action(detail=False, methods=['get'])
    def statistics(self, request):
        try:
            return Response({'success': True, 'data': directory.student_statistics()})
        except Exception as e:
            logger.error(f"Error getting student statistics: {str(e)}")
            return Response({
                'success': False,
                'error': 'Failed to load student statistics'
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    # ---- spreadsheet import ----
    @action(detail=False, methods=['post'], url_path='import',
            parser_classes=[MultiPartParser, FormParser, JSONParser])
    def import_students(self, request):
        try:
            self.check_write_permission(request, 'import')
        except MISError as e:
            return error_response(e)

        upload = request.FILES.get('file')
        if upload is None:
            return Response({'success': False, 'error': 'No file uploaded'},
                            status=status.HTTP_400_BAD_REQUEST)

        try:
            df = pd.read_excel(upload, engine='openpyxl', dtype=object)
        except Exception as e:
            logger.error(f"Error reading import file {upload.name}: {str(e)}")
            return Response({'success': False, 'error': 'Could not read the uploaded spreadsheet'},
                            status=status.HTTP_400_BAD_REQUEST)

        created, errors = 0, []
        # Row 1 is the header
        for row_number, row in enumerate(df.to_dict('records'), start=2):
            cleaned = {key: _clean_cell(value) for key, value in row.items()}
            cleaned = {key: value for key, value in cleaned.items() if value is not None}
            try:
                # A skipped row must not leave behind the department or programme it named
                with transaction.atomic():
                    data = self.resolve_structure(cleaned, creating=True)
                    serializer = StudentSerializer(data=data)
                    if not serializer.is_valid():
                        raise ValidationFailed('Validation failed', details=serializer.errors)

                    self.check_unique(serializer.validated_data)
                    student = serializer.save()
                created += 1
                self._audit('INSERT', student.pk, new_values={
                    'admission_no': student.admission_no,
                    'source': 'bulk_import',
                })

            except MISError as e:
                errors.append({'row': row_number, 'admission_no': cleaned.get('admission_no'),
                               'errors': e.details or e.message})
            except IntegrityError as e:
                logger.warning(f"Integrity error importing row {row_number}: {str(e)}")
                errors.append({'row': row_number, 'admission_no': cleaned.get('admission_no'),
                               'errors': 'Duplicate student record'})

        logger.info(f"Student import from {upload.name}: {created} created, {len(errors)} skipped")
        return Response({
            'success': True,
            'message': f"Imported {created} students",
            'data': {'created': created, 'skipped': len(errors), 'errors': errors}
        }, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)

    @action(detail=False, methods=['get'], url_path='import-template')
    def import_template(self, request):
        try:
            df = pd.DataFrame([TEMPLATE_ROW])

            output = BytesIO()
            with pd.ExcelWriter(output, engine='openpyxl') as writer:
                df.to_excel(writer, sheet_name='Students', index=False)

                worksheet = writer.sheets['Students']
                for column in worksheet.columns:
                    width = max(len(str(cell.value or '')) for cell in column)
                    worksheet.column_dimensions[column[0].column_letter].width = min(width + 2, 40)

            response = HttpResponse(output.getvalue(), content_type=XLSX_CONTENT_TYPE)
            response['Content-Disposition'] = 'attachment; filename="student_import_template.xlsx"'
            return response

        except Exception as e:
            logger.error(f"Error generating import template: {str(e)}")
            return Response({
                'success': False,
                'error': 'Failed to generate template'
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


# ==================== STUDENT REPORTING ====================
class StudentReportViewSet(AuditedModelViewSet):
    queryset = StudentReport.objects.select_related('reported_by').order_by('-reported_at')
    serializer_class = StudentReportSerializer
    pagination_class = LargeEnvelopePagination
    http_method_names = ['get', 'post', 'head', 'options']
    resource_name = 'Student report'
    audit_table = 'student_reports'
    audit_event = 'STUDENT_REPORT'
    write_roles = STAFF_ROLES

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            params = self.request.query_params
            if params.get('student'):
                queryset = queryset.filter(student_id=params['student'])
            if params.get('session'):
                queryset = queryset.filter(session=params['session'])
            if params.get('start_date'):
                queryset = queryset.filter(reported_at__date__gte=params['start_date'])
            if params.get('end_date'):
                queryset = queryset.filter(reported_at__date__lte=params['end_date'])
        return queryset

    def create(self, request, *args, **kwargs):
        try:
            self.check_write_permission(request, 'create')
            report = reporting.create_report(request.data.get('student'), reported_by=request.user)
        except MISError as e:
            return error_response(e)

        data = self.get_serializer(report).data
        self._audit('INSERT', report.pk, new_values=data)
        return Response({
            'success': True,
            'message': 'Student reported successfully!',
            'data': data
        }, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'])
    def overview(self, request):
        try:
            data = reporting.overview(request.query_params)
        except MISError as e:
            return error_response(e)

        data['recent_reports'] = StudentReportSerializer(data['recent_reports'], many=True).data
        return Response({'success': True, 'data': data})

    @action(detail=False, methods=['get'])
    def students(self, request):
        try:
            queryset = reporting.students_for_reporting(request.query_params)
            page = self.paginate_queryset(queryset)
        except MISError as e:
            return error_response(e)

        serializer = ReportingStudentSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)


# ==================== DEPARTMENTS ====================
class DepartmentViewSet(AuditedModelViewSet):
    queryset = Department.objects.all().order_by('name')
    serializer_class = DepartmentSerializer
    resource_name = 'Department'
    audit_table = 'departments'
    conflict_message = 'A department with this code already exists'
    write_roles = STAFF_ROLES

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            is_active = self.request.query_params.get('is_active')
            if is_active in ('true', 'false'):
                queryset = queryset.filter(is_active=is_active == 'true')
            search = self.request.query_params.get('search')
            if search:
                queryset = queryset.filter(Q(code__icontains=search) | Q(name__icontains=search))
        return queryset

    def check_unique(self, data, instance=None):
        code = data.get('code')
        others = Department.objects.exclude(pk=instance.pk) if instance else Department.objects.all()
        if code and others.filter(code=code).exists():
            raise Conflict(self.conflict_message)

    def check_delete(self, instance):
        count = instance.programmes.count()
        if count:
            raise BusinessRuleViolation(
                f"Cannot delete department with {count} programmes. "
                f"Please remove or reassign programmes first."
            )

    @action(detail=False, methods=['get'])
    def statistics(self, request):
        departments = Department.objects.annotate(
            programme_count=Count('programmes', distinct=True),
            student_count=Count('students', distinct=True),
        ).order_by('name')

        return Response({
            'success': True,
            'data': {
                'total': departments.count(),
                'active': departments.filter(is_active=True).count(),
                'departments': [
                    {
                        'id': d.id,
                        'code': d.code,
                        'name': d.name,
                        'programme_count': d.programme_count,
                        'student_count': d.student_count,
                    }
                    for d in departments
                ],
            }
        })


# ==================== PROGRAMMES ====================
class ProgrammeViewSet(AuditedModelViewSet):
    queryset = Programme.objects.select_related('department').order_by('code')
    serializer_class = ProgrammeSerializer
    resource_name = 'Programme'
    audit_table = 'programmes'
    conflict_message = 'A programme with this code already exists'
    write_roles = STAFF_ROLES

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            params = self.request.query_params
            if params.get('department_id'):
                queryset = queryset.filter(department_id=params['department_id'])
            if params.get('level'):
                queryset = queryset.filter(level=params['level'])
            if params.get('is_active') in ('true', 'false'):
                queryset = queryset.filter(is_active=params['is_active'] == 'true')
            if params.get('search'):
                queryset = queryset.filter(Q(code__icontains=params['search']) | Q(name__icontains=params['search']))
        return queryset

    def check_unique(self, data, instance=None):
        code = data.get('code')
        others = Programme.objects.exclude(pk=instance.pk) if instance else Programme.objects.all()
        if code and others.filter(code=code).exists():
            raise Conflict(self.conflict_message)

    def check_delete(self, instance):
        students = instance.students.count()
        if students:
            raise BusinessRuleViolation(
                f"Cannot delete programme with {students} students. "
                f"Please remove or reassign students first."
            )
        classes = instance.classes.count()
        if classes:
            raise BusinessRuleViolation(
                f"Cannot delete programme with {classes} classes. "
                f"Please remove or reassign classes first."
            )

    @action(detail=False, methods=['get'], url_path=r'by-department/(?P<department_id>\d+)')
    def by_department(self, request, department_id=None):
        programmes = self.get_queryset().filter(department_id=department_id)
        return Response({'success': True, 'data': self.get_serializer(programmes, many=True).data})

    @action(detail=True, methods=['get'])
    def statistics(self, request, pk=None):
        programme = self.get_object()
        students = programme.students.all()
        return Response({
            'success': True,
            'data': {
                'programme': {'id': programme.id, 'code': programme.code, 'name': programme.name},
                'total_students': students.count(),
                'total_classes': programme.classes.count(),
                'by_status': dict(students.values_list('academic_status').annotate(n=Count('id'))),
                'by_session': dict(
                    students.exclude(session__isnull=True).values_list('session').annotate(n=Count('id'))
                ),
            }
        })


# ==================== CLASSES ====================
class ClassViewSet(AuditedModelViewSet):
    queryset = Class.objects.select_related('programme').order_by('code')
    serializer_class = ClassSerializer
    resource_name = 'Class'
    audit_table = 'classes'
    conflict_message = 'Class with this code already exists'
    write_roles = STAFF_ROLES

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return ClassDetailSerializer
        return super().get_serializer_class()

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            params = self.request.query_params
            class_status = params.get('status') or 'Active'
            if class_status != 'all':
                queryset = queryset.filter(status=class_status)
            if params.get('programme_id'):
                queryset = queryset.filter(programme_id=params['programme_id'])
            search = params.get('search')
            if search:
                queryset = queryset.filter(
                    Q(code__icontains=search) |
                    Q(name__icontains=search) |
                    Q(branch__icontains=search) |
                    Q(programme__name__icontains=search)
                )
        return queryset

    def check_unique(self, data, instance=None):
        code = data.get('code')
        others = Class.objects.exclude(pk=instance.pk) if instance else Class.objects.all()
        if code and others.filter(code=code).exists():
            raise Conflict(self.conflict_message)

    def check_delete(self, instance):
        count = instance.current_students.count()
        if count:
            raise BusinessRuleViolation(f"Cannot delete class with {count} enrolled student(s)")

    @action(detail=False, methods=['get'])
    def statistics(self, request):
        classes = Class.objects.all()
        return Response({
            'success': True,
            'data': {
                'total': classes.count(),
                'active': classes.filter(status='Active').count(),
                'by_programme': list(
                    classes.values('programme__code', 'programme__name').annotate(count=Count('id'))
                    .order_by('programme__code')
                ),
                'by_mode_of_study': dict(classes.values_list('mode_of_study').annotate(n=Count('id'))),
            }
        })

    @action(detail=False, methods=['get'], url_path='programmes-dropdown')
    def programmes_dropdown(self, request):
        programmes = Programme.objects.filter(is_active=True).order_by('name').values('id', 'code', 'name')
        return Response({'success': True, 'data': list(programmes)})
