# serializers.py
import re
from decimal import Decimal

from rest_framework import serializers
from django.db.models import Avg

from .models import *
from .services.academics import calculate_grade
from .services.procurement import parse_description
from .utils import round2


# ==================== USERS ====================
class UserSerializer(serializers.ModelSerializer):
    role_display = serializers.CharField(source='get_role_display', read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'username', 'first_name', 'last_name',
            'role', 'role_display', 'phone_number', 'is_active'
        ]
        read_only_fields = fields


class StaffSerializer(serializers.ModelSerializer):
    """Staff accounts as managed by administrators; the password is write-only and set on create."""
    password = serializers.CharField(write_only=True, required=False, min_length=8,
                                     style={'input_type': 'password'})
    role_display = serializers.CharField(source='get_role_display', read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'password', 'first_name', 'last_name', 'role', 'role_display',
            'phone_number', 'is_active', 'date_joined', 'last_login', 'updated_at'
        ]
        read_only_fields = ['id', 'date_joined', 'last_login', 'updated_at']
        extra_kwargs = {
            'email': {'validators': []},
            'first_name': {'required': True, 'allow_blank': False},
            'last_name': {'required': True, 'allow_blank': False},
        }

    def validate_email(self, value):
        return value.strip().lower()

    def validate(self, data):
        if self.instance is None and not data.get('password'):
            raise serializers.ValidationError({'password': 'Password is required'})
        if self.instance is not None and 'password' in data:
            raise serializers.ValidationError({'password': 'Use the reset-password endpoint to change a password'})
        return data

    def create(self, validated_data):
        password = validated_data.pop('password')
        user = User(username=validated_data['email'], **validated_data)
        user.set_password(password)
        user.save()
        return user

    def update(self, instance, validated_data):
        if 'email' in validated_data:
            instance.username = validated_data['email']
        return super().update(instance, validated_data)


class StaffDetailSerializer(StaffSerializer):
    record_counts = serializers.SerializerMethodField()

    class Meta(StaffSerializer.Meta):
        fields = StaffSerializer.Meta.fields + ['record_counts']

    def get_record_counts(self, obj):
        return {
            'student_reports': obj.student_reports.count(),
            'attendance_records': obj.recorded_attendance.count(),
            'marks_entries': obj.entered_marks.count(),
        }


# ==================== INSTITUTION STRUCTURE ====================
class DepartmentSerializer(serializers.ModelSerializer):
    programme_count = serializers.SerializerMethodField()
    student_count = serializers.SerializerMethodField()

    class Meta:
        model = Department
        fields = [
            'id', 'code', 'name', 'description', 'is_active',
            'programme_count', 'student_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        extra_kwargs = {'code': {'validators': []}}

    def get_programme_count(self, obj):
        return obj.programmes.count()

    def get_student_count(self, obj):
        return obj.students.count()

    def validate_code(self, value):
        return value.strip().upper()


class ProgrammeSerializer(serializers.ModelSerializer):
    department_name = serializers.CharField(source='department.name', read_only=True)
    student_count = serializers.SerializerMethodField()
    class_count = serializers.SerializerMethodField()

    class Meta:
        model = Programme
        fields = [
            'id', 'code', 'name', 'department', 'department_name', 'level',
            'duration', 'award_scheme', 'effective_date', 'end_date', 'is_active',
            'student_count', 'class_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        extra_kwargs = {'code': {'validators': []}}

    def get_student_count(self, obj):
        return obj.students.count()

    def get_class_count(self, obj):
        return obj.classes.count()

    def validate_code(self, value):
        return value.strip().upper()

    def validate(self, data):
        effective = data.get('effective_date', getattr(self.instance, 'effective_date', None))
        end = data.get('end_date', getattr(self.instance, 'end_date', None))
        if effective and end and end < effective:
            raise serializers.ValidationError({'end_date': 'End date cannot be before effective date'})
        return data


class ClassSerializer(serializers.ModelSerializer):
    programme_name = serializers.CharField(source='programme.name', read_only=True)
    programme_code = serializers.CharField(source='programme.code', read_only=True)
    student_count = serializers.SerializerMethodField()

    class Meta:
        model = Class
        fields = [
            'id', 'code', 'name', 'programme', 'programme_name', 'programme_code',
            'branch', 'session_type', 'mode_of_study', 'start_date', 'end_date',
            'number_of_teachers', 'status', 'student_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        extra_kwargs = {'code': {'validators': []}}

    def get_student_count(self, obj):
        return obj.current_students.count()

    def validate_code(self, value):
        return value.strip()


class ClassDetailSerializer(ClassSerializer):
    students = serializers.SerializerMethodField()
    class_average = serializers.SerializerMethodField()

    class Meta(ClassSerializer.Meta):
        fields = ClassSerializer.Meta.fields + ['students', 'class_average']

    def _student_rows(self, obj):
        if not hasattr(self, '_rows'):
            self._rows = {}
        if obj.pk not in self._rows:
            students = obj.current_students.annotate(average_marks=Avg('marks__total')).order_by('admission_no')
            self._rows[obj.pk] = [
                {
                    'id': s.id,
                    'admission_no': s.admission_no,
                    'first_name': s.first_name,
                    'middle_name': s.middle_name,
                    'last_name': s.last_name,
                    'gender': s.gender,
                    'academic_status': s.academic_status,
                    'average_marks': round2(s.average_marks) if s.average_marks is not None else None,
                }
                for s in students
            ]
        return self._rows[obj.pk]

    def get_students(self, obj):
        return self._student_rows(obj)

    def get_class_average(self, obj):
        averages = [row['average_marks'] for row in self._student_rows(obj) if row['average_marks'] is not None]
        if not averages:
            return 0
        return round2(sum(averages) / len(averages))


# ==================== STUDENTS ====================
class StudentSerializer(serializers.ModelSerializer):
    full_name = serializers.SerializerMethodField()
    current_class_details = serializers.SerializerMethodField()
    programme_details = serializers.SerializerMethodField()
    department_details = serializers.SerializerMethodField()

    class Meta:
        model = Student
        fields = [
            'id', 'admission_no', 'first_name', 'middle_name', 'last_name', 'full_name',
            'gender', 'date_of_birth', 'nationality', 'id_number', 'religion',
            'email', 'phone_number', 'address', 'county', 'sub_county',
            'cohort', 'academic_year', 'session',
            'current_class', 'current_class_details', 'programme', 'programme_details',
            'department', 'department_details', 'stream', 'previous_school',
            'kcpe_score', 'special_needs', 'academic_status',
            'guardian_name', 'guardian_phone', 'guardian_email', 'guardian_relation',
            'guardian_occupation', 'guardian_id_number', 'guardian_address',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        extra_kwargs = {
            'admission_no': {'validators': []},
            'id_number': {'validators': []},
        }

    def get_full_name(self, obj):
        return obj.full_name

    def get_current_class_details(self, obj):
        if obj.current_class:
            return {'id': obj.current_class.id, 'code': obj.current_class.code, 'name': obj.current_class.name}
        return None

    def get_programme_details(self, obj):
        if obj.programme:
            return {'id': obj.programme.id, 'code': obj.programme.code, 'name': obj.programme.name}
        return None

    def get_department_details(self, obj):
        if obj.department:
            return {'id': obj.department.id, 'code': obj.department.code, 'name': obj.department.name}
        return None

    def validate_phone_number(self, value):
        if value and not re.match(r'^\+?[0-9\s\-\(\)]+$', value):
            raise serializers.ValidationError('Invalid phone number format')
        return value

    def validate_id_number(self, value):
        # Blank ID numbers are stored as NULL so they do not collide
        return value or None


class StudentListSerializer(serializers.ModelSerializer):
    class_code = serializers.CharField(source='current_class.code', read_only=True, default=None)
    class_name = serializers.CharField(source='current_class.name', read_only=True, default=None)
    programme_name = serializers.CharField(source='programme.name', read_only=True, default=None)
    department_name = serializers.CharField(source='department.name', read_only=True, default=None)

    class Meta:
        model = Student
        fields = [
            'id', 'admission_no', 'first_name', 'middle_name', 'last_name', 'gender',
            'email', 'phone_number', 'id_number', 'academic_status', 'session', 'academic_year',
            'current_class', 'class_code', 'class_name', 'programme', 'programme_name',
            'department', 'department_name'
        ]


class StudentDetailSerializer(StudentSerializer):
    current_class_details = serializers.SerializerMethodField()
    programme_details = serializers.SerializerMethodField()
    subject_registrations = serializers.SerializerMethodField()
    attendance_records = serializers.SerializerMethodField()
    marks = serializers.SerializerMethodField()
    fee_payments = serializers.SerializerMethodField()

    class Meta(StudentSerializer.Meta):
        fields = StudentSerializer.Meta.fields + [
            'subject_registrations', 'attendance_records', 'marks', 'fee_payments'
        ]

    def get_current_class_details(self, obj):
        if not obj.current_class:
            return None
        details = super().get_current_class_details(obj)
        programme = obj.current_class.programme
        details['programme'] = {'id': programme.id, 'code': programme.code, 'name': programme.name}
        return details

    def get_programme_details(self, obj):
        if not obj.programme:
            return None
        details = super().get_programme_details(obj)
        department = obj.programme.department
        details['department'] = {'id': department.id, 'code': department.code, 'name': department.name}
        return details

    def get_subject_registrations(self, obj):
        return SubjectRegistrationSerializer(obj.subject_registrations.all(), many=True).data

    def get_attendance_records(self, obj):
        records = obj.attendance_records.select_related('subject').order_by('-date')[:10]
        return AttendanceRecordSerializer(records, many=True).data

    def get_marks(self, obj):
        return MarksEntrySerializer(obj.marks.all(), many=True).data

    def get_fee_payments(self, obj):
        payments = sorted(obj.fee_payments.all(), key=lambda p: p.payment_date, reverse=True)
        return FeePaymentSerializer(payments, many=True).data


# ==================== STUDENT REPORTING ====================
class StudentReportSerializer(serializers.ModelSerializer):
    reported_by_name = serializers.SerializerMethodField()

    class Meta:
        model = StudentReport
        fields = [
            'id', 'student', 'admission_no', 'student_name', 'session', 'branch',
            'class_code', 'programme', 'department', 'reported_by', 'reported_by_name', 'reported_at'
        ]
        read_only_fields = fields

    def get_reported_by_name(self, obj):
        if obj.reported_by:
            return obj.reported_by.get_full_name() or obj.reported_by.email
        return None


class ReportingStudentSerializer(serializers.ModelSerializer):
    """Directory row for the reporting desk; expects ``report_count``/``last_reported`` annotations."""
    class_code = serializers.CharField(source='current_class.code', read_only=True, default='N/A')
    programme_name = serializers.CharField(source='programme.name', read_only=True, default='N/A')
    department_name = serializers.CharField(source='department.name', read_only=True, default='N/A')
    session_label = serializers.SerializerMethodField()
    report_count = serializers.IntegerField(read_only=True)
    last_reported = serializers.DateTimeField(read_only=True, allow_null=True)

    class Meta:
        model = Student
        fields = [
            'id', 'admission_no', 'first_name', 'last_name', 'gender', 'academic_year',
            'academic_status', 'session', 'session_label', 'class_code', 'programme_name',
            'department_name', 'report_count', 'last_reported'
        ]
        read_only_fields = fields

    def get_session_label(self, obj):
        return obj.session.replace('_', '-') if obj.session else 'N/A'


# ==================== ACADEMICS ====================
class SubjectSerializer(serializers.ModelSerializer):
    registration_count = serializers.SerializerMethodField()

    class Meta:
        model = Subject
        fields = ['id', 'code', 'name', 'curriculum', 'credits', 'is_core', 'registration_count', 'created_at']
        read_only_fields = ['id', 'created_at']
        extra_kwargs = {'code': {'validators': []}}

    def get_registration_count(self, obj):
        return obj.registrations.count()


class SubjectRegistrationSerializer(serializers.ModelSerializer):
    subject_code = serializers.CharField(source='subject.code', read_only=True)
    subject_name = serializers.CharField(source='subject.name', read_only=True)
    admission_no = serializers.CharField(source='student.admission_no', read_only=True)
    student_name = serializers.CharField(source='student.full_name', read_only=True)

    class Meta:
        model = SubjectRegistration
        fields = [
            'id', 'student', 'admission_no', 'student_name', 'subject', 'subject_code',
            'subject_name', 'cohort', 'class_code', 'start_date', 'end_date',
            'number_of_subjects', 'created_at'
        ]
        read_only_fields = ['id', 'created_at']
        validators = []


class AttendanceRecordSerializer(serializers.ModelSerializer):
    admission_no = serializers.CharField(source='student.admission_no', read_only=True)
    class_code = serializers.CharField(source='school_class.code', read_only=True)
    subject_name = serializers.CharField(source='subject.name', read_only=True, default=None)

    class Meta:
        model = AttendanceRecord
        fields = [
            'id', 'date', 'student', 'admission_no', 'school_class', 'class_code',
            'subject', 'subject_name', 'stage', 'room', 'status', 'recorded_by', 'recorded_at'
        ]
        read_only_fields = ['id', 'recorded_by', 'recorded_at']
        validators = []


class MarksEntrySerializer(serializers.ModelSerializer):
    subject_code = serializers.CharField(source='subject.code', read_only=True)
    subject_name = serializers.CharField(source='subject.name', read_only=True)
    admission_no = serializers.CharField(source='student.admission_no', read_only=True)
    grade = serializers.SerializerMethodField()

    class Meta:
        model = MarksEntry
        fields = [
            'id', 'student', 'admission_no', 'subject', 'subject_code', 'subject_name',
            'class_code', 'cohort', 'session', 'schedule_type', 'exam_type',
            'cat', 'mid_term', 'practical', 'end_of_term', 'industrial_attachment',
            'total', 'grade', 'entered_by', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'entered_by', 'created_at', 'updated_at']

    def get_grade(self, obj):
        return calculate_grade(obj.total) if obj.total is not None else None

    def validate(self, data):
        # Total defaults to the sum of whichever components were entered
        if data.get('total') is None:
            components = ['cat', 'mid_term', 'practical', 'end_of_term', 'industrial_attachment']
            scores = [data.get(c, getattr(self.instance, c, None)) for c in components]
            scores = [s for s in scores if s is not None]
            if scores:
                data['total'] = sum(scores)
        return data


class ExamScheduleSerializer(serializers.ModelSerializer):
    subject_details = SubjectSerializer(source='subjects', many=True, read_only=True)

    class Meta:
        model = ExamSchedule
        fields = [
            'id', 'schedule_type', 'session', 'exam_type', 'number_of_classes',
            'exam_start_date', 'exam_end_date', 'subjects', 'subject_details', 'created_at'
        ]
        read_only_fields = ['id', 'created_at']

    def validate(self, data):
        start = data.get('exam_start_date', getattr(self.instance, 'exam_start_date', None))
        end = data.get('exam_end_date', getattr(self.instance, 'exam_end_date', None))
        if start and end and end < start:
            raise serializers.ValidationError({'exam_end_date': 'Exam end date cannot be before start date'})
        return data


class ExamResultSerializer(serializers.ModelSerializer):
    admission_no = serializers.CharField(source='student.admission_no', read_only=True)
    student_name = serializers.CharField(source='student.full_name', read_only=True)
    exam = serializers.StringRelatedField(source='exam_schedule')

    class Meta:
        model = ExamResult
        fields = [
            'id', 'student', 'admission_no', 'student_name', 'exam_schedule', 'exam',
            'session', 'class_code', 'schedule_type', 'exam_type',
            'overall_performance', 'competence', 'created_at'
        ]
        read_only_fields = ['id', 'created_at']


# ==================== TIMETABLE ====================
class BuildingSerializer(serializers.ModelSerializer):
    room_count = serializers.SerializerMethodField()

    class Meta:
        model = Building
        fields = ['id', 'title', 'status', 'room_count', 'created_at']
        read_only_fields = ['id', 'created_at']

    def get_room_count(self, obj):
        return obj.rooms.count()


class RoomSerializer(serializers.ModelSerializer):
    building_title = serializers.CharField(source='building.title', read_only=True)

    class Meta:
        model = Room
        fields = ['id', 'title', 'building', 'building_title', 'room_incharge', 'capacity', 'created_at']
        read_only_fields = ['id', 'created_at']


class BreakSerializer(serializers.ModelSerializer):
    class Meta:
        model = Break
        fields = ['id', 'sr_no', 'title', 'start_time', 'end_time']
        read_only_fields = ['id']

    def validate(self, data):
        start = data.get('start_time', getattr(self.instance, 'start_time', None))
        end = data.get('end_time', getattr(self.instance, 'end_time', None))
        if start and end and end <= start:
            raise serializers.ValidationError({'end_time': 'End time must be after start time'})
        return data


class TutorSubjectAssignmentSerializer(serializers.ModelSerializer):
    subject_code = serializers.CharField(source='subject.code', read_only=True)
    subject_name = serializers.CharField(source='subject.name', read_only=True)
    class_code = serializers.CharField(source='school_class.code', read_only=True, default=None)

    class Meta:
        model = TutorSubjectAssignment
        fields = ['id', 'tutor', 'subject', 'subject_code', 'subject_name', 'school_class', 'class_code', 'created_at']
        read_only_fields = fields


class TutorSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(read_only=True)
    subjects = serializers.SerializerMethodField()
    timetable_entry_count = serializers.SerializerMethodField()

    class Meta:
        model = Tutor
        fields = [
            'id', 'employee_code', 'first_name', 'last_name', 'full_name', 'email',
            'phone_number', 'specialization', 'is_active', 'subjects', 'timetable_entry_count',
            'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        extra_kwargs = {
            'employee_code': {'validators': []},
            'email': {'validators': []},
        }

    def get_subjects(self, obj):
        assignments = obj.subject_assignments.select_related('subject', 'school_class').order_by('subject__code')
        return TutorSubjectAssignmentSerializer(assignments, many=True).data

    def get_timetable_entry_count(self, obj):
        return obj.timetable_entries.count()

    def validate_email(self, value):
        return value.strip().lower()

    def validate_phone_number(self, value):
        if value and not re.match(r'^\+?[0-9\s\-\(\)]+$', value):
            raise serializers.ValidationError('Invalid phone number format')
        return value


class TimetableEntrySerializer(serializers.ModelSerializer):
    class_code = serializers.CharField(source='school_class.code', read_only=True)
    subject_name = serializers.CharField(source='subject.name', read_only=True)
    tutor_name = serializers.SerializerMethodField()
    room_title = serializers.CharField(source='room.title', read_only=True, default=None)
    day_name = serializers.CharField(source='get_day_of_week_display', read_only=True)

    class Meta:
        model = TimetableEntry
        fields = [
            'id', 'school_class', 'class_code', 'subject', 'subject_name', 'tutor', 'tutor_name',
            'room', 'room_title', 'day_of_week', 'day_name', 'start_time', 'end_time', 'created_at'
        ]
        read_only_fields = ['id', 'created_at']

    def get_tutor_name(self, obj):
        if obj.tutor:
            return obj.tutor.full_name
        return None

    def validate(self, data):
        start = data.get('start_time', getattr(self.instance, 'start_time', None))
        end = data.get('end_time', getattr(self.instance, 'end_time', None))
        if start and end and end <= start:
            raise serializers.ValidationError({'end_time': 'End time must be after start time'})
        return data


# ==================== FINANCE ====================
class FeeStructureSerializer(serializers.ModelSerializer):
    programme_name = serializers.CharField(source='programme.name', read_only=True)
    programme_code = serializers.CharField(source='programme.code', read_only=True)
    total_fee = serializers.DecimalField(max_digits=12, decimal_places=2, required=False,
                                         min_value=Decimal('0'))

    class Meta:
        model = FeeStructure
        fields = [
            'id', 'programme', 'programme_name', 'programme_code', 'academic_year', 'session',
            'tuition_fee', 'exam_fee', 'library_fee', 'activity_fee', 'total_fee',
            'is_active', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']
        validators = []

    def validate_academic_year(self, value):
        if not re.match(r'^\d{4}/\d{4}$', value):
            raise serializers.ValidationError('Academic year must look like 2024/2025')
        return value

    def update(self, instance, validated_data):
        # Recompute the total from the voteheads unless one is supplied
        if 'total_fee' not in validated_data:
            validated_data['total_fee'] = 0
        return super().update(instance, validated_data)


class FeePaymentSerializer(serializers.ModelSerializer):
    admission_no = serializers.CharField(source='student.admission_no', read_only=True)
    first_name = serializers.CharField(source='student.first_name', read_only=True)
    last_name = serializers.CharField(source='student.last_name', read_only=True)
    email = serializers.CharField(source='student.email', read_only=True)
    phone_number = serializers.CharField(source='student.phone_number', read_only=True)
    received_by_name = serializers.SerializerMethodField()

    class Meta:
        model = FeePayment
        fields = [
            'id', 'student', 'admission_no', 'first_name', 'last_name', 'email', 'phone_number',
            'academic_year', 'session', 'amount_paid', 'payment_method', 'transaction_ref',
            'payment_date', 'status', 'received_by', 'received_by_name', 'remarks', 'created_at'
        ]
        read_only_fields = fields

    def get_received_by_name(self, obj):
        if obj.received_by:
            return obj.received_by.get_full_name() or obj.received_by.email
        return None


class RecordPaymentSerializer(serializers.Serializer):
    student = serializers.CharField()
    academic_year = serializers.CharField(max_length=9)
    session = serializers.ChoiceField(choices=SESSION_CHOICES)
    amount_paid = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal('0.01'))
    payment_method = serializers.ChoiceField(choices=FeePayment.PAYMENT_METHOD_CHOICES)
    transaction_ref = serializers.CharField(max_length=100)
    payment_date = serializers.DateTimeField(required=False)
    remarks = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate_transaction_ref(self, value):
        return value.strip()


class ProcurementRequestSerializer(serializers.ModelSerializer):
    class Meta:
        model = ProcurementRequest
        fields = [
            'id', 'request_number', 'requested_by', 'department', 'description',
            'estimated_cost', 'status', 'approved_by', 'approved_at', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class ProcurementDetailSerializer(ProcurementRequestSerializer):
    parsed_description = serializers.SerializerMethodField()

    class Meta(ProcurementRequestSerializer.Meta):
        fields = ProcurementRequestSerializer.Meta.fields + ['parsed_description']
        read_only_fields = fields

    def get_parsed_description(self, obj):
        return parse_description(obj.description)


PRIORITY_CHOICES = ['LOW', 'MEDIUM', 'HIGH', 'URGENT']


class ProcurementInputSerializer(serializers.Serializer):
    requested_by = serializers.CharField(max_length=100, required=False)
    department = serializers.CharField(max_length=100)
    description = serializers.CharField()
    estimated_cost = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0'))
    priority = serializers.ChoiceField(choices=PRIORITY_CHOICES, required=False)
    justification = serializers.CharField(required=False, allow_blank=True)
    category = serializers.CharField(required=False, allow_blank=True)


# ==================== HOSTEL ====================
class HostelBedSerializer(serializers.ModelSerializer):
    class Meta:
        model = HostelBed
        fields = ['id', 'bed_number', 'is_occupied']


class HostelRoomSerializer(serializers.ModelSerializer):
    floor_level = serializers.CharField(source='floor.floor_level', read_only=True)
    block_number = serializers.IntegerField(source='floor.block.block_number', read_only=True)
    gender = serializers.CharField(source='floor.block.gender', read_only=True)
    beds = HostelBedSerializer(many=True, read_only=True)

    class Meta:
        model = HostelRoom
        fields = [
            'id', 'floor', 'floor_level', 'block_number', 'gender', 'room_number',
            'capacity', 'current_occupancy', 'is_available', 'status', 'beds'
        ]


class HostelBlockSerializer(serializers.ModelSerializer):
    floor_count = serializers.SerializerMethodField()
    booking_count = serializers.SerializerMethodField()

    class Meta:
        model = HostelBlock
        fields = ['id', 'block_number', 'gender', 'total_capacity', 'floor_count', 'booking_count', 'created_at']

    def get_floor_count(self, obj):
        return obj.floors.count()

    def get_booking_count(self, obj):
        return obj.bookings.count()


class HostelBookingSerializer(serializers.ModelSerializer):
    admission_no = serializers.CharField(source='student.admission_no', read_only=True)
    student_name = serializers.CharField(source='student.full_name', read_only=True)
    block_number = serializers.IntegerField(source='block.block_number', read_only=True)
    floor_level = serializers.CharField(source='floor.floor_level', read_only=True)
    room_number = serializers.IntegerField(source='room.room_number', read_only=True)
    bed_number = serializers.IntegerField(source='bed.bed_number', read_only=True)

    class Meta:
        model = HostelBooking
        fields = [
            'id', 'student', 'admission_no', 'student_name', 'block', 'block_number',
            'floor', 'floor_level', 'room', 'room_number', 'bed', 'bed_number',
            'academic_year', 'session', 'check_in_date', 'check_out_date',
            'amount', 'status', 'notes', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class CreateBookingSerializer(serializers.Serializer):
    student = serializers.IntegerField()
    bed = serializers.IntegerField()
    academic_year = serializers.CharField(max_length=9)
    session = serializers.ChoiceField(choices=SESSION_CHOICES)
    check_in_date = serializers.DateField()
    check_out_date = serializers.DateField()
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, min_value=Decimal('0'))
    notes = serializers.CharField(required=False, allow_blank=True, allow_null=True)

    def validate(self, data):
        if data['check_out_date'] < data['check_in_date']:
            raise serializers.ValidationError({'check_out_date': 'Check-out date cannot be before check-in date'})
        return data


# ==================== AUDIT ====================
class AuditLogSerializer(serializers.ModelSerializer):
    class Meta:
        model = AuditLog
        fields = [
            'id', 'event_time', 'event_type', 'username', 'user_role', 'table_name',
            'record_id', 'operation', 'old_values', 'new_values', 'changed_fields',
            'ip_address', 'endpoint', 'http_method'
        ]
        read_only_fields = fields
