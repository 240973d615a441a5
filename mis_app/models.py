# models.py
from django.db import models
from django.contrib.auth.models import AbstractUser
from django.core.validators import MinValueValidator, MaxValueValidator
from django.utils import timezone
from django.core.exceptions import ValidationError
from django.core.serializers.json import DjangoJSONEncoder
from decimal import Decimal


# ==================== SHARED CHOICES ====================
SESSION_CHOICES = [
    ('SEPT_DEC', 'September - December'),
    ('JAN_APRIL', 'January - April'),
    ('MAY_AUGUST', 'May - August'),
]

GENDER_CHOICES = [
    ('MALE', 'Male'),
    ('FEMALE', 'Female'),
    ('OTHER', 'Other'),
]


# ==================== USER MANAGEMENT ====================
class User(AbstractUser):
    ROLE_CHOICES = [
        ('SUPER_ADMIN', 'Super Administrator'),
        ('ADMIN', 'Administrator'),
        ('STAFF', 'Staff'),
        ('TEACHER', 'Teacher'),
        ('STUDENT', 'Student'),
        ('PARENT', 'Parent'),
    ]

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default='STAFF')
    phone_number = models.CharField(max_length=20, blank=True, null=True)
    email = models.EmailField(unique=True)
    updated_at = models.DateTimeField(auto_now=True)
    USERNAME_FIELD = 'email'  # authenticate() and the login view key on email
    REQUIRED_FIELDS = ['username']

    class Meta:
        indexes = [
            models.Index(fields=['role']),
            models.Index(fields=['is_active'], name='idx_active_users'),
        ]

    def __str__(self):
        return f"{self.get_full_name() or self.email} ({self.role})"


# ==================== INSTITUTION STRUCTURE ====================
class Department(models.Model):
    code = models.CharField(max_length=10, unique=True)
    name = models.CharField(max_length=100)
    description = models.TextField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.code})"


class Programme(models.Model):
    LEVEL_CHOICES = [
        ('ARTISAN', 'Artisan'),
        ('CERTIFICATE', 'Certificate'),
        ('DIPLOMA', 'Diploma'),
        ('HIGHER_DIPLOMA', 'Higher Diploma'),
    ]

    code = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=150)
    department = models.ForeignKey(Department, on_delete=models.PROTECT, related_name='programmes')
    level = models.CharField(max_length=20, choices=LEVEL_CHOICES)
    duration = models.PositiveIntegerField(default=1, validators=[MinValueValidator(1)])
    award_scheme = models.CharField(max_length=50, default='General')
    effective_date = models.DateField(blank=True, null=True)
    end_date = models.DateField(blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['code']
        indexes = [
            models.Index(fields=['department']),
            models.Index(fields=['level']),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}"


class Class(models.Model):
    MODE_OF_STUDY_CHOICES = [
        ('FULL_TIME', 'Full Time'),
        ('PART_TIME', 'Part Time'),
        ('EVENING', 'Evening'),
    ]
    STATUS_CHOICES = [
        ('Active', 'Active'),
        ('Inactive', 'Inactive'),
        ('Completed', 'Completed'),
    ]

    code = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=150)
    programme = models.ForeignKey(Programme, on_delete=models.PROTECT, related_name='classes')
    branch = models.CharField(max_length=100, blank=True, null=True)
    session_type = models.CharField(max_length=20, choices=SESSION_CHOICES, blank=True, null=True)
    mode_of_study = models.CharField(max_length=20, choices=MODE_OF_STUDY_CHOICES, default='FULL_TIME')
    start_date = models.DateField(blank=True, null=True)
    end_date = models.DateField(blank=True, null=True)
    number_of_teachers = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='Active')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'Classes'
        ordering = ['code']
        indexes = [
            models.Index(fields=['status']),
            models.Index(fields=['programme']),
        ]

    def __str__(self):
        return f"{self.name} ({self.code})"


# ==================== STUDENT MANAGEMENT ====================
class Student(models.Model):
    ACADEMIC_STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('INACTIVE', 'Inactive'),
        ('GRADUATED', 'Graduated'),
        ('SUSPENDED', 'Suspended'),
        ('EXPELLED', 'Expelled'),
        ('WITHDRAWN', 'Withdrawn'),
    ]

    # Core Information
    admission_no = models.CharField(max_length=30, unique=True)
    first_name = models.CharField(max_length=50)
    middle_name = models.CharField(max_length=50, blank=True, null=True)
    last_name = models.CharField(max_length=50)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES)
    date_of_birth = models.DateField(blank=True, null=True)
    nationality = models.CharField(max_length=50, default='Kenyan')
    id_number = models.CharField(max_length=30, unique=True, blank=True, null=True)
    religion = models.CharField(max_length=30, blank=True, null=True)

    # Contact Information
    email = models.EmailField(blank=True, null=True)
    phone_number = models.CharField(max_length=20, blank=True, null=True)
    address = models.TextField(blank=True, null=True)
    county = models.CharField(max_length=50, blank=True, null=True)
    sub_county = models.CharField(max_length=50, blank=True, null=True)

    # Academic Information
    cohort = models.CharField(max_length=30, blank=True, null=True)
    academic_year = models.CharField(max_length=9, blank=True, null=True)  # Format: 2024/2025
    session = models.CharField(max_length=20, choices=SESSION_CHOICES, blank=True, null=True)
    current_class = models.ForeignKey(Class, on_delete=models.SET_NULL, null=True, blank=True,
                                      related_name='current_students')
    programme = models.ForeignKey(Programme, on_delete=models.SET_NULL, null=True, blank=True,
                                  related_name='students')
    department = models.ForeignKey(Department, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='students')
    stream = models.CharField(max_length=20, blank=True, null=True)
    previous_school = models.CharField(max_length=100, blank=True, null=True)
    kcpe_score = models.PositiveIntegerField(blank=True, null=True)
    special_needs = models.TextField(blank=True, null=True)

    # Status
    academic_status = models.CharField(max_length=20, choices=ACADEMIC_STATUS_CHOICES, default='ACTIVE')

    # Guardian Information
    guardian_name = models.CharField(max_length=100, blank=True, null=True)
    guardian_phone = models.CharField(max_length=20, blank=True, null=True)
    guardian_email = models.EmailField(blank=True, null=True)
    guardian_relation = models.CharField(max_length=30, blank=True, null=True)
    guardian_occupation = models.CharField(max_length=50, blank=True, null=True)
    guardian_id_number = models.CharField(max_length=30, blank=True, null=True)
    guardian_address = models.TextField(blank=True, null=True)

    # System
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    @property
    def full_name(self):
        return f"{self.first_name} {self.middle_name + ' ' if self.middle_name else ''}{self.last_name}"

    class Meta:
        indexes = [
            models.Index(fields=['admission_no']),
            models.Index(fields=['current_class']),
            models.Index(fields=['academic_status']),
            models.Index(fields=['last_name', 'first_name']),
            models.Index(fields=['academic_year', 'session']),
        ]

    def __str__(self):
        return f"{self.full_name} ({self.admission_no})"


class Applicant(models.Model):
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('APPROVED', 'Approved'),
        ('REJECTED', 'Rejected'),
    ]

    first_name = models.CharField(max_length=50)
    last_name = models.CharField(max_length=50)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES)
    email = models.EmailField(blank=True, null=True)
    phone_number = models.CharField(max_length=20, blank=True, null=True)
    programme = models.ForeignKey(Programme, on_delete=models.SET_NULL, null=True, blank=True,
                                  related_name='applicants')
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        indexes = [
            models.Index(fields=['status']),
            models.Index(fields=['created_at']),
        ]

    def __str__(self):
        return f"{self.first_name} {self.last_name} - {self.status}"


class StudentReport(models.Model):
    """A student reporting in for a session, with a snapshot of their placement at that time."""
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='reports')
    admission_no = models.CharField(max_length=30)
    student_name = models.CharField(max_length=120)
    session = models.CharField(max_length=20, choices=SESSION_CHOICES)
    branch = models.CharField(max_length=50, default='Main Campus')
    class_code = models.CharField(max_length=30, blank=True, default='')
    programme = models.CharField(max_length=150, blank=True, default='')
    department = models.CharField(max_length=100, blank=True, default='')
    reported_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='student_reports')
    reported_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ['-reported_at']
        indexes = [
            models.Index(fields=['reported_at']),
        ]

    def __str__(self):
        return f"{self.admission_no} reported {self.reported_at:%Y-%m-%d}"


# ==================== ACADEMICS MODULE ====================
class Subject(models.Model):
    code = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=150)
    curriculum = models.CharField(max_length=100, blank=True, null=True)
    credits = models.PositiveIntegerField(default=0)
    is_core = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['code']

    def __str__(self):
        return f"{self.code} - {self.name}"


class SubjectRegistration(models.Model):
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='subject_registrations')
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='registrations')
    cohort = models.CharField(max_length=30, blank=True, null=True)
    class_code = models.CharField(max_length=30, blank=True, null=True)
    start_date = models.DateField(blank=True, null=True)
    end_date = models.DateField(blank=True, null=True)
    number_of_subjects = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['student', 'subject']
        indexes = [
            models.Index(fields=['class_code']),
        ]

    def __str__(self):
        return f"{self.student.admission_no} - {self.subject.code}"


class AttendanceRecord(models.Model):
    STATUS_CHOICES = [
        ('PRESENT', 'Present'),
        ('ABSENT', 'Absent'),
        ('LATE', 'Late'),
        ('EXCUSED', 'Excused'),
    ]

    date = models.DateField(default=timezone.now)
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='attendance_records')
    school_class = models.ForeignKey(Class, on_delete=models.CASCADE, related_name='attendance_records')
    subject = models.ForeignKey(Subject, on_delete=models.SET_NULL, null=True, blank=True,
                                related_name='attendance_records')
    stage = models.CharField(max_length=50, blank=True, null=True)
    room = models.CharField(max_length=50, blank=True, null=True)
    status = models.CharField(max_length=10, choices=STATUS_CHOICES)
    recorded_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='recorded_attendance')
    recorded_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['student', 'school_class', 'subject', 'date']
        indexes = [
            models.Index(fields=['date']),
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return f"{self.student.admission_no} - {self.date} - {self.status}"


class MarksEntry(models.Model):
    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='marks')
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='marks')
    class_code = models.CharField(max_length=30)
    cohort = models.CharField(max_length=30, blank=True, null=True)
    session = models.CharField(max_length=20, choices=SESSION_CHOICES)
    schedule_type = models.CharField(max_length=50, blank=True, null=True)
    exam_type = models.CharField(max_length=50, blank=True, null=True)
    cat = models.FloatField(blank=True, null=True, validators=[MinValueValidator(0)])
    mid_term = models.FloatField(blank=True, null=True, validators=[MinValueValidator(0)])
    practical = models.FloatField(blank=True, null=True, validators=[MinValueValidator(0)])
    end_of_term = models.FloatField(blank=True, null=True, validators=[MinValueValidator(0)])
    industrial_attachment = models.FloatField(blank=True, null=True, validators=[MinValueValidator(0)])
    total = models.FloatField(blank=True, null=True)
    entered_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                   related_name='entered_marks')
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = 'Marks entries'
        indexes = [
            models.Index(fields=['class_code']),
            models.Index(fields=['session']),
        ]

    def __str__(self):
        return f"{self.student.admission_no} - {self.subject.code} - {self.total}"


class ExamSchedule(models.Model):
    schedule_type = models.CharField(max_length=50)
    session = models.CharField(max_length=20, choices=SESSION_CHOICES)
    exam_type = models.CharField(max_length=50)
    number_of_classes = models.PositiveIntegerField(default=0)
    exam_start_date = models.DateField()
    exam_end_date = models.DateField()
    subjects = models.ManyToManyField(Subject, blank=True, related_name='exam_schedules')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-exam_start_date']

    def clean(self):
        if self.exam_end_date and self.exam_start_date and self.exam_end_date < self.exam_start_date:
            raise ValidationError('Exam end date cannot be before start date')

    def __str__(self):
        return f"{self.exam_type} ({self.session}) {self.exam_start_date}"


class ExamResult(models.Model):
    COMPETENCE_CHOICES = [
        ('C', 'Competent'),
        ('P', 'Pass'),
        ('I', 'Incomplete'),
    ]

    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='exam_results')
    exam_schedule = models.ForeignKey(ExamSchedule, on_delete=models.CASCADE, related_name='results')
    session = models.CharField(max_length=20, choices=SESSION_CHOICES)
    class_code = models.CharField(max_length=30)
    schedule_type = models.CharField(max_length=50, blank=True, null=True)
    exam_type = models.CharField(max_length=50, blank=True, null=True)
    overall_performance = models.CharField(max_length=10, blank=True, null=True)
    competence = models.CharField(max_length=1, choices=COMPETENCE_CHOICES, blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.student.admission_no} - {self.exam_schedule_id} - {self.overall_performance}"


# ==================== TIMETABLE ====================
class Building(models.Model):
    STATUS_CHOICES = [
        ('Active', 'Active'),
        ('Inactive', 'Inactive'),
    ]

    title = models.CharField(max_length=100)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='Active')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['title']

    def __str__(self):
        return self.title


class Room(models.Model):
    title = models.CharField(max_length=100)
    building = models.ForeignKey(Building, on_delete=models.PROTECT, related_name='rooms')
    room_incharge = models.CharField(max_length=100, blank=True, null=True)
    capacity = models.PositiveIntegerField(default=40)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['title']

    def __str__(self):
        return f"{self.title} ({self.building.title})"


class Break(models.Model):
    sr_no = models.PositiveIntegerField()
    title = models.CharField(max_length=100)
    start_time = models.TimeField()
    end_time = models.TimeField()

    class Meta:
        ordering = ['sr_no']

    def __str__(self):
        return f"{self.sr_no}. {self.title}"


class Tutor(models.Model):
    employee_code = models.CharField(max_length=30, unique=True)
    first_name = models.CharField(max_length=50)
    last_name = models.CharField(max_length=50)
    email = models.EmailField(unique=True)
    phone_number = models.CharField(max_length=20, blank=True, null=True)
    specialization = models.CharField(max_length=150, blank=True, null=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"

    def __str__(self):
        return f"{self.full_name} ({self.employee_code})"


class TutorSubjectAssignment(models.Model):
    tutor = models.ForeignKey(Tutor, on_delete=models.CASCADE, related_name='subject_assignments')
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='tutor_assignments')
    school_class = models.ForeignKey(Class, on_delete=models.SET_NULL, null=True, blank=True,
                                     related_name='tutor_assignments')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['tutor', 'subject']

    def __str__(self):
        return f"{self.tutor.employee_code} - {self.subject.code}"


class TimetableEntry(models.Model):
    DAY_CHOICES = [(1, 'Monday'), (2, 'Tuesday'), (3, 'Wednesday'),
                   (4, 'Thursday'), (5, 'Friday'), (6, 'Saturday'), (7, 'Sunday')]

    school_class = models.ForeignKey(Class, on_delete=models.CASCADE, related_name='timetable_entries')
    subject = models.ForeignKey(Subject, on_delete=models.CASCADE, related_name='timetable_entries')
    tutor = models.ForeignKey(Tutor, on_delete=models.SET_NULL, null=True, blank=True,
                              related_name='timetable_entries')
    room = models.ForeignKey(Room, on_delete=models.PROTECT, null=True, blank=True,
                             related_name='timetable_entries')
    day_of_week = models.IntegerField(choices=DAY_CHOICES,
                                      validators=[MinValueValidator(1), MaxValueValidator(7)])
    start_time = models.TimeField()
    end_time = models.TimeField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = 'Timetable entries'
        ordering = ['day_of_week', 'start_time']

    def __str__(self):
        return f"{self.school_class.code} - Day {self.day_of_week} {self.start_time}"


# ==================== FINANCE MODULE ====================
class FeeStructure(models.Model):
    programme = models.ForeignKey(Programme, on_delete=models.CASCADE, related_name='fee_structures')
    academic_year = models.CharField(max_length=9)
    session = models.CharField(max_length=20, choices=SESSION_CHOICES)
    tuition_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    exam_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    library_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    activity_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    total_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0, validators=[MinValueValidator(0)])
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ['programme', 'academic_year', 'session']
        indexes = [
            models.Index(fields=['academic_year']),
            models.Index(fields=['programme']),
        ]

    def save(self, *args, **kwargs):
        # Total is derived from the voteheads unless set explicitly
        if not self.total_fee:
            self.total_fee = self.tuition_fee + self.exam_fee + self.library_fee + self.activity_fee
        super().save(*args, **kwargs)

    def __str__(self):
        return f"{self.programme.code} {self.academic_year} {self.session} - {self.total_fee}"


class FeePayment(models.Model):
    PAYMENT_METHOD_CHOICES = [
        ('MPESA', 'M-PESA'),
        ('CASH', 'Cash'),
        ('BANK_TRANSFER', 'Bank Transfer'),
        ('CHEQUE', 'Cheque'),
    ]
    STATUS_CHOICES = [
        ('COMPLETED', 'Completed'),
        ('PENDING', 'Pending'),
        ('FAILED', 'Failed'),
        ('REVERSED', 'Reversed'),
    ]

    student = models.ForeignKey(Student, on_delete=models.PROTECT, related_name='fee_payments')
    academic_year = models.CharField(max_length=9)
    session = models.CharField(max_length=20, choices=SESSION_CHOICES)
    amount_paid = models.DecimalField(max_digits=12, decimal_places=2, validators=[MinValueValidator(Decimal("0.01"))])
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES)
    transaction_ref = models.CharField(max_length=100, unique=True)
    payment_date = models.DateTimeField(default=timezone.now)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='COMPLETED')
    received_by = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True,
                                    related_name='received_payments')
    remarks = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(fields=['student']),
            models.Index(fields=['payment_date']),
            models.Index(fields=['payment_method']),
            models.Index(fields=['academic_year', 'session']),
        ]

    def __str__(self):
        return f"{self.transaction_ref} - {self.amount_paid}"


class ProcurementRequest(models.Model):
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('APPROVED', 'Approved'),
        ('REJECTED', 'Rejected'),
        ('IN_PROGRESS', 'In Progress'),
        ('COMPLETED', 'Completed'),
    ]
    # Legal lifecycle moves; anything else is refused
    TRANSITIONS = {
        'PENDING': ['APPROVED', 'REJECTED'],
        'APPROVED': ['IN_PROGRESS'],
        'IN_PROGRESS': ['COMPLETED'],
        'REJECTED': [],
        'COMPLETED': [],
    }

    request_number = models.CharField(max_length=20)
    requested_by = models.CharField(max_length=100)
    department = models.CharField(max_length=100)
    description = models.TextField()
    estimated_cost = models.DecimalField(max_digits=14, decimal_places=2, validators=[MinValueValidator(0)])
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    approved_by = models.CharField(max_length=100, blank=True, null=True)
    approved_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['request_number']),
            models.Index(fields=['status']),
            models.Index(fields=['department']),
        ]

    def can_transition_to(self, new_status):
        return new_status in self.TRANSITIONS.get(self.status, [])

    def __str__(self):
        return f"{self.request_number} - {self.status}"


# ==================== HOSTEL MANAGEMENT ====================
class HostelBlock(models.Model):
    block_number = models.PositiveIntegerField(unique=True)
    gender = models.CharField(max_length=10, choices=GENDER_CHOICES)
    total_capacity = models.PositiveIntegerField(default=180)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['block_number']

    def __str__(self):
        return f"Block {self.block_number} ({self.gender})"


class HostelFloor(models.Model):
    FLOOR_LEVEL_CHOICES = [
        ('GROUND', 'Ground'),
        ('FIRST', 'First'),
        ('SECOND', 'Second'),
    ]

    block = models.ForeignKey(HostelBlock, on_delete=models.CASCADE, related_name='floors')
    floor_level = models.CharField(max_length=10, choices=FLOOR_LEVEL_CHOICES)
    floor_number = models.PositiveIntegerField()

    class Meta:
        unique_together = ['block', 'floor_level']
        ordering = ['block__block_number', 'floor_number']

    def __str__(self):
        return f"{self.block} - {self.floor_level}"


class HostelRoom(models.Model):
    STATUS_CHOICES = [
        ('AVAILABLE', 'Available'),
        ('OCCUPIED', 'Occupied'),
        ('MAINTENANCE', 'Maintenance'),
    ]

    floor = models.ForeignKey(HostelFloor, on_delete=models.CASCADE, related_name='rooms')
    room_number = models.PositiveIntegerField()
    capacity = models.PositiveIntegerField(default=2)
    current_occupancy = models.PositiveIntegerField(default=0)
    is_available = models.BooleanField(default=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='AVAILABLE')

    class Meta:
        unique_together = ['floor', 'room_number']
        ordering = ['floor__block__block_number', 'floor__floor_number', 'room_number']
        indexes = [
            models.Index(fields=['status', 'is_available']),
        ]

    def __str__(self):
        return f"{self.floor} - Room {self.room_number}"


class HostelBed(models.Model):
    room = models.ForeignKey(HostelRoom, on_delete=models.CASCADE, related_name='beds')
    bed_number = models.PositiveIntegerField()
    is_occupied = models.BooleanField(default=False)

    class Meta:
        unique_together = ['room', 'bed_number']
        ordering = ['bed_number']

    def __str__(self):
        return f"{self.room} - Bed {self.bed_number}"


class HostelBooking(models.Model):
    STATUS_CHOICES = [
        ('PENDING', 'Pending'),
        ('CONFIRMED', 'Confirmed'),
        ('CHECKED_IN', 'Checked In'),
        ('CHECKED_OUT', 'Checked Out'),
        ('CANCELLED', 'Cancelled'),
    ]

    student = models.ForeignKey(Student, on_delete=models.CASCADE, related_name='hostel_bookings')
    block = models.ForeignKey(HostelBlock, on_delete=models.PROTECT, related_name='bookings')
    floor = models.ForeignKey(HostelFloor, on_delete=models.PROTECT, related_name='bookings')
    room = models.ForeignKey(HostelRoom, on_delete=models.PROTECT, related_name='bookings')
    bed = models.ForeignKey(HostelBed, on_delete=models.PROTECT, related_name='bookings')
    academic_year = models.CharField(max_length=9)
    session = models.CharField(max_length=20, choices=SESSION_CHOICES)
    check_in_date = models.DateField()
    check_out_date = models.DateField()
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='PENDING')
    notes = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status']),
            models.Index(fields=['academic_year', 'session']),
        ]

    def __str__(self):
        return f"{self.student.admission_no} - {self.bed} - {self.status}"


# ==================== SYSTEM & AUDIT ====================
class AuditLog(models.Model):
    OPERATION_CHOICES = [
        ('INSERT', 'Insert'),
        ('UPDATE', 'Update'),
        ('DELETE', 'Delete'),
        ('SELECT', 'Select'),
    ]

    event_time = models.DateTimeField(auto_now_add=True)
    event_type = models.CharField(max_length=50)

    # Who
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True)
    username = models.CharField(max_length=150, blank=True, null=True)
    user_role = models.CharField(max_length=30, blank=True, null=True)

    # What
    table_name = models.CharField(max_length=50)
    record_id = models.CharField(max_length=50, blank=True, null=True)
    operation = models.CharField(max_length=20, choices=OPERATION_CHOICES, blank=True, null=True)

    # Changes
    old_values = models.JSONField(blank=True, null=True, encoder=DjangoJSONEncoder)
    new_values = models.JSONField(blank=True, null=True, encoder=DjangoJSONEncoder)
    changed_fields = models.JSONField(default=list, blank=True)

    # Context
    ip_address = models.GenericIPAddressField(blank=True, null=True)
    user_agent = models.TextField(blank=True, null=True)
    endpoint = models.CharField(max_length=255, blank=True, null=True)
    http_method = models.CharField(max_length=10, blank=True, null=True)
    request_id = models.UUIDField(blank=True, null=True)

    class Meta:
        ordering = ['-event_time']
        indexes = [
            models.Index(fields=['event_time']),
            models.Index(fields=['user']),
            models.Index(fields=['table_name']),
            models.Index(fields=['event_type']),
        ]

    def __str__(self):
        return f"{self.event_time} - {self.event_type} - {self.username or 'Unknown'}"
