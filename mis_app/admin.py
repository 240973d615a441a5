# admin.py
import csv

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.http import HttpResponse

from .models import *
from .services.hostel import refresh_room_occupancy


admin.site.site_header = "COLLEGE MIS ADMINISTRATION"
admin.site.site_title = "College MIS Admin"
admin.site.index_title = "Welcome to the College MIS"


# ==================== CUSTOM ADMIN CLASSES ====================
class ReadOnlyAdminMixin:
    """Mixin to make admin read-only"""
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class ExportCsvMixin:
    def export_as_csv(self, request, queryset):
        field_names = [field.name for field in self.model._meta.fields]

        response = HttpResponse(content_type='text/csv')
        response['Content-Disposition'] = f'attachment; filename={self.model.__name__}.csv'

        writer = csv.writer(response)
        writer.writerow(field_names)
        for obj in queryset:
            writer.writerow([getattr(obj, field) for field in field_names])

        return response

    export_as_csv.short_description = "Export Selected as CSV"


# ==================== USER MANAGEMENT ====================
class CustomUserAdmin(BaseUserAdmin):
    list_display = ('email', 'first_name', 'last_name', 'role', 'is_active', 'last_login')
    list_filter = ('role', 'is_active', 'is_staff')
    search_fields = ('email', 'username', 'first_name', 'last_name', 'phone_number')
    ordering = ('-date_joined',)

    fieldsets = (
        (None, {'fields': ('email', 'username', 'password')}),
        ('Personal Info', {'fields': ('first_name', 'last_name', 'phone_number')}),
        ('Role', {'fields': ('role',)}),
        ('Permissions', {'fields': ('is_active', 'is_staff', 'is_superuser',
                                    'groups', 'user_permissions')}),
        ('Important Dates', {'fields': ('last_login', 'date_joined')}),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'username', 'role', 'password1', 'password2'),
        }),
    )

    def get_readonly_fields(self, request, obj=None):
        if obj:
            return ('last_login', 'date_joined')
        return ()


# ==================== INSTITUTION STRUCTURE ====================
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'is_active', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('code', 'name')


class ProgrammeAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'department', 'level', 'duration', 'is_active')
    list_filter = ('level', 'is_active', 'department')
    search_fields = ('code', 'name')
    list_per_page = 20


class ClassAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'programme', 'mode_of_study', 'status', 'start_date')
    list_filter = ('status', 'mode_of_study', 'session_type', 'programme')
    search_fields = ('code', 'name', 'branch', 'programme__name')


# ==================== STUDENT MANAGEMENT ====================
class StudentAdmin(admin.ModelAdmin):
    list_display = ('admission_no', 'full_name', 'current_class', 'programme', 'gender',
                    'academic_status', 'academic_year', 'session')
    list_filter = ('academic_status', 'gender', 'session', 'department', 'programme')
    search_fields = ('admission_no', 'first_name', 'last_name', 'middle_name', 'email',
                     'phone_number', 'id_number', 'guardian_phone')
    readonly_fields = ('created_at', 'updated_at')
    actions = ['mark_graduated', 'mark_active']

    fieldsets = (
        ('Core Information', {
            'fields': ('admission_no', 'first_name', 'middle_name', 'last_name', 'gender',
                       'date_of_birth', 'nationality', 'id_number', 'religion')
        }),
        ('Contact Information', {
            'fields': ('email', 'phone_number', 'address', 'county', 'sub_county')
        }),
        ('Academic Information', {
            'fields': ('cohort', 'academic_year', 'session', 'current_class', 'programme',
                       'department', 'stream', 'previous_school', 'kcpe_score', 'special_needs')
        }),
        ('Status', {
            'fields': ('academic_status',)
        }),
        ('Guardian Information', {
            'fields': ('guardian_name', 'guardian_phone', 'guardian_email', 'guardian_relation',
                       'guardian_occupation', 'guardian_id_number', 'guardian_address'),
            'classes': ('collapse',)
        }),
        ('System', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',)
        }),
    )

    def mark_graduated(self, request, queryset):
        updated = queryset.update(academic_status='GRADUATED')
        self.message_user(request, f'{updated} student(s) marked as graduated.')

    def mark_active(self, request, queryset):
        updated = queryset.update(academic_status='ACTIVE')
        self.message_user(request, f'{updated} student(s) marked as active.')

    mark_graduated.short_description = "Mark selected students as graduated"
    mark_active.short_description = "Mark selected students as active"


class ApplicantAdmin(admin.ModelAdmin):
    list_display = ('first_name', 'last_name', 'gender', 'programme', 'status', 'created_at')
    list_filter = ('status', 'gender')
    search_fields = ('first_name', 'last_name', 'email', 'phone_number')
    date_hierarchy = 'created_at'


class StudentReportAdmin(admin.ModelAdmin, ExportCsvMixin):
    list_display = ('admission_no', 'student_name', 'session', 'class_code', 'branch', 'reported_by', 'reported_at')
    list_filter = ('session', 'branch')
    search_fields = ('admission_no', 'student_name')
    date_hierarchy = 'reported_at'
    actions = ['export_as_csv']


# ==================== ACADEMICS MODULE ====================
class SubjectAdmin(admin.ModelAdmin):
    list_display = ('code', 'name', 'curriculum', 'credits', 'is_core')
    list_filter = ('is_core',)
    search_fields = ('code', 'name')


class SubjectRegistrationAdmin(admin.ModelAdmin):
    list_display = ('student', 'subject', 'cohort', 'class_code', 'start_date')
    list_filter = ('cohort', 'class_code')
    search_fields = ('student__admission_no', 'subject__code')


class AttendanceRecordAdmin(admin.ModelAdmin):
    list_display = ('date', 'student', 'school_class', 'subject', 'status', 'recorded_by')
    list_filter = ('status', 'date', 'school_class')
    search_fields = ('student__admission_no', 'student__first_name', 'student__last_name')
    date_hierarchy = 'date'


class MarksEntryAdmin(admin.ModelAdmin):
    list_display = ('student', 'subject', 'class_code', 'session', 'exam_type', 'total', 'entered_by')
    list_filter = ('session', 'exam_type', 'class_code')
    search_fields = ('student__admission_no', 'subject__code')
    readonly_fields = ('created_at', 'updated_at')


class ExamScheduleAdmin(admin.ModelAdmin):
    list_display = ('exam_type', 'schedule_type', 'session', 'exam_start_date', 'exam_end_date')
    list_filter = ('session', 'exam_type')
    filter_horizontal = ('subjects',)
    date_hierarchy = 'exam_start_date'


class ExamResultAdmin(admin.ModelAdmin):
    list_display = ('student', 'exam_schedule', 'class_code', 'overall_performance', 'competence')
    list_filter = ('competence', 'session')
    search_fields = ('student__admission_no', 'class_code')


# ==================== TIMETABLE ====================
class RoomInline(admin.TabularInline):
    model = Room
    extra = 0


class BuildingAdmin(admin.ModelAdmin):
    list_display = ('title', 'status', 'created_at')
    list_filter = ('status',)
    inlines = [RoomInline]


class TutorSubjectAssignmentInline(admin.TabularInline):
    model = TutorSubjectAssignment
    extra = 0


class TutorAdmin(admin.ModelAdmin):
    list_display = ('employee_code', 'first_name', 'last_name', 'email', 'specialization', 'is_active')
    list_filter = ('is_active',)
    search_fields = ('employee_code', 'first_name', 'last_name', 'email')
    inlines = [TutorSubjectAssignmentInline]


class TimetableEntryAdmin(admin.ModelAdmin):
    list_display = ('school_class', 'subject', 'tutor', 'room', 'day_of_week', 'start_time', 'end_time')
    list_filter = ('day_of_week', 'school_class')
    search_fields = ('school_class__code', 'subject__code')


# ==================== FINANCE MODULE ====================
class FeeStructureAdmin(admin.ModelAdmin):
    list_display = ('programme', 'academic_year', 'session', 'tuition_fee', 'exam_fee',
                    'library_fee', 'activity_fee', 'total_fee', 'is_active')
    list_filter = ('academic_year', 'session', 'is_active')
    search_fields = ('programme__code', 'programme__name')
    readonly_fields = ('created_at', 'updated_at')


class FeePaymentAdmin(admin.ModelAdmin, ExportCsvMixin):
    list_display = ('transaction_ref', 'student', 'academic_year', 'session', 'amount_paid',
                    'payment_method', 'status', 'payment_date', 'received_by')
    list_filter = ('status', 'payment_method', 'session', 'payment_date')
    search_fields = ('transaction_ref', 'student__admission_no', 'student__last_name')
    readonly_fields = ('transaction_ref', 'created_at')
    actions = ['export_as_csv', 'reverse_payments']
    date_hierarchy = 'payment_date'

    def reverse_payments(self, request, queryset):
        updated = queryset.update(status='REVERSED')
        self.message_user(request, f'{updated} payment(s) reversed.')

    reverse_payments.short_description = "Reverse selected payments"


class ProcurementRequestAdmin(admin.ModelAdmin):
    list_display = ('request_number', 'department', 'requested_by', 'estimated_cost',
                    'status', 'approved_by', 'created_at')
    list_filter = ('status', 'department')
    search_fields = ('request_number', 'description', 'department')
    readonly_fields = ('request_number', 'approved_at', 'created_at', 'updated_at')
    date_hierarchy = 'created_at'


# ==================== HOSTEL MANAGEMENT ====================
class HostelBlockAdmin(admin.ModelAdmin):
    list_display = ('block_number', 'gender', 'total_capacity')
    list_filter = ('gender',)


class HostelRoomAdmin(admin.ModelAdmin):
    list_display = ('__str__', 'capacity', 'current_occupancy', 'is_available', 'status')
    list_filter = ('status', 'is_available', 'floor__block__gender', 'floor__floor_level')
    actions = ['recount_occupancy']

    def recount_occupancy(self, request, queryset):
        for room in queryset:
            refresh_room_occupancy(room)
        self.message_user(request, f'{queryset.count()} room(s) recounted.')

    recount_occupancy.short_description = "Recount occupancy from beds"


class HostelBookingAdmin(admin.ModelAdmin):
    list_display = ('student', 'block', 'room', 'bed', 'academic_year', 'session',
                    'check_in_date', 'check_out_date', 'status')
    list_filter = ('status', 'academic_year', 'session')
    search_fields = ('student__admission_no', 'student__first_name', 'student__last_name')
    readonly_fields = ('created_at', 'updated_at')


# ==================== SYSTEM & AUDIT ====================
class AuditLogAdmin(ReadOnlyAdminMixin, admin.ModelAdmin, ExportCsvMixin):
    list_display = ('event_time', 'event_type', 'user', 'username', 'table_name',
                    'operation', 'ip_address')
    list_filter = ('event_type', 'operation', 'table_name', 'event_time')
    search_fields = ('username', 'table_name', 'ip_address', 'endpoint')
    readonly_fields = ('event_time', 'request_id')
    date_hierarchy = 'event_time'
    actions = ['export_as_csv']


# ==================== REGISTRATION ====================
admin.site.register(User, CustomUserAdmin)

# Institution structure
admin.site.register(Department, DepartmentAdmin)
admin.site.register(Programme, ProgrammeAdmin)
admin.site.register(Class, ClassAdmin)

# Students
admin.site.register(Student, StudentAdmin)
admin.site.register(Applicant, ApplicantAdmin)
admin.site.register(StudentReport, StudentReportAdmin)

# Academics
admin.site.register(Subject, SubjectAdmin)
admin.site.register(SubjectRegistration, SubjectRegistrationAdmin)
admin.site.register(AttendanceRecord, AttendanceRecordAdmin)
admin.site.register(MarksEntry, MarksEntryAdmin)
admin.site.register(ExamSchedule, ExamScheduleAdmin)
admin.site.register(ExamResult, ExamResultAdmin)

# Timetable
admin.site.register(Building, BuildingAdmin)
admin.site.register(Room)
admin.site.register(Break)
admin.site.register(TimetableEntry, TimetableEntryAdmin)
admin.site.register(Tutor, TutorAdmin)

# Finance
admin.site.register(FeeStructure, FeeStructureAdmin)
admin.site.register(FeePayment, FeePaymentAdmin)
admin.site.register(ProcurementRequest, ProcurementRequestAdmin)

# Hostel
admin.site.register(HostelBlock, HostelBlockAdmin)
admin.site.register(HostelFloor)
admin.site.register(HostelRoom, HostelRoomAdmin)
admin.site.register(HostelBed)
admin.site.register(HostelBooking, HostelBookingAdmin)

# System
admin.site.register(AuditLog, AuditLogAdmin)
