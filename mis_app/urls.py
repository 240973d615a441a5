# urls.py (mounted under /api/)
from django.urls import path, re_path, include
from rest_framework.routers import DefaultRouter

from . import views, student_views, academic_views, finance_views, hostel_views

router = DefaultRouter()

# Student directory and institution structure
router.register(r'students', student_views.StudentViewSet, basename='student')
router.register(r'departments', student_views.DepartmentViewSet, basename='department')
router.register(r'programmes', student_views.ProgrammeViewSet, basename='programme')
router.register(r'classes', student_views.ClassViewSet, basename='class')
router.register(r'student-reports', student_views.StudentReportViewSet, basename='student-report')

# Academics
router.register(r'subjects', academic_views.SubjectViewSet, basename='subject')
router.register(r'subject-registrations', academic_views.SubjectRegistrationViewSet,
                basename='subject-registration')
router.register(r'attendance', academic_views.AttendanceViewSet, basename='attendance')
router.register(r'marks', academic_views.MarksViewSet, basename='marks')
router.register(r'exams/schedules', academic_views.ExamScheduleViewSet, basename='exam-schedule')
router.register(r'exams/results', academic_views.ExamResultViewSet, basename='exam-result')

# Timetable
router.register(r'timetable/buildings', academic_views.BuildingViewSet, basename='building')
router.register(r'timetable/rooms', academic_views.RoomViewSet, basename='room')
router.register(r'timetable/breaks', academic_views.BreakViewSet, basename='break')
router.register(r'timetable/entries', academic_views.TimetableEntryViewSet, basename='timetable-entry')
router.register(r'tutors', academic_views.TutorViewSet, basename='tutor')

# Finance
router.register(r'fees/payments', finance_views.FeePaymentViewSet, basename='fee-payment')
router.register(r'fees/structures', finance_views.FeeStructureViewSet, basename='fee-structure')
router.register(r'procurement', finance_views.ProcurementViewSet, basename='procurement')

# Hostel
router.register(r'hostel/blocks', hostel_views.HostelBlockViewSet, basename='hostel-block')
router.register(r'hostel/bookings', hostel_views.HostelBookingViewSet, basename='hostel-booking')
router.register(r'hostel', hostel_views.HostelViewSet, basename='hostel')

# Staff accounts
router.register(r'staff', views.StaffViewSet, basename='staff')

# Dashboard
router.register(r'dashboard', views.DashboardViewSet, basename='dashboard')

urlpatterns = [
    # Authentication endpoints (trailing slash optional)
    re_path(r'^auth/login/?$', views.LoginView.as_view(), name='login'),
    re_path(r'^auth/logout/?$', views.LogoutView.as_view(), name='logout'),
    re_path(r'^auth/me/?$', views.MeView.as_view(), name='me'),
    re_path(r'^auth/verify/?$', views.VerifyView.as_view(), name='verify'),
    re_path(r'^auth/register/?$', views.RegisterView.as_view(), name='register'),

    # Fee ledger lookups keyed by admission number (which contains slashes)
    path('fees/balance/<path:admission_no>/', finance_views.FeeBalanceView.as_view(), name='fee-balance'),
    path('fees/invoices/bulk/', finance_views.BulkInvoiceView.as_view(), name='invoice-bulk'),
    path('fees/invoices/history/<path:admission_no>/', finance_views.InvoiceHistoryView.as_view(),
         name='invoice-history'),
    path('fees/invoices/<path:admission_no>/', finance_views.InvoiceView.as_view(), name='invoice'),

    # Finance reports
    path('fees/reports/collection/', finance_views.CollectionReportView.as_view(), name='collection-report'),
    path('fees/reports/outstanding/', finance_views.OutstandingReportView.as_view(), name='outstanding-report'),

    path('', include(router.urls)),
]
