# views.py (authentication, dashboard and staff management)
import re
import logging

from django.contrib.auth import get_user_model
from django.db.models import Q
from rest_framework import status, viewsets, permissions
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from . import stats
from .authentication import issue_token, set_auth_cookie, clear_auth_cookie, user_from_cookie
from .exceptions import (
    MISError, BusinessRuleViolation, Conflict, Forbidden, Unauthenticated, ValidationFailed, error_response,
)
from .serializers import StaffDetailSerializer, StaffSerializer, UserSerializer
from .utils import audit
from .viewsets import AuditedModelViewSet

logger = logging.getLogger(__name__)
User = get_user_model()

EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
REGISTRABLE_ROLES = ['STAFF', 'TEACHER', 'ADMIN']
MIN_PASSWORD_LENGTH = 8
ADMIN_ROLES = ['SUPER_ADMIN', 'ADMIN']


# ==================== AUTHENTICATION VIEWS ====================
class PublicAPIView(APIView):
    """Auth endpoints read the cookie themselves; a stale cookie must not 401 them."""
    authentication_classes = []
    permission_classes = [permissions.AllowAny]


class LoginView(PublicAPIView):

    def post(self, request):
        email = (request.data.get('email') or '').strip().lower()
        password = request.data.get('password') or ''

        if not email or not password:
            return Response({
                'success': False,
                'error': 'Email and password are required'
            }, status=status.HTTP_400_BAD_REQUEST)

        try:
            user = User.objects.filter(email__iexact=email).first()
            if user is None:
                self.log_attempt(request, email, 'unknown_email')
                return self.invalid_credentials()

            if not user.is_active:
                self.log_attempt(request, email, 'inactive', user)
                return Response({
                    'success': False,
                    'error': 'Account is inactive. Please contact the administrator.'
                }, status=status.HTTP_403_FORBIDDEN)

            if not user.check_password(password):
                self.log_attempt(request, email, 'bad_password', user)
                return self.invalid_credentials()

            self.log_attempt(request, email, 'success', user)

            response = Response({
                'success': True,
                'user': UserSerializer(user).data,
                'message': 'Login successful'
            }, status=status.HTTP_200_OK)
            return set_auth_cookie(response, issue_token(user))

        except Exception as e:
            logger.error(f"Error during login: {str(e)}")
            return Response({
                'success': False,
                'error': 'An error occurred during login'
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    def invalid_credentials(self):
        return Response({
            'success': False,
            'error': 'Invalid email or password'
        }, status=status.HTTP_401_UNAUTHORIZED)

    def log_attempt(self, request, email, outcome, user=None):
        if outcome != 'success':
            logger.info(f"Failed login for {email}: {outcome}")
        audit(
            request, 'USER_LOGIN', 'auth_user',
            record_id=user.pk if user else None,
            operation='SELECT',
            new_values={'email': email, 'status': outcome},
            user=user if outcome == 'success' else None,
        )


class LogoutView(PublicAPIView):

    def post(self, request):
        response = Response({
            'success': True,
            'message': 'Logged out successfully'
        })
        return clear_auth_cookie(response)


class MeView(PublicAPIView):

    def get(self, request):
        try:
            user = user_from_cookie(request)
            return Response({'success': True, 'user': UserSerializer(user).data})
        except Unauthenticated as e:
            return error_response(e)


class VerifyView(PublicAPIView):
    """Always 200; reports whether the cookie maps to a live, active user."""

    def get(self, request):
        try:
            user = user_from_cookie(request)
        except Unauthenticated:
            return Response({'success': True, 'authenticated': False})
        return Response({
            'success': True,
            'authenticated': True,
            'user': UserSerializer(user).data
        })


class RegisterView(PublicAPIView):

    def post(self, request):
        email = (request.data.get('email') or '').strip().lower()
        password = request.data.get('password') or ''
        first_name = (request.data.get('first_name') or '').strip()
        last_name = (request.data.get('last_name') or '').strip()
        role = request.data.get('role') or 'STAFF'

        if not (email and password and first_name and last_name):
            return Response({
                'success': False,
                'error': 'Email, password, first name, and last name are required'
            }, status=status.HTTP_400_BAD_REQUEST)

        if not EMAIL_PATTERN.match(email):
            return Response({'success': False, 'error': 'Invalid email format'},
                            status=status.HTTP_400_BAD_REQUEST)

        if len(password) < MIN_PASSWORD_LENGTH:
            return Response({'success': False, 'error': 'Password must be at least 8 characters long'},
                            status=status.HTTP_400_BAD_REQUEST)

        if role not in REGISTRABLE_ROLES:
            role = 'STAFF'

        try:
            if User.objects.filter(email__iexact=email).exists():
                return Response({
                    'success': False,
                    'error': 'An account with this email already exists'
                }, status=status.HTTP_409_CONFLICT)

            user = User(
                email=email,
                username=email,
                first_name=first_name,
                last_name=last_name,
                phone_number=request.data.get('phone_number') or None,
                role=role,
                is_active=True,
            )
            user.set_password(password)
            user.save()

            audit(
                request, 'USER_REGISTER', 'auth_user',
                record_id=user.pk,
                operation='INSERT',
                new_values={'email': user.email, 'role': user.role},
                user=user,
            )

            return Response({
                'success': True,
                'message': 'Account created successfully. Please log in.',
                'user': UserSerializer(user).data
            }, status=status.HTTP_201_CREATED)

        except Exception as e:
            logger.error(f"Error registering user: {str(e)}")
            return Response({
                'success': False,
                'error': 'An error occurred during registration'
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


# ==================== DASHBOARD VIEWS ====================
class DashboardViewSet(viewsets.ViewSet):
    """Read-only dashboard aggregates filtered by academic_year / session."""
    permission_classes = [permissions.IsAuthenticated]

    def filters(self, request):
        return {
            'academic_year': request.query_params.get('academic_year') or None,
            'session': request.query_params.get('session') or None,
        }

    def respond(self, label, fn, *args, **kwargs):
        try:
            return Response({'success': True, 'data': fn(*args, **kwargs)})
        except MISError as e:
            return error_response(e)
        except Exception as e:
            logger.error(f"Error fetching {label}: {str(e)}")
            return Response({
                'success': False,
                'error': f"Failed to fetch {label}"
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        return self.respond(
            'dashboard statistics', stats.dashboard_stats,
            status=request.query_params.get('status') or None, **self.filters(request)
        )

    @action(detail=False, methods=['get'])
    def gender(self, request):
        return self.respond('student gender distribution', stats.students_by_gender, **self.filters(request))

    @action(detail=False, methods=['get'])
    def departments(self, request):
        return self.respond('department distribution', stats.students_by_department, **self.filters(request))

    @action(detail=False, methods=['get'], url_path='subject-registrations')
    def subject_registrations(self, request):
        return self.respond('subject registration statistics', stats.subject_registration_stats,
                            **self.filters(request))

    @action(detail=False, methods=['get'], url_path='student-record')
    def student_record(self, request):
        return self.respond('student record', stats.student_record, **self.filters(request))

    @action(detail=False, methods=['get'])
    def applicants(self, request):
        return self.respond('applicant statistics', stats.applicant_totals,
                            academic_year=request.query_params.get('academic_year') or None)

    @action(detail=False, methods=['get'], url_path='academic-years')
    def academic_years(self, request):
        return self.respond('academic years', stats.academic_years)

    @action(detail=False, methods=['get'])
    def sessions(self, request):
        return self.respond('sessions', stats.sessions)

    @action(detail=False, methods=['get'], url_path='hostel-occupancy')
    def hostel_occupancy(self, request):
        return self.respond('hostel occupancy statistics', stats.hostel_occupancy, **self.filters(request))

    @action(detail=False, methods=['get'], url_path='recent-activities')
    def recent_activities(self, request):
        return self.respond('recent activities', stats.recent_activities)


# ==================== STAFF MANAGEMENT ====================
class StaffViewSet(AuditedModelViewSet):
    """Administrator-managed staff accounts.

    Anyone signed in can read the directory; only administrators create,
    edit, reset passwords, toggle or delete. Accounts that have recorded
    reports, attendance or marks cannot be deleted, only deactivated.
    """
    queryset = User.objects.all().order_by('-date_joined')
    serializer_class = StaffSerializer
    resource_name = 'Staff member'
    audit_table = 'auth_user'
    audit_event = 'USER'
    conflict_message = 'User with this email already exists'
    write_roles = ADMIN_ROLES

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return StaffDetailSerializer
        return super().get_serializer_class()

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            params = self.request.query_params
            search = (params.get('search') or '').strip()
            if search:
                queryset = queryset.filter(
                    Q(email__icontains=search) |
                    Q(first_name__icontains=search) |
                    Q(last_name__icontains=search) |
                    Q(phone_number__icontains=search)
                )
            if params.get('role'):
                queryset = queryset.filter(role=params['role'])
        return queryset

    def get_write_data(self, request):
        data = request.data
        if data.get('role') == 'SUPER_ADMIN' and request.user.role != 'SUPER_ADMIN':
            raise Forbidden('Only a super administrator can grant the super administrator role')
        if self.action != 'create' and str(self.kwargs.get('pk')) == str(request.user.pk):
            if str(data.get('is_active', '')).lower() == 'false':
                raise BusinessRuleViolation('Cannot deactivate your own account')
        return data

    def check_unique(self, data, instance=None):
        email = data.get('email')
        if not email:
            return
        if instance is None:
            if User.objects.filter(email__iexact=email).exists():
                raise Conflict('User with this email already exists')
        elif User.objects.filter(email__iexact=email).exclude(pk=instance.pk).exists():
            raise Conflict('Email already in use by another user')

    def check_delete(self, instance):
        if instance.pk == self.request.user.pk:
            raise BusinessRuleViolation('Cannot delete your own account')
        if (instance.student_reports.exists() or instance.recorded_attendance.exists()
                or instance.entered_marks.exists()):
            raise BusinessRuleViolation(
                'Cannot delete user with associated records. Consider deactivating instead.'
            )

    @action(detail=True, methods=['post'], url_path='reset-password')
    def reset_password(self, request, pk=None):
        try:
            self.check_write_permission(request, 'update')
            user = self.get_object()
            password = request.data.get('password') or ''
            if len(password) < MIN_PASSWORD_LENGTH:
                raise ValidationFailed('Password must be at least 8 characters long')
        except MISError as e:
            return error_response(e)

        user.set_password(password)
        user.save(update_fields=['password', 'updated_at'])
        audit(request, 'USER_PASSWORD_RESET', 'auth_user', record_id=user.pk, operation='UPDATE',
              changed_fields=['password'])
        logger.info(f"Password reset for {user.email} by {request.user.email}")

        return Response({'success': True, 'message': 'Password updated successfully'})

    @action(detail=True, methods=['post'], url_path='toggle-status')
    def toggle_status(self, request, pk=None):
        try:
            self.check_write_permission(request, 'update')
            user = self.get_object()
            if user.is_active and user.pk == request.user.pk:
                raise BusinessRuleViolation('Cannot deactivate your own account')
        except MISError as e:
            return error_response(e)

        user.is_active = not user.is_active
        user.save(update_fields=['is_active', 'updated_at'])
        audit(request, 'USER_ACTIVATE' if user.is_active else 'USER_DEACTIVATE', 'auth_user',
              record_id=user.pk, operation='UPDATE',
              old_values={'is_active': not user.is_active}, new_values={'is_active': user.is_active},
              changed_fields=['is_active'])

        return Response({
            'success': True,
            'message': f"User {'activated' if user.is_active else 'deactivated'} successfully",
            'data': StaffSerializer(user).data
        })
