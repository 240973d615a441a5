# hostel_views.py
import logging

from django.db.models import Q
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from .exceptions import MISError, BusinessRuleViolation, error_response
from .models import HostelBlock, HostelBooking, HostelRoom
from .serializers import (
    CreateBookingSerializer, HostelBlockSerializer, HostelBookingSerializer, HostelRoomSerializer,
)
from .services.hostel import HostelService
from .utils import audit
from .viewsets import AuditedModelViewSet, STAFF_ROLES, validation_failed

logger = logging.getLogger(__name__)


class HostelViewSet(viewsets.ViewSet):
    """Structure set-up, room availability and occupancy figures."""
    permission_classes = [permissions.IsAuthenticated]

    @action(detail=False, methods=['post'])
    def initialize(self, request):
        if request.user.role not in STAFF_ROLES:
            return Response({
                'success': False,
                'error': 'You do not have permission to initialize the hostel'
            }, status=status.HTTP_403_FORBIDDEN)

        try:
            message = HostelService.initialize_structure()
            audit(request, 'HOSTEL_INITIALIZE', 'hostel_blocks', operation='INSERT',
                  new_values={'blocks': HostelBlock.objects.count()})
            return Response({'success': True, 'message': message}, status=status.HTTP_201_CREATED)
        except MISError as e:
            return error_response(e)
        except Exception as e:
            logger.error(f"Error initializing hostel structure: {str(e)}")
            return Response({
                'success': False,
                'error': 'Failed to initialize hostel structure'
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    @action(detail=False, methods=['get'], url_path='available-rooms')
    def available_rooms(self, request):
        params = request.query_params
        rooms = HostelRoom.objects.select_related('floor__block').prefetch_related('beds').filter(
            status='AVAILABLE', is_available=True,
        )
        if params.get('gender'):
            rooms = rooms.filter(floor__block__gender=params['gender'])
        if params.get('block_number'):
            rooms = rooms.filter(floor__block__block_number=params['block_number'])
        if params.get('floor_level'):
            rooms = rooms.filter(floor__floor_level=params['floor_level'])

        return Response({'success': True, 'data': HostelRoomSerializer(rooms, many=True).data})

    @action(detail=False, methods=['get'])
    def stats(self, request):
        return Response({'success': True, 'data': HostelService.stats()})


class HostelBlockViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = HostelBlock.objects.all().order_by('block_number')
    serializer_class = HostelBlockSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        queryset = super().get_queryset()
        gender = self.request.query_params.get('gender')
        if gender:
            queryset = queryset.filter(gender=gender)
        return queryset

    def retrieve(self, request, *args, **kwargs):
        return Response({'success': True, 'data': self.get_serializer(self.get_object()).data})

    @action(detail=True, methods=['get'])
    def rooms(self, request, pk=None):
        block = self.get_object()
        rooms = HostelRoom.objects.select_related('floor__block').prefetch_related('beds').filter(
            floor__block=block
        )
        return Response({'success': True, 'data': HostelRoomSerializer(rooms, many=True).data})


class HostelBookingViewSet(AuditedModelViewSet):
    queryset = HostelBooking.objects.select_related('student', 'block', 'floor', 'room', 'bed').order_by('-created_at')
    serializer_class = HostelBookingSerializer
    http_method_names = ['get', 'post', 'delete', 'head', 'options']
    resource_name = 'Booking'
    audit_table = 'hostel_bookings'
    audit_event = 'HOSTEL_BOOKING'
    write_roles = STAFF_ROLES

    def check_delete(self, instance):
        if instance.status in ('CONFIRMED', 'CHECKED_IN'):
            raise BusinessRuleViolation('Check the student out before deleting this booking')

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action != 'list':
            return queryset

        params = self.request.query_params
        for param, field in [('status', 'status'), ('academic_year', 'academic_year'),
                             ('session', 'session'), ('student', 'student_id'),
                             ('block', 'block__block_number')]:
            if params.get(param):
                queryset = queryset.filter(**{field: params[param]})
        if params.get('search'):
            search = params['search']
            queryset = queryset.filter(
                Q(student__admission_no__icontains=search) |
                Q(student__first_name__icontains=search) |
                Q(student__last_name__icontains=search)
            )
        return queryset

    def create(self, request, *args, **kwargs):
        try:
            self.check_write_permission(request, 'create')
        except MISError as e:
            return error_response(e)

        serializer = CreateBookingSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_failed(serializer)

        data = serializer.validated_data
        try:
            booking = HostelService.create_booking(
                student_id=data['student'],
                bed_id=data['bed'],
                academic_year=data['academic_year'],
                session=data['session'],
                check_in_date=data['check_in_date'],
                check_out_date=data['check_out_date'],
                amount=data.get('amount'),
                notes=data.get('notes'),
            )
            payload = self.get_serializer(booking).data
            self._audit('INSERT', booking.pk, new_values=payload)
            return Response({
                'success': True,
                'message': 'Booking created successfully',
                'data': payload
            }, status=status.HTTP_201_CREATED)
        except MISError as e:
            return error_response(e)
        except Exception as e:
            logger.error(f"Error creating booking: {str(e)}")
            return Response({
                'success': False,
                'error': 'Failed to create booking'
            }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

    def _move(self, request, step, message):
        try:
            self.check_write_permission(request, 'update')
            booking = self.get_object()
            old_status = booking.status
            booking = step(booking)
            self._audit('UPDATE', booking.pk, old_values={'status': old_status},
                        new_values={'status': booking.status}, changed_fields=['status'])
            return Response({'success': True, 'message': message, 'data': self.get_serializer(booking).data})
        except MISError as e:
            return error_response(e)

    @action(detail=True, methods=['post'])
    def confirm(self, request, pk=None):
        return self._move(request, HostelService.confirm_booking, 'Booking confirmed successfully')

    @action(detail=True, methods=['post'], url_path='check-out')
    def check_out(self, request, pk=None):
        return self._move(request, HostelService.check_out, 'Checked out successfully')
