# finance_views.py
import logging

from django.db.models import Q
from rest_framework import permissions, status
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import MISError, Conflict, Forbidden, ValidationFailed, error_response
from .models import FeePayment, FeeStructure, ProcurementRequest
from .serializers import (
    FeePaymentSerializer, FeeStructureSerializer, ProcurementDetailSerializer,
    ProcurementInputSerializer, ProcurementRequestSerializer, RecordPaymentSerializer,
)
from .services.fees import FeeLedger, FeeStructureService, FinanceReports, InvoiceService, find_student
from .services.procurement import ProcurementService
from .utils import LargeEnvelopePagination
from .viewsets import AuditedModelViewSet, STAFF_ROLES, validation_failed

logger = logging.getLogger(__name__)

APPROVER_ROLES = ['SUPER_ADMIN', 'ADMIN']


def actor_name(user):
    return user.get_full_name() or user.email


def server_error(label, e):
    logger.error(f"Error {label}: {str(e)}")
    return Response({
        'success': False,
        'error': f"Failed {label}"
    }, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


# ==================== PAYMENTS ====================
class FeePaymentViewSet(AuditedModelViewSet):
    """Payments ledger. Writes go through ``FeeLedger``; payments are never edited in place."""
    queryset = FeePayment.objects.select_related('student', 'received_by').order_by('-payment_date')
    serializer_class = FeePaymentSerializer
    http_method_names = ['get', 'post', 'patch', 'delete', 'head', 'options']
    resource_name = 'Payment'
    audit_table = 'fee_payments'
    audit_event = 'FEE_PAYMENT'
    write_roles = STAFF_ROLES

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action != 'list':
            return queryset

        params = self.request.query_params
        student = params.get('student')
        if student:
            lookup = Q(student__admission_no=student)
            if student.isdigit():
                lookup |= Q(student_id=int(student))
            queryset = queryset.filter(lookup)
        if params.get('academic_year'):
            queryset = queryset.filter(academic_year=params['academic_year'])
        if params.get('session'):
            queryset = queryset.filter(session=params['session'])
        if params.get('method'):
            queryset = queryset.filter(payment_method=params['method'])
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('start_date'):
            queryset = queryset.filter(payment_date__date__gte=params['start_date'])
        if params.get('end_date'):
            queryset = queryset.filter(payment_date__date__lte=params['end_date'])
        if params.get('search'):
            search = params['search']
            queryset = queryset.filter(
                Q(transaction_ref__icontains=search) |
                Q(student__admission_no__icontains=search) |
                Q(student__first_name__icontains=search) |
                Q(student__last_name__icontains=search)
            )
        return queryset

    def create(self, request, *args, **kwargs):
        try:
            self.check_write_permission(request, 'record')
        except MISError as e:
            return error_response(e)

        serializer = RecordPaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_failed(serializer)

        data = serializer.validated_data
        try:
            payment = FeeLedger.record_payment(
                student_ref=data['student'],
                academic_year=data['academic_year'],
                session=data['session'],
                amount_paid=data['amount_paid'],
                payment_method=data['payment_method'],
                transaction_ref=data['transaction_ref'],
                payment_date=data.get('payment_date'),
                received_by=request.user,
                remarks=data.get('remarks'),
            )
            payload = FeePaymentSerializer(payment).data
            self._audit('INSERT', payment.pk, new_values={
                'transaction_ref': payment.transaction_ref,
                'admission_no': payment.student.admission_no,
                'amount_paid': payment.amount_paid,
            })
            return Response({
                'success': True,
                'message': 'Payment recorded successfully',
                'data': payload
            }, status=status.HTTP_201_CREATED)

        except MISError as e:
            return error_response(e)
        except Exception as e:
            return server_error('recording payment', e)

    def update(self, request, *args, **kwargs):
        return self.update_status(request, *args, **kwargs)

    @action(detail=True, methods=['patch', 'post'], url_path='update-status')
    def update_status(self, request, pk=None, **kwargs):
        new_status = request.data.get('status')
        try:
            self.check_write_permission(request, 'update')
            payment = self.get_object()
            if new_status not in dict(FeePayment.STATUS_CHOICES):
                raise ValidationFailed(f"Invalid status: {new_status}")

            old_status = payment.status
            payment.status = new_status
            payment.save(update_fields=['status'])
            self._audit('UPDATE', payment.pk, old_values={'status': old_status},
                        new_values={'status': new_status}, changed_fields=['status'])

            return Response({
                'success': True,
                'message': 'Payment status updated successfully',
                'data': self.get_serializer(payment).data
            })
        except MISError as e:
            return error_response(e)

    @action(detail=False, methods=['get'])
    def statistics(self, request):
        params = request.query_params
        try:
            data = FeeLedger.payment_statistics(
                academic_year=params.get('academic_year'),
                session=params.get('session'),
                start_date=params.get('start_date'),
                end_date=params.get('end_date'),
            )
            return Response({'success': True, 'data': data})
        except Exception as e:
            return server_error('loading payment statistics', e)

    @action(detail=False, methods=['post'], url_path='mpesa/initiate')
    def mpesa_initiate(self, request):
        phone_number = request.data.get('phone_number')
        amount = request.data.get('amount')
        account_reference = request.data.get('account_reference') or request.data.get('admission_no')
        if not phone_number or not amount or not account_reference:
            return error_response(ValidationFailed('phone_number, amount and account_reference are required'))

        data = FeeLedger.initiate_mpesa(phone_number, amount, account_reference, request.data.get('description'))
        return Response({'success': True, 'message': 'STK push initiated', 'data': data})

    @action(detail=False, methods=['post'], url_path='mpesa/verify')
    def mpesa_verify(self, request):
        checkout_request_id = request.data.get('checkout_request_id')
        if not checkout_request_id:
            return error_response(ValidationFailed('checkout_request_id is required'))
        return Response({'success': True, 'data': FeeLedger.verify_mpesa(checkout_request_id)})


class FeeBalanceView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, admission_no):
        try:
            ledger = FeeLedger.get_balance(admission_no)
        except MISError as e:
            return error_response(e)
        except Exception as e:
            return server_error('loading fee balance', e)

        student = ledger['student']
        return Response({
            'success': True,
            'data': {
                'student_id': student.id,
                'admission_no': student.admission_no,
                'student_name': student.full_name,
                'total_fee': ledger['total_fee'],
                'total_paid': ledger['total_paid'],
                'balance': ledger['balance'],
                'academic_year': student.academic_year,
                'session': student.session,
                'payments': FeePaymentSerializer(ledger['payments'], many=True).data,
            }
        })


# ==================== FEE STRUCTURES ====================
class FeeStructureViewSet(AuditedModelViewSet):
    queryset = FeeStructure.objects.select_related('programme').order_by('-academic_year', 'session')
    serializer_class = FeeStructureSerializer
    pagination_class = LargeEnvelopePagination
    resource_name = 'Fee structure'
    audit_table = 'fee_structures'
    audit_event = 'FEE_STRUCTURE'
    conflict_message = 'A fee structure already exists for this programme, academic year and session'
    write_roles = STAFF_ROLES

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action == 'list':
            params = self.request.query_params
            for param, field in [('programme', 'programme_id'), ('academic_year', 'academic_year'),
                                 ('session', 'session')]:
                if params.get(param):
                    queryset = queryset.filter(**{field: params[param]})
            if params.get('is_active') in ('true', 'false'):
                queryset = queryset.filter(is_active=params['is_active'] == 'true')
        return queryset

    def check_unique(self, data, instance=None):
        key = {
            field: data.get(field, getattr(instance, field, None))
            for field in ('programme', 'academic_year', 'session')
        }
        others = FeeStructure.objects.filter(**key)
        if instance is not None:
            others = others.exclude(pk=instance.pk)
        if others.exists():
            raise Conflict(self.conflict_message)

    @action(detail=False, methods=['get'], url_path=r'student/(?P<admission_no>.+)')
    def for_student(self, request, admission_no=None):
        try:
            student, structure = FeeStructureService.for_student(admission_no)
            return Response({
                'success': True,
                'data': {
                    'admission_no': student.admission_no,
                    'structure': self.get_serializer(structure).data,
                }
            })
        except MISError as e:
            return error_response(e)

    @action(detail=False, methods=['post'], url_path='calculate-total')
    def calculate_total(self, request):
        try:
            totals = FeeStructureService.calculate_total_fees(request.data.get('voteheads'))
            return Response({'success': True, 'data': totals})
        except MISError as e:
            return error_response(e)


# ==================== INVOICES ====================
class InvoiceView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, admission_no):
        params = request.query_params
        try:
            student = find_student(admission_no)
            invoice = InvoiceService.generate(
                student,
                params.get('term') or 'TERM1',
                params.get('academic_year'),
                params.get('session'),
            )
            return Response({'success': True, 'data': invoice})
        except MISError as e:
            return error_response(e)
        except Exception as e:
            return server_error('generating invoice', e)


class BulkInvoiceView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        data = request.data
        academic_year, session = data.get('academic_year'), data.get('session')
        if not academic_year or not session:
            return error_response(ValidationFailed('academic_year and session are required'))

        try:
            result = InvoiceService.bulk(
                academic_year,
                session,
                data.get('term') or 'TERM1',
                class_id=data.get('class_id'),
                programme_id=data.get('programme_id'),
                department_id=data.get('department_id'),
            )
            return Response({
                'success': True,
                'message': f"Generated {result['successful']} invoices",
                'data': result
            })
        except MISError as e:
            return error_response(e)
        except Exception as e:
            return server_error('generating bulk invoices', e)


class InvoiceHistoryView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, admission_no):
        try:
            student = find_student(admission_no)
            return Response({'success': True, 'data': InvoiceService.history(student)})
        except MISError as e:
            return error_response(e)


# ==================== REPORTS ====================
class CollectionReportView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        params = request.query_params
        try:
            report = FinanceReports.collection(
                academic_year=params.get('academic_year'),
                session=params.get('session'),
                date_from=params.get('date_from'),
                date_to=params.get('date_to'),
                department_id=params.get('department_id'),
                programme_id=params.get('programme_id'),
                class_id=params.get('class_id'),
            )
            return Response({
                'success': True,
                'data': {
                    'payments': FeePaymentSerializer(report['payments'], many=True).data,
                    'summary': report['summary'],
                }
            })
        except Exception as e:
            return server_error('generating collection report', e)


class OutstandingReportView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        params = request.query_params
        try:
            report = FinanceReports.outstanding(
                academic_year=params.get('academic_year'),
                session=params.get('session'),
                department_id=params.get('department_id'),
                programme_id=params.get('programme_id'),
                class_id=params.get('class_id'),
            )
            return Response({'success': True, 'data': report})
        except Exception as e:
            return server_error('generating outstanding fees report', e)


# ==================== PROCUREMENT ====================
class ProcurementViewSet(AuditedModelViewSet):
    queryset = ProcurementRequest.objects.all().order_by('-created_at')
    serializer_class = ProcurementRequestSerializer
    pagination_class = LargeEnvelopePagination
    http_method_names = ['get', 'post', 'put', 'patch', 'delete', 'head', 'options']
    resource_name = 'Procurement request'
    audit_table = 'procurement_requests'
    audit_event = 'PROCUREMENT'
    write_roles = STAFF_ROLES

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return ProcurementDetailSerializer
        return super().get_serializer_class()

    def get_queryset(self):
        queryset = super().get_queryset()
        if self.action != 'list':
            return queryset

        params = self.request.query_params
        for param in ('department', 'status', 'requested_by'):
            if params.get(param):
                queryset = queryset.filter(**{param: params[param]})
        if params.get('start_date'):
            queryset = queryset.filter(created_at__date__gte=params['start_date'])
        if params.get('end_date'):
            queryset = queryset.filter(created_at__date__lte=params['end_date'])
        if params.get('search'):
            search = params['search']
            queryset = queryset.filter(
                Q(request_number__icontains=search) |
                Q(description__icontains=search) |
                Q(department__icontains=search)
            )
        return queryset

    def check_approver(self, request):
        if request.user.role not in APPROVER_ROLES:
            raise Forbidden('Only administrators can approve or reject procurement requests')

    def create(self, request, *args, **kwargs):
        try:
            self.check_write_permission(request, 'create')
        except MISError as e:
            return error_response(e)

        serializer = ProcurementInputSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_failed(serializer)

        data = serializer.validated_data
        try:
            procurement = ProcurementService.create(
                requested_by=data.get('requested_by') or actor_name(request.user),
                department=data['department'],
                description=data['description'],
                estimated_cost=data['estimated_cost'],
                priority=data.get('priority'),
                justification=data.get('justification'),
            )
            payload = self.get_serializer(procurement).data
            self._audit('INSERT', procurement.pk, new_values=payload)
            return Response({
                'success': True,
                'message': 'Procurement request created successfully',
                'data': payload
            }, status=status.HTTP_201_CREATED)
        except Exception as e:
            return server_error('creating procurement request', e)

    def update(self, request, *args, **kwargs):
        try:
            self.check_write_permission(request, 'update')
            procurement = self.get_object()
        except MISError as e:
            return error_response(e)

        serializer = ProcurementInputSerializer(data=request.data, partial=True)
        if not serializer.is_valid():
            return validation_failed(serializer)

        old_values = self.get_serializer(procurement).data
        try:
            procurement = ProcurementService.update(procurement, **{
                key: value for key, value in serializer.validated_data.items() if key != 'requested_by'
            })
            payload = self.get_serializer(procurement).data
            self._audit('UPDATE', procurement.pk, old_values=old_values, new_values=payload,
                        changed_fields=list(serializer.validated_data.keys()))
            return Response({
                'success': True,
                'message': 'Procurement request updated successfully',
                'data': payload
            })
        except Exception as e:
            return server_error('updating procurement request', e)

    def destroy(self, request, *args, **kwargs):
        try:
            self.check_write_permission(request, 'delete')
            procurement = self.get_object()
            record_id, old_values = procurement.pk, self.get_serializer(procurement).data
            ProcurementService.delete(procurement)
            self._audit('DELETE', record_id, old_values=old_values)
            return Response({'success': True, 'message': 'Procurement request deleted successfully'})
        except MISError as e:
            return error_response(e)
        except Exception as e:
            return server_error('deleting procurement request', e)

    def _review(self, request, move, verb, approval=True):
        try:
            if approval:
                self.check_approver(request)
            else:
                self.check_write_permission(request, 'update')
            procurement = self.get_object()
            old_status = procurement.status
            procurement = move(procurement)
            self._audit('UPDATE', procurement.pk, old_values={'status': old_status},
                        new_values={'status': procurement.status}, changed_fields=['status'])
            return Response({
                'success': True,
                'message': f"Procurement request {verb} successfully",
                'data': self.get_serializer(procurement).data
            })
        except MISError as e:
            return error_response(e)

    @action(detail=True, methods=['post'])
    def approve(self, request, pk=None):
        comments = request.data.get('comments')
        return self._review(
            request, lambda p: ProcurementService.approve(p, actor_name(request.user), comments), 'approved'
        )

    @action(detail=True, methods=['post'])
    def reject(self, request, pk=None):
        comments = request.data.get('comments')
        return self._review(
            request, lambda p: ProcurementService.reject(p, actor_name(request.user), comments), 'rejected'
        )

    @action(detail=True, methods=['post', 'patch'], url_path='update-status')
    def update_status(self, request, pk=None):
        new_status = request.data.get('status')
        comments = request.data.get('comments')
        return self._review(
            request,
            lambda p: ProcurementService.transition(p, new_status, actor_name(request.user), comments),
            'updated',
            approval=new_status in ('APPROVED', 'REJECTED'),
        )

    @action(detail=False, methods=['get'])
    def summary(self, request):
        params = request.query_params
        try:
            data = ProcurementService.summary(
                department=params.get('department'),
                date_from=params.get('start_date'),
                date_to=params.get('end_date'),
            )
            return Response({'success': True, 'data': data})
        except Exception as e:
            return server_error('loading procurement summary', e)

    @action(detail=False, methods=['get'], url_path='department-budget')
    def department_budget(self, request):
        department = request.query_params.get('department')
        if not department:
            return error_response(ValidationFailed('department is required'))
        return Response({'success': True, 'data': ProcurementService.department_budget(department)})

    @action(detail=False, methods=['get'], url_path='dashboard-stats')
    def dashboard_stats(self, request):
        return Response({'success': True, 'data': ProcurementService.dashboard_stats()})
