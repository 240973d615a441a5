# services/fees.py

"""
Fee Ledger Services

- Payment recording against a globally unique transaction reference
- Balance = active fee structure total - completed payments in scope
- Term invoices (a third of the annual structure per term)
- Collection and outstanding-balance reports
"""

from collections import defaultdict
from datetime import timedelta
from decimal import Decimal, ROUND_HALF_UP
import logging
import uuid

from django.db import IntegrityError, transaction
from django.db.models import Count, Sum, Value, DecimalField
from django.db.models.functions import Coalesce
from django.utils import timezone

from ..exceptions import Conflict, NotFound, ValidationFailed
from ..models import FeePayment, FeeStructure, Student

logger = logging.getLogger(__name__)

DUPLICATE_REFERENCE = 'Transaction reference already exists. Please use a unique reference.'
NO_ACTIVE_STRUCTURE = 'No active fee structure found for this student'
TERMS = ('TERM1', 'TERM2', 'TERM3')
INVOICE_DUE_DAYS = 30
CENTS = Decimal('0.01')

ZERO = Value(Decimal('0'), output_field=DecimalField(max_digits=14, decimal_places=2))


def completed_total(queryset):
    return queryset.filter(status='COMPLETED').aggregate(
        total=Coalesce(Sum('amount_paid'), ZERO)
    )['total']


def third(amount):
    return (Decimal(amount) / 3).quantize(CENTS, rounding=ROUND_HALF_UP)


def find_student(student_ref):
    """Look a student up by admission number, falling back to primary key."""
    if student_ref in (None, ''):
        raise NotFound('Student')

    ref = str(student_ref).strip()
    queryset = Student.objects.select_related('programme__department', 'department', 'current_class')
    student = queryset.filter(admission_no=ref).first()
    if student is None and ref.isdigit():
        student = queryset.filter(pk=int(ref)).first()
    if student is None:
        raise NotFound('Student')
    return student


def active_structure_for(student, academic_year=None, session=None):
    return FeeStructure.objects.filter(
        programme_id=student.programme_id,
        academic_year=academic_year or student.academic_year,
        session=session or student.session,
        is_active=True,
    ).first()


# =============================================================================
# PAYMENTS
# =============================================================================

class FeeLedger:
    """Payments and balances"""

    @staticmethod
    def record_payment(student_ref, academic_year, session, amount_paid, payment_method,
                       transaction_ref, payment_date=None, received_by=None, remarks=None):
        if FeePayment.objects.filter(transaction_ref=transaction_ref).exists():
            raise Conflict(DUPLICATE_REFERENCE)

        student = find_student(student_ref)

        try:
            with transaction.atomic():
                payment = FeePayment.objects.create(
                    student=student,
                    academic_year=academic_year,
                    session=session,
                    amount_paid=amount_paid,
                    payment_method=payment_method,
                    transaction_ref=transaction_ref,
                    payment_date=payment_date or timezone.now(),
                    status='COMPLETED',
                    received_by=received_by,
                    remarks=remarks,
                )
        except IntegrityError:
            # Lost the race on the transaction_ref unique constraint
            logger.warning(f"Duplicate transaction reference on insert: {transaction_ref}")
            raise Conflict(DUPLICATE_REFERENCE)

        logger.info(
            f"Recorded payment {payment.transaction_ref} of {payment.amount_paid} "
            f"for {student.admission_no}"
        )
        return payment

    @staticmethod
    def get_balance(admission_no):
        """Balance for the student's own academic year and session.

        Read only; the figure goes negative when the student has overpaid.
        """
        student = Student.objects.filter(admission_no=admission_no).first()
        if student is None:
            raise NotFound('Student')

        structure = active_structure_for(student)
        if structure is None:
            raise NotFound(message=NO_ACTIVE_STRUCTURE)

        payments = FeePayment.objects.filter(
            student=student,
            academic_year=student.academic_year,
            session=student.session,
            status='COMPLETED',
        ).order_by('-payment_date')

        total_paid = completed_total(payments)
        return {
            'student': student,
            'total_fee': structure.total_fee,
            'total_paid': total_paid,
            'balance': structure.total_fee - total_paid,
            'payments': list(payments),
        }

    @staticmethod
    def payment_statistics(academic_year=None, session=None, start_date=None, end_date=None):
        queryset = FeePayment.objects.filter(status='COMPLETED')
        if academic_year:
            queryset = queryset.filter(academic_year=academic_year)
        if session:
            queryset = queryset.filter(session=session)
        if start_date:
            queryset = queryset.filter(payment_date__date__gte=start_date)
        if end_date:
            queryset = queryset.filter(payment_date__date__lte=end_date)

        by_method = (
            queryset.values('payment_method')
            .annotate(count=Count('id'), total=Coalesce(Sum('amount_paid'), ZERO))
            .order_by('payment_method')
        )

        return {
            'total_payments': queryset.count(),
            'total_amount': completed_total(queryset),
            'payments_by_method': list(by_method),
        }

    @staticmethod
    def initiate_mpesa(phone_number, amount, account_reference, description=None):
        """STK push stub. No request leaves the process."""
        logger.info(f"Mock M-PESA push to {phone_number} for {amount} ({account_reference})")
        return {
            'merchant_request_id': f"mock-{uuid.uuid4().hex[:12]}",
            'checkout_request_id': f"ws_CO_{uuid.uuid4().hex[:16]}",
            'response_code': '0',
            'response_description': 'Success. Request accepted for processing',
        }

    @staticmethod
    def verify_mpesa(checkout_request_id):
        logger.info(f"Mock M-PESA status query for {checkout_request_id}")
        return {
            'checkout_request_id': checkout_request_id,
            'result_code': '0',
            'result_desc': 'The service request is processed successfully.',
            'status': 'COMPLETED',
        }


# =============================================================================
# FEE STRUCTURES
# =============================================================================

class FeeStructureService:

    @staticmethod
    def for_student(admission_no):
        student = find_student(admission_no)
        structure = active_structure_for(student)
        if structure is None:
            raise NotFound(message=NO_ACTIVE_STRUCTURE)
        return student, structure

    @staticmethod
    def calculate_total_fees(voteheads):
        """Sum per-term votehead amounts into term totals and a grand total."""
        if not isinstance(voteheads, list):
            raise ValidationFailed('voteheads must be a list')

        totals = {'term1': Decimal('0'), 'term2': Decimal('0'), 'term3': Decimal('0')}
        for votehead in voteheads:
            for term in totals:
                try:
                    totals[term] += Decimal(str(votehead.get(term) or 0))
                except (ArithmeticError, ValueError, AttributeError):
                    raise ValidationFailed(f"Invalid {term} amount in votehead")

        totals['grand_total'] = totals['term1'] + totals['term2'] + totals['term3']
        return totals


# =============================================================================
# INVOICES
# =============================================================================

class InvoiceService:

    @staticmethod
    def generate(student, term, academic_year=None, session=None):
        if term not in TERMS:
            raise ValidationFailed(f"term must be one of {', '.join(TERMS)}")

        academic_year = academic_year or student.academic_year
        session = session or student.session

        structure = active_structure_for(student, academic_year, session)
        if structure is None:
            raise NotFound(message=NO_ACTIVE_STRUCTURE)

        items = [{'votehead': 'Tuition Fees', 'amount': third(structure.tuition_fee)}]
        if structure.exam_fee:
            items.append({'votehead': 'Examination Fee', 'amount': third(structure.exam_fee)})
        if structure.library_fee:
            items.append({'votehead': 'Library Fee', 'amount': third(structure.library_fee)})
        if structure.activity_fee:
            items.append({'votehead': 'Activity Fee', 'amount': third(structure.activity_fee)})

        term_amount = third(structure.total_fee)
        total_paid = completed_total(FeePayment.objects.filter(
            student=student, academic_year=academic_year, session=session,
        ))
        today = timezone.now().date()

        return {
            'invoice_number': f"INV/{academic_year}/{student.admission_no}/{term}",
            'invoice_date': today,
            'due_date': today + timedelta(days=INVOICE_DUE_DAYS),
            'student': {
                'admission_no': student.admission_no,
                'name': f"{student.first_name} {student.last_name}",
                'programme': student.programme.name if student.programme else None,
                'department': student.department.name if student.department else None,
                'class': student.current_class.name if student.current_class else None,
                'email': student.email or '',
                'phone_number': student.phone_number or '',
            },
            'items': items,
            'subtotal': term_amount,
            'total_paid': total_paid,
            'balance': term_amount - total_paid,
            'academic_year': academic_year,
            'session': session,
            'term': term,
        }

    @staticmethod
    def bulk(academic_year, session, term, class_id=None, programme_id=None, department_id=None):
        students = Student.objects.select_related('programme', 'department', 'current_class').filter(
            academic_year=academic_year, session=session, academic_status='ACTIVE',
        )
        if class_id:
            students = students.filter(current_class_id=class_id)
        if programme_id:
            students = students.filter(programme_id=programme_id)
        if department_id:
            students = students.filter(department_id=department_id)

        invoices, failed = [], []
        for student in students:
            try:
                invoices.append(InvoiceService.generate(student, term, academic_year, session))
            except NotFound as e:
                failed.append({'admission_no': student.admission_no, 'error': e.message})

        return {
            'total': len(invoices) + len(failed),
            'successful': len(invoices),
            'failed': len(failed),
            'failures': failed,
            'invoices': invoices,
        }

    @staticmethod
    def history(student):
        invoices = []
        for term in TERMS:
            try:
                invoices.append(InvoiceService.generate(student, term))
            except NotFound:
                continue
        return invoices


# =============================================================================
# REPORTS
# =============================================================================

class FinanceReports:

    @staticmethod
    def collection(academic_year=None, session=None, date_from=None, date_to=None,
                   department_id=None, programme_id=None, class_id=None):
        payments = FeePayment.objects.select_related('student__department', 'student__programme').filter(
            status='COMPLETED'
        )
        if academic_year:
            payments = payments.filter(academic_year=academic_year)
        if session:
            payments = payments.filter(session=session)
        if date_from:
            payments = payments.filter(payment_date__date__gte=date_from)
        if date_to:
            payments = payments.filter(payment_date__date__lte=date_to)
        if department_id:
            payments = payments.filter(student__department_id=department_id)
        if programme_id:
            payments = payments.filter(student__programme_id=programme_id)
        if class_id:
            payments = payments.filter(student__current_class_id=class_id)

        total = Decimal('0')
        by_method = defaultdict(Decimal)
        by_department = defaultdict(Decimal)
        by_session = defaultdict(Decimal)
        by_day = defaultdict(Decimal)

        payments = list(payments.order_by('-payment_date'))
        for payment in payments:
            amount = payment.amount_paid
            total += amount
            by_method[payment.payment_method] += amount
            department = payment.student.department.name if payment.student.department else 'Unassigned'
            by_department[department] += amount
            by_session[payment.session] += amount
            by_day[timezone.localtime(payment.payment_date).date().isoformat()] += amount

        return {
            'payments': payments,
            'summary': {
                'total_collected': total,
                'total_transactions': len(payments),
                'by_payment_method': dict(by_method),
                'by_department': dict(by_department),
                'by_session': dict(by_session),
                'daily_collections': dict(by_day),
            },
        }

    @staticmethod
    def outstanding(academic_year=None, session=None, department_id=None, programme_id=None, class_id=None):
        students = Student.objects.select_related('programme', 'department', 'current_class').filter(
            academic_status='ACTIVE'
        )
        if academic_year:
            students = students.filter(academic_year=academic_year)
        if session:
            students = students.filter(session=session)
        if department_id:
            students = students.filter(department_id=department_id)
        if programme_id:
            students = students.filter(programme_id=programme_id)
        if class_id:
            students = students.filter(current_class_id=class_id)

        rows = []
        for student in students:
            structure = active_structure_for(student)
            if structure is None:
                continue

            total_paid = completed_total(FeePayment.objects.filter(
                student=student, academic_year=student.academic_year, session=student.session,
            ))
            balance = structure.total_fee - total_paid
            if balance <= 0:
                continue

            rows.append({
                'student_id': student.id,
                'admission_no': student.admission_no,
                'name': f"{student.first_name} {student.last_name}",
                'programme': student.programme.name if student.programme else None,
                'department': student.department.name if student.department else None,
                'class': student.current_class.name if student.current_class else None,
                'total_fee': structure.total_fee,
                'total_paid': total_paid,
                'balance': balance,
                'percentage_paid': round(float(total_paid) / float(structure.total_fee) * 100, 2)
                if structure.total_fee else 0,
            })

        total_expected = sum((r['total_fee'] for r in rows), Decimal('0'))
        total_collected = sum((r['total_paid'] for r in rows), Decimal('0'))

        by_department = {}
        for row in rows:
            bucket = by_department.setdefault(row['department'] or 'Unassigned', {'students': 0, 'outstanding': Decimal('0')})
            bucket['students'] += 1
            bucket['outstanding'] += row['balance']

        return {
            'outstanding_fees': rows,
            'summary': {
                'total_students': len(rows),
                'total_outstanding': sum((r['balance'] for r in rows), Decimal('0')),
                'total_expected': total_expected,
                'total_collected': total_collected,
                'collection_rate': round(float(total_collected) / float(total_expected) * 100, 2)
                if total_expected else 0,
                'by_department': by_department,
            },
        }
