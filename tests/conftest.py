import pytest
from decimal import Decimal

from django.conf import settings
from rest_framework.test import APIClient

from mis_app.authentication import issue_token
from mis_app.models import Class, Department, FeeStructure, Programme, Student, Tutor, User


def make_user(email, role, password='Passw0rd!', **extra):
    return User.objects.create_user(username=email, email=email, password=password, role=role, **extra)


def client_for(user):
    client = APIClient()
    client.cookies[settings.AUTH_COOKIE_NAME] = issue_token(user)
    return client


@pytest.fixture
def admin_user(db):
    return make_user('admin@ktyc.ac.ke', 'ADMIN', first_name='Grace', last_name='Achieng')


@pytest.fixture
def staff_user(db):
    return make_user('clerk@ktyc.ac.ke', 'STAFF', first_name='Tom', last_name='Mutua')


@pytest.fixture
def teacher_user(db):
    return make_user('tutor@ktyc.ac.ke', 'TEACHER', first_name='Ann', last_name='Njeri')


@pytest.fixture
def tutor(db):
    return Tutor.objects.create(
        employee_code='KTYC/TUT/0001', first_name='Ann', last_name='Njeri',
        email='ann.njeri@ktyc.ac.ke', specialization='Networking',
    )


@pytest.fixture
def anon_client():
    return APIClient()


@pytest.fixture
def admin_client(admin_user):
    return client_for(admin_user)


@pytest.fixture
def staff_client(staff_user):
    return client_for(staff_user)


@pytest.fixture
def department(db):
    return Department.objects.create(code='ICT', name='Information Communication Technology')


@pytest.fixture
def programme(department):
    return Programme.objects.create(
        code='DIT', name='Diploma in Information Technology', department=department, level='DIPLOMA', duration=2,
    )


@pytest.fixture
def school_class(programme):
    return Class.objects.create(code='DIT-SEPT24', name='DIT September 2024', programme=programme)


@pytest.fixture
def student(school_class):
    return Student.objects.create(
        admission_no='KTYC/S/1/24',
        first_name='Brian',
        middle_name='Wasike',
        last_name='Kemboi',
        gender='MALE',
        email='brian.kemboi@example.com',
        phone_number='0711222333',
        academic_year='2024/2025',
        session='SEPT_DEC',
        current_class=school_class,
        programme=school_class.programme,
        department=school_class.programme.department,
    )


@pytest.fixture
def fee_structure(programme):
    return FeeStructure.objects.create(
        programme=programme,
        academic_year='2024/2025',
        session='SEPT_DEC',
        tuition_fee=Decimal('24000'),
        exam_fee=Decimal('3000'),
        library_fee=Decimal('1500'),
        activity_fee=Decimal('1500'),
    )
