import pytest

from mis_app.models import AuditLog, Subject, Tutor, TutorSubjectAssignment
from mis_app.services import tutors as roster
from tests.conftest import client_for

pytestmark = pytest.mark.django_db


@pytest.fixture
def subject(db):
    return Subject.objects.create(code='ICT101', name='Computer Applications', credits=3)


class TestEmployeeCodes:

    def test_first_code(self):
        assert roster.next_employee_code() == 'KTYC/TUT/0001'

    def test_follows_the_highest_number(self, tutor):
        Tutor.objects.create(employee_code='KTYC/TUT/0012', first_name='Paul', last_name='Kiprop',
                             email='paul.kiprop@ktyc.ac.ke')
        Tutor.objects.create(employee_code='HR-77', first_name='Mercy', last_name='Auma',
                             email='mercy.auma@ktyc.ac.ke')

        assert roster.next_employee_code() == 'KTYC/TUT/0013'

    def test_endpoint(self, staff_client, tutor):
        response = staff_client.get('/api/tutors/generate-employee-code/')

        assert response.status_code == 200
        assert response.json()['data']['employee_code'] == 'KTYC/TUT/0002'


class TestTutorCrud:

    def test_create_issues_a_code(self, staff_client, tutor):
        response = staff_client.post('/api/tutors/', {
            'first_name': 'Paul',
            'last_name': 'Kiprop',
            'email': 'Paul.Kiprop@ktyc.ac.ke',
            'specialization': 'Electrical Installation',
        }, format='json')

        assert response.status_code == 201
        body = response.json()
        assert body['message'] == 'Tutor created successfully'
        assert body['data']['employee_code'] == 'KTYC/TUT/0002'
        assert body['data']['email'] == 'paul.kiprop@ktyc.ac.ke'
        assert body['data']['is_active'] is True
        assert AuditLog.objects.filter(event_type='TUTOR_CREATE').exists()

    def test_duplicate_employee_code(self, staff_client, tutor):
        response = staff_client.post('/api/tutors/', {
            'employee_code': 'KTYC/TUT/0001', 'first_name': 'Paul', 'last_name': 'Kiprop',
            'email': 'paul.kiprop@ktyc.ac.ke',
        }, format='json')

        assert response.status_code == 409
        assert response.json()['error'] == 'A tutor with this employee code already exists'

    def test_duplicate_email(self, staff_client, tutor):
        response = staff_client.post('/api/tutors/', {
            'first_name': 'Annette', 'last_name': 'Njeri', 'email': 'ANN.NJERI@ktyc.ac.ke',
        }, format='json')

        assert response.status_code == 409
        assert response.json()['error'] == 'A tutor with this email already exists'

    def test_update_keeps_own_email(self, staff_client, tutor):
        response = staff_client.patch(f'/api/tutors/{tutor.pk}/', {
            'email': 'ann.njeri@ktyc.ac.ke', 'is_active': False,
        }, format='json')

        assert response.status_code == 200
        tutor.refresh_from_db()
        assert tutor.is_active is False

    def test_unknown_tutor(self, staff_client):
        response = staff_client.patch('/api/tutors/999/', {'first_name': 'X'}, format='json')

        assert response.status_code == 404
        assert response.json()['error'] == 'Tutor not found'

    def test_teachers_cannot_add_tutors(self, teacher_user):
        response = client_for(teacher_user).post('/api/tutors/', {
            'first_name': 'Paul', 'last_name': 'Kiprop', 'email': 'paul.kiprop@ktyc.ac.ke',
        }, format='json')

        assert response.status_code == 403
        assert not Tutor.objects.exists()

    def test_list_search_and_active_filter(self, staff_client, tutor):
        Tutor.objects.create(employee_code='KTYC/TUT/0002', first_name='Paul', last_name='Kiprop',
                             email='paul.kiprop@ktyc.ac.ke', is_active=False)

        by_name = staff_client.get('/api/tutors/', {'search': 'kiprop'}).json()
        inactive = staff_client.get('/api/tutors/', {'is_active': 'false'}).json()

        assert [t['employee_code'] for t in by_name['data']] == ['KTYC/TUT/0002']
        assert [t['employee_code'] for t in inactive['data']] == ['KTYC/TUT/0002']
        assert by_name['pagination']['total'] == 1

    def test_cannot_delete_with_assignments(self, staff_client, tutor, subject):
        TutorSubjectAssignment.objects.create(tutor=tutor, subject=subject)

        response = staff_client.delete(f'/api/tutors/{tutor.pk}/')

        assert response.status_code == 400
        assert response.json()['error'] == (
            'Cannot delete tutor with active subject assignments. Remove assignments first.'
        )
        assert Tutor.objects.filter(pk=tutor.pk).exists()

    def test_delete(self, staff_client, tutor):
        response = staff_client.delete(f'/api/tutors/{tutor.pk}/')

        assert response.status_code == 200
        assert response.json()['message'] == 'Tutor deleted successfully'


class TestSubjectAssignments:

    def test_assign(self, staff_client, tutor, subject, school_class):
        response = staff_client.post(f'/api/tutors/{tutor.pk}/assign-subject/', {
            'subject': subject.pk, 'school_class': school_class.pk,
        }, format='json')

        assert response.status_code == 201
        body = response.json()
        assert body['message'] == 'Subject assigned successfully'
        assert body['data']['subject_code'] == 'ICT101'
        assert body['data']['class_code'] == 'DIT-SEPT24'

        detail = staff_client.get(f'/api/tutors/{tutor.pk}/').json()['data']
        assert [s['subject_code'] for s in detail['subjects']] == ['ICT101']
        assert AuditLog.objects.filter(event_type='TUTOR_SUBJECT_ASSIGN').exists()

    def test_assign_twice(self, staff_client, tutor, subject):
        TutorSubjectAssignment.objects.create(tutor=tutor, subject=subject)

        response = staff_client.post(f'/api/tutors/{tutor.pk}/assign-subject/', {'subject': subject.pk},
                                     format='json')

        assert response.status_code == 409
        assert response.json()['error'] == 'This tutor is already assigned to this subject'
        assert TutorSubjectAssignment.objects.count() == 1

    def test_assign_unknown_subject(self, staff_client, tutor):
        response = staff_client.post(f'/api/tutors/{tutor.pk}/assign-subject/', {'subject': 999}, format='json')

        assert response.status_code == 404
        assert response.json()['error'] == 'Subject not found'

    def test_remove(self, staff_client, tutor, subject):
        TutorSubjectAssignment.objects.create(tutor=tutor, subject=subject)

        response = staff_client.delete(f'/api/tutors/{tutor.pk}/subjects/{subject.pk}/')

        assert response.status_code == 200
        assert response.json()['message'] == 'Subject assignment removed successfully'
        assert not TutorSubjectAssignment.objects.exists()

    def test_remove_missing_assignment(self, staff_client, tutor, subject):
        response = staff_client.delete(f'/api/tutors/{tutor.pk}/subjects/{subject.pk}/')

        assert response.status_code == 404
        assert response.json()['error'] == 'Subject assignment not found'
