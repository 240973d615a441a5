import pytest

from mis_app.models import Class, Department, MarksEntry, Programme, Student, Subject

pytestmark = pytest.mark.django_db


class TestDepartments:

    def test_create_uppercases_code(self, staff_client):
        response = staff_client.post('/api/departments/', {'code': ' bus ', 'name': 'Business Studies'}, format='json')

        assert response.status_code == 201
        assert response.json()['data']['code'] == 'BUS'

    def test_duplicate_code(self, staff_client, department):
        response = staff_client.post('/api/departments/', {'code': 'ict', 'name': 'Another ICT'}, format='json')

        assert response.status_code == 409
        assert response.json()['error'] == 'A department with this code already exists'

    def test_delete_blocked_by_programmes(self, staff_client, programme):
        response = staff_client.delete(f'/api/departments/{programme.department_id}/')

        assert response.status_code == 400
        assert response.json()['error'] == (
            'Cannot delete department with 1 programmes. Please remove or reassign programmes first.'
        )
        assert Department.objects.filter(pk=programme.department_id).exists()

    def test_delete_empty_department(self, staff_client, department):
        response = staff_client.delete(f'/api/departments/{department.pk}/')

        assert response.status_code == 200
        assert response.json()['message'] == 'Department deleted successfully'
        assert not Department.objects.exists()

    def test_statistics(self, admin_client, student):
        data = admin_client.get('/api/departments/statistics/').json()['data']

        assert data['total'] == 1
        assert data['departments'][0]['programme_count'] == 1
        assert data['departments'][0]['student_count'] == 1


class TestProgrammes:

    def test_end_date_before_effective_date(self, staff_client, department):
        response = staff_client.post('/api/programmes/', {
            'code': 'DAC', 'name': 'Diploma in Accounting', 'department': department.pk, 'level': 'DIPLOMA',
            'effective_date': '2024-09-01', 'end_date': '2024-01-01',
        }, format='json')

        assert response.status_code == 400
        assert response.json()['error'] == 'Validation failed'
        assert 'end_date' in response.json()['details']

    def test_delete_blocked_by_students_first(self, staff_client, student):
        programme = student.programme

        response = staff_client.delete(f'/api/programmes/{programme.pk}/')

        assert response.status_code == 400
        assert response.json()['error'] == (
            'Cannot delete programme with 1 students. Please remove or reassign students first.'
        )
        assert Programme.objects.filter(pk=programme.pk).exists()

    def test_delete_blocked_by_classes(self, staff_client, school_class):
        response = staff_client.delete(f'/api/programmes/{school_class.programme_id}/')

        assert response.status_code == 400
        assert response.json()['error'] == (
            'Cannot delete programme with 1 classes. Please remove or reassign classes first.'
        )

    def test_filters(self, admin_client, programme):
        Programme.objects.create(code='CPL', name='Certificate in Plumbing', department=programme.department,
                                 level='CERTIFICATE', is_active=False)

        by_level = admin_client.get('/api/programmes/', {'level': 'CERTIFICATE'}).json()['data']
        active = admin_client.get('/api/programmes/', {'is_active': 'true'}).json()['data']

        assert [p['code'] for p in by_level] == ['CPL']
        assert [p['code'] for p in active] == ['DIT']

    def test_by_department(self, admin_client, programme):
        body = admin_client.get(f'/api/programmes/by-department/{programme.department_id}/').json()
        assert [p['code'] for p in body['data']] == ['DIT']

    def test_programme_statistics(self, admin_client, student):
        data = admin_client.get(f'/api/programmes/{student.programme_id}/statistics/').json()['data']

        assert data['total_students'] == 1
        assert data['total_classes'] == 1
        assert data['by_status'] == {'ACTIVE': 1}


class TestClasses:

    def test_list_defaults_to_active(self, admin_client, school_class):
        Class.objects.create(code='DIT-JAN23', name='DIT January 2023', programme=school_class.programme,
                             status='Completed')

        default = admin_client.get('/api/classes/').json()['data']
        everything = admin_client.get('/api/classes/', {'status': 'all'}).json()['data']

        assert [c['code'] for c in default] == ['DIT-SEPT24']
        assert [c['code'] for c in everything] == ['DIT-JAN23', 'DIT-SEPT24']

    def test_duplicate_code(self, staff_client, school_class):
        response = staff_client.post('/api/classes/', {
            'code': 'DIT-SEPT24', 'name': 'Copy', 'programme': school_class.programme_id,
        }, format='json')

        assert response.status_code == 409
        assert response.json()['error'] == 'Class with this code already exists'

    def test_delete_blocked_by_enrolment(self, staff_client, student):
        response = staff_client.delete(f'/api/classes/{student.current_class_id}/')

        assert response.status_code == 400
        assert response.json()['error'] == 'Cannot delete class with 1 enrolled student(s)'

    def test_detail_includes_roster_and_average(self, admin_client, student):
        subject = Subject.objects.create(code='ICT101', name='Computer Applications')
        other = Student.objects.create(admission_no='KTYC/S/2/24', first_name='Lucy', last_name='Atieno',
                                       gender='FEMALE', current_class=student.current_class)
        for learner, totals in [(student, [70, 80]), (other, [60])]:
            for total in totals:
                MarksEntry.objects.create(student=learner, subject=subject, class_code='DIT-SEPT24',
                                          session='SEPT_DEC', total=total)

        data = admin_client.get(f'/api/classes/{student.current_class_id}/').json()['data']

        assert [s['average_marks'] for s in data['students']] == [75.0, 60.0]
        assert data['class_average'] == 67.5
        assert data['student_count'] == 2

    def test_programmes_dropdown(self, admin_client, programme):
        data = admin_client.get('/api/classes/programmes-dropdown/').json()['data']
        assert data == [{'id': programme.pk, 'code': 'DIT', 'name': 'Diploma in Information Technology'}]
