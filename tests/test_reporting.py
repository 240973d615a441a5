from datetime import timedelta

import pytest
from django.utils import timezone

from mis_app.models import AttendanceRecord, AuditLog, MarksEntry, Student, StudentReport, Subject
from mis_app.services import reporting
from tests.conftest import client_for

pytestmark = pytest.mark.django_db


@pytest.fixture
def cohort(student, school_class):
    """Brian (fixture) plus Faith in the same class, and a graduate from an earlier intake."""
    faith = Student.objects.create(
        admission_no='KTYC/S/2/24', first_name='Faith', last_name='Otieno', gender='FEMALE',
        session='SEPT_DEC', academic_year='2024/2025', current_class=school_class,
        programme=school_class.programme, department=school_class.programme.department,
    )
    alumna = Student.objects.create(
        admission_no='KTYC/S/3/22', first_name='Mary', last_name='Chebet', gender='FEMALE',
        session='JAN_APRIL', academic_year='2022/2023', academic_status='GRADUATED',
        department=school_class.programme.department,
    )
    return student, faith, alumna


class TestOverview:

    def test_headline_and_breakdowns(self, cohort, school_class):
        brian, faith, alumna = cohort
        subject = Subject.objects.create(code='ICT101', name='Computer Applications')
        today = timezone.now().date()
        AttendanceRecord.objects.create(student=brian, school_class=school_class, date=today, status='PRESENT')
        AttendanceRecord.objects.create(student=brian, school_class=school_class, subject=subject, date=today,
                                        status='ABSENT')
        AttendanceRecord.objects.create(student=brian, school_class=school_class,
                                        date=today.replace(day=1) - timedelta(days=1), status='PRESENT')
        AttendanceRecord.objects.create(student=faith, school_class=school_class, date=today, status='PRESENT')
        for who, total in [(brian, 60), (faith, 71), (faith, 0), (faith, None)]:
            MarksEntry.objects.create(student=who, subject=subject, class_code='DIT-SEPT24', session='SEPT_DEC',
                                      total=total)

        data = reporting.overview({})

        assert data['stats'] == {'total': 3, 'active': 2, 'inactive': 0, 'graduated': 1, 'suspended': 0}
        assert data['class_performance'] == [{
            'class_id': school_class.id, 'code': 'DIT-SEPT24', 'name': 'DIT September 2024',
            'student_count': 2, 'attendance_rate': 75.0, 'average_score': 65.5,
        }]
        [department] = data['department_stats']
        assert (department['student_count'], department['active_count'],
                department['male_count'], department['female_count']) == (3, 2, 1, 2)
        assert data['session_breakdown'] == [
            {'session': 'JAN-APRIL', 'count': 1, 'percentage': 33},
            {'session': 'SEPT-DEC', 'count': 2, 'percentage': 67},
        ]

    def test_filters_narrow_the_directory(self, cohort):
        data = reporting.overview({'academic_status': 'GRADUATED'})

        assert data['stats']['total'] == 1
        assert data['session_breakdown'] == [{'session': 'JAN-APRIL', 'count': 1, 'percentage': 100}]

    def test_endpoint_serializes_recent_reports(self, staff_client, staff_user, cohort):
        brian = cohort[0]
        reporting.create_report(brian.pk, reported_by=staff_user)

        response = staff_client.get('/api/student-reports/overview/')

        assert response.status_code == 200
        [recent] = response.json()['data']['recent_reports']
        assert recent['admission_no'] == 'KTYC/S/1/24'
        assert recent['reported_by_name'] == 'Tom Mutua'

    def test_non_numeric_class_filter(self, staff_client):
        response = staff_client.get('/api/student-reports/overview/', {'class_id': 'abc'})

        assert response.status_code == 400
        assert response.json()['error'] == 'Invalid class_id: abc'


class TestReportingList:

    def test_rows_carry_report_counts(self, staff_client, staff_user, cohort):
        brian = cohort[0]
        reporting.create_report(brian.pk, reported_by=staff_user)
        reporting.create_report(brian.pk, reported_by=staff_user)

        body = staff_client.get('/api/student-reports/students/').json()

        assert [row['admission_no'] for row in body['data']] == ['KTYC/S/1/24', 'KTYC/S/2/24', 'KTYC/S/3/22']
        first, _, alumna = body['data']
        assert first['report_count'] == 2
        assert first['last_reported'] is not None
        assert first['session_label'] == 'SEPT-DEC'
        assert alumna['report_count'] == 0
        assert alumna['class_code'] == 'N/A'
        assert alumna['programme_name'] == 'N/A'
        assert body['pagination']['limit'] == 50

    def test_search(self, staff_client, cohort):
        body = staff_client.get('/api/student-reports/students/', {'search': 'chebet'}).json()

        assert [row['admission_no'] for row in body['data']] == ['KTYC/S/3/22']


class TestCreateReport:

    def test_snapshots_placement(self, staff_client, staff_user, student):
        response = staff_client.post('/api/student-reports/', {'student': student.pk}, format='json')

        assert response.status_code == 201
        assert response.json()['message'] == 'Student reported successfully!'

        report = StudentReport.objects.get()
        assert report.admission_no == 'KTYC/S/1/24'
        assert report.student_name == 'Brian Kemboi'
        assert report.session == 'SEPT_DEC'
        assert report.branch == 'Main Campus'
        assert report.class_code == 'DIT-SEPT24'
        assert report.programme == 'Diploma in Information Technology'
        assert report.department == 'Information Communication Technology'
        assert report.reported_by == staff_user
        assert AuditLog.objects.filter(event_type='STUDENT_REPORT_CREATE', table_name='student_reports').exists()

    def test_unknown_student(self, staff_client):
        response = staff_client.post('/api/student-reports/', {'student': 999}, format='json')

        assert response.status_code == 404
        assert response.json()['error'] == 'Student not found'

    def test_teachers_cannot_record_reports(self, teacher_user, student):
        response = client_for(teacher_user).post('/api/student-reports/', {'student': student.pk}, format='json')

        assert response.status_code == 403
        assert not StudentReport.objects.exists()

    def test_reports_cannot_be_edited(self, staff_client, staff_user, student):
        report = reporting.create_report(student.pk, reported_by=staff_user)

        response = staff_client.patch(f'/api/student-reports/{report.pk}/', {'branch': 'Annex'}, format='json')

        assert response.status_code == 405
