from datetime import date, time

import pytest

from mis_app.models import (
    AttendanceRecord, Building, ExamSchedule, MarksEntry, Room, Student, Subject, SubjectRegistration,
    TimetableEntry,
)
from mis_app.services.academics import (
    AttendanceService, MarksService, attendance_rate, calculate_competence, calculate_grade, tally,
)
from mis_app.exceptions import NotFound
from tests.conftest import client_for, make_user

pytestmark = pytest.mark.django_db


@pytest.fixture
def subject(db):
    return Subject.objects.create(code='ICT101', name='Computer Applications', credits=3)


@pytest.fixture
def teacher_client(teacher_user):
    return client_for(teacher_user)


class TestGrading:

    @pytest.mark.parametrize('score, grade', [
        (100, 'A+'), (90, 'A+'), (89.99, 'A'), (80, 'A'), (75, 'B+'), (70, 'B'),
        (65, 'C+'), (60, 'C'), (50, 'D'), (49.9, 'E'), (None, 'E'),
    ])
    def test_grade_bands(self, score, grade):
        assert calculate_grade(score) == grade

    @pytest.mark.parametrize('score, competence', [(95, 'C'), (80, 'C'), (79, 'P'), (60, 'P'), (59, 'I')])
    def test_competence_bands(self, score, competence):
        assert calculate_competence(score) == competence

    def test_grade_endpoint(self, admin_client):
        data = admin_client.get('/api/exams/results/grade/', {'score': '82.5'}).json()['data']
        assert data == {'score': 82.5, 'grade': 'A', 'competence': 'C'}

    def test_grade_endpoint_needs_number(self, admin_client):
        response = admin_client.get('/api/exams/results/grade/', {'score': 'abc'})
        assert response.status_code == 400


class TestAttendanceMaths:

    def test_rate_counts_late_as_attended(self):
        assert attendance_rate(present=1, late=1, total=3) == 66.67

    def test_rate_with_no_records(self):
        assert attendance_rate(0, 0, 0) == 0

    def test_tally(self):
        counts = tally(['PRESENT', 'ABSENT', 'LATE', 'EXCUSED'])
        assert counts == {
            'total': 4, 'present': 1, 'absent': 1, 'late': 1, 'excused': 1, 'attendance_rate': 50.0,
        }


class TestAttendance:

    def test_record_sets_recorder(self, teacher_client, teacher_user, student, subject):
        response = teacher_client.post('/api/attendance/', {
            'date': '2024-10-01', 'student': student.pk, 'school_class': student.current_class_id,
            'subject': subject.pk, 'status': 'PRESENT',
        }, format='json')

        assert response.status_code == 201
        assert AttendanceRecord.objects.get().recorded_by == teacher_user

    def test_duplicate_record(self, teacher_client, student):
        AttendanceRecord.objects.create(date=date(2024, 10, 1), student=student,
                                        school_class=student.current_class, status='PRESENT')

        response = teacher_client.post('/api/attendance/', {
            'date': '2024-10-01', 'student': student.pk, 'school_class': student.current_class_id,
            'status': 'ABSENT',
        }, format='json')

        assert response.status_code == 409
        assert response.json()['error'] == 'Attendance already recorded for this student on this date'

    def test_bulk_skips_existing_rows(self, teacher_client, student, subject):
        AttendanceRecord.objects.create(date=date(2024, 10, 1), student=student,
                                        school_class=student.current_class, status='PRESENT')
        row = {'student': student.pk, 'school_class': student.current_class_id, 'status': 'LATE'}

        response = teacher_client.post('/api/attendance/bulk/', {'records': [
            dict(row, date='2024-10-01'),
            dict(row, date='2024-10-02'),
            dict(row, date='2024-10-02', subject=subject.pk),
        ]}, format='json')

        assert response.status_code == 201
        assert response.json()['data'] == {'count': 2}
        assert AttendanceRecord.objects.count() == 3

    def test_bulk_needs_rows(self, teacher_client):
        response = teacher_client.post('/api/attendance/bulk/', {'records': []}, format='json')
        assert response.status_code == 400

    def test_student_statistics(self, admin_client, student):
        for day, mark in [(1, 'PRESENT'), (2, 'LATE'), (3, 'ABSENT')]:
            AttendanceRecord.objects.create(date=date(2024, 10, day), student=student,
                                            school_class=student.current_class, status=mark)

        data = admin_client.get(f'/api/attendance/student/{student.pk}/').json()['data']

        assert data['statistics']['attendance_rate'] == 66.67
        assert [r['date'] for r in data['records']] == ['2024-10-03', '2024-10-02', '2024-10-01']

    def test_class_register_marks_missing_students(self, student):
        absentee = Student.objects.create(admission_no='KTYC/S/2/24', first_name='Paul', last_name='Kiprop',
                                          gender='MALE', current_class=student.current_class)
        AttendanceRecord.objects.create(date=date(2024, 10, 1), student=student,
                                        school_class=student.current_class, status='PRESENT')

        register = AttendanceService.class_register(student.current_class_id, '2024-10-01')

        assert [(r['admission_no'], r['status']) for r in register] == [
            ('KTYC/S/1/24', 'PRESENT'),
            (absentee.admission_no, 'NOT_MARKED'),
        ]

    def test_report_requires_range(self, admin_client):
        response = admin_client.get('/api/attendance/report/', {'start_date': '2024-10-01'})
        assert response.status_code == 400
        assert response.json()['error'] == 'start_date and end_date are required'

    def test_report_groups_by_student(self, admin_client, student):
        for day, mark in [(1, 'PRESENT'), (2, 'ABSENT')]:
            AttendanceRecord.objects.create(date=date(2024, 10, day), student=student,
                                            school_class=student.current_class, status=mark)

        data = admin_client.get('/api/attendance/report/', {
            'start_date': '2024-10-01', 'end_date': '2024-10-31',
        }).json()['data']

        assert len(data) == 1
        assert data[0]['attendance_rate'] == 50.0
        assert data[0]['student']['class_code'] == 'DIT-SEPT24'

    def test_parent_cannot_record(self, student):
        parent = make_user('parent@example.com', 'PARENT')
        response = client_for(parent).post('/api/attendance/', {
            'student': student.pk, 'school_class': student.current_class_id, 'status': 'PRESENT',
        }, format='json')
        assert response.status_code == 403


class TestMarks:

    def test_total_defaults_to_sum_of_components(self, teacher_client, teacher_user, student, subject):
        response = teacher_client.post('/api/marks/', {
            'student': student.pk, 'subject': subject.pk, 'class_code': 'DIT-SEPT24', 'session': 'SEPT_DEC',
            'cat': 25, 'end_of_term': 50,
        }, format='json')

        assert response.status_code == 201
        data = response.json()['data']
        assert data['total'] == 75
        assert data['grade'] == 'B+'
        assert MarksEntry.objects.get().entered_by == teacher_user

    def test_module_average(self, student, subject):
        for cat, practical in [(60, None), (80, 70)]:
            MarksEntry.objects.create(student=student, subject=subject, class_code='DIT-SEPT24',
                                      session='SEPT_DEC', cat=cat, practical=practical)

        average = MarksService.module_average(student.pk, subject.pk)

        assert average == {
            'written_average': 70.0,
            'practical_average': 70.0,
            'overall_average': 70.0,
            'written_count': 2,
            'practical_count': 1,
        }

    def test_module_average_without_marks(self, admin_client, student, subject):
        with pytest.raises(NotFound):
            MarksService.module_average(student.pk, subject.pk)

        response = admin_client.get('/api/marks/average/', {'student_id': student.pk, 'subject_id': subject.pk})
        assert response.status_code == 404
        assert response.json()['error'] == 'No marks found'

    def test_bulk_marks(self, teacher_client, student, subject):
        row = {'student': student.pk, 'subject': subject.pk, 'class_code': 'DIT-SEPT24', 'session': 'SEPT_DEC'}
        response = teacher_client.post('/api/marks/bulk/', {'marks': [
            dict(row, cat=30), dict(row, practical=40),
        ]}, format='json')

        assert response.status_code == 201
        assert [m['total'] for m in response.json()['data']] == [30, 40]


class TestRegistrations:

    def test_duplicate_registration(self, staff_client, student, subject):
        SubjectRegistration.objects.create(student=student, subject=subject)

        response = staff_client.post('/api/subject-registrations/', {
            'student': student.pk, 'subject': subject.pk,
        }, format='json')

        assert response.status_code == 409
        assert response.json()['error'] == 'Student is already registered for this subject'

    def test_bulk_registration_skips_duplicates(self, staff_client, student, subject):
        other = Subject.objects.create(code='ICT102', name='Networking')
        SubjectRegistration.objects.create(student=student, subject=subject)

        response = staff_client.post('/api/subject-registrations/bulk/', {'registrations': [
            {'student': student.pk, 'subject': subject.pk},
            {'student': student.pk, 'subject': other.pk},
            {'student': student.pk},
        ]}, format='json')

        data = response.json()['data']
        assert data['created'] == 1
        assert data['skipped'] == 1
        assert data['errors'][0]['index'] == 2

    def test_registrations_for_student(self, admin_client, student, subject):
        SubjectRegistration.objects.create(student=student, subject=subject)
        data = admin_client.get(f'/api/subject-registrations/student/{student.pk}/').json()['data']
        assert [r['subject_code'] for r in data] == ['ICT101']


class TestExams:

    @pytest.fixture
    def schedule(self, db):
        return ExamSchedule.objects.create(schedule_type='End of Term', session='SEPT_DEC', exam_type='Written',
                                           exam_start_date=date(2024, 11, 25), exam_end_date=date(2024, 12, 6))

    def test_schedule_dates_validated(self, staff_client):
        response = staff_client.post('/api/exams/schedules/', {
            'schedule_type': 'Mid Term', 'session': 'SEPT_DEC', 'exam_type': 'Written',
            'exam_start_date': '2024-10-10', 'exam_end_date': '2024-10-01',
        }, format='json')
        assert response.status_code == 400

    def test_result_competence_derived_from_score(self, teacher_client, student, schedule):
        response = teacher_client.post('/api/exams/results/', {
            'student': student.pk, 'exam_schedule': schedule.pk, 'session': 'SEPT_DEC',
            'class_code': 'DIT-SEPT24', 'overall_performance': '64',
        }, format='json')

        assert response.status_code == 201
        assert response.json()['data']['competence'] == 'P'

    def test_transcript(self, admin_client, student, subject, schedule):
        MarksEntry.objects.create(student=student, subject=subject, class_code='DIT-SEPT24',
                                  session='SEPT_DEC', total=81)

        data = admin_client.get(f'/api/exams/results/transcript/{student.pk}/').json()['data']

        assert data['student']['admission_no'] == 'KTYC/S/1/24'
        assert data['marks_by_session']['SEPT_DEC'][0]['grade'] == 'A'

    def test_transcript_unknown_student(self, admin_client):
        assert admin_client.get('/api/exams/results/transcript/4040/').status_code == 404


class TestTimetable:

    @pytest.fixture
    def room(self, db):
        building = Building.objects.create(title='Tech Block')
        return Room.objects.create(title='Lab 1', building=building)

    def test_building_with_rooms_cannot_be_deleted(self, staff_client, room):
        response = staff_client.delete(f'/api/timetable/buildings/{room.building_id}/')

        assert response.status_code == 400
        assert response.json()['error'] == 'Cannot delete building with rooms. Delete rooms first.'

    def test_room_in_timetable_cannot_be_deleted(self, staff_client, room, school_class, subject):
        TimetableEntry.objects.create(school_class=school_class, subject=subject, room=room, day_of_week=1,
                                      start_time=time(8), end_time=time(10))

        response = staff_client.delete(f'/api/timetable/rooms/{room.pk}/')

        assert response.status_code == 400
        assert response.json()['error'] == 'Cannot delete room being used in timetable. Remove from schedule first.'

    def test_free_room_can_be_deleted(self, staff_client, room):
        assert staff_client.delete(f'/api/timetable/rooms/{room.pk}/').status_code == 200
        assert not Room.objects.exists()

    def test_entry_must_end_after_start(self, staff_client, school_class, subject):
        response = staff_client.post('/api/timetable/entries/', {
            'school_class': school_class.pk, 'subject': subject.pk, 'day_of_week': 2,
            'start_time': '10:00', 'end_time': '09:00',
        }, format='json')
        assert response.status_code == 400

    def test_entries_filtered_by_day(self, admin_client, school_class, subject, tutor):
        for day in (1, 3):
            TimetableEntry.objects.create(school_class=school_class, subject=subject, tutor=tutor,
                                          day_of_week=day, start_time=time(8), end_time=time(9))

        data = admin_client.get('/api/timetable/entries/', {'day': 3}).json()['data']

        assert [e['day_of_week'] for e in data] == [3]
        assert data[0]['tutor_name'] == 'Ann Njeri'
