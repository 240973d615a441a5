from decimal import Decimal

import pytest
from django.utils import timezone

from mis_app.exceptions import BusinessRuleViolation, ValidationFailed
from mis_app.models import ProcurementRequest
from mis_app.services.procurement import ProcurementService, next_request_number, parse_description
from tests.conftest import client_for

pytestmark = pytest.mark.django_db


def raise_request(**overrides):
    data = {
        'requested_by': 'Tom Mutua',
        'department': 'ICT',
        'description': 'Twenty desktop computers for Lab 2',
        'estimated_cost': Decimal('1200000'),
    }
    data.update(overrides)
    return ProcurementService.create(**data)


class TestNumbering:

    def test_sequential_per_year(self):
        year = timezone.now().year
        first = raise_request()
        second = raise_request()

        assert first.request_number == f"PR/{year}/0001"
        assert second.request_number == f"PR/{year}/0002"

    def test_other_years_do_not_count(self):
        ProcurementRequest.objects.create(request_number='PR/2019/0007', requested_by='x', department='ICT',
                                          description='old', estimated_cost=1)
        assert next_request_number() == f"PR/{timezone.now().year}/0001"


class TestDescriptionMetadata:

    def test_priority_and_justification_are_appended(self):
        request = raise_request(priority='HIGH', justification='Old machines failing')

        parsed = parse_description(request.description)

        assert parsed['priority'] == 'HIGH'
        assert parsed['justification'] == 'Old machines failing'
        assert request.description.startswith('Twenty desktop computers for Lab 2\n\n')

    def test_missing_justification(self):
        request = raise_request(priority='LOW')
        assert parse_description(request.description)['justification'] == 'N/A'

    def test_parse_ignores_lines_without_colon(self):
        assert parse_description('Plain text\nApproval Comments: go ahead\n\n') == {
            'approval_comments': 'go ahead',
        }


class TestLifecycle:

    def test_approve_records_reviewer(self):
        request = ProcurementService.approve(raise_request(), 'Grace Achieng', 'Within budget')

        assert request.status == 'APPROVED'
        assert request.approved_by == 'Grace Achieng'
        assert request.approved_at is not None
        assert parse_description(request.description)['approval_comments'] == 'Within budget'

    def test_full_path_to_completion(self):
        request = ProcurementService.approve(raise_request(), 'Grace Achieng')
        request = ProcurementService.transition(request, 'IN_PROGRESS')
        request = ProcurementService.transition(request, 'COMPLETED')
        assert request.status == 'COMPLETED'

    @pytest.mark.parametrize('path', [
        ['COMPLETED'],
        ['IN_PROGRESS'],
        ['REJECTED', 'APPROVED'],
        ['APPROVED', 'REJECTED'],
    ])
    def test_illegal_moves(self, path):
        request = raise_request()
        *legal, illegal = path
        for status in legal:
            request = ProcurementService.transition(request, status)

        with pytest.raises(BusinessRuleViolation):
            ProcurementService.transition(request, illegal)

    def test_unknown_status(self):
        with pytest.raises(ValidationFailed):
            ProcurementService.transition(raise_request(), 'LOST')

    def test_only_pending_can_be_deleted(self):
        request = ProcurementService.reject(raise_request(), 'Grace Achieng', 'No budget')
        with pytest.raises(BusinessRuleViolation):
            ProcurementService.delete(request)
        assert ProcurementRequest.objects.filter(pk=request.pk).exists()


class TestEndpoints:

    def test_create_defaults_requester_to_user(self, staff_client):
        response = staff_client.post('/api/procurement/', {
            'department': 'ICT', 'description': 'Projector', 'estimated_cost': '85000', 'priority': 'URGENT',
        }, format='json')

        assert response.status_code == 201
        data = response.json()['data']
        assert data['requested_by'] == 'Tom Mutua'
        assert data['status'] == 'PENDING'

    def test_teachers_cannot_raise_requests(self, teacher_user):
        response = client_for(teacher_user).post('/api/procurement/', {
            'department': 'ICT', 'description': 'Projector', 'estimated_cost': '85000',
        }, format='json')

        assert response.status_code == 403
        assert not ProcurementRequest.objects.exists()

    def test_create_validates_priority(self, staff_client):
        response = staff_client.post('/api/procurement/', {
            'department': 'ICT', 'description': 'Projector', 'estimated_cost': '85000', 'priority': 'ASAP',
        }, format='json')
        assert response.status_code == 400

    def test_retrieve_includes_parsed_description(self, admin_client):
        request = raise_request(priority='MEDIUM')
        data = admin_client.get(f'/api/procurement/{request.pk}/').json()['data']
        assert data['parsed_description']['priority'] == 'MEDIUM'

    def test_admin_approves(self, admin_client):
        request = raise_request()

        response = admin_client.post(f'/api/procurement/{request.pk}/approve/', {'comments': 'ok'}, format='json')

        assert response.status_code == 200
        assert response.json()['message'] == 'Procurement request approved successfully'
        assert response.json()['data']['approved_by'] == 'Grace Achieng'

    def test_staff_cannot_approve(self, staff_client):
        request = raise_request()

        response = staff_client.post(f'/api/procurement/{request.pk}/approve/', {}, format='json')

        assert response.status_code == 403
        request.refresh_from_db()
        assert request.status == 'PENDING'

    def test_staff_can_progress_approved_work(self, staff_client):
        request = ProcurementService.approve(raise_request(), 'Grace Achieng')

        response = staff_client.post(f'/api/procurement/{request.pk}/update-status/', {'status': 'IN_PROGRESS'},
                                     format='json')

        assert response.status_code == 200
        assert response.json()['data']['status'] == 'IN_PROGRESS'

    def test_illegal_status_update(self, admin_client):
        request = raise_request()

        response = admin_client.post(f'/api/procurement/{request.pk}/update-status/', {'status': 'COMPLETED'},
                                     format='json')

        assert response.status_code == 400
        assert response.json()['error'] == 'Cannot move procurement request from PENDING to COMPLETED'

    def test_approving_twice(self, admin_client):
        request = ProcurementService.approve(raise_request(), 'Grace Achieng')
        response = admin_client.post(f'/api/procurement/{request.pk}/approve/', {}, format='json')
        assert response.status_code == 400

    def test_delete(self, staff_client):
        pending = raise_request()
        approved = ProcurementService.approve(raise_request(), 'Grace Achieng')

        assert staff_client.delete(f'/api/procurement/{pending.pk}/').status_code == 200
        refused = staff_client.delete(f'/api/procurement/{approved.pk}/')
        assert refused.status_code == 400
        assert refused.json()['error'] == 'Can only delete pending requests'

    def test_update_appends_priority(self, staff_client):
        request = raise_request()

        response = staff_client.patch(f'/api/procurement/{request.pk}/', {'priority': 'HIGH'}, format='json')

        assert response.status_code == 200
        request.refresh_from_db()
        assert request.description.endswith('\nUpdated Priority: HIGH')

    def test_summary_and_budget(self, admin_client):
        raise_request(estimated_cost=Decimal('100'))
        ProcurementService.approve(raise_request(estimated_cost=Decimal('250')), 'Grace Achieng', 'fine')
        ProcurementService.reject(raise_request(estimated_cost=Decimal('40'), department='Finance'), 'Grace Achieng')

        summary = admin_client.get('/api/procurement/summary/').json()['data']
        budget = admin_client.get('/api/procurement/department-budget/', {'department': 'ICT'}).json()['data']

        assert summary['total'] == 3
        assert summary['by_status']['APPROVED'] == 1
        assert summary['total_value'] == 390
        assert budget['total_requested'] == 350
        assert budget['total_approved'] == 250
        assert budget['pending'] == 100
        assert budget['approved_with_comments'][0]['comments'] == 'fine'

    def test_budget_needs_department(self, admin_client):
        assert admin_client.get('/api/procurement/department-budget/').status_code == 400

    def test_list_filters_by_status(self, admin_client):
        raise_request()
        ProcurementService.approve(raise_request(), 'Grace Achieng')

        body = admin_client.get('/api/procurement/', {'status': 'APPROVED'}).json()

        assert [r['status'] for r in body['data']] == ['APPROVED']
        assert body['pagination']['limit'] == 50
