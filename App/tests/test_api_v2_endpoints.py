"""
API v2 endpoint testing
Exercises the routes end to end: authentication, the response envelope,
coordinator-only guards, organization scoping and scheduling errors.
"""
import pytest

from App.controllers.organization import create_organization, update_settings
from App.controllers.qualification import grant_qualification
from App.controllers.signup import create_signup, get_signup
from App.controllers.user import create_user
from App.controllers.zone import create_zone
from App.models.user import COORDINATOR
from coverage_engine import RoleType

MONDAY = '2031-03-10'


class TestAPIv2Endpoints:
    """Integration tests for API v2 endpoints"""

    @pytest.fixture(autouse=True)
    def setup(self, seed, client, make_shift, auth_headers):
        self.seed = seed
        self.client = client
        self.shift = make_shift(seed.zones['Durham-1'], start_hour=9, end_hour=13)
        self.coordinator_headers = auth_headers(seed.coordinator)
        self.headers_for = auth_headers

    def volunteer_headers(self, username):
        return self.headers_for(self.seed.users[username])

    def county_mode(self):
        update_settings(self.seed.org.id, dispatcher_scheduling_mode='COUNTY')

    def other_organization(self):
        """A coordinator and a fully qualified volunteer of a second organization."""
        other = create_organization('Other Coalition', 'other')
        coordinator = create_user('other-coord', 'pass', other.id, type=COORDINATOR)
        volunteer = create_user('olive', 'pass', other.id, name='Olive')
        for role in RoleType:
            grant_qualification(volunteer.id, role)
        return coordinator, volunteer

    def test_login(self):
        response = self.client.post('/api/v2/auth/login', json={'username': 'coord', 'password': 'coordpass'})
        assert response.status_code == 200
        data = response.get_json()
        assert data['success'] is True
        assert 'token' in data['data']
        assert data['data']['user']['is_coordinator'] is True
        assert data['data']['organization']['timezone'] == 'America/New_York'

    def test_login_rejects_bad_password(self):
        response = self.client.post('/api/v2/auth/login', json={'username': 'coord', 'password': 'nope'})
        assert response.status_code == 401
        assert response.get_json()['success'] is False

    def test_login_requires_fields(self):
        response = self.client.post('/api/v2/auth/login', json={'username': 'coord'})
        assert response.status_code == 400
        assert response.get_json()['errors'] == {'password': 'Required'}

    def test_me_requires_token(self):
        assert self.client.get('/api/v2/auth/me').status_code == 401

        response = self.client.get('/api/v2/auth/me', headers=self.volunteer_headers('dana'))
        assert response.status_code == 200
        assert response.get_json()['data']['user']['qualified_roles'] == ['DISPATCHER', 'VERIFIER']

    def test_week_coverage(self):
        response = self.client.get(f'/api/v2/coverage/week?date={MONDAY}', headers=self.volunteer_headers('fran'))
        assert response.status_code == 200
        data = response.get_json()['data']
        assert data['week_start'] == MONDAY
        assert len(data['days']) == 7
        assert [slot['block'] for slot in data['time_slots']] == ['06-10', '10-14', '14-18', '18-22']

    def test_week_coverage_rejects_bad_date(self):
        response = self.client.get('/api/v2/coverage/week?date=10/03/2031', headers=self.volunteer_headers('fran'))
        assert response.status_code == 400
        assert response.get_json()['errors']['code'] == 'VALIDATION_FAILED'

    def test_signup_flow(self):
        url = f'/api/v2/shifts/{self.shift.id}/signups'
        response = self.client.post(url, json={'role_type': 'VERIFIER'}, headers=self.volunteer_headers('fran'))
        assert response.status_code == 201
        payload = response.get_json()['data']
        assert payload['signup']['status'] == 'CONFIRMED'
        assert payload['counts']['confirmed'] == 1
        assert payload['counts']['slots_remaining'] == 5

        duplicate = self.client.post(url, json={'role_type': 'VERIFIER'}, headers=self.volunteer_headers('fran'))
        assert duplicate.status_code == 409
        assert duplicate.get_json()['errors']['code'] == 'DUPLICATE_SIGNUP'

        mine = self.client.get('/api/v2/signups/mine', headers=self.volunteer_headers('fran'))
        assert [s['shift_id'] for s in mine.get_json()['data']] == [self.shift.id]

        signup_id = payload['signup']['id']
        cancelled = self.client.delete(f'/api/v2/signups/{signup_id}', headers=self.volunteer_headers('fran'))
        assert cancelled.status_code == 200
        assert cancelled.get_json()['data']['status'] == 'DECLINED'

    def test_unqualified_signup(self):
        response = self.client.post(
            f'/api/v2/shifts/{self.shift.id}/signups',
            json={'role_type': 'DISPATCHER'},
            headers=self.volunteer_headers('fran'),
        )
        assert response.status_code == 403
        assert response.get_json()['errors'] == {'code': 'UNQUALIFIED', 'role': 'DISPATCHER'}

    def test_volunteer_cannot_confirm_through_patch(self):
        signup = create_signup(self.shift.id, self.seed.users['fran'].id, 'VERIFIER')
        response = self.client.patch(
            f'/api/v2/signups/{signup.id}', json={'status': 'NO_SHOW'}, headers=self.volunteer_headers('fran')
        )
        assert response.status_code == 403

        response = self.client.patch(
            f'/api/v2/signups/{signup.id}', json={'status': 'NO_SHOW'}, headers=self.coordinator_headers
        )
        assert response.status_code == 200
        assert response.get_json()['data']['status'] == 'NO_SHOW'

    def test_shifts_of_other_organizations_are_hidden(self):
        other = create_organization('Other Coalition', 'other')
        zone = create_zone(other.id, 'Chatham-1', 'Chatham')
        response = self.client.post(
            '/api/v2/shifts',
            json={'zone_id': zone.id, 'date': MONDAY, 'start_time': '06:00', 'end_time': '10:00'},
            headers=self.coordinator_headers,
        )
        assert response.status_code == 404

    def test_coordinator_creates_and_publishes_shift(self):
        response = self.client.post(
            '/api/v2/shifts',
            json={
                'zone_id': self.seed.zones['Wake-1'].id,
                'date': MONDAY,
                'start_time': '14:00',
                'end_time': '18:00',
                'min_volunteers': 2,
                'ideal_volunteers': 3,
                'max_volunteers': 5,
            },
            headers=self.coordinator_headers,
        )
        assert response.status_code == 201
        shift = response.get_json()['data']
        assert shift['status'] == 'DRAFT'
        assert shift['duration_hours'] == 4

        published = self.client.post(f"/api/v2/shifts/{shift['id']}/publish", headers=self.coordinator_headers)
        assert published.get_json()['data']['status'] == 'PUBLISHED'

    def test_shift_capacity_must_be_ordered(self):
        response = self.client.post(
            '/api/v2/shifts',
            json={
                'zone_id': self.seed.zones['Wake-1'].id,
                'date': MONDAY,
                'start_time': '14:00',
                'end_time': '18:00',
                'min_volunteers': 4,
                'ideal_volunteers': 2,
                'max_volunteers': 6,
            },
            headers=self.coordinator_headers,
        )
        assert response.status_code == 400

    def test_dispatcher_routes_require_coordinator(self):
        self.county_mode()
        body = {'user_id': self.seed.users['dana'].id, 'scope': 'Durham', 'date': MONDAY,
                'start_time': '06:00', 'end_time': '10:00'}
        response = self.client.post('/api/v2/dispatcher-assignments', json=body, headers=self.volunteer_headers('dana'))
        assert response.status_code == 403
        assert response.get_json()['errors']['code'] == 'PERMISSION_DENIED'

        response = self.client.post('/api/v2/dispatcher-assignments', json=body, headers=self.coordinator_headers)
        assert response.status_code == 201
        assert response.get_json()['data']['scope'] == 'Durham'

        listing = self.client.get(
            f'/api/v2/dispatcher-assignments?start_date={MONDAY}&end_date={MONDAY}',
            headers=self.volunteer_headers('dana'),
        )
        assert len(listing.get_json()['data']) == 1

    def test_dispatcher_conflict_with_signup(self):
        self.county_mode()
        create_signup(self.shift.id, self.seed.users['dana'].id, 'VERIFIER')
        response = self.client.post(
            '/api/v2/dispatcher-assignments',
            json={'user_id': self.seed.users['dana'].id, 'scope': 'Durham', 'date': MONDAY,
                  'start_time': '11:00', 'end_time': '15:00'},
            headers=self.coordinator_headers,
        )
        assert response.status_code == 409
        errors = response.get_json()['errors']
        assert errors['code'] == 'TIME_CONFLICT'
        assert errors['conflicts'][0]['kind'] == 'signup'

    def test_bulk_assignment(self):
        self.county_mode()
        body = {'user_id': self.seed.users['dana'].id, 'date': MONDAY, 'start_time': '06:00', 'end_time': '10:00'}
        first = self.client.post('/api/v2/dispatcher-assignments/bulk', json=body, headers=self.coordinator_headers)
        assert first.status_code == 201
        assert len(first.get_json()['data']['created']) == 2

        second = self.client.post('/api/v2/dispatcher-assignments/bulk', json=body, headers=self.coordinator_headers)
        assert second.status_code == 200
        assert sorted(second.get_json()['data']['skipped']) == ['Durham', 'Wake']

    def test_regional_lead_defaults(self):
        response = self.client.post(
            '/api/v2/regional-lead-assignments',
            json={'user_id': self.seed.users['gabe'].id, 'date': MONDAY},
            headers=self.coordinator_headers,
        )
        assert response.status_code == 201
        assert response.get_json()['data']['is_primary'] is True

        again = self.client.post(
            '/api/v2/regional-lead-assignments',
            json={'user_id': self.seed.users['hana'].id, 'date': MONDAY},
            headers=self.coordinator_headers,
        )
        assert again.status_code == 409
        assert again.get_json()['errors']['code'] == 'SLOT_OCCUPIED'

    def test_closure_blocks_signups(self):
        response = self.client.post(
            '/api/v2/date-overrides',
            json={'date': MONDAY, 'type': 'CLOSURE', 'reason': 'Ice storm'},
            headers=self.coordinator_headers,
        )
        assert response.status_code == 201

        signup = self.client.post(
            f'/api/v2/shifts/{self.shift.id}/signups', json={'role_type': 'VERIFIER'},
            headers=self.volunteer_headers('fran'),
        )
        assert signup.status_code == 409
        assert signup.get_json()['errors']['code'] == 'DATE_CLOSED'

        listing = self.client.get(
            f'/api/v2/date-overrides?start_date={MONDAY}&end_date={MONDAY}', headers=self.coordinator_headers
        )
        override_id = listing.get_json()['data'][0]['id']
        removed = self.client.delete(f'/api/v2/date-overrides/{override_id}', headers=self.coordinator_headers)
        assert removed.status_code == 200

    def test_unknown_override_type(self):
        response = self.client.post(
            '/api/v2/date-overrides', json={'date': MONDAY, 'type': 'HOLIDAY'}, headers=self.coordinator_headers
        )
        assert response.status_code == 400
        assert response.get_json()['errors']['field'] == 'type'

    def test_schedule_requires_dates(self):
        response = self.client.get('/api/v2/schedule', headers=self.coordinator_headers)
        assert response.status_code == 400

        response = self.client.get(
            f'/api/v2/schedule?start_date={MONDAY}&end_date={MONDAY}&county=Wake', headers=self.coordinator_headers
        )
        assert response.status_code == 200
        assert {entry['county'] for entry in response.get_json()['data']['schedule']} == {'Wake'}

    def test_organization_settings(self):
        response = self.client.put(
            '/api/v2/organization/settings',
            json={'dispatcher_scheduling_mode': 'county'},
            headers=self.coordinator_headers,
        )
        assert response.status_code == 200
        assert response.get_json()['data']['dispatcher_scheduling_mode'] == 'COUNTY'

        org = self.client.get('/api/v2/organization', headers=self.volunteer_headers('fran')).get_json()['data']
        assert org['counties'] == ['Durham', 'Wake']
        assert len(org['time_blocks']) == 4

    def test_time_blocks_must_not_overlap(self):
        response = self.client.put(
            '/api/v2/organization/time-blocks',
            json={'time_blocks': [{'start_hour': 6, 'end_hour': 12}, {'start_hour': 10, 'end_hour': 14}]},
            headers=self.coordinator_headers,
        )
        assert response.status_code == 400

    def test_qualification_management(self):
        fran = self.seed.users['fran']
        response = self.client.post(
            f'/api/v2/users/{fran.id}/qualifications', json={'role': 'zone_lead'}, headers=self.coordinator_headers
        )
        assert response.status_code == 201
        assert 'ZONE_LEAD' in response.get_json()['data']['roles']

        response = self.client.delete(
            f'/api/v2/users/{fran.id}/qualifications/ZONE_LEAD', headers=self.coordinator_headers
        )
        assert response.status_code == 200

    def test_performance_health(self):
        response = self.client.get('/api/v2/admin/performance/health', headers=self.coordinator_headers)
        assert response.status_code == 200
        assert response.get_json()['data']['database'] == 'ok'

        response = self.client.get('/api/v2/admin/performance/metrics', headers=self.volunteer_headers('fran'))
        assert response.status_code == 403

    def test_healthcheck(self):
        response = self.client.get('/healthcheck')
        assert response.status_code == 200
        assert response.get_json()['checks']['db']['ok'] is True
        assert response.headers.get('X-Request-ID')

    def test_assignments_reject_users_of_other_organizations(self):
        self.county_mode()
        _, olive = self.other_organization()
        response = self.client.post(
            '/api/v2/dispatcher-assignments',
            json={'user_id': olive.id, 'scope': 'Durham', 'date': MONDAY, 'start_time': '06:00', 'end_time': '10:00'},
            headers=self.coordinator_headers,
        )
        assert response.status_code == 404
        assert response.get_json()['errors']['code'] == 'NOT_FOUND'

        response = self.client.post(
            '/api/v2/regional-lead-assignments',
            json={'user_id': olive.id, 'date': MONDAY},
            headers=self.coordinator_headers,
        )
        assert response.status_code == 404

    def test_signups_of_other_organizations_are_not_found(self):
        signup = create_signup(self.shift.id, self.seed.users['fran'].id, 'VERIFIER')
        other_coordinator, _ = self.other_organization()
        headers = self.headers_for(other_coordinator)

        response = self.client.patch(f'/api/v2/signups/{signup.id}', json={'status': 'NO_SHOW'}, headers=headers)
        assert response.status_code == 404
        response = self.client.delete(f'/api/v2/signups/{signup.id}', headers=headers)
        assert response.status_code == 404
        assert get_signup(signup.id).status == 'CONFIRMED'

    def test_volunteer_claims_dispatcher_slot(self):
        self.county_mode()
        body = {'scope': 'Durham', 'date': MONDAY, 'start_time': '06:00', 'end_time': '10:00'}
        response = self.client.post('/api/v2/dispatcher-assignments/claim', json=body,
                                    headers=self.volunteer_headers('dana'))
        assert response.status_code == 201
        claimed = response.get_json()['data']
        assert claimed['user_id'] == self.seed.users['dana'].id
        assert claimed['is_backup'] is False

        taken = self.client.post('/api/v2/dispatcher-assignments/claim', json=body,
                                 headers=self.volunteer_headers('hana'))
        assert taken.status_code == 409
        assert taken.get_json()['errors']['code'] == 'SLOT_OCCUPIED'

        unqualified = self.client.post('/api/v2/dispatcher-assignments/claim', json=dict(body, scope='Wake'),
                                       headers=self.volunteer_headers('fran'))
        assert unqualified.status_code == 403
        assert unqualified.get_json()['errors']['code'] == 'UNQUALIFIED'

    def test_claims_follow_the_dispatcher_mode(self):
        body = {'scope': 'Durham', 'date': MONDAY, 'start_time': '06:00', 'end_time': '10:00'}
        response = self.client.post('/api/v2/dispatcher-assignments/claim', json=body,
                                    headers=self.volunteer_headers('dana'))
        assert response.status_code == 400
        assert response.get_json()['errors']['mode'] == 'ZONE'

    def test_regional_lead_self_signup(self):
        gabe = self.seed.users['gabe']
        response = self.client.post('/api/v2/regional-lead-assignments', json={'date': MONDAY},
                                    headers=self.volunteer_headers('gabe'))
        assert response.status_code == 201
        lead = response.get_json()['data']
        assert lead['user_id'] == gabe.id
        assert lead['is_primary'] is False

        for_someone_else = self.client.post(
            '/api/v2/regional-lead-assignments',
            json={'user_id': self.seed.users['hana'].id, 'date': MONDAY},
            headers=self.volunteer_headers('gabe'),
        )
        assert for_someone_else.status_code == 403
        assert for_someone_else.get_json()['errors']['code'] == 'PERMISSION_DENIED'

        unqualified = self.client.post('/api/v2/regional-lead-assignments', json={'date': MONDAY},
                                       headers=self.volunteer_headers('fran'))
        assert unqualified.status_code == 403
        assert unqualified.get_json()['errors']['code'] == 'UNQUALIFIED'

    def test_coordinator_adds_volunteer_as_confirmed(self):
        update_settings(self.seed.org.id, auto_confirm_rsvp=False)
        url = f'/api/v2/shifts/{self.shift.id}/add-volunteer'
        fran = self.seed.users['fran']

        forbidden = self.client.post(url, json={'user_id': fran.id}, headers=self.volunteer_headers('dana'))
        assert forbidden.status_code == 403

        response = self.client.post(url, json={'user_id': fran.id}, headers=self.coordinator_headers)
        assert response.status_code == 201
        payload = response.get_json()['data']
        assert payload['signup']['status'] == 'CONFIRMED'
        assert payload['signup']['role_type'] == 'VERIFIER'
        assert payload['counts']['confirmed'] == 1

        again = self.client.post(url, json={'user_id': fran.id}, headers=self.coordinator_headers)
        assert again.status_code == 409
        assert again.get_json()['errors']['code'] == 'DUPLICATE_SIGNUP'

        _, olive = self.other_organization()
        stranger = self.client.post(url, json={'user_id': olive.id}, headers=self.coordinator_headers)
        assert stranger.status_code == 404

    def test_coverage_requirements(self):
        wake = self.seed.zones['Wake-1']
        body = {'zone_id': wake.id, 'day_of_week': 0, 'slots': [{'start_hour': 6, 'end_hour': 10}]}
        forbidden = self.client.put('/api/v2/coverage/requirements', json=body, headers=self.volunteer_headers('fran'))
        assert forbidden.status_code == 403

        response = self.client.put('/api/v2/coverage/requirements', json=body, headers=self.coordinator_headers)
        assert response.status_code == 200
        saved = response.get_json()['data']
        assert [(row['start_hour'], row['min_volunteers'], row['needs_zone_lead']) for row in saved] == [(6, 2, True)]

        listing = self.client.get(f'/api/v2/coverage/requirements?zone_id={wake.id}',
                                  headers=self.volunteer_headers('fran'))
        assert len(listing.get_json()['data']) == 1

        week = self.client.get(f'/api/v2/coverage/week?date={MONDAY}', headers=self.volunteer_headers('fran'))
        monday = week.get_json()['data']['days'][0]
        slot = next(s for s in monday['slots'] if s['zone_name'] == 'Wake-1' and s['block'] == '06-10')
        assert slot['coverage'] == 'none'

        bad = self.client.put('/api/v2/coverage/requirements', json=dict(body, day_of_week=9),
                              headers=self.coordinator_headers)
        assert bad.status_code == 400

        defaults = self.client.post('/api/v2/coverage/requirements/defaults', headers=self.coordinator_headers)
        assert defaults.status_code == 201
        # Wake-1 Monday is already configured
        assert defaults.get_json()['data']['created'] == 3 * 6 * 4 - 4
