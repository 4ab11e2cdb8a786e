"""
Dispatcher and regional lead assignment tests, including the coordinator
views built from them.
"""
from datetime import date
import itertools
import random

import pytest

from App.controllers.date_override import create_date_override
from App.controllers.dispatcher_assignment import (
    bulk_assign_across_counties,
    create_dispatcher_assignment,
    delete_dispatcher_assignment,
    get_dispatcher_assignment,
    list_dispatcher_assignments,
    set_dispatcher_primary,
    update_dispatcher_assignment,
)
from App.controllers.organization import create_organization, update_settings
from App.controllers.qualification import grant_qualification
from App.controllers.regional_lead_assignment import (
    create_regional_lead_assignment,
    list_regional_lead_assignments,
    set_regional_lead_primary,
    update_regional_lead_assignment,
)
from App.controllers.signup import create_signup
from App.controllers.user import create_user
from App.services import CoverageService, DataTransformationService
from App.utils.time_utils import local_window
from coverage_engine import (
    DateClosed,
    NotFound,
    RoleType,
    SchedulingError,
    SlotOccupied,
    TimeConflict,
    Unqualified,
    ValidationFailed,
)

TZ = 'America/New_York'
MONDAY = date(2031, 3, 10)
TUESDAY = date(2031, 3, 11)


def window(start_hour, end_hour, day=MONDAY):
    return local_window(day, start_hour, end_hour, TZ)


def outsider(*roles):
    """A qualified member of a second organization."""
    other = create_organization('Other Coalition', 'other')
    user = create_user('outsider', 'outsiderpass', other.id, name='Olive')
    for role in roles:
        grant_qualification(user.id, role)
    return user


class TestDispatcherAssignments:

    @pytest.fixture(autouse=True)
    def setup(self, seed):
        self.org = update_settings(seed.org.id, dispatcher_scheduling_mode='COUNTY')
        self.dana = seed.users['dana']
        self.hana = seed.users['hana']
        self.fran = seed.users['fran']

    def assign(self, user, scope='Durham', hours=(6, 10), day=MONDAY, **kwargs):
        start, end = window(*hours, day=day)
        return create_dispatcher_assignment(self.org.id, user.id, scope, day, start, end, **kwargs)

    def test_verifier_signup_blocks_overlapping_dispatch(self, seed, make_shift):
        shift = make_shift(seed.zones['Durham-1'], start_hour=9, end_hour=13)
        signup = create_signup(shift.id, self.dana.id, 'VERIFIER')

        with pytest.raises(TimeConflict) as exc:
            self.assign(self.dana, hours=(11, 15))
        conflict = exc.value.to_dict()['conflicts'][0]
        assert conflict['kind'] == 'signup'
        assert conflict['id'] == signup.id

    def test_dispatch_blocks_overlapping_signup(self, seed, make_shift):
        self.assign(self.dana, hours=(11, 15))
        shift = make_shift(seed.zones['Durham-1'], start_hour=9, end_hour=13)
        with pytest.raises(TimeConflict):
            create_signup(shift.id, self.dana.id, 'VERIFIER')

    def test_one_primary_per_scope_and_window(self):
        first = self.assign(self.dana)
        with pytest.raises(SlotOccupied) as exc:
            self.assign(self.hana)
        assert exc.value.message == "Dispatcher already assigned to this time block"
        assert exc.value.to_dict()['assignment_id'] == first.id

        backup = self.assign(self.hana, is_backup=True)
        assert backup.is_backup is True
        # a different county or window is a different slot
        assert self.assign(self.hana, scope='Wake', hours=(10, 14)).id is not None

    def test_backup_promotion(self):
        primary = self.assign(self.dana)
        backup = self.assign(self.hana, is_backup=True)
        with pytest.raises(SlotOccupied):
            set_dispatcher_primary(backup.id)

        delete_dispatcher_assignment(primary.id)
        # deleting a primary never promotes anyone on its own
        assert get_dispatcher_assignment(backup.id).is_backup is True
        assert set_dispatcher_primary(backup.id).is_backup is False

    def test_county_mode_takes_only_known_counties(self):
        assert self.assign(self.dana, scope='Wake').scope == 'Wake'

        with pytest.raises(ValidationFailed) as exc:
            self.assign(self.hana, scope='Orange')
        assert exc.value.to_dict()['allowed'] == ['Durham', 'Wake']
        with pytest.raises(ValidationFailed):
            self.assign(self.hana, scope='ALL')
        with pytest.raises(ValidationFailed):
            self.assign(self.hana, scope='  ')

    def test_regional_mode_takes_only_the_region(self):
        update_settings(self.org.id, dispatcher_scheduling_mode='REGIONAL')
        assignment = self.assign(self.dana, scope='all')
        assert assignment.scope == 'ALL'
        assert assignment.to_dict()['county'] is None

        with pytest.raises(ValidationFailed) as exc:
            self.assign(self.hana, scope='Durham')
        assert exc.value.to_dict()['mode'] == 'REGIONAL'

    def test_zone_mode_has_no_dispatcher_scopes(self):
        update_settings(self.org.id, dispatcher_scheduling_mode='ZONE')
        for scope in ('Durham', 'ALL'):
            with pytest.raises(ValidationFailed) as exc:
                self.assign(self.dana, scope=scope)
            assert exc.value.to_dict()['mode'] == 'ZONE'
        start, end = window(6, 10)
        with pytest.raises(ValidationFailed):
            bulk_assign_across_counties(self.org.id, self.dana.id, MONDAY, start, end)
        assert list_dispatcher_assignments(self.org.id, MONDAY, MONDAY) == []

    def test_update_keeps_scope_within_the_mode(self):
        assignment = self.assign(self.dana)
        with pytest.raises(ValidationFailed):
            update_dispatcher_assignment(assignment.id, scope='ALL')

        update_settings(self.org.id, dispatcher_scheduling_mode='REGIONAL')
        start, end = window(6, 10, day=TUESDAY)
        with pytest.raises(ValidationFailed):
            update_dispatcher_assignment(assignment.id, date=TUESDAY, start_time=start, end_time=end)
        moved = update_dispatcher_assignment(
            assignment.id, scope='ALL', date=TUESDAY, start_time=start, end_time=end
        )
        assert moved.scope == 'ALL'

    def test_users_of_other_organizations_are_not_found(self):
        stranger = outsider(RoleType.DISPATCHER)
        with pytest.raises(NotFound):
            self.assign(stranger)

        assignment = self.assign(self.dana)
        with pytest.raises(NotFound):
            update_dispatcher_assignment(assignment.id, user_id=stranger.id)
        assert get_dispatcher_assignment(assignment.id).user_id == self.dana.id

        start, end = window(10, 14)
        result = bulk_assign_across_counties(self.org.id, stranger.id, MONDAY, start, end)
        assert result.created == []
        assert {county: error['code'] for county, error in result.errors.items()} == {
            'Durham': 'NOT_FOUND', 'Wake': 'NOT_FOUND',
        }

    def test_dispatcher_qualification_required(self):
        with pytest.raises(Unqualified):
            self.assign(self.fran)

    def test_global_closure_blocks_assignment(self):
        create_date_override(self.org.id, MONDAY, 'CLOSURE', reason='Ice storm')
        with pytest.raises(DateClosed):
            self.assign(self.dana)

    def test_zone_closure_does_not_block_county_dispatch(self, seed):
        create_date_override(self.org.id, MONDAY, 'CLOSURE', zone_id=seed.zones['Durham-1'].id)
        assert self.assign(self.dana).id is not None

    def test_invalid_window(self):
        start, end = window(10, 14)
        with pytest.raises(ValidationFailed):
            create_dispatcher_assignment(self.org.id, self.dana.id, 'Durham', MONDAY, end, start)

    def test_update_rechecks_slot_and_conflicts(self):
        primary = self.assign(self.dana)
        other = self.assign(self.hana, hours=(10, 14))

        start, end = window(6, 10)
        with pytest.raises(SlotOccupied):
            update_dispatcher_assignment(other.id, start_time=start, end_time=end)

        updated = update_dispatcher_assignment(other.id, notes='Bring radio', is_backup=True)
        assert updated.notes == 'Bring radio'
        assert updated.is_backup is True

        with pytest.raises(Unqualified):
            update_dispatcher_assignment(primary.id, user_id=self.fran.id)
        with pytest.raises(ValidationFailed):
            update_dispatcher_assignment(primary.id, color='blue')

    def test_moving_to_another_day_carries_the_assignment(self):
        assignment = self.assign(self.dana)
        start, end = window(6, 10, day=TUESDAY)
        moved = update_dispatcher_assignment(assignment.id, date=TUESDAY, start_time=start, end_time=end)
        assert moved.date == TUESDAY
        assert list_dispatcher_assignments(self.org.id, MONDAY, MONDAY) == []
        assert len(list_dispatcher_assignments(self.org.id, TUESDAY, TUESDAY, scope='Durham')) == 1


class TestBulkAssignment:

    @pytest.fixture(autouse=True)
    def setup(self, seed):
        self.org = update_settings(seed.org.id, dispatcher_scheduling_mode='COUNTY')
        self.dana = seed.users['dana']
        self.hana = seed.users['hana']
        self.start, self.end = window(6, 10)

    def bulk(self, user, **kwargs):
        return bulk_assign_across_counties(self.org.id, user.id, MONDAY, self.start, self.end, **kwargs)

    def test_assigns_every_county(self):
        result = self.bulk(self.dana)
        assert result.ok
        assert sorted(a.scope for a in result.created) == ['Durham', 'Wake']
        assert result.skipped == []

    def test_repeat_is_skipped_not_duplicated(self):
        self.bulk(self.dana)
        again = self.bulk(self.dana)
        assert again.ok
        assert again.created == []
        assert sorted(again.skipped) == ['Durham', 'Wake']
        assert len(list_dispatcher_assignments(self.org.id, MONDAY, MONDAY)) == 2

    def test_partial_failure_keeps_earlier_counties(self):
        create_dispatcher_assignment(self.org.id, self.hana.id, 'Wake', MONDAY, self.start, self.end)

        result = self.bulk(self.dana)
        assert not result.ok
        assert [a.scope for a in result.created] == ['Durham']
        assert result.errors['Wake']['code'] == 'SLOT_OCCUPIED'
        scopes = {a.scope: a.user_id for a in list_dispatcher_assignments(self.org.id, MONDAY, MONDAY)}
        assert scopes == {'Durham': self.dana.id, 'Wake': self.hana.id}

    def test_explicit_county_list_and_unknown_county(self):
        result = self.bulk(self.dana, counties=['Wake', 'Orange'])
        assert [a.scope for a in result.created] == ['Wake']
        assert result.errors['Orange']['code'] == 'VALIDATION_FAILED'

    def test_backups_in_every_county(self):
        self.bulk(self.hana)
        result = self.bulk(self.dana, is_backup=True)
        assert result.ok
        assert all(a.is_backup for a in result.created)

    def test_backup_elsewhere_does_not_excuse_a_primary(self):
        create_dispatcher_assignment(
            self.org.id, self.dana.id, 'Durham', MONDAY, self.start, self.end, is_backup=True
        )
        result = self.bulk(self.dana, counties=['Wake'])
        assert result.created == []
        assert result.errors['Wake']['code'] == 'TIME_CONFLICT'

    def test_regional_mode_targets_the_region(self):
        update_settings(self.org.id, dispatcher_scheduling_mode='REGIONAL')
        result = self.bulk(self.dana)
        assert result.ok
        assert [a.scope for a in result.created] == ['ALL']


class TestRegionalLeads:

    @pytest.fixture(autouse=True)
    def setup(self, seed):
        self.org = seed.org
        self.gabe = seed.users['gabe']
        self.hana = seed.users['hana']
        self.fran = seed.users['fran']

    def test_default_window_spans_time_blocks(self):
        lead = create_regional_lead_assignment(self.org.id, self.gabe.id, MONDAY)
        start, end = window(6, 22)
        assert (lead.start_time, lead.end_time) == (start, end)
        assert lead.is_primary is True

    def test_one_primary_per_date(self):
        create_regional_lead_assignment(self.org.id, self.gabe.id, MONDAY)
        with pytest.raises(SlotOccupied) as exc:
            create_regional_lead_assignment(self.org.id, self.hana.id, MONDAY)
        assert exc.value.message == "A primary regional lead is already assigned for 2031-03-10"

        backup = create_regional_lead_assignment(self.org.id, self.hana.id, MONDAY, is_primary=False)
        with pytest.raises(SlotOccupied):
            set_regional_lead_primary(backup.id)
        assert [lead.is_primary for lead in list_regional_lead_assignments(self.org.id, MONDAY, MONDAY)] == [
            True, False
        ]

    def test_requires_regional_lead_qualification(self):
        with pytest.raises(Unqualified):
            create_regional_lead_assignment(self.org.id, self.fran.id, MONDAY)

    def test_lead_window_conflicts_with_signups(self, seed, make_shift):
        create_regional_lead_assignment(self.org.id, self.gabe.id, MONDAY)
        shift = make_shift(seed.zones['Wake-1'], start_hour=14, end_hour=18)
        with pytest.raises(TimeConflict):
            create_signup(shift.id, self.gabe.id, 'VERIFIER')

    def test_custom_window_must_be_complete(self):
        start, _ = window(6, 10)
        with pytest.raises(ValidationFailed):
            create_regional_lead_assignment(self.org.id, self.gabe.id, MONDAY, start_time=start)

    def test_changing_the_date_resets_the_window(self):
        start, end = window(8, 12)
        lead = create_regional_lead_assignment(self.org.id, self.gabe.id, MONDAY, start_time=start, end_time=end)
        moved = update_regional_lead_assignment(lead.id, date=TUESDAY)
        assert (moved.start_time, moved.end_time) == window(6, 22, day=TUESDAY)

    def test_users_of_other_organizations_are_not_found(self):
        stranger = outsider(RoleType.REGIONAL_LEAD)
        with pytest.raises(NotFound):
            create_regional_lead_assignment(self.org.id, stranger.id, MONDAY)

        lead = create_regional_lead_assignment(self.org.id, self.gabe.id, MONDAY)
        with pytest.raises(NotFound):
            update_regional_lead_assignment(lead.id, user_id=stranger.id)
        assert [row.user_id for row in list_regional_lead_assignments(self.org.id, MONDAY, MONDAY)] == [
            self.gabe.id
        ]

    def test_global_closure_blocks_leads(self):
        create_date_override(self.org.id, MONDAY, 'CLOSURE', reason='Holiday')
        with pytest.raises(DateClosed):
            create_regional_lead_assignment(self.org.id, self.gabe.id, MONDAY)


class TestCoordinatorCoverage:

    @pytest.fixture(autouse=True)
    def setup(self, seed, make_shift):
        self.seed = seed
        self.org = seed.org
        self.service = CoverageService()
        update_settings(self.org.id, dispatcher_scheduling_mode='COUNTY')
        start, end = window(6, 10)
        create_dispatcher_assignment(self.org.id, seed.users['dana'].id, 'Durham', MONDAY, start, end)
        create_regional_lead_assignment(self.org.id, seed.users['gabe'].id, MONDAY)
        self.shift = make_shift(seed.zones['Durham-1'], requires_zone_lead=True)

    def monday(self):
        week = self.service.get_week_coverage(self.org.id, MONDAY, today=MONDAY)
        return week, week['coordinator_coverage'][0]

    def test_zone_mode_has_no_dispatcher_scopes(self):
        update_settings(self.org.id, dispatcher_scheduling_mode='ZONE')
        week, monday = self.monday()
        assert monday['dispatchers'] == []
        assert monday['regional_lead']['coverage'] == 'full'
        assert monday['regional_lead']['primary']['user_id'] == self.seed.users['gabe'].id
        assert week['stats']['coordinator_slots'] == 0

    def test_county_mode_lists_each_county_block(self):
        week, monday = self.monday()
        assert monday['total_count'] == 2 * 4
        assert monday['filled_count'] == 1
        durham = next(d for d in monday['dispatchers'] if d['scope'] == 'Durham' and d['block'] == '06-10')
        assert durham['primary']['user_id'] == self.seed.users['dana'].id
        assert week['stats']['coordinator_slots'] == 7 * 8

    def test_regional_mode_uses_a_single_scope(self):
        update_settings(self.org.id, dispatcher_scheduling_mode='REGIONAL')
        _, monday = self.monday()
        assert {d['scope'] for d in monday['dispatchers']} == {'ALL'}
        assert monday['filled_count'] == 0

    def test_schedule_groups_cells_by_county(self):
        create_signup(self.shift.id, self.seed.users['eli'].id, 'ZONE_LEAD')
        schedule = self.service.get_schedule(self.org.id, MONDAY, MONDAY, county='Durham')

        assert [entry['block'] for entry in schedule['schedule']] == ['06-10', '10-14', '14-18', '18-22']
        morning = schedule['schedule'][0]
        assert morning['county'] == 'Durham'
        assert morning['dispatcher']['user_id'] == self.seed.users['dana'].id
        assert morning['dispatcher_coverage'] == 'full'
        assert [zone['zone_name'] for zone in morning['zones']] == ['Durham-1', 'Durham-2']
        durham_one = morning['zones'][0]
        assert durham_one['coverage'] == 'partial'
        assert durham_one['gaps'] == ['2 below minimum']
        assert durham_one['zone_leads'][0]['user_id'] == self.seed.users['eli'].id
        assert morning['gaps']['zones_needing_leads'] == []
        assert len(schedule['regional_leads']) == 1
        assert len(schedule['county_dispatchers']) == 1

    def test_schedule_range_validation(self):
        with pytest.raises(ValidationFailed):
            self.service.get_schedule(self.org.id, TUESDAY, MONDAY)
        with pytest.raises(ValidationFailed):
            self.service.get_schedule(self.org.id, MONDAY, date(2031, 6, 30))


class TestMixedCommitments:

    @pytest.fixture(autouse=True)
    def setup(self, seed):
        self.org = update_settings(seed.org.id, dispatcher_scheduling_mode='COUNTY')
        self.hana = seed.users['hana']

    @pytest.mark.parametrize('rng_seed', [3, 17, 2031])
    def test_random_claims_never_leave_overlapping_commitments(self, seed, make_shift, rng_seed):
        rng = random.Random(rng_seed)

        def random_hours():
            start = rng.randint(6, 19)
            return start, min(start + rng.randint(1, 4), 22)

        zones = list(seed.zones.values())
        shifts = []
        for _ in range(10):
            start_hour, end_hour = random_hours()
            shifts.append(make_shift(rng.choice(zones), start_hour=start_hour, end_hour=end_hour))

        accepted, rejected = 0, 0
        for _ in range(50):
            kind = rng.choice(('signup', 'dispatcher', 'regional_lead'))
            start, end = window(*random_hours())
            try:
                if kind == 'signup':
                    create_signup(rng.choice(shifts).id, self.hana.id, 'VERIFIER')
                elif kind == 'dispatcher':
                    create_dispatcher_assignment(
                        self.org.id, self.hana.id, rng.choice(['Durham', 'Wake']), MONDAY, start, end,
                        is_backup=rng.random() < 0.5,
                    )
                else:
                    create_regional_lead_assignment(
                        self.org.id, self.hana.id, MONDAY, start, end, is_primary=rng.random() < 0.5
                    )
                accepted += 1
            except SchedulingError:
                rejected += 1

        commitments = DataTransformationService.user_commitments(self.hana.id, MONDAY)
        assert len(commitments) == accepted
        assert accepted and rejected
        for first, second in itertools.combinations(commitments, 2):
            assert not first.window.overlaps(second.window), (first.label, second.label)
