from datetime import date, datetime

import pytest

from coverage_engine import (
    CapacityExceeded,
    Commitment,
    InvalidTransition,
    PermissionDenied,
    RoleType,
    SignupStatus,
    SlotOccupied,
    TimeConflict,
    TimeWindow,
    Unqualified,
    check_capacity,
    ensure_no_conflict,
    find_conflicts,
    has_conflict,
    initial_status,
    is_eligible,
    reactivates,
    require_eligible,
    slots_remaining,
    validate_transition,
)
from coverage_engine.conflicts import DISPATCHER, SIGNUP
from coverage_engine.signup_states import can_transition

MONDAY = date(2025, 3, 10)


def window(start_hour, end_hour, day=MONDAY):
    return TimeWindow(
        date=day,
        start=datetime(day.year, day.month, day.day, start_hour),
        end=datetime(day.year, day.month, day.day, end_hour),
    )


class TestQualification:
    def test_role_must_be_in_qualified_set(self):
        assert is_eligible({"VERIFIER", "DISPATCHER"}, RoleType.DISPATCHER)
        assert is_eligible([RoleType.ZONE_LEAD], "zone_lead")
        assert not is_eligible({"VERIFIER"}, RoleType.ZONE_LEAD)
        assert not is_eligible(None, RoleType.VERIFIER)
        assert not is_eligible({"VERIFIER"}, None)

    def test_require_eligible_raises_unqualified(self):
        with pytest.raises(Unqualified) as exc:
            require_eligible({"VERIFIER"}, RoleType.REGIONAL_LEAD, "Dana")
        assert exc.value.to_dict() == {"code": "UNQUALIFIED", "role": "REGIONAL_LEAD"}
        assert exc.value.status_code == 403


class TestConflicts:
    def test_signup_blocks_overlapping_dispatcher_assignment(self):
        # confirmed verifier 09:00-13:00, dispatcher request 11:00-15:00
        existing = [Commitment(SIGNUP, 1, window(9, 13), label="Durham-1")]
        with pytest.raises(TimeConflict) as exc:
            ensure_no_conflict(window(11, 15), existing, user_label="U")
        payload = exc.value.to_dict()
        assert payload["code"] == "TIME_CONFLICT"
        assert payload["conflicts"][0]["kind"] == SIGNUP
        assert payload["conflicts"][0]["id"] == 1

    def test_touching_windows_do_not_conflict(self):
        existing = [Commitment(SIGNUP, 1, window(6, 10))]
        assert not has_conflict(window(10, 14), existing)

    def test_other_days_do_not_conflict(self):
        existing = [Commitment(DISPATCHER, 4, window(9, 13, date(2025, 3, 11)))]
        assert not has_conflict(window(9, 13), existing)

    def test_backups_conflict_like_primaries(self):
        existing = [Commitment(DISPATCHER, 2, window(6, 10), is_backup=True, scope="Wake")]
        assert has_conflict(window(8, 12), existing)

    def test_excluded_record_does_not_conflict_with_itself(self):
        existing = [Commitment(DISPATCHER, 7, window(6, 10)), Commitment(SIGNUP, 7, window(6, 10))]
        remaining = find_conflicts(window(6, 10), existing, exclude=[(DISPATCHER, 7)])
        assert [commitment.kind for commitment in remaining] == [SIGNUP]

    def test_window_must_have_positive_length(self):
        with pytest.raises(ValueError):
            window(10, 10)


class TestSignupStateMachine:
    def test_initial_status_follows_auto_confirm(self):
        assert initial_status(True) is SignupStatus.CONFIRMED
        assert initial_status(False) is SignupStatus.PENDING

    @pytest.mark.parametrize("current,new,allowed", [
        ("PENDING", "CONFIRMED", True),
        ("PENDING", "DECLINED", True),
        ("PENDING", "NO_SHOW", False),
        ("CONFIRMED", "DECLINED", True),
        ("CONFIRMED", "NO_SHOW", True),
        ("CONFIRMED", "PENDING", False),
        ("DECLINED", "CONFIRMED", True),
        ("DECLINED", "PENDING", False),
        ("NO_SHOW", "CONFIRMED", False),
        ("NO_SHOW", "DECLINED", False),
    ])
    def test_transition_table(self, current, new, allowed):
        assert can_transition(current, new) is allowed

    def test_coordinator_gets_invalid_transition_for_non_adjacent_move(self):
        with pytest.raises(InvalidTransition):
            validate_transition("NO_SHOW", "CONFIRMED", actor_is_coordinator=True, actor_owns_signup=False)

    def test_volunteer_may_only_decline_own_signup(self):
        assert validate_transition("CONFIRMED", "DECLINED", False, True) is SignupStatus.DECLINED
        with pytest.raises(PermissionDenied):
            validate_transition("PENDING", "CONFIRMED", False, True)
        with pytest.raises(PermissionDenied):
            validate_transition("PENDING", "DECLINED", False, False)

    def test_unknown_status_is_a_value_error(self):
        with pytest.raises(ValueError):
            validate_transition("PENDING", "MAYBE", True, False)

    def test_reactivation_detection(self):
        assert reactivates("DECLINED", "CONFIRMED")
        assert not reactivates("PENDING", "CONFIRMED")
        assert not reactivates("CONFIRMED", "DECLINED")


class TestCapacity:
    def test_verifiers_bounded_by_max(self):
        check_capacity(RoleType.VERIFIER, 0, 5, 6)
        with pytest.raises(CapacityExceeded) as exc:
            check_capacity(RoleType.VERIFIER, 0, 6, 6)
        assert not isinstance(exc.value, SlotOccupied)
        assert exc.value.to_dict()["max_volunteers"] == 6

    def test_exclusive_roles_hold_one_person(self):
        check_capacity(RoleType.DISPATCHER, 0, 6, 6)
        with pytest.raises(SlotOccupied):
            check_capacity(RoleType.ZONE_LEAD, 1, 0, 6)
        with pytest.raises(CapacityExceeded):
            check_capacity("dispatcher", 1, 0, None)

    def test_unbounded_shift_accepts_verifiers(self):
        check_capacity(RoleType.VERIFIER, 0, 100, None)

    def test_slots_remaining_never_negative(self):
        assert slots_remaining(6, 2) == 4
        assert slots_remaining(2, 5) == 0
        assert slots_remaining(None, 3) is None
