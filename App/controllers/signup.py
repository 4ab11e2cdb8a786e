from datetime import date
from typing import Dict, List, Optional
import logging

from App.controllers.guards import ensure_date_open, flush_or_raise, require, require_member
from App.database import db
from App.models import Organization, Shift, Signup, User
from App.models.shift import PUBLISHED
from App.services.data_transformation_service import ACTIVE_STATUS_VALUES, DataTransformationService
from App.utils.performance_monitor import write_transaction
from coverage_engine import (
    DuplicateSignup, RoleType, ShiftNotOpen, SignupStatus, SlotOccupied, ValidationFailed,
    check_capacity, ensure_no_conflict, initial_status, reactivates, require_eligible,
    slots_remaining, validate_transition,
)
from coverage_engine.conflicts import SIGNUP
from coverage_engine.domain import SIGNUP_ROLES

logger = logging.getLogger(__name__)


def _parse_role(role_type) -> RoleType:
    try:
        role = RoleType.parse(role_type)
    except ValueError as e:
        raise ValidationFailed(str(e), field='role_type') from e
    if role not in SIGNUP_ROLES:
        raise ValidationFailed(f"{role.value} is not a shift role", field='role_type')
    return role


def _active_signups(shift_id: int, exclude_id: Optional[int] = None) -> List[Signup]:
    query = Signup.query.filter(Signup.shift_id == shift_id, Signup.status.in_(ACTIVE_STATUS_VALUES))
    if exclude_id is not None:
        query = query.filter(Signup.id != exclude_id)
    return query.all()


def _validate_claim(shift: Shift, user: User, role: RoleType, exclude_signup_id: Optional[int] = None):
    """Every check a new or re-activated signup must pass, in reporting order."""
    if not shift.is_published:
        raise ShiftNotOpen(f"Shift {shift.id} is not open for signups", status=shift.status)

    ensure_date_open(shift.organization_id, shift.date, zone_id=shift.zone_id)
    require_eligible(user.role_slugs(), role, user.name)

    active = _active_signups(shift.id, exclude_id=exclude_signup_id)
    if any(s.user_id == user.id for s in active):
        raise DuplicateSignup("You are already signed up for this shift", shift_id=shift.id)

    holders = sum(1 for s in active if s.role_type == role.value)
    verifiers = sum(1 for s in active if s.role_type == RoleType.VERIFIER.value)
    check_capacity(role, holders, verifiers, shift.max_volunteers)

    exclude = [(SIGNUP, exclude_signup_id)] if exclude_signup_id else []
    ensure_no_conflict(
        shift.window(),
        DataTransformationService.user_commitments(user.id, shift.date),
        exclude=exclude,
        user_label=user.name,
    )


def _race_error(role: RoleType):
    if role.is_exclusive:
        return lambda: SlotOccupied(
            f"The {role.value.replace('_', ' ').lower()} position is already filled", role=role.value
        )
    return lambda: DuplicateSignup("You are already signed up for this shift")


def create_signup(shift_id: int, user_id: int, role_type, notes: Optional[str] = None,
                  confirmed: bool = False) -> Signup:
    """
    Sign a user up for a role on a published shift.

    ``confirmed`` starts the signup as CONFIRMED regardless of the
    organization's RSVP setting; coordinators adding a volunteer use it.

    Raises:
        NotFound, ShiftNotOpen, DateClosed, Unqualified, DuplicateSignup,
        SlotOccupied / CapacityExceeded, TimeConflict
    """
    role = _parse_role(role_type)
    with write_transaction('create_signup'):
        shift = require(Shift, shift_id, 'Shift', lock=True)
        user = require_member(user_id, shift.organization_id, lock=True)
        organization = db.session.get(Organization, shift.organization_id)

        _validate_claim(shift, user, role)

        status = SignupStatus.CONFIRMED if confirmed else initial_status(organization.auto_confirm_rsvp)
        signup = Signup(shift.id, user.id, role.value, status.value, notes)
        db.session.add(signup)
        flush_or_raise(_race_error(role))

    logger.info(
        'Signup created',
        extra={
            'event': 'signup_created',
            'signup_id': signup.id,
            'shift_id': shift_id,
            'user_id': user_id,
            'role_type': role.value,
            'status': signup.status,
        },
    )
    return signup


def transition_signup(signup_id: int, new_status, actor: User) -> Signup:
    """
    Move a signup through its lifecycle on behalf of ``actor``.

    Re-confirming a DECLINED signup re-runs the same checks as a new signup.
    """
    with write_transaction('transition_signup'):
        signup = require(Signup, signup_id, 'Signup', lock=True)
        shift = require(Shift, signup.shift_id, 'Shift', lock=True)
        is_coordinator = actor.is_coordinator() and actor.organization_id == shift.organization_id
        try:
            new = validate_transition(signup.status, new_status, is_coordinator, actor.id == signup.user_id)
        except ValueError as e:
            raise ValidationFailed(str(e), field='status') from e

        previous = signup.status
        if reactivates(previous, new):
            user = require(User, signup.user_id, 'User', lock=True)
            _validate_claim(shift, user, RoleType.parse(signup.role_type), exclude_signup_id=signup.id)

        signup.set_status(new)
        flush_or_raise(_race_error(RoleType.parse(signup.role_type)))

    logger.info(
        'Signup status changed',
        extra={
            'event': 'signup_transition',
            'signup_id': signup_id,
            'from_status': previous,
            'to_status': signup.status,
            'actor_id': actor.id,
        },
    )
    return signup


def cancel_signup(signup_id: int, actor: User) -> Signup:
    """Cancellation keeps the row; it is the DECLINED transition."""
    return transition_signup(signup_id, SignupStatus.DECLINED, actor)


def get_shift_counts(shift: Shift) -> Dict[str, object]:
    """Live counts for a shift, recomputed from its signups on every call."""
    counts = {status.value.lower(): 0 for status in SignupStatus}
    by_role = {role.value: 0 for role in SIGNUP_ROLES}
    for signup in shift.signups:
        counts[signup.status.lower()] += 1
        if signup.is_active:
            by_role[signup.role_type] += 1
    return {
        'confirmed': counts['confirmed'],
        'pending': counts['pending'],
        'declined': counts['declined'],
        'no_show': counts['no_show'],
        'active_by_role': by_role,
        'slots_remaining': slots_remaining(shift.max_volunteers, by_role[RoleType.VERIFIER.value]),
    }


def get_signup(signup_id: int) -> Optional[Signup]:
    return db.session.get(Signup, signup_id)


def list_shift_signups(shift_id: int, include_inactive: bool = False) -> List[Signup]:
    query = Signup.query.filter_by(shift_id=shift_id)
    if not include_inactive:
        query = query.filter(Signup.status.in_(ACTIVE_STATUS_VALUES))
    return query.order_by(Signup.created_at).all()


def list_user_signups(user_id: int, start: Optional[date] = None, end: Optional[date] = None) -> List[Signup]:
    query = Signup.query.join(Shift, Signup.shift_id == Shift.id).filter(Signup.user_id == user_id)
    if start is not None:
        query = query.filter(Shift.date >= start)
    if end is not None:
        query = query.filter(Shift.date <= end)
    return query.order_by(Shift.date, Shift.start_time).all()
