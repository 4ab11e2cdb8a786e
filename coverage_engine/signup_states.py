"""Signup lifecycle rules.

    PENDING   -> CONFIRMED | DECLINED
    CONFIRMED -> DECLINED | NO_SHOW
    DECLINED  -> CONFIRMED
    NO_SHOW   (terminal)

Coordinators may make any adjacent move. A volunteer may only move their own
signup to DECLINED.
"""
from __future__ import annotations

from typing import Dict, FrozenSet, Optional

from .domain import RoleType, SignupStatus
from .errors import CapacityExceeded, InvalidTransition, PermissionDenied, SlotOccupied

TRANSITIONS: Dict[SignupStatus, FrozenSet[SignupStatus]] = {
    SignupStatus.PENDING: frozenset({SignupStatus.CONFIRMED, SignupStatus.DECLINED}),
    SignupStatus.CONFIRMED: frozenset({SignupStatus.DECLINED, SignupStatus.NO_SHOW}),
    SignupStatus.DECLINED: frozenset({SignupStatus.CONFIRMED}),
    SignupStatus.NO_SHOW: frozenset(),
}


def initial_status(auto_confirm: bool) -> SignupStatus:
    return SignupStatus.CONFIRMED if auto_confirm else SignupStatus.PENDING


def can_transition(current, new) -> bool:
    return SignupStatus.parse(new) in TRANSITIONS[SignupStatus.parse(current)]


def validate_transition(
    current,
    new,
    actor_is_coordinator: bool,
    actor_owns_signup: bool,
) -> SignupStatus:
    """Check a requested status change and return the parsed target status."""
    current = SignupStatus.parse(current)
    new = SignupStatus.parse(new)

    if not actor_is_coordinator:
        if not actor_owns_signup:
            raise PermissionDenied("Volunteers may only change their own signups")
        if new is not SignupStatus.DECLINED:
            raise PermissionDenied("Volunteers may only cancel their own signups")

    if new not in TRANSITIONS[current]:
        raise InvalidTransition(
            f"Cannot move signup from {current.value} to {new.value}",
            current=current.value,
            requested=new.value,
        )
    return new


def reactivates(current, new) -> bool:
    """True when an inactive signup becomes active again (re-confirm)."""
    return not SignupStatus.parse(current).is_active and SignupStatus.parse(new).is_active


def slots_remaining(max_volunteers: Optional[int], active_count: int) -> Optional[int]:
    if max_volunteers is None:
        return None
    return max(0, max_volunteers - active_count)


def check_capacity(
    role,
    active_role_holders: int,
    active_verifiers: int,
    max_volunteers: Optional[int],
) -> None:
    """Raise when adding one more active signup of ``role`` would overfill the shift.

    DISPATCHER and ZONE_LEAD hold at most one active person. VERIFIER is bounded
    by ``max_volunteers`` over confirmed-or-pending verifier signups.
    """
    role = RoleType.parse(role)
    if role.is_exclusive:
        if active_role_holders >= 1:
            raise SlotOccupied(
                f"The {role.value.replace('_', ' ').lower()} position is already filled",
                role=role.value,
            )
        return
    if max_volunteers is not None and active_verifiers >= max_volunteers:
        raise CapacityExceeded(
            "This shift is full",
            role=role.value,
            max_volunteers=max_volunteers,
            active=active_verifiers,
        )
