from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional
import logging

from App.controllers.guards import ensure_date_open, flush_or_raise, require, require_member
from App.controllers.zone import get_counties
from App.database import db
from App.models import DispatcherAssignment, Organization, User
from App.services.data_transformation_service import DataTransformationService
from App.utils.performance_monitor import write_transaction
from coverage_engine import (
    REGION_SCOPE, RoleType, SchedulingError, SlotOccupied, TimeWindow, ValidationFailed,
    dispatcher_scopes, ensure_no_conflict, require_eligible,
)
from coverage_engine.conflicts import DISPATCHER

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('user_id', 'scope', 'date', 'start_time', 'end_time', 'is_backup', 'notes')


@dataclass
class BulkAssignmentResult:
    """Outcome of assigning one dispatcher to several counties.

    The operation is not atomic: ``created`` rows are committed even when
    other counties land in ``errors``.
    """

    created: List[DispatcherAssignment] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    errors: Dict[str, Dict[str, object]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self):
        return {
            'created': [assignment.to_dict() for assignment in self.created],
            'skipped': list(self.skipped),
            'errors': dict(self.errors),
        }


def _window(day: date, start_time: datetime, end_time: datetime) -> TimeWindow:
    if not isinstance(day, date) or not isinstance(start_time, datetime) or not isinstance(end_time, datetime):
        raise ValidationFailed("date, start_time and end_time are required")
    try:
        return TimeWindow(date=day, start=start_time, end=end_time)
    except ValueError as e:
        raise ValidationFailed(str(e)) from e


def allowed_scopes(organization: Organization) -> List[str]:
    """Scopes dispatchers can be assigned to under the organization's mode."""
    return dispatcher_scopes(organization.mode, get_counties(organization.id))


def _resolve_scope(organization: Organization, scope: Optional[str]) -> str:
    """``ALL`` in REGIONAL mode, one of the organization's counties in COUNTY mode.

    ZONE mode has no dispatcher scopes; dispatchers sign up for shifts instead.
    """
    mode = organization.mode
    allowed = allowed_scopes(organization)
    if not allowed:
        raise ValidationFailed(
            f"Dispatchers sign up for shifts in {mode.value} mode", field='scope', mode=mode.value
        )
    if not scope or not str(scope).strip():
        raise ValidationFailed("scope is required", field='scope')
    scope = str(scope).strip()
    if scope.upper() == REGION_SCOPE:
        scope = REGION_SCOPE
    if scope not in allowed:
        raise ValidationFailed(
            f"Scope {scope} is not available in {mode.value} mode",
            field='scope', mode=mode.value, allowed=allowed,
        )
    return scope


def _ensure_primary_free(organization_id, scope, window: TimeWindow, exclude_id=None):
    query = DispatcherAssignment.query.filter_by(
        organization_id=organization_id,
        scope=scope,
        date=window.date,
        start_time=window.start,
        end_time=window.end,
        is_backup=False,
    )
    if exclude_id is not None:
        query = query.filter(DispatcherAssignment.id != exclude_id)
    existing = query.first()
    if existing is not None:
        raise SlotOccupied(
            "Dispatcher already assigned to this time block",
            assignment_id=existing.id,
            scope=scope,
        )


def _slot_taken_error(scope):
    return lambda: SlotOccupied("Dispatcher already assigned to this time block", scope=scope)


def _insert_assignment(organization: Organization, user: User, scope: str, window: TimeWindow,
                       is_backup: bool, notes, created_by_id, conflict_exclude=()):
    ensure_date_open(organization.id, window.date, whole_day_only=True)
    require_eligible(user.role_slugs(), RoleType.DISPATCHER, user.name)
    if not is_backup:
        _ensure_primary_free(organization.id, scope, window)
    ensure_no_conflict(
        window,
        DataTransformationService.user_commitments(user.id, window.date),
        exclude=conflict_exclude,
        user_label=user.name,
    )

    assignment = DispatcherAssignment(
        organization.id, user.id, scope, window.date, window.start, window.end,
        is_backup=is_backup, notes=notes, created_by_id=created_by_id,
    )
    db.session.add(assignment)
    flush_or_raise(_slot_taken_error(scope))
    return assignment


def create_dispatcher_assignment(organization_id: int, user_id: int, scope: str, date: date,
                                 start_time: datetime, end_time: datetime, is_backup: bool = False,
                                 notes: Optional[str] = None,
                                 created_by_id: Optional[int] = None) -> DispatcherAssignment:
    """
    Assign a dispatcher to a scope (county or ``ALL``) for a window.

    Raises:
        NotFound, ValidationFailed, DateClosed, Unqualified, SlotOccupied, TimeConflict
    """
    with write_transaction('create_dispatcher_assignment'):
        organization = require(Organization, organization_id, 'Organization')
        user = require_member(user_id, organization.id, lock=True)
        resolved_scope = _resolve_scope(organization, scope)
        window = _window(date, start_time, end_time)
        assignment = _insert_assignment(
            organization, user, resolved_scope, window, is_backup, notes, created_by_id
        )

    logger.info(
        'Dispatcher assigned',
        extra={
            'event': 'dispatcher_assigned',
            'assignment_id': assignment.id,
            'user_id': user_id,
            'scope': resolved_scope,
            'date': window.date.isoformat(),
            'is_backup': is_backup,
        },
    )
    return assignment


def update_dispatcher_assignment(assignment_id: int, **fields) -> DispatcherAssignment:
    """
    Change an assignment.

    Notes and demotion to backup change freely. A new user is re-checked for
    qualification and conflicts; a new scope, date or window is re-checked
    for slot occupancy and conflicts; promotion to primary is checked like
    ``set_dispatcher_primary``.
    """
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationFailed(f"Unknown fields: {', '.join(sorted(unknown))}")

    with write_transaction('update_dispatcher_assignment'):
        assignment = require(DispatcherAssignment, assignment_id, 'Dispatcher assignment', lock=True)
        organization = require(Organization, assignment.organization_id, 'Organization')

        user_id = fields.get('user_id', assignment.user_id)
        scope = assignment.scope
        if {'scope', 'date', 'start_time', 'end_time'} & set(fields):
            scope = _resolve_scope(organization, fields.get('scope', assignment.scope))
        window = _window(
            fields.get('date', assignment.date),
            fields.get('start_time', assignment.start_time),
            fields.get('end_time', assignment.end_time),
        )
        is_backup = bool(fields.get('is_backup', assignment.is_backup))

        user_changed = user_id != assignment.user_id
        slot_changed = scope != assignment.scope or not window.same_slot(assignment.window())
        promoted = assignment.is_backup and not is_backup

        user = require_member(user_id, organization.id, lock=True)
        if user_changed:
            require_eligible(user.role_slugs(), RoleType.DISPATCHER, user.name)
        if slot_changed and window.date != assignment.date:
            ensure_date_open(organization.id, window.date, whole_day_only=True)
        if not is_backup and (slot_changed or promoted):
            _ensure_primary_free(organization.id, scope, window, exclude_id=assignment.id)
        if user_changed or slot_changed:
            ensure_no_conflict(
                window,
                DataTransformationService.user_commitments(user.id, window.date),
                exclude=[(DISPATCHER, assignment.id)],
                user_label=user.name,
            )

        assignment.user_id = user.id
        assignment.scope = scope
        assignment.date = window.date
        assignment.start_time = window.start
        assignment.end_time = window.end
        assignment.is_backup = is_backup
        if 'notes' in fields:
            assignment.notes = fields['notes']
        flush_or_raise(_slot_taken_error(scope))

    logger.info(
        'Dispatcher assignment updated',
        extra={
            'event': 'dispatcher_updated',
            'assignment_id': assignment_id,
            'fields': sorted(fields),
        },
    )
    return assignment


def delete_dispatcher_assignment(assignment_id: int) -> Dict[str, object]:
    """Remove an assignment. Backups are never promoted automatically."""
    with write_transaction('delete_dispatcher_assignment'):
        assignment = require(DispatcherAssignment, assignment_id, 'Dispatcher assignment', lock=True)
        snapshot = assignment.to_dict()
        db.session.delete(assignment)

    logger.info(
        'Dispatcher assignment deleted',
        extra={'event': 'dispatcher_deleted', 'assignment_id': assignment_id, 'was_backup': snapshot['is_backup']},
    )
    return snapshot


def set_dispatcher_primary(assignment_id: int) -> DispatcherAssignment:
    """Promote a backup; only the remaining primaries for the slot are checked."""
    with write_transaction('set_dispatcher_primary'):
        assignment = require(DispatcherAssignment, assignment_id, 'Dispatcher assignment', lock=True)
        if assignment.is_backup:
            _ensure_primary_free(
                assignment.organization_id, assignment.scope, assignment.window(), exclude_id=assignment.id
            )
            assignment.is_backup = False
            flush_or_raise(_slot_taken_error(assignment.scope))

    logger.info(
        'Dispatcher promoted to primary',
        extra={'event': 'dispatcher_promoted', 'assignment_id': assignment_id},
    )
    return assignment


def bulk_assign_across_counties(organization_id: int, user_id: int, date: date, start_time: datetime,
                                end_time: datetime, counties: Optional[Iterable[str]] = None,
                                is_backup: bool = False, notes: Optional[str] = None,
                                created_by_id: Optional[int] = None) -> BulkAssignmentResult:
    """
    Assign one dispatcher to every county (or the listed ones) for a window.

    Each county commits on its own. Counties where the user already holds this
    exact window are skipped as successes; any other failure is collected per
    county and earlier counties stay assigned.

    Only the rows this call is building count as the same commitment: the
    user's assignments for the identical window with the same ``is_backup``
    flag in sibling counties are exempt from the conflict check. A primary
    elsewhere never excuses a backup here, and the reverse.
    """
    organization = require(Organization, organization_id, 'Organization')
    available = allowed_scopes(organization)
    if not available:
        raise ValidationFailed(
            f"Dispatchers sign up for shifts in {organization.mode.value} mode",
            field='scope', mode=organization.mode.value,
        )
    targets = list(counties) if counties is not None else available
    result = BulkAssignmentResult()

    for county in targets:
        try:
            with write_transaction('bulk_assign_dispatcher'):
                user = require_member(user_id, organization.id, lock=True)
                scope = _resolve_scope(organization, county)
                window = _window(date, start_time, end_time)

                own_same_window = DispatcherAssignment.query.filter_by(
                    organization_id=organization.id,
                    user_id=user.id,
                    date=window.date,
                    start_time=window.start,
                    end_time=window.end,
                ).all()
                if any(existing.scope == scope for existing in own_same_window):
                    result.skipped.append(county)
                    continue

                siblings = [existing for existing in own_same_window if existing.is_backup == is_backup]
                assignment = _insert_assignment(
                    organization, user, scope, window, is_backup, notes, created_by_id,
                    conflict_exclude=[(DISPATCHER, existing.id) for existing in siblings],
                )
            result.created.append(assignment)
        except SchedulingError as e:
            result.errors[county] = {'message': e.message, **e.to_dict()}

    logger.info(
        'Bulk dispatcher assignment finished',
        extra={
            'event': 'dispatcher_bulk_assigned',
            'user_id': user_id,
            'date': str(date),
            'created': len(result.created),
            'skipped': result.skipped,
            'failed': sorted(result.errors),
        },
    )
    return result


def list_dispatcher_assignments(organization_id: int, start: date, end: date,
                                scope: Optional[str] = None) -> List[DispatcherAssignment]:
    query = DispatcherAssignment.query.filter(
        DispatcherAssignment.organization_id == organization_id,
        DispatcherAssignment.date >= start,
        DispatcherAssignment.date <= end,
    )
    if scope:
        query = query.filter(DispatcherAssignment.scope == scope)
    return query.order_by(
        DispatcherAssignment.date, DispatcherAssignment.start_time, DispatcherAssignment.is_backup
    ).all()


def get_dispatcher_assignment(assignment_id: int) -> Optional[DispatcherAssignment]:
    return db.session.get(DispatcherAssignment, assignment_id)
