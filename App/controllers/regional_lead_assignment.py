from datetime import date, datetime
from typing import Dict, List, Optional, Tuple
import logging

from App.controllers.guards import ensure_date_open, flush_or_raise, require, require_member
from App.database import db
from App.models import Organization, RegionalLeadAssignment
from App.services.data_transformation_service import DataTransformationService
from App.utils.performance_monitor import write_transaction
from App.utils.time_utils import local_day_bounds, local_window
from coverage_engine import (
    RoleType, SlotOccupied, TimeWindow, ValidationFailed, ensure_no_conflict, require_eligible,
)
from coverage_engine.conflicts import REGIONAL_LEAD

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('user_id', 'date', 'start_time', 'end_time', 'is_primary', 'notes')


def default_lead_window(organization: Organization, day: date) -> Tuple[datetime, datetime]:
    """The span of the organization's time blocks on ``day``, or the whole local day."""
    span = DataTransformationService.block_span(DataTransformationService.time_blocks(organization))
    if span is None:
        return local_day_bounds(day, organization.timezone)
    return local_window(day, span[0], span[1], organization.timezone)


def _window(organization, day, start_time, end_time) -> TimeWindow:
    if not isinstance(day, date):
        raise ValidationFailed("date is required", field='date')
    if start_time is None and end_time is None:
        start_time, end_time = default_lead_window(organization, day)
    if start_time is None or end_time is None:
        raise ValidationFailed("start_time and end_time must be given together")
    try:
        return TimeWindow(date=day, start=start_time, end=end_time)
    except ValueError as e:
        raise ValidationFailed(str(e)) from e


def _ensure_primary_free(organization_id, window: TimeWindow, exclude_id=None):
    query = RegionalLeadAssignment.query.filter_by(
        organization_id=organization_id,
        date=window.date,
        start_time=window.start,
        end_time=window.end,
        is_primary=True,
    )
    if exclude_id is not None:
        query = query.filter(RegionalLeadAssignment.id != exclude_id)
    existing = query.first()
    if existing is not None:
        raise SlotOccupied(
            f"A primary regional lead is already assigned for {window.date.isoformat()}",
            assignment_id=existing.id,
        )


def _slot_taken_error():
    return SlotOccupied("A primary regional lead is already assigned for this date")


def create_regional_lead_assignment(organization_id: int, user_id: int, date: date,
                                    start_time: Optional[datetime] = None,
                                    end_time: Optional[datetime] = None, is_primary: bool = True,
                                    notes: Optional[str] = None,
                                    created_by_id: Optional[int] = None) -> RegionalLeadAssignment:
    """
    Assign a regional lead for a date.

    Raises:
        NotFound, ValidationFailed, DateClosed, Unqualified, SlotOccupied, TimeConflict
    """
    with write_transaction('create_regional_lead_assignment'):
        organization = require(Organization, organization_id, 'Organization')
        user = require_member(user_id, organization.id, lock=True)
        window = _window(organization, date, start_time, end_time)

        ensure_date_open(organization.id, window.date, whole_day_only=True)
        require_eligible(user.role_slugs(), RoleType.REGIONAL_LEAD, user.name)
        if is_primary:
            _ensure_primary_free(organization.id, window)
        ensure_no_conflict(
            window,
            DataTransformationService.user_commitments(user.id, window.date),
            user_label=user.name,
        )

        assignment = RegionalLeadAssignment(
            organization.id, user.id, window.date, window.start, window.end,
            is_primary=is_primary, notes=notes, created_by_id=created_by_id,
        )
        db.session.add(assignment)
        flush_or_raise(_slot_taken_error)

    logger.info(
        'Regional lead assigned',
        extra={
            'event': 'regional_lead_assigned',
            'assignment_id': assignment.id,
            'user_id': user_id,
            'date': window.date.isoformat(),
            'is_primary': is_primary,
        },
    )
    return assignment


def update_regional_lead_assignment(assignment_id: int, **fields) -> RegionalLeadAssignment:
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationFailed(f"Unknown fields: {', '.join(sorted(unknown))}")

    with write_transaction('update_regional_lead_assignment'):
        assignment = require(RegionalLeadAssignment, assignment_id, 'Regional lead assignment', lock=True)
        organization = require(Organization, assignment.organization_id, 'Organization')

        user_id = fields.get('user_id', assignment.user_id)
        new_date = fields.get('date', assignment.date)
        if 'start_time' in fields or 'end_time' in fields:
            start_time, end_time = fields.get('start_time'), fields.get('end_time')
        elif new_date != assignment.date:
            start_time = end_time = None
        else:
            start_time, end_time = assignment.start_time, assignment.end_time
        window = _window(organization, new_date, start_time, end_time)
        is_primary = bool(fields.get('is_primary', assignment.is_primary))

        user_changed = user_id != assignment.user_id
        slot_changed = not window.same_slot(assignment.window())
        promoted = is_primary and not assignment.is_primary

        user = require_member(user_id, organization.id, lock=True)
        if user_changed:
            require_eligible(user.role_slugs(), RoleType.REGIONAL_LEAD, user.name)
        if window.date != assignment.date:
            ensure_date_open(organization.id, window.date, whole_day_only=True)
        if is_primary and (slot_changed or promoted):
            _ensure_primary_free(organization.id, window, exclude_id=assignment.id)
        if user_changed or slot_changed:
            ensure_no_conflict(
                window,
                DataTransformationService.user_commitments(user.id, window.date),
                exclude=[(REGIONAL_LEAD, assignment.id)],
                user_label=user.name,
            )

        assignment.user_id = user.id
        assignment.date = window.date
        assignment.start_time = window.start
        assignment.end_time = window.end
        assignment.is_primary = is_primary
        if 'notes' in fields:
            assignment.notes = fields['notes']
        flush_or_raise(_slot_taken_error)

    logger.info(
        'Regional lead assignment updated',
        extra={'event': 'regional_lead_updated', 'assignment_id': assignment_id, 'fields': sorted(fields)},
    )
    return assignment


def delete_regional_lead_assignment(assignment_id: int) -> Dict[str, object]:
    with write_transaction('delete_regional_lead_assignment'):
        assignment = require(RegionalLeadAssignment, assignment_id, 'Regional lead assignment', lock=True)
        snapshot = assignment.to_dict()
        db.session.delete(assignment)

    logger.info(
        'Regional lead assignment deleted',
        extra={'event': 'regional_lead_deleted', 'assignment_id': assignment_id},
    )
    return snapshot


def set_regional_lead_primary(assignment_id: int) -> RegionalLeadAssignment:
    with write_transaction('set_regional_lead_primary'):
        assignment = require(RegionalLeadAssignment, assignment_id, 'Regional lead assignment', lock=True)
        if not assignment.is_primary:
            _ensure_primary_free(assignment.organization_id, assignment.window(), exclude_id=assignment.id)
            assignment.is_primary = True
            flush_or_raise(_slot_taken_error)

    logger.info(
        'Regional lead promoted to primary',
        extra={'event': 'regional_lead_promoted', 'assignment_id': assignment_id},
    )
    return assignment


def list_regional_lead_assignments(organization_id: int, start: date, end: date) -> List[RegionalLeadAssignment]:
    return (
        RegionalLeadAssignment.query
        .filter(
            RegionalLeadAssignment.organization_id == organization_id,
            RegionalLeadAssignment.date >= start,
            RegionalLeadAssignment.date <= end,
        )
        .order_by(RegionalLeadAssignment.date, RegionalLeadAssignment.is_primary.desc())
        .all()
    )


def get_regional_lead_assignment(assignment_id: int) -> Optional[RegionalLeadAssignment]:
    return db.session.get(RegionalLeadAssignment, assignment_id)
