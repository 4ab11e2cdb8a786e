from datetime import date
from typing import Any, Dict, List, Optional
import logging

from App.controllers.guards import require
from App.database import db
from App.models import DateOverride, Organization, Zone
from App.utils.performance_monitor import write_transaction
from coverage_engine import NotFound, OverrideType, ValidationFailed

logger = logging.getLogger(__name__)

BOOLEAN_ADJUSTMENTS = ('needs_dispatcher', 'needs_zone_lead')


def validate_slot_adjustments(adjustments: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """
    Check an ADJUST_REQUIREMENTS payload.

    The payload is stored as annotation only; it never changes shift capacity.
    Accepted keys: start_hour (0-23), end_hour (1-24), min_volunteers (>= 0),
    needs_dispatcher and needs_zone_lead (booleans).
    """
    if adjustments is None:
        return None
    if not isinstance(adjustments, dict):
        raise ValidationFailed("slot_adjustments must be an object", field='slot_adjustments')

    errors = {}
    cleaned: Dict[str, Any] = {}
    start = adjustments.get('start_hour')
    end = adjustments.get('end_hour')
    if start is not None:
        if not isinstance(start, int) or not 0 <= start <= 23:
            errors['start_hour'] = 'must be an hour between 0 and 23'
        cleaned['start_hour'] = start
    if end is not None:
        if not isinstance(end, int) or not 1 <= end <= 24:
            errors['end_hour'] = 'must be an hour between 1 and 24'
        cleaned['end_hour'] = end
    if start is not None and end is not None and not errors and start >= end:
        errors['end_hour'] = 'must be after start_hour'
    if 'min_volunteers' in adjustments:
        value = adjustments['min_volunteers']
        if not isinstance(value, int) or value < 0:
            errors['min_volunteers'] = 'must be a non-negative integer'
        cleaned['min_volunteers'] = value
    for key in BOOLEAN_ADJUSTMENTS:
        if key in adjustments:
            cleaned[key] = bool(adjustments[key])

    unknown = set(adjustments) - set(cleaned) - {'start_hour', 'end_hour'}
    for key in unknown:
        errors[key] = 'unknown field'
    if errors:
        raise ValidationFailed("Invalid slot adjustments", errors=errors)
    return cleaned


def create_date_override(organization_id: int, date: date, override_type, reason: str = '',
                         zone_id: Optional[int] = None, slot_adjustments: Optional[Dict[str, Any]] = None,
                         created_by_id: Optional[int] = None) -> DateOverride:
    """
    Record a date override. Several overrides may exist for the same date
    and zone; they are never merged.
    """
    try:
        override_type = OverrideType.parse(override_type)
    except ValueError as e:
        raise ValidationFailed(str(e), field='type') from e
    adjustments = validate_slot_adjustments(slot_adjustments)

    with write_transaction('create_date_override'):
        require(Organization, organization_id, 'Organization')
        if zone_id is not None:
            zone = db.session.get(Zone, zone_id)
            if zone is None or zone.organization_id != organization_id:
                raise NotFound(f"Zone {zone_id} not found", id=zone_id)
        override = DateOverride(
            organization_id, date, override_type.value, reason or '', zone_id,
            slot_adjustments=adjustments, created_by_id=created_by_id,
        )
        db.session.add(override)
        db.session.flush()

    logger.info(
        'Date override created',
        extra={
            'event': 'date_override_created',
            'override_id': override.id,
            'date': date.isoformat(),
            'zone_id': zone_id,
            'type': override_type.value,
        },
    )
    return override


def delete_date_override(override_id: int) -> Dict[str, Any]:
    with write_transaction('delete_date_override'):
        override = require(DateOverride, override_id, 'Date override')
        snapshot = override.to_dict()
        db.session.delete(override)
    logger.info('Date override deleted', extra={'event': 'date_override_deleted', 'override_id': override_id})
    return snapshot


def list_date_overrides(organization_id: int, start: date, end: date,
                        zone_id: Optional[int] = None) -> List[DateOverride]:
    query = DateOverride.query.filter(
        DateOverride.organization_id == organization_id,
        DateOverride.date >= start,
        DateOverride.date <= end,
    )
    if zone_id is not None:
        query = query.filter((DateOverride.zone_id == zone_id) | (DateOverride.zone_id.is_(None)))
    return query.order_by(DateOverride.date, DateOverride.id).all()


def get_date_override(override_id: int) -> Optional[DateOverride]:
    return db.session.get(DateOverride, override_id)
