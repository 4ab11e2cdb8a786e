from typing import Any, Dict, Iterable, List, Optional, Sequence
import logging

from App.controllers.guards import require
from App.database import db
from App.models import CoverageRequirement, Organization, Zone
from App.services.data_transformation_service import DataTransformationService
from App.utils.performance_monitor import write_transaction
from coverage_engine import NotFound, ValidationFailed

logger = logging.getLogger(__name__)

WORKDAYS = range(0, 6)
DEFAULT_MIN_VOLUNTEERS = 2


def _hour(value, low, high):
    return isinstance(value, int) and not isinstance(value, bool) and low <= value <= high


def validate_requirement_slots(slots: Optional[Sequence[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """
    Check the slot list for one zone and weekday.

    Each slot needs ``start_hour`` (0-23) and ``end_hour`` (1-24) with start
    before end; ``min_volunteers`` (>= 0, default 2), ``needs_zone_lead`` and
    ``needs_dispatcher`` (default true) and ``is_active`` (default true) are
    optional. Slots may not overlap.
    """
    if slots is None or not isinstance(slots, (list, tuple)):
        raise ValidationFailed("slots must be a list", field='slots')

    errors: Dict[str, str] = {}
    cleaned: List[Dict[str, Any]] = []
    for index, slot in enumerate(slots):
        if not isinstance(slot, dict):
            errors[f'slots[{index}]'] = 'must be an object'
            continue
        start, end = slot.get('start_hour'), slot.get('end_hour')
        if not _hour(start, 0, 23):
            errors[f'slots[{index}].start_hour'] = 'must be an hour between 0 and 23'
        if not _hour(end, 1, 24):
            errors[f'slots[{index}].end_hour'] = 'must be an hour between 1 and 24'
        elif _hour(start, 0, 23) and start >= end:
            errors[f'slots[{index}].end_hour'] = 'must be after start_hour'
        minimum = slot.get('min_volunteers', DEFAULT_MIN_VOLUNTEERS)
        if not isinstance(minimum, int) or isinstance(minimum, bool) or minimum < 0:
            errors[f'slots[{index}].min_volunteers'] = 'must be a non-negative integer'
        cleaned.append({
            'start_hour': start,
            'end_hour': end,
            'min_volunteers': minimum,
            'needs_zone_lead': bool(slot.get('needs_zone_lead', True)),
            'needs_dispatcher': bool(slot.get('needs_dispatcher', True)),
            'is_active': bool(slot.get('is_active', True)),
        })
    if errors:
        raise ValidationFailed("Invalid coverage slots", errors=errors)

    ordered = sorted(cleaned, key=lambda slot: slot['start_hour'])
    for earlier, later in zip(ordered, ordered[1:]):
        if later['start_hour'] < earlier['end_hour']:
            raise ValidationFailed(
                f"Slots {earlier['start_hour']}-{earlier['end_hour']} and "
                f"{later['start_hour']}-{later['end_hour']} overlap",
                field='slots',
            )
    return ordered


def _require_zone(organization_id: int, zone_id: int) -> Zone:
    zone = db.session.get(Zone, zone_id)
    if zone is None or zone.organization_id != organization_id:
        raise NotFound(f"Zone {zone_id} not found", id=zone_id)
    return zone


def _require_weekday(day_of_week) -> int:
    if not isinstance(day_of_week, int) or isinstance(day_of_week, bool) or not 0 <= day_of_week <= 6:
        raise ValidationFailed("day_of_week must be 0 (Monday) to 6 (Sunday)", field='day_of_week')
    return day_of_week


def set_zone_requirements(organization_id: int, zone_id: int, day_of_week: int,
                          slots: Sequence[Dict[str, Any]]) -> List[CoverageRequirement]:
    """
    Replace the standing requirements of one zone on one weekday.

    An empty ``slots`` list clears the day, leaving those cells unconfigured.

    Raises:
        NotFound, ValidationFailed
    """
    day_of_week = _require_weekday(day_of_week)
    cleaned = validate_requirement_slots(slots)

    with write_transaction('set_zone_requirements'):
        require(Organization, organization_id, 'Organization')
        zone = _require_zone(organization_id, zone_id)
        CoverageRequirement.query.filter_by(zone_id=zone.id, day_of_week=day_of_week).delete()
        rows = [CoverageRequirement(organization_id, zone.id, day_of_week, **slot) for slot in cleaned]
        db.session.add_all(rows)

    logger.info(
        'Coverage requirements set',
        extra={
            'event': 'coverage_requirements_set',
            'organization_id': organization_id,
            'zone_id': zone_id,
            'day_of_week': day_of_week,
            'slots': len(rows),
        },
    )
    return rows


def apply_default_requirements(organization_id: int, days: Iterable[int] = WORKDAYS,
                               min_volunteers: int = DEFAULT_MIN_VOLUNTEERS) -> int:
    """
    Give every active zone one requirement per time block on ``days``.

    Zone and weekday pairs that already have requirements are left alone.
    Returns the number of rows created.
    """
    created = 0
    with write_transaction('apply_default_requirements'):
        organization = require(Organization, organization_id, 'Organization')
        blocks = DataTransformationService.time_blocks(organization)
        zones = Zone.query.filter_by(organization_id=organization.id, is_active=True).all()
        configured = {
            (row.zone_id, row.day_of_week)
            for row in CoverageRequirement.query.filter_by(organization_id=organization.id)
        }
        for zone in zones:
            for day_of_week in days:
                if (zone.id, day_of_week) in configured:
                    continue
                for block in blocks:
                    db.session.add(CoverageRequirement(
                        organization.id, zone.id, day_of_week, block.start_hour, block.end_hour,
                        min_volunteers=min_volunteers,
                    ))
                    created += 1

    logger.info(f"Seeded {created} coverage requirements for organization {organization_id}")
    return created


def list_coverage_requirements(organization_id: int, zone_id: Optional[int] = None,
                               day_of_week: Optional[int] = None,
                               include_inactive: bool = True) -> List[CoverageRequirement]:
    query = CoverageRequirement.query.filter_by(organization_id=organization_id)
    if zone_id is not None:
        query = query.filter_by(zone_id=zone_id)
    if day_of_week is not None:
        query = query.filter_by(day_of_week=day_of_week)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    return query.order_by(
        CoverageRequirement.zone_id, CoverageRequirement.day_of_week, CoverageRequirement.start_hour
    ).all()
