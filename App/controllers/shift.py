from datetime import date, datetime
from typing import List, Optional
import logging

from App.database import db
from App.models import Shift, Zone
from App.models.shift import CANCELLED, DRAFT, PUBLISHED
from coverage_engine import NotFound, ValidationFailed

logger = logging.getLogger(__name__)


def create_shift(zone_id: int, date: date, start_time: datetime, end_time: datetime,
                 min_volunteers: int = 1, ideal_volunteers: int = 2, max_volunteers: int = 4,
                 publish: bool = False, **details) -> Shift:
    """
    Create a shift for a zone.

    ``date`` is the organization-local date and ``start_time``/``end_time``
    are UTC instants already resolved from local wall-clock times.
    """
    zone = db.session.get(Zone, zone_id)
    if not zone:
        raise NotFound(f"Zone {zone_id} not found", id=zone_id)

    shift = Shift(
        zone.organization_id, zone.id, date, start_time, end_time,
        min_volunteers=min_volunteers,
        ideal_volunteers=ideal_volunteers,
        max_volunteers=max_volunteers,
        status=PUBLISHED if publish else DRAFT,
        **details,
    )
    try:
        shift.validate()
    except ValueError as e:
        raise ValidationFailed(str(e)) from e

    db.session.add(shift)
    db.session.commit()
    logger.info(f"Created shift {shift.id} for zone {zone.name} on {date}")
    return shift


def _set_status(shift_id: int, status: str) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if not shift:
        raise NotFound(f"Shift {shift_id} not found", id=shift_id)
    shift.status = status
    db.session.commit()
    logger.info(f"Shift {shift_id} is now {status}")
    return shift


def publish_shift(shift_id: int) -> Shift:
    return _set_status(shift_id, PUBLISHED)


def cancel_shift(shift_id: int) -> Shift:
    """Cancelled shifts keep their signups for history but leave the grid."""
    return _set_status(shift_id, CANCELLED)


def get_shift(shift_id: int) -> Optional[Shift]:
    return db.session.get(Shift, shift_id)


def list_shifts(organization_id: int, start: date, end: date, zone_id: Optional[int] = None,
                status: Optional[str] = None) -> List[Shift]:
    query = Shift.query.filter(
        Shift.organization_id == organization_id,
        Shift.date >= start,
        Shift.date <= end,
    )
    if zone_id is not None:
        query = query.filter(Shift.zone_id == zone_id)
    if status:
        query = query.filter(Shift.status == status)
    return query.order_by(Shift.date, Shift.start_time).all()
