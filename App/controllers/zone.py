from typing import Iterable, List, Optional, Sequence, Tuple
import logging

from App.database import db
from App.models import TimeBlock, Zone
from coverage_engine import TimeBlock as GridBlock, ValidationFailed

logger = logging.getLogger(__name__)


def create_zone(organization_id: int, name: str, county: Optional[str] = None,
                description: Optional[str] = None) -> Zone:
    if not name or not name.strip():
        raise ValidationFailed("Zone name is required", field='name')
    zone = Zone(organization_id, name.strip(), county.strip() if county else None, description)
    db.session.add(zone)
    db.session.commit()
    logger.info(f"Created zone {zone.name} ({zone.county}) for organization {organization_id}")
    return zone


def update_zone(zone_id: int, **fields) -> Optional[Zone]:
    zone = db.session.get(Zone, zone_id)
    if not zone:
        return None
    for key in ('name', 'county', 'description', 'is_active'):
        if key in fields:
            setattr(zone, key, fields[key])
    db.session.commit()
    return zone


def list_zones(organization_id: int, county: Optional[str] = None, include_inactive: bool = False) -> List[Zone]:
    query = Zone.query.filter_by(organization_id=organization_id)
    if not include_inactive:
        query = query.filter_by(is_active=True)
    if county:
        query = query.filter_by(county=county)
    return query.order_by(Zone.county, Zone.name).all()


def get_counties(organization_id: int) -> List[str]:
    """Distinct counties across the organization's active zones, sorted."""
    rows = (
        db.session.query(Zone.county)
        .filter(Zone.organization_id == organization_id, Zone.is_active.is_(True), Zone.county.isnot(None))
        .distinct()
        .all()
    )
    return sorted(row[0] for row in rows if row[0])


def set_time_blocks(organization_id: int, blocks: Sequence[Tuple]) -> List[TimeBlock]:
    """
    Replace the organization's time blocks.

    Args:
        blocks: ``(start_hour, end_hour)`` or ``(start_hour, end_hour, label)`` tuples

    Raises:
        ValidationFailed: if a block is malformed or blocks overlap
    """
    parsed: List[GridBlock] = []
    for raw in blocks:
        try:
            parsed.append(GridBlock(*raw))
        except (TypeError, ValueError) as e:
            raise ValidationFailed(f"Invalid time block {raw!r}: {e}") from e
    parsed.sort(key=lambda block: block.start_hour)
    for earlier, later in zip(parsed, parsed[1:]):
        if later.start_hour < earlier.end_hour:
            raise ValidationFailed(f"Time blocks {earlier.label} and {later.label} overlap")

    TimeBlock.query.filter_by(organization_id=organization_id).delete()
    rows = [
        TimeBlock(organization_id, position, block.start_hour, block.end_hour, block.label)
        for position, block in enumerate(parsed)
    ]
    db.session.add_all(rows)
    db.session.commit()
    logger.info(f"Configured {len(rows)} time blocks for organization {organization_id}")
    return rows


def get_time_blocks(organization_id: int) -> List[TimeBlock]:
    return TimeBlock.query.filter_by(organization_id=organization_id).order_by(TimeBlock.position).all()
