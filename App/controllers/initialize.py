from datetime import timedelta
import logging

from App.controllers.coverage_requirement import apply_default_requirements
from App.controllers.organization import create_organization
from App.controllers.qualification import grant_qualification
from App.controllers.shift import create_shift
from App.controllers.user import create_user
from App.controllers.zone import create_zone
from App.database import db
from App.models.user import COORDINATOR
from App.utils.time_utils import local_today, local_window
from coverage_engine import RoleType, week_bounds

logger = logging.getLogger(__name__)

SAMPLE_ZONES = [
    ('Durham-1', 'Durham'),
    ('Durham-2', 'Durham'),
    ('Wake-1', 'Wake'),
    ('Orange-1', 'Orange'),
]

SAMPLE_VOLUNTEERS = [
    ('dana', [RoleType.DISPATCHER, RoleType.VERIFIER]),
    ('eli', [RoleType.ZONE_LEAD, RoleType.VERIFIER]),
    ('fran', [RoleType.VERIFIER]),
    ('gabe', [RoleType.VERIFIER, RoleType.REGIONAL_LEAD]),
]


def initialize():
    """
    Recreate the schema and seed a demo organization: one coordinator, a few
    qualified volunteers, zones across three counties with standing
    requirements Monday to Saturday, and a week of published shifts in every
    time block.
    """
    logger.info("Starting database initialization")
    db.drop_all()
    db.create_all()

    organization = create_organization('Demo Coalition', 'demo')
    coordinator = create_user('coord', 'coordpass', organization.id, type=COORDINATOR, name='Casey Coordinator')
    for role in RoleType:
        grant_qualification(coordinator.id, role)
    logger.info(f"Created coordinator: {coordinator.username}")

    for username, roles in SAMPLE_VOLUNTEERS:
        volunteer = create_user(username, f'{username}pass', organization.id, name=username.title())
        for role in roles:
            grant_qualification(volunteer.id, role)

    zones = [create_zone(organization.id, name, county) for name, county in SAMPLE_ZONES]
    apply_default_requirements(organization.id)

    monday, _ = week_bounds(local_today(organization.timezone))
    shift_count = 0
    for offset in range(7):
        day = monday + timedelta(days=offset)
        for block in organization.time_blocks:
            start, end = local_window(day, block.start_hour, block.end_hour, organization.timezone)
            for zone in zones:
                create_shift(
                    zone.id, day, start, end,
                    min_volunteers=2, ideal_volunteers=4, max_volunteers=6,
                    requires_zone_lead=True, publish=True,
                )
                shift_count += 1

    logger.info(f"Database initialized: {len(zones)} zones, {shift_count} shifts")
    return organization
