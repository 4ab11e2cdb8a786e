from typing import Optional
import logging

from flask import current_app

from App.controllers.qualification import ensure_roles
from App.controllers.zone import set_time_blocks
from App.database import db
from App.models import Organization
from App.utils.time_utils import get_zone
from coverage_engine import DispatcherMode, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

SETTINGS_FIELDS = ('name', 'timezone', 'auto_confirm_rsvp', 'dispatcher_scheduling_mode')


def create_organization(name: str, slug: str, timezone: Optional[str] = None,
                        auto_confirm_rsvp: bool = False,
                        dispatcher_scheduling_mode: Optional[str] = None,
                        time_blocks=None) -> Organization:
    """Create an organization with its role catalogue and time blocks."""
    timezone = timezone or current_app.config.get('DEFAULT_TIMEZONE')
    mode = dispatcher_scheduling_mode or current_app.config.get('DEFAULT_DISPATCHER_MODE', 'ZONE')
    try:
        get_zone(timezone)
        mode = DispatcherMode.parse(mode)
    except ValueError as e:
        raise ValidationFailed(str(e)) from e

    organization = Organization(name, slug, timezone, auto_confirm_rsvp, mode.value)
    db.session.add(organization)
    db.session.commit()

    ensure_roles(organization.id)
    set_time_blocks(organization.id, time_blocks or current_app.config.get('DEFAULT_TIME_BLOCKS', []))
    logger.info(f"Created organization {slug} ({mode.value} dispatching, {timezone})")
    return organization


def get_organization(organization_id: int) -> Optional[Organization]:
    return db.session.get(Organization, organization_id)


def update_settings(organization_id: int, **settings) -> Organization:
    organization = db.session.get(Organization, organization_id)
    if not organization:
        raise NotFound(f"Organization {organization_id} not found", id=organization_id)

    for key, value in settings.items():
        if key not in SETTINGS_FIELDS:
            raise ValidationFailed(f"Unknown setting: {key}", field=key)
        try:
            if key == 'timezone':
                get_zone(value)
            elif key == 'dispatcher_scheduling_mode':
                value = DispatcherMode.parse(value).value
        except ValueError as e:
            raise ValidationFailed(str(e), field=key) from e
        setattr(organization, key, value)

    db.session.commit()
    logger.info(f"Updated settings for organization {organization.slug}: {sorted(settings)}")
    return organization
