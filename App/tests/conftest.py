"""
Shared fixtures for the application test suite.

Every test gets a fresh in-memory database seeded with one organization
(America/New_York, default time blocks), a coordinator, a few qualified
volunteers and zones in two counties.
"""
from datetime import date
from types import SimpleNamespace

import pytest
from flask_jwt_extended import create_access_token

from App.controllers.organization import create_organization
from App.controllers.qualification import grant_qualification
from App.controllers.shift import create_shift
from App.controllers.user import create_user
from App.controllers.zone import create_zone
from App.database import db
from App.main import create_app
from App.models.user import COORDINATOR
from App.utils.time_utils import local_window
from coverage_engine import RoleType

TZ = 'America/New_York'
MONDAY = date(2031, 3, 10)

VOLUNTEERS = {
    'dana': [RoleType.DISPATCHER, RoleType.VERIFIER],
    'eli': [RoleType.ZONE_LEAD, RoleType.VERIFIER],
    'fran': [RoleType.VERIFIER],
    'gabe': [RoleType.VERIFIER, RoleType.REGIONAL_LEAD],
    'hana': [RoleType.VERIFIER, RoleType.REGIONAL_LEAD, RoleType.DISPATCHER],
}


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SECRET_KEY': 'test-secret-key',
        'JWT_SECRET_KEY': 'jwt-test-secret',
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def seed(app):
    organization = create_organization('Test Coalition', 'test', timezone=TZ, auto_confirm_rsvp=True)
    coordinator = create_user('coord', 'coordpass', organization.id, type=COORDINATOR, name='Casey')

    users = {}
    for username, roles in VOLUNTEERS.items():
        user = create_user(username, f'{username}pass', organization.id, name=username.title())
        for role in roles:
            grant_qualification(user.id, role)
        users[username] = user

    zones = {
        name: create_zone(organization.id, name, county)
        for name, county in (('Durham-1', 'Durham'), ('Durham-2', 'Durham'), ('Wake-1', 'Wake'))
    }
    return SimpleNamespace(org=organization, coordinator=coordinator, users=users, zones=zones)


@pytest.fixture
def make_shift(app):
    """Factory for shifts at local wall-clock hours; published and 2/4/6 by default."""
    def _make(zone, day=MONDAY, start_hour=6, end_hour=10, publish=True, **kwargs):
        start, end = local_window(day, start_hour, end_hour, TZ)
        kwargs.setdefault('min_volunteers', 2)
        kwargs.setdefault('ideal_volunteers', 4)
        kwargs.setdefault('max_volunteers', 6)
        return create_shift(zone.id, day, start, end, publish=publish, **kwargs)
    return _make


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        token = create_access_token(identity=str(user.id))
        return {'Authorization': f'Bearer {token}'}
    return _headers
