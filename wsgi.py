import json
import sys
from datetime import datetime

import click
from flask.cli import AppGroup

from App.controllers import (
    apply_default_requirements,
    bulk_assign_across_counties,
    create_date_override,
    create_user,
    get_all_users,
    get_all_users_json,
    get_user_by_username,
    grant_qualification,
    initialize,
    revoke_qualification,
    update_settings,
)
from App.database import get_migrate
from App.main import create_app
from App.models import Organization
from App.services import CoverageService
from App.utils.time_utils import local_today, local_window, parse_local_time
from coverage_engine import DispatcherMode, OverrideType, RoleType, SchedulingError

app = create_app()
migrate = get_migrate(app)

DATE_FORMAT = "%Y-%m-%d"


def _parse_date_arg(value: str, label: str):
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError as exc:
        raise click.BadParameter(f"{label} must be in YYYY-MM-DD format") from exc


def _organization(slug: str) -> Organization:
    organization = Organization.query.filter_by(slug=slug).first()
    if organization is None:
        raise click.BadParameter(f"No organization with slug '{slug}'", param_hint='--org')
    return organization


def _user(username: str):
    user = get_user_by_username(username)
    if user is None:
        raise click.BadParameter(f"No user named '{username}'")
    return user


def _fail(error: SchedulingError):
    click.echo(f"[{error.code}] {error.message}", err=True)
    sys.exit(1)


@app.cli.command("init", help="Creates and initializes the database with demo data")
def init():
    organization = initialize()
    print(f'database intialized for {organization.name} ({organization.slug})')


# User Commands
user_cli = AppGroup('user', help='User object commands')


@user_cli.command("create", help="Creates a user")
@click.argument("username")
@click.argument("password")
@click.option('--org', 'org_slug', default='demo', help='Organization slug')
@click.option('--coordinator', is_flag=True, help='Create a coordinator instead of a volunteer')
@click.option('--name', default=None, help='Display name')
def create_user_command(username, password, org_slug, coordinator, name):
    organization = _organization(org_slug)
    try:
        create_user(username, password, organization.id,
                    type='coordinator' if coordinator else 'volunteer', name=name)
    except SchedulingError as e:
        _fail(e)
    print(f'{username} created!')


@user_cli.command("list", help="Lists users in the database")
@click.argument("format", default="string")
def list_user_command(format):
    if format == 'string':
        print(get_all_users())
    else:
        print(get_all_users_json())


@user_cli.command("qualify", help="Grants (or with --revoke removes) a qualified role")
@click.argument("username")
@click.argument("role", type=click.Choice([role.value for role in RoleType], case_sensitive=False))
@click.option('--revoke', is_flag=True)
def qualify_user_command(username, role, revoke):
    user = _user(username)
    try:
        if revoke:
            revoke_qualification(user.id, role)
        else:
            grant_qualification(user.id, role)
    except SchedulingError as e:
        _fail(e)
    print(f'{username}: {", ".join(sorted(user.role_slugs())) or "no roles"}')


app.cli.add_command(user_cli)

# Organization Commands

org_cli = AppGroup('org', help='Organization settings')


@org_cli.command('mode', help='Sets how dispatchers are scheduled (ZONE, COUNTY or REGIONAL)')
@click.argument('mode', type=click.Choice([mode.value for mode in DispatcherMode], case_sensitive=False))
@click.option('--org', 'org_slug', default='demo')
def set_mode_command(mode, org_slug):
    organization = _organization(org_slug)
    try:
        update_settings(organization.id, dispatcher_scheduling_mode=mode)
    except SchedulingError as e:
        _fail(e)
    print(f'{organization.slug}: dispatcher scheduling mode is now {organization.dispatcher_scheduling_mode}')


@org_cli.command('close', help='Closes a date for the whole organization or one zone')
@click.argument('date')
@click.option('--reason', default='', help='Reason shown on the coverage grid')
@click.option('--zone-id', type=int, default=None)
@click.option('--org', 'org_slug', default='demo')
def close_date_command(date, reason, zone_id, org_slug):
    organization = _organization(org_slug)
    day = _parse_date_arg(date, 'date')
    try:
        override = create_date_override(organization.id, day, OverrideType.CLOSURE, reason, zone_id=zone_id)
    except SchedulingError as e:
        _fail(e)
    print(f'Closed {day.isoformat()} (override {override.id})')


app.cli.add_command(org_cli)

# Coverage Commands

coverage_cli = AppGroup('coverage', help='Coverage reports')


@coverage_cli.command('week', help='Prints coverage for the week containing DATE (default: today)')
@click.argument('date', required=False)
@click.option('--org', 'org_slug', default='demo')
@click.option('--json', 'as_json', is_flag=True, help='Print the full JSON payload')
def coverage_week_command(date, org_slug, as_json):
    organization = _organization(org_slug)
    day = _parse_date_arg(date, 'date') if date else local_today(organization.timezone)
    result = CoverageService().get_week_coverage(organization.id, day)
    if as_json:
        click.echo(json.dumps(result, indent=2, default=str))
        return

    click.echo(f"Week {result['week_start']} to {result['week_end']} ({result['dispatcher_scheduling_mode']})")
    for entry in result['days']:
        label = f"{entry['date']} {entry['day_of_week'][:3]}"
        if entry['is_closed']:
            click.echo(f"  {label}  CLOSED {entry['closure_reason'] or ''}".rstrip())
            continue
        cells = ' '.join(f"{block['block']}:{block['coverage'] or '-'}" for block in entry['blocks'])
        click.echo(f"  {label}  {cells}")
    stats = result['stats']
    click.echo(
        f"Coverage {stats['coverage_percent']}% | full {stats['covered_slots']} "
        f"| partial {stats['partial_slots']} | gaps {stats['critical_gaps']}"
    )


@coverage_cli.command('defaults', help='Gives unconfigured zones one requirement per time block, Monday to Saturday')
@click.option('--min-volunteers', default=2, show_default=True, type=int)
@click.option('--org', 'org_slug', default='demo')
def coverage_defaults_command(min_volunteers, org_slug):
    organization = _organization(org_slug)
    try:
        created = apply_default_requirements(organization.id, min_volunteers=min_volunteers)
    except SchedulingError as e:
        _fail(e)
    print(f'Created {created} coverage requirements')


app.cli.add_command(coverage_cli)

# Dispatcher Commands

dispatch_cli = AppGroup('dispatch', help='Dispatcher assignment commands')


@dispatch_cli.command('bulk', help='Assigns one dispatcher to every county for a window')
@click.argument('username')
@click.argument('date')
@click.argument('start_time')
@click.argument('end_time')
@click.option('--county', 'counties', multiple=True, help='Limit to these counties')
@click.option('--backup', is_flag=True)
@click.option('--org', 'org_slug', default='demo')
def bulk_dispatch_command(username, date, start_time, end_time, counties, backup, org_slug):
    organization = _organization(org_slug)
    user = _user(username)
    day = _parse_date_arg(date, 'date')
    try:
        start, end = local_window(day, parse_local_time(start_time), parse_local_time(end_time),
                                  organization.timezone)
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    try:
        result = bulk_assign_across_counties(
            organization.id, user.id, day, start, end, counties=list(counties) or None, is_backup=backup
        )
    except SchedulingError as e:
        _fail(e)
    click.echo(f"created {len(result.created)} | skipped {', '.join(result.skipped) or 'none'}")
    for county, error in result.errors.items():
        click.echo(f"  {county}: [{error['code']}] {error['message']}", err=True)
    if not result.ok:
        sys.exit(1)


app.cli.add_command(dispatch_cli)

# Test Commands

test_cli = AppGroup('test', help='Testing commands')


@test_cli.command('app', help='Run tests (all/unit/int)')
@click.argument('type', default='all')
def run_tests(type):
    import pytest

    if type == 'unit':
        sys.exit(pytest.main(['-k', 'UnitTests']))
    elif type == 'int':
        sys.exit(pytest.main(['-k', 'IntegrationTests']))
    else:
        sys.exit(pytest.main([]))


app.cli.add_command(test_cli)
