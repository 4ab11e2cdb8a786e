import logging

from flask import request
from flask_jwt_extended import current_user

from App.controllers import organization as organization_controller
from App.controllers import qualification as qualification_controller
from App.controllers import shift as shift_controller
from App.controllers import user as user_controller
from App.controllers import zone as zone_controller
from App.database import db
from App.middleware import coordinator_required
from App.models import Zone
from App.views.api_v2 import api_v2
from App.views.api_v2.utils import (
    api_error,
    api_success,
    date_arg,
    jwt_required_secure,
    scheduling_error,
    server_error,
    validate_json_request_secure,
    window_args,
)
from coverage_engine import SchedulingError, ValidationFailed

logger = logging.getLogger(__name__)

SHIFT_DETAIL_FIELDS = (
    'shift_type', 'title', 'requires_dispatcher', 'requires_zone_lead', 'meeting_location', 'meeting_notes'
)


@api_v2.route('/organization', methods=['GET'])
@jwt_required_secure()
def get_organization():
    organization = current_user.organization
    data = organization.to_dict()
    data['time_blocks'] = [block.to_dict() for block in organization.time_blocks]
    data['counties'] = zone_controller.get_counties(organization.id)
    return api_success(data)


@api_v2.route('/organization/settings', methods=['PUT'])
@jwt_required_secure()
@coordinator_required
def update_organization_settings():
    """
    Expected JSON body (any subset):
    {
        "timezone": "America/New_York",
        "auto_confirm_rsvp": true,
        "dispatcher_scheduling_mode": "ZONE" | "COUNTY" | "REGIONAL"
    }
    """
    data, error = validate_json_request_secure()
    if error:
        return error
    try:
        organization = organization_controller.update_settings(current_user.organization_id, **data)
        return api_success(organization.to_dict(), "Settings updated")
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("update settings", e)


@api_v2.route('/organization/time-blocks', methods=['PUT'])
@jwt_required_secure()
@coordinator_required
def replace_time_blocks():
    """
    Expected JSON body:
    {
        "time_blocks": [{"start_hour": 6, "end_hour": 10, "label": "6am-10am"}, ...]
    }
    """
    data, error = validate_json_request_secure(required_fields=['time_blocks'])
    if error:
        return error
    try:
        raw_blocks = data['time_blocks']
        if not isinstance(raw_blocks, list):
            raise ValidationFailed("time_blocks must be a list", field='time_blocks')
        blocks = []
        for item in raw_blocks:
            if not isinstance(item, dict):
                raise ValidationFailed("Each time block must be an object", field='time_blocks')
            block = (item.get('start_hour'), item.get('end_hour'))
            blocks.append(block + (item['label'],) if item.get('label') else block)
        rows = zone_controller.set_time_blocks(current_user.organization_id, blocks)
        return api_success([row.to_dict() for row in rows], "Time blocks updated")
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("update time blocks", e)


@api_v2.route('/zones', methods=['GET'])
@jwt_required_secure()
def list_zones():
    zones = zone_controller.list_zones(
        current_user.organization_id,
        county=request.args.get('county') or None,
        include_inactive=request.args.get('include_inactive', 'false').lower() == 'true',
    )
    return api_success([zone.to_dict() for zone in zones])


@api_v2.route('/zones', methods=['POST'])
@jwt_required_secure()
@coordinator_required
def create_zone():
    data, error = validate_json_request_secure(required_fields=['name'])
    if error:
        return error
    try:
        zone = zone_controller.create_zone(
            current_user.organization_id, data['name'], data.get('county'), data.get('description')
        )
        return api_success(zone.to_dict(), "Zone created", status_code=201)
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("create zone", e)


@api_v2.route('/shifts', methods=['GET'])
@jwt_required_secure()
def list_shifts():
    """
    Query params:
        start_date, end_date: YYYY-MM-DD (required)
        zone_id, status: optional filters
    """
    try:
        start_raw, end_raw = request.args.get('start_date'), request.args.get('end_date')
        if not start_raw or not end_raw:
            raise ValidationFailed("start_date and end_date are required")
        shifts = shift_controller.list_shifts(
            current_user.organization_id,
            date_arg(start_raw, 'start_date'),
            date_arg(end_raw, 'end_date'),
            zone_id=request.args.get('zone_id', type=int),
            status=request.args.get('status') or None,
        )
        return api_success([shift.to_dict() for shift in shifts])
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("retrieve shifts", e)


@api_v2.route('/shifts', methods=['POST'])
@jwt_required_secure()
@coordinator_required
def create_shift():
    """
    Expected JSON body:
    {
        "zone_id": 3,
        "date": "2025-03-10",
        "start_time": "06:00",
        "end_time": "10:00",
        "min_volunteers": 2,
        "ideal_volunteers": 4,
        "max_volunteers": 6,
        "requires_zone_lead": true,
        "publish": true
    }
    """
    data, error = validate_json_request_secure(required_fields=['zone_id', 'date', 'start_time', 'end_time'])
    if error:
        return error

    zone = db.session.get(Zone, data['zone_id'])
    if not zone or zone.organization_id != current_user.organization_id:
        return api_error("Zone not found", status_code=404)

    organization = current_user.organization
    try:
        day = date_arg(data['date'], 'date')
        start, end = window_args(organization, day, data['start_time'], data['end_time'])
        details = {key: data[key] for key in SHIFT_DETAIL_FIELDS if key in data}
        shift = shift_controller.create_shift(
            data['zone_id'], day, start, end,
            min_volunteers=data.get('min_volunteers', 1),
            ideal_volunteers=data.get('ideal_volunteers', 2),
            max_volunteers=data.get('max_volunteers', 4),
            publish=bool(data.get('publish', False)),
            **details,
        )
        return api_success(shift.to_dict(), "Shift created", status_code=201)
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("create shift", e)


@api_v2.route('/shifts/<int:shift_id>/publish', methods=['POST'])
@jwt_required_secure()
@coordinator_required
def publish_shift(shift_id):
    return _change_shift_status(shift_id, shift_controller.publish_shift, "Shift published")


@api_v2.route('/shifts/<int:shift_id>/cancel', methods=['POST'])
@jwt_required_secure()
@coordinator_required
def cancel_shift(shift_id):
    return _change_shift_status(shift_id, shift_controller.cancel_shift, "Shift cancelled")


def _change_shift_status(shift_id, action, message):
    shift = shift_controller.get_shift(shift_id)
    if not shift or shift.organization_id != current_user.organization_id:
        return api_error("Shift not found", status_code=404)
    try:
        return api_success(action(shift_id).to_dict(), message)
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("update shift", e)


@api_v2.route('/users', methods=['GET'])
@jwt_required_secure()
@coordinator_required
def list_users():
    return api_success([user.to_dict() for user in user_controller.get_all_users(current_user.organization_id)])


@api_v2.route('/users/<int:user_id>/qualifications', methods=['POST'])
@jwt_required_secure()
@coordinator_required
def grant_qualification(user_id):
    """Expected JSON body: {"role": "DISPATCHER"}"""
    data, error = validate_json_request_secure(required_fields=['role'])
    if error:
        return error
    user = user_controller.get_user(user_id)
    if not user or user.organization_id != current_user.organization_id:
        return api_error("User not found", status_code=404)
    try:
        qualification_controller.grant_qualification(user_id, data['role'])
        return api_success({'user_id': user_id, 'roles': qualification_controller.get_user_roles(user_id)},
                           "Qualification granted", status_code=201)
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("grant qualification", e)


@api_v2.route('/users/<int:user_id>/qualifications/<role>', methods=['DELETE'])
@jwt_required_secure()
@coordinator_required
def revoke_qualification(user_id, role):
    user = user_controller.get_user(user_id)
    if not user or user.organization_id != current_user.organization_id:
        return api_error("User not found", status_code=404)
    try:
        qualification_controller.revoke_qualification(user_id, role)
        return api_success({'user_id': user_id, 'roles': qualification_controller.get_user_roles(user_id)},
                           "Qualification revoked")
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("revoke qualification", e)
