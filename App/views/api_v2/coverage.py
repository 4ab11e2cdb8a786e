import logging

from flask import request
from flask_jwt_extended import current_user

from App.controllers import coverage_requirement as requirement_controller
from App.middleware import coordinator_required
from App.services import CoverageService
from App.utils.time_utils import local_today
from App.views.api_v2 import api_v2
from App.views.api_v2.utils import (
    api_success,
    date_arg,
    jwt_required_secure,
    scheduling_error,
    server_error,
    validate_json_request_secure,
)
from coverage_engine import SchedulingError, ValidationFailed

logger = logging.getLogger(__name__)

coverage_service = CoverageService()


@api_v2.route('/coverage/week', methods=['GET'])
@jwt_required_secure()
def get_week_coverage():
    """
    Zone coverage for the week containing ``date`` (defaults to today).

    Query params:
        date: YYYY-MM-DD, any day of the wanted week

    Returns:
        Success: days with per-slot coverage, counties, time slots, the
        coordinator (dispatcher/regional lead) coverage and summary stats
    """
    organization = current_user.organization
    try:
        raw = request.args.get('date')
        week_date = date_arg(raw, 'date') if raw else local_today(organization.timezone)
        data = coverage_service.get_week_coverage(organization.id, week_date)
        return api_success(data)
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("retrieve week coverage", e)


@api_v2.route('/schedule', methods=['GET'])
@jwt_required_secure()
@coordinator_required
def get_schedule():
    """
    Coordinator assignment grid.

    Query params:
        start_date: YYYY-MM-DD (required)
        end_date: YYYY-MM-DD (required)
        county: restrict to one county (optional)
    """
    try:
        start_raw, end_raw = request.args.get('start_date'), request.args.get('end_date')
        if not start_raw or not end_raw:
            raise ValidationFailed("start_date and end_date are required")
        data = coverage_service.get_schedule(
            current_user.organization_id,
            date_arg(start_raw, 'start_date'),
            date_arg(end_raw, 'end_date'),
            county=request.args.get('county') or None,
        )
        return api_success(data)
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("retrieve schedule", e)


@api_v2.route('/coverage/requirements', methods=['GET'])
@jwt_required_secure()
def list_coverage_requirements():
    """
    Standing zone requirements.

    Query params:
        zone_id: one zone (optional)
        day_of_week: 0 (Monday) to 6 (Sunday) (optional)
    """
    try:
        rows = requirement_controller.list_coverage_requirements(
            current_user.organization_id,
            zone_id=request.args.get('zone_id', type=int),
            day_of_week=request.args.get('day_of_week', type=int),
        )
        return api_success([row.to_dict() for row in rows])
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("retrieve coverage requirements", e)


@api_v2.route('/coverage/requirements', methods=['PUT'])
@jwt_required_secure()
@coordinator_required
def set_coverage_requirements():
    """
    Replace the standing requirements of one zone on one weekday.

    Expected JSON body:
    {
        "zone_id": 3,
        "day_of_week": 0,
        "slots": [
            {"start_hour": 6, "end_hour": 10, "min_volunteers": 2,
             "needs_zone_lead": true, "needs_dispatcher": true, "is_active": true}
        ]
    }

    An empty ``slots`` list clears the day.
    """
    data, error = validate_json_request_secure(required_fields=['zone_id', 'day_of_week', 'slots'])
    if error:
        return error

    try:
        rows = requirement_controller.set_zone_requirements(
            current_user.organization_id, data['zone_id'], data['day_of_week'], data['slots']
        )
        return api_success([row.to_dict() for row in rows], "Coverage requirements saved")
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("save coverage requirements", e)


@api_v2.route('/coverage/requirements/defaults', methods=['POST'])
@jwt_required_secure()
@coordinator_required
def apply_default_requirements():
    """Give unconfigured zones one requirement per time block, Monday to Saturday."""
    try:
        created = requirement_controller.apply_default_requirements(current_user.organization_id)
        return api_success({'created': created}, "Default requirements applied", status_code=201 if created else 200)
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("apply default requirements", e)
