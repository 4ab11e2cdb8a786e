import logging

from flask import request
from flask_jwt_extended import current_user

from App.controllers import dispatcher_assignment as dispatcher_controller
from App.controllers import regional_lead_assignment as lead_controller
from App.middleware import coordinator_required
from App.utils.time_utils import local_today
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
    window_update_fields,
)
from coverage_engine import SchedulingError, week_bounds

logger = logging.getLogger(__name__)


def _date_range_args():
    """``start_date``/``end_date`` query params, defaulting to the current week."""
    organization = current_user.organization
    start_raw, end_raw = request.args.get('start_date'), request.args.get('end_date')
    default_start, default_end = week_bounds(local_today(organization.timezone))
    start = date_arg(start_raw, 'start_date') if start_raw else default_start
    end = date_arg(end_raw, 'end_date') if end_raw else default_end
    return start, end


def _in_organization(record):
    return record is not None and record.organization_id == current_user.organization_id


# ------------------------------------------------------------------ dispatchers

@api_v2.route('/dispatcher-assignments', methods=['GET'])
@jwt_required_secure()
def list_dispatcher_assignments():
    """
    Dispatcher assignments for a date range (defaults to the current week).

    Query params:
        start_date, end_date: YYYY-MM-DD
        scope: county name or ALL (optional)
    """
    try:
        start, end = _date_range_args()
        assignments = dispatcher_controller.list_dispatcher_assignments(
            current_user.organization_id, start, end, scope=request.args.get('scope') or None
        )
        return api_success([assignment.to_dict() for assignment in assignments])
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("retrieve dispatcher assignments", e)


@api_v2.route('/dispatcher-assignments', methods=['POST'])
@jwt_required_secure()
@coordinator_required
def create_dispatcher_assignment():
    """
    Assign a dispatcher.

    Expected JSON body:
    {
        "user_id": 12,
        "scope": "Durham" | "ALL",
        "date": "2025-03-10",
        "start_time": "06:00",
        "end_time": "10:00",
        "is_backup": false,
        "notes": "optional"
    }

    Times are wall-clock times in the organization's timezone.
    """
    data, error = validate_json_request_secure(
        required_fields=['user_id', 'scope', 'date', 'start_time', 'end_time']
    )
    if error:
        return error

    organization = current_user.organization
    try:
        day = date_arg(data['date'], 'date')
        start, end = window_args(organization, day, data['start_time'], data['end_time'])
        assignment = dispatcher_controller.create_dispatcher_assignment(
            organization.id, data['user_id'], data['scope'], day, start, end,
            is_backup=bool(data.get('is_backup', False)),
            notes=data.get('notes'),
            created_by_id=current_user.id,
        )
        return api_success(assignment.to_dict(), "Dispatcher assigned", status_code=201)
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("assign dispatcher", e)


@api_v2.route('/dispatcher-assignments/claim', methods=['POST'])
@jwt_required_secure()
def claim_dispatcher_slot():
    """
    Claim a dispatcher slot for the current user.

    Expected JSON body:
    {
        "scope": "Durham" | "ALL",
        "date": "2025-03-10",
        "start_time": "06:00",
        "end_time": "10:00",
        "notes": "optional"
    }

    Claims are always primary. The caller must hold the DISPATCHER
    qualification; the usual mode, closure, slot and conflict checks apply.
    """
    data, error = validate_json_request_secure(required_fields=['scope', 'date', 'start_time', 'end_time'])
    if error:
        return error

    organization = current_user.organization
    try:
        day = date_arg(data['date'], 'date')
        start, end = window_args(organization, day, data['start_time'], data['end_time'])
        assignment = dispatcher_controller.create_dispatcher_assignment(
            organization.id, current_user.id, data['scope'], day, start, end,
            is_backup=False,
            notes=data.get('notes'),
            created_by_id=current_user.id,
        )
        return api_success(assignment.to_dict(), "Dispatcher slot claimed", status_code=201)
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("claim dispatcher slot", e)


@api_v2.route('/dispatcher-assignments/<int:assignment_id>', methods=['PUT'])
@jwt_required_secure()
@coordinator_required
def update_dispatcher_assignment(assignment_id):
    """Change user, scope, window, backup flag or notes of an assignment."""
    data, error = validate_json_request_secure()
    if error:
        return error

    assignment = dispatcher_controller.get_dispatcher_assignment(assignment_id)
    if not _in_organization(assignment):
        return api_error("Dispatcher assignment not found", status_code=404)

    try:
        fields = {key: data[key] for key in ('user_id', 'scope', 'is_backup', 'notes') if key in data}
        fields.update(window_update_fields(current_user.organization, assignment, data))
        updated = dispatcher_controller.update_dispatcher_assignment(assignment_id, **fields)
        return api_success(updated.to_dict(), "Dispatcher assignment updated")
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("update dispatcher assignment", e)


@api_v2.route('/dispatcher-assignments/<int:assignment_id>', methods=['DELETE'])
@jwt_required_secure()
@coordinator_required
def delete_dispatcher_assignment(assignment_id):
    if not _in_organization(dispatcher_controller.get_dispatcher_assignment(assignment_id)):
        return api_error("Dispatcher assignment not found", status_code=404)
    try:
        snapshot = dispatcher_controller.delete_dispatcher_assignment(assignment_id)
        return api_success(snapshot, "Dispatcher assignment removed")
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("remove dispatcher assignment", e)


@api_v2.route('/dispatcher-assignments/<int:assignment_id>/primary', methods=['POST'])
@jwt_required_secure()
@coordinator_required
def promote_dispatcher(assignment_id):
    """Promote a backup dispatcher to primary for its slot."""
    if not _in_organization(dispatcher_controller.get_dispatcher_assignment(assignment_id)):
        return api_error("Dispatcher assignment not found", status_code=404)
    try:
        assignment = dispatcher_controller.set_dispatcher_primary(assignment_id)
        return api_success(assignment.to_dict(), "Dispatcher is now primary")
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("promote dispatcher", e)


@api_v2.route('/dispatcher-assignments/bulk', methods=['POST'])
@jwt_required_secure()
@coordinator_required
def bulk_assign_dispatcher():
    """
    Assign one dispatcher to several counties for the same window.

    Expected JSON body:
    {
        "user_id": 12,
        "date": "2025-03-10",
        "start_time": "06:00",
        "end_time": "10:00",
        "counties": ["Durham", "Wake"],   (optional, defaults to every county)
        "is_backup": false
    }

    Counties are committed one by one; the response lists what was created,
    what was already in place and what failed.
    """
    data, error = validate_json_request_secure(required_fields=['user_id', 'date', 'start_time', 'end_time'])
    if error:
        return error

    organization = current_user.organization
    try:
        day = date_arg(data['date'], 'date')
        start, end = window_args(organization, day, data['start_time'], data['end_time'])
        result = dispatcher_controller.bulk_assign_across_counties(
            organization.id, data['user_id'], day, start, end,
            counties=data.get('counties'),
            is_backup=bool(data.get('is_backup', False)),
            notes=data.get('notes'),
            created_by_id=current_user.id,
        )
        message = "Dispatcher assigned" if result.ok else "Dispatcher assigned with errors"
        return api_success(result.to_dict(), message, status_code=201 if result.created else 200)
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("bulk assign dispatcher", e)


# ---------------------------------------------------------------- regional leads

@api_v2.route('/regional-lead-assignments', methods=['GET'])
@jwt_required_secure()
def list_regional_lead_assignments():
    try:
        start, end = _date_range_args()
        assignments = lead_controller.list_regional_lead_assignments(current_user.organization_id, start, end)
        return api_success([assignment.to_dict() for assignment in assignments])
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("retrieve regional lead assignments", e)


@api_v2.route('/regional-lead-assignments', methods=['POST'])
@jwt_required_secure()
def create_regional_lead_assignment():
    """
    Assign a regional lead for a date.

    Expected JSON body:
    {
        "user_id": 7,            (optional, defaults to the current user)
        "date": "2025-03-10",
        "start_time": "06:00",   (optional, defaults to the span of the time blocks)
        "end_time": "22:00",
        "is_primary": true
    }

    Anyone holding the REGIONAL_LEAD qualification may sign themselves up;
    assigning someone else takes a coordinator. ``is_primary`` defaults to
    true for coordinator assignments and false for self-signups.
    """
    data, error = validate_json_request_secure(required_fields=['date'])
    if error:
        return error

    user_id = data.get('user_id') or current_user.id
    self_signup = user_id == current_user.id
    if not self_signup and not current_user.is_coordinator():
        return api_error("Only coordinators can assign other users", {"code": "PERMISSION_DENIED"}, status_code=403)

    organization = current_user.organization
    try:
        day = date_arg(data['date'], 'date')
        start = end = None
        if data.get('start_time') or data.get('end_time'):
            start, end = window_args(organization, day, data.get('start_time'), data.get('end_time'))
        assignment = lead_controller.create_regional_lead_assignment(
            organization.id, user_id, day, start, end,
            is_primary=bool(data.get('is_primary', not self_signup)),
            notes=data.get('notes'),
            created_by_id=current_user.id,
        )
        return api_success(assignment.to_dict(), "Regional lead assigned", status_code=201)
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("assign regional lead", e)


@api_v2.route('/regional-lead-assignments/<int:assignment_id>', methods=['PUT'])
@jwt_required_secure()
@coordinator_required
def update_regional_lead_assignment(assignment_id):
    data, error = validate_json_request_secure()
    if error:
        return error

    assignment = lead_controller.get_regional_lead_assignment(assignment_id)
    if not _in_organization(assignment):
        return api_error("Regional lead assignment not found", status_code=404)

    try:
        fields = {key: data[key] for key in ('user_id', 'is_primary', 'notes') if key in data}
        fields.update(window_update_fields(current_user.organization, assignment, data, carry_times=False))
        updated = lead_controller.update_regional_lead_assignment(assignment_id, **fields)
        return api_success(updated.to_dict(), "Regional lead assignment updated")
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("update regional lead assignment", e)


@api_v2.route('/regional-lead-assignments/<int:assignment_id>', methods=['DELETE'])
@jwt_required_secure()
@coordinator_required
def delete_regional_lead_assignment(assignment_id):
    if not _in_organization(lead_controller.get_regional_lead_assignment(assignment_id)):
        return api_error("Regional lead assignment not found", status_code=404)
    try:
        snapshot = lead_controller.delete_regional_lead_assignment(assignment_id)
        return api_success(snapshot, "Regional lead assignment removed")
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("remove regional lead assignment", e)


@api_v2.route('/regional-lead-assignments/<int:assignment_id>/primary', methods=['POST'])
@jwt_required_secure()
@coordinator_required
def promote_regional_lead(assignment_id):
    if not _in_organization(lead_controller.get_regional_lead_assignment(assignment_id)):
        return api_error("Regional lead assignment not found", status_code=404)
    try:
        assignment = lead_controller.set_regional_lead_primary(assignment_id)
        return api_success(assignment.to_dict(), "Regional lead is now primary")
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("promote regional lead", e)
