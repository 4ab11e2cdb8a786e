import logging

from flask import request
from flask_jwt_extended import current_user

from App.controllers import signup as signup_controller
from App.controllers.shift import get_shift
from App.middleware import coordinator_required
from App.views.api_v2 import api_v2
from App.views.api_v2.utils import (
    api_error,
    api_success,
    date_arg,
    jwt_required_secure,
    scheduling_error,
    server_error,
    validate_json_request_secure,
)
from coverage_engine import SchedulingError

logger = logging.getLogger(__name__)


def _signup_payload(signup):
    payload = signup.to_dict()
    if signup.shift is not None:
        payload['shift'] = signup.shift.to_dict()
    return payload


def _signup_in_organization(signup_id):
    signup = signup_controller.get_signup(signup_id)
    if signup is None or signup.shift is None:
        return None
    if signup.shift.organization_id != current_user.organization_id:
        return None
    return signup


@api_v2.route('/shifts/<int:shift_id>/signups', methods=['POST'])
@jwt_required_secure()
def sign_up_for_shift(shift_id):
    """
    Claim a position on a shift for the current user.

    Expected JSON body:
    {
        "role_type": "VERIFIER" | "DISPATCHER" | "ZONE_LEAD",
        "notes": "optional"
    }

    Returns:
        Success: the signup and the shift's refreshed counts
        Error: SHIFT_NOT_OPEN, DATE_CLOSED, UNQUALIFIED, DUPLICATE_SIGNUP,
        CAPACITY_EXCEEDED, SLOT_OCCUPIED or TIME_CONFLICT
    """
    data, error = validate_json_request_secure(required_fields=['role_type'])
    if error:
        return error

    shift = get_shift(shift_id)
    if not shift or shift.organization_id != current_user.organization_id:
        return api_error("Shift not found", status_code=404)

    try:
        signup = signup_controller.create_signup(
            shift_id, current_user.id, data['role_type'], notes=data.get('notes')
        )
        return api_success({
            'signup': signup.to_dict(),
            'counts': signup_controller.get_shift_counts(signup.shift),
        }, "Signed up successfully", status_code=201)
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("create signup", e)


@api_v2.route('/shifts/<int:shift_id>/signups', methods=['GET'])
@jwt_required_secure()
def get_shift_signups(shift_id):
    shift = get_shift(shift_id)
    if not shift or shift.organization_id != current_user.organization_id:
        return api_error("Shift not found", status_code=404)

    include_inactive = request.args.get('include_inactive', 'false').lower() == 'true'
    signups = signup_controller.list_shift_signups(shift_id, include_inactive=include_inactive)
    return api_success({
        'shift': shift.to_dict(),
        'signups': [signup.to_dict() for signup in signups],
        'counts': signup_controller.get_shift_counts(shift),
    })


@api_v2.route('/shifts/<int:shift_id>/add-volunteer', methods=['POST'])
@jwt_required_secure()
@coordinator_required
def add_volunteer_to_shift(shift_id):
    """
    Put another member of the organization on a shift, already confirmed.

    Expected JSON body:
    {
        "user_id": 12,
        "role_type": "VERIFIER",   (optional, defaults to VERIFIER)
        "notes": "optional"
    }

    The same rules as a self-signup apply; only the starting status differs.
    """
    data, error = validate_json_request_secure(required_fields=['user_id'])
    if error:
        return error

    shift = get_shift(shift_id)
    if not shift or shift.organization_id != current_user.organization_id:
        return api_error("Shift not found", status_code=404)

    try:
        signup = signup_controller.create_signup(
            shift_id, data['user_id'], data.get('role_type', 'VERIFIER'),
            notes=data.get('notes'), confirmed=True,
        )
        return api_success({
            'signup': signup.to_dict(),
            'counts': signup_controller.get_shift_counts(signup.shift),
        }, "Volunteer added", status_code=201)
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("add volunteer", e)


@api_v2.route('/signups/<int:signup_id>', methods=['PATCH'])
@jwt_required_secure()
def update_signup_status(signup_id):
    """
    Move a signup to a new status.

    Expected JSON body:
    {
        "status": "PENDING" | "CONFIRMED" | "DECLINED" | "NO_SHOW"
    }

    Volunteers may only decline their own signups; coordinators may make
    any allowed transition.
    """
    data, error = validate_json_request_secure(required_fields=['status'])
    if error:
        return error

    if _signup_in_organization(signup_id) is None:
        return api_error("Signup not found", status_code=404)

    try:
        signup = signup_controller.transition_signup(signup_id, data['status'], current_user)
        return api_success(_signup_payload(signup), "Signup updated")
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("update signup", e)


@api_v2.route('/signups/<int:signup_id>', methods=['DELETE'])
@jwt_required_secure()
def cancel_signup(signup_id):
    """Cancel a signup; the record is kept as DECLINED."""
    if _signup_in_organization(signup_id) is None:
        return api_error("Signup not found", status_code=404)
    try:
        signup = signup_controller.cancel_signup(signup_id, current_user)
        return api_success(_signup_payload(signup), "Signup cancelled")
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("cancel signup", e)


@api_v2.route('/signups/mine', methods=['GET'])
@jwt_required_secure()
def get_my_signups():
    """
    The current user's signups, optionally limited to a date range.

    Query params:
        start_date, end_date: YYYY-MM-DD (optional)
    """
    try:
        start_raw, end_raw = request.args.get('start_date'), request.args.get('end_date')
        signups = signup_controller.list_user_signups(
            current_user.id,
            start=date_arg(start_raw, 'start_date') if start_raw else None,
            end=date_arg(end_raw, 'end_date') if end_raw else None,
        )
        return api_success([_signup_payload(signup) for signup in signups])
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("retrieve signups", e)
