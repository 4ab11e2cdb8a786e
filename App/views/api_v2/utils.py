from functools import wraps
import logging
import os

from flask import current_app, jsonify, request
from flask_jwt_extended import current_user, verify_jwt_in_request

from App.utils.time_utils import local_hours, local_window, parse_date, parse_local_time
from coverage_engine import SchedulingError, ValidationFailed

logger = logging.getLogger(__name__)


def api_success(data=None, message=None, status_code=200):
    """
    Standardized success response format for API v2

    Args:
        data: The data to return (dict, list, or None)
        message: Optional success message
        status_code: HTTP status code (default: 200)

    Returns:
        Flask response with JSON and status code
    """
    response = {
        "success": True,
        "data": data if data is not None else {}
    }
    if message:
        response["message"] = message
    return jsonify(response), status_code


def api_error(message="An error occurred", errors=None, status_code=400):
    """
    Standardized error response format for API v2

    Args:
        message: Error message to display
        errors: Optional dict/list of detailed errors
        status_code: HTTP status code (default: 400)
    """
    response = {
        "success": False,
        "message": message
    }
    if errors:
        response["errors"] = errors
    return jsonify(response), status_code


def scheduling_error(error: SchedulingError):
    """Render a rejected scheduling operation with its code and HTTP status."""
    return api_error(error.message, errors=error.to_dict(), status_code=error.status_code)


def server_error(action, error):
    logger.exception(
        'API v2 request failed',
        extra={'event': 'api_error', 'action': action, 'path': request.path, 'error': str(error)},
    )
    return api_error(f"Failed to {action}", status_code=500)


def _enforce_production_security():
    """Reject plain-HTTP API calls when secure cookies are enabled."""
    if not current_app.config.get("JWT_COOKIE_SECURE", False):
        return None
    forwarded_proto = (request.headers.get('X-Forwarded-Proto') or '').lower()
    if not request.is_secure and forwarded_proto != 'https':
        return api_error("Secure connection required for API v2 in production", status_code=400)
    return None


def jwt_required_secure():
    """
    JWT guard for API v2 routes.

    Verifies the token (header or cookie), enforces HTTPS in production and
    answers with the JSON error envelope instead of raising.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                verify_jwt_in_request()
            except Exception as e:
                logger.warning(
                    'API v2 authentication failed',
                    extra={'event': 'security_auth_failure', 'path': request.path, 'reason': str(e)},
                )
                return api_error(
                    "Authentication required",
                    errors={"auth": "Invalid or missing authentication token"},
                    status_code=401
                )
            if current_user is None:
                return api_error("Authentication required", errors={"auth": "Unknown user"}, status_code=401)

            if os.environ.get('ENV', 'development') == 'production':
                enforcement_error = _enforce_production_security()
                if enforcement_error:
                    return enforcement_error
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def validate_json_request_secure(required_fields=None):
    """
    JSON body validation for API v2

    Args:
        required_fields: List of required field names

    Returns:
        tuple: (data, error_response) - data will be None if error
    """
    if not request.is_json:
        return None, api_error(
            "Request must include JSON body with Content-Type: application/json",
            status_code=400
        )

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None, api_error("Request body must contain valid JSON", status_code=400)

    if required_fields:
        missing_fields = [field for field in required_fields if data.get(field) is None]
        if missing_fields:
            return None, api_error(
                "Missing required fields",
                errors=dict.fromkeys(missing_fields, "Required"),
                status_code=400
            )
    return data, None


def date_arg(value, field):
    """Parse a YYYY-MM-DD value or raise ``ValidationFailed`` naming the field."""
    try:
        return parse_date(value)
    except ValueError as e:
        raise ValidationFailed(str(e), field=field) from e


def window_args(organization, day, start_value, end_value):
    """Resolve local HH:MM times on an organization-local date into UTC instants."""
    try:
        return local_window(
            day, parse_local_time(start_value), parse_local_time(end_value), organization.timezone
        )
    except ValueError as e:
        raise ValidationFailed(str(e), field='start_time') from e


def window_update_fields(organization, record, data, carry_times=True):
    """
    Controller keyword arguments for a partial window change on ``record``.

    Missing times are taken from the record's current local wall-clock times.
    With ``carry_times`` those times also move onto a new date; otherwise a
    bare date change is passed through alone.
    """
    fields = {}
    day = record.date
    if data.get('date') is not None:
        day = fields['date'] = date_arg(data['date'], 'date')
    times_given = 'start_time' in data or 'end_time' in data
    if times_given or (carry_times and 'date' in fields):
        current_start, current_end = local_hours(
            record.start_time, record.end_time, record.date, organization.timezone
        )
        fields['start_time'], fields['end_time'] = window_args(
            organization, day,
            data.get('start_time') or current_start,
            data.get('end_time') or current_end,
        )
    return fields
