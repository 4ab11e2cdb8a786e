import logging

from flask import request
from flask_jwt_extended import current_user

from App.controllers import date_override as override_controller
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
from coverage_engine import SchedulingError, ValidationFailed

logger = logging.getLogger(__name__)


@api_v2.route('/date-overrides', methods=['GET'])
@jwt_required_secure()
def list_date_overrides():
    """
    Query params:
        start_date, end_date: YYYY-MM-DD (required)
        zone_id: only overrides for this zone plus global ones (optional)
    """
    try:
        start_raw, end_raw = request.args.get('start_date'), request.args.get('end_date')
        if not start_raw or not end_raw:
            raise ValidationFailed("start_date and end_date are required")
        overrides = override_controller.list_date_overrides(
            current_user.organization_id,
            date_arg(start_raw, 'start_date'),
            date_arg(end_raw, 'end_date'),
            zone_id=request.args.get('zone_id', type=int),
        )
        return api_success([override.to_dict() for override in overrides])
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("retrieve date overrides", e)


@api_v2.route('/date-overrides', methods=['POST'])
@jwt_required_secure()
@coordinator_required
def create_date_override():
    """
    Close a date, or annotate it with adjusted requirements.

    Expected JSON body:
    {
        "date": "2025-03-10",
        "type": "CLOSURE" | "ADJUST_REQUIREMENTS" | "SPECIAL_EVENT",
        "reason": "Ice storm",
        "zone_id": 3,                  (optional; omit for the whole organization)
        "slot_adjustments": {"06-10": {"min_volunteers": 1}}   (optional)
    }
    """
    data, error = validate_json_request_secure(required_fields=['date', 'type'])
    if error:
        return error

    try:
        override = override_controller.create_date_override(
            current_user.organization_id,
            date_arg(data['date'], 'date'),
            data['type'],
            reason=data.get('reason', ''),
            zone_id=data.get('zone_id'),
            slot_adjustments=data.get('slot_adjustments'),
            created_by_id=current_user.id,
        )
        return api_success(override.to_dict(), "Date override created", status_code=201)
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("create date override", e)


@api_v2.route('/date-overrides/<int:override_id>', methods=['DELETE'])
@jwt_required_secure()
@coordinator_required
def delete_date_override(override_id):
    override = override_controller.get_date_override(override_id)
    if override is None or override.organization_id != current_user.organization_id:
        return api_error("Date override not found", status_code=404)
    try:
        snapshot = override_controller.delete_date_override(override_id)
        return api_success(snapshot, "Date override removed")
    except SchedulingError as e:
        return scheduling_error(e)
    except Exception as e:
        return server_error("remove date override", e)
