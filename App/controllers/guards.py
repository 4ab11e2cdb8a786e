"""Checks shared by the scheduling write paths."""
import logging

from sqlalchemy.exc import IntegrityError

from App.database import db, lock_row
from App.models import User
from App.services.data_transformation_service import DataTransformationService
from coverage_engine import DateClosed, NotFound

logger = logging.getLogger(__name__)


def require(model, ident, label=None, lock=False):
    """Load a row by id or raise ``NotFound``; ``lock`` holds a row lock until commit."""
    instance = lock_row(model, ident) if lock else db.session.get(model, ident)
    if instance is None:
        raise NotFound(f"{label or model.__name__} {ident} not found", id=ident)
    return instance


def require_member(user_id, organization_id, lock=False):
    """Load a user of ``organization_id``; users of other organizations read as missing."""
    user = require(User, user_id, 'User', lock=lock)
    if user.organization_id != organization_id:
        raise NotFound(f"User {user_id} not found", id=user_id)
    return user


def flush_or_raise(error_factory):
    """Flush pending writes, reporting a unique-index race as a scheduling error.

    A concurrent writer that passed the same checks will trip one of the
    partial unique indexes; the loser sees the same error a sequential
    request would have.
    """
    try:
        db.session.flush()
    except IntegrityError as exc:
        logger.warning(
            'Unique index rejected write',
            extra={'event': 'write_race_lost', 'error': str(exc.orig)},
        )
        raise error_factory() from exc


def ensure_date_open(organization_id, day, zone_id=None, whole_day_only=False):
    """Raise ``DateClosed`` when a CLOSURE override covers ``day`` (and ``zone_id``)."""
    index = DataTransformationService.override_index(organization_id, day, day)
    closure = index.global_closure(day) if whole_day_only else index.closure_for(day, zone_id)
    if closure is not None:
        reason = f": {closure.reason}" if closure.reason else ""
        raise DateClosed(f"{day.isoformat()} is closed{reason}", date=day.isoformat(), reason=closure.reason)
