"""
Data transformation service for converting between database models and the
coverage engine's value types.

Controllers and read services go through this class so that the engine only
ever sees plain dataclasses: grid blocks, override records, commitments and
cell fills.
"""

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
import logging

from flask import current_app, has_app_context

from App.database import db
from App.models import (
    CoverageRequirement, DateOverride, DispatcherAssignment, Organization, RegionalLeadAssignment,
    Shift, Signup, TimeBlock as DbTimeBlock,
)
from App.models.shift import CANCELLED
from App.utils.time_utils import local_hours
from coverage_engine import (
    ACTIVE_STATUSES, CellFill, CellRequirements, Commitment, OverrideIndex, RoleType, TimeBlock,
    bucket_block, date_range,
)
from coverage_engine.conflicts import DISPATCHER, REGIONAL_LEAD, SIGNUP

logger = logging.getLogger(__name__)

ACTIVE_STATUS_VALUES = tuple(status.value for status in ACTIVE_STATUSES)
FALLBACK_TIME_BLOCKS = ((6, 10), (10, 14), (14, 18), (18, 22))


class DataTransformationService:
    """
    Service for transforming Flask application data to coverage_engine types.

    This keeps the engine free of SQLAlchemy while giving controllers a single
    place to ask "what does this user already hold on this date".
    """

    @staticmethod
    def time_blocks(organization: Organization) -> List[TimeBlock]:
        """The organization's ordered time blocks, or the configured defaults."""
        rows: Sequence[DbTimeBlock] = organization.time_blocks
        if rows:
            return [row.to_block() for row in rows]
        defaults = FALLBACK_TIME_BLOCKS
        if has_app_context():
            defaults = current_app.config.get('DEFAULT_TIME_BLOCKS', FALLBACK_TIME_BLOCKS)
        return [TimeBlock(start_hour=start, end_hour=end) for start, end in defaults]

    @staticmethod
    def override_index(organization_id: int, start: date, end: date) -> OverrideIndex:
        rows = (
            DateOverride.query
            .filter(
                DateOverride.organization_id == organization_id,
                DateOverride.date >= start,
                DateOverride.date <= end,
            )
            .all()
        )
        return OverrideIndex(row.to_record() for row in rows)

    @staticmethod
    def user_commitments(user_id: int, day: date) -> List[Commitment]:
        """
        Active commitments a user holds on ``day``.

        Includes PENDING/CONFIRMED signups on shifts that are not cancelled,
        and every dispatcher or regional lead assignment, backups included.
        """
        commitments: List[Commitment] = []

        signups = (
            db.session.query(Signup, Shift)
            .join(Shift, Signup.shift_id == Shift.id)
            .filter(
                Signup.user_id == user_id,
                Signup.status.in_(ACTIVE_STATUS_VALUES),
                Shift.date == day,
                Shift.status != CANCELLED,
            )
            .all()
        )
        for signup, shift in signups:
            commitments.append(Commitment(
                kind=SIGNUP,
                record_id=signup.id,
                window=shift.window(),
                label=f"{signup.role_type} shift {shift.id}",
            ))

        dispatches = DispatcherAssignment.query.filter_by(user_id=user_id, date=day).all()
        for assignment in dispatches:
            commitments.append(Commitment(
                kind=DISPATCHER,
                record_id=assignment.id,
                window=assignment.window(),
                is_backup=assignment.is_backup,
                scope=assignment.scope,
                label=f"dispatcher {assignment.scope}",
            ))

        leads = RegionalLeadAssignment.query.filter_by(user_id=user_id, date=day).all()
        for assignment in leads:
            commitments.append(Commitment(
                kind=REGIONAL_LEAD,
                record_id=assignment.id,
                window=assignment.window(),
                is_backup=assignment.is_backup,
                label="regional lead",
            ))
        return commitments

    @staticmethod
    def active_signups_by_shift(shift_ids: Iterable[int]) -> Dict[int, List[Signup]]:
        shift_ids = list(shift_ids)
        grouped: Dict[int, List[Signup]] = defaultdict(list)
        if not shift_ids:
            return grouped
        rows = (
            Signup.query
            .filter(Signup.shift_id.in_(shift_ids), Signup.status.in_(ACTIVE_STATUS_VALUES))
            .order_by(Signup.created_at)
            .all()
        )
        for signup in rows:
            grouped[signup.shift_id].append(signup)
        return grouped

    @staticmethod
    def requirements_by_cell(organization_id: int, zone_ids: Iterable[int], start: date, end: date,
                             blocks: Sequence[TimeBlock]) -> Dict[Tuple[int, date, str], CellRequirements]:
        """Standing requirements keyed like zone grid cells, for every date in the range."""
        zone_ids = list(zone_ids)
        if not zone_ids or not blocks:
            return {}
        rows = CoverageRequirement.query.filter(
            CoverageRequirement.organization_id == organization_id,
            CoverageRequirement.zone_id.in_(zone_ids),
            CoverageRequirement.is_active.is_(True),
        ).all()

        by_weekday = defaultdict(list)
        for row in rows:
            block = bucket_block(row.start_hour, row.end_hour, blocks)
            by_weekday[row.day_of_week].append((row.zone_id, block.key, row.requirements()))

        cells: Dict[Tuple[int, date, str], CellRequirements] = {}
        for day in date_range(start, end):
            for zone_id, block_key, requirements in by_weekday.get(day.weekday(), ()):
                key = (zone_id, day, block_key)
                cells[key] = cells[key].merge(requirements) if key in cells else requirements
        return cells

    @staticmethod
    def cell_fill(signups: Iterable[Signup]) -> CellFill:
        has_dispatcher = has_zone_lead = False
        verifiers = 0
        for signup in signups:
            if signup.role_type == RoleType.DISPATCHER.value:
                has_dispatcher = True
            elif signup.role_type == RoleType.ZONE_LEAD.value:
                has_zone_lead = True
            elif signup.role_type == RoleType.VERIFIER.value:
                verifiers += 1
        return CellFill(has_dispatcher=has_dispatcher, has_zone_lead=has_zone_lead, verifier_count=verifiers)

    @staticmethod
    def bucket_for(start_time, end_time, day: date, blocks: Sequence[TimeBlock],
                   tz_name: str) -> Optional[TimeBlock]:
        """Nearest covering block for a stored UTC window on a local date."""
        start_hour, end_hour = local_hours(start_time, end_time, day, tz_name)
        return bucket_block(start_hour, end_hour, blocks)

    @staticmethod
    def overlapping_blocks(start_time, end_time, day: date, blocks: Sequence[TimeBlock],
                           tz_name: str) -> List[TimeBlock]:
        """Every block an assignment window overlaps; falls back to the nearest block."""
        start_hour, end_hour = local_hours(start_time, end_time, day, tz_name)
        covered = [block for block in blocks if block.overlap(start_hour, end_hour) > 0]
        if covered:
            return covered
        nearest = bucket_block(start_hour, end_hour, blocks)
        return [nearest] if nearest else []

    @staticmethod
    def block_span(blocks: Sequence[TimeBlock]) -> Optional[Tuple[int, int]]:
        if not blocks:
            return None
        return min(block.start_hour for block in blocks), max(block.end_hour for block in blocks)
