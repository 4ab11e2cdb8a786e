"""
Coverage read service.

Builds the week coverage grid and the coordinator schedule from live rows.
Nothing is cached: the grid is rebuilt from the time blocks, zones, standing
requirements, overrides, shifts, signups and assignments on every call.
"""

from collections import defaultdict
from datetime import date
from functools import reduce
from typing import Any, Dict, List, Optional, Sequence
import logging

from flask import current_app, has_app_context

from App.database import db
from App.models import (
    DispatcherAssignment, Organization, RegionalLeadAssignment, Shift, Zone,
)
from App.models.shift import PUBLISHED
from App.utils.performance_monitor import performance_monitor
from App.utils.time_utils import local_today, parse_date
from coverage_engine import (
    REGION_SCOPE, CellFill, CellRequirements, Coverage, CoverageStats, DispatcherMode,
    NotFound, TimeBlock, ValidationFailed, aggregate, apply_overrides, build_scope_grid,
    build_zone_grid, classify, classify_scope, date_range, find_gap, week_bounds,
)
from .data_transformation_service import DataTransformationService

logger = logging.getLogger(__name__)

DAY_NAMES = ['Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday']
UNASSIGNED_COUNTY = 'Unassigned'


def _coverage_value(coverage: Optional[Coverage]) -> Optional[str]:
    return coverage.value if coverage is not None else None


def _person(assignment) -> Dict[str, Any]:
    return {
        'assignment_id': assignment.id,
        'user_id': assignment.user_id,
        'name': assignment.user.name if assignment.user else None,
        'notes': assignment.notes,
    }


class CoverageService:
    """
    Service that answers "who covers what" for a week or a date range.

    Zone coverage and dispatcher / regional lead coverage are computed
    separately and returned side by side.
    """

    def __init__(self):
        self.data_transformer = DataTransformationService()

    # ------------------------------------------------------------------ loading

    @staticmethod
    def _organization(organization_id: int) -> Organization:
        organization = db.session.get(Organization, organization_id)
        if organization is None:
            raise NotFound(f"Organization {organization_id} not found", id=organization_id)
        return organization

    @staticmethod
    def _zones(organization_id: int, county: Optional[str] = None) -> List[Zone]:
        query = Zone.query.filter_by(organization_id=organization_id, is_active=True)
        if county:
            query = query.filter_by(county=county)
        return query.all()

    @staticmethod
    def _published_shifts(organization_id: int, start: date, end: date, zone_ids) -> List[Shift]:
        if not zone_ids:
            return []
        return (
            Shift.query
            .filter(
                Shift.organization_id == organization_id,
                Shift.date >= start,
                Shift.date <= end,
                Shift.status == PUBLISHED,
                Shift.zone_id.in_(list(zone_ids)),
            )
            .order_by(Shift.start_time)
            .all()
        )

    def _shifts_by_cell(self, shifts, blocks: Sequence[TimeBlock], tz_name: str):
        cells = defaultdict(list)
        for shift in shifts:
            block = self.data_transformer.bucket_for(shift.start_time, shift.end_time, shift.date, blocks, tz_name)
            if block is not None:
                cells[(shift.zone_id, shift.date, block.key)].append(shift)
        return cells

    def _assignments_by_cell(self, assignments, blocks, tz_name, scope_of):
        cells = defaultdict(list)
        for assignment in assignments:
            for block in self.data_transformer.overlapping_blocks(
                assignment.start_time, assignment.end_time, assignment.date, blocks, tz_name
            ):
                cells[(scope_of(assignment), assignment.date, block.key)].append(assignment)
        return cells

    # ------------------------------------------------------------ classification

    def _zone_cell(self, shifts: List[Shift], signups_by_shift, mode: DispatcherMode,
                   standing: Optional[CellRequirements] = None) -> Dict[str, Any]:
        """
        Classify one (zone, date, block) cell.

        The standing requirement applies whether or not shifts are published;
        shifts lay their own needs over it. A cell with neither is unscheduled
        and has ``None`` coverage.
        """
        if not shifts and standing is None:
            return {'scheduled': False, 'coverage': None, 'gap': None, 'fill': None, 'requirements': None, 'shifts': []}

        requirements = standing
        if shifts:
            scheduled = reduce(CellRequirements.merge, (shift.requirements() for shift in shifts))
            requirements = standing.overlay(scheduled) if standing is not None else scheduled
        fill = reduce(
            CellFill.merge,
            (self.data_transformer.cell_fill(signups_by_shift.get(shift.id, ())) for shift in shifts),
            CellFill(),
        )
        return {
            'scheduled': True,
            'coverage': classify(requirements, fill, mode),
            'gap': find_gap(requirements, fill, mode),
            'fill': fill,
            'requirements': requirements,
            'shifts': shifts,
        }

    @staticmethod
    def _shift_summary(shift: Shift, signups) -> Dict[str, Any]:
        return {
            'id': shift.id,
            'title': shift.title,
            'shift_type': shift.shift_type,
            'start_time': shift.start_time.isoformat(),
            'end_time': shift.end_time.isoformat(),
            'min_volunteers': shift.min_volunteers,
            'ideal_volunteers': shift.ideal_volunteers,
            'max_volunteers': shift.max_volunteers,
            'meeting_location': shift.meeting_location,
            'signups': [
                {
                    'id': signup.id,
                    'user_id': signup.user_id,
                    'name': signup.user.name if signup.user else None,
                    'role_type': signup.role_type,
                    'status': signup.status,
                }
                for signup in signups
            ],
        }

    @staticmethod
    def _people(signups, role: str) -> List[Dict[str, Any]]:
        return [
            {'signup_id': s.id, 'user_id': s.user_id, 'name': s.user.name if s.user else None, 'status': s.status}
            for s in signups if s.role_type == role
        ]

    def _slot_payload(self, active_cell, result, signups_by_shift) -> Dict[str, Any]:
        cell = active_cell.cell
        gap = result['gap']
        requirements = result['requirements']
        fill = result['fill']
        return {
            'zone_id': cell.zone.id,
            'zone_name': cell.zone.name,
            'county': cell.zone.county,
            'block': cell.block.key,
            'label': cell.block.label,
            'start_hour': cell.block.start_hour,
            'end_hour': cell.block.end_hour,
            'is_closed': not active_cell.active,
            'closure_reason': active_cell.closure_reason,
            'annotations': [record.to_dict() for record in active_cell.annotations],
            'scheduled': result['scheduled'],
            'coverage': None if not active_cell.active else _coverage_value(result['coverage']),
            'gaps': gap.describe() if gap is not None and active_cell.active else [],
            'gap': gap.to_dict() if gap is not None and active_cell.active else None,
            'needs_dispatcher': requirements.needs_dispatcher if requirements else False,
            'needs_zone_lead': requirements.needs_zone_lead if requirements else False,
            'volunteer_count': fill.verifier_count if fill else 0,
            'volunteer_target': requirements.min_volunteers if requirements else 0,
            'shifts': [
                self._shift_summary(shift, signups_by_shift.get(shift.id, ()))
                for shift in result['shifts']
            ],
        }

    def _scope_payload(self, assignments) -> Dict[str, Any]:
        primaries = [a for a in assignments if not a.is_backup]
        backups = [a for a in assignments if a.is_backup]
        return {
            'coverage': classify_scope(bool(primaries), len(backups)).value,
            'primary': _person(primaries[0]) if primaries else None,
            'backups': [_person(a) for a in backups],
        }

    # -------------------------------------------------------------- week view

    @performance_monitor("get_week_coverage", log_slow_threshold=1.0)
    def get_week_coverage(self, organization_id: int, week_date, today: Optional[date] = None) -> Dict[str, Any]:
        """
        Coverage for the Monday-to-Sunday week containing ``week_date``.

        Returns ``days``, ``counties``, ``time_slots``, ``coordinator_coverage``
        and ``stats``. Stats only count today and later; closed cells never count.
        """
        organization = self._organization(organization_id)
        tz_name = organization.timezone
        mode = organization.mode
        monday, sunday = week_bounds(parse_date(week_date))
        today = today or local_today(tz_name)

        blocks = self.data_transformer.time_blocks(organization)
        zones = self._zones(organization.id)
        overrides = self.data_transformer.override_index(organization.id, monday, sunday)
        active_cells = apply_overrides(
            build_zone_grid(monday, sunday, blocks, [zone.to_ref() for zone in zones]), overrides
        )

        shifts = self._published_shifts(organization.id, monday, sunday, [zone.id for zone in zones])
        signups_by_shift = self.data_transformer.active_signups_by_shift(shift.id for shift in shifts)
        shifts_by_cell = self._shifts_by_cell(shifts, blocks, tz_name)
        standing = self.data_transformer.requirements_by_cell(
            organization.id, [zone.id for zone in zones], monday, sunday, blocks
        )

        stats = CoverageStats()
        days: Dict[date, Dict[str, Any]] = {}
        block_rollup = defaultdict(list)
        county_rollup = defaultdict(list)

        for day in date_range(monday, sunday):
            closure = overrides.global_closure(day)
            days[day] = {
                'date': day.isoformat(),
                'day_of_week': DAY_NAMES[day.weekday()],
                'is_today': day == today,
                'is_past': day < today,
                'is_closed': closure is not None,
                'closure_reason': closure.reason if closure else None,
                'overrides': [record.to_dict() for record in overrides.for_date(day)],
                'slots': [],
            }

        for active_cell in active_cells:
            cell = active_cell.cell
            result = self._zone_cell(
                shifts_by_cell.get(cell.key, []), signups_by_shift, mode, standing.get(cell.key)
            )
            days[cell.date]['slots'].append(self._slot_payload(active_cell, result, signups_by_shift))
            if not active_cell.active:
                continue
            block_rollup[(cell.date, cell.block.key)].append(result['coverage'])
            county_rollup[(cell.date, cell.block.key, cell.zone.county)].append(result['coverage'])
            if cell.date >= today:
                stats.add_zone_cell(result['coverage'], result['gap'])

        for day, payload in days.items():
            payload['blocks'] = [
                {
                    'block': block.key,
                    'label': block.label,
                    'coverage': _coverage_value(aggregate(block_rollup.get((day, block.key), []))),
                    'counties': {
                        county or UNASSIGNED_COUNTY: _coverage_value(aggregate(values))
                        for (rollup_day, key, county), values in county_rollup.items()
                        if rollup_day == day and key == block.key
                    },
                }
                for block in blocks
            ]

        coordinator_coverage = self._coordinator_coverage(
            organization, monday, sunday, blocks, zones, overrides, today, stats
        )

        logger.info(
            'Week coverage computed',
            extra={
                'event': 'week_coverage',
                'organization_id': organization.id,
                'week_start': monday.isoformat(),
                'cells': len(active_cells),
                'coverage_percent': stats.coverage_percent,
            },
        )
        return {
            'week_start': monday.isoformat(),
            'week_end': sunday.isoformat(),
            'timezone': tz_name,
            'dispatcher_scheduling_mode': mode.value,
            'days': list(days.values()),
            'counties': self._county_listing(zones),
            'time_slots': [
                {'block': b.key, 'label': b.label, 'start_hour': b.start_hour, 'end_hour': b.end_hour}
                for b in blocks
            ],
            'coordinator_coverage': coordinator_coverage,
            'stats': stats.to_dict(),
        }

    @staticmethod
    def _county_listing(zones: Sequence[Zone]) -> List[Dict[str, Any]]:
        grouped = defaultdict(list)
        for zone in zones:
            grouped[zone.county or UNASSIGNED_COUNTY].append({'id': zone.id, 'name': zone.name})
        return [
            {'county': county, 'zones': sorted(grouped[county], key=lambda z: z['name'])}
            for county in sorted(grouped)
        ]

    def _coordinator_coverage(self, organization, start, end, blocks, zones, overrides, today, stats):
        """Dispatcher scope cells and regional leads per day, separate from zone coverage."""
        tz_name = organization.timezone
        counties = {zone.county for zone in zones if zone.county}
        scope_cells = build_scope_grid(start, end, blocks, organization.mode, counties)

        dispatches = DispatcherAssignment.query.filter(
            DispatcherAssignment.organization_id == organization.id,
            DispatcherAssignment.date >= start,
            DispatcherAssignment.date <= end,
        ).all()
        by_cell = self._assignments_by_cell(dispatches, blocks, tz_name, lambda a: a.scope)

        leads_by_day = defaultdict(list)
        for lead in RegionalLeadAssignment.query.filter(
            RegionalLeadAssignment.organization_id == organization.id,
            RegionalLeadAssignment.date >= start,
            RegionalLeadAssignment.date <= end,
        ):
            leads_by_day[lead.date].append(lead)

        per_day = {
            day: {'date': day.isoformat(), 'is_closed': overrides.is_date_closed(day), 'dispatchers': []}
            for day in date_range(start, end)
        }
        for cell in scope_cells:
            payload = self._scope_payload(by_cell.get(cell.key, []))
            payload.update({'scope': cell.scope, 'block': cell.block.key, 'label': cell.block.label})
            per_day[cell.date]['dispatchers'].append(payload)

        for day, payload in per_day.items():
            leads = [lead for lead in leads_by_day.get(day, []) if not lead.is_backup]
            backups = [lead for lead in leads_by_day.get(day, []) if lead.is_backup]
            payload['regional_lead'] = {
                'coverage': classify_scope(bool(leads), len(backups)).value,
                'primary': _person(leads[0]) if leads else None,
                'backups': [_person(lead) for lead in backups],
            }
            filled = sum(1 for d in payload['dispatchers'] if d['coverage'] == Coverage.FULL.value)
            payload['filled_count'] = filled
            payload['total_count'] = len(payload['dispatchers'])
            if day >= today and not payload['is_closed']:
                for dispatcher in payload['dispatchers']:
                    stats.add_scope_cell(Coverage(dispatcher['coverage']))
        return list(per_day.values())

    # ---------------------------------------------------------- schedule view

    @performance_monitor("get_schedule", log_slow_threshold=1.0)
    def get_schedule(self, organization_id: int, start_date, end_date, county: Optional[str] = None) -> Dict[str, Any]:
        """
        Coordinator assignment grid for ``start_date``..``end_date``.

        One cell per (county, date, block) holding the county dispatchers,
        per-zone leads, volunteers and shifts, the rolled-up zone coverage and
        the gaps. Regional dispatchers and regional leads are listed separately.
        """
        organization = self._organization(organization_id)
        tz_name = organization.timezone
        mode = organization.mode
        start, end = parse_date(start_date), parse_date(end_date)
        if end < start:
            raise ValidationFailed("end_date must be on or after start_date")
        max_days = current_app.config.get('SCHEDULE_MAX_RANGE_DAYS', 62) if has_app_context() else 62
        if (end - start).days + 1 > max_days:
            raise ValidationFailed(f"Date range cannot exceed {max_days} days")

        blocks = self.data_transformer.time_blocks(organization)
        zones = self._zones(organization.id, county)
        overrides = self.data_transformer.override_index(organization.id, start, end)
        active_cells = apply_overrides(build_zone_grid(start, end, blocks, [z.to_ref() for z in zones]), overrides)

        shifts = self._published_shifts(organization.id, start, end, [zone.id for zone in zones])
        signups_by_shift = self.data_transformer.active_signups_by_shift(shift.id for shift in shifts)
        shifts_by_cell = self._shifts_by_cell(shifts, blocks, tz_name)
        standing = self.data_transformer.requirements_by_cell(
            organization.id, [zone.id for zone in zones], start, end, blocks
        )

        dispatches = DispatcherAssignment.query.filter(
            DispatcherAssignment.organization_id == organization.id,
            DispatcherAssignment.date >= start,
            DispatcherAssignment.date <= end,
        ).order_by(DispatcherAssignment.date, DispatcherAssignment.start_time).all()
        dispatch_cells = self._assignments_by_cell(dispatches, blocks, tz_name, lambda a: a.scope)
        leads = RegionalLeadAssignment.query.filter(
            RegionalLeadAssignment.organization_id == organization.id,
            RegionalLeadAssignment.date >= start,
            RegionalLeadAssignment.date <= end,
        ).order_by(RegionalLeadAssignment.date).all()

        schedule: Dict[tuple, Dict[str, Any]] = {}
        for active_cell in active_cells:
            cell = active_cell.cell
            county_name = cell.zone.county or UNASSIGNED_COUNTY
            key = (county_name, cell.date, cell.block.key)
            entry = schedule.get(key)
            if entry is None:
                county_dispatch = self._scope_payload(dispatch_cells.get((county_name, cell.date, cell.block.key), []))
                entry = schedule[key] = {
                    'county': county_name,
                    'date': cell.date.isoformat(),
                    'block': cell.block.key,
                    'label': cell.block.label,
                    'is_closed': overrides.is_date_closed(cell.date),
                    'closure_reason': overrides.closure_reason(cell.date),
                    'dispatcher': county_dispatch['primary'],
                    'backup_dispatchers': county_dispatch['backups'],
                    'dispatcher_coverage': county_dispatch['coverage'],
                    'zones': [],
                    '_coverages': [],
                }

            result = self._zone_cell(
                shifts_by_cell.get(cell.key, []), signups_by_shift, mode, standing.get(cell.key)
            )
            zone_signups = [s for shift in result['shifts'] for s in signups_by_shift.get(shift.id, ())]
            gap = result['gap'] if active_cell.active else None
            entry['zones'].append({
                'zone_id': cell.zone.id,
                'zone_name': cell.zone.name,
                'is_closed': not active_cell.active,
                'closure_reason': active_cell.closure_reason,
                'coverage': _coverage_value(result['coverage']) if active_cell.active else None,
                'gaps': gap.describe() if gap else [],
                'zone_leads': self._people(zone_signups, 'ZONE_LEAD'),
                'dispatchers': self._people(zone_signups, 'DISPATCHER'),
                'volunteers': self._people(zone_signups, 'VERIFIER'),
                'shifts': [self._shift_summary(s, signups_by_shift.get(s.id, ())) for s in result['shifts']],
                '_gap': gap,
            })
            if active_cell.active:
                entry['_coverages'].append(result['coverage'])

        for entry in schedule.values():
            gaps = [zone.pop('_gap') for zone in entry['zones']]
            entry['coverage'] = _coverage_value(aggregate(entry.pop('_coverages')))
            entry['gaps'] = {
                'needs_dispatcher': any(gap.missing_dispatcher for gap in gaps if gap),
                'zones_needing_leads': [
                    zone['zone_name'] for zone, gap in zip(entry['zones'], gaps) if gap and gap.missing_zone_lead
                ],
            }

        regional = [a for a in dispatches if a.scope == REGION_SCOPE]
        county_level = [a for a in dispatches if a.scope != REGION_SCOPE and (county is None or a.scope == county)]

        return {
            'start_date': start.isoformat(),
            'end_date': end.isoformat(),
            'timezone': tz_name,
            'dispatcher_scheduling_mode': mode.value,
            'time_slots': [{'block': b.key, 'label': b.label} for b in blocks],
            'schedule': sorted(schedule.values(), key=lambda e: (e['date'], self._block_index(blocks, e['block']), e['county'])),
            'regional_dispatchers': [a.to_dict() for a in regional if not a.is_backup],
            'regional_backup_dispatchers': [a.to_dict() for a in regional if a.is_backup],
            'county_dispatchers': [a.to_dict() for a in county_level],
            'regional_leads': [lead.to_dict() for lead in leads],
        }

    @staticmethod
    def _block_index(blocks: Sequence[TimeBlock], key: str) -> int:
        for index, block in enumerate(blocks):
            if block.key == key:
                return index
        return len(blocks)
