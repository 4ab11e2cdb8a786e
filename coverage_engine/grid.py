"""Time grid construction.

The grid is a pure Cartesian product of dates, time blocks and either zones
(volunteer coverage) or dispatcher scopes (county / region coverage). It never
consults live data, so it is rebuilt on every request.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable, List, Optional, Sequence, Tuple

from .domain import DispatcherMode, TimeBlock, ZoneRef

REGION_SCOPE = "ALL"


@dataclass(frozen=True)
class ZoneCell:
    zone: ZoneRef
    date: date
    block: TimeBlock

    @property
    def key(self) -> Tuple[int, date, str]:
        return (self.zone.id, self.date, self.block.key)


@dataclass(frozen=True)
class ScopeCell:
    scope: str
    date: date
    block: TimeBlock

    @property
    def key(self) -> Tuple[str, date, str]:
        return (self.scope, self.date, self.block.key)


def date_range(start: date, end: date) -> List[date]:
    """Inclusive list of calendar dates from ``start`` to ``end``."""
    if end < start:
        raise ValueError("end date must be on or after start date")
    return [start + timedelta(days=offset) for offset in range((end - start).days + 1)]


def week_bounds(any_date: date) -> Tuple[date, date]:
    """Return the Monday and Sunday of the week containing ``any_date``."""
    monday = any_date - timedelta(days=any_date.weekday())
    return monday, monday + timedelta(days=6)


def _zone_sort_key(zone: ZoneRef):
    return (zone.county or "", zone.name, zone.id)


def build_zone_grid(
    start: date,
    end: date,
    blocks: Sequence[TimeBlock],
    zones: Iterable[ZoneRef],
    county: Optional[str] = None,
) -> List[ZoneCell]:
    """Produce (zone, date, block) cells ordered by date, block, county and zone."""
    selected = sorted(
        (zone for zone in zones if county is None or zone.county == county),
        key=_zone_sort_key,
    )
    return [
        ZoneCell(zone=zone, date=day, block=block)
        for day in date_range(start, end)
        for block in blocks
        for zone in selected
    ]


def dispatcher_scopes(mode: DispatcherMode, counties: Iterable[str]) -> List[str]:
    """Scope keys dispatcher assignments are tracked against for ``mode``.

    In ZONE mode dispatchers are per-shift signups, so there are no scope cells.
    """
    mode = DispatcherMode.parse(mode)
    if mode is DispatcherMode.REGIONAL:
        return [REGION_SCOPE]
    elif mode is DispatcherMode.COUNTY:
        return sorted({county for county in counties if county})
    elif mode is DispatcherMode.ZONE:
        return []
    raise ValueError(f"Unhandled dispatcher mode: {mode}")


def build_scope_grid(
    start: date,
    end: date,
    blocks: Sequence[TimeBlock],
    mode: DispatcherMode,
    counties: Iterable[str],
) -> List[ScopeCell]:
    scopes = dispatcher_scopes(mode, counties)
    return [
        ScopeCell(scope=scope, date=day, block=block)
        for day in date_range(start, end)
        for block in blocks
        for scope in scopes
    ]


def bucket_block(
    start_hour: float, end_hour: float, blocks: Sequence[TimeBlock]
) -> Optional[TimeBlock]:
    """Map an arbitrary local window onto the nearest covering time block.

    The block with the largest overlap wins and ties go to the earlier block.
    When nothing overlaps, the block whose start is closest to ``start_hour``
    is used. Returns ``None`` only when ``blocks`` is empty.
    """
    if not blocks:
        return None

    best: Optional[TimeBlock] = None
    best_overlap = 0.0
    for block in blocks:
        overlap = block.overlap(start_hour, end_hour)
        if overlap > best_overlap:
            best, best_overlap = block, overlap
    if best is not None:
        return best

    return min(blocks, key=lambda block: abs(block.start_hour - start_hour))
