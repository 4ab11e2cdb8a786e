"""Coverage classification and roll-ups.

Zone cells, county/region aggregates and dispatcher scope cells each produce
their own tri-state signal. Scope (dispatcher / regional lead) coverage is
reported next to zone coverage and never folded into it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from .domain import Coverage, DispatcherMode


@dataclass(frozen=True)
class CellRequirements:
    needs_dispatcher: bool = False
    needs_zone_lead: bool = False
    min_volunteers: int = 0

    def __post_init__(self) -> None:
        if self.min_volunteers < 0:
            raise ValueError("min_volunteers must be non-negative")

    def merge(self, other: "CellRequirements") -> "CellRequirements":
        """Combine the requirements of two shifts bucketed into the same cell."""
        return CellRequirements(
            needs_dispatcher=self.needs_dispatcher or other.needs_dispatcher,
            needs_zone_lead=self.needs_zone_lead or other.needs_zone_lead,
            min_volunteers=self.min_volunteers + other.min_volunteers,
        )

    def overlay(self, other: "CellRequirements") -> "CellRequirements":
        """Lay scheduled shifts over a cell's standing requirement.

        Role needs from either side apply; the headcount is the larger of the
        two, so a shift staffing the standing requirement does not double it.
        """
        return CellRequirements(
            needs_dispatcher=self.needs_dispatcher or other.needs_dispatcher,
            needs_zone_lead=self.needs_zone_lead or other.needs_zone_lead,
            min_volunteers=max(self.min_volunteers, other.min_volunteers),
        )


@dataclass(frozen=True)
class CellFill:
    """Active (PENDING or CONFIRMED) signups present in a cell."""

    has_dispatcher: bool = False
    has_zone_lead: bool = False
    verifier_count: int = 0

    @property
    def has_any(self) -> bool:
        return self.has_dispatcher or self.has_zone_lead or self.verifier_count > 0

    def merge(self, other: "CellFill") -> "CellFill":
        return CellFill(
            has_dispatcher=self.has_dispatcher or other.has_dispatcher,
            has_zone_lead=self.has_zone_lead or other.has_zone_lead,
            verifier_count=self.verifier_count + other.verifier_count,
        )


@dataclass(frozen=True)
class CellGap:
    missing_dispatcher: bool = False
    missing_zone_lead: bool = False
    verifiers_short: int = 0

    @property
    def is_empty(self) -> bool:
        return not (self.missing_dispatcher or self.missing_zone_lead or self.verifiers_short)

    def describe(self) -> List[str]:
        messages = []
        if self.missing_dispatcher:
            messages.append("Needs dispatcher")
        if self.missing_zone_lead:
            messages.append("Needs zone lead")
        if self.verifiers_short:
            messages.append(f"{self.verifiers_short} below minimum")
        return messages

    def to_dict(self) -> Dict[str, object]:
        return {
            "missing_dispatcher": self.missing_dispatcher,
            "missing_zone_lead": self.missing_zone_lead,
            "verifiers_short": self.verifiers_short,
            "messages": self.describe(),
        }


def dispatcher_required(requirements: CellRequirements, mode: DispatcherMode) -> bool:
    """A shift's dispatcher requirement only applies when dispatchers are per zone."""
    return requirements.needs_dispatcher and DispatcherMode.parse(mode) is DispatcherMode.ZONE


def find_gap(requirements: CellRequirements, fill: CellFill, mode: DispatcherMode) -> CellGap:
    return CellGap(
        missing_dispatcher=dispatcher_required(requirements, mode) and not fill.has_dispatcher,
        missing_zone_lead=requirements.needs_zone_lead and not fill.has_zone_lead,
        verifiers_short=max(0, requirements.min_volunteers - fill.verifier_count),
    )


def classify(requirements: CellRequirements, fill: CellFill, mode: DispatcherMode) -> Coverage:
    """FULL when every required role is filled and verifiers reach the minimum,
    NONE when the cell has no active signups, PARTIAL otherwise."""
    if find_gap(requirements, fill, mode).is_empty:
        return Coverage.FULL
    if not fill.has_any:
        return Coverage.NONE
    return Coverage.PARTIAL


def aggregate(classifications: Iterable[Optional[Coverage]]) -> Optional[Coverage]:
    """Roll zone cells up to a county or region for the same date and block.

    Unscheduled cells (``None``) are ignored; with nothing scheduled the result
    is ``None``.
    """
    values = [value for value in classifications if value is not None]
    if not values:
        return None
    if all(value is Coverage.FULL for value in values):
        return Coverage.FULL
    if all(value is Coverage.NONE for value in values):
        return Coverage.NONE
    return Coverage.PARTIAL


def classify_scope(has_primary: bool, backup_count: int = 0) -> Coverage:
    """Dispatcher or regional lead coverage for one scope cell."""
    if has_primary:
        return Coverage.FULL
    if backup_count > 0:
        return Coverage.PARTIAL
    return Coverage.NONE


@dataclass
class CoverageStats:
    total_slots: int = 0
    covered_slots: int = 0
    partial_slots: int = 0
    critical_gaps: int = 0
    coordinator_slots: int = 0
    coordinator_filled: int = 0
    gap_messages: Dict[str, int] = field(default_factory=dict)

    def add_zone_cell(self, coverage: Optional[Coverage], gap: Optional[CellGap] = None) -> None:
        if coverage is None:
            return
        self.total_slots += 1
        if coverage is Coverage.FULL:
            self.covered_slots += 1
        elif coverage is Coverage.PARTIAL:
            self.partial_slots += 1
        else:
            self.critical_gaps += 1
        if gap is not None:
            for message in gap.describe():
                label = "below minimum" if message.endswith("below minimum") else message
                self.gap_messages[label] = self.gap_messages.get(label, 0) + 1

    def add_scope_cell(self, coverage: Coverage) -> None:
        self.coordinator_slots += 1
        if coverage is Coverage.FULL:
            self.coordinator_filled += 1

    @property
    def coverage_percent(self) -> int:
        if not self.total_slots:
            return 0
        return round(self.covered_slots / self.total_slots * 100)

    @property
    def coordinator_gaps(self) -> int:
        return self.coordinator_slots - self.coordinator_filled

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_slots": self.total_slots,
            "covered_slots": self.covered_slots,
            "partial_slots": self.partial_slots,
            "critical_gaps": self.critical_gaps,
            "coverage_percent": self.coverage_percent,
            "coordinator_slots": self.coordinator_slots,
            "coordinator_filled": self.coordinator_filled,
            "coordinator_gaps": self.coordinator_gaps,
            "gap_breakdown": dict(self.gap_messages),
        }
