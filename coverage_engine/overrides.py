"""Date override evaluation.

Overrides are additive records; they are queried, never merged. The only
precedence rule is that any CLOSURE wins over activity for the cells it
covers. SPECIAL_EVENT and ADJUST_REQUIREMENTS only annotate cells and never
change capacity numbers.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .domain import OverrideType
from .grid import ZoneCell


@dataclass(frozen=True)
class DateOverrideRecord:
    id: Optional[int]
    date: date
    override_type: OverrideType
    reason: str = ""
    zone_id: Optional[int] = None
    slot_adjustments: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "override_type", OverrideType.parse(self.override_type))

    @property
    def is_closure(self) -> bool:
        return self.override_type is OverrideType.CLOSURE

    @property
    def is_global(self) -> bool:
        return self.zone_id is None

    def applies_to(self, zone_id: Optional[int]) -> bool:
        return self.zone_id is None or self.zone_id == zone_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "zone_id": self.zone_id,
            "type": self.override_type.value,
            "reason": self.reason,
            "slot_adjustments": dict(self.slot_adjustments or {}),
        }


@dataclass(frozen=True)
class ActiveCell:
    cell: ZoneCell
    active: bool
    closure_reason: Optional[str] = None
    annotations: Sequence[DateOverrideRecord] = ()


class OverrideIndex:
    """Lookup of overrides by date."""

    def __init__(self, overrides: Iterable[DateOverrideRecord] = ()) -> None:
        self._by_date: Dict[date, List[DateOverrideRecord]] = defaultdict(list)
        for record in overrides:
            self._by_date[record.date].append(record)

    def for_date(self, day: date) -> List[DateOverrideRecord]:
        return list(self._by_date.get(day, ()))

    def applicable(self, day: date, zone_id: Optional[int]) -> List[DateOverrideRecord]:
        """All overrides for ``day`` that are global or scoped to ``zone_id``."""
        return [record for record in self._by_date.get(day, ()) if record.applies_to(zone_id)]

    def closure_for(self, day: date, zone_id: Optional[int]) -> Optional[DateOverrideRecord]:
        closures = [record for record in self.applicable(day, zone_id) if record.is_closure]
        if not closures:
            return None
        # A region-wide closure is reported ahead of a zone closure.
        closures.sort(key=lambda record: (not record.is_global,))
        return closures[0]

    def is_date_closed(self, day: date) -> bool:
        return self.global_closure(day) is not None

    def global_closure(self, day: date) -> Optional[DateOverrideRecord]:
        for record in self._by_date.get(day, ()):
            if record.is_closure and record.is_global:
                return record
        return None

    def closure_reason(self, day: date) -> Optional[str]:
        record = self.global_closure(day)
        return record.reason if record else None


def apply_overrides(
    cells: Iterable[ZoneCell], overrides: Iterable[DateOverrideRecord]
) -> List[ActiveCell]:
    index = overrides if isinstance(overrides, OverrideIndex) else OverrideIndex(overrides)
    result = []
    for cell in cells:
        closure = index.closure_for(cell.date, cell.zone.id)
        annotations = [
            record for record in index.applicable(cell.date, cell.zone.id) if not record.is_closure
        ]
        result.append(
            ActiveCell(
                cell=cell,
                active=closure is None,
                closure_reason=closure.reason if closure else None,
                annotations=tuple(annotations),
            )
        )
    return result
