"""Value types shared by the coverage engine modules."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional


class DispatcherMode(str, Enum):
    """Which grid dimension dispatcher assignments key against."""

    REGIONAL = "REGIONAL"
    COUNTY = "COUNTY"
    ZONE = "ZONE"

    @classmethod
    def parse(cls, value) -> "DispatcherMode":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError as exc:
            raise ValueError(f"Unknown dispatcher scheduling mode: {value!r}") from exc


class RoleType(str, Enum):
    DISPATCHER = "DISPATCHER"
    ZONE_LEAD = "ZONE_LEAD"
    VERIFIER = "VERIFIER"
    REGIONAL_LEAD = "REGIONAL_LEAD"

    @classmethod
    def parse(cls, value) -> "RoleType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError as exc:
            raise ValueError(f"Unknown role type: {value!r}") from exc

    @property
    def is_exclusive(self) -> bool:
        """Dispatcher and zone lead slots hold a single active person per shift."""
        return self in (RoleType.DISPATCHER, RoleType.ZONE_LEAD)


SIGNUP_ROLES = (RoleType.DISPATCHER, RoleType.ZONE_LEAD, RoleType.VERIFIER)


class SignupStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    DECLINED = "DECLINED"
    NO_SHOW = "NO_SHOW"

    @classmethod
    def parse(cls, value) -> "SignupStatus":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError as exc:
            raise ValueError(f"Unknown signup status: {value!r}") from exc

    @property
    def is_active(self) -> bool:
        return self in ACTIVE_STATUSES


ACTIVE_STATUSES = frozenset({SignupStatus.PENDING, SignupStatus.CONFIRMED})


class OverrideType(str, Enum):
    CLOSURE = "CLOSURE"
    ADJUST_REQUIREMENTS = "ADJUST_REQUIREMENTS"
    SPECIAL_EVENT = "SPECIAL_EVENT"

    @classmethod
    def parse(cls, value) -> "OverrideType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError as exc:
            raise ValueError(f"Unknown override type: {value!r}") from exc


class Coverage(str, Enum):
    """Tri-state coverage signal. Ordered NONE < PARTIAL < FULL."""

    NONE = "none"
    PARTIAL = "partial"
    FULL = "full"

    @property
    def rank(self) -> int:
        return _COVERAGE_RANK[self]


_COVERAGE_RANK = {Coverage.NONE: 0, Coverage.PARTIAL: 1, Coverage.FULL: 2}


@dataclass(frozen=True)
class TimeBlock:
    """A recurring slice of the organization's day.

    Args:
        start_hour: Inclusive local start hour, 0-23.
        end_hour: Exclusive local end hour, 1-24.
        label: Display label, defaults to ``"6am-10am"`` style text.
    """

    start_hour: int
    end_hour: int
    label: str = ""

    def __post_init__(self) -> None:
        if not 0 <= self.start_hour <= 23:
            raise ValueError("start_hour must be in the range [0, 23]")
        if not 1 <= self.end_hour <= 24:
            raise ValueError("end_hour must be in the range [1, 24]")
        if self.end_hour <= self.start_hour:
            raise ValueError("end_hour must be after start_hour")
        if not self.label:
            object.__setattr__(
                self, "label", f"{format_hour(self.start_hour)}-{format_hour(self.end_hour)}"
            )

    @property
    def key(self) -> str:
        return f"{self.start_hour:02d}-{self.end_hour:02d}"

    def overlap(self, start_hour: float, end_hour: float) -> float:
        return max(0.0, min(self.end_hour, end_hour) - max(self.start_hour, start_hour))


def format_hour(hour: int) -> str:
    if hour in (0, 24):
        return "12am"
    if hour == 12:
        return "12pm"
    return f"{hour}am" if hour < 12 else f"{hour - 12}pm"


@dataclass(frozen=True)
class ZoneRef:
    id: int
    name: str
    county: Optional[str] = None


@dataclass(frozen=True)
class TimeWindow:
    """A resolved commitment window on an organization-local calendar date.

    ``start`` and ``end`` are absolute instants (naive UTC) and the interval is
    half-open, so windows that only touch do not overlap.
    """

    date: date
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValueError("Window end must be after start")

    def overlaps(self, other: "TimeWindow") -> bool:
        return self.date == other.date and self.start < other.end and other.start < self.end

    def same_slot(self, other: "TimeWindow") -> bool:
        return self.date == other.date and self.start == other.start and self.end == other.end
