"""Coverage and assignment scheduling engine.

Pure building blocks for volunteer zone coverage: the time grid, date
overrides, the qualification gate, per-user conflict detection, the signup
state machine and tri-state coverage classification. The package does not
depend on Flask or SQLAlchemy; the application layer feeds it plain
dataclasses and persists the outcome.
"""

from .conflicts import (
    Commitment,
    ensure_no_conflict,
    find_conflicts,
    has_conflict,
    windows_conflict,
)
from .coverage import (
    CellFill,
    CellGap,
    CellRequirements,
    CoverageStats,
    aggregate,
    classify,
    classify_scope,
    find_gap,
)
from .domain import (
    ACTIVE_STATUSES,
    Coverage,
    DispatcherMode,
    OverrideType,
    RoleType,
    SignupStatus,
    TimeBlock,
    TimeWindow,
    ZoneRef,
)
from .errors import (
    CapacityExceeded,
    DateClosed,
    DuplicateSignup,
    InvalidTransition,
    NotFound,
    PermissionDenied,
    SchedulingError,
    ShiftNotOpen,
    SlotOccupied,
    TimeConflict,
    Unqualified,
    ValidationFailed,
)
from .grid import (
    REGION_SCOPE,
    ScopeCell,
    ZoneCell,
    bucket_block,
    build_scope_grid,
    build_zone_grid,
    date_range,
    dispatcher_scopes,
    week_bounds,
)
from .overrides import ActiveCell, DateOverrideRecord, OverrideIndex, apply_overrides
from .qualification import is_eligible, require_eligible
from .signup_states import (
    TRANSITIONS,
    check_capacity,
    initial_status,
    reactivates,
    slots_remaining,
    validate_transition,
)

__all__ = [
    "ACTIVE_STATUSES",
    "ActiveCell",
    "CapacityExceeded",
    "CellFill",
    "CellGap",
    "CellRequirements",
    "Commitment",
    "Coverage",
    "CoverageStats",
    "DateClosed",
    "DateOverrideRecord",
    "DispatcherMode",
    "DuplicateSignup",
    "InvalidTransition",
    "NotFound",
    "OverrideIndex",
    "OverrideType",
    "PermissionDenied",
    "REGION_SCOPE",
    "RoleType",
    "SchedulingError",
    "ScopeCell",
    "ShiftNotOpen",
    "SignupStatus",
    "SlotOccupied",
    "TRANSITIONS",
    "TimeBlock",
    "TimeConflict",
    "TimeWindow",
    "Unqualified",
    "ValidationFailed",
    "ZoneCell",
    "ZoneRef",
    "aggregate",
    "apply_overrides",
    "bucket_block",
    "build_scope_grid",
    "build_zone_grid",
    "check_capacity",
    "classify",
    "classify_scope",
    "date_range",
    "dispatcher_scopes",
    "ensure_no_conflict",
    "find_conflicts",
    "find_gap",
    "has_conflict",
    "initial_status",
    "is_eligible",
    "reactivates",
    "require_eligible",
    "slots_remaining",
    "validate_transition",
    "week_bounds",
    "windows_conflict",
]
