"""Role qualification gate."""
from __future__ import annotations

from typing import Iterable, Optional

from .domain import RoleType
from .errors import Unqualified


def _normalise(roles: Optional[Iterable]) -> frozenset:
    if not roles:
        return frozenset()
    normalised = set()
    for role in roles:
        value = role.value if isinstance(role, RoleType) else str(role).upper()
        normalised.add(value)
    return frozenset(normalised)


def is_eligible(qualified_roles: Optional[Iterable], role) -> bool:
    """Return ``True`` iff ``role`` is in the user's qualified-role set."""
    if role is None:
        return False
    wanted = role.value if isinstance(role, RoleType) else str(role).upper()
    return wanted in _normalise(qualified_roles)


def require_eligible(qualified_roles: Optional[Iterable], role, user_label: str = "User") -> None:
    if not is_eligible(qualified_roles, role):
        wanted = role.value if isinstance(role, RoleType) else str(role).upper()
        raise Unqualified(f"{user_label} is not qualified for {wanted}", role=wanted)
