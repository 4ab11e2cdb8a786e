"""Per-user time conflict detection.

A user's commitments are the union of their active shift signups and their
dispatcher / regional lead assignments. Backups take part in overlap checks
exactly like primaries. Filtering out DECLINED and NO_SHOW records is done
by whoever builds the commitment list.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Collection, Iterable, List, Optional, Tuple

from .domain import TimeWindow
from .errors import TimeConflict

SIGNUP = "signup"
DISPATCHER = "dispatcher"
REGIONAL_LEAD = "regional_lead"


@dataclass(frozen=True)
class Commitment:
    kind: str
    record_id: Optional[int]
    window: TimeWindow
    is_backup: bool = False
    scope: Optional[str] = None
    label: str = ""

    @property
    def ref(self) -> Tuple[str, Optional[int]]:
        return (self.kind, self.record_id)

    def describe(self) -> dict:
        return {
            "kind": self.kind,
            "id": self.record_id,
            "date": self.window.date.isoformat(),
            "start": self.window.start.isoformat(),
            "end": self.window.end.isoformat(),
            "is_backup": self.is_backup,
            "scope": self.scope,
            "label": self.label,
        }


def windows_conflict(candidate: TimeWindow, existing: TimeWindow) -> bool:
    return candidate.overlaps(existing)


def find_conflicts(
    candidate: TimeWindow,
    commitments: Iterable[Commitment],
    exclude: Collection[Tuple[str, Optional[int]]] = (),
) -> List[Commitment]:
    """Commitments overlapping ``candidate``, skipping refs listed in ``exclude``.

    ``exclude`` holds ``(kind, record_id)`` pairs, used when an existing record
    is being updated and must not conflict with itself.
    """
    excluded = set(exclude)
    return [
        commitment
        for commitment in commitments
        if commitment.ref not in excluded and windows_conflict(candidate, commitment.window)
    ]


def has_conflict(candidate: TimeWindow, commitments: Iterable[Commitment]) -> bool:
    return bool(find_conflicts(candidate, commitments))


def ensure_no_conflict(
    candidate: TimeWindow,
    commitments: Iterable[Commitment],
    exclude: Collection[Tuple[str, Optional[int]]] = (),
    user_label: str = "User",
) -> None:
    conflicts = find_conflicts(candidate, commitments, exclude)
    if conflicts:
        first = conflicts[0]
        raise TimeConflict(
            f"{user_label} already has an overlapping {first.kind.replace('_', ' ')} commitment "
            f"on {candidate.date.isoformat()}",
            conflicts=conflicts,
        )
