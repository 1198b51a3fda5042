"""
Conflict Guard: at most one coach per scope per day

Before an assignment is written, every existing assignment for the same
(cohort_id, scope_kind, scope_id) is checked for an intersecting date range.
Ranges are inclusive on both ends; a missing end date is open ended and
intersects everything on or after its start.

Overlaps are rejected, never auto-resolved. Reassigning a scope is two
explicit steps: close the old range, then create the new one.

Writers for the same scope triple are serialized with scope_write_lock()
so check + insert + commit runs as one unit.
"""

import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterator, List, Optional, Tuple

from sqlmodel import Session, select

from coaching.models.coach_assignment import CoachAssignment, ScopeKind
from coaching.models.cohort import Cohort
from coaching.services.errors import ConflictError
from coaching.services.scope_registry import Scope

ScopeTriple = Tuple[int, str, int]

_locks_guard = threading.Lock()
# One lock per scope triple with a writer in flight; entries drop once no
# caller holds the lock
_scope_locks: "weakref.WeakValueDictionary[ScopeTriple, threading.Lock]" = weakref.WeakValueDictionary()


def ranges_overlap(a_from: date, a_to: Optional[date], b_from: date, b_to: Optional[date]) -> bool:
    """True if two inclusive ranges share at least one day (None = open ended)."""
    if a_to is not None and a_to < b_from:
        return False
    if b_to is not None and b_to < a_from:
        return False
    return True


def _scope_lock(triple: ScopeTriple) -> threading.Lock:
    with _locks_guard:
        lock = _scope_locks.get(triple)
        if lock is None:
            lock = threading.Lock()
            _scope_locks[triple] = lock
        return lock


@contextmanager
def scope_write_lock(session: Session, cohort_id: int, scope: Scope) -> Iterator[None]:
    """
    Hold exclusive write access to one scope triple.

    The in-process lock serializes writers sharing this interpreter. The
    cohort row is also selected FOR UPDATE so backends with row locks
    (PostgreSQL) serialize writers across processes; SQLite ignores it and
    relies on its single-writer database lock.
    """
    lock = _scope_lock((cohort_id, scope.kind.value, scope.id))
    with lock:
        session.exec(select(Cohort).where(Cohort.id == cohort_id).with_for_update()).first()
        yield


def check_overlap(
    session: Session,
    cohort_id: int,
    scope: Scope,
    effective_from: date,
    effective_to: Optional[date],
    exclude_id: Optional[int] = None,
) -> None:
    """
    Raise ConflictError if any assignment for the scope triple intersects the range.

    Args:
        session: Database session
        cohort_id: Cohort the scope belongs to
        scope: Target scope
        effective_from: Candidate start (inclusive)
        effective_to: Candidate end (inclusive), None for open ended
        exclude_id: Assignment to ignore (the one being replaced)

    Raises:
        ConflictError carrying the id of the first blocking assignment
    """
    query = select(CoachAssignment).where(
        CoachAssignment.cohort_id == cohort_id,
        CoachAssignment.scope_kind == scope.kind.value,
        CoachAssignment.scope_id == scope.id,
    )
    if exclude_id is not None:
        query = query.where(CoachAssignment.id != exclude_id)

    existing = session.exec(query).all()
    for assignment in sorted(existing, key=lambda a: (a.effective_from, a.id)):
        if ranges_overlap(effective_from, effective_to, assignment.effective_from, assignment.effective_to):
            raise ConflictError(
                assignment.id,
                f"Coach assignment {assignment.id} (coach {assignment.coach_user_id}) already covers "
                f"{scope.kind.value} {scope.id} from {assignment.effective_from.isoformat()} to "
                f"{assignment.effective_to.isoformat() if assignment.effective_to else 'open'}",
            )


# ============================================================================
# Cohort-wide overlap scan
# ============================================================================


@dataclass(frozen=True)
class OverlapPair:
    scope_kind: str
    scope_id: int
    first_assignment_id: int
    second_assignment_id: int
    overlap_from: date
    overlap_to: Optional[date]


def scan_cohort_overlaps(session: Session, cohort_id: int) -> List[OverlapPair]:
    """
    Find every pair of assignments in a cohort whose ranges intersect within one scope.

    Read-only. Rows written through the assignment store never produce a
    pair; this exists to audit data loaded by other means.

    Output is sorted by (scope rank, scope id, first id, second id).
    """
    assignments = session.exec(select(CoachAssignment).where(CoachAssignment.cohort_id == cohort_id)).all()

    by_scope: Dict[Tuple[str, int], List[CoachAssignment]] = {}
    for assignment in assignments:
        by_scope.setdefault((assignment.scope_kind, assignment.scope_id), []).append(assignment)

    pairs: List[OverlapPair] = []
    for (kind, scope_id), group in by_scope.items():
        group = sorted(group, key=lambda a: a.id)
        for i, first in enumerate(group):
            for second in group[i + 1 :]:
                if not ranges_overlap(
                    first.effective_from, first.effective_to, second.effective_from, second.effective_to
                ):
                    continue
                ends = [d for d in (first.effective_to, second.effective_to) if d is not None]
                pairs.append(
                    OverlapPair(
                        scope_kind=kind,
                        scope_id=scope_id,
                        first_assignment_id=first.id,
                        second_assignment_id=second.id,
                        overlap_from=max(first.effective_from, second.effective_from),
                        overlap_to=min(ends) if ends else None,
                    )
                )

    pairs.sort(key=lambda p: (ScopeKind(p.scope_kind).rank, p.scope_id, p.first_assignment_id, p.second_assignment_id))
    return pairs
