"""
Resolution Engine: which coach applies to an enrollment on a date

Resolution order (most specific wins):
  1. enrollment-level -> scope id = enrollment id
  2. team-level       -> scope id = the enrollment's team in the cohort
  3. center-level     -> scope id = the enrollment's center

A scope only takes part while one of its assignments covers the date.
Precedence, not recency, decides between scopes: an enrollment override
beats a team or center assignment even if those started later.

Everything here is read-only and deterministic for a given database state.
"""

from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

from sqlmodel import Session, select

from coaching.models.coach_assignment import ScopeKind
from coaching.models.enrollment import Enrollment
from coaching.models.team import Team, TeamMembership
from coaching.services.assignment_store import AssignmentStore
from coaching.services.errors import NotFoundError
from coaching.services.scope_registry import CenterScope, EnrollmentScope, Scope, TeamScope


@dataclass(frozen=True)
class EnrollmentRef:
    enrollment_id: int
    cohort_id: int
    team_id: Optional[int] = None
    center_id: Optional[int] = None

    def candidate_scopes(self) -> List[Scope]:
        """Scopes covering this enrollment, most specific first."""
        scopes: List[Scope] = [EnrollmentScope(self.enrollment_id)]
        if self.team_id:
            scopes.append(TeamScope(self.team_id))
        if self.center_id:
            scopes.append(CenterScope(self.center_id))
        return scopes


@dataclass(frozen=True)
class ResolvedAssignment:
    coach_user_id: int
    scope_kind: ScopeKind
    scope_id: int
    assignment_id: int
    effective_from: date
    effective_to: Optional[date]


def load_enrollment_ref(session: Session, enrollment_id: int) -> EnrollmentRef:
    """
    Read an enrollment's cohort, team and center from the directory tables.

    The team is the enrollment's membership in a team of the same cohort;
    with several memberships the lowest team id is used.

    Raises:
        NotFoundError: unknown enrollment
    """
    enrollment = session.get(Enrollment, enrollment_id)
    if not enrollment:
        raise NotFoundError(f"Enrollment {enrollment_id} not found")

    team_id = session.exec(
        select(TeamMembership.team_id)
        .join(Team, Team.id == TeamMembership.team_id)
        .where(TeamMembership.enrollment_id == enrollment_id, Team.cohort_id == enrollment.cohort_id)
        .order_by(TeamMembership.team_id)
    ).first()

    return EnrollmentRef(
        enrollment_id=enrollment.id,
        cohort_id=enrollment.cohort_id,
        team_id=team_id,
        center_id=enrollment.center_id,
    )


def resolve_coach(session: Session, enrollment: EnrollmentRef, as_of: date) -> Optional[ResolvedAssignment]:
    """
    Effective coach for an enrollment on a date, or None if no scope has one.

    Args:
        session: Database session (read-only)
        enrollment: The participant's cohort/team/center references
        as_of: Date to resolve for
    """
    store = AssignmentStore(session)
    for scope in enrollment.candidate_scopes():
        assignment = store.in_force(enrollment.cohort_id, scope, as_of)
        if assignment is not None:
            return ResolvedAssignment(
                coach_user_id=assignment.coach_user_id,
                scope_kind=ScopeKind(assignment.scope_kind),
                scope_id=assignment.scope_id,
                assignment_id=assignment.id,
                effective_from=assignment.effective_from,
                effective_to=assignment.effective_to,
            )
    return None


def resolve_coach_for_enrollment(session: Session, enrollment_id: int, as_of: date) -> Optional[ResolvedAssignment]:
    return resolve_coach(session, load_enrollment_ref(session, enrollment_id), as_of)


# ============================================================================
# Cohort-level views built on resolution
# ============================================================================


@dataclass(frozen=True)
class EnrollmentCoverage:
    enrollment_id: int
    display_name: Optional[str]
    resolved: Optional[ResolvedAssignment]


@dataclass(frozen=True)
class CohortCoverage:
    cohort_id: int
    as_of: date
    enrollments: List[EnrollmentCoverage]

    @property
    def covered_count(self) -> int:
        return sum(1 for e in self.enrollments if e.resolved is not None)

    @property
    def uncovered_count(self) -> int:
        return len(self.enrollments) - self.covered_count

    def by_scope_kind(self) -> Dict[str, int]:
        counts = {kind.value: 0 for kind in ScopeKind}
        for e in self.enrollments:
            if e.resolved is not None:
                counts[e.resolved.scope_kind.value] += 1
        return counts


def _active_enrollments(session: Session, cohort_id: int) -> List[Enrollment]:
    rows = session.exec(
        select(Enrollment).where(Enrollment.cohort_id == cohort_id, Enrollment.status == "active")
    ).all()
    # Sort in Python: display_name may be NULL
    return sorted(rows, key=lambda e: ((e.display_name or "").lower(), e.id))


def cohort_coverage(session: Session, cohort_id: int, as_of: date) -> CohortCoverage:
    """Resolution for every active enrollment in a cohort, ordered by name then id."""
    entries = []
    for enrollment in _active_enrollments(session, cohort_id):
        ref = load_enrollment_ref(session, enrollment.id)
        entries.append(
            EnrollmentCoverage(
                enrollment_id=enrollment.id,
                display_name=enrollment.display_name,
                resolved=resolve_coach(session, ref, as_of),
            )
        )
    return CohortCoverage(cohort_id=cohort_id, as_of=as_of, enrollments=entries)


def coach_roster(session: Session, coach_user_id: int, cohort_id: int, as_of: date) -> List[EnrollmentCoverage]:
    """
    Active enrollments whose resolved coach on as_of is this coach.

    An enrollment under a coach's center or team but overridden by a more
    specific assignment to someone else is not on the roster.
    """
    coverage = cohort_coverage(session, cohort_id, as_of)
    return [
        entry
        for entry in coverage.enrollments
        if entry.resolved is not None and entry.resolved.coach_user_id == coach_user_id
    ]
