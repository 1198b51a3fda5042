"""
Scope Registry

A coach can be assigned at three nested scopes inside a cohort:

    center      -> every enrollment at the center
    team        -> every member of the team
    enrollment  -> one participant

Scopes are modeled as a small tagged union (CenterScope | TeamScope |
EnrollmentScope) so a team id can never be passed where a center id is
expected. The registry answers two read-only questions about a scope:
does it exist inside a given cohort, and what is it called.
"""

import logging
from dataclasses import dataclass
from typing import ClassVar, Optional, Union

from sqlmodel import Session, select

from coaching.models.coach_assignment import ScopeKind
from coaching.models.cohort import CohortOrgUnit
from coaching.models.enrollment import Enrollment
from coaching.models.orgunit import OrgUnit
from coaching.models.team import Team
from coaching.services.errors import ValidationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CenterScope:
    id: int
    kind: ClassVar[ScopeKind] = ScopeKind.center


@dataclass(frozen=True)
class TeamScope:
    id: int
    kind: ClassVar[ScopeKind] = ScopeKind.team


@dataclass(frozen=True)
class EnrollmentScope:
    id: int
    kind: ClassVar[ScopeKind] = ScopeKind.enrollment


Scope = Union[CenterScope, TeamScope, EnrollmentScope]

_SCOPE_TYPES = {
    ScopeKind.center: CenterScope,
    ScopeKind.team: TeamScope,
    ScopeKind.enrollment: EnrollmentScope,
}


def scope_from(kind: Union[ScopeKind, str], scope_id: int) -> Scope:
    """
    Build a typed scope from a raw (kind, id) pair, e.g. a database row or request body.

    Raises:
        ValidationError: unknown kind or non-positive id
    """
    try:
        scope_kind = ScopeKind(kind)
    except ValueError:
        raise ValidationError(f"Invalid scope kind: {kind!r}. Expected one of: center, team, enrollment")

    if isinstance(scope_id, bool) or not isinstance(scope_id, int) or scope_id <= 0:
        raise ValidationError(f"Invalid scope id: {scope_id!r}")

    return _SCOPE_TYPES[scope_kind](scope_id)


def fallback_label(scope: Scope) -> str:
    """Synthetic label used when a scope entity can't be found: 'Team #9'."""
    return f"{scope.kind.value.capitalize()} #{scope.id}"


class ScopeRegistry:
    """Read-only lookups against the org-unit, team and enrollment directories."""

    def __init__(self, session: Session):
        self.session = session

    def validate_scope(self, cohort_id: int, scope: Scope) -> bool:
        """True iff the scope entity exists and belongs to the cohort."""
        if isinstance(scope, EnrollmentScope):
            enrollment = self.session.get(Enrollment, scope.id)
            return enrollment is not None and enrollment.cohort_id == cohort_id

        if isinstance(scope, TeamScope):
            team = self.session.get(Team, scope.id)
            return team is not None and team.cohort_id == cohort_id

        if isinstance(scope, CenterScope):
            center = self.session.get(OrgUnit, scope.id)
            if center is None or center.orgunit_type != "center":
                return False
            return self._center_in_cohort_tree(cohort_id, center)

        return False

    def _center_in_cohort_tree(self, cohort_id: int, center: OrgUnit) -> bool:
        # The center is linked directly, or through its parent district
        linked_ids = [center.id]
        if center.parent_orgunit_id is not None:
            linked_ids.append(center.parent_orgunit_id)

        link = self.session.exec(
            select(CohortOrgUnit).where(
                CohortOrgUnit.cohort_id == cohort_id,
                CohortOrgUnit.orgunit_id.in_(linked_ids),
            )
        ).first()
        return link is not None

    def label_for(self, scope: Scope) -> str:
        """
        Best-effort human label for a scope.

        Never raises: a missing entity, an empty name, or a failed lookup all
        degrade to the fallback label ('Center #5').
        """
        try:
            name = self._lookup_name(scope)
        except Exception as e:
            logger.warning(f"Scope label lookup failed for {scope.kind.value} {scope.id}: {e}")
            name = None

        return name or fallback_label(scope)

    def _lookup_name(self, scope: Scope) -> Optional[str]:
        if isinstance(scope, CenterScope):
            center = self.session.get(OrgUnit, scope.id)
            return center.name if center else None

        if isinstance(scope, TeamScope):
            team = self.session.get(Team, scope.id)
            return team.name if team else None

        if isinstance(scope, EnrollmentScope):
            enrollment = self.session.get(Enrollment, scope.id)
            return enrollment.display_name if enrollment else None

        return None
