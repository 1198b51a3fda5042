from coaching.models.audit_log import AuditLog
from coaching.models.coach_assignment import CoachAssignment, ScopeKind
from coaching.models.cohort import Cohort, CohortOrgUnit
from coaching.models.enrollment import Enrollment
from coaching.models.orgunit import OrgUnit
from coaching.models.team import Team, TeamMembership

__all__ = [
    "AuditLog",
    "CoachAssignment",
    "Cohort",
    "CohortOrgUnit",
    "Enrollment",
    "OrgUnit",
    "ScopeKind",
    "Team",
    "TeamMembership",
]
