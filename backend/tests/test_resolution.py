"""
Tests for coach resolution

Covers the precedence, fallback, boundary and open-ended rules, the four
reference scenarios, and the roster / coverage views built on resolution.
"""

from datetime import date, timedelta

import pytest
from sqlmodel import Session

from coaching.models.coach_assignment import CoachAssignment, ScopeKind
from coaching.services.assignment_store import AssignmentStore
from coaching.services.errors import ConflictError, NotFoundError
from coaching.services.resolution import (
    EnrollmentRef,
    coach_roster,
    cohort_coverage,
    load_enrollment_ref,
    resolve_coach,
    resolve_coach_for_enrollment,
)
from coaching.services.scope_registry import CenterScope, EnrollmentScope, TeamScope

C1, C2, C3, C4 = 101, 102, 103, 104


@pytest.fixture(name="store")
def store_fixture(session: Session, org):
    return AssignmentStore(session)


@pytest.fixture(name="ada")
def ada_fixture(session: Session, org) -> EnrollmentRef:
    return load_enrollment_ref(session, 42)


# ============================================================================
# Enrollment references
# ============================================================================


def test_load_enrollment_ref(session: Session, org):
    assert load_enrollment_ref(session, 42) == EnrollmentRef(enrollment_id=42, cohort_id=1, team_id=9, center_id=5)
    assert load_enrollment_ref(session, 44) == EnrollmentRef(enrollment_id=44, cohort_id=1, team_id=None, center_id=5)


def test_load_enrollment_ref_ignores_teams_of_other_cohorts(session: Session, org):
    from coaching.models.team import TeamMembership

    # A stray membership in cohort 2's team must not become Alan's team
    session.add(TeamMembership(team_id=20, enrollment_id=44))
    session.commit()

    assert load_enrollment_ref(session, 44).team_id is None


def test_load_enrollment_ref_missing(session: Session, org):
    with pytest.raises(NotFoundError):
        load_enrollment_ref(session, 999)


def test_candidate_scopes_most_specific_first():
    ref = EnrollmentRef(enrollment_id=42, cohort_id=1, team_id=9, center_id=5)
    assert ref.candidate_scopes() == [EnrollmentScope(42), TeamScope(9), CenterScope(5)]

    bare = EnrollmentRef(enrollment_id=42, cohort_id=1)
    assert bare.candidate_scopes() == [EnrollmentScope(42)]


# ============================================================================
# Reference scenarios
# ============================================================================


def test_scenario_center_only(session: Session, store: AssignmentStore):
    # Center #5 has C1 from 2024-01-01; enrollment with no team, no override
    c1 = store.create(1, C1, CenterScope(5), date(2024, 1, 1))
    ref = EnrollmentRef(enrollment_id=42, cohort_id=1, team_id=None, center_id=5)

    resolved = resolve_coach(session, ref, date(2024, 6, 1))

    assert resolved.coach_user_id == C1
    assert resolved.scope_kind == ScopeKind.center
    assert resolved.assignment_id == c1


def test_scenario_team_beats_center_then_falls_back(session: Session, store: AssignmentStore, ada):
    store.create(1, C1, CenterScope(5), date(2024, 1, 1))
    store.create(1, C2, TeamScope(9), date(2024, 3, 1), date(2024, 8, 31))

    assert resolve_coach(session, ada, date(2024, 6, 1)).coach_user_id == C2
    assert resolve_coach(session, ada, date(2024, 9, 1)).coach_user_id == C1


def test_scenario_overlapping_center_assignment_rejected(store: AssignmentStore):
    c1 = store.create(1, C1, CenterScope(5), date(2024, 1, 1))

    with pytest.raises(ConflictError) as exc_info:
        store.create(1, C3, CenterScope(5), date(2024, 5, 1), date(2024, 7, 1))

    assert exc_info.value.existing_assignment_id == c1


def test_scenario_enrollment_override_beats_team(session: Session, store: AssignmentStore, ada):
    store.create(1, C1, CenterScope(5), date(2024, 1, 1))
    store.create(1, C2, TeamScope(9), date(2024, 3, 1), date(2024, 8, 31))
    store.create(1, C4, EnrollmentScope(42), date(2024, 6, 15))

    resolved = resolve_coach(session, ada, date(2024, 6, 20))

    assert resolved.coach_user_id == C4
    assert resolved.scope_kind == ScopeKind.enrollment
    # Before the override starts the team still applies
    assert resolve_coach(session, ada, date(2024, 6, 14)).coach_user_id == C2


# ============================================================================
# Laws
# ============================================================================


def test_precedence_ignores_recency(session: Session, store: AssignmentStore, ada):
    # The center assignment starts after the enrollment override and still loses
    store.create(1, C4, EnrollmentScope(42), date(2024, 1, 1))
    store.create(1, C2, TeamScope(9), date(2024, 5, 1))
    store.create(1, C1, CenterScope(5), date(2024, 6, 1))

    assert resolve_coach(session, ada, date(2024, 7, 1)).coach_user_id == C4


def test_fallback_chain(session: Session, store: AssignmentStore, ada):
    store.create(1, C1, CenterScope(5), date(2024, 1, 1))
    store.create(1, C2, TeamScope(9), date(2024, 3, 1), date(2024, 3, 31))
    store.create(1, C4, EnrollmentScope(42), date(2024, 3, 10), date(2024, 3, 20))

    assert resolve_coach(session, ada, date(2024, 3, 15)).coach_user_id == C4
    assert resolve_coach(session, ada, date(2024, 3, 25)).coach_user_id == C2
    assert resolve_coach(session, ada, date(2024, 4, 1)).coach_user_id == C1
    assert resolve_coach(session, ada, date(2023, 12, 31)) is None


def test_no_assignments_resolves_to_none(session: Session, store: AssignmentStore, ada):
    assert resolve_coach(session, ada, date(2024, 6, 1)) is None


@pytest.mark.parametrize("scope", [CenterScope(5), TeamScope(9), EnrollmentScope(42)])
def test_boundaries_are_inclusive(session: Session, store: AssignmentStore, ada, scope):
    start, end = date(2024, 3, 1), date(2024, 8, 31)
    assignment_id = store.create(1, C2, scope, start, end)

    assert resolve_coach(session, ada, start).assignment_id == assignment_id
    assert resolve_coach(session, ada, end).assignment_id == assignment_id
    assert resolve_coach(session, ada, start - timedelta(days=1)) is None
    assert resolve_coach(session, ada, end + timedelta(days=1)) is None


def test_open_ended_applies_far_into_the_future(session: Session, store: AssignmentStore, ada):
    store.create(1, C1, CenterScope(5), date(2024, 1, 1))

    for on_date in (date(2024, 1, 1), date(2030, 6, 1), date(2999, 12, 31)):
        assert resolve_coach(session, ada, on_date).coach_user_id == C1
    assert resolve_coach(session, ada, date(2023, 12, 31)) is None


def test_resolution_is_deterministic(session: Session, store: AssignmentStore, ada):
    store.create(1, C1, CenterScope(5), date(2024, 1, 1))
    store.create(1, C2, TeamScope(9), date(2024, 3, 1), date(2024, 8, 31))

    results = {resolve_coach(session, ada, date(2024, 6, 1)) for _ in range(10)}

    assert len(results) == 1


def test_legacy_duplicates_resolve_to_highest_id(session: Session, org, ada):
    for row_id, coach in ((11, C1), (12, C2)):
        session.add(
            CoachAssignment(
                id=row_id, cohort_id=1, coach_user_id=coach, scope_kind="team", scope_id=9,
                effective_from=date(2024, 1, 1), effective_to=None,
            )
        )
    session.commit()

    assert resolve_coach(session, ada, date(2024, 6, 1)).assignment_id == 12


def test_assignments_of_other_cohorts_do_not_apply(session: Session, store: AssignmentStore, org):
    from coaching.models.cohort import CohortOrgUnit

    session.add(CohortOrgUnit(cohort_id=2, orgunit_id=5))
    session.commit()
    store.create(2, C3, CenterScope(5), date(2024, 1, 1))

    assert resolve_coach_for_enrollment(session, 42, date(2024, 6, 1)) is None


def test_resolve_for_unknown_enrollment(session: Session, org):
    with pytest.raises(NotFoundError):
        resolve_coach_for_enrollment(session, 999, date(2024, 6, 1))


# ============================================================================
# Coverage and roster
# ============================================================================


def test_cohort_coverage(session: Session, store: AssignmentStore):
    store.create(1, C2, TeamScope(9), date(2024, 3, 1), date(2024, 8, 31))
    store.create(1, C4, EnrollmentScope(42), date(2024, 6, 15))

    coverage = cohort_coverage(session, 1, date(2024, 6, 20))

    # Ordered by display name: Ada, Alan, Grace
    assert [e.enrollment_id for e in coverage.enrollments] == [42, 44, 43]
    by_id = {e.enrollment_id: e for e in coverage.enrollments}
    assert by_id[42].resolved.coach_user_id == C4
    assert by_id[43].resolved.coach_user_id == C2
    assert by_id[44].resolved is None
    assert coverage.covered_count == 2
    assert coverage.uncovered_count == 1
    assert coverage.by_scope_kind() == {"center": 0, "team": 1, "enrollment": 1}


def test_coverage_skips_inactive_enrollments(session: Session, store: AssignmentStore):
    from coaching.models.enrollment import Enrollment

    grace = session.get(Enrollment, 43)
    grace.status = "inactive"
    session.add(grace)
    session.commit()

    coverage = cohort_coverage(session, 1, date(2024, 6, 20))

    assert [e.enrollment_id for e in coverage.enrollments] == [42, 44]


def test_coach_roster_excludes_overridden_members(session: Session, store: AssignmentStore):
    store.create(1, C1, CenterScope(5), date(2024, 1, 1))
    store.create(1, C2, TeamScope(9), date(2024, 3, 1), date(2024, 8, 31))
    store.create(1, C4, EnrollmentScope(42), date(2024, 6, 15))

    on_date = date(2024, 6, 20)
    assert [e.enrollment_id for e in coach_roster(session, C1, 1, on_date)] == [44]
    assert [e.enrollment_id for e in coach_roster(session, C2, 1, on_date)] == [43]
    assert [e.enrollment_id for e in coach_roster(session, C4, 1, on_date)] == [42]
    assert coach_roster(session, C3, 1, on_date) == []

    # After the team range ends, the center coach picks Grace up again
    assert [e.enrollment_id for e in coach_roster(session, C1, 1, date(2024, 9, 1))] == [44, 43]
