"""
API Routes for Coach Assignments

Thin HTTP layer over the assignment store, conflict guard and resolution
engine. Service errors map to status codes:

    ValidationError -> 400
    NotFoundError   -> 404
    ConflictError   -> 409 (body carries existing_assignment_id)

Mutating endpoints require an X-Actor-Id header identifying the staff user;
permission policy itself belongs to the caller in front of this API.
"""

import os
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, model_validator
from sqlmodel import Session

from coaching.database import get_engine, get_session
from coaching.models.coach_assignment import CoachAssignment, ScopeKind
from coaching.models.cohort import Cohort
from coaching.services.assignment_store import AssignmentStore, scope_of
from coaching.services.change_notifier import ChangeNotifier, DatabaseAuditSink
from coaching.services.conflict_guard import scan_cohort_overlaps
from coaching.services.errors import ConflictError, NotFoundError, ValidationError
from coaching.services.resolution import (
    EnrollmentCoverage,
    ResolvedAssignment,
    coach_roster,
    cohort_coverage,
    resolve_coach_for_enrollment,
)
from coaching.services.scope_registry import ScopeRegistry, scope_from

router = APIRouter()


# ============================================================================
# Dependencies
# ============================================================================


def get_change_notifier() -> ChangeNotifier:
    """Audit-backed notifier, or a no-op one when AUDIT_LOG_ENABLED is off."""
    if os.getenv("AUDIT_LOG_ENABLED", "true").lower() in ("false", "0", "no"):
        return ChangeNotifier()
    return ChangeNotifier(DatabaseAuditSink(get_engine()))


def require_actor(x_actor_id: Optional[int] = Header(default=None)) -> int:
    if x_actor_id is None:
        raise HTTPException(status_code=401, detail="X-Actor-Id header is required for assignment changes")
    return x_actor_id


# ============================================================================
# Request/Response Models
# ============================================================================


class CoachAssignmentCreate(BaseModel):
    """Request model for creating a coach assignment"""

    coach_user_id: int
    scope_kind: ScopeKind
    scope_id: int
    effective_from: date
    effective_to: Optional[date] = None

    @model_validator(mode="after")
    def validate_range(self):
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise ValueError("effective_to must be on or after effective_from")
        return self


class CloseRequest(BaseModel):
    effective_to: date


class ReassignRequest(BaseModel):
    new_coach_user_id: int
    on_date: date


class CoachAssignmentResponse(BaseModel):
    """Response model for coach assignment"""

    model_config = ConfigDict(from_attributes=True)

    id: int
    cohort_id: int
    coach_user_id: int
    scope_kind: ScopeKind
    scope_id: int
    scope_label: str
    effective_from: date
    effective_to: Optional[date] = None
    created_by: Optional[int] = None
    created_at: datetime


class ResolvedCoachResponse(BaseModel):
    enrollment_id: int
    as_of: date
    coach_user_id: Optional[int] = None
    scope_kind: Optional[ScopeKind] = None
    scope_id: Optional[int] = None
    assignment_id: Optional[int] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None


class EnrollmentCoverageResponse(BaseModel):
    enrollment_id: int
    display_name: Optional[str] = None
    coach_user_id: Optional[int] = None
    scope_kind: Optional[ScopeKind] = None
    assignment_id: Optional[int] = None


class CohortCoverageResponse(BaseModel):
    cohort_id: int
    as_of: date
    total_enrollments: int
    covered_count: int
    uncovered_count: int
    by_scope_kind: Dict[str, int]
    enrollments: List[EnrollmentCoverageResponse]


class CoachRosterResponse(BaseModel):
    coach_user_id: int
    cohort_id: int
    as_of: date
    enrollments: List[EnrollmentCoverageResponse]


class OverlapResponse(BaseModel):
    scope_kind: ScopeKind
    scope_id: int
    first_assignment_id: int
    second_assignment_id: int
    overlap_from: date
    overlap_to: Optional[date] = None


# ============================================================================
# Helpers
# ============================================================================


def _to_response(assignment: CoachAssignment, registry: ScopeRegistry) -> CoachAssignmentResponse:
    return CoachAssignmentResponse(
        id=assignment.id,
        cohort_id=assignment.cohort_id,
        coach_user_id=assignment.coach_user_id,
        scope_kind=ScopeKind(assignment.scope_kind),
        scope_id=assignment.scope_id,
        scope_label=registry.label_for(scope_of(assignment)),
        effective_from=assignment.effective_from,
        effective_to=assignment.effective_to,
        created_by=assignment.created_by,
        created_at=assignment.created_at,
    )


def _coverage_entry(entry: EnrollmentCoverage) -> EnrollmentCoverageResponse:
    resolved = entry.resolved
    return EnrollmentCoverageResponse(
        enrollment_id=entry.enrollment_id,
        display_name=entry.display_name,
        coach_user_id=resolved.coach_user_id if resolved else None,
        scope_kind=resolved.scope_kind if resolved else None,
        assignment_id=resolved.assignment_id if resolved else None,
    )


def _require_cohort(session: Session, cohort_id: int) -> Cohort:
    cohort = session.get(Cohort, cohort_id)
    if not cohort:
        raise HTTPException(status_code=404, detail="Cohort not found")
    return cohort


def _conflict_response(e: ConflictError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={"detail": str(e), "existing_assignment_id": e.existing_assignment_id},
    )


# ============================================================================
# Assignment Endpoints
# ============================================================================


@router.get("/cohorts/{cohort_id}/coach-assignments", response_model=List[CoachAssignmentResponse])
def list_cohort_assignments(
    cohort_id: int,
    active_on: Optional[date] = Query(None, description="Only assignments in force on this date"),
    session: Session = Depends(get_session),
):
    """
    List a cohort's coach assignments.

    Ordered by scope (center, team, enrollment), then newest start first.
    """
    _require_cohort(session, cohort_id)
    store = AssignmentStore(session)
    if active_on is not None:
        assignments = store.list_active_by_cohort(cohort_id, active_on)
    else:
        assignments = store.list_by_cohort(cohort_id)
    return [_to_response(a, store.registry) for a in assignments]


@router.post("/cohorts/{cohort_id}/coach-assignments", response_model=CoachAssignmentResponse, status_code=201)
def create_assignment(
    cohort_id: int,
    data: CoachAssignmentCreate,
    actor_id: int = Depends(require_actor),
    notifier: ChangeNotifier = Depends(get_change_notifier),
    session: Session = Depends(get_session),
):
    """Create a coach assignment; overlapping an existing one on the same scope is a 409"""
    _require_cohort(session, cohort_id)
    store = AssignmentStore(session, notifier=notifier, actor_id=actor_id)
    try:
        scope = scope_from(data.scope_kind, data.scope_id)
        assignment_id = store.create(
            cohort_id=cohort_id,
            coach_user_id=data.coach_user_id,
            scope=scope,
            effective_from=data.effective_from,
            effective_to=data.effective_to,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConflictError as e:
        return _conflict_response(e)

    return _to_response(store.get(assignment_id), store.registry)


@router.get("/cohorts/{cohort_id}/coach-assignments/conflicts", response_model=List[OverlapResponse])
def get_cohort_conflicts(cohort_id: int, session: Session = Depends(get_session)):
    """Report assignments on the same scope whose date ranges overlap"""
    _require_cohort(session, cohort_id)
    return [
        OverlapResponse(
            scope_kind=ScopeKind(p.scope_kind),
            scope_id=p.scope_id,
            first_assignment_id=p.first_assignment_id,
            second_assignment_id=p.second_assignment_id,
            overlap_from=p.overlap_from,
            overlap_to=p.overlap_to,
        )
        for p in scan_cohort_overlaps(session, cohort_id)
    ]


@router.get(
    "/cohorts/{cohort_id}/scopes/{scope_kind}/{scope_id}/coach-assignments",
    response_model=List[CoachAssignmentResponse],
)
def list_scope_assignments(
    cohort_id: int, scope_kind: ScopeKind, scope_id: int, session: Session = Depends(get_session)
):
    """Assignment history for one scope, newest start first"""
    _require_cohort(session, cohort_id)
    try:
        scope = scope_from(scope_kind, scope_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    store = AssignmentStore(session)
    return [_to_response(a, store.registry) for a in store.list_by_scope(cohort_id, scope)]


@router.get("/coach-assignments/{assignment_id}", response_model=CoachAssignmentResponse)
def get_assignment(assignment_id: int, session: Session = Depends(get_session)):
    store = AssignmentStore(session)
    try:
        assignment = store.get(assignment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _to_response(assignment, store.registry)


@router.delete("/coach-assignments/{assignment_id}", status_code=204)
def delete_assignment(
    assignment_id: int,
    actor_id: int = Depends(require_actor),
    notifier: ChangeNotifier = Depends(get_change_notifier),
    session: Session = Depends(get_session),
):
    """Hard-delete a coach assignment"""
    store = AssignmentStore(session, notifier=notifier, actor_id=actor_id)
    try:
        store.delete(assignment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return None


@router.post("/coach-assignments/{assignment_id}/close", response_model=CoachAssignmentResponse)
def close_assignment(
    assignment_id: int,
    data: CloseRequest,
    actor_id: int = Depends(require_actor),
    notifier: ChangeNotifier = Depends(get_change_notifier),
    session: Session = Depends(get_session),
):
    """End an assignment's range (inclusive). Ranges can only be shortened."""
    store = AssignmentStore(session, notifier=notifier, actor_id=actor_id)
    try:
        assignment = store.close(assignment_id, data.effective_to)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _to_response(assignment, store.registry)


@router.post(
    "/coach-assignments/{assignment_id}/reassign", response_model=CoachAssignmentResponse, status_code=201
)
def reassign_assignment(
    assignment_id: int,
    data: ReassignRequest,
    actor_id: int = Depends(require_actor),
    notifier: ChangeNotifier = Depends(get_change_notifier),
    session: Session = Depends(get_session),
):
    """
    Hand the assignment's scope to a new coach from on_date.

    The old assignment is closed the day before on_date; the new assignment
    is returned.
    """
    store = AssignmentStore(session, notifier=notifier, actor_id=actor_id)
    try:
        new_id = store.reassign(assignment_id, data.new_coach_user_id, data.on_date)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ConflictError as e:
        return _conflict_response(e)
    return _to_response(store.get(new_id), store.registry)


@router.get("/coaches/{coach_user_id}/coach-assignments", response_model=List[CoachAssignmentResponse])
def list_coach_assignments(
    coach_user_id: int,
    cohort_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
):
    store = AssignmentStore(session)
    return [_to_response(a, store.registry) for a in store.list_by_coach(coach_user_id, cohort_id)]


# ============================================================================
# Resolution Endpoints
# ============================================================================


@router.get("/enrollments/{enrollment_id}/coach", response_model=ResolvedCoachResponse)
def get_enrollment_coach(
    enrollment_id: int,
    as_of: Optional[date] = Query(None, description="Defaults to today"),
    session: Session = Depends(get_session),
):
    """
    Resolve the coach in force for an enrollment.

    Enrollment-level assignments beat team-level, which beat center-level.
    Fields are null when no scope has a coach on that date.
    """
    on_date = as_of or date.today()
    try:
        resolved: Optional[ResolvedAssignment] = resolve_coach_for_enrollment(session, enrollment_id, on_date)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if resolved is None:
        return ResolvedCoachResponse(enrollment_id=enrollment_id, as_of=on_date)

    return ResolvedCoachResponse(
        enrollment_id=enrollment_id,
        as_of=on_date,
        coach_user_id=resolved.coach_user_id,
        scope_kind=resolved.scope_kind,
        scope_id=resolved.scope_id,
        assignment_id=resolved.assignment_id,
        effective_from=resolved.effective_from,
        effective_to=resolved.effective_to,
    )


@router.get("/cohorts/{cohort_id}/coach-coverage", response_model=CohortCoverageResponse)
def get_cohort_coverage(
    cohort_id: int,
    as_of: Optional[date] = Query(None, description="Defaults to today"),
    session: Session = Depends(get_session),
):
    """Resolved coach for every active enrollment in the cohort, with covered/uncovered counts"""
    _require_cohort(session, cohort_id)
    coverage = cohort_coverage(session, cohort_id, as_of or date.today())
    return CohortCoverageResponse(
        cohort_id=cohort_id,
        as_of=coverage.as_of,
        total_enrollments=len(coverage.enrollments),
        covered_count=coverage.covered_count,
        uncovered_count=coverage.uncovered_count,
        by_scope_kind=coverage.by_scope_kind(),
        enrollments=[_coverage_entry(e) for e in coverage.enrollments],
    )


@router.get("/coaches/{coach_user_id}/roster", response_model=CoachRosterResponse)
def get_coach_roster(
    coach_user_id: int,
    cohort_id: int = Query(...),
    as_of: Optional[date] = Query(None, description="Defaults to today"),
    session: Session = Depends(get_session),
):
    """Participants whose resolved coach is this coach"""
    _require_cohort(session, cohort_id)
    on_date = as_of or date.today()
    return CoachRosterResponse(
        coach_user_id=coach_user_id,
        cohort_id=cohort_id,
        as_of=on_date,
        enrollments=[_coverage_entry(e) for e in coach_roster(session, coach_user_id, cohort_id, on_date)],
    )
