"""
Assignment Store: durable coach assignments

Write path (create / close / reassign / delete):

1. Validate input (required fields, date order, cohort + scope exist)
2. Take the scope write lock for the (cohort, kind, scope id) triple
3. Run the conflict guard
4. Insert / update, commit
5. Notify the audit sink (failures there never undo the write)

Any failure before commit rolls the session back, so a rejected operation
leaves no row and sends no event.

Assignments are history: a reassignment closes the old range and inserts a
new record instead of editing the coach on an existing row.
"""

import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from sqlmodel import Session, select

from coaching.models.coach_assignment import CoachAssignment, ScopeKind
from coaching.models.cohort import Cohort
from coaching.services.change_notifier import (
    EVENT_CLOSED,
    EVENT_CREATED,
    EVENT_DELETED,
    ChangeEvent,
    ChangeNotifier,
)
from coaching.services.conflict_guard import check_overlap, scope_write_lock
from coaching.services.errors import NotFoundError, ValidationError
from coaching.services.scope_registry import Scope, ScopeRegistry, scope_from

logger = logging.getLogger(__name__)


def scope_of(assignment: CoachAssignment) -> Scope:
    """Typed scope for a stored assignment row."""
    return scope_from(assignment.scope_kind, assignment.scope_id)


def cohort_sort_key(assignment: CoachAssignment):
    """(scope rank ascending, effective_from descending, id descending)"""
    return (
        ScopeKind(assignment.scope_kind).rank,
        -assignment.effective_from.toordinal(),
        -(assignment.id or 0),
    )


def recency_sort_key(assignment: CoachAssignment):
    """(effective_from descending, id descending)"""
    return (-assignment.effective_from.toordinal(), -(assignment.id or 0))


def format_range(effective_from: date, effective_to: Optional[date]) -> str:
    if effective_to is None:
        return f"from {effective_from.isoformat()} (open-ended)"
    return f"from {effective_from.isoformat()} to {effective_to.isoformat()}"


def snapshot(assignment: CoachAssignment) -> Dict[str, Any]:
    """Plain-dict image of an assignment for audit payloads."""
    return {
        "id": assignment.id,
        "cohort_id": assignment.cohort_id,
        "coach_user_id": assignment.coach_user_id,
        "scope_kind": ScopeKind(assignment.scope_kind).value,
        "scope_id": assignment.scope_id,
        "effective_from": assignment.effective_from.isoformat(),
        "effective_to": assignment.effective_to.isoformat() if assignment.effective_to else None,
    }


def _require_positive_id(name: str, value: Any) -> None:
    if value is None:
        raise ValidationError(f"Missing required field: {name}")
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"Invalid {name}: {value!r}")


def _require_date(name: str, value: Any) -> None:
    if value is None:
        raise ValidationError(f"Missing required field: {name}")
    if not isinstance(value, date):
        raise ValidationError(f"Invalid {name}: {value!r} (expected a date)")


class AssignmentStore:
    """
    Coach assignment persistence bound to one session (one request).

    Args:
        session: Database session
        registry: Scope registry; defaults to one on the same session
        notifier: Change notifier; defaults to a no-op notifier
        actor_id: Staff user performing the writes, carried into audit events
    """

    def __init__(
        self,
        session: Session,
        registry: Optional[ScopeRegistry] = None,
        notifier: Optional[ChangeNotifier] = None,
        actor_id: Optional[int] = None,
    ):
        self.session = session
        self.registry = registry or ScopeRegistry(session)
        self.notifier = notifier or ChangeNotifier()
        self.actor_id = actor_id

    # ========================================================================
    # Reads
    # ========================================================================

    def get(self, assignment_id: int) -> CoachAssignment:
        assignment = self.session.get(CoachAssignment, assignment_id)
        if not assignment:
            raise NotFoundError(f"Coach assignment {assignment_id} not found")
        return assignment

    def list_by_cohort(self, cohort_id: int) -> List[CoachAssignment]:
        """All assignments of a cohort, current and historical, in precedence-then-recency order."""
        rows = self.session.exec(select(CoachAssignment).where(CoachAssignment.cohort_id == cohort_id)).all()
        return sorted(rows, key=cohort_sort_key)

    def list_active_by_cohort(self, cohort_id: int, as_of: date) -> List[CoachAssignment]:
        """Assignments of a cohort in force on as_of."""
        rows = self.session.exec(
            select(CoachAssignment).where(
                CoachAssignment.cohort_id == cohort_id,
                CoachAssignment.effective_from <= as_of,
                (CoachAssignment.effective_to.is_(None)) | (CoachAssignment.effective_to >= as_of),
            )
        ).all()
        return sorted(rows, key=cohort_sort_key)

    def list_by_scope(self, cohort_id: int, scope: Scope) -> List[CoachAssignment]:
        rows = self.session.exec(
            select(CoachAssignment).where(
                CoachAssignment.cohort_id == cohort_id,
                CoachAssignment.scope_kind == scope.kind.value,
                CoachAssignment.scope_id == scope.id,
            )
        ).all()
        return sorted(rows, key=recency_sort_key)

    def list_by_coach(self, coach_user_id: int, cohort_id: Optional[int] = None) -> List[CoachAssignment]:
        query = select(CoachAssignment).where(CoachAssignment.coach_user_id == coach_user_id)
        if cohort_id is not None:
            query = query.where(CoachAssignment.cohort_id == cohort_id)
        rows = self.session.exec(query).all()
        return sorted(rows, key=lambda a: (a.cohort_id,) + cohort_sort_key(a))

    def in_force(self, cohort_id: int, scope: Scope, as_of: date) -> Optional[CoachAssignment]:
        """
        The assignment covering as_of for one scope triple, or None.

        The conflict guard keeps this to at most one row. If older data holds
        more than one, the highest id wins so the answer stays deterministic.
        """
        return self.session.exec(
            select(CoachAssignment)
            .where(
                CoachAssignment.cohort_id == cohort_id,
                CoachAssignment.scope_kind == scope.kind.value,
                CoachAssignment.scope_id == scope.id,
                CoachAssignment.effective_from <= as_of,
                (CoachAssignment.effective_to.is_(None)) | (CoachAssignment.effective_to >= as_of),
            )
            .order_by(CoachAssignment.id.desc())
        ).first()

    # ========================================================================
    # Writes
    # ========================================================================

    def create(
        self,
        cohort_id: int,
        coach_user_id: int,
        scope: Scope,
        effective_from: date,
        effective_to: Optional[date] = None,
    ) -> int:
        """
        Create a coach assignment.

        Returns:
            New assignment id

        Raises:
            ValidationError: missing/invalid fields, reversed range, unknown cohort or scope
            ConflictError: the range overlaps another assignment on the same scope
        """
        self._validate_new(cohort_id, coach_user_id, scope, effective_from, effective_to)

        try:
            with scope_write_lock(self.session, cohort_id, scope):
                check_overlap(self.session, cohort_id, scope, effective_from, effective_to)
                assignment = self._insert(cohort_id, coach_user_id, scope, effective_from, effective_to)
                self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(assignment)
        logger.info(
            f"Created coach assignment {assignment.id}: coach {coach_user_id} -> "
            f"{scope.kind.value} {scope.id} in cohort {cohort_id} {format_range(effective_from, effective_to)}"
        )
        self._emit(EVENT_CREATED, assignment, self._created_summary(assignment), {"after": snapshot(assignment)})
        return assignment.id

    def close(self, assignment_id: int, effective_to: date) -> CoachAssignment:
        """
        End an assignment on effective_to (inclusive).

        Closing can only shorten a range: an open range may be closed on any
        day from its start, a closed range only moved earlier.

        Raises:
            NotFoundError: no such assignment
            ValidationError: effective_to before the start, or later than the current end
        """
        _require_date("effective_to", effective_to)
        assignment = self.get(assignment_id)
        scope = scope_of(assignment)

        try:
            with scope_write_lock(self.session, assignment.cohort_id, scope):
                before = snapshot(assignment)
                self._apply_close(assignment, effective_to)
                self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(assignment)
        logger.info(f"Closed coach assignment {assignment.id} on {effective_to.isoformat()}")
        self._emit(
            EVENT_CLOSED,
            assignment,
            f"Coach {assignment.coach_user_id} assignment to {self.registry.label_for(scope)} closed on "
            f"{effective_to.isoformat()}",
            {"before": before, "after": snapshot(assignment)},
        )
        return assignment

    def reassign(self, assignment_id: int, new_coach_user_id: int, on_date: date) -> int:
        """
        Hand a scope over to a new coach starting on on_date.

        The old assignment is closed on the day before on_date and a new one
        is created for the same scope from on_date. If the old range had an
        end date, the new range keeps it.

        Returns:
            Id of the new assignment

        Raises:
            NotFoundError: no such assignment
            ValidationError: on_date not strictly inside the old range, bad coach id
            ConflictError: another assignment blocks the new range
        """
        _require_positive_id("coach_user_id", new_coach_user_id)
        _require_date("on_date", on_date)
        old = self.get(assignment_id)
        scope = scope_of(old)

        if on_date <= old.effective_from:
            raise ValidationError(
                f"Reassignment date {on_date.isoformat()} must be after the assignment start "
                f"{old.effective_from.isoformat()}; delete and recreate the assignment instead"
            )
        if old.effective_to is not None and on_date > old.effective_to:
            raise ValidationError(
                f"Assignment {old.id} already ended on {old.effective_to.isoformat()}; create a new assignment instead"
            )

        new_to = old.effective_to
        try:
            with scope_write_lock(self.session, old.cohort_id, scope):
                before = snapshot(old)
                self._apply_close(old, on_date - timedelta(days=1))
                self.session.flush()
                check_overlap(self.session, old.cohort_id, scope, on_date, new_to)
                new = self._insert(old.cohort_id, new_coach_user_id, scope, on_date, new_to)
                self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(old)
        self.session.refresh(new)
        logger.info(f"Reassigned {scope.kind.value} {scope.id}: assignment {old.id} closed, {new.id} created")
        label = self.registry.label_for(scope)
        self._emit(
            EVENT_CLOSED,
            old,
            f"Coach {old.coach_user_id} assignment to {label} closed on {old.effective_to.isoformat()} "
            f"(reassigned to coach {new_coach_user_id})",
            {"before": before, "after": snapshot(old)},
        )
        self._emit(EVENT_CREATED, new, self._created_summary(new), {"after": snapshot(new), "replaces": old.id})
        return new.id

    def delete(self, assignment_id: int) -> bool:
        """
        Hard-delete an assignment. The audit event keeps the before image.

        Raises:
            NotFoundError: no such assignment
        """
        assignment = self.get(assignment_id)
        before = snapshot(assignment)
        scope = scope_of(assignment)

        try:
            self.session.delete(assignment)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"Deleted coach assignment {assignment_id}")
        self.notifier.notify(
            ChangeEvent(
                type=EVENT_DELETED,
                assignment_id=assignment_id,
                cohort_id=before["cohort_id"],
                actor_id=self.actor_id,
                summary=f"Coach {before['coach_user_id']} assignment to {self.registry.label_for(scope)} deleted",
                payload={"before": before},
            )
        )
        return True

    # ========================================================================
    # Helpers
    # ========================================================================

    def _validate_new(
        self,
        cohort_id: int,
        coach_user_id: int,
        scope: Scope,
        effective_from: date,
        effective_to: Optional[date],
    ) -> None:
        _require_positive_id("cohort_id", cohort_id)
        _require_positive_id("coach_user_id", coach_user_id)
        if scope is None:
            raise ValidationError("Missing required field: scope")
        # Re-derive to reject hand-built scopes with a bad id
        scope_from(scope.kind, scope.id)
        _require_date("effective_from", effective_from)
        if effective_to is not None:
            _require_date("effective_to", effective_to)
            if effective_to < effective_from:
                raise ValidationError(
                    f"effective_to {effective_to.isoformat()} is before effective_from {effective_from.isoformat()}"
                )

        if not self.session.get(Cohort, cohort_id):
            raise ValidationError(f"Cohort {cohort_id} not found")

        if not self.registry.validate_scope(cohort_id, scope):
            logger.warning(f"Rejected assignment: {scope.kind.value} {scope.id} is not part of cohort {cohort_id}")
            raise ValidationError(f"{scope.kind.value.capitalize()} {scope.id} does not belong to cohort {cohort_id}")

    def _insert(
        self,
        cohort_id: int,
        coach_user_id: int,
        scope: Scope,
        effective_from: date,
        effective_to: Optional[date],
    ) -> CoachAssignment:
        assignment = CoachAssignment(
            cohort_id=cohort_id,
            coach_user_id=coach_user_id,
            scope_kind=scope.kind.value,
            scope_id=scope.id,
            effective_from=effective_from,
            effective_to=effective_to,
            created_by=self.actor_id,
        )
        self.session.add(assignment)
        self.session.flush()
        return assignment

    def _apply_close(self, assignment: CoachAssignment, effective_to: date) -> None:
        if effective_to < assignment.effective_from:
            raise ValidationError(
                f"Cannot close assignment {assignment.id} on {effective_to.isoformat()}: "
                f"it starts on {assignment.effective_from.isoformat()}"
            )
        if assignment.effective_to is not None and effective_to > assignment.effective_to:
            raise ValidationError(
                f"Cannot extend assignment {assignment.id} past {assignment.effective_to.isoformat()}; "
                "closing may only shorten a range"
            )
        assignment.effective_to = effective_to
        self.session.add(assignment)

    def _created_summary(self, assignment: CoachAssignment) -> str:
        label = self.registry.label_for(scope_of(assignment))
        return (
            f"Coach {assignment.coach_user_id} assigned to {label} "
            f"{format_range(assignment.effective_from, assignment.effective_to)}"
        )

    def _emit(self, event_type: str, assignment: CoachAssignment, summary: str, payload: Dict[str, Any]) -> bool:
        return self.notifier.notify(
            ChangeEvent(
                type=event_type,
                assignment_id=assignment.id,
                cohort_id=assignment.cohort_id,
                actor_id=self.actor_id,
                summary=summary,
                payload=payload,
            )
        )
