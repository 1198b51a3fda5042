"""
Coach Assignment Model

One row assigns a coach to a scope (center, team or enrollment) inside a
cohort for an inclusive date range. A NULL effective_to means the assignment
is still in force.

Rows for the same (cohort_id, scope_kind, scope_id) never overlap in time;
that is checked by the conflict guard before every insert.
"""

from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import CheckConstraint, Index, String
from sqlmodel import Column, Field, SQLModel


class ScopeKind(str, Enum):
    center = "center"
    team = "team"
    enrollment = "enrollment"

    @property
    def rank(self) -> int:
        """Precedence rank: the more specific scope ranks higher."""
        return SCOPE_RANK[self]


SCOPE_RANK = {
    ScopeKind.center: 1,
    ScopeKind.team: 2,
    ScopeKind.enrollment: 3,
}


class CoachAssignment(SQLModel, table=True):
    __tablename__ = "coach_assignment"

    __table_args__ = (
        Index("ix_coach_assignment_scope", "cohort_id", "scope_kind", "scope_id"),
        CheckConstraint(
            "effective_to IS NULL OR effective_to >= effective_from",
            name="ck_coach_assignment_range",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    cohort_id: int = Field(foreign_key="cohort.id", index=True)
    coach_user_id: int = Field(index=True)
    scope_kind: ScopeKind = Field(sa_column=Column(String, nullable=False))
    scope_id: int
    effective_from: date
    effective_to: Optional[date] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    created_by: Optional[int] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
