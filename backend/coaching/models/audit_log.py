"""Audit log model for coach assignment changes."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class AuditLog(SQLModel, table=True):
    """One row per change event delivered to the database audit sink."""

    __tablename__ = "audit_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    action_type: str = Field(index=True)  # coach_assignment.created|coach_assignment.closed|coach_assignment.deleted
    entity_type: str = Field(default="coach_assignment")
    entity_id: int
    cohort_id: Optional[int] = Field(default=None, index=True)
    actor_user_id: Optional[int] = Field(default=None)
    summary: str
    payload: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
