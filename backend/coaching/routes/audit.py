"""
Audit log read-back for a cohort (rows written by the database audit sink)
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session, select

from coaching.database import get_session
from coaching.models.audit_log import AuditLog
from coaching.models.cohort import Cohort

router = APIRouter()


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action_type: str
    entity_type: str
    entity_id: int
    cohort_id: Optional[int] = None
    actor_user_id: Optional[int] = None
    summary: str
    payload: Optional[Dict[str, Any]] = None
    created_at: datetime


@router.get("/cohorts/{cohort_id}/audit-log", response_model=List[AuditLogResponse])
def get_audit_log(
    cohort_id: int,
    action_type: Optional[str] = Query(None, description="e.g. coach_assignment.created"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    session: Session = Depends(get_session),
):
    """Audit entries for a cohort, newest first"""
    if not session.get(Cohort, cohort_id):
        raise HTTPException(status_code=404, detail="Cohort not found")

    query = select(AuditLog).where(AuditLog.cohort_id == cohort_id)
    if action_type:
        query = query.where(AuditLog.action_type == action_type)
    query = query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).offset(offset).limit(limit)

    return session.exec(query).all()
