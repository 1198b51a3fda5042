from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class OrgUnit(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("code", name="uq_orgunit_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    code: str
    name: str
    orgunit_type: str  # district|center
    parent_orgunit_id: Optional[int] = Field(default=None, foreign_key="orgunit.id", index=True)
    status: str = Field(default="active")  # active|inactive|archived
    created_at: datetime = Field(default_factory=datetime.utcnow)
