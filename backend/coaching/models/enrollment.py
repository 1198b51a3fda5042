from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class Enrollment(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("cohort_id", "user_id", name="uq_cohort_user"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    cohort_id: int = Field(foreign_key="cohort.id", index=True)
    user_id: int = Field(index=True)
    display_name: Optional[str] = None
    center_id: Optional[int] = Field(default=None, foreign_key="orgunit.id", index=True)
    status: str = Field(default="active")  # active|inactive
    enrolled_at: datetime = Field(default_factory=datetime.utcnow)
