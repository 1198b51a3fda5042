from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class Cohort(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("code", name="uq_cohort_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    code: str
    description: Optional[str] = None
    status: str = Field(default="active")  # active|archived
    created_at: datetime = Field(default_factory=datetime.utcnow)


class CohortOrgUnit(SQLModel, table=True):
    """
    Links a cohort to the districts and centers taking part in it.

    A center is inside the cohort's org tree when the center itself or its
    parent district is linked here.
    """

    __tablename__ = "cohort_orgunit"

    cohort_id: int = Field(foreign_key="cohort.id", primary_key=True)
    orgunit_id: int = Field(foreign_key="orgunit.id", primary_key=True)
