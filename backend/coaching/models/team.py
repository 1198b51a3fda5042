from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class Team(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("cohort_id", "name", name="uq_cohort_team_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    cohort_id: int = Field(foreign_key="cohort.id", index=True)
    center_id: int = Field(foreign_key="orgunit.id", index=True)
    name: str
    status: str = Field(default="active")  # active|inactive
    created_at: datetime = Field(default_factory=datetime.utcnow)


class TeamMembership(SQLModel, table=True):
    __tablename__ = "team_membership"

    team_id: int = Field(foreign_key="team.id", primary_key=True)
    enrollment_id: int = Field(foreign_key="enrollment.id", primary_key=True)
    membership_type: str = Field(default="member")  # mentor|member
    created_at: datetime = Field(default_factory=datetime.utcnow)
