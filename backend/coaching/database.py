import os
from pathlib import Path
from typing import Generator

from dotenv import load_dotenv
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./coaching.db")

_is_sqlite = DATABASE_URL.startswith("sqlite")
_connect_args = {"check_same_thread": False} if _is_sqlite else {}
_echo = os.getenv("SQL_ECHO", "false").lower() in ("true", "1", "yes")

if _is_sqlite and ":memory:" not in DATABASE_URL:
    db_path = DATABASE_URL.replace("sqlite:///", "", 1)
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)

engine: Engine = create_engine(
    DATABASE_URL,
    echo=_echo,
    connect_args=_connect_args,
)


def get_session() -> Generator[Session, None, None]:
    """Get database session"""
    with Session(engine) as session:
        yield session


def get_engine() -> Engine:
    """Engine used by components that open their own sessions (audit sink)."""
    return engine


def init_db() -> None:
    """Initialize database - create all tables"""
    # Import all models to ensure they're registered with SQLModel metadata
    from coaching.models.audit_log import AuditLog  # noqa: F401
    from coaching.models.coach_assignment import CoachAssignment  # noqa: F401
    from coaching.models.cohort import Cohort, CohortOrgUnit  # noqa: F401
    from coaching.models.enrollment import Enrollment  # noqa: F401
    from coaching.models.orgunit import OrgUnit  # noqa: F401
    from coaching.models.team import Team, TeamMembership  # noqa: F401

    SQLModel.metadata.create_all(engine)
