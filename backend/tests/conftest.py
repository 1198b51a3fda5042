import os

# Keep the app's own engine off disk; every test gets its own engine below
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from coaching.database import get_session  # noqa: E402
from coaching.main import app  # noqa: E402
from coaching.routes.coach_assignments import get_change_notifier  # noqa: E402
from coaching.services.change_notifier import ChangeNotifier, DatabaseAuditSink  # noqa: E402

# ============================================================================
# Test Database Setup with StaticPool
# ============================================================================
# 1. sqlite:///:memory: with StaticPool so every session on the engine shares one DB
# 2. check_same_thread=False required for TestClient/threaded access
# 3. All models imported before create_all() (see engine_fixture)
# 4. App dependencies overridden to use the test engine (see client_fixture)
# 5. A fresh engine per test, so ids and unique codes never leak between tests


@pytest.fixture(name="engine")
def engine_fixture():
    from coaching.models.audit_log import AuditLog  # noqa: F401
    from coaching.models.coach_assignment import CoachAssignment  # noqa: F401
    from coaching.models.cohort import Cohort, CohortOrgUnit  # noqa: F401
    from coaching.models.enrollment import Enrollment  # noqa: F401
    from coaching.models.orgunit import OrgUnit  # noqa: F401
    from coaching.models.team import Team, TeamMembership  # noqa: F401

    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(name="session")
def session_fixture(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture(name="client")
def client_fixture(engine, session: Session):
    """Test client with session and audit sink bound to the test engine"""

    def get_session_override():
        with Session(engine) as s:
            yield s

    def get_change_notifier_override():
        return ChangeNotifier(DatabaseAuditSink(engine))

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_change_notifier] = get_change_notifier_override

    with TestClient(app) as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture(name="org")
def org_fixture(session: Session):
    """
    One cohort with a small org tree:

        District #1 (linked to cohort #1)
          Center #5   Team #9 (Blue)  -> Enrollment #42 (Ada), #43 (Grace)
                                         Enrollment #44 (Alan, no team)
          Center #6   (no enrollments)
        Center #7     (not linked to the cohort)

    Cohort #2 has its own team #20 and enrollment #50.
    """
    from coaching.models.cohort import Cohort, CohortOrgUnit
    from coaching.models.enrollment import Enrollment
    from coaching.models.orgunit import OrgUnit
    from coaching.models.team import Team, TeamMembership

    session.add(Cohort(id=1, name="Spring 2024", code="SPR24"))
    session.add(Cohort(id=2, name="Fall 2024", code="FAL24"))
    session.add(OrgUnit(id=1, code="D1", name="North District", orgunit_type="district"))
    session.commit()

    session.add(OrgUnit(id=5, code="C5", name="Maple Center", orgunit_type="center", parent_orgunit_id=1))
    session.add(OrgUnit(id=6, code="C6", name="Oak Center", orgunit_type="center", parent_orgunit_id=1))
    session.add(OrgUnit(id=7, code="C7", name="Pine Center", orgunit_type="center"))
    session.add(CohortOrgUnit(cohort_id=1, orgunit_id=1))
    session.add(CohortOrgUnit(cohort_id=2, orgunit_id=7))
    session.commit()

    session.add(Team(id=9, cohort_id=1, center_id=5, name="Blue"))
    session.add(Team(id=20, cohort_id=2, center_id=7, name="Red"))
    session.add(Enrollment(id=42, cohort_id=1, user_id=1042, display_name="Ada", center_id=5))
    session.add(Enrollment(id=43, cohort_id=1, user_id=1043, display_name="Grace", center_id=5))
    session.add(Enrollment(id=44, cohort_id=1, user_id=1044, display_name="Alan", center_id=5))
    session.add(Enrollment(id=50, cohort_id=2, user_id=1050, display_name="Edsger", center_id=7))
    session.commit()

    session.add(TeamMembership(team_id=9, enrollment_id=42, membership_type="mentor"))
    session.add(TeamMembership(team_id=9, enrollment_id=43))
    session.add(TeamMembership(team_id=20, enrollment_id=50))
    session.commit()

    return {"cohort_id": 1, "other_cohort_id": 2, "center_id": 5, "team_id": 9, "enrollment_id": 42}
