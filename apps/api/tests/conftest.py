"""
Test configuration and fixtures.

Provides:
- Fresh database per test (in-memory SQLite unless TEST_DATABASE_URL is set)
- Hospital, team, building, and role-holding user factories
- Work order factory that writes rows directly in any status
- HTTPX AsyncClient with get_db overridden and session cookie helpers
"""
import os
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncGenerator, Generator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

# Must be set before the app (and its settings) are imported
os.environ["DATABASE_URL"] = os.environ.get("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ["TESTING"] = "1"
os.environ["ENV"] = "test"
os.environ["INTERNAL_SECRET"] = "test-internal-secret"

from facility_api.core.deps import COOKIE_NAME, get_db  # noqa: E402
from facility_api.core.security import create_session_token  # noqa: E402
from facility_api.db.base import Base  # noqa: E402
from facility_api.db.enums import RoleCode, WorkOrderStatus  # noqa: E402
from facility_api.db.models import (  # noqa: E402
    Building,
    BuildingSupervisor,
    Department,
    Floor,
    Hospital,
    Room,
    Team,
    TeamMember,
    User,
    UserRole,
    WorkOrder,
)
from facility_api.db.session import SessionLocal, engine  # noqa: E402
from facility_api.main import app  # noqa: E402


# =============================================================================
# Database Fixtures
# =============================================================================

@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Creates all tables, yields a session, drops everything afterwards."""
    Base.metadata.create_all(engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


def _hospital(db: Session, code: str, name: str) -> Hospital:
    hospital = Hospital(id=uuid.uuid4(), code=code, name=name)
    db.add(hospital)
    db.commit()
    return hospital


@pytest.fixture
def hospital(db: Session) -> Hospital:
    return _hospital(db, "KFH", "King Fahad Hospital")


@pytest.fixture
def other_hospital(db: Session) -> Hospital:
    return _hospital(db, "NGH", "National Guard Hospital")


@pytest.fixture
def make_user(db: Session, hospital: Hospital):
    """Factory: make_user(RoleCode.TECHNICIAN, hospital_id=..., global_role=False)."""

    def _make(*roles: RoleCode | str, hospital_id: uuid.UUID | None = None, global_role: bool = False) -> User:
        user = User(
            id=uuid.uuid4(),
            email=f"user-{uuid.uuid4().hex[:8]}@hospital.test",
            display_name="Test User",
        )
        db.add(user)
        db.flush()
        for role in roles:
            db.add(
                UserRole(
                    user_id=user.id,
                    role=role.value if isinstance(role, RoleCode) else role,
                    hospital_id=None if global_role else (hospital_id or hospital.id),
                )
            )
        db.commit()
        return user

    return _make


@pytest.fixture
def location(db: Session, hospital: Hospital) -> dict:
    """One building > floor > department > room chain."""
    building = Building(id=uuid.uuid4(), hospital_id=hospital.id, name="Main Tower")
    floor = Floor(id=uuid.uuid4(), hospital_id=hospital.id, building_id=building.id, name="3")
    department = Department(
        id=uuid.uuid4(), hospital_id=hospital.id, floor_id=floor.id, name="Radiology"
    )
    room = Room(id=uuid.uuid4(), hospital_id=hospital.id, department_id=department.id, name="301")
    db.add(building)
    db.flush()
    db.add(floor)
    db.flush()
    db.add(department)
    db.flush()
    db.add(room)
    db.commit()
    return {"building": building, "floor": floor, "department": department, "room": room}


@pytest.fixture
def team(db: Session, hospital: Hospital) -> Team:
    team = Team(id=uuid.uuid4(), hospital_id=hospital.id, name="HVAC")
    db.add(team)
    db.commit()
    return team


@pytest.fixture
def other_team(db: Session, hospital: Hospital) -> Team:
    team = Team(id=uuid.uuid4(), hospital_id=hospital.id, name="Electrical")
    db.add(team)
    db.commit()
    return team


@dataclass
class Actors:
    """Cast of a typical work order."""
    reporter: User
    technician: User
    supervisor: User
    engineer: User
    manager: User
    outsider: User


@pytest.fixture
def actors(db: Session, make_user, team: Team, location: dict) -> Actors:
    reporter = make_user(RoleCode.REPORTER)
    technician = make_user(RoleCode.TECHNICIAN)
    supervisor = make_user(RoleCode.SUPERVISOR)
    engineer = make_user(RoleCode.ENGINEER)
    manager = make_user(RoleCode.MAINTENANCE_MANAGER)
    outsider = make_user(RoleCode.TECHNICIAN)

    db.add(TeamMember(team_id=team.id, user_id=technician.id))
    db.add(BuildingSupervisor(building_id=location["building"].id, user_id=supervisor.id))
    db.commit()
    return Actors(reporter, technician, supervisor, engineer, manager, outsider)


@pytest.fixture
def make_work_order(db: Session, hospital: Hospital, team: Team, location: dict, actors: Actors):
    """Factory: insert a work order directly in the given status."""
    counter = {"n": 0}

    def _make(status: WorkOrderStatus = WorkOrderStatus.ASSIGNED, **fields) -> WorkOrder:
        counter["n"] += 1
        values = dict(
            id=uuid.uuid4(),
            hospital_id=hospital.id,
            code=f"WO-{hospital.code}-TEST-{counter['n']:04d}",
            issue_type="hvac",
            description="Air conditioning not cooling",
            status=status.value,
            reported_by=actors.reporter.id,
            assigned_team_id=team.id,
            assigned_at=datetime.now(timezone.utc),
            building_id=location["building"].id,
            floor_id=location["floor"].id,
            department_id=location["department"].id,
            room_id=location["room"].id,
        )
        values.update(fields)
        work_order = WorkOrder(**values)
        db.add(work_order)
        db.commit()
        return work_order

    return _make


# =============================================================================
# Client Fixtures
# =============================================================================

@pytest.fixture(scope="function")
async def client(db: Session) -> AsyncGenerator[AsyncClient, None]:
    """AsyncClient with the test session and CSRF header; no session cookie."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
        headers={"X-Requested-With": "XMLHttpRequest"},  # CSRF header
    ) as c:
        yield c

    app.dependency_overrides.clear()


@pytest.fixture
def login(hospital: Hospital):
    """Set the session cookie on a client for a user in the test hospital."""

    def _login(client: AsyncClient, user: User, hospital_id: uuid.UUID | None = None) -> AsyncClient:
        token = create_session_token(
            user_id=user.id,
            hospital_id=hospital_id or hospital.id,
            token_version=user.token_version,
        )
        client.cookies.set(COOKIE_NAME, token)
        return client

    return _login
