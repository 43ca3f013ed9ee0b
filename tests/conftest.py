import os

# Configure before any staffhub import builds settings/engine
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AUTO_CLOCK_OUT_ENABLED"] = "false"
os.environ["AUTO_CREATE_DB"] = "false"
os.environ["RATE_LIMIT"] = "10000/minute"
os.environ["TZ_DEFAULT"] = "Asia/Karachi"
os.environ["ENABLE_PUSH"] = "true"
os.environ.pop("PUSH_WEBHOOK_URL", None)

from datetime import date, time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from staffhub.db import Base, get_db
from staffhub.models.models import Location, Role, StaffAssignment, User, Zone
from staffhub.auth.security import create_access_token, get_password_hash
from staffhub.services.time_rules import combine_date_time


# Wednesday; Asia/Karachi is UTC+5 with no DST
WORK_DAY = date(2024, 5, 1)


def at(hour: int, minute: int = 0, day: date = WORK_DAY):
    """Local wall-clock time on ``day`` as a UTC datetime."""
    return combine_date_time(day, time(hour, minute))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make(username: str, roles=("staff",), **fields) -> User:
        role_rows = []
        for name in roles:
            role = db.query(Role).filter(Role.name == name).first()
            if role is None:
                role = Role(name=name)
                db.add(role)
                db.flush()
            role_rows.append(role)
        fields.setdefault("full_name", username.replace(".", " ").title())
        fields.setdefault("shift_start_time", "09:00")
        fields.setdefault("shift_end_time", "17:00")
        user = User(
            username=username,
            email=f"{username}@example.com",
            password_hash=get_password_hash("secret123"),
            is_active=True,
            **fields,
        )
        user.roles = role_rows
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def staff(make_user):
    return make_user("staff.one")


@pytest.fixture
def supervisor(make_user):
    return make_user("super.visor", roles=("supervisor",))


@pytest.fixture
def manager(make_user):
    return make_user("man.ager", roles=("manager",))


@pytest.fixture
def admin(make_user):
    return make_user("ad.min", roles=("super_admin",))


@pytest.fixture
def location(db):
    loc = Location(
        name="Head Office",
        code="HQ",
        center_lat=31.5204,
        center_lng=74.3587,
        radius_meters=200,
    )
    db.add(loc)
    db.commit()
    db.refresh(loc)
    return loc


@pytest.fixture
def zone(db, location):
    z = Zone(name="Main Gate", location_id=location.id, center_lat=31.5204, center_lng=74.3587, radius_meters=100)
    db.add(z)
    db.commit()
    db.refresh(z)
    return z


@pytest.fixture
def assignment(db, staff, supervisor, zone):
    a = StaffAssignment(staff_id=staff.id, supervisor_id=supervisor.id, zone_id=zone.id, location_id=zone.location_id)
    db.add(a)
    db.commit()
    db.refresh(a)
    return a


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(str(user.id), user.role_names)}"}


@pytest.fixture
def client(session_factory):
    from staffhub.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
