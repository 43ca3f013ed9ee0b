"""
Seed the local database with roles, sample staff, a supervisor chain and
one office location with a zone.

Usage:
  python scripts/seed_test_data.py

This script is idempotent: running it multiple times will upsert the same
records based on unique fields (role name, username, location code).
"""

from datetime import datetime, timezone

from staffhub.db import SessionLocal, Base, engine
from staffhub.models.models import Location, Role, StaffAssignment, User, Zone
from staffhub.auth.security import ROLES, get_password_hash


def ensure_role(session, name: str) -> Role:
    role = session.query(Role).filter(Role.name == name).first()
    if role:
        return role
    role = Role(name=name, description=name.replace("_", " ").title())
    session.add(role)
    session.flush()
    return role


def ensure_user(session, username: str, full_name: str, password: str, roles: list[str], **fields) -> User:
    user = session.query(User).filter(User.username == username).first()
    if user is None:
        user = User(
            username=username,
            email=f"{username}@example.com",
            full_name=full_name,
            password_hash=get_password_hash(password),
            is_active=True,
            created_at=datetime.now(timezone.utc),
        )
        session.add(user)
    for key, value in fields.items():
        setattr(user, key, value)
    user.roles = session.query(Role).filter(Role.name.in_(roles)).all()
    session.flush()
    return user


def ensure_location(session) -> Location:
    location = session.query(Location).filter(Location.code == "HQ").first()
    if location:
        return location
    location = Location(
        name="Head Office",
        code="HQ",
        description="Sample office geofence",
        center_lat=31.5204,
        center_lng=74.3587,
        radius_meters=150,
        is_office=True,
        morning_shift_start="09:00",
        morning_shift_end="17:00",
    )
    session.add(location)
    session.flush()
    session.add(Zone(
        name="Main Gate",
        location_id=location.id,
        center_lat=31.5204,
        center_lng=74.3587,
        radius_meters=100,
    ))
    session.flush()
    return location


def main() -> None:
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        for name in ROLES:
            ensure_role(session, name)

        manager = ensure_user(session, "manager.one", "Manager One", "password123", ["manager"])
        supervisor = ensure_user(
            session, "supervisor.one", "Supervisor One", "password123", ["supervisor"], manager_id=manager.id,
        )
        ensure_user(session, "admin", "System Admin", "password123", ["super_admin"])
        location = ensure_location(session)
        zone = location.zones[0]

        for i in range(1, 4):
            staff = ensure_user(
                session,
                f"staff.{i}",
                f"Staff Member {i}",
                "password123",
                ["staff"],
                emp_no=f"EMP-{i:03d}",
                manager_id=manager.id,
                shift_start_time="09:00",
                shift_end_time="17:00",
            )
            active = session.query(StaffAssignment).filter(
                StaffAssignment.staff_id == staff.id,
                StaffAssignment.is_active.is_(True),
            ).first()
            if active is None:
                session.add(StaffAssignment(
                    staff_id=staff.id,
                    supervisor_id=supervisor.id,
                    zone_id=zone.id,
                    location_id=location.id,
                ))

        session.commit()
        print("Seed complete: roles, 1 manager, 1 supervisor, 1 admin, 3 staff, 1 location")
    finally:
        session.close()


if __name__ == "__main__":
    main()
