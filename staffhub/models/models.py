import uuid
from datetime import datetime, date
from typing import Optional, List

from sqlalchemy import (
    Column,
    String,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Table,
    Integer,
    Float,
    JSON,
    UniqueConstraint,
    Text,
    Index,
    Uuid,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


def user_fk(ondelete: str = "SET NULL", nullable: bool = True, index: bool = False):
    return mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id", ondelete=ondelete), nullable=nullable, index=index
    )


# Association table for many-to-many User<->Role
user_roles = Table(
    "user_roles",
    Base.metadata,
    Column("user_id", Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("role_id", Uuid(as_uuid=True), ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    UniqueConstraint("user_id", "role_id", name="uq_user_role"),
)


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)  # staff|supervisor|manager|general_manager|ceo|super_admin|admin_assistant|sub_engineer
    description: Mapped[Optional[str]] = mapped_column(String(255))

    users = relationship("User", secondary=user_roles, back_populates="roles")


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = uuid_pk()
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255))
    emp_no: Mapped[Optional[str]] = mapped_column(String(50), index=True)
    department: Mapped[Optional[str]] = mapped_column(String(100))
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)  # soft delete
    manager_id: Mapped[Optional[uuid.UUID]] = user_fk()
    general_manager_id: Mapped[Optional[uuid.UUID]] = user_fk()
    # Shift times are local "HH:MM" strings, interpreted in settings.tz_default
    shift_start_time: Mapped[Optional[str]] = mapped_column(String(5), default="09:00")
    shift_end_time: Mapped[Optional[str]] = mapped_column(String(5), default="17:00")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    last_login_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    roles = relationship("Role", secondary=user_roles, back_populates="users")

    @property
    def display_name(self) -> str:
        return self.full_name or self.username or "Unknown"

    @property
    def role_names(self) -> List[str]:
        return [r.name for r in self.roles]


# Geofence registry

class Location(Base):
    """A named site; geofence is a radius circle and/or a closed [lng, lat] polygon ring"""
    __tablename__ = "locations"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(50), index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, default="")
    center_lat: Mapped[Optional[float]] = mapped_column(Float)
    center_lng: Mapped[Optional[float]] = mapped_column(Float)
    radius_meters: Mapped[Optional[int]] = mapped_column(Integer, default=100)
    boundaries: Mapped[Optional[list]] = mapped_column(JSON)  # [[lng, lat], ...], first point repeated last
    morning_shift_start: Mapped[Optional[str]] = mapped_column(String(5))
    morning_shift_end: Mapped[Optional[str]] = mapped_column(String(5))
    night_shift_start: Mapped[Optional[str]] = mapped_column(String(5))
    night_shift_end: Mapped[Optional[str]] = mapped_column(String(5))
    is_office: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)  # soft delete
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    zones = relationship("Zone", back_populates="location")


class Zone(Base):
    """Circular sub-area of a Location"""
    __tablename__ = "zones"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("locations.id", ondelete="CASCADE"), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, default="")
    center_lat: Mapped[float] = mapped_column(Float, nullable=False)
    center_lng: Mapped[float] = mapped_column(Float, nullable=False)
    radius_meters: Mapped[int] = mapped_column(Integer, default=100)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)  # soft delete
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    location = relationship("Location", back_populates="zones")


class StaffAssignment(Base):
    """Current staff -> supervisor -> zone mapping; one active row per staff member"""
    __tablename__ = "staff_assignments"

    id: Mapped[uuid.UUID] = uuid_pk()
    staff_id: Mapped[uuid.UUID] = user_fk(ondelete="CASCADE", nullable=False, index=True)
    supervisor_id: Mapped[Optional[uuid.UUID]] = user_fk()
    zone_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), ForeignKey("zones.id", ondelete="SET NULL"), index=True)
    location_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), ForeignKey("locations.id", ondelete="SET NULL"))  # legacy direct location
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index('idx_assignments_staff_active', 'staff_id', 'is_active'),
    )


# Attendance & approvals

class Attendance(Base):
    """One clock-in/clock-out cycle of a staff member; clock_out NULL means open"""
    __tablename__ = "attendance"

    id: Mapped[uuid.UUID] = uuid_pk()
    staff_id: Mapped[uuid.UUID] = user_fk(ondelete="CASCADE", nullable=False, index=True)
    supervisor_id: Mapped[Optional[uuid.UUID]] = user_fk()
    zone_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), ForeignKey("zones.id", ondelete="SET NULL"))
    location_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid(as_uuid=True), ForeignKey("locations.id", ondelete="SET NULL"))
    attendance_date: Mapped[date] = mapped_column(Date, nullable=False)  # Local date
    clock_in: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)  # UTC
    clock_out: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))  # UTC, NULL while open
    clock_in_lat: Mapped[Optional[float]] = mapped_column(Float)
    clock_in_lng: Mapped[Optional[float]] = mapped_column(Float)
    clock_out_lat: Mapped[Optional[float]] = mapped_column(Float)
    clock_out_lng: Mapped[Optional[float]] = mapped_column(Float)
    clock_in_photo_url: Mapped[Optional[str]] = mapped_column(Text)
    clock_out_photo_url: Mapped[Optional[str]] = mapped_column(Text)
    clock_in_inside_geofence: Mapped[Optional[bool]] = mapped_column(Boolean)  # NULL when no geofence/GPS to check
    clock_out_inside_geofence: Mapped[Optional[bool]] = mapped_column(Boolean)
    status: Mapped[str] = mapped_column(String(20), default="Present")  # Present|Late|Absent
    approval_status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|approved|rejected
    overtime: Mapped[bool] = mapped_column(Boolean, default=False)
    double_duty: Mapped[bool] = mapped_column(Boolean, default=False)
    overtime_approval_status: Mapped[Optional[str]] = mapped_column(String(20))  # pending|manager_approved|rejected
    double_duty_approval_status: Mapped[Optional[str]] = mapped_column(String(20))  # pending|manager_approved|rejected
    clocked_in_by: Mapped[Optional[uuid.UUID]] = user_fk()
    clocked_out_by: Mapped[Optional[uuid.UUID]] = user_fk()  # NULL when closed by the auto clock-out sweep
    marked_by_supervisor: Mapped[Optional[uuid.UUID]] = user_fk()
    approved_by_manager: Mapped[Optional[uuid.UUID]] = user_fk()
    approved_by: Mapped[Optional[uuid.UUID]] = user_fk()
    rejected_by: Mapped[Optional[uuid.UUID]] = user_fk()
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text)
    is_override: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Indexes for queries
    __table_args__ = (
        Index('idx_attendance_staff_date', 'staff_id', 'attendance_date'),
        Index('idx_attendance_open', 'clock_out', 'attendance_date'),
        Index('idx_attendance_approval', 'approval_status'),
    )


class LeaveRequest(Base):
    __tablename__ = "leave_requests"

    id: Mapped[uuid.UUID] = uuid_pk()
    staff_id: Mapped[uuid.UUID] = user_fk(ondelete="CASCADE", nullable=False, index=True)
    supervisor_id: Mapped[Optional[uuid.UUID]] = user_fk()
    leave_type: Mapped[str] = mapped_column(String(50), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)  # inclusive
    reason: Mapped[Optional[str]] = mapped_column(Text, default="")
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|approved|rejected
    approved_by: Mapped[Optional[uuid.UUID]] = user_fk()
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index('idx_leave_dates', 'start_date', 'end_date'),
    )


# Live tracking

class LiveTracking(Base):
    """Per staff, per local date location trail"""
    __tablename__ = "live_tracking"

    id: Mapped[uuid.UUID] = uuid_pk()
    staff_id: Mapped[uuid.UUID] = user_fk(ondelete="CASCADE", nullable=False, index=True)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_update: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    points = relationship(
        "LiveTrackingPoint",
        order_by="LiveTrackingPoint.sequence",
        cascade="all, delete-orphan",
        back_populates="tracking",
    )

    __table_args__ = (
        UniqueConstraint("staff_id", "date", name="uq_live_tracking_staff_date"),
    )


class LiveTrackingPoint(Base):
    """Append-only trail point; sequence is the insertion order"""
    __tablename__ = "live_tracking_points"

    id: Mapped[uuid.UUID] = uuid_pk()
    tracking_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), ForeignKey("live_tracking.id", ondelete="CASCADE"), nullable=False, index=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    lat: Mapped[float] = mapped_column(Float, nullable=False)
    lng: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    tracking = relationship("LiveTracking", back_populates="points")

    __table_args__ = (
        UniqueConstraint("tracking_id", "sequence", name="uq_live_tracking_point_seq"),
    )


class SystemConfig(Base):
    __tablename__ = "system_configs"

    id: Mapped[uuid.UUID] = uuid_pk()
    config_key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, default="default")
    grace_period_minutes: Mapped[int] = mapped_column(Integer, default=15)
    min_clock_interval_hours: Mapped[int] = mapped_column(Integer, default=6)
    other_settings: Mapped[Optional[dict]] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class Notification(Base):
    """Push notification records"""
    __tablename__ = "notifications"

    id: Mapped[uuid.UUID] = uuid_pk()
    user_id: Mapped[uuid.UUID] = user_fk(ondelete="CASCADE", nullable=False, index=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False, default="push")
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[Optional[str]] = mapped_column(Text)
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON)  # {type, requestId, status, ...}
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(String(20), default="pending")  # pending|sent|failed
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    # Indexes
    __table_args__ = (
        Index('idx_notifications_user_status', 'user_id', 'status'),
        Index('idx_notifications_created', 'created_at'),
    )
