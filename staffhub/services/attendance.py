"""
Attendance lifecycle.

A record is Open while clock_out is NULL and Closed once it is set. Clock-out,
manual or automatic, is a compare-and-set on ``clock_out IS NULL`` so that
a concurrent manual clock-out and auto clock-out sweep cannot both write.
Overtime, double duty and the record's own approval status are orthogonal
sub-states written directly by supervisors and managers.
"""
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional, List, Dict

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session, aliased

from ..auth.security import SUPERVISOR_TIER, has_any_role
from ..errors import ConflictError, ForbiddenError, NotFoundError, PreconditionError, ValidationError
from ..models.models import Attendance, Location, StaffAssignment, User, Zone
from .filters import Eq, IsNull, Range, AnyOf, apply_filters
from .geofence import is_within_location_boundaries
from .ids import to_uuid
from .system_config import get_system_config
from .time_rules import ensure_utc, is_late, local_today, utc_now


logger = structlog.get_logger(__name__)

APPROVAL_PENDING = "pending"
APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"
MANAGER_APPROVED = "manager_approved"

# flag attribute -> approval sub-state attribute
EXTRA_DUTY_FIELDS = {
    "overtime": "overtime_approval_status",
    "double_duty": "double_duty_approval_status",
}


def get_attendance(db: Session, attendance_id) -> Attendance:
    attendance = db.query(Attendance).filter(
        Attendance.id == to_uuid(attendance_id, "Attendance", missing_is_not_found=True)
    ).first()
    if not attendance:
        raise NotFoundError("Attendance not found")
    return attendance


def find_open_attendance(db: Session, staff_id, today: date) -> Optional[Attendance]:
    """Open record dated today or yesterday (overnight shifts)."""
    return db.query(Attendance).filter(
        Attendance.staff_id == staff_id,
        Attendance.clock_out.is_(None),
        Attendance.attendance_date.in_([today, today - timedelta(days=1)]),
    ).order_by(Attendance.clock_in.desc()).first()


def get_active_assignment(db: Session, staff_id) -> Optional[StaffAssignment]:
    return db.query(StaffAssignment).filter(
        StaffAssignment.staff_id == staff_id,
        StaffAssignment.is_active.is_(True),
    ).order_by(StaffAssignment.created_at.desc()).first()


def _resolve_staff(db: Session, actor: User, staff_id) -> User:
    """Target staff member; acting for someone else needs a supervisor-tier role."""
    if staff_id is None or str(staff_id) == str(actor.id):
        return actor
    if not has_any_role(actor, SUPERVISOR_TIER):
        raise ForbiddenError("Only supervisors can clock in/out for other staff")
    staff = db.query(User).filter(User.id == to_uuid(staff_id, "staff_id")).first()
    if not staff or not staff.is_active:
        raise NotFoundError("Staff member not found")
    return staff


def _geofence_for(db: Session, zone_id, location_id):
    if zone_id:
        zone = db.query(Zone).filter(Zone.id == zone_id).first()
        if zone:
            return zone
    if location_id:
        return db.query(Location).filter(Location.id == location_id).first()
    return None


def _inside(geofence, lat: Optional[float], lng: Optional[float]) -> Optional[bool]:
    if geofence is None or lat is None or lng is None:
        return None
    return is_within_location_boundaries(float(lat), float(lng), geofence)


def clock_in(
    db: Session,
    actor: User,
    staff_id=None,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    photo_url: Optional[str] = None,
    zone_id=None,
    location_id=None,
    now: Optional[datetime] = None,
) -> Attendance:
    """
    Open a new attendance record.

    Raises ConflictError when the staff member already has an open record for
    today or yesterday, or clocked in less than the configured minimum
    interval ago.
    """
    now = ensure_utc(now) if now else utc_now()
    staff = _resolve_staff(db, actor, staff_id)
    is_override = staff.id != actor.id
    today = local_today(now)

    if find_open_attendance(db, staff.id, today):
        raise ConflictError("Already clocked in", ConflictError.ALREADY_CLOCKED_IN)

    config = get_system_config(db)
    last = db.query(Attendance).filter(
        Attendance.staff_id == staff.id
    ).order_by(Attendance.clock_in.desc()).first()
    if last and config.min_clock_interval_hours:
        earliest = ensure_utc(last.clock_in) + timedelta(hours=config.min_clock_interval_hours)
        if now < earliest:
            raise ConflictError(
                f"Clock-in is allowed {config.min_clock_interval_hours} hours after the previous clock-in, "
                "even when that record is already closed",
                ConflictError.CLOCK_INTERVAL,
            )

    assignment = get_active_assignment(db, staff.id)
    zone_uuid = to_uuid(zone_id, "zone_id") if zone_id else (assignment.zone_id if assignment else None)
    location_uuid = to_uuid(location_id, "location_id") if location_id else (assignment.location_id if assignment else None)
    if zone_uuid and not location_uuid:
        zone = db.query(Zone).filter(Zone.id == zone_uuid).first()
        location_uuid = zone.location_id if zone else None
    supervisor_id = assignment.supervisor_id if assignment else None
    if is_override and supervisor_id is None:
        supervisor_id = actor.id

    grace = config.grace_period_minutes or 0
    status = "Late" if is_late(now, today, staff.shift_start_time, grace) else "Present"

    attendance = Attendance(
        staff_id=staff.id,
        supervisor_id=supervisor_id,
        zone_id=zone_uuid,
        location_id=location_uuid,
        attendance_date=today,
        clock_in=now,
        clock_in_lat=lat,
        clock_in_lng=lng,
        clock_in_photo_url=photo_url,
        clock_in_inside_geofence=_inside(_geofence_for(db, zone_uuid, location_uuid), lat, lng),
        status=status,
        approval_status=APPROVAL_PENDING,
        overtime=False,
        double_duty=False,
        clocked_in_by=actor.id,
        is_override=is_override,
    )
    db.add(attendance)
    db.commit()
    db.refresh(attendance)

    logger.info(
        "attendance.clock_in",
        attendance_id=str(attendance.id),
        staff_id=str(staff.id),
        actor_id=str(actor.id),
        status=status,
        inside_geofence=attendance.clock_in_inside_geofence,
        override=is_override,
    )
    return attendance


def close_attendance(
    db: Session,
    attendance_id: uuid.UUID,
    clock_out: datetime,
    clocked_out_by: Optional[uuid.UUID] = None,
    require_unflagged: bool = False,
    **fields,
) -> bool:
    """
    Compare-and-set clock-out.

    Writes only if the record is still open (and, for the sweep, still not
    flagged overtime/double duty). Returns False when another writer won.
    """
    stmt = update(Attendance).where(
        Attendance.id == attendance_id,
        Attendance.clock_out.is_(None),
    )
    if require_unflagged:
        stmt = stmt.where(Attendance.overtime.is_(False), Attendance.double_duty.is_(False))
    values = dict(fields)
    values.update(
        clock_out=ensure_utc(clock_out),
        clocked_out_by=clocked_out_by,
        updated_at=datetime.now(timezone.utc),
    )
    result = db.execute(stmt.values(**values).execution_options(synchronize_session=False))
    db.commit()
    return result.rowcount == 1


def clock_out(
    db: Session,
    actor: User,
    staff_id=None,
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    photo_url: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Attendance:
    """Close the staff member's open record at ``now``."""
    now = ensure_utc(now) if now else utc_now()
    staff = _resolve_staff(db, actor, staff_id)

    attendance = find_open_attendance(db, staff.id, local_today(now))
    if not attendance:
        raise PreconditionError("No active clock-in found", PreconditionError.NO_ACTIVE_CLOCK_IN)

    geofence = _geofence_for(db, attendance.zone_id, attendance.location_id)
    closed = close_attendance(
        db,
        attendance.id,
        clock_out=now,
        clocked_out_by=actor.id,
        clock_out_lat=lat,
        clock_out_lng=lng,
        clock_out_photo_url=photo_url,
        clock_out_inside_geofence=_inside(geofence, lat, lng),
    )
    if not closed:
        raise PreconditionError("Attendance is already clocked out", PreconditionError.ALREADY_CLOCKED_OUT)

    db.refresh(attendance)
    logger.info(
        "attendance.clock_out",
        attendance_id=str(attendance.id),
        staff_id=str(staff.id),
        actor_id=str(actor.id),
    )
    return attendance


# Overtime / double duty

def _extra_duty_fields(kind: str):
    if kind not in EXTRA_DUTY_FIELDS:
        raise ValidationError(f"Unknown duty type: {kind}")
    return kind, EXTRA_DUTY_FIELDS[kind]


def mark_extra_duty(db: Session, actor: User, attendance_id, kind: str) -> Attendance:
    """Supervisor flags overtime/double duty; the flag waits for manager approval."""
    flag, status_field = _extra_duty_fields(kind)
    attendance = get_attendance(db, attendance_id)
    setattr(attendance, flag, True)
    setattr(attendance, status_field, APPROVAL_PENDING)
    attendance.marked_by_supervisor = actor.id
    attendance.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(attendance)
    logger.info("attendance.marked", attendance_id=str(attendance.id), kind=kind, actor_id=str(actor.id))
    return attendance


def approve_extra_duty(db: Session, actor: User, attendance_id, kind: str) -> Attendance:
    _, status_field = _extra_duty_fields(kind)
    attendance = get_attendance(db, attendance_id)
    setattr(attendance, status_field, MANAGER_APPROVED)
    attendance.approved_by_manager = actor.id
    attendance.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(attendance)
    logger.info("attendance.extra_duty_approved", attendance_id=str(attendance.id), kind=kind, actor_id=str(actor.id))
    return attendance


def reject_extra_duty(
    db: Session,
    actor: User,
    attendance_id,
    kind: str,
    reason: Optional[str] = None,
) -> Attendance:
    """Rejection clears the flag, which makes an open record eligible for auto clock-out again."""
    flag, status_field = _extra_duty_fields(kind)
    attendance = get_attendance(db, attendance_id)
    setattr(attendance, flag, False)
    setattr(attendance, status_field, APPROVAL_REJECTED)
    attendance.rejected_by = actor.id
    attendance.rejection_reason = reason or None
    attendance.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(attendance)
    logger.info("attendance.extra_duty_rejected", attendance_id=str(attendance.id), kind=kind, actor_id=str(actor.id))
    return attendance


# Record approval

def set_approval_status(
    db: Session,
    actor: User,
    attendance_id,
    approval_status: str,
    reason: Optional[str] = None,
) -> Attendance:
    """Direct overwrite of the record's approval status; re-deciding is allowed."""
    if approval_status not in (APPROVAL_APPROVED, APPROVAL_REJECTED):
        raise ValidationError("Status must be approved or rejected")
    attendance = get_attendance(db, attendance_id)
    attendance.approval_status = approval_status
    if approval_status == APPROVAL_APPROVED:
        attendance.approved_by = actor.id
    else:
        attendance.rejected_by = actor.id
        attendance.rejection_reason = reason or attendance.rejection_reason
    attendance.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(attendance)
    logger.info(
        "attendance.decided",
        attendance_id=str(attendance.id),
        approval_status=approval_status,
        actor_id=str(actor.id),
    )
    return attendance


def delete_attendance(db: Session, attendance_id) -> None:
    attendance = get_attendance(db, attendance_id)
    db.delete(attendance)
    db.commit()


# Listing

def _iso(value):
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value).isoformat()
    return value.isoformat()


def attendance_to_dict(
    att: Attendance,
    staff: Optional[User] = None,
    supervisor: Optional[User] = None,
    location: Optional[Location] = None,
    zone: Optional[Zone] = None,
    marked_by: Optional[User] = None,
) -> Dict:
    return {
        "id": str(att.id),
        "staff_id": str(att.staff_id),
        "staff_name": staff.display_name if staff else "Unknown",
        "emp_no": staff.emp_no if staff else None,
        "supervisor_id": str(att.supervisor_id) if att.supervisor_id else None,
        "supervisor_name": supervisor.display_name if supervisor else None,
        "zone_id": str(att.zone_id) if att.zone_id else None,
        "zone_name": zone.name if zone else None,
        "location_id": str(att.location_id) if att.location_id else None,
        "location_name": location.name if location else "N/A",
        "attendance_date": _iso(att.attendance_date),
        "clock_in": _iso(att.clock_in),
        "clock_out": _iso(att.clock_out),
        "clock_in_lat": att.clock_in_lat,
        "clock_in_lng": att.clock_in_lng,
        "clock_out_lat": att.clock_out_lat,
        "clock_out_lng": att.clock_out_lng,
        "clock_in_photo_url": att.clock_in_photo_url,
        "clock_out_photo_url": att.clock_out_photo_url,
        "clock_in_inside_geofence": att.clock_in_inside_geofence,
        "clock_out_inside_geofence": att.clock_out_inside_geofence,
        "status": att.status,
        "approval_status": att.approval_status,
        "overtime": bool(att.overtime),
        "overtime_approval_status": att.overtime_approval_status,
        "double_duty": bool(att.double_duty),
        "double_duty_approval_status": att.double_duty_approval_status,
        "clocked_in_by": str(att.clocked_in_by) if att.clocked_in_by else None,
        "clocked_out_by": str(att.clocked_out_by) if att.clocked_out_by else None,
        "marked_by_supervisor": str(att.marked_by_supervisor) if att.marked_by_supervisor else None,
        "marked_by_name": marked_by.display_name if marked_by else None,
        "approved_by_manager": str(att.approved_by_manager) if att.approved_by_manager else None,
        "rejected_by": str(att.rejected_by) if att.rejected_by else None,
        "rejection_reason": att.rejection_reason,
        "is_override": bool(att.is_override),
    }


def list_attendance(db: Session, filters: List = (), order_by=None, limit: Optional[int] = 500) -> List[Dict]:
    """Attendance joined with staff, supervisor, marker, location and zone in one query."""
    staff = aliased(User)
    supervisor = aliased(User)
    marked_by = aliased(User)
    query = (
        db.query(Attendance, staff, supervisor, Location, Zone, marked_by)
        .outerjoin(staff, staff.id == Attendance.staff_id)
        .outerjoin(supervisor, supervisor.id == Attendance.supervisor_id)
        .outerjoin(Location, Location.id == Attendance.location_id)
        .outerjoin(Zone, Zone.id == Attendance.zone_id)
        .outerjoin(marked_by, marked_by.id == Attendance.marked_by_supervisor)
    )
    query = apply_filters(query, filters)
    query = query.order_by(*(order_by or (Attendance.attendance_date.desc(), Attendance.created_at.desc())))
    if limit:
        query = query.limit(limit)
    return [
        attendance_to_dict(att, staff=s, supervisor=sup, location=loc, zone=z, marked_by=m)
        for att, s, sup, loc, z, m in query.all()
    ]


def attendance_filters(
    staff_id=None,
    supervisor_id=None,
    status: Optional[str] = None,
    approval_status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    open_only: bool = False,
) -> List:
    filters = []
    if staff_id:
        filters.append(Eq(Attendance.staff_id, to_uuid(staff_id, "staff_id")))
    if supervisor_id:
        filters.append(Eq(Attendance.supervisor_id, to_uuid(supervisor_id, "supervisor_id")))
    if status and status != "all":
        filters.append(Eq(Attendance.status, status))
    if approval_status and approval_status != "all":
        filters.append(Eq(Attendance.approval_status, approval_status))
    if date_from or date_to:
        filters.append(Range(Attendance.attendance_date, gte=date_from, lte=date_to))
    if open_only:
        filters.append(IsNull(Attendance.clock_out))
    return filters


def list_pending_approvals(db: Session) -> List[Dict]:
    return list_attendance(
        db,
        [Eq(Attendance.approval_status, APPROVAL_PENDING)],
        order_by=(Attendance.created_at.desc(),),
    )


def list_pending_extra_duty(db: Session) -> List[Dict]:
    """Records with overtime or double duty awaiting a manager, each listed once."""
    return list_attendance(
        db,
        [AnyOf((
            Eq(Attendance.overtime_approval_status, APPROVAL_PENDING),
            Eq(Attendance.double_duty_approval_status, APPROVAL_PENDING),
        ))],
        order_by=(Attendance.created_at.desc(),),
    )


def list_attendance_with_photos(db: Session, filters: List = ()) -> List[Dict]:
    photo_filter = AnyOf((
        IsNull(Attendance.clock_in_photo_url, is_null=False),
        IsNull(Attendance.clock_out_photo_url, is_null=False),
    ))
    return list_attendance(db, list(filters) + [photo_filter])


def attendance_view(db: Session, attendance_id) -> Dict:
    """Single record with the same joined fields as the list views."""
    rows = list_attendance(db, [Eq(Attendance.id, to_uuid(attendance_id, "Attendance", missing_is_not_found=True))], limit=1)
    if not rows:
        raise NotFoundError("Attendance not found")
    return rows[0]
