"""
Live location tracking.

One session per staff member per local date. A session may only be active
while its owner has an open attendance record; every location update
re-checks that and deactivates the session once the owner has clocked out.
"""
from datetime import date, datetime
from typing import Optional, List, Dict

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..errors import PreconditionError, ValidationError
from ..models.models import LiveTracking, LiveTrackingPoint, User
from .attendance import find_open_attendance
from .filters import Eq, apply_filters
from .time_rules import ensure_utc, local_today, utc_now


logger = structlog.get_logger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return ensure_utc(value).isoformat() if value else None


def _session_for(db: Session, staff_id, day: date) -> Optional[LiveTracking]:
    return db.query(LiveTracking).filter(
        LiveTracking.staff_id == staff_id,
        LiveTracking.date == day,
    ).first()


def _require_clocked_in(db: Session, staff_id, today: date) -> None:
    if find_open_attendance(db, staff_id, today) is None:
        raise PreconditionError(
            "No active clock-in found. Please clock in before starting live tracking",
            PreconditionError.NO_ACTIVE_CLOCK_IN,
        )


def start_tracking(db: Session, staff_id, now: Optional[datetime] = None) -> LiveTracking:
    """Activate today's session, creating it if needed; an existing one only gets last_update refreshed."""
    now = ensure_utc(now) if now else utc_now()
    today = local_today(now)
    _require_clocked_in(db, staff_id, today)

    tracking = _session_for(db, staff_id, today)
    if tracking is None:
        tracking = LiveTracking(staff_id=staff_id, date=today, is_active=True, start_time=now, last_update=now)
        db.add(tracking)
        logger.info("live_tracking.started", staff_id=str(staff_id))
    else:
        tracking.is_active = True
        tracking.last_update = now
        tracking.updated_at = now
    db.commit()
    db.refresh(tracking)
    return tracking


def stop_tracking(db: Session, staff_id, now: Optional[datetime] = None) -> Optional[LiveTracking]:
    now = ensure_utc(now) if now else utc_now()
    tracking = _session_for(db, staff_id, local_today(now))
    if tracking is None or not tracking.is_active:
        return tracking
    tracking.is_active = False
    tracking.last_update = now
    tracking.updated_at = now
    db.commit()
    db.refresh(tracking)
    logger.info("live_tracking.stopped", staff_id=str(staff_id))
    return tracking


def update_location(db: Session, staff_id, lat: float, lng: float, now: Optional[datetime] = None) -> LiveTrackingPoint:
    """
    Append a point to today's trail.

    Creates and activates the session when there is none. Raises
    PreconditionError, after deactivating any session, when the staff member
    is no longer clocked in.
    """
    if isinstance(lat, bool) or isinstance(lng, bool) or not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
        raise ValidationError("Latitude and longitude must be numbers")
    now = ensure_utc(now) if now else utc_now()
    today = local_today(now)
    tracking = _session_for(db, staff_id, today)

    if find_open_attendance(db, staff_id, today) is None:
        if tracking is not None and tracking.is_active:
            tracking.is_active = False
            tracking.updated_at = now
            db.commit()
            logger.info("live_tracking.deactivated", staff_id=str(staff_id), reason="clocked_out")
        raise PreconditionError(
            "No active clock-in found. Live tracking requires an active clock-in",
            PreconditionError.NO_ACTIVE_CLOCK_IN,
        )

    try:
        return _append_point(db, staff_id, today, float(lat), float(lng), now)
    except IntegrityError:
        # A concurrent update created the session or took the sequence number
        db.rollback()
        logger.info("live_tracking.append_retry", staff_id=str(staff_id))
        return _append_point(db, staff_id, today, float(lat), float(lng), now)


def _next_sequence(db: Session, tracking_id) -> int:
    return db.query(func.coalesce(func.max(LiveTrackingPoint.sequence), 0)).filter(
        LiveTrackingPoint.tracking_id == tracking_id
    ).scalar() + 1


def _append_point(db: Session, staff_id, today: date, lat: float, lng: float, now: datetime) -> LiveTrackingPoint:
    tracking = _session_for(db, staff_id, today)
    if tracking is None:
        tracking = LiveTracking(staff_id=staff_id, date=today, is_active=True, start_time=now, last_update=now)
        db.add(tracking)
        db.flush()
    tracking.is_active = True
    tracking.last_update = now

    point = LiveTrackingPoint(
        tracking_id=tracking.id, sequence=_next_sequence(db, tracking.id), lat=lat, lng=lng, timestamp=now,
    )
    db.add(point)
    db.commit()
    db.refresh(point)
    return point


def point_to_dict(point: LiveTrackingPoint) -> Dict:
    return {"lat": point.lat, "lng": point.lng, "timestamp": _iso(point.timestamp)}


def tracking_to_dict(tracking: LiveTracking, staff: Optional[User] = None, with_points: bool = True) -> Dict:
    points = list(tracking.points)
    last = points[-1] if points else None
    data = {
        "id": str(tracking.id),
        "staff_id": str(tracking.staff_id),
        "staff_name": staff.display_name if staff else "Unknown",
        "emp_no": staff.emp_no if staff else None,
        "date": tracking.date.isoformat(),
        "is_active": bool(tracking.is_active),
        "start_time": _iso(tracking.start_time),
        "last_update": _iso(tracking.last_update),
        "current_lat": last.lat if last else None,
        "current_lng": last.lng if last else None,
    }
    if with_points:
        data["locations"] = [point_to_dict(p) for p in points]
    return data


def tracking_status(db: Session, staff_id, today: Optional[date] = None) -> Dict:
    today = today or local_today()
    row = db.query(LiveTracking, User).outerjoin(User, User.id == LiveTracking.staff_id).options(
        selectinload(LiveTracking.points)
    ).filter(
        LiveTracking.staff_id == staff_id,
        LiveTracking.date == today,
        LiveTracking.is_active.is_(True),
    ).first()
    if row is None:
        return {"is_active": False}
    tracking, staff = row
    return tracking_to_dict(tracking, staff)


def list_tracking(db: Session, day: Optional[date] = None, staff_id=None) -> List[Dict]:
    query = db.query(LiveTracking, User).outerjoin(User, User.id == LiveTracking.staff_id).options(
        selectinload(LiveTracking.points)
    )
    query = apply_filters(query, [
        Eq(LiveTracking.date, day or local_today()),
        Eq(LiveTracking.staff_id, staff_id) if staff_id else None,
    ])
    return [tracking_to_dict(t, s) for t, s in query.order_by(LiveTracking.last_update.desc()).all()]


def list_active(db: Session, today: Optional[date] = None) -> List[Dict]:
    """Active sessions today with each staff member's latest point."""
    query = db.query(LiveTracking, User).outerjoin(User, User.id == LiveTracking.staff_id).options(
        selectinload(LiveTracking.points)
    ).filter(
        LiveTracking.date == (today or local_today()),
        LiveTracking.is_active.is_(True),
    ).order_by(LiveTracking.last_update.desc())

    result = []
    for tracking, staff in query.all():
        data = tracking_to_dict(tracking, staff, with_points=False)
        last = tracking.points[-1] if tracking.points else None
        data["department"] = staff.department if staff else None
        data["lat"] = last.lat if last else None
        data["lng"] = last.lng if last else None
        data["timestamp"] = _iso(last.timestamp) if last else data["last_update"]
        result.append(data)
    return result


def tracking_history(db: Session, staff_id, day: Optional[date] = None) -> Optional[Dict]:
    row = db.query(LiveTracking, User).outerjoin(User, User.id == LiveTracking.staff_id).options(
        selectinload(LiveTracking.points)
    ).filter(
        LiveTracking.staff_id == staff_id,
        LiveTracking.date == (day or local_today()),
    ).first()
    if row is None:
        return None
    tracking, staff = row
    data = tracking_to_dict(tracking, staff)
    data["end_time"] = _iso(tracking.updated_at)
    return data


def tracking_summary(tracking: LiveTracking) -> Dict:
    return {
        "id": str(tracking.id),
        "staff_id": str(tracking.staff_id),
        "date": tracking.date.isoformat(),
        "is_active": bool(tracking.is_active),
        "start_time": _iso(tracking.start_time),
        "last_update": _iso(tracking.last_update),
    }
