from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import ForbiddenError
from ..models.models import User
from ..auth.security import get_current_user, has_any_role, SUPERVISOR_TIER
from ..schemas.attendance import LocationUpdate
from ..services import live_tracking as tracking_service
from ..services.ids import to_uuid

router = APIRouter(prefix="/api/live-tracking", tags=["live-tracking"])


def _target_staff(user: User, staff_id: Optional[str]):
    if not staff_id or staff_id == str(user.id):
        return user.id
    if not has_any_role(user, SUPERVISOR_TIER):
        raise ForbiddenError("Not allowed to view other staff members' tracking")
    return to_uuid(staff_id, "staffId")


@router.post("/start")
def start(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    tracking = tracking_service.start_tracking(db, user.id)
    return {"success": True, "data": tracking_service.tracking_summary(tracking)}


@router.post("/stop")
def stop(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    tracking_service.stop_tracking(db, user.id)
    return {"success": True, "message": "Live tracking stopped"}


@router.post("/update-location")
def update_location(
    payload: LocationUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    point = tracking_service.update_location(db, user.id, payload.latitude, payload.longitude)
    return {"success": True, "message": "Location updated", "data": tracking_service.point_to_dict(point)}


@router.get("/active")
def active(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, "data": tracking_service.list_active(db)}


@router.get("/status")
@router.get("/status/{staff_id}")
def status(
    staff_id: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return {"success": True, "data": tracking_service.tracking_status(db, _target_staff(user, staff_id))}


@router.get("")
def list_sessions(
    staff_id: Optional[str] = Query(None, alias="staffId"),
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    target = _target_staff(user, staff_id) if staff_id or not has_any_role(user, SUPERVISOR_TIER) else None
    return {"success": True, "data": tracking_service.list_tracking(db, day, target)}


@router.get("/{staff_id}")
def history(
    staff_id: str,
    day: Optional[date] = Query(None, alias="date"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return {"success": True, "data": tracking_service.tracking_history(db, _target_staff(user, staff_id), day)}
