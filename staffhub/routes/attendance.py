"""
Attendance API routes.
Clock-in/out for self (or on behalf of staff for supervisors), listing and deletion.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import ForbiddenError
from ..models.models import User
from ..auth.security import get_current_user, require_roles, has_any_role, SUPERVISOR_TIER, MANAGER_TIER
from ..schemas.attendance import ClockInRequest, ClockOutRequest
from ..services import attendance as attendance_service
from ..services.time_rules import local_today

router = APIRouter(prefix="/api/attendance", tags=["attendance"])


@router.post("/clock-in", status_code=201)
def clock_in(
    payload: ClockInRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    att = attendance_service.clock_in(
        db,
        user,
        staff_id=payload.staff_id,
        lat=payload.latitude,
        lng=payload.longitude,
        photo_url=payload.photo_url,
        zone_id=payload.zone_id,
        location_id=payload.location_id,
    )
    return {
        "success": True,
        "message": "Clocked in successfully",
        "data": attendance_service.attendance_view(db, att.id),
    }


@router.post("/clock-out")
def clock_out(
    payload: ClockOutRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    att = attendance_service.clock_out(
        db,
        user,
        staff_id=payload.staff_id,
        lat=payload.latitude,
        lng=payload.longitude,
        photo_url=payload.photo_url,
    )
    return {
        "success": True,
        "message": "Clocked out successfully",
        "data": attendance_service.attendance_view(db, att.id),
    }


@router.get("/current")
def current_attendance(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """The caller's open record, if any."""
    att = attendance_service.find_open_attendance(db, user.id, local_today())
    return {"success": True, "data": attendance_service.attendance_to_dict(att) if att else None}


@router.get("")
def list_attendance(
    staff_id: Optional[str] = Query(None, alias="staffId"),
    supervisor_id: Optional[str] = Query(None, alias="supervisorId"),
    status: Optional[str] = None,
    approval_status: Optional[str] = Query(None, alias="approvalStatus"),
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    open_only: bool = Query(False, alias="openOnly"),
    limit: int = Query(500, ge=1, le=5000),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    # Staff without a supervisory role only see their own records
    if not has_any_role(user, SUPERVISOR_TIER):
        staff_id = str(user.id)
    filters = attendance_service.attendance_filters(
        staff_id=staff_id,
        supervisor_id=supervisor_id,
        status=status,
        approval_status=approval_status,
        date_from=date_from,
        date_to=date_to,
        open_only=open_only,
    )
    return {"success": True, "data": attendance_service.list_attendance(db, filters, limit=limit)}


@router.get("/{attendance_id}")
def get_attendance(
    attendance_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    data = attendance_service.attendance_view(db, attendance_id)
    if data["staff_id"] != str(user.id) and not has_any_role(user, SUPERVISOR_TIER):
        raise ForbiddenError("Not allowed to view this attendance record")
    return {"success": True, "data": data}


@router.delete("/{attendance_id}")
def delete_attendance(
    attendance_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_TIER)),
):
    attendance_service.delete_attendance(db, attendance_id)
    return {"success": True, "message": "Attendance record deleted"}
