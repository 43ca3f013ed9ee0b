from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import ForbiddenError
from ..models.models import User
from ..auth.security import get_current_user, require_roles, has_any_role, SUPERVISOR_TIER, MANAGER_TIER
from ..schemas.attendance import LeaveCreate, LeaveDecision
from ..services import leave as leave_service

router = APIRouter(prefix="/api/leave", tags=["leave"])


@router.get("")
def list_leave(
    staff_id: Optional[str] = Query(None, alias="staffId"),
    status: Optional[str] = None,
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if not has_any_role(user, SUPERVISOR_TIER):
        staff_id = str(user.id)
    filters = leave_service.leave_filters(staff_id=staff_id, status=status, date_from=date_from, date_to=date_to)
    return {"success": True, "data": leave_service.list_leave_requests(db, filters)}


@router.get("/today")
def todays_leave(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, "data": leave_service.list_todays_leave(db)}


@router.post("", status_code=201)
def create_leave(
    payload: LeaveCreate,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    staff_id = payload.staff_id or str(user.id)
    if staff_id != str(user.id) and not has_any_role(user, SUPERVISOR_TIER):
        raise ForbiddenError("Only supervisors can request leave for other staff")
    request = leave_service.create_leave_request(
        db,
        staff_id=staff_id,
        leave_type=payload.leave_type,
        start_date=payload.start_date,
        end_date=payload.end_date,
        supervisor_id=payload.supervisor_id,
        reason=payload.reason,
    )
    return {"success": True, "data": leave_service.leave_view(db, request.id)}


@router.put("/{request_id}/status")
def decide_leave(
    request_id: str,
    payload: LeaveDecision,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_TIER)),
):
    request = leave_service.decide_leave_request(db, user, request_id, payload.status.value)
    return {"success": True, "data": leave_service.leave_view(db, request.id)}


@router.delete("/{request_id}")
def delete_leave(
    request_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*SUPERVISOR_TIER)),
):
    leave_service.delete_leave_request(db, request_id)
    return {"success": True, "message": "Leave request deleted"}
