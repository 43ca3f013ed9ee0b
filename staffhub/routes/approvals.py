"""
Approval API routes.
Supervisors mark overtime/double duty; managers approve or reject those flags
and the attendance records themselves.
"""
from datetime import date
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..auth.security import require_roles, SUPERVISOR_TIER, MANAGER_TIER
from ..schemas.attendance import RejectRequest
from ..services import attendance as attendance_service

router = APIRouter(prefix="/api/approvals", tags=["approvals"])


def _result(db: Session, att, message: str):
    return {"success": True, "message": message, "data": attendance_service.attendance_view(db, att.id)}


@router.get("/pending")
def pending_approvals(
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*SUPERVISOR_TIER)),
):
    return {"success": True, "data": attendance_service.list_pending_approvals(db)}


@router.put("/attendance/{attendance_id}/approve")
def approve_attendance(
    attendance_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_TIER)),
):
    att = attendance_service.set_approval_status(db, user, attendance_id, attendance_service.APPROVAL_APPROVED)
    return _result(db, att, "Attendance approved")


@router.put("/attendance/{attendance_id}/reject")
def reject_attendance(
    attendance_id: str,
    payload: Optional[RejectRequest] = Body(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_TIER)),
):
    reason = payload.reason if payload else None
    att = attendance_service.set_approval_status(db, user, attendance_id, attendance_service.APPROVAL_REJECTED, reason)
    return _result(db, att, "Attendance rejected")


@router.get("/attendance-with-photos")
def attendance_with_photos(
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    supervisor_id: Optional[str] = Query(None, alias="supervisorId"),
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*SUPERVISOR_TIER)),
):
    filters = attendance_service.attendance_filters(
        supervisor_id=supervisor_id, status=status, date_from=date_from, date_to=date_to,
    )
    return {"success": True, "data": attendance_service.list_attendance_with_photos(db, filters)}


@router.get("/pending-overtime-doubleduty")
def pending_overtime_double_duty(
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_TIER)),
):
    return {"success": True, "data": attendance_service.list_pending_extra_duty(db)}


# Overtime

@router.put("/mark-overtime/{attendance_id}")
def mark_overtime(attendance_id: str, db: Session = Depends(get_db), user: User = Depends(require_roles(*SUPERVISOR_TIER))):
    att = attendance_service.mark_extra_duty(db, user, attendance_id, "overtime")
    return _result(db, att, "Overtime marked. Waiting for manager approval.")


@router.put("/approve-overtime/{attendance_id}")
def approve_overtime(attendance_id: str, db: Session = Depends(get_db), user: User = Depends(require_roles(*MANAGER_TIER))):
    att = attendance_service.approve_extra_duty(db, user, attendance_id, "overtime")
    return _result(db, att, "Overtime approved")


@router.put("/reject-overtime/{attendance_id}")
def reject_overtime(
    attendance_id: str,
    payload: Optional[RejectRequest] = Body(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_TIER)),
):
    att = attendance_service.reject_extra_duty(db, user, attendance_id, "overtime", payload.reason if payload else None)
    return _result(db, att, "Overtime rejected")


# Double duty

@router.put("/mark-double-duty/{attendance_id}")
def mark_double_duty(attendance_id: str, db: Session = Depends(get_db), user: User = Depends(require_roles(*SUPERVISOR_TIER))):
    att = attendance_service.mark_extra_duty(db, user, attendance_id, "double_duty")
    return _result(db, att, "Double duty marked. Waiting for manager approval.")


@router.put("/approve-double-duty/{attendance_id}")
def approve_double_duty(attendance_id: str, db: Session = Depends(get_db), user: User = Depends(require_roles(*MANAGER_TIER))):
    att = attendance_service.approve_extra_duty(db, user, attendance_id, "double_duty")
    return _result(db, att, "Double duty approved")


@router.put("/reject-double-duty/{attendance_id}")
def reject_double_duty(
    attendance_id: str,
    payload: Optional[RejectRequest] = Body(default=None),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_TIER)),
):
    att = attendance_service.reject_extra_duty(db, user, attendance_id, "double_duty", payload.reason if payload else None)
    return _result(db, att, "Double duty rejected")
