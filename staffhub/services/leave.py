"""
Leave requests: pending -> approved | rejected, both terminal.
Decisions notify the staff member best-effort after the state change commits.
"""
from datetime import date, datetime, timezone
from typing import Optional, List, Dict

import structlog
from sqlalchemy.orm import Session, aliased

from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.models import LeaveRequest, User
from .filters import Eq, Range, apply_filters
from .ids import to_uuid, to_uuid_or_none
from .notifications import notify_best_effort
from .time_rules import local_today


logger = structlog.get_logger(__name__)

LEAVE_PENDING = "pending"
LEAVE_DECISIONS = ("approved", "rejected")


def get_leave_request(db: Session, request_id) -> LeaveRequest:
    request = db.query(LeaveRequest).filter(
        LeaveRequest.id == to_uuid(request_id, "Leave request", missing_is_not_found=True)
    ).first()
    if not request:
        raise NotFoundError("Leave request not found")
    return request


def create_leave_request(
    db: Session,
    staff_id,
    leave_type: str,
    start_date: date,
    end_date: date,
    supervisor_id=None,
    reason: Optional[str] = None,
) -> LeaveRequest:
    if not staff_id or not leave_type or not start_date or not end_date:
        raise ValidationError("staff_id, leave_type, start_date, and end_date are required", "missing_field")
    if start_date > end_date:
        raise ValidationError("start_date must be on or before end_date", "invalid_date_range")

    staff = db.query(User).filter(User.id == to_uuid(staff_id, "staff_id")).first()
    if not staff:
        raise NotFoundError("Staff member not found")

    request = LeaveRequest(
        staff_id=staff.id,
        supervisor_id=to_uuid_or_none(supervisor_id, "supervisor_id"),
        leave_type=leave_type,
        start_date=start_date,
        end_date=end_date,
        reason=reason or "",
        status=LEAVE_PENDING,
    )
    db.add(request)
    db.commit()
    db.refresh(request)
    logger.info("leave.created", request_id=str(request.id), staff_id=str(staff.id))

    if request.supervisor_id:
        notify_best_effort(
            db,
            request.supervisor_id,
            "New Leave Request",
            f"{staff.display_name} has submitted a leave request for {start_date} to {end_date}. Please review.",
            {"type": "leave_request", "requestId": str(request.id)},
        )
    return request


def decide_leave_request(db: Session, actor: User, request_id, status: str) -> LeaveRequest:
    """Approve or reject a pending request; decided requests cannot be re-decided."""
    if status not in LEAVE_DECISIONS:
        raise ValidationError("Status must be approved or rejected")
    request = get_leave_request(db, request_id)
    if request.status != LEAVE_PENDING:
        raise ConflictError(f"Leave request is already {request.status}", ConflictError.LEAVE_ALREADY_DECIDED)

    request.status = status
    request.approved_by = actor.id
    request.decided_at = datetime.now(timezone.utc)
    request.updated_at = request.decided_at
    db.commit()
    db.refresh(request)
    logger.info("leave.decided", request_id=str(request.id), status=status, actor_id=str(actor.id))

    notify_best_effort(
        db,
        request.staff_id,
        f"Leave Request {status.capitalize()}",
        f"Your leave request from {request.start_date} to {request.end_date} has been {status} by {actor.display_name}.",
        {"type": "leave_status_update", "requestId": str(request.id), "status": status},
    )
    return request


def delete_leave_request(db: Session, request_id) -> None:
    request = get_leave_request(db, request_id)
    db.delete(request)
    db.commit()


def leave_to_dict(req: LeaveRequest, staff: Optional[User] = None, supervisor: Optional[User] = None,
                  approver: Optional[User] = None) -> Dict:
    return {
        "id": str(req.id),
        "staff_id": str(req.staff_id),
        "staff_name": staff.display_name if staff else "Unknown Staff",
        "emp_no": staff.emp_no if staff else None,
        "staff_department": staff.department if staff else None,
        "supervisor_id": str(req.supervisor_id) if req.supervisor_id else None,
        "supervisor_name": supervisor.display_name if supervisor else None,
        "leave_type": req.leave_type,
        "start_date": req.start_date.isoformat(),
        "end_date": req.end_date.isoformat(),
        "reason": req.reason,
        "status": req.status,
        "approved_by": str(req.approved_by) if req.approved_by else None,
        "approved_by_name": approver.display_name if approver else None,
        "created_at": req.created_at.isoformat() if req.created_at else None,
    }


def list_leave_requests(db: Session, filters: List = ()) -> List[Dict]:
    staff = aliased(User)
    supervisor = aliased(User)
    approver = aliased(User)
    query = (
        db.query(LeaveRequest, staff, supervisor, approver)
        .outerjoin(staff, staff.id == LeaveRequest.staff_id)
        .outerjoin(supervisor, supervisor.id == LeaveRequest.supervisor_id)
        .outerjoin(approver, approver.id == LeaveRequest.approved_by)
    )
    query = apply_filters(query, filters).order_by(LeaveRequest.created_at.desc())
    return [leave_to_dict(r, s, sup, a) for r, s, sup, a in query.all()]


def leave_filters(staff_id=None, status: Optional[str] = None,
                  date_from: Optional[date] = None, date_to: Optional[date] = None) -> List:
    filters = []
    staff_uuid = to_uuid_or_none(staff_id, "staffId")
    if staff_uuid:
        filters.append(Eq(LeaveRequest.staff_id, staff_uuid))
    if status and status not in ("undefined", "null"):
        filters.append(Eq(LeaveRequest.status, status))
    if date_from or date_to:
        filters.append(Range(LeaveRequest.start_date, gte=date_from, lte=date_to))
    return filters


def list_todays_leave(db: Session, today: Optional[date] = None) -> List[Dict]:
    """Pending requests whose date span covers today."""
    today = today or local_today()
    return list_leave_requests(db, [
        Range(LeaveRequest.start_date, lte=today),
        Range(LeaveRequest.end_date, gte=today),
        Eq(LeaveRequest.status, LEAVE_PENDING),
    ])


def leave_view(db: Session, request_id) -> Dict:
    """Single request with the same joined names as the list view."""
    rows = list_leave_requests(db, [
        Eq(LeaveRequest.id, to_uuid(request_id, "Leave request", missing_is_not_found=True)),
    ])
    if not rows:
        raise NotFoundError("Leave request not found")
    return rows[0]
