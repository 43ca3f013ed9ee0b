from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..auth.security import get_current_user, require_roles, MANAGER_TIER
from ..schemas.registry import AssignmentCreate
from ..services import registry

router = APIRouter(prefix="/api/assignments", tags=["assignments"])


@router.get("")
def list_assignments(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, "data": registry.list_assignments(db)}


@router.post("", status_code=201)
def create_assignment(
    payload: AssignmentCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_TIER)),
):
    assignment = registry.create_assignment(db, payload.staff_id, payload.supervisor_id, payload.zone_id)
    return {"success": True, "data": registry.list_assignments(db, assignment.id)[0]}


@router.put("/{assignment_id}/deactivate")
def deactivate_assignment(
    assignment_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_TIER)),
):
    registry.deactivate_assignment(db, assignment_id)
    return {"success": True, "message": "Assignment deactivated"}
