from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..auth.security import get_current_user, require_roles, ADMIN_TIER
from ..schemas.registry import LocationCreate, LocationPatch, PointCheck
from ..services import registry

router = APIRouter(prefix="/api/locations", tags=["locations"])


@router.get("")
def list_locations(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, "data": [registry.location_to_dict(loc) for loc in registry.list_locations(db)]}


@router.get("/{location_id}")
def get_location(location_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, "data": registry.location_to_dict(registry.get_location(db, location_id))}


@router.post("", status_code=201)
def create_location(
    payload: LocationCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*ADMIN_TIER)),
):
    location = registry.create_location(db, payload.model_dump(exclude_unset=True))
    return {"success": True, "data": registry.location_to_dict(location)}


@router.put("/{location_id}")
def update_location(
    location_id: str,
    payload: LocationPatch,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*ADMIN_TIER)),
):
    location = registry.update_location(db, location_id, payload.model_dump(exclude_unset=True))
    return {"success": True, "data": registry.location_to_dict(location)}


@router.delete("/{location_id}")
def delete_location(
    location_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*ADMIN_TIER)),
):
    registry.delete_location(db, location_id)
    return {"success": True, "message": "Location deleted"}


@router.post("/{location_id}/check")
def check_point(
    location_id: str,
    payload: PointCheck,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    location = registry.get_location(db, location_id)
    return {"success": True, "data": registry.check_point(location, payload.latitude, payload.longitude)}
