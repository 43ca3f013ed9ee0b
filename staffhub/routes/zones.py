from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..auth.security import get_current_user, require_roles, ZONE_EDITORS, MANAGER_TIER
from ..schemas.registry import ZoneCreate, ZonePatch
from ..services import registry

router = APIRouter(prefix="/api/zones", tags=["zones"])


@router.get("")
def list_zones(
    location_id: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return {"success": True, "data": registry.list_zones(db, location_id)}


@router.get("/{zone_id}")
def get_zone(zone_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, "data": registry.zone_to_dict(registry.get_zone(db, zone_id))}


@router.post("", status_code=201)
def create_zone(
    payload: ZoneCreate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*ZONE_EDITORS)),
):
    zone = registry.create_zone(db, payload.model_dump())
    return {"success": True, "data": registry.zone_to_dict(zone)}


@router.put("/{zone_id}")
def update_zone(
    zone_id: str,
    payload: ZonePatch,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*ZONE_EDITORS)),
):
    zone = registry.update_zone(db, zone_id, payload.model_dump(exclude_unset=True))
    return {"success": True, "data": registry.zone_to_dict(zone)}


@router.delete("/{zone_id}")
def delete_zone(
    zone_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*MANAGER_TIER)),
):
    registry.delete_zone(db, zone_id)
    return {"success": True, "message": "Zone deleted successfully"}
