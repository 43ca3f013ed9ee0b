from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..auth.security import get_current_user, require_roles, ADMIN_TIER
from ..schemas.registry import SystemConfigUpdate
from ..services.system_config import config_to_dict, get_system_config, update_system_config

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/config")
def read_config(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return {"success": True, "data": config_to_dict(get_system_config(db))}


@router.put("/config")
def write_config(
    payload: SystemConfigUpdate,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(*ADMIN_TIER)),
):
    config = update_system_config(
        db,
        grace_period_minutes=payload.grace_period_minutes,
        min_clock_interval_hours=payload.min_clock_interval_hours,
        other_settings=payload.other_settings,
    )
    return {"success": True, "message": "System settings updated", "data": config_to_dict(config)}
