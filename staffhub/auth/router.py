from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import User
from ..schemas.auth import LoginRequest, TokenResponse, MeResponse
from .security import verify_password, create_access_token, get_current_user


router = APIRouter(prefix="/api/auth", tags=["auth"])
logger = structlog.get_logger(__name__)


@router.post("/login")
def login(req: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(
        (User.username == req.identifier) | (User.email == req.identifier)
    ).first()
    if not user or not user.is_active or not verify_password(req.password, user.password_hash):
        logger.info("auth.login_failed", identifier=req.identifier)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    access = create_access_token(str(user.id), roles=user.role_names)
    user.last_login_at = datetime.now(timezone.utc)
    db.commit()
    return {"success": True, "data": TokenResponse(access_token=access).model_dump()}


@router.get("/me")
def me(user: User = Depends(get_current_user)):
    return {
        "success": True,
        "data": MeResponse(
            id=str(user.id),
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            emp_no=user.emp_no,
            roles=user.role_names,
            shift_start_time=user.shift_start_time,
            shift_end_time=user.shift_end_time,
        ).model_dump(),
    }
