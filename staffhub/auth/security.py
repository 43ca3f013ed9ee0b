import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional, List

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from passlib.context import CryptContext
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import User


pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
http_bearer = HTTPBearer(auto_error=False)

ROLES = (
    "staff",
    "supervisor",
    "manager",
    "general_manager",
    "ceo",
    "super_admin",
    "admin_assistant",
    "sub_engineer",
)

# Who may mark overtime/double duty, act for other staff and see team leave
SUPERVISOR_TIER = ("supervisor", "manager", "general_manager", "ceo", "super_admin")
# Who may approve/reject attendance records, overtime, double duty and leave
MANAGER_TIER = ("manager", "general_manager", "ceo", "super_admin")
# Who may import KMZ files and maintain locations/system settings
ADMIN_TIER = ("ceo", "super_admin", "general_manager", "admin_assistant")
# Who may maintain zones
ZONE_EDITORS = ("ceo", "super_admin", "general_manager", "manager", "admin_assistant")


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(plain, hashed)
    except (ValueError, TypeError):
        return False


def create_access_token(user_id: str, roles: Optional[List[str]] = None) -> str:
    now = datetime.now(tz=timezone.utc)
    payload = {
        "sub": user_id,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=settings.jwt_ttl_seconds)).timestamp()),
        "jti": str(uuid.uuid4()),
        "roles": roles or [],
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token expired")
    except jwt.InvalidTokenError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")


def get_current_user(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer),
    db: Session = Depends(get_db),
):
    if creds is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    payload = decode_token(creds.credentials)
    user_id_raw = payload.get("sub")
    try:
        user_uuid = uuid.UUID(str(user_id_raw))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid subject")
    user = db.query(User).filter(User.id == user_uuid).first()
    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not active")
    return user


def has_any_role(user: User, roles) -> bool:
    return bool(set(user.role_names) & set(roles))


def require_roles(*allowed_roles: str):
    """Require at least one of the given roles (OR logic)."""
    def _dep(user: User = Depends(get_current_user)):
        if not has_any_role(user, allowed_roles):
            raise HTTPException(status_code=403, detail="User role is not authorized to access this route")
        return user

    return _dep
