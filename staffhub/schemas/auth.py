from pydantic import BaseModel
from typing import Optional, List


class LoginRequest(BaseModel):
    identifier: str  # username or email
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeResponse(BaseModel):
    id: str
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    emp_no: Optional[str] = None
    roles: List[str]
    shift_start_time: Optional[str] = None
    shift_end_time: Optional[str] = None
