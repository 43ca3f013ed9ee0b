from datetime import date
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class DecisionStatus(str, Enum):
    approved = "approved"
    rejected = "rejected"


class ClockInRequest(BaseModel):
    staff_id: Optional[str] = None  # omitted: the caller clocks themselves in
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    photo_url: Optional[str] = None
    zone_id: Optional[str] = None
    location_id: Optional[str] = None


class ClockOutRequest(BaseModel):
    staff_id: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    photo_url: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None


class LeaveCreate(BaseModel):
    staff_id: Optional[str] = None
    supervisor_id: Optional[str] = None
    leave_type: str = Field(min_length=1)
    start_date: date
    end_date: date
    reason: Optional[str] = None


class LeaveDecision(BaseModel):
    status: DecisionStatus


class LocationUpdate(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)

    @model_validator(mode="before")
    @classmethod
    def _numbers_only(cls, data):
        # Strings like "31.5" are not accepted as coordinates
        if isinstance(data, dict):
            for key in ("latitude", "longitude"):
                value = data.get(key)
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ValueError("Latitude and longitude must be numbers")
        return data
