from typing import Optional, List, Dict, Any

from pydantic import BaseModel, Field, field_validator

from ..services.geofence import is_usable_ring
from ..services.time_rules import is_valid_shift_time


class LocationBase(BaseModel):
    code: Optional[str] = None
    description: Optional[str] = None
    center_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    center_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    radius_meters: Optional[int] = Field(default=None, ge=0)
    boundaries: Optional[List[List[float]]] = None  # [[lng, lat], ...]
    morning_shift_start: Optional[str] = None
    morning_shift_end: Optional[str] = None
    night_shift_start: Optional[str] = None
    night_shift_end: Optional[str] = None
    is_office: Optional[bool] = None

    @field_validator("morning_shift_start", "morning_shift_end", "night_shift_start", "night_shift_end")
    @classmethod
    def _hh_mm(cls, v):
        if v in (None, ""):
            return v
        if not is_valid_shift_time(v):
            raise ValueError("must be HH:MM (00:00-23:59)")
        return v

    @field_validator("boundaries")
    @classmethod
    def _pairs(cls, v):
        if v is None:
            return v
        if any(len(p) < 2 for p in v):
            raise ValueError("each boundary point must be [lng, lat]")
        if not is_usable_ring(v):
            raise ValueError("boundaries needs at least three distinct points")
        return [[p[0], p[1]] for p in v]


class LocationCreate(LocationBase):
    name: str = Field(min_length=1)


class LocationPatch(LocationBase):
    name: Optional[str] = None


class PointCheck(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)


class ZoneCreate(BaseModel):
    name: str = Field(min_length=1)
    location_id: str
    description: Optional[str] = None
    center_lat: float = Field(ge=-90, le=90)
    center_lng: float = Field(ge=-180, le=180)
    radius_meters: int = Field(ge=0)


class ZonePatch(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    center_lat: Optional[float] = Field(default=None, ge=-90, le=90)
    center_lng: Optional[float] = Field(default=None, ge=-180, le=180)
    radius_meters: Optional[int] = Field(default=None, ge=0)


class AssignmentCreate(BaseModel):
    staff_id: str
    supervisor_id: str
    zone_id: str


class SystemConfigUpdate(BaseModel):
    grace_period_minutes: Optional[int] = Field(default=None, ge=0, le=1440)
    min_clock_interval_hours: Optional[int] = Field(default=None, ge=0, le=24)
    other_settings: Optional[Dict[str, Any]] = None
