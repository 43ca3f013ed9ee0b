"""
Geofence registry: locations, zones and staff assignments.
Locations and zones are soft-deleted; assignments are deactivated.
"""
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

import structlog
from sqlalchemy.orm import Session, aliased

from ..errors import ConflictError, NotFoundError, ValidationError
from ..models.models import Location, StaffAssignment, User, Zone
from .filters import Eq, find
from .geofence import close_ring, haversine_distance, is_usable_ring, is_within_location_boundaries
from .ids import to_uuid
from .time_rules import is_valid_shift_time


logger = structlog.get_logger(__name__)

LOCATION_FIELDS = (
    "name", "code", "description", "center_lat", "center_lng", "radius_meters", "boundaries",
    "morning_shift_start", "morning_shift_end", "night_shift_start", "night_shift_end", "is_office",
)
SHIFT_FIELDS = ("morning_shift_start", "morning_shift_end", "night_shift_start", "night_shift_end")
ZONE_FIELDS = ("name", "description", "center_lat", "center_lng", "radius_meters")


def _now():
    return datetime.now(timezone.utc)


# Locations

def _clean_location_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    values = {k: v for k, v in data.items() if k in LOCATION_FIELDS}
    for field in SHIFT_FIELDS:
        value = values.get(field)
        if value not in (None, "") and not is_valid_shift_time(value):
            raise ValidationError(f"{field} must be HH:MM")
        if value == "":
            values[field] = None
    if values.get("boundaries") is not None:
        ring = values["boundaries"]
        if not is_usable_ring(ring):
            raise ValidationError("boundaries needs at least three distinct [lng, lat] points")
        values["boundaries"] = close_ring(ring)
    return values


def get_location(db: Session, location_id, include_inactive: bool = False) -> Location:
    query = db.query(Location).filter(Location.id == to_uuid(location_id, "Location", missing_is_not_found=True))
    if not include_inactive:
        query = query.filter(Location.is_active.is_(True))
    location = query.first()
    if not location:
        raise NotFoundError("Location not found")
    return location


def create_location(db: Session, data: Dict[str, Any]) -> Location:
    values = _clean_location_fields(data)
    if not values.get("name"):
        raise ValidationError("name is required", "missing_field")
    location = Location(**values)
    db.add(location)
    db.commit()
    db.refresh(location)
    logger.info("location.created", location_id=str(location.id), name=location.name)
    return location


def update_location(db: Session, location_id, data: Dict[str, Any]) -> Location:
    location = get_location(db, location_id)
    for key, value in _clean_location_fields(data).items():
        setattr(location, key, value)
    location.updated_at = _now()
    db.commit()
    db.refresh(location)
    return location


def delete_location(db: Session, location_id) -> None:
    location = get_location(db, location_id)
    location.is_active = False
    location.updated_at = _now()
    db.commit()
    logger.info("location.deactivated", location_id=str(location.id))


def list_locations(db: Session) -> List[Location]:
    return find(db, Location, [Eq(Location.is_active, True)], order_by=(Location.name,))


def location_to_dict(location: Location) -> Dict:
    return {
        "id": str(location.id),
        "name": location.name,
        "code": location.code,
        "description": location.description,
        "center_lat": location.center_lat,
        "center_lng": location.center_lng,
        "radius_meters": location.radius_meters,
        "boundaries": location.boundaries,
        "morning_shift_start": location.morning_shift_start,
        "morning_shift_end": location.morning_shift_end,
        "night_shift_start": location.night_shift_start,
        "night_shift_end": location.night_shift_end,
        "is_office": bool(location.is_office),
        "is_active": bool(location.is_active),
    }


def check_point(location, lat: float, lng: float) -> Dict:
    """Containment and distance from the geofence centre for a Location or Zone."""
    distance = None
    if location.center_lat is not None and location.center_lng is not None:
        distance = round(haversine_distance(lat, lng, location.center_lat, location.center_lng), 2)
    return {
        "inside": is_within_location_boundaries(lat, lng, location),
        "distance_meters": distance,
        "radius_meters": location.radius_meters,
        "uses_polygon": is_usable_ring(location.boundaries),
    }


# Zones

def get_zone(db: Session, zone_id, include_inactive: bool = False) -> Zone:
    query = db.query(Zone).filter(Zone.id == to_uuid(zone_id, "Zone", missing_is_not_found=True))
    if not include_inactive:
        query = query.filter(Zone.is_active.is_(True))
    zone = query.first()
    if not zone:
        raise NotFoundError("Zone not found")
    return zone


def create_zone(db: Session, data: Dict[str, Any]) -> Zone:
    missing = [f for f in ("name", "location_id", "center_lat", "center_lng", "radius_meters") if data.get(f) is None]
    if missing:
        raise ValidationError("name, location_id, center_lat, center_lng, and radius_meters are required", "missing_field")
    location = get_location(db, data["location_id"])
    zone = Zone(
        name=data["name"],
        location_id=location.id,
        description=data.get("description") or "",
        center_lat=float(data["center_lat"]),
        center_lng=float(data["center_lng"]),
        radius_meters=int(data["radius_meters"]),
        is_active=True,
    )
    db.add(zone)
    db.commit()
    db.refresh(zone)
    logger.info("zone.created", zone_id=str(zone.id), location_id=str(location.id))
    return zone


def update_zone(db: Session, zone_id, data: Dict[str, Any]) -> Zone:
    zone = get_zone(db, zone_id)
    for key, value in data.items():
        if key in ZONE_FIELDS and value is not None:
            setattr(zone, key, value)
    zone.updated_at = _now()
    db.commit()
    db.refresh(zone)
    return zone


def delete_zone(db: Session, zone_id) -> None:
    """Soft delete; refused while staff are actively assigned to the zone."""
    zone = get_zone(db, zone_id)
    active = db.query(StaffAssignment).filter(
        StaffAssignment.zone_id == zone.id,
        StaffAssignment.is_active.is_(True),
    ).count()
    if active:
        raise ConflictError("Cannot delete zone with active staff assignments", ConflictError.ZONE_HAS_ASSIGNMENTS)
    zone.is_active = False
    zone.updated_at = _now()
    db.commit()
    logger.info("zone.deactivated", zone_id=str(zone.id))


def list_zones(db: Session, location_id=None) -> List[Dict]:
    query = db.query(Zone, Location).outerjoin(Location, Location.id == Zone.location_id).filter(Zone.is_active.is_(True))
    if location_id:
        query = query.filter(Zone.location_id == to_uuid(location_id, "location_id"))
    return [zone_to_dict(z, loc) for z, loc in query.order_by(Zone.name).all()]


def zone_to_dict(zone: Zone, location: Optional[Location] = None) -> Dict:
    location = location or zone.location
    return {
        "id": str(zone.id),
        "name": zone.name,
        "location_id": str(zone.location_id),
        "location_name": location.name if location else "N/A",
        "description": zone.description,
        "center_lat": zone.center_lat,
        "center_lng": zone.center_lng,
        "radius_meters": zone.radius_meters,
        "is_active": bool(zone.is_active),
    }


# Assignments

def create_assignment(db: Session, staff_id, supervisor_id, zone_id) -> StaffAssignment:
    """New active assignment; any previous active assignment of the staff member is deactivated."""
    if not staff_id or not supervisor_id or not zone_id:
        raise ValidationError("staff_id, supervisor_id, and zone_id are required", "missing_field")
    zone = get_zone(db, zone_id)
    staff_uuid = to_uuid(staff_id, "staff_id")
    supervisor_uuid = to_uuid(supervisor_id, "supervisor_id")
    for uid, label in ((staff_uuid, "Staff member"), (supervisor_uuid, "Supervisor")):
        if not db.query(User).filter(User.id == uid).first():
            raise NotFoundError(f"{label} not found")

    now = _now()
    db.query(StaffAssignment).filter(
        StaffAssignment.staff_id == staff_uuid,
        StaffAssignment.is_active.is_(True),
    ).update({"is_active": False, "updated_at": now}, synchronize_session=False)

    assignment = StaffAssignment(
        staff_id=staff_uuid,
        supervisor_id=supervisor_uuid,
        zone_id=zone.id,
        location_id=zone.location_id,
        is_active=True,
    )
    db.add(assignment)
    db.commit()
    db.refresh(assignment)
    logger.info("assignment.created", assignment_id=str(assignment.id), staff_id=str(staff_uuid), zone_id=str(zone.id))
    return assignment


def deactivate_assignment(db: Session, assignment_id) -> StaffAssignment:
    assignment = db.query(StaffAssignment).filter(
        StaffAssignment.id == to_uuid(assignment_id, "Assignment", missing_is_not_found=True)
    ).first()
    if not assignment:
        raise NotFoundError("Assignment not found")
    assignment.is_active = False
    assignment.updated_at = _now()
    db.commit()
    db.refresh(assignment)
    return assignment


def list_assignments(db: Session, assignment_id=None) -> List[Dict]:
    staff = aliased(User)
    supervisor = aliased(User)
    query = (
        db.query(StaffAssignment, staff, supervisor, Zone, Location)
        .outerjoin(staff, staff.id == StaffAssignment.staff_id)
        .outerjoin(supervisor, supervisor.id == StaffAssignment.supervisor_id)
        .outerjoin(Zone, Zone.id == StaffAssignment.zone_id)
        .outerjoin(Location, Location.id == StaffAssignment.location_id)
    )
    if assignment_id is not None:
        query = query.filter(StaffAssignment.id == assignment_id)
    else:
        query = query.filter(StaffAssignment.is_active.is_(True))
    rows = query.order_by(StaffAssignment.created_at.desc()).all()
    return [
        {
            "id": str(a.id),
            "staff_id": str(a.staff_id),
            "staff_name": s.display_name if s else "Unknown",
            "supervisor_id": str(a.supervisor_id) if a.supervisor_id else None,
            "supervisor_name": sup.display_name if sup else "Unknown",
            "zone_id": str(a.zone_id) if a.zone_id else None,
            "zone_name": z.name if z else "N/A",
            "location_id": str(a.location_id) if a.location_id else None,
            "location_name": loc.name if loc else "N/A",
            "is_active": bool(a.is_active),
        }
        for a, s, sup, z, loc in rows
    ]
