"""
KML/KMZ geofence import.

Parses Placemark polygons and points from a KML document (or the first .kml
entry of a KMZ archive) and turns each into a Location or a Zone.
"""
import io
import math
import re
import zipfile
import xml.etree.ElementTree as ET
from typing import Optional, List, Dict, Any

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import KmlImportError, NotFoundError
from ..models.models import Location, Zone
from .geofence import close_ring, is_usable_ring, polygon_center_and_radius
from .ids import to_uuid


logger = structlog.get_logger(__name__)

IMPORT_AS_LOCATIONS = "locations"
IMPORT_AS_ZONES = "zones"


def _local(tag) -> str:
    """Tag name without its XML namespace."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _first(elem: ET.Element, name: str) -> Optional[ET.Element]:
    """First descendant (document order) with the given local name."""
    for child in elem.iter():
        if child is not elem and _local(child.tag) == name:
            return child
    return None


def _text(elem: Optional[ET.Element]) -> str:
    if elem is None:
        return ""
    return "".join(elem.itertext()).strip()


def parse_coordinates(text: str) -> List[List[float]]:
    """
    Parse a KML coordinates string into [lng, lat] pairs.
    Tokens without two finite numeric components, or outside the valid
    latitude/longitude range, are dropped.
    """
    coords = []
    for token in (text or "").split():
        parts = token.split(",")
        if len(parts) < 2:
            continue
        try:
            lng = float(parts[0])
            lat = float(parts[1])
        except ValueError:
            continue
        if not (math.isfinite(lng) and math.isfinite(lat)):
            continue
        if not (-180 <= lng <= 180 and -90 <= lat <= 90):
            continue
        coords.append([lng, lat])
    return coords


def parse_kml(kml_text: str) -> List[Dict[str, Any]]:
    """
    Extract polygon and point features from a KML document.

    Raises:
        KmlImportError: invalid XML, or no usable Placemark at all
    """
    try:
        root = ET.fromstring(kml_text)
    except ET.ParseError as e:
        raise KmlImportError(f"Invalid XML/KML format: {e}", KmlImportError.INVALID_XML)

    features = []
    placemarks = [el for el in root.iter() if _local(el.tag) == "Placemark"]
    for i, placemark in enumerate(placemarks):
        name_el = _first(placemark, "name")
        name = _text(name_el) if name_el is not None else f"Feature {i + 1}"
        description = _text(_first(placemark, "description"))

        polygon = _first(placemark, "Polygon")
        if polygon is not None:
            outer = _first(polygon, "outerBoundaryIs")
            ring_el = _first(outer, "LinearRing") if outer is not None else None
            coords_el = _first(ring_el, "coordinates") if ring_el is not None else None
            coords = parse_coordinates(_text(coords_el))
            if is_usable_ring(coords):
                shape = polygon_center_and_radius(coords)
                features.append({
                    "type": "polygon",
                    "name": name,
                    "description": description,
                    "center_lat": shape["center_lat"],
                    "center_lng": shape["center_lng"],
                    "radius_meters": shape["radius_meters"],
                    "boundaries": close_ring(coords),
                })

        point = _first(placemark, "Point")
        if point is not None:
            coords = parse_coordinates(_text(_first(point, "coordinates")))
            if coords:
                features.append({
                    "type": "point",
                    "name": name,
                    "description": description,
                    "center_lat": coords[0][1],
                    "center_lng": coords[0][0],
                    "radius_meters": settings.geo_radius_m_default,
                })

    if not features:
        raise KmlImportError(
            "No valid features (polygons or points) found in the KML/KMZ file",
            KmlImportError.NO_FEATURES_FOUND,
        )
    return features


def extract_kml(data: bytes, filename: str) -> str:
    """Return the KML text of an uploaded .kmz or .kml file."""
    lower = (filename or "").lower()
    if lower.endswith(".kmz"):
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
        except zipfile.BadZipFile:
            raise KmlImportError("Invalid KMZ archive", KmlImportError.NO_KML_IN_ARCHIVE)
        with archive:
            entry = next((n for n in archive.namelist() if n.lower().endswith(".kml")), None)
            if entry is None:
                raise KmlImportError("No KML file found inside KMZ archive", KmlImportError.NO_KML_IN_ARCHIVE)
            return archive.read(entry).decode("utf-8", errors="replace")
    if lower.endswith(".kml"):
        return data.decode("utf-8", errors="replace")
    raise KmlImportError(
        "Invalid file type. Only KMZ and KML files are supported.",
        KmlImportError.UNSUPPORTED_FILE_TYPE,
    )


def _location_code(name: Optional[str], index: int) -> str:
    if not name:
        return f"LOC-{index + 1}"
    return re.sub(r"\s+", "-", name[:20].upper())


def import_features(
    db: Session,
    features: List[Dict[str, Any]],
    import_as: str = IMPORT_AS_LOCATIONS,
    location_id=None,
    default_radius: Optional[int] = None,
) -> Dict[str, List[Dict]]:
    """
    Persist parsed features as Locations or Zones.

    Each feature is committed on its own; failures are collected per feature
    and never abort the batch. Returns {"imported": [...], "errors": [...]}.
    """
    if default_radius is None:
        default_radius = settings.kmz_default_radius_m
    results = {"imported": [], "errors": []}

    parent = None
    if import_as == IMPORT_AS_ZONES and location_id:
        parent = db.query(Location).filter(Location.id == to_uuid(location_id, "locationId")).first()
        if parent is None:
            raise NotFoundError("Location not found")

    for i, feature in enumerate(features):
        name = feature.get("name")
        if import_as == IMPORT_AS_ZONES and parent is None:
            results["errors"].append({
                "feature": name,
                "error": "locationId is required when importing as zones",
                "code": KmlImportError.MISSING_LOCATION_ID,
            })
            continue
        try:
            radius = feature.get("radius_meters") or default_radius
            if import_as == IMPORT_AS_ZONES:
                entity = Zone(
                    name=name or f"Zone {i + 1}",
                    location_id=parent.id,
                    description=feature.get("description") or "",
                    center_lat=feature["center_lat"],
                    center_lng=feature["center_lng"],
                    radius_meters=radius,
                )
                kind = "zone"
            else:
                entity = Location(
                    name=name or f"Location {i + 1}",
                    code=_location_code(name, i),
                    description=feature.get("description") or "",
                    center_lat=feature["center_lat"],
                    center_lng=feature["center_lng"],
                    radius_meters=radius,
                    boundaries=feature.get("boundaries"),
                )
                kind = "location"
            db.add(entity)
            db.commit()
            results["imported"].append({"type": kind, "id": str(entity.id), "name": entity.name})
        except SQLAlchemyError as e:
            db.rollback()
            logger.warning("kml_import.feature_failed", feature=name, error=str(e))
            results["errors"].append({"feature": name, "error": str(e)})

    logger.info(
        "kml_import.done",
        import_as=import_as,
        imported=len(results["imported"]),
        errors=len(results["errors"]),
    )
    return results
