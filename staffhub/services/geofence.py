"""
Geofence validation service.
Uses Haversine formula to calculate distance between points and ray casting
for polygon containment. Polygon rings are lists of [lng, lat] pairs.
"""
import math
from typing import Optional, List, Dict, Sequence, Tuple


# Earth radius in meters
EARTH_RADIUS_M = 6371000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great circle distance between two points on Earth.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in meters
    """
    # Convert to radians
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    # Haversine formula
    a = (
        math.sin(delta_phi / 2) ** 2 +
        math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def is_within_circle(
    point_lat: float,
    point_lng: float,
    center_lat: float,
    center_lng: float,
    radius_m: float,
) -> bool:
    """True if the point lies on or inside the circle."""
    return haversine_distance(point_lat, point_lng, center_lat, center_lng) <= radius_m


def is_within_polygon(point_lat: float, point_lng: float, ring: Optional[Sequence[Sequence[float]]]) -> bool:
    """
    Ray casting point-in-polygon test.

    Args:
        point_lat: Point latitude
        point_lng: Point longitude
        ring: Closed ring of [lng, lat] pairs

    Returns:
        True if the point is inside the ring. Rings with fewer than three
        distinct vertices never contain anything.
    """
    if not is_usable_ring(ring):
        return False

    inside = False
    x = point_lng
    y = point_lat
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = float(ring[i][0]), float(ring[i][1])
        xj, yj = float(ring[j][0]), float(ring[j][1])
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i

    return inside


def polygon_center_and_radius(points: Sequence[Tuple[float, float]]) -> Optional[Dict]:
    """
    Approximate centre and bounding radius of a polygon.

    The centre is the arithmetic mean of the vertices (not the area-weighted
    centroid). The radius is the largest haversine distance from the centre
    to any vertex, rounded up to whole meters.

    Args:
        points: (lng, lat) vertices in input order

    Returns:
        {center_lat, center_lng, radius_meters} or None for an empty input
    """
    if not points:
        return None

    center_lng = sum(p[0] for p in points) / len(points)
    center_lat = sum(p[1] for p in points) / len(points)

    max_distance = 0.0
    for lng, lat in points:
        distance = haversine_distance(center_lat, center_lng, lat, lng)
        if distance > max_distance:
            max_distance = distance

    return {
        "center_lat": center_lat,
        "center_lng": center_lng,
        "radius_meters": int(math.ceil(max_distance)),
    }


def distinct_vertex_count(ring: Optional[Sequence[Sequence[float]]]) -> int:
    """Number of distinct [lng, lat] vertices, ignoring the closing duplicate."""
    if not ring:
        return 0
    return len({(float(p[0]), float(p[1])) for p in ring})


def is_usable_ring(ring: Optional[Sequence[Sequence[float]]]) -> bool:
    """A polygon needs at least three distinct vertices."""
    return distinct_vertex_count(ring) >= 3


def close_ring(points: Sequence[Sequence[float]]) -> List[List[float]]:
    """Return the ring as [lng, lat] lists with the first vertex repeated at the end."""
    ring = [[float(p[0]), float(p[1])] for p in points]
    if ring and ring[0] != ring[-1]:
        ring.append(list(ring[0]))
    return ring


def is_within_location_boundaries(point_lat: float, point_lng: float, location) -> bool:
    """
    Check a point against a Location or Zone geofence.
    Uses polygon boundaries when the entity has a usable ring, otherwise
    falls back to the radius circle.
    """
    if location is None:
        return False

    boundaries = getattr(location, "boundaries", None)
    if is_usable_ring(boundaries):
        return is_within_polygon(point_lat, point_lng, boundaries)

    center_lat = getattr(location, "center_lat", None)
    center_lng = getattr(location, "center_lng", None)
    radius_m = getattr(location, "radius_meters", None)
    if center_lat is not None and center_lng is not None and radius_m is not None:
        return is_within_circle(point_lat, point_lng, float(center_lat), float(center_lng), float(radius_m))

    return False

