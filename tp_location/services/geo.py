"""
Geodesic distance and geofence admission
"""
import math
from dataclasses import dataclass

EARTH_RADIUS_M = 6371000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two GPS coordinates in meters."""
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)
    
    a = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) *
         math.sin(delta_lon / 2) ** 2)
    # rounding can push a just outside [0, 1] near antipodes
    a = min(1.0, max(0.0, a))
    c = 2 * math.asin(math.sqrt(a))
    
    return EARTH_RADIUS_M * c


@dataclass(frozen=True)
class GeofenceResult:
    within_fence: bool
    distance_m: float
    radius_m: float


def admit(
    claimed_lat: float,
    claimed_lon: float,
    school_lat: float,
    school_lon: float,
    radius_m: float
) -> GeofenceResult:
    """
    Decide whether a claimed position is inside a school's geofence.
    
    The boundary is inclusive and there is no allowance for reported GPS
    accuracy: a point exactly radius_m away is admitted, anything further
    is not.
    """
    distance = haversine_distance(claimed_lat, claimed_lon, school_lat, school_lon)
    return GeofenceResult(
        within_fence=distance <= radius_m,
        distance_m=distance,
        radius_m=radius_m
    )
