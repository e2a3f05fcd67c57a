# eco_dispatch_api/geo.py
"""Waypoints and great-circle distance (haversine, spherical Earth)."""
import math
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class Waypoint:
    code: str
    lat: float
    lng: float

    @property
    def coord(self):
        return [self.lat, self.lng]


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Return the great-circle distance in km between two lat/lng points."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    la1 = math.radians(lat1)
    la2 = math.radians(lat2)
    h = math.sin(d_lat / 2) ** 2 + math.cos(la1) * math.cos(la2) * math.sin(d_lng / 2) ** 2
    # float error can push h a hair above 1 for antipodal points
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def distance(a: Waypoint, b: Waypoint) -> float:
    """Distance in km between two waypoints."""
    return haversine_km(a.lat, a.lng, b.lat, b.lng)
