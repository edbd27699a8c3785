"""Geographic point value object and great-circle distance evaluation."""

import math
from dataclasses import dataclass
from typing import NamedTuple

# Mean earth radius (IUGG)
EARTH_RADIUS_METERS = 6371008.8
METERS_PER_MILE = 1609.344

MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0


@dataclass(frozen=True)
class GeoPoint:
    """Immutable WGS84 point in decimal degrees."""

    latitude: float
    longitude: float

    @property
    def is_valid(self) -> bool:
        """Check that both coordinates are within WGS84 ranges."""
        return is_valid_coordinates(self.latitude, self.longitude)

    def distance_to(self, other: "GeoPoint") -> float:
        """Great-circle distance to another point in meters."""
        return distance_meters(self, other)

    def __str__(self) -> str:
        return f"({self.latitude}, {self.longitude})"


class BoundingBox(NamedTuple):
    """Latitude/longitude rectangle enclosing a search circle."""

    min_latitude: float
    max_latitude: float
    min_longitude: float
    max_longitude: float

    @property
    def spans_all_longitudes(self) -> bool:
        return self.min_longitude <= MIN_LONGITUDE and self.max_longitude >= MAX_LONGITUDE


def is_valid_coordinates(latitude: float, longitude: float) -> bool:
    """Validate latitude/longitude against WGS84 bounds."""
    return (MIN_LATITUDE <= latitude <= MAX_LATITUDE
            and MIN_LONGITUDE <= longitude <= MAX_LONGITUDE)


def distance_meters(point_a: GeoPoint, point_b: GeoPoint) -> float:
    """Haversine distance between two points in meters.

    Inputs are not validated; coordinate range checks happen upstream.
    Absolute deltas keep the result bit-for-bit symmetric.
    """
    lat_a = math.radians(point_a.latitude)
    lat_b = math.radians(point_b.latitude)
    delta_lat = math.radians(abs(point_b.latitude - point_a.latitude))
    delta_lon = math.radians(abs(point_b.longitude - point_a.longitude))

    haversine = (math.sin(delta_lat / 2) ** 2
                 + math.cos(lat_a) * math.cos(lat_b) * math.sin(delta_lon / 2) ** 2)
    central_angle = 2 * math.asin(min(1.0, math.sqrt(haversine)))
    return EARTH_RADIUS_METERS * central_angle


def miles_to_meters(miles: float) -> float:
    """Convert statute miles to meters."""
    if miles < 0:
        raise ValueError("Distance cannot be negative")
    return miles * METERS_PER_MILE


def meters_to_miles(meters: float) -> float:
    """Convert meters to statute miles."""
    return meters / METERS_PER_MILE


def bounding_box(center: GeoPoint, radius_meters: float) -> BoundingBox:
    """Compute a coarse rectangle containing every point within the radius.

    Used as an index-friendly pre-filter; callers still apply the exact
    haversine check. Boxes touching a pole or crossing the antimeridian
    widen to the full longitude range.
    """
    angular_radius = radius_meters / EARTH_RADIUS_METERS
    lat = math.radians(center.latitude)
    lon = math.radians(center.longitude)

    min_lat = lat - angular_radius
    max_lat = lat + angular_radius

    if min_lat > math.radians(MIN_LATITUDE) and max_lat < math.radians(MAX_LATITUDE):
        delta_lon = math.asin(min(1.0, math.sin(angular_radius) / math.cos(lat)))
        min_lon = lon - delta_lon
        max_lon = lon + delta_lon
        if min_lon < math.radians(MIN_LONGITUDE) or max_lon > math.radians(MAX_LONGITUDE):
            min_lon, max_lon = math.radians(MIN_LONGITUDE), math.radians(MAX_LONGITUDE)
    else:
        min_lat = max(min_lat, math.radians(MIN_LATITUDE))
        max_lat = min(max_lat, math.radians(MAX_LATITUDE))
        min_lon, max_lon = math.radians(MIN_LONGITUDE), math.radians(MAX_LONGITUDE)

    return BoundingBox(
        min_latitude=math.degrees(min_lat),
        max_latitude=math.degrees(max_lat),
        min_longitude=math.degrees(min_lon),
        max_longitude=math.degrees(max_lon),
    )
