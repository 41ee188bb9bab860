from __future__ import annotations

from math import asin, cos, degrees, radians, sin, sqrt

from tourrewards.domain.models import Location

"""
Geospatial helpers.

We keep a tiny geometry layer here so the index and the reward engine can do
distance calculations without pulling in heavier GIS dependencies.

Distances are reported in statute miles: the central angle in degrees is turned
into nautical miles (60 per degree) and then into statute miles.
"""

STATUTE_MILES_PER_NAUTICAL_MILE = 1.15077945
NAUTICAL_MILES_PER_DEGREE = 60.0
MILES_PER_DEGREE = NAUTICAL_MILES_PER_DEGREE * STATUTE_MILES_PER_NAUTICAL_MILE


def central_angle_deg(a: Location, b: Location) -> float:
    """Great-circle central angle between two points, in degrees (haversine)."""
    lat1 = radians(a.latitude)
    lon1 = radians(a.longitude)
    lat2 = radians(b.latitude)
    lon2 = radians(b.longitude)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push h a hair outside [0, 1] for antipodal points.
    h = min(1.0, max(0.0, h))
    return degrees(2 * asin(sqrt(h)))


def distance_miles(a: Location, b: Location) -> float:
    """Compute great-circle distance in statute miles between two points."""
    return central_angle_deg(a, b) * MILES_PER_DEGREE
