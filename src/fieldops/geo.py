"""Geo primitives — great-circle distance and random point sampling.

All coordinates are WGS84 decimal degrees.  Distances are meters on a
spherical earth; the simulation never needs better than that.
"""

from __future__ import annotations

import math
import random

EARTH_RADIUS_M = 6_371_000.0
METERS_PER_DEG_LAT = 111_300.0


def distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Haversine distance in meters between two lat/lng points."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def random_point_within_radius(
    center_lat: float,
    center_lng: float,
    radius_m: float,
    rng: random.Random | None = None,
) -> tuple[float, float]:
    """Sample a point uniformly (by area) inside a disk around the center.

    The radial draw is ``sqrt(u)`` so density is flat over the disk rather
    than piling up at the center.  Longitude offsets are stretched by
    ``1 / cos(lat)`` to approximate the equirectangular shrink.

    Returns (lat, lng).
    """
    rng = rng or random
    r = radius_m / METERS_PER_DEG_LAT
    w = r * math.sqrt(rng.random())
    t = 2 * math.pi * rng.random()
    x = w * math.cos(t)
    y = w * math.sin(t)

    x_adjusted = x / math.cos(math.radians(center_lat))
    return (center_lat + y, center_lng + x_adjusted)
