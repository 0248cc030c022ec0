from __future__ import annotations

import logging
from dataclasses import dataclass
from math import radians

import numpy as np

logger = logging.getLogger(__name__)

EARTH_RADIUS_MILES = 3958.8


@dataclass(frozen=True)
class Location:
    lat: float
    lon: float


def haversine_miles(lat1, lon1, lat2, lon2) -> np.ndarray:
    """
    Vectorized Haversine distance in miles between arrays of (lat1, lon1)
    and scalar (lat2, lon2).
    """
    lat1 = np.radians(np.asarray(lat1, dtype=float))
    lon1 = np.radians(np.asarray(lon1, dtype=float))
    lat2 = radians(float(lat2))
    lon2 = radians(float(lon2))

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = (
        np.sin(dlat / 2.0) ** 2
        + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2.0) ** 2
    )
    c = 2 * np.arcsin(np.sqrt(a))
    return EARTH_RADIUS_MILES * c


def distance_to(hospital, origin: Location | None) -> float | None:
    """Distance in miles from origin to a hospital, or None if either is unknown."""
    if origin is None or not hospital.has_coordinates:
        return None
    return float(haversine_miles(hospital.lat, hospital.lon, origin.lat, origin.lon))


def distances_to(hospitals, origin: Location) -> list[float | None]:
    """Distances for a whole list; hospitals without coordinates map to None."""
    located = [i for i, h in enumerate(hospitals) if h.has_coordinates]
    result: list[float | None] = [None] * len(hospitals)
    if not located:
        return result
    lats = [hospitals[i].lat for i in located]
    lons = [hospitals[i].lon for i in located]
    for i, d in zip(located, haversine_miles(lats, lons, origin.lat, origin.lon)):
        result[i] = float(d)
    return result


def resolve_location(lat_raw: str | None, lon_raw: str | None, default: Location) -> Location:
    """
    Turn caller-supplied coordinates into a Location.

    Missing, unparsable or out-of-range values fall back to ``default``.
    """
    if not lat_raw or not lon_raw:
        return default
    try:
        lat = float(lat_raw)
        lon = float(lon_raw)
    except ValueError:
        logger.warning("Invalid location %r,%r; using default", lat_raw, lon_raw)
        return default
    if not (-90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0):
        logger.warning("Out-of-range location %s,%s; using default", lat, lon)
        return default
    return Location(lat, lon)
