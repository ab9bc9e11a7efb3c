"""Small-area geodesy helpers.

A lake survey spans a few kilometres at most, so an equirectangular
projection around the survey's centre is accurate to well under a metre.
Buffers and triangulation work in that local metre plane.
"""

from __future__ import annotations

import math

import numpy as np

# Earth radius in meters (for Haversine).
EARTH_R = 6_371_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two points."""
    rlat1, rlat2 = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(rlat1) * math.cos(rlat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_R * math.asin(math.sqrt(a))


class LocalProjection:
    """Equirectangular projection centred on ``(origin_lat, origin_lon)``."""

    def __init__(self, origin_lat: float, origin_lon: float) -> None:
        self.origin_lat = origin_lat
        self.origin_lon = origin_lon
        self._kx = EARTH_R * math.cos(math.radians(origin_lat)) * math.pi / 180
        self._ky = EARTH_R * math.pi / 180

    @classmethod
    def around(cls, lats: np.ndarray, lons: np.ndarray) -> LocalProjection:
        return cls(float(np.mean(lats)), float(np.mean(lons)))

    def to_xy(self, lon, lat):
        """Degrees to metres east/north of the origin. Accepts scalars or arrays."""
        return (np.asarray(lon) - self.origin_lon) * self._kx, (np.asarray(lat) - self.origin_lat) * self._ky

    def to_lonlat(self, x, y, z=None):
        """Inverse of :meth:`to_xy`; signature fits ``shapely.ops.transform``."""
        return np.asarray(x) / self._kx + self.origin_lon, np.asarray(y) / self._ky + self.origin_lat
