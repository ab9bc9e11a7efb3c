"""Depth surface renderer.

Turns a snapshot of readings into map layers. Every call recomputes the
whole surface from scratch; nothing is cached and no reading is modified.

Pipeline:
1. keep readings with a position whose accuracy is <= 50 m
2. Delaunay triangles, coloured by the mean depth of their corners
3. IDW (power 2) grid, ~5 m cells, masked to the convex hull
4. isolines at 1 m steps up to ceil(max depth)
5. vegetation cloud from buffered, unioned weed-bed points
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable

import numpy as np
import structlog
from shapely.geometry import mapping

from lakelogger.config import SurfaceConfig
from lakelogger.core.geo import LocalProjection
from lakelogger.core.interpolation import (
    DepthGrid,
    Isoline,
    Triangle,
    contour_levels,
    extract_isolines,
    idw_grid,
    triangulate,
)
from lakelogger.core.vegetation import vegetation_cloud

if TYPE_CHECKING:
    from shapely.geometry import Polygon

    from lakelogger.core.models import FishCatch, Reading

log = structlog.get_logger()

# Shallow to deep: light blue, sky blue, cornflower, royal blue,
# medium blue, dark blue, midnight blue.
DEPTH_COLOR_STOPS: tuple[tuple[int, int, int], ...] = (
    (173, 216, 230),
    (135, 206, 250),
    (100, 149, 237),
    (65, 105, 225),
    (0, 0, 205),
    (0, 0, 139),
    (25, 25, 112),
)

LEGEND_DEPTHS = (0, 5, 10, 15, 20)

LAYER_NAMES = ("triangles", "contours", "points", "vegetation", "shoreline", "catches")


def depth_color(depth: float, max_depth: float) -> str:
    """Colour on the 7-stop gradient; ``max_depth`` maps to the darkest stop."""
    ratio = depth / max_depth if max_depth > 0 else 0.0
    ratio = min(max(ratio, 0.0), 1.0)
    scaled = ratio * (len(DEPTH_COLOR_STOPS) - 1)
    idx = min(int(math.floor(scaled)), len(DEPTH_COLOR_STOPS) - 2)
    t = scaled - idx
    lo, hi = DEPTH_COLOR_STOPS[idx], DEPTH_COLOR_STOPS[idx + 1]
    r, g, b = (int(math.floor(a + t * (c - a) + 0.5)) for a, c in zip(lo, hi))
    return f"rgb({r},{g},{b})"


@dataclass(frozen=True)
class LegendEntry:
    depth: int
    color: str


def build_legend(max_depth: float) -> list[LegendEntry]:
    depths: list[int] = []
    for d in (*LEGEND_DEPTHS, int(math.ceil(max_depth))):
        if d not in depths:
            depths.append(d)
    return [LegendEntry(depth=d, color=depth_color(d, max_depth)) for d in depths]


@dataclass(frozen=True)
class InsufficientData:
    """Too few qualifying readings to interpolate. Not an error."""
    qualifying_points: int
    required_points: int

    def to_dict(self) -> dict:
        return {
            "status": "insufficient_data",
            "qualifying_points": self.qualifying_points,
            "required_points": self.required_points,
            "message": f"Need at least {self.required_points} GPS points to render map",
        }


@dataclass(frozen=True)
class SurfacePoint:
    lon: float
    lat: float
    depth: float
    reading: Reading


@dataclass
class DepthSurface:
    points: list[SurfacePoint]
    triangles: list[Triangle]
    grid: DepthGrid
    isolines: list[Isoline]
    vegetation: list[Polygon]
    max_depth: float
    legend: list[LegendEntry]
    catches: list[FishCatch] = field(default_factory=list)

    @property
    def contour_depths(self) -> list[int]:
        return [iso.depth for iso in self.isolines]

    def color(self, depth: float) -> str:
        return depth_color(depth, self.max_depth)

    def _triangle_features(self) -> list[dict]:
        features = []
        for tri in self.triangles:
            ring = [list(v) for v in tri.vertices]
            ring.append(list(tri.vertices[0]))
            a, b, c = tri.depths
            features.append({
                "type": "Feature",
                "geometry": {"type": "Polygon", "coordinates": [ring]},
                "properties": {
                    "a": a, "b": b, "c": c,
                    "depth": round(tri.mean_depth, 2),
                    "color": self.color(tri.mean_depth),
                },
            })
        return features

    def _contour_features(self) -> list[dict]:
        return [
            {
                "type": "Feature",
                "geometry": {
                    "type": "MultiLineString",
                    "coordinates": [[list(p) for p in path] for path in iso.paths],
                },
                "properties": {"depth": iso.depth, "label": f"{iso.depth}m"},
            }
            for iso in self.isolines
        ]

    def _point_feature(self, p: SurfacePoint, **extra) -> dict:
        flags = p.reading.flags
        return {
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [round(p.lon, 7), round(p.lat, 7)]},
            "properties": {
                "reading_id": p.reading.id,
                "depth": p.depth,
                "color": self.color(p.depth),
                "accuracy_m": p.reading.position.accuracy_m,
                "has_vegetation": flags.has_vegetation,
                "is_shoreline": flags.is_shoreline,
                "has_catch_marker": flags.has_catch_marker,
                **extra,
            },
        }

    def _catch_features(self) -> list[dict]:
        features = [
            self._point_feature(p, kind="marker")
            for p in self.points if p.reading.flags.has_catch_marker
        ]
        for catch in self.catches:
            if catch.position is None:
                continue
            features.append({
                "type": "Feature",
                "geometry": {
                    "type": "Point",
                    "coordinates": [round(catch.position.longitude, 7), round(catch.position.latitude, 7)],
                },
                "properties": {
                    "kind": "catch",
                    "catch_id": catch.id,
                    "species": catch.species,
                    "weight_kg": catch.weight_kg,
                    "length_cm": catch.length_cm,
                    "note": catch.note,
                    "captured_at": catch.captured_at,
                },
            })
        return features

    def layers(self) -> dict[str, dict]:
        """Named GeoJSON FeatureCollections, one per toggleable overlay."""
        features = {
            "triangles": self._triangle_features(),
            "contours": self._contour_features(),
            "points": [self._point_feature(p) for p in self.points],
            "vegetation": [
                {"type": "Feature", "geometry": mapping(poly), "properties": {"kind": "vegetation"}}
                for poly in self.vegetation
            ],
            "shoreline": [self._point_feature(p) for p in self.points if p.reading.flags.is_shoreline],
            "catches": self._catch_features(),
        }
        return {name: {"type": "FeatureCollection", "features": features[name]} for name in LAYER_NAMES}

    def to_dict(self) -> dict:
        return {
            "status": "ok",
            "max_depth": self.max_depth,
            "point_count": len(self.points),
            "contour_depths": self.contour_depths,
            "layers": self.layers(),
            "legend": [{"depth": e.depth, "color": e.color} for e in self.legend],
        }


def qualifies(reading: Reading, max_accuracy_m: float) -> bool:
    pos = reading.position
    return pos is not None and pos.accuracy_m is not None and pos.accuracy_m <= max_accuracy_m


def render_depth_surface(
    readings: Iterable[Reading],
    settings: SurfaceConfig | None = None,
    *,
    water_level_offset: float = 0.0,
    catches: Iterable[FishCatch] = (),
) -> DepthSurface | InsufficientData:
    """Compute every layer of the depth map for one snapshot of readings.

    ``water_level_offset`` is added to each depth (clipped at zero) to
    correct for the lake level on the survey day.
    """
    settings = settings or SurfaceConfig()
    readings = list(readings)
    qualifying = [r for r in readings if qualifies(r, settings.max_accuracy_m)]

    if len(qualifying) < settings.min_points:
        log.info("surface_insufficient_data", readings=len(readings),
                 qualifying=len(qualifying), required=settings.min_points)
        return InsufficientData(qualifying_points=len(qualifying), required_points=settings.min_points)

    points = [
        SurfacePoint(
            lon=r.position.longitude,
            lat=r.position.latitude,
            depth=max(0.0, r.depth + water_level_offset),
            reading=r,
        )
        for r in qualifying
    ]
    lon = np.array([p.lon for p in points])
    lat = np.array([p.lat for p in points])
    depth = np.array([p.depth for p in points])
    max_depth = float(depth.max())
    projection = LocalProjection.around(lat, lon)

    triangles, hull = triangulate(lon, lat, depth, projection)
    grid = idw_grid(
        lon, lat, depth, projection,
        cell_size=settings.cell_size_deg,
        power=settings.idw_power,
        max_cells=settings.max_grid_cells,
        hull=hull,
    )
    isolines = extract_isolines(grid, contour_levels(max_depth))
    vegetation = vegetation_cloud(
        [(p.lon, p.lat) for p in points if p.reading.flags.has_vegetation],
        settings.vegetation_radius_m,
        projection,
    )

    log.info("surface_rendered", points=len(points), triangles=len(triangles),
             grid_rows=grid.shape[0], grid_cols=grid.shape[1],
             isolines=len(isolines), vegetation_polygons=len(vegetation),
             max_depth=max_depth)

    return DepthSurface(
        points=points,
        triangles=triangles,
        grid=grid,
        isolines=isolines,
        vegetation=vegetation,
        max_depth=max_depth,
        legend=build_legend(max_depth),
        catches=list(catches),
    )
