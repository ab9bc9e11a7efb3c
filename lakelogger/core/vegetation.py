"""Vegetation cloud — buffered and unioned weed-bed markers.

Each vegetation point becomes a disk in the local metre plane. Disks are
folded together pairwise; a union step that fails leaves the accumulator as
it was. If no step succeeds at all, the unjoined disks are returned instead.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog
from shapely.errors import GEOSException
from shapely.geometry import MultiPolygon, Point, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.ops import transform

from lakelogger.core.geo import LocalProjection

log = structlog.get_logger()


@dataclass(frozen=True)
class UnionResult:
    geometry: BaseGeometry
    attempted_steps: int
    failed_steps: int

    @property
    def total_failure(self) -> bool:
        return self.attempted_steps > 0 and self.failed_steps == self.attempted_steps


def _union_step(acc: BaseGeometry, disk: BaseGeometry) -> BaseGeometry | None:
    """Union of two shapes, or None when GEOS cannot produce a valid one."""
    try:
        merged = acc.union(disk)
    except GEOSException as exc:
        log.warning("vegetation_union_step_failed", error=str(exc))
        return None
    if merged.is_empty or not merged.is_valid:
        log.warning("vegetation_union_step_invalid")
        return None
    return merged


def fold_union(shapes: list[BaseGeometry]) -> UnionResult:
    acc = shapes[0]
    failed = 0
    for shape in shapes[1:]:
        merged = _union_step(acc, shape)
        if merged is None:
            failed += 1
        else:
            acc = merged
    return UnionResult(geometry=acc, attempted_steps=len(shapes) - 1, failed_steps=failed)


def _polygons(geometry: BaseGeometry) -> list[Polygon]:
    if isinstance(geometry, Polygon):
        return [geometry]
    if isinstance(geometry, MultiPolygon):
        return list(geometry.geoms)
    return [g for g in getattr(geometry, "geoms", []) if isinstance(g, Polygon)]


def vegetation_cloud(
    points: list[tuple[float, float]],
    radius_m: float,
    projection: LocalProjection,
) -> list[Polygon]:
    """Polygons (in lon/lat) covering every vegetation point by ``radius_m``."""
    if not points:
        return []

    disks = []
    for lon, lat in points:
        x, y = projection.to_xy(lon, lat)
        disks.append(Point(float(x), float(y)).buffer(radius_m, quad_segs=16))

    if len(disks) == 1:
        shapes = disks
    else:
        result = fold_union(disks)
        if result.total_failure:
            log.warning("vegetation_union_failed", disks=len(disks))
            shapes = disks
        else:
            shapes = _polygons(result.geometry)

    return [transform(projection.to_lonlat, shape) for shape in shapes]
