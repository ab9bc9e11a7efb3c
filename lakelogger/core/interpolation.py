"""Depth field construction: triangulation, IDW grid and isolines."""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
import structlog
from scipy.spatial import Delaunay, QhullError
from skimage.measure import find_contours

from lakelogger.core.geo import LocalProjection

log = structlog.get_logger()

# Grid-node x sample pairs per IDW pass; bounds the distance matrix size.
_IDW_CHUNK_PAIRS = 2_000_000


@dataclass(frozen=True)
class Triangle:
    vertices: tuple[tuple[float, float], ...]  # (lon, lat) x 3
    depths: tuple[float, float, float]

    @property
    def mean_depth(self) -> float:
        return sum(self.depths) / 3


@dataclass
class DepthGrid:
    """Regular lon/lat grid. ``values[row, col]`` is at (lat0 + row*cell, lon0 + col*cell)."""
    lon0: float
    lat0: float
    cell_size: float
    values: np.ndarray
    mask: np.ndarray  # True where the cell lies inside the sampled hull

    @property
    def shape(self) -> tuple[int, int]:
        return self.values.shape

    def lonlat(self, row: float, col: float) -> tuple[float, float]:
        return float(self.lon0 + col * self.cell_size), float(self.lat0 + row * self.cell_size)


@dataclass(frozen=True)
class Isoline:
    depth: int
    paths: tuple[tuple[tuple[float, float], ...], ...]  # each path is a (lon, lat) sequence

    @property
    def is_empty(self) -> bool:
        return not self.paths


def triangulate(
    lon: np.ndarray,
    lat: np.ndarray,
    depth: np.ndarray,
    projection: LocalProjection,
) -> tuple[list[Triangle], Delaunay | None]:
    """Delaunay triangulation of the sample points.

    Collinear or coincident point sets cannot be triangulated; they give
    no triangles and no hull rather than an error.
    """
    x, y = projection.to_xy(lon, lat)
    try:
        tri = Delaunay(np.column_stack([x, y]))
    except (QhullError, ValueError) as exc:
        log.warning("triangulation_degenerate", points=len(lon), error=(str(exc).splitlines() or [""])[0])
        return [], None

    triangles = [
        Triangle(
            vertices=tuple((float(lon[i]), float(lat[i])) for i in simplex),
            depths=tuple(float(depth[i]) for i in simplex),
        )
        for simplex in tri.simplices
    ]
    return triangles, tri


def _grid_axes(lo: float, hi: float, cell: float) -> int:
    return max(2, int(math.ceil((hi - lo) / cell)) + 1)


def idw_grid(
    lon: np.ndarray,
    lat: np.ndarray,
    depth: np.ndarray,
    projection: LocalProjection,
    *,
    cell_size: float = 0.00005,
    power: float = 2.0,
    max_cells: int = 250_000,
    hull: Delaunay | None = None,
) -> DepthGrid:
    """Inverse-distance-weighted depth on a regular grid over the samples.

    Distances are measured in the local metre plane. A grid node that sits
    exactly on a sample takes that sample's depth. When ``hull`` is given,
    nodes outside the convex hull of the samples are masked out.
    """
    lon_min, lon_max = float(lon.min()), float(lon.max())
    lat_min, lat_max = float(lat.min()), float(lat.max())

    n_cols = _grid_axes(lon_min, lon_max, cell_size)
    n_rows = _grid_axes(lat_min, lat_max, cell_size)
    if n_cols * n_rows > max_cells:
        cell_size *= math.sqrt(n_cols * n_rows / max_cells)
        n_cols = _grid_axes(lon_min, lon_max, cell_size)
        n_rows = _grid_axes(lat_min, lat_max, cell_size)
        log.info("idw_grid_coarsened", cell_size=cell_size, rows=n_rows, cols=n_cols)

    grid_lon = lon_min + np.arange(n_cols) * cell_size
    grid_lat = lat_min + np.arange(n_rows) * cell_size
    mesh_lon, mesh_lat = np.meshgrid(grid_lon, grid_lat)
    gx, gy = projection.to_xy(mesh_lon.ravel(), mesh_lat.ravel())
    px, py = projection.to_xy(lon, lat)

    values = np.empty(gx.size)
    chunk_rows = max(256, _IDW_CHUNK_PAIRS // px.size)
    for start in range(0, gx.size, chunk_rows):
        stop = start + chunk_rows
        d2 = (gx[start:stop, None] - px[None, :]) ** 2 + (gy[start:stop, None] - py[None, :]) ** 2
        exact = d2 < 1e-12
        with np.errstate(divide="ignore", invalid="ignore"):
            weights = np.where(exact, 0.0, d2 ** (-power / 2))
            chunk = (weights @ depth) / weights.sum(axis=1)
        hit_rows = exact.any(axis=1)
        if hit_rows.any():
            chunk[hit_rows] = depth[exact[hit_rows].argmax(axis=1)]
        values[start:stop] = chunk

    if hull is not None:
        mask = hull.find_simplex(np.column_stack([gx, gy])) >= 0
    else:
        mask = np.ones(gx.size, dtype=bool)

    return DepthGrid(
        lon0=lon_min,
        lat0=lat_min,
        cell_size=cell_size,
        values=values.reshape(n_rows, n_cols),
        mask=mask.reshape(n_rows, n_cols),
    )


def contour_levels(max_depth: float) -> list[int]:
    """Every whole metre from 1 to ceil(max_depth)."""
    return list(range(1, int(math.ceil(max_depth)) + 1))


def extract_isolines(grid: DepthGrid, levels: list[int]) -> list[Isoline]:
    """One isoline per level; levels the field never crosses have no paths."""
    mask = None if grid.mask.all() else grid.mask
    isolines = []
    for level in levels:
        paths = []
        for path in find_contours(grid.values, float(level), mask=mask):
            if len(path) < 2:
                continue
            paths.append(tuple(grid.lonlat(row, col) for row, col in path))
        isolines.append(Isoline(depth=level, paths=tuple(paths)))
    return isolines
