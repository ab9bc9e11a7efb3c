"""Tests for the depth surface renderer."""

from __future__ import annotations

import numpy as np
import pytest
from shapely.geometry import Point

from conftest import make_reading
from lakelogger.config import SurfaceConfig
from lakelogger.core import interpolation, vegetation
from lakelogger.core.geo import LocalProjection, haversine_m
from lakelogger.core.interpolation import contour_levels, idw_grid
from lakelogger.core.models import FishCatch, Position
from lakelogger.core.surface import (
    DepthSurface,
    InsufficientData,
    build_legend,
    depth_color,
    render_depth_surface,
)

LAT, LON = 46.0500, 7.1200
# Roughly one metre in degrees at this latitude
M_LAT = 1 / 111_195
M_LON = 1 / (111_195 * np.cos(np.radians(LAT)))


def _at(depth, east_m=0.0, north_m=0.0, accuracy=5.0, **flags):
    return make_reading(depth, LAT + north_m * M_LAT, LON + east_m * M_LON, accuracy, **flags)


def _triangle_of_readings():
    return [
        _at(3.0, 0, 0, accuracy=10),
        _at(5.5, 30, 10, accuracy=12, has_vegetation=True),
        _at(2.1, 5, 35, accuracy=8),
    ]


# --- colours and legend ---


def test_depth_color_endpoints():
    assert depth_color(0, 10) == "rgb(173,216,230)"
    assert depth_color(10, 10) == "rgb(25,25,112)"
    assert depth_color(5, 10) == "rgb(65,105,225)"


def test_depth_color_clamps():
    assert depth_color(-3, 10) == depth_color(0, 10)
    assert depth_color(25, 10) == depth_color(10, 10)
    assert depth_color(4, 0) == "rgb(173,216,230)"


def test_legend():
    assert [e.depth for e in build_legend(7.4)] == [0, 5, 10, 15, 20, 8]
    assert [e.depth for e in build_legend(20.0)] == [0, 5, 10, 15, 20]
    assert build_legend(7.4)[0].color == depth_color(0, 7.4)


def test_contour_levels():
    assert contour_levels(7.4) == [1, 2, 3, 4, 5, 6, 7, 8]
    assert contour_levels(3.0) == [1, 2, 3]
    assert contour_levels(0.0) == []


# --- qualification ---


def test_two_points_are_insufficient():
    result = render_depth_surface([_at(1.0), _at(2.0, 20, 0)])
    assert isinstance(result, InsufficientData)
    assert result.qualifying_points == 2
    assert result.to_dict()["status"] == "insufficient_data"


def test_three_points_render():
    result = render_depth_surface([_at(1.0), _at(2.0, 20, 0), _at(3.0, 0, 20)])
    assert isinstance(result, DepthSurface)
    assert len(result.triangles) == 1


def test_three_nearly_co_located_points_render():
    readings = [
        make_reading(1.0, LAT, LON),
        make_reading(2.0, LAT + 1e-7, LON),
        make_reading(3.0, LAT, LON + 1e-7),
    ]
    result = render_depth_surface(readings)
    assert isinstance(result, DepthSurface)
    assert len(result.triangles) == 1
    assert result.contour_depths == [1, 2, 3]
    assert len(result.isolines) == 3


def test_accuracy_threshold_is_inclusive():
    readings = [_at(1.0, accuracy=50), _at(2.0, 20, 0, accuracy=50), _at(3.0, 0, 20, accuracy=51)]
    result = render_depth_surface(readings)
    assert isinstance(result, InsufficientData)
    assert result.qualifying_points == 2

    readings[2] = _at(3.0, 0, 20, accuracy=50)
    assert isinstance(render_depth_surface(readings), DepthSurface)


def test_readings_without_position_or_accuracy_are_ignored():
    readings = [_at(1.0), _at(2.0, 20, 0), make_reading(9.0), _at(9.0, 0, 20, accuracy=None)]
    result = render_depth_surface(readings)
    assert isinstance(result, InsufficientData)
    assert result.qualifying_points == 2


def test_min_points_is_configurable():
    settings = SurfaceConfig(min_points=4)
    result = render_depth_surface([_at(1.0), _at(2.0, 20, 0), _at(3.0, 0, 20)], settings)
    assert isinstance(result, InsufficientData)
    assert result.required_points == 4


# --- layers ---


def test_example_survey():
    result = render_depth_surface(_triangle_of_readings())
    assert isinstance(result, DepthSurface)
    assert result.max_depth == 5.5
    assert result.contour_depths == [1, 2, 3, 4, 5, 6]
    assert len(result.vegetation) == 1
    assert len(result.triangles) == 1
    assert result.triangles[0].mean_depth == pytest.approx((3.0 + 5.5 + 2.1) / 3)


def test_contours_for_fractional_max_depth():
    readings = [_at(0.5), _at(7.4, 40, 0), _at(3.0, 0, 40), _at(4.0, 40, 40)]
    result = render_depth_surface(readings)
    assert result.contour_depths == [1, 2, 3, 4, 5, 6, 7, 8]
    # The field never reaches 8 m
    assert result.isolines[-1].is_empty
    assert not result.isolines[2].is_empty


def test_isolines_stay_inside_the_survey():
    readings = [_at(0.5), _at(7.4, 40, 0), _at(3.0, 0, 40), _at(4.0, 40, 40)]
    result = render_depth_surface(readings)
    lons = [r.position.longitude for r in readings]
    lats = [r.position.latitude for r in readings]
    for iso in result.isolines:
        for path in iso.paths:
            for lon, lat in path:
                assert min(lons) - 1e-9 <= lon <= max(lons) + 1e-9
                assert min(lats) - 1e-9 <= lat <= max(lats) + 1e-9


def test_close_vegetation_points_merge():
    readings = [
        _at(1.0), _at(2.0, 60, 0), _at(3.0, 0, 60),
        _at(2.0, 20, 20, has_vegetation=True),
        _at(2.5, 30, 20, has_vegetation=True),
    ]
    result = render_depth_surface(readings)
    assert len(result.vegetation) == 1
    poly = result.vegetation[0]
    for r in readings[3:]:
        assert poly.contains(Point(r.position.longitude, r.position.latitude))


def test_distant_vegetation_points_stay_apart():
    readings = [
        _at(1.0), _at(2.0, 80, 0), _at(3.0, 0, 80),
        _at(2.0, 10, 10, has_vegetation=True),
        _at(2.5, 50, 10, has_vegetation=True),
    ]
    result = render_depth_surface(readings)
    assert len(result.vegetation) == 2


def test_vegetation_union_total_failure_keeps_disks(monkeypatch):
    monkeypatch.setattr(vegetation, "_union_step", lambda acc, disk: None)
    projection = LocalProjection(LAT, LON)
    points = [(LON, LAT), (LON + 5 * M_LON, LAT)]

    polygons = vegetation.vegetation_cloud(points, 12.0, projection)
    assert len(polygons) == 2


def test_vegetation_partial_failure_keeps_accumulator(monkeypatch):
    calls = []
    real_step = vegetation._union_step

    def flaky_step(acc, disk):
        calls.append(disk)
        return None if len(calls) == 1 else real_step(acc, disk)

    monkeypatch.setattr(vegetation, "_union_step", flaky_step)
    projection = LocalProjection(LAT, LON)
    points = [(LON, LAT), (LON + 100 * M_LON, LAT), (LON + 5 * M_LON, LAT)]

    polygons = vegetation.vegetation_cloud(points, 12.0, projection)
    # The second disk was dropped; the third merged with the first
    assert len(polygons) == 1


def test_vegetation_buffer_radius():
    projection = LocalProjection(LAT, LON)
    [disk] = vegetation.vegetation_cloud([(LON, LAT)], 12.0, projection)
    east_lon = disk.bounds[2]
    assert haversine_m(LAT, LON, LAT, east_lon) == pytest.approx(12.0, rel=0.01)


def test_collinear_points_do_not_fail():
    readings = [_at(1.0), _at(2.0, 10, 0), _at(3.0, 20, 0)]
    result = render_depth_surface(readings)
    assert isinstance(result, DepthSurface)
    assert result.triangles == []


def test_water_level_offset_clips_at_zero():
    readings = [_at(1.0), _at(3.0, 30, 0), _at(5.0, 0, 30)]
    result = render_depth_surface(readings, water_level_offset=-2.0)
    assert sorted(p.depth for p in result.points) == [0.0, 1.0, 3.0]
    assert result.max_depth == 3.0
    # The stored readings are untouched
    assert sorted(r.depth for r in readings) == [1.0, 3.0, 5.0]


def test_layers_geojson():
    catch = FishCatch(project_id=1, captured_at=1, species="pike",
                      position=Position(LAT + 10 * M_LAT, LON + 10 * M_LON))
    readings = _triangle_of_readings() + [_at(1.0, 10, 10, is_shoreline=True, has_catch_marker=True)]
    result = render_depth_surface(readings, catches=[catch, FishCatch(project_id=1, captured_at=2)])

    layers = result.layers()
    assert list(layers) == ["triangles", "contours", "points", "vegetation", "shoreline", "catches"]
    assert all(layer["type"] == "FeatureCollection" for layer in layers.values())
    assert len(layers["points"]["features"]) == 4
    assert len(layers["shoreline"]["features"]) == 1
    kinds = [f["properties"]["kind"] for f in layers["catches"]["features"]]
    assert kinds == ["marker", "catch"]

    tri = layers["triangles"]["features"][0]
    ring = tri["geometry"]["coordinates"][0]
    assert ring[0] == ring[-1]
    assert tri["properties"]["color"].startswith("rgb(")

    contour = layers["contours"]["features"][0]
    assert contour["geometry"]["type"] == "MultiLineString"
    assert contour["properties"]["label"] == "1m"

    assert layers["vegetation"]["features"][0]["geometry"]["type"] == "Polygon"


def test_idw_exact_sample_and_coarsening():
    lon = np.array([LON, LON + 40 * M_LON, LON])
    lat = np.array([LAT, LAT, LAT + 40 * M_LAT])
    depth = np.array([2.0, 6.0, 4.0])
    projection = LocalProjection.around(lat, lon)

    grid = idw_grid(lon, lat, depth, projection, cell_size=0.00005)
    assert grid.values[0, 0] == 2.0
    assert grid.values.min() >= 2.0 - 1e-9
    assert grid.values.max() <= 6.0 + 1e-9

    coarse = idw_grid(lon, lat, depth, projection, cell_size=0.000001, max_cells=400)
    assert coarse.cell_size > 0.000001
    assert coarse.shape[0] * coarse.shape[1] < 1000


def test_idw_chunking_does_not_change_the_grid(monkeypatch):
    rng = np.random.default_rng(7)
    lon = LON + rng.uniform(0, 200, 300) * M_LON
    lat = LAT + rng.uniform(0, 200, 300) * M_LAT
    depth = rng.uniform(0.5, 12.0, 300)
    projection = LocalProjection.around(lat, lon)

    whole = idw_grid(lon, lat, depth, projection)
    monkeypatch.setattr(interpolation, "_IDW_CHUNK_PAIRS", 1)
    chunked = idw_grid(lon, lat, depth, projection)

    assert whole.values.size > 256
    np.testing.assert_allclose(chunked.values, whole.values)


def test_to_dict():
    data = render_depth_surface(_triangle_of_readings()).to_dict()
    assert data["status"] == "ok"
    assert data["point_count"] == 3
    assert data["legend"][-1] == {"depth": 6, "color": depth_color(6, 5.5)}
