#!/usr/bin/env python3
"""Lake Logger survey simulator.

Drives the real client stack (position tracker, local store, recorder, sync
engine) around a synthetic bowl-shaped lake and syncs to a running server.

Usage:
    # 200 readings on a 300 m lake, syncing every 25 readings
    python -m tools.simulator.simulate --server http://localhost:4567 --readings 200

    # Flaky GPS: 20% of readings taken without a new fix
    python -m tools.simulator.simulate --server http://localhost:4567 --gps-dropout 0.2

    # Specific lake, weed beds along the north shore
    python -m tools.simulator.simulate --center 46.0512,7.1234 --radius-m 500

    # Keep a backup of the local store in the import format
    python -m tools.simulator.simulate --export lake-readings.json
"""

from __future__ import annotations

import argparse
import asyncio
import math
import random
import time
from dataclasses import dataclass, replace

import httpx

from lakelogger.config import load_config
from lakelogger.core.errors import RemoteUnavailableError
from lakelogger.core.geo import haversine_m
from lakelogger.core.models import PositionFix, ReadingFlags, now_ms
from lakelogger.core.position import PositionTracker
from lakelogger.core.recorder import Advisory, ReadingRecorder
from lakelogger.core.surface import InsufficientData, render_depth_surface
from lakelogger.core.sync import SyncEngine
from lakelogger.storage.http_remote import HttpRemoteStore
from lakelogger.storage.local_store import FileLocalReadingStore

# Simulated seconds between two readings
STEP_SECONDS = 8


@dataclass
class SimBoat:
    lat: float
    lon: float
    bearing: float
    speed_mps: float
    readings: int = 0
    stale_fix: int = 0
    no_gps: int = 0
    sync_failures: int = 0


@dataclass
class SimLake:
    center_lat: float
    center_lon: float
    radius_m: float
    max_depth_m: float

    def offset_m(self, lat: float, lon: float) -> tuple[float, float]:
        dy = (lat - self.center_lat) * 111_000
        dx = (lon - self.center_lon) * 111_000 * math.cos(math.radians(self.center_lat))
        return dx, dy

    def depth_at(self, lat: float, lon: float) -> float:
        """Paraboloid bowl with a little sensor noise."""
        r = min(haversine_m(self.center_lat, self.center_lon, lat, lon) / self.radius_m, 1.0)
        depth = self.max_depth_m * (1 - r * r) + random.gauss(0, 0.2)
        return round(max(0.1, depth), 1)

    def is_weedy(self, lat: float, lon: float) -> bool:
        dx, dy = self.offset_m(lat, lon)
        return dy > 0.6 * self.radius_m


def move_boat(boat: SimBoat, lake: SimLake, dt_seconds: float) -> None:
    """Move along the current bearing; turn back toward the centre near shore."""
    boat.bearing = (boat.bearing + random.uniform(-20, 20)) % 360
    dx, dy = lake.offset_m(boat.lat, boat.lon)
    if math.hypot(dx, dy) > 0.9 * lake.radius_m:
        boat.bearing = (math.degrees(math.atan2(-dx, -dy)) + random.uniform(-30, 30)) % 360

    distance_m = boat.speed_mps * dt_seconds
    bearing_rad = math.radians(boat.bearing)

    # Approximate: 1 degree latitude ≈ 111,000 m
    boat.lat += (distance_m * math.cos(bearing_rad)) / 111_000
    boat.lon += (distance_m * math.sin(bearing_rad)) / (111_000 * math.cos(math.radians(boat.lat)))


class SimClock:
    """Survey time in epoch ms; advances with the boat, not the wall clock."""

    def __init__(self) -> None:
        self.ms = now_ms()

    def __call__(self) -> int:
        return self.ms


async def ensure_project(client: httpx.AsyncClient, name: str) -> int:
    resp = await client.get("/api/v1/projects")
    for project in resp.json().get("projects", []):
        if project["name"] == name:
            return project["id"]
    resp = await client.post("/api/v1/projects", json={"name": name})
    return resp.json()["id"]


async def run_simulation(args: argparse.Namespace) -> None:
    config = load_config(args.config)
    server = args.server or config.client.server_url
    local_dir = args.local_dir or config.storage.local_dir

    center_lat, center_lon = args.center
    lake = SimLake(center_lat, center_lon, args.radius_m, args.max_depth)
    boat = SimBoat(lat=center_lat, lon=center_lon, bearing=random.uniform(0, 360), speed_mps=2.0)

    print(f"Starting survey: {args.readings} readings, sync every {args.sync_every}")
    print(f"  Center: {center_lat:.4f}, {center_lon:.4f}")
    print(f"  Lake radius: {args.radius_m} m, max depth {args.max_depth} m")
    print(f"  GPS dropout: {args.gps_dropout:.0%}")
    print(f"  Server: {server}")
    print(f"  Local store: {local_dir}")
    print()

    start = time.monotonic()
    clock = SimClock()
    tracker = PositionTracker(clock=clock)
    store = FileLocalReadingStore(local_dir)
    remote = HttpRemoteStore.connect(server, config.client.request_timeout_seconds)
    # Simulated fixes are either there already or never coming
    recorder = ReadingRecorder.from_config(
        replace(config.client, capture_wait_seconds=0.01), store, tracker, remote,
    )
    engine = SyncEngine(store, remote)

    saved = skipped = 0
    try:
        async with httpx.AsyncClient(base_url=server, timeout=10.0) as client:
            project_id = await ensure_project(client, args.project)

        for i in range(args.readings):
            move_boat(boat, lake, dt_seconds=STEP_SECONDS)
            clock.ms += STEP_SECONDS * 1000
            if random.random() >= args.gps_dropout:
                tracker.update(PositionFix(
                    latitude=boat.lat,
                    longitude=boat.lon,
                    accuracy_m=random.choice([3, 5, 8, 12, 20, 60]),
                    timestamp_ms=clock(),
                ))

            result = await recorder.record_reading(
                lake.depth_at(boat.lat, boat.lon),
                ReadingFlags(has_vegetation=lake.is_weedy(boat.lat, boat.lon)),
                project_id=project_id,
            )
            boat.readings += 1
            if Advisory.NO_GPS in result.advisories:
                boat.no_gps += 1
            elif Advisory.STALE_FIX in result.advisories:
                boat.stale_fix += 1

            if (i + 1) % args.sync_every == 0 or i + 1 == args.readings:
                try:
                    sync = await engine.sync(project_id)
                    saved += sync.saved_count
                    skipped += sync.skipped_count
                except RemoteUnavailableError:
                    boat.sync_failures += 1

        # What the boat's screen shows: server readings plus anything still pending
        try:
            readings = await engine.readings_for_render(project_id)
        except RemoteUnavailableError as exc:
            print(f"Server unreachable, rendering local readings only: {exc}")
            readings = await store.get_all()
    finally:
        await remote.aclose()

    elapsed = time.monotonic() - start
    print(f"\nSurvey complete in {elapsed:.1f}s")
    print(f"  Readings recorded: {boat.readings}")
    print(f"  With a stale fix: {boat.stale_fix}")
    print(f"  Without GPS: {boat.no_gps}")
    print(f"  Saved on server: {saved} (already there: {skipped})")
    print(f"  Failed syncs (retried later): {boat.sync_failures}")

    if args.export:
        count = await store.export(args.export)
        print(f"  Exported {count} local readings to {args.export}")

    surface = render_depth_surface(readings, config.surface)
    print("\nDepth surface:")
    if isinstance(surface, InsufficientData):
        print(f"  Not enough points: {surface.qualifying_points} of {surface.required_points}")
        return
    layers = surface.layers()
    print(f"  Max depth: {surface.max_depth:.1f} m")
    print(f"  Points: {len(surface.points)}")
    print(f"  Triangles: {len(layers['triangles']['features'])}")
    print(f"  Contours: {surface.contour_depths}")
    print(f"  Vegetation polygons: {len(surface.vegetation)}")


def main():
    parser = argparse.ArgumentParser(description="Lake Logger survey simulator")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    parser.add_argument("--server", default=None, help="Server URL (default: client.server_url)")
    parser.add_argument("--local-dir", default=None,
                        help="Local reading store (default: storage.local_dir)")
    parser.add_argument("--project", default="Simulated survey", help="Project name")
    parser.add_argument("--readings", type=int, default=200, help="Number of readings to record")
    parser.add_argument("--sync-every", type=int, default=25, help="Sync after this many readings")
    parser.add_argument("--center", type=str, default="46.0500,7.1200",
                        help="Lake center lat,lon")
    parser.add_argument("--radius-m", type=float, default=300.0, help="Lake radius in metres")
    parser.add_argument("--max-depth", type=float, default=18.0, help="Depth at the centre")
    parser.add_argument("--gps-dropout", type=float, default=0.05,
                        help="Fraction of readings taken without a new fix")
    parser.add_argument("--export", default=None,
                        help="Write all local readings to this import file when done")

    args = parser.parse_args()

    lat, lon = args.center.split(",")
    args.center = (float(lat), float(lon))

    asyncio.run(run_simulation(args))


if __name__ == "__main__":
    main()
