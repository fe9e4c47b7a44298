#!/usr/bin/env python3
"""Pepi relay traffic simulator.

Runs real tracking sessions (movement detection, heartbeats, session
aggregation) for simulated walkers and posts to a running relay.

Usage:
    # 5 walkers around Buenos Aires for one minute
    python -m tools.simulator.simulate --server http://localhost:9878 --devices 5 --duration 60

    # Noisy GPS: 2% of samples jump a few km away, accuracy up to 40 m
    python -m tools.simulator.simulate --server http://localhost:9878 --glitch-rate 0.02 --max-accuracy 40

    # Walkers that mostly stand still (heartbeat traffic only)
    python -m tools.simulator.simulate --server http://localhost:9878 --still-ratio 1.0
"""

from __future__ import annotations

import argparse
import asyncio
import math
import random
import time
import uuid
from dataclasses import dataclass

import httpx

from tracker.config import TrackerConfig
from tracker.geo import Coordinate
from tracker.models import LocationSample
from tracker.runtime import Tracker
from tracker.transport import LocationSender


@dataclass
class SimDevice:
    device_id: str
    lat: float
    lon: float
    bearing: float
    speed_mps: float
    still: bool = False
    glitches: int = 0


def move_device(device: SimDevice, dt_seconds: float) -> None:
    """Move a device along its current bearing, with random turns."""
    if device.still:
        device.speed_mps = 0.0
        return

    # Random bearing change (simulates turns)
    device.bearing = (device.bearing + random.uniform(-20, 20)) % 360

    # Random speed variation (walking to jogging: 0.8-3.5 m/s)
    device.speed_mps = max(0.8, min(3.5, device.speed_mps + random.uniform(-0.3, 0.3)))

    distance_m = device.speed_mps * dt_seconds
    bearing_rad = math.radians(device.bearing)

    # Approximate: 1 degree latitude is about 111,000 m
    dlat = (distance_m * math.cos(bearing_rad)) / 111_000
    dlon = (distance_m * math.sin(bearing_rad)) / (111_000 * math.cos(math.radians(device.lat)))

    device.lat += dlat
    device.lon += dlon


def observe(device: SimDevice, now_ms: int, max_accuracy: float, glitch_rate: float) -> LocationSample:
    """What a phone GPS would report for the device right now."""
    accuracy = random.uniform(3, max_accuracy)
    # Scatter the reading within the reported accuracy
    jitter_m = random.uniform(0, accuracy) * 0.5
    angle = random.uniform(0, 2 * math.pi)
    lat = device.lat + jitter_m * math.cos(angle) / 111_000
    lon = device.lon + jitter_m * math.sin(angle) / (111_000 * math.cos(math.radians(device.lat)))

    if random.random() < glitch_rate:
        device.glitches += 1
        lat += random.choice([-1, 1]) * random.uniform(0.02, 0.05)

    return LocationSample(
        device_id=device.device_id,
        coordinate=Coordinate(lat, lon),
        timestamp_ms=now_ms,
        accuracy_m=round(accuracy, 1),
        speed_mps=round(device.speed_mps + random.uniform(-0.1, 0.1), 2) if device.speed_mps else 0.0,
    )


class WalkSource:
    """SampleSource producing one reading per interval until the deadline."""

    def __init__(self, device: SimDevice, interval: float, duration: float,
                 max_accuracy: float, glitch_rate: float) -> None:
        self._device = device
        self._interval = interval
        self._deadline = time.monotonic() + duration
        self._max_accuracy = max_accuracy
        self._glitch_rate = glitch_rate

    async def stream(self):
        while time.monotonic() < self._deadline:
            move_device(self._device, self._interval)
            now_ms = int(time.time() * 1000)
            yield observe(self._device, now_ms, self._max_accuracy, self._glitch_rate)
            await asyncio.sleep(self._interval)


async def run_device(
    client: httpx.AsyncClient,
    device: SimDevice,
    args: argparse.Namespace,
    config: TrackerConfig,
) -> Tracker:
    """Run one tracking session until the walk ends."""
    source = WalkSource(device, args.interval, args.duration, args.max_accuracy, args.glitch_rate)
    tracker = Tracker(device.device_id, source, LocationSender(client, config.transport), config=config)
    await tracker.start(endpoint=args.server)
    try:
        await tracker.join_source()
    finally:
        await tracker.stop()
    return tracker


async def run_simulation(args: argparse.Namespace) -> None:
    """Run the full simulation."""
    center_lat, center_lon = args.center
    config = TrackerConfig()
    config.movement.stale_seconds = args.stale_seconds

    devices = []
    for i in range(args.devices):
        # Scatter devices within radius of center
        angle = random.uniform(0, 2 * math.pi)
        dist_km = random.uniform(0, args.radius_km)
        lat = center_lat + (dist_km / 111.0) * math.cos(angle)
        lon = center_lon + (dist_km / (111.0 * math.cos(math.radians(center_lat)))) * math.sin(angle)

        devices.append(SimDevice(
            device_id=f"sim{i:02d}-{uuid.uuid4().hex[:8]}",
            lat=lat,
            lon=lon,
            bearing=random.uniform(0, 360),
            speed_mps=random.uniform(1.0, 2.5),
            still=random.random() < args.still_ratio,
        ))

    print(f"Starting simulation: {args.devices} devices, one reading every {args.interval}s")
    print(f"  Center: {center_lat:.4f}, {center_lon:.4f}")
    print(f"  Radius: {args.radius_km} km")
    print(f"  Duration: {args.duration}s")
    print(f"  Server: {args.server}")
    print(f"  Glitch rate: {args.glitch_rate:.1%}")
    print()

    start = time.monotonic()

    async with httpx.AsyncClient(timeout=10.0) as client:
        trackers = await asyncio.gather(*(run_device(client, dev, args, config) for dev in devices))

        elapsed = time.monotonic() - start
        print(f"\nSimulation complete in {elapsed:.1f}s")
        for dev, tracker in zip(devices, trackers):
            session = tracker.session
            print(f"  {dev.device_id}: {len(session.points)} session points, "
                  f"{session.distance_m:.0f} m, {dev.glitches} glitches injected")

        # Check server stats
        try:
            resp = await client.get(f"{args.server}/stats")
        except httpx.HTTPError as exc:
            print(f"\nCould not read server stats: {exc}")
            return
        if resp.status_code == 200:
            stats = resp.json()
            print("\nServer stats:")
            print(f"  Reports received: {stats['reports_received']}")
            print(f"  Reports accepted: {stats['reports_accepted']}")
            print(f"  Skipped (small move): {stats['skipped']['small_move']}")
            print(f"  Skipped (glitch): {stats['skipped']['glitch']}")
            print(f"  Heartbeats: {stats['heartbeats_received']}")
            print(f"  Active devices: {stats['active_devices']['total']}")


def main():
    parser = argparse.ArgumentParser(description="Pepi relay traffic simulator")
    parser.add_argument("--server", default="http://localhost:9878", help="Relay URL")
    parser.add_argument("--devices", type=int, default=5, help="Number of simulated devices")
    parser.add_argument("--duration", type=int, default=60, help="Simulation duration in seconds")
    parser.add_argument("--interval", type=float, default=1.0, help="Seconds between GPS readings")
    parser.add_argument("--center", type=str, default="-34.6037,-58.3816",
                        help="Center lat,lon (default: Buenos Aires)")
    parser.add_argument("--radius-km", type=float, default=2.0, help="Scatter radius in km")
    parser.add_argument("--max-accuracy", type=float, default=15.0,
                        help="Worst reported GPS accuracy in meters")
    parser.add_argument("--glitch-rate", type=float, default=0.0,
                        help="Probability that a reading jumps kilometers away")
    parser.add_argument("--still-ratio", type=float, default=0.2,
                        help="Fraction of devices that stand still")
    parser.add_argument("--stale-seconds", type=float, default=15.0, help="Heartbeat interval")

    args = parser.parse_args()

    # Parse center
    lat, lon = args.center.split(",")
    args.center = (float(lat), float(lon))

    asyncio.run(run_simulation(args))


if __name__ == "__main__":
    main()
