"""Command-line entry point for the tracker.

Usage:
    # Print the relay URL the discovery providers currently advertise
    python -m tracker resolve

    # Replay a recorded walk through a full tracking session, 10x faster
    python -m tracker replay walk.jsonl --speed 10

    # Same, against a known relay (skips discovery)
    python -m tracker replay walk.jsonl --server http://localhost:9878
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys

import httpx
import structlog

from tracker.config import TrackerConfig, load_config
from tracker.discovery.resolver import DiscoveryResolver, NoEndpointError, providers_from_config
from tracker.identity import device_id
from tracker.runtime import Tracker
from tracker.sensor import ReplaySource
from tracker.store import LocalStore
from tracker.transport import LocationSender

log = structlog.get_logger()


def _setup_logging(config: TrackerConfig) -> None:
    """Configure structlog based on the logging config."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.logging.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.logging.level.upper()),
        ),
    )


def _resolver(client: httpx.AsyncClient, store: LocalStore, config: TrackerConfig) -> DiscoveryResolver:
    return DiscoveryResolver(client, providers_from_config(config.discovery), store, config.discovery)


async def run_resolve(config: TrackerConfig) -> int:
    store = LocalStore(config.state.path)
    async with httpx.AsyncClient() as client:
        try:
            url = await _resolver(client, store, config).resolve()
        except NoEndpointError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
    print(url)
    return 0


async def run_replay(config: TrackerConfig, path: str, speed: float | None,
                     server: str | None, save: bool) -> int:
    store = LocalStore(config.state.path)
    me = device_id(store, config.identity.device_name)
    source = ReplaySource.from_jsonl(path, me, speed=speed, restamp=speed is not None)
    log.info("replay_loaded", path=path, samples=len(source), device_id=me)

    async with httpx.AsyncClient() as client:
        tracker = Tracker(
            device_id=me,
            source=source,
            sender=LocationSender(client, config.transport),
            resolver=None if server else _resolver(client, store, config),
            config=config,
        )
        try:
            await tracker.start(endpoint=server)
        except NoEndpointError as exc:
            print(f"error: {exc}", file=sys.stderr)
            return 1
        try:
            await tracker.join_source()
        finally:
            await tracker.stop()

    session = tracker.session
    if save and session.points:
        store.save_session(session, me)
    print(json.dumps({
        "points": len(session.points),
        "distance_m": round(session.distance_m, 2),
        "avg_speed_mps": round(session.avg_speed_mps, 2),
    }))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tracker", description="Pepi location tracker")
    parser.add_argument("--config", default=None, help="Path to tracker.yaml")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("resolve", help="Discover and print the relay URL")

    replay = sub.add_parser("replay", help="Replay recorded samples through a tracking session")
    replay.add_argument("file", help="JSON-lines file of samples")
    replay.add_argument("--speed", type=float, default=None,
                        help="Pace the replay at this multiple of real time (default: no pacing)")
    replay.add_argument("--server", default=None, help="Relay URL (default: discover it)")
    replay.add_argument("--save", action="store_true", help="Save the recorded session to the local state")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    _setup_logging(config)

    if args.command == "resolve":
        return asyncio.run(run_resolve(config))
    return asyncio.run(run_replay(config, args.file, args.speed, args.server, args.save))
