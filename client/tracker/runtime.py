"""Tracking runtime: ties the sender side together.

    SampleSource -> MovementDetector -> LocationSender -> relay
                 +-> SessionAggregator

Three background tasks run while tracking: the sample consumer, the
heartbeat timer (for sensors that go quiet when the device is still) and
the discovery poll (for relays whose public URL changes).
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import replace
from typing import Callable

import structlog

from tracker.config import TrackerConfig
from tracker.discovery.resolver import DiscoveryResolver, NoEndpointError
from tracker.models import LocationSample, Session
from tracker.movement import MovementDecision, MovementDetector
from tracker.sensor import SampleSource
from tracker.session import SessionAggregator
from tracker.transport import LocationSender

log = structlog.get_logger()


def _now_ms() -> int:
    return int(time.time() * 1000)


class Tracker:

    def __init__(
        self,
        device_id: str,
        source: SampleSource,
        sender: LocationSender,
        resolver: DiscoveryResolver | None = None,
        config: TrackerConfig | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._config = config or TrackerConfig()
        self.device_id = device_id
        self._source = source
        self._sender = sender
        self._resolver = resolver
        self._clock = clock

        self.detector = MovementDetector(self._config.movement)
        self.aggregator = SessionAggregator(self._config.session)

        self._lock = asyncio.Lock()
        self._endpoint: str | None = None
        self._last_known: LocationSample | None = None
        self._sensor_task: asyncio.Task | None = None
        self._tasks: list[asyncio.Task] = []
        self._running = False
        self._generation = 0

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    @property
    def running(self) -> bool:
        return self._running

    @property
    def session(self) -> Session:
        return self.aggregator.session

    @property
    def last_known(self) -> LocationSample | None:
        return self._last_known

    async def start(self, endpoint: str | None = None) -> None:
        """Resolve the endpoint (unless given) and start the background tasks.

        Raises NoEndpointError if no endpoint can be found.
        """
        if self._running:
            return
        generation = self._generation
        if endpoint is None:
            if self._resolver is None:
                raise NoEndpointError("no endpoint given and no resolver configured")
            endpoint = await self._resolver.resolve()
            if generation != self._generation:
                # stop() ran while resolving
                log.info("tracking_start_abandoned", device_id=self.device_id)
                return
        self._endpoint = endpoint.rstrip("/")
        self.aggregator.start(self._clock())
        self._running = True

        self._sensor_task = asyncio.create_task(self._consume(), name="tracker-sensor")
        self._tasks = [
            self._sensor_task,
            asyncio.create_task(self._heartbeat_loop(), name="tracker-heartbeat"),
        ]
        if self._resolver is not None and self._config.discovery.poll_interval_seconds > 0:
            self._tasks.append(asyncio.create_task(self._poll_loop(), name="tracker-discovery"))
        log.info("tracking_started", device_id=self.device_id, endpoint=self._endpoint)

    async def stop(self) -> None:
        """Cancel and await every background task. Safe to call twice.

        A start() still resolving its endpoint is abandoned.
        """
        self._generation += 1
        if not self._running:
            return
        self._running = False
        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks = []
        self.aggregator.stop()
        log.info(
            "tracking_stopped",
            device_id=self.device_id,
            sent=self._sender.sent,
            failed=self._sender.failed,
            session_points=len(self.session.points),
            session_distance_m=round(self.session.distance_m, 1),
        )

    async def join_source(self) -> None:
        """Wait until the sample source is exhausted."""
        if self._sensor_task is not None:
            await self._sensor_task

    async def handle_sample(self, sample: LocationSample) -> MovementDecision:
        async with self._lock:
            self._last_known = sample
            decision = self.detector.evaluate(sample)
            self.aggregator.add(sample)

            if not decision.should_send:
                return decision

            heartbeat = decision.heartbeat_due
            endpoint = self._endpoint
            if endpoint is None:
                return decision
            if await self._sender.send(endpoint, sample, heartbeat=heartbeat):
                self.detector.record_sent(sample.coordinate, sample.timestamp_ms, decision.movement_confirmed)
            return decision

    async def send_heartbeat(self) -> bool:
        """Resend the last known coordinate if a heartbeat is due."""
        async with self._lock:
            now = self._clock()
            if self._last_known is None or self._endpoint is None:
                return False
            if not self.detector.heartbeat_due(now):
                return False
            sample = replace(self._last_known, timestamp_ms=now, is_heartbeat=True)
            ok = await self._sender.send(self._endpoint, sample, heartbeat=True)
            if ok:
                self.detector.record_sent(sample.coordinate, now, movement_confirmed=False)
            return ok

    async def _consume(self) -> None:
        async for sample in self._source.stream():
            await self.handle_sample(sample)
        log.debug("sample_source_exhausted", device_id=self.device_id)

    async def _heartbeat_loop(self) -> None:
        interval = self._config.movement.heartbeat_check_seconds
        while True:
            await asyncio.sleep(interval)
            await self.send_heartbeat()

    async def _poll_loop(self) -> None:
        interval = self._config.discovery.poll_interval_seconds
        while True:
            await asyncio.sleep(interval)
            changed = await self._resolver.poll()
            if changed is not None and changed != self._endpoint:
                log.info("endpoint_changed", previous=self._endpoint, endpoint=changed)
                self._endpoint = changed
