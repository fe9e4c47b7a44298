"""Location ingestion: validates, de-spams and de-glitches inbound samples.

This is the core business logic of the relay. It depends on the DeviceStore
protocol and the PresenceHub, not on the HTTP layer.
"""

from __future__ import annotations

import math
import time
from typing import Callable, TYPE_CHECKING

import structlog

from relay.core.geo import distance_m
from relay.core.hub import PRIVILEGED_CHANNEL, self_channel
from relay.core.models import (
    Coordinate,
    DeviceRecord,
    Event,
    IngestResult,
    IngestStatus,
)

if TYPE_CHECKING:
    from relay.config import FilterConfig
    from relay.core.hub import PresenceHub
    from relay.core.models import LocationReport
    from relay.core.stats import ServerStats
    from relay.storage.base import DeviceStore

log = structlog.get_logger()


class InvalidLocationError(ValueError):
    """Latitude or longitude is missing or not a finite number."""


def _now_ms() -> int:
    return int(time.time() * 1000)


class LocationIngestor:
    """Decides which location reports are relayed to observers.

    The first report from a device is always accepted. After that a report is
    skipped as ``small_move`` when it barely moved within the minimum
    interval, and as ``glitch`` when the implied speed is impossible. Skipped
    reports leave the device's record untouched.
    """

    def __init__(
        self,
        store: DeviceStore,
        hub: PresenceHub,
        stats: ServerStats,
        filters: FilterConfig,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._store = store
        self._hub = hub
        self._stats = stats
        self._filters = filters
        self._clock = clock

    @property
    def store(self) -> DeviceStore:
        return self._store

    def _timestamp(self, report: LocationReport) -> int:
        ts = report.timestamp_ms
        if ts is None or not math.isfinite(ts) or ts == 0:
            return self._clock()
        return int(ts)

    def _decide(self, record: DeviceRecord, prev: DeviceRecord | None) -> tuple[DeviceRecord | None, IngestResult]:
        if prev is None:
            return record, IngestResult(IngestStatus.FIRST, record)

        dt = (record.timestamp_ms - prev.timestamp_ms) / 1000
        d = distance_m(prev.coordinate, record.coordinate)

        if d < self._filters.min_move_meters and dt < self._filters.min_interval_seconds:
            return None, IngestResult(IngestStatus.SMALL_MOVE, prev)

        if dt > 0 and d / dt > self._filters.max_jump_speed_mps:
            log.warning("glitch_skipped", device=record.device_id,
                        distance_m=round(d, 1), dt_s=round(dt, 2))
            return None, IngestResult(IngestStatus.GLITCH, prev)

        return record, IngestResult(IngestStatus.ACCEPTED, record)

    def ingest(self, report: LocationReport) -> IngestResult:
        """Validate one report, update the device record and fan it out."""
        if not (math.isfinite(report.lat) and math.isfinite(report.lon)):
            self._stats.record_rejected()
            log.warning("invalid_location", device=report.device_id,
                        lat=report.lat, lon=report.lon)
            raise InvalidLocationError("missing or invalid coords")

        self._stats.record_report(report.device_id, heartbeat=report.heartbeat)

        record = DeviceRecord(
            device_id=report.device_id,
            coordinate=Coordinate(report.lat, report.lon),
            timestamp_ms=self._timestamp(report),
        )
        result = self._store.transact(
            report.device_id, lambda prev: self._decide(record, prev),
        )
        self._stats.record_outcome(result.status.value)

        if result.emitted:
            self._emit(result.record)
            log.info("location_accepted", device=report.device_id,
                     lat=round(report.lat, 6), lon=round(report.lon, 6),
                     first=result.status is IngestStatus.FIRST,
                     heartbeat=report.heartbeat)
        else:
            log.debug("location_skipped", device=report.device_id,
                      reason=result.status.value)
        return result

    def _emit(self, record: DeviceRecord) -> None:
        payload = record.to_dict()
        # The device only ever sees its own channel; admins see everything.
        self._hub.publish(self_channel(record.device_id), Event("selfLocation", payload))
        self._hub.publish(PRIVILEGED_CHANNEL, Event("locationUpdate", payload))

    def devices(self) -> list[dict]:
        """All known devices, in the shape used by adminSnapshot and the admin API."""
        return [r.to_dict() for r in self._store.snapshot()]
