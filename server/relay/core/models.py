"""Relay server: core internal data models.

These are plain dataclasses with no framework dependencies.
JSON bodies and WebSocket frames are converted to/from these at the boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(frozen=True)
class LocationReport:
    """A parsed ``POST /location`` body."""
    device_id: str
    lat: float
    lon: float
    timestamp_ms: int | None = None
    heartbeat: bool = False


@dataclass(frozen=True)
class DeviceRecord:
    device_id: str
    coordinate: Coordinate
    timestamp_ms: int

    def to_dict(self) -> dict:
        return {
            "userId": self.device_id,
            "lat": self.coordinate.latitude,
            "lon": self.coordinate.longitude,
            "ts": self.timestamp_ms,
        }


class IngestStatus(str, Enum):
    FIRST = "first"
    ACCEPTED = "accepted"
    SMALL_MOVE = "small_move"
    GLITCH = "glitch"


@dataclass(frozen=True)
class IngestResult:
    status: IngestStatus
    record: DeviceRecord

    @property
    def emitted(self) -> bool:
        return self.status in (IngestStatus.FIRST, IngestStatus.ACCEPTED)

    def to_response(self) -> dict:
        body: dict = {"ok": True}
        if self.status is IngestStatus.FIRST:
            body["first"] = True
        elif not self.emitted:
            body["skipped"] = self.status.value
        return body


@dataclass(frozen=True)
class Event:
    """A realtime message pushed to observers."""
    name: str
    data: dict = field(default_factory=dict)

    def to_frame(self) -> dict:
        return {"event": self.name, "data": self.data}


@dataclass
class DiscoveryRecord:
    endpoint_url: str | None = None
    resolved_at_ms: int = 0
    source: str = "publisher"

    def to_dict(self) -> dict:
        return {"server": self.endpoint_url}
