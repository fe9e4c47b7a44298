"""Tracker data models: samples, send state and recording sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from tracker.geo import Coordinate


@dataclass(frozen=True)
class LocationSample:
    device_id: str
    coordinate: Coordinate
    timestamp_ms: int
    accuracy_m: float | None = None   # None: the sensor did not say
    speed_mps: float | None = None
    is_heartbeat: bool = False

    @property
    def accuracy(self) -> float:
        """Accuracy in meters; unknown accuracy counts as infinitely poor."""
        return self.accuracy_m if self.accuracy_m is not None else float("inf")

    @property
    def speed(self) -> float:
        """Speed in m/s; unknown speed counts as standing still."""
        return self.speed_mps if self.speed_mps is not None else 0.0


@dataclass
class SendState:
    """What was last sent to the relay. One per tracking session."""
    last_sent: Coordinate | None = None
    last_sent_at_ms: int = 0
    confirm_count: int = 0


@dataclass(frozen=True)
class SessionPoint:
    coordinate: Coordinate
    timestamp_ms: int
    speed_mps: float

    def to_dict(self) -> dict:
        return {
            "lat": self.coordinate.latitude,
            "lon": self.coordinate.longitude,
            "ts": self.timestamp_ms,
            "speed": self.speed_mps,
        }


@dataclass
class Session:
    active: bool = False
    started_at_ms: int = 0
    points: list[SessionPoint] = field(default_factory=list)
    distance_m: float = 0.0
    total_speed: float = 0.0
    speed_samples: int = 0

    @property
    def elapsed_seconds(self) -> float:
        if len(self.points) < 2:
            return 0.0
        return (self.points[-1].timestamp_ms - self.points[0].timestamp_ms) / 1000

    @property
    def avg_speed_mps(self) -> float:
        """Mean of the valid speed readings, else distance over elapsed time."""
        if self.speed_samples > 0:
            return self.total_speed / self.speed_samples
        elapsed = self.elapsed_seconds
        return self.distance_m / elapsed if elapsed > 0 else 0.0

    def to_dict(self) -> dict:
        """Export payload for whatever saves or shares the session."""
        at = datetime.fromtimestamp(self.started_at_ms / 1000, tz=timezone.utc)
        return {
            "at": at.isoformat(),
            "active": self.active,
            "distance_m": round(self.distance_m, 2),
            "avg_speed_mps": round(self.avg_speed_mps, 2),
            "points": [p.to_dict() for p in self.points],
        }


@dataclass(frozen=True)
class DiscoveryRecord:
    endpoint_url: str | None
    resolved_at_ms: int
    source: str  # "provider" or "cache"
    provider: str = ""
