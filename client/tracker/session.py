"""Session aggregation: distance and average speed of a recorded activity.

Runs independently of the movement detector with looser thresholds, since
undercounting a walk is worse than a few meters of noise in the total.
"""

from __future__ import annotations

import math

from tracker.config import SessionConfig
from tracker.geo import distance_m
from tracker.models import LocationSample, Session, SessionPoint


class SessionAggregator:

    def __init__(self, config: SessionConfig | None = None) -> None:
        self._config = config or SessionConfig()
        self.session = Session()

    def start(self, now_ms: int) -> None:
        self.session = Session(active=True, started_at_ms=now_ms)

    def stop(self) -> None:
        """Mark inactive; accumulated points stay available for export."""
        self.session.active = False

    def add(self, sample: LocationSample) -> bool:
        """Fold a sample into the session. Returns True if it became a point."""
        cfg = self._config
        session = self.session
        if not session.active:
            return False

        if session.points:
            last = session.points[-1].coordinate
            hop = distance_m(last, sample.coordinate)
        else:
            hop = math.inf

        speed = sample.speed
        if speed < cfg.stopped_speed_mps:
            return False
        if not hop >= cfg.distance_threshold_m:
            return False
        if sample.accuracy > cfg.max_accuracy_m:
            return False

        point = SessionPoint(sample.coordinate, sample.timestamp_ms, speed)
        valid_speed = speed > cfg.valid_speed_mps

        if not session.points:
            session.points = [point]
            session.distance_m = 0.0
            session.total_speed = speed if valid_speed else 0.0
            session.speed_samples = 1 if valid_speed else 0
            return True

        session.points.append(point)
        if hop >= cfg.min_hop_m:
            session.distance_m += hop
        if valid_speed:
            session.total_speed += speed
            session.speed_samples += 1
        return True
