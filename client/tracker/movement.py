"""Movement detection: decides which sensor samples are worth sending.

A sample is sent when movement has been confirmed by several consecutive
qualifying samples, or when the last send is old enough that a heartbeat is
due. Single-sample GPS spikes never reach the confirmation count, and a
stationary device still shows up on the relay every ``stale_seconds``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import structlog

from tracker.config import MovementConfig
from tracker.geo import Coordinate, distance_m
from tracker.models import LocationSample, SendState

log = structlog.get_logger()


@dataclass(frozen=True)
class MovementDecision:
    distance_m: float
    elapsed_ms: int
    heartbeat_due: bool
    discarded: bool = False
    noise: bool = False
    movement_confirmed: bool = False

    @property
    def should_send(self) -> bool:
        if self.discarded:
            return False
        return self.movement_confirmed or self.heartbeat_due


class MovementDetector:
    """Holds the SendState of one tracking session."""

    def __init__(self, config: MovementConfig | None = None) -> None:
        self._config = config or MovementConfig()
        self.state = SendState()

    @property
    def config(self) -> MovementConfig:
        return self._config

    def _stale_ms(self) -> float:
        return self._config.stale_seconds * 1000

    def heartbeat_due(self, now_ms: int) -> bool:
        """True when something was sent before and the last send is stale."""
        if self.state.last_sent is None:
            return False
        return now_ms - self.state.last_sent_at_ms >= self._stale_ms()

    def evaluate(self, sample: LocationSample, now_ms: int | None = None) -> MovementDecision:
        cfg = self._config
        state = self.state
        now = sample.timestamp_ms if now_ms is None else now_ms

        if state.last_sent is None:
            dist = math.inf
        else:
            dist = distance_m(state.last_sent, sample.coordinate)
        elapsed = now - state.last_sent_at_ms
        heartbeat_due = state.last_sent is None or elapsed >= self._stale_ms()

        accuracy = sample.accuracy
        if accuracy > cfg.max_accuracy_m and not heartbeat_due:
            log.debug("sample_discarded", device_id=sample.device_id, accuracy_m=accuracy)
            return MovementDecision(dist, elapsed, heartbeat_due, discarded=True)

        noise = accuracy > cfg.noise_accuracy_m and dist < accuracy
        # Nothing sent yet: there is no reference to have moved from
        moved = state.last_sent is not None and dist >= cfg.min_move_meters
        still = sample.speed < cfg.min_speed_mps

        if moved and not still and not noise:
            state.confirm_count += 1
        else:
            state.confirm_count = 0

        confirmed = state.confirm_count >= cfg.confirmations_required
        return MovementDecision(
            distance_m=dist,
            elapsed_ms=elapsed,
            heartbeat_due=heartbeat_due,
            noise=noise,
            movement_confirmed=confirmed,
        )

    def record_sent(self, coordinate: Coordinate, sent_at_ms: int, movement_confirmed: bool) -> None:
        """Call only after the relay accepted the send."""
        self.state.last_sent = coordinate
        self.state.last_sent_at_ms = sent_at_ms
        # Heartbeat sends leave the confirmation counter alone
        if movement_confirmed:
            self.state.confirm_count = 0
