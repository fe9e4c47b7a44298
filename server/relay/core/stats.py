"""Server statistics and active-device tracking.

Tracks in-memory counters and a sliding window of recently reporting devices.
No framework dependencies.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass


@dataclass
class DeviceActivity:
    """Tracks a single device's recent activity."""
    last_seen: float          # time.monotonic() timestamp
    reports_sent: int = 0
    heartbeats_sent: int = 0


class ServerStats:
    """Thread-safe server statistics with active-device tracking.

    A device is considered active if it posted a location report (accepted,
    skipped or heartbeat) within ``active_window_seconds`` (default 120s).
    """

    def __init__(self, active_window_seconds: float = 120.0) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()
        self._active_window = active_window_seconds

        # Counters
        self.reports_received: int = 0
        self.reports_accepted: int = 0
        self.reports_rejected: int = 0
        self.first_seen: int = 0
        self.skipped_small_move: int = 0
        self.skipped_glitch: int = 0
        self.heartbeats_received: int = 0
        self.events_dropped: int = 0
        self.observers_connected: int = 0
        self.observers_max: int = 0

        # Device tracking: device_id → DeviceActivity
        self._devices: dict[str, DeviceActivity] = {}

    def record_report(self, device_id: str, *, heartbeat: bool = False) -> None:
        """Record that a location report arrived from a device."""
        now = time.monotonic()
        with self._lock:
            self.reports_received += 1
            if heartbeat:
                self.heartbeats_received += 1
            dev = self._devices.get(device_id)
            if dev is None:
                dev = self._devices[device_id] = DeviceActivity(last_seen=now)
            dev.last_seen = now
            dev.reports_sent += 1
            if heartbeat:
                dev.heartbeats_sent += 1

    def record_outcome(self, status: str) -> None:
        """Record what ingestion decided: first, accepted, small_move or glitch."""
        with self._lock:
            if status == "first":
                self.first_seen += 1
                self.reports_accepted += 1
            elif status == "accepted":
                self.reports_accepted += 1
            elif status == "small_move":
                self.skipped_small_move += 1
            elif status == "glitch":
                self.skipped_glitch += 1

    def record_rejected(self, count: int = 1) -> None:
        with self._lock:
            self.reports_rejected += count

    def record_event_dropped(self) -> None:
        with self._lock:
            self.events_dropped += 1

    def record_observer_joined(self) -> None:
        with self._lock:
            self.observers_connected += 1
            if self.observers_connected > self.observers_max:
                self.observers_max = self.observers_connected

    def record_observer_left(self) -> None:
        with self._lock:
            self.observers_connected = max(0, self.observers_connected - 1)

    def _prune_stale_devices(self, now: float) -> None:
        """Remove devices not seen within the active window. Caller holds lock."""
        cutoff = now - self._active_window
        stale = [did for did, dev in self._devices.items() if dev.last_seen < cutoff]
        for did in stale:
            del self._devices[did]

    def snapshot(self) -> dict:
        """Return a JSON-serializable snapshot of all stats."""
        now_mono = time.monotonic()
        with self._lock:
            self._prune_stale_devices(now_mono)

            return {
                "uptime_seconds": round(time.time() - self._started_at, 1),
                "reports_received": self.reports_received,
                "reports_accepted": self.reports_accepted,
                "reports_rejected": self.reports_rejected,
                "first_seen": self.first_seen,
                "skipped": {
                    "small_move": self.skipped_small_move,
                    "glitch": self.skipped_glitch,
                },
                "heartbeats_received": self.heartbeats_received,
                "events_dropped": self.events_dropped,
                "observers": {
                    "connected": self.observers_connected,
                    "max_ever": self.observers_max,
                },
                "active_devices": {
                    "total": len(self._devices),
                    "window_seconds": self._active_window,
                },
            }
