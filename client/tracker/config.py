"""Tracker configuration.

Loads from tracker.yaml if present, with environment variable overrides.
Environment variables use the pattern: TRACKER_<SECTION>_<KEY> (uppercase).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class MovementConfig:
    min_move_meters: float = 7.0
    stale_seconds: float = 15.0           # heartbeat interval
    min_speed_mps: float = 0.6            # below this the device counts as still
    max_accuracy_m: float = 20.0          # worse samples are dropped unless a heartbeat is due
    noise_accuracy_m: float = 10.0        # above this, moves smaller than the accuracy are noise
    confirmations_required: int = 2
    heartbeat_check_seconds: float = 3.0


@dataclass
class SessionConfig:
    distance_threshold_m: float = 2.0
    max_accuracy_m: float = 30.0
    stopped_speed_mps: float = 0.3
    min_hop_m: float = 1.0                # sub-meter jitter is not added to the total
    valid_speed_mps: float = 0.3          # speeds above this feed the speed average


@dataclass
class DiscoveryConfig:
    attempts: int = 3
    retry_delay_seconds: float = 3.0
    timeout_seconds: float = 5.0
    poll_interval_seconds: float = 15.0
    gist_user: str = ""
    gist_id: str = ""
    gist_filename: str = "current-tunnel.json"
    relay_urls: list[str] = field(default_factory=list)  # LAN relays asked via /current-tunnel


@dataclass
class TransportConfig:
    timeout_seconds: float = 5.0
    user_agent: str = "pepi-tracker/1.0"


@dataclass
class StateConfig:
    path: str = "~/.local/share/pepi-tracker/state.json"


@dataclass
class IdentityConfig:
    device_name: str = ""  # defaults to the host name


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"


@dataclass
class TrackerConfig:
    movement: MovementConfig = field(default_factory=MovementConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    discovery: DiscoveryConfig = field(default_factory=DiscoveryConfig)
    transport: TransportConfig = field(default_factory=TransportConfig)
    state: StateConfig = field(default_factory=StateConfig)
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS = ("movement", "session", "discovery", "transport", "state", "identity", "logging")


def _apply_env_overrides(config: TrackerConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "TRACKER_MOVEMENT_MIN_MOVE": lambda v: setattr(config.movement, "min_move_meters", float(v)),
        "TRACKER_MOVEMENT_STALE_SECONDS": lambda v: setattr(config.movement, "stale_seconds", float(v)),
        "TRACKER_MOVEMENT_MIN_SPEED": lambda v: setattr(config.movement, "min_speed_mps", float(v)),
        "TRACKER_MOVEMENT_MAX_ACCURACY": lambda v: setattr(config.movement, "max_accuracy_m", float(v)),
        "TRACKER_MOVEMENT_CONFIRMATIONS": lambda v: setattr(config.movement, "confirmations_required", int(v)),
        "TRACKER_DISCOVERY_GIST_USER": lambda v: setattr(config.discovery, "gist_user", v),
        "TRACKER_DISCOVERY_GIST_ID": lambda v: setattr(config.discovery, "gist_id", v),
        "TRACKER_DISCOVERY_RELAY_URLS": lambda v: setattr(
            config.discovery, "relay_urls", [u.strip() for u in v.split(",") if u.strip()]),
        "TRACKER_DISCOVERY_ATTEMPTS": lambda v: setattr(config.discovery, "attempts", int(v)),
        "TRACKER_DISCOVERY_RETRY_DELAY": lambda v: setattr(config.discovery, "retry_delay_seconds", float(v)),
        "TRACKER_DISCOVERY_TIMEOUT": lambda v: setattr(config.discovery, "timeout_seconds", float(v)),
        "TRACKER_DISCOVERY_POLL_INTERVAL": lambda v: setattr(config.discovery, "poll_interval_seconds", float(v)),
        "TRACKER_TRANSPORT_TIMEOUT": lambda v: setattr(config.transport, "timeout_seconds", float(v)),
        "TRACKER_STATE_PATH": lambda v: setattr(config.state, "path", v),
        "TRACKER_IDENTITY_DEVICE_NAME": lambda v: setattr(config.identity, "device_name", v),
        "TRACKER_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "TRACKER_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
    }
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            setter(val)


def load_config(config_path: str | Path | None = None) -> TrackerConfig:
    """Load configuration from YAML file + environment overrides."""
    config = TrackerConfig()

    if config_path is None:
        config_path = Path(os.environ.get("TRACKER_CONFIG", "tracker.yaml"))
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        for name in _SECTIONS:
            section = getattr(config, name)
            for k, v in (raw.get(name) or {}).items():
                if hasattr(section, k):
                    setattr(section, k, v)

    # Environment overrides always win
    _apply_env_overrides(config)
    return config
