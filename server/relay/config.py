"""Relay server configuration.

Loads from config.yaml if present, with environment variable overrides.
Environment variables use the pattern: RELAY_<SECTION>_<KEY> (uppercase).
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 9878
    env: str = "dev"  # "dev" or "prod"


@dataclass
class FilterConfig:
    min_move_meters: float = 5.0
    min_interval_seconds: float = 1.0
    max_jump_speed_mps: float = 200.0


@dataclass
class RealtimeConfig:
    observer_queue_size: int = 100
    handshake_timeout_seconds: float = 10.0


@dataclass
class AdminConfig:
    token: str = ""  # empty disables every privileged surface


@dataclass
class PublishConfig:
    mirror_file: str = ""  # local JSON copy of the advertised endpoint
    gist_id: str = ""
    gist_token: str = ""
    gist_filename: str = "current-tunnel.json"
    timeout_seconds: float = 10.0


@dataclass
class StorageConfig:
    shards: int = 16


@dataclass
class LimitsConfig:
    active_window_seconds: float = 120.0


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"


@dataclass
class AppConfig:
    server: ServerConfig = field(default_factory=ServerConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    realtime: RealtimeConfig = field(default_factory=RealtimeConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


_SECTIONS = ("server", "filters", "realtime", "admin", "publish", "storage", "limits", "logging")


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "RELAY_SERVER_HOST": lambda v: setattr(config.server, "host", v),
        "RELAY_SERVER_PORT": lambda v: setattr(config.server, "port", int(v)),
        "RELAY_SERVER_ENV": lambda v: setattr(config.server, "env", v),
        "RELAY_FILTERS_MIN_MOVE": lambda v: setattr(config.filters, "min_move_meters", float(v)),
        "RELAY_FILTERS_MIN_INTERVAL": lambda v: setattr(config.filters, "min_interval_seconds", float(v)),
        "RELAY_FILTERS_MAX_JUMP_SPEED": lambda v: setattr(config.filters, "max_jump_speed_mps", float(v)),
        "RELAY_REALTIME_QUEUE_SIZE": lambda v: setattr(config.realtime, "observer_queue_size", int(v)),
        "RELAY_REALTIME_HANDSHAKE_TIMEOUT": lambda v: setattr(config.realtime, "handshake_timeout_seconds", float(v)),
        "RELAY_ADMIN_TOKEN": lambda v: setattr(config.admin, "token", v),
        "RELAY_PUBLISH_MIRROR_FILE": lambda v: setattr(config.publish, "mirror_file", v),
        "RELAY_PUBLISH_GIST_ID": lambda v: setattr(config.publish, "gist_id", v),
        "RELAY_PUBLISH_GIST_TOKEN": lambda v: setattr(config.publish, "gist_token", v),
        "RELAY_STORAGE_SHARDS": lambda v: setattr(config.storage, "shards", int(v)),
        "RELAY_LIMITS_ACTIVE_WINDOW": lambda v: setattr(config.limits, "active_window_seconds", float(v)),
        "RELAY_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "RELAY_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
    }
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            setter(val)


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file + environment overrides."""
    config = AppConfig()

    if config_path is None:
        config_path = Path(os.environ.get("RELAY_CONFIG", "config.yaml"))
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
