"""Relay server: main entry point.

This is the only file that knows about concrete implementations.
It wires together the core, storage, publish, and API layers.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI

from relay import deps
from relay.api.admin import router as admin_router
from relay.api.discovery import router as discovery_router
from relay.api.location import router as location_router
from relay.api.monitoring import router as monitoring_router
from relay.api.realtime import router as realtime_router
from relay.config import AppConfig, load_config
from relay.core.hub import PresenceHub
from relay.core.ingestion import LocationIngestor
from relay.core.publisher import DiscoveryPublisher
from relay.core.stats import ServerStats
from relay.publish.file_mirror import FileDocument
from relay.publish.gist import GistDocument
from relay.storage.memory_store import ShardedDeviceStore

log = structlog.get_logger()


def _setup_logging(config: AppConfig) -> None:
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


def build_services(config: AppConfig, http_client: httpx.AsyncClient | None = None) -> deps.Services:
    """Create every component from config."""
    stats = ServerStats(active_window_seconds=config.limits.active_window_seconds)
    hub = PresenceHub(queue_size=config.realtime.observer_queue_size, stats=stats)
    store = ShardedDeviceStore(shards=config.storage.shards)
    ingestor = LocationIngestor(store=store, hub=hub, stats=stats, filters=config.filters)

    documents = []
    if config.publish.mirror_file:
        documents.append(FileDocument(config.publish.mirror_file))
    if config.publish.gist_id and config.publish.gist_token:
        if http_client is not None:
            documents.append(GistDocument(
                http_client,
                gist_id=config.publish.gist_id,
                token=config.publish.gist_token,
                filename=config.publish.gist_filename,
                timeout=config.publish.timeout_seconds,
            ))
        else:
            log.warning("gist_publish_disabled", reason="no http client",
                        gist_id=config.publish.gist_id)
    else:
        log.warning("gist_not_configured",
                    hint="set RELAY_PUBLISH_GIST_ID and RELAY_PUBLISH_GIST_TOKEN")
    publisher = DiscoveryPublisher(documents)

    return deps.Services(
        config=config,
        stats=stats,
        hub=hub,
        ingestor=ingestor,
        publisher=publisher,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    config = load_config()
    _setup_logging(config)

    if not config.admin.token:
        log.warning("admin_token_not_set", hint="privileged observers will be refused")

    async with httpx.AsyncClient() as http_client:
        deps.install(build_services(config, http_client))
        log.info("server_started",
                 env=config.server.env,
                 host=config.server.host,
                 port=config.server.port)

        yield

        deps.install(None)
    log.info("server_stopped")


app = FastAPI(
    title="Pepi Relay",
    description="Real-time location relay",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(location_router)
app.include_router(monitoring_router)
app.include_router(discovery_router)
app.include_router(admin_router)
app.include_router(realtime_router)
