"""HTTP transport: posts accepted samples to the relay."""

from __future__ import annotations

import httpx
import structlog

from tracker.config import TransportConfig
from tracker.models import LocationSample

log = structlog.get_logger()


def location_payload(sample: LocationSample, heartbeat: bool) -> dict:
    payload = {
        "userId": sample.device_id,
        "lat": sample.coordinate.latitude,
        "lon": sample.coordinate.longitude,
        "ts": sample.timestamp_ms,
    }
    if heartbeat:
        payload["heartbeat"] = True
    return payload


class LocationSender:
    """Sends one sample per call. Failures are logged and reported as False."""

    def __init__(self, client: httpx.AsyncClient, config: TransportConfig | None = None) -> None:
        self._client = client
        self._config = config or TransportConfig()
        self.sent = 0
        self.failed = 0

    async def send(self, endpoint: str, sample: LocationSample, heartbeat: bool = False) -> bool:
        url = f"{endpoint.rstrip('/')}/location"
        try:
            resp = await self._client.post(
                url,
                json=location_payload(sample, heartbeat),
                headers={"User-Agent": self._config.user_agent},
                timeout=self._config.timeout_seconds,
            )
        except httpx.HTTPError as exc:
            self.failed += 1
            log.warning("send_failed", url=url, error=str(exc) or type(exc).__name__)
            return False

        if not resp.is_success:
            self.failed += 1
            log.warning("send_rejected", url=url, status=resp.status_code)
            return False

        self.sent += 1
        log.debug("location_sent", device_id=sample.device_id, heartbeat=heartbeat)
        return True
