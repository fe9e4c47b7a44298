"""Location report API endpoint.

This is the thin FastAPI adapter. It parses the JSON body into a
LocationReport and hands it to the ingestor.
"""

from __future__ import annotations

import json
import math

from fastapi import APIRouter, Depends, Request, Response

from relay.core.ingestion import InvalidLocationError, LocationIngestor
from relay.core.models import LocationReport
from relay.deps import get_ingestor

router = APIRouter()


def _as_float(value) -> float:
    """Coerce a JSON value to float; anything unusable becomes NaN."""
    if isinstance(value, bool) or value is None:
        return math.nan
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def _parse_report(body: dict) -> LocationReport:
    user_id = body.get("userId")
    ts = _as_float(body.get("ts"))
    return LocationReport(
        device_id=str(user_id) if user_id not in (None, "") else "anon",
        lat=_as_float(body.get("lat")),
        lon=_as_float(body.get("lon")),
        timestamp_ms=int(ts) if math.isfinite(ts) else None,
        heartbeat=bool(body.get("heartbeat", False)),
    )


def _json(content: dict, status_code: int = 200) -> Response:
    return Response(
        content=json.dumps(content),
        status_code=status_code,
        media_type="application/json",
    )


@router.post("/location")
async def receive_location(
    request: Request,
    ingestor: LocationIngestor = Depends(get_ingestor),
) -> Response:
    """Receive one location sample from a tracking device.

    Body: {"userId": str, "lat": number, "lon": number, "ts": number, "heartbeat": bool}

    Small moves and glitches are acknowledged with 200 and a ``skipped``
    reason; only unusable coordinates are refused.
    """
    body_bytes = await request.body()
    try:
        body = json.loads(body_bytes)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return _json({"ok": False, "error": "invalid JSON"}, status_code=400)

    if not isinstance(body, dict):
        return _json({"ok": False, "error": "expected a JSON object"}, status_code=400)

    report = _parse_report(body)
    try:
        result = ingestor.ingest(report)
    except InvalidLocationError as exc:
        return _json({"ok": False, "error": str(exc)}, status_code=400)

    return _json(result.to_response())
