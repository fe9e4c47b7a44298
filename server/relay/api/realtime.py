"""Realtime WebSocket endpoint.

Frames are JSON objects ``{"event": <name>, "data": {...}}``.

Handshake: the first client frame must be a ``hello``:

- ``{"role": "admin", "userId": ..., "token": ...}`` joins the privileged
  channel and is answered with ``adminSnapshot {devices: [...]}``.
  A wrong or missing token closes the socket with 1008.
- ``{"userId": ...}`` joins that device's own channel and is answered with
  ``joined {channel}``. Nothing is replayed.

Membership is fixed for the life of the socket; later client frames are
ignored.
"""

from __future__ import annotations

import asyncio

import structlog
from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from relay.core.hub import PRIVILEGED_CHANNEL, Subscription, self_channel
from relay.core.models import Event
from relay.deps import Services, get_services, token_matches

router = APIRouter()

log = structlog.get_logger()


async def _read_hello(websocket: WebSocket, timeout: float) -> dict | None:
    """Wait for the hello frame. Returns its data, or None if unusable."""
    try:
        frame = await asyncio.wait_for(websocket.receive_json(), timeout=timeout)
    except asyncio.TimeoutError:
        log.info("handshake_timeout")
        return None
    except (ValueError, KeyError):
        log.info("handshake_invalid_frame")
        return None

    if not isinstance(frame, dict) or frame.get("event") != "hello":
        return None
    data = frame.get("data")
    return data if isinstance(data, dict) else {}


async def _pump(websocket: WebSocket, sub: Subscription) -> None:
    """Forward queued events to the socket until it goes away."""
    while True:
        event = await sub.next_event()
        try:
            await websocket.send_json(event.to_frame())
        except Exception:
            log.debug("observer_send_failed", channel=sub.channel, exc_info=True)
            return


@router.websocket("/ws")
async def realtime(websocket: WebSocket, services: Services = Depends(get_services)) -> None:
    await websocket.accept()
    try:
        hello = await _read_hello(websocket, services.config.realtime.handshake_timeout_seconds)
    except WebSocketDisconnect:
        return

    if hello is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    hub = services.hub
    if hello.get("role") == "admin":
        if not token_matches(hello.get("token")):
            log.warning("admin_handshake_refused", user=hello.get("userId"))
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return
        # Subscribe before the snapshot so no update falls between the two.
        sub = hub.subscribe(PRIVILEGED_CHANNEL)
        first = Event("adminSnapshot", {"devices": services.ingestor.devices()})
        log.info("admin_connected", user=hello.get("userId"))
    else:
        device_id = str(hello.get("userId") or "anon")
        sub = hub.subscribe(self_channel(device_id))
        first = Event("joined", {"channel": sub.channel})
        log.info("viewer_connected", device=device_id)

    pump: asyncio.Task | None = None
    try:
        await websocket.send_json(first.to_frame())
        pump = asyncio.create_task(_pump(websocket, sub))
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        if pump is not None:
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass
        hub.unsubscribe(sub)
        log.info("observer_disconnected", channel=sub.channel)
