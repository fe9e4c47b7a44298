"""Tests for the /ws realtime endpoint (handshake, snapshot, scoped delivery)."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from relay import deps
from relay.main import app

TOKEN = "ws-secret"


@pytest.fixture
def ws_client(monkeypatch, tmp_path):
    """A TestClient running the real lifespan, so HTTP and WebSocket share one loop."""
    monkeypatch.setenv("RELAY_CONFIG", str(tmp_path / "missing.yaml"))
    monkeypatch.setenv("RELAY_ADMIN_TOKEN", TOKEN)
    monkeypatch.setenv("RELAY_LOG_LEVEL", "warning")
    with TestClient(app) as client:
        yield client


def _hello(**data) -> dict:
    return {"event": "hello", "data": data}


def _post(client, user_id, lat, ts):
    resp = client.post("/location", json={"userId": user_id, "lat": lat, "lon": 4.8, "ts": ts})
    assert resp.status_code == 200
    return resp.json()


def test_admin_receives_snapshot_of_known_devices(ws_client):
    _post(ws_client, "a", 45.0, 1000)
    _post(ws_client, "b", 46.0, 1000)

    with ws_client.websocket_connect("/ws") as ws:
        ws.send_json(_hello(role="admin", userId="boss", token=TOKEN))
        frame = ws.receive_json()

    assert frame["event"] == "adminSnapshot"
    devices = {d["userId"]: d for d in frame["data"]["devices"]}
    assert set(devices) == {"a", "b"}
    assert devices["b"]["lat"] == 46.0


def test_admin_with_bad_token_is_refused(ws_client):
    with ws_client.websocket_connect("/ws") as ws:
        ws.send_json(_hello(role="admin", userId="boss", token="nope"))
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
    assert exc_info.value.code == 1008
    assert deps.get_hub().observer_count() == 0


def test_non_hello_first_frame_is_refused(ws_client):
    with ws_client.websocket_connect("/ws") as ws:
        ws.send_json({"event": "subscribe", "data": {"userId": "a"}})
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()
    assert exc_info.value.code == 1008


def test_device_viewer_receives_only_its_own_samples(ws_client):
    with ws_client.websocket_connect("/ws") as admin, \
            ws_client.websocket_connect("/ws") as viewer:
        admin.send_json(_hello(role="admin", userId="boss", token=TOKEN))
        assert admin.receive_json() == {"event": "adminSnapshot", "data": {"devices": []}}

        viewer.send_json(_hello(userId="a"))
        assert viewer.receive_json() == {"event": "joined", "data": {"channel": "user:a"}}

        assert _post(ws_client, "b", 46.0, 1000) == {"ok": True, "first": True}
        assert _post(ws_client, "a", 45.0, 1000) == {"ok": True, "first": True}

        # admin sees both, in order
        first = admin.receive_json()
        second = admin.receive_json()
        assert first["event"] == second["event"] == "locationUpdate"
        assert [first["data"]["userId"], second["data"]["userId"]] == ["b", "a"]

        # the viewer's first event is its own sample; b's never reached it
        own = viewer.receive_json()
        assert own["event"] == "selfLocation"
        assert own["data"]["userId"] == "a"
        assert own["data"]["lat"] == 45.0


def test_skipped_samples_are_not_pushed(ws_client):
    with ws_client.websocket_connect("/ws") as viewer:
        viewer.send_json(_hello(userId="a"))
        viewer.receive_json()

        _post(ws_client, "a", 45.0, 1000)
        assert _post(ws_client, "a", 45.000001, 1100) == {"ok": True, "skipped": "small_move"}
        _post(ws_client, "a", 45.001, 9000)

        lats = [viewer.receive_json()["data"]["lat"] for _ in range(2)]
        assert lats == [45.0, 45.001]


def test_disconnect_removes_membership(ws_client):
    with ws_client.websocket_connect("/ws") as viewer:
        viewer.send_json(_hello(userId="a"))
        viewer.receive_json()
        assert deps.get_hub().channel_size("user:a") == 1

    # the server notices the close asynchronously; a round trip lets it run
    ws_client.get("/health")
    assert deps.get_hub().channel_size("user:a") == 0
