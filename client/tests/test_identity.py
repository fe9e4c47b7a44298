"""Tests for LocalStore persistence and device identity."""

from __future__ import annotations

import re

from tracker.geo import Coordinate
from tracker.identity import device_id
from tracker.models import Session, SessionPoint
from tracker.store import DEVICE_ID_KEY, SERVER_URL_KEY, LocalStore


def test_store_persists_across_instances(tmp_path):
    path = tmp_path / "nested" / "state.json"
    LocalStore(path).set(SERVER_URL_KEY, "https://abc.loclx.io")
    assert LocalStore(path).get(SERVER_URL_KEY) == "https://abc.loclx.io"
    assert not path.with_suffix(".json.tmp").exists()


def test_corrupt_state_starts_empty(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{not json")
    store = LocalStore(path)
    assert store.get(SERVER_URL_KEY) is None
    store.set(SERVER_URL_KEY, "https://x.loclx.io")
    assert LocalStore(path).get(SERVER_URL_KEY) == "https://x.loclx.io"


def test_device_id_is_stable(tmp_path):
    store = LocalStore(tmp_path / "state.json")
    first = device_id(store, "Pixel 7")
    assert re.fullmatch(r"Pixel 7-[0-9a-f]{8}", first)
    assert device_id(LocalStore(tmp_path / "state.json"), "Pixel 7") == first
    assert first.endswith(store.get(DEVICE_ID_KEY)[:8])


def test_device_id_defaults_to_host_name(tmp_path, monkeypatch):
    monkeypatch.setattr("tracker.identity.socket.gethostname", lambda: "laptop")
    assert device_id(LocalStore(tmp_path / "s.json")).startswith("laptop-")


def test_save_session(tmp_path):
    store = LocalStore(tmp_path / "state.json")
    session = Session(active=False, started_at_ms=1_700_000_000_000, distance_m=12.5)
    session.points.append(SessionPoint(Coordinate(1.0, 2.0), 1_700_000_000_000, 1.2))

    entry = store.save_session(session, "laptop-1234abcd")

    assert entry["userId"] == "laptop-1234abcd"
    assert entry["distance_m"] == 12.5
    assert LocalStore(tmp_path / "state.json").saved_sessions() == [entry]
