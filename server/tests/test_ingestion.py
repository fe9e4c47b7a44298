"""Tests for LocationIngestor: first-sample bootstrap, anti-spam and anti-glitch."""

from __future__ import annotations

import math

import pytest

from relay.config import FilterConfig
from relay.core.hub import PRIVILEGED_CHANNEL, PresenceHub, self_channel
from relay.core.ingestion import InvalidLocationError, LocationIngestor
from relay.core.models import IngestStatus, LocationReport
from relay.core.stats import ServerStats
from relay.storage.memory_store import ShardedDeviceStore

LAT, LON = -34.603722, -58.381592
T0 = 1_700_000_000_000


@pytest.fixture
def hub():
    return PresenceHub(queue_size=10)


@pytest.fixture
def ingestor(hub):
    return LocationIngestor(
        store=ShardedDeviceStore(shards=4),
        hub=hub,
        stats=ServerStats(),
        filters=FilterConfig(),
        clock=lambda: 42,
    )


def _report(device="dev-1", lat=LAT, lon=LON, ts=T0, heartbeat=False) -> LocationReport:
    return LocationReport(device_id=device, lat=lat, lon=lon, timestamp_ms=ts, heartbeat=heartbeat)


def test_first_sample_is_always_accepted(ingestor):
    result = ingestor.ingest(_report())
    assert result.status is IngestStatus.FIRST
    assert result.to_response() == {"ok": True, "first": True}
    assert ingestor.store.get("dev-1").timestamp_ms == T0


def test_far_first_sample_of_another_device_is_accepted(ingestor):
    ingestor.ingest(_report(device="a"))
    # 5000 km away, same instant: still a first sample for "b"
    result = ingestor.ingest(_report(device="b", lat=LAT + 45))
    assert result.status is IngestStatus.FIRST


def test_small_move_is_skipped_without_state_change(ingestor):
    ingestor.ingest(_report())
    result = ingestor.ingest(_report(lat=LAT + 0.000018, ts=T0 + 200))

    assert result.status is IngestStatus.SMALL_MOVE
    assert result.to_response() == {"ok": True, "skipped": "small_move"}
    record = ingestor.store.get("dev-1")
    assert record.timestamp_ms == T0
    assert record.coordinate.latitude == LAT


def test_small_move_after_interval_is_accepted(ingestor):
    ingestor.ingest(_report())
    result = ingestor.ingest(_report(lat=LAT + 0.000018, ts=T0 + 1500))
    assert result.status is IngestStatus.ACCEPTED
    assert ingestor.store.get("dev-1").timestamp_ms == T0 + 1500


def test_glitch_is_skipped_without_state_change(ingestor):
    ingestor.ingest(_report())
    ingestor.ingest(_report(lat=LAT + 0.000018, ts=T0 + 200))
    result = ingestor.ingest(_report(lat=LAT + 0.09, ts=T0 + 1200))

    assert result.status is IngestStatus.GLITCH
    assert result.to_response() == {"ok": True, "skipped": "glitch"}
    assert ingestor.store.get("dev-1").coordinate.latitude == LAT


def test_large_jump_with_non_positive_dt_is_accepted(ingestor):
    ingestor.ingest(_report())
    # No elapsed time means no speed can be computed.
    result = ingestor.ingest(_report(lat=LAT + 0.09, ts=T0))
    assert result.status is IngestStatus.ACCEPTED


def test_fast_but_plausible_move_is_accepted(ingestor):
    ingestor.ingest(_report())
    # ~111 m in 1 s is 111 m/s, under the 200 m/s ceiling
    result = ingestor.ingest(_report(lat=LAT + 0.001, ts=T0 + 1000))
    assert result.status is IngestStatus.ACCEPTED


@pytest.mark.parametrize("lat,lon", [
    (math.nan, LON),
    (LAT, math.inf),
    (-math.inf, math.nan),
])
def test_non_finite_coordinates_are_rejected(ingestor, lat, lon):
    with pytest.raises(InvalidLocationError):
        ingestor.ingest(_report(lat=lat, lon=lon))
    assert len(ingestor.store) == 0


@pytest.mark.parametrize("ts", [None, 0])
def test_missing_timestamp_uses_clock(ingestor, ts):
    result = ingestor.ingest(_report(ts=ts))
    assert result.record.timestamp_ms == 42


def test_accepted_samples_are_published_to_self_and_admin_channels(ingestor, hub):
    own = hub.subscribe(self_channel("dev-1"))
    other = hub.subscribe(self_channel("dev-2"))
    admin = hub.subscribe(PRIVILEGED_CHANNEL)

    ingestor.ingest(_report())

    event = own.queue.get_nowait()
    assert event.name == "selfLocation"
    assert event.data == {"userId": "dev-1", "lat": LAT, "lon": LON, "ts": T0}
    assert admin.queue.get_nowait().name == "locationUpdate"
    assert other.queue.empty()


def test_skipped_samples_are_not_published(ingestor, hub):
    admin = hub.subscribe(PRIVILEGED_CHANNEL)
    ingestor.ingest(_report())
    admin.queue.get_nowait()

    ingestor.ingest(_report(lat=LAT + 0.000018, ts=T0 + 200))
    ingestor.ingest(_report(lat=LAT + 0.09, ts=T0 + 1200))
    assert admin.queue.empty()


def test_devices_snapshot(ingestor):
    ingestor.ingest(_report(device="a"))
    ingestor.ingest(_report(device="b"))
    assert sorted(d["userId"] for d in ingestor.devices()) == ["a", "b"]
