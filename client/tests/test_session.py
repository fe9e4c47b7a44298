"""Tests for SessionAggregator."""

from __future__ import annotations

import pytest

from tracker.config import SessionConfig
from tracker.geo import Coordinate, distance_m
from tracker.models import LocationSample
from tracker.session import SessionAggregator

LAT, LON = 45.764043, 4.835659
T0 = 1_700_000_000_000


def _sample(dlat=0.0, t=0.0, speed=1.5, accuracy=5.0) -> LocationSample:
    return LocationSample(
        device_id="phone-1",
        coordinate=Coordinate(LAT + dlat, LON),
        timestamp_ms=T0 + int(t * 1000),
        accuracy_m=accuracy,
        speed_mps=speed,
    )


@pytest.fixture
def agg():
    aggregator = SessionAggregator(SessionConfig())
    aggregator.start(T0)
    return aggregator


def test_inactive_session_ignores_samples():
    aggregator = SessionAggregator()
    assert not aggregator.add(_sample())
    assert aggregator.session.points == []


def test_first_point_seeds_session(agg):
    assert agg.add(_sample(speed=1.5))
    session = agg.session
    assert len(session.points) == 1
    assert session.distance_m == 0
    assert session.speed_samples == 1
    assert session.total_speed == 1.5


def test_first_point_with_borderline_speed_does_not_seed_average(agg):
    assert agg.add(_sample(speed=0.3))
    assert agg.session.speed_samples == 0
    assert agg.session.total_speed == 0


def test_distance_accumulates_between_points(agg):
    agg.add(_sample())
    agg.add(_sample(dlat=0.0001, t=10))
    agg.add(_sample(dlat=0.0002, t=20))
    expected = distance_m(Coordinate(LAT, LON), Coordinate(LAT + 0.0002, LON))
    assert agg.session.distance_m == pytest.approx(expected, rel=1e-6)
    assert agg.session.avg_speed_mps == pytest.approx(1.5)


@pytest.mark.parametrize("kwargs", [
    {"speed": 0.1},          # stopped
    {"accuracy": 45.0},      # too imprecise
    {"dlat": 0.00001},       # ~1.1 m from the last point
])
def test_rejected_samples(agg, kwargs):
    agg.add(_sample())
    assert not agg.add(_sample(t=5, **kwargs))
    assert len(agg.session.points) == 1


def test_sub_meter_hop_adds_a_point_but_no_distance():
    aggregator = SessionAggregator(SessionConfig(distance_threshold_m=0))
    aggregator.start(T0)
    p1 = _sample()
    p2 = _sample(dlat=0.000005, t=1)   # ~0.56 m
    p3 = _sample(dlat=0.0001, t=2)

    for p in (p1, p2, p3):
        assert aggregator.add(p)

    assert len(aggregator.session.points) == 3
    assert aggregator.session.distance_m == pytest.approx(distance_m(p2.coordinate, p3.coordinate))


def test_average_falls_back_to_distance_over_time(agg):
    agg.add(_sample(speed=0.3))
    agg.add(_sample(dlat=0.0001, t=10, speed=0.3))
    session = agg.session
    assert session.speed_samples == 0
    assert session.avg_speed_mps == pytest.approx(session.distance_m / 10)


def test_stop_keeps_points_and_start_resets(agg):
    agg.add(_sample())
    agg.add(_sample(dlat=0.0001, t=10))
    agg.stop()
    assert not agg.session.active
    assert len(agg.session.points) == 2
    assert not agg.add(_sample(dlat=0.0002, t=20))

    agg.start(T0 + 60_000)
    assert agg.session.active
    assert agg.session.points == []
    assert agg.session.distance_m == 0


def test_export_payload(agg):
    agg.add(_sample())
    agg.add(_sample(dlat=0.0001, t=10))
    payload = agg.session.to_dict()
    assert payload["active"] is True
    assert payload["distance_m"] == pytest.approx(11.12, abs=0.05)
    assert payload["points"][1] == {"lat": LAT + 0.0001, "lon": LON, "ts": T0 + 10_000, "speed": 1.5}
    assert payload["at"].startswith("2023-11-14T")
