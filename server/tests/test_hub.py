"""Tests for PresenceHub channel membership and drop-on-full fan-out."""

from __future__ import annotations

import asyncio

import pytest

from relay.core.hub import PRIVILEGED_CHANNEL, PresenceHub, self_channel
from relay.core.models import Event
from relay.core.stats import ServerStats


def _location(device_id: str, lat: float = 1.0) -> Event:
    return Event("locationUpdate", {"userId": device_id, "lat": lat, "lon": 2.0, "ts": 0})


def test_publish_reaches_only_channel_members():
    hub = PresenceHub()
    a = hub.subscribe(self_channel("a"))
    b = hub.subscribe(self_channel("b"))

    assert hub.publish(self_channel("a"), _location("a")) == 1
    assert a.queue.qsize() == 1
    assert b.queue.empty()


def test_publish_to_empty_channel():
    hub = PresenceHub()
    assert hub.publish(PRIVILEGED_CHANNEL, _location("a")) == 0


def test_full_queue_drops_for_that_observer_only():
    stats = ServerStats()
    hub = PresenceHub(queue_size=2, stats=stats)
    slow = hub.subscribe(PRIVILEGED_CHANNEL)
    fast = hub.subscribe(PRIVILEGED_CHANNEL)

    for i in range(3):
        hub.publish(PRIVILEGED_CHANNEL, _location("a", lat=i))
        fast.queue.get_nowait()

    assert slow.queue.qsize() == 2
    assert slow.dropped == 1
    assert fast.dropped == 0
    assert stats.snapshot()["events_dropped"] == 1
    # the oldest events are kept
    assert slow.queue.get_nowait().data["lat"] == 0


def test_unsubscribe_is_idempotent():
    stats = ServerStats()
    hub = PresenceHub(stats=stats)
    sub = hub.subscribe(self_channel("a"))
    assert hub.channel_size(self_channel("a")) == 1
    assert stats.snapshot()["observers"]["connected"] == 1

    hub.unsubscribe(sub)
    hub.unsubscribe(sub)

    assert hub.channel_size(self_channel("a")) == 0
    assert hub.observer_count() == 0
    assert stats.snapshot()["observers"] == {"connected": 0, "max_ever": 1}
    assert hub.publish(self_channel("a"), _location("a")) == 0


@pytest.mark.asyncio
async def test_privileged_sees_every_device_and_self_sees_only_own():
    hub = PresenceHub()
    admin = hub.subscribe(PRIVILEGED_CHANNEL)
    viewer_a = hub.subscribe(self_channel("a"))

    for device in ("a", "b", "c"):
        hub.publish(self_channel(device), Event("selfLocation", {"userId": device}))
        hub.publish(PRIVILEGED_CHANNEL, _location(device))

    seen_by_admin = [(await admin.next_event()).data["userId"] for _ in range(3)]
    assert seen_by_admin == ["a", "b", "c"]

    event = await asyncio.wait_for(viewer_a.next_event(), timeout=1)
    assert event.data["userId"] == "a"
    assert viewer_a.queue.empty()
