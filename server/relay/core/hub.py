"""Presence & fan-out hub: channel membership and non-blocking broadcast.

Every realtime connection subscribes to exactly one channel:

- ``user:<deviceId>``: the device's own viewer session (self-view)
- ``admins``: the shared privileged channel (oversight view)

Each subscription owns a bounded queue. Publishing never waits: when an
observer's queue is full the event is dropped for that observer only.
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from relay.core.models import Event
    from relay.core.stats import ServerStats

log = structlog.get_logger()

PRIVILEGED_CHANNEL = "admins"
_SELF_PREFIX = "user:"


def self_channel(device_id: str) -> str:
    return f"{_SELF_PREFIX}{device_id}"


@dataclass(eq=False)
class Subscription:
    """Handle returned by PresenceHub.subscribe()."""
    channel: str
    queue: asyncio.Queue = field(repr=False)
    dropped: int = 0
    closed: bool = False

    async def next_event(self) -> Event:
        return await self.queue.get()


class PresenceHub:
    """Publish/subscribe over named channels with drop-on-full delivery."""

    def __init__(self, queue_size: int = 100, stats: ServerStats | None = None) -> None:
        self._queue_size = queue_size
        self._stats = stats
        self._lock = threading.Lock()
        self._channels: dict[str, set[Subscription]] = {}

    def subscribe(self, channel: str) -> Subscription:
        sub = Subscription(channel=channel, queue=asyncio.Queue(maxsize=self._queue_size))
        with self._lock:
            self._channels.setdefault(channel, set()).add(sub)
        if self._stats is not None:
            self._stats.record_observer_joined()
        log.debug("observer_subscribed", channel=channel)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        """Remove a subscription. Calling it twice is a no-op."""
        with self._lock:
            if sub.closed:
                return
            sub.closed = True
            members = self._channels.get(sub.channel)
            if members is not None:
                members.discard(sub)
                if not members:
                    del self._channels[sub.channel]
        if self._stats is not None:
            self._stats.record_observer_left()
        log.debug("observer_unsubscribed", channel=sub.channel, dropped=sub.dropped)

    def publish(self, channel: str, event: Event) -> int:
        """Offer an event to every member of a channel. Returns deliveries."""
        with self._lock:
            members = list(self._channels.get(channel, ()))

        delivered = 0
        for sub in members:
            try:
                sub.queue.put_nowait(event)
                delivered += 1
            except asyncio.QueueFull:
                sub.dropped += 1
                if self._stats is not None:
                    self._stats.record_event_dropped()
                log.debug("event_dropped", channel=channel, event_name=event.name)
        return delivered

    def channel_size(self, channel: str) -> int:
        with self._lock:
            return len(self._channels.get(channel, ()))

    def observer_count(self) -> int:
        with self._lock:
            return sum(len(members) for members in self._channels.values())
