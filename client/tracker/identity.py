"""Stable, human-readable device identity."""

from __future__ import annotations

import socket
import uuid

from tracker.store import DEVICE_ID_KEY, LocalStore


def default_device_name() -> str:
    return socket.gethostname() or "device"


def device_id(store: LocalStore, device_name: str = "") -> str:
    """Return ``<device-name>-<first 8 chars of a stored uuid4>``.

    The uuid is generated once and kept in the store, so the id survives
    restarts and stays unique between two devices sharing a name.
    """
    saved = store.get(DEVICE_ID_KEY)
    if not saved:
        saved = str(uuid.uuid4())
        store.set(DEVICE_ID_KEY, saved)
    name = device_name or default_device_name()
    return f"{name}-{saved[:8]}"
