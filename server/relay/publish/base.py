"""Discovery document interface (port) for advertising the public endpoint."""

from __future__ import annotations

from typing import Protocol


class DiscoveryDocument(Protocol):
    """Port: a place the current endpoint is written to, overwriting the last one."""

    name: str

    async def push(self, url: str | None) -> bool: ...
