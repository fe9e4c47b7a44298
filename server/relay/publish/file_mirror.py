"""Local file mirror of the advertised endpoint.

Writes ``{"server": url}`` so that anything on this host (a static file
server, a LAN-only resolver) can read it without querying the relay.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import structlog

log = structlog.get_logger()


class FileDocument:
    """DiscoveryDocument backed by a JSON file, replaced atomically."""

    name = "file"

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def push(self, url: str | None) -> bool:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._path.with_suffix(self._path.suffix + ".tmp")
            tmp.write_text(json.dumps({"server": url}), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError:
            log.warning("discovery_mirror_failed", path=str(self._path), exc_info=True)
            return False
        log.debug("discovery_mirror_written", path=str(self._path))
        return True
