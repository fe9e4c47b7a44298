"""GitHub Gist discovery document.

Overwrites one file of a gist with ``{"server": url}`` so resolvers outside
the LAN can fetch it from ``gist.githubusercontent.com``.
"""

from __future__ import annotations

import json

import httpx
import structlog

log = structlog.get_logger()

GITHUB_API = "https://api.github.com"


class GistDocument:
    """DiscoveryDocument backed by a gist file (PATCH, overwrite semantics)."""

    name = "gist"

    def __init__(
        self,
        client: httpx.AsyncClient,
        gist_id: str,
        token: str,
        filename: str = "current-tunnel.json",
        timeout: float = 10.0,
    ) -> None:
        self._client = client
        self._gist_id = gist_id
        self._token = token
        self._filename = filename
        self._timeout = timeout

    async def push(self, url: str | None) -> bool:
        body = {
            "files": {
                self._filename: {"content": json.dumps({"server": url})},
            },
        }
        try:
            resp = await self._client.patch(
                f"{GITHUB_API}/gists/{self._gist_id}",
                json=body,
                headers={
                    "User-Agent": "pepi-relay-discovery",
                    "Authorization": f"Bearer {self._token}",
                    "Accept": "application/vnd.github+json",
                },
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            log.warning("gist_update_error", gist=self._gist_id, error=str(exc))
            return False

        if not resp.is_success:
            log.warning("gist_update_failed", gist=self._gist_id,
                        status=resp.status_code, body=resp.text[:200])
            return False

        log.info("gist_updated", gist=self._gist_id, server=url)
        return True
