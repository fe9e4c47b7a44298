#!/usr/bin/env python3
"""Report tunnel address changes to a running relay.

Pipe the tunnel client's output through this script; every line is echoed,
and whenever a new public URL shows up it is posted to the relay's admin API,
which republishes it to the discovery documents.

Usage:
    loclx tunnel http --to localhost:9878 | python -m tools.tunnel_watch --token "$RELAY_ADMIN_TOKEN"
"""

from __future__ import annotations

import argparse
import os
import sys
from typing import Iterable

import httpx

from relay.core.publisher import extract_tunnel_url


def report(client: httpx.Client, server: str, token: str, url: str) -> bool:
    try:
        resp = client.post(
            f"{server.rstrip('/')}/admin/api/server-url",
            json={"server": url},
            headers={"x-admin-token": token},
        )
    except httpx.HTTPError as exc:
        print(f"[tunnel_watch] could not reach relay: {exc}", file=sys.stderr)
        return False
    if resp.status_code != 200:
        print(f"[tunnel_watch] relay refused {url}: HTTP {resp.status_code}", file=sys.stderr)
        return False
    print(f"[tunnel_watch] advertised {url}", file=sys.stderr)
    return True


def watch(lines: Iterable[str], client: httpx.Client, server: str, token: str,
          echo=None) -> list[str]:
    """Consume tunnel output; return the URLs successfully reported, in order."""
    reported: list[str] = []
    last = None
    for line in lines:
        if echo is not None:
            echo.write(line)
        url = extract_tunnel_url(line)
        if url is None or url == last:
            continue
        if report(client, server, token, url):
            last = url
            reported.append(url)
    return reported


def main():
    parser = argparse.ArgumentParser(description="Report tunnel URL changes to a Pepi relay")
    parser.add_argument("--server", default="http://localhost:9878", help="Relay URL (local side)")
    parser.add_argument("--token", default=os.environ.get("RELAY_ADMIN_TOKEN", ""),
                        help="Admin token (default: $RELAY_ADMIN_TOKEN)")
    args = parser.parse_args()

    if not args.token:
        parser.error("an admin token is required (--token or RELAY_ADMIN_TOKEN)")

    with httpx.Client(timeout=10.0) as client:
        watch(sys.stdin, client, args.server, args.token, echo=sys.stdout)


if __name__ == "__main__":
    main()
