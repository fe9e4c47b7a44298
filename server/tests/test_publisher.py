"""Tests for DiscoveryPublisher and its discovery documents."""

from __future__ import annotations

import json

import httpx
import pytest

from relay.core.publisher import DiscoveryPublisher, extract_tunnel_url
from relay.publish.file_mirror import FileDocument
from relay.publish.gist import GistDocument


class _RecordingDocument:
    name = "recording"

    def __init__(self, ok: bool = True) -> None:
        self.ok = ok
        self.pushed: list[str | None] = []

    async def push(self, url):
        self.pushed.append(url)
        return self.ok


@pytest.mark.asyncio
async def test_publish_updates_record_and_documents():
    doc = _RecordingDocument()
    publisher = DiscoveryPublisher([doc])
    assert publisher.record.to_dict() == {"server": None}

    assert await publisher.publish("https://abc.loclx.io/") is True
    assert publisher.current_url == "https://abc.loclx.io"
    assert publisher.record.source == "publisher"
    assert publisher.record.resolved_at_ms > 0
    assert doc.pushed == ["https://abc.loclx.io"]


@pytest.mark.asyncio
async def test_publish_same_url_is_a_no_op():
    doc = _RecordingDocument()
    publisher = DiscoveryPublisher([doc])
    await publisher.publish("https://abc.loclx.io")
    assert await publisher.publish("https://abc.loclx.io/") is False
    assert doc.pushed == ["https://abc.loclx.io"]


@pytest.mark.asyncio
async def test_failed_document_does_not_block_others():
    broken, healthy = _RecordingDocument(ok=False), _RecordingDocument()
    publisher = DiscoveryPublisher([broken, healthy])
    assert await publisher.publish("http://x.loclx.io") is True
    assert healthy.pushed == ["http://x.loclx.io"]


@pytest.mark.asyncio
async def test_publish_rejects_non_http_url():
    with pytest.raises(ValueError):
        await DiscoveryPublisher().publish("x.loclx.io")


@pytest.mark.asyncio
async def test_file_document_overwrites(tmp_path):
    path = tmp_path / "nested" / "server-url.json"
    doc = FileDocument(path)
    assert await doc.push("https://one.loclx.io")
    assert await doc.push("https://two.loclx.io")
    assert json.loads(path.read_text()) == {"server": "https://two.loclx.io"}


@pytest.mark.asyncio
async def test_gist_document_patches_file():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "g1"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        doc = GistDocument(client, gist_id="g1", token="t0k", filename="current-tunnel.json")
        assert await doc.push("https://abc.loclx.io") is True

    assert seen["method"] == "PATCH"
    assert seen["url"] == "https://api.github.com/gists/g1"
    assert seen["auth"] == "Bearer t0k"
    content = seen["body"]["files"]["current-tunnel.json"]["content"]
    assert json.loads(content) == {"server": "https://abc.loclx.io"}


@pytest.mark.asyncio
async def test_gist_document_reports_failures():
    def rejected(request):
        return httpx.Response(404, json={"message": "Not Found"})

    def unreachable(request):
        raise httpx.ConnectError("no route", request=request)

    for handler in (rejected, unreachable):
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            doc = GistDocument(client, gist_id="g1", token="t0k")
            assert await doc.push("https://abc.loclx.io") is False


@pytest.mark.parametrize("line,expected", [
    ("Tunnel up (http, us) abc-123.loclx.io => localhost:9878", "http://abc-123.loclx.io"),
    ("forwarding https://Zed9.loclx.io to localhost", "https://Zed9.loclx.io"),
    ("loclx gui listening on http://localhost:54545", None),
    ("", None),
])
def test_extract_tunnel_url(line, expected):
    assert extract_tunnel_url(line) == expected


@pytest.mark.asyncio
async def test_gist_needs_an_http_client(config):
    from structlog.testing import capture_logs

    from relay.main import build_services

    config.publish.gist_id = "abc"
    config.publish.gist_token = "secret"

    with capture_logs() as logs:
        services = build_services(config)
    assert [d.name for d in services.publisher.documents] == ["file"]
    assert any(entry["event"] == "gist_publish_disabled" for entry in logs)

    async with httpx.AsyncClient() as client:
        services = build_services(config, client)
    assert [d.name for d in services.publisher.documents] == ["file", "gist"]
