"""Tests for synth.transport — HTTP error mapping and the fetch pool."""

import pytest
import requests

from conftest import FakeTransport
from synth.transport import FetchKind, FetchPool, HttpTransport, TransportError


class _Response:
    def __init__(self, status, content=b""):
        self.status_code = status
        self.content = content

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


def test_http_transport_returns_content(monkeypatch):
    transport = HttpTransport(timeout=5)
    seen = {}

    def fake_request(method, url, data=None, headers=None, timeout=None):
        seen.update(method=method, url=url, timeout=timeout)
        return _Response(200, b"payload")

    monkeypatch.setattr(transport.session, "request", fake_request)
    assert transport.request("http://x/a", "POST", b"body") == b"payload"
    assert seen == {"method": "POST", "url": "http://x/a", "timeout": 5}


def test_http_transport_maps_http_errors(monkeypatch):
    transport = HttpTransport()
    monkeypatch.setattr(transport.session, "request", lambda *a, **kw: _Response(404))
    with pytest.raises(TransportError, match="404"):
        transport.request("http://x/missing")


def test_http_transport_maps_connection_errors(monkeypatch):
    transport = HttpTransport()

    def refuse(*a, **kw):
        raise requests.exceptions.ConnectionError("refused")

    monkeypatch.setattr(transport.session, "request", refuse)
    with pytest.raises(TransportError, match="refused"):
        transport.request("http://x/down")


def test_fetch_pool_posts_every_result():
    fake = FakeTransport({"http://x/0": b"zero", "http://x/1": b"one",
                          "http://x/boom": RuntimeError("boom")})
    with FetchPool(fake, max_workers=3) as pool:
        pool.submit(FetchKind.FRAGMENT, (0, 0), "http://x/0")
        pool.submit(FetchKind.FRAGMENT, (0, 1), "http://x/1")
        pool.submit(FetchKind.IMAGE, 7, "http://x/missing")
        pool.submit(FetchKind.IMAGE, 8, "http://x/boom")
        results = {r.key: r for r in (pool.get(timeout=5) for _ in range(4))}

    assert results[(0, 0)].ok and results[(0, 0)].payload == b"zero"
    assert results[(0, 1)].payload == b"one"
    assert not results[7].ok and "404" in results[7].error
    assert not results[8].ok and "RuntimeError" in results[8].error
    assert results[7].kind is FetchKind.IMAGE
