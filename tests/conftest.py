"""Shared fixtures: an in-memory transport and web-service/manifest builders."""

import json
import threading

import pytest

from synth.transport import TransportError

CID = "a1b2c3d4-0000-1111-2222-333344445555"
ROOT = "http://x/synth/"
JSON_URL = "http://x/synth/collection.json"


class FakeTransport:
    """Serves canned bytes per URL; anything else (or an Exception value) fails."""

    def __init__(self, routes: dict):
        self.routes = dict(routes)
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def request(self, url, method="GET", body=None, headers=None):
        with self._lock:
            self.calls.append((method, url))
        resp = self.routes.get(url)
        if resp is None:
            raise TransportError(f"404 {url}")
        if isinstance(resp, Exception):
            raise resp
        return resp

    def urls(self) -> list[str]:
        with self._lock:
            return [url for _, url in self.calls]


def soap_response(result="OK", collection_type="Synth", json_url=JSON_URL, root=ROOT) -> bytes:
    return (
        '<?xml version="1.0" encoding="utf-8"?>'
        '<soap:Envelope xmlns:soap="http://schemas.xmlsoap.org/soap/envelope/">'
        "<soap:Body>"
        '<GetCollectionDataResponse xmlns="http://labs.live.com/">'
        "<GetCollectionDataResult>"
        f"<Result>{result}</Result>"
        f"<CollectionType>{collection_type}</CollectionType>"
        f"<JsonUrl>{json_url}</JsonUrl>"
        f"<CollectionRoot>{root}</CollectionRoot>"
        "</GetCollectionDataResult>"
        "</GetCollectionDataResponse>"
        "</soap:Body>"
        "</soap:Envelope>"
    ).encode("utf-8")


def camera(image_id, position=(0.0, 0.0, 0.0), rotation=(0.0, 0.0, 0.0)) -> dict:
    return {
        "image_id": image_id,
        "position": list(position),
        "rotation": list(rotation),
        "aspect_ratio": 1.5,
        "focal_length": 0.8,
        "distortion": [0.01, -0.002],
    }


def manifest(systems, images=None) -> dict:
    """systems: list of (id, bin_file_count, number_of_points, cameras)."""
    return {
        "type": "synth",
        "coordinate_systems": [
            {"id": cs_id, "bin_file_count": n_bin, "number_of_points": n_pts, "cameras": cams}
            for cs_id, n_bin, n_pts, cams in systems
        ],
        "images": {
            str(i): {"url": url, "width": 640, "height": 480}
            for i, url in (images or {}).items()
        },
    }


@pytest.fixture
def synth_routes():
    """Build the route table for a FakeTransport serving one synth."""
    from synth.orchestrator import DEFAULT_SERVICE

    def build(manifest_dict, extra=None, soap=None):
        routes = {
            DEFAULT_SERVICE.soap_url: soap if soap is not None else soap_response(),
            JSON_URL: json.dumps(manifest_dict).encode("utf-8"),
        }
        routes.update(extra or {})
        return routes

    return build
