"""Collection lookup against the synth web service (SOAP GetCollectionData).

The service resolves a collection id to the manifest URL and the collection
root that fragment files live under.
"""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from urllib.parse import parse_qs, urlparse

from .model import ErrorCode, SynthImportError

SERVICE_NAMESPACE = "http://labs.live.com/"
SOAP_ENV_NAMESPACE = "http://schemas.xmlsoap.org/soap/envelope/"

_GUID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")

_ENVELOPE = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<soap:Envelope xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
    'xmlns:xsd="http://www.w3.org/2001/XMLSchema" xmlns:soap="{soap}">'
    "<soap:Body>"
    '<GetCollectionData xmlns="{ns}">'
    "<collectionId>{cid}</collectionId>"
    "<incrementEditCount>false</incrementEditCount>"
    "</GetCollectionData>"
    "</soap:Body>"
    "</soap:Envelope>"
)


@dataclass(frozen=True)
class CollectionInfo:
    result: str
    collection_type: str
    json_url: str
    collection_root: str


def parse_collection_id(locator: str) -> str:
    """Extract the collection id from a bare GUID or a viewer URL with ``cid=``."""
    locator = (locator or "").strip()
    if _GUID_RE.match(locator):
        return locator.lower()
    parsed = urlparse(locator)
    if parsed.scheme in ("http", "https") and parsed.netloc:
        # Query keys are case-insensitive on the viewer site.
        query = {k.lower(): v for k, v in parse_qs(parsed.query).items()}
        for cid in query.get("cid", []):
            if _GUID_RE.match(cid.strip()):
                return cid.strip().lower()
    raise SynthImportError(ErrorCode.WRONG_URL, f"no collection id in {locator!r}")


def build_collection_request(collection_id: str, soap_action: str) -> tuple[bytes, dict[str, str]]:
    """Return (body, headers) for a GetCollectionData call."""
    body = _ENVELOPE.format(soap=SOAP_ENV_NAMESPACE, ns=SERVICE_NAMESPACE, cid=collection_id)
    headers = {
        "Content-Type": "text/xml; charset=utf-8",
        "SOAPAction": f'"{soap_action}"',
    }
    return body.encode("utf-8"), headers


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _find_text(root: ET.Element, name: str) -> str | None:
    for el in root.iter():
        if _local_name(el.tag) == name:
            return (el.text or "").strip()
    return None


def parse_collection_response(payload: bytes) -> CollectionInfo:
    """Parse the SOAP response; raises SynthImportError on anything unusable."""
    try:
        root = ET.fromstring(payload)
    except ET.ParseError as e:
        raise SynthImportError(ErrorCode.UNEXPECTED_RESPONSE, f"malformed XML: {e}") from None

    fault = _find_text(root, "faultstring")
    if fault is not None:
        raise SynthImportError(ErrorCode.WEBSERVICE_ERROR, f"SOAP fault: {fault}")

    result = _find_text(root, "Result")
    if result is None:
        raise SynthImportError(ErrorCode.UNEXPECTED_RESPONSE, "response has no Result element")
    if result != "OK":
        raise SynthImportError(ErrorCode.NEGATIVE_RESPONSE, f"service answered {result!r}")

    collection_type = _find_text(root, "CollectionType") or ""
    if collection_type.lower() != "synth":
        raise SynthImportError(ErrorCode.WRONG_COLLECTION_TYPE,
                               f"collection type is {collection_type!r}")

    json_url = _find_text(root, "JsonUrl")
    collection_root = _find_text(root, "CollectionRoot")
    if not json_url or not collection_root:
        raise SynthImportError(ErrorCode.UNEXPECTED_RESPONSE,
                               "response lacks JsonUrl or CollectionRoot")
    return CollectionInfo(result=result, collection_type=collection_type,
                          json_url=json_url, collection_root=collection_root)
