"""Tests for synth.webservice — locator parsing and SOAP exchange."""

import xml.etree.ElementTree as ET

import pytest

from conftest import CID, JSON_URL, ROOT, soap_response
from synth.model import ErrorCode, SynthImportError
from synth.webservice import (
    build_collection_request,
    parse_collection_id,
    parse_collection_response,
)


def test_parse_bare_collection_id():
    assert parse_collection_id(CID) == CID


def test_parse_collection_id_uppercase_normalised():
    assert parse_collection_id(CID.upper()) == CID


def test_parse_collection_id_from_viewer_url():
    url = f"http://photosynth.net/view.aspx?cid={CID}&m=false"
    assert parse_collection_id(url) == CID


@pytest.mark.parametrize("locator", [
    "",
    "not-a-guid",
    "http://photosynth.net/view.aspx?id=123",
    f"ftp://photosynth.net/view.aspx?cid={CID}",
    "http://photosynth.net/view.aspx?cid=12345",
])
def test_parse_collection_id_rejects(locator):
    with pytest.raises(SynthImportError) as exc:
        parse_collection_id(locator)
    assert exc.value.code is ErrorCode.WRONG_URL


def test_build_collection_request():
    body, headers = build_collection_request(CID, "http://labs.live.com/GetCollectionData")
    root = ET.fromstring(body)
    ids = [el.text for el in root.iter() if el.tag.endswith("collectionId")]
    assert ids == [CID]
    assert headers["SOAPAction"] == '"http://labs.live.com/GetCollectionData"'
    assert headers["Content-Type"].startswith("text/xml")


def test_parse_ok_response():
    info = parse_collection_response(soap_response())
    assert info.result == "OK"
    assert info.collection_type == "Synth"
    assert info.json_url == JSON_URL
    assert info.collection_root == ROOT


@pytest.mark.parametrize("payload, code", [
    (soap_response(result="NotFound"), ErrorCode.NEGATIVE_RESPONSE),
    (soap_response(collection_type="Panorama"), ErrorCode.WRONG_COLLECTION_TYPE),
    (soap_response(json_url=""), ErrorCode.UNEXPECTED_RESPONSE),
    (b"<html>oops", ErrorCode.UNEXPECTED_RESPONSE),
    (b"<Envelope><Body/></Envelope>", ErrorCode.UNEXPECTED_RESPONSE),
    (b"<Envelope><Body><Fault><faultstring>boom</faultstring></Fault></Body></Envelope>",
     ErrorCode.WEBSERVICE_ERROR),
])
def test_parse_response_errors(payload, code):
    with pytest.raises(SynthImportError) as exc:
        parse_collection_response(payload)
    assert exc.value.code is code
