import pytest
from eth_abi import decode
from eth_utils import keccak

from core.errors import ValidationError
from core.metadata import (
    build_roast_metadata,
    content_uri,
    decode_verifiable_uri,
    encode_mint_payload,
    encode_verifiable_uri,
    find_attribute,
    serialize_metadata,
)

AUTHOR = "0x" + "B" * 40
SUBJECT = "0x" + "A" * 40


def _doc(**overrides):
    params = dict(
        text="nice hat",
        origin="custom",
        author_wallet=AUTHOR,
        subject_wallet=SUBJECT,
        price_quoted="0.05",
    )
    params.update(overrides)
    return build_roast_metadata(**params)


def test_attribute_order_and_types():
    attrs = _doc(subject_handle="alice")["LSP4Metadata"]["attributes"]
    assert [a["key"] for a in attrs] == [
        "Roaster", "Roastee Address", "Roastee X", "Roast", "Roast Type", "Price",
    ]
    assert all(a["type"] == "string" for a in attrs)
    assert attrs[0]["value"] == AUTHOR.lower()
    assert attrs[1]["value"] == SUBJECT.lower()
    assert attrs[-1]["value"] == "0.05"


def test_handle_attribute_only_when_known():
    keys = [a["key"] for a in _doc()["LSP4Metadata"]["attributes"]]
    assert "Roastee X" not in keys


def test_description_is_the_roast_text():
    meta = _doc()["LSP4Metadata"]
    assert meta["description"] == "nice hat"
    assert meta["name"] == "Roast NFT"
    assert meta["assets"] == []


def test_empty_text_rejected():
    with pytest.raises(ValidationError):
        _doc(text="   ")


def test_find_attribute_reads_both_shapes():
    attrs = _doc()["LSP4Metadata"]["attributes"]
    assert find_attribute(attrs, "Roaster") == AUTHOR.lower()
    indexed = [{"key": "Roaster", "value": "0x1", "attributeType": "string"}]
    assert find_attribute(indexed, "Roaster") == "0x1"
    assert find_attribute(indexed, "Roaster", attr_type="number") is None


def test_verifiable_uri_layout():
    document = _doc()
    value = encode_verifiable_uri(document, "ipfs://cid123")
    assert value[:2] == b"\x00\x00"
    assert value[2:6].hex() == "6f357c6a"
    assert value[6:8] == b"\x00\x20"
    assert value[8:40] == keccak(serialize_metadata(document))
    assert value[40:] == b"ipfs://cid123"

    url, digest = decode_verifiable_uri(value)
    assert url == "ipfs://cid123"
    assert digest == keccak(serialize_metadata(document))


def test_content_uri_does_not_double_prefix():
    assert content_uri("cid123") == "ipfs://cid123"
    assert content_uri("ipfs://cid123") == "ipfs://cid123"


def test_mint_payload_is_deterministic_and_decodable():
    first = encode_mint_payload(SUBJECT, _doc(), "cid123")
    second = encode_mint_payload(SUBJECT.lower(), _doc(), "cid123")
    assert first == second

    subject, verifiable_uri = decode(["address", "bytes"], first)
    assert subject.lower() == SUBJECT.lower()
    assert decode_verifiable_uri(verifiable_uri)[0] == "ipfs://cid123"


def test_payload_changes_with_document():
    assert encode_mint_payload(SUBJECT, _doc(), "cid123") != encode_mint_payload(
        SUBJECT, _doc(text="nicer hat"), "cid123"
    )
