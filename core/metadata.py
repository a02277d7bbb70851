"""
Roast metadata assembly and on-chain encoding.

Everything in this module is pure: the same draft + addresses always
produce byte-identical documents, hashes and mint payloads.

Layout of the mint `data` argument:
  abi.encode(address roastee, bytes verifiableUri)

VerifiableURI (LSP2) layout:
  0x | 0000 | 6f357c6a | 0020 | keccak256(json) | utf8(url)
     prefix   method id  hash length  32 bytes    variable
"""

import json
from typing import Optional

from eth_abi import encode
from eth_utils import keccak, to_checksum_address

from .constants import ROAST_PROTOCOL
from .errors import ValidationError
from .wallet import normalize_wallet


def _image_entry(width: int, height: int) -> dict:
    return {
        "width": width,
        "height": height,
        "url": ROAST_PROTOCOL.ROAST_IMAGE_URL,
        "verification": {
            "method": "keccak256(utf8)",
            "data": ROAST_PROTOCOL.ROAST_IMAGE_HASH,
        },
    }


def _attr(key: str, value: str) -> dict:
    return {"key": key, "value": value, "type": ROAST_PROTOCOL.ATTR_TYPE_STRING}


def build_roast_metadata(
    text: str,
    origin: str,
    author_wallet: str,
    subject_wallet: str,
    price_quoted: str,
    subject_handle: Optional[str] = None,
) -> dict:
    """
    Build the LSP4Metadata document for a roast.

    Attribute order is fixed. "Roaster" and "Roastee Address" must stay
    typed "string": the feed extracts them by exact key and type.
    """
    if not text or not text.strip():
        raise ValidationError("Roast text is required")
    author = normalize_wallet(author_wallet)
    subject = normalize_wallet(subject_wallet)

    attributes = [
        _attr(ROAST_PROTOCOL.ATTR_ROASTER, author),
        _attr(ROAST_PROTOCOL.ATTR_ROASTEE, subject),
    ]
    if subject_handle:
        attributes.append(_attr(ROAST_PROTOCOL.ATTR_ROASTEE_HANDLE, subject_handle))
    attributes.extend([
        _attr(ROAST_PROTOCOL.ATTR_ROAST, text),
        _attr(ROAST_PROTOCOL.ATTR_ROAST_TYPE, origin),
        _attr(ROAST_PROTOCOL.ATTR_PRICE, str(price_quoted)),
    ])

    return {
        "LSP4Metadata": {
            "name": ROAST_PROTOCOL.METADATA_NAME,
            "description": text,
            "links": [{"title": "Website", "url": ROAST_PROTOCOL.WEBSITE_URL}],
            "attributes": attributes,
            "images": [[_image_entry(1024, 1024)]],
            "icon": [_image_entry(256, 256)],
            "assets": [],
        }
    }


def serialize_metadata(document: dict) -> bytes:
    """Compact JSON, the exact bytes that get pinned and hashed."""
    return json.dumps(document, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def content_uri(content_reference: str) -> str:
    ref = content_reference.strip()
    if ref.startswith("ipfs://"):
        return ref
    return f"ipfs://{ref}"


def encode_verifiable_uri(document: dict, url: str) -> bytes:
    """LSP2 VerifiableURI for `document` stored at `url`."""
    digest = keccak(serialize_metadata(document))
    header = bytes.fromhex(
        ROAST_PROTOCOL.VERIFIABLE_URI_PREFIX
        + ROAST_PROTOCOL.KECCAK256_UTF8_METHOD
        + f"{len(digest):04x}"
    )
    return header + digest + url.encode("utf-8")


def decode_verifiable_uri(value: bytes) -> tuple[str, bytes]:
    """Inverse of encode_verifiable_uri → (url, hash). Used to verify anchors."""
    if len(value) < 8:
        raise ValidationError("VerifiableURI too short")
    if value[:2].hex() != ROAST_PROTOCOL.VERIFIABLE_URI_PREFIX:
        raise ValidationError("Not a VerifiableURI")
    hash_len = int.from_bytes(value[6:8], "big")
    digest = value[8:8 + hash_len]
    url = value[8 + hash_len:].decode("utf-8")
    return url, digest


def encode_mint_payload(subject_wallet: str, document: dict, content_reference: str) -> bytes:
    """
    The opaque `data` argument of mint(): roastee address + VerifiableURI
    pointing at the anchored metadata.
    """
    subject = to_checksum_address(normalize_wallet(subject_wallet))
    verifiable_uri = encode_verifiable_uri(document, content_uri(content_reference))
    return encode(["address", "bytes"], [subject, verifiable_uri])


def find_attribute(attributes: list[dict], key: str, attr_type: str = "string") -> Optional[str]:
    """
    Value of the first attribute with this key and type.
    Indexer rows use `attributeType`, metadata documents use `type`.
    """
    for attr in attributes or []:
        kind = attr.get("attributeType", attr.get("type"))
        if attr.get("key") == key and kind == attr_type:
            return attr.get("value")
    return None
