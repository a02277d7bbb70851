"""
Content Anchor - IPFS pinning for roast metadata.

store(document) → CID. The pinned bytes are exactly serialize_metadata(document),
the same bytes the VerifiableURI hash is computed over.
resolve(cid) → document, fetched back through an HTTP gateway.

A stored document whose mint later fails stays pinned. Those orphans are
only logged.
"""

import json
import logging
from typing import Optional

import aiohttp

from .errors import ExternalServiceError, ValidationError
from .metadata import serialize_metadata

logger = logging.getLogger("roasted.content_anchor")

PIN_FILE_PATH = "/pinning/pinFileToIPFS"


class ContentAnchor:
    """
    Pinata-backed content store.

    Usage:
        anchor = ContentAnchor(jwt=settings.pinata_jwt)
        cid = await anchor.store(document)
        doc = await anchor.resolve(cid)
    """

    def __init__(
        self,
        jwt: str,
        endpoint: str = "https://api.pinata.cloud",
        gateway: str = "https://api.universalprofile.cloud/ipfs",
        timeout: float = 30.0,
    ):
        self.jwt = jwt
        self.endpoint = endpoint.rstrip("/")
        self.gateway = gateway.rstrip("/")
        self.timeout = timeout
        self._stored: list[str] = []

    @property
    def configured(self) -> bool:
        return bool(self.jwt)

    async def store(self, document: dict, name: str = "roast-metadata.json") -> str:
        """Pin the serialized document. Returns the CID or raises ExternalServiceError."""
        if not self.jwt:
            raise ExternalServiceError("content_anchor", "pinning service not configured")

        body = serialize_metadata(document)
        form = aiohttp.FormData()
        form.add_field("file", body, filename=name, content_type="application/json")
        form.add_field("pinataMetadata", json.dumps({"name": name}))

        headers = {"Authorization": f"Bearer {self.jwt}"}
        url = f"{self.endpoint}{PIN_FILE_PATH}"

        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    url, data=form, headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as resp:
                    if resp.status not in (200, 201):
                        text = await resp.text()
                        logger.warning(f"Pin failed {resp.status}: {text[:200]}")
                        raise ExternalServiceError(
                            "content_anchor", f"pinning failed ({resp.status})", resp.status
                        )
                    data = await resp.json()
        except ExternalServiceError:
            raise
        except Exception as e:
            logger.warning(f"Pin request error: {type(e).__name__}: {e}")
            raise ExternalServiceError("content_anchor", f"{type(e).__name__}: {e}")

        cid = data.get("IpfsHash") or data.get("cid")
        if not cid:
            raise ExternalServiceError("content_anchor", "missing CID in pinning response")

        self._stored.append(cid)
        logger.info(f"Anchored metadata: {cid} ({len(body)} bytes)")
        return cid

    async def resolve(self, cid: str) -> dict:
        """Fetch a stored document back through the gateway."""
        cid = (cid or "").strip().removeprefix("ipfs://")
        if not cid:
            raise ValidationError("Content reference is required")

        url = f"{self.gateway}/{cid}"
        try:
            async with aiohttp.ClientSession() as session:
                async with session.get(
                    url, timeout=aiohttp.ClientTimeout(total=self.timeout)
                ) as resp:
                    if resp.status != 200:
                        raise ExternalServiceError(
                            "content_anchor", f"gateway returned {resp.status}", resp.status
                        )
                    raw = await resp.read()
        except ExternalServiceError:
            raise
        except Exception as e:
            raise ExternalServiceError("content_anchor", f"{type(e).__name__}: {e}")

        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ExternalServiceError("content_anchor", f"invalid document at {cid}: {e}")

    def note_orphan(self, cid: str, reason: Optional[str] = None) -> None:
        """A stored document that never got minted. Kept pinned; logged for the operator."""
        logger.warning(f"Orphaned anchor {cid}: {reason or 'mint did not complete'}")

    def get_status(self) -> dict:
        return {
            "configured": self.configured,
            "stored": len(self._stored),
            "last_cid": self._stored[-1] if self._stored else "",
        }
