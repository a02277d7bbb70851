"""
Identity Link - wallet → linked social identity + roast settings.

One record per wallet, keyed by the lowercased wallet address.
Writes are always read-then-merge: fields the caller does not pass are
preserved, so relinking an identity never clobbers the roast price and
vice versa. Records are never deleted.

Storage: a single JSON document on disk (data/identity/links.json),
replaced atomically on every write.
"""

import os
import json
import time
import asyncio
import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .errors import ValidationError, ExternalServiceError
from .wallet import normalize_wallet

logger = logging.getLogger("roasted.identity_link")


@dataclass(frozen=True)
class LinkedIdentityRecord:
    wallet_address: str
    external_id: str
    external_username: str
    external_handle: str
    external_avatar_url: Optional[str] = None
    roastable: bool = True
    roast_price_override: Optional[str] = None   # decimal string in native units
    created_at: float = 0.0

    def to_dict(self) -> dict:
        """camelCase view for API responses."""
        return {
            "walletAddress": self.wallet_address,
            "externalId": self.external_id,
            "externalUsername": self.external_username,
            "externalHandle": self.external_handle,
            "externalAvatarUrl": self.external_avatar_url,
            "roastable": self.roastable,
            "roastPriceOverride": self.roast_price_override,
            "createdAt": self.created_at,
        }


@dataclass(frozen=True)
class IdentityLookup:
    """Result of a lookup. A miss is exists=False, not an error."""
    exists: bool
    record: Optional[LinkedIdentityRecord] = None

    @property
    def is_roastable(self) -> bool:
        return bool(self.record and self.record.roastable)


# Fields a merge-write may touch
_MERGEABLE = (
    "external_id",
    "external_username",
    "external_handle",
    "external_avatar_url",
    "roastable",
    "roast_price_override",
)


class IdentityLink:
    """
    JSON-file backed identity link store.

    Usage:
        link = IdentityLink(Path("data"))
        await link.save_identity("0xAbC...", external_id="42", external_username="bob")
        lookup = await link.get("0xabc...")
    """

    def __init__(self, data_dir: Path, clock=time.time):
        self.data_dir = Path(data_dir)
        self.links_file = self.data_dir / "identity" / "links.json"
        self._records: dict[str, dict] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self._load()

    def _load(self):
        if not self.links_file.exists():
            return
        try:
            data = json.loads(self.links_file.read_text(encoding="utf-8"))
            self._records = data.get("records", {})
            logger.info(f"Loaded {len(self._records)} identity links")
        except Exception as e:
            raise ExternalServiceError("identity_store", f"cannot read {self.links_file}: {e}")

    def _save(self, records: dict[str, dict]):
        self.links_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_fd, tmp_path = tempfile.mkstemp(
            dir=str(self.links_file.parent), suffix=".tmp", prefix="links_"
        )
        try:
            with os.fdopen(tmp_fd, "w", encoding="utf-8") as f:
                json.dump({"records": records}, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, str(self.links_file))
        except Exception as e:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise ExternalServiceError("identity_store", f"write failed: {e}")

    # ============================================================
    # READ
    # ============================================================

    async def get(self, wallet: str) -> IdentityLookup:
        key = normalize_wallet(wallet)
        raw = self._records.get(key)
        if raw is None:
            logger.debug(f"Identity miss: {key[:10]}...")
            return IdentityLookup(exists=False)
        return IdentityLookup(exists=True, record=LinkedIdentityRecord(**raw))

    async def handle_for(self, wallet: str) -> Optional[str]:
        """Linked handle for a wallet, or None when unlinked."""
        lookup = await self.get(wallet)
        return lookup.record.external_handle if lookup.exists else None

    # ============================================================
    # MERGE WRITE
    # ============================================================

    async def merge(self, wallet: str, **fields) -> LinkedIdentityRecord:
        """
        Read-then-merge-write keyed by the normalized wallet.
        Fields passed as None are treated as "not specified" and preserved.
        """
        key = normalize_wallet(wallet)
        unknown = set(fields) - set(_MERGEABLE)
        if unknown:
            raise ValidationError(f"Unknown identity fields: {sorted(unknown)}")
        updates = {k: v for k, v in fields.items() if v is not None}

        async with self._lock:
            current = self._records.get(key)
            if current is None:
                if not updates.get("external_id") or not updates.get("external_username"):
                    raise ValidationError("Missing required fields")
                current = {
                    "wallet_address": key,
                    "external_id": "",
                    "external_username": "",
                    "external_handle": "",
                    "external_avatar_url": None,
                    "roastable": True,
                    "roast_price_override": None,
                    "created_at": self._clock(),
                }
                created = True
            else:
                current = dict(current)
                created = False

            current.update(updates)
            if not current.get("external_handle"):
                current["external_handle"] = current.get("external_username", "")

            records = dict(self._records)
            records[key] = current
            self._save(records)
            self._records = records

        logger.info(
            f"Identity {'linked' if created else 'updated'}: {key[:10]}... "
            f"fields={sorted(updates)}"
        )
        return LinkedIdentityRecord(**current)

    async def save_identity(
        self,
        wallet: str,
        external_id: str,
        external_username: str,
        external_handle: Optional[str] = None,
        external_avatar_url: Optional[str] = None,
        roastable: Optional[bool] = True,
    ) -> LinkedIdentityRecord:
        """Link (or relink) an external social identity to a wallet."""
        if not wallet or not external_id or not external_username:
            raise ValidationError("Missing required fields")
        return await self.merge(
            wallet,
            external_id=external_id,
            external_username=external_username,
            external_handle=external_handle,
            external_avatar_url=external_avatar_url,
            roastable=roastable,
        )

    async def update_settings(
        self,
        wallet: str,
        roastable: Optional[bool] = None,
        roast_price_override: Optional[str] = None,
    ) -> LinkedIdentityRecord:
        """Partial settings update for an already linked wallet."""
        lookup = await self.get(wallet)
        if not lookup.exists:
            raise ValidationError("Wallet has no linked identity")
        return await self.merge(
            wallet, roastable=roastable, roast_price_override=roast_price_override
        )

    def get_status(self) -> dict:
        return {
            "records": len(self._records),
            "roastable": sum(1 for r in self._records.values() if r.get("roastable")),
            "path": str(self.links_file),
        }
