"""
Grid Owner Account - owner view of a roast grid.

A viewer is the owner of the grid they are looking at when both wallet
identifiers match case-insensitively. Owners see their accumulated roast
earnings and their current roast price, both also valued in USD:

    balance_value = quote * userBalances(owner)
    price_value   = quote * roastPrices(owner)

The two contract reads and the quote fetch run concurrently. A failing
source contributes zero instead of failing the snapshot.
"""

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from eth_utils import to_checksum_address

from .chain import ChainCommitter, Receipt, format_native, from_wei
from .errors import ExternalServiceError, ReadError, ValidationError
from .identity_link import IdentityLink
from .notices import NoticeBoard
from .price_quote import PriceQuoteClient
from .wallet import normalize_wallet, same_wallet

logger = logging.getLogger("roasted.grid_owner")


@dataclass(frozen=True)
class GridSnapshot:
    is_owner: bool
    balance: Decimal = Decimal(0)          # native units
    price: Decimal = Decimal(0)            # native units
    quote: Decimal = Decimal(0)            # USD per native unit
    balance_value: Decimal = Decimal(0)    # USD
    price_value: Decimal = Decimal(0)      # USD
    handle: Optional[str] = None
    roastable: bool = True

    def to_dict(self) -> dict:
        return {
            "isOwner": self.is_owner,
            "balance": format_native(self.balance),
            "price": format_native(self.price),
            "quote": float(self.quote),
            "balanceValue": float(self.balance_value),
            "priceValue": float(self.price_value),
            "handle": self.handle,
            "roastable": self.roastable,
        }


class GridOwnerAccount:
    def __init__(
        self,
        committer: ChainCommitter,
        quotes: PriceQuoteClient,
        identity: Optional[IdentityLink] = None,
        notices: Optional[NoticeBoard] = None,
    ):
        self.committer = committer
        self.quotes = quotes
        self.identity = identity
        self.notices = notices or NoticeBoard()

    @staticmethod
    def is_owner(viewer: str, subject: str) -> bool:
        return same_wallet(viewer, subject)

    async def refresh(self, viewer: str, subject: str) -> GridSnapshot:
        """Aggregate owner state. Non-owners get an empty snapshot without any reads."""
        viewer = normalize_wallet(viewer)
        subject = normalize_wallet(subject)
        if not self.is_owner(viewer, subject):
            return GridSnapshot(is_owner=False)

        owner = to_checksum_address(subject)
        balance_wei, price_wei, quote = await asyncio.gather(
            self._read("userBalances", owner),
            self._read("roastPrices", owner),
            self._quote(),
        )
        balance = from_wei(balance_wei)
        price = from_wei(price_wei)

        handle, roastable = None, True
        if self.identity is not None:
            try:
                lookup = await self.identity.get(subject)
                if lookup.exists:
                    handle = lookup.record.external_handle
                    roastable = lookup.record.roastable
            except ExternalServiceError as e:
                logger.warning(f"Identity lookup failed for {subject[:10]}...: {e}")

        snapshot = GridSnapshot(
            is_owner=True,
            balance=balance,
            price=price,
            quote=quote,
            balance_value=quote * balance,
            price_value=quote * price,
            handle=handle,
            roastable=roastable,
        )
        logger.info(
            f"Grid owner {subject[:10]}...: balance={format_native(balance)} "
            f"price={format_native(price)} quote=${quote}"
        )
        return snapshot

    async def _read(self, method: str, owner: str) -> int:
        try:
            return await self.committer.read_only_call(method, [owner])
        except ReadError as e:
            logger.warning(f"{method} unavailable, using 0: {e}")
            self.notices.error("Could not load contract data")
            return 0

    async def _quote(self) -> Decimal:
        try:
            return (await self.quotes.fetch()).price
        except ExternalServiceError as e:
            logger.warning(f"Price quote unavailable, using 0: {e}")
            self.notices.error("Failed to fetch price quote")
            return Decimal(0)

    # ============================================================
    # OWNER ACTIONS
    # ============================================================

    def _require_owner(self, viewer: str, subject: str) -> str:
        viewer = normalize_wallet(viewer)
        subject = normalize_wallet(subject)
        if not self.is_owner(viewer, subject):
            raise ValidationError("Only the grid owner can do this")
        if not same_wallet(self.committer.signer_address, subject):
            raise ValidationError("Connected wallet is not the grid owner")
        return subject

    async def update_roast_price(self, viewer: str, subject: str, price_native) -> GridSnapshot:
        """setRoastPrice(price) → confirm → refresh. The linked record mirrors the new price."""
        owner = self._require_owner(viewer, subject)
        receipt: Receipt = await self.committer.set_roast_price(price_native)
        logger.info(f"Roast price updated by {owner[:10]}...: {price_native} (tx={receipt.tx_hash[:18]}...)")

        if self.identity is not None:
            try:
                if (await self.identity.get(owner)).exists:
                    await self.identity.update_settings(owner, roast_price_override=str(price_native))
            except ExternalServiceError as e:
                logger.warning(f"Could not mirror roast price to identity record: {e}")

        self.notices.success("Roast price updated")
        return await self.refresh(owner, owner)

    async def withdraw(self, viewer: str, subject: str) -> GridSnapshot:
        owner = self._require_owner(viewer, subject)
        receipt = await self.committer.withdraw()
        logger.info(f"Withdrawal by {owner[:10]}... confirmed (tx={receipt.tx_hash[:18]}...)")
        self.notices.success("Withdrawal complete")
        return await self.refresh(owner, owner)

    async def set_roastable(self, viewer: str, subject: str, roastable: bool) -> GridSnapshot:
        """Toggle whether others may roast this wallet. Requires a linked identity."""
        viewer = normalize_wallet(viewer)
        subject = normalize_wallet(subject)
        if not self.is_owner(viewer, subject):
            raise ValidationError("Only the grid owner can do this")
        if self.identity is None:
            raise ValidationError("Identity linking is not available")
        await self.identity.update_settings(subject, roastable=roastable)
        return await self.refresh(subject, subject)
