"""
Roast Composer - the roast-commit state machine.

    idle → choosing_type → composing_custom | composing_ai → minting → success
                                                               │
                                                               └→ idle (any failure)

composing_ai has a sub-state: suggesting (no AI text yet, or the last
suggestion failed) → generated (text available for edit/confirm).

mint() runs strictly in order, each step only after the previous resolved:
  1. build the LSP4 metadata document from the draft (price frozen at start())
  2. ContentAnchor.store(document) → CID           (failure: no chain call)
  3. encode abi(address subject, bytes verifiableUri) (pure)
  4. ChainCommitter.submit("mint", [subject, True, payload], value=price)
  5. ChainCommitter.await_confirmation(handle)      → success + RoastArtifact
Any failure returns to idle with a notice. The draft text is kept so the
user can retry, and every retry stores the document again.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from eth_utils import to_checksum_address

from .chain import ChainCommitter, format_native, from_wei
from .constants import ROAST_PROTOCOL
from .content_anchor import ContentAnchor
from .errors import (
    ComposerStateError,
    ExternalServiceError,
    ReadError,
    ValidationError,
    WalletNotConnectedError,
)
from .identity_link import IdentityLink
from .metadata import build_roast_metadata, encode_mint_payload
from .notices import NoticeBoard
from .roast_ai import RoastGenerator
from .wallet import normalize_wallet, same_wallet

logger = logging.getLogger("roasted.composer")


class ComposerState(Enum):
    IDLE = "idle"
    CHOOSING_TYPE = "choosing_type"
    COMPOSING_CUSTOM = "composing_custom"
    COMPOSING_AI = "composing_ai"
    MINTING = "minting"
    SUCCESS = "success"


class AiPhase(Enum):
    SUGGESTING = "suggesting"
    GENERATED = "generated"


class RoastOrigin(Enum):
    CUSTOM = "custom"
    AI = "ai"


_COMPOSING = (ComposerState.COMPOSING_CUSTOM, ComposerState.COMPOSING_AI)


@dataclass
class RoastDraft:
    author_wallet: str
    subject_wallet: str
    price_quoted: str                  # native units, frozen when the draft is created
    text: str = ""
    origin: RoastOrigin = RoastOrigin.AI
    ai_context: str = ""
    subject_handle: Optional[str] = None


@dataclass(frozen=True)
class RoastArtifact:
    token_id: str
    content_reference: str
    owner_wallet: str
    subject_wallet: str
    tx_hash: str

    def to_dict(self) -> dict:
        return {
            "tokenId": self.token_id,
            "contentReference": self.content_reference,
            "ownerWallet": self.owner_wallet,
            "subjectWallet": self.subject_wallet,
            "txHash": self.tx_hash,
        }


class RoastComposer:
    """
    One composer per user session.

    Usage:
        composer = RoastComposer(anchor, committer, generator, identity)
        await composer.begin(author, subject)
        composer.choose("custom")
        composer.set_text("nice hat")
        artifact = await composer.mint()
    """

    def __init__(
        self,
        anchor: ContentAnchor,
        committer: ChainCommitter,
        generator: Optional[RoastGenerator] = None,
        identity: Optional[IdentityLink] = None,
        notices: Optional[NoticeBoard] = None,
    ):
        self.anchor = anchor
        self.committer = committer
        self.generator = generator
        self.identity = identity
        self.notices = notices or NoticeBoard()

        self.state = ComposerState.IDLE
        self.ai_phase = AiPhase.SUGGESTING
        self.draft: Optional[RoastDraft] = None
        self.artifact: Optional[RoastArtifact] = None
        self.last_error: str = ""
        self._attempts = 0

    # ============================================================
    # COMPOSITION
    # ============================================================

    async def begin(self, author_wallet: str, subject_wallet: str) -> RoastDraft:
        """
        Quote the subject's current roast price and linked handle, then start().
        Both reads are best effort: price falls back to zero, handle to unknown.
        """
        author = normalize_wallet(author_wallet)
        subject = normalize_wallet(subject_wallet)

        price = "0"
        try:
            price_wei = await self.committer.read_only_call(
                "roastPrices", [to_checksum_address(subject)]
            )
            price = format_native(from_wei(price_wei))
        except ReadError as e:
            logger.warning(f"Roast price read failed for {subject[:10]}..., quoting 0: {e}")
            self.notices.error("Could not read the roast price")

        handle = None
        if self.identity is not None:
            try:
                handle = await self.identity.handle_for(subject)
            except ExternalServiceError as e:
                logger.warning(f"Handle lookup failed for {subject[:10]}...: {e}")

        return self.start(author, subject, price, subject_handle=handle)

    def start(
        self,
        author_wallet: str,
        subject_wallet: str,
        price_quoted: str,
        subject_handle: Optional[str] = None,
    ) -> RoastDraft:
        """idle → choosing_type. The quoted price is frozen into the draft here."""
        self._require(ComposerState.IDLE)
        author = normalize_wallet(author_wallet)
        subject = normalize_wallet(subject_wallet)

        self.draft = RoastDraft(
            author_wallet=author,
            subject_wallet=subject,
            price_quoted=str(price_quoted),
            subject_handle=subject_handle,
        )
        self.artifact = None
        self.last_error = ""
        self.ai_phase = AiPhase.SUGGESTING
        self.state = ComposerState.CHOOSING_TYPE
        logger.info(
            f"Roast started: {author[:10]}... → {subject[:10]}... @ {self.draft.price_quoted} "
            f"(handle={subject_handle or 'unknown'})"
        )
        return self.draft

    def choose(self, origin) -> None:
        """choosing_type → composing_custom | composing_ai."""
        self._require(ComposerState.CHOOSING_TYPE)
        try:
            origin = RoastOrigin(origin.value if isinstance(origin, RoastOrigin) else origin)
        except ValueError:
            raise ValidationError(f"Unknown roast type: {origin!r}")

        self.draft.origin = origin
        if origin is RoastOrigin.CUSTOM:
            self.state = ComposerState.COMPOSING_CUSTOM
        else:
            self.state = ComposerState.COMPOSING_AI
            self.ai_phase = AiPhase.GENERATED if self.draft.text else AiPhase.SUGGESTING

    def back(self) -> None:
        """composing_* → choosing_type. The draft text is kept."""
        self._require(*_COMPOSING)
        self.state = ComposerState.CHOOSING_TYPE

    def abandon(self) -> None:
        """Discard the draft. Not allowed while a mint is in flight."""
        if self.state is ComposerState.MINTING:
            raise ComposerStateError("Cannot abandon while minting")
        self.draft = None
        self.artifact = None
        self.ai_phase = AiPhase.SUGGESTING
        self.state = ComposerState.IDLE

    def set_text(self, text: str) -> None:
        self._require(*_COMPOSING)
        self.draft.text = text
        if self.state is ComposerState.COMPOSING_AI and text.strip():
            self.ai_phase = AiPhase.GENERATED

    def set_context(self, context: str) -> None:
        self._require(ComposerState.COMPOSING_AI)
        self.draft.ai_context = context

    async def suggest(self, context: Optional[str] = None) -> Optional[str]:
        """
        composing_ai: suggesting → generated.
        A failed call leaves the phase unchanged and posts a notice; no retry.
        """
        self._require(ComposerState.COMPOSING_AI)
        if context is not None:
            self.draft.ai_context = context
        if not self.draft.ai_context.strip():
            raise ValidationError("Context is required")
        if self.generator is None:
            self.notices.error("AI roasts are unavailable")
            return None

        try:
            text = await self.generator.generate(self.draft.ai_context, self.draft.subject_handle)
        except ExternalServiceError as e:
            logger.warning(f"Suggestion failed: {e}")
            self.notices.error("Failed to generate roast")
            return None

        # Abandoned or navigated away while waiting
        if self.state is not ComposerState.COMPOSING_AI or self.draft is None:
            return None

        self.draft.text = text
        self.ai_phase = AiPhase.GENERATED
        return text

    # ============================================================
    # MINTING
    # ============================================================

    async def mint(self) -> RoastArtifact:
        """
        composing_* → minting → success. Returns the confirmed artifact.

        Precondition failures (empty text, no wallet) raise without changing
        state. Pipeline failures return to idle, post a notice and re-raise.
        An idle composer that still holds a draft from a failed attempt may
        mint it again directly.
        """
        if self.state is ComposerState.MINTING:
            raise ComposerStateError("Mint already in progress")
        retrying = self.state is ComposerState.IDLE and self.draft is not None
        if not retrying:
            self._require(*_COMPOSING)

        draft = self.draft
        if not draft.text or not draft.text.strip():
            raise ValidationError("Roast text is required")
        if not self.committer.is_connected:
            self.notices.error("Connect a wallet to mint")
            raise WalletNotConnectedError("Wallet not connected")
        if not same_wallet(draft.author_wallet, self.committer.signer_address):
            self.notices.error("Roaster must be the connected wallet")
            raise WalletNotConnectedError(
                f"Roaster {draft.author_wallet[:10]}... is not the connected wallet"
            )

        self.state = ComposerState.MINTING
        self.last_error = ""
        self._attempts += 1
        snapshot = replace(draft, text=draft.text.strip())
        logger.info(
            f"Minting roast #{self._attempts}: {snapshot.subject_wallet[:10]}... "
            f"({snapshot.origin.value}, {snapshot.price_quoted})"
        )

        cid = ""
        try:
            document = build_roast_metadata(
                text=snapshot.text,
                origin=snapshot.origin.value,
                author_wallet=snapshot.author_wallet,
                subject_wallet=snapshot.subject_wallet,
                price_quoted=snapshot.price_quoted,
                subject_handle=snapshot.subject_handle,
            )
            cid = await self.anchor.store(document)
            payload = encode_mint_payload(snapshot.subject_wallet, document, cid)
            handle = await self.committer.submit(
                "mint",
                [to_checksum_address(snapshot.subject_wallet), ROAST_PROTOCOL.MINT_FORCE, payload],
                value=snapshot.price_quoted,
            )
            receipt = await self.committer.await_confirmation(handle)
        except (Exception, asyncio.CancelledError) as e:
            self._fail(e, cid)
            raise

        self.artifact = RoastArtifact(
            token_id=receipt.token_id,
            content_reference=cid,
            owner_wallet=snapshot.subject_wallet,
            subject_wallet=snapshot.subject_wallet,
            tx_hash=receipt.tx_hash,
        )
        self.state = ComposerState.SUCCESS
        self.notices.success("Roast minted!")
        logger.info(f"Roast minted: {cid} | tx={receipt.tx_hash[:18]}... | token={receipt.token_id or '?'}")
        return self.artifact

    def _fail(self, error: Exception, cid: str) -> None:
        self.last_error = str(error)
        self.artifact = None
        self.state = ComposerState.IDLE
        if cid:
            self.anchor.note_orphan(cid, f"{type(error).__name__}: {error}")
        logger.warning(f"Mint failed: {type(error).__name__}: {error}")
        self.notices.error(f"Failed to mint roast: {error}")

    def again(self) -> None:
        """success → idle. Clears text and AI context; origin resets to AI suggesting."""
        self._require(ComposerState.SUCCESS)
        if self.draft is not None:
            self.draft.text = ""
            self.draft.ai_context = ""
            self.draft.origin = RoastOrigin.AI
        self.ai_phase = AiPhase.SUGGESTING
        self.state = ComposerState.IDLE

    # ============================================================
    # HELPERS
    # ============================================================

    def _require(self, *states: ComposerState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise ComposerStateError(f"Not allowed in state {self.state.value} (expected {allowed})")

    def snapshot(self) -> dict:
        return {
            "state": self.state.value,
            "aiPhase": self.ai_phase.value if self.state is ComposerState.COMPOSING_AI else None,
            "draft": None if self.draft is None else {
                "authorWallet": self.draft.author_wallet,
                "subjectWallet": self.draft.subject_wallet,
                "priceQuoted": self.draft.price_quoted,
                "text": self.draft.text,
                "origin": self.draft.origin.value,
                "aiContext": self.draft.ai_context,
                "subjectHandle": self.draft.subject_handle,
            },
            "artifact": self.artifact.to_dict() if self.artifact else None,
            "lastError": self.last_error,
            "notices": [n.to_dict() for n in self.notices.active()],
        }
