"""
roasted API Server - FastAPI Backend

Endpoints:
- GET  /user                 Linked identity for a wallet
- POST /save-identity        Link a social identity to a wallet (merge-write)
- POST /generate-roast       AI roast suggestion
- GET  /price-quote          Native token USD quote
- GET  /feed                 Paginated roast feed with resolved handles
- GET  /owner                Grid owner snapshot (balance, price, USD values)
- POST /owner/price          Owner: set roast price
- POST /owner/withdraw       Owner: withdraw earnings
- POST /owner/roastable      Owner: toggle "can be roasted"
- POST /roasts/{id}/tip      Tip a minted roast
- POST /link/start           Issue a continuation token for the OAuth redirect
- POST /link/complete        Write the link for the token's wallet, wake the waiter
- GET  /link/wait            Long-poll until the link completes
- GET  /notices             Active transient notices
- POST /notices/{id}/dismiss Dismiss a notice early
- GET  /health               Heartbeat

Errors are JSON: {"success": false, "error": "..."}.
ValidationError → 400, ExternalServiceError → 500 (indexer: 502),
chain write failures → 502.
"""

import time
import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from core.chain import ChainCommitter
from core.constants import ROAST_PROTOCOL
from core.errors import (
    ConfirmationError,
    ExternalServiceError,
    SubmissionError,
    ValidationError,
)
from core.feed import FeedResolver
from core.grid_owner import GridOwnerAccount
from core.identity_link import IdentityLink
from core.link_token import LinkSignal, LinkTokenIssuer
from core.notices import NoticeBoard
from core.price_quote import PriceQuoteClient
from core.roast_ai import RoastGenerator
from core.wallet import normalize_wallet

logger = logging.getLogger("roasted.api")

MAX_LINK_WAIT_SECONDS = 120.0


# ============================================================
# MODELS
# ============================================================

class SaveIdentityRequest(BaseModel):
    walletAddress: str = ""
    externalId: str = ""
    externalUsername: str = ""
    externalHandle: Optional[str] = None
    externalAvatarUrl: Optional[str] = None
    roastable: bool = True


class GenerateRoastRequest(BaseModel):
    context: str = Field("", max_length=2000)
    subjectHandle: Optional[str] = None


class LinkStartRequest(BaseModel):
    walletAddress: str = ""


class LinkCompleteRequest(BaseModel):
    token: str
    externalId: str = ""
    externalUsername: str = ""
    externalHandle: Optional[str] = None
    externalAvatarUrl: Optional[str] = None


class OwnerRequest(BaseModel):
    viewer: str
    subject: str


class OwnerPriceRequest(OwnerRequest):
    price: str = Field(..., description="New roast price in native units, e.g. '0.05'")


class OwnerRoastableRequest(OwnerRequest):
    roastable: bool


def _error(status: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"success": False, "error": message})


# ============================================================
# SERVER FACTORY
# ============================================================

def create_app(
    identity: IdentityLink,
    committer: ChainCommitter,
    generator: RoastGenerator,
    quotes: PriceQuoteClient,
    feed: FeedResolver,
    grid_owner: GridOwnerAccount,
    link_issuer: LinkTokenIssuer,
    link_signal: Optional[LinkSignal] = None,
    notices: Optional[NoticeBoard] = None,
    page_size: int = ROAST_PROTOCOL.DEFAULT_PAGE_SIZE,
    cors_origins: str = "*",
    status_sources: Optional[dict] = None,
) -> FastAPI:
    """
    Create FastAPI app wired to the roasted modules.

    notices: board shared with the owner account (defaults to grid_owner.notices)
    status_sources: {name: obj with get_status()} extra components reported by /health
    """
    link_signal = link_signal or LinkSignal()
    notices = notices or grid_owner.notices
    status_sources = status_sources or {}
    started_at = time.time()

    app = FastAPI(
        title="roasted",
        description="Mint roasts as NFTs and browse the roast feed.",
        version="0.1.0",
    )

    # CORS: allow all in dev, restrict in production via CORS_ORIGINS env var
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ============================================================
    # ERROR MAPPING
    # ============================================================

    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError):
        return _error(400, str(exc))

    @app.exception_handler(ExternalServiceError)
    async def _external_error(request: Request, exc: ExternalServiceError):
        logger.warning(f"{request.url.path}: {exc}")
        return _error(502 if exc.service == "indexer" else 500, str(exc))

    @app.exception_handler(SubmissionError)
    @app.exception_handler(ConfirmationError)
    async def _chain_error(request: Request, exc: Exception):
        logger.warning(f"{request.url.path}: chain write failed: {exc}")
        return _error(502, str(exc))

    # ============================================================
    # IDENTITY
    # ============================================================

    @app.get("/user")
    async def get_user(address: str = ""):
        """Linked identity for a wallet. Unlinked wallets are exists=false, not an error."""
        lookup = await identity.get(normalize_wallet(address))
        return {
            "success": True,
            "exists": lookup.exists,
            "data": lookup.record.to_dict() if lookup.exists else None,
            "isRoastable": lookup.is_roastable,
        }

    @app.post("/save-identity")
    async def save_identity(req: SaveIdentityRequest):
        if not req.walletAddress or not req.externalId or not req.externalUsername:
            return _error(400, "Missing required fields")
        await identity.save_identity(
            req.walletAddress,
            external_id=req.externalId,
            external_username=req.externalUsername,
            external_handle=req.externalHandle,
            external_avatar_url=req.externalAvatarUrl,
            roastable=req.roastable,
        )
        return {"success": True, "message": "Identity connected successfully"}

    # ============================================================
    # ROAST SUPPORT
    # ============================================================

    @app.post("/generate-roast")
    async def generate_roast(req: GenerateRoastRequest):
        if not req.context.strip():
            return JSONResponse(status_code=400, content={"error": "Context is required"})
        try:
            roast = await generator.generate(req.context, req.subjectHandle)
        except ExternalServiceError:
            return JSONResponse(status_code=500, content={"error": "Failed to generate roast"})
        return {"roast": roast}

    @app.get("/price-quote")
    async def price_quote():
        try:
            quote = await quotes.fetch()
        except ExternalServiceError:
            return JSONResponse(status_code=500, content={"error": "Failed to fetch price"})
        return quote.to_dict()

    @app.post("/roasts/{token_id}/tip")
    async def tip_roast(token_id: str):
        """Fixed tip from the configured signer."""
        if not token_id.startswith("0x") or len(token_id) != 66:
            return _error(400, "Invalid token id")
        receipt = await committer.tip_roast(token_id)
        return {
            "success": True,
            "txHash": receipt.tx_hash,
            "amount": ROAST_PROTOCOL.TIP_AMOUNT_NATIVE,
            "explorer": committer.get_explorer_url(receipt.tx_hash),
        }

    # ============================================================
    # FEED
    # ============================================================

    @app.get("/feed")
    async def get_feed(limit: Optional[int] = None, offset: int = 0):
        page = await feed.fetch_page(page_size if limit is None else limit, offset)
        return page.to_dict()

    # ============================================================
    # GRID OWNER
    # ============================================================

    @app.get("/owner")
    async def get_owner(viewer: str = "", subject: str = ""):
        snapshot = await grid_owner.refresh(viewer, subject)
        return snapshot.to_dict()

    @app.post("/owner/price")
    async def owner_price(req: OwnerPriceRequest):
        snapshot = await grid_owner.update_roast_price(req.viewer, req.subject, req.price)
        return {"success": True, **snapshot.to_dict()}

    @app.post("/owner/withdraw")
    async def owner_withdraw(req: OwnerRequest):
        snapshot = await grid_owner.withdraw(req.viewer, req.subject)
        return {"success": True, **snapshot.to_dict()}

    @app.post("/owner/roastable")
    async def owner_roastable(req: OwnerRoastableRequest):
        snapshot = await grid_owner.set_roastable(req.viewer, req.subject, req.roastable)
        return {"success": True, **snapshot.to_dict()}

    # ============================================================
    # LINK CONTINUATION
    # ============================================================

    @app.post("/link/start")
    async def link_start(req: LinkStartRequest):
        token = link_issuer.issue(req.walletAddress)
        return {"token": token.token, "expiresAt": token.expires_at}

    @app.post("/link/complete")
    async def link_complete(req: LinkCompleteRequest):
        if not req.externalId or not req.externalUsername:
            return _error(400, "Missing required fields")
        # Consumed only once the link is stored, so a failed write can be retried
        async with link_issuer.claim(req.token) as wallet:
            record = await identity.save_identity(
                wallet,
                external_id=req.externalId,
                external_username=req.externalUsername,
                external_handle=req.externalHandle,
                external_avatar_url=req.externalAvatarUrl,
            )
        link_signal.notify(wallet, record.to_dict())
        logger.info(f"Identity link completed for {wallet[:10]}...")
        return {"success": True, "walletAddress": wallet}

    @app.get("/link/wait")
    async def link_wait(address: str = "", timeout: float = 30.0):
        wallet = normalize_wallet(address)
        timeout = max(0.0, min(timeout, MAX_LINK_WAIT_SECONDS))
        data = await link_signal.wait(wallet, timeout=timeout)
        return {"linked": data is not None, "data": data}

    # ============================================================
    # NOTICES
    # ============================================================

    @app.get("/notices")
    async def get_notices():
        return {"notices": [n.to_dict() for n in notices.active()]}

    @app.post("/notices/{notice_id}/dismiss")
    async def dismiss_notice(notice_id: str):
        return {"success": True, "dismissed": notices.dismiss(notice_id)}

    # ============================================================
    # HEALTH
    # ============================================================

    @app.get("/health")
    async def health():
        """Heartbeat endpoint."""
        return {
            "alive": True,
            "uptime_seconds": int(time.time() - started_at),
            "chain": committer.get_status(),
            "identity": identity.get_status(),
            "ai": generator.get_status(),
            **{name: source.get_status() for name, source in status_sources.items()},
        }

    return app
