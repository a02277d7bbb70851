"""
roasted - main entry point

Loads configuration, wires the modules, starts the server.

Usage:
    python main.py              # Start the API
    uvicorn main:app            # Or directly
"""

import os
import logging
from pathlib import Path
from contextlib import asynccontextmanager

import uvicorn
from dotenv import load_dotenv

# ============================================================
# BOOTSTRAP
# ============================================================

load_dotenv()

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


class _SecretMaskingFilter(logging.Filter):
    """Redact 64-char hex strings (private keys) from all log output."""
    import re as _re
    _PATTERN = _re.compile(r'(?<![0-9a-fA-F])([0-9a-fA-F]{64})(?![0-9a-fA-F])')

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if isinstance(record.msg, str):
            record.msg = self._PATTERN.sub('[REDACTED]', record.msg)
        if record.args:
            try:
                formatted = record.getMessage()
            except (TypeError, ValueError):
                return True
            if self._PATTERN.search(formatted):
                record.msg = self._PATTERN.sub('[REDACTED]', formatted)
                record.args = None
        return True


_mask_filter = _SecretMaskingFilter()
for _h in logging.root.handlers:
    _h.addFilter(_mask_filter)

logger = logging.getLogger("roasted.main")


# ============================================================
# MODULE IMPORTS
# ============================================================

from core.settings import Settings
from core.chain import ChainCommitter
from core.content_anchor import ContentAnchor
from core.feed import FeedResolver, IndexerClient
from core.grid_owner import GridOwnerAccount
from core.identity_link import IdentityLink
from core.link_token import LinkSignal, LinkTokenIssuer
from core.notices import NoticeBoard
from core.price_quote import PriceQuoteClient
from core.roast_ai import RoastGenerator
from api.server import create_app


# ============================================================
# WIRING
# ============================================================

settings = Settings.from_env()
Path(settings.data_dir).mkdir(parents=True, exist_ok=True)

notices = NoticeBoard()
identity = IdentityLink(Path(settings.data_dir))
committer = ChainCommitter(
    contract_address=settings.contract_address,
    chain=settings.chain,
    confirmation_timeout=settings.confirmation_timeout,
)
anchor = ContentAnchor(
    jwt=settings.pinata_jwt,
    endpoint=settings.pinata_endpoint,
    gateway=settings.ipfs_gateway,
)
generator = RoastGenerator(
    api_key=settings.xai_api_key,
    base_url=settings.xai_base_url,
    model=settings.roast_model,
)
quotes = PriceQuoteClient(settings.price_quote_url)
feed = FeedResolver(IndexerClient(settings.indexer_url), settings.collection_address)
grid_owner = GridOwnerAccount(committer, quotes, identity=identity, notices=notices)
link_issuer = LinkTokenIssuer(settings.link_secret, ttl_seconds=settings.link_token_ttl)
link_signal = LinkSignal()


@asynccontextmanager
async def lifespan(app):
    """Startup: bind the chain. Shutdown: nothing to flush (identity writes are immediate)."""
    logger.info("=" * 50)
    logger.info(f"roasted starting on {settings.chain} (chain id {settings.chain_id})")

    if not committer.initialize(settings.private_key, settings.rpc_url):
        logger.warning("Chain committer unavailable - mint and owner actions disabled")
    if not anchor.configured:
        logger.warning("PINATA_JWT not set - minting will fail at the anchor step")
    if not generator.configured:
        logger.warning("XAI_API_KEY not set - AI roasts disabled")

    logger.info(f"Contract: {settings.contract_address}")
    logger.info(f"Indexer: {settings.indexer_url}")
    logger.info(f"Identity store: {identity.links_file}")
    logger.info("=" * 50)

    yield

    logger.info("roasted shutting down.")


def create_roasted_app():
    """Create the fully wired FastAPI app."""
    app = create_app(
        identity=identity,
        committer=committer,
        generator=generator,
        quotes=quotes,
        feed=feed,
        grid_owner=grid_owner,
        link_issuer=link_issuer,
        link_signal=link_signal,
        notices=notices,
        page_size=settings.page_size,
        cors_origins=settings.cors_origins,
        status_sources={"anchor": anchor},
    )
    app.router.lifespan_context = lifespan
    return app


# ============================================================
# ENTRY POINT
# ============================================================

app = create_roasted_app()

if __name__ == "__main__":
    reload = os.getenv("DEV", "").lower() in ("1", "true", "yes")

    logger.info(f"Starting server on {settings.host}:{settings.port} (reload={reload})")

    uvicorn.run(
        "main:app",
        host=settings.host,
        port=settings.port,
        reload=reload,
        log_level=LOG_LEVEL.lower(),
    )
