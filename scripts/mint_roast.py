"""
Mint a roast from the command line.

Runs the full composer pipeline with the signer from ROASTED_PRIVATE_KEY:
quote price → compose (custom text or AI suggestion) → pin metadata → mint → confirm.

Usage:
    python scripts/mint_roast.py 0xSubject... --text "nice hat"
    python scripts/mint_roast.py 0xSubject... --ai "always wears the same hat"
    python scripts/mint_roast.py 0xSubject... --text "nice hat" --dry-run
    python scripts/mint_roast.py --feed 5             # Print the latest 5 roasts

--dry-run builds and prints the metadata document and mint payload
without pinning or sending anything.
"""

import sys
import json
import asyncio
import argparse
import logging
from pathlib import Path

from dotenv import load_dotenv

# Add project root to path
ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

load_dotenv(ROOT / ".env")

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("roasted.cli")

from core.chain import ChainCommitter
from core.composer import RoastComposer, RoastOrigin
from core.content_anchor import ContentAnchor
from core.errors import RoastedError
from core.feed import FeedResolver, IndexerClient
from core.identity_link import IdentityLink
from core.metadata import build_roast_metadata, encode_mint_payload
from core.roast_ai import RoastGenerator
from core.settings import Settings
from core.wallet import short_handle


async def mint(args, settings: Settings) -> int:
    committer = ChainCommitter(
        contract_address=settings.contract_address,
        chain=settings.chain,
        confirmation_timeout=settings.confirmation_timeout,
    )
    if not committer.initialize(settings.private_key, settings.rpc_url):
        logger.error("Cannot connect to chain")
        return 1

    composer = RoastComposer(
        anchor=ContentAnchor(settings.pinata_jwt, settings.pinata_endpoint, settings.ipfs_gateway),
        committer=committer,
        generator=RoastGenerator(settings.xai_api_key, settings.xai_base_url, settings.roast_model),
        identity=IdentityLink(Path(settings.data_dir)),
    )

    # The roaster is always the wallet that signs and pays
    draft = await composer.begin(committer.signer_address, args.subject)
    logger.info(f"Quoted price: {draft.price_quoted} {settings.native_symbol}")

    if args.ai:
        composer.choose(RoastOrigin.AI)
        text = await composer.suggest(args.ai)
        if text is None:
            logger.error("AI suggestion failed")
            return 1
        logger.info(f"Suggestion: {text}")
    else:
        composer.choose(RoastOrigin.CUSTOM)
        composer.set_text(args.text)

    if args.dry_run:
        document = build_roast_metadata(
            text=composer.draft.text,
            origin=composer.draft.origin.value,
            author_wallet=composer.draft.author_wallet,
            subject_wallet=composer.draft.subject_wallet,
            price_quoted=composer.draft.price_quoted,
            subject_handle=composer.draft.subject_handle,
        )
        print(json.dumps(document, indent=2, ensure_ascii=False))
        payload = encode_mint_payload(composer.draft.subject_wallet, document, "<cid>")
        print(f"mint payload ({len(payload)} bytes): 0x{payload.hex()}")
        return 0

    artifact = await composer.mint()
    logger.info("=" * 50)
    logger.info("ROAST MINTED")
    logger.info(f"Metadata: ipfs://{artifact.content_reference}")
    logger.info(f"Token:    {artifact.token_id or '(not in receipt)'}")
    logger.info(f"TX:       {committer.get_explorer_url(artifact.tx_hash)}")
    logger.info("=" * 50)
    return 0


async def show_feed(count: int, settings: Settings) -> int:
    resolver = FeedResolver(IndexerClient(settings.indexer_url), settings.collection_address)
    page = await resolver.fetch_page(count, 0)
    for item in page.items:
        roaster = item.resolved_roaster_handle or short_handle(item.roaster_address or "")
        roastee = item.resolved_roastee_handle or short_handle(item.roastee_address or "")
        print(f"{roaster} → {roastee}: {item.description}")
    if not page.identities_resolved:
        logger.warning("Profiles could not be resolved; showing addresses")
    return 0


# ============================================================
# CLI
# ============================================================

def main():
    parser = argparse.ArgumentParser(description="Mint a roast NFT")
    parser.add_argument("subject", nargs="?", help="Wallet to roast")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--text", help="Custom roast text")
    group.add_argument("--ai", metavar="CONTEXT", help="Generate the roast with AI from this context")
    group.add_argument("--feed", type=int, metavar="N", help="Print the latest N roasts and exit")
    parser.add_argument("--dry-run", action="store_true",
                        help="Print metadata and payload without pinning or sending")
    args = parser.parse_args()

    settings = Settings.from_env()

    try:
        if args.feed:
            code = asyncio.run(show_feed(args.feed, settings))
        else:
            if not args.subject or not (args.text or args.ai):
                parser.error("subject and one of --text / --ai are required")
            code = asyncio.run(mint(args, settings))
    except RoastedError as e:
        logger.error(f"{type(e).__name__}: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
