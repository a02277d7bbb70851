"""
Runtime configuration, read from the environment.

main.py calls load_dotenv() first, so a local .env works the same as
real environment variables. Secrets (private key, API keys) are never logged.
"""

import os
from dataclasses import dataclass

from .constants import CHAIN_DEFAULTS, DEFAULT_CHAIN, ROAST_PROTOCOL


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # --- chain ---
    chain: str = DEFAULT_CHAIN
    rpc_url: str = CHAIN_DEFAULTS[DEFAULT_CHAIN]["rpc"]
    contract_address: str = ROAST_PROTOCOL.CONTRACT_ADDRESS
    private_key: str = ""                       # signer for writes; empty = read-only mode
    confirmation_timeout: float = 120.0

    # --- indexer / feed ---
    indexer_url: str = "https://envio.lukso-mainnet.universal.tech/v1/graphql"
    collection_address: str = ROAST_PROTOCOL.CONTRACT_ADDRESS
    page_size: int = ROAST_PROTOCOL.DEFAULT_PAGE_SIZE

    # --- content anchor (IPFS pinning) ---
    pinata_jwt: str = ""
    pinata_endpoint: str = "https://api.pinata.cloud"
    ipfs_gateway: str = "https://api.universalprofile.cloud/ipfs"

    # --- AI ---
    xai_api_key: str = ""
    xai_base_url: str = "https://api.x.ai/v1"
    roast_model: str = "grok-2-latest"

    # --- price quote ---
    price_quote_url: str = (
        "https://api.diadata.org/v1/assetQuotation/Lukso/0x0000000000000000000000000000000000000000"
    )

    # --- identity link ---
    data_dir: str = "data"
    link_secret: str = ""
    link_token_ttl: int = 600

    # --- http ---
    cors_origins: str = "*"
    host: str = "0.0.0.0"
    port: int = 8000

    @property
    def chain_id(self) -> int:
        return CHAIN_DEFAULTS.get(self.chain, CHAIN_DEFAULTS[DEFAULT_CHAIN])["chain_id"]

    @property
    def native_symbol(self) -> str:
        return CHAIN_DEFAULTS.get(self.chain, CHAIN_DEFAULTS[DEFAULT_CHAIN])["native_symbol"]

    @classmethod
    def from_env(cls) -> "Settings":
        chain = os.getenv("ROASTED_CHAIN", DEFAULT_CHAIN)
        chain_cfg = CHAIN_DEFAULTS.get(chain, CHAIN_DEFAULTS[DEFAULT_CHAIN])
        contract = os.getenv("ROASTED_CONTRACT_ADDRESS", ROAST_PROTOCOL.CONTRACT_ADDRESS)
        return cls(
            chain=chain,
            rpc_url=os.getenv("ROASTED_RPC_URL", chain_cfg["rpc"]),
            contract_address=contract,
            private_key=os.getenv("ROASTED_PRIVATE_KEY", ""),
            confirmation_timeout=_env_float("ROASTED_CONFIRMATION_TIMEOUT", 120.0),
            indexer_url=os.getenv("ROASTED_INDEXER_URL", cls.indexer_url),
            collection_address=os.getenv("ROASTED_COLLECTION_ADDRESS", contract).lower(),
            page_size=_env_int("ROASTED_PAGE_SIZE", ROAST_PROTOCOL.DEFAULT_PAGE_SIZE),
            pinata_jwt=os.getenv("PINATA_JWT", ""),
            pinata_endpoint=os.getenv("PINATA_ENDPOINT", cls.pinata_endpoint),
            ipfs_gateway=os.getenv("IPFS_GATEWAY_URL", cls.ipfs_gateway),
            # Comma-separated keys allowed; first one is used
            xai_api_key=os.getenv("XAI_API_KEY", "").split(",")[0].strip(),
            xai_base_url=os.getenv("XAI_BASE_URL", cls.xai_base_url),
            roast_model=os.getenv("ROASTED_AI_MODEL", cls.roast_model),
            price_quote_url=os.getenv("ROASTED_PRICE_QUOTE_URL", cls.price_quote_url),
            data_dir=os.getenv("ROASTED_DATA_DIR", cls.data_dir),
            link_secret=os.getenv("ROASTED_LINK_SECRET", ""),
            link_token_ttl=_env_int("ROASTED_LINK_TOKEN_TTL", 600),
            cors_origins=os.getenv("CORS_ORIGINS", "*"),
            host=os.getenv("ROASTED_HOST", "0.0.0.0"),
            port=_env_int("ROASTED_PORT", 8000),
        )
