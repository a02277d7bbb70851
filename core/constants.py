"""
ROASTED PROTOCOL CONSTANTS

Fixed values shared by the composer, the chain layer and the feed.
These describe the deployed contract and the LSP4 metadata format;
runtime-tunable values (URLs, keys, timeouts) live in core/settings.py.
"""

from dataclasses import dataclass
from typing import Final


# ============================================================
# CHAIN DEFAULTS (LUKSO mainnet)
# ============================================================

CHAIN_DEFAULTS = {
    "lukso": {
        "rpc": "https://42.rpc.thirdweb.com",
        "chain_id": 42,
        "explorer": "https://explorer.execution.mainnet.lukso.network",
        "native_symbol": "LYX",
    },
    "lukso_testnet": {
        "rpc": "https://rpc.testnet.lukso.network",
        "chain_id": 4201,
        "explorer": "https://explorer.execution.testnet.lukso.network",
        "native_symbol": "LYXt",
    },
}

DEFAULT_CHAIN = "lukso"


@dataclass(frozen=True)
class RoastProtocol:
    """Frozen dataclass = immutable at runtime."""

    # --- CONTRACT ---
    # The roast collection is an LSP8 contract; its address doubles as the
    # indexer's baseAsset id for the feed scope.
    CONTRACT_ADDRESS: Final[str] = "0x2a010a3dbd0760099da8a87e090899e68ba6285d"
    MINT_FORCE: Final[bool] = True                   # LSP8 force flag: allow minting to any address

    # --- LSP4 METADATA ---
    VERIFIABLE_URI_PREFIX: Final[str] = "0000"       # LSP2 VerifiableURI identifier
    KECCAK256_UTF8_METHOD: Final[str] = "6f357c6a"   # bytes4(keccak256("keccak256(utf8)"))
    METADATA_NAME: Final[str] = "Roast NFT"
    WEBSITE_URL: Final[str] = "https://roasted.com"
    ROAST_IMAGE_URL: Final[str] = "ipfs://bafybeifvcf5f4m4cfkvfht6hvbfltojen3nnd7s2n5y2p4hhfyh2jmd24m"
    ROAST_IMAGE_HASH: Final[str] = "0x179e9c390b0eff19d6494fccca44093a7ee800857a21ce1afe22ba754b300269"

    # --- ATTRIBUTE KEYS (the feed join depends on the exact spelling) ---
    ATTR_ROASTER: Final[str] = "Roaster"
    ATTR_ROASTEE: Final[str] = "Roastee Address"
    ATTR_ROASTEE_HANDLE: Final[str] = "Roastee X"
    ATTR_ROAST: Final[str] = "Roast"
    ATTR_ROAST_TYPE: Final[str] = "Roast Type"
    ATTR_PRICE: Final[str] = "Price"
    ATTR_TYPE_STRING: Final[str] = "string"

    # --- ECONOMICS ---
    TIP_AMOUNT_NATIVE: Final[str] = "0.01"           # Fixed tip per roast, in LYX

    # --- AI ---
    MAX_ROAST_CHARS: Final[int] = 180

    # --- UX ---
    NOTICE_TTL_SECONDS: Final[float] = 5.0           # Transient notices auto-dismiss after 5s
    DEFAULT_PAGE_SIZE: Final[int] = 10


ROAST_PROTOCOL = RoastProtocol()


# ============================================================
# MINIMAL ABI: only functions we call at runtime
# ============================================================

ROASTED_ABI = [
    # mint(address to, bool force, bytes data) payable
    {
        "inputs": [
            {"name": "to", "type": "address"},
            {"name": "force", "type": "bool"},
            {"name": "data", "type": "bytes"},
        ],
        "name": "mint",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
    # setRoastPrice(uint256 price): caller sets the price to roast them
    {
        "inputs": [{"name": "price", "type": "uint256"}],
        "name": "setRoastPrice",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    # withdraw(): pull accumulated roast earnings
    {
        "inputs": [],
        "name": "withdraw",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    # tipRoast(bytes32 tokenId) payable
    {
        "inputs": [{"name": "tokenId", "type": "bytes32"}],
        "name": "tipRoast",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
    # roastPrices(address) → uint256
    {
        "inputs": [{"name": "", "type": "address"}],
        "name": "roastPrices",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    # userBalances(address) → uint256
    {
        "inputs": [{"name": "", "type": "address"}],
        "name": "userBalances",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]

WRITE_METHODS: Final[frozenset] = frozenset({"mint", "setRoastPrice", "withdraw", "tipRoast"})
READ_METHODS: Final[frozenset] = frozenset({"roastPrices", "userBalances"})

# LSP8 Transfer(address operator, address indexed from, address indexed to,
#               bytes32 indexed tokenId, bool force, bytes data)
LSP8_TRANSFER_SIGNATURE: Final[str] = "Transfer(address,address,address,bytes32,bool,bytes)"
