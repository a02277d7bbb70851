"""
Chain Committer - On-Chain Transaction Layer

Every write to the roast contract (mint, setRoastPrice, withdraw, tipRoast)
goes through the same two steps:

    handle  = await committer.submit(method, args, value)   # signed + broadcast
    receipt = await committer.await_confirmation(handle)    # mined, status == 1

commit() chains the two for callers that don't need to act in between.
A PendingTx only means the node accepted the transaction. A reverted
receipt is a failure, never a degraded success.

Design:
- Sync Web3 calls wrapped in run_in_executor() (web3.py async is fragile)
- Embedded minimal ABI in core/constants.py, no compiled JSON needed
- Gas estimation + 20% buffer, nonce from chain
- One fixed contract address, one signer loaded from the environment
"""

import time
import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Sequence

from eth_utils import keccak

from .constants import (
    CHAIN_DEFAULTS,
    DEFAULT_CHAIN,
    LSP8_TRANSFER_SIGNATURE,
    READ_METHODS,
    ROAST_PROTOCOL,
    ROASTED_ABI,
    WRITE_METHODS,
)
from .errors import ConfirmationError, ReadError, SubmissionError

logger = logging.getLogger("roasted.chain")

DEFAULT_GAS_LIMIT = 300_000
GAS_BUFFER = 1.2

TRANSFER_TOPIC = "0x" + bytes(keccak(text=LSP8_TRANSFER_SIGNATURE)).hex()


# ============================================================
# UNIT CONVERSION
# ============================================================

def to_wei(amount_native) -> int:
    """Native-unit decimal (str/Decimal/int) → wei. Rejects negatives and garbage."""
    try:
        value = Decimal(str(amount_native).strip() or "0")
    except InvalidOperation:
        raise SubmissionError(f"invalid amount: {amount_native!r}")
    if value < 0:
        raise SubmissionError(f"negative amount: {amount_native!r}")
    return int(value * (10 ** 18))


def from_wei(amount_wei) -> Decimal:
    """wei → native-unit Decimal. Empty RPC results ("0x", None) read as zero."""
    if amount_wei in (None, "", "0x", b""):
        return Decimal(0)
    return Decimal(int(amount_wei)) / Decimal(10 ** 18)


def format_native(amount: Decimal) -> str:
    """Decimal → plain string without exponent or trailing zeros ("0.05", "0")."""
    text = format(amount.normalize(), "f")
    return text if text else "0"


# ============================================================
# RESULT TYPES
# ============================================================

@dataclass(frozen=True)
class PendingTx:
    """Handle for a broadcast, not yet confirmed, transaction."""
    tx_hash: str
    method: str
    value_wei: int = 0
    submitted_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class Receipt:
    """Confirmed (status == 1) transaction receipt."""
    tx_hash: str
    method: str
    block_number: int = 0
    gas_used: int = 0
    gas_price_wei: int = 0       # effectiveGasPrice from receipt
    token_id: str = ""           # LSP8 tokenId minted, when the receipt carries a Transfer log

    @property
    def gas_cost_native(self) -> Decimal:
        return from_wei(self.gas_used * self.gas_price_wei)


def extract_token_id(receipt: dict, contract_address: str) -> str:
    """tokenId (bytes32 hex) of the first LSP8 Transfer emitted by the contract, or ""."""
    for log in receipt.get("logs", []) or []:
        address = str(log.get("address", "")).lower()
        if address != contract_address.lower():
            continue
        topics = log.get("topics", []) or []
        if len(topics) < 4:
            continue
        if _hex(topics[0]) != TRANSFER_TOPIC:
            continue
        return _hex(topics[3])
    return ""


def _hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if hasattr(value, "hex") and not isinstance(value, str):
        text = value.hex()
        return text if text.startswith("0x") else "0x" + text
    text = str(value).lower()
    return text if text.startswith("0x") else "0x" + text


# ============================================================
# CHAIN COMMITTER
# ============================================================

class ChainCommitter:
    """
    Submits, confirms and reads calls against the roast contract.

    Usage:
        committer = ChainCommitter()
        if committer.initialize(private_key, rpc_url):
            handle = await committer.submit("mint", [to, True, data], value="0.05")
            receipt = await committer.await_confirmation(handle)
    """

    def __init__(
        self,
        contract_address: str = ROAST_PROTOCOL.CONTRACT_ADDRESS,
        chain: str = DEFAULT_CHAIN,
        confirmation_timeout: float = 120.0,
    ):
        self.contract_address = contract_address
        self.chain = chain
        self.confirmation_timeout = confirmation_timeout

        self._w3 = None
        self._contract = None
        self._private_key: str = ""
        self._address: str = ""
        self._chain_id_int: int = CHAIN_DEFAULTS.get(chain, CHAIN_DEFAULTS[DEFAULT_CHAIN])["chain_id"]

        self._last_error: str = ""
        self._tx_count: int = 0

    def initialize(self, private_key: str, rpc_url: Optional[str] = None) -> bool:
        """
        Connect to the RPC and bind the contract. Without a private key the
        committer still serves read_only_call() but every write is refused.
        """
        from web3 import Web3
        from eth_account import Account

        chain_cfg = CHAIN_DEFAULTS.get(self.chain, CHAIN_DEFAULTS[DEFAULT_CHAIN])
        rpc_url = rpc_url or chain_cfg["rpc"]

        try:
            w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": 30}))
            contract = w3.eth.contract(
                address=Web3.to_checksum_address(self.contract_address), abi=ROASTED_ABI
            )
        except Exception as e:
            logger.warning(f"Cannot bind roast contract on {self.chain} ({rpc_url}): {e}")
            return False

        address = ""
        if private_key:
            try:
                address = Account.from_key(private_key).address
            except Exception as e:
                logger.error(f"Invalid signing key: {type(e).__name__}")
                return False
        else:
            logger.warning("No signing key configured - chain committer is read-only")

        self.bind(w3, contract, address, private_key)
        logger.info(
            f"Chain committer ready: {self.chain} | contract={self.contract_address[:10]}... | "
            f"signer={(address[:10] + '...') if address else 'none'}"
        )
        return True

    def bind(self, w3, contract, address: str = "", private_key: str = "") -> None:
        """Attach an already constructed Web3 instance + contract."""
        self._w3 = w3
        self._contract = contract
        self._address = address
        self._private_key = private_key

    @property
    def is_connected(self) -> bool:
        """A wallet connection exists: contract bound and a signer available."""
        return self._contract is not None and bool(self._address and self._private_key)

    @property
    def signer_address(self) -> str:
        return self._address.lower()

    # ============================================================
    # WRITE PATH
    # ============================================================

    async def submit(self, method: str, args: Sequence[Any], value: Any = 0) -> PendingTx:
        """
        Build, sign and broadcast `method(*args)` with `value` (native units) attached.
        Raises SubmissionError; nothing is broadcast in that case.
        """
        if method not in WRITE_METHODS:
            raise SubmissionError(f"unknown write method: {method}")
        if not self.is_connected:
            raise SubmissionError("wallet not connected")

        value_wei = to_wei(value)
        w3 = self._w3

        try:
            tx_fn = getattr(self._contract.functions, method)(*args)
        except Exception as e:
            raise SubmissionError(f"invalid arguments for {method}: {e}")

        def _execute() -> str:
            nonce = w3.eth.get_transaction_count(self._address)
            tx = tx_fn.build_transaction({
                "from": self._address,
                "nonce": nonce,
                "value": value_wei,
                "gasPrice": w3.eth.gas_price,
                "chainId": self._chain_id_int,
            })

            # Gas estimation + 20% buffer
            try:
                gas_estimate = w3.eth.estimate_gas(tx)
                tx["gas"] = int(gas_estimate * GAS_BUFFER)
            except Exception as gas_err:
                logger.warning(f"Gas estimation failed for {method}, using default {DEFAULT_GAS_LIMIT}: {gas_err}")
                tx["gas"] = DEFAULT_GAS_LIMIT

            signed = w3.eth.account.sign_transaction(tx, self._private_key)
            tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
            return _hex(tx_hash)

        try:
            tx_hash = await asyncio.get_running_loop().run_in_executor(None, _execute)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            self._last_error = error
            logger.warning(f"TX SUBMIT FAILED [{method}]: {error}")
            raise SubmissionError(error) from e

        logger.info(f"TX SUBMITTED [{method}]: {tx_hash[:18]}... | value={value_wei} wei")
        return PendingTx(tx_hash=tx_hash, method=method, value_wei=value_wei)

    async def await_confirmation(self, handle: PendingTx) -> Receipt:
        """
        Wait for the receipt. Timeout and revert both raise ConfirmationError.
        """
        if self._w3 is None:
            raise ConfirmationError("chain committer not initialized", handle.tx_hash)

        w3 = self._w3

        def _wait():
            return w3.eth.wait_for_transaction_receipt(
                handle.tx_hash, timeout=self.confirmation_timeout
            )

        try:
            receipt = await asyncio.get_running_loop().run_in_executor(None, _wait)
        except Exception as e:
            error = f"{type(e).__name__}: {e}"
            self._last_error = error
            logger.warning(f"TX UNCONFIRMED [{handle.method}]: {handle.tx_hash[:18]}... | {error}")
            raise ConfirmationError(error, handle.tx_hash) from e

        if receipt.get("status") != 1:
            error = f"TX reverted: {handle.tx_hash}"
            self._last_error = error
            logger.warning(f"TX FAILED [{handle.method}]: {error}")
            raise ConfirmationError(error, handle.tx_hash)

        self._tx_count += 1
        result = Receipt(
            tx_hash=handle.tx_hash,
            method=handle.method,
            block_number=receipt.get("blockNumber", 0) or 0,
            gas_used=receipt.get("gasUsed", 0) or 0,
            gas_price_wei=receipt.get("effectiveGasPrice", 0) or 0,
            token_id=extract_token_id(receipt, self.contract_address),
        )
        logger.info(
            f"TX SUCCESS [{handle.method}]: {handle.tx_hash[:18]}... | "
            f"block={result.block_number} | gas={result.gas_used} | "
            f"cost={result.gas_cost_native:.8f} native"
        )
        return result

    async def commit(self, method: str, args: Sequence[Any], value: Any = 0) -> Receipt:
        """submit → await_confirmation. Shared by every write path."""
        handle = await self.submit(method, args, value)
        return await self.await_confirmation(handle)

    # ============================================================
    # READ PATH
    # ============================================================

    async def read_only_call(self, method: str, args: Sequence[Any] = ()) -> Any:
        """View call, no signature. Raises ReadError on any RPC failure."""
        if method not in READ_METHODS:
            raise ReadError(f"unknown read method: {method}")
        if self._contract is None:
            raise ReadError("chain committer not initialized")

        try:
            call = getattr(self._contract.functions, method)(*args).call
            return await asyncio.get_running_loop().run_in_executor(None, call)
        except Exception as e:
            logger.warning(f"{method} read failed: {e}")
            raise ReadError(f"{method}: {e}") from e

    # ============================================================
    # CONTRACT WRITES
    # ============================================================

    async def set_roast_price(self, price_native) -> Receipt:
        return await self.commit("setRoastPrice", [to_wei(price_native)])

    async def withdraw(self) -> Receipt:
        return await self.commit("withdraw", [])

    async def tip_roast(self, token_id: str, amount_native=ROAST_PROTOCOL.TIP_AMOUNT_NATIVE) -> Receipt:
        return await self.commit("tipRoast", [token_id], value=amount_native)

    # ============================================================
    # STATUS
    # ============================================================

    def get_explorer_url(self, tx_hash: str) -> str:
        explorer = CHAIN_DEFAULTS.get(self.chain, CHAIN_DEFAULTS[DEFAULT_CHAIN])["explorer"]
        return f"{explorer}/tx/{tx_hash}"

    def get_status(self) -> dict:
        """Status for dashboard / debugging."""
        return {
            "chain": self.chain,
            "contract": self.contract_address,
            "connected": self.is_connected,
            "signer": self._address[:10] + "..." if self._address else "",
            "tx_count": self._tx_count,
            "last_error": self._last_error,
        }
