"""
Identity link continuation across the external OAuth redirect.

The wallet that started a link is carried through the redirect as a
signed, expiring, single-use token instead of ambient client storage:

  1. POST /link/start       → issue(wallet) → token
  2. (OAuth round-trip)
  3. POST /link/complete    → claim(token) → wallet → IdentityLink merge-write
                              → LinkSignal.notify(wallet)
  4. GET  /link/wait        → the originating context wakes up

Token = base64(json({"payload": {...}, "sig": hmac_sha256(payload)})).
"""

import time
import hmac
import json
import uuid
import base64
import asyncio
import hashlib
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable, Optional

from .errors import ValidationError
from .wallet import normalize_wallet

logger = logging.getLogger("roasted.link_token")


@dataclass(frozen=True)
class LinkToken:
    token: str
    wallet: str
    expires_at: int


class LinkTokenIssuer:
    """
    HMAC-signed continuation tokens. Each token redeems at most once.

    Usage:
        issuer = LinkTokenIssuer(secret)
        t = issuer.issue("0xabc...")
        wallet = issuer.redeem(t.token)
    """

    def __init__(self, secret: str, ttl_seconds: int = 600, clock: Callable[[], float] = time.time):
        if not secret:
            # Tokens from an ephemeral secret stop verifying after a restart.
            secret = uuid.uuid4().hex + uuid.uuid4().hex
            logger.warning("No link secret configured - using an ephemeral one")
        self._secret = secret.encode()
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._redeemed: dict[str, int] = {}  # nonce → expiry
        self._claims: dict[str, list] = {}  # nonce → [lock, holders]

    def _sign(self, payload: dict) -> str:
        return hmac.new(self._secret, json.dumps(payload, sort_keys=True).encode(), hashlib.sha256).hexdigest()

    def issue(self, wallet: str) -> LinkToken:
        wallet = normalize_wallet(wallet)
        now = int(self._clock())
        payload = {
            "wallet": wallet,
            "iat": now,
            "exp": now + self.ttl_seconds,
            "nonce": uuid.uuid4().hex,
        }
        token_data = json.dumps({"payload": payload, "sig": self._sign(payload)})
        token = base64.urlsafe_b64encode(token_data.encode()).decode()
        logger.info(f"Link token issued for {wallet[:10]}... (expires in {self.ttl_seconds}s)")
        return LinkToken(token=token, wallet=wallet, expires_at=payload["exp"])

    def _decode(self, token: str) -> dict:
        try:
            token_data = json.loads(base64.urlsafe_b64decode(token.encode()))
            payload = token_data["payload"]
            sig = token_data["sig"]
        except Exception:
            raise ValidationError("Malformed link token")

        if not isinstance(payload, dict) or not hmac.compare_digest(str(sig), self._sign(payload)):
            logger.warning("Link token signature mismatch")
            raise ValidationError("Invalid link token")

        if int(payload.get("exp", 0)) < self._clock():
            raise ValidationError("Link token expired")
        return payload

    def peek(self, token: str) -> str:
        """Verify without consuming. Returns the wallet."""
        payload = self._decode(token)
        if payload["nonce"] in self._redeemed:
            raise ValidationError("Link token already used")
        return payload["wallet"]

    def redeem(self, token: str) -> str:
        """Verify and consume. Returns the wallet the token was issued for."""
        payload = self._decode(token)
        self._prune()
        nonce = payload["nonce"]
        if nonce in self._redeemed:
            logger.warning(f"Link token replay for {payload['wallet'][:10]}...")
            raise ValidationError("Link token already used")
        self._redeemed[nonce] = int(payload["exp"])
        return payload["wallet"]

    @asynccontextmanager
    async def claim(self, token: str):
        """
        Hold a token while its link is written. Yields the wallet.

        The token is consumed only if the block exits cleanly. Concurrent
        claims of the same token run one at a time, so a second claim sees
        the token as used once the first has written.
        """
        nonce = self._decode(token)["nonce"]
        entry = self._claims.setdefault(nonce, [asyncio.Lock(), 0])
        entry[1] += 1
        try:
            async with entry[0]:
                wallet = self.peek(token)
                yield wallet
                self.redeem(token)
        finally:
            entry[1] -= 1
            if entry[1] == 0:
                del self._claims[nonce]

    def _prune(self):
        now = self._clock()
        self._redeemed = {n: exp for n, exp in self._redeemed.items() if exp >= now}


class LinkSignal:
    """
    Single-subscriber completion signal keyed by wallet.

    A notify() that arrives before anyone waits is kept, so the waiter
    still sees it.
    """

    def __init__(self):
        self._waiters: dict[str, asyncio.Future] = {}
        self._completed: dict[str, dict] = {}

    async def wait(self, wallet: str, timeout: float = 60.0) -> Optional[dict]:
        """Block until notify(wallet) or timeout. Returns the completion payload or None."""
        wallet = normalize_wallet(wallet)
        if wallet in self._completed:
            return self._completed.pop(wallet)

        previous = self._waiters.get(wallet)
        if previous is not None and not previous.done():
            previous.set_result(None)  # superseded by the newer waiter

        future = asyncio.get_running_loop().create_future()
        self._waiters[wallet] = future
        try:
            return await asyncio.wait_for(future, timeout=timeout)
        except asyncio.TimeoutError:
            return None
        finally:
            if self._waiters.get(wallet) is future:
                del self._waiters[wallet]

    def notify(self, wallet: str, payload: Optional[dict] = None) -> bool:
        """Resolve the waiter for wallet. Returns True when someone was waiting."""
        wallet = normalize_wallet(wallet)
        payload = payload or {}
        future = self._waiters.get(wallet)
        if future is not None and not future.done():
            future.set_result(payload)
            return True
        self._completed[wallet] = payload
        return False

    def pending(self) -> int:
        return sum(1 for f in self._waiters.values() if not f.done())
