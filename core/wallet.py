"""
Wallet identifier helpers.

Every wallet used as a lookup or storage key goes through normalize_wallet().
"""

import re

from .errors import ValidationError

WALLET_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_valid_wallet(address: str) -> bool:
    return bool(address) and isinstance(address, str) and bool(WALLET_PATTERN.match(address))


def normalize_wallet(address: str) -> str:
    """Validate and lowercase a wallet identifier. Raises ValidationError when malformed."""
    if not address:
        raise ValidationError("Wallet address is required")
    if not is_valid_wallet(address):
        raise ValidationError("Invalid wallet address format")
    return address.lower()


def same_wallet(a: str, b: str) -> bool:
    """Case-insensitive wallet equality. Empty values never match."""
    if not a or not b:
        return False
    return a.lower() == b.lower()


def format_profile_handle(name: str, address: str) -> str:
    """Readable handle: display name plus the first 4 hex chars after 0x."""
    return f"{name}#{address[2:6]}"


def short_handle(address: str) -> str:
    """Fallback handle used when no profile or linked identity exists."""
    if not address:
        return "@Unknown"
    return "@" + address.replace("0x", "")[:6]
