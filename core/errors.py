"""
Error taxonomy for the roast pipeline and feed.

Lookup misses are NOT errors here: an unlinked wallet or an unresolved
profile is represented as an absent value (None / exists=False).
"""


class RoastedError(Exception):
    """Base class for every error raised by roasted."""
    pass


class ValidationError(RoastedError):
    """Malformed wallet identifier or missing required field. Raised before any external call."""
    pass


class ExternalServiceError(RoastedError):
    """An external collaborator (identity store, anchor, AI, quote, indexer) failed."""

    def __init__(self, service: str, message: str, status: int = 0):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status = status


class SubmissionError(RoastedError):
    """Chain write was not accepted (rejected signature, network error, bad args, no funds)."""
    pass


class ConfirmationError(RoastedError):
    """Submitted transaction timed out or reverted."""

    def __init__(self, message: str, tx_hash: str = ""):
        super().__init__(message)
        self.tx_hash = tx_hash


class ReadError(RoastedError):
    """Read-only contract call failed. Callers decide whether to fall back to zero."""
    pass


class ComposerStateError(RoastedError):
    """Operation not allowed in the composer's current state."""
    pass


class WalletNotConnectedError(ComposerStateError):
    """Mint attempted without an established wallet connection."""
    pass
