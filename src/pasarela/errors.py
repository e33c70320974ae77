"""
Pasarela error types.

Specific exceptions for each failure mode of the payment flow, so callers
can tell a cancelled signature from an unreachable facilitator. Every error
may carry accessibility metadata that is relayed to the user untouched.
"""

from __future__ import annotations

from typing import Optional

from .accessibility import AccessibilityMetadata


class PasarelaError(Exception):
    """Base error for all Pasarela operations."""

    def __init__(self, message: str, accessibility: Optional[AccessibilityMetadata] = None):
        self.message = message
        self.accessibility = accessibility
        super().__init__(message)


# Wallet errors
class WalletError(PasarelaError):
    """Base error for wallet failures."""
    pass


class NoProviderError(WalletError):
    """No wallet backend is registered."""

    def __init__(self, message: str = "No BSV wallet detected. Please install a BSV wallet provider.", **kwargs):
        super().__init__(message, **kwargs)


class NotConnectedError(WalletError):
    """Operation requires a connected wallet."""

    def __init__(self, message: str = "Wallet not connected", **kwargs):
        super().__init__(message, **kwargs)


class UserRejectedError(WalletError):
    """User cancelled the signature in the wallet."""

    def __init__(self, message: str = "User rejected transaction", **kwargs):
        super().__init__(message, **kwargs)


class InsufficientFundsError(WalletError):
    """Wallet balance can't cover outputs plus fee."""

    def __init__(self, required: int, available: int, **kwargs):
        self.required = required
        self.available = available
        super().__init__(f"Insufficient funds: need {required} sats, have {available} sats", **kwargs)


# Facilitator errors
class FacilitatorError(PasarelaError):
    """Base error for facilitator failures."""
    pass


class SettlementError(FacilitatorError):
    """Facilitator could not process the submitted payment."""
    pass


class ConfirmationTimeoutError(SettlementError):
    """Transfer was not confirmed within the allotted time."""

    def __init__(self, txid: str, timeout: float, **kwargs):
        self.txid = txid
        self.timeout = timeout
        super().__init__(f"Transaction {txid[:8]}... not confirmed after {timeout:g}s", **kwargs)


class TransportError(FacilitatorError):
    """Network or backend unreachable."""
    pass


class RequestTimeoutError(TransportError):
    """A bounded call did not complete in time."""

    def __init__(self, operation: str, timeout: float, **kwargs):
        self.operation = operation
        self.timeout = timeout
        super().__init__(f"{operation} timed out after {timeout:g}s", **kwargs)


class UnexpectedStatusError(FacilitatorError):
    """Resource answered with something other than 402 Payment Required."""

    def __init__(self, status: int, message: Optional[str] = None, **kwargs):
        self.status = status
        super().__init__(message or f"Unexpected status {status} from resource server", **kwargs)


class NotAuthorizedError(FacilitatorError):
    """Resource access attempted without a valid payment proof."""
    pass


# Session errors
class SessionError(PasarelaError):
    """Base error for payment session misuse."""
    pass


class SessionInProgressError(SessionError):
    """A payment session is already in flight for this wallet."""

    def __init__(self, message: str = "A payment session is already in progress for this wallet", **kwargs):
        super().__init__(message, **kwargs)


class SessionCancelledError(SessionError):
    """The task running a payment session was cancelled."""

    def __init__(self, message: str = "Payment session was cancelled", **kwargs):
        super().__init__(message, **kwargs)
