"""
Payment session — drives one X402 payment attempt to a terminal outcome.

    idle → requesting → payment-required → signing → broadcasting
         → confirming → confirmed
                     ↘ failed (from any in-flight state)

Every collaborator error raised while the session is in flight becomes the
``failed`` state with its message kept verbatim; nothing escapes ``start()``
except misuse (wallet not connected, another session in flight). A session
that has started signing always runs to a terminal state: there is no
mid-flight cancel, and a debit is never rolled back. Cancelling the task
that runs ``start()`` lands the session in ``failed`` before the
cancellation propagates.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar

from .accessibility import AccessibilityMetadata, recovery_metadata, status_phrase
from .catalog import Service, resource_path
from .errors import (
    ConfirmationTimeoutError,
    NotConnectedError,
    PasarelaError,
    RequestTimeoutError,
    SessionCancelledError,
    SessionInProgressError,
    UnexpectedStatusError,
)
from .facilitator import FacilitatorClient
from .history import PaymentHistory
from .models import (
    Challenge,
    Network,
    PaymentConfirmation,
    PaymentRequest,
    TransferDraft,
    TransferOutput,
    TransferRecord,
    TransferStatus,
)
from .wallet import WalletSigner

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    PAYMENT_REQUIRED = "payment-required"
    SIGNING = "signing"
    BROADCASTING = "broadcasting"
    CONFIRMING = "confirming"
    CONFIRMED = "confirmed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.CONFIRMED, SessionState.FAILED)


RESTING_STATES = frozenset({SessionState.IDLE, SessionState.CONFIRMED, SessionState.FAILED})

DEFAULT_FEE = 50  # satoshis


@dataclass(frozen=True)
class SessionEvent:
    """What the announcer is told on each transition."""

    state: SessionState
    phrase: str
    accessibility: Optional[AccessibilityMetadata] = None


Announcer = Callable[[SessionEvent], None]


class RecordingAnnouncer:
    """Announcer that keeps every event, for tests and headless callers."""

    def __init__(self):
        self.events: list[SessionEvent] = []

    def __call__(self, event: SessionEvent) -> None:
        self.events.append(event)

    @property
    def states(self) -> list[SessionState]:
        return [e.state for e in self.events]


@dataclass
class SessionConfig:
    """Pacing and time bounds for a payment session."""

    fee: int = DEFAULT_FEE
    payment_required_delay: float = 0.0  # cosmetic pause before signing
    poll_interval: float = 0.5
    confirmation_timeout: float = 30.0
    call_timeout: Optional[float] = 30.0


class PaymentSession:
    """State machine for a single pay-to-access attempt."""

    def __init__(
        self,
        wallet: WalletSigner,
        facilitator: FacilitatorClient,
        announcer: Optional[Announcer] = None,
        config: Optional[SessionConfig] = None,
        history: Optional[PaymentHistory] = None,
    ):
        self.wallet = wallet
        self.facilitator = facilitator
        self.announcer = announcer
        self.config = config or SessionConfig()
        self.history = history
        self._state = SessionState.IDLE
        self._clear()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def in_flight(self) -> bool:
        return self._state not in RESTING_STATES

    def _clear(self) -> None:
        self.service: Optional[Service] = None
        self.challenge: Optional[Challenge] = None
        self.transfer: Optional[TransferRecord] = None
        self.confirmation: Optional[PaymentConfirmation] = None
        self.txid: Optional[str] = None
        self.error: Optional[str] = None
        self.failure: Optional[BaseException] = None
        self.transitions: list[SessionState] = []

    async def start(self, service: Service) -> SessionState:
        """Run the whole flow for ``service``; returns the terminal state."""
        if self.in_flight:
            raise SessionInProgressError()
        if not self.wallet.connected:
            raise NotConnectedError()
        self.wallet.claim(self)

        self._clear()
        self.service = service
        try:
            await self._run(service)
        except asyncio.CancelledError:
            self._fail(SessionCancelledError())
            raise
        except Exception as e:
            self._fail(e)
        finally:
            self.wallet.release(self)
        return self._state

    def close(self) -> None:
        """Return to idle; only allowed once the session is at rest."""
        if self.in_flight:
            raise SessionInProgressError("A payment in progress cannot be cancelled")
        self._clear()
        self._state = SessionState.IDLE

    reset = close

    async def _run(self, service: Service) -> None:
        self._enter(SessionState.REQUESTING)
        challenge = await self._bounded(
            "request_resource",
            self.facilitator.request_resource(resource_path(service)),
        )
        self.challenge = challenge
        if not challenge.is_payment_required:
            raise UnexpectedStatusError(
                challenge.status,
                accessibility=recovery_metadata(f"HTTP {challenge.status}", self.facilitator.locale),
            )

        self._enter(SessionState.PAYMENT_REQUIRED, challenge.accessibility)
        if self.config.payment_required_delay > 0:
            await asyncio.sleep(self.config.payment_required_delay)

        self._enter(SessionState.SIGNING)
        draft = TransferDraft(
            outputs=(TransferOutput(satoshis=service.price, script=challenge.payment_address),),
            fee=self.config.fee,
        )
        self.transfer = await self._sign(draft)

        self._enter(SessionState.BROADCASTING)
        request = PaymentRequest(
            service=service,
            amount=service.price,
            payment_address=challenge.payment_address,
            network=Network(challenge.network or self.wallet.network.value),
            payer_address=self.wallet.info.address,
        )
        confirmation = await self._bounded(
            "submit_payment",
            self.facilitator.submit_payment(request, self.transfer),
        )
        self.confirmation = confirmation
        self.txid = confirmation.txid

        self._enter(SessionState.CONFIRMING)
        status = await self._await_confirmation(confirmation.txid)
        self.confirmation = replace(confirmation, confirmations=status.confirmations)
        self._record(request)

        self._enter(SessionState.CONFIRMED, confirmation.accessibility)

    async def _await_confirmation(self, txid: str) -> TransferStatus:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.confirmation_timeout
        while True:
            status = await self._bounded("check_status", self.facilitator.check_status(txid))
            if status.confirmed:
                return status
            if loop.time() >= deadline:
                raise ConfirmationTimeoutError(
                    txid,
                    self.config.confirmation_timeout,
                    accessibility=recovery_metadata("confirmation timeout", self.facilitator.locale),
                )
            await asyncio.sleep(self.config.poll_interval)

    async def _sign(self, draft: TransferDraft) -> TransferRecord:
        """Sign through the wallet. A started signature is never cancelled.

        Past ``call_timeout`` the session keeps waiting for the wallet, and a
        cancelled session still waits for the signature so ``transfer`` and
        the wallet balance always agree with the ledger.
        """
        signing = asyncio.ensure_future(self.wallet.sign_transfer(draft))
        timeout = self.config.call_timeout
        try:
            if timeout is not None:
                try:
                    return await asyncio.wait_for(asyncio.shield(signing), timeout)
                except asyncio.TimeoutError:
                    logger.warning("Wallet still signing after %gs, waiting for it", timeout)
            return await asyncio.shield(signing)
        except asyncio.CancelledError:
            await asyncio.wait([signing])
            if not signing.cancelled() and signing.exception() is None:
                self.transfer = signing.result()
            raise

    async def _bounded(self, operation: str, awaitable: Awaitable[T]) -> T:
        timeout = self.config.call_timeout
        if timeout is None:
            return await awaitable
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(
                operation,
                timeout,
                accessibility=recovery_metadata(f"{operation} timed out", self.facilitator.locale),
            ) from e

    def _record(self, request: PaymentRequest) -> None:
        if self.history is None or self.confirmation is None:
            return
        try:
            self.history.record(self.confirmation, self.transfer, payer=request.payer_address)
        except OSError:
            logger.exception("Could not record payment %s in local history", self.txid)

    def _enter(self, state: SessionState, accessibility: Optional[AccessibilityMetadata] = None) -> None:
        self._state = state
        self.transitions.append(state)
        logger.info("Payment session → %s", state.value)
        self._announce(
            SessionEvent(
                state=state,
                phrase=status_phrase(state.value, self.facilitator.locale),
                accessibility=accessibility,
            )
        )

    def _fail(self, error: Exception) -> None:
        if isinstance(error, PasarelaError):
            message = error.message
            accessibility = error.accessibility
        else:
            logger.exception("Unexpected error during payment session")
            message = f"{type(error).__name__}: {error}"
            accessibility = recovery_metadata(message, self.facilitator.locale)

        failed_in = self._state
        self.error = message
        self.failure = error
        self._state = SessionState.FAILED
        self.transitions.append(SessionState.FAILED)
        logger.warning("Payment session failed during %s: %s", failed_in.value, message)
        self._announce(
            SessionEvent(
                state=SessionState.FAILED,
                phrase=f"{status_phrase(SessionState.FAILED.value, self.facilitator.locale)}: {message}",
                accessibility=accessibility,
            )
        )

    def _announce(self, event: SessionEvent) -> None:
        if self.announcer is None:
            return
        try:
            self.announcer(event)
        except Exception:
            logger.exception("Announcer failed on %s event", event.state.value)
