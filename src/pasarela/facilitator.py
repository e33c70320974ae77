"""
Facilitator client for the X402 challenge/response exchange.

Flow:
1. Request the protected resource → 402 challenge with amount/address
2. Submit the signed transfer → confirmation with receipt
3. Poll transfer status until confirmed
4. Access the resource with the transfer id as payment proof

The client owns locale/detail-level configuration and builds the
accessibility metadata; the raw exchange goes through a backend
(simulated by default, HTTP in http_backend).
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

from .accessibility import (
    DEFAULT_DETAIL_LEVEL,
    DEFAULT_LANGUAGE,
    AccessibilityMetadata,
    DetailLevel,
    Language,
    plain_message,
    recovery_metadata,
    step_list,
)
from .catalog import resource_path, service_for_path
from .errors import FacilitatorError, NotAuthorizedError, SettlementError, UnexpectedStatusError
from .faults import SETTLE, FaultPolicy, NoFaults
from .models import (
    CHALLENGE_HEADERS,
    HEADER_ACCESSIBILITY_LEVEL,
    HEADER_LANGUAGE,
    HEADER_PAYMENT_ADDRESS,
    HEADER_PAYMENT_AMOUNT,
    HEADER_PAYMENT_NETWORK,
    HEADER_PAYMENT_PROOF,
    PAYMENT_REQUIRED,
    Challenge,
    Network,
    PaymentConfirmation,
    PaymentRequest,
    Receipt,
    TransferRecord,
    TransferStatus,
)

logger = logging.getLogger(__name__)


DENIED_STATUSES = frozenset({401, 402, 403})


@dataclass(frozen=True)
class ResourceResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None


class FacilitatorBackend(Protocol):
    async def fetch_resource(self, path: str, headers: dict[str, str]) -> ResourceResponse:
        ...

    async def post_payment(
        self,
        request: PaymentRequest,
        transfer: TransferRecord,
        headers: dict[str, str],
    ) -> dict[str, Any]:
        ...

    async def fetch_confirmations(self, txid: str) -> int:
        ...

    async def fetch_history(self, address: str, headers: dict[str, str]) -> list[dict[str, Any]]:
        ...


class FacilitatorClient:
    """Challenge/response exchange and settlement tracking."""

    def __init__(
        self,
        backend: FacilitatorBackend,
        locale: Language = DEFAULT_LANGUAGE,
        detail_level: DetailLevel = DEFAULT_DETAIL_LEVEL,
    ):
        self.backend = backend
        self._locale = Language(locale)
        self._detail_level = DetailLevel(detail_level)
        self._confirmations: dict[str, int] = {}

    @property
    def locale(self) -> Language:
        return self._locale

    @property
    def detail_level(self) -> DetailLevel:
        return self._detail_level

    def set_locale(self, locale: Language | str) -> None:
        self._locale = Language(locale)

    def set_detail_level(self, level: DetailLevel | str) -> None:
        self._detail_level = DetailLevel(level)

    async def request_resource(self, path: str) -> Challenge:
        response = await self._call(self.backend.fetch_resource(path, self._headers()))

        if response.status != PAYMENT_REQUIRED:
            logger.info("Resource %s answered %d (no payment challenge)", path, response.status)
            return Challenge(status=response.status, headers={}, body=response.body)

        headers = {k: v for k, v in response.headers.items() if k in CHALLENGE_HEADERS and v}
        body = response.body if response.body is not None else {}
        accessibility = None
        if isinstance(body, dict) and body.get("accessibility"):
            accessibility = AccessibilityMetadata.from_dict(body["accessibility"])
        if accessibility is None:
            accessibility = self._payment_required_metadata(headers)

        logger.info(
            "Payment required for %s: %s sats to %s",
            path,
            headers.get(HEADER_PAYMENT_AMOUNT),
            headers.get(HEADER_PAYMENT_ADDRESS),
        )
        return Challenge(status=response.status, headers=headers, body=body, accessibility=accessibility)

    async def submit_payment(self, request: PaymentRequest, transfer: TransferRecord) -> PaymentConfirmation:
        data = await self._call(self.backend.post_payment(request, transfer, self._headers()))

        receipt = data.get("receipt")
        raw_accessibility = data.get("accessibility")
        accessibility = (
            AccessibilityMetadata.from_dict(raw_accessibility)
            if raw_accessibility
            else self._payment_success_metadata(transfer.txid)
        )
        self._confirmations.setdefault(transfer.txid, 0)

        confirmation = PaymentConfirmation(
            txid=transfer.txid,
            service=request.service,
            amount=request.amount,
            timestamp=int(data.get("timestamp") or time.time() * 1000),
            confirmations=0,
            receipt=Receipt(**receipt) if receipt else None,
            accessibility=accessibility,
        )
        logger.info("Payment accepted: %s (receipt %s)", transfer.txid, receipt and receipt.get("id"))
        return confirmation

    async def check_status(self, txid: str) -> TransferStatus:
        reported = await self._call(self.backend.fetch_confirmations(txid))
        # Confirmation depth never goes backwards, even if a node lags.
        confirmations = max(reported, self._confirmations.get(txid, 0))
        self._confirmations[txid] = confirmations
        return TransferStatus(txid=txid, confirmations=confirmations)

    async def get_history(self, address: str) -> list[PaymentConfirmation]:
        rows = await self._call(self.backend.fetch_history(address, self._headers()))
        history = [PaymentConfirmation.from_dict(row) for row in rows]
        history.sort(key=lambda c: c.timestamp, reverse=True)
        return history

    async def access_resource(self, path: str, proof: str) -> Any:
        headers = {**self._headers(), HEADER_PAYMENT_PROOF: proof}
        response = await self._call(self.backend.fetch_resource(path, headers))
        if response.status == 200:
            return response.body
        if response.status in DENIED_STATUSES:
            message = plain_message("not_authorized", self._locale)
            raise NotAuthorizedError(
                message,
                accessibility=AccessibilityMetadata(
                    plain_language=message,
                    steps=step_list("payment_required", self._locale),
                ),
            )
        raise UnexpectedStatusError(
            response.status,
            accessibility=recovery_metadata(f"HTTP {response.status}", self._locale),
        )

    async def _call(self, awaitable):
        try:
            return await awaitable
        except FacilitatorError as e:
            if e.accessibility is None:
                e.accessibility = recovery_metadata(e.message, self._locale)
            logger.warning("Facilitator call failed: %s", e)
            raise

    def _headers(self) -> dict[str, str]:
        return {
            HEADER_ACCESSIBILITY_LEVEL: self._detail_level.value,
            HEADER_LANGUAGE: self._locale.value,
        }

    def _tailor(
        self,
        plain: str,
        steps: tuple[str, ...],
        screen_reader: str,
        technical: str,
        help_context: Optional[str] = None,
    ) -> AccessibilityMetadata:
        level = self._detail_level
        return AccessibilityMetadata(
            plain_language=plain,
            technical_details=technical if level is DetailLevel.TECHNICAL else None,
            steps=steps,
            screen_reader_text=screen_reader if level is not DetailLevel.SIMPLE else None,
            help_context=help_context,
        )

    def _payment_required_metadata(self, headers: dict[str, str]) -> AccessibilityMetadata:
        amount = headers.get(HEADER_PAYMENT_AMOUNT, "?")
        if self._locale is Language.ES:
            screen_reader = f"Se requiere un pago de {amount} satoshis para acceder a este servicio"
        else:
            screen_reader = f"A payment of {amount} satoshis is required to access this service"
        technical = (
            f"HTTP 402 Payment Required; {HEADER_PAYMENT_AMOUNT}={amount}; "
            f"{HEADER_PAYMENT_ADDRESS}={headers.get(HEADER_PAYMENT_ADDRESS, '')}; "
            f"{HEADER_PAYMENT_NETWORK}={headers.get(HEADER_PAYMENT_NETWORK, '')}"
        )
        return self._tailor(
            plain_message("payment_required", self._locale),
            step_list("payment_required", self._locale),
            screen_reader,
            technical,
        )

    def _payment_success_metadata(self, txid: str) -> AccessibilityMetadata:
        if self._locale is Language.ES:
            screen_reader = f"Pago completado exitosamente. ID de transacción: {txid[:8]}..."
            help_context = 'Puedes ver el recibo en la sección "Mis Pagos"'
        else:
            screen_reader = f"Payment completed successfully. Transaction ID: {txid[:8]}..."
            help_context = 'You can view the receipt in the "My Payments" section'
        return self._tailor(
            plain_message("payment_success", self._locale),
            step_list("payment_success", self._locale),
            screen_reader,
            f"txid={txid}; confirmations=0",
            help_context,
        )


class SimulatedFacilitatorBackend:
    """In-process stand-in for the resource server and facilitator."""

    REQUEST_DELAY = 0.5
    SETTLE_DELAY = 2.0
    STATUS_DELAY = 0.3
    HISTORY_DELAY = 0.8

    DEFAULT_AMOUNT = 50_000
    PAYMENT_ADDRESS = "1MockAddressForTestingPurposes123"
    MAX_CONFIRMATIONS = 6

    def __init__(
        self,
        faults: Optional[FaultPolicy] = None,
        network: Network = Network.TESTNET,
        status_overrides: Optional[dict[str, int]] = None,
        confirmations_per_poll: int = 1,
        latency_scale: float = 1.0,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.faults = faults or NoFaults()
        self.network = network
        self.status_overrides = dict(status_overrides or {})
        self.confirmations_per_poll = confirmations_per_poll
        self.latency_scale = latency_scale
        self._rng = rng or random.Random()
        self._clock = clock
        self._confirmations: dict[str, int] = {}
        self._unlocked: dict[str, set[str]] = {}
        self._history: dict[str, list[dict[str, Any]]] = {}

    async def fetch_resource(self, path: str, headers: dict[str, str]) -> ResourceResponse:
        await self._delay(self.REQUEST_DELAY)
        language = Language(headers.get(HEADER_LANGUAGE, DEFAULT_LANGUAGE.value))

        if path in self.status_overrides:
            status = self.status_overrides[path]
            return ResourceResponse(status=status, body={"message": f"HTTP {status}"})

        proof = headers.get(HEADER_PAYMENT_PROOF)
        if proof and proof in self._unlocked.get(path, set()):
            return ResourceResponse(status=200, body={"resource": path, "granted": True})

        service = service_for_path(path)
        amount = service.price if service is not None else self.DEFAULT_AMOUNT
        return ResourceResponse(
            status=PAYMENT_REQUIRED,
            headers={
                HEADER_PAYMENT_AMOUNT: str(amount),
                HEADER_PAYMENT_ADDRESS: self.PAYMENT_ADDRESS,
                HEADER_PAYMENT_NETWORK: self.network.value,
                HEADER_ACCESSIBILITY_LEVEL: headers.get(HEADER_ACCESSIBILITY_LEVEL, ""),
                HEADER_LANGUAGE: language.value,
            },
            body={
                "message": "Pago requerido" if language is Language.ES else "Payment required",
                "amount": amount,
                "currency": "satoshis",
            },
        )

    async def post_payment(
        self,
        request: PaymentRequest,
        transfer: TransferRecord,
        headers: dict[str, str],
    ) -> dict[str, Any]:
        await self._delay(self.SETTLE_DELAY)
        language = Language(headers.get(HEADER_LANGUAGE, DEFAULT_LANGUAGE.value))

        if not any(
            o.script == request.payment_address and o.satoshis >= request.amount
            for o in transfer.outputs
        ):
            raise SettlementError(f"Transfer {transfer.txid[:8]}... does not pay {request.payment_address}")
        if self.faults.should_fail(SETTLE):
            raise SettlementError(plain_message("payment_failed", language))

        now_ms = int(self._clock() * 1000)
        receipt_id = f"REC-{now_ms}-{self._rng.getrandbits(32):08X}"
        receipt = {"id": receipt_id, "url": f"/receipts/{receipt_id}"}

        self._confirmations[transfer.txid] = 0
        self._unlocked.setdefault(resource_path(request.service), set()).add(transfer.txid)
        if request.payer_address:
            self._history.setdefault(request.payer_address, []).append(
                {
                    "txid": transfer.txid,
                    "service": request.service.to_dict(),
                    "amount": request.amount,
                    "timestamp": now_ms,
                    "receipt": receipt,
                }
            )
        return {"receipt": receipt, "timestamp": now_ms}

    async def fetch_confirmations(self, txid: str) -> int:
        await self._delay(self.STATUS_DELAY)
        if txid not in self._confirmations:
            return 0
        current = min(self._confirmations[txid] + self.confirmations_per_poll, self.MAX_CONFIRMATIONS)
        self._confirmations[txid] = current
        return current

    async def fetch_history(self, address: str, headers: dict[str, str]) -> list[dict[str, Any]]:
        await self._delay(self.HISTORY_DELAY)
        language = Language(headers.get(HEADER_LANGUAGE, DEFAULT_LANGUAGE.value))
        plain = "Pago completado" if language is Language.ES else "Payment completed"
        return [
            {
                **row,
                "confirmations": self._confirmations.get(row["txid"], 0),
                "accessibility": {"plain_language": plain},
            }
            for row in self._history.get(address, [])
        ]

    async def _delay(self, seconds: float) -> None:
        if self.latency_scale > 0:
            await asyncio.sleep(seconds * self.latency_scale)
