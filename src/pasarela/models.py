"""
Data model for the X402 negotiation: wallet snapshots, transfers,
challenges, payment requests and confirmations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .accessibility import AccessibilityMetadata
from .catalog import Service


class Network(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"


# Protocol headers on a 402 response.
HEADER_PAYMENT_AMOUNT = "X-PAYMENT-AMOUNT"
HEADER_PAYMENT_ADDRESS = "X-PAYMENT-ADDRESS"
HEADER_PAYMENT_NETWORK = "X-PAYMENT-NETWORK"
HEADER_ACCESSIBILITY_LEVEL = "X-ACCESSIBILITY-LEVEL"
HEADER_LANGUAGE = "X-LANGUAGE"
HEADER_PAYMENT = "X-PAYMENT"
HEADER_PAYMENT_PROOF = "X-PAYMENT-PROOF"

CHALLENGE_HEADERS = (
    HEADER_PAYMENT_AMOUNT,
    HEADER_PAYMENT_ADDRESS,
    HEADER_PAYMENT_NETWORK,
    HEADER_ACCESSIBILITY_LEVEL,
    HEADER_LANGUAGE,
)

PAYMENT_REQUIRED = 402


@dataclass(frozen=True)
class WalletInfo:
    """Read-only wallet view for the UI layer."""

    connected: bool = False
    address: Optional[str] = None
    balance: Optional[int] = None
    network: Network = Network.TESTNET


@dataclass(frozen=True)
class TransferInput:
    txid: str
    vout: int
    satoshis: int

    def to_dict(self) -> dict:
        return {"txid": self.txid, "vout": self.vout, "satoshis": self.satoshis}


@dataclass(frozen=True)
class TransferOutput:
    satoshis: int
    script: str  # destination descriptor

    def to_dict(self) -> dict:
        return {"satoshis": self.satoshis, "script": self.script}


@dataclass(frozen=True)
class TransferDraft:
    """What the caller asks the wallet to sign."""

    outputs: tuple[TransferOutput, ...]
    fee: int
    inputs: Optional[tuple[TransferInput, ...]] = None

    @property
    def total_output(self) -> int:
        return sum(o.satoshis for o in self.outputs)


@dataclass(frozen=True)
class TransferRecord:
    """A signed transfer, immutable once produced by the wallet."""

    txid: str
    rawtx: str
    inputs: tuple[TransferInput, ...]
    outputs: tuple[TransferOutput, ...]
    fee: int

    @property
    def total_output(self) -> int:
        return sum(o.satoshis for o in self.outputs)

    def to_dict(self) -> dict:
        return {
            "txid": self.txid,
            "rawtx": self.rawtx,
            "inputs": [i.to_dict() for i in self.inputs],
            "outputs": [o.to_dict() for o in self.outputs],
            "fee": self.fee,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TransferRecord":
        return cls(
            txid=data["txid"],
            rawtx=data["rawtx"],
            inputs=tuple(TransferInput(**i) for i in data.get("inputs", [])),
            outputs=tuple(TransferOutput(**o) for o in data.get("outputs", [])),
            fee=int(data["fee"]),
        )


@dataclass(frozen=True)
class Challenge:
    """Response to a resource request; a 402 carries payment instructions."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    accessibility: Optional[AccessibilityMetadata] = None

    @property
    def is_payment_required(self) -> bool:
        return self.status == PAYMENT_REQUIRED

    @property
    def payment_amount(self) -> Optional[int]:
        raw = self.headers.get(HEADER_PAYMENT_AMOUNT)
        return int(raw) if raw else None

    @property
    def payment_address(self) -> str:
        return self.headers.get(HEADER_PAYMENT_ADDRESS, "")

    @property
    def network(self) -> Optional[str]:
        return self.headers.get(HEADER_PAYMENT_NETWORK)


@dataclass(frozen=True)
class PaymentRequest:
    service: Service
    amount: int
    payment_address: str
    network: Network = Network.TESTNET
    reference: Optional[str] = None
    payer_address: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "service": self.service.to_dict(),
            "amount": self.amount,
            "payment_address": self.payment_address,
            "network": self.network.value,
            "reference": self.reference,
            "payer_address": self.payer_address,
        }


@dataclass(frozen=True)
class Receipt:
    id: str
    url: str

    def to_dict(self) -> dict:
        return {"id": self.id, "url": self.url}


@dataclass(frozen=True)
class PaymentConfirmation:
    """Facilitator's acknowledgement of a submitted transfer."""

    txid: str
    service: Service
    amount: int
    timestamp: int  # milliseconds since epoch
    confirmations: int = 0
    receipt: Optional[Receipt] = None
    accessibility: Optional[AccessibilityMetadata] = None

    def to_dict(self) -> dict:
        return {
            "txid": self.txid,
            "service": self.service.to_dict(),
            "amount": self.amount,
            "timestamp": self.timestamp,
            "confirmations": self.confirmations,
            "receipt": self.receipt.to_dict() if self.receipt else None,
            "accessibility": self.accessibility.to_dict() if self.accessibility else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaymentConfirmation":
        receipt = data.get("receipt")
        accessibility = data.get("accessibility")
        return cls(
            txid=data["txid"],
            service=Service.from_dict(data["service"]),
            amount=int(data["amount"]),
            timestamp=int(data["timestamp"]),
            confirmations=int(data.get("confirmations", 0)),
            receipt=Receipt(**receipt) if receipt else None,
            accessibility=AccessibilityMetadata.from_dict(accessibility) if accessibility else None,
        )


@dataclass(frozen=True)
class TransferStatus:
    txid: str
    confirmations: int

    @property
    def confirmed(self) -> bool:
        return self.confirmations > 0
