"""
Pasarela — accessible X402 pay-to-access payments for municipal services.

Request → 402 challenge → sign → broadcast → confirm, between a client,
a resource facilitator and a BSV wallet.
"""

__version__ = "0.1.0"

from .accessibility import AccessibilityMetadata, DetailLevel, Language
from .catalog import MUNICIPAL_SERVICES, Service, ServiceCategory, get_service
from .errors import (
    ConfirmationTimeoutError,
    InsufficientFundsError,
    NoProviderError,
    NotAuthorizedError,
    NotConnectedError,
    PasarelaError,
    RequestTimeoutError,
    SessionCancelledError,
    SessionInProgressError,
    SettlementError,
    TransportError,
    UnexpectedStatusError,
    UserRejectedError,
)
from .facilitator import FacilitatorClient, SimulatedFacilitatorBackend
from .faults import AlwaysFail, FaultPolicy, NoFaults, RandomFaults, ScriptedFaults
from .history import PaymentHistory
from .models import (
    Challenge,
    Network,
    PaymentConfirmation,
    PaymentRequest,
    TransferRecord,
    WalletInfo,
)
from .session import PaymentSession, RecordingAnnouncer, SessionConfig, SessionEvent, SessionState
from .wallet import JsonConnectionStore, SimulatedWalletProvider, WalletSigner

__all__ = [
    "AccessibilityMetadata", "DetailLevel", "Language",
    "MUNICIPAL_SERVICES", "Service", "ServiceCategory", "get_service",
    "PasarelaError", "NoProviderError", "NotConnectedError", "UserRejectedError",
    "InsufficientFundsError", "SettlementError", "ConfirmationTimeoutError",
    "TransportError", "RequestTimeoutError", "UnexpectedStatusError",
    "NotAuthorizedError", "SessionInProgressError", "SessionCancelledError",
    "FacilitatorClient", "SimulatedFacilitatorBackend",
    "FaultPolicy", "NoFaults", "AlwaysFail", "RandomFaults", "ScriptedFaults",
    "PaymentHistory",
    "Challenge", "Network", "PaymentConfirmation", "PaymentRequest", "TransferRecord", "WalletInfo",
    "PaymentSession", "RecordingAnnouncer", "SessionConfig", "SessionEvent", "SessionState",
    "JsonConnectionStore", "SimulatedWalletProvider", "WalletSigner",
]
