"""
Accessibility metadata and the bilingual phrases attached to it.

The payment core produces and forwards these records; it never reads them
back. Rendering and speech belong to the presentation layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class Language(str, Enum):
    ES = "es"
    EN = "en"


class DetailLevel(str, Enum):
    SIMPLE = "simple"
    STANDARD = "standard"
    TECHNICAL = "technical"


DEFAULT_LANGUAGE = Language.ES
DEFAULT_DETAIL_LEVEL = DetailLevel.STANDARD


@dataclass(frozen=True)
class AccessibilityMetadata:
    """Plain-language explanation plus optional assistive extras."""

    plain_language: str
    technical_details: Optional[str] = None
    steps: Optional[tuple[str, ...]] = None
    screen_reader_text: Optional[str] = None
    help_context: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "plain_language": self.plain_language,
            "technical_details": self.technical_details,
            "steps": list(self.steps) if self.steps is not None else None,
            "screen_reader_text": self.screen_reader_text,
            "help_context": self.help_context,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AccessibilityMetadata":
        steps = data.get("steps")
        return cls(
            plain_language=data.get("plain_language", ""),
            technical_details=data.get("technical_details"),
            steps=tuple(steps) if steps is not None else None,
            screen_reader_text=data.get("screen_reader_text"),
            help_context=data.get("help_context"),
        )


# Session status phrases, keyed by session state value.
STATUS_PHRASES: dict[str, dict[Language, str]] = {
    "idle": {
        Language.ES: "Listo para pagar",
        Language.EN: "Ready to pay",
    },
    "requesting": {
        Language.ES: "Solicitando el servicio...",
        Language.EN: "Requesting the service...",
    },
    "payment-required": {
        Language.ES: "Pago requerido",
        Language.EN: "Payment required",
    },
    "signing": {
        Language.ES: "Firmando la transacción en tu wallet...",
        Language.EN: "Signing the transaction in your wallet...",
    },
    "broadcasting": {
        Language.ES: "Enviando el pago a la red...",
        Language.EN: "Broadcasting the payment...",
    },
    "confirming": {
        Language.ES: "Esperando confirmación...",
        Language.EN: "Waiting for confirmation...",
    },
    "confirmed": {
        Language.ES: "Pago completado con éxito",
        Language.EN: "Payment completed successfully",
    },
    "failed": {
        Language.ES: "Ha ocurrido un error",
        Language.EN: "An error occurred",
    },
}

PLAIN_MESSAGES: dict[str, dict[Language, str]] = {
    "payment_required": {
        Language.ES: "Necesitas realizar un pago para acceder a este servicio.",
        Language.EN: "You need to make a payment to access this service.",
    },
    "payment_success": {
        Language.ES: "Tu pago se ha procesado correctamente.",
        Language.EN: "Your payment has been processed successfully.",
    },
    "payment_failed": {
        Language.ES: "Error al procesar el pago. Por favor, intenta de nuevo.",
        Language.EN: "Error processing payment. Please try again.",
    },
    "not_authorized": {
        Language.ES: "Todavía no tienes acceso a este recurso. Completa el pago primero.",
        Language.EN: "You don't have access to this resource yet. Complete the payment first.",
    },
    "transport_failed": {
        Language.ES: "No se pudo contactar con el servicio de pagos.",
        Language.EN: "The payment service could not be reached.",
    },
}

STEP_LISTS: dict[str, dict[Language, tuple[str, ...]]] = {
    "payment_required": {
        Language.ES: (
            "1. Conecta tu wallet BSV",
            "2. Verifica el monto a pagar",
            "3. Confirma la transacción en tu wallet",
            "4. Espera la confirmación",
        ),
        Language.EN: (
            "1. Connect your BSV wallet",
            "2. Verify the payment amount",
            "3. Confirm the transaction in your wallet",
            "4. Wait for confirmation",
        ),
    },
    "payment_success": {
        Language.ES: (
            "1. Transacción firmada y validada",
            "2. Pago transmitido a la blockchain BSV",
            "3. Confirmación recibida",
            "4. Recibo generado",
        ),
        Language.EN: (
            "1. Transaction signed and validated",
            "2. Payment broadcast to BSV blockchain",
            "3. Confirmation received",
            "4. Receipt generated",
        ),
    },
    "recovery": {
        Language.ES: (
            "1. Verificar que la wallet esté conectada",
            "2. Verificar que hay fondos suficientes",
            "3. Contactar soporte si el problema persiste",
        ),
        Language.EN: (
            "1. Check that wallet is connected",
            "2. Check that there are sufficient funds",
            "3. Contact support if problem persists",
        ),
    },
}

SUPPORT_CONTACT = "soporte@ayuntamiento.es"


def status_phrase(state: str, language: Language) -> str:
    return STATUS_PHRASES[state][Language(language)]


def plain_message(key: str, language: Language) -> str:
    return PLAIN_MESSAGES.get(key, {}).get(Language(language), "")


def step_list(key: str, language: Language) -> tuple[str, ...]:
    return STEP_LISTS.get(key, {}).get(Language(language), ())


def recovery_metadata(message: str, language: Language) -> AccessibilityMetadata:
    """Metadata attached to facilitator errors so the user knows what to try next."""
    language = Language(language)
    if language is Language.ES:
        plain = f"Ocurrió un error al procesar el pago: {message}"
        help_context = f"Si el problema persiste, escribe a {SUPPORT_CONTACT}"
    else:
        plain = f"An error occurred while processing the payment: {message}"
        help_context = f"If the problem persists, contact {SUPPORT_CONTACT}"
    return AccessibilityMetadata(
        plain_language=plain,
        steps=step_list("recovery", language),
        help_context=help_context,
    )
