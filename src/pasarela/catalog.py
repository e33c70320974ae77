"""
Catalog of municipal services that can be paid through the X402 flow.

Reference data only: built once at import and never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from .accessibility import Language
from .money import to_eur


class ServiceCategory(str, Enum):
    TAXES = "taxes"
    FINES = "fines"
    ADMINISTRATIVE = "administrative"
    PUBLIC_SERVICES = "public-services"


@dataclass(frozen=True)
class LocalizedText:
    es: str
    en: str

    def get(self, language: Language) -> str:
        return self.es if Language(language) is Language.ES else self.en

    def to_dict(self) -> dict:
        return {"es": self.es, "en": self.en}


@dataclass(frozen=True)
class Service:
    """A payable municipal service."""

    id: str
    type: str
    category: ServiceCategory
    name: LocalizedText
    description: LocalizedText
    price: int  # satoshis
    price_eur: Decimal
    requires_auth: bool
    estimated_time: Optional[str] = None
    reference: Optional[str] = None
    period: Optional[str] = None
    deadline: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "category": self.category.value,
            "name": self.name.to_dict(),
            "description": self.description.to_dict(),
            "price": self.price,
            "price_eur": str(self.price_eur),
            "requires_auth": self.requires_auth,
            "estimated_time": self.estimated_time,
            "reference": self.reference,
            "period": self.period,
            "deadline": self.deadline,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Service":
        return cls(
            id=data["id"],
            type=data["type"],
            category=ServiceCategory(data["category"]),
            name=LocalizedText(**data["name"]),
            description=LocalizedText(**data["description"]),
            price=int(data["price"]),
            price_eur=to_eur(data["price_eur"]),
            requires_auth=bool(data["requires_auth"]),
            estimated_time=data.get("estimated_time"),
            reference=data.get("reference"),
            period=data.get("period"),
            deadline=data.get("deadline"),
        )


def _service(
    id: str,
    category: ServiceCategory,
    name: tuple[str, str],
    description: tuple[str, str],
    price: int,
    price_eur: str,
    requires_auth: bool = True,
    type: Optional[str] = None,
    **extra: Any,
) -> Service:
    return Service(
        id=id,
        type=type or id,
        category=category,
        name=LocalizedText(*name),
        description=LocalizedText(*description),
        price=price,
        price_eur=to_eur(price_eur),
        requires_auth=requires_auth,
        **extra,
    )


MUNICIPAL_SERVICES: tuple[Service, ...] = (
    # Taxes
    _service(
        "ibi-2024", ServiceCategory.TAXES,
        ("Impuesto de Bienes Inmuebles (IBI) 2024", "Real Estate Tax (IBI) 2024"),
        ("Pago del Impuesto de Bienes Inmuebles correspondiente al ejercicio 2024",
         "Payment of Real Estate Tax for the year 2024"),
        50_000, "25.50", type="ibi",
        estimated_time="2-5 minutos", period="2024", deadline="2024-12-31",
    ),
    _service(
        "garbage-2024", ServiceCategory.TAXES,
        ("Tasa de Basuras 2024", "Garbage Fee 2024"),
        ("Pago de la tasa municipal de recogida de basuras",
         "Payment of municipal garbage collection fee"),
        15_000, "7.65", type="garbage",
        estimated_time="2-5 minutos", period="2024",
    ),
    _service(
        "plusvalia", ServiceCategory.TAXES,
        ("Impuesto sobre el Incremento del Valor de los Terrenos", "Capital Gains Tax on Land"),
        ("Plusvalía municipal - Impuesto sobre la transmisión de terrenos",
         "Municipal capital gains tax on land transfer"),
        120_000, "61.20", estimated_time="5-10 minutos",
    ),
    # Fines
    _service(
        "traffic-fine", ServiceCategory.FINES,
        ("Multa de Tráfico", "Traffic Fine"),
        ("Pago de multas de tráfico y estacionamiento", "Payment of traffic and parking fines"),
        30_000, "15.30", requires_auth=False, estimated_time="1-3 minutos",
    ),
    _service(
        "admin-fine", ServiceCategory.FINES,
        ("Infracción Administrativa", "Administrative Violation"),
        ("Pago de infracciones y sanciones administrativas",
         "Payment of administrative violations and penalties"),
        40_000, "20.40", requires_auth=False, estimated_time="1-3 minutos",
    ),
    # Administrative
    _service(
        "certificate", ServiceCategory.ADMINISTRATIVE,
        ("Certificado Municipal", "Municipal Certificate"),
        ("Emisión de certificados de empadronamiento, residencia, etc.",
         "Issuance of registration, residence certificates, etc."),
        5_000, "2.55", estimated_time="1-2 minutos",
    ),
    _service(
        "license", ServiceCategory.ADMINISTRATIVE,
        ("Licencia de Actividad", "Business License"),
        ("Solicitud y pago de licencias de apertura y actividad",
         "Application and payment for opening and activity licenses"),
        80_000, "40.80", estimated_time="10-15 minutos",
    ),
    _service(
        "registry", ServiceCategory.ADMINISTRATIVE,
        ("Padrón Municipal", "Municipal Registry"),
        ("Alta en el padrón de habitantes", "Registration in the municipal registry"),
        0, "0", estimated_time="5 minutos",
    ),
    # Public services
    _service(
        "water", ServiceCategory.PUBLIC_SERVICES,
        ("Factura de Agua", "Water Bill"),
        ("Pago de la factura municipal de agua", "Payment of municipal water bill"),
        25_000, "12.75", estimated_time="2-5 minutos", period="Bimestral",
    ),
    _service(
        "transport", ServiceCategory.PUBLIC_SERVICES,
        ("Abono de Transporte", "Transport Pass"),
        ("Recarga del abono de transporte público", "Reload of public transport pass"),
        35_000, "17.85", estimated_time="1-2 minutos", period="Mensual",
    ),
    _service(
        "sports", ServiceCategory.PUBLIC_SERVICES,
        ("Instalaciones Deportivas", "Sports Facilities"),
        ("Reserva y pago de instalaciones deportivas municipales",
         "Reservation and payment for municipal sports facilities"),
        8_000, "4.08", estimated_time="1-3 minutos",
    ),
    _service(
        "culture", ServiceCategory.PUBLIC_SERVICES,
        ("Actividades Culturales", "Cultural Activities"),
        ("Inscripción en talleres y actividades culturales",
         "Registration for workshops and cultural activities"),
        10_000, "5.10", estimated_time="1-3 minutos",
    ),
)

_BY_ID = {service.id: service for service in MUNICIPAL_SERVICES}

RESOURCE_PREFIX = "/api/services/"


def get_service(service_id: str) -> Optional[Service]:
    return _BY_ID.get(service_id)


def services_by_category(category: ServiceCategory | str) -> list[Service]:
    wanted = ServiceCategory(category)
    return [s for s in MUNICIPAL_SERVICES if s.category is wanted]


def search_services(query: str, language: Language = Language.ES) -> list[Service]:
    """Case-insensitive match on localized name or description."""
    needle = query.lower()
    return [
        s
        for s in MUNICIPAL_SERVICES
        if needle in s.name.get(language).lower() or needle in s.description.get(language).lower()
    ]


def resource_path(service: Service) -> str:
    return f"{RESOURCE_PREFIX}{service.id}"


def service_for_path(path: str) -> Optional[Service]:
    if not path.startswith(RESOURCE_PREFIX):
        return None
    return get_service(path[len(RESOURCE_PREFIX):].strip("/"))
