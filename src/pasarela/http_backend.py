"""
HTTP facilitator backend.

Speaks the facilitator's REST shape over httpx so the same FacilitatorClient
can run against a deployed resource server instead of the simulator:

    GET  {resource_server}{path}                     → 402 challenge / 200 resource
    POST {facilitator}/api/v1/payment                → receipt
    GET  {status}/{test|main}/tx/{txid}              → confirmation depth
    GET  {facilitator}/api/v1/payments/history/{addr} → prior confirmations
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from .config import PasarelaConfig
from .errors import RequestTimeoutError, SettlementError, TransportError
from .facilitator import ResourceResponse
from .models import CHALLENGE_HEADERS, HEADER_PAYMENT, Network, PaymentRequest, TransferRecord

logger = logging.getLogger(__name__)


class HttpFacilitatorBackend:
    """FacilitatorBackend over HTTP."""

    def __init__(
        self,
        config: Optional[PasarelaConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or PasarelaConfig.from_env()
        self._http = client or httpx.AsyncClient(timeout=self.config.http_timeout_seconds)

    async def fetch_resource(self, path: str, headers: dict[str, str]) -> ResourceResponse:
        response = await self._request("GET", f"{self.config.resource_server_url}{path}", headers=headers)
        return ResourceResponse(
            status=response.status_code,
            headers={name: response.headers[name] for name in CHALLENGE_HEADERS if name in response.headers},
            body=_json_or_empty(response),
        )

    async def post_payment(
        self,
        request: PaymentRequest,
        transfer: TransferRecord,
        headers: dict[str, str],
    ) -> dict[str, Any]:
        response = await self._request(
            "POST",
            f"{self.config.facilitator_url}/api/v1/payment",
            headers={**headers, HEADER_PAYMENT: transfer.rawtx},
            json={
                "service": request.service.to_dict(),
                "amount": request.amount,
                "reference": request.reference,
                "txid": transfer.txid,
            },
        )
        if response.is_error:
            data = _json_or_empty(response)
            message = data.get("message") if isinstance(data, dict) else None
            raise SettlementError(message or "Error processing payment")
        return _json_or_empty(response)

    async def fetch_confirmations(self, txid: str) -> int:
        chain = "main" if self.config.network is Network.MAINNET else "test"
        response = await self._request("GET", f"{self.config.status_url}/{chain}/tx/{txid}")
        if response.status_code == 404:
            return 0
        if response.is_error:
            raise TransportError(f"Status lookup failed ({response.status_code})")
        data = _json_or_empty(response)
        return int(data.get("confirmations") or 0) if isinstance(data, dict) else 0

    async def fetch_history(self, address: str, headers: dict[str, str]) -> list[dict[str, Any]]:
        response = await self._request(
            "GET",
            f"{self.config.facilitator_url}/api/v1/payments/history/{address}",
            headers=headers,
        )
        if response.is_error:
            raise TransportError(f"Error fetching payment history ({response.status_code})")
        payload = response.json()
        return payload if isinstance(payload, list) else []

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return await self._http.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"{method} {url}", self.config.http_timeout_seconds) from e
        except httpx.TransportError as e:
            raise TransportError(f"Connection failed: {e}") from e

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()


def _json_or_empty(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {}
