"""Tests for the facilitator client and simulated backend."""

import pytest

from pasarela.accessibility import DetailLevel, Language
from pasarela.catalog import get_service, resource_path
from pasarela.errors import NotAuthorizedError, SettlementError, TransportError, UnexpectedStatusError
from pasarela.facilitator import FacilitatorClient, ResourceResponse, SimulatedFacilitatorBackend
from pasarela.faults import SETTLE, AlwaysFail
from pasarela.models import (
    HEADER_PAYMENT_AMOUNT,
    Network,
    PaymentRequest,
    TransferOutput,
    TransferRecord,
)


ADDRESS = SimulatedFacilitatorBackend.PAYMENT_ADDRESS


def _transfer(txid: str, amount: int, to: str = ADDRESS) -> TransferRecord:
    return TransferRecord(
        txid=txid,
        rawtx="01000000" + "00" * 10,
        inputs=(),
        outputs=(TransferOutput(satoshis=amount, script=to),),
        fee=50,
    )


def _request(service_id: str = "ibi-2024", payer: str = "1payer") -> PaymentRequest:
    service = get_service(service_id)
    return PaymentRequest(
        service=service,
        amount=service.price,
        payment_address=ADDRESS,
        network=Network.TESTNET,
        payer_address=payer,
    )


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def backend():
    return SimulatedFacilitatorBackend(latency_scale=0.0)


@pytest.fixture
def client(backend):
    return FacilitatorClient(backend)


class TestConfiguration:
    def test_defaults(self, client):
        assert client.locale is Language.ES
        assert client.detail_level is DetailLevel.STANDARD

    def test_setters_accept_strings(self, client):
        client.set_locale("en")
        client.set_detail_level("technical")
        assert client.locale is Language.EN
        assert client.detail_level is DetailLevel.TECHNICAL

    def test_invalid_level_rejected(self, client):
        with pytest.raises(ValueError):
            client.set_detail_level("verbose")


class TestRequestResource:
    @pytest.mark.asyncio
    async def test_challenge_uses_catalog_price(self, client):
        challenge = await client.request_resource(resource_path(get_service("water")))
        assert challenge.status == 402
        assert challenge.is_payment_required
        assert challenge.payment_amount == 25_000
        assert challenge.payment_address == ADDRESS
        assert challenge.network == "testnet"

    @pytest.mark.asyncio
    async def test_unknown_path_uses_default_amount(self, client):
        challenge = await client.request_resource("/api/other")
        assert challenge.headers[HEADER_PAYMENT_AMOUNT] == "50000"

    @pytest.mark.asyncio
    async def test_metadata_follows_locale(self, client):
        client.set_locale("en")
        challenge = await client.request_resource("/api/services/ibi-2024")
        meta = challenge.accessibility
        assert meta.plain_language == "You need to make a payment to access this service."
        assert meta.screen_reader_text == "A payment of 50000 satoshis is required to access this service"
        assert meta.steps[0] == "1. Connect your BSV wallet"
        assert challenge.body["message"] == "Payment required"

    @pytest.mark.asyncio
    async def test_simple_level_drops_extras(self, client):
        client.set_detail_level(DetailLevel.SIMPLE)
        meta = (await client.request_resource("/api/services/ibi-2024")).accessibility
        assert meta.screen_reader_text is None
        assert meta.technical_details is None
        assert meta.steps

    @pytest.mark.asyncio
    async def test_technical_level_adds_protocol_details(self, client):
        client.set_detail_level(DetailLevel.TECHNICAL)
        meta = (await client.request_resource("/api/services/ibi-2024")).accessibility
        assert "HTTP 402" in meta.technical_details
        assert ADDRESS in meta.technical_details

    @pytest.mark.asyncio
    async def test_non_402_is_returned_not_raised(self):
        backend = SimulatedFacilitatorBackend(latency_scale=0.0, status_overrides={"/api/services/water": 200})
        challenge = await FacilitatorClient(backend).request_resource("/api/services/water")
        assert challenge.status == 200
        assert not challenge.is_payment_required
        assert challenge.headers == {}
        assert challenge.accessibility is None


class TestSubmitPayment:
    @pytest.mark.asyncio
    async def test_confirmation_starts_unconfirmed(self, client):
        confirmation = await client.submit_payment(_request(), _transfer("aa" * 32, 50_000))
        assert confirmation.txid == "aa" * 32
        assert confirmation.confirmations == 0
        assert confirmation.amount == 50_000
        assert confirmation.receipt.id.startswith("REC-")
        assert confirmation.receipt.url == f"/receipts/{confirmation.receipt.id}"
        assert confirmation.accessibility.plain_language == "Tu pago se ha procesado correctamente."

    @pytest.mark.asyncio
    async def test_injected_settlement_failure(self, backend, client):
        backend.faults = AlwaysFail(SETTLE)
        client.set_locale("en")
        with pytest.raises(SettlementError) as exc:
            await client.submit_payment(_request(), _transfer("bb" * 32, 50_000))
        assert str(exc.value) == "Error processing payment. Please try again."
        assert exc.value.accessibility is not None
        assert exc.value.accessibility.steps

    @pytest.mark.asyncio
    async def test_transfer_to_wrong_address_rejected(self, client):
        with pytest.raises(SettlementError, match="does not pay"):
            await client.submit_payment(_request(), _transfer("cc" * 32, 50_000, to="1elsewhere"))

    @pytest.mark.asyncio
    async def test_underpayment_rejected(self, client):
        with pytest.raises(SettlementError):
            await client.submit_payment(_request(), _transfer("cc" * 32, 49_999))


class TestCheckStatus:
    @pytest.mark.asyncio
    async def test_unknown_tx_unconfirmed(self, client):
        status = await client.check_status("ff" * 32)
        assert status.confirmations == 0
        assert not status.confirmed

    @pytest.mark.asyncio
    async def test_confirmations_grow(self, client):
        txid = "dd" * 32
        await client.submit_payment(_request(), _transfer(txid, 50_000))
        first = await client.check_status(txid)
        second = await client.check_status(txid)
        assert first.confirmed
        assert second.confirmations >= first.confirmations

    @pytest.mark.asyncio
    async def test_confirmations_never_decrease(self):
        class LaggingBackend(SimulatedFacilitatorBackend):
            readings = [3, 1, 0]

            async def fetch_confirmations(self, txid):
                return self.readings.pop(0)

        client = FacilitatorClient(LaggingBackend(latency_scale=0.0))
        counts = [(await client.check_status("ee" * 32)).confirmations for _ in range(3)]
        assert counts == [3, 3, 3]


class TestHistory:
    @pytest.mark.asyncio
    async def test_sorted_newest_first(self):
        clock = FakeClock()
        client = FacilitatorClient(SimulatedFacilitatorBackend(latency_scale=0.0, clock=clock))
        for i, service_id in enumerate(["certificate", "water", "sports"]):
            clock.now += 60
            service = get_service(service_id)
            await client.submit_payment(_request(service_id), _transfer(f"{i:064x}", service.price))

        history = await client.get_history("1payer")
        assert [c.service.id for c in history] == ["sports", "water", "certificate"]
        assert history[0].timestamp > history[1].timestamp > history[2].timestamp

    @pytest.mark.asyncio
    async def test_other_address_has_no_history(self, client):
        await client.submit_payment(_request(), _transfer("aa" * 32, 50_000))
        assert await client.get_history("1stranger") == []


class TestAccessResource:
    @pytest.mark.asyncio
    async def test_access_without_proof_denied(self, client):
        with pytest.raises(NotAuthorizedError) as exc:
            await client.access_resource("/api/services/ibi-2024", "not-a-payment")
        assert exc.value.accessibility is not None

    @pytest.mark.asyncio
    async def test_access_with_settled_proof(self, client):
        txid = "ab" * 32
        await client.submit_payment(_request(), _transfer(txid, 50_000))
        body = await client.access_resource("/api/services/ibi-2024", txid)
        assert body["granted"] is True

    @pytest.mark.asyncio
    async def test_proof_is_scoped_to_resource(self, client):
        txid = "ab" * 32
        await client.submit_payment(_request(), _transfer(txid, 50_000))
        with pytest.raises(NotAuthorizedError):
            await client.access_resource("/api/services/water", txid)

    @pytest.mark.asyncio
    async def test_server_error_surfaces_as_unexpected_status(self):
        backend = SimulatedFacilitatorBackend(latency_scale=0.0, status_overrides={"/api/services/water": 500})
        with pytest.raises(UnexpectedStatusError) as exc:
            await FacilitatorClient(backend).access_resource("/api/services/water", "x")
        assert exc.value.status == 500


class TestTransportErrors:
    @pytest.mark.asyncio
    async def test_transport_error_gets_metadata(self):
        class DownBackend(SimulatedFacilitatorBackend):
            async def fetch_resource(self, path, headers):
                raise TransportError("Connection failed: refused")

        client = FacilitatorClient(DownBackend(latency_scale=0.0), locale=Language.EN)
        with pytest.raises(TransportError) as exc:
            await client.request_resource("/api/services/water")
        assert "Connection failed" in exc.value.accessibility.plain_language

    @pytest.mark.asyncio
    async def test_backend_metadata_is_not_replaced(self):
        from pasarela.accessibility import AccessibilityMetadata

        original = AccessibilityMetadata(plain_language="server says no")

        class GrumpyBackend(SimulatedFacilitatorBackend):
            async def post_payment(self, request, transfer, headers):
                raise SettlementError("nope", accessibility=original)

        client = FacilitatorClient(GrumpyBackend(latency_scale=0.0))
        with pytest.raises(SettlementError) as exc:
            await client.submit_payment(_request(), _transfer("aa" * 32, 50_000))
        assert exc.value.accessibility is original


def test_resource_response_defaults():
    response = ResourceResponse(status=204)
    assert response.headers == {}
    assert response.body is None
