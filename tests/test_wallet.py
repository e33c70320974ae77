"""Tests for the wallet signer and simulated BSV wallet."""

import random

import pytest

from pasarela.errors import (
    InsufficientFundsError,
    NoProviderError,
    NotConnectedError,
    SessionInProgressError,
    UserRejectedError,
)
from pasarela.faults import SIGN, AlwaysFail, ScriptedFaults
from pasarela.models import TransferDraft, TransferInput, TransferOutput, WalletInfo
from pasarela.wallet import JsonConnectionStore, Ledger, SimulatedWalletProvider, WalletSigner


def _draft(amount: int, fee: int = 50, to: str = "1Destination") -> TransferDraft:
    return TransferDraft(outputs=(TransferOutput(satoshis=amount, script=to),), fee=fee)


@pytest.fixture
def provider():
    return SimulatedWalletProvider(initial_balance=1_000_000, latency_scale=0.0, rng=random.Random(7))


@pytest.fixture
def wallet(provider):
    return WalletSigner(provider)


class TestLedger:
    def test_debit(self):
        ledger = Ledger(address="1abc", balance=100)
        assert ledger.debit(40) == 60

    def test_overdraw_rejected_without_mutation(self):
        ledger = Ledger(address="1abc", balance=100)
        with pytest.raises(InsufficientFundsError) as exc:
            ledger.debit(101)
        assert exc.value.required == 101
        assert exc.value.available == 100
        assert ledger.balance == 100

    def test_negative_balance_rejected(self):
        with pytest.raises(ValueError):
            Ledger(address="1abc", balance=-1)


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_without_provider(self):
        with pytest.raises(NoProviderError):
            await WalletSigner().connect()

    @pytest.mark.asyncio
    async def test_connect_assigns_address_and_balance(self, wallet):
        info = await wallet.connect()
        assert info.connected
        assert info.address.startswith("1")
        assert len(info.address) == 34
        assert info.balance == 1_000_000

    @pytest.mark.asyncio
    async def test_seeded_balance_in_reference_range(self):
        signer = WalletSigner(SimulatedWalletProvider(latency_scale=0.0, rng=random.Random(1)))
        info = await signer.connect()
        assert 100_000 <= info.balance < 1_100_000

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self, wallet):
        first = await wallet.connect()
        second = await wallet.connect()
        assert first == second

    @pytest.mark.asyncio
    async def test_disconnect_twice_matches_once(self, wallet):
        await wallet.connect()
        wallet.disconnect()
        once = wallet.info
        wallet.disconnect()
        assert wallet.info == once == WalletInfo()

    @pytest.mark.asyncio
    async def test_get_balance_requires_connection(self, wallet):
        with pytest.raises(NotConnectedError):
            await wallet.get_balance()

    @pytest.mark.asyncio
    async def test_get_balance_refreshes(self, wallet, provider):
        await wallet.connect()
        provider.ledger.balance = 123
        assert await wallet.get_balance() == 123
        assert wallet.info.balance == 123


class TestSignTransfer:
    @pytest.mark.asyncio
    async def test_sign_requires_connection(self, wallet):
        with pytest.raises(NotConnectedError):
            await wallet.sign_transfer(_draft(1000))

    @pytest.mark.asyncio
    async def test_debits_outputs_plus_fee(self, wallet):
        await wallet.connect()
        record = await wallet.sign_transfer(_draft(50_000))
        assert wallet.info.balance == 949_950
        assert record.fee == 50
        assert record.total_output == 50_000
        assert len(record.txid) == 64
        assert record.rawtx.startswith("01000000")

    @pytest.mark.asyncio
    async def test_default_input_covers_balance_before_sign(self, wallet):
        await wallet.connect()
        record = await wallet.sign_transfer(_draft(10_000))
        assert len(record.inputs) == 1
        assert record.inputs[0].vout == 0
        assert record.inputs[0].satoshis == 1_000_000

    @pytest.mark.asyncio
    async def test_supplied_inputs_are_kept(self, wallet):
        await wallet.connect()
        inputs = (TransferInput(txid="ab" * 32, vout=3, satoshis=20_000),)
        draft = TransferDraft(outputs=(TransferOutput(satoshis=10_000, script="1x"),), fee=50, inputs=inputs)
        record = await wallet.sign_transfer(draft)
        assert record.inputs == inputs

    @pytest.mark.asyncio
    async def test_user_rejection_leaves_balance(self, provider, wallet):
        provider.faults = AlwaysFail(SIGN)
        await wallet.connect()
        with pytest.raises(UserRejectedError):
            await wallet.sign_transfer(_draft(50_000))
        assert wallet.info.balance == 1_000_000
        assert provider.ledger.balance == 1_000_000

    @pytest.mark.asyncio
    async def test_scripted_faults_reject_then_accept(self, provider, wallet):
        provider.faults = ScriptedFaults([True, False])
        await wallet.connect()
        with pytest.raises(UserRejectedError):
            await wallet.sign_transfer(_draft(1000))
        await wallet.sign_transfer(_draft(1000))
        assert wallet.info.balance == 1_000_000 - 1050

    @pytest.mark.asyncio
    async def test_insufficient_funds(self):
        signer = WalletSigner(SimulatedWalletProvider(initial_balance=1000, latency_scale=0.0))
        await signer.connect()
        with pytest.raises(InsufficientFundsError):
            await signer.sign_transfer(_draft(990, fee=50))
        assert signer.info.balance == 1000

    @pytest.mark.asyncio
    async def test_balance_comes_from_debit(self, provider, wallet):
        await wallet.connect()

        async def unreachable():
            raise AssertionError("balance refreshed after signing")

        provider.get_balance = unreachable
        await wallet.sign_transfer(_draft(50_000))
        assert wallet.info.balance == provider.ledger.balance == 949_950

    @pytest.mark.asyncio
    async def test_exact_balance_can_be_spent(self):
        signer = WalletSigner(SimulatedWalletProvider(initial_balance=1050, latency_scale=0.0))
        await signer.connect()
        await signer.sign_transfer(_draft(1000, fee=50))
        assert signer.info.balance == 0


class TestRestore:
    @pytest.mark.asyncio
    async def test_connect_persists_and_disconnect_clears(self, provider, tmp_path):
        store = JsonConnectionStore(tmp_path / "wallet.json")
        signer = WalletSigner(provider, store=store)
        info = await signer.connect()
        assert store.load() == {"connected": True, "address": info.address}
        signer.disconnect()
        assert store.load() is None

    @pytest.mark.asyncio
    async def test_restore_reconnects(self, provider, tmp_path):
        store = JsonConnectionStore(tmp_path / "wallet.json")
        store.save("1previous")
        signer = WalletSigner(provider, store=store)
        assert await signer.restore() is True
        assert signer.connected

    @pytest.mark.asyncio
    async def test_restore_without_flag(self, provider, tmp_path):
        signer = WalletSigner(provider, store=JsonConnectionStore(tmp_path / "wallet.json"))
        assert await signer.restore() is False
        assert not signer.connected

    @pytest.mark.asyncio
    async def test_restore_failure_is_not_fatal(self, tmp_path):
        store = JsonConnectionStore(tmp_path / "wallet.json")
        store.save("1previous")
        signer = WalletSigner(provider=None, store=store)
        assert await signer.restore() is False
        assert signer.info == WalletInfo()


class TestInFlightGuard:
    def test_second_owner_rejected(self, wallet):
        first, second = object(), object()
        wallet.claim(first)
        with pytest.raises(SessionInProgressError):
            wallet.claim(second)
        wallet.release(first)
        wallet.claim(second)
        assert wallet.in_flight

    def test_release_by_non_owner_is_ignored(self, wallet):
        owner = object()
        wallet.claim(owner)
        wallet.release(object())
        assert wallet.in_flight


class TestRestoreFailures:
    @pytest.mark.asyncio
    async def test_corrupt_store_file(self, provider, tmp_path):
        path = tmp_path / "wallet.json"
        path.write_text("{not json")
        signer = WalletSigner(provider, store=JsonConnectionStore(path))
        assert await signer.restore() is False
        assert signer.info == WalletInfo()

    @pytest.mark.asyncio
    async def test_unexpected_store_payload(self, provider, tmp_path):
        path = tmp_path / "wallet.json"
        path.write_text("[1, 2]")
        signer = WalletSigner(provider, store=JsonConnectionStore(path))
        assert await signer.restore() is False

    @pytest.mark.asyncio
    async def test_unwritable_store(self, provider, tmp_path):
        class ReadOnlyStore(JsonConnectionStore):
            def save(self, address):
                raise OSError("read-only file system")

        store = ReadOnlyStore(tmp_path / "wallet.json")
        JsonConnectionStore(store.path).save("1previous")
        signer = WalletSigner(provider, store=store)

        assert await signer.restore() is False
        assert not signer.connected
