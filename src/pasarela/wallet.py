"""
Wallet signer — holds the balance and authorizes transfers.

The signer never fabricates funds or signatures itself; it fronts a
WalletProvider (the simulated BSV wallet by default) and keeps the
read-only WalletInfo snapshot the UI layer displays.

Only one payment session may hold a wallet at a time. Sessions claim the
signer before requesting a resource and release it when they reach a
terminal state, so the ledger is never debited by two flows at once.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol

from .errors import (
    InsufficientFundsError,
    NoProviderError,
    NotConnectedError,
    SessionInProgressError,
    UserRejectedError,
    WalletError,
)
from .faults import SIGN, FaultPolicy, NoFaults
from .models import Network, TransferDraft, TransferInput, TransferRecord, WalletInfo
from .storage import read_json, write_json_atomic

logger = logging.getLogger(__name__)


_BASE58 = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"

MIN_SEED_BALANCE = 100_000
MAX_SEED_BALANCE = 1_100_000


class WalletProvider(Protocol):
    async def request_accounts(self) -> list[str]:
        ...

    async def get_balance(self) -> int:
        ...

    async def sign_transaction(self, draft: TransferDraft) -> tuple[TransferRecord, int]:
        """Sign and debit; returns the record and the balance left after the debit."""
        ...

    def disconnect(self) -> None:
        ...


@dataclass
class Ledger:
    """In-memory balance for one wallet identity."""

    address: str
    balance: int

    def __post_init__(self):
        if self.balance < 0:
            raise ValueError(f"Ledger balance cannot be negative: {self.balance}")

    def debit(self, amount: int) -> int:
        if amount < 0:
            raise ValueError(f"Debit amount cannot be negative: {amount}")
        if amount > self.balance:
            raise InsufficientFundsError(required=amount, available=self.balance)
        self.balance -= amount
        return self.balance


class SimulatedWalletProvider:
    """Mock BSV wallet with seeded addresses, balances and signatures."""

    CONNECT_DELAY = 1.0
    BALANCE_DELAY = 0.3
    SIGN_DELAY = 1.5

    def __init__(
        self,
        initial_balance: Optional[int] = None,
        faults: Optional[FaultPolicy] = None,
        rng: Optional[random.Random] = None,
        latency_scale: float = 1.0,
    ):
        if initial_balance is not None and initial_balance < 0:
            raise ValueError(f"Initial balance cannot be negative: {initial_balance}")
        self.initial_balance = initial_balance
        self.faults = faults or NoFaults()
        self.latency_scale = latency_scale
        self._rng = rng or random.Random()
        self.ledger: Optional[Ledger] = None

    async def request_accounts(self) -> list[str]:
        await self._delay(self.CONNECT_DELAY)
        balance = self.initial_balance
        if balance is None:
            balance = self._rng.randrange(MIN_SEED_BALANCE, MAX_SEED_BALANCE)
        self.ledger = Ledger(address=self._new_address(), balance=balance)
        return [self.ledger.address]

    async def get_balance(self) -> int:
        ledger = self._require_ledger()
        await self._delay(self.BALANCE_DELAY)
        return ledger.balance

    async def sign_transaction(self, draft: TransferDraft) -> tuple[TransferRecord, int]:
        ledger = self._require_ledger()
        await self._delay(self.SIGN_DELAY)

        if self.faults.should_fail(SIGN):
            raise UserRejectedError()

        inputs = draft.inputs or (
            TransferInput(txid=self._new_txid(), vout=0, satoshis=ledger.balance),
        )
        record = TransferRecord(
            txid=self._new_txid(),
            rawtx=self._new_rawtx(),
            inputs=tuple(inputs),
            outputs=tuple(draft.outputs),
            fee=draft.fee,
        )
        remaining = ledger.debit(record.total_output + record.fee)
        return record, remaining

    def disconnect(self) -> None:
        self.ledger = None

    def _require_ledger(self) -> Ledger:
        if self.ledger is None:
            raise NotConnectedError()
        return self.ledger

    async def _delay(self, seconds: float) -> None:
        if self.latency_scale > 0:
            await asyncio.sleep(seconds * self.latency_scale)

    def _new_address(self) -> str:
        return "1" + "".join(self._rng.choice(_BASE58) for _ in range(33))

    def _new_txid(self) -> str:
        return f"{self._rng.getrandbits(256):064x}"

    def _new_rawtx(self) -> str:
        return "01000000" + f"{self._rng.getrandbits(800):0200x}"


class ConnectionStore(Protocol):
    def load(self) -> Optional[dict[str, Any]]:
        ...

    def save(self, address: str) -> None:
        ...

    def clear(self) -> None:
        ...


class JsonConnectionStore:
    """Remembers the last connection so the wallet can reconnect on startup."""

    def __init__(self, path: Path):
        self.path = path

    def load(self) -> Optional[dict[str, Any]]:
        return read_json(self.path)

    def save(self, address: str) -> None:
        write_json_atomic(self.path, {"connected": True, "address": address})

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class WalletSigner:
    """Connection state, balance and transfer authorization for one wallet."""

    def __init__(
        self,
        provider: Optional[WalletProvider] = None,
        network: Network = Network.TESTNET,
        store: Optional[ConnectionStore] = None,
    ):
        self.provider = provider
        self.network = network
        self.store = store
        self._info = WalletInfo(network=network)
        self._owner: Optional[object] = None

    @property
    def info(self) -> WalletInfo:
        return self._info

    @property
    def connected(self) -> bool:
        return self._info.connected

    @property
    def in_flight(self) -> bool:
        return self._owner is not None

    async def connect(self) -> WalletInfo:
        if self.provider is None:
            raise NoProviderError()
        if self.connected:
            return self._info

        accounts = await self.provider.request_accounts()
        if not accounts:
            raise WalletError("Could not get access to the wallet.")
        address = accounts[0]
        balance = await self.provider.get_balance()

        self._info = WalletInfo(connected=True, address=address, balance=balance, network=self.network)
        if self.store is not None:
            self.store.save(address)
        logger.info("Wallet connected: %s (balance: %d sats)", address, balance)
        return self._info

    def disconnect(self) -> None:
        was_connected = self.connected
        if self.provider is not None:
            self.provider.disconnect()
        self._info = WalletInfo(network=self.network)
        if self.store is not None:
            self.store.clear()
        if was_connected:
            logger.info("Wallet disconnected")

    async def get_balance(self) -> int:
        if not self.connected or self.provider is None:
            raise NotConnectedError()
        balance = await self.provider.get_balance()
        self._set_balance(balance)
        return balance

    async def sign_transfer(self, draft: TransferDraft) -> TransferRecord:
        if not self.connected or self.provider is None:
            raise NotConnectedError()

        record, balance = await self.provider.sign_transaction(draft)
        self._set_balance(balance)
        logger.info(
            "Transfer signed: %s (%d sats + %d fee, balance now %d)",
            record.txid,
            record.total_output,
            record.fee,
            self._info.balance,
        )
        return record

    async def restore(self) -> bool:
        """Reconnect if the store remembers a connected wallet. Never raises."""
        if self.store is None:
            return False
        try:
            state = self.store.load()
            if not isinstance(state, dict) or not state.get("connected"):
                return False
            await self.connect()
        except (WalletError, OSError, ValueError) as e:
            logger.warning("Wallet restoration failed: %s", e)
            self._info = WalletInfo(network=self.network)
            return False
        return True

    def claim(self, owner: object) -> None:
        """Reserve the wallet for one payment session."""
        if self._owner is not None and self._owner is not owner:
            raise SessionInProgressError()
        self._owner = owner

    def release(self, owner: object) -> None:
        if self._owner is owner:
            self._owner = None

    def _set_balance(self, balance: int) -> None:
        self._info = WalletInfo(
            connected=self._info.connected,
            address=self._info.address,
            balance=balance,
            network=self.network,
        )
