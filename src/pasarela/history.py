"""
Local payment history.

Confirmed payments are appended as JSONL entries with an HMAC hash chain so
edits to earlier receipts are detected when the history is read back.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import os
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from .models import PaymentConfirmation, TransferRecord
from .storage import ensure_private_dir, ensure_private_file


DEFAULT_HISTORY_PATH = Path.home() / ".pasarela" / "history.jsonl"
DEFAULT_HISTORY_KEY_PATH = Path.home() / ".pasarela" / "secrets" / "history_hmac.key"


@dataclass(frozen=True)
class HistoryEntry:
    """One settled payment as persisted locally."""

    payer: Optional[str]
    recorded_at: float
    confirmation: PaymentConfirmation
    transfer: Optional[TransferRecord] = None

    def payload(self) -> dict[str, Any]:
        return {
            "payer": self.payer,
            "recorded_at": self.recorded_at,
            "confirmation": self.confirmation.to_dict(),
            "transfer": self.transfer.to_dict() if self.transfer else None,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "HistoryEntry":
        transfer = data.get("transfer")
        return cls(
            payer=data.get("payer"),
            recorded_at=float(data["recorded_at"]),
            confirmation=PaymentConfirmation.from_dict(data["confirmation"]),
            transfer=TransferRecord.from_dict(transfer) if transfer else None,
        )


class PaymentHistory:
    """Tamper-evident append-only payment log."""

    def __init__(
        self,
        path: Optional[Path] = None,
        key_path: Optional[Path] = None,
    ):
        self.path = path or DEFAULT_HISTORY_PATH
        self.key_path = key_path or DEFAULT_HISTORY_KEY_PATH

        ensure_private_dir(self.path.parent)
        ensure_private_dir(self.key_path.parent)
        ensure_private_file(self.path)

        self._hmac_key = self._load_or_create_key()
        self._last_hash = self._scan_last_hash()

    def _load_or_create_key(self) -> bytes:
        env_key = os.getenv("PASARELA_HISTORY_HMAC_KEY")
        if env_key:
            return env_key.encode()
        if self.key_path.exists() and self.key_path.stat().st_size > 0:
            return self.key_path.read_bytes().strip()
        key = secrets.token_hex(32).encode()
        self.key_path.write_bytes(key)
        ensure_private_file(self.key_path)
        return key

    def _scan_last_hash(self) -> str:
        last = ""
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                if line.strip():
                    last = json.loads(line).get("entry_hash", "")
        return last

    def _entry_hash(self, payload: dict, prev_hash: str) -> str:
        canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        digest = hmac.new(self._hmac_key, f"{prev_hash}|{canonical}".encode(), hashlib.sha256)
        return digest.hexdigest()

    def record(
        self,
        confirmation: PaymentConfirmation,
        transfer: Optional[TransferRecord] = None,
        payer: Optional[str] = None,
    ) -> HistoryEntry:
        entry = HistoryEntry(
            payer=payer,
            recorded_at=time.time(),
            confirmation=confirmation,
            transfer=transfer,
        )
        payload = entry.payload()
        prev_hash = self._last_hash
        current_hash = self._entry_hash(payload, prev_hash)

        line = json.dumps(
            {**payload, "prev_hash": prev_hash or None, "entry_hash": current_hash},
            separators=(",", ":"),
        )
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())

        self._last_hash = current_hash
        return entry

    def entries(self, payer: Optional[str] = None, limit: int = 100) -> list[HistoryEntry]:
        """Verified entries, newest payment first."""
        entries: list[HistoryEntry] = []
        expected_prev = ""
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                raw = json.loads(line)
                payload = {k: v for k, v in raw.items() if k not in {"prev_hash", "entry_hash"}}
                prev_hash = raw.get("prev_hash") or ""
                entry_hash = raw.get("entry_hash") or ""
                if prev_hash != expected_prev:
                    raise RuntimeError("History chain broken: previous hash mismatch")
                if not hmac.compare_digest(self._entry_hash(payload, prev_hash), entry_hash):
                    raise RuntimeError("History chain broken: entry hash mismatch")
                expected_prev = entry_hash

                if payer and raw.get("payer") != payer:
                    continue
                entries.append(HistoryEntry.from_payload(payload))

        entries.sort(key=lambda e: e.confirmation.timestamp, reverse=True)
        return entries[:limit]
