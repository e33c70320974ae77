"""
Runtime configuration.

Defaults live on the dataclass; ``from_env`` applies PASARELA_* overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from .accessibility import DEFAULT_DETAIL_LEVEL, DEFAULT_LANGUAGE, DetailLevel, Language
from .models import Network


DEFAULT_HOME = Path.home() / ".pasarela"
DEFAULT_FACILITATOR_URL = "https://facilitador-bsv-x402-accesible.com"
DEFAULT_RESOURCE_SERVER_URL = "https://x402-resource-server-accesible-prod.com"
DEFAULT_STATUS_URL = "https://api.whatsonchain.com/v1/bsv"


@dataclass
class PasarelaConfig:
    home: Path = field(default_factory=lambda: DEFAULT_HOME)
    language: Language = DEFAULT_LANGUAGE
    detail_level: DetailLevel = DEFAULT_DETAIL_LEVEL
    network: Network = Network.TESTNET
    facilitator_url: str = DEFAULT_FACILITATOR_URL
    resource_server_url: str = DEFAULT_RESOURCE_SERVER_URL
    status_url: str = DEFAULT_STATUS_URL
    http_timeout_seconds: float = 30.0

    @property
    def history_path(self) -> Path:
        return self.home / "history.jsonl"

    @property
    def history_key_path(self) -> Path:
        return self.home / "secrets" / "history_hmac.key"

    @property
    def connection_path(self) -> Path:
        return self.home / "wallet.json"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PasarelaConfig":
        env = os.environ if environ is None else environ
        config = cls()
        if env.get("PASARELA_HOME"):
            config.home = Path(env["PASARELA_HOME"]).expanduser()
        if env.get("PASARELA_LANGUAGE"):
            config.language = Language(env["PASARELA_LANGUAGE"].lower())
        if env.get("PASARELA_DETAIL_LEVEL"):
            config.detail_level = DetailLevel(env["PASARELA_DETAIL_LEVEL"].lower())
        if env.get("PASARELA_NETWORK"):
            config.network = Network(env["PASARELA_NETWORK"].lower())
        if env.get("PASARELA_FACILITATOR_URL"):
            config.facilitator_url = env["PASARELA_FACILITATOR_URL"].rstrip("/")
        if env.get("PASARELA_RESOURCE_SERVER_URL"):
            config.resource_server_url = env["PASARELA_RESOURCE_SERVER_URL"].rstrip("/")
        if env.get("PASARELA_STATUS_URL"):
            config.status_url = env["PASARELA_STATUS_URL"].rstrip("/")
        if env.get("PASARELA_HTTP_TIMEOUT"):
            config.http_timeout_seconds = float(env["PASARELA_HTTP_TIMEOUT"])
        return config
