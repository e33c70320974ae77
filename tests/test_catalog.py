"""Tests for the service catalog, money helpers and configuration."""

from decimal import Decimal
from pathlib import Path

import pytest

from pasarela.accessibility import DetailLevel, Language
from pasarela.catalog import (
    MUNICIPAL_SERVICES,
    Service,
    ServiceCategory,
    get_service,
    resource_path,
    search_services,
    service_for_path,
    services_by_category,
)
from pasarela.config import DEFAULT_FACILITATOR_URL, PasarelaConfig
from pasarela.models import Network
from pasarela.money import format_eur, format_sats, sats_to_bsv, to_eur, to_sats


class TestCatalog:
    def test_ids_unique(self):
        ids = [s.id for s in MUNICIPAL_SERVICES]
        assert len(ids) == len(set(ids)) == 12

    def test_lookup(self):
        ibi = get_service("ibi-2024")
        assert ibi.price == 50_000
        assert ibi.price_eur == Decimal("25.50")
        assert ibi.category is ServiceCategory.TAXES
        assert ibi.name.get(Language.EN) == "Real Estate Tax (IBI) 2024"
        assert get_service("nope") is None

    def test_free_service(self):
        assert get_service("registry").price == 0

    def test_by_category(self):
        fines = services_by_category("fines")
        assert {s.id for s in fines} == {"traffic-fine", "admin-fine"}
        assert all(not s.requires_auth for s in fines)

    def test_search_is_localized(self):
        assert [s.id for s in search_services("AGUA", Language.ES)] == ["water"]
        assert search_services("agua", Language.EN) == []
        assert "traffic-fine" in [s.id for s in search_services("fine", Language.EN)]

    def test_resource_paths(self):
        water = get_service("water")
        assert resource_path(water) == "/api/services/water"
        assert service_for_path("/api/services/water") is water
        assert service_for_path("/api/other/water") is None

    def test_service_dict_round_trip(self):
        for service in MUNICIPAL_SERVICES:
            assert Service.from_dict(service.to_dict()) == service


class TestMoney:
    def test_format(self):
        assert format_sats(50_000) == "50,000 sats"
        assert format_eur(Decimal("25.5")) == "25.50 €"
        assert format_eur("0") == "0.00 €"

    def test_eur_rounds_half_up(self):
        assert to_eur("12.745") == Decimal("12.75")

    def test_sats(self):
        assert to_sats("50000") == 50_000
        assert sats_to_bsv(50_000) == Decimal("0.0005")
        with pytest.raises(ValueError):
            to_sats("1.5")
        with pytest.raises(ValueError):
            to_sats(-1)


class TestConfig:
    def test_defaults(self):
        config = PasarelaConfig.from_env({})
        assert config.language is Language.ES
        assert config.detail_level is DetailLevel.STANDARD
        assert config.network is Network.TESTNET
        assert config.facilitator_url == DEFAULT_FACILITATOR_URL

    def test_env_overrides(self):
        config = PasarelaConfig.from_env(
            {
                "PASARELA_HOME": "/tmp/pasarela-test",
                "PASARELA_LANGUAGE": "EN",
                "PASARELA_DETAIL_LEVEL": "technical",
                "PASARELA_NETWORK": "mainnet",
                "PASARELA_FACILITATOR_URL": "http://localhost:8000/",
                "PASARELA_HTTP_TIMEOUT": "5",
            }
        )
        assert config.home == Path("/tmp/pasarela-test")
        assert config.history_path == Path("/tmp/pasarela-test/history.jsonl")
        assert config.language is Language.EN
        assert config.detail_level is DetailLevel.TECHNICAL
        assert config.network is Network.MAINNET
        assert config.facilitator_url == "http://localhost:8000"
        assert config.http_timeout_seconds == 5.0

    def test_invalid_language(self):
        with pytest.raises(ValueError):
            PasarelaConfig.from_env({"PASARELA_LANGUAGE": "fr"})
