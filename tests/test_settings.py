from __future__ import annotations

import pytest
from pydantic import ValidationError

from hotel_aggregator.config.settings import Settings


def test_settings_parses_provider_endpoints_and_creates_directories(tmp_path):
    settings = Settings(
        log_dir=tmp_path / "logs",
        sqlite_path=tmp_path / "db" / "aggregator.sqlite3",
        provider_endpoints='[{"name": "amadeus", "base_url": "https://a.example"},'
        ' {"name": "hotelbeds", "base_url": "https://h.example", "api_key": "k"}]',
    )

    assert settings.provider_names() == ["amadeus", "hotelbeds"]
    assert settings.provider_endpoints[1].api_key == "k"
    assert settings.provider_timeout_s == 15.0
    assert settings.match_accept_threshold == pytest.approx(0.90)
    assert settings.match_advertise_threshold == pytest.approx(0.99)

    settings.ensure_directories()
    assert settings.log_dir.exists()
    assert settings.sqlite_path.parent.exists()


def test_settings_reads_prefixed_environment(monkeypatch):
    monkeypatch.setenv("AGGREGATOR_OFFER_CACHE_TTL_S", "60")
    monkeypatch.setenv("AGGREGATOR_KV_REST_API_URL", "https://kv.example")
    monkeypatch.setenv("AGGREGATOR_KV_REST_API_TOKEN", "secret")

    settings = Settings()

    assert settings.offer_cache_ttl_s == 60
    assert settings.kv_rest_configured()


def test_settings_kv_requires_url_and_token():
    assert not Settings(kv_rest_api_url="https://kv.example").kv_rest_configured()


def test_settings_rejects_thresholds_outside_unit_interval():
    with pytest.raises(ValidationError):
        Settings(match_accept_threshold=1.5)
    with pytest.raises(ValidationError):
        Settings(provider_timeout_s=0)


def test_settings_validates_assignments(tmp_path):
    settings = Settings(log_dir=tmp_path / "logs", sqlite_path=tmp_path / "a.sqlite3")

    settings.sqlite_path = str(tmp_path / "db" / "b.sqlite3")
    settings.provider_endpoints = [{"name": "expedia", "base_url": "https://e.example"}]

    assert settings.sqlite_path == tmp_path / "db" / "b.sqlite3"
    assert settings.provider_endpoints[0].name == "expedia"
    assert settings.provider_names() == ["expedia"]
    settings.ensure_directories()
    assert settings.sqlite_path.parent.exists()

    with pytest.raises(ValidationError):
        settings.match_accept_threshold = 1.5
    with pytest.raises(ValidationError):
        settings.provider_timeout_s = 0
