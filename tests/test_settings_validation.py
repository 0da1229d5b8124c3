from __future__ import annotations

import pytest

from settings import settings, validate_env_settings


def test_validate_env_allows_dev_missing(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "dev", raising=False)
    monkeypatch.setattr(settings, "IOU_STORE_BACKEND", "postgres", raising=False)
    monkeypatch.setattr(settings, "DATABASE_URL", "", raising=False)
    monkeypatch.setattr(settings, "ADMIN_API_KEY", "", raising=False)
    validate_env_settings()


def test_validate_env_prod_fails_on_missing(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "prod", raising=False)
    monkeypatch.setattr(settings, "IOU_STORE_BACKEND", "postgres", raising=False)
    monkeypatch.setattr(settings, "DATABASE_URL", "", raising=False)
    monkeypatch.setattr(settings, "ADMIN_API_KEY", "", raising=False)

    with pytest.raises(RuntimeError) as exc:
        validate_env_settings()

    message = str(exc.value)
    assert "DATABASE_URL" in message
    assert "ADMIN_API_KEY" in message


def test_validate_env_real_settlement_needs_chain_config(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "staging", raising=False)
    monkeypatch.setattr(settings, "IOU_STORE_BACKEND", "memory", raising=False)
    monkeypatch.setattr(settings, "ADMIN_API_KEY", "a" * 32, raising=False)
    monkeypatch.setattr(settings, "SETTLEMENT_MODE", "real", raising=False)
    monkeypatch.setattr(settings, "CONTRACT_ADDRESS", "", raising=False)
    monkeypatch.setattr(settings, "RELAYER_PRIVATE_KEY", "", raising=False)

    with pytest.raises(RuntimeError) as exc:
        validate_env_settings()

    message = str(exc.value)
    assert "CONTRACT_ADDRESS" in message
    assert "RELAYER_PRIVATE_KEY" in message
    assert "DATABASE_URL" not in message


def test_validate_env_prod_passes_when_configured(monkeypatch):
    monkeypatch.setattr(settings, "ENV", "prod", raising=False)
    monkeypatch.setattr(settings, "IOU_STORE_BACKEND", "postgres", raising=False)
    monkeypatch.setattr(settings, "DATABASE_URL", "postgresql://example", raising=False)
    monkeypatch.setattr(settings, "ADMIN_API_KEY", "a" * 32, raising=False)
    monkeypatch.setattr(settings, "SETTLEMENT_MODE", "sandbox", raising=False)
    validate_env_settings()
