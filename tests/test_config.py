"""Tests for settings and the policy derived from them."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from brewmaster_escrow.config import Settings
from brewmaster_escrow.services.escrow_service import EscrowPolicy


def test_defaults() -> None:
    settings = Settings(_env_file=None)

    assert settings.escrow_max_retries == 3
    assert settings.escrow_retry_backoff_seconds == 2.0
    assert settings.simulated_payment_success_rate == 0.90
    assert settings.simulated_release_success_rate == 0.95
    assert settings.store_backend == "memory"
    assert settings.is_development


def test_environment_overrides(monkeypatch) -> None:
    monkeypatch.setenv("ESCROW_MAX_RETRIES", "5")
    monkeypatch.setenv("ESCROW_RETRY_BACKOFF_SECONDS", "0.5")
    monkeypatch.setenv("APP_ENV", "production")

    settings = Settings(_env_file=None)
    policy = EscrowPolicy.from_settings(settings)

    assert policy.max_retries == 5
    assert policy.retry_backoff_seconds == 0.5
    assert not settings.is_development


def test_invalid_success_rate_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("SIMULATED_PAYMENT_SUCCESS_RATE", "1.5")

    with pytest.raises(ValidationError):
        Settings(_env_file=None)
