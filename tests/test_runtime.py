"""Tests for runtime wiring of stores, locks and the engine."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from brewmaster_escrow.config import Settings
from brewmaster_escrow.domain.enums import TransactionStatus
from brewmaster_escrow.domain.exceptions import PaymentFailedError, RetryExhaustedError
from brewmaster_escrow.infrastructure import redis_client
from brewmaster_escrow.infrastructure.database import engine as db_engine_module
from brewmaster_escrow.infrastructure.locks import RedisLockProvider
from brewmaster_escrow.runtime import escrow_runtime


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, app_log_level="WARNING", **overrides)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides",
    [
        {"store_backend": "memory"},
        {"store_backend": "sql", "database_url": "sqlite+aiosqlite:///:memory:"},
    ],
)
async def test_runtime_builds_working_engine(overrides, gateway) -> None:
    async with escrow_runtime(_settings(**overrides), gateway=gateway) as engine:
        tx = await engine.create_transaction(
            buyer_id="b", farmer_id="f", listing_id="l", amount=Decimal("5"), payment_method="mpesa"
        )
        held = await engine.attempt_payment(tx.id)

    assert held.status == TransactionStatus.FUNDS_HELD
    assert engine.policy.max_retries == 3


@pytest.mark.asyncio
async def test_runtime_uses_redis_locks(monkeypatch, gateway) -> None:
    fake_redis = MagicMock()
    init_redis = AsyncMock(return_value=fake_redis)
    close_redis = AsyncMock()
    monkeypatch.setattr(redis_client, "init_redis", init_redis)
    monkeypatch.setattr(redis_client, "close_redis", close_redis)

    settings = _settings(lock_backend="redis", redis_url="redis://cache:6379/1")
    async with escrow_runtime(settings, gateway=gateway) as engine:
        assert isinstance(engine._locks, RedisLockProvider)

    init_redis.assert_awaited_once_with("redis://cache:6379/1")
    close_redis.assert_awaited_once()


@pytest.mark.asyncio
async def test_runtime_gateway_uses_given_rates() -> None:
    settings = _settings(
        escrow_max_retries=0,
        simulated_payment_success_rate=0.0,
        simulated_release_success_rate=1.0,
    )
    async with escrow_runtime(settings) as engine:
        for _ in range(5):
            tx = await engine.create_transaction(
                buyer_id="b", farmer_id="f", listing_id="l", amount=Decimal("5"), payment_method="mpesa"
            )
            with pytest.raises(RetryExhaustedError):
                await engine.attempt_payment(tx.id)


@pytest.mark.asyncio
async def test_runtime_release_rate_from_settings() -> None:
    settings = _settings(
        simulated_payment_success_rate=1.0,
        simulated_release_success_rate=0.0,
    )
    async with escrow_runtime(settings) as engine:
        tx = await engine.create_transaction(
            buyer_id="b", farmer_id="f", listing_id="l", amount=Decimal("5"), payment_method="mpesa"
        )
        await engine.attempt_payment(tx.id)
        await engine.confirm_delivery(tx.id)
        with pytest.raises(PaymentFailedError):
            await engine.confirm_receipt_and_release(tx.id)


@pytest.mark.asyncio
async def test_startup_failure_disposes_database(monkeypatch, gateway) -> None:
    db_engine = MagicMock()
    db_engine.dispose = AsyncMock()
    monkeypatch.setattr(db_engine_module, "create_engine_for_url", MagicMock(return_value=db_engine))
    monkeypatch.setattr(
        redis_client, "init_redis", AsyncMock(side_effect=ConnectionError("redis unreachable"))
    )
    close_redis = AsyncMock()
    monkeypatch.setattr(redis_client, "close_redis", close_redis)

    settings = _settings(
        app_env="production",
        store_backend="sql",
        database_url="postgresql+asyncpg://u:p@db:5432/escrow",
        lock_backend="redis",
    )
    with pytest.raises(ConnectionError):
        async with escrow_runtime(settings, gateway=gateway):
            pass

    db_engine.dispose.assert_awaited_once()
    close_redis.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_disposes_database(monkeypatch, gateway) -> None:
    db_engine = MagicMock()
    db_engine.dispose = AsyncMock()
    monkeypatch.setattr(db_engine_module, "create_engine_for_url", MagicMock(return_value=db_engine))

    settings = _settings(
        app_env="production",
        store_backend="sql",
        database_url="postgresql+asyncpg://u:p@db:5432/escrow",
    )
    async with escrow_runtime(settings, gateway=gateway):
        db_engine.dispose.assert_not_awaited()

    db_engine.dispose.assert_awaited_once()
