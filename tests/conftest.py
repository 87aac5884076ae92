"""Shared test fixtures for the escrow engine test suite.

Provides:
    - A scripted payment gateway whose outcomes are decided by the test
    - A deterministic clock and a non-blocking, recording sleep
    - An engine wired to an in-memory document store
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from brewmaster_escrow.domain.enums import PaymentMethod
from brewmaster_escrow.domain.protocols import GatewayResult
from brewmaster_escrow.infrastructure.memory_store import InMemoryDocumentStore
from brewmaster_escrow.services.escrow_service import EscrowEngine, EscrowPolicy

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class ScriptedPaymentGateway:
    """PaymentGateway whose outcomes are queued by the test.

    When a queue is empty the call succeeds.
    """

    def __init__(self) -> None:
        self.collect_outcomes: list[GatewayResult] = []
        self.release_outcomes: list[GatewayResult] = []
        self.collect_calls: list[str] = []
        self.release_calls: list[str] = []

    def fail_collections(self, count: int, reason: str = "Payment gateway timeout") -> None:
        self.collect_outcomes.extend(GatewayResult.failed(reason) for _ in range(count))

    def fail_releases(self, count: int, reason: str = "Fund transfer failed") -> None:
        self.release_outcomes.extend(GatewayResult.failed(reason) for _ in range(count))

    async def collect_payment(self, transaction) -> GatewayResult:
        self.collect_calls.append(transaction.id)
        if self.collect_outcomes:
            return self.collect_outcomes.pop(0)
        return GatewayResult.ok(f"collect-{len(self.collect_calls)}")

    async def release_funds(self, transaction) -> GatewayResult:
        self.release_calls.append(transaction.id)
        if self.release_outcomes:
            return self.release_outcomes.pop(0)
        return GatewayResult.ok(f"release-{len(self.release_calls)}")


class FakeClock:
    """Clock that moves forward one second every time it is read."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 3, 1, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.current += timedelta(seconds=1)
        return self.current


class RecordingSleep:
    """Async sleep replacement that records delays and returns immediately."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def gateway() -> ScriptedPaymentGateway:
    return ScriptedPaymentGateway()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def policy() -> EscrowPolicy:
    return EscrowPolicy(
        max_retries=3,
        retry_backoff_seconds=2.0,
        payment_attempt_timeout_seconds=1.0,
        release_timeout_seconds=1.0,
    )


@pytest.fixture
def engine(store, gateway, policy, clock, sleep) -> EscrowEngine:
    return EscrowEngine(store, gateway, policy=policy, clock=clock, sleep=sleep)


@pytest.fixture
def purchase() -> dict:
    """Return valid create_transaction arguments."""
    return {
        "buyer_id": "buyer-B",
        "farmer_id": "farmer-F",
        "listing_id": "listing-L",
        "amount": Decimal("150"),
        "payment_method": PaymentMethod.MPESA,
    }
