"""Tests for payment collection with bounded retries.

The scripted gateway decides which attempts fail; RecordingSleep captures
the backoff delays without actually waiting.
"""

from __future__ import annotations

import asyncio

import pytest

from brewmaster_escrow.domain.enums import TransactionStatus
from brewmaster_escrow.domain.exceptions import (
    InvalidTransitionError,
    RetryExhaustedError,
    StoreError,
)
from brewmaster_escrow.domain.protocols import GatewayResult
from brewmaster_escrow.infrastructure.memory_store import InMemoryDocumentStore
from brewmaster_escrow.services.escrow_service import (
    GATEWAY_ERROR_REASON,
    RETRIES_EXHAUSTED_REASON,
    EscrowEngine,
    EscrowPolicy,
)


class RecordingStore(InMemoryDocumentStore):
    """In-memory store that keeps every partial update it receives."""

    def __init__(self) -> None:
        super().__init__()
        self.updates: list[dict] = []

    async def update(self, collection, doc_id, fields) -> None:
        self.updates.append(dict(fields))
        await super().update(collection, doc_id, fields)


class BrokenUpdateStore(InMemoryDocumentStore):
    """In-memory store whose updates always fail."""

    async def update(self, collection, doc_id, fields) -> None:
        raise RuntimeError("connection reset")


class BlockingSleep:
    """Sleep that never returns, so a test can cancel mid-backoff."""

    def __init__(self) -> None:
        self.entered = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        self.entered.set()
        await asyncio.Event().wait()


class TestRetrySequence:
    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self, engine, gateway, sleep, purchase) -> None:
        tx = await engine.create_transaction(**purchase)
        gateway.fail_collections(2)

        held = await engine.attempt_payment(tx.id)

        assert held.status == TransactionStatus.FUNDS_HELD
        assert held.retry_count == 2
        assert held.failure_reason == "Payment gateway timeout"
        assert len(gateway.collect_calls) == 3
        assert sleep.delays == [2.0, 2.0]
        assert list(held.status_history) == ["pending", "fundsHeld"]

    @pytest.mark.asyncio
    async def test_exhaustion_cancels_transaction(self, engine, gateway, sleep, purchase) -> None:
        tx = await engine.create_transaction(**purchase)
        gateway.fail_collections(10, "Insufficient balance")

        with pytest.raises(RetryExhaustedError) as exc_info:
            await engine.attempt_payment(tx.id)

        err = exc_info.value
        assert err.transaction_id == tx.id
        assert err.retry_count == 3
        assert err.last_failure_reason == "Insufficient balance"
        assert err.current_status == "cancelled"

        stored = await engine.get_transaction(tx.id)
        assert stored.status == TransactionStatus.CANCELLED
        assert stored.retry_count == 3
        assert stored.failure_reason == RETRIES_EXHAUSTED_REASON
        assert list(stored.status_history) == ["pending", "cancelled"]
        assert len(gateway.collect_calls) == 4
        assert sleep.delays == [2.0, 2.0, 2.0]

    @pytest.mark.asyncio
    async def test_retry_count_is_monotonic_and_bounded(
        self, gateway, policy, clock, sleep, purchase
    ) -> None:
        store = RecordingStore()
        engine = EscrowEngine(store, gateway, policy=policy, clock=clock, sleep=sleep)
        tx = await engine.create_transaction(**purchase)
        gateway.fail_collections(10)

        with pytest.raises(RetryExhaustedError):
            await engine.attempt_payment(tx.id)

        counts = [u["retryCount"] for u in store.updates if "retryCount" in u]
        assert counts == [1, 2, 3]
        assert max(counts) <= policy.max_retries

    @pytest.mark.asyncio
    async def test_zero_retries_cancels_on_first_failure(
        self, store, gateway, clock, sleep, purchase
    ) -> None:
        engine = EscrowEngine(
            store, gateway, policy=EscrowPolicy(max_retries=0), clock=clock, sleep=sleep
        )
        tx = await engine.create_transaction(**purchase)
        gateway.fail_collections(1)

        with pytest.raises(RetryExhaustedError) as exc_info:
            await engine.attempt_payment(tx.id)

        assert exc_info.value.retry_count == 0
        assert sleep.delays == []
        assert (await engine.get_transaction(tx.id)).status == TransactionStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_timeout_counts_as_failed_attempt(
        self, store, gateway, clock, sleep, purchase
    ) -> None:
        engine = EscrowEngine(
            store,
            gateway,
            policy=EscrowPolicy(payment_attempt_timeout_seconds=0.01),
            clock=clock,
            sleep=sleep,
        )
        tx = await engine.create_transaction(**purchase)
        original_collect = gateway.collect_payment
        calls = 0

        async def hang_once(transaction) -> GatewayResult:
            nonlocal calls
            calls += 1
            if calls == 1:
                await asyncio.sleep(10)
            return await original_collect(transaction)

        gateway.collect_payment = hang_once

        held = await engine.attempt_payment(tx.id)

        assert held.status == TransactionStatus.FUNDS_HELD
        assert held.retry_count == 1
        assert held.failure_reason == "Payment gateway timeout"
        assert calls == 2

    @pytest.mark.asyncio
    async def test_gateway_exception_counts_as_failed_attempt(
        self, engine, gateway, sleep, purchase
    ) -> None:
        tx = await engine.create_transaction(**purchase)
        original_collect = gateway.collect_payment
        calls = 0

        async def raise_once(transaction) -> GatewayResult:
            nonlocal calls
            calls += 1
            if calls == 1:
                raise ConnectionError("mobile money API unreachable")
            return await original_collect(transaction)

        gateway.collect_payment = raise_once

        held = await engine.attempt_payment(tx.id)

        assert held.status == TransactionStatus.FUNDS_HELD
        assert held.retry_count == 1
        assert held.failure_reason == GATEWAY_ERROR_REASON
        assert sleep.delays == [2.0]


class TestInterruption:
    @pytest.mark.asyncio
    async def test_cancelling_task_leaves_record_resumable(
        self, store, gateway, policy, clock, purchase
    ) -> None:
        blocking = BlockingSleep()
        engine = EscrowEngine(store, gateway, policy=policy, clock=clock, sleep=blocking)
        tx = await engine.create_transaction(**purchase)
        gateway.fail_collections(1)

        task = engine.start_payment(tx.id)
        await blocking.entered.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        stored = await engine.get_transaction(tx.id)
        assert stored.status == TransactionStatus.PENDING
        assert stored.retry_count == 1
        assert len(gateway.collect_calls) == 1

        held = await engine.attempt_payment(tx.id)
        assert held.status == TransactionStatus.FUNDS_HELD
        assert held.retry_count == 1

    @pytest.mark.asyncio
    async def test_start_payment_returns_result(self, engine, purchase) -> None:
        tx = await engine.create_transaction(**purchase)

        held = await engine.start_payment(tx.id)

        assert held.status == TransactionStatus.FUNDS_HELD

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_stops_retrying(
        self, store, gateway, policy, clock, purchase
    ) -> None:
        pending_ids: list[str] = []

        async def cancel_then_return(delay: float) -> None:
            await engine.cancel_transaction(pending_ids[0])

        engine = EscrowEngine(store, gateway, policy=policy, clock=clock, sleep=cancel_then_return)
        tx = await engine.create_transaction(**purchase)
        pending_ids.append(tx.id)
        gateway.fail_collections(1)

        with pytest.raises(InvalidTransitionError) as exc_info:
            await engine.attempt_payment(tx.id)

        assert exc_info.value.current_status == "cancelled"
        assert len(gateway.collect_calls) == 1
        stored = await engine.get_transaction(tx.id)
        assert stored.status == TransactionStatus.CANCELLED
        assert stored.retry_count == 1

    @pytest.mark.asyncio
    async def test_store_failure_aborts_sequence(
        self, gateway, policy, clock, sleep, purchase
    ) -> None:
        engine = EscrowEngine(
            BrokenUpdateStore(), gateway, policy=policy, clock=clock, sleep=sleep
        )
        tx = await engine.create_transaction(**purchase)
        gateway.fail_collections(3)

        with pytest.raises(StoreError) as exc_info:
            await engine.attempt_payment(tx.id)

        assert exc_info.value.operation == "update"
        assert exc_info.value.transaction_id == tx.id
        assert len(gateway.collect_calls) == 1
        assert sleep.delays == []
