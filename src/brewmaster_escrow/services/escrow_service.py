"""Escrow Engine: core business logic for the transaction lifecycle.

This is the application layer that coordinates between:
    - Domain state machine (transition guard)
    - Transaction repository (document store access)
    - Payment gateway (collection and release of funds)
    - Lock provider (one writer per transaction ID)

Every public coroutine is one user action: it reads the current record,
validates the transition, computes the new record, writes back only the
changed fields and returns the updated Transaction, or raises an EscrowError.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from pydantic import ValidationError
from statemachine.exceptions import TransitionNotAllowed
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from brewmaster_escrow.config import Settings, get_settings
from brewmaster_escrow.domain.enums import PaymentMethod, TransactionStatus
from brewmaster_escrow.domain.exceptions import (
    FundsNotReleasableError,
    InvalidTransitionError,
    PaymentFailedError,
    RetryExhaustedError,
    TransactionNotFoundError,
    TransactionValidationError,
)
from brewmaster_escrow.domain.protocols import GatewayResult
from brewmaster_escrow.domain.state_machine import EscrowStateMachine
from brewmaster_escrow.domain.statistics import summarize_farmer_transactions
from brewmaster_escrow.domain.transaction import Transaction
from brewmaster_escrow.infrastructure.locks import InProcessLockProvider
from brewmaster_escrow.infrastructure.repositories import TransactionRepository
from brewmaster_escrow.logging_config import get_logger
from brewmaster_escrow.schemas.transaction import (
    CreateTransactionRequest,
    RaiseDisputeRequest,
    TransactionStatusView,
    UserStatistics,
)

if TYPE_CHECKING:
    from brewmaster_escrow.domain.enums import DecodeFallbackHook
    from brewmaster_escrow.domain.protocols import DocumentStore, LockProvider, PaymentGateway

logger = get_logger(__name__)

Clock = Callable[[], datetime]
Sleep = Callable[[float], Awaitable[None]]

RETRIES_EXHAUSTED_REASON = "Maximum retry attempts exceeded"
GATEWAY_TIMEOUT_REASON = "Payment gateway timeout"
GATEWAY_ERROR_REASON = "Payment gateway error"


def utc_now() -> datetime:
    return datetime.now(UTC)


class _CollectionFailed(Exception):
    """A failed collection attempt that was persisted and may be retried."""


@dataclass(frozen=True)
class EscrowPolicy:
    """Retry and timeout policy for gateway calls.

    Attributes:
        max_retries: Failed collections retried before the transaction is cancelled.
        retry_backoff_seconds: Fixed delay between collection attempts.
        payment_attempt_timeout_seconds: Deadline per collection attempt (None = no deadline).
        release_timeout_seconds: Deadline for the release call (None = no deadline).
    """

    max_retries: int = 3
    retry_backoff_seconds: float = 2.0
    payment_attempt_timeout_seconds: float | None = 10.0
    release_timeout_seconds: float | None = 10.0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> EscrowPolicy:
        settings = settings or get_settings()
        return cls(
            max_retries=settings.escrow_max_retries,
            retry_backoff_seconds=settings.escrow_retry_backoff_seconds,
            payment_attempt_timeout_seconds=settings.payment_attempt_timeout_seconds,
            release_timeout_seconds=settings.release_timeout_seconds,
        )


class EscrowEngine:
    """Manages the escrow transaction lifecycle."""

    def __init__(
        self,
        store: DocumentStore,
        gateway: PaymentGateway,
        *,
        policy: EscrowPolicy | None = None,
        locks: LockProvider | None = None,
        clock: Clock = utc_now,
        sleep: Sleep = asyncio.sleep,
        on_decode_fallback: DecodeFallbackHook | None = None,
    ) -> None:
        self._repo = TransactionRepository(store, on_decode_fallback=on_decode_fallback)
        self._gateway = gateway
        self._policy = policy or EscrowPolicy.from_settings()
        self._locks = locks or InProcessLockProvider()
        self._clock = clock
        self._sleep = sleep

    @property
    def policy(self) -> EscrowPolicy:
        return self._policy

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_transaction(
        self,
        buyer_id: str,
        farmer_id: str,
        listing_id: str,
        amount: Decimal | float | str,
        payment_method: PaymentMethod | str,
    ) -> Transaction:
        """Open a new escrow transaction in pending state."""
        try:
            request = CreateTransactionRequest(
                buyer_id=buyer_id,
                farmer_id=farmer_id,
                listing_id=listing_id,
                amount=amount,
                payment_method=payment_method,
            )
        except ValidationError as err:
            raise TransactionValidationError("create_transaction", err.errors()) from err

        transaction = Transaction.new(
            buyer_id=request.buyer_id,
            farmer_id=request.farmer_id,
            listing_id=request.listing_id,
            amount=request.amount,
            payment_method=request.payment_method,
            now=self._clock(),
        )
        transaction = await self._repo.add(transaction)

        logger.info(
            "transaction.created",
            transaction_id=transaction.id,
            buyer_id=transaction.buyer_id,
            farmer_id=transaction.farmer_id,
            amount=str(transaction.amount),
            method=transaction.payment_method.value,
        )
        return transaction

    # ------------------------------------------------------------------
    # Payment collection
    # ------------------------------------------------------------------

    async def attempt_payment(self, transaction_id: str) -> Transaction:
        """Collect the buyer's payment, retrying failed attempts with a fixed backoff.

        Each failed attempt is persisted (retry_count, failure_reason) before
        the backoff, so an interrupted sequence leaves resumable state. The
        lock is released while sleeping. Cancelling the awaiting task stops
        further attempts without changing the record.
        Gateway timeouts and gateway exceptions count as failed attempts.

        Raises:
            RetryExhaustedError: every allowed attempt failed; the transaction is cancelled.
            InvalidTransitionError: the transaction is not (or no longer) pending.
        """
        # The persisted retry_count decides exhaustion; the attempt cap only bounds the loop.
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._policy.max_retries + 1),
            wait=wait_fixed(self._policy.retry_backoff_seconds),
            retry=retry_if_exception_type(_CollectionFailed),
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._payment_attempt(transaction_id)
        raise AssertionError("unreachable")  # pragma: no cover

    def start_payment(self, transaction_id: str) -> asyncio.Task[Transaction]:
        """Run attempt_payment as a task; cancel the task to stop retrying."""
        return asyncio.create_task(
            self.attempt_payment(transaction_id),
            name=f"attempt_payment:{transaction_id}",
        )

    # ------------------------------------------------------------------
    # Delivery and release
    # ------------------------------------------------------------------

    async def confirm_delivery(self, transaction_id: str) -> Transaction:
        """Farmer confirms the goods were delivered (fundsHeld -> delivered)."""
        return await self._transition(
            transaction_id,
            operation="confirm_delivery",
            event_name="delivery_confirmed",
            new_status=TransactionStatus.DELIVERED,
        )

    async def confirm_receipt_and_release(self, transaction_id: str) -> Transaction:
        """Buyer confirms receipt; funds are released to the farmer (delivered -> completed).

        A failed transfer leaves the transaction delivered and raises
        PaymentFailedError. It is not retried automatically.
        """
        operation = "confirm_receipt_and_release"
        async with self._locks.lock(transaction_id):
            transaction = await self._load(transaction_id, operation)

            if not transaction.can_release_funds():
                raise FundsNotReleasableError(
                    transaction_id,
                    transaction.status.value,
                    self._release_blocker(transaction),
                )
            self._check_transition(transaction, "funds_released", operation)

            result = await self._release(transaction)
            if not result.success:
                reason = result.failure_reason or GATEWAY_TIMEOUT_REASON
                logger.warning("payment.release_failed", transaction_id=transaction_id, reason=reason)
                raise PaymentFailedError(
                    transaction_id, operation, transaction.status.value, reason
                )

            updated = transaction.with_status(TransactionStatus.COMPLETED, self._clock())
            await self._repo.save(transaction, updated)

        logger.info(
            "payment.funds_released",
            transaction_id=transaction_id,
            farmer_id=updated.farmer_id,
            amount=str(updated.amount),
            reference=result.reference,
        )
        return updated

    # ------------------------------------------------------------------
    # Cancellation and disputes
    # ------------------------------------------------------------------

    async def cancel_transaction(self, transaction_id: str) -> Transaction:
        """Cancel a transaction whose payment has not been collected yet."""
        return await self._transition(
            transaction_id,
            operation="cancel",
            event_name="buyer_cancelled",
            new_status=TransactionStatus.CANCELLED,
        )

    async def raise_dispute(self, transaction_id: str, reason: str) -> Transaction:
        """Move an open transaction to disputed, recording the reason."""
        try:
            request = RaiseDisputeRequest(reason=reason)
        except ValidationError as err:
            raise TransactionValidationError(
                "raise_dispute", err.errors(), transaction_id=transaction_id
            ) from err

        return await self._transition(
            transaction_id,
            operation="raise_dispute",
            event_name="dispute_raised",
            new_status=TransactionStatus.DISPUTED,
            dispute_reason=request.reason,
        )

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get_transaction(self, transaction_id: str) -> Transaction | None:
        """Point lookup; None when the ID is unknown."""
        return await self._repo.get_by_id(transaction_id)

    async def get_status(self, transaction_id: str) -> TransactionStatusView:
        """Current status with the state-machine events allowed from it."""
        transaction = await self._load(transaction_id, "get_status")
        sm = EscrowStateMachine(current_status=transaction.status.value)
        return TransactionStatusView(
            transaction_id=transaction.id,
            status=transaction.status,
            retry_count=transaction.retry_count,
            max_retries=self._policy.max_retries,
            allowed_events=sm.get_allowed_events(),
        )

    async def list_user_transactions(self, user_id: str) -> list[Transaction]:
        """Transactions where the user is buyer or farmer, newest first."""
        as_buyer = await self._repo.find_by_buyer(user_id)
        as_farmer = await self._repo.find_by_farmer(user_id)

        merged = {transaction.id: transaction for transaction in as_buyer}
        for transaction in as_farmer:
            merged.setdefault(transaction.id, transaction)

        return sorted(merged.values(), key=lambda t: t.created_at, reverse=True)

    async def list_listing_transactions(self, listing_id: str) -> list[Transaction]:
        """Transactions for a listing, newest first."""
        return await self._repo.find_by_listing(listing_id)

    async def user_statistics(self, user_id: str) -> UserStatistics:
        """Earnings and counts over the transactions where the user is the farmer."""
        transactions = await self._repo.find_by_farmer(user_id)
        return UserStatistics.from_summary(summarize_farmer_transactions(transactions))

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _payment_attempt(self, transaction_id: str) -> Transaction:
        """One locked collection attempt.

        Returns the fundsHeld record, raises _CollectionFailed after persisting
        a retryable failure, or cancels the record once retries are used up.
        """
        async with self._locks.lock(transaction_id):
            transaction = await self._load(transaction_id, "attempt_payment")
            self._check_transition(transaction, "payment_collected", "attempt_payment")

            result = await self._collect(transaction)
            now = self._clock()

            if result.success:
                updated = transaction.with_status(TransactionStatus.FUNDS_HELD, now)
                await self._repo.save(transaction, updated)
                logger.info(
                    "payment.funds_held",
                    transaction_id=transaction_id,
                    retry_count=updated.retry_count,
                    reference=result.reference,
                )
                return updated

            reason = result.failure_reason or GATEWAY_TIMEOUT_REASON

            if not transaction.can_retry(self._policy.max_retries):
                self._check_transition(
                    transaction, "payment_retries_exhausted", "attempt_payment"
                )
                updated = transaction.with_status(
                    TransactionStatus.CANCELLED,
                    now,
                    failure_reason=RETRIES_EXHAUSTED_REASON,
                )
                await self._repo.save(transaction, updated)
                logger.warning(
                    "payment.retries_exhausted",
                    transaction_id=transaction_id,
                    retry_count=transaction.retry_count,
                    last_failure=reason,
                )
                raise RetryExhaustedError(transaction_id, transaction.retry_count, reason)

            updated = transaction.with_failed_attempt(reason, now)
            await self._repo.save(transaction, updated)
            logger.info(
                "payment.attempt_failed",
                transaction_id=transaction_id,
                retry=updated.retry_count,
                max_retries=self._policy.max_retries,
                reason=reason,
            )
            raise _CollectionFailed(reason)

    async def _load(self, transaction_id: str, operation: str) -> Transaction:
        transaction = await self._repo.get_by_id(transaction_id)
        if transaction is None:
            raise TransactionNotFoundError(transaction_id, operation)
        return transaction

    async def _transition(
        self,
        transaction_id: str,
        operation: str,
        event_name: str,
        new_status: TransactionStatus,
        **changes: object,
    ) -> Transaction:
        async with self._locks.lock(transaction_id):
            transaction = await self._load(transaction_id, operation)
            self._check_transition(transaction, event_name, operation)

            updated = transaction.with_status(new_status, self._clock(), **changes)
            await self._repo.save(transaction, updated)

        logger.info(
            f"transaction.{new_status.value}",
            transaction_id=transaction_id,
            old_status=transaction.status.value,
            new_status=new_status.value,
        )
        return updated

    def _check_transition(self, transaction: Transaction, event_name: str, operation: str) -> None:
        """Validate a state machine transition.

        Raises InvalidTransitionError if the transition is illegal.
        """
        sm = EscrowStateMachine(current_status=transaction.status.value)
        event_method = getattr(sm, event_name, None)
        if event_method is None:
            raise InvalidTransitionError(transaction.id, operation, transaction.status.value)
        try:
            event_method()
        except TransitionNotAllowed as err:
            raise InvalidTransitionError(
                transaction.id, operation, transaction.status.value
            ) from err

    @staticmethod
    def _release_blocker(transaction: Transaction) -> str:
        if transaction.status != TransactionStatus.DELIVERED:
            return f"status is {transaction.status.value}, expected delivered"
        if transaction.funds_held_at is None:
            return "funds were never held"
        return "funds already released"

    async def _collect(self, transaction: Transaction) -> GatewayResult:
        try:
            async with asyncio.timeout(self._policy.payment_attempt_timeout_seconds):
                return await self._gateway.collect_payment(transaction)
        except TimeoutError:
            logger.warning(
                "payment.attempt_timed_out",
                transaction_id=transaction.id,
                timeout=self._policy.payment_attempt_timeout_seconds,
            )
            return GatewayResult.failed(GATEWAY_TIMEOUT_REASON)
        except Exception as exc:
            logger.error(
                "payment.attempt_error",
                transaction_id=transaction.id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return GatewayResult.failed(GATEWAY_ERROR_REASON)

    async def _release(self, transaction: Transaction) -> GatewayResult:
        try:
            async with asyncio.timeout(self._policy.release_timeout_seconds):
                return await self._gateway.release_funds(transaction)
        except TimeoutError:
            logger.warning(
                "payment.release_timed_out",
                transaction_id=transaction.id,
                timeout=self._policy.release_timeout_seconds,
            )
            return GatewayResult.failed(GATEWAY_TIMEOUT_REASON)
        except Exception as exc:
            logger.error(
                "payment.release_error",
                transaction_id=transaction.id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return GatewayResult.failed(GATEWAY_ERROR_REASON)
