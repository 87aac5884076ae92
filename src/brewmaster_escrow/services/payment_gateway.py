"""Simulated mobile-money gateway.

Stands in for M-Pesa / MTN Mobile Money until a real integration exists.
Collection succeeds 90% of the time and release 95% of the time by default;
both rates and the random source are injectable so demos are reproducible.
"""

from __future__ import annotations

import asyncio
import random
import uuid
from typing import TYPE_CHECKING

from brewmaster_escrow.config import get_settings
from brewmaster_escrow.domain.protocols import GatewayResult
from brewmaster_escrow.logging_config import get_logger

if TYPE_CHECKING:
    from brewmaster_escrow.domain.transaction import Transaction

logger = get_logger(__name__)

COLLECT_FAILURE_REASON = "Payment gateway timeout"
RELEASE_FAILURE_REASON = "Fund transfer failed - please try again"


class SimulatedPaymentGateway:
    """PaymentGateway with random outcomes."""

    def __init__(
        self,
        collect_success_rate: float | None = None,
        release_success_rate: float | None = None,
        rng: random.Random | None = None,
        latency_seconds: float = 0.0,
    ) -> None:
        """Initialize the simulated gateway.

        Args:
            collect_success_rate: Probability a collection succeeds. Defaults to settings.
            release_success_rate: Probability a release succeeds. Defaults to settings.
            rng: Random source; pass a seeded Random for reproducible runs.
            latency_seconds: Simulated network delay per call.
        """
        settings = get_settings()
        self._collect_rate = (
            settings.simulated_payment_success_rate
            if collect_success_rate is None
            else collect_success_rate
        )
        self._release_rate = (
            settings.simulated_release_success_rate
            if release_success_rate is None
            else release_success_rate
        )
        self._rng = rng or random.Random()
        self._latency = latency_seconds

    async def _simulate_call(self) -> None:
        if self._latency > 0:
            await asyncio.sleep(self._latency)

    async def collect_payment(self, transaction: Transaction) -> GatewayResult:
        await self._simulate_call()
        if self._rng.random() < self._collect_rate:
            reference = uuid.uuid4().hex
            logger.info(
                "gateway.collect_simulated",
                transaction_id=transaction.id,
                amount=str(transaction.amount),
                method=transaction.payment_method.value,
                reference=reference,
            )
            return GatewayResult.ok(reference)

        logger.info("gateway.collect_failed_simulated", transaction_id=transaction.id)
        return GatewayResult.failed(COLLECT_FAILURE_REASON)

    async def release_funds(self, transaction: Transaction) -> GatewayResult:
        await self._simulate_call()
        if self._rng.random() < self._release_rate:
            reference = uuid.uuid4().hex
            logger.info(
                "gateway.release_simulated",
                transaction_id=transaction.id,
                amount=str(transaction.amount),
                farmer_id=transaction.farmer_id,
                reference=reference,
            )
            return GatewayResult.ok(reference)

        logger.info("gateway.release_failed_simulated", transaction_id=transaction.id)
        return GatewayResult.failed(RELEASE_FAILURE_REASON)
