"""Application services: the escrow engine and its payment gateway."""

from brewmaster_escrow.services.escrow_service import EscrowEngine, EscrowPolicy
from brewmaster_escrow.services.payment_gateway import SimulatedPaymentGateway

__all__ = ["EscrowEngine", "EscrowPolicy", "SimulatedPaymentGateway"]
