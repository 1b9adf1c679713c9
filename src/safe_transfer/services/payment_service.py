"""Payment Service: escrow deposits and releases.

Only a simulated mode exists: a real payment gateway is out of scope. In
simulation mode every call returns a fresh fake transaction id and logs
the money movement it stands for.
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from safe_transfer.domain.exceptions import ExternalServiceError
from safe_transfer.domain.fees import calculate_gateway_fee
from safe_transfer.logging_config import get_logger

if TYPE_CHECKING:
    from decimal import Decimal

logger = get_logger(__name__)


def _fake_transaction_id(prefix: str) -> str:
    return f"{prefix}{uuid.uuid4().hex[:16].upper()}"


class PaymentService:
    """Handles escrow funding and release payments."""

    def __init__(self, simulate: bool = True) -> None:
        """Initialize payment service.

        Args:
            simulate: Must be True; there is no live gateway integration.
        """
        self._simulate = simulate

    def _require_simulation(self) -> None:
        if not self._simulate:
            raise ExternalServiceError("No payment gateway is configured", code="PAYMENT_GATEWAY_UNAVAILABLE")

    async def deposit(self, deal_id: str, amount: Decimal, payment_method: str, buyer_id: str) -> str:
        """Move ``amount`` from the buyer into escrow. Returns the transaction id."""
        self._require_simulation()
        gateway_fee = calculate_gateway_fee(amount, payment_method)
        tx_id = _fake_transaction_id("TXN")
        logger.info(
            "payment.deposit_simulated",
            deal_id=deal_id,
            tx_id=tx_id,
            amount=str(amount),
            payment_method=payment_method,
            gateway_fee=str(gateway_fee.total_fee),
            buyer_id=buyer_id,
        )
        return tx_id

    async def release(self, deal_id: str, amount: Decimal, seller_id: str) -> str:
        """Pay the escrowed ``amount`` out to the seller."""
        self._require_simulation()
        tx_id = _fake_transaction_id("REL")
        logger.info("payment.release_simulated", deal_id=deal_id, tx_id=tx_id, amount=str(amount), seller_id=seller_id)
        return tx_id

    async def refund(self, deal_id: str, amount: Decimal, buyer_id: str) -> str:
        """Return the escrowed ``amount`` to the buyer."""
        self._require_simulation()
        tx_id = _fake_transaction_id("RFD")
        logger.info("payment.refund_simulated", deal_id=deal_id, tx_id=tx_id, amount=str(amount), buyer_id=buyer_id)
        return tx_id
