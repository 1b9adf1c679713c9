"""Escrow and payment gateway fee schedules.

Pure functions over Decimal amounts. Every figure is rounded to paise
(two decimal places, half-up) so fees persisted in Numeric columns and fees
recomputed later always agree.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import NamedTuple

from safe_transfer.domain.enums import PartyKind, PaymentMethod

GST_RATE = Decimal("0.18")
_PAISE = Decimal("0.01")


class _FeeSchedule(NamedTuple):
    rate: Decimal
    min_fee: Decimal
    max_fee: Decimal


ESCROW_FEE_SCHEDULES: dict[PartyKind, _FeeSchedule] = {
    PartyKind.PERSONAL: _FeeSchedule(Decimal("0.025"), Decimal("500"), Decimal("25000")),
    PartyKind.BUSINESS: _FeeSchedule(Decimal("0.02"), Decimal("1000"), Decimal("50000")),
}

# (rate, cap) per payment method
GATEWAY_FEE_SCHEDULES: dict[PaymentMethod, tuple[Decimal, Decimal]] = {
    PaymentMethod.UPI: (Decimal("0.005"), Decimal("15")),
    PaymentMethod.NETBANKING: (Decimal("0.009"), Decimal("25")),
    PaymentMethod.DEBIT_CARD: (Decimal("0.008"), Decimal("20")),
    PaymentMethod.CREDIT_CARD: (Decimal("0.018"), Decimal("50")),
    PaymentMethod.WALLET: (Decimal("0.004"), Decimal("10")),
    PaymentMethod.OTHER: (Decimal("0.01"), Decimal("30")),
}


def _to_paise(value: Decimal) -> Decimal:
    return value.quantize(_PAISE, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeBreakdown:
    """Escrow fee for one deal amount.

    ``percentage`` is a percent (2.5 means 2.5 %), ``base_fee`` is the
    clamped fee before tax and ``total_fee`` includes GST.
    """

    amount: Decimal
    percentage: Decimal
    base_fee: Decimal
    gst: Decimal
    total_fee: Decimal


@dataclass(frozen=True)
class GatewayFee:
    base_fee: Decimal
    gst: Decimal
    total_fee: Decimal


def calculate_escrow_fee(amount: Decimal, party_kind: PartyKind | str = PartyKind.PERSONAL) -> FeeBreakdown:
    """Compute the escrow fee charged for a deal of ``amount`` rupees.

    Unknown party kinds are billed on the personal schedule.
    """
    try:
        schedule = ESCROW_FEE_SCHEDULES[PartyKind(party_kind)]
    except ValueError:
        schedule = ESCROW_FEE_SCHEDULES[PartyKind.PERSONAL]

    amount = Decimal(amount)
    fee = min(max(amount * schedule.rate, schedule.min_fee), schedule.max_fee)
    fee = _to_paise(fee)
    gst = _to_paise(fee * GST_RATE)
    return FeeBreakdown(
        amount=amount,
        percentage=(schedule.rate * 100).normalize(),
        base_fee=fee,
        gst=gst,
        total_fee=fee + gst,
    )


def calculate_gateway_fee(amount: Decimal, payment_method: PaymentMethod | str) -> GatewayFee:
    """Compute the simulated gateway charge for depositing ``amount``."""
    try:
        rate, cap = GATEWAY_FEE_SCHEDULES[PaymentMethod(payment_method)]
    except ValueError:
        rate, cap = GATEWAY_FEE_SCHEDULES[PaymentMethod.OTHER]

    fee = _to_paise(min(Decimal(amount) * rate, cap))
    gst = _to_paise(fee * GST_RATE)
    return GatewayFee(base_fee=fee, gst=gst, total_fee=fee + gst)
