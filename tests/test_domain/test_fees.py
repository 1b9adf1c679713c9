"""Tests for escrow and gateway fee schedules."""

from __future__ import annotations

from decimal import Decimal

import pytest

from safe_transfer.domain.fees import calculate_escrow_fee, calculate_gateway_fee


class TestEscrowFee:
    def test_personal_percentage(self) -> None:
        fee = calculate_escrow_fee(Decimal("50000"))
        assert fee.percentage == Decimal("2.5")
        assert fee.base_fee == Decimal("1250.00")
        assert fee.gst == Decimal("225.00")
        assert fee.total_fee == Decimal("1475.00")

    @pytest.mark.parametrize(
        ("amount", "kind", "expected"),
        [
            (Decimal("1000"), "personal", Decimal("500.00")),
            (Decimal("5000000"), "personal", Decimal("25000.00")),
            (Decimal("1000"), "business", Decimal("1000.00")),
            (Decimal("10000000"), "business", Decimal("50000.00")),
        ],
    )
    def test_clamped_to_schedule(self, amount: Decimal, kind: str, expected: Decimal) -> None:
        assert calculate_escrow_fee(amount, kind).base_fee == expected

    def test_unknown_kind_uses_personal(self) -> None:
        assert calculate_escrow_fee(Decimal("50000"), "trust") == calculate_escrow_fee(Decimal("50000"))

    def test_rounds_to_paise(self) -> None:
        fee = calculate_escrow_fee(Decimal("33333.33"))
        assert fee.base_fee == Decimal("833.33")
        assert fee.base_fee.as_tuple().exponent == -2


class TestGatewayFee:
    def test_upi_is_capped(self) -> None:
        fee = calculate_gateway_fee(Decimal("50000"), "upi")
        assert fee.base_fee == Decimal("15.00")
        assert fee.total_fee == Decimal("17.70")

    def test_small_card_payment(self) -> None:
        assert calculate_gateway_fee(Decimal("1000"), "credit_card").base_fee == Decimal("18.00")

    def test_unknown_method_uses_other(self) -> None:
        assert calculate_gateway_fee(Decimal("1000"), "barter").base_fee == Decimal("10.00")
