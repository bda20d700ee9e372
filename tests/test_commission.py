"""Commission calculator tests."""

from decimal import Decimal

import pytest
from hypothesis import given, settings, strategies as st

from torneo.commission import ZERO, calculate_commission, to_money


class TestCalculateCommission:
    """round(amount * rate, 2, HALF_UP)."""

    def test_five_percent_of_hundred(self):
        assert calculate_commission(Decimal("100.00"), Decimal("0.05")) == Decimal("5.00")

    @pytest.mark.parametrize(
        "amount,rate,expected",
        [
            ("10.05", "0.5", "5.03"),  # 5.025 rounds up
            ("10.01", "0.5", "5.01"),  # 5.005 rounds up
            ("10.00", "0.0001", "0.00"),  # 0.001 rounds down
            ("0.00", "0.25", "0.00"),
            ("19.99", "1", "19.99"),
        ],
    )
    def test_half_up_rounding(self, amount, rate, expected):
        assert calculate_commission(Decimal(amount), Decimal(rate)) == Decimal(expected)

    def test_accepts_strings_and_ints(self):
        assert calculate_commission(200, "0.05") == Decimal("10.00")

    def test_result_has_two_places(self):
        assert calculate_commission(Decimal("3"), Decimal("0.1")).as_tuple().exponent == -2

    @given(
        amount=st.decimals(min_value=0, max_value=100000, places=2),
        rate=st.decimals(min_value=0, max_value=1, places=4),
    )
    @settings(max_examples=100, deadline=None)
    def test_never_exceeds_amount(self, amount: Decimal, rate: Decimal):
        commission = calculate_commission(amount, rate)
        assert ZERO <= commission <= amount


class TestToMoney:
    def test_quantizes_to_cents(self):
        assert to_money("7") == Decimal("7.00")
        assert to_money(Decimal("2.345")) == Decimal("2.35")
