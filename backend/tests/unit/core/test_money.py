# backend/tests/unit/core/test_money.py
from decimal import Decimal

import pytest

from therapport.utils.money import (
    format_gbp,
    minutes_to_hours,
    pence_to_pounds,
    pounds_to_pence,
    proportional_pence,
    quantize_hours,
)


class TestMoney:
    @pytest.mark.parametrize("pounds,pence", [("42.50", 4250), ("0.005", 1), (19, 1900), ("0.004", 0)])
    def test_pounds_to_pence_rounds_half_up(self, pounds, pence):
        assert pounds_to_pence(pounds) == pence

    def test_pence_to_pounds(self):
        assert pence_to_pounds(4250) == Decimal("42.50")
        assert format_gbp(5) == "£0.05"

    def test_proportional_pence(self):
        # Kensington 14:00-16:00 with one hour covered by a voucher
        assert proportional_pence(4200, Decimal(3600), Decimal(7200)) == 2100
        assert proportional_pence(10500, Decimal(16), Decimal(31)) == 5419

    def test_proportional_pence_rejects_zero_denominator(self):
        with pytest.raises(ValueError):
            proportional_pence(100, Decimal(1), Decimal(0))


class TestHours:
    def test_quantize_truncates(self):
        assert quantize_hours("1.239") == Decimal("1.23")
        assert quantize_hours(2) == Decimal("2.00")

    @pytest.mark.parametrize(
        "hours,expected",
        [
            (Decimal(1) / Decimal(3), Decimal("0.34")),
            (Decimal(4) / Decimal(3), Decimal("1.34")),
            ("1.5", Decimal("1.50")),
        ],
    )
    def test_quantize_round_up_for_draws(self, hours, expected):
        assert quantize_hours(hours, round_up=True) == expected

    def test_minutes_to_hours(self):
        assert minutes_to_hours(90) == Decimal("1.5")
