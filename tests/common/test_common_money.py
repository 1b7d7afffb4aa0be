# ===============================================================================
# MONEY HELPERS AND RESULT TYPE TESTS
# ===============================================================================

from decimal import Decimal

import pytest

from apps.common.money import clamp, floor_units, from_cents, percent_of, to_cents
from apps.common.types import Err, Ok


class TestMoneyHelpers:
    def test_to_cents_rounds_half_up(self):
        assert to_cents(Decimal("19.99")) == 1999
        assert to_cents("0.005") == 1
        assert to_cents(12) == 1200

    def test_from_cents_is_two_place_decimal(self):
        assert from_cents(1999) == Decimal("19.99")
        assert from_cents(5) == Decimal("0.05")

    @pytest.mark.parametrize(
        ("cents", "percent", "expected"),
        [
            (40_000, "20", 8_000),
            (999, "12.5", 125),  # 124.875 rounds half-up
            (1, "50", 1),  # 0.5 rounds up
            (0, "20", 0),
        ],
    )
    def test_percent_of(self, cents, percent, expected):
        assert percent_of(cents, Decimal(percent)) == expected

    def test_floor_units_rounds_down(self):
        assert floor_units(12_399, Decimal("1")) == 123
        assert floor_units(12_399, Decimal("1.5")) == 185

    def test_clamp(self):
        assert clamp(-5, 0, 10) == 0
        assert clamp(15, 0, 10) == 10
        assert clamp(7, 0, 10) == 7


class TestResultTypes:
    def test_ok(self):
        result = Ok(5)
        assert result.is_ok() and not result.is_err()
        assert result.unwrap() == 5
        assert result.map(lambda v: v * 2).unwrap() == 10

    def test_err(self):
        result = Err("boom")
        assert result.is_err()
        assert result.unwrap_or(1) == 1
        assert result.unwrap_err() == "boom"
        with pytest.raises(ValueError):
            result.unwrap()
