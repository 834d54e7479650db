"""
Tests for money rounding primitives.
"""

from decimal import Decimal

import pytest

from core.helpers import generate_reference
from core.money import Money, percentage_of, round_money, round_up_to_step, to_decimal


class TestRounding:
    """Tests for round_money() and to_decimal()."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("2.345", Decimal("2.35")),
            ("-2.345", Decimal("-2.35")),
            ("10.005", Decimal("10.01")),
            ("10.004", Decimal("10.00")),
            (7, Decimal("7.00")),
        ],
    )
    def test_half_away_from_zero(self, value, expected):
        """Should round half away from zero to two places."""
        assert round_money(value) == expected

    def test_float_uses_decimal_text(self):
        """Should convert floats through their shortest text form."""
        assert to_decimal(0.1) == Decimal("0.1")

    def test_none_is_zero(self):
        """Should treat None as zero."""
        assert to_decimal(None) == Decimal("0.00")


class TestPercentages:
    """Tests for percentage_of() and round_up_to_step()."""

    def test_percentage_of(self):
        """Should round the percentage to cents."""
        assert percentage_of(Decimal("1250.00"), Decimal("2.5")) == Decimal("31.25")
        assert percentage_of(Decimal("33.33"), Decimal("10")) == Decimal("3.33")

    @pytest.mark.parametrize(
        ("value", "step", "expected"),
        [
            (Decimal("395.83"), 10, Decimal("400")),
            (Decimal("400"), 10, Decimal("400")),
            (Decimal("21.10"), 5, Decimal("25")),
            (Decimal("4.01"), 1, Decimal("5")),
        ],
    )
    def test_round_up_to_step(self, value, step, expected):
        """Should round up to the next multiple of the step."""
        assert round_up_to_step(value, step) == expected


class TestMoney:
    """Tests for the Money value type."""

    def test_rounds_and_uppercases(self):
        """Should normalise amount and currency."""
        money = Money(Decimal("10.005"), "aud")

        assert money.amount == Decimal("10.01")
        assert money.currency == "AUD"
        assert str(money) == "AUD 10.01"

    def test_arithmetic_in_one_currency(self):
        """Should add and subtract amounts of the same currency."""
        total = Money(Decimal("100"), "AUD") + Money(Decimal("20.50"), "AUD")

        assert total == Money(Decimal("120.50"), "AUD")
        assert (total - total).is_zero

    def test_mixed_currencies_rejected(self):
        """Should refuse to combine currencies."""
        with pytest.raises(ValueError):
            Money(Decimal("1"), "AUD") + Money(Decimal("1"), "NZD")


class TestReferences:
    """Tests for generate_reference()."""

    def test_reference_format(self):
        """Should embed the prefix, timestamp and a random suffix."""
        reference = generate_reference("PP-CUSTOM")

        prefix, timestamp, suffix = reference.rsplit("-", 2)
        assert prefix == "PP-CUSTOM"
        assert len(timestamp) == 14
        assert len(suffix) == 8

    def test_references_are_distinct(self):
        """Should not repeat within the same second."""
        assert generate_reference("PP") != generate_reference("PP")
