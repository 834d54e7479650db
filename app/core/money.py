"""
Money and rounding primitives.

Every monetary value in the ledger is a Decimal with two places. Rounding
is always half away from zero (ROUND_HALF_UP on Decimal), so 2.345 becomes
2.35 and -2.345 becomes -2.35.

Types:
    Money: Amount plus ISO 4217 currency code

Usage:
    from core.money import Money, percentage_of, round_money

    round_money("10.005")               # Decimal("10.01")
    percentage_of(Decimal("5000"), 10)  # Decimal("500.00")

    balance = Money(Decimal("4000"), "AUD")
    print(balance)  # "AUD 4000.00"
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    """
    Convert an int, str, float or Decimal to Decimal.

    Floats go through str() so 0.1 stays 0.1 instead of its binary
    approximation. None converts to zero.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(value) -> Decimal:
    """Round to two decimal places, half away from zero."""
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def percentage_of(amount, percent) -> Decimal:
    """
    Return ``percent`` percent of ``amount``, rounded.

    Example:
        >>> percentage_of(Decimal("1250.00"), Decimal("2.5"))
        Decimal('31.25')
    """
    return round_money(to_decimal(amount) * to_decimal(percent) / HUNDRED)


def round_up_to_step(value, step) -> Decimal:
    """
    Round ``value`` up to the next multiple of ``step``.

    Example:
        >>> round_up_to_step(Decimal("101"), 10)
        Decimal('110')
    """
    step = to_decimal(step)
    multiples = (to_decimal(value) / step).to_integral_value(rounding=ROUND_CEILING)
    return multiples * step


@dataclass(frozen=True)
class Money:
    """
    A rounded amount in a single currency.

    Attributes:
        amount: Decimal amount, rounded to two places on construction
        currency: ISO 4217 currency code, upper case

    Note:
        Arithmetic across currencies raises ValueError. The ledger never
        converts between currencies.
    """

    amount: Decimal
    currency: str

    def __post_init__(self):
        object.__setattr__(self, "amount", round_money(self.amount))
        object.__setattr__(self, "currency", self.currency.upper())

    def _check_currency(self, other: Money) -> None:
        if other.currency != self.currency:
            raise ValueError(
                f"Cannot combine {self.currency} with {other.currency}"
            )

    def __add__(self, other: Money) -> Money:
        self._check_currency(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        self._check_currency(other)
        return Money(self.amount - other.amount, self.currency)

    @property
    def is_zero(self) -> bool:
        return self.amount == ZERO

    def __str__(self) -> str:
        return f"{self.currency} {self.amount:.2f}"
