"""
Values -- Immutable, self-validating money value object.

Responsibility:
    Provides MoneyAmount, the only representation of a monetary quantity in
    the ledger: loan principals, repayment amounts, totals and remaining
    balances.  Replaces the floating-point ``number`` amounts of the
    employee-register front end.

Architecture position:
    Ledger > Domain -- pure functional core, zero I/O.
    Imported by dtos, the store implementations, the engine and the
    selectors.  Depends only on loan_ledger.exceptions and db.types
    (precision constants).

Invariants enforced:
    - Decimal-only arithmetic; floats are rejected at construction.
    - Fixed scale: exactly MONEY_DECIMAL_PLACES fraction digits.  Inputs with
      more precision are rejected, never rounded.
    - Non-negative: a MoneyAmount is never below zero.  Subtraction that
      would go negative raises InvalidAmountError instead of clamping.

Failure modes:
    - InvalidAmountError on float/bool input, NaN/Infinity, malformed
      strings, negative values, excess precision, or negative differences.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Iterable

from loan_ledger.db.types import MAX_MINOR_UNITS, MONEY_DECIMAL_PLACES
from loan_ledger.exceptions import InvalidAmountError

_QUANTUM = Decimal(1).scaleb(-MONEY_DECIMAL_PLACES)
_MINOR_PER_MAJOR = 10**MONEY_DECIMAL_PLACES


@dataclass(frozen=True, slots=True)
class MoneyAmount:
    """
    Non-negative fixed-point monetary amount.

    Contract:
        Wraps a Decimal quantized to MONEY_DECIMAL_PLACES.  Equal amounts
        compare and hash equal regardless of how they were written
        ("5", "5.0", "5.00").

    Guarantees:
        - Immutable and hashable (frozen dataclass with slots)
        - amount is always a Decimal (never float)
        - amount >= 0
        - Addition and comparison are exact

    Non-goals:
        - No currency: the ledger is single-currency.
        - No multiplication/division: nothing in the ledger scales money.
    """

    amount: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", _coerce(self.amount))

    @classmethod
    def of(cls, value: MoneyAmount | Decimal | int | str) -> MoneyAmount:
        """
        Factory accepting the primitive forms a caller may hold.

        Strings are parsed as decimal text ("1000", "1000.5", "1000.50").
        Integers are major units.  For minor units use from_minor_units().

        Raises:
            InvalidAmountError: If the value is malformed or negative.
        """
        if isinstance(value, MoneyAmount):
            return value
        return cls(value)

    @classmethod
    def zero(cls) -> MoneyAmount:
        """Create a zero amount."""
        return cls(Decimal(0))

    @classmethod
    def from_minor_units(cls, units: int) -> MoneyAmount:
        """
        Create from integer minor units (e.g. cents).

        Example:
            MoneyAmount.from_minor_units(105000) -> MoneyAmount("1050.00")
        """
        if isinstance(units, bool) or not isinstance(units, int):
            raise InvalidAmountError(units, "minor units must be an integer")
        return cls(Decimal(units).scaleb(-MONEY_DECIMAL_PLACES))

    @classmethod
    def total(cls, amounts: Iterable[MoneyAmount]) -> MoneyAmount:
        """Sum an iterable of amounts (zero when empty)."""
        result = cls.zero()
        for amount in amounts:
            result = result + amount
        return result

    @property
    def minor_units(self) -> int:
        """Integer minor units; exact because the scale is fixed."""
        return int(self.amount * _MINOR_PER_MAJOR)

    @property
    def is_storable(self) -> bool:
        """Check if the amount fits the persisted minor-unit column."""
        return self.minor_units <= MAX_MINOR_UNITS

    @property
    def is_zero(self) -> bool:
        """Check if amount is zero."""
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        """Check if amount is strictly positive."""
        return self.amount > 0

    def clamped_sub(self, other: MoneyAmount) -> MoneyAmount:
        """Subtract, flooring at zero.  For display code only."""
        if other.amount >= self.amount:
            return MoneyAmount.zero()
        return self - other

    def percent_of(self, whole: MoneyAmount) -> int:
        """
        Whole-number percentage of ``whole`` this amount represents.

        Rounded half-up and capped at 100.  A zero ``whole`` yields 0.
        """
        if whole.is_zero:
            return 0
        pct = (self.amount * 100 / whole.amount).quantize(
            Decimal(1), rounding=ROUND_HALF_UP
        )
        return min(int(pct), 100)

    def __add__(self, other: MoneyAmount) -> MoneyAmount:
        if not isinstance(other, MoneyAmount):
            return NotImplemented
        return MoneyAmount(self.amount + other.amount)

    def __sub__(self, other: MoneyAmount) -> MoneyAmount:
        if not isinstance(other, MoneyAmount):
            return NotImplemented
        difference = self.amount - other.amount
        if difference < 0:
            raise InvalidAmountError(
                difference, f"{self} - {other} would be negative"
            )
        return MoneyAmount(difference)

    def __lt__(self, other: MoneyAmount) -> bool:
        if not isinstance(other, MoneyAmount):
            return NotImplemented
        return self.amount < other.amount

    def __le__(self, other: MoneyAmount) -> bool:
        if not isinstance(other, MoneyAmount):
            return NotImplemented
        return self.amount <= other.amount

    def __gt__(self, other: MoneyAmount) -> bool:
        if not isinstance(other, MoneyAmount):
            return NotImplemented
        return self.amount > other.amount

    def __ge__(self, other: MoneyAmount) -> bool:
        if not isinstance(other, MoneyAmount):
            return NotImplemented
        return self.amount >= other.amount

    def __str__(self) -> str:
        return str(self.amount)

    def __repr__(self) -> str:
        return f"MoneyAmount('{self.amount}')"


def _coerce(value: object) -> Decimal:
    """Validate and quantize a raw amount."""
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(value, "floating-point amounts are not accepted")
    if isinstance(value, int):
        value = Decimal(value)
    elif isinstance(value, str):
        text = value.strip()
        try:
            value = Decimal(text)
        except InvalidOperation as e:
            raise InvalidAmountError(text, "not a decimal number") from e
    elif not isinstance(value, Decimal):
        raise InvalidAmountError(value, f"unsupported type {type(value).__name__}")

    if not value.is_finite():
        raise InvalidAmountError(value, "must be a finite number")
    if value < 0:
        raise InvalidAmountError(value, "must not be negative")

    try:
        quantized = value.quantize(_QUANTUM)
    except InvalidOperation as e:
        raise InvalidAmountError(value, "too many digits") from e
    if quantized != value:
        raise InvalidAmountError(
            value, f"more than {MONEY_DECIMAL_PLACES} fraction digits"
        )
    # "-0" parses as a signed zero
    return abs(quantized)
