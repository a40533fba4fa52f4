"""Exact fixed-point money in minor units (kobo)."""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .exceptions import CurrencyMismatchError, InvalidShareError

MINOR_UNITS_PER_MAJOR = 100

CURRENCY_SYMBOLS = {
    "NGN": "₦",
    "USD": "$",
    "GBP": "£",
    "EUR": "€",
}


def to_kobo(amount: Decimal | str | int | float) -> int:
    """
    Convert a major-unit amount (naira) to integer kobo.
    Uses ROUND_HALF_UP for consistency.

    Floats are converted through their string form so that 12.34 stays 1234
    instead of picking up binary representation error.

    Args:
        amount: Major-unit amount

    Returns:
        Amount in kobo (integer)
    """
    if isinstance(amount, float):
        amount = str(amount)
    kobo = Decimal(amount) * MINOR_UNITS_PER_MAJOR
    return int(kobo.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_major(kobo: int) -> Decimal:
    """Convert integer kobo back to a two-place Decimal major amount."""
    return (Decimal(kobo) / MINOR_UNITS_PER_MAJOR).quantize(Decimal("0.01"))


def allocate(amount: int, weights: Sequence[int], denominator: int) -> list[int]:
    """
    Allocate an integer amount proportionally without losing a minor unit.

    Each share gets floor(amount * weight / denominator). The residual is then
    handed out one unit at a time to the shares with the largest fractional
    remainder, ties going to the earlier share.

    Args:
        amount: Non-negative amount in minor units
        weights: Non-negative integer weights summing to denominator
        denominator: Sum the weights are measured against

    Returns:
        Allocated amounts, in the same order as weights
    """
    if amount < 0:
        raise ValueError(f"Cannot allocate a negative amount: {amount}")
    if sum(weights) != denominator:
        raise ValueError(f"Weights sum to {sum(weights)}, expected {denominator}")

    shares = []
    remainders = []
    for weight in weights:
        share, remainder = divmod(amount * weight, denominator)
        shares.append(share)
        remainders.append(remainder)

    residual = amount - sum(shares)
    # sorted() is stable, so equal remainders keep insertion order
    order = sorted(range(len(weights)), key=lambda i: -remainders[i])
    for i in order[:residual]:
        shares[i] += 1

    return shares


@dataclass(frozen=True, order=True)
class Money:
    """An amount of money as an integer count of minor units."""

    kobo: int
    currency: str = "NGN"

    @classmethod
    def zero(cls, currency: str = "NGN") -> "Money":
        return cls(0, currency)

    @classmethod
    def from_major(
        cls, amount: Decimal | str | int | float, currency: str = "NGN"
    ) -> "Money":
        """Build Money from a major-unit amount, e.g. Money.from_major("28.50")."""
        return cls(to_kobo(amount), currency)

    def _check_currency(self, other: "Money") -> None:
        if self.currency != other.currency:
            raise CurrencyMismatchError(
                f"Cannot combine {self.currency} with {other.currency}"
            )

    def __add__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(self.kobo + other.kobo, self.currency)

    def __radd__(self, other: object) -> "Money":
        # Lets sum() start from its default integer 0
        if other == 0:
            return self
        return NotImplemented

    def __sub__(self, other: "Money") -> "Money":
        if not isinstance(other, Money):
            return NotImplemented
        self._check_currency(other)
        return Money(self.kobo - other.kobo, self.currency)

    def __neg__(self) -> "Money":
        return Money(-self.kobo, self.currency)

    def __mul__(self, factor: int) -> "Money":
        if not isinstance(factor, int):
            return NotImplemented
        return Money(self.kobo * factor, self.currency)

    __rmul__ = __mul__

    def __bool__(self) -> bool:
        return self.kobo != 0

    @property
    def major(self) -> Decimal:
        return to_major(self.kobo)

    def split_by_percentages(self, percentages: Sequence[int]) -> list["Money"]:
        """
        Split into shares by integer percentages that total exactly 100.

        The shares always add back up to this amount.

        Raises:
            InvalidShareError: If the percentages do not total 100
            ValueError: If this amount is negative
        """
        total = sum(percentages)
        if total != 100:
            raise InvalidShareError(total)
        if any(p < 0 for p in percentages):
            raise InvalidShareError(total)
        return [
            Money(share, self.currency)
            for share in allocate(self.kobo, percentages, 100)
        ]

    def split_evenly(self, parts: int) -> list["Money"]:
        """Split into equal parts, the first parts absorbing any leftover kobo."""
        if parts < 1:
            raise ValueError(f"Cannot split into {parts} parts")
        return [
            Money(share, self.currency)
            for share in allocate(self.kobo, [1] * parts, parts)
        ]

    def format(self) -> str:
        """Format for display, e.g. ₦1,234.50 or -₦5.00."""
        symbol = CURRENCY_SYMBOLS.get(self.currency, f"{self.currency} ")
        sign = "-" if self.kobo < 0 else ""
        return f"{sign}{symbol}{abs(self.major):,.2f}"

    def __str__(self) -> str:
        return self.format()
