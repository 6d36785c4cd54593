"""Tiered platform fee calculation.

All amounts are integer cents. Tier thresholds are expressed in cents so the
boundaries are exact: 9_999 cents is still in the lowest tier, 10_000 is not.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

# (exclusive upper bound in cents, percentage rate, fixed cents)
FEE_TIERS: tuple[tuple[int | None, Decimal, int], ...] = (
    (10_000, Decimal("0.049"), 30),
    (50_000, Decimal("0.039"), 30),
    (100_000, Decimal("0.029"), 30),
    (250_000, Decimal("0.019"), 30),
    (None, Decimal("0.015"), 0),
)


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_platform_fee(amount_cents: int) -> int:
    """Return the platform fee in cents for a base charge of ``amount_cents``."""
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise ValueError(f"Amount must be an integer number of cents, got {amount_cents!r}")
    if amount_cents <= 0:
        raise ValueError("Amount must be positive")

    for upper_bound, rate, fixed in FEE_TIERS:
        if upper_bound is None or amount_cents < upper_bound:
            return _round_half_up(Decimal(amount_cents) * rate) + fixed
    raise AssertionError("unreachable: the last tier is open-ended")  # pragma: no cover


def price_to_cents(price: Any) -> int:
    """Convert a major-unit price (Decimal, float, str) to positive integer cents."""
    if price is None or isinstance(price, bool):
        raise ValueError("Invalid or missing price")
    try:
        value = Decimal(str(price).strip())
    except (InvalidOperation, ValueError):
        raise ValueError("Invalid or missing price") from None
    if not value.is_finite() or value <= 0:
        raise ValueError("Invalid or missing price")
    cents = _round_half_up(value * 100)
    if cents <= 0:
        raise ValueError("Invalid or missing price")
    return cents


def cents_to_major(cents: int) -> float:
    return float(Decimal(cents) / 100)


@dataclass(frozen=True)
class FeeBreakdown:
    """Base, fee and total of one charge, all in cents."""

    base_cents: int
    fee_cents: int

    @classmethod
    def for_base(cls, base_cents: int) -> "FeeBreakdown":
        return cls(base_cents=base_cents, fee_cents=calculate_platform_fee(base_cents))

    @property
    def total_cents(self) -> int:
        return self.base_cents + self.fee_cents

    @property
    def fee_percentage(self) -> str:
        if not self.base_cents:
            return "0.00%"
        pct = (Decimal(self.fee_cents) * 100 / Decimal(self.base_cents)).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
        return f"{pct}%"

    def as_pricing_info(self, *, connect_used: bool) -> dict:
        return {
            "base_price": cents_to_major(self.base_cents),
            "platform_fee": cents_to_major(self.fee_cents),
            "total_customer_pays": cents_to_major(self.total_cents),
            "fee_percentage": self.fee_percentage,
            "connect_used": connect_used,
        }
