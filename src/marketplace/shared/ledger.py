"""Ledger primitives: money arithmetic, percentages and rental windows.

Amounts are persisted as floats (two decimal places) but every calculation
goes through ``Decimal`` with half-up rounding, so that totals computed at
checkout, settlement and payout time always agree to the cent.
"""

import math
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal

from protean import invariant
from protean.exceptions import ValidationError
from protean.fields import DateTime

from marketplace.domain import marketplace

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
DEFAULT_CURRENCY = "VND"


def to_decimal(value) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value or 0))


def round_money(value) -> float:
    """Round half-up to the cent and return a float fit for storage."""
    return float(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def sum_money(values: Iterable) -> float:
    return round_money(sum((to_decimal(v) for v in values), Decimal("0")))


def percentage_of(amount, percentage) -> float:
    """``percentage`` percent of ``amount``, e.g. percentage_of(200, 12.5) == 25.0."""
    return round_money(to_decimal(amount) * to_decimal(percentage) / HUNDRED)


def as_percentage(part, whole) -> float:
    """Express ``part`` as a percentage of ``whole`` (0 when ``whole`` is zero)."""
    whole = to_decimal(whole)
    if whole == 0:
        return 0.0
    return round_money(to_decimal(part) * HUNDRED / whole)


def validate_percentage(value, field_name: str = "percentage") -> None:
    if value is None or not 0 <= value <= 100:
        raise ValidationError({field_name: ["Must be between 0 and 100"]})


def allocate_proportionally(total, weights: Sequence) -> list[float]:
    """Split ``total`` across ``weights`` so the parts sum exactly to ``total``.

    Each part is floored to the cent; the leftover cents go to the parts with
    the largest remainders, earliest first on ties.
    """
    total = to_decimal(total).quantize(CENT, rounding=ROUND_HALF_UP)
    weights = [to_decimal(w) for w in weights]
    weight_sum = sum(weights, Decimal("0"))
    if not weights:
        return []
    if weight_sum == 0 or total == 0:
        return [0.0 for _ in weights]

    total_cents = int(total / CENT)
    raw = [Decimal(total_cents) * w / weight_sum for w in weights]
    cents = [int(r) for r in raw]
    leftover = total_cents - sum(cents)
    by_remainder = sorted(range(len(raw)), key=lambda i: (-(raw[i] - cents[i]), i))
    for index in by_remainder[:leftover]:
        cents[index] += 1
    return [float(Decimal(c) * CENT) for c in cents]


def rental_days(start: datetime, end: datetime) -> int:
    """Whole days billed for a rental window; partial days count as a full day."""
    seconds = (end - start).total_seconds()
    return max(1, math.ceil(seconds / 86400))


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_naive_utc(value: datetime | None) -> datetime | None:
    """Normalize for comparisons; storage round-trips may drop tzinfo."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


@marketplace.value_object
class RentalPeriod:
    """Rental window agreed at checkout."""

    start = DateTime(required=True)
    end = DateTime(required=True)

    @invariant.post
    def end_must_follow_start(self):
        if self.start and self.end and as_naive_utc(self.end) <= as_naive_utc(self.start):
            raise ValidationError({"rental_period": ["Rental end must be after rental start"]})

    @property
    def days(self) -> int:
        return rental_days(as_naive_utc(self.start), as_naive_utc(self.end))
