"""Booking price: the item's daily rate times the calendar days a reservation touches."""
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")


def inclusive_day_span(start: datetime, end: datetime) -> int:
    """Number of calendar days touched by ``[start, end]``, counting both ends."""
    return (end.date() - start.date()).days + 1


def compute_total_price(price_per_day: Decimal, start: datetime, end: datetime) -> Decimal:
    days = inclusive_day_span(start, end)
    if days < 1:
        raise ValueError("end must not fall on an earlier day than start")
    return (Decimal(price_per_day) * days).quantize(CENTS, rounding=ROUND_HALF_UP)
