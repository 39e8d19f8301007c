"""Money arithmetic for guest-spot bookings and client deposits."""
from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal

BOOTH_PLATFORM_FEE_RATE = Decimal("0.10")
DEPOSIT_PROCESSING_FEE_RATE = Decimal("0.029")
CENTS = Decimal("0.01")


def _dec(value: float) -> Decimal:
    return Decimal(str(value))


def round_money(value: Decimal) -> float:
    return float(value.quantize(CENTS, rounding=ROUND_HALF_UP))


def inclusive_days(start: date, end: date) -> int:
    """Number of calendar days covered by ``start``..``end``, both included."""
    if end < start:
        raise ValueError("end date must not be before start date")
    return (end - start).days + 1


def booth_booking_total(start: date, end: date, daily_rate: float) -> float:
    return float(inclusive_days(start, end) * _dec(daily_rate))


def booth_platform_fee(total_amount: float) -> float:
    """Platform fee on a guest-spot booking: 10% of the booking total."""
    return float(_dec(total_amount) * BOOTH_PLATFORM_FEE_RATE)


def deposit_fee(deposit_amount: float, subscription_tier: str) -> float:
    """Processing fee charged to the client; pro artists absorb it."""
    if subscription_tier == "pro":
        return 0.0
    return round_money(_dec(deposit_amount) * DEPOSIT_PROCESSING_FEE_RATE)


def deposit_total(deposit_amount: float, subscription_tier: str) -> float:
    return float(_dec(deposit_amount) + _dec(deposit_fee(deposit_amount, subscription_tier)))
