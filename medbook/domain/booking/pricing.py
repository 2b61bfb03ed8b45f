"""Consultation pricing - maps a booking window and a rate table to a cost in minor units"""

from datetime import datetime
from typing import Optional

from ...errors import ValidationError


def _rate(rates: Optional[dict], bucket: int) -> int:
    """Rate for a duration bucket; JSON keys are strings, missing buckets cost 0"""
    if not rates:
        return 0
    value = rates.get(str(bucket), rates.get(bucket, 0))
    return int(value or 0)


def _short_bucket(minutes: float) -> int:
    if minutes <= 15:
        return 15
    if minutes <= 30:
        return 30
    return 45


def duration_minutes(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def calculate_price(start: datetime, end: datetime, rates: Optional[dict]) -> int:
    """
    Price a booking window.

    Up to 45 minutes bills the smallest covering bucket (15, 30 or 45).
    Longer sessions bill whole hours at the 60 rate plus the remainder
    bucketed the same way; a remainder of 0 adds nothing.

    Raises:
        ValidationError: If the window is empty or runs backwards
    """
    minutes = duration_minutes(start, end)
    if minutes <= 0:
        raise ValidationError("Appointment must end after it starts")

    if minutes <= 45:
        return _rate(rates, _short_bucket(minutes))

    hours, remainder = divmod(minutes, 60)
    cost = int(hours) * _rate(rates, 60)
    if remainder > 0:
        cost += _rate(rates, _short_bucket(remainder))
    return cost
