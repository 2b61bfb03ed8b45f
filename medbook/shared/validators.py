"""Shared validation utilities"""

import re
from datetime import datetime, timezone
from typing import Optional


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def to_utc_naive(value: datetime) -> datetime:
    """
    Normalize a timestamp to naive UTC, the form stored in the database.
    Naive input is assumed to already be UTC.
    """
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def utc_now() -> datetime:
    """Current time as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_timestamp(value) -> datetime:
    """
    Parse an ISO-8601 timestamp (a trailing Z is accepted) into naive UTC.

    Raises:
        ValueError: If the value is not a timestamp
    """
    if isinstance(value, datetime):
        return to_utc_naive(value)
    if not isinstance(value, str) or not value:
        raise ValueError("Timestamp is required")
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return to_utc_naive(datetime.fromisoformat(text))


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render a stored naive-UTC timestamp as ISO-8601 with offset"""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def validate_hour_window(window: Optional[dict]) -> Optional[dict]:
    """
    Validate a {"from": h, "to": h} working-hours window.

    Raises:
        ValueError: If hours are outside 0-24 or the window runs backwards
    """
    if window is None:
        return window

    try:
        start_hour = int(window["from"])
        end_hour = int(window["to"])
    except (KeyError, TypeError, ValueError) as e:
        raise ValueError("Hours must look like {\"from\": 9, \"to\": 17}") from e

    if not (0 <= start_hour <= 24 and 0 <= end_hour <= 24):
        raise ValueError("Hours must be between 0 and 24")
    if end_hour < start_hour:
        raise ValueError("Working hours must end after they start")

    return {"from": start_hour, "to": end_hour}
