"""Availability index - bookability checks and practitioner search"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from ...config import PRACTITIONER_TIMEZONE
from ...errors import NotFound
from ...models import DURATION_BUCKETS, Account, BusyInterval
from ...shared.validators import format_timestamp, to_utc_naive
from ..accounts.repository import AccountRepository
from ..booking.repository import AppointmentRepository, practitioner_view

logger = logging.getLogger(__name__)

MAX_RESULTS = 30
DEFAULT_SORT_BUCKET = "30"


def _get_timezone(name: Optional[str]) -> ZoneInfo:
    """ZoneInfo with a UTC fallback for unknown names"""
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone '{name}', falling back to UTC")
        return ZoneInfo("UTC")


def _window(hours: Optional[dict]) -> tuple[int, int]:
    hours = hours or {}
    return int(hours.get("from", 0) or 0), int(hours.get("to", 0) or 0)


def practitioner_summary(account: Account) -> dict:
    """Public listing fields of a practitioner"""
    return {
        "userId": account.account_id,
        "name": account.name,
        "profilePhoto": account.profile_photo or "",
        "helpOptions": account.help_options or [],
        "languageOptions": account.language_options or [],
        "rates": account.rates or {},
        "averageRating": account.average_rating or 0.0,
    }


@dataclass
class SearchFilters:
    language_options: list[str] = field(default_factory=list)
    help_options: list[str] = field(default_factory=list)
    appointment_length: Optional[str] = None  # duration bucket the price range and sort apply to
    price_min: Optional[int] = None
    price_max: Optional[int] = None


class AvailabilityIndex:
    def __init__(self, db: Session, timezone_name: Optional[str] = None):
        self.db = db
        self.tz = _get_timezone(timezone_name or PRACTITIONER_TIMEZONE)

    # ------------------------------------------------------------------
    # Bookability
    # ------------------------------------------------------------------

    def overlaps_busy(self, practitioner_id: str, start: datetime, end: datetime) -> bool:
        return (
            self.db.query(BusyInterval)
            .filter(
                BusyInterval.practitioner_id == practitioner_id,
                BusyInterval.start < end,
                BusyInterval.end > start,
            )
            .first()
            is not None
        )

    def within_working_hours(self, practitioner: Account, start: datetime, end: datetime) -> bool:
        """
        The slot must fall inside one local day's window: workday_hours Monday
        to Friday, weekend_hours Saturday and Sunday. from == to means closed.
        """
        local_start = start.replace(tzinfo=timezone.utc).astimezone(self.tz)
        local_end = end.replace(tzinfo=timezone.utc).astimezone(self.tz)

        hours = practitioner.weekend_hours if local_start.weekday() >= 5 else practitioner.workday_hours
        open_hour, close_hour = _window(hours)
        if close_hour <= open_hour:
            return False

        midnight = datetime.combine(local_start.date(), time(0), tzinfo=self.tz)
        opens_at = midnight + timedelta(hours=open_hour)
        closes_at = midnight + timedelta(hours=close_hour)
        return opens_at <= local_start and local_end <= closes_at

    def is_bookable(self, practitioner: Account, start: datetime, end: datetime) -> bool:
        start, end = to_utc_naive(start), to_utc_naive(end)
        if end <= start:
            return False
        if AppointmentRepository.find_overlapping(self.db, practitioner.account_id, start, end):
            logger.info(f"Slot {start.isoformat()} overlaps an appointment of {practitioner.account_id}")
            return False
        if self.overlaps_busy(practitioner.account_id, start, end):
            logger.info(f"Slot {start.isoformat()} overlaps a busy interval of {practitioner.account_id}")
            return False
        if not self.within_working_hours(practitioner, start, end):
            logger.info(f"Slot {start.isoformat()} is outside working hours of {practitioner.account_id}")
            return False
        return True

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def list_bookable(self, filters: SearchFilters, order: str = "asc") -> list[dict]:
        """Practitioners open on workdays, filtered by tags and price, sorted by one bucket's rate"""
        bucket = filters.appointment_length if filters.appointment_length in DURATION_BUCKETS else DEFAULT_SORT_BUCKET
        languages = set(filters.language_options)
        help_tags = set(filters.help_options)

        matches = []
        for practitioner in AccountRepository.list_practitioners(self.db):
            open_hour, close_hour = _window(practitioner.workday_hours)
            if close_hour <= open_hour:
                continue
            if languages and not languages.intersection(practitioner.language_options or []):
                continue
            if help_tags and not help_tags.intersection(practitioner.help_options or []):
                continue

            rate = int((practitioner.rates or {}).get(bucket, 0) or 0)
            if filters.appointment_length and filters.price_min is not None and filters.price_max is not None:
                if not filters.price_min < rate < filters.price_max:
                    continue

            matches.append((rate, practitioner))

        matches.sort(key=lambda item: item[0], reverse=(order == "desc"))
        return [practitioner_summary(practitioner) for _, practitioner in matches[:MAX_RESULTS]]

    def list_practitioners(self) -> list[dict]:
        return [practitioner_summary(p) for p in AccountRepository.list_practitioners(self.db)[:MAX_RESULTS]]

    def get_availability(self, practitioner_id: str, requester: Optional[Account] = None) -> dict:
        """
        Booked windows and busy intervals of a practitioner.
        Only the practitioner themself sees full appointment detail.
        """
        practitioner = AccountRepository.get_practitioner(self.db, practitioner_id)
        if not practitioner:
            raise NotFound("Practitioner not found")

        appointments = AppointmentRepository.list_for_practitioner(self.db, practitioner_id)
        if requester is not None and requester.account_id == practitioner.account_id:
            booked = [practitioner_view(a) for a in appointments]
        else:
            booked = [{"start": format_timestamp(a.start), "end": format_timestamp(a.end)} for a in appointments]

        busy = [
            {"start": format_timestamp(b.start), "end": format_timestamp(b.end)}
            for b in practitioner.busy_intervals
        ]
        return {"appointments": booked, "busy": busy}
