import asyncio
from collections import defaultdict

from fastapi import Request


class BookingLocks:
    """Per-practitioner locks serializing booking confirmation inside one process"""

    def __init__(self):
        # One small lock per practitioner, never evicted; bounded by the practitioner count
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def for_practitioner(self, practitioner_id: str) -> asyncio.Lock:
        return self._locks[practitioner_id]


def get_booking_locks(request: Request) -> BookingLocks:
    """FastAPI dependency; the lifespan normally installs the instance on app.state"""
    locks = getattr(request.app.state, "booking_locks", None)
    if locks is None:
        locks = BookingLocks()
        request.app.state.booking_locks = locks
    return locks
