"""Availability router - practitioner search and booked-slot views"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_optional_account
from ...database import get_db
from ...errors import ValidationError
from ...models import Account
from .schemas import parse_search_filters
from .service import AvailabilityIndex

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Availability"])


def get_availability_index(db: Session = Depends(get_db)) -> AvailabilityIndex:
    return AvailabilityIndex(db)


@router.get("/sortedDoctors")
async def sorted_doctors(
    sortBy: Optional[str] = Query(None, description="JSON filter object"),
    order: Optional[str] = Query(None),
    index: AvailabilityIndex = Depends(get_availability_index),
):
    if order not in ("asc", "desc"):
        raise ValidationError("Invalid sort order")

    try:
        raw_filters = json.loads(sortBy) if sortBy else {}
    except json.JSONDecodeError as e:
        raise ValidationError("Invalid sort criteria") from e

    filters = parse_search_filters(raw_filters)
    return {"doctors": index.list_bookable(filters, order)}


@router.get("/doctors")
async def list_doctors(index: AvailabilityIndex = Depends(get_availability_index)):
    return {"doctors": index.list_practitioners()}


@router.get("/appointments/{userId}")
async def practitioner_appointments(
    userId: str,
    requester: Optional[Account] = Depends(get_optional_account),
    index: AvailabilityIndex = Depends(get_availability_index),
):
    return index.get_availability(userId, requester)
