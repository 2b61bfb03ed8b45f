"""Search filter parsing for /sortedDoctors"""

from typing import Any, Optional

from pydantic import BaseModel, ValidationError as PydanticValidationError, field_validator

from ...errors import ValidationError
from ...models import DURATION_BUCKETS
from .service import SearchFilters


class SortCriteria(BaseModel):
    """sortBy query parameter, e.g. {"languageOptions": ["en"], "appointmentLength": ["30"], "price": [10, 50]}"""

    languageOptions: list[str] = []
    helpOptions: list[str] = []
    appointmentLength: list[str] = []
    price: list[int] = []

    @field_validator("appointmentLength", mode="before")
    @classmethod
    def validate_length(cls, v: Any) -> list[str]:
        values = [str(item) for item in (v or [])]
        if values and values[0] not in DURATION_BUCKETS:
            raise ValueError(f"appointmentLength must be one of {', '.join(DURATION_BUCKETS)}")
        return values

    @field_validator("price")
    @classmethod
    def validate_price(cls, v: list[int]) -> list[int]:
        if v and len(v) != 2:
            raise ValueError("price must be [min, max]")
        return v


def parse_search_filters(raw: Optional[dict]) -> SearchFilters:
    if raw is not None and not isinstance(raw, dict):
        raise ValidationError("Invalid sort criteria")
    try:
        criteria = SortCriteria(**(raw or {}))
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid sort criteria: {e.errors()[0].get('msg')}") from e

    has_range = bool(criteria.appointmentLength and criteria.price)
    return SearchFilters(
        language_options=criteria.languageOptions,
        help_options=criteria.helpOptions,
        appointment_length=criteria.appointmentLength[0] if criteria.appointmentLength else None,
        price_min=criteria.price[0] if has_range else None,
        price_max=criteria.price[1] if has_range else None,
    )
