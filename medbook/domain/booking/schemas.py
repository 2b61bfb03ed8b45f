"""Booking domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator


class CheckoutSessionRequest(BaseModel):
    """Proposed booking sent by the patient before paying"""

    userId: str
    doctorId: str
    start: datetime
    end: datetime
    notes: Optional[str] = ""

    @field_validator("notes")
    @classmethod
    def validate_notes(cls, v: Optional[str]) -> str:
        v = (v or "").strip()
        if len(v) > 2000:
            raise ValueError("notes must be at most 2000 characters")
        return v


class CheckoutSessionResponse(BaseModel):
    sessionId: str
    checkoutUrl: str
    cost: int


class RateDoctorRequest(BaseModel):
    doctorId: Optional[str] = None
    rating: int
    appointmentId: str


class RateDoctorResponse(BaseModel):
    message: str
    averageRating: float
