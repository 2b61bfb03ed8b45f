"""Account domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...models import DURATION_BUCKETS
from ...shared.validators import validate_email, validate_hour_window

MIN_PASSWORD_LENGTH = 6


def _check_password(v: str) -> str:
    if not v or len(v) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    return v


class RegisterRequest(BaseModel):
    name: str
    email: str
    password: str
    doctor: Optional[str] = None  # practitioner registration key

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        v = (v or "").strip()
        if not v:
            raise ValueError("Name is required")
        return v

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v: str) -> str:
        if not v:
            raise ValueError("Email is required")
        return validate_email(v)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)

    @field_validator("doctor")
    @classmethod
    def validate_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None or v == "":
            return None
        if len(v.strip()) < 3:
            raise ValueError("Invalid registration key")
        return v.strip()


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v: str) -> str:
        return validate_email(v)


class ForgotPasswordRequest(BaseModel):
    email: str

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v: str) -> str:
        return validate_email(v)


class ResetPasswordRequest(BaseModel):
    password: str

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _check_password(v)


class ProfileUpdate(BaseModel):
    """PUT /edit body; omitted or empty fields are left unchanged"""

    name: Optional[str] = None
    description: Optional[str] = None
    profilePhoto: Optional[str] = None
    helpOptions: Optional[list[str]] = None
    languageOptions: Optional[list[str]] = None
    rates: Optional[dict[str, int]] = None
    weekendHours: Optional[dict] = None
    workdayHours: Optional[dict] = None
    phoneNumber: Optional[str] = None

    @field_validator("rates")
    @classmethod
    def validate_rates(cls, v: Optional[dict[str, int]]) -> Optional[dict[str, int]]:
        if v is None:
            return v
        unknown = set(v) - set(DURATION_BUCKETS)
        if unknown:
            raise ValueError(f"Unknown rate buckets: {', '.join(sorted(unknown))}")
        if any(amount < 0 for amount in v.values()):
            raise ValueError("Rates cannot be negative")
        return v

    @field_validator("weekendHours", "workdayHours")
    @classmethod
    def validate_hours(cls, v: Optional[dict]) -> Optional[dict]:
        return validate_hour_window(v)


class BusyRequest(BaseModel):
    start: datetime
    end: datetime


class RegisterResponse(BaseModel):
    token: str
    accountId: str


class LoginResponse(BaseModel):
    name: str
    token: str
    role: str
