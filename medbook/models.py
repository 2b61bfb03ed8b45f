import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base

ROLE_PATIENT = "patient"
ROLE_PRACTITIONER = "practitioner"

DURATION_BUCKETS = ("15", "30", "45", "60")


def generate_public_id():
    """Generate a unique public ID for accounts and appointments"""
    return str(uuid.uuid4())


def default_rates():
    return {bucket: 0 for bucket in DURATION_BUCKETS}


def default_workday_hours():
    return {"from": 9, "to": 17}


def default_weekend_hours():
    return {"from": 0, "to": 0}


class Account(Base):
    """Patient or practitioner identity; `role` is resolved once at lookup."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String(36), unique=True, index=True, nullable=False, default=generate_public_id)
    role = Column(String(20), nullable=False, index=True)  # patient, practitioner
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    description = Column(Text, nullable=True, default="")
    profile_photo = Column(String(500), nullable=True, default="")
    is_verified = Column(Boolean, default=False, nullable=False)
    verification_token = Column(String(64), nullable=True)  # Cleared once verified
    reset_token = Column(String(128), nullable=True, index=True)
    reset_token_expires_at = Column(DateTime, nullable=True)
    language_options = Column(JSON, default=list, nullable=False)

    # Practitioner profile
    help_options = Column(JSON, default=list, nullable=False)
    phone_number = Column(String(50), nullable=True)
    rates = Column(JSON, default=default_rates, nullable=False)  # bucket minutes -> minor units
    workday_hours = Column(JSON, default=default_workday_hours, nullable=False)
    weekend_hours = Column(JSON, default=default_weekend_hours, nullable=False)
    average_rating = Column(Float, default=0.0, nullable=False)
    balance = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    busy_intervals = relationship(
        "BusyInterval",
        back_populates="practitioner",
        cascade="all, delete-orphan",
        order_by="BusyInterval.start",
    )

    @property
    def is_practitioner(self) -> bool:
        return self.role == ROLE_PRACTITIONER

    @property
    def is_patient(self) -> bool:
        return self.role == ROLE_PATIENT


class BusyInterval(Base):
    __tablename__ = "busy_intervals"

    id = Column(Integer, primary_key=True, index=True)
    practitioner_id = Column(
        String(36), ForeignKey("accounts.account_id", ondelete="CASCADE"), nullable=False, index=True
    )
    start = Column(DateTime, nullable=False)
    end = Column(DateTime, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    practitioner = relationship("Account", back_populates="busy_intervals")


class Appointment(Base):
    """
    Single record of a confirmed booking.

    The practitioner's `appointments` list and the patient's `appointmentsMade`
    list are both projections of this row, so a booking is always visible to
    both parties or to neither.
    """

    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(String(36), unique=True, index=True, nullable=False, default=generate_public_id)
    practitioner_id = Column(String(36), ForeignKey("accounts.account_id"), nullable=False, index=True)
    patient_id = Column(String(36), ForeignKey("accounts.account_id"), nullable=False, index=True)
    practitioner_full_name = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True, default="")
    start = Column(DateTime, nullable=False, index=True)
    end = Column(DateTime, nullable=False)
    meeting_id = Column(String(255), nullable=True)
    appointment_url = Column(String(1000), nullable=True)
    price = Column(Integer, nullable=False)  # minor units
    patient_rating = Column(Integer, default=0, nullable=False)  # 0 = unrated, 1-5 once rated
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class Rating(Base):
    """Append-only; a practitioner's average is recomputed from these rows"""

    __tablename__ = "ratings"

    id = Column(Integer, primary_key=True, index=True)
    practitioner_id = Column(String(36), ForeignKey("accounts.account_id"), nullable=False, index=True)
    patient_id = Column(String(36), ForeignKey("accounts.account_id"), nullable=False)
    appointment_id = Column(String(36), nullable=True)
    value = Column(Integer, nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class RegistrationKey(Base):
    """One-use key that lets a practitioner register"""

    __tablename__ = "registration_keys"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(16), unique=True, index=True, nullable=False)
    account_id = Column(String(36), nullable=True)  # Set once consumed
    created_at = Column(DateTime, server_default=func.now())


class PaymentEvent(Base):
    """Ledger of payment-provider webhook deliveries, keyed by provider event id"""

    __tablename__ = "payment_events"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(255), unique=True, index=True, nullable=False)
    event_type = Column(String(100), nullable=True)
    payment_reference = Column(String(255), nullable=True, index=True)  # payment or checkout session id
    status = Column(String(20), nullable=False, default="received")  # received, confirmed, ignored, failed
    claimed_at = Column(DateTime, nullable=True)  # UTC time the current delivery started processing
    appointment_id = Column(String(36), nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())
