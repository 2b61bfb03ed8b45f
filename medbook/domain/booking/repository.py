"""Booking repository - Database operations for appointments, ratings and payment events"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...models import Appointment, PaymentEvent, Rating
from ...shared.validators import format_timestamp

logger = logging.getLogger(__name__)


def _common_fields(appointment: Appointment) -> dict:
    return {
        "appointmentId": appointment.appointment_id,
        "createdAt": format_timestamp(appointment.created_at),
        "updatedAt": format_timestamp(appointment.updated_at),
        "notes": appointment.notes or "",
        "start": format_timestamp(appointment.start),
        "end": format_timestamp(appointment.end),
        "meetingId": appointment.meeting_id,
        "appointmentUrl": appointment.appointment_url,
    }


def practitioner_view(appointment: Appointment) -> dict:
    """Practitioner-side projection: adds the patient and the price"""
    view = _common_fields(appointment)
    view["patientId"] = appointment.patient_id
    view["price"] = appointment.price
    return view


def patient_view(appointment: Appointment) -> dict:
    """Patient-side projection: adds the practitioner and the rating, never the price"""
    view = _common_fields(appointment)
    view["practitionerId"] = appointment.practitioner_id
    view["practitionerFullName"] = appointment.practitioner_full_name
    view["rating"] = appointment.patient_rating or 0
    return view


class AppointmentRepository:
    """Repository for appointment database operations"""

    @staticmethod
    def get_for_practitioner(db: Session, practitioner_id: str, appointment_id: str) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(
                Appointment.appointment_id == appointment_id,
                Appointment.practitioner_id == practitioner_id,
            )
            .first()
        )

    @staticmethod
    def get_for_patient(db: Session, patient_id: str, appointment_id: str) -> Optional[Appointment]:
        return (
            db.query(Appointment)
            .filter(
                Appointment.appointment_id == appointment_id,
                Appointment.patient_id == patient_id,
            )
            .first()
        )

    @staticmethod
    def list_for_practitioner(db: Session, practitioner_id: str) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.practitioner_id == practitioner_id)
            .order_by(Appointment.start.asc())
            .all()
        )

    @staticmethod
    def list_for_patient(db: Session, patient_id: str) -> list[Appointment]:
        return (
            db.query(Appointment)
            .filter(Appointment.patient_id == patient_id)
            .order_by(Appointment.start.asc())
            .all()
        )

    @staticmethod
    def find_overlapping(db: Session, practitioner_id: str, start: datetime, end: datetime) -> list[Appointment]:
        """Appointments of a practitioner intersecting the half-open window [start, end)"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.practitioner_id == practitioner_id,
                Appointment.start < end,
                Appointment.end > start,
            )
            .all()
        )

    @staticmethod
    def find_booked(
        db: Session, patient_id: str, practitioner_id: str, start: datetime, end: datetime
    ) -> Optional[Appointment]:
        """The appointment a given paid slot already produced, if any"""
        return (
            db.query(Appointment)
            .filter(
                Appointment.patient_id == patient_id,
                Appointment.practitioner_id == practitioner_id,
                Appointment.start == start,
                Appointment.end == end,
            )
            .first()
        )

    @staticmethod
    def delete(db: Session, appointment_id: str) -> int:
        """Delete by id without committing; returns the number of rows removed"""
        return (
            db.query(Appointment)
            .filter(Appointment.appointment_id == appointment_id)
            .delete(synchronize_session=False)
        )

    @staticmethod
    def set_rating_once(db: Session, appointment_id: str, value: int) -> bool:
        """Conditional write: only an unrated appointment accepts a rating"""
        updated = (
            db.query(Appointment)
            .filter(Appointment.appointment_id == appointment_id, Appointment.patient_rating == 0)
            .update({Appointment.patient_rating: value}, synchronize_session=False)
        )
        return updated == 1

    @staticmethod
    def add_rating(db: Session, practitioner_id: str, patient_id: str, appointment_id: str, value: int) -> Rating:
        rating = Rating(
            practitioner_id=practitioner_id,
            patient_id=patient_id,
            appointment_id=appointment_id,
            value=value,
        )
        db.add(rating)
        db.flush()
        return rating

    @staticmethod
    def average_rating(db: Session, practitioner_id: str) -> float:
        average = (
            db.query(func.avg(Rating.value)).filter(Rating.practitioner_id == practitioner_id).scalar()
        )
        return float(average or 0.0)


class PaymentEventRepository:
    """Webhook delivery ledger; the unique event id is the idempotency key"""

    @staticmethod
    def claim(
        db: Session,
        event_id: str,
        event_type: Optional[str],
        payment_reference: Optional[str],
        now: datetime,
        stale_before: datetime,
    ) -> tuple[Optional[PaymentEvent], Optional[str]]:
        """
        Take ownership of a webhook delivery.

        Returns (event, None) for a first delivery, (event, "received") when a
        delivery abandoned before finishing is taken over, and (None, status)
        when the event is finished or another delivery is still working on it.
        """
        event = PaymentEvent(
            event_id=event_id,
            event_type=event_type,
            payment_reference=payment_reference,
            status="received",
            claimed_at=now,
        )
        db.add(event)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
        else:
            db.refresh(event)
            return event, None

        # Conditional update; only one redelivery can take over a stale claim
        reclaimed = (
            db.query(PaymentEvent)
            .filter(
                PaymentEvent.event_id == event_id,
                PaymentEvent.status == "received",
                or_(PaymentEvent.claimed_at.is_(None), PaymentEvent.claimed_at < stale_before),
            )
            .update({PaymentEvent.claimed_at: now}, synchronize_session=False)
        )
        db.commit()

        existing = db.query(PaymentEvent).filter(PaymentEvent.event_id == event_id).first()
        if reclaimed == 1 and existing is not None:
            return existing, "received"
        return None, existing.status if existing else None

    @staticmethod
    def reference_confirmed(db: Session, payment_reference: str, exclude_event_id: str) -> bool:
        """Whether another delivery for the same payment already produced a booking"""
        return (
            db.query(PaymentEvent)
            .filter(
                PaymentEvent.payment_reference == payment_reference,
                PaymentEvent.status == "confirmed",
                PaymentEvent.event_id != exclude_event_id,
            )
            .first()
            is not None
        )

    @staticmethod
    def mark(
        db: Session,
        event: PaymentEvent,
        status: str,
        appointment_id: Optional[str] = None,
        error: Optional[str] = None,
    ) -> PaymentEvent:
        event.status = status
        if appointment_id is not None:
            event.appointment_id = appointment_id
        if error is not None:
            event.error = error
        db.commit()
        db.refresh(event)
        return event
