"""
Checkout session manager - prices a proposed slot, opens a payment session,
and reconciles the provider's signed completion webhook into a booking.
"""

import json
import logging
from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...config import DODO_PAYMENTS_WEBHOOK_SECRET, WEBHOOK_CLAIM_TIMEOUT_SECONDS
from ...errors import Conflict, NotFound, ValidationError
from ...services.payment_gateway import DodoCheckoutGateway
from ...shared.validators import parse_timestamp, to_utc_naive
from ...webhook_security import verify_standard_webhook
from ..accounts.repository import AccountRepository
from ..availability.service import AvailabilityIndex
from .lifecycle import AppointmentLifecycleCoordinator
from .pricing import calculate_price
from .repository import AppointmentRepository, PaymentEventRepository

logger = logging.getLogger(__name__)

COMPLETION_EVENTS = {"checkout.session.completed", "payment.succeeded"}
METADATA_FIELDS = ("patient_id", "practitioner_id", "start", "end", "notes", "cost")


def _is_paid(data: Mapping[str, Any]) -> bool:
    return data.get("payment_status") == "paid" or data.get("status") == "succeeded"


def _event_object(payload: Mapping[str, Any]) -> dict:
    """The payment object of a delivery; Stripe-style payloads nest it under data.object"""
    data = payload.get("data") or {}
    if isinstance(data, dict) and isinstance(data.get("object"), dict):
        return data["object"]
    return data if isinstance(data, dict) else {}


class CheckoutSessionManager:
    def __init__(
        self,
        db: Session,
        gateway: DodoCheckoutGateway,
        coordinator: AppointmentLifecycleCoordinator,
        webhook_secret: Optional[str] = None,
        claim_timeout: Optional[int] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.coordinator = coordinator
        self.availability = AvailabilityIndex(db)
        self.webhook_secret = webhook_secret or DODO_PAYMENTS_WEBHOOK_SECRET
        self.claim_timeout = WEBHOOK_CLAIM_TIMEOUT_SECONDS if claim_timeout is None else claim_timeout

    async def create_session(
        self,
        patient_id: str,
        practitioner_id: str,
        start: datetime,
        end: datetime,
        notes: Optional[str] = None,
    ) -> dict:
        """
        Open a checkout for a proposed slot. Nothing is stored; the booking only
        exists once the provider reports the payment.

        Returns:
            {"sessionId", "checkoutUrl", "cost"}
        """
        start, end = to_utc_naive(start), to_utc_naive(end)

        practitioner = AccountRepository.get_practitioner(self.db, practitioner_id)
        if not practitioner:
            raise NotFound("Practitioner not found")
        patient = AccountRepository.get_patient(self.db, patient_id)
        if not patient:
            raise NotFound("Patient not found")

        cost = calculate_price(start, end, practitioner.rates)
        if cost <= 0:
            raise ValidationError("The practitioner has no rate for this appointment length")

        if not self.availability.is_bookable(practitioner, start, end):
            raise Conflict("This time slot is not available")

        metadata = {
            "patient_id": patient.account_id,
            "practitioner_id": practitioner.account_id,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "notes": notes or "",
            "cost": str(cost),
        }
        session = await self.gateway.create_checkout_session(
            amount=cost,
            customer_email=patient.email,
            customer_name=patient.name,
            metadata=metadata,
        )

        logger.info(
            f"💳 Checkout {session.session_id}: patient={patient_id} practitioner={practitioner_id} cost={cost}"
        )
        return {"sessionId": session.session_id, "checkoutUrl": session.checkout_url, "cost": cost}

    async def handle_completion(self, raw_body: bytes, headers: Mapping[str, str]) -> dict:
        """
        Process a signed provider callback.

        Raises InvalidSignature or ValidationError before anything is recorded,
        and Conflict while another delivery of the same event is still being
        processed (the provider retries later). Otherwise the result is an
        acknowledgement; booking failures are recorded on the event and logged
        as reconciliation incidents.
        """
        event_id = verify_standard_webhook(headers, raw_body, self.webhook_secret)

        try:
            payload = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error(f"❌ Webhook {event_id} body is not valid JSON: {e}")
            raise ValidationError("Invalid JSON payload") from e
        if not isinstance(payload, dict):
            raise ValidationError("Invalid webhook payload")

        event_type = payload.get("type")
        data = _event_object(payload)
        payment_reference = data.get("payment_id") or data.get("checkout_session_id") or data.get("id")

        now = self.coordinator.clock()
        event, previous_status = PaymentEventRepository.claim(
            self.db,
            event_id,
            event_type,
            payment_reference,
            now=now,
            stale_before=now - timedelta(seconds=self.claim_timeout),
        )
        if event is None:
            if previous_status == "received":
                logger.warning(f"⏳ Webhook {event_id} is still being processed by an earlier delivery")
                raise Conflict("Webhook delivery is still being processed")
            logger.info(f"🔁 Payment event {event_id} already {previous_status}")
            return {"status": "already_processed", "eventId": event_id}

        resumed = previous_status == "received"
        if resumed:
            logger.error(
                f"❌ RECONCILIATION: webhook {event_id} (payment {payment_reference}) was left unfinished "
                f"by an earlier delivery; reprocessing"
            )

        if event_type not in COMPLETION_EVENTS or not _is_paid(data):
            logger.info(f"ℹ️ Webhook {event_id} ({event_type}) needs no booking")
            PaymentEventRepository.mark(self.db, event, "ignored")
            return {"status": "ignored", "eventId": event_id}

        if payment_reference and PaymentEventRepository.reference_confirmed(self.db, payment_reference, event_id):
            logger.info(f"🔁 Payment {payment_reference} already booked by an earlier delivery")
            PaymentEventRepository.mark(self.db, event, "ignored")
            return {"status": "already_processed", "eventId": event_id}

        try:
            booking = self._parse_metadata(data.get("metadata"))
            appointment = None
            if resumed:
                appointment = AppointmentRepository.find_booked(
                    self.db, booking["patient_id"], booking["practitioner_id"], booking["start"], booking["end"]
                )
                if appointment:
                    logger.info(f"Webhook {event_id} had already produced appointment {appointment.appointment_id}")
            if appointment is None:
                appointment = await self.coordinator.confirm_booking(**booking)
        except Exception as e:
            self.db.rollback()
            logger.error(
                f"❌ RECONCILIATION: paid webhook {event_id} (payment {payment_reference}) "
                f"did not produce a booking: {type(e).__name__}: {e}"
            )
            PaymentEventRepository.mark(self.db, event, "failed", error=f"{type(e).__name__}: {e}")
            return {"status": "failed", "eventId": event_id}

        PaymentEventRepository.mark(self.db, event, "confirmed", appointment_id=appointment.appointment_id)
        return {"status": "confirmed", "eventId": event_id, "appointmentId": appointment.appointment_id}

    @staticmethod
    def _parse_metadata(metadata: Optional[Mapping[str, Any]]) -> dict:
        if not metadata:
            raise ValidationError("Payment carries no booking metadata")

        missing = [name for name in METADATA_FIELDS if name != "notes" and not metadata.get(name)]
        if missing:
            raise ValidationError(f"Booking metadata missing: {', '.join(missing)}")

        try:
            return {
                "patient_id": str(metadata["patient_id"]),
                "practitioner_id": str(metadata["practitioner_id"]),
                "start": parse_timestamp(metadata["start"]),
                "end": parse_timestamp(metadata["end"]),
                "notes": metadata.get("notes") or "",
                "price": int(metadata["cost"]),
            }
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Malformed booking metadata: {e}") from e
