"""
Appointment lifecycle - confirmation, cancellation and rating of bookings.

A booking moves Priced -> Confirmed -> Cancelled or Rated. Confirmation runs
inside a per-practitioner critical section so overlapping payments for the
same practitioner cannot both produce an appointment. External effects are
ordered: meeting provisioned, then row committed, then notifications sent.
"""

import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...errors import AlreadyRated, Conflict, NotFound, ReconciliationError, TooEarly, ValidationError
from ...models import ROLE_PRACTITIONER, Account, Appointment, generate_public_id
from ...services.meeting_provisioner import WherebyMeetingProvisioner
from ...services.notification_service import NotificationGateway
from ...shared.validators import to_utc_naive, utc_now
from ..accounts.repository import AccountRepository
from .locks import BookingLocks
from .repository import AppointmentRepository

logger = logging.getLogger(__name__)


class AppointmentLifecycleCoordinator:
    def __init__(
        self,
        db: Session,
        provisioner: WherebyMeetingProvisioner,
        notifier: NotificationGateway,
        locks: BookingLocks,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.provisioner = provisioner
        self.notifier = notifier
        self.locks = locks
        self.clock = clock

    async def _deprovision(self, meeting_id: str) -> None:
        """Best-effort room deletion; a dangling room is logged, not raised"""
        try:
            await self.provisioner.delete_meeting(meeting_id)
        except Exception as e:
            logger.warning(f"⚠️ Could not delete meeting {meeting_id}, it must be removed manually: {e}")

    async def confirm_booking(
        self,
        patient_id: str,
        practitioner_id: str,
        start: datetime,
        end: datetime,
        notes: Optional[str],
        price: int,
    ) -> Appointment:
        """
        Turn a paid checkout into an appointment.

        Raises:
            NotFound: Practitioner or patient missing
            Conflict: The window overlaps an existing appointment of the practitioner
            UpstreamFailure: The meeting room could not be created (nothing recorded)
            ReconciliationError: The room exists but the appointment could not be stored
        """
        start, end = to_utc_naive(start), to_utc_naive(end)
        if end <= start:
            raise ValidationError("Appointment must end after it starts")

        if not AccountRepository.get_practitioner(self.db, practitioner_id):
            raise NotFound("Practitioner not found")
        if not AccountRepository.get_patient(self.db, patient_id):
            raise NotFound("Patient not found")

        async with self.locks.for_practitioner(practitioner_id):
            practitioner = AccountRepository.get_practitioner(self.db, practitioner_id, for_update=True)
            patient = AccountRepository.get_patient(self.db, patient_id)
            if not practitioner or not patient:
                raise NotFound("Account no longer exists")

            if AppointmentRepository.find_overlapping(self.db, practitioner_id, start, end):
                logger.warning(
                    f"⚠️ Slot collision for practitioner {practitioner_id}: {start.isoformat()}-{end.isoformat()}"
                )
                raise Conflict("The practitioner already has an appointment in this time slot")

            meeting = await self.provisioner.create_meeting(start, end)

            appointment = Appointment(
                appointment_id=generate_public_id(),
                practitioner_id=practitioner.account_id,
                patient_id=patient.account_id,
                practitioner_full_name=practitioner.name,
                notes=notes or "",
                start=start,
                end=end,
                meeting_id=meeting.meeting_id,
                appointment_url=meeting.room_url,
                price=int(price),
                patient_rating=0,
            )
            try:
                self.db.add(appointment)
                self.db.commit()
                self.db.refresh(appointment)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(
                    f"❌ RECONCILIATION: meeting {meeting.meeting_id} created but appointment "
                    f"for patient {patient_id} / practitioner {practitioner_id} was not stored: {e}"
                )
                await self._deprovision(meeting.meeting_id)
                raise ReconciliationError("Appointment could not be recorded") from e

        logger.info(
            f"✅ Appointment {appointment.appointment_id} confirmed: "
            f"practitioner={practitioner_id} patient={patient_id} price={appointment.price}"
        )

        try:
            await self.notifier.booking_confirmed(appointment, practitioner, patient)
        except Exception as e:
            logger.error(f"❌ Booking notifications failed for {appointment.appointment_id}: {e}")

        return appointment

    def _find_own(self, actor_role: str, owner_id: str, appointment_id: str) -> Optional[Appointment]:
        if actor_role == ROLE_PRACTITIONER:
            return AppointmentRepository.get_for_practitioner(self.db, owner_id, appointment_id)
        return AppointmentRepository.get_for_patient(self.db, owner_id, appointment_id)

    async def cancel(
        self,
        actor_role: str,
        owner_id: str,
        appointment_id: str,
        reason: Optional[str] = None,
    ) -> None:
        """
        Cancel an appointment listed for the acting party.

        Raises:
            NotFound: The appointment is not in the actor's own list (including
                when it was already cancelled)
        """
        appointment = self._find_own(actor_role, owner_id, appointment_id)
        if not appointment:
            raise NotFound("Appointment not found")

        async with self.locks.for_practitioner(appointment.practitioner_id):
            # Re-read inside the critical section; a concurrent cancel may have won
            appointment = self._find_own(actor_role, owner_id, appointment_id)
            if not appointment:
                raise NotFound("Appointment not found")

            patient_id = appointment.patient_id
            practitioner_name = appointment.practitioner_full_name or ""
            start, end = appointment.start, appointment.end
            meeting_id = appointment.meeting_id

            if meeting_id:
                await self._deprovision(meeting_id)

            deleted = AppointmentRepository.delete(self.db, appointment_id)
            self.db.commit()

        if deleted == 0:
            logger.info(f"Appointment {appointment_id} was already cancelled concurrently")
            raise NotFound("Appointment not found")

        logger.info(f"🗑️ Appointment {appointment_id} cancelled by {actor_role} {owner_id}")

        if actor_role == ROLE_PRACTITIONER:
            patient = AccountRepository.get_by_account_id(self.db, patient_id)
            if patient:
                try:
                    await self.notifier.appointment_cancelled(patient, practitioner_name, start, end, reason)
                except Exception as e:
                    logger.error(f"❌ Cancellation notice failed for {appointment_id}: {e}")

    async def rate(
        self,
        patient_id: str,
        appointment_id: str,
        value: int,
        practitioner_id: Optional[str] = None,
    ) -> float:
        """
        Rate a finished appointment once; returns the practitioner's new average.

        Raises:
            ValidationError: Value outside 1-5, or practitioner_id not the appointment's
            NotFound: Appointment not in the patient's list
            AlreadyRated: Appointment already carries a rating
            TooEarly: The appointment has not ended yet
        """
        if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 5:
            raise ValidationError("Rating must be an integer from 1 to 5")

        appointment = AppointmentRepository.get_for_patient(self.db, patient_id, appointment_id)
        if not appointment:
            raise NotFound("Appointment not found")

        if practitioner_id and practitioner_id != appointment.practitioner_id:
            raise ValidationError("Appointment belongs to a different practitioner")

        if appointment.patient_rating:
            raise AlreadyRated("Appointment already rated")

        if self.clock() <= appointment.end:
            raise TooEarly("Cannot rate before the appointment has ended")

        if not AppointmentRepository.set_rating_once(self.db, appointment_id, value):
            self.db.rollback()
            raise AlreadyRated("Appointment already rated")

        AppointmentRepository.add_rating(
            self.db, appointment.practitioner_id, patient_id, appointment_id, value
        )
        average = AppointmentRepository.average_rating(self.db, appointment.practitioner_id)

        practitioner: Optional[Account] = AccountRepository.get_by_account_id(
            self.db, appointment.practitioner_id
        )
        if practitioner:
            practitioner.average_rating = average

        self.db.commit()
        self.db.refresh(appointment)
        logger.info(
            f"⭐ Appointment {appointment_id} rated {value}; practitioner "
            f"{appointment.practitioner_id} average now {average:.2f}"
        )
        return average
