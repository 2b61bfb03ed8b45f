"""
Notification Gateway
One-way email notifications for account and booking events.
Delivery failures are logged and reported in the result, never raised.
"""

import logging
from typing import Optional

from .. import email_service
from ..models import Account, Appointment

logger = logging.getLogger(__name__)


class NotificationGateway:
    """Hands templated messages to the email service"""

    async def _deliver(self, notification_type: str, to: Optional[str], email_func, **email_kwargs) -> dict:
        result = {"email_sent": False, "email_error": None}

        if not to:
            logger.debug(f"⚠️ No email address for {notification_type} notification")
            return result

        try:
            logger.info(f"📧 Sending {notification_type} email to {to}")
            await email_func(to=to, **email_kwargs)
            result["email_sent"] = True
            logger.info(f"✅ {notification_type} email sent successfully to {to}")
        except Exception as e:
            result["email_error"] = str(e)
            logger.error(f"❌ Failed to send {notification_type} email to {to}: {e}")

        return result

    async def email_verification(self, account: Account, verify_url: str) -> dict:
        return await self._deliver(
            "verification",
            account.email,
            email_service.send_verification_email,
            user_name=account.name,
            verify_url=verify_url,
        )

    async def password_reset(self, account: Account, reset_link: str) -> dict:
        return await self._deliver(
            "password reset",
            account.email,
            email_service.send_password_reset_email,
            reset_link=reset_link,
        )

    async def booking_confirmed(
        self, appointment: Appointment, practitioner: Account, patient: Account
    ) -> dict:
        """Notify both parties; each delivery succeeds or fails independently"""
        practitioner_result = await self._deliver(
            "booking confirmation (practitioner)",
            practitioner.email,
            email_service.send_practitioner_booking_email,
            practitioner_name=practitioner.name,
            patient_name=patient.name,
            start=appointment.start,
            end=appointment.end,
            notes=appointment.notes,
            appointment_url=appointment.appointment_url,
            price=appointment.price,
        )
        patient_result = await self._deliver(
            "booking confirmation (patient)",
            patient.email,
            email_service.send_patient_booking_email,
            patient_name=patient.name,
            practitioner_name=practitioner.name,
            start=appointment.start,
            end=appointment.end,
            notes=appointment.notes,
            appointment_url=appointment.appointment_url,
        )
        return {"practitioner": practitioner_result, "patient": patient_result}

    async def appointment_cancelled(
        self,
        patient: Account,
        practitioner_name: str,
        start,
        end,
        reason: Optional[str],
    ) -> dict:
        return await self._deliver(
            "cancellation",
            patient.email,
            email_service.send_cancellation_email,
            patient_name=patient.name,
            practitioner_name=practitioner_name,
            start=start,
            end=end,
            reason=reason,
        )


_notifier: Optional[NotificationGateway] = None


def get_notifier() -> NotificationGateway:
    """FastAPI dependency returning the process-wide notification gateway"""
    global _notifier
    if _notifier is None:
        _notifier = NotificationGateway()
    return _notifier
