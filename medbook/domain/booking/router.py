"""Booking router - checkout, payment webhook, cancellation and rating endpoints"""

import logging

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from ...auth import get_current_patient, get_current_practitioner
from ...database import get_db
from ...errors import Unauthorized
from ...models import ROLE_PATIENT, ROLE_PRACTITIONER, Account
from ...rate_limiter import rate_limit_checkout, rate_limit_webhook
from ...services.meeting_provisioner import WherebyMeetingProvisioner, get_meeting_provisioner
from ...services.notification_service import NotificationGateway, get_notifier
from ...services.payment_gateway import DodoCheckoutGateway, get_payment_gateway
from .checkout_service import CheckoutSessionManager
from .lifecycle import AppointmentLifecycleCoordinator
from .locks import BookingLocks, get_booking_locks
from .repository import AppointmentRepository, patient_view
from .schemas import CheckoutSessionRequest, CheckoutSessionResponse, RateDoctorRequest, RateDoctorResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Booking"])


def get_coordinator(
    db: Session = Depends(get_db),
    provisioner: WherebyMeetingProvisioner = Depends(get_meeting_provisioner),
    notifier: NotificationGateway = Depends(get_notifier),
    locks: BookingLocks = Depends(get_booking_locks),
) -> AppointmentLifecycleCoordinator:
    """Dependency injection for AppointmentLifecycleCoordinator"""
    return AppointmentLifecycleCoordinator(db, provisioner, notifier, locks)


def get_checkout_manager(
    db: Session = Depends(get_db),
    gateway: DodoCheckoutGateway = Depends(get_payment_gateway),
    coordinator: AppointmentLifecycleCoordinator = Depends(get_coordinator),
) -> CheckoutSessionManager:
    """Dependency injection for CheckoutSessionManager"""
    return CheckoutSessionManager(db, gateway, coordinator)


# ============================================================================
# CHECKOUT & PAYMENT WEBHOOK
# ============================================================================


@router.post(
    "/create-checkout-session",
    response_model=CheckoutSessionResponse,
    dependencies=[Depends(rate_limit_checkout)],
)
async def create_checkout_session(
    body: CheckoutSessionRequest,
    patient: Account = Depends(get_current_patient),
    manager: CheckoutSessionManager = Depends(get_checkout_manager),
):
    """Price a slot and open a payment session; the booking is created by the webhook"""
    if body.userId != patient.account_id:
        raise Unauthorized("Cannot book on behalf of another account")

    return await manager.create_session(
        patient_id=patient.account_id,
        practitioner_id=body.doctorId,
        start=body.start,
        end=body.end,
        notes=body.notes,
    )


@router.post("/webhook", dependencies=[Depends(rate_limit_webhook)])
async def payment_webhook(request: Request, manager: CheckoutSessionManager = Depends(get_checkout_manager)):
    """Signed payment-provider callback (raw body is verified before parsing)"""
    raw_body = await request.body()
    return await manager.handle_completion(raw_body, request.headers)


# ============================================================================
# APPOINTMENTS
# ============================================================================


@router.get("/appointmentsMade")
async def list_appointments_made(patient: Account = Depends(get_current_patient), db: Session = Depends(get_db)):
    appointments = AppointmentRepository.list_for_patient(db, patient.account_id)
    return {"appointmentsMade": [patient_view(a) for a in appointments]}


@router.delete("/appointmentsCancel/{userId}/{appointmentId}")
async def cancel_appointment(
    userId: str,
    appointmentId: str,
    patient: Account = Depends(get_current_patient),
    coordinator: AppointmentLifecycleCoordinator = Depends(get_coordinator),
):
    if userId != patient.account_id:
        raise Unauthorized("Cannot cancel another account's appointment")

    await coordinator.cancel(ROLE_PATIENT, patient.account_id, appointmentId)
    return {"message": "Appointment cancelled successfully"}


@router.delete("/appointmentsCancelForPractitioner/{appointmentId}/{reason}")
async def cancel_appointment_for_practitioner(
    appointmentId: str,
    reason: str,
    practitioner: Account = Depends(get_current_practitioner),
    coordinator: AppointmentLifecycleCoordinator = Depends(get_coordinator),
):
    await coordinator.cancel(ROLE_PRACTITIONER, practitioner.account_id, appointmentId, reason=reason)
    return {"message": "Appointment cancelled successfully"}


@router.post("/rateDoctor", response_model=RateDoctorResponse)
async def rate_doctor(
    body: RateDoctorRequest,
    patient: Account = Depends(get_current_patient),
    coordinator: AppointmentLifecycleCoordinator = Depends(get_coordinator),
):
    average = await coordinator.rate(
        patient.account_id, body.appointmentId, body.rating, practitioner_id=body.doctorId
    )
    return {"message": "Rating submitted successfully.", "averageRating": average}
