import asyncio
from datetime import timedelta

import pytest
from conftest import future_slot, make_patient, make_practitioner
from sqlalchemy.exc import OperationalError

from medbook.database import SessionLocal
from medbook.domain.booking.lifecycle import AppointmentLifecycleCoordinator
from medbook.domain.booking.repository import AppointmentRepository
from medbook.errors import (
    AlreadyRated,
    Conflict,
    NotFound,
    ReconciliationError,
    TooEarly,
    UpstreamFailure,
    ValidationError,
)
from medbook.models import ROLE_PATIENT, ROLE_PRACTITIONER, Appointment, Rating


def coordinator_for(db, fakes, clock=None):
    kwargs = {"clock": clock} if clock else {}
    return AppointmentLifecycleCoordinator(db, fakes.provisioner, fakes.notifier, fakes.locks, **kwargs)


async def book(db, fakes, patient, practitioner, start, end, price=20):
    return await coordinator_for(db, fakes).confirm_booking(
        patient.account_id, practitioner.account_id, start, end, "notes", price
    )


# ============================================================================
# CONFIRMATION
# ============================================================================


async def test_confirm_booking_is_visible_to_both_parties(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    start, end = future_slot()

    appointment = await book(db, fakes, patient, practitioner, start, end)

    assert [a.appointment_id for a in AppointmentRepository.list_for_practitioner(db, practitioner.account_id)] == [
        appointment.appointment_id
    ]
    assert [a.appointment_id for a in AppointmentRepository.list_for_patient(db, patient.account_id)] == [
        appointment.appointment_id
    ]
    assert appointment.meeting_id == "meeting-1"
    assert appointment.appointment_url == "https://medbook.whereby.com/room-1"
    assert appointment.practitioner_full_name == practitioner.name
    assert appointment.patient_rating == 0
    assert len(fakes.notifier.of_kind("booking_confirmed")) == 1


async def test_confirm_booking_requires_both_accounts(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    start, end = future_slot()
    coordinator = coordinator_for(db, fakes)

    with pytest.raises(NotFound):
        await coordinator.confirm_booking(patient.account_id, "missing", start, end, "", 20)
    with pytest.raises(NotFound):
        await coordinator.confirm_booking("missing", practitioner.account_id, start, end, "", 20)
    assert fakes.provisioner.created == []


async def test_overlapping_confirmation_is_a_conflict(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    start, end = future_slot()
    await book(db, fakes, patient, practitioner, start, end)

    with pytest.raises(Conflict):
        await book(db, fakes, patient, practitioner, start + timedelta(minutes=15), end + timedelta(minutes=15))

    assert len(fakes.provisioner.created) == 1


async def test_back_to_back_slots_do_not_collide(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    start, end = future_slot()
    await book(db, fakes, patient, practitioner, start, end)
    await book(db, fakes, patient, practitioner, end, end + timedelta(minutes=30))

    assert len(AppointmentRepository.list_for_practitioner(db, practitioner.account_id)) == 2


async def test_concurrent_overlapping_confirmations_do_not_both_succeed(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    other_patient = make_patient(db, name="Other", email="other@x.com")
    start, end = future_slot()
    fakes.provisioner.delay = 0.01

    first_session, second_session = SessionLocal(), SessionLocal()
    try:
        results = await asyncio.gather(
            coordinator_for(first_session, fakes).confirm_booking(
                patient.account_id, practitioner.account_id, start, end, "", 20
            ),
            coordinator_for(second_session, fakes).confirm_booking(
                other_patient.account_id,
                practitioner.account_id,
                start + timedelta(minutes=10),
                end + timedelta(minutes=10),
                "",
                20,
            ),
            return_exceptions=True,
        )
    finally:
        first_session.close()
        second_session.close()

    assert len([r for r in results if isinstance(r, Appointment)]) == 1
    assert len([r for r in results if isinstance(r, Conflict)]) == 1
    assert db.query(Appointment).count() == 1


async def test_provisioning_failure_records_nothing(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    fakes.provisioner.fail_create = True

    with pytest.raises(UpstreamFailure):
        await book(db, fakes, patient, practitioner, *future_slot())

    assert db.query(Appointment).count() == 0
    assert fakes.notifier.sent == []


async def test_failed_write_deprovisions_and_reports(db, fakes, monkeypatch):
    patient, practitioner = make_patient(db), make_practitioner(db)

    def failing_commit():
        raise OperationalError("INSERT INTO appointments", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "commit", failing_commit)

    with pytest.raises(ReconciliationError):
        await book(db, fakes, patient, practitioner, *future_slot())

    assert fakes.provisioner.deleted == ["meeting-1"]
    assert fakes.notifier.sent == []


async def test_notification_failure_keeps_the_booking(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    fakes.notifier.fail = True

    appointment = await book(db, fakes, patient, practitioner, *future_slot())

    assert AppointmentRepository.get_for_patient(db, patient.account_id, appointment.appointment_id)


# ============================================================================
# CANCELLATION
# ============================================================================


async def test_patient_cancel_removes_both_views_and_the_room(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    appointment = await book(db, fakes, patient, practitioner, *future_slot())
    appointment_id = appointment.appointment_id

    await coordinator_for(db, fakes).cancel(ROLE_PATIENT, patient.account_id, appointment_id)

    assert AppointmentRepository.list_for_patient(db, patient.account_id) == []
    assert AppointmentRepository.list_for_practitioner(db, practitioner.account_id) == []
    assert fakes.provisioner.deleted == ["meeting-1"]
    assert fakes.notifier.of_kind("cancelled") == []


async def test_second_cancel_is_not_found(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    appointment = await book(db, fakes, patient, practitioner, *future_slot())
    appointment_id = appointment.appointment_id
    coordinator = coordinator_for(db, fakes)

    await coordinator.cancel(ROLE_PATIENT, patient.account_id, appointment_id)
    with pytest.raises(NotFound):
        await coordinator.cancel(ROLE_PATIENT, patient.account_id, appointment_id)

    assert fakes.provisioner.deleted == ["meeting-1"]


async def test_concurrent_cancels_deprovision_once(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    appointment = await book(db, fakes, patient, practitioner, *future_slot())
    appointment_id = appointment.appointment_id
    fakes.provisioner.delay = 0.01

    first_session, second_session = SessionLocal(), SessionLocal()
    try:
        results = await asyncio.gather(
            coordinator_for(first_session, fakes).cancel(ROLE_PATIENT, patient.account_id, appointment_id),
            coordinator_for(second_session, fakes).cancel(ROLE_PATIENT, patient.account_id, appointment_id),
            return_exceptions=True,
        )
    finally:
        first_session.close()
        second_session.close()

    assert len([r for r in results if r is None]) == 1
    assert len([r for r in results if isinstance(r, NotFound)]) == 1
    assert fakes.provisioner.deleted == ["meeting-1"]
    assert db.query(Appointment).count() == 0


async def test_practitioner_cancel_notifies_patient_with_reason(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    appointment = await book(db, fakes, patient, practitioner, *future_slot())

    await coordinator_for(db, fakes).cancel(
        ROLE_PRACTITIONER, practitioner.account_id, appointment.appointment_id, reason="Sick leave"
    )

    notices = fakes.notifier.of_kind("cancelled")
    assert notices == [{"email": patient.email, "practitioner_name": practitioner.name, "reason": "Sick leave"}]
    assert db.query(Appointment).count() == 0


async def test_only_the_owner_can_cancel(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    stranger = make_patient(db, name="Stranger", email="s@x.com")
    other_practitioner = make_practitioner(db, name="Dr. Other", email="o@x.com")
    appointment = await book(db, fakes, patient, practitioner, *future_slot())
    coordinator = coordinator_for(db, fakes)

    with pytest.raises(NotFound):
        await coordinator.cancel(ROLE_PATIENT, stranger.account_id, appointment.appointment_id)
    with pytest.raises(NotFound):
        await coordinator.cancel(ROLE_PRACTITIONER, other_practitioner.account_id, appointment.appointment_id)

    assert db.query(Appointment).count() == 1
    assert fakes.provisioner.deleted == []


async def test_deprovision_failure_does_not_block_cancel(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    appointment = await book(db, fakes, patient, practitioner, *future_slot())
    fakes.provisioner.fail_delete = True

    await coordinator_for(db, fakes).cancel(ROLE_PATIENT, patient.account_id, appointment.appointment_id)

    assert db.query(Appointment).count() == 0


# ============================================================================
# RATING
# ============================================================================


def after(appointment, minutes=5):
    return lambda: appointment.end + timedelta(minutes=minutes)


async def test_rating_before_the_end_is_too_early(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    appointment = await book(db, fakes, patient, practitioner, *future_slot())
    end = appointment.end

    with pytest.raises(TooEarly):
        await coordinator_for(db, fakes, clock=lambda: end).rate(patient.account_id, appointment.appointment_id, 5)


async def test_rating_twice_is_already_rated(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    appointment = await book(db, fakes, patient, practitioner, *future_slot())
    coordinator = coordinator_for(db, fakes, clock=after(appointment))

    await coordinator.rate(patient.account_id, appointment.appointment_id, 4)
    with pytest.raises(AlreadyRated):
        await coordinator.rate(patient.account_id, appointment.appointment_id, 5)

    assert db.query(Rating).count() == 1


@pytest.mark.parametrize("value", [0, 6, -1])
async def test_rating_outside_one_to_five_is_invalid(db, fakes, value):
    patient, practitioner = make_patient(db), make_practitioner(db)
    appointment = await book(db, fakes, patient, practitioner, *future_slot())

    with pytest.raises(ValidationError):
        await coordinator_for(db, fakes, clock=after(appointment)).rate(
            patient.account_id, appointment.appointment_id, value
        )


async def test_rating_someone_elses_appointment_is_not_found(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    stranger = make_patient(db, name="Stranger", email="s@x.com")
    appointment = await book(db, fakes, patient, practitioner, *future_slot())

    with pytest.raises(NotFound):
        await coordinator_for(db, fakes, clock=after(appointment)).rate(
            stranger.account_id, appointment.appointment_id, 5
        )


async def test_rating_with_the_wrong_practitioner_is_invalid(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    appointment = await book(db, fakes, patient, practitioner, *future_slot())

    with pytest.raises(ValidationError):
        await coordinator_for(db, fakes, clock=after(appointment)).rate(
            patient.account_id, appointment.appointment_id, 5, practitioner_id="someone-else"
        )


async def test_average_rating_is_the_mean_for_that_practitioner(db, fakes):
    patient, practitioner = make_patient(db), make_practitioner(db)
    other_practitioner = make_practitioner(db, name="Dr. Other", email="o@x.com")
    first = await book(db, fakes, patient, practitioner, *future_slot(hour=9))
    second = await book(db, fakes, patient, practitioner, *future_slot(hour=11))
    elsewhere = await book(db, fakes, patient, other_practitioner, *future_slot(hour=13))
    coordinator = coordinator_for(db, fakes, clock=lambda: elsewhere.end + timedelta(hours=1))

    await coordinator.rate(patient.account_id, elsewhere.appointment_id, 1)
    await coordinator.rate(patient.account_id, first.appointment_id, 4)
    average = await coordinator.rate(patient.account_id, second.appointment_id, 5)

    db.refresh(practitioner)
    db.refresh(other_practitioner)
    assert average == 4.5
    assert practitioner.average_rating == 4.5
    assert other_practitioner.average_rating == 1.0
    assert AppointmentRepository.get_for_patient(db, patient.account_id, second.appointment_id).patient_rating == 5
