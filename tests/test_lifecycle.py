"""Cancellation and consultation transitions."""

import uuid
from datetime import date

import pytest

from mediq.errors import InvalidStateTransition, NotFound, Unauthorized
from mediq.models import Appointment
from mediq.models.enums import AppointmentStatus, Role
from mediq.schemas import Caller
from mediq.services.db import get_session
from mediq.services.lifecycle import transition


def _status(appointment_id) -> str:
    with get_session() as session:
        return session.get(Appointment, appointment_id).status


def test_transition_table_is_forward_only() -> None:
    appointment = Appointment(status=AppointmentStatus.COMPLETED.value)

    with pytest.raises(InvalidStateTransition):
        transition(appointment, AppointmentStatus.CONFIRMED)
    assert appointment.status == AppointmentStatus.COMPLETED.value


def test_doctor_runs_consultation_to_completion(book, lifecycle, doctor_caller) -> None:
    appointment_id = book().appointment.id

    started = lifecycle.start(appointment_id, doctor_caller)
    completed = lifecycle.complete(
        appointment_id,
        doctor_caller,
        follow_up_date=date(2024, 6, 15),
        consultation_notes="Review ECG in two weeks.",
    )

    assert started.appointment.status == "in_consultation"
    assert completed.appointment.status == "completed"
    assert completed.appointment.follow_up_date == date(2024, 6, 15)
    assert completed.appointment.consultation_notes == "Review ECG in two weeks."


def test_complete_requires_consultation_in_progress(book, lifecycle, doctor_caller) -> None:
    appointment_id = book().appointment.id

    with pytest.raises(InvalidStateTransition):
        lifecycle.complete(appointment_id, doctor_caller)

    assert _status(appointment_id) == "confirmed"


def test_completed_appointment_cannot_be_cancelled(
    book, lifecycle, doctor_caller, patients
) -> None:
    appointment_id = book().appointment.id
    lifecycle.start(appointment_id, doctor_caller)
    lifecycle.complete(appointment_id, doctor_caller)

    with pytest.raises(InvalidStateTransition):
        lifecycle.cancel(appointment_id, patients[0])

    assert _status(appointment_id) == "completed"


def test_consultation_in_progress_cannot_be_cancelled(
    book, lifecycle, doctor_caller, admin_caller
) -> None:
    appointment_id = book().appointment.id
    lifecycle.start(appointment_id, doctor_caller)

    with pytest.raises(InvalidStateTransition):
        lifecycle.cancel(appointment_id, admin_caller)


def test_cancel_is_idempotent(book, lifecycle, patients) -> None:
    appointment_id = book().appointment.id

    first = lifecycle.cancel(appointment_id, patients[0])
    second = lifecycle.cancel(appointment_id, patients[0])

    assert first.changed is True
    assert len(first.notification_ids) == 1
    assert second.changed is False
    assert second.notification_ids == []
    assert second.appointment.status == "cancelled"


def test_cancelled_appointment_cannot_start(book, lifecycle, patients, doctor_caller) -> None:
    appointment_id = book().appointment.id
    lifecycle.cancel(appointment_id, patients[0])

    with pytest.raises(InvalidStateTransition):
        lifecycle.start(appointment_id, doctor_caller)


def test_admin_may_cancel_any_appointment(book, lifecycle, admin_caller) -> None:
    appointment_id = book().appointment.id
    assert lifecycle.cancel(appointment_id, admin_caller).appointment.status == "cancelled"


def test_other_patient_cannot_cancel(book, lifecycle, patients) -> None:
    appointment_id = book().appointment.id

    with pytest.raises(Unauthorized):
        lifecycle.cancel(appointment_id, patients[1])
    assert _status(appointment_id) == "confirmed"


def test_other_doctor_cannot_start(book, lifecycle) -> None:
    appointment_id = book().appointment.id
    stranger = Caller(user_id=uuid.uuid4(), role=Role.DOCTOR)

    with pytest.raises(Unauthorized):
        lifecycle.start(appointment_id, stranger)


def test_patient_cannot_start_own_consultation(book, lifecycle, patients) -> None:
    appointment_id = book().appointment.id

    with pytest.raises(Unauthorized):
        lifecycle.start(appointment_id, patients[0])


def test_unknown_appointment(lifecycle, admin_caller, world) -> None:
    with pytest.raises(NotFound):
        lifecycle.cancel(uuid.uuid4(), admin_caller)


@pytest.mark.parametrize("caller_fixture", ["doctor_caller", "admin_caller"])
def test_staff_prioritize_keeps_token_number(book, lifecycle, request, caller_fixture) -> None:
    book()
    appointment_id = book(patient_index=1).appointment.id

    change = lifecycle.prioritize(appointment_id, request.getfixturevalue(caller_fixture))

    assert change.changed is True
    assert change.appointment.token_type == "priority"
    assert change.appointment.token_number == 2


def test_prioritize_is_idempotent(book, lifecycle, doctor_caller) -> None:
    appointment_id = book().appointment.id
    lifecycle.prioritize(appointment_id, doctor_caller)

    again = lifecycle.prioritize(appointment_id, doctor_caller)

    assert again.changed is False
    assert again.appointment.token_type == "priority"


def test_patient_cannot_prioritize_own_booking(book, lifecycle, patients) -> None:
    appointment_id = book().appointment.id

    with pytest.raises(Unauthorized):
        lifecycle.prioritize(appointment_id, patients[0])

    with get_session() as session:
        assert session.get(Appointment, appointment_id).token_type == "normal"


def test_finished_appointments_cannot_be_prioritized(
    book, lifecycle, doctor_caller, patients
) -> None:
    completed_id = book().appointment.id
    lifecycle.start(completed_id, doctor_caller)
    lifecycle.complete(completed_id, doctor_caller)
    cancelled_id = book(patient_index=1).appointment.id
    lifecycle.cancel(cancelled_id, patients[1])

    for appointment_id in (completed_id, cancelled_id):
        with pytest.raises(InvalidStateTransition):
            lifecycle.prioritize(appointment_id, doctor_caller)
