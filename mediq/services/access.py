"""Authorization checks against the explicit caller identity."""

from __future__ import annotations

import uuid

from sqlalchemy.orm import Session

from mediq.errors import NotFound, Unauthorized
from mediq.models.appointment import Appointment
from mediq.models.doctor import Doctor
from mediq.models.enums import Role
from mediq.schemas import Caller


def require_role(caller: Caller, *roles: Role) -> None:
    if caller.role not in roles:
        raise Unauthorized(
            f"Role '{caller.role.value}' may not perform this action."
        )


def get_doctor(session: Session, doctor_id: uuid.UUID) -> Doctor:
    doctor = session.get(Doctor, doctor_id)
    if doctor is None:
        raise NotFound(f"Doctor {doctor_id} not found.")
    return doctor


def require_doctor_owner(session: Session, caller: Caller, doctor_id: uuid.UUID) -> Doctor:
    """The caller must be the account linked to ``doctor_id``."""

    require_role(caller, Role.DOCTOR)
    doctor = get_doctor(session, doctor_id)
    if doctor.user_id != caller.user_id:
        raise Unauthorized("Only the assigned doctor may manage this queue.")
    return doctor


def require_doctor_or_admin(session: Session, caller: Caller, doctor_id: uuid.UUID) -> Doctor:
    if caller.is_admin:
        return get_doctor(session, doctor_id)
    return require_doctor_owner(session, caller, doctor_id)


def require_appointment_viewer(
    session: Session,
    caller: Caller,
    appointment: Appointment,
) -> None:
    """Owner patient, the appointment's doctor, or an admin."""

    if caller.is_admin:
        return
    if caller.role is Role.PATIENT and appointment.patient_id == caller.user_id:
        return
    if caller.role is Role.DOCTOR:
        doctor = session.get(Doctor, appointment.doctor_id)
        if doctor is not None and doctor.user_id == caller.user_id:
            return
    raise Unauthorized("You do not have access to this appointment.")
