"""Appointment changes after booking: cancel, prioritize, start, complete."""

from __future__ import annotations

import logging
import uuid
from datetime import date
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from mediq.errors import InvalidStateTransition, NotFound, Unauthorized
from mediq.models.appointment import Appointment
from mediq.models.enums import (
    ALLOWED_TRANSITIONS,
    PENDING_QUEUE_STATUSES,
    AppointmentStatus,
    Role,
    TokenType,
)
from mediq.schemas import AppointmentChange, AppointmentOut, Caller
from mediq.services import notifications
from mediq.services.access import require_doctor_or_admin, require_doctor_owner
from mediq.services.db import get_session
from mediq.services.queue import QueueProjector
from mediq.services.tokens import SessionFactory

LOGGER = logging.getLogger(__name__)


def transition(appointment: Appointment, target: AppointmentStatus) -> None:
    """Move ``appointment`` to ``target`` or raise without touching it."""

    current = appointment.lifecycle
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStateTransition(
            f"Cannot move appointment from '{current.value}' to '{target.value}'."
        )
    appointment.status = target.value


class AppointmentLifecycle:
    """Patient/admin cancellation and the doctor's consultation actions.

    Tokens are never released: a cancelled appointment keeps its number and
    simply drops out of the queue projection.
    """

    def __init__(
        self,
        *,
        projector: QueueProjector,
        session_factory: SessionFactory = get_session,
    ) -> None:
        self.projector = projector
        self._session_factory = session_factory

    def cancel(self, appointment_id: uuid.UUID, caller: Caller) -> AppointmentChange:
        """Cancel a booking. Cancelling twice is a no-op."""

        with self._session_factory() as session:
            appointment = self._load(session, appointment_id)
            if not caller.is_admin and not (
                caller.role is Role.PATIENT and appointment.patient_id == caller.user_id
            ):
                raise Unauthorized("Only the patient or an admin may cancel this appointment.")

            if appointment.lifecycle is AppointmentStatus.CANCELLED:
                return AppointmentChange(
                    appointment=AppointmentOut.model_validate(appointment),
                    changed=False,
                )

            transition(appointment, AppointmentStatus.CANCELLED)
            staged = notifications.enqueue_cancellation(session, appointment)
            session.flush()
            change = AppointmentChange(
                appointment=AppointmentOut.model_validate(appointment),
                notification_ids=[staged.id],
            )

        LOGGER.info(
            "Appointment %s cancelled by %s %s",
            appointment_id,
            caller.role.value,
            caller.user_id,
        )
        self._invalidate(change)
        return change

    def start(self, appointment_id: uuid.UUID, caller: Caller) -> AppointmentChange:
        """confirmed -> in_consultation."""

        with self._session_factory() as session:
            appointment = self._load(session, appointment_id)
            require_doctor_owner(session, caller, appointment.doctor_id)
            transition(appointment, AppointmentStatus.IN_CONSULTATION)
            session.flush()
            change = AppointmentChange(appointment=AppointmentOut.model_validate(appointment))

        LOGGER.info("Consultation started for appointment %s", appointment_id)
        self._invalidate(change)
        return change

    def prioritize(self, appointment_id: uuid.UUID, caller: Caller) -> AppointmentChange:
        """Move a waiting patient to a priority token. Staff only.

        The token number is kept; priority tokens are called before normal ones.
        """

        with self._session_factory() as session:
            appointment = self._load(session, appointment_id)
            require_doctor_or_admin(session, caller, appointment.doctor_id)
            if appointment.lifecycle not in PENDING_QUEUE_STATUSES:
                raise InvalidStateTransition(
                    f"Cannot prioritize a '{appointment.status}' appointment."
                )
            if TokenType(appointment.token_type) is TokenType.PRIORITY:
                return AppointmentChange(
                    appointment=AppointmentOut.model_validate(appointment),
                    changed=False,
                )
            appointment.token_type = TokenType.PRIORITY.value
            session.flush()
            change = AppointmentChange(appointment=AppointmentOut.model_validate(appointment))

        LOGGER.info(
            "Appointment %s moved to priority by %s %s",
            appointment_id,
            caller.role.value,
            caller.user_id,
        )
        self._invalidate(change)
        return change

    def complete(
        self,
        appointment_id: uuid.UUID,
        caller: Caller,
        *,
        follow_up_date: Optional[date] = None,
        consultation_notes: Optional[str] = None,
    ) -> AppointmentChange:
        """in_consultation -> completed, optionally recording follow-up and notes."""

        with self._session_factory() as session:
            appointment = self._load(session, appointment_id)
            require_doctor_owner(session, caller, appointment.doctor_id)
            transition(appointment, AppointmentStatus.COMPLETED)
            if follow_up_date is not None:
                appointment.follow_up_date = follow_up_date
            if consultation_notes:
                appointment.consultation_notes = consultation_notes
            session.flush()
            change = AppointmentChange(appointment=AppointmentOut.model_validate(appointment))

        LOGGER.info("Consultation completed for appointment %s", appointment_id)
        self._invalidate(change)
        return change

    @staticmethod
    def _load(session: Session, appointment_id: uuid.UUID) -> Appointment:
        appointment = session.execute(
            select(Appointment).where(Appointment.id == appointment_id).with_for_update()
        ).scalar_one_or_none()
        if appointment is None:
            raise NotFound(f"Appointment {appointment_id} not found.")
        return appointment

    def _invalidate(self, change: AppointmentChange) -> None:
        self.projector.invalidate(
            change.appointment.doctor_id,
            change.appointment.appointment_date,
        )

