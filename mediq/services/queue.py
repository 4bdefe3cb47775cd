"""Doctor daily queue projection."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import date
from typing import Iterable, List, Optional

import redis
from sqlalchemy import select
from sqlalchemy.orm import Session

from mediq.models.appointment import Appointment
from mediq.models.enums import AppointmentStatus, PENDING_QUEUE_STATUSES, TokenType
from mediq.models.patient import Patient
from mediq.schemas import QueueEntry
from mediq.services.cache import cache_delete, cache_get, cache_key, cache_set
from mediq.services.db import get_session
from mediq.services.tokens import SessionFactory

LOGGER = logging.getLogger(__name__)
UNKNOWN_PATIENT = "Unknown"


def _queue_key(doctor_id: uuid.UUID, queue_date: date) -> str:
    return cache_key("queue", doctor_id, queue_date.isoformat())


def order_queue(entries: Iterable[QueueEntry]) -> List[QueueEntry]:
    """Order a partition's entries and assign live queue positions.

    Cancelled entries are dropped. Priority tokens come first, then ascending
    token number. Completed entries stay in the listing without a position.
    """

    visible = [
        entry
        for entry in entries
        if AppointmentStatus(entry.status) is not AppointmentStatus.CANCELLED
    ]
    visible.sort(
        key=lambda entry: (
            0 if TokenType(entry.token_type) is TokenType.PRIORITY else 1,
            entry.token_number,
        )
    )

    ordered: List[QueueEntry] = []
    position = 0
    for entry in visible:
        if AppointmentStatus(entry.status) in PENDING_QUEUE_STATUSES:
            position += 1
            ordered.append(entry.model_copy(update={"queue_position": position}))
        else:
            ordered.append(entry.model_copy(update={"queue_position": None}))
    return ordered


class QueueProjector:
    """Derives the live queue from appointment rows, cached for a few seconds."""

    def __init__(
        self,
        *,
        session_factory: SessionFactory = get_session,
        cache_ttl_seconds: int = 5,
    ) -> None:
        self._session_factory = session_factory
        self.cache_ttl_seconds = cache_ttl_seconds

    def project(self, doctor_id: uuid.UUID, queue_date: date) -> List[QueueEntry]:
        """Return the ordered queue for ``doctor_id`` on ``queue_date``."""

        cached = self._read_cache(doctor_id, queue_date)
        if cached is not None:
            return cached

        with self._session_factory() as session:
            entries = order_queue(self._load_entries(session, doctor_id, queue_date))

        self._write_cache(doctor_id, queue_date, entries)
        return entries

    def position_of(
        self,
        doctor_id: uuid.UUID,
        queue_date: date,
        appointment_id: uuid.UUID,
    ) -> Optional[int]:
        """Live queue position of one appointment, None once it is not pending."""

        for entry in self.project(doctor_id, queue_date):
            if entry.appointment_id == appointment_id:
                return entry.queue_position
        return None

    def invalidate(self, doctor_id: uuid.UUID, queue_date: date) -> None:
        """Drop the cached projection after a write to the partition."""

        try:
            cache_delete(_queue_key(doctor_id, queue_date))
        except redis.RedisError as exc:
            LOGGER.warning(
                "Queue cache invalidation failed for doctor=%s date=%s: %s",
                doctor_id,
                queue_date,
                exc,
            )

    @staticmethod
    def _load_entries(
        session: Session,
        doctor_id: uuid.UUID,
        queue_date: date,
    ) -> List[QueueEntry]:
        rows = session.execute(
            select(
                Appointment.id,
                Appointment.token_number,
                Appointment.token_type,
                Appointment.status,
                Appointment.appointment_time,
                Patient.full_name,
            )
            .join(Patient, Patient.id == Appointment.patient_id, isouter=True)
            .where(
                Appointment.doctor_id == doctor_id,
                Appointment.appointment_date == queue_date,
            )
        ).all()

        return [
            QueueEntry(
                appointment_id=row.id,
                token_number=row.token_number,
                token_type=row.token_type,
                patient_display_name=row.full_name or UNKNOWN_PATIENT,
                status=row.status,
                appointment_time=row.appointment_time,
            )
            for row in rows
        ]

    def _read_cache(
        self,
        doctor_id: uuid.UUID,
        queue_date: date,
    ) -> Optional[List[QueueEntry]]:
        try:
            raw = cache_get(_queue_key(doctor_id, queue_date))
        except redis.RedisError as exc:
            LOGGER.warning("Queue cache read failed: %s", exc)
            return None

        if raw is None:
            return None

        try:
            return [QueueEntry.model_validate(item) for item in json.loads(raw)]
        except (json.JSONDecodeError, ValueError):
            LOGGER.warning(
                "Queue cache for doctor=%s date=%s invalid; recomputing",
                doctor_id,
                queue_date,
            )
            return None

    def _write_cache(
        self,
        doctor_id: uuid.UUID,
        queue_date: date,
        entries: List[QueueEntry],
    ) -> None:
        payload = json.dumps([entry.model_dump(mode="json") for entry in entries])
        try:
            cache_set(
                _queue_key(doctor_id, queue_date),
                payload,
                ttl_seconds=self.cache_ttl_seconds,
            )
        except redis.RedisError as exc:
            LOGGER.warning("Queue cache write failed: %s", exc)
