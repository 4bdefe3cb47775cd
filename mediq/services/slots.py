"""Slot catalog: bookable times generated from weekly availability windows."""

from __future__ import annotations

import uuid
from collections import Counter
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mediq.models.appointment import Appointment
from mediq.models.doctor import TimeSlot
from mediq.models.enums import AppointmentStatus
from mediq.schemas import SlotOut


def day_of_week(value: date) -> int:
    """Catalog weekday number, 0 = Sunday."""

    return value.isoweekday() % 7


def _expand_window(window: TimeSlot) -> List[time]:
    step = timedelta(minutes=max(1, window.slot_duration))
    anchor = date.min
    cursor = datetime.combine(anchor, window.start_time)
    end = datetime.combine(anchor, window.end_time)
    times: List[time] = []
    while cursor + step <= end:
        times.append(cursor.time())
        cursor += step
    return times


def list_slots(session: Session, doctor_id: uuid.UUID, slot_date: date) -> List[SlotOut]:
    """Return every catalog slot for the doctor on ``slot_date``.

    A slot is booked once its non-cancelled appointments reach the window's
    ``max_appointments``.
    """

    windows = session.execute(
        select(TimeSlot)
        .where(
            TimeSlot.doctor_id == doctor_id,
            TimeSlot.day_of_week == day_of_week(slot_date),
            TimeSlot.is_available.is_(True),
        )
        .order_by(TimeSlot.start_time)
    ).scalars().all()

    capacities: Dict[time, int] = {}
    for window in windows:
        for slot_time in _expand_window(window):
            capacities[slot_time] = capacities.get(slot_time, 0) + window.max_appointments

    booked = Counter(
        dict(
            session.execute(
                select(Appointment.appointment_time, func.count(Appointment.id))
                .where(
                    Appointment.doctor_id == doctor_id,
                    Appointment.appointment_date == slot_date,
                    Appointment.status != AppointmentStatus.CANCELLED.value,
                )
                .group_by(Appointment.appointment_time)
            ).all()
        )
    )

    return [
        SlotOut(
            slot_time=slot_time,
            booked_count=booked[slot_time],
            capacity=capacity,
            is_booked=booked[slot_time] >= capacity,
        )
        for slot_time, capacity in sorted(capacities.items())
    ]


def find_slot(
    session: Session,
    doctor_id: uuid.UUID,
    slot_date: date,
    slot_time: time,
) -> Optional[SlotOut]:
    """Return the catalog slot at exactly ``slot_time``, if one exists."""

    for slot in list_slots(session, doctor_id, slot_date):
        if slot.slot_time == slot_time:
            return slot
    return None
