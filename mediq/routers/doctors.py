"""Doctor queue and slot catalog endpoints."""

from __future__ import annotations

import uuid
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from mediq.routers import deps
from mediq.schemas import Caller, QueueEntry, SlotOut
from mediq.services.access import get_doctor, require_doctor_or_admin
from mediq.services.db import get_session
from mediq.services.slots import list_slots

router = APIRouter()


@router.get("/{doctor_id}/queue", response_model=List[QueueEntry])
def read_queue(
    doctor_id: uuid.UUID,
    queue_date: Optional[date] = Query(default=None, alias="date"),
    caller: Caller = Depends(deps.get_caller),
) -> List[QueueEntry]:
    """Live queue for the doctor; polled by the dashboard every few seconds."""

    with get_session() as session:
        require_doctor_or_admin(session, caller, doctor_id)
    return deps.projector.project(doctor_id, queue_date or date.today())


@router.get("/{doctor_id}/slots", response_model=List[SlotOut])
def read_slots(
    doctor_id: uuid.UUID,
    slot_date: Optional[date] = Query(default=None, alias="date"),
) -> List[SlotOut]:
    """Bookable slots with their current occupancy."""

    with get_session() as session:
        get_doctor(session, doctor_id)
        return list_slots(session, doctor_id, slot_date or date.today())
