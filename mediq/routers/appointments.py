"""Appointment read and lifecycle endpoints."""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends

from mediq.routers import deps
from mediq.schemas import (
    AppointmentChange,
    AppointmentOut,
    Caller,
    CompleteConsultationRequest,
)

router = APIRouter()


@router.get("/{appointment_id}", response_model=AppointmentOut)
def get_appointment(
    appointment_id: uuid.UUID,
    caller: Caller = Depends(deps.get_caller),
) -> AppointmentOut:
    return deps.orchestrator.get_appointment(appointment_id, caller)


@router.post("/{appointment_id}/cancel", response_model=AppointmentChange)
def cancel_appointment(
    appointment_id: uuid.UUID,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(deps.get_caller),
) -> AppointmentChange:
    change = deps.lifecycle.cancel(appointment_id, caller)
    if change.notification_ids:
        background_tasks.add_task(deps.dispatcher.dispatch_many, change.notification_ids)
    return change


@router.post("/{appointment_id}/prioritize", response_model=AppointmentChange)
def prioritize_appointment(
    appointment_id: uuid.UUID,
    caller: Caller = Depends(deps.get_caller),
) -> AppointmentChange:
    """Staff action: call this patient ahead of normal tokens."""

    return deps.lifecycle.prioritize(appointment_id, caller)


@router.post("/{appointment_id}/start", response_model=AppointmentChange)
def start_consultation(
    appointment_id: uuid.UUID,
    caller: Caller = Depends(deps.get_caller),
) -> AppointmentChange:
    return deps.lifecycle.start(appointment_id, caller)


@router.post("/{appointment_id}/complete", response_model=AppointmentChange)
def complete_consultation(
    appointment_id: uuid.UUID,
    payload: Optional[CompleteConsultationRequest] = None,
    caller: Caller = Depends(deps.get_caller),
) -> AppointmentChange:
    payload = payload or CompleteConsultationRequest()
    return deps.lifecycle.complete(
        appointment_id,
        caller,
        follow_up_date=payload.follow_up_date,
        consultation_notes=payload.consultation_notes,
    )
