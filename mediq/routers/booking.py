"""Order creation and payment confirmation endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends

from mediq.routers import deps
from mediq.schemas import BookingIntent, BookingResult, Caller, ConfirmationRequest, OrderOut, PaymentOut

LOGGER = logging.getLogger(__name__)

router = APIRouter()


@router.post("/orders", response_model=OrderOut)
def create_order(intent: BookingIntent, caller: Caller = Depends(deps.get_caller)) -> OrderOut:
    """Create a gateway order for the selected slot."""

    return deps.orchestrator.create_order(intent, caller)


@router.post("/payments/confirm", response_model=BookingResult)
def confirm_payment(
    payload: ConfirmationRequest,
    background_tasks: BackgroundTasks,
    caller: Caller = Depends(deps.get_caller),
) -> BookingResult:
    """Verify the gateway confirmation and book the appointment."""

    LOGGER.debug(
        "Confirming order=%s payment=%s for caller=%s",
        payload.razorpay_order_id,
        payload.razorpay_payment_id,
        caller.user_id,
    )
    result = deps.orchestrator.confirm(payload, caller)
    if result.notification_ids:
        background_tasks.add_task(deps.dispatcher.dispatch_many, result.notification_ids)
    return result


@router.post("/payments/{order_id}/fail", response_model=PaymentOut)
def fail_payment(order_id: str, caller: Caller = Depends(deps.get_caller)) -> PaymentOut:
    """Record a dismissed or declined checkout."""

    return deps.orchestrator.fail_payment(order_id, caller)
