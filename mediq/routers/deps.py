"""Shared collaborators and request dependencies for the API routers."""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Header

from mediq.errors import Unauthorized
from mediq.models.enums import Role
from mediq.schemas import Caller
from mediq.services.booking import BookingOrchestrator
from mediq.services.lifecycle import AppointmentLifecycle
from mediq.services.notifications import NotificationDispatcher
from mediq.services.payments import PaymentVerifier
from mediq.services.queue import QueueProjector
from mediq.services.tokens import TokenAllocator
from mediq.utils.config import get_settings
from payment_gateway.razorpay_adapter import RazorpayAdapter

settings = get_settings()

projector = QueueProjector(cache_ttl_seconds=settings.queue_cache_ttl_seconds)
gateway_client = RazorpayAdapter(
    key_id=settings.razorpay_key_id,
    key_secret=settings.razorpay_key_secret,
    base_url=settings.razorpay_base_url,
    use_stub=settings.razorpay_use_stub,
    timeout_seconds=settings.gateway_timeout_seconds,
)
orchestrator = BookingOrchestrator(
    verifier=PaymentVerifier(settings.razorpay_key_secret),
    allocator=TokenAllocator(
        max_retries=settings.token_allocation_max_retries,
        backoff_seconds=settings.token_allocation_backoff_seconds,
    ),
    gateway=gateway_client,
    projector=projector,
    currency=settings.currency,
)
lifecycle = AppointmentLifecycle(projector=projector)
dispatcher = NotificationDispatcher(
    webhook_url=settings.notification_webhook_url,
    timeout_seconds=settings.notification_timeout_seconds,
)


def get_caller(
    x_user_id: Optional[str] = Header(default=None),
    x_user_role: Optional[str] = Header(default=None),
) -> Caller:
    """Identity forwarded by the upstream auth layer."""

    if not x_user_id or not x_user_role:
        raise Unauthorized("Missing caller identity.")
    try:
        return Caller(user_id=uuid.UUID(x_user_id), role=Role(x_user_role.strip().lower()))
    except ValueError as exc:
        raise Unauthorized("Malformed caller identity.") from exc
