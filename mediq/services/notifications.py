"""Notification outbox: enqueue inside the booking transaction, deliver later."""

from __future__ import annotations

import logging
import uuid
from typing import Iterable, List, Optional

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mediq.models.appointment import Appointment
from mediq.models.base import utcnow
from mediq.models.enums import NotificationStatus, NotificationType
from mediq.models.notification import Notification
from mediq.services.db import get_session
from mediq.services.tokens import SessionFactory

LOGGER = logging.getLogger(__name__)


def _describe(appointment: Appointment) -> str:
    return (
        f"{appointment.appointment_date.isoformat()} at "
        f"{appointment.appointment_time.strftime('%H:%M')}"
    )


def enqueue(
    session: Session,
    *,
    user_id: uuid.UUID,
    appointment_id: Optional[uuid.UUID],
    notification_type: NotificationType,
    title: str,
    message: str,
) -> Notification:
    """Stage a notification in the caller's transaction."""

    notification = Notification(
        user_id=user_id,
        appointment_id=appointment_id,
        type=notification_type.value,
        title=title,
        message=message,
    )
    session.add(notification)
    return notification


def enqueue_confirmation(
    session: Session,
    appointment: Appointment,
    doctor_user_id: Optional[uuid.UUID],
) -> List[Notification]:
    staged = [
        enqueue(
            session,
            user_id=appointment.patient_id,
            appointment_id=appointment.id,
            notification_type=NotificationType.APPOINTMENT_CONFIRMATION,
            title="Appointment Confirmed",
            message=(
                f"Your appointment on {_describe(appointment)} is confirmed. "
                f"Your token number is #{appointment.token_number}."
            ),
        )
    ]
    if doctor_user_id is not None:
        staged.append(
            enqueue(
                session,
                user_id=doctor_user_id,
                appointment_id=appointment.id,
                notification_type=NotificationType.NEW_APPOINTMENT,
                title="New Appointment",
                message=(
                    f"Token #{appointment.token_number} booked for "
                    f"{_describe(appointment)}."
                ),
            )
        )
    return staged


def enqueue_cancellation(session: Session, appointment: Appointment) -> Notification:
    return enqueue(
        session,
        user_id=appointment.patient_id,
        appointment_id=appointment.id,
        notification_type=NotificationType.APPOINTMENT_CANCELLED,
        title="Appointment Cancelled",
        message=f"Your appointment on {_describe(appointment)} has been cancelled.",
    )


class NotificationDispatcher:
    """Delivers staged notifications to the outbound webhook.

    Delivery problems are recorded on the row and logged, never raised, so a
    channel outage cannot surface as a booking failure.
    """

    def __init__(
        self,
        *,
        webhook_url: str = "",
        timeout_seconds: float = 5.0,
        session_factory: SessionFactory = get_session,
        use_stub: bool = False,
    ) -> None:
        self.webhook_url = webhook_url
        self.use_stub = use_stub or not webhook_url
        self._timeout = timeout_seconds
        self._session_factory = session_factory

    def dispatch_many(self, notification_ids: Iterable[uuid.UUID]) -> int:
        """Deliver the given notifications; returns how many were sent."""

        return sum(1 for notification_id in notification_ids if self.dispatch(notification_id))

    def dispatch_pending(self, limit: int = 100) -> int:
        """Retry every pending or failed notification, oldest first."""

        with self._session_factory() as session:
            ids = session.execute(
                select(Notification.id)
                .where(
                    Notification.status.in_(
                        [NotificationStatus.PENDING.value, NotificationStatus.FAILED.value]
                    )
                )
                .order_by(Notification.created_at)
                .limit(limit)
            ).scalars().all()
        return self.dispatch_many(ids)

    def dispatch(self, notification_id: uuid.UUID) -> bool:
        try:
            with self._session_factory() as session:
                notification = session.get(Notification, notification_id)
                if notification is None:
                    LOGGER.warning("Notification %s not found", notification_id)
                    return False
                if notification.status == NotificationStatus.SENT.value:
                    return True

                notification.attempts += 1
                try:
                    self._deliver(notification)
                except httpx.HTTPError as exc:
                    LOGGER.error(
                        "Notification %s delivery failed: %s",
                        notification_id,
                        exc,
                    )
                    notification.status = NotificationStatus.FAILED.value
                    notification.error_message = str(exc)[:500]
                    return False

                notification.status = NotificationStatus.SENT.value
                notification.error_message = None
                notification.sent_at = utcnow()
                return True
        except SQLAlchemyError as exc:
            LOGGER.error("Notification %s dispatch aborted: %s", notification_id, exc)
            return False

    def _deliver(self, notification: Notification) -> None:
        LOGGER.info(
            "notification delivery: use_stub=%s id=%s type=%s",
            self.use_stub,
            notification.id,
            notification.type,
        )
        if self.use_stub:
            return

        payload = {
            "user_id": str(notification.user_id),
            "appointment_id": (
                str(notification.appointment_id) if notification.appointment_id else None
            ),
            "type": notification.type,
            "title": notification.title,
            "message": notification.message,
            "channel_hints": ["email", "push"],
        }
        with httpx.Client(timeout=self._timeout) as client:
            response = client.post(self.webhook_url, json=payload)
            response.raise_for_status()
