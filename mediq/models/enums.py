"""Enumerations shared by the ORM models and API schemas."""

from enum import Enum
from typing import Dict, FrozenSet


class BaseEnum(str, Enum):
    """String enum that renders as its value."""

    def __str__(self) -> str:
        return self.value


class AppointmentStatus(BaseEnum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_CONSULTATION = "in_consultation"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AppointmentType(BaseEnum):
    CONSULTATION = "consultation"
    FOLLOW_UP = "follow-up"
    EMERGENCY = "emergency"


class TokenType(BaseEnum):
    NORMAL = "normal"
    PRIORITY = "priority"


class PaymentStatus(BaseEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class NotificationStatus(BaseEnum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


class NotificationType(BaseEnum):
    APPOINTMENT_CONFIRMATION = "appointment_confirmation"
    APPOINTMENT_CANCELLED = "appointment_cancelled"
    NEW_APPOINTMENT = "new_appointment"
    QUEUE_UPDATE = "queue_update"


class ReconciliationKind(BaseEnum):
    TOKEN_ALLOCATION_EXHAUSTED = "token_allocation_exhausted"
    PERSISTENCE_FAILED = "persistence_failed"
    DUPLICATE_CAPTURE = "duplicate_capture"
    CAPTURE_AFTER_FAILURE = "capture_after_failure"
    DOCTOR_UNAVAILABLE = "doctor_unavailable"
    TOKEN_CLAIM_CONFLICT = "token_claim_conflict"


class ReconciliationStatus(BaseEnum):
    OPEN = "open"
    RESOLVED = "resolved"


class Role(BaseEnum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMIN = "admin"


# Forward-only lifecycle edges. Anything absent is an illegal transition.
ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset(
        {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.IN_CONSULTATION, AppointmentStatus.CANCELLED}
    ),
    AppointmentStatus.IN_CONSULTATION: frozenset({AppointmentStatus.COMPLETED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

PENDING_QUEUE_STATUSES = frozenset(
    {AppointmentStatus.CONFIRMED, AppointmentStatus.IN_CONSULTATION}
)
