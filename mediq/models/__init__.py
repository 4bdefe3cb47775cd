"""ORM models; importing this package registers every table on ``Base``."""

from mediq.models.appointment import Appointment
from mediq.models.base import Base
from mediq.models.doctor import Doctor, TimeSlot
from mediq.models.hospital import Hospital
from mediq.models.notification import Notification
from mediq.models.patient import Patient
from mediq.models.payment import Payment
from mediq.models.reconciliation import ReconciliationCase
from mediq.models.token_issue import TokenIssue

__all__ = [
    "Appointment",
    "Base",
    "Doctor",
    "Hospital",
    "Notification",
    "Patient",
    "Payment",
    "ReconciliationCase",
    "TimeSlot",
    "TokenIssue",
]
