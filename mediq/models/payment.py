"""Payment model definition."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Date, DateTime, ForeignKey, Numeric, String, Time, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mediq.models.appointment import SPECIAL_INSTRUCTIONS_MAX_LENGTH
from mediq.models.base import Base, utcnow
from mediq.models.enums import AppointmentType, PaymentStatus

if TYPE_CHECKING:
    from mediq.models.appointment import Appointment
else:  # pragma: no cover - typing runtime fallback
    Appointment = "Appointment"  # type: ignore[assignment]


class Payment(Base):
    """One gateway order and, once captured and verified, its settlement.

    The row is created ``pending`` when the order is requested and holds the
    booking it pays for: patient, doctor, hospital, date, time and type. A
    confirmation must name the same booking. It is finalized exactly once.
    """

    __tablename__ = "payments"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    appointment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        ForeignKey("appointments.id"),
        nullable=True,
        unique=True,
    )
    patient_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("patients.id"),
        nullable=False,
        index=True,
    )
    doctor_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("doctors.id"),
        nullable=False,
    )
    hospital_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("hospitals.id"),
        nullable=False,
    )
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    appointment_time: Mapped[time] = mapped_column(Time, nullable=False)
    appointment_type: Mapped[str] = mapped_column(
        String(32),
        default=AppointmentType.CONSULTATION.value,
        nullable=False,
    )
    special_instructions: Mapped[Optional[str]] = mapped_column(
        String(SPECIAL_INSTRUCTIONS_MAX_LENGTH),
        nullable=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(8), nullable=False)
    gateway_order_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
    )
    gateway_payment_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        unique=True,
    )
    gateway_signature: Mapped[Optional[str]] = mapped_column(
        String(128),
        nullable=True,
    )
    status: Mapped[str] = mapped_column(
        String(16),
        default=PaymentStatus.PENDING.value,
        nullable=False,
    )
    payment_method: Mapped[str] = mapped_column(
        String(32),
        default="razorpay",
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    appointment: Mapped[Optional["Appointment"]] = relationship(back_populates="payment")
