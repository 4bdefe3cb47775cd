"""Appointment model definition."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from mediq.models.base import Base, utcnow
from mediq.models.enums import AppointmentStatus, AppointmentType, TokenType

if TYPE_CHECKING:
    from mediq.models.patient import Patient
    from mediq.models.payment import Payment
else:  # pragma: no cover - typing runtime fallback
    Patient = "Patient"  # type: ignore[assignment]
    Payment = "Payment"  # type: ignore[assignment]

SPECIAL_INSTRUCTIONS_MAX_LENGTH = 1000


class Appointment(Base):
    """Represents one confirmed booking and its place in the doctor's queue."""

    __tablename__ = "appointments"
    __table_args__ = (
        UniqueConstraint(
            "doctor_id",
            "appointment_date",
            "token_number",
            name="uq_appointments_doctor_date_token",
        ),
        Index("ix_appointments_doctor_date", "doctor_id", "appointment_date"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
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
    token_number: Mapped[int] = mapped_column(Integer, nullable=False)
    token_type: Mapped[str] = mapped_column(
        String(16),
        default=TokenType.NORMAL.value,
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(32),
        default=AppointmentStatus.CONFIRMED.value,
        nullable=False,
    )
    special_instructions: Mapped[Optional[str]] = mapped_column(
        String(SPECIAL_INSTRUCTIONS_MAX_LENGTH),
        nullable=True,
    )
    consultation_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    follow_up_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
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

    patient: Mapped["Patient"] = relationship(back_populates="appointments")
    payment: Mapped[Optional["Payment"]] = relationship(back_populates="appointment")

    @property
    def lifecycle(self) -> AppointmentStatus:
        return AppointmentStatus(self.status)
