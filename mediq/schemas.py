"""Pydantic contracts shared by the services and routers."""

from __future__ import annotations

import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mediq.models.appointment import SPECIAL_INSTRUCTIONS_MAX_LENGTH
from mediq.models.enums import AppointmentType, Role


class Caller(BaseModel):
    """Authenticated identity passed explicitly into every core call."""

    model_config = ConfigDict(frozen=True)

    user_id: uuid.UUID
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


class BookingIntent(BaseModel):
    """What the patient wants to book.

    Every booking starts as a normal token; priority is assigned by staff.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    doctor_id: uuid.UUID
    hospital_id: uuid.UUID
    appointment_date: date
    appointment_time: time
    appointment_type: AppointmentType = AppointmentType.CONSULTATION
    special_instructions: Optional[str] = Field(
        default=None,
        max_length=SPECIAL_INSTRUCTIONS_MAX_LENGTH,
    )
    consultation_fee: Optional[Decimal] = Field(default=None, ge=0)

    @field_validator("special_instructions")
    @classmethod
    def _sanitize_instructions(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        cleaned = value.replace("<", "").replace(">", "").strip()
        return cleaned or None


class GatewayConfirmation(BaseModel):
    """Fields the hosted checkout hands back after a capture.

    All three are optional at the schema level so that a missing field is
    reported as invalid payment data rather than a generic validation error.
    """

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    razorpay_order_id: Optional[str] = Field(default=None, max_length=64)
    razorpay_payment_id: Optional[str] = Field(default=None, max_length=64)
    razorpay_signature: Optional[str] = Field(default=None, max_length=128)


class ConfirmationRequest(GatewayConfirmation):
    """Booking confirmation entry point payload."""

    appointment: BookingIntent


class OrderOut(BaseModel):
    payment_id: uuid.UUID
    order_id: str
    amount: Decimal
    currency: str
    key_id: str


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    patient_id: uuid.UUID
    doctor_id: uuid.UUID
    hospital_id: uuid.UUID
    appointment_date: date
    appointment_time: time
    appointment_type: str
    token_number: int
    token_type: str
    status: str
    special_instructions: Optional[str] = None
    consultation_notes: Optional[str] = None
    follow_up_date: Optional[date] = None
    queue_position: Optional[int] = None
    created_at: datetime


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    appointment_id: Optional[uuid.UUID] = None
    amount: Decimal
    currency: str
    gateway_order_id: str
    gateway_payment_id: Optional[str] = None
    status: str
    payment_method: str


class BookingResult(BaseModel):
    """Outcome of a confirmation; ``replayed`` marks an idempotent repeat."""

    appointment: AppointmentOut
    payment: PaymentOut
    replayed: bool = False
    notification_ids: List[uuid.UUID] = Field(default_factory=list)


class AppointmentChange(BaseModel):
    """Result of a lifecycle action; ``changed`` is False for an idempotent no-op."""

    appointment: AppointmentOut
    changed: bool = True
    notification_ids: List[uuid.UUID] = Field(default_factory=list)


class QueueEntry(BaseModel):
    appointment_id: uuid.UUID
    token_number: int
    token_type: str
    patient_display_name: str
    status: str
    appointment_time: time
    queue_position: Optional[int] = None


class SlotOut(BaseModel):
    slot_time: time
    booked_count: int
    capacity: int
    is_booked: bool


class CompleteConsultationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    follow_up_date: Optional[date] = None
    consultation_notes: Optional[str] = Field(default=None, max_length=5000)


class RevenueSummary(BaseModel):
    summary_date: date
    total_patients: int = 0
    normal_tokens: int = 0
    priority_tokens: int = 0
    total_consultation_income: Decimal = Decimal("0")
    total_priority_income: Decimal = Decimal("0")
    overall_revenue: Decimal = Decimal("0")


class DoctorStatistics(BaseModel):
    doctor_id: uuid.UUID
    total_appointments: int
    completed_appointments: int
    cancelled_appointments: int


class FollowUpOut(BaseModel):
    appointment_id: uuid.UUID
    patient_id: uuid.UUID
    patient_name: str
    doctor_id: uuid.UUID
    follow_up_date: date


class ReconciliationCaseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    kind: str
    gateway_order_id: str
    gateway_payment_id: str
    patient_id: uuid.UUID
    detail: str
    status: str
    resolution_note: Optional[str] = None
    created_at: datetime
    resolved_at: Optional[datetime] = None


class ResolveCaseRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True)

    note: str = Field(min_length=1, max_length=2000)
