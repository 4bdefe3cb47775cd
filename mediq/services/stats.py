"""Aggregate figures for the admin dashboard."""

from __future__ import annotations

import uuid
from datetime import date, timedelta
from decimal import Decimal
from typing import List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mediq.models.appointment import Appointment
from mediq.models.enums import AppointmentStatus, PaymentStatus, TokenType
from mediq.models.patient import Patient
from mediq.models.payment import Payment
from mediq.schemas import DoctorStatistics, FollowUpOut, RevenueSummary
from mediq.services.access import get_doctor


def _as_decimal(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def revenue_summary(session: Session, summary_date: date) -> RevenueSummary:
    """Token counts and settled income for non-cancelled appointments on a day."""

    active = (
        Appointment.appointment_date == summary_date,
        Appointment.status != AppointmentStatus.CANCELLED.value,
    )

    counts = dict(
        session.execute(
            select(Appointment.token_type, func.count(Appointment.id))
            .where(*active)
            .group_by(Appointment.token_type)
        ).all()
    )
    income = {
        token_type: _as_decimal(total)
        for token_type, total in session.execute(
            select(Appointment.token_type, func.sum(Payment.amount))
            .join(Payment, Payment.appointment_id == Appointment.id)
            .where(*active, Payment.status == PaymentStatus.COMPLETED.value)
            .group_by(Appointment.token_type)
        ).all()
    }

    normal_income = income.get(TokenType.NORMAL.value, Decimal("0"))
    priority_income = income.get(TokenType.PRIORITY.value, Decimal("0"))
    return RevenueSummary(
        summary_date=summary_date,
        total_patients=sum(counts.values()),
        normal_tokens=counts.get(TokenType.NORMAL.value, 0),
        priority_tokens=counts.get(TokenType.PRIORITY.value, 0),
        total_consultation_income=normal_income,
        total_priority_income=priority_income,
        overall_revenue=normal_income + priority_income,
    )


def doctor_statistics(session: Session, doctor_id: uuid.UUID) -> DoctorStatistics:
    get_doctor(session, doctor_id)
    counts = dict(
        session.execute(
            select(Appointment.status, func.count(Appointment.id))
            .where(Appointment.doctor_id == doctor_id)
            .group_by(Appointment.status)
        ).all()
    )
    return DoctorStatistics(
        doctor_id=doctor_id,
        total_appointments=sum(counts.values()),
        completed_appointments=counts.get(AppointmentStatus.COMPLETED.value, 0),
        cancelled_appointments=counts.get(AppointmentStatus.CANCELLED.value, 0),
    )


def upcoming_followups(session: Session, today: date, days: int = 7) -> List[FollowUpOut]:
    """Completed consultations whose follow-up falls within ``days`` of today."""

    rows = session.execute(
        select(
            Appointment.id,
            Appointment.patient_id,
            Appointment.doctor_id,
            Appointment.follow_up_date,
            Patient.full_name,
        )
        .join(Patient, Patient.id == Appointment.patient_id)
        .where(
            Appointment.status == AppointmentStatus.COMPLETED.value,
            Appointment.follow_up_date.is_not(None),
            Appointment.follow_up_date >= today,
            Appointment.follow_up_date <= today + timedelta(days=days),
        )
        .order_by(Appointment.follow_up_date)
    ).all()

    return [
        FollowUpOut(
            appointment_id=row.id,
            patient_id=row.patient_id,
            patient_name=row.full_name,
            doctor_id=row.doctor_id,
            follow_up_date=row.follow_up_date,
        )
        for row in rows
    ]
