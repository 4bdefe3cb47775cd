"""Token ledger model."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import Date, DateTime, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from mediq.models.base import Base, utcnow


class TokenIssue(Base):
    """Durable record of every token handed out for a (doctor, date).

    Rows are never deleted, so a number is never handed out twice even when
    the appointment that used it is cancelled or was never persisted.
    """

    __tablename__ = "token_issues"
    __table_args__ = (
        UniqueConstraint(
            "doctor_id",
            "appointment_date",
            "token_number",
            name="uq_token_issues_partition_token",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    doctor_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    token_number: Mapped[int] = mapped_column(Integer, nullable=False)
    claim_ref: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        unique=True,
    )
    issued_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
    )
