"""Per-(doctor, date) queue token allocation."""

from __future__ import annotations

import logging
import random
import time
import uuid
from contextlib import AbstractContextManager
from datetime import date
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mediq.errors import TokenAllocationExhausted, TokenClaimConflict
from mediq.models.token_issue import TokenIssue
from mediq.services.db import get_session

LOGGER = logging.getLogger(__name__)

SessionFactory = Callable[[], AbstractContextManager[Session]]


class TokenAllocator:
    """Hands out gapless, monotonically increasing tokens per partition.

    Each attempt reads the current maximum from the ``token_issues`` ledger
    and inserts the next number. The unique constraint on
    (doctor_id, appointment_date, token_number) turns a lost race into an
    ``IntegrityError``, which is retried with exponential backoff until
    ``max_retries`` attempts have been spent.
    """

    def __init__(
        self,
        *,
        session_factory: SessionFactory = get_session,
        max_retries: int = 8,
        backoff_seconds: float = 0.02,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory
        self.max_retries = max(1, max_retries)
        self.backoff_seconds = max(0.0, backoff_seconds)
        self._sleep = sleep

    def allocate(
        self,
        doctor_id: uuid.UUID,
        appointment_date: date,
        *,
        claim_ref: Optional[str] = None,
    ) -> int:
        """Return the next token for the partition.

        With ``claim_ref`` the token is reserved under that reference, and a
        later call with the same reference returns the same token instead of
        issuing a new one. A reference reserved for another doctor or date
        raises ``TokenClaimConflict``.
        """

        for attempt in range(1, self.max_retries + 1):
            try:
                with self._session_factory() as session:
                    if claim_ref is not None:
                        existing = self._claimed_token(
                            session, claim_ref, doctor_id, appointment_date
                        )
                        if existing is not None:
                            LOGGER.info(
                                "Reusing token %s for claim %s",
                                existing,
                                claim_ref,
                            )
                            return existing
                    token = self._issue_next(
                        session, doctor_id, appointment_date, claim_ref
                    )
            except IntegrityError:
                LOGGER.debug(
                    "Token conflict for doctor=%s date=%s attempt=%s",
                    doctor_id,
                    appointment_date,
                    attempt,
                )
                if attempt < self.max_retries:
                    self._sleep(self._backoff(attempt))
                continue

            LOGGER.info(
                "Issued token %s for doctor=%s date=%s",
                token,
                doctor_id,
                appointment_date,
            )
            return token

        LOGGER.error(
            "Token allocation exhausted for doctor=%s date=%s after %s attempts",
            doctor_id,
            appointment_date,
            self.max_retries,
        )
        raise TokenAllocationExhausted(
            f"Could not allocate a token for doctor {doctor_id} on "
            f"{appointment_date.isoformat()} after {self.max_retries} attempts",
            payment_reference=claim_ref,
        )

    def claimed_token(self, claim_ref: str) -> Optional[int]:
        """Return the token reserved under ``claim_ref``, if any."""

        with self._session_factory() as session:
            return session.execute(
                select(TokenIssue.token_number).where(TokenIssue.claim_ref == claim_ref)
            ).scalar_one_or_none()

    @staticmethod
    def _claimed_token(
        session: Session,
        claim_ref: str,
        doctor_id: uuid.UUID,
        appointment_date: date,
    ) -> Optional[int]:
        issue = session.execute(
            select(TokenIssue).where(TokenIssue.claim_ref == claim_ref)
        ).scalar_one_or_none()
        if issue is None:
            return None
        if issue.doctor_id != doctor_id or issue.appointment_date != appointment_date:
            LOGGER.error(
                "Claim %s holds token %s for doctor=%s date=%s, not doctor=%s date=%s",
                claim_ref,
                issue.token_number,
                issue.doctor_id,
                issue.appointment_date,
                doctor_id,
                appointment_date,
            )
            raise TokenClaimConflict(
                f"Claim {claim_ref} is reserved for another doctor or date",
                payment_reference=claim_ref,
            )
        return issue.token_number

    @staticmethod
    def _issue_next(
        session: Session,
        doctor_id: uuid.UUID,
        appointment_date: date,
        claim_ref: Optional[str],
    ) -> int:
        current = session.execute(
            select(func.max(TokenIssue.token_number)).where(
                TokenIssue.doctor_id == doctor_id,
                TokenIssue.appointment_date == appointment_date,
            )
        ).scalar()
        token = (current or 0) + 1
        session.add(
            TokenIssue(
                doctor_id=doctor_id,
                appointment_date=appointment_date,
                token_number=token,
                claim_ref=claim_ref,
            )
        )
        session.flush()
        return token

    def _backoff(self, attempt: int) -> float:
        delay = self.backoff_seconds * (2 ** (attempt - 1))
        return delay + random.uniform(0, delay)
