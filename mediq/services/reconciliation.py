"""Support cases for payments that moved without a committed appointment."""

from __future__ import annotations

import logging
import uuid
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mediq.errors import InvalidStateTransition, NotFound
from mediq.models.base import utcnow
from mediq.models.enums import ReconciliationKind, ReconciliationStatus
from mediq.models.reconciliation import ReconciliationCase
from mediq.schemas import ReconciliationCaseOut
from mediq.services.tokens import SessionFactory

LOGGER = logging.getLogger(__name__)


def open_case(
    session_factory: SessionFactory,
    *,
    kind: ReconciliationKind,
    order_id: str,
    payment_id: str,
    patient_id: uuid.UUID,
    detail: str,
) -> Optional[uuid.UUID]:
    """Record a case in its own transaction and return its id.

    Returns None when even the case cannot be written; the failure is logged
    with the payment reference so support can still find it.
    """

    try:
        with session_factory() as session:
            case = ReconciliationCase(
                kind=kind.value,
                gateway_order_id=order_id,
                gateway_payment_id=payment_id,
                patient_id=patient_id,
                detail=detail[:2000],
            )
            session.add(case)
            session.flush()
            case_id = case.id
    except SQLAlchemyError as exc:
        LOGGER.error(
            "Could not record reconciliation case kind=%s payment_id=%s: %s",
            kind.value,
            payment_id,
            exc,
        )
        return None

    LOGGER.error(
        "Reconciliation required: case=%s kind=%s order_id=%s payment_id=%s detail=%s",
        case_id,
        kind.value,
        order_id,
        payment_id,
        detail,
    )
    return case_id


def list_open_cases(session: Session) -> List[ReconciliationCaseOut]:
    cases = session.execute(
        select(ReconciliationCase)
        .where(ReconciliationCase.status == ReconciliationStatus.OPEN.value)
        .order_by(ReconciliationCase.created_at)
    ).scalars().all()
    return [ReconciliationCaseOut.model_validate(case) for case in cases]


def resolve_case(session: Session, case_id: uuid.UUID, note: str) -> ReconciliationCaseOut:
    case = session.get(ReconciliationCase, case_id, with_for_update=True)
    if case is None:
        raise NotFound(f"Reconciliation case {case_id} not found.")
    if case.status == ReconciliationStatus.RESOLVED.value:
        raise InvalidStateTransition("Reconciliation case is already resolved.")

    case.status = ReconciliationStatus.RESOLVED.value
    case.resolution_note = note
    case.resolved_at = utcnow()
    session.flush()
    LOGGER.info("Reconciliation case %s resolved", case_id)
    return ReconciliationCaseOut.model_validate(case)
