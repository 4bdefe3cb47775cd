"""Admin dashboard endpoints."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query

from mediq.models.enums import Role
from mediq.routers import deps
from mediq.schemas import (
    Caller,
    DoctorStatistics,
    FollowUpOut,
    ReconciliationCaseOut,
    ResolveCaseRequest,
    RevenueSummary,
)
from mediq.services import stats
from mediq.services.access import require_role
from mediq.services.db import get_session
from mediq.services.reconciliation import list_open_cases, resolve_case

router = APIRouter()


def require_admin(caller: Caller = Depends(deps.get_caller)) -> Caller:
    require_role(caller, Role.ADMIN)
    return caller


@router.get("/revenue", response_model=RevenueSummary)
def read_revenue(
    summary_date: Optional[date] = Query(default=None, alias="date"),
    caller: Caller = Depends(require_admin),
) -> RevenueSummary:
    with get_session() as session:
        return stats.revenue_summary(session, summary_date or date.today())


@router.get("/doctors/{doctor_id}/statistics", response_model=DoctorStatistics)
def read_doctor_statistics(
    doctor_id: uuid.UUID,
    caller: Caller = Depends(require_admin),
) -> DoctorStatistics:
    with get_session() as session:
        return stats.doctor_statistics(session, doctor_id)


@router.get("/followups", response_model=List[FollowUpOut])
def read_followups(
    days: int = Query(default=7, ge=0, le=90),
    caller: Caller = Depends(require_admin),
) -> List[FollowUpOut]:
    with get_session() as session:
        return stats.upcoming_followups(session, date.today(), days)


@router.get("/reconciliation", response_model=List[ReconciliationCaseOut])
def read_reconciliation_cases(
    caller: Caller = Depends(require_admin),
) -> List[ReconciliationCaseOut]:
    with get_session() as session:
        return list_open_cases(session)


@router.post("/reconciliation/{case_id}/resolve", response_model=ReconciliationCaseOut)
def resolve_reconciliation_case(
    case_id: uuid.UUID,
    payload: ResolveCaseRequest,
    caller: Caller = Depends(require_admin),
) -> ReconciliationCaseOut:
    with get_session() as session:
        return resolve_case(session, case_id, payload.note)


@router.post("/notifications/dispatch")
def dispatch_notifications(
    limit: int = Query(default=100, ge=1, le=1000),
    caller: Caller = Depends(require_admin),
) -> Dict[str, int]:
    """Re-send pending or failed notifications from the outbox."""

    return {"sent": deps.dispatcher.dispatch_pending(limit)}
