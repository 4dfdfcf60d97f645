# routes/admin_revenue.py
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query

from app.jobs import reports
from app.jobs.model import JobStatus
from app.jobs.payouts import PayoutService
from deps.admin import require_admin
from deps.auth import CurrentActor
from deps.services import get_payout_service
from schemas import encode

router = APIRouter(prefix="/v1/admin/revenue", tags=["admin_revenue"])


@router.get("/mtd")
def month_to_date(
    month: str | None = Query(None, description="YYYY-MM; defaults to the current month"),
    _admin: CurrentActor = Depends(require_admin),
    payouts: PayoutService = Depends(get_payout_service),
):
    month = (month or "").strip() or datetime.now(timezone.utc).strftime("%Y-%m")
    jobs = payouts.repo.list_jobs(statuses=[JobStatus.COMPLETED])
    return encode(reports.revenue_summary(jobs, month))
