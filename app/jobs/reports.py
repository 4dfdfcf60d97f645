# app/jobs/reports.py
"""
Read-only projections over job records for the revenue and payouts screens.

Everything here works on already-loaded Job objects and uses the financials
stored on each job; nothing is recomputed.
"""
from __future__ import annotations

import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from app.jobs.errors import ValidationError
from app.jobs.financials import ZERO, round_money
from app.jobs.model import (
    Contractor,
    ContractorTier,
    Job,
    JobStatus,
    PaymentStatus,
    PayoutStatus,
)
from app.jobs.schedules import end_of_week, next_payment_date

_MONTH_RE = re.compile(r"^(\d{4})-(\d{2})$")


def month_range(month: str) -> tuple[datetime, datetime]:
    """[start, end) in UTC for a 'YYYY-MM' month."""
    m = _MONTH_RE.match((month or "").strip())
    if not m:
        raise ValidationError("month", "must look like YYYY-MM")
    year, mon = int(m.group(1)), int(m.group(2))
    if not 1 <= mon <= 12:
        raise ValidationError("month", "must look like YYYY-MM")

    start = datetime(year, mon, 1, tzinfo=timezone.utc)
    if mon == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, mon + 1, 1, tzinfo=timezone.utc)
    return start, end


def _money(value: Optional[Decimal]) -> Decimal:
    return value if value is not None else ZERO


def _completed_in(jobs: Iterable[Job], start: datetime, end: datetime) -> list[Job]:
    out = []
    for j in jobs:
        if j.status != JobStatus.COMPLETED or j.completed_at is None:
            continue
        if start <= j.completed_at < end:
            out.append(j)
    return out


def revenue_summary(jobs: Iterable[Job], month: str) -> dict[str, Any]:
    start, end = month_range(month)
    completed = _completed_in(jobs, start, end)

    gross = materials = processing = platform = payouts = net_revenue = ZERO
    tiers = {t.value: {"count": 0, "revenue": ZERO} for t in ContractorTier}
    unpriced = 0

    for j in completed:
        if not j.has_financials:
            unpriced += 1
            continue
        gross += _money(j.final_price)
        materials += _money(j.material_fees)
        processing += _money(j.processing_fee)
        platform += _money(j.platform_fee)
        payouts += _money(j.contractor_payout)
        net_revenue += _money(j.net_platform_revenue)

        bucket = tiers[(j.contractor_tier or ContractorTier.BRONZE).value]
        bucket["count"] += 1
        bucket["revenue"] += _money(j.final_price)

    priced = len(completed) - unpriced
    return {
        "month": month,
        "period_start": start.isoformat(),
        "period_end": end.isoformat(),
        "completed_jobs": len(completed),
        "unpriced_jobs": unpriced,
        "gross_revenue": round_money(gross),
        "material_fees": round_money(materials),
        "processing_fees": round_money(processing),
        "platform_fees": round_money(platform),
        "contractor_payouts": round_money(payouts),
        "net_platform_revenue": round_money(net_revenue),
        "average_job_value": round_money(gross / priced) if priced else ZERO,
        "tier_breakdown": {
            k: {"count": v["count"], "revenue": round_money(v["revenue"])} for k, v in tiers.items()
        },
    }


def _payout_row(job: Job) -> dict[str, Any]:
    return {
        "job_id": str(job.id),
        "contractor_id": job.contractor_id,
        "city": job.city,
        "category": job.category,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
        "final_price": job.final_price,
        "contractor_tier": job.contractor_tier.value if job.contractor_tier else None,
        "contractor_payout": job.contractor_payout,
        "payment_status": job.payment_status.value,
        "payout_status": job.payout_status.value,
    }


def _sort_key(job: Job) -> datetime:
    return job.completed_at or job.updated_at


def pending_payouts(jobs: Iterable[Job]) -> list[dict[str, Any]]:
    pending = [
        j
        for j in jobs
        if j.status == JobStatus.COMPLETED
        and j.payout_status in (PayoutStatus.READY, PayoutStatus.PROCESSING)
    ]
    return [_payout_row(j) for j in sorted(pending, key=_sort_key)]


def payout_history(jobs: Iterable[Job], limit: int = 50) -> list[dict[str, Any]]:
    paid = [j for j in jobs if j.payout_status == PayoutStatus.PAID]
    paid.sort(key=lambda j: j.updated_at, reverse=True)
    return [_payout_row(j) for j in paid[: max(0, int(limit))]]


def contractor_payout_summary(
    contractors: Sequence[Contractor],
    jobs: Iterable[Job],
    today: date,
) -> dict[str, Any]:
    ready_by_contractor: dict[str, list[Job]] = {}
    for j in jobs:
        if j.payout_status == PayoutStatus.READY and j.contractor_id:
            ready_by_contractor.setdefault(j.contractor_id, []).append(j)

    week_end = end_of_week(today)
    rows = []
    total_pending = scheduled_this_week = ZERO
    with_pending = scheduled_contractors = total_jobs = 0

    for c in contractors:
        ready = ready_by_contractor.get(c.id, [])
        pending = round_money(sum((_money(j.contractor_payout) for j in ready), ZERO))
        next_date = next_payment_date(c.payment_schedule, today)
        rows.append(
            {
                "contractor_id": c.id,
                "name": c.name,
                "tier": c.tier.value,
                "payment_schedule": c.payment_schedule.value,
                "ready_jobs": [str(j.id) for j in ready],
                "pending_amount": pending,
                "next_payment_date": next_date.isoformat(),
            }
        )
        if pending > ZERO:
            total_pending += pending
            with_pending += 1
            total_jobs += len(ready)
            if next_date <= week_end:
                scheduled_this_week += pending
                scheduled_contractors += 1

    return {
        "contractors": rows,
        "totals": {
            "total_pending": round_money(total_pending),
            "contractors_with_pending": with_pending,
            "total_jobs": total_jobs,
            "scheduled_this_week": round_money(scheduled_this_week),
            "contractors_scheduled_this_week": scheduled_contractors,
        },
    }


def payout_alerts(jobs: Iterable[Job]) -> list[dict[str, Any]]:
    jobs = list(jobs)
    checks = [
        (
            "missing_final_price",
            "Completed jobs missing final price",
            [
                j
                for j in jobs
                if j.status == JobStatus.COMPLETED and (j.final_price is None or j.final_price <= ZERO)
            ],
        ),
        (
            "paid_not_ready",
            "Paid jobs not marked for payout",
            [
                j
                for j in jobs
                if j.payment_status == PaymentStatus.PAID and j.payout_status == PayoutStatus.NOT_READY
            ],
        ),
        (
            "refunded",
            "Refunded jobs",
            [j for j in jobs if j.payment_status == PaymentStatus.REFUNDED],
        ),
    ]
    return [
        {"code": code, "text": text, "count": len(hits), "job_ids": [str(j.id) for j in hits]}
        for code, text, hits in checks
        if hits
    ]
