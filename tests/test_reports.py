from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from app.jobs import reports
from app.jobs.errors import ValidationError
from app.jobs.financials import compute_financials
from app.jobs.model import Contractor, ContractorTier, Job, PaymentSchedule


def _job(
    *,
    price="450",
    materials="85",
    tier="gold",
    contractor_id="c-gold",
    completed_at=datetime(2026, 10, 5, 12, tzinfo=timezone.utc),
    status="completed",
    payment_status="paid",
    payout_status="ready",
) -> Job:
    f = compute_financials(price, materials, tier)
    return Job(
        id=uuid4(),
        customer_id="cust-1",
        service_type_id="x",
        status=status,
        contractor_id=contractor_id,
        final_price=f.final_price,
        material_fees=f.material_fees,
        contractor_tier=f.contractor_tier,
        net_amount=f.net_amount,
        processing_fee=f.processing_fee,
        platform_fee=f.platform_fee,
        contractor_payout=f.contractor_payout,
        net_platform_revenue=f.net_platform_revenue,
        payment_status=payment_status,
        payout_status=payout_status,
        completed_at=completed_at,
        updated_at=completed_at or datetime(2026, 10, 1, tzinfo=timezone.utc),
    )


def test_month_range():
    start, end = reports.month_range("2026-12")
    assert start == datetime(2026, 12, 1, tzinfo=timezone.utc)
    assert end == datetime(2027, 1, 1, tzinfo=timezone.utc)

    for bad in ("2026-13", "Oct 2026", ""):
        with pytest.raises(ValidationError):
            reports.month_range(bad)


def test_revenue_summary_uses_stored_financials():
    jobs = [
        _job(),
        _job(tier="bronze", contractor_id="c-bronze"),
        _job(completed_at=datetime(2026, 9, 30, 23, 59, tzinfo=timezone.utc)),
        _job(status="in_progress", completed_at=None),
        _job(price=None),
    ]
    summary = reports.revenue_summary(jobs, "2026-10")

    assert summary["completed_jobs"] == 3
    assert summary["unpriced_jobs"] == 1
    assert summary["gross_revenue"] == Decimal("900.00")
    assert summary["platform_fees"] == Decimal("109.50")
    assert summary["processing_fees"] == Decimal("26.70")
    assert summary["contractor_payouts"] == Decimal("593.80")
    assert summary["net_platform_revenue"] == summary["platform_fees"]
    assert summary["average_job_value"] == Decimal("450.00")
    assert summary["tier_breakdown"]["gold"]["count"] == 1
    assert summary["tier_breakdown"]["bronze"]["revenue"] == Decimal("450.00")


def test_pending_payouts_and_history():
    ready = _job(payout_status="ready")
    processing = _job(payout_status="processing")
    paid = _job(payout_status="paid")
    not_ready = _job(payout_status="not_ready")

    pending = reports.pending_payouts([ready, processing, paid, not_ready])
    assert {r["job_id"] for r in pending} == {str(ready.id), str(processing.id)}

    history = reports.payout_history([ready, paid], limit=10)
    assert [r["job_id"] for r in history] == [str(paid.id)]


def test_contractor_payout_summary():
    contractors = [
        Contractor(id="c-gold", name="Gold", tier=ContractorTier.GOLD, payment_schedule=PaymentSchedule.WEEKLY),
        Contractor(id="c-silver", name="Silver", tier=ContractorTier.SILVER, payment_schedule=PaymentSchedule.MONTHLY),
    ]
    jobs = [_job(), _job(), _job(contractor_id="c-silver", tier="silver", payout_status="paid")]

    # Wednesday; weekly pays Friday, inside this week
    summary = reports.contractor_payout_summary(contractors, jobs, date(2026, 10, 14))
    gold, silver = summary["contractors"]

    assert gold["pending_amount"] == Decimal("630.30")
    assert len(gold["ready_jobs"]) == 2
    assert gold["next_payment_date"] == "2026-10-16"
    assert silver["pending_amount"] == Decimal("0.00")
    assert silver["next_payment_date"] == "2026-10-31"

    totals = summary["totals"]
    assert totals["total_pending"] == Decimal("630.30")
    assert totals["contractors_with_pending"] == 1
    assert totals["scheduled_this_week"] == Decimal("630.30")


def test_payout_alerts():
    jobs = [
        _job(price=None, payout_status="not_ready"),
        _job(payout_status="not_ready"),
        _job(payment_status="refunded"),
        _job(),
    ]
    alerts = {a["code"]: a for a in reports.payout_alerts(jobs)}
    assert alerts["missing_final_price"]["count"] == 1
    # the unpriced one is also paid but not ready
    assert alerts["paid_not_ready"]["count"] == 2
    assert alerts["refunded"]["count"] == 1


def test_no_alerts_when_clean():
    assert reports.payout_alerts([_job()]) == []
