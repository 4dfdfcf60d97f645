# routes/admin_payouts.py
from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query

from app.jobs import reports
from app.jobs.schedules import next_payment_date
from app.jobs.model import JobStatus, PayoutStatus
from app.jobs.payouts import PayoutService
from deps.admin import require_admin
from deps.auth import CurrentActor
from deps.services import get_payout_service
from schemas import (
    BatchPayoutRequest,
    ForcePayoutStatusRequest,
    PaymentScheduleRequest,
    SinglePayoutRequest,
    encode,
)

router = APIRouter(prefix="/v1/admin/payouts", tags=["admin_payouts"])


@router.get("/pending")
def list_pending_payouts(
    _admin: CurrentActor = Depends(require_admin),
    payouts: PayoutService = Depends(get_payout_service),
):
    jobs = payouts.repo.list_jobs(
        statuses=[JobStatus.COMPLETED],
        payout_statuses=[PayoutStatus.READY, PayoutStatus.PROCESSING],
    )
    rows = reports.pending_payouts(jobs)
    return {"payouts": encode(rows), "count": len(rows)}


@router.get("/history")
def list_payout_history(
    limit: int = Query(50, ge=1, le=500),
    _admin: CurrentActor = Depends(require_admin),
    payouts: PayoutService = Depends(get_payout_service),
):
    jobs = payouts.repo.list_jobs(payout_statuses=[PayoutStatus.PAID], limit=limit)
    rows = reports.payout_history(jobs, limit=limit)
    return {"payouts": encode(rows), "count": len(rows), "limit": limit}


@router.get("/contractors")
def contractor_summary(
    _admin: CurrentActor = Depends(require_admin),
    payouts: PayoutService = Depends(get_payout_service),
):
    contractors = payouts.repo.list_contractors()
    jobs = payouts.repo.list_jobs(payout_statuses=[PayoutStatus.READY])
    return encode(reports.contractor_payout_summary(contractors, jobs, date.today()))


@router.get("/contractors/{contractor_id}/payments")
def contractor_payments(
    contractor_id: str,
    _admin: CurrentActor = Depends(require_admin),
    payouts: PayoutService = Depends(get_payout_service),
):
    rows = [p.to_dict() for p in payouts.payment_history(contractor_id)]
    return {"contractor_id": contractor_id, "payments": encode(rows), "count": len(rows)}


@router.patch("/contractors/{contractor_id}/payment-schedule")
def update_payment_schedule(
    contractor_id: str,
    body: PaymentScheduleRequest,
    admin: CurrentActor = Depends(require_admin),
    payouts: PayoutService = Depends(get_payout_service),
):
    contractor = payouts.update_payment_schedule(
        contractor_id,
        body.payment_schedule,
        admin_id=admin.actor_id,
    )
    return {
        "contractor_id": contractor.id,
        "payment_schedule": contractor.payment_schedule.value,
        "next_payment_date": next_payment_date(contractor.payment_schedule, date.today()).isoformat(),
    }


@router.get("/alerts")
def payout_alerts(
    _admin: CurrentActor = Depends(require_admin),
    payouts: PayoutService = Depends(get_payout_service),
):
    jobs = payouts.repo.list_jobs(statuses=[JobStatus.COMPLETED])
    alerts = reports.payout_alerts(jobs)
    return {"alerts": alerts, "count": len(alerts)}


@router.post("/{job_id}/ready")
def mark_ready(
    job_id: str,
    admin: CurrentActor = Depends(require_admin),
    payouts: PayoutService = Depends(get_payout_service),
):
    return encode(payouts.mark_ready(job_id, actor=admin.as_actor()).to_dict())


@router.post("/{job_id}/processing")
def mark_processing(
    job_id: str,
    admin: CurrentActor = Depends(require_admin),
    payouts: PayoutService = Depends(get_payout_service),
):
    return encode(payouts.mark_processing(job_id, actor=admin.as_actor()).to_dict())


@router.post("/{job_id}/force-status")
def force_payout_status(
    job_id: str,
    body: ForcePayoutStatusRequest,
    admin: CurrentActor = Depends(require_admin),
    payouts: PayoutService = Depends(get_payout_service),
):
    job = payouts.force_status(
        job_id,
        body.payout_status,
        reason=body.reason,
        admin_id=admin.actor_id,
    )
    return encode(job.to_dict())


@router.post("/batch")
def batch_payout(
    body: BatchPayoutRequest,
    admin: CurrentActor = Depends(require_admin),
    payouts: PayoutService = Depends(get_payout_service),
):
    result = payouts.batch_process(body.job_ids, actor=admin.as_actor())
    return encode(result.to_dict())


@router.post("/single")
def single_payout(
    body: SinglePayoutRequest,
    admin: CurrentActor = Depends(require_admin),
    payouts: PayoutService = Depends(get_payout_service),
):
    result = payouts.process_single(
        body.contractor_id,
        body.job_ids,
        amount=body.amount,
        payment_method=body.payment_method,
        actor=admin.as_actor(),
    )
    return encode(result.to_dict())
