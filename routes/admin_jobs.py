# routes/admin_jobs.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.jobs.model import JobStatus, PayoutStatus
from app.jobs.payouts import PayoutService
from app.jobs.state_machine import JobService
from deps.admin import require_admin
from deps.auth import CurrentActor
from deps.services import get_job_service, get_payout_service
from schemas import (
    AdminNoteRequest,
    ReassignRequest,
    RecordPaymentRequest,
    RepriceRequest,
    encode,
)

router = APIRouter(prefix="/v1/admin/jobs", tags=["admin_jobs"])


@router.get("")
def list_jobs(
    status: str | None = Query(None),
    payout_status: str | None = Query(None),
    contractor_id: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    _admin: CurrentActor = Depends(require_admin),
    jobs: JobService = Depends(get_job_service),
):
    statuses = [JobStatus.parse(status, field_name="status")] if status else None
    payout_statuses = [PayoutStatus.parse(payout_status, field_name="payout_status")] if payout_status else None
    rows = jobs.repo.list_jobs(
        statuses=statuses,
        payout_statuses=payout_statuses,
        contractor_id=(contractor_id or "").strip() or None,
        limit=limit,
    )
    return {"jobs": encode([j.to_dict() for j in rows]), "count": len(rows), "limit": limit}


@router.post("/{job_id}/approve")
def approve_job(
    job_id: str,
    body: AdminNoteRequest,
    admin: CurrentActor = Depends(require_admin),
    jobs: JobService = Depends(get_job_service),
):
    return encode(jobs.admin_approve(job_id, admin_id=admin.actor_id, notes=body.notes).to_dict())


@router.post("/{job_id}/cancel")
def cancel_job(
    job_id: str,
    body: AdminNoteRequest,
    admin: CurrentActor = Depends(require_admin),
    jobs: JobService = Depends(get_job_service),
):
    return encode(jobs.admin_cancel(job_id, admin_id=admin.actor_id, notes=body.notes).to_dict())


@router.post("/{job_id}/relist")
def relist_job(
    job_id: str,
    body: AdminNoteRequest,
    admin: CurrentActor = Depends(require_admin),
    jobs: JobService = Depends(get_job_service),
):
    return encode(jobs.admin_relist(job_id, admin_id=admin.actor_id, notes=body.notes).to_dict())


@router.post("/{job_id}/reassign")
def reassign_job(
    job_id: str,
    body: ReassignRequest,
    admin: CurrentActor = Depends(require_admin),
    jobs: JobService = Depends(get_job_service),
):
    job = jobs.admin_reassign(
        job_id,
        contractor_id=body.contractor_id,
        admin_id=admin.actor_id,
        notes=body.notes,
    )
    return encode(job.to_dict())


@router.post("/{job_id}/reprice")
def reprice_job(
    job_id: str,
    body: RepriceRequest,
    admin: CurrentActor = Depends(require_admin),
    jobs: JobService = Depends(get_job_service),
):
    job = jobs.admin_reprice(
        job_id,
        final_price=body.final_price,
        admin_id=admin.actor_id,
        notes=body.notes,
    )
    return encode(job.to_dict())


@router.post("/{job_id}/payment")
def record_payment(
    job_id: str,
    body: RecordPaymentRequest,
    admin: CurrentActor = Depends(require_admin),
    payouts: PayoutService = Depends(get_payout_service),
):
    job = payouts.record_payment(job_id, body.payment_status, actor=admin.as_actor())
    return encode(job.to_dict())
