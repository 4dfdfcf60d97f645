# routes/jobs.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from app.jobs.model import ActorRole
from app.jobs.state_machine import JobService
from deps.auth import CurrentActor, get_current_actor, require_contractor
from deps.services import get_job_service
from schemas import (
    CompleteJobRequest,
    EndJobRequest,
    StartJobRequest,
    SubmitJobRequest,
    UpdateMaterialsRequest,
    encode,
)

router = APIRouter(prefix="/v1/jobs", tags=["jobs"])


@router.post("", status_code=status.HTTP_201_CREATED)
def submit_job(
    body: SubmitJobRequest,
    actor: CurrentActor = Depends(get_current_actor),
    jobs: JobService = Depends(get_job_service),
):
    if actor.role != ActorRole.CUSTOMER:
        raise HTTPException(status_code=403, detail="CUSTOMER_REQUIRED")
    job = jobs.submit(
        customer_id=actor.actor_id,
        service_type_id=body.service_type_id,
        estimate=body.estimate.model_dump() if body.estimate else None,
        description=body.description,
        city=body.city,
        category=body.category,
    )
    return encode(job.to_dict())


@router.get("/{job_id}")
def get_job(
    job_id: str,
    _actor: CurrentActor = Depends(get_current_actor),
    jobs: JobService = Depends(get_job_service),
):
    return encode(jobs.get(job_id).to_dict())


@router.get("/{job_id}/history")
def get_job_history(
    job_id: str,
    _actor: CurrentActor = Depends(get_current_actor),
    jobs: JobService = Depends(get_job_service),
):
    entries = [h.to_dict() for h in jobs.history(job_id)]
    return {"job_id": job_id, "history": entries, "count": len(entries)}


@router.post("/{job_id}/accept")
def accept_job(
    job_id: str,
    actor: CurrentActor = Depends(require_contractor),
    jobs: JobService = Depends(get_job_service),
):
    return encode(jobs.accept(job_id, contractor_id=actor.actor_id).to_dict())


@router.post("/{job_id}/en-route")
def mark_en_route(
    job_id: str,
    actor: CurrentActor = Depends(require_contractor),
    jobs: JobService = Depends(get_job_service),
):
    return encode(jobs.mark_en_route(job_id, contractor_id=actor.actor_id).to_dict())


@router.post("/{job_id}/on-site")
def mark_on_site(
    job_id: str,
    actor: CurrentActor = Depends(require_contractor),
    jobs: JobService = Depends(get_job_service),
):
    return encode(jobs.mark_on_site(job_id, contractor_id=actor.actor_id).to_dict())


@router.post("/{job_id}/start")
def start_job(
    job_id: str,
    body: StartJobRequest,
    actor: CurrentActor = Depends(require_contractor),
    jobs: JobService = Depends(get_job_service),
):
    job = jobs.start(
        job_id,
        contractor_id=actor.actor_id,
        notes=body.notes,
        before_photos=body.before_photos,
    )
    return encode(job.to_dict())


@router.post("/{job_id}/complete")
def complete_job(
    job_id: str,
    body: CompleteJobRequest,
    actor: CurrentActor = Depends(require_contractor),
    jobs: JobService = Depends(get_job_service),
):
    job = jobs.complete(
        job_id,
        contractor_id=actor.actor_id,
        tasks=body.tasks,
        materials=body.materials,
        material_costs=body.material_costs,
        notes=body.notes,
        photos=body.photos,
        receipts=body.receipts,
        final_price=body.final_price,
    )
    return encode(job.to_dict())


@router.post("/{job_id}/end")
def end_job(
    job_id: str,
    body: EndJobRequest,
    actor: CurrentActor = Depends(require_contractor),
    jobs: JobService = Depends(get_job_service),
):
    job = jobs.contractor_end(
        job_id,
        contractor_id=actor.actor_id,
        cause_code=body.cause_code,
        notes=body.notes,
        end_photo=body.end_photo,
    )
    return encode(job.to_dict())


@router.post("/{job_id}/materials")
def update_materials(
    job_id: str,
    body: UpdateMaterialsRequest,
    actor: CurrentActor = Depends(require_contractor),
    jobs: JobService = Depends(get_job_service),
):
    job = jobs.update_materials(
        job_id,
        contractor_id=actor.actor_id,
        material_costs=body.material_costs,
        receipts=body.receipts,
    )
    return encode(job.to_dict())
