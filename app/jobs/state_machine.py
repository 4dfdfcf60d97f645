# app/jobs/state_machine.py
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Iterable, Optional, Sequence
from uuid import UUID

from app.jobs.errors import ConflictError, InvalidTransition, NotFound, ValidationError
from app.jobs.financials import Financials, compute_financials, tier_rate, to_money
from app.jobs.model import (
    Actor,
    ActorRole,
    CauseCode,
    ContractorTier,
    Estimate,
    HistoryEntry,
    Job,
    JobStatus,
    new_job,
    utcnow,
)
from app.jobs.repository import JobRepository
from services import metrics
from services.audit_log import AuditLogWriter, get_audit_writer, safe_log_event
from services.observability import audit_meta
from settings import settings

logger = logging.getLogger("firstclick.jobs")


_ALL = frozenset(JobStatus)
_OPEN_FOR_ADMIN = _ALL - {JobStatus.COMPLETED, JobStatus.CANCELLED}

# action -> (valid source states, target state)
JOB_TRANSITIONS: dict[str, tuple[frozenset[JobStatus], JobStatus]] = {
    "approve": (frozenset({JobStatus.SUBMITTED}), JobStatus.READY_TO_ASSIGN),
    "accept": (
        frozenset({JobStatus.SUBMITTED, JobStatus.READY_TO_ASSIGN, JobStatus.OPEN}),
        JobStatus.ASSIGNED,
    ),
    "en_route": (frozenset({JobStatus.ASSIGNED}), JobStatus.EN_ROUTE),
    "on_site": (frozenset({JobStatus.EN_ROUTE}), JobStatus.ON_SITE),
    "start": (
        frozenset({JobStatus.ASSIGNED, JobStatus.EN_ROUTE, JobStatus.ON_SITE}),
        JobStatus.IN_PROGRESS,
    ),
    "complete": (frozenset({JobStatus.IN_PROGRESS}), JobStatus.COMPLETED),
    "contractor_end": (frozenset({JobStatus.ON_SITE}), JobStatus.CANCEL_REQUESTED),
    "cancel": (_OPEN_FOR_ADMIN, JobStatus.CANCELLED),
    "relist": (frozenset({JobStatus.CANCEL_REQUESTED, JobStatus.CANCELLED}), JobStatus.OPEN),
    "reassign": (_OPEN_FOR_ADMIN, JobStatus.ASSIGNED),
}


def assert_job_transition(action: str, current: JobStatus) -> JobStatus:
    """Return the target state for action, or raise if current is not a valid source."""
    sources, target = JOB_TRANSITIONS[action]
    if current not in sources:
        metrics.increment_job_transition(action, "invalid")
        raise InvalidTransition(action=action, current_state=current, expected=sources)
    return target


def _as_uuid(job_id: Any) -> UUID:
    if isinstance(job_id, UUID):
        return job_id
    try:
        return UUID(str(job_id).strip())
    except (ValueError, AttributeError, TypeError):
        raise NotFound("job", job_id)


class LifecycleService:
    """
    Shared read-modify-write plumbing for job and payout transitions.

    Each transition loads the current row, checks its guard, then writes the
    new state conditioned on the status/payout_status/version that was read.
    A lost race surfaces as ConflictError instead of an overwrite.
    """

    metric_family = "job"

    def __init__(self, repo: JobRepository, audit: AuditLogWriter | None = None):
        self.repo = repo
        self.audit = audit or get_audit_writer()

    # ------------------------------------------------------------------
    # plumbing
    # ------------------------------------------------------------------

    def get(self, job_id: Any) -> Job:
        job = self.repo.get_job(_as_uuid(job_id))
        if job is None:
            raise NotFound("job", job_id)
        return job

    def history(self, job_id: Any) -> list[HistoryEntry]:
        job = self.get(job_id)
        return self.repo.list_history(job.id)

    def _count(self, action: str, result: str) -> None:
        if self.metric_family == "payout":
            metrics.increment_payout_transition(action, result)
        else:
            metrics.increment_job_transition(action, result)

    def _commit(
        self,
        before: Job,
        after: Job,
        *,
        action: str,
        actor: Actor,
        history_action: str,
        details: str,
        audit_action: str | None,
        reason: str | None = None,
    ) -> Job:
        now = utcnow()
        after = replace(after, updated_at=now)
        entry = HistoryEntry(
            job_id=before.id,
            action=history_action,
            actor_role=actor.role,
            actor_id=actor.id,
            details=details,
            at=now,
        )
        saved = self.repo.save_transition(
            after,
            expected_status=before.status,
            expected_payout_status=before.payout_status,
            expected_version=before.version,
            history=entry,
        )
        if not saved:
            self._count(action, "conflict")
            raise ConflictError(before.id, action)

        after = replace(after, version=before.version + 1)
        self._count(action, "ok")

        if audit_action:
            safe_log_event(
                self.audit,
                action=audit_action,
                entity_type="job",
                entity_id=before.id,
                actor=actor,
                before=before.snapshot(),
                after=after.snapshot(),
                reason=reason,
                meta=audit_meta(history_action=history_action),
            )
        return after

    def _require_assignee(self, job: Job, contractor_id: Any, action: str) -> str:
        cid = str(contractor_id).strip() if contractor_id is not None else ""
        if not cid or job.contractor_id != cid:
            self._count(action, "invalid")
            raise InvalidTransition(
                action=action,
                current_state=job.status,
                reason="contractor is not assigned to this job",
            )
        return cid


def _photo_refs(values: Optional[Iterable[Any]]) -> list[str]:
    # storage is external; only references are kept
    return [str(v) for v in (values or ()) if v is not None and str(v).strip()]


class JobService(LifecycleService):
    """Job status transitions from submission to completion or cancellation."""

    # ------------------------------------------------------------------
    # intake / admin approval
    # ------------------------------------------------------------------

    def submit(
        self,
        *,
        customer_id: str,
        service_type_id: str | None,
        estimate: Estimate | dict | None = None,
        description: str | None = None,
        city: str | None = None,
        category: str | None = None,
    ) -> Job:
        if not customer_id or not str(customer_id).strip():
            raise ValidationError("customer_id", "is required")
        if isinstance(estimate, dict):
            estimate = Estimate.from_dict(estimate)

        job = new_job(
            customer_id=str(customer_id).strip(),
            service_type_id=service_type_id,
            estimate=estimate,
            description=description,
            city=city,
            category=category,
        )
        actor = Actor(role=ActorRole.CUSTOMER, id=job.customer_id)
        entry = HistoryEntry(
            job_id=job.id,
            action="SUBMITTED",
            actor_role=actor.role,
            actor_id=actor.id,
            details=description or "Job submitted",
            at=job.created_at,
        )
        self.repo.insert_job(job, entry)
        self._count("submit", "ok")
        safe_log_event(
            self.audit,
            action="job.created",
            entity_type="job",
            entity_id=job.id,
            actor=actor,
            after=job.snapshot(),
            meta=audit_meta(),
        )
        logger.info("job submitted job_id=%s customer_id=%s", job.id, job.customer_id)
        return job

    def admin_approve(self, job_id: Any, *, admin_id: str | None = None, notes: str | None = None) -> Job:
        job = self.get(job_id)
        target = assert_job_transition("approve", job.status)
        return self._commit(
            job,
            replace(job, status=target),
            action="approve",
            actor=Actor.admin(admin_id),
            history_action="APPROVED",
            details=f"Admin approved job: {notes or 'No notes'}",
            audit_action="job.approved",
            reason=notes,
        )

    # ------------------------------------------------------------------
    # contractor flow
    # ------------------------------------------------------------------

    def accept(self, job_id: Any, *, contractor_id: str) -> Job:
        cid = str(contractor_id or "").strip()
        if not cid:
            raise ValidationError("contractor_id", "is required")

        job = self.get(job_id)
        target = assert_job_transition("accept", job.status)
        if job.contractor_id:
            self._count("accept", "invalid")
            raise InvalidTransition(
                action="accept",
                current_state=job.status,
                reason="job already has an assigned contractor",
            )

        return self._commit(
            job,
            replace(job, status=target, contractor_id=cid),
            action="accept",
            actor=Actor.contractor(cid),
            history_action="ACCEPTED",
            details="Contractor accepted job",
            audit_action="job.accepted",
        )

    def mark_en_route(self, job_id: Any, *, contractor_id: str) -> Job:
        return self._advance(job_id, contractor_id, "en_route", "EN_ROUTE", "Contractor en route")

    def mark_on_site(self, job_id: Any, *, contractor_id: str) -> Job:
        return self._advance(job_id, contractor_id, "on_site", "ON_SITE", "Contractor arrived on site")

    def _advance(self, job_id: Any, contractor_id: Any, action: str, history_action: str, details: str) -> Job:
        job = self.get(job_id)
        target = assert_job_transition(action, job.status)
        cid = self._require_assignee(job, contractor_id, action)
        return self._commit(
            job,
            replace(job, status=target),
            action=action,
            actor=Actor.contractor(cid),
            history_action=history_action,
            details=details,
            audit_action=f"job.{action}",
        )

    def start(
        self,
        job_id: Any,
        *,
        contractor_id: str,
        notes: str | None = None,
        before_photos: Sequence[Any] | None = None,
    ) -> Job:
        job = self.get(job_id)
        target = assert_job_transition("start", job.status)
        cid = self._require_assignee(job, contractor_id, "start")

        start_report = {
            "at": utcnow().isoformat(),
            "notes": notes or "",
            "before_photos": _photo_refs(before_photos),
        }
        return self._commit(
            job,
            replace(job, status=target, start_report=start_report),
            action="start",
            actor=Actor.contractor(cid),
            history_action="STARTED",
            details=notes or "Job started",
            audit_action="job.started",
        )

    def complete(
        self,
        job_id: Any,
        *,
        contractor_id: str,
        tasks: str | None = None,
        materials: str | None = None,
        material_costs: Any = None,
        notes: str | None = None,
        photos: Sequence[Any] | None = None,
        receipts: Sequence[Any] | None = None,
        final_price: Any = None,
    ) -> Job:
        job = self.get(job_id)
        target = assert_job_transition("complete", job.status)
        cid = self._require_assignee(job, contractor_id, "complete")

        tier = self._tier_snapshot(cid)
        price, source = self._resolve_final_price(job, final_price)
        financials = self._compute(price, material_costs, tier)
        if not financials.is_priced:
            logger.info("job completed without financial data job_id=%s source=%s", job.id, source)

        now = utcnow()
        completion_report = {
            "at": now.isoformat(),
            "tasks": tasks or "",
            "materials": materials or "",
            "material_costs": "" if material_costs is None else str(material_costs),
            "contractor_tier": tier.value,
            "notes": notes or "",
            "photos": _photo_refs(photos),
            "receipts": _photo_refs(receipts),
            "payment": self._payment_breakdown(financials, source),
        }
        after = _apply_financials(job, financials)
        after = replace(after, status=target, completion_report=completion_report, completed_at=now)

        return self._commit(
            job,
            after,
            action="complete",
            actor=Actor.contractor(cid),
            history_action="COMPLETED",
            details=notes or "Job completed",
            audit_action="job.completed",
        )

    def contractor_end(
        self,
        job_id: Any,
        *,
        contractor_id: str,
        cause_code: Any,
        notes: str | None = None,
        end_photo: Any = None,
    ) -> Job:
        cause = CauseCode.parse(cause_code, field_name="cause_code")

        job = self.get(job_id)
        cid = self._require_assignee(job, contractor_id, "contractor_end")
        target = assert_job_transition("contractor_end", job.status)

        cancellation = {
            "by": "contractor",
            "cause_code": cause.value,
            "notes": notes or "",
            "at": utcnow().isoformat(),
            "photo": str(end_photo) if end_photo else None,
        }
        saved = self._commit(
            job,
            replace(job, status=target, contractor_id=None, cancellation=cancellation),
            action="contractor_end",
            actor=Actor.contractor(cid),
            history_action="END_REQUESTED",
            details=f"Contractor ended job: {cause.value} - {notes or ''}".rstrip(" -"),
            audit_action="job.end_requested",
            reason=cause.value,
        )
        logger.info("contractor requested end job_id=%s contractor_id=%s cause=%s", job.id, cid, cause.value)
        return saved

    # ------------------------------------------------------------------
    # admin flow
    # ------------------------------------------------------------------

    def admin_cancel(self, job_id: Any, *, admin_id: str | None = None, notes: str | None = None) -> Job:
        job = self.get(job_id)
        target = assert_job_transition("cancel", job.status)
        cancellation = {"by": "admin", "notes": notes or "No notes", "at": utcnow().isoformat()}
        if job.cancellation and job.cancellation.get("cause_code"):
            cancellation["requested_cause_code"] = job.cancellation["cause_code"]

        return self._commit(
            job,
            replace(job, status=target, contractor_id=None, cancellation=cancellation),
            action="cancel",
            actor=Actor.admin(admin_id),
            history_action="CANCELLED",
            details=f"Admin cancelled job: {notes or 'No notes'}",
            audit_action="job.cancelled",
            reason=notes,
        )

    def admin_relist(self, job_id: Any, *, admin_id: str | None = None, notes: str | None = None) -> Job:
        job = self.get(job_id)
        target = assert_job_transition("relist", job.status)
        saved = self._commit(
            job,
            replace(
                job,
                status=target,
                contractor_id=None,
                cancellation=None,
                relist_count=job.relist_count + 1,
            ),
            action="relist",
            actor=Actor.admin(admin_id),
            history_action="RELISTED",
            details=f"Admin relisted job: {notes or 'No notes'}",
            audit_action="job.relisted",
            reason=notes,
        )
        logger.info("job relisted job_id=%s relist_count=%s", job.id, saved.relist_count)
        return saved

    def admin_reassign(
        self,
        job_id: Any,
        *,
        contractor_id: str,
        admin_id: str | None = None,
        notes: str | None = None,
    ) -> Job:
        cid = str(contractor_id or "").strip()
        if not cid:
            raise ValidationError("contractor_id", "is required")
        contractor = self.repo.get_contractor(cid)
        if contractor is None:
            raise NotFound("contractor", cid)

        job = self.get(job_id)
        target = assert_job_transition("reassign", job.status)
        return self._commit(
            job,
            replace(job, status=target, contractor_id=contractor.id),
            action="reassign",
            actor=Actor.admin(admin_id),
            history_action="REASSIGNED",
            details=f"Admin reassigned job to {contractor.name or contractor.id}: {notes or 'No notes'}",
            audit_action="job.reassigned",
            reason=notes,
        )

    # ------------------------------------------------------------------
    # financial corrections on completed jobs
    # ------------------------------------------------------------------

    def update_materials(
        self,
        job_id: Any,
        *,
        contractor_id: str,
        material_costs: Any,
        receipts: Sequence[Any] | None,
    ) -> Job:
        job = self.get(job_id)
        cid = self._require_assignee(job, contractor_id, "update_materials")
        self._require_correctable(job, "update_materials")

        receipt_refs = _photo_refs(receipts)
        if not receipt_refs:
            raise ValidationError("receipts", "receipts are required to update materials cost")
        cost = to_money(material_costs)
        if cost is None or cost < 0:
            raise ValidationError("material_costs", "invalid material cost")

        price = job.final_price
        source = "completion"
        if price is None:
            price, source = self._resolve_final_price(job, None)
        financials = self._compute(price, cost, self._correction_tier(job))

        report = dict(job.completion_report or {})
        report.update(
            {
                "material_costs": str(material_costs),
                "receipts": receipt_refs,
                "payment": self._payment_breakdown(financials, source),
            }
        )
        after = replace(_apply_financials(job, financials), completion_report=report)
        return self._commit(
            job,
            after,
            action="update_materials",
            actor=Actor.contractor(cid),
            history_action="MATERIALS_UPDATED",
            details=f"Material costs updated to {financials.material_fees}",
            audit_action="job.materials_updated",
        )

    def admin_reprice(
        self,
        job_id: Any,
        *,
        final_price: Any,
        admin_id: str | None = None,
        notes: str | None = None,
    ) -> Job:
        price = to_money(final_price)
        if price is None:
            raise ValidationError("final_price", "is required")

        job = self.get(job_id)
        self._require_correctable(job, "reprice")
        materials = job.material_fees
        if materials is None:
            materials = (job.completion_report or {}).get("material_costs")
        financials = self._compute(price, materials, self._correction_tier(job))

        report = dict(job.completion_report or {})
        report["payment"] = self._payment_breakdown(financials, "admin")
        after = replace(_apply_financials(job, financials), completion_report=report)
        return self._commit(
            job,
            after,
            action="reprice",
            actor=Actor.admin(admin_id),
            history_action="REPRICED",
            details=f"Admin set final price to {financials.final_price}: {notes or 'No notes'}",
            audit_action="job.repriced",
            reason=notes,
        )

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _require_correctable(self, job: Job, action: str) -> None:
        if job.status != JobStatus.COMPLETED:
            self._count(action, "invalid")
            raise InvalidTransition(action=action, current_state=job.status, expected=[JobStatus.COMPLETED])
        if job.payout_status.value in {"processing", "paid"}:
            self._count(action, "invalid")
            raise InvalidTransition(
                action=action,
                current_state=job.status,
                reason=f"payout is already {job.payout_status.value}",
            )

    @staticmethod
    def _correction_tier(job: Job) -> ContractorTier:
        # unpriced completions keep the snapshot in the report only
        if job.contractor_tier is not None:
            return job.contractor_tier
        return ContractorTier.coerce((job.completion_report or {}).get("contractor_tier"))

    def _tier_snapshot(self, contractor_id: str) -> ContractorTier:
        contractor = self.repo.get_contractor(contractor_id)
        if contractor is None:
            logger.warning("unable to resolve contractor tier contractor_id=%s; defaulting to bronze", contractor_id)
            return ContractorTier.BRONZE
        return contractor.tier

    @staticmethod
    def _resolve_final_price(job: Job, explicit: Any) -> tuple[Any, str]:
        if to_money(explicit) is not None:
            return explicit, "completion"
        if job.estimate is not None:
            return job.estimate.final_price, "estimate"
        return None, "none"

    @staticmethod
    def _compute(price: Any, materials: Any, tier: Any) -> Financials:
        return compute_financials(
            price,
            materials,
            tier,
            processing_percent=settings.PROCESSING_FEE_PERCENT,
            processing_fixed=settings.PROCESSING_FEE_FIXED,
        )

    @staticmethod
    def _payment_breakdown(financials: Financials, source: str) -> dict[str, Any]:
        rate = tier_rate(financials.contractor_tier) if financials.is_priced else None
        return {
            "amount": financials.contractor_payout,
            "currency": settings.CURRENCY,
            "source": source,
            **financials.to_dict(),
            "company_share": rate,
            "contractor_share": None if rate is None else 1 - rate,
            "issued_at": utcnow().isoformat(),
        }


def _apply_financials(job: Job, financials: Financials) -> Job:
    return replace(
        job,
        final_price=financials.final_price,
        material_fees=financials.material_fees,
        contractor_tier=financials.contractor_tier,
        net_amount=financials.net_amount,
        processing_fee=financials.processing_fee,
        platform_fee=financials.platform_fee,
        contractor_payout=financials.contractor_payout,
        net_platform_revenue=financials.net_platform_revenue,
    )
