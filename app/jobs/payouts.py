# app/jobs/payouts.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Optional, Sequence
from uuid import UUID, uuid4

from app.jobs.errors import (
    ConflictError,
    InvalidTransition,
    NotFound,
    PricingUnavailable,
    ValidationError,
)
from app.jobs.financials import ZERO, round_money, to_money
from app.jobs.model import (
    Actor,
    Contractor,
    ContractorPayment,
    Job,
    JobStatus,
    PaymentSchedule,
    PaymentStatus,
    PayoutStatus,
    utcnow,
)
from app.jobs.repository import coerce_job_ids
from app.jobs.state_machine import LifecycleService
from services import metrics
from services.audit_log import safe_log_event
from services.observability import audit_meta
from settings import settings

logger = logging.getLogger("firstclick.payouts")


ALLOWED: dict[PayoutStatus, set[PayoutStatus]] = {
    PayoutStatus.NOT_READY: {PayoutStatus.READY},
    PayoutStatus.READY: {PayoutStatus.PROCESSING, PayoutStatus.PAID},
    PayoutStatus.PROCESSING: {PayoutStatus.PAID},
    PayoutStatus.PAID: set(),
}


def assert_payout_transition(action: str, old: PayoutStatus, new: PayoutStatus) -> None:
    if new not in ALLOWED.get(old, set()):
        metrics.increment_payout_transition(action, "invalid")
        sources = [s for s, targets in ALLOWED.items() if new in targets]
        raise InvalidTransition(
            action=action,
            current_state=old,
            expected=sources,
            reason=f"payout cannot move {old.value} -> {new.value}",
        )


@dataclass
class BatchResult:
    batch_id: UUID
    job_ids: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)
    payment: Optional[ContractorPayment] = None

    @property
    def count(self) -> int:
        return len(self.job_ids)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "batch_id": str(self.batch_id),
            "job_ids": list(self.job_ids),
            "skipped": dict(self.skipped),
            "count": self.count,
        }
        if self.payment is not None:
            out["payment"] = self.payment.to_dict()
        return out


class PayoutService(LifecycleService):
    """
    Contractor payout lifecycle: not_ready -> ready -> processing -> paid.

    Batch and single-contractor payouts treat each job independently; a job
    that cannot be paid is reported in `skipped` and never fails the call.
    """

    metric_family = "payout"

    def mark_ready(self, job_id: Any, *, actor: Actor | None = None) -> Job:
        job = self.get(job_id)
        if job.payout_status == PayoutStatus.READY:
            return job

        if job.status != JobStatus.COMPLETED:
            self._count("mark_ready", "invalid")
            raise InvalidTransition(
                action="mark_ready",
                current_state=job.status,
                expected=[JobStatus.COMPLETED],
                reason="job is not completed",
            )
        assert_payout_transition("mark_ready", job.payout_status, PayoutStatus.READY)
        if job.payment_status != PaymentStatus.PAID:
            self._count("mark_ready", "invalid")
            raise InvalidTransition(
                action="mark_ready",
                current_state=job.status,
                reason=f"customer payment is {job.payment_status.value}",
            )
        if not job.has_financials:
            self._count("mark_ready", "unpriced")
            raise PricingUnavailable(job.id)

        return self._commit(
            job,
            replace(job, payout_status=PayoutStatus.READY),
            action="mark_ready",
            actor=actor or Actor.system(),
            history_action="PAYOUT_READY",
            details=f"Payout of {job.contractor_payout} ready",
            audit_action="payout.marked_ready",
        )

    def mark_processing(self, job_id: Any, *, actor: Actor | None = None) -> Job:
        job = self.get(job_id)
        assert_payout_transition("mark_processing", job.payout_status, PayoutStatus.PROCESSING)
        return self._commit(
            job,
            replace(job, payout_status=PayoutStatus.PROCESSING),
            action="mark_processing",
            actor=actor or Actor.system(),
            history_action="PAYOUT_PROCESSING",
            details="Payout processing started",
            audit_action="payout.processing_started",
        )

    def force_status(
        self,
        job_id: Any,
        payout_status: Any,
        *,
        reason: str | None,
        admin_id: str | None = None,
    ) -> Job:
        """Admin override; skips the transition table but keeps history and audit."""
        target = PayoutStatus.parse(payout_status, field_name="payout_status")
        if not reason or not str(reason).strip():
            raise ValidationError("reason", "is required when overriding payout status")

        job = self.get(job_id)
        saved = self._commit(
            job,
            replace(job, payout_status=target),
            action="force_status",
            actor=Actor.admin(admin_id),
            history_action="PAYOUT_FORCED",
            details=f"Payout status set to {target.value} by admin: {reason}",
            audit_action="payout.status_forced",
            reason=reason,
        )
        logger.warning(
            "payout status forced job_id=%s from=%s to=%s admin_id=%s",
            job.id,
            job.payout_status.value,
            target.value,
            admin_id,
        )
        return saved

    def record_payment(self, job_id: Any, payment_status: Any, *, actor: Actor | None = None) -> Job:
        status = PaymentStatus.parse(payment_status, field_name="payment_status")
        job = self.get(job_id)
        if job.status != JobStatus.COMPLETED:
            self._count("record_payment", "invalid")
            raise InvalidTransition(
                action="record_payment",
                current_state=job.status,
                expected=[JobStatus.COMPLETED],
            )

        if job.payment_status != status:
            job = self._commit(
                job,
                replace(job, payment_status=status),
                action="record_payment",
                actor=actor or Actor.system(),
                history_action="PAYMENT_RECORDED",
                details=f"Customer payment {status.value}",
                audit_action="payment.recorded",
            )

        if status == PaymentStatus.PAID and job.payout_status == PayoutStatus.NOT_READY:
            try:
                job = self.mark_ready(job.id, actor=actor)
            except PricingUnavailable:
                logger.warning("payment received but job has no financials job_id=%s", job.id)
        return job

    # ------------------------------------------------------------------
    # paying out
    # ------------------------------------------------------------------

    def batch_process(self, job_ids: Sequence[Any], *, actor: Actor | None = None) -> BatchResult:
        actor = actor or Actor.system()
        result = BatchResult(batch_id=uuid4())
        paid = self._pay_each(job_ids, actor=actor, result=result, contractor_id=None)

        metrics.increment_payout_batch_jobs("paid", result.count)
        metrics.increment_payout_batch_jobs("skipped", len(result.skipped))
        safe_log_event(
            self.audit,
            action="payout.paid",
            entity_type="batch",
            entity_id=result.batch_id,
            actor=actor,
            after={"job_ids": result.job_ids, "count": result.count},
            meta=audit_meta(skipped=result.skipped or None, total=_sum_payouts(paid)),
        )
        logger.info(
            "payout batch processed batch_id=%s paid=%s skipped=%s",
            result.batch_id,
            result.count,
            len(result.skipped),
        )
        return result

    def process_single(
        self,
        contractor_id: str,
        job_ids: Sequence[Any],
        *,
        amount: Any = None,
        payment_method: str = "bank_transfer",
        actor: Actor | None = None,
    ) -> BatchResult:
        cid = str(contractor_id or "").strip()
        if not cid:
            raise ValidationError("contractor_id", "is required")
        contractor = self.repo.get_contractor(cid)
        if contractor is None:
            raise NotFound("contractor", cid)

        explicit_amount = None
        if amount is not None:
            explicit_amount = to_money(amount)
            if explicit_amount is None or explicit_amount < ZERO:
                raise ValidationError("amount", "must be a non-negative amount")

        actor = actor or Actor.system()
        result = BatchResult(batch_id=uuid4())
        paid = self._pay_each(job_ids, actor=actor, result=result, contractor_id=cid)

        metrics.increment_payout_batch_jobs("paid", result.count)
        metrics.increment_payout_batch_jobs("skipped", len(result.skipped))
        if not paid:
            logger.info("single payout paid nothing contractor_id=%s skipped=%s", cid, len(result.skipped))
            return result

        payment = ContractorPayment(
            id=result.batch_id,
            contractor_id=cid,
            amount=round_money(explicit_amount) if explicit_amount is not None else _sum_payouts(paid),
            job_ids=tuple(result.job_ids),
            payment_schedule=contractor.payment_schedule,
            payment_method=(payment_method or "bank_transfer").strip(),
            status="paid",
            initiated_at=utcnow(),
        )
        self.repo.insert_contractor_payment(payment)
        result.payment = payment

        safe_log_event(
            self.audit,
            action="payout.paid",
            entity_type="contractor",
            entity_id=cid,
            actor=actor,
            after=payment.to_dict(),
            meta=audit_meta(skipped=result.skipped or None),
        )
        logger.info(
            "contractor payout recorded contractor_id=%s payment_id=%s amount=%s jobs=%s",
            cid,
            payment.id,
            payment.amount,
            result.count,
        )
        return result

    def update_payment_schedule(
        self,
        contractor_id: str,
        payment_schedule: Any,
        *,
        admin_id: str | None = None,
    ) -> Contractor:
        schedule = PaymentSchedule.parse(payment_schedule, field_name="payment_schedule")
        cid = str(contractor_id or "").strip()
        before = self.repo.get_contractor(cid) if cid else None
        if before is None:
            raise NotFound("contractor", cid)

        updated = self.repo.set_payment_schedule(cid, schedule)
        if updated is None:
            raise NotFound("contractor", cid)

        safe_log_event(
            self.audit,
            action="contractor.payment_schedule_updated",
            entity_type="contractor",
            entity_id=cid,
            actor=Actor.admin(admin_id),
            before={"payment_schedule": before.payment_schedule.value},
            after={"payment_schedule": updated.payment_schedule.value},
            meta=audit_meta(),
        )
        logger.info(
            "payment schedule updated contractor_id=%s from=%s to=%s",
            cid,
            before.payment_schedule.value,
            updated.payment_schedule.value,
        )
        return updated

    def payment_history(self, contractor_id: str) -> list[ContractorPayment]:
        return self.repo.list_contractor_payments(str(contractor_id))

    def ready_candidates(self, *, limit: int | None = None) -> list[Job]:
        """Completed, paid jobs whose payout has not been marked ready yet."""
        return self.repo.list_jobs(
            statuses=[JobStatus.COMPLETED],
            payout_statuses=[PayoutStatus.NOT_READY],
            payment_status=PaymentStatus.PAID.value,
            limit=limit,
        )

    def _pay_each(
        self,
        job_ids: Sequence[Any],
        *,
        actor: Actor,
        result: BatchResult,
        contractor_id: str | None,
    ) -> list[Job]:
        if not job_ids:
            raise ValidationError("job_ids", "at least one job id is required")
        # de-duplicate, first occurrence wins
        unique = list(dict.fromkeys(str(j).strip() for j in job_ids))
        if len(unique) > settings.BATCH_MAX_JOBS:
            raise ValidationError("job_ids", f"at most {settings.BATCH_MAX_JOBS} jobs per batch")

        paid: list[Job] = []
        for raw, uid in coerce_job_ids(unique):
            job = self.repo.get_job(uid) if uid is not None else None
            if job is None:
                result.skipped[raw] = "not found"
                continue
            if job.payout_status not in (PayoutStatus.READY, PayoutStatus.PROCESSING):
                result.skipped[raw] = f"payout status is {job.payout_status.value}"
                continue
            if contractor_id is not None and job.contractor_id != contractor_id:
                result.skipped[raw] = "job is not assigned to this contractor"
                continue

            try:
                saved = self._commit(
                    job,
                    replace(job, payout_status=PayoutStatus.PAID),
                    action="pay",
                    actor=actor,
                    history_action="PAYOUT_PAID",
                    details=f"Paid out in {result.batch_id}",
                    audit_action=None,
                )
            except ConflictError:
                result.skipped[raw] = "conflict"
                continue

            paid.append(saved)
            result.job_ids.append(raw)
        return paid


def _sum_payouts(jobs: Sequence[Job]) -> Decimal:
    return round_money(sum((j.contractor_payout or ZERO for j in jobs), ZERO))
