# app/jobs/repository.py
from __future__ import annotations

import json
from typing import Any, Iterable, Optional, Protocol, Sequence
from uuid import UUID

from psycopg2.extras import Json, RealDictCursor

from db import get_conn
from app.jobs.model import (
    Contractor,
    ContractorPayment,
    ContractorTier,
    Estimate,
    HistoryEntry,
    Job,
    JobStatus,
    PaymentSchedule,
    PayoutStatus,
)
from settings import settings


class JobRepository(Protocol):
    """
    Persistence seam for the lifecycle engine.

    save_transition is the only write path for an existing job: it must apply
    the new state only if the stored row still matches the expected
    status/payout_status/version, and append the history entry in the same
    transaction. It returns False when the guard did not match.
    """

    def get_job(self, job_id: UUID) -> Optional[Job]: ...

    def insert_job(self, job: Job, history: HistoryEntry) -> None: ...

    def save_transition(
        self,
        job: Job,
        *,
        expected_status: JobStatus,
        expected_payout_status: PayoutStatus,
        expected_version: int,
        history: HistoryEntry,
    ) -> bool: ...

    def list_history(self, job_id: UUID) -> list[HistoryEntry]: ...

    def list_jobs(
        self,
        *,
        statuses: Optional[Iterable[JobStatus]] = None,
        payout_statuses: Optional[Iterable[PayoutStatus]] = None,
        payment_status: Optional[str] = None,
        contractor_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Job]: ...

    def get_contractor(self, contractor_id: str) -> Optional[Contractor]: ...

    def list_contractors(self) -> list[Contractor]: ...

    def set_payment_schedule(self, contractor_id: str, schedule: PaymentSchedule) -> Optional[Contractor]: ...

    def insert_contractor_payment(self, payment: ContractorPayment) -> None: ...

    def list_contractor_payments(self, contractor_id: str) -> list[ContractorPayment]: ...


# ==========================================================
# PostgreSQL implementation
# ==========================================================

_JOB_COLUMNS = """
    id, customer_id, service_type_id, status, contractor_id, description, city, category,
    estimate, final_price, material_fees, contractor_tier, net_amount, processing_fee,
    platform_fee, contractor_payout, net_platform_revenue, payment_status, payout_status,
    start_report, completion_report, cancellation, relist_count, version,
    created_at, updated_at, completed_at
"""


def _json_or_none(value: Any):
    return Json(value, dumps=_dumps) if value is not None else None


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str)


def _row_to_job(row: dict[str, Any]) -> Job:
    return Job(
        id=row["id"],
        customer_id=str(row["customer_id"]),
        service_type_id=row.get("service_type_id"),
        status=row["status"],
        contractor_id=row.get("contractor_id"),
        description=row.get("description"),
        city=row.get("city"),
        category=row.get("category"),
        estimate=Estimate.from_dict(row.get("estimate")),
        final_price=row.get("final_price"),
        material_fees=row.get("material_fees"),
        contractor_tier=row.get("contractor_tier"),
        net_amount=row.get("net_amount"),
        processing_fee=row.get("processing_fee"),
        platform_fee=row.get("platform_fee"),
        contractor_payout=row.get("contractor_payout"),
        net_platform_revenue=row.get("net_platform_revenue"),
        payment_status=row.get("payment_status") or "unpaid",
        payout_status=row.get("payout_status") or "not_ready",
        start_report=row.get("start_report"),
        completion_report=row.get("completion_report"),
        cancellation=row.get("cancellation"),
        relist_count=int(row.get("relist_count") or 0),
        version=int(row.get("version") or 0),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        completed_at=row.get("completed_at"),
    )


def _job_params(job: Job) -> dict[str, Any]:
    return {
        "id": job.id,
        "customer_id": job.customer_id,
        "service_type_id": job.service_type_id,
        "status": job.status.value,
        "contractor_id": job.contractor_id,
        "description": job.description,
        "city": job.city,
        "category": job.category,
        "estimate": _json_or_none(job.estimate.to_dict() if job.estimate else None),
        "final_price": job.final_price,
        "material_fees": job.material_fees,
        "contractor_tier": job.contractor_tier.value if job.contractor_tier else None,
        "net_amount": job.net_amount,
        "processing_fee": job.processing_fee,
        "platform_fee": job.platform_fee,
        "contractor_payout": job.contractor_payout,
        "net_platform_revenue": job.net_platform_revenue,
        "payment_status": job.payment_status.value,
        "payout_status": job.payout_status.value,
        "start_report": _json_or_none(job.start_report),
        "completion_report": _json_or_none(job.completion_report),
        "cancellation": _json_or_none(job.cancellation),
        "relist_count": job.relist_count,
        "updated_at": job.updated_at,
        "completed_at": job.completed_at,
    }


def _insert_history(cur, entry: HistoryEntry) -> None:
    cur.execute(
        """
        INSERT INTO app.job_history (job_id, at, actor_role, actor_id, action, details)
        VALUES (%s, %s, %s, %s, %s, %s)
        """,
        (entry.job_id, entry.at, entry.actor_role.value, entry.actor_id, entry.action, entry.details),
    )


class PostgresJobRepository:
    def __init__(self, conn_factory=get_conn):
        self._conn = conn_factory

    def get_job(self, job_id: UUID) -> Optional[Job]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(f"SELECT {_JOB_COLUMNS} FROM app.jobs WHERE id = %s", (job_id,))
                row = cur.fetchone()
        return _row_to_job(dict(row)) if row else None

    def insert_job(self, job: Job, history: HistoryEntry) -> None:
        params = _job_params(job)
        params["created_at"] = job.created_at
        params["version"] = job.version
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO app.jobs (
                      id, customer_id, service_type_id, status, contractor_id, description, city,
                      category, estimate, final_price, material_fees, contractor_tier, net_amount,
                      processing_fee, platform_fee, contractor_payout, net_platform_revenue,
                      payment_status, payout_status, start_report, completion_report, cancellation,
                      relist_count, version, created_at, updated_at, completed_at
                    )
                    VALUES (
                      %(id)s, %(customer_id)s, %(service_type_id)s, %(status)s, %(contractor_id)s,
                      %(description)s, %(city)s, %(category)s, %(estimate)s::jsonb, %(final_price)s,
                      %(material_fees)s, %(contractor_tier)s, %(net_amount)s, %(processing_fee)s,
                      %(platform_fee)s, %(contractor_payout)s, %(net_platform_revenue)s,
                      %(payment_status)s, %(payout_status)s, %(start_report)s::jsonb,
                      %(completion_report)s::jsonb, %(cancellation)s::jsonb, %(relist_count)s,
                      %(version)s, %(created_at)s, %(updated_at)s, %(completed_at)s
                    )
                    """,
                    params,
                )
                _insert_history(cur, history)

    def save_transition(
        self,
        job: Job,
        *,
        expected_status: JobStatus,
        expected_payout_status: PayoutStatus,
        expected_version: int,
        history: HistoryEntry,
    ) -> bool:
        params = _job_params(job)
        params.update(
            {
                "expected_status": expected_status.value,
                "expected_payout_status": expected_payout_status.value,
                "expected_version": expected_version,
            }
        )
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE app.jobs
                    SET
                      status = %(status)s,
                      contractor_id = %(contractor_id)s,
                      final_price = %(final_price)s,
                      material_fees = %(material_fees)s,
                      contractor_tier = %(contractor_tier)s,
                      net_amount = %(net_amount)s,
                      processing_fee = %(processing_fee)s,
                      platform_fee = %(platform_fee)s,
                      contractor_payout = %(contractor_payout)s,
                      net_platform_revenue = %(net_platform_revenue)s,
                      payment_status = %(payment_status)s,
                      payout_status = %(payout_status)s,
                      start_report = %(start_report)s::jsonb,
                      completion_report = %(completion_report)s::jsonb,
                      cancellation = %(cancellation)s::jsonb,
                      relist_count = %(relist_count)s,
                      completed_at = %(completed_at)s,
                      updated_at = %(updated_at)s,
                      version = version + 1
                    WHERE id = %(id)s
                      AND status = %(expected_status)s
                      AND payout_status = %(expected_payout_status)s
                      AND version = %(expected_version)s
                    """,
                    params,
                )
                if cur.rowcount != 1:
                    return False
                _insert_history(cur, history)
        return True

    def list_history(self, job_id: UUID) -> list[HistoryEntry]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT job_id, at, actor_role, actor_id, action, details
                    FROM app.job_history
                    WHERE job_id = %s
                    ORDER BY seq ASC
                    """,
                    (job_id,),
                )
                rows = cur.fetchall() or []
        return [
            HistoryEntry(
                job_id=r["job_id"],
                at=r["at"],
                actor_role=r["actor_role"],
                actor_id=r.get("actor_id"),
                action=r["action"],
                details=r.get("details") or "",
            )
            for r in rows
        ]

    def list_jobs(
        self,
        *,
        statuses: Optional[Iterable[JobStatus]] = None,
        payout_statuses: Optional[Iterable[PayoutStatus]] = None,
        payment_status: Optional[str] = None,
        contractor_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Job]:
        where = []
        params: list[Any] = []

        if statuses:
            where.append("status = ANY(%s)")
            params.append([s.value for s in statuses])
        if payout_statuses:
            where.append("payout_status = ANY(%s)")
            params.append([s.value for s in payout_statuses])
        if payment_status:
            where.append("payment_status = %s")
            params.append(payment_status)
        if contractor_id:
            where.append("contractor_id = %s")
            params.append(contractor_id)

        where_sql = ("WHERE " + " AND ".join(where)) if where else ""
        limit_sql = ""
        if limit:
            limit_sql = "LIMIT %s"
            params.append(int(limit))

        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""
                    SELECT {_JOB_COLUMNS}
                    FROM app.jobs
                    {where_sql}
                    ORDER BY COALESCE(completed_at, updated_at) DESC
                    {limit_sql}
                    """,
                    params,
                )
                rows = cur.fetchall() or []
        return [_row_to_job(dict(r)) for r in rows]

    def get_contractor(self, contractor_id: str) -> Optional[Contractor]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT id, COALESCE(business_name, legal_name) AS name, contractor_tier, payment_schedule
                    FROM app.contractors
                    WHERE id = %s
                    """,
                    (contractor_id,),
                )
                row = cur.fetchone()
        return _row_to_contractor(dict(row)) if row else None

    def list_contractors(self) -> list[Contractor]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT id, COALESCE(business_name, legal_name) AS name, contractor_tier, payment_schedule
                    FROM app.contractors
                    ORDER BY name
                    """
                )
                rows = cur.fetchall() or []
        return [_row_to_contractor(dict(r)) for r in rows]

    def set_payment_schedule(self, contractor_id: str, schedule: PaymentSchedule) -> Optional[Contractor]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    UPDATE app.contractors
                    SET payment_schedule = %s
                    WHERE id = %s
                    RETURNING id, COALESCE(business_name, legal_name) AS name, contractor_tier, payment_schedule
                    """,
                    (schedule.value, contractor_id),
                )
                row = cur.fetchone()
        return _row_to_contractor(dict(row)) if row else None

    def insert_contractor_payment(self, payment: ContractorPayment) -> None:
        with self._conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO app.contractor_payments (
                      id, contractor_id, amount, job_ids, payment_schedule,
                      payment_method, status, initiated_at
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        payment.id,
                        payment.contractor_id,
                        payment.amount,
                        list(payment.job_ids),
                        payment.payment_schedule.value,
                        payment.payment_method,
                        payment.status,
                        payment.initiated_at,
                    ),
                )

    def list_contractor_payments(self, contractor_id: str) -> list[ContractorPayment]:
        with self._conn() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    """
                    SELECT id, contractor_id, amount, job_ids, payment_schedule,
                           payment_method, status, initiated_at
                    FROM app.contractor_payments
                    WHERE contractor_id = %s
                    ORDER BY initiated_at DESC
                    """,
                    (contractor_id,),
                )
                rows = cur.fetchall() or []
        return [
            ContractorPayment(
                id=r["id"],
                contractor_id=r["contractor_id"],
                amount=r["amount"],
                job_ids=tuple(r.get("job_ids") or ()),
                payment_schedule=PaymentSchedule.parse(r["payment_schedule"]),
                payment_method=r["payment_method"],
                status=r["status"],
                initiated_at=r["initiated_at"],
            )
            for r in rows
        ]


def _row_to_contractor(row: dict[str, Any]) -> Contractor:
    schedule = row.get("payment_schedule") or settings.DEFAULT_PAYMENT_SCHEDULE
    return Contractor(
        id=str(row["id"]),
        name=row.get("name"),
        tier=ContractorTier.coerce(row.get("contractor_tier")),
        payment_schedule=PaymentSchedule.parse(schedule),
    )


def coerce_job_ids(values: Sequence[Any]) -> list[tuple[str, Optional[UUID]]]:
    """Pair each raw id with its UUID form (None when it cannot be one)."""
    out: list[tuple[str, Optional[UUID]]] = []
    for raw in values:
        try:
            out.append((str(raw), raw if isinstance(raw, UUID) else UUID(str(raw).strip())))
        except (ValueError, AttributeError, TypeError):
            out.append((str(raw), None))
    return out
