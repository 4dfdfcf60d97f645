# tests/conftest.py

from __future__ import annotations

import threading
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional
from uuid import UUID

import pytest
from fastapi.testclient import TestClient

from app.jobs.model import (
    Contractor,
    ContractorPayment,
    ContractorTier,
    HistoryEntry,
    Job,
    JobStatus,
    PaymentSchedule,
    PayoutStatus,
)
from app.jobs.payouts import PayoutService
from app.jobs.state_machine import JobService
from deps.services import get_audit, get_job_repository
from main import create_app
from services import metrics
from services.audit_log import AuditLogWriter


class InMemoryJobRepository:
    """JobRepository with the same guard semantics as the Postgres one."""

    def __init__(self):
        self._lock = threading.Lock()
        self.jobs: Dict[UUID, Job] = {}
        self.history: Dict[UUID, List[HistoryEntry]] = {}
        self.contractors: Dict[str, Contractor] = {}
        self.payments: List[ContractorPayment] = []
        # set to make the next save_transition lose a race
        self.fail_next_save = False

    def add_contractor(self, contractor: Contractor) -> Contractor:
        self.contractors[contractor.id] = contractor
        return contractor

    def put_job(self, job: Job) -> Job:
        """Seed a job directly, bypassing the lifecycle."""
        with self._lock:
            self.jobs[job.id] = job
            self.history.setdefault(job.id, [])
        return job

    def get_job(self, job_id: UUID) -> Optional[Job]:
        return self.jobs.get(job_id)

    def insert_job(self, job: Job, history: HistoryEntry) -> None:
        with self._lock:
            self.jobs[job.id] = job
            self.history[job.id] = [history]

    def save_transition(
        self,
        job: Job,
        *,
        expected_status: JobStatus,
        expected_payout_status: PayoutStatus,
        expected_version: int,
        history: HistoryEntry,
    ) -> bool:
        with self._lock:
            if self.fail_next_save:
                self.fail_next_save = False
                return False
            current = self.jobs.get(job.id)
            if (
                current is None
                or current.status != expected_status
                or current.payout_status != expected_payout_status
                or current.version != expected_version
            ):
                return False
            self.jobs[job.id] = replace(job, version=current.version + 1)
            self.history.setdefault(job.id, []).append(history)
            return True

    def list_history(self, job_id: UUID) -> List[HistoryEntry]:
        return list(self.history.get(job_id, []))

    def list_jobs(
        self,
        *,
        statuses: Optional[Iterable[JobStatus]] = None,
        payout_statuses: Optional[Iterable[PayoutStatus]] = None,
        payment_status: Optional[str] = None,
        contractor_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Job]:
        statuses = set(statuses or ())
        payout_statuses = set(payout_statuses or ())
        out = [
            j
            for j in self.jobs.values()
            if (not statuses or j.status in statuses)
            and (not payout_statuses or j.payout_status in payout_statuses)
            and (not payment_status or j.payment_status.value == payment_status)
            and (not contractor_id or j.contractor_id == contractor_id)
        ]
        out.sort(key=lambda j: j.completed_at or j.updated_at, reverse=True)
        return out[:limit] if limit else out

    def get_contractor(self, contractor_id: str) -> Optional[Contractor]:
        return self.contractors.get(contractor_id)

    def list_contractors(self) -> List[Contractor]:
        return sorted(self.contractors.values(), key=lambda c: c.name or c.id)

    def set_payment_schedule(self, contractor_id: str, schedule: PaymentSchedule) -> Optional[Contractor]:
        current = self.contractors.get(contractor_id)
        if current is None:
            return None
        self.contractors[contractor_id] = replace(current, payment_schedule=schedule)
        return self.contractors[contractor_id]

    def insert_contractor_payment(self, payment: ContractorPayment) -> None:
        self.payments.append(payment)

    def list_contractor_payments(self, contractor_id: str) -> List[ContractorPayment]:
        rows = [p for p in self.payments if p.contractor_id == contractor_id]
        return sorted(rows, key=lambda p: p.initiated_at, reverse=True)


# ---------------------------
# Core fixtures
# ---------------------------

@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
def repo() -> InMemoryJobRepository:
    r = InMemoryJobRepository()
    r.add_contractor(Contractor(id="c-gold", name="Gold Plumbing", tier=ContractorTier.GOLD))
    r.add_contractor(
        Contractor(
            id="c-bronze",
            name="Bronze Handyman",
            tier=ContractorTier.BRONZE,
            payment_schedule=PaymentSchedule.PER_JOB,
        )
    )
    r.add_contractor(
        Contractor(
            id="c-silver",
            name="Silver Electric",
            tier=ContractorTier.SILVER,
            payment_schedule=PaymentSchedule.MONTHLY,
        )
    )
    return r


@pytest.fixture
def audit(tmp_path) -> AuditLogWriter:
    return AuditLogWriter(tmp_path / "audit" / "audit.jsonl")


@pytest.fixture
def jobs(repo, audit) -> JobService:
    return JobService(repo, audit)


@pytest.fixture
def payouts(repo, audit) -> PayoutService:
    return PayoutService(repo, audit)


@pytest.fixture
def fixed_estimate() -> dict:
    return {"mode": "fixed_range", "min": "400", "max": "450", "multiplier": "1.0"}


@pytest.fixture
def submitted_job(jobs, fixed_estimate) -> Job:
    return jobs.submit(
        customer_id="cust-1",
        service_type_id="plumbing.leak",
        estimate=fixed_estimate,
        description="Kitchen sink leak",
        city="Toronto",
        category="plumbing",
    )


@pytest.fixture
def in_progress_job(jobs, submitted_job) -> Callable[..., Job]:
    def _make(contractor_id: str = "c-gold", job: Job | None = None) -> Job:
        job = job or submitted_job
        jobs.admin_approve(job.id, admin_id="admin-1")
        jobs.accept(job.id, contractor_id=contractor_id)
        return jobs.start(job.id, contractor_id=contractor_id, notes="on it")

    return _make


@pytest.fixture
def completed_job(jobs, fixed_estimate) -> Callable[..., Job]:
    """Factory: a fresh job walked all the way to completed."""

    def _make(
        contractor_id: str = "c-gold",
        *,
        final_price: Optional[str] = "450.00",
        material_costs: Optional[str] = "85.00",
        estimate: Optional[dict] = None,
    ) -> Job:
        job = jobs.submit(
            customer_id="cust-1",
            service_type_id="plumbing.leak",
            estimate=estimate if estimate is not None else fixed_estimate,
            city="Toronto",
            category="plumbing",
        )
        jobs.admin_approve(job.id, admin_id="admin-1")
        jobs.accept(job.id, contractor_id=contractor_id)
        jobs.start(job.id, contractor_id=contractor_id)
        return jobs.complete(
            job.id,
            contractor_id=contractor_id,
            tasks="Replaced trap",
            material_costs=material_costs,
            receipts=["receipt-1.jpg"],
            final_price=final_price,
        )

    return _make


@pytest.fixture
def ready_job(completed_job, payouts) -> Callable[..., Job]:
    def _make(contractor_id: str = "c-gold", **kwargs) -> Job:
        job = completed_job(contractor_id, **kwargs)
        return payouts.record_payment(job.id, "paid")

    return _make


# ---------------------------
# Client + header helpers
# ---------------------------

@pytest.fixture
def client(repo, audit) -> TestClient:
    app = create_app()
    app.dependency_overrides[get_job_repository] = lambda: repo
    app.dependency_overrides[get_audit] = lambda: audit
    # so tests can assert 500s instead of pytest re-raising server exceptions
    return TestClient(app, raise_server_exceptions=False)


def admin_headers(admin_id: str = "admin-1") -> Dict[str, str]:
    return {"X-Actor-Role": "admin", "X-Actor-Id": admin_id}


def contractor_headers(contractor_id: str) -> Dict[str, str]:
    return {"X-Actor-Role": "contractor", "X-Actor-Id": contractor_id}


def customer_headers(customer_id: str = "cust-1") -> Dict[str, str]:
    return {"X-Actor-Role": "customer", "X-Actor-Id": customer_id}


