# deps/services.py
from functools import lru_cache

from fastapi import Depends

from app.jobs.payouts import PayoutService
from app.jobs.repository import JobRepository, PostgresJobRepository
from app.jobs.state_machine import JobService
from services.audit_log import AuditLogWriter, get_audit_writer


@lru_cache(maxsize=1)
def get_job_repository() -> JobRepository:
    return PostgresJobRepository()


def get_audit() -> AuditLogWriter:
    return get_audit_writer()


def get_job_service(
    repo: JobRepository = Depends(get_job_repository),
    audit: AuditLogWriter = Depends(get_audit),
) -> JobService:
    return JobService(repo, audit)


def get_payout_service(
    repo: JobRepository = Depends(get_job_repository),
    audit: AuditLogWriter = Depends(get_audit),
) -> PayoutService:
    return PayoutService(repo, audit)
