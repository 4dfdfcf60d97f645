# app/workers/payout_ready_worker.py
from __future__ import annotations

import logging
import time

from app.jobs.errors import ConflictError, InvalidTransition, PricingUnavailable
from app.jobs.model import Actor
from app.jobs.payouts import PayoutService
from app.jobs.repository import PostgresJobRepository
from settings import settings

logger = logging.getLogger("firstclick.worker")


def process_once(service: PayoutService, *, batch_size: int | None = None) -> int:
    """
    Move completed, customer-paid jobs to payout `ready`.

    Returns how many jobs were marked ready. Jobs that cannot move (no
    financials, or changed underneath us) are left for the next pass.
    """
    batch_size = batch_size or settings.READY_WORKER_BATCH_SIZE
    candidates = service.ready_candidates(limit=batch_size)
    logger.info("payout ready worker found=%s", len(candidates))

    marked = 0
    actor = Actor.system()
    for job in candidates:
        try:
            service.mark_ready(job.id, actor=actor)
        except PricingUnavailable:
            logger.warning("job has no financials; payout stays not_ready job_id=%s", job.id)
            continue
        except (ConflictError, InvalidTransition) as exc:
            logger.info("skipping job_id=%s code=%s", job.id, exc.code)
            continue
        marked += 1

    return marked


def run_forever(service: PayoutService | None = None, *, poll_seconds: int | None = None) -> None:
    service = service or PayoutService(PostgresJobRepository())
    poll_seconds = poll_seconds or settings.READY_WORKER_POLL_SECONDS
    logger.info("payout ready worker started poll_seconds=%s", poll_seconds)
    while True:
        n = process_once(service)
        if n == 0:
            time.sleep(poll_seconds)


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    run_forever()
