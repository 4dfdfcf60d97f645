from __future__ import annotations

import logging
from dataclasses import replace

from app.jobs.model import PaymentStatus, PayoutStatus
from app.workers import payout_ready_worker


def _paid_but_not_ready(repo, job):
    # payment recorded out of band, e.g. by a backfill
    stored = repo.get_job(job.id)
    return repo.put_job(replace(stored, payment_status=PaymentStatus.PAID))


def test_process_once_marks_paid_jobs_ready(completed_job, payouts, repo):
    a = _paid_but_not_ready(repo, completed_job())
    b = _paid_but_not_ready(repo, completed_job("c-bronze"))
    untouched = completed_job()  # still unpaid

    n = payout_ready_worker.process_once(payouts, batch_size=10)

    assert n == 2
    assert repo.get_job(a.id).payout_status == PayoutStatus.READY
    assert repo.get_job(b.id).payout_status == PayoutStatus.READY
    assert repo.get_job(untouched.id).payout_status == PayoutStatus.NOT_READY


def test_process_once_leaves_unpriced_jobs(jobs, payouts, repo, caplog):
    job = jobs.submit(customer_id="cust-3", service_type_id="x", estimate={"mode": "quote_only"})
    jobs.accept(job.id, contractor_id="c-gold")
    jobs.start(job.id, contractor_id="c-gold")
    done = jobs.complete(job.id, contractor_id="c-gold")
    _paid_but_not_ready(repo, done)

    caplog.set_level(logging.WARNING, logger="firstclick.worker")
    assert payout_ready_worker.process_once(payouts) == 0
    assert repo.get_job(job.id).payout_status == PayoutStatus.NOT_READY
    assert any("no financials" in r.message for r in caplog.records)


def test_process_once_skips_conflicts(completed_job, payouts, repo):
    _paid_but_not_ready(repo, completed_job())
    repo.fail_next_save = True
    assert payout_ready_worker.process_once(payouts) == 0
    # next pass picks it up
    assert payout_ready_worker.process_once(payouts) == 1


def test_process_once_with_nothing_to_do(payouts):
    assert payout_ready_worker.process_once(payouts) == 0
