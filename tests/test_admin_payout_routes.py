from __future__ import annotations

import uuid
from datetime import datetime, timezone

from tests.conftest import admin_headers


def test_record_payment_then_batch_over_http(client, completed_job, audit):
    a = completed_job()
    b = completed_job("c-bronze")

    for job in (a, b):
        r = client.post(f"/v1/admin/jobs/{job.id}/payment", json={"payment_status": "paid"}, headers=admin_headers())
        assert r.status_code == 200, r.text
        assert r.json()["payout_status"] == "ready"

    r = client.get("/v1/admin/payouts/pending", headers=admin_headers())
    assert r.status_code == 200
    assert r.json()["count"] == 2

    missing = str(uuid.uuid4())
    r = client.post(
        "/v1/admin/payouts/batch",
        json={"job_ids": [str(a.id), str(b.id), missing]},
        headers=admin_headers(),
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["count"] == 2
    assert body["skipped"] == {missing: "not found"}

    r = client.get("/v1/admin/payouts/history", headers=admin_headers())
    assert r.json()["count"] == 2

    r = client.get("/v1/admin/audit-events", params={"entity_type": "batch"}, headers=admin_headers())
    assert r.status_code == 200
    events = r.json()["events"]
    assert len(events) == 1
    assert events[0]["actor"] == {"role": "admin", "id": "admin-1"}


def test_single_payout_over_http(client, ready_job):
    job = ready_job("c-silver")
    r = client.post(
        "/v1/admin/payouts/single",
        json={"contractor_id": "c-silver", "job_ids": [str(job.id)], "payment_method": "e_transfer"},
        headers=admin_headers(),
    )
    assert r.status_code == 200, r.text
    payment = r.json()["payment"]
    assert payment["contractor_id"] == "c-silver"
    assert payment["payment_schedule"] == "monthly"

    r = client.get("/v1/admin/payouts/contractors/c-silver/payments", headers=admin_headers())
    assert r.json()["count"] == 1


def test_mark_ready_without_financials_is_409(client, jobs):
    job = jobs.submit(customer_id="cust-5", service_type_id="x", estimate={"mode": "quote_only"})
    jobs.accept(job.id, contractor_id="c-gold")
    jobs.start(job.id, contractor_id="c-gold")
    jobs.complete(job.id, contractor_id="c-gold")

    r = client.post(f"/v1/admin/jobs/{job.id}/payment", json={"payment_status": "paid"}, headers=admin_headers())
    assert r.status_code == 200, r.text
    assert r.json()["payout_status"] == "not_ready"

    r = client.post(f"/v1/admin/payouts/{job.id}/ready", headers=admin_headers())
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "PRICING_UNAVAILABLE"

    r = client.get("/v1/admin/payouts/alerts", headers=admin_headers())
    codes = {a["code"] for a in r.json()["alerts"]}
    assert {"missing_final_price", "paid_not_ready"} <= codes


def test_force_status_over_http(client, completed_job):
    job = completed_job()
    r = client.post(
        f"/v1/admin/payouts/{job.id}/force-status",
        json={"payout_status": "paid", "reason": "paid outside the platform"},
        headers=admin_headers(),
    )
    assert r.status_code == 200, r.text
    assert r.json()["payout_status"] == "paid"


def test_contractor_summary_and_revenue(client, ready_job):
    ready_job("c-gold")
    r = client.get("/v1/admin/payouts/contractors", headers=admin_headers())
    assert r.status_code == 200, r.text
    rows = {row["contractor_id"]: row for row in r.json()["contractors"]}
    assert rows["c-gold"]["pending_amount"] == "315.15"

    month = datetime.now(timezone.utc).strftime("%Y-%m")
    r = client.get("/v1/admin/revenue/mtd", params={"month": month}, headers=admin_headers())
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["completed_jobs"] == 1
    assert body["platform_fees"] == "36.50"


def test_revenue_rejects_bad_month(client):
    r = client.get("/v1/admin/revenue/mtd", params={"month": "2026-13"}, headers=admin_headers())
    assert r.status_code == 422


def test_update_payment_schedule_over_http(client, repo):
    r = client.patch(
        "/v1/admin/payouts/contractors/c-bronze/payment-schedule",
        json={"payment_schedule": "monthly"},
        headers=admin_headers(),
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["payment_schedule"] == "monthly"
    assert body["next_payment_date"]
    assert repo.get_contractor("c-bronze").payment_schedule.value == "monthly"

    r = client.patch(
        "/v1/admin/payouts/contractors/c-missing/payment-schedule",
        json={"payment_schedule": "weekly"},
        headers=admin_headers(),
    )
    assert r.status_code == 404
