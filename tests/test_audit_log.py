import json
import logging
from decimal import Decimal

import pytest

from app.jobs.model import Actor
from services import metrics
from services.audit_log import AuditLogWriter, safe_log_event


def test_log_event_appends_ndjson_with_diff(audit):
    event = audit.log_event(
        action="job.accepted",
        entity_type="job",
        entity_id="j-1",
        actor=Actor.contractor("c-1"),
        before={"status": "open", "contractor_id": None},
        after={"status": "assigned", "contractor_id": "c-1"},
    )
    assert event["diff"] == {
        "contractor_id": {"before": None, "after": "c-1"},
        "status": {"before": "open", "after": "assigned"},
    }

    lines = audit.path.read_text(encoding="utf-8").splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0])["id"] == event["id"]


def test_log_event_requires_action_and_entity_type(audit):
    with pytest.raises(ValueError):
        audit.log_event(action="", entity_type="job")
    with pytest.raises(ValueError):
        audit.log_event(action="x", entity_type="")


def test_sensitive_keys_are_redacted(audit):
    event = audit.log_event(
        action="contractor.updated",
        entity_type="contractor",
        entity_id="c-1",
        after={"api_key": "abc", "bank_token": "tok", "nested": {"password": "pw", "email": "jane@example.com"}},
    )
    assert event["after"]["api_key"] == "[REDACTED]"
    assert event["after"]["bank_token"] == "[REDACTED]"
    assert event["after"]["nested"]["password"] == "[REDACTED]"
    assert event["after"]["nested"]["email"] == "j***@example.com"
    assert "abc" not in audit.path.read_text(encoding="utf-8")


def test_email_shaped_ids_are_stored_verbatim(audit):
    audit.log_event(
        action="contractor.payment_schedule_updated",
        entity_type="contractor",
        entity_id="jane@example.com",
        actor=Actor.admin("ops@example.com"),
        after={"payment_schedule": "monthly", "notes": "asked by jane@example.com"},
    )
    events = audit.read_events(entity_id="jane@example.com")
    assert len(events) == 1
    assert events[0]["actor"]["id"] == "ops@example.com"
    assert events[0]["after"]["notes"] == "asked by j***@example.com"


def test_decimals_are_written_as_strings(audit):
    event = audit.log_event(action="x", entity_type="job", after={"amount": Decimal("315.15")})
    assert event["after"]["amount"] == "315.15"


def test_read_events_filters_newest_first(audit):
    for i in range(5):
        audit.log_event(action="job.started" if i % 2 else "job.accepted", entity_type="job", entity_id=f"j-{i % 2}")

    events = audit.read_events(entity_id="j-1")
    assert len(events) == 2
    assert events[0]["ts"] >= events[1]["ts"]

    assert len(audit.read_events(action="job.accepted")) == 3
    assert len(audit.read_events(limit=2)) == 2
    assert audit.count_events() == 5


def test_malformed_lines_are_skipped(audit, caplog):
    audit.log_event(action="a", entity_type="job")
    with audit.path.open("a", encoding="utf-8") as fh:
        fh.write("{not json\n")
    audit.log_event(action="b", entity_type="job")

    caplog.set_level(logging.WARNING, logger="firstclick.audit")
    assert [e["action"] for e in audit.read_events()] == ["b", "a"]
    assert any("malformed" in r.message for r in caplog.records)


def test_missing_file_reads_empty(tmp_path):
    writer = AuditLogWriter(tmp_path / "nope" / "audit.jsonl")
    assert writer.read_events() == []
    assert writer.count_events() == 0


def test_safe_log_event_swallows_write_failures(tmp_path, caplog):
    # parent "directory" is a regular file, so mkdir fails with OSError
    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    writer = AuditLogWriter(blocker / "audit.jsonl")

    caplog.set_level(logging.ERROR, logger="firstclick.audit")
    assert safe_log_event(writer, action="job.accepted", entity_type="job", entity_id="j-1") is None
    assert metrics.get_counter("audit_write_failures_total") == 1
    assert any("audit write failed" in r.message for r in caplog.records)


def test_transition_survives_audit_failure(repo, tmp_path, submitted_job):
    from app.jobs.state_machine import JobService

    blocker = tmp_path / "blocker"
    blocker.write_text("x", encoding="utf-8")
    service = JobService(repo, AuditLogWriter(blocker / "audit.jsonl"))

    job = service.accept(submitted_job.id, contractor_id="c-gold")
    assert job.status.value == "assigned"
    assert repo.get_job(submitted_job.id).status.value == "assigned"
