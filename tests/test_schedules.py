from datetime import date

import pytest

from app.jobs.errors import NotFound, ValidationError
from app.jobs.model import PaymentSchedule
from app.jobs.schedules import end_of_week, next_friday, next_payment_date

WEDNESDAY = date(2026, 10, 14)
FRIDAY = date(2026, 10, 16)


def test_per_job_pays_today():
    assert next_payment_date("per_job", WEDNESDAY) == WEDNESDAY


def test_weekly_is_next_friday():
    assert next_payment_date("weekly", WEDNESDAY) == FRIDAY


def test_weekly_on_a_friday_is_the_following_friday():
    assert next_friday(FRIDAY) == date(2026, 10, 23)
    assert next_payment_date("weekly", FRIDAY) == date(2026, 10, 23)


def test_biweekly_is_friday_after_next():
    assert next_payment_date("biweekly", WEDNESDAY) == date(2026, 10, 23)


def test_monthly_is_last_day_of_month():
    assert next_payment_date("monthly", WEDNESDAY) == date(2026, 10, 31)
    assert next_payment_date("monthly", date(2028, 2, 10)) == date(2028, 2, 29)


def test_loose_schedule_spelling_is_accepted():
    assert next_payment_date("Per-Job", WEDNESDAY) == WEDNESDAY


def test_unknown_schedule_is_rejected():
    with pytest.raises(ValidationError):
        next_payment_date("fortnightly-ish", WEDNESDAY)


def test_end_of_week_is_sunday():
    assert end_of_week(WEDNESDAY) == date(2026, 10, 18)
    assert end_of_week(date(2026, 10, 18)) == date(2026, 10, 18)


def test_update_payment_schedule_persists_and_audits(payouts, repo, audit):
    updated = payouts.update_payment_schedule("c-gold", "Bi-Weekly", admin_id="admin-1")

    assert updated.payment_schedule == PaymentSchedule.BIWEEKLY
    assert repo.get_contractor("c-gold").payment_schedule == PaymentSchedule.BIWEEKLY

    events = audit.read_events(action="contractor.payment_schedule_updated")
    assert len(events) == 1
    assert events[0]["entity_id"] == "c-gold"
    assert events[0]["before"] == {"payment_schedule": "weekly"}
    assert events[0]["after"] == {"payment_schedule": "biweekly"}


def test_update_payment_schedule_unknown_contractor(payouts, audit):
    with pytest.raises(NotFound):
        payouts.update_payment_schedule("c-nobody", "monthly", admin_id="admin-1")
    assert audit.count_events() == 0


def test_update_payment_schedule_rejects_unknown_schedule(payouts, repo):
    with pytest.raises(ValidationError):
        payouts.update_payment_schedule("c-gold", "daily")
    assert repo.get_contractor("c-gold").payment_schedule == PaymentSchedule.WEEKLY
