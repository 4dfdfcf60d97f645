# app/jobs/schedules.py
from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Any

from app.jobs.model import PaymentSchedule

FRIDAY = 4


def next_friday(today: date) -> date:
    """First Friday strictly after today."""
    days = (FRIDAY - today.weekday()) % 7 or 7
    return today + timedelta(days=days)


def end_of_week(today: date) -> date:
    """The coming Sunday (today when today is Sunday)."""
    return today + timedelta(days=6 - today.weekday())


def next_payment_date(schedule: Any, today: date) -> date:
    schedule = PaymentSchedule.parse(schedule, field_name="payment_schedule")

    if schedule == PaymentSchedule.PER_JOB:
        return today
    if schedule == PaymentSchedule.WEEKLY:
        return next_friday(today)
    if schedule == PaymentSchedule.BIWEEKLY:
        # no anchor date is tracked, so this is the Friday after next
        return next_friday(today) + timedelta(days=7)

    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=last_day)
