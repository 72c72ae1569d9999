"""Subscription plan catalogue and calendar-month arithmetic."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime

from tutorug.errors import InvalidPlan


@dataclass(frozen=True)
class Plan:
    id: str
    name: str
    amount: int
    currency: str
    duration_months: int
    description: str


PLANS: dict[str, Plan] = {
    "monthly": Plan(
        id="monthly",
        name="Monthly Plan",
        amount=25000,
        currency="UGX",
        duration_months=1,
        description="Full access for 1 month",
    ),
    "annual": Plan(
        id="annual",
        name="Annual Plan",
        amount=250000,
        currency="UGX",
        duration_months=12,
        description="Full access for 12 months (save 50,000 UGX)",
    ),
}


def get_plan(plan_id: str) -> Plan:
    plan = PLANS.get(plan_id)
    if plan is None:
        raise InvalidPlan(f"Unknown plan: {plan_id}")
    return plan


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the end of the target month.

    Jan 31 + 1 month is Feb 28 (or 29).
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)
