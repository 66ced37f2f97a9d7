"""Next-delivery-date computation for subscription plans."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Optional

from ... import clock
from ...config import settings
from ...errors import InvalidSchedule
from ...models.domain import FrequencyType, Subscription, SubscriptionPlan
from ..zoning.resolver import sunday_based_weekday


def _custom_step(plan: SubscriptionPlan) -> int:
    step = plan.frequency_value if plan.frequency_value is not None else 1
    if step < 1:
        raise InvalidSchedule(f"Plan '{plan.name}' has a custom interval of {step} day(s); it must be >= 1.")
    return step


def _weekly_days(plan: SubscriptionPlan) -> list[int]:
    if plan.days_of_week is None:
        return list(settings.default_weekly_days)
    return [int(day) for day in plan.days_of_week]


def _next_weekly_date(plan: SubscriptionPlan, from_date: date) -> date:
    days = set(_weekly_days(plan))
    current = from_date + timedelta(days=1)
    for _ in range(7):
        if sunday_based_weekday(current) in days:
            return current
        current += timedelta(days=1)
    return from_date + timedelta(weeks=1)


def next_plan_date(plan: Optional[SubscriptionPlan], from_date: date) -> date:
    """Apply one step of the plan's interval rule; always strictly after ``from_date``."""
    if plan is None:
        return from_date + timedelta(days=1)
    match FrequencyType(plan.frequency_type):
        case FrequencyType.DAILY:
            return from_date + timedelta(days=1)
        case FrequencyType.ALTERNATE_DAYS:
            return from_date + timedelta(days=2)
        case FrequencyType.WEEKLY:
            return _next_weekly_date(plan, from_date)
        case FrequencyType.CUSTOM:
            return from_date + timedelta(days=_custom_step(plan))
        case _:
            raise InvalidSchedule(f"Unknown frequency type '{plan.frequency_type}'.")


def in_vacation(subscription: Subscription, day: date) -> bool:
    if subscription.vacation_start is None or subscription.vacation_end is None:
        return False
    return subscription.vacation_start <= day <= subscription.vacation_end


def calculate_next_delivery_date(
    subscription: Subscription,
    plan: Optional[SubscriptionPlan],
    from_date: date | None = None,
) -> date:
    """First interval-consistent date strictly after ``from_date`` outside the vacation window."""
    from_date = from_date or clock.today()
    candidate = next_plan_date(plan, from_date)
    if not in_vacation(subscription, candidate):
        return candidate

    # Every step advances at least one day, so the window length bounds the loop.
    max_steps = (subscription.vacation_end - subscription.vacation_start).days + 8
    for _ in range(max_steps):
        candidate = next_plan_date(plan, candidate)
        if not in_vacation(subscription, candidate):
            return candidate
    raise InvalidSchedule(
        f"Could not find a delivery date after {from_date.isoformat()} outside the vacation window."
    )


def is_delivery_date(plan: Optional[SubscriptionPlan], day: date, start_date: date) -> bool:
    """Whether ``day`` falls on the plan's schedule anchored at ``start_date``."""
    if plan is None:
        return False
    offset = (day - start_date).days
    match FrequencyType(plan.frequency_type):
        case FrequencyType.DAILY:
            return True
        case FrequencyType.ALTERNATE_DAYS:
            return offset % 2 == 0
        case FrequencyType.WEEKLY:
            return sunday_based_weekday(day) in set(_weekly_days(plan))
        case FrequencyType.CUSTOM:
            return offset % _custom_step(plan) == 0
        case _:
            return True
