"""Delivery calendars built on top of the recurrence rules."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from ... import clock
from ...config import settings
from ...models.domain import Subscription, SubscriptionPlan, SubscriptionStatus
from .recurrence import in_vacation, is_delivery_date


@dataclass(slots=True)
class ScheduledDay:
    date: date
    is_delivery: bool
    is_vacation: bool
    is_today: bool
    is_past: bool


def schedule_anchor(subscription: Subscription) -> date:
    """Date the interval cadence counts from.

    Resuming or taking a vacation re-anchors ``next_delivery_date``, so
    alternate-day and custom plans step from it rather than from ``start_date``.
    """
    if subscription.next_delivery_date is not None and subscription.next_delivery_date >= subscription.start_date:
        return subscription.next_delivery_date
    return subscription.start_date


def is_subscription_delivery_date(
    subscription: Subscription,
    plan: Optional[SubscriptionPlan],
    day: date,
) -> bool:
    if plan is None or in_vacation(subscription, day) or day < subscription.start_date:
        return False
    if subscription.end_date is not None and day > subscription.end_date:
        return False
    return is_delivery_date(plan, day, schedule_anchor(subscription))


def month_schedule(
    subscription: Subscription,
    plan: Optional[SubscriptionPlan],
    year: int,
    month: int,
    *,
    today: date | None = None,
) -> list[ScheduledDay]:
    """Every day of the month flagged as delivery, vacation-skipped delivery, or neither.

    Past days follow the cadence from ``start_date``; today onwards follows
    ``schedule_anchor``.
    """
    today = today or clock.today()
    anchor = schedule_anchor(subscription)
    days: list[ScheduledDay] = []
    for day_number in range(1, calendar.monthrange(year, month)[1] + 1):
        current = date(year, month, day_number)
        on_plan = (
            plan is not None
            and current >= subscription.start_date
            and (subscription.end_date is None or current <= subscription.end_date)
            and is_delivery_date(plan, current, anchor if current >= today else subscription.start_date)
        )
        vacation = on_plan and in_vacation(subscription, current)
        # Nothing is delivered between today and the next scheduled date.
        waiting = today <= current < anchor
        days.append(
            ScheduledDay(
                date=current,
                is_delivery=on_plan and not vacation and not waiting,
                is_vacation=vacation,
                is_today=current == today,
                is_past=current < today,
            )
        )
    return days


def upcoming_deliveries(
    subscription: Subscription,
    plan: Optional[SubscriptionPlan],
    limit: int = 7,
    *,
    today: date | None = None,
) -> list[date]:
    if plan is None or subscription.status != SubscriptionStatus.ACTIVE:
        return []
    current = max(today or clock.today(), schedule_anchor(subscription))
    found: list[date] = []
    for _ in range(settings.upcoming_lookahead_days):
        if len(found) >= limit:
            break
        if is_subscription_delivery_date(subscription, plan, current):
            found.append(current)
        current += timedelta(days=1)
    return found


def count_deliveries_in_range(
    subscription: Subscription,
    plan: Optional[SubscriptionPlan],
    start: date,
    end: date,
) -> int:
    count = 0
    current = start
    while current <= end:
        if is_subscription_delivery_date(subscription, plan, current):
            count += 1
        current += timedelta(days=1)
    return count
