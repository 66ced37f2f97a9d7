"""Subscription state transitions.

Functions mutate the given ``Subscription`` in place and raise
``PreconditionViolation`` (leaving it untouched) when the current status does
not allow the operation. ``expired`` is set by an external scheduler only.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from ... import clock
from ...errors import PreconditionViolation
from ...models.domain import Subscription, SubscriptionPlan, SubscriptionStatus
from .recurrence import calculate_next_delivery_date, in_vacation


def _reject(subscription: Subscription, operation: str) -> PreconditionViolation:
    return PreconditionViolation(
        f"Cannot {operation} a subscription that is {SubscriptionStatus(subscription.status).value}.",
        kind="invalid subscription transition",
    )


def pause(subscription: Subscription, until: date | None = None) -> Subscription:
    match SubscriptionStatus(subscription.status):
        case SubscriptionStatus.ACTIVE:
            subscription.status = SubscriptionStatus.PAUSED
            subscription.paused_until = until
            return subscription
        case SubscriptionStatus.PAUSED | SubscriptionStatus.CANCELLED | SubscriptionStatus.EXPIRED:
            raise _reject(subscription, "pause")


def resume(
    subscription: Subscription,
    plan: Optional[SubscriptionPlan],
    *,
    today: date | None = None,
) -> Subscription:
    match SubscriptionStatus(subscription.status):
        case SubscriptionStatus.PAUSED:
            subscription.next_delivery_date = calculate_next_delivery_date(
                subscription, plan, today or clock.today()
            )
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.paused_until = None
            return subscription
        case SubscriptionStatus.ACTIVE | SubscriptionStatus.CANCELLED | SubscriptionStatus.EXPIRED:
            raise _reject(subscription, "resume")


def cancel(
    subscription: Subscription,
    reason: str | None = None,
    *,
    now: datetime | None = None,
) -> Subscription:
    match SubscriptionStatus(subscription.status):
        case SubscriptionStatus.ACTIVE | SubscriptionStatus.PAUSED | SubscriptionStatus.EXPIRED:
            subscription.status = SubscriptionStatus.CANCELLED
            subscription.cancelled_at = now or clock.now()
            subscription.cancellation_reason = reason
            return subscription
        case SubscriptionStatus.CANCELLED:
            raise _reject(subscription, "cancel")


def set_vacation(
    subscription: Subscription,
    plan: Optional[SubscriptionPlan],
    start: date,
    end: date,
) -> Subscription:
    if start > end:
        raise ValueError("Vacation start must be on or before its end.")
    match SubscriptionStatus(subscription.status):
        case SubscriptionStatus.ACTIVE:
            subscription.vacation_start = start
            subscription.vacation_end = end
            if subscription.next_delivery_date is not None and start <= subscription.next_delivery_date <= end:
                subscription.next_delivery_date = calculate_next_delivery_date(subscription, plan, end)
            return subscription
        case SubscriptionStatus.PAUSED | SubscriptionStatus.CANCELLED | SubscriptionStatus.EXPIRED:
            raise _reject(subscription, "set a vacation on")


def clear_vacation(subscription: Subscription) -> Subscription:
    subscription.vacation_start = None
    subscription.vacation_end = None
    return subscription


def is_on_vacation(subscription: Subscription, day: date | None = None) -> bool:
    return in_vacation(subscription, day or clock.today())


def is_due_for_delivery(subscription: Subscription, day: date | None = None) -> bool:
    day = day or clock.today()
    if subscription.status != SubscriptionStatus.ACTIVE:
        return False
    if is_on_vacation(subscription, day):
        return False
    return subscription.next_delivery_date is not None and subscription.next_delivery_date <= day


def can_edit(subscription: Subscription, *, now: datetime | None = None) -> bool:
    """Edits are allowed only for subscriptions started in the current or previous calendar month."""
    if subscription.status == SubscriptionStatus.CANCELLED:
        return False
    current = (now or clock.now()).date()
    if current.month == 1:
        previous_month_start = date(current.year - 1, 12, 1)
    else:
        previous_month_start = date(current.year, current.month - 1, 1)
    return subscription.start_date >= previous_month_start
