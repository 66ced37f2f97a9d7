"""Persisted subscription operations."""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Callable, Optional

from ... import clock
from ...errors import PreconditionViolation
from ...models.domain import (
    BillingCycle,
    ProductZone,
    Subscription,
    SubscriptionPlan,
    SubscriptionStatus,
    UserAddress,
)
from ...persistence.store import Store, get_store, require
from ..zoning.assignment import ZoneAssignmentService
from ..zoning.resolver import is_available_in_zone
from . import lifecycle
from .recurrence import calculate_next_delivery_date, is_delivery_date, next_plan_date
from .schedule import ScheduledDay, month_schedule, upcoming_deliveries


class SubscriptionService:
    def __init__(self, store: Store | None = None) -> None:
        self.store = store or get_store()
        self.zones = ZoneAssignmentService(self.store)

    def create_plan(self, plan: SubscriptionPlan) -> SubscriptionPlan:
        next_plan_date(plan, clock.today())
        with self.store.transaction():
            self.store.add(plan)
        logging.info(f"Created subscription plan '{plan.name}' ({plan.frequency_type})")
        return plan

    def plan_for(self, subscription: Subscription) -> SubscriptionPlan | None:
        return self.store.get(SubscriptionPlan, subscription.subscription_plan_id)

    def get(self, subscription_id: str) -> Subscription:
        return require(self.store, Subscription, subscription_id)

    def _check_products_available(self, plan: SubscriptionPlan, zone_id: str) -> None:
        for item in plan.items:
            pivot = next(iter(self.store.find(ProductZone, product_id=item.product_id, zone_id=zone_id)), None)
            if not is_available_in_zone(pivot):
                raise PreconditionViolation(
                    f"Product {item.product_id} is not available in your delivery zone.",
                    kind="product unavailable",
                )

    def _check_no_active_duplicate(self, user_id: str, plan: SubscriptionPlan) -> None:
        product_ids = {item.product_id for item in plan.items}
        if not product_ids:
            return
        for existing in self.store.find(Subscription, user_id=user_id, status=SubscriptionStatus.ACTIVE):
            existing_plan = self.plan_for(existing)
            overlap = product_ids & {item.product_id for item in (existing_plan.items if existing_plan else [])}
            if overlap:
                raise PreconditionViolation(
                    f"Subscription {existing.id} already delivers {', '.join(sorted(overlap))} to this user.",
                    kind="duplicate subscription",
                )

    def create_subscription(
        self,
        user_id: str,
        address_id: str,
        plan_id: str,
        start_date: date,
        *,
        end_date: date | None = None,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        auto_renew: bool = True,
        vertical: Optional[str] = None,
    ) -> Subscription:
        address = require(self.store, UserAddress, address_id)
        if address.user_id != user_id:
            raise PreconditionViolation("Address does not belong to this user.", kind="ownership")
        plan = require(self.store, SubscriptionPlan, plan_id)
        if not plan.is_active:
            raise PreconditionViolation(f"Plan '{plan.name}' is not active.", kind="inactive plan")
        if end_date is not None and end_date < start_date:
            raise ValueError("Subscription end date must not be before its start date.")

        zone = self.zones.require_zone(address, user_id)

        subscription = Subscription(
            user_id=user_id,
            user_address_id=address_id,
            subscription_plan_id=plan_id,
            start_date=start_date,
            end_date=end_date,
            billing_cycle=billing_cycle,
            auto_renew=auto_renew,
            vertical=vertical,
        )
        if is_delivery_date(plan, start_date, start_date):
            subscription.next_delivery_date = start_date
        else:
            subscription.next_delivery_date = calculate_next_delivery_date(subscription, plan, start_date)
        with self.store.transaction():
            self._check_products_available(plan, zone.id)
            self._check_no_active_duplicate(user_id, plan)
            self.store.add(subscription)
        logging.info(
            f"Created subscription {subscription.id} for user {user_id}; first delivery {subscription.next_delivery_date}"
        )
        return subscription

    def _apply(
        self,
        subscription_id: str,
        action: str,
        change: Callable[[Subscription, SubscriptionPlan | None], Subscription],
    ) -> Subscription:
        with self.store.transaction():
            subscription = self.get(subscription_id)
            change(subscription, self.plan_for(subscription))
            self.store.update(subscription)
        logging.info(f"Subscription {subscription_id} {action}; status {SubscriptionStatus(subscription.status).value}")
        return subscription

    def pause(self, subscription_id: str, until: date | None = None) -> Subscription:
        return self._apply(subscription_id, "paused", lambda sub, _plan: lifecycle.pause(sub, until))

    def resume(self, subscription_id: str, *, today: date | None = None) -> Subscription:
        return self._apply(subscription_id, "resumed", lambda sub, plan: lifecycle.resume(sub, plan, today=today))

    def cancel(self, subscription_id: str, reason: str | None = None, *, now: datetime | None = None) -> Subscription:
        return self._apply(subscription_id, "cancelled", lambda sub, _plan: lifecycle.cancel(sub, reason, now=now))

    def set_vacation(self, subscription_id: str, start: date, end: date) -> Subscription:
        return self._apply(
            subscription_id,
            f"set on vacation {start} - {end}",
            lambda sub, plan: lifecycle.set_vacation(sub, plan, start, end),
        )

    def clear_vacation(self, subscription_id: str) -> Subscription:
        return self._apply(subscription_id, "vacation cleared", lambda sub, _plan: lifecycle.clear_vacation(sub))

    def advance(self, subscription: Subscription, delivered_on: date) -> Subscription:
        """Move ``next_delivery_date`` past a generated delivery. Caller owns the transaction."""
        subscription.next_delivery_date = calculate_next_delivery_date(
            subscription, self.plan_for(subscription), delivered_on
        )
        return self.store.update(subscription)

    def schedule(
        self, subscription_id: str, year: int, month: int, *, today: date | None = None
    ) -> list[ScheduledDay]:
        subscription = self.get(subscription_id)
        return month_schedule(subscription, self.plan_for(subscription), year, month, today=today)

    def upcoming(self, subscription_id: str, limit: int = 7, *, today: date | None = None) -> list[date]:
        subscription = self.get(subscription_id)
        return upcoming_deliveries(subscription, self.plan_for(subscription), limit, today=today)

    def due_subscriptions(self, day: date | None = None) -> list[Subscription]:
        day = day or clock.today()
        due = [
            subscription
            for subscription in self.store.find(Subscription, status=SubscriptionStatus.ACTIVE)
            if lifecycle.is_due_for_delivery(subscription, day)
            and (subscription.end_date is None or subscription.end_date >= day)
        ]
        return sorted(due, key=lambda subscription: subscription.id or "")
