"""Materialise orders and deliveries for subscriptions due on a date."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal

from ... import clock
from ...errors import DuplicateRecord, FreshtickError, NotServiceable
from ...models.domain import Delivery, Order, OrderStatus, Subscription, SubscriptionPlan, UserAddress
from ...persistence.store import Store, get_store, require
from ..subscriptions.service import SubscriptionService
from ..zoning.assignment import ZoneAssignmentService


def plan_total(plan: SubscriptionPlan | None) -> Decimal:
    if plan is None:
        return Decimal("0")
    gross = sum((Decimal(item.price) * item.units for item in plan.items), Decimal("0"))
    discount = gross * Decimal(plan.discount_percent or 0) / Decimal("100")
    return (gross - discount).quantize(Decimal("0.01"))


class DeliveryGenerator:
    def __init__(self, store: Store | None = None) -> None:
        self.store = store or get_store()
        self.subscriptions = SubscriptionService(self.store)
        self.zones = ZoneAssignmentService(self.store)

    def preview_deliveries_for_date(self, day: date | None = None) -> list[dict]:
        day = day or clock.today()
        preview = []
        for subscription in self.subscriptions.due_subscriptions(day):
            plan = self.subscriptions.plan_for(subscription)
            preview.append(
                {
                    "subscription_id": subscription.id,
                    "user_id": subscription.user_id,
                    "address_id": subscription.user_address_id,
                    "items_count": len(plan.items) if plan else 0,
                    "total": plan_total(plan),
                }
            )
        return preview

    def generate_deliveries_for_date(self, day: date | None = None) -> dict:
        """Create one confirmed order and one pending delivery per due subscription.

        Each subscription is handled in its own transaction. A delivery that
        already exists for the subscription and date is counted as skipped.
        """
        day = day or clock.today()
        results: dict = {"date": day, "processed": 0, "created": 0, "skipped": 0, "failed": 0, "errors": []}
        for subscription in self.subscriptions.due_subscriptions(day):
            results["processed"] += 1
            try:
                self._generate_for_subscription(subscription, day)
            except DuplicateRecord:
                results["skipped"] += 1
                logging.info(f"Delivery for subscription {subscription.id} on {day} already exists; skipping")
            except FreshtickError as exc:
                results["failed"] += 1
                results["errors"].append(f"Subscription {subscription.id}: {exc}")
                logging.error(f"Failed to generate delivery for subscription {subscription.id}: {exc}")
            else:
                results["created"] += 1
        logging.info(
            f"Generated deliveries for {day}: {results['created']} created, "
            f"{results['skipped']} skipped, {results['failed']} failed"
        )
        return results

    def _generate_for_subscription(self, subscription: Subscription, day: date) -> Delivery:
        with self.store.transaction():
            address = require(self.store, UserAddress, subscription.user_address_id)
            zone_id = address.zone_id
            if zone_id is None:
                zone = self.zones.validate_address(address, subscription.user_id)
                if zone is None:
                    raise NotServiceable(f"Address {address.id} is not in any delivery zone.")
                zone_id = zone.id

            order = Order(
                user_id=subscription.user_id,
                status=OrderStatus.CONFIRMED,
                subscription_id=subscription.id,
                scheduled_date=day,
            )
            self.store.add(order)
            delivery = Delivery(
                order_id=order.id,
                user_id=subscription.user_id,
                user_address_id=address.id,
                zone_id=zone_id,
                scheduled_date=day,
                subscription_id=subscription.id,
                created_at=clock.now(),
            )
            self.store.add(delivery)
            self.subscriptions.advance(subscription, day)
        return delivery
