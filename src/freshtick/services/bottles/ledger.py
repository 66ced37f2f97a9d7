"""Returnable bottle lifecycle and its audit log."""

from __future__ import annotations

import logging
import re
from collections import Counter
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from ... import clock
from ...config import settings
from ...errors import PreconditionViolation
from ...models.domain import (
    ActorKind,
    Bottle,
    BottleAction,
    BottleLog,
    BottleStatus,
    Subscription,
)
from ...persistence.store import Store, get_store, require

INVALID_BOTTLE_TRANSITION = "invalid bottle transition"

BOTTLE_NUMBER_PREFIX = "BTL"
_BOTTLE_NUMBER = re.compile(rf"^{BOTTLE_NUMBER_PREFIX}(\d+)$")

CONDITION_GOOD = "good"
CONDITION_DAMAGED = "damaged"
CONDITION_LOST = "lost"


def _clear_holder(bottle: Bottle) -> None:
    bottle.current_user_id = None
    bottle.current_subscription_id = None


def issue_to(
    bottle: Bottle,
    user_id: str,
    subscription_id: Optional[str] = None,
    *,
    now: datetime | None = None,
) -> Bottle:
    match BottleStatus(bottle.status):
        case BottleStatus.AVAILABLE:
            bottle.status = BottleStatus.ISSUED
            bottle.current_user_id = user_id
            bottle.current_subscription_id = subscription_id
            bottle.issued_at = now or clock.now()
            bottle.returned_at = None
            return bottle
        case BottleStatus.ISSUED | BottleStatus.RETURNED | BottleStatus.DAMAGED | BottleStatus.LOST:
            raise PreconditionViolation(
                f"Bottle {bottle.bottle_number} is {BottleStatus(bottle.status).value}, not available for issue.",
                kind=INVALID_BOTTLE_TRANSITION,
            )


def return_bottle(bottle: Bottle, condition: str = CONDITION_GOOD, *, now: datetime | None = None) -> Bottle:
    match BottleStatus(bottle.status):
        case BottleStatus.ISSUED:
            stamp = now or clock.now()
            if condition == CONDITION_DAMAGED:
                bottle.status = BottleStatus.DAMAGED
                bottle.damaged_at = stamp
            else:
                bottle.status = BottleStatus.AVAILABLE
            _clear_holder(bottle)
            bottle.returned_at = stamp
            return bottle
        case BottleStatus.AVAILABLE | BottleStatus.RETURNED | BottleStatus.DAMAGED | BottleStatus.LOST:
            raise PreconditionViolation(
                f"Bottle {bottle.bottle_number} is {BottleStatus(bottle.status).value}, not issued.",
                kind=INVALID_BOTTLE_TRANSITION,
            )


# Administrative overrides below accept any current status.


def mark_damaged(bottle: Bottle, reason: Optional[str] = None, *, now: datetime | None = None) -> Bottle:
    bottle.status = BottleStatus.DAMAGED
    bottle.damaged_at = now or clock.now()
    if reason:
        bottle.notes = reason
    _clear_holder(bottle)
    return bottle


def mark_lost(bottle: Bottle) -> Bottle:
    bottle.status = BottleStatus.LOST
    _clear_holder(bottle)
    return bottle


def mark_available(bottle: Bottle) -> Bottle:
    bottle.status = BottleStatus.AVAILABLE
    _clear_holder(bottle)
    return bottle


def calculate_refund(deposit_amount: Optional[Decimal], condition: str) -> Decimal:
    deposit = Decimal(deposit_amount or 0)
    match condition:
        case "damaged":
            refund = deposit * Decimal(str(settings.damaged_refund_ratio))
        case "lost":
            refund = Decimal("0")
        case _:
            refund = deposit
    return refund.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_bottle_number(sequence: int) -> str:
    return f"{BOTTLE_NUMBER_PREFIX}{sequence:06d}"


class BottleLedgerService:
    """Applies bottle transitions together with their audit log rows and subscription counters."""

    def __init__(self, store: Store | None = None) -> None:
        self.store = store or get_store()

    def get(self, bottle_id: str) -> Bottle:
        return require(self.store, Bottle, bottle_id)

    def find_by_number(self, bottle_number: str) -> Bottle | None:
        return next(iter(self.store.find(Bottle, bottle_number=bottle_number)), None)

    def find_by_barcode(self, barcode: str) -> Bottle | None:
        return next(iter(self.store.find(Bottle, barcode=barcode)), None)

    def next_bottle_number(self) -> str:
        sequences = [
            int(match.group(1))
            for bottle in self.store.find(Bottle)
            if (match := _BOTTLE_NUMBER.match(bottle.bottle_number))
        ]
        return format_bottle_number(max(sequences, default=0) + 1)

    def create_bottle(
        self,
        *,
        bottle_number: Optional[str] = None,
        type: str = "standard",
        barcode: Optional[str] = None,
        capacity: Optional[Decimal] = None,
        purchase_cost: Optional[Decimal] = None,
        deposit_amount: Optional[Decimal] = None,
        notes: Optional[str] = None,
    ) -> Bottle:
        with self.store.transaction():
            bottle = Bottle(
                bottle_number=bottle_number or self.next_bottle_number(),
                type=type,
                barcode=barcode,
                capacity=capacity,
                purchase_cost=purchase_cost,
                deposit_amount=deposit_amount,
                notes=notes,
            )
            self.store.add(bottle)
        logging.info(f"Created bottle {bottle.bottle_number}")
        return bottle

    def _log(self, bottle: Bottle, action: BottleAction, **fields) -> BottleLog:
        entry = BottleLog(bottle_id=bottle.id, action=action, created_at=clock.now(), **fields)
        return self.store.add(entry)

    def _bump_counter(self, subscription_id: Optional[str], field_name: str) -> None:
        if subscription_id is None:
            return
        subscription = self.store.get(Subscription, subscription_id)
        if subscription is None:
            logging.warning(f"Bottle counter update skipped: subscription {subscription_id} not found")
            return
        setattr(subscription, field_name, getattr(subscription, field_name) + 1)
        self.store.update(subscription)

    def issue(
        self,
        bottle_id: str,
        user_id: str,
        subscription_id: Optional[str] = None,
        *,
        delivery_id: Optional[str] = None,
        actor: ActorKind = ActorKind.SYSTEM,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BottleLog:
        with self.store.transaction():
            bottle = self.get(bottle_id)
            issue_to(bottle, user_id, subscription_id)
            self.store.update(bottle)
            self._bump_counter(subscription_id, "bottles_issued")
            entry = self._log(
                bottle,
                BottleAction.ISSUED,
                user_id=user_id,
                subscription_id=subscription_id,
                delivery_id=delivery_id,
                action_by=actor,
                action_by_id=actor_id,
                deposit_amount=bottle.deposit_amount,
                notes=notes,
            )
        logging.info(f"Bottle {bottle.bottle_number} issued to user {user_id}")
        return entry

    def return_bottle(
        self,
        bottle_id: str,
        condition: str = CONDITION_GOOD,
        *,
        delivery_id: Optional[str] = None,
        actor: ActorKind = ActorKind.SYSTEM,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BottleLog:
        with self.store.transaction():
            bottle = self.get(bottle_id)
            user_id, subscription_id = bottle.current_user_id, bottle.current_subscription_id
            refund = calculate_refund(bottle.deposit_amount, condition)
            return_bottle(bottle, condition)
            self.store.update(bottle)
            self._bump_counter(subscription_id, "bottles_returned")
            entry = self._log(
                bottle,
                BottleAction.RETURNED,
                user_id=user_id,
                subscription_id=subscription_id,
                delivery_id=delivery_id,
                action_by=actor,
                action_by_id=actor_id,
                condition=condition,
                refund_amount=refund,
                notes=notes,
            )
        logging.info(f"Bottle {bottle.bottle_number} returned ({condition}); refund {refund}")
        return entry

    def damage(
        self,
        bottle_id: str,
        reason: str,
        *,
        delivery_id: Optional[str] = None,
        actor: ActorKind = ActorKind.ADMIN,
        actor_id: Optional[str] = None,
    ) -> BottleLog:
        with self.store.transaction():
            bottle = self.get(bottle_id)
            user_id, subscription_id = bottle.current_user_id, bottle.current_subscription_id
            was_issued = bottle.status == BottleStatus.ISSUED
            mark_damaged(bottle, reason)
            self.store.update(bottle)
            if was_issued:
                self._bump_counter(subscription_id, "bottles_written_off")
            entry = self._log(
                bottle,
                BottleAction.DAMAGED,
                user_id=user_id,
                subscription_id=subscription_id,
                delivery_id=delivery_id,
                action_by=actor,
                action_by_id=actor_id,
                condition=CONDITION_DAMAGED,
                notes=reason,
            )
        logging.info(f"Bottle {bottle.bottle_number} marked as damaged: {reason}")
        return entry

    def lose(
        self,
        bottle_id: str,
        *,
        actor: ActorKind = ActorKind.ADMIN,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BottleLog:
        with self.store.transaction():
            bottle = self.get(bottle_id)
            user_id, subscription_id = bottle.current_user_id, bottle.current_subscription_id
            was_issued = bottle.status == BottleStatus.ISSUED
            mark_lost(bottle)
            self.store.update(bottle)
            if was_issued:
                self._bump_counter(subscription_id, "bottles_written_off")
            entry = self._log(
                bottle,
                BottleAction.LOST,
                user_id=user_id,
                subscription_id=subscription_id,
                action_by=actor,
                action_by_id=actor_id,
                refund_amount=calculate_refund(bottle.deposit_amount, CONDITION_LOST),
                notes=notes or "Bottle reported as lost",
            )
        logging.warning(f"Bottle {bottle.bottle_number} marked as lost (last holder {user_id})")
        return entry

    def restore(
        self,
        bottle_id: str,
        *,
        actor: ActorKind = ActorKind.ADMIN,
        actor_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BottleLog:
        with self.store.transaction():
            bottle = self.get(bottle_id)
            previous = BottleStatus(bottle.status).value
            mark_available(bottle)
            self.store.update(bottle)
            entry = self._log(
                bottle,
                BottleAction.FOUND,
                action_by=actor,
                action_by_id=actor_id,
                notes=notes or f"Restored from {previous}",
            )
        logging.info(f"Bottle {bottle.bottle_number} made available again (was {previous})")
        return entry

    def issue_for_subscription(
        self,
        subscription_id: str,
        count: int,
        *,
        bottle_type: Optional[str] = None,
        delivery_id: Optional[str] = None,
        actor: ActorKind = ActorKind.SYSTEM,
        actor_id: Optional[str] = None,
    ) -> list[BottleLog]:
        if count < 1:
            raise ValueError("count must be >= 1")
        subscription = require(self.store, Subscription, subscription_id)
        filters = {"status": BottleStatus.AVAILABLE}
        if bottle_type:
            filters["type"] = bottle_type
        available = sorted(self.store.find(Bottle, **filters), key=lambda bottle: bottle.bottle_number)
        if len(available) < count:
            raise PreconditionViolation(
                f"Only {len(available)} bottles available; {count} requested.", kind="insufficient stock"
            )
        with self.store.transaction():
            return [
                self.issue(
                    bottle.id,
                    subscription.user_id,
                    subscription_id,
                    delivery_id=delivery_id,
                    actor=actor,
                    actor_id=actor_id,
                    notes="Issued with subscription",
                )
                for bottle in available[:count]
            ]

    def user_bottles(self, user_id: str) -> list[Bottle]:
        return self.store.find(Bottle, current_user_id=user_id)

    def user_balance(self, user_id: str) -> dict:
        logs = self.store.find(BottleLog, user_id=user_id)
        held = [bottle for bottle in self.user_bottles(user_id) if bottle.status == BottleStatus.ISSUED]
        return {
            "issued": sum(1 for log in logs if log.action == BottleAction.ISSUED),
            "returned": sum(1 for log in logs if log.action == BottleAction.RETURNED),
            "balance": len(held),
            "total_deposit": sum((Decimal(bottle.deposit_amount or 0) for bottle in held), Decimal("0")),
        }

    def stats(self) -> dict:
        bottles = self.store.find(Bottle)
        counts = Counter(BottleStatus(bottle.status).value for bottle in bottles)
        return {
            "total": len(bottles),
            **{status.value: counts.get(status.value, 0) for status in BottleStatus},
            "total_value": sum((Decimal(bottle.purchase_cost or 0) for bottle in bottles), Decimal("0")),
            "total_deposit": sum(
                (Decimal(bottle.deposit_amount or 0) for bottle in bottles if bottle.status == BottleStatus.ISSUED),
                Decimal("0"),
            ),
        }

    def history(self, bottle_id: str) -> list[BottleLog]:
        logs = self.store.find(BottleLog, bottle_id=bottle_id)
        return sorted(logs, key=lambda log: log.created_at.timestamp() if log.created_at else 0.0)
