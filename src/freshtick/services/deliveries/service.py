"""Delivery workflow: persists delivery transitions together with the paired order."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import date
from typing import Optional, Sequence

from ... import clock
from ...config import settings
from ...errors import PreconditionViolation
from ...models.domain import (
    ActorKind,
    Delivery,
    DeliveryStatus,
    DeliveryTracking,
    Driver,
    Order,
    OrderStatus,
    UserAddress,
    Zone,
)
from ...persistence.filesystem import FileStorage
from ...persistence.store import Store, get_store, require
from ..bottles.ledger import CONDITION_GOOD, BottleLedgerService
from . import state_machine
from .tracking import eta_minutes


def _capacity(driver: Driver) -> int:
    return driver.max_deliveries_per_day or settings.default_driver_capacity


class DeliveryService:
    def __init__(self, store: Store | None = None, files: FileStorage | None = None) -> None:
        self.store = store or get_store()
        self._files = files
        self.bottles = BottleLedgerService(self.store)

    @property
    def files(self) -> FileStorage:
        if self._files is None:
            self._files = FileStorage()
        return self._files

    def get(self, delivery_id: str) -> Delivery:
        return require(self.store, Delivery, delivery_id)

    def for_date(self, day: date, *, zone_id: Optional[str] = None, driver_id: Optional[str] = None) -> list[Delivery]:
        filters: dict = {"scheduled_date": day}
        if zone_id is not None:
            filters["zone_id"] = zone_id
        if driver_id is not None:
            filters["driver_id"] = driver_id
        return sorted(self.store.find(Delivery, **filters), key=lambda delivery: delivery.id or "")

    def create_for_order(
        self,
        order_id: str,
        address_id: str,
        scheduled_date: date,
        *,
        notes: Optional[str] = None,
    ) -> Delivery:
        order = require(self.store, Order, order_id)
        address = require(self.store, UserAddress, address_id)
        if address.zone_id is None:
            raise PreconditionViolation(
                f"Address {address_id} has no zone assigned; validate it before scheduling.",
                kind="unassigned address",
            )
        delivery = Delivery(
            order_id=order.id,
            user_id=order.user_id,
            user_address_id=address.id,
            zone_id=address.zone_id,
            scheduled_date=scheduled_date,
            subscription_id=order.subscription_id,
            notes=notes,
            created_at=clock.now(),
        )
        with self.store.transaction():
            self.store.add(delivery)
        logging.info(f"Created delivery {delivery.id} for order {order.id} on {scheduled_date}")
        return delivery

    def _active_driver(self, driver_id: str) -> Driver:
        driver = require(self.store, Driver, driver_id)
        if not driver.is_active:
            raise PreconditionViolation(f"Driver {driver.name} is not active.", kind="inactive driver")
        return driver

    def assign(self, delivery_id: str, driver_id: str) -> Delivery:
        with self.store.transaction():
            driver = self._active_driver(driver_id)
            delivery = self.get(delivery_id)
            state_machine.assign_driver(delivery, driver.id)
            self.store.update(delivery)
        logging.info(f"Delivery {delivery_id} assigned to driver {driver_id}")
        return delivery

    def assign_many(self, driver_id: str, delivery_ids: Sequence[str]) -> list[Delivery]:
        """Hand a batch of deliveries to one driver, skipping those already on the road or closed."""
        assigned: list[Delivery] = []
        with self.store.transaction():
            driver = self._active_driver(driver_id)
            for delivery_id in delivery_ids:
                delivery = self.get(delivery_id)
                if delivery.status not in (DeliveryStatus.PENDING, DeliveryStatus.ASSIGNED):
                    logging.info(
                        f"Delivery {delivery_id} skipped in bulk assignment: "
                        f"status {DeliveryStatus(delivery.status).value}"
                    )
                    continue
                state_machine.assign_driver(delivery, driver.id)
                self.store.update(delivery)
                assigned.append(delivery)
        logging.info(f"Assigned {len(assigned)} of {len(delivery_ids)} deliveries to driver {driver_id}")
        return assigned

    def _driver_load(self, driver_id: str, day: date) -> int:
        deliveries = self.store.find(Delivery, driver_id=driver_id, scheduled_date=day)
        return sum(1 for delivery in deliveries if delivery.status != DeliveryStatus.CANCELLED)

    def driver_capacity(self, driver_id: str, day: date) -> dict:
        driver = require(self.store, Driver, driver_id)
        assigned = self._driver_load(driver.id, day)
        capacity = _capacity(driver)
        return {
            "driver_id": driver.id,
            "driver_name": driver.name,
            "assigned": assigned,
            "capacity": capacity,
            "available": capacity - assigned,
            "utilization": round(assigned / capacity * 100, 1),
        }

    def auto_assign(self, day: date, zone_id: Optional[str] = None) -> dict:
        """Spread pending, unassigned deliveries for ``day`` over the active drivers of each zone.

        Each delivery goes to the least-loaded driver of its zone that is still
        under capacity; ties go to the first driver by name. Deliveries in zones
        without a free driver stay pending.
        """
        filters: dict = {"scheduled_date": day, "status": DeliveryStatus.PENDING}
        if zone_id is not None:
            filters["zone_id"] = zone_id
        pending = [delivery for delivery in self.store.find(Delivery, **filters) if delivery.driver_id is None]
        by_zone: dict[str, list[Delivery]] = {}
        for delivery in sorted(pending, key=lambda item: (item.created_at is None, item.created_at, item.id or "")):
            by_zone.setdefault(delivery.zone_id, []).append(delivery)

        assigned = 0
        with self.store.transaction():
            for zone_key, deliveries in sorted(by_zone.items()):
                drivers = sorted(
                    self.store.find(Driver, zone_id=zone_key, is_active=True),
                    key=lambda driver: (driver.name, driver.id or ""),
                )
                if not drivers:
                    logging.warning(f"No active drivers in zone {zone_key}; {len(deliveries)} deliveries left pending")
                    continue
                loads = {driver.id: self._driver_load(driver.id, day) for driver in drivers}
                for delivery in deliveries:
                    driver = min(
                        (candidate for candidate in drivers if loads[candidate.id] < _capacity(candidate)),
                        key=lambda candidate: loads[candidate.id],
                        default=None,
                    )
                    if driver is None:
                        logging.warning(f"Drivers in zone {zone_key} are at capacity for {day}")
                        break
                    state_machine.assign_driver(delivery, driver.id)
                    self.store.update(delivery)
                    loads[driver.id] += 1
                    assigned += 1
        logging.info(f"Auto-assigned {assigned} of {len(pending)} pending deliveries for {day}")
        return {"assigned": assigned, "unassigned": len(pending) - assigned}

    def zone_summary(self, zone_id: str, day: date) -> dict:
        zone = require(self.store, Zone, zone_id)
        deliveries = self.store.find(Delivery, zone_id=zone.id, scheduled_date=day)
        counts = Counter(DeliveryStatus(delivery.status).value for delivery in deliveries)
        return {
            "zone_id": zone.id,
            "zone_name": zone.name,
            "total": len(deliveries),
            **{status.value: counts.get(status.value, 0) for status in DeliveryStatus},
            "unassigned": sum(
                1
                for delivery in deliveries
                if delivery.status == DeliveryStatus.PENDING and delivery.driver_id is None
            ),
        }

    def dispatch(self, delivery_id: str) -> Delivery:
        with self.store.transaction():
            delivery = self.get(delivery_id)
            state_machine.mark_out_for_delivery(delivery)
            self.store.update(delivery)
            order = require(self.store, Order, delivery.order_id)
            if state_machine.mark_order_out_for_delivery(order):
                self.store.update(order)
            elif order.status != OrderStatus.OUT_FOR_DELIVERY:
                logging.warning(
                    f"Order {order.id} left in status {OrderStatus(order.status).value} "
                    f"while delivery {delivery_id} went out for delivery"
                )
        logging.info(f"Delivery {delivery_id} out for delivery")
        return delivery

    def complete(
        self,
        delivery_id: str,
        proof_image: Optional[str],
        *,
        bottles_issued: Sequence[str] = (),
        bottles_returned: Sequence[str] = (),
        returned_condition: str = CONDITION_GOOD,
        actor: ActorKind = ActorKind.DRIVER,
        actor_id: Optional[str] = None,
    ) -> Delivery:
        """Mark the delivery delivered, sync the order and record bottle hand-overs in one transaction."""
        with self.store.transaction():
            delivery = self.get(delivery_id)
            state_machine.mark_delivered(delivery, proof_image)
            self.store.update(delivery)

            order = require(self.store, Order, delivery.order_id)
            if state_machine.mark_order_delivered(order, now=delivery.delivered_at):
                self.store.update(order)
            elif settings.strict_order_sync:
                raise PreconditionViolation(
                    f"Order {order.id} is {OrderStatus(order.status).value}, not out for delivery.",
                    kind="order out of sync",
                )
            else:
                logging.warning(
                    f"Order {order.id} not marked delivered: status is {OrderStatus(order.status).value}, "
                    f"expected out_for_delivery (delivery {delivery_id})"
                )

            actor_id = actor_id or delivery.driver_id
            for bottle_id in bottles_issued:
                self.bottles.issue(
                    bottle_id,
                    delivery.user_id,
                    delivery.subscription_id,
                    delivery_id=delivery.id,
                    actor=actor,
                    actor_id=actor_id,
                )
            for bottle_id in bottles_returned:
                self.bottles.return_bottle(
                    bottle_id,
                    returned_condition,
                    delivery_id=delivery.id,
                    actor=actor,
                    actor_id=actor_id,
                )
        logging.info(
            f"Delivery {delivery_id} delivered; bottles issued {len(bottles_issued)}, returned {len(bottles_returned)}"
        )
        return delivery

    def fail(self, delivery_id: str, reason: str) -> Delivery:
        with self.store.transaction():
            delivery = self.get(delivery_id)
            state_machine.mark_failed(delivery, reason)
            self.store.update(delivery)
        logging.warning(f"Delivery {delivery_id} failed: {reason}")
        return delivery

    def cancel(self, delivery_id: str) -> Delivery:
        with self.store.transaction():
            delivery = self.get(delivery_id)
            state_machine.cancel(delivery)
            self.store.update(delivery)
        logging.info(f"Delivery {delivery_id} cancelled")
        return delivery

    def verify_proof(self, delivery_id: str, verifier_id: str) -> Delivery:
        with self.store.transaction():
            delivery = self.get(delivery_id)
            state_machine.verify_proof(delivery, verifier_id)
            self.store.update(delivery)
        logging.info(f"Delivery {delivery_id} proof verified by {verifier_id}")
        return delivery

    def store_proof_image(self, delivery_id: str, payload: bytes) -> str:
        """Validate and save an uploaded proof image; returns the path to pass to ``complete``."""
        delivery = self.get(delivery_id)
        if delivery.status != DeliveryStatus.OUT_FOR_DELIVERY:
            raise state_machine.invalid_transition(delivery, "upload proof for")
        return self.files.save_proof_image(delivery.id, delivery.scheduled_date, payload)

    def record_location(
        self,
        delivery_id: str,
        latitude: float,
        longitude: float,
        *,
        accuracy: Optional[float] = None,
        speed: Optional[float] = None,
        heading: Optional[float] = None,
    ) -> DeliveryTracking:
        if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
            raise ValueError("Coordinates are out of range.")
        delivery = self.get(delivery_id)
        if delivery.status != DeliveryStatus.OUT_FOR_DELIVERY or delivery.driver_id is None:
            raise state_machine.invalid_transition(delivery, "track")
        point = DeliveryTracking(
            delivery_id=delivery.id,
            driver_id=delivery.driver_id,
            latitude=latitude,
            longitude=longitude,
            tracked_at=clock.now(),
            accuracy=accuracy,
            speed=speed,
            heading=heading,
            status=DeliveryStatus(delivery.status).value,
        )
        with self.store.transaction():
            self.store.add(point)
        return point

    def latest_location(self, delivery_id: str) -> DeliveryTracking | None:
        points = self.store.find(DeliveryTracking, delivery_id=delivery_id)
        return max(points, key=lambda point: point.tracked_at.timestamp(), default=None)

    def eta(self, delivery_id: str) -> dict | None:
        delivery = self.get(delivery_id)
        point = self.latest_location(delivery_id)
        address = self.store.get(UserAddress, delivery.user_address_id)
        if point is None or address is None or address.latitude is None or address.longitude is None:
            return None
        return eta_minutes(point.latitude, point.longitude, address.latitude, address.longitude)

    def timeline(self, delivery_id: str) -> list[dict]:
        return state_machine.timeline(self.get(delivery_id))
