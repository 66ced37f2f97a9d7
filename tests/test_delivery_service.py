import io
import logging
from collections import Counter
from datetime import date
from decimal import Decimal

import pytest
from PIL import Image

from freshtick.config import settings
from freshtick.errors import ConcurrentModification, PreconditionViolation
from freshtick.models.domain import (
    Bottle,
    BottleLog,
    BottleStatus,
    Delivery,
    DeliveryStatus,
    DeliveryTracking,
    Driver,
    Order,
    OrderStatus,
    Subscription,
    UserAddress,
    Zone,
)
from freshtick.persistence.filesystem import FileStorage
from freshtick.persistence.store import InMemoryStore
from freshtick.services.deliveries import state_machine
from freshtick.services.deliveries.service import DeliveryService

DAY = date(2024, 5, 2)


def _png_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), (240, 240, 240)).save(buffer, format="PNG")
    return buffer.getvalue()


PNG = _png_bytes()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def service(store: InMemoryStore, tmp_path) -> DeliveryService:
    return DeliveryService(store, FileStorage(root=tmp_path))


@pytest.fixture
def delivery(store: InMemoryStore, service: DeliveryService) -> Delivery:
    zone = store.add(Zone(name="Vyttila", code="VYT", pincodes=["682019"]))
    address = store.add(
        UserAddress(user_id="u1", pincode="682019", latitude=9.9674, longitude=76.3183, zone_id=zone.id)
    )
    subscription = store.add(
        Subscription(user_id="u1", user_address_id=address.id, subscription_plan_id="p1", start_date=DAY)
    )
    order = store.add(
        Order(user_id="u1", status=OrderStatus.CONFIRMED, subscription_id=subscription.id, scheduled_date=DAY)
    )
    store.add(Driver(name="Anil", zone_id=zone.id, id="drv1"))
    return service.create_for_order(order.id, address.id, DAY)


def _dispatched(service: DeliveryService, delivery: Delivery) -> Delivery:
    service.assign(delivery.id, "drv1")
    return service.dispatch(delivery.id)


def test_delivery_requires_zoned_address(store: InMemoryStore, service: DeliveryService) -> None:
    address = store.add(UserAddress(user_id="u1", pincode="000000"))
    order = store.add(Order(user_id="u1"))

    with pytest.raises(PreconditionViolation) as excinfo:
        service.create_for_order(order.id, address.id, DAY)

    assert excinfo.value.kind == "unassigned address"


def test_inactive_driver_cannot_be_assigned(store: InMemoryStore, service: DeliveryService, delivery: Delivery) -> None:
    store.add(Driver(name="Retired", is_active=False, id="drv9"))

    with pytest.raises(PreconditionViolation):
        service.assign(delivery.id, "drv9")

    assert store.get(Delivery, delivery.id).status == DeliveryStatus.PENDING


def test_complete_syncs_order(store: InMemoryStore, service: DeliveryService, delivery: Delivery) -> None:
    _dispatched(service, delivery)
    assert store.get(Order, delivery.order_id).status == OrderStatus.OUT_FOR_DELIVERY

    completed = service.complete(delivery.id, "delivery-proofs/2024/05/02/x.png")

    order = store.get(Order, delivery.order_id)
    assert completed.status == DeliveryStatus.DELIVERED
    assert order.status == OrderStatus.DELIVERED
    assert order.delivered_at == completed.delivered_at
    assert [entry["status"] for entry in service.timeline(delivery.id)] == [
        "created",
        "assigned",
        "out_for_delivery",
        "delivered",
    ]


def test_complete_warns_when_order_out_of_sync(
    store: InMemoryStore,
    service: DeliveryService,
    delivery: Delivery,
    caplog: pytest.LogCaptureFixture,
) -> None:
    _dispatched(service, delivery)
    order = store.get(Order, delivery.order_id)
    order.status = OrderStatus.CANCELLED
    store.update(order)

    with caplog.at_level(logging.WARNING):
        service.complete(delivery.id, "proof.png")

    assert store.get(Delivery, delivery.id).status == DeliveryStatus.DELIVERED
    assert store.get(Order, delivery.order_id).status == OrderStatus.CANCELLED
    assert f"Order {order.id} not marked delivered" in caplog.text


def test_dispatch_leaves_cancelled_order_alone(
    store: InMemoryStore,
    service: DeliveryService,
    delivery: Delivery,
    caplog: pytest.LogCaptureFixture,
) -> None:
    order = store.get(Order, delivery.order_id)
    order.status = OrderStatus.CANCELLED
    store.update(order)

    with caplog.at_level(logging.WARNING):
        _dispatched(service, delivery)

    assert store.get(Delivery, delivery.id).status == DeliveryStatus.OUT_FOR_DELIVERY
    assert store.get(Order, delivery.order_id).status == OrderStatus.CANCELLED
    assert f"Order {order.id} left in status cancelled" in caplog.text


def test_strict_order_sync_rolls_back(
    store: InMemoryStore,
    service: DeliveryService,
    delivery: Delivery,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(settings, "strict_order_sync", True)
    _dispatched(service, delivery)
    order = store.get(Order, delivery.order_id)
    order.status = OrderStatus.CANCELLED
    store.update(order)

    with pytest.raises(PreconditionViolation) as excinfo:
        service.complete(delivery.id, "proof.png")

    assert excinfo.value.kind == "order out of sync"
    assert store.get(Delivery, delivery.id).status == DeliveryStatus.OUT_FOR_DELIVERY


def test_concurrent_completion_is_rejected(store: InMemoryStore, service: DeliveryService, delivery: Delivery) -> None:
    _dispatched(service, delivery)
    first = store.get(Delivery, delivery.id)
    second = store.get(Delivery, delivery.id)

    state_machine.mark_delivered(first, "a.png")
    store.update(first)
    state_machine.mark_delivered(second, "b.png")
    with pytest.raises(ConcurrentModification):
        store.update(second)

    assert store.get(Delivery, delivery.id).delivery_proof_image == "a.png"


def test_complete_records_bottle_handover(store: InMemoryStore, service: DeliveryService, delivery: Delivery) -> None:
    full = service.bottles.create_bottle(deposit_amount=Decimal("40.00"))
    empty = service.bottles.create_bottle(deposit_amount=Decimal("40.00"))
    service.bottles.issue(empty.id, "u1", delivery.subscription_id)
    _dispatched(service, delivery)

    service.complete(delivery.id, "proof.png", bottles_issued=[full.id], bottles_returned=[empty.id])

    assert store.get(Bottle, full.id).status == BottleStatus.ISSUED
    assert store.get(Bottle, full.id).current_user_id == "u1"
    assert store.get(Bottle, empty.id).status == BottleStatus.AVAILABLE
    subscription = store.get(Subscription, delivery.subscription_id)
    assert (subscription.bottles_issued, subscription.bottles_returned) == (2, 1)
    logs = store.find(BottleLog, delivery_id=delivery.id)
    assert {log.action_by_id for log in logs} == {"drv1"}


def test_failed_bottle_issue_rolls_back_completion(
    store: InMemoryStore, service: DeliveryService, delivery: Delivery
) -> None:
    bottle = service.bottles.create_bottle()
    service.bottles.lose(bottle.id)
    _dispatched(service, delivery)

    with pytest.raises(PreconditionViolation):
        service.complete(delivery.id, "proof.png", bottles_issued=[bottle.id])

    assert store.get(Delivery, delivery.id).status == DeliveryStatus.OUT_FOR_DELIVERY
    assert store.get(Order, delivery.order_id).status == OrderStatus.OUT_FOR_DELIVERY


def test_proof_upload(service: DeliveryService, delivery: Delivery, tmp_path) -> None:
    with pytest.raises(PreconditionViolation):
        service.store_proof_image(delivery.id, PNG)

    _dispatched(service, delivery)
    path = service.store_proof_image(delivery.id, PNG)

    assert path.startswith("delivery-proofs/2024/05/02/")
    assert path.endswith(".png")
    assert (tmp_path / path).read_bytes() == PNG
    with pytest.raises(ValueError):
        service.store_proof_image(delivery.id, b"GIF89a")


def test_location_and_eta(store: InMemoryStore, service: DeliveryService, delivery: Delivery) -> None:
    with pytest.raises(PreconditionViolation):
        service.record_location(delivery.id, 9.97, 76.30)
    _dispatched(service, delivery)
    assert service.eta(delivery.id) is None

    with pytest.raises(ValueError):
        service.record_location(delivery.id, 91.0, 76.30)
    service.record_location(delivery.id, 9.9674, 76.2800, speed=20.0)

    eta = service.eta(delivery.id)
    assert store.find(DeliveryTracking, delivery_id=delivery.id)[0].driver_id == "drv1"
    assert 4.0 < eta["distance_km"] < 4.5
    assert eta["eta_minutes"] == 7


def test_fail_then_cancel(store: InMemoryStore, service: DeliveryService, delivery: Delivery) -> None:
    _dispatched(service, delivery)

    service.fail(delivery.id, "Door locked")
    cancelled = service.cancel(delivery.id)

    assert cancelled.status == DeliveryStatus.CANCELLED
    assert store.get(Delivery, delivery.id).failure_reason == "Door locked"


def _zone_deliveries(store: InMemoryStore, service: DeliveryService, code: str, count: int) -> tuple[Zone, list[Delivery]]:
    zone = store.add(Zone(name=f"Zone {code}", code=code))
    address = store.add(UserAddress(user_id="u2", pincode="682024", zone_id=zone.id))
    deliveries = []
    for _ in range(count):
        order = store.add(Order(user_id="u2", status=OrderStatus.CONFIRMED, scheduled_date=DAY))
        deliveries.append(service.create_for_order(order.id, address.id, DAY))
    return zone, deliveries


def test_auto_assign_respects_driver_capacity(store: InMemoryStore, service: DeliveryService) -> None:
    zone, _ = _zone_deliveries(store, service, "EDP", 5)
    bina = store.add(Driver(name="Bina", zone_id=zone.id, max_deliveries_per_day=2))
    store.add(Driver(name="Chandra", zone_id=zone.id, max_deliveries_per_day=2))
    store.add(Driver(name="Dev", zone_id=zone.id, is_active=False))

    result = service.auto_assign(DAY, zone_id=zone.id)

    assigned = [item for item in store.find(Delivery, zone_id=zone.id) if item.driver_id is not None]
    assert result == {"assigned": 4, "unassigned": 1}
    assert all(item.status == DeliveryStatus.ASSIGNED for item in assigned)
    assert sorted(Counter(item.driver_id for item in assigned).values()) == [2, 2]
    assert service.driver_capacity(bina.id, DAY) == {
        "driver_id": bina.id,
        "driver_name": "Bina",
        "assigned": 2,
        "capacity": 2,
        "available": 0,
        "utilization": 100.0,
    }
    summary = service.zone_summary(zone.id, DAY)
    assert (summary["total"], summary["assigned"], summary["pending"], summary["unassigned"]) == (5, 4, 1, 1)


def test_auto_assign_balances_existing_load(
    store: InMemoryStore, service: DeliveryService, caplog: pytest.LogCaptureFixture
) -> None:
    zone, deliveries = _zone_deliveries(store, service, "EDP", 3)
    empty_zone, _ = _zone_deliveries(store, service, "KLM", 1)
    bina = store.add(Driver(name="Bina", zone_id=zone.id))
    chandra = store.add(Driver(name="Chandra", zone_id=zone.id))
    service.assign(deliveries[0].id, bina.id)

    with caplog.at_level(logging.WARNING):
        result = service.auto_assign(DAY)

    assert result == {"assigned": 2, "unassigned": 1}
    assert len(service.for_date(DAY, driver_id=bina.id)) == 2
    assert len(service.for_date(DAY, driver_id=chandra.id)) == 1
    assert f"No active drivers in zone {empty_zone.id}" in caplog.text
    assert service.auto_assign(DAY) == {"assigned": 0, "unassigned": 1}


def test_default_driver_capacity(
    store: InMemoryStore, service: DeliveryService, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(settings, "default_driver_capacity", 1)
    zone, _ = _zone_deliveries(store, service, "EDP", 2)
    driver = store.add(Driver(name="Bina", zone_id=zone.id))

    assert service.auto_assign(DAY) == {"assigned": 1, "unassigned": 1}
    assert service.driver_capacity(driver.id, DAY)["available"] == 0


def test_assign_many_skips_closed_deliveries(store: InMemoryStore, service: DeliveryService) -> None:
    zone, deliveries = _zone_deliveries(store, service, "EDP", 3)
    driver = store.add(Driver(name="Bina", zone_id=zone.id))
    store.add(Driver(name="Retired", is_active=False, id="drv9"))
    service.cancel(deliveries[2].id)

    assigned = service.assign_many(driver.id, [item.id for item in deliveries])

    assert [item.id for item in assigned] == [deliveries[0].id, deliveries[1].id]
    assert store.get(Delivery, deliveries[2].id).driver_id is None
    with pytest.raises(PreconditionViolation) as excinfo:
        service.assign_many("drv9", [deliveries[0].id])
    assert excinfo.value.kind == "inactive driver"
    assert store.get(Delivery, deliveries[0].id).driver_id == driver.id
