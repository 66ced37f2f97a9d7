from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from freshtick.errors import NotServiceable, PreconditionViolation, RecordNotFound
from freshtick.models.domain import (
    FrequencyType,
    ProductZone,
    Subscription,
    SubscriptionPlan,
    SubscriptionPlanItem,
    SubscriptionStatus,
    UserAddress,
    Zone,
)
from freshtick.persistence.store import InMemoryStore
from freshtick.services.subscriptions import lifecycle
from freshtick.services.subscriptions.service import SubscriptionService

START = date(2024, 3, 4)
DAILY = SubscriptionPlan(name="Daily 500ml", frequency_type=FrequencyType.DAILY)


def _subscription(**overrides) -> Subscription:
    data = {
        "user_id": "u1",
        "user_address_id": "a1",
        "subscription_plan_id": "p1",
        "start_date": START,
        "next_delivery_date": START,
    }
    data.update(overrides)
    return Subscription(**data)


def test_pause_and_resume() -> None:
    subscription = _subscription()

    lifecycle.pause(subscription, until=date(2024, 3, 10))
    assert subscription.status == SubscriptionStatus.PAUSED
    assert subscription.paused_until == date(2024, 3, 10)

    lifecycle.resume(subscription, DAILY, today=date(2024, 3, 8))
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.paused_until is None
    assert subscription.next_delivery_date == date(2024, 3, 9)


def test_illegal_transitions_leave_status_unchanged() -> None:
    subscription = _subscription()

    with pytest.raises(PreconditionViolation):
        lifecycle.resume(subscription, DAILY)
    lifecycle.pause(subscription)
    with pytest.raises(PreconditionViolation):
        lifecycle.pause(subscription)
    with pytest.raises(PreconditionViolation):
        lifecycle.set_vacation(subscription, DAILY, START, START)
    assert subscription.status == SubscriptionStatus.PAUSED


def test_cancel_is_terminal() -> None:
    subscription = _subscription()
    lifecycle.cancel(subscription, "moving out", now=datetime(2024, 3, 5, 8, 0))

    assert subscription.cancelled_at == datetime(2024, 3, 5, 8, 0)
    assert subscription.cancellation_reason == "moving out"
    for operation in (
        lambda: lifecycle.pause(subscription),
        lambda: lifecycle.resume(subscription, DAILY),
        lambda: lifecycle.set_vacation(subscription, DAILY, START, START),
        lambda: lifecycle.cancel(subscription),
    ):
        with pytest.raises(PreconditionViolation):
            operation()
        assert subscription.status == SubscriptionStatus.CANCELLED


def test_expired_subscription_can_be_cancelled() -> None:
    subscription = _subscription(status=SubscriptionStatus.EXPIRED)

    lifecycle.cancel(subscription)

    assert subscription.status == SubscriptionStatus.CANCELLED


def test_vacation_moves_next_delivery_out_of_window() -> None:
    subscription = _subscription(next_delivery_date=START + timedelta(days=1))

    lifecycle.set_vacation(subscription, DAILY, START + timedelta(days=1), START + timedelta(days=3))

    assert subscription.next_delivery_date == START + timedelta(days=4)
    lifecycle.clear_vacation(subscription)
    assert subscription.vacation_start is None and subscription.vacation_end is None


def test_vacation_outside_next_delivery_keeps_date() -> None:
    subscription = _subscription()

    lifecycle.set_vacation(subscription, DAILY, START + timedelta(days=5), START + timedelta(days=6))

    assert subscription.next_delivery_date == START


def test_vacation_requires_ordered_window() -> None:
    with pytest.raises(ValueError):
        lifecycle.set_vacation(_subscription(), DAILY, START, START - timedelta(days=1))


def test_is_due_for_delivery() -> None:
    subscription = _subscription(vacation_start=date(2024, 3, 10), vacation_end=date(2024, 3, 12))

    assert lifecycle.is_due_for_delivery(subscription, START)
    assert lifecycle.is_due_for_delivery(subscription, START + timedelta(days=2))
    assert not lifecycle.is_due_for_delivery(subscription, START - timedelta(days=1))
    assert not lifecycle.is_due_for_delivery(subscription, date(2024, 3, 11))
    lifecycle.pause(subscription)
    assert not lifecycle.is_due_for_delivery(subscription, START)


@pytest.mark.parametrize(
    ("now", "start_date", "expected"),
    [
        (datetime(2024, 3, 15, 10, 0), date(2024, 2, 1), True),
        (datetime(2024, 3, 15, 10, 0), date(2024, 1, 31), False),
        (datetime(2024, 3, 1, 0, 0), date(2024, 2, 1), True),
        (datetime(2024, 1, 10, 10, 0), date(2023, 12, 1), True),
        (datetime(2024, 1, 10, 10, 0), date(2023, 11, 30), False),
    ],
)
def test_can_edit_month_boundary(now: datetime, start_date: date, expected: bool) -> None:
    assert lifecycle.can_edit(_subscription(start_date=start_date), now=now) is expected


def test_cancelled_subscription_cannot_be_edited() -> None:
    subscription = _subscription(status=SubscriptionStatus.CANCELLED)

    assert not lifecycle.can_edit(subscription, now=datetime(2024, 3, 5))


def _service_fixture() -> tuple[InMemoryStore, UserAddress, SubscriptionPlan]:
    store = InMemoryStore()
    store.add(Zone(name="Edappally", code="EDP", pincodes=["682024"]))
    address = store.add(UserAddress(user_id="u1", pincode="682024"))
    plan = store.add(SubscriptionPlan(name="Alternate 1L", frequency_type=FrequencyType.ALTERNATE_DAYS))
    return store, address, plan


def test_create_subscription_assigns_zone_and_first_delivery() -> None:
    store, address, plan = _service_fixture()

    subscription = SubscriptionService(store).create_subscription("u1", address.id, plan.id, START)

    assert subscription.next_delivery_date == START
    assert subscription.version == 1
    assert store.get(UserAddress, address.id).zone_id is not None


def test_create_subscription_rejects_unserviceable_address() -> None:
    store, _, plan = _service_fixture()
    address = store.add(UserAddress(user_id="u1", pincode="560001"))

    with pytest.raises(NotServiceable):
        SubscriptionService(store).create_subscription("u1", address.id, plan.id, START)
    assert store.find(Subscription) == []


def test_create_subscription_rejects_inactive_plan_and_foreign_address() -> None:
    store, address, plan = _service_fixture()
    retired = store.add(SubscriptionPlan(name="Retired", is_active=False))
    service = SubscriptionService(store)

    with pytest.raises(PreconditionViolation):
        service.create_subscription("u1", address.id, retired.id, START)
    with pytest.raises(PreconditionViolation):
        service.create_subscription("u2", address.id, plan.id, START)
    with pytest.raises(RecordNotFound):
        service.create_subscription("u1", "missing", plan.id, START)


def _item(product_id: str) -> SubscriptionPlanItem:
    return SubscriptionPlanItem(product_id=product_id, price=Decimal("60"))


def test_create_subscription_requires_products_in_zone() -> None:
    store, address, _ = _service_fixture()
    zone = store.find(Zone, code="EDP")[0]
    store.add(ProductZone(product_id="milk-1l", zone_id=zone.id))
    store.add(ProductZone(product_id="ghee-200", zone_id=zone.id, is_available=False))
    service = SubscriptionService(store)

    for product_id in ("ghee-200", "paneer-250"):
        plan = store.add(SubscriptionPlan(name=product_id, items=[_item("milk-1l"), _item(product_id)]))
        with pytest.raises(PreconditionViolation) as excinfo:
            service.create_subscription("u1", address.id, plan.id, START)
        assert excinfo.value.kind == "product unavailable"
        assert product_id in str(excinfo.value)
    assert store.find(Subscription) == []

    milk = store.add(SubscriptionPlan(name="Milk", items=[_item("milk-1l")]))
    assert service.create_subscription("u1", address.id, milk.id, START).status == SubscriptionStatus.ACTIVE


def test_create_subscription_rejects_duplicate_active_products() -> None:
    store, address, _ = _service_fixture()
    zone = store.find(Zone, code="EDP")[0]
    for product_id in ("milk-1l", "curd-400"):
        store.add(ProductZone(product_id=product_id, zone_id=zone.id))
    milk = store.add(
        SubscriptionPlan(name="Milk", items=[SubscriptionPlanItem(product_id="milk-1l", price=Decimal("60"))])
    )
    combo = store.add(
        SubscriptionPlan(
            name="Milk and curd",
            items=[
                SubscriptionPlanItem(product_id="curd-400", price=Decimal("40")),
                SubscriptionPlanItem(product_id="milk-1l", price=Decimal("60")),
            ],
        )
    )
    curd = store.add(
        SubscriptionPlan(name="Curd", items=[SubscriptionPlanItem(product_id="curd-400", price=Decimal("40"))])
    )
    service = SubscriptionService(store)
    first = service.create_subscription("u1", address.id, milk.id, START)

    with pytest.raises(PreconditionViolation) as excinfo:
        service.create_subscription("u1", address.id, combo.id, START)
    assert excinfo.value.kind == "duplicate subscription"
    assert "milk-1l" in str(excinfo.value)
    service.create_subscription("u1", address.id, curd.id, START)

    other = store.add(UserAddress(user_id="u2", pincode="682024"))
    service.create_subscription("u2", other.id, milk.id, START)

    service.cancel(first.id)
    with pytest.raises(PreconditionViolation):
        service.create_subscription("u1", address.id, combo.id, START)
    service.create_subscription("u1", address.id, milk.id, START)
    assert len(store.find(Subscription, user_id="u1", status=SubscriptionStatus.ACTIVE)) == 2


def test_service_persists_transitions() -> None:
    store, address, plan = _service_fixture()
    service = SubscriptionService(store)
    subscription = service.create_subscription("u1", address.id, plan.id, START)

    service.pause(subscription.id)
    stored = store.get(Subscription, subscription.id)
    assert stored.status == SubscriptionStatus.PAUSED
    assert stored.version == 2

    with pytest.raises(PreconditionViolation):
        service.pause(subscription.id)
    assert store.get(Subscription, subscription.id).version == 2

    service.resume(subscription.id, today=date(2024, 3, 10))
    assert store.get(Subscription, subscription.id).next_delivery_date == date(2024, 3, 12)
    assert service.upcoming(subscription.id, 3, today=date(2024, 3, 10)) == [
        date(2024, 3, 12),
        date(2024, 3, 14),
        date(2024, 3, 16),
    ]


def test_due_subscriptions() -> None:
    store, address, plan = _service_fixture()
    service = SubscriptionService(store)
    due = service.create_subscription("u1", address.id, plan.id, START)
    later = service.create_subscription("u1", address.id, plan.id, START + timedelta(days=3))
    cancelled = service.create_subscription("u1", address.id, plan.id, START)
    service.cancel(cancelled.id)

    assert [item.id for item in service.due_subscriptions(START)] == [due.id]
    assert {item.id for item in service.due_subscriptions(START + timedelta(days=3))} == {due.id, later.id}
