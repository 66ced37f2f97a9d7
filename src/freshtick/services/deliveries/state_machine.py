"""Delivery status transitions and the paired order status helpers.

Every function validates the current status with an exhaustive ``match`` and
raises ``PreconditionViolation`` without touching the record when the
transition is not allowed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from ... import clock
from ...errors import PreconditionViolation
from ...models.domain import Delivery, DeliveryStatus, Order, OrderStatus

INVALID_DELIVERY_TRANSITION = "invalid delivery transition"


def invalid_transition(delivery: Delivery, operation: str, detail: str = "") -> PreconditionViolation:
    status = DeliveryStatus(delivery.status).value
    message = f"Cannot {operation} delivery {delivery.id or '<unsaved>'} in status '{status}'"
    if detail:
        message = f"{message}: {detail}"
    return PreconditionViolation(f"{message}.", kind=INVALID_DELIVERY_TRANSITION)


def assign_driver(delivery: Delivery, driver_id: str, *, now: datetime | None = None) -> Delivery:
    if not driver_id:
        raise invalid_transition(delivery, "assign", "driver is required")
    match DeliveryStatus(delivery.status):
        case DeliveryStatus.PENDING | DeliveryStatus.ASSIGNED:
            delivery.driver_id = driver_id
            delivery.status = DeliveryStatus.ASSIGNED
            delivery.assigned_at = now or clock.now()
            return delivery
        case (
            DeliveryStatus.OUT_FOR_DELIVERY
            | DeliveryStatus.DELIVERED
            | DeliveryStatus.FAILED
            | DeliveryStatus.CANCELLED
        ):
            raise invalid_transition(delivery, "assign a driver to")


def mark_out_for_delivery(delivery: Delivery, *, now: datetime | None = None) -> Delivery:
    match DeliveryStatus(delivery.status):
        case DeliveryStatus.ASSIGNED:
            if not delivery.driver_id:
                raise invalid_transition(delivery, "dispatch", "no driver assigned")
            delivery.status = DeliveryStatus.OUT_FOR_DELIVERY
            delivery.dispatched_at = now or clock.now()
            return delivery
        case (
            DeliveryStatus.PENDING
            | DeliveryStatus.OUT_FOR_DELIVERY
            | DeliveryStatus.DELIVERED
            | DeliveryStatus.FAILED
            | DeliveryStatus.CANCELLED
        ):
            raise invalid_transition(delivery, "dispatch")


def mark_delivered(delivery: Delivery, proof_image: Optional[str], *, now: datetime | None = None) -> Delivery:
    match DeliveryStatus(delivery.status):
        case DeliveryStatus.OUT_FOR_DELIVERY:
            if not proof_image or not str(proof_image).strip():
                raise invalid_transition(delivery, "complete", "proof of delivery image is required")
            delivery.status = DeliveryStatus.DELIVERED
            delivery.delivery_proof_image = proof_image
            delivery.delivered_at = now or clock.now()
            return delivery
        case (
            DeliveryStatus.PENDING
            | DeliveryStatus.ASSIGNED
            | DeliveryStatus.DELIVERED
            | DeliveryStatus.FAILED
            | DeliveryStatus.CANCELLED
        ):
            raise invalid_transition(delivery, "complete")


def mark_failed(delivery: Delivery, reason: str) -> Delivery:
    match DeliveryStatus(delivery.status):
        case DeliveryStatus.ASSIGNED | DeliveryStatus.OUT_FOR_DELIVERY:
            delivery.status = DeliveryStatus.FAILED
            delivery.failure_reason = reason
            return delivery
        case DeliveryStatus.PENDING | DeliveryStatus.DELIVERED | DeliveryStatus.FAILED | DeliveryStatus.CANCELLED:
            raise invalid_transition(delivery, "fail")


def cancel(delivery: Delivery, *, now: datetime | None = None) -> Delivery:
    match DeliveryStatus(delivery.status):
        case (
            DeliveryStatus.PENDING
            | DeliveryStatus.ASSIGNED
            | DeliveryStatus.OUT_FOR_DELIVERY
            | DeliveryStatus.FAILED
        ):
            delivery.status = DeliveryStatus.CANCELLED
            delivery.cancelled_at = now or clock.now()
            return delivery
        case DeliveryStatus.DELIVERED | DeliveryStatus.CANCELLED:
            raise invalid_transition(delivery, "cancel")


def verify_proof(delivery: Delivery, verifier_id: str, *, now: datetime | None = None) -> Delivery:
    """Mark the proof image as checked. The delivery status is left alone."""
    if not delivery.delivery_proof_image:
        raise invalid_transition(delivery, "verify proof of", "no proof image uploaded")
    delivery.delivery_proof_verified = True
    delivery.delivery_proof_verified_by = verifier_id
    delivery.delivery_proof_verified_at = now or clock.now()
    return delivery


def is_complete(delivery: Delivery) -> bool:
    return delivery.status == DeliveryStatus.DELIVERED


def is_in_progress(delivery: Delivery) -> bool:
    return delivery.status in (DeliveryStatus.ASSIGNED, DeliveryStatus.OUT_FOR_DELIVERY)


def timeline(delivery: Delivery) -> list[dict]:
    """Chronological events for display, skipping steps that have not happened."""
    events = [
        ("created", "Delivery Created", delivery.created_at),
        ("assigned", "Driver Assigned", delivery.assigned_at),
        ("out_for_delivery", "Out for Delivery", delivery.dispatched_at),
        ("delivered", "Delivered", delivery.delivered_at),
        ("cancelled", "Cancelled", delivery.cancelled_at),
    ]
    entries = [
        {"status": key, "label": label, "timestamp": stamp}
        for key, label, stamp in events
        if stamp is not None
    ]
    if delivery.status == DeliveryStatus.FAILED:
        entries.append({"status": "failed", "label": "Failed", "timestamp": None, "reason": delivery.failure_reason})
    return entries


def mark_order_out_for_delivery(order: Order) -> bool:
    """Move the order along with its delivery. Returns False when the order is already settled."""
    match OrderStatus(order.status):
        case OrderStatus.PENDING | OrderStatus.CONFIRMED | OrderStatus.PROCESSING:
            order.status = OrderStatus.OUT_FOR_DELIVERY
            return True
        case (
            OrderStatus.OUT_FOR_DELIVERY
            | OrderStatus.DELIVERED
            | OrderStatus.CANCELLED
            | OrderStatus.REFUNDED
        ):
            return False


def mark_order_delivered(order: Order, *, now: datetime | None = None) -> bool:
    """Only an order that is out for delivery becomes delivered; anything else is left as is."""
    if order.status != OrderStatus.OUT_FOR_DELIVERY:
        return False
    order.status = OrderStatus.DELIVERED
    order.delivered_at = now or clock.now()
    return True
