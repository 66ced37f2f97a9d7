"""Domain models for zones, subscriptions, deliveries and bottles."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


class BusinessVertical(str, Enum):
    DAILY_FRESH = "daily_fresh"
    SOCIETY_FRESH = "society_fresh"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class BillingCycle(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class FrequencyType(str, Enum):
    DAILY = "daily"
    ALTERNATE_DAYS = "alternate_days"
    WEEKLY = "weekly"
    CUSTOM = "custom"


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"


class BottleStatus(str, Enum):
    AVAILABLE = "available"
    ISSUED = "issued"
    RETURNED = "returned"
    DAMAGED = "damaged"
    LOST = "lost"


class BottleAction(str, Enum):
    ISSUED = "issued"
    RETURNED = "returned"
    DAMAGED = "damaged"
    LOST = "lost"
    FOUND = "found"


class ActorKind(str, Enum):
    SYSTEM = "system"
    DRIVER = "driver"
    ADMIN = "admin"
    CUSTOMER = "customer"


@dataclass(slots=True)
class Zone:
    """A service area defined by a polygon boundary and/or a pincode set.

    ``boundary_coordinates`` holds ``[lat, lng]`` pairs exactly as stored, so
    corrupt entries survive loading and are dealt with by the resolver.
    ``service_days`` uses Sunday-based weekday indexes (0 = Sunday).
    """

    name: str
    code: str
    boundary_coordinates: list[Any] = field(default_factory=list)
    pincodes: list[str] = field(default_factory=list)
    service_days: list[int] = field(default_factory=list)
    service_time_start: Optional[time] = None
    service_time_end: Optional[time] = None
    verticals: list[str] = field(default_factory=list)
    delivery_charge: Decimal = Decimal("0")
    min_order_amount: Decimal = Decimal("0")
    city: Optional[str] = None
    state: Optional[str] = None
    is_active: bool = True
    deleted_at: Optional[datetime] = None
    id: Optional[str] = None
    version: int = 0


@dataclass(slots=True)
class ZoneOverride:
    """Grants a user or an address access to a zone outside the normal rules."""

    zone_id: str
    user_id: Optional[str] = None
    address_id: Optional[str] = None
    reason: Optional[str] = None
    overridden_by: Optional[str] = None
    expires_at: Optional[datetime] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    id: Optional[str] = None
    version: int = 0


@dataclass(slots=True)
class UserAddress:
    user_id: str
    pincode: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    zone_id: Optional[str] = None
    is_active: bool = True
    id: Optional[str] = None
    version: int = 0


@dataclass(slots=True)
class ProductZone:
    """Per-zone availability and price override for a catalog product."""

    product_id: str
    zone_id: str
    is_available: bool = True
    price_override: Optional[Decimal] = None
    stock_quantity: Optional[int] = None
    id: Optional[str] = None
    version: int = 0


@dataclass(slots=True)
class SubscriptionPlanItem:
    product_id: str
    units: int = 1
    price: Decimal = Decimal("0")


@dataclass(slots=True)
class SubscriptionPlan:
    name: str
    frequency_type: FrequencyType = FrequencyType.DAILY
    frequency_value: Optional[int] = None
    days_of_week: Optional[list[int]] = None
    discount_percent: Decimal = Decimal("0")
    is_active: bool = True
    items: list[SubscriptionPlanItem] = field(default_factory=list)
    id: Optional[str] = None
    version: int = 0


@dataclass(slots=True)
class Subscription:
    user_id: str
    user_address_id: str
    subscription_plan_id: str
    start_date: date
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    end_date: Optional[date] = None
    next_delivery_date: Optional[date] = None
    paused_until: Optional[date] = None
    vacation_start: Optional[date] = None
    vacation_end: Optional[date] = None
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    auto_renew: bool = True
    vertical: Optional[str] = None
    bottles_issued: int = 0
    bottles_returned: int = 0
    bottles_written_off: int = 0
    cancelled_at: Optional[datetime] = None
    cancellation_reason: Optional[str] = None
    id: Optional[str] = None
    version: int = 0

    @property
    def bottles_outstanding(self) -> int:
        """Bottles still held under this subscription."""
        return self.bottles_issued - self.bottles_returned - self.bottles_written_off


@dataclass(slots=True)
class Order:
    """The slice of the order aggregate that delivery events write to."""

    user_id: str
    status: OrderStatus = OrderStatus.PENDING
    subscription_id: Optional[str] = None
    scheduled_date: Optional[date] = None
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    id: Optional[str] = None
    version: int = 0


@dataclass(slots=True)
class Driver:
    name: str
    zone_id: Optional[str] = None
    is_active: bool = True
    max_deliveries_per_day: Optional[int] = None
    id: Optional[str] = None
    version: int = 0


@dataclass(slots=True)
class Delivery:
    order_id: str
    user_id: str
    user_address_id: str
    zone_id: str
    scheduled_date: date
    subscription_id: Optional[str] = None
    driver_id: Optional[str] = None
    status: DeliveryStatus = DeliveryStatus.PENDING
    assigned_at: Optional[datetime] = None
    dispatched_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    delivery_proof_image: Optional[str] = None
    delivery_proof_verified: bool = False
    delivery_proof_verified_by: Optional[str] = None
    delivery_proof_verified_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    id: Optional[str] = None
    version: int = 0


@dataclass(slots=True)
class DeliveryTracking:
    """A single driver location ping recorded while a delivery is on the road."""

    delivery_id: str
    driver_id: str
    latitude: float
    longitude: float
    tracked_at: datetime
    accuracy: Optional[float] = None
    speed: Optional[float] = None
    heading: Optional[float] = None
    status: Optional[str] = None
    id: Optional[str] = None
    version: int = 0


@dataclass(slots=True)
class Bottle:
    bottle_number: str
    type: str = "standard"
    status: BottleStatus = BottleStatus.AVAILABLE
    barcode: Optional[str] = None
    capacity: Optional[Decimal] = None
    current_user_id: Optional[str] = None
    current_subscription_id: Optional[str] = None
    purchase_cost: Optional[Decimal] = None
    deposit_amount: Optional[Decimal] = None
    issued_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    damaged_at: Optional[datetime] = None
    notes: Optional[str] = None
    id: Optional[str] = None
    version: int = 0


@dataclass(slots=True)
class BottleLog:
    """Immutable audit entry for a bottle transition."""

    bottle_id: str
    action: BottleAction
    action_by: ActorKind = ActorKind.SYSTEM
    action_by_id: Optional[str] = None
    user_id: Optional[str] = None
    subscription_id: Optional[str] = None
    delivery_id: Optional[str] = None
    condition: Optional[str] = None
    notes: Optional[str] = None
    deposit_amount: Optional[Decimal] = None
    refund_amount: Optional[Decimal] = None
    created_at: Optional[datetime] = None
    id: Optional[str] = None
    version: int = 0
