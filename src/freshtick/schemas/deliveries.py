"""Pydantic request/response models for orders, drivers and deliveries."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from ..models.domain import DeliveryStatus, OrderStatus


class OrderCreate(BaseModel):
    user_id: str
    user_address_id: str
    scheduled_date: date
    notes: Optional[str] = None


class OrderModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    status: OrderStatus
    subscription_id: Optional[str]
    scheduled_date: Optional[date]
    delivered_at: Optional[datetime]


class DriverCreate(BaseModel):
    name: str
    zone_id: Optional[str] = None
    max_deliveries_per_day: Optional[int] = Field(default=None, ge=1)


class DriverModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    zone_id: Optional[str]
    is_active: bool
    max_deliveries_per_day: Optional[int]


class DeliveryModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_id: str
    user_id: str
    user_address_id: str
    zone_id: str
    subscription_id: Optional[str]
    driver_id: Optional[str]
    scheduled_date: date
    status: DeliveryStatus
    assigned_at: Optional[datetime]
    dispatched_at: Optional[datetime]
    delivered_at: Optional[datetime]
    delivery_proof_image: Optional[str]
    delivery_proof_verified: bool
    delivery_proof_verified_by: Optional[str]
    failure_reason: Optional[str]
    cancelled_at: Optional[datetime]
    notes: Optional[str]
    version: int


class CreatedOrderResponse(BaseModel):
    order: OrderModel
    delivery: DeliveryModel


class AssignRequest(BaseModel):
    driver_id: str


class CompleteRequest(BaseModel):
    proof_image: str = Field(..., description="Path returned by the proof upload endpoint.")
    bottles_issued: Sequence[str] = Field(default_factory=list)
    bottles_returned: Sequence[str] = Field(default_factory=list)
    returned_condition: str = Field(default="good", pattern="^(good|damaged)$")


class FailRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class VerifyProofRequest(BaseModel):
    verifier_id: str


class ProofUploadResponse(BaseModel):
    path: str


class LocationUpdate(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0)
    speed: Optional[float] = Field(default=None, ge=0)
    heading: Optional[float] = Field(default=None, ge=0, le=360)


class LocationModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    delivery_id: str
    driver_id: str
    latitude: float
    longitude: float
    tracked_at: datetime
    accuracy: Optional[float]
    speed: Optional[float]
    heading: Optional[float]


class EtaResponse(BaseModel):
    distance_km: float
    eta_minutes: int


class TimelineEntry(BaseModel):
    status: str
    label: str
    timestamp: Optional[datetime] = None
    reason: Optional[str] = None


class GenerationResult(BaseModel):
    date: date
    processed: int
    created: int
    skipped: int
    failed: int
    errors: list[str]


class BulkAssignRequest(BaseModel):
    delivery_ids: Sequence[str] = Field(min_length=1)


class AutoAssignResult(BaseModel):
    assigned: int
    unassigned: int


class DriverCapacity(BaseModel):
    driver_id: str
    driver_name: str
    assigned: int
    capacity: int
    available: int
    utilization: float


class ZoneDeliverySummary(BaseModel):
    zone_id: str
    zone_name: str
    total: int
    pending: int
    assigned: int
    out_for_delivery: int
    delivered: int
    failed: int
    cancelled: int
    unassigned: int
