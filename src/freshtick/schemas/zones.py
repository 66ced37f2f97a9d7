"""Pydantic request/response models for zones, addresses and overrides."""

from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.domain import BusinessVertical


class ZoneCreate(BaseModel):
    name: str
    code: str
    boundary_coordinates: Sequence[tuple[float, float]] = Field(
        default_factory=list, description="Polygon vertices as [lat, lng] pairs."
    )
    pincodes: Sequence[str] = Field(default_factory=list)
    service_days: Sequence[int] = Field(default_factory=list, description="0 = Sunday ... 6 = Saturday.")
    service_time_start: Optional[time] = None
    service_time_end: Optional[time] = None
    verticals: Sequence[BusinessVertical] = Field(default_factory=list)
    delivery_charge: Decimal = Decimal("0")
    min_order_amount: Decimal = Decimal("0")
    city: Optional[str] = None
    state: Optional[str] = None
    is_active: bool = True

    @field_validator("service_days")
    @classmethod
    def validate_service_days(cls, value: Sequence[int]) -> Sequence[int]:
        if any(day < 0 or day > 6 for day in value):
            raise ValueError("service_days entries must be between 0 (Sunday) and 6 (Saturday)")
        return value


class ZoneModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    code: str
    boundary_coordinates: list[Any]
    pincodes: list[str]
    service_days: list[int]
    service_time_start: Optional[time]
    service_time_end: Optional[time]
    verticals: list[str]
    delivery_charge: Decimal
    min_order_amount: Decimal
    city: Optional[str]
    state: Optional[str]
    is_active: bool
    version: int


class ZoneOverrideCreate(BaseModel):
    zone_id: str
    user_id: Optional[str] = None
    address_id: Optional[str] = None
    reason: Optional[str] = None
    overridden_by: Optional[str] = None
    expires_at: Optional[datetime] = None


class ZoneOverrideModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    zone_id: str
    user_id: Optional[str]
    address_id: Optional[str]
    reason: Optional[str]
    expires_at: Optional[datetime]
    is_active: bool


class ServiceabilityRequest(BaseModel):
    pincode: str
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    user_id: Optional[str] = None
    on: Optional[date] = None
    at: Optional[time] = None
    vertical: Optional[BusinessVertical] = None


class ServiceabilityResponse(BaseModel):
    serviceable: bool
    zone: Optional[ZoneModel] = None
    reasons: list[str] = Field(default_factory=list)


class AddressCreate(BaseModel):
    user_id: str
    pincode: str
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class AddressModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    pincode: str
    latitude: Optional[float]
    longitude: Optional[float]
    zone_id: Optional[str]
    is_active: bool


class ProductZoneCreate(BaseModel):
    product_id: str
    is_available: bool = True
    price_override: Optional[Decimal] = None
    stock_quantity: Optional[int] = Field(default=None, ge=0)


class ProductOffer(BaseModel):
    product_id: str
    zone_id: str
    available: bool
    price: Decimal
