"""Pydantic request/response models for plans and subscriptions."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..models.domain import BillingCycle, BusinessVertical, FrequencyType, SubscriptionStatus


class PlanItemModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: str
    units: int = Field(default=1, ge=1)
    price: Decimal = Decimal("0")


class PlanCreate(BaseModel):
    name: str
    frequency_type: FrequencyType = FrequencyType.DAILY
    frequency_value: Optional[int] = Field(default=None, description="Interval in days for custom plans.")
    days_of_week: Optional[Sequence[int]] = Field(default=None, description="0 = Sunday ... 6 = Saturday.")
    discount_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    items: Sequence[PlanItemModel] = Field(default_factory=list)

    @field_validator("frequency_value")
    @classmethod
    def validate_frequency_value(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 1:
            raise ValueError("frequency_value must be >= 1")
        return value

    @field_validator("days_of_week")
    @classmethod
    def validate_days_of_week(cls, value: Optional[Sequence[int]]) -> Optional[Sequence[int]]:
        if value is not None and any(day < 0 or day > 6 for day in value):
            raise ValueError("days_of_week entries must be between 0 (Sunday) and 6 (Saturday)")
        return value


class PlanModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    frequency_type: FrequencyType
    frequency_value: Optional[int]
    days_of_week: Optional[list[int]]
    discount_percent: Decimal
    is_active: bool
    items: list[PlanItemModel]


class SubscriptionCreate(BaseModel):
    user_id: str
    user_address_id: str
    subscription_plan_id: str
    start_date: date
    end_date: Optional[date] = None
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    auto_renew: bool = True
    vertical: Optional[BusinessVertical] = None


class SubscriptionModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    user_address_id: str
    subscription_plan_id: str
    status: SubscriptionStatus
    start_date: date
    end_date: Optional[date]
    next_delivery_date: Optional[date]
    paused_until: Optional[date]
    vacation_start: Optional[date]
    vacation_end: Optional[date]
    billing_cycle: BillingCycle
    auto_renew: bool
    bottles_issued: int
    bottles_returned: int
    bottles_written_off: int
    bottles_outstanding: int
    cancelled_at: Optional[datetime]
    cancellation_reason: Optional[str]
    version: int


class PauseRequest(BaseModel):
    until: Optional[date] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class VacationRequest(BaseModel):
    start: date
    end: date

    @model_validator(mode="after")
    def validate_window(self) -> "VacationRequest":
        if self.start > self.end:
            raise ValueError("start must be on or before end")
        return self


class ScheduledDayModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: date
    is_delivery: bool
    is_vacation: bool
    is_today: bool
    is_past: bool
