"""Pydantic request/response models for the bottle ledger."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.domain import ActorKind, BottleAction, BottleStatus


class BottleCreate(BaseModel):
    bottle_number: Optional[str] = Field(default=None, description="Generated as BTL000001... when omitted.")
    type: str = "standard"
    barcode: Optional[str] = None
    capacity: Optional[Decimal] = None
    purchase_cost: Optional[Decimal] = Field(default=None, ge=0)
    deposit_amount: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None


class BottleModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    bottle_number: str
    type: str
    status: BottleStatus
    barcode: Optional[str]
    capacity: Optional[Decimal]
    current_user_id: Optional[str]
    current_subscription_id: Optional[str]
    deposit_amount: Optional[Decimal]
    issued_at: Optional[datetime]
    returned_at: Optional[datetime]
    damaged_at: Optional[datetime]
    notes: Optional[str]
    version: int


class ActorFields(BaseModel):
    actor: ActorKind = ActorKind.ADMIN
    actor_id: Optional[str] = None
    notes: Optional[str] = None


class IssueRequest(ActorFields):
    user_id: str
    subscription_id: Optional[str] = None
    delivery_id: Optional[str] = None


class ReturnRequest(ActorFields):
    condition: str = Field(default="good", pattern="^(good|damaged)$")
    delivery_id: Optional[str] = None


class DamageRequest(ActorFields):
    reason: str = Field(..., min_length=1)


class BulkIssueRequest(BaseModel):
    subscription_id: str
    count: int = Field(..., ge=1)
    bottle_type: Optional[str] = None


class BottleLogModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    bottle_id: str
    action: BottleAction
    action_by: ActorKind
    action_by_id: Optional[str]
    user_id: Optional[str]
    subscription_id: Optional[str]
    delivery_id: Optional[str]
    condition: Optional[str]
    notes: Optional[str]
    deposit_amount: Optional[Decimal]
    refund_amount: Optional[Decimal]
    created_at: Optional[datetime]


class UserBalance(BaseModel):
    issued: int
    returned: int
    balance: int
    total_deposit: Decimal


class BottleStats(BaseModel):
    total: int
    available: int
    issued: int
    returned: int
    damaged: int
    lost: int
    total_value: Decimal
    total_deposit: Decimal
