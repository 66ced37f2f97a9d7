"""API routes for subscription plans and subscriptions."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Query, status

from ...errors import FreshtickError
from ...models.domain import SubscriptionPlan, SubscriptionPlanItem
from ...persistence.store import get_store, require
from ...schemas.subscriptions import (
    CancelRequest,
    PauseRequest,
    PlanCreate,
    PlanModel,
    ScheduledDayModel,
    SubscriptionCreate,
    SubscriptionModel,
    VacationRequest,
)
from ...services.subscriptions.service import SubscriptionService
from ..errors import to_http_error

router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])
plans_router = APIRouter(prefix="/plans", tags=["subscriptions"])


@plans_router.post("", response_model=PlanModel, status_code=status.HTTP_201_CREATED)
def create_plan(payload: PlanCreate) -> PlanModel:
    plan = SubscriptionPlan(
        name=payload.name,
        frequency_type=payload.frequency_type,
        frequency_value=payload.frequency_value,
        days_of_week=list(payload.days_of_week) if payload.days_of_week is not None else None,
        discount_percent=payload.discount_percent,
        items=[SubscriptionPlanItem(**item.model_dump()) for item in payload.items],
    )
    try:
        SubscriptionService(get_store()).create_plan(plan)
    except (FreshtickError, ValueError) as exc:
        raise to_http_error(exc) from exc
    return PlanModel.model_validate(plan)


@plans_router.get("/{plan_id}", response_model=PlanModel)
def get_plan(plan_id: str) -> PlanModel:
    try:
        return PlanModel.model_validate(require(get_store(), SubscriptionPlan, plan_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.post("", response_model=SubscriptionModel, status_code=status.HTTP_201_CREATED)
def create_subscription(payload: SubscriptionCreate) -> SubscriptionModel:
    try:
        subscription = SubscriptionService(get_store()).create_subscription(
            payload.user_id,
            payload.user_address_id,
            payload.subscription_plan_id,
            payload.start_date,
            end_date=payload.end_date,
            billing_cycle=payload.billing_cycle,
            auto_renew=payload.auto_renew,
            vertical=payload.vertical.value if payload.vertical else None,
        )
    except (FreshtickError, ValueError) as exc:
        raise to_http_error(exc) from exc
    return SubscriptionModel.model_validate(subscription)


@router.get("/due", response_model=list[SubscriptionModel])
def due_subscriptions(on: Optional[date] = Query(default=None)) -> list[SubscriptionModel]:
    subscriptions = SubscriptionService(get_store()).due_subscriptions(on)
    return [SubscriptionModel.model_validate(item) for item in subscriptions]


@router.get("/{subscription_id}", response_model=SubscriptionModel)
def get_subscription(subscription_id: str) -> SubscriptionModel:
    try:
        return SubscriptionModel.model_validate(SubscriptionService(get_store()).get(subscription_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.post("/{subscription_id}/pause", response_model=SubscriptionModel)
def pause_subscription(subscription_id: str, payload: PauseRequest) -> SubscriptionModel:
    try:
        return SubscriptionModel.model_validate(
            SubscriptionService(get_store()).pause(subscription_id, payload.until)
        )
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.post("/{subscription_id}/resume", response_model=SubscriptionModel)
def resume_subscription(subscription_id: str) -> SubscriptionModel:
    try:
        return SubscriptionModel.model_validate(SubscriptionService(get_store()).resume(subscription_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.post("/{subscription_id}/cancel", response_model=SubscriptionModel)
def cancel_subscription(subscription_id: str, payload: CancelRequest) -> SubscriptionModel:
    try:
        return SubscriptionModel.model_validate(
            SubscriptionService(get_store()).cancel(subscription_id, payload.reason)
        )
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.put("/{subscription_id}/vacation", response_model=SubscriptionModel)
def set_vacation(subscription_id: str, payload: VacationRequest) -> SubscriptionModel:
    try:
        return SubscriptionModel.model_validate(
            SubscriptionService(get_store()).set_vacation(subscription_id, payload.start, payload.end)
        )
    except (FreshtickError, ValueError) as exc:
        raise to_http_error(exc) from exc


@router.delete("/{subscription_id}/vacation", response_model=SubscriptionModel)
def clear_vacation(subscription_id: str) -> SubscriptionModel:
    try:
        return SubscriptionModel.model_validate(SubscriptionService(get_store()).clear_vacation(subscription_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.get("/{subscription_id}/schedule", response_model=list[ScheduledDayModel])
def month_schedule(
    subscription_id: str,
    year: int = Query(..., ge=2000, le=2100),
    month: int = Query(..., ge=1, le=12),
) -> list[ScheduledDayModel]:
    try:
        days = SubscriptionService(get_store()).schedule(subscription_id, year, month)
    except (FreshtickError, ValueError) as exc:
        raise to_http_error(exc) from exc
    return [ScheduledDayModel.model_validate(day) for day in days]


@router.get("/{subscription_id}/upcoming", response_model=list[date])
def upcoming(subscription_id: str, limit: int = Query(default=7, ge=1, le=60)) -> list[date]:
    try:
        return SubscriptionService(get_store()).upcoming(subscription_id, limit)
    except (FreshtickError, ValueError) as exc:
        raise to_http_error(exc) from exc
