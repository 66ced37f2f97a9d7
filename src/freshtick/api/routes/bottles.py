"""API routes for the bottle ledger."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from ...errors import FreshtickError
from ...persistence.store import get_store
from ...schemas.bottles import (
    ActorFields,
    BottleCreate,
    BottleLogModel,
    BottleModel,
    BottleStats,
    BulkIssueRequest,
    DamageRequest,
    IssueRequest,
    ReturnRequest,
    UserBalance,
)
from ...services.bottles.ledger import BottleLedgerService
from ..errors import to_http_error

router = APIRouter(prefix="/bottles", tags=["bottles"])


@router.post("", response_model=BottleModel, status_code=status.HTTP_201_CREATED)
def create_bottle(payload: BottleCreate) -> BottleModel:
    try:
        bottle = BottleLedgerService(get_store()).create_bottle(**payload.model_dump())
    except FreshtickError as exc:
        raise to_http_error(exc) from exc
    return BottleModel.model_validate(bottle)


@router.get("/stats", response_model=BottleStats)
def stats() -> BottleStats:
    return BottleStats(**BottleLedgerService(get_store()).stats())


@router.get("/users/{user_id}/balance", response_model=UserBalance)
def user_balance(user_id: str) -> UserBalance:
    return UserBalance(**BottleLedgerService(get_store()).user_balance(user_id))


@router.post("/bulk-issue", response_model=list[BottleLogModel])
def bulk_issue(payload: BulkIssueRequest) -> list[BottleLogModel]:
    try:
        logs = BottleLedgerService(get_store()).issue_for_subscription(
            payload.subscription_id, payload.count, bottle_type=payload.bottle_type
        )
    except (FreshtickError, ValueError) as exc:
        raise to_http_error(exc) from exc
    return [BottleLogModel.model_validate(entry) for entry in logs]


@router.get("/barcode/{barcode}", response_model=BottleModel)
def find_by_barcode(barcode: str) -> BottleModel:
    bottle = BottleLedgerService(get_store()).find_by_barcode(barcode)
    if bottle is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No bottle with barcode {barcode}.")
    return BottleModel.model_validate(bottle)


@router.get("/{bottle_id}", response_model=BottleModel)
def get_bottle(bottle_id: str) -> BottleModel:
    try:
        return BottleModel.model_validate(BottleLedgerService(get_store()).get(bottle_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.get("/{bottle_id}/logs", response_model=list[BottleLogModel])
def bottle_history(bottle_id: str) -> list[BottleLogModel]:
    return [BottleLogModel.model_validate(entry) for entry in BottleLedgerService(get_store()).history(bottle_id)]


@router.post("/{bottle_id}/issue", response_model=BottleLogModel)
def issue(bottle_id: str, payload: IssueRequest) -> BottleLogModel:
    try:
        entry = BottleLedgerService(get_store()).issue(
            bottle_id,
            payload.user_id,
            payload.subscription_id,
            delivery_id=payload.delivery_id,
            actor=payload.actor,
            actor_id=payload.actor_id,
            notes=payload.notes,
        )
    except FreshtickError as exc:
        raise to_http_error(exc) from exc
    return BottleLogModel.model_validate(entry)


@router.post("/{bottle_id}/return", response_model=BottleLogModel)
def return_bottle(bottle_id: str, payload: ReturnRequest) -> BottleLogModel:
    try:
        entry = BottleLedgerService(get_store()).return_bottle(
            bottle_id,
            payload.condition,
            delivery_id=payload.delivery_id,
            actor=payload.actor,
            actor_id=payload.actor_id,
            notes=payload.notes,
        )
    except FreshtickError as exc:
        raise to_http_error(exc) from exc
    return BottleLogModel.model_validate(entry)


@router.post("/{bottle_id}/damage", response_model=BottleLogModel)
def damage(bottle_id: str, payload: DamageRequest) -> BottleLogModel:
    try:
        entry = BottleLedgerService(get_store()).damage(
            bottle_id, payload.reason, actor=payload.actor, actor_id=payload.actor_id
        )
    except FreshtickError as exc:
        raise to_http_error(exc) from exc
    return BottleLogModel.model_validate(entry)


@router.post("/{bottle_id}/lose", response_model=BottleLogModel)
def lose(bottle_id: str, payload: ActorFields) -> BottleLogModel:
    try:
        entry = BottleLedgerService(get_store()).lose(
            bottle_id, actor=payload.actor, actor_id=payload.actor_id, notes=payload.notes
        )
    except FreshtickError as exc:
        raise to_http_error(exc) from exc
    return BottleLogModel.model_validate(entry)


@router.post("/{bottle_id}/restore", response_model=BottleLogModel)
def restore(bottle_id: str, payload: ActorFields) -> BottleLogModel:
    try:
        entry = BottleLedgerService(get_store()).restore(
            bottle_id, actor=payload.actor, actor_id=payload.actor_id, notes=payload.notes
        )
    except FreshtickError as exc:
        raise to_http_error(exc) from exc
    return BottleLogModel.model_validate(entry)
