"""API routes for orders, drivers and the delivery workflow."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, File, HTTPException, Query, UploadFile, status

from ...errors import FreshtickError, NotServiceable
from ...models.domain import Driver, Order, OrderStatus, UserAddress
from ...persistence.store import get_store, require
from ...schemas.deliveries import (
    AssignRequest,
    AutoAssignResult,
    BulkAssignRequest,
    CompleteRequest,
    CreatedOrderResponse,
    DeliveryModel,
    DriverCapacity,
    DriverCreate,
    DriverModel,
    EtaResponse,
    FailRequest,
    LocationModel,
    LocationUpdate,
    OrderCreate,
    OrderModel,
    ProofUploadResponse,
    TimelineEntry,
    VerifyProofRequest,
    ZoneDeliverySummary,
)
from ...services.deliveries.service import DeliveryService
from ...services.zoning.assignment import ZoneAssignmentService
from ..errors import to_http_error

router = APIRouter(prefix="/deliveries", tags=["deliveries"])
orders_router = APIRouter(prefix="/orders", tags=["deliveries"])
drivers_router = APIRouter(prefix="/drivers", tags=["deliveries"])


@orders_router.post("", response_model=CreatedOrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(payload: OrderCreate) -> CreatedOrderResponse:
    """Create a one-time order together with its pending delivery."""
    store = get_store()
    try:
        with store.transaction():
            address = require(store, UserAddress, payload.user_address_id)
            if address.zone_id is None and ZoneAssignmentService(store).validate_address(address, payload.user_id) is None:
                raise NotServiceable("We don't deliver to this address yet.")
            order = store.add(
                Order(user_id=payload.user_id, status=OrderStatus.CONFIRMED, scheduled_date=payload.scheduled_date)
            )
            delivery = DeliveryService(store).create_for_order(
                order.id, address.id, payload.scheduled_date, notes=payload.notes
            )
    except (FreshtickError, ValueError) as exc:
        raise to_http_error(exc) from exc
    return CreatedOrderResponse(order=OrderModel.model_validate(order), delivery=DeliveryModel.model_validate(delivery))


@orders_router.get("/{order_id}", response_model=OrderModel)
def get_order(order_id: str) -> OrderModel:
    try:
        return OrderModel.model_validate(require(get_store(), Order, order_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@drivers_router.post("", response_model=DriverModel, status_code=status.HTTP_201_CREATED)
def create_driver(payload: DriverCreate) -> DriverModel:
    store = get_store()
    driver = Driver(
        name=payload.name, zone_id=payload.zone_id, max_deliveries_per_day=payload.max_deliveries_per_day
    )
    with store.transaction():
        store.add(driver)
    return DriverModel.model_validate(driver)


@drivers_router.get("/{driver_id}/deliveries", response_model=list[DeliveryModel])
def driver_deliveries(driver_id: str, on: date = Query(...)) -> list[DeliveryModel]:
    deliveries = DeliveryService(get_store()).for_date(on, driver_id=driver_id)
    return [DeliveryModel.model_validate(item) for item in deliveries]


@drivers_router.get("/{driver_id}/capacity", response_model=DriverCapacity)
def driver_capacity(driver_id: str, on: date = Query(...)) -> DriverCapacity:
    try:
        return DriverCapacity(**DeliveryService(get_store()).driver_capacity(driver_id, on))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@drivers_router.post("/{driver_id}/assign-deliveries", response_model=list[DeliveryModel])
def assign_deliveries(driver_id: str, payload: BulkAssignRequest) -> list[DeliveryModel]:
    try:
        deliveries = DeliveryService(get_store()).assign_many(driver_id, list(payload.delivery_ids))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc
    return [DeliveryModel.model_validate(item) for item in deliveries]


@router.get("", response_model=list[DeliveryModel])
def list_deliveries(on: date = Query(...), zone_id: Optional[str] = Query(default=None)) -> list[DeliveryModel]:
    deliveries = DeliveryService(get_store()).for_date(on, zone_id=zone_id)
    return [DeliveryModel.model_validate(item) for item in deliveries]


@router.post("/auto-assign", response_model=AutoAssignResult)
def auto_assign(on: date = Query(...), zone_id: Optional[str] = Query(default=None)) -> AutoAssignResult:
    """Spread the day's pending deliveries over active zone drivers."""
    try:
        return AutoAssignResult(**DeliveryService(get_store()).auto_assign(on, zone_id=zone_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.get("/zones/{zone_id}/summary", response_model=ZoneDeliverySummary)
def zone_summary(zone_id: str, on: date = Query(...)) -> ZoneDeliverySummary:
    try:
        return ZoneDeliverySummary(**DeliveryService(get_store()).zone_summary(zone_id, on))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.get("/{delivery_id}", response_model=DeliveryModel)
def get_delivery(delivery_id: str) -> DeliveryModel:
    try:
        return DeliveryModel.model_validate(DeliveryService(get_store()).get(delivery_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.post("/{delivery_id}/assign", response_model=DeliveryModel)
def assign_driver(delivery_id: str, payload: AssignRequest) -> DeliveryModel:
    try:
        return DeliveryModel.model_validate(DeliveryService(get_store()).assign(delivery_id, payload.driver_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.post("/{delivery_id}/dispatch", response_model=DeliveryModel)
def dispatch(delivery_id: str) -> DeliveryModel:
    try:
        return DeliveryModel.model_validate(DeliveryService(get_store()).dispatch(delivery_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.post("/{delivery_id}/proof", response_model=ProofUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_proof(delivery_id: str, image: UploadFile = File(...)) -> ProofUploadResponse:
    payload = await image.read()
    try:
        path = DeliveryService(get_store()).store_proof_image(delivery_id, payload)
    except (FreshtickError, ValueError) as exc:
        raise to_http_error(exc) from exc
    return ProofUploadResponse(path=path)


@router.post("/{delivery_id}/deliver", response_model=DeliveryModel)
def deliver(delivery_id: str, payload: CompleteRequest) -> DeliveryModel:
    try:
        delivery = DeliveryService(get_store()).complete(
            delivery_id,
            payload.proof_image,
            bottles_issued=payload.bottles_issued,
            bottles_returned=payload.bottles_returned,
            returned_condition=payload.returned_condition,
        )
    except (FreshtickError, ValueError) as exc:
        raise to_http_error(exc) from exc
    return DeliveryModel.model_validate(delivery)


@router.post("/{delivery_id}/fail", response_model=DeliveryModel)
def fail(delivery_id: str, payload: FailRequest) -> DeliveryModel:
    try:
        return DeliveryModel.model_validate(DeliveryService(get_store()).fail(delivery_id, payload.reason))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.post("/{delivery_id}/cancel", response_model=DeliveryModel)
def cancel(delivery_id: str) -> DeliveryModel:
    try:
        return DeliveryModel.model_validate(DeliveryService(get_store()).cancel(delivery_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.post("/{delivery_id}/verify-proof", response_model=DeliveryModel)
def verify_proof(delivery_id: str, payload: VerifyProofRequest) -> DeliveryModel:
    try:
        return DeliveryModel.model_validate(
            DeliveryService(get_store()).verify_proof(delivery_id, payload.verifier_id)
        )
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.post("/{delivery_id}/location", response_model=LocationModel, status_code=status.HTTP_201_CREATED)
def record_location(delivery_id: str, payload: LocationUpdate) -> LocationModel:
    try:
        point = DeliveryService(get_store()).record_location(delivery_id, **payload.model_dump())
    except (FreshtickError, ValueError) as exc:
        raise to_http_error(exc) from exc
    return LocationModel.model_validate(point)


@router.get("/{delivery_id}/eta", response_model=EtaResponse)
def eta(delivery_id: str) -> EtaResponse:
    try:
        result = DeliveryService(get_store()).eta(delivery_id)
    except FreshtickError as exc:
        raise to_http_error(exc) from exc
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No driver location recorded yet.")
    return EtaResponse(**result)


@router.get("/{delivery_id}/timeline", response_model=list[TimelineEntry])
def timeline(delivery_id: str) -> list[TimelineEntry]:
    try:
        return [TimelineEntry(**entry) for entry in DeliveryService(get_store()).timeline(delivery_id)]
    except FreshtickError as exc:
        raise to_http_error(exc) from exc
