"""API routes for zones, zone overrides and customer addresses."""

from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Query, status

from ...errors import FreshtickError, NotServiceable
from ...models.domain import UserAddress, Zone, ZoneOverride
from ...persistence.store import get_store
from ...schemas.zones import (
    AddressCreate,
    AddressModel,
    ProductOffer,
    ProductZoneCreate,
    ServiceabilityRequest,
    ServiceabilityResponse,
    ZoneCreate,
    ZoneModel,
    ZoneOverrideCreate,
    ZoneOverrideModel,
)
from ...services.export import export_zones_to_geojson
from ...services.zoning.assignment import ZoneAssignmentService
from ...services.zoning.catalog import ZoneCatalog
from ...services.zoning.resolver import check_serviceability
from ..errors import to_http_error

router = APIRouter(prefix="/zones", tags=["zones"])
addresses_router = APIRouter(prefix="/addresses", tags=["addresses"])


@router.get("", response_model=list[ZoneModel])
def list_zones(include_inactive: bool = Query(default=False)) -> list[ZoneModel]:
    zones = ZoneCatalog(get_store()).list_zones(include_inactive=include_inactive)
    return [ZoneModel.model_validate(zone) for zone in zones]


@router.post("", response_model=ZoneModel, status_code=status.HTTP_201_CREATED)
def create_zone(payload: ZoneCreate) -> ZoneModel:
    zone = Zone(
        name=payload.name,
        code=payload.code,
        boundary_coordinates=[list(point) for point in payload.boundary_coordinates],
        pincodes=list(payload.pincodes),
        service_days=list(payload.service_days),
        service_time_start=payload.service_time_start,
        service_time_end=payload.service_time_end,
        verticals=[vertical.value for vertical in payload.verticals],
        delivery_charge=payload.delivery_charge,
        min_order_amount=payload.min_order_amount,
        city=payload.city,
        state=payload.state,
        is_active=payload.is_active,
    )
    try:
        ZoneCatalog(get_store()).create_zone(zone)
    except (FreshtickError, ValueError) as exc:
        raise to_http_error(exc) from exc
    return ZoneModel.model_validate(zone)


@router.get("/export/geojson")
def export_geojson(include_inactive: bool = Query(default=False)) -> dict:
    """All zones with a usable boundary as a GeoJSON FeatureCollection."""
    zones = ZoneCatalog(get_store()).list_zones(include_inactive=include_inactive)
    return export_zones_to_geojson(zones)


@router.post("/check", response_model=ServiceabilityResponse)
def check_address(payload: ServiceabilityRequest) -> ServiceabilityResponse:
    """Resolve the zone for an ad-hoc location without storing anything."""
    address = UserAddress(
        user_id=payload.user_id or "",
        pincode=payload.pincode,
        latitude=payload.latitude,
        longitude=payload.longitude,
    )
    try:
        zone = ZoneAssignmentService(get_store()).validate_address(address, payload.user_id, persist=False)
        if zone is None:
            return ServiceabilityResponse(serviceable=False, reasons=["no_zone"])
        reasons = check_serviceability(zone, on=payload.on, at=payload.at, vertical=payload.vertical)
    except (FreshtickError, ValueError) as exc:
        raise to_http_error(exc) from exc
    return ServiceabilityResponse(serviceable=not reasons, zone=ZoneModel.model_validate(zone), reasons=reasons)


@router.get("/{zone_id}", response_model=ZoneModel)
def get_zone(zone_id: str) -> ZoneModel:
    try:
        return ZoneModel.model_validate(ZoneCatalog(get_store()).get(zone_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.delete("/{zone_id}", response_model=ZoneModel)
def delete_zone(zone_id: str) -> ZoneModel:
    try:
        return ZoneModel.model_validate(ZoneCatalog(get_store()).delete_zone(zone_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.get("/{zone_id}/overrides", response_model=list[ZoneOverrideModel])
def list_overrides(zone_id: str) -> list[ZoneOverrideModel]:
    return [ZoneOverrideModel.model_validate(item) for item in ZoneCatalog(get_store()).overrides(zone_id)]


@router.post("/overrides", response_model=ZoneOverrideModel, status_code=status.HTTP_201_CREATED)
def create_override(payload: ZoneOverrideCreate) -> ZoneOverrideModel:
    override = ZoneOverride(**payload.model_dump())
    try:
        ZoneCatalog(get_store()).add_override(override)
    except (FreshtickError, ValueError) as exc:
        raise to_http_error(exc) from exc
    return ZoneOverrideModel.model_validate(override)


@router.delete("/overrides/{override_id}", response_model=ZoneOverrideModel)
def deactivate_override(override_id: str) -> ZoneOverrideModel:
    try:
        return ZoneOverrideModel.model_validate(ZoneCatalog(get_store()).deactivate_override(override_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc


@router.put("/{zone_id}/products", response_model=ProductOffer)
def set_product(zone_id: str, payload: ProductZoneCreate, base_price: Decimal = Query(default=Decimal("0"))) -> ProductOffer:
    catalog = ZoneCatalog(get_store())
    try:
        catalog.set_product_availability(
            zone_id,
            payload.product_id,
            is_available=payload.is_available,
            price_override=payload.price_override,
            stock_quantity=payload.stock_quantity,
        )
    except FreshtickError as exc:
        raise to_http_error(exc) from exc
    return ProductOffer(**catalog.product_offer(zone_id, payload.product_id, base_price))


@router.get("/{zone_id}/products/{product_id}", response_model=ProductOffer)
def product_offer(zone_id: str, product_id: str, base_price: Decimal = Query(...)) -> ProductOffer:
    return ProductOffer(**ZoneCatalog(get_store()).product_offer(zone_id, product_id, base_price))


@addresses_router.post("", response_model=AddressModel, status_code=status.HTTP_201_CREATED)
def create_address(payload: AddressCreate) -> AddressModel:
    """Store an address and assign its zone straight away when one serves it."""
    store = get_store()
    address = UserAddress(**payload.model_dump())
    try:
        with store.transaction():
            store.add(address)
        ZoneAssignmentService(store).validate_address(address, address.user_id)
    except FreshtickError as exc:
        raise to_http_error(exc) from exc
    return AddressModel.model_validate(address)


@addresses_router.post("/{address_id}/assign-zone", response_model=AddressModel)
def assign_zone(address_id: str) -> AddressModel:
    store = get_store()
    service = ZoneAssignmentService(store)
    try:
        if service.assign_zone(address_id) is None:
            raise NotServiceable("We don't deliver to this address yet.")
        return AddressModel.model_validate(store.get(UserAddress, address_id))
    except FreshtickError as exc:
        raise to_http_error(exc) from exc
