"""Zone administration: zones, overrides and per-zone product availability."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from ... import clock
from ...errors import DuplicateRecord
from ...models.domain import ProductZone, UserAddress, Zone, ZoneOverride
from ...persistence.store import Store, get_store, require
from .resolver import is_available_in_zone, normalize_pincode, price_for_zone, validate_boundary


class ZoneCatalog:
    def __init__(self, store: Store | None = None) -> None:
        self.store = store or get_store()

    def get(self, zone_id: str) -> Zone:
        return require(self.store, Zone, zone_id)

    def list_zones(self, *, include_inactive: bool = False) -> list[Zone]:
        zones = [zone for zone in self.store.find(Zone) if zone.deleted_at is None]
        if not include_inactive:
            zones = [zone for zone in zones if zone.is_active]
        return sorted(zones, key=lambda zone: zone.name)

    def create_zone(self, zone: Zone) -> Zone:
        if zone.boundary_coordinates:
            validate_boundary(zone.boundary_coordinates)
        zone.pincodes = [normalize_pincode(pincode) for pincode in zone.pincodes]
        with self.store.transaction():
            if any(other.deleted_at is None for other in self.store.find(Zone, code=zone.code)):
                raise DuplicateRecord(f"Zone code '{zone.code}' is already in use.")
            self.store.add(zone)
        logging.info(f"Created zone {zone.code} ({zone.name})")
        return zone

    def delete_zone(self, zone_id: str) -> Zone:
        """Soft delete: the zone stops resolving but addresses keep their reference."""
        with self.store.transaction():
            zone = self.get(zone_id)
            zone.deleted_at = clock.now()
            zone.is_active = False
            self.store.update(zone)
        logging.info(f"Deleted zone {zone.code}")
        return zone

    def add_override(self, override: ZoneOverride) -> ZoneOverride:
        if override.user_id is None and override.address_id is None:
            raise ValueError("An override needs a user_id or an address_id.")
        self.get(override.zone_id)
        if override.address_id is not None:
            require(self.store, UserAddress, override.address_id)
        override.created_at = override.created_at or clock.now()
        with self.store.transaction():
            self.store.add(override)
        logging.info(
            f"Zone override {override.id} -> zone {override.zone_id} "
            f"(user {override.user_id}, address {override.address_id})"
        )
        return override

    def deactivate_override(self, override_id: str) -> ZoneOverride:
        with self.store.transaction():
            override = require(self.store, ZoneOverride, override_id)
            override.is_active = False
            self.store.update(override)
        return override

    def overrides(self, zone_id: str) -> list[ZoneOverride]:
        return self.store.find(ZoneOverride, zone_id=zone_id)

    def set_product_availability(
        self,
        zone_id: str,
        product_id: str,
        *,
        is_available: bool = True,
        price_override: Optional[Decimal] = None,
        stock_quantity: Optional[int] = None,
    ) -> ProductZone:
        self.get(zone_id)
        with self.store.transaction():
            pivot = next(iter(self.store.find(ProductZone, product_id=product_id, zone_id=zone_id)), None)
            exists = pivot is not None
            pivot = pivot or ProductZone(product_id=product_id, zone_id=zone_id)
            pivot.is_available = is_available
            pivot.price_override = price_override
            pivot.stock_quantity = stock_quantity
            if exists:
                self.store.update(pivot)
            else:
                self.store.add(pivot)
        return pivot

    def product_offer(self, zone_id: str, product_id: str, base_price: Decimal) -> dict:
        pivot = next(iter(self.store.find(ProductZone, product_id=product_id, zone_id=zone_id)), None)
        return {
            "product_id": product_id,
            "zone_id": zone_id,
            "available": is_available_in_zone(pivot),
            "price": price_for_zone(base_price, pivot),
        }
