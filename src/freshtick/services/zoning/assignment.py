"""Zone assignment for user addresses."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from ... import clock
from ...errors import NotServiceable
from ...models.domain import UserAddress, Zone, ZoneOverride
from ...persistence.store import Store, get_store, require
from .resolver import is_serviceable, is_within_boundary, normalize_pincode


def is_override_effective(override: ZoneOverride, now: datetime | None = None) -> bool:
    if not override.is_active:
        return False
    if override.expires_at is None:
        return True
    current = now or clock.now()
    expires_at = override.expires_at
    if expires_at.tzinfo is None:
        current = current.replace(tzinfo=None)
    return expires_at > current


class ZoneAssignmentService:
    """Resolve the owning zone of an address.

    Resolution order: an effective override for the address, then for the
    user; a zone whose boundary contains the coordinates (preferring one that
    also lists the pincode); a zone listing the pincode; otherwise none.
    """

    def __init__(self, store: Store | None = None) -> None:
        self.store = store or get_store()

    def active_zones(self) -> list[Zone]:
        zones = [zone for zone in self.store.find(Zone, is_active=True) if zone.deleted_at is None]
        return sorted(zones, key=lambda zone: (zone.name, zone.id or ""))

    def resolve_override_zone(
        self,
        user_id: Optional[str],
        address_id: Optional[str],
        *,
        now: datetime | None = None,
    ) -> Zone | None:
        candidates: list[ZoneOverride] = []
        if address_id is not None:
            candidates.extend(self._effective_overrides(address_id=address_id, now=now))
        if user_id is not None:
            candidates.extend(
                override
                for override in self._effective_overrides(user_id=user_id, now=now)
                if override.address_id is None or override.address_id == address_id
            )
        for override in candidates:
            zone = self.store.get(Zone, override.zone_id)
            if zone is not None and zone.is_active and zone.deleted_at is None:
                return zone
        return None

    def _effective_overrides(self, *, now: datetime | None, **filters: str) -> list[ZoneOverride]:
        overrides = [
            override
            for override in self.store.find(ZoneOverride, **filters)
            if is_override_effective(override, now)
        ]
        return sorted(
            overrides,
            key=lambda override: override.created_at.timestamp() if override.created_at else 0.0,
            reverse=True,
        )

    def find_zone_by_pincode(self, pincode: str) -> Zone | None:
        if not normalize_pincode(pincode):
            return None
        return next((zone for zone in self.active_zones() if is_serviceable(zone, pincode)), None)

    def find_zone_by_coordinates(self, lat: float, lng: float) -> Zone | None:
        return next((zone for zone in self.active_zones() if is_within_boundary(zone, lat, lng)), None)

    def validate_address(
        self,
        address: UserAddress,
        user_id: Optional[str] = None,
        *,
        persist: bool = True,
        now: datetime | None = None,
    ) -> Zone | None:
        """Return the zone serving the address, persisting ``zone_id`` for stored addresses."""
        zone = self.resolve_override_zone(user_id or address.user_id, address.id, now=now)
        if zone is None:
            zone = self._resolve_geographic_zone(address)

        if zone is None:
            logging.info(f"No zone serves address {address.id or '<unsaved>'} (pincode {address.pincode})")
            return None

        if persist and address.id is not None and address.zone_id != zone.id:
            with self.store.transaction():
                stored = self.store.get(UserAddress, address.id)
                if stored is not None:
                    stored.zone_id = zone.id
                    self.store.update(stored)
                    address.version = stored.version
            address.zone_id = zone.id
            logging.info(f"Assigned zone {zone.code} to address {address.id}")
        return zone

    def _resolve_geographic_zone(self, address: UserAddress) -> Zone | None:
        zones = self.active_zones()
        if address.latitude is not None and address.longitude is not None:
            containing = [
                zone for zone in zones if is_within_boundary(zone, address.latitude, address.longitude)
            ]
            if containing:
                return next(
                    (zone for zone in containing if is_serviceable(zone, address.pincode)),
                    containing[0],
                )
        return self.find_zone_by_pincode(address.pincode)

    def require_zone(self, address: UserAddress, user_id: Optional[str] = None) -> Zone:
        zone = self.validate_address(address, user_id)
        if zone is None:
            raise NotServiceable("We don't deliver to this address yet.")
        return zone

    def is_address_serviceable(self, address: UserAddress) -> bool:
        return self.validate_address(address, persist=False) is not None

    def assign_zone(self, address_id: str) -> Zone | None:
        address = require(self.store, UserAddress, address_id)
        return self.validate_address(address, address.user_id)
