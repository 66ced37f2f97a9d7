"""Serviceability predicates for a single zone."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Sequence

from ... import clock
from ...config import settings
from ...errors import MalformedGeometry
from ...models.domain import ProductZone, Zone
from ..geospatial import point_in_polygon, to_polygon

_WHITESPACE = re.compile(r"\s+")

DAY_NAMES = {
    "sunday": 0,
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
}


def normalize_pincode(pincode: Any) -> str:
    return _WHITESPACE.sub("", str(pincode))


def sunday_based_weekday(day: date) -> int:
    return (day.weekday() + 1) % 7


def _coerce_coordinate(value: Any, zone: Zone, strict: bool) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        if strict:
            raise MalformedGeometry(f"Zone '{zone.code}' has a non-numeric boundary coordinate: {value!r}")
        logging.warning(f"Zone '{zone.code}' has a non-numeric boundary coordinate {value!r}; using 0.0")
        return 0.0


def boundary_vertices(zone: Zone, *, strict: bool | None = None) -> list[tuple[float, float]]:
    """Return the zone boundary as (lat, lng) floats.

    An empty boundary means "not configured" and yields an empty list. Fewer
    than three vertices or malformed entries are corrupt data: logged and
    coerced, or raised as MalformedGeometry in strict mode.
    """
    strict = settings.strict_geometry if strict is None else strict
    raw = zone.boundary_coordinates or []
    if not raw:
        return []
    if len(raw) < 3:
        if strict:
            raise MalformedGeometry(f"Zone '{zone.code}' boundary has {len(raw)} point(s); at least 3 required.")
        logging.warning(f"Zone '{zone.code}' boundary has only {len(raw)} point(s); treating as not serviceable")
        return []

    vertices: list[tuple[float, float]] = []
    for point in raw:
        if isinstance(point, dict):
            point = [point.get("lat"), point.get("lng")]
        if not isinstance(point, (list, tuple)) or len(point) < 2:
            if strict:
                raise MalformedGeometry(f"Zone '{zone.code}' has a malformed boundary vertex: {point!r}")
            logging.warning(f"Zone '{zone.code}' has a malformed boundary vertex {point!r}; using (0.0, 0.0)")
            vertices.append((0.0, 0.0))
            continue
        vertices.append((_coerce_coordinate(point[0], zone, strict), _coerce_coordinate(point[1], zone, strict)))
    return vertices


def validate_boundary(coordinates: Sequence[Sequence[float]]) -> None:
    """Reject boundaries that cannot describe a simple polygon."""
    if len(coordinates) < 3:
        raise MalformedGeometry("Boundary must have at least 3 coordinates.")
    polygon = to_polygon([(float(lat), float(lng)) for lat, lng, *_ in coordinates])
    if polygon.is_empty or not polygon.is_valid or polygon.area == 0:
        raise MalformedGeometry("Boundary does not describe a valid, non-self-intersecting polygon.")


def is_within_boundary(zone: Zone, lat: float, lng: float, *, strict: bool | None = None) -> bool:
    vertices = boundary_vertices(zone, strict=strict)
    if not vertices:
        return False
    return point_in_polygon(lat, lng, vertices)


def is_serviceable(zone: Zone, pincode: str) -> bool:
    """Pincode membership. An empty pincode set serves nobody (explicit opt-in)."""
    if not zone.pincodes:
        return False
    normalized = normalize_pincode(pincode)
    return normalized in {normalize_pincode(p) for p in zone.pincodes}


def resolve_weekday(day: int | str | date) -> int:
    """Turn a 0-6 index (Sunday = 0), day name, date or ISO date string into a weekday index."""
    if isinstance(day, bool):
        raise ValueError(f"Cannot resolve weekday from {day!r}")
    if isinstance(day, int):
        if not 0 <= day <= 6:
            raise ValueError(f"Weekday index must be between 0 and 6, got {day}")
        return day
    if isinstance(day, date):
        return sunday_based_weekday(day)
    text = str(day).strip().lower()
    if text.isdigit():
        return resolve_weekday(int(text))
    for name, index in DAY_NAMES.items():
        if text == name or (len(text) >= 3 and name.startswith(text)):
            return index
    try:
        return sunday_based_weekday(date.fromisoformat(text))
    except ValueError as exc:
        raise ValueError(f"Cannot resolve weekday from {day!r}") from exc


def is_serviceable_on_day(zone: Zone, day: int | str | date) -> bool:
    # Empty set means every day. This is deliberately the opposite default of the
    # pincode rule above; confirm with product before changing either.
    if not zone.service_days:
        return True
    return resolve_weekday(day) in {int(d) for d in zone.service_days}


def _time_of(value: time | datetime | str) -> time:
    if isinstance(value, datetime):
        return value.time()
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value).strip())


def is_serviceable_at_time(zone: Zone, at: time | datetime | str | None = None) -> bool:
    """Inclusive service-window check, to the second."""
    start, end = zone.service_time_start, zone.service_time_end
    if start is None and end is None:
        return True
    current = _time_of(at if at is not None else clock.now()).replace(microsecond=0, tzinfo=None)
    if start is not None and current < start.replace(microsecond=0, tzinfo=None):
        return False
    if end is not None and current > end.replace(microsecond=0, tzinfo=None):
        return False
    return True


def supports_vertical(zone: Zone, vertical: str) -> bool:
    if not zone.verticals:
        return True
    return str(getattr(vertical, "value", vertical)) in zone.verticals


def check_serviceability(
    zone: Zone,
    *,
    on: int | str | date | None = None,
    at: time | datetime | str | None = None,
    vertical: str | None = None,
) -> list[str]:
    """Return the reasons the zone cannot serve the request; empty means serviceable."""
    reasons: list[str] = []
    if not zone.is_active or zone.deleted_at is not None:
        reasons.append("zone_inactive")
    if on is not None and not is_serviceable_on_day(zone, on):
        reasons.append("closed_on_day")
    if at is not None and not is_serviceable_at_time(zone, at):
        reasons.append("outside_service_hours")
    if vertical is not None and not supports_vertical(zone, vertical):
        reasons.append("vertical_not_supported")
    return reasons


def is_available_in_zone(pivot: ProductZone | None) -> bool:
    """A product is sold in a zone only when a pivot row exists and allows it."""
    if pivot is None:
        return False
    return bool(pivot.is_available)


def price_for_zone(base_price: Decimal, pivot: ProductZone | None) -> Decimal:
    if pivot is not None and pivot.price_override is not None:
        return Decimal(pivot.price_override)
    return Decimal(base_price)
