"""Driver location helpers."""

from __future__ import annotations

import math
from typing import Optional

from ...config import settings
from ..geospatial import haversine_km


def eta_minutes(
    driver_lat: float,
    driver_lng: float,
    destination_lat: float,
    destination_lng: float,
    speed_kmph: Optional[float] = None,
) -> dict:
    """Straight-line distance and travel time at the configured average speed."""
    speed = speed_kmph or settings.average_speed_kmph
    distance = haversine_km(driver_lat, driver_lng, destination_lat, destination_lng)
    return {
        "distance_km": round(distance, 2),
        "eta_minutes": int(math.ceil(distance / speed * 60)),
    }
