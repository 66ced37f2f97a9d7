"""GeoJSON/WKT export of delivery zones."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

from shapely.geometry import mapping

from ...errors import MalformedGeometry
from ...models.domain import Zone
from ..geospatial import to_polygon
from ..zoning.resolver import boundary_vertices


def generate_zone_color(index: int) -> str:
    """Generate distinct colors for zones."""
    colors = [
        "#02d8e0", "#e0003e", "#38e000", "#0000c1", "#e0e005",
        "#611cc7", "#e0af00", "#13aae0", "#a4d819", "#00e0bb",
    ]
    return colors[index % len(colors)]


def polygon_to_wkt(coordinates: List[List[float]]) -> str:
    """Convert polygon coordinates to WKT format.

    Args:
        coordinates: List of [lat, lon] pairs

    Returns:
        WKT POLYGON string (in lon lat order, as WKT expects)
    """
    if not coordinates or len(coordinates) < 3:
        raise ValueError("Polygon must have at least 3 coordinates")

    # Ensure polygon is closed
    if list(coordinates[0]) != list(coordinates[-1]):
        coordinates = list(coordinates) + [coordinates[0]]

    coord_pairs = [f"{lon} {lat}" for lat, lon in coordinates]
    return f"POLYGON(({','.join(coord_pairs)}))"


def zone_to_feature(zone: Zone, index: int = 0) -> Dict[str, Any] | None:
    """Build a GeoJSON feature for a zone, or None when it has no usable boundary."""
    try:
        vertices = boundary_vertices(zone, strict=True)
    except MalformedGeometry as exc:
        logging.warning(f"Skipping zone {zone.code} in export: {exc}")
        return None
    if not vertices:
        return None

    polygon = to_polygon(vertices)
    centroid = polygon.centroid
    return {
        "type": "Feature",
        "id": zone.id,
        "geometry": mapping(polygon),
        "properties": {
            "name": zone.name,
            "code": zone.code,
            "city": zone.city,
            "state": zone.state,
            "is_active": zone.is_active,
            "pincodes": list(zone.pincodes),
            "service_days": list(zone.service_days),
            "verticals": list(zone.verticals),
            "wkt": polygon_to_wkt([list(vertex) for vertex in vertices]),
            "labelPoint": {"lat": centroid.y, "lng": centroid.x},
            "fillColor": generate_zone_color(index),
        },
    }


def export_zones_to_geojson(zones: Iterable[Zone]) -> Dict[str, Any]:
    features = []
    for idx, zone in enumerate(zones):
        feature = zone_to_feature(zone, idx)
        if feature is not None:
            features.append(feature)
    return {"type": "FeatureCollection", "features": features}

