"""Export services."""

from .geojson import export_zones_to_geojson, polygon_to_wkt, zone_to_feature

__all__ = [
    "export_zones_to_geojson",
    "polygon_to_wkt",
    "zone_to_feature",
]
