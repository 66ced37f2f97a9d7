"""Route group exports."""

from . import bottles, deliveries, health, schedule, subscriptions, zones

__all__ = ["zones", "subscriptions", "deliveries", "bottles", "schedule", "health"]
