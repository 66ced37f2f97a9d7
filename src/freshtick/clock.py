"""Timezone-aware 'today' and 'now' for the configured service timezone."""

from __future__ import annotations

from datetime import date, datetime
from zoneinfo import ZoneInfo

from .config import settings


def now() -> datetime:
    return datetime.now(ZoneInfo(settings.timezone))


def today() -> date:
    return now().date()
