"""Supabase client for the Supabase-backed store."""

import logging
from functools import lru_cache
from typing import Any

from supabase import Client, create_client

from ..config import settings


@lru_cache()
def get_supabase_client() -> Client | None:
    """Cached client built from FRESHTICK_SUPABASE_URL / FRESHTICK_SUPABASE_KEY.

    Returns None when either is missing. Building the client does not contact
    the server; ``check_connection`` does.
    """
    if not settings.supabase_url or not settings.supabase_key:
        logging.warning("Supabase credentials not configured (FRESHTICK_SUPABASE_URL / FRESHTICK_SUPABASE_KEY)")
        return None

    try:
        return create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        logging.error(f"Failed to create Supabase client for {settings.supabase_url}: {e}")
        return None


def check_connection(client: Client, table: str = "zones") -> dict[str, Any]:
    """Run a one-row select against ``table`` and report the outcome."""
    try:
        client.table(table).select("id", count="exact").limit(1).execute()
    except Exception as exc:
        logging.warning(f"Supabase connection check against '{table}' failed: {exc}")
        return {"connected": False, "error": str(exc), "message": f"Database connection error: {exc}"}
    return {"connected": True}
