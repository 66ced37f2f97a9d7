"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Report which storage backend serves requests and whether Supabase answers."""
    from ...db import check_connection, get_supabase_client

    if settings.storage_backend != "supabase":
        return {"backend": "memory", "configured": True}

    supabase = get_supabase_client()
    if not supabase:
        return {
            "backend": "supabase",
            "configured": False,
            "message": "Supabase not configured. Set FRESHTICK_SUPABASE_URL and FRESHTICK_SUPABASE_KEY environment variables.",
        }
    return {"backend": "supabase", "configured": True, **check_connection(supabase)}
