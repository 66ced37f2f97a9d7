"""API routes for materialising due deliveries."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Query, status

from ...persistence.store import get_store
from ...schemas.deliveries import GenerationResult
from ...services.scheduling.generator import DeliveryGenerator

router = APIRouter(prefix="/schedule", tags=["schedule"])


@router.get("/preview", status_code=status.HTTP_200_OK)
def preview(on: Optional[date] = Query(default=None)) -> list[dict]:
    return DeliveryGenerator(get_store()).preview_deliveries_for_date(on)


@router.post("/generate", response_model=GenerationResult, status_code=status.HTTP_200_OK)
def generate(on: Optional[date] = Query(default=None)) -> GenerationResult:
    """Create orders and deliveries for every subscription due on the date (default today)."""
    return GenerationResult(**DeliveryGenerator(get_store()).generate_deliveries_for_date(on))
