"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="FRESHTICK_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Freshtick Delivery Core API"
    api_prefix: str = "/api"
    log_level: str = Field(default="INFO", description="Root logging level applied by create_app.")
    data_root: Path = Field(default=Path("data"), description="Root directory for stored files.")
    proof_directory: str = Field(
        default="delivery-proofs",
        description="Sub-directory of data_root holding proof-of-delivery images.",
    )
    timezone: str = Field(
        default="Asia/Kolkata",
        description="Zone used to resolve 'today' and 'now' for scheduling and service windows.",
    )
    storage_backend: Literal["memory", "supabase"] = Field(
        default="memory",
        description="Storage collaborator for zones, subscriptions, deliveries and bottles.",
    )
    strict_geometry: bool = Field(
        default=False,
        description="Raise MalformedGeometry on corrupt zone boundaries instead of coercing them.",
    )
    strict_order_sync: bool = Field(
        default=False,
        description="Fail delivery completion when the paired order is not out for delivery.",
    )
    default_weekly_days: tuple[int, ...] = Field(
        default=(1,),
        description="Sunday-based weekday indexes used by weekly plans without configured days.",
    )
    damaged_refund_ratio: float = Field(default=0.5, ge=0.0, le=1.0)
    max_proof_image_bytes: int = Field(default=10 * 1024 * 1024, ge=1)
    proof_allowed_types: tuple[str, ...] = Field(default=("image/jpeg", "image/png", "image/webp"))
    average_speed_kmph: float = Field(default=40.0, gt=0.0)
    default_driver_capacity: int = Field(
        default=30,
        ge=1,
        description="Deliveries per day for drivers without their own max_deliveries_per_day.",
    )
    upcoming_lookahead_days: int = Field(default=60, ge=1)
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:8000",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()

    @field_validator("frontend_allowed_origins", "proof_allowed_types", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        return tuple(str(item) for item in _env_list(value))

    @field_validator("default_weekly_days", mode="before")
    @classmethod
    def _parse_weekdays_from_env(cls, value: Any) -> tuple[int, ...]:
        try:
            return tuple(int(item) for item in _env_list(value))
        except (TypeError, ValueError) as exc:
            raise ValueError("default_weekly_days must be a list of integers") from exc

    @field_validator("default_weekly_days")
    @classmethod
    def _validate_weekdays(cls, value: tuple[int, ...]) -> tuple[int, ...]:
        if any(day < 0 or day > 6 for day in value):
            raise ValueError("default_weekly_days entries must be between 0 (Sunday) and 6 (Saturday)")
        return value


def _env_list(value: Any) -> list[Any]:
    """Accept a list/tuple, a JSON array string or a comma-separated string."""
    if isinstance(value, (list, tuple)):
        return list(value)
    if not isinstance(value, str) or not value.strip():
        return []
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, list):
        return parsed
    return [item.strip() for item in value.split(",") if item.strip()]


settings = Settings()
