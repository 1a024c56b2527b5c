"""Application configuration and settings management."""

from pathlib import Path
from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="DELIVERY_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Delivery Route Generation API"
    api_prefix: str = "/api"
    data_root: Path = Field(default=Path("data"), description="Root directory for run snapshots.")

    depot_latitude: Optional[str] = Field(
        default=None,
        description="Latitude of the warehouse every vehicle starts and ends at. Parsed when a run resolves the depot.",
    )
    depot_longitude: Optional[str] = Field(
        default=None,
        description="Longitude of the warehouse every vehicle starts and ends at. Parsed when a run resolves the depot.",
    )
    delivery_time_zone: str = Field(
        default="Europe/London",
        description="IANA time zone used to resolve HH:mm delivery windows on the batch date.",
    )
    driver_role: str = Field(default="driver", description="Role name that marks a user as a driver.")

    optimizer_base_url: str = Field(
        default="https://routeoptimization.googleapis.com/v1",
        description="Base URL of the fleet routing service.",
    )
    optimizer_project_id: Optional[str] = Field(
        default=None,
        description="Cloud project that owns the fleet routing quota.",
    )
    optimizer_credentials_file: Optional[Path] = Field(
        default=None,
        description="Service account key file. Application default credentials are used when unset.",
    )
    optimizer_timeout_seconds: float = Field(default=60.0, gt=0.0)
    optimizer_scopes: tuple[str, ...] = Field(
        default=("https://www.googleapis.com/auth/cloud-platform",),
    )

    default_step_seconds: int = Field(
        default=600,
        ge=1,
        description="ETA step used when the optimizer omits visit times and minimum fallback spacing.",
    )
    min_service_seconds: int = Field(default=60, ge=0)
    service_seconds_per_order: int = Field(default=300, ge=0)
    location_precision: int = Field(default=5, ge=0, le=8)

    store_backend: Literal["memory", "supabase"] = Field(
        default="memory",
        description="Where batches, routes and stops are stored.",
    )
    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
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

    @field_validator("frontend_allowed_origins", "optimizer_scopes", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
