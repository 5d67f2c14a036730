"""
Application Settings

Environment-driven configuration for the reporting backend.
Values are read once per process (see get_settings) and can be
overridden in tests by passing fields to Settings directly.
Invalid values fail at startup instead of falling back to defaults.
"""

from functools import lru_cache
from typing import Annotated, Optional, Tuple

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Comma separated in the environment: REPORT_ROLES=admin,management
CsvTuple = Annotated[Tuple[str, ...], NoDecode]


class Settings(BaseSettings):
    """Runtime configuration read from environment variables (and .env)"""

    supabase_url: Optional[str] = None
    # Service role key bypasses RLS for report reads
    supabase_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SUPABASE_SERVICE_KEY", "SUPABASE_KEY", "supabase_key"),
    )

    # Table names in the hosted store
    tickets_table: str = "tickets"
    work_logs_table: str = "machine_work_logs"
    customers_table: str = "customers"
    machines_table: str = "machines"
    users_table: str = "users"
    parts_table: str = "parts"

    # Role gates
    report_roles: CsvTuple = ("admin", "management")
    work_log_roles: CsvTuple = ("admin", "call_admin", "management", "technician")

    # Reporting constants
    work_log_cache_ttl_seconds: float = Field(default=60.0, gt=0)
    filtered_report_cache_ttl_seconds: float = Field(default=300.0, gt=0)
    default_chargeout_rate: float = Field(default=120.0, ge=0)
    default_internal_pay_rate: float = Field(default=35.0, ge=0)
    aging_threshold_days: int = Field(default=3, ge=0)

    cache_webhook_secret: Optional[str] = None
    log_level: str = "INFO"
    cors_origins: CsvTuple = ("*",)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("report_roles", "work_log_roles", "cors_origins", mode="before")
    @classmethod
    def _split_csv(cls, value):
        if isinstance(value, str):
            return tuple(item.strip() for item in value.split(",") if item.strip())
        return value

    @field_validator("supabase_url", "supabase_key", "cache_webhook_secret", mode="before")
    @classmethod
    def _blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


@lru_cache
def get_settings() -> Settings:
    """Get process-wide settings"""
    return Settings()
