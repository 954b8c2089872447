"""Settings loaded from the environment (prefix ``INVOICE_GEN_``) or a .env file."""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .cache import DEFAULT_QUOTA_BYTES
from .schemas import DEFAULT_CURRENCY, DEFAULT_NOTES


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="INVOICE_GEN_", env_file=".env", extra="ignore")

    store_backend: Literal["local", "remote"] = "local"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    table: str = "invoices"

    cache_path: str = "~/.invoice_gen/cache"
    cache_quota_bytes: int = Field(default=DEFAULT_QUOTA_BYTES, gt=0)
    export_dir: str = "exports"
    public_base_url: Optional[str] = None

    invoice_prefix: str = "GP"
    default_currency: str = DEFAULT_CURRENCY
    default_notes: str = DEFAULT_NOTES
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: Any) -> str:
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if str(v).upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return str(v).upper()

    @model_validator(mode="after")
    def check_remote(self) -> "Settings":
        if self.store_backend == "remote" and not (self.supabase_url and self.supabase_key):
            raise ValueError("supabase_url and supabase_key are required for the remote store")
        return self


@lru_cache
def get_settings() -> Settings:
    return Settings()
