"""
Configuration Management for Microledger

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which remote backend is in use, where the
local cache lives, and how aggressively the sync loop runs.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LocalStoreSettings(BaseSettings):
    """Local durable store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_LOCAL_",
        extra="ignore"
    )

    data_dir: Path = Field(
        default=Path(".microledger"),
        description="Directory holding one JSON file per stored key"
    )


class SyncSettings(BaseSettings):
    """Replay and reconciliation tuning."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_SYNC_",
        extra="ignore"
    )

    replay_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Period of the background replay tick"
    )
    debounce_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Delay between a local mutation and the drain it triggers"
    )
    page_size: int = Field(
        default=1000,
        ge=1,
        le=10000,
        description="Rows per page when fetching remote snapshots"
    )
    fetch_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per page before reconciliation falls back to local"
    )


class RemoteSettings(BaseSettings):
    """Which remote store backend to use."""

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_REMOTE_",
        extra="ignore"
    )

    backend: str = Field(
        default="memory",
        pattern="^(memory|sheets|postgrest)$",
        description="Remote store backend"
    )


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets remote store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # Sheet names within the spreadsheet
    customers_sheet_name: str = Field(
        default="customers",
        description="Name of the sheet for customers"
    )
    transactions_sheet_name: str = Field(
        default="transactions",
        description="Name of the sheet for transactions"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class PostgrestSettings(BaseSettings):
    """PostgREST (Supabase-style) remote store configuration."""

    model_config = SettingsConfigDict(
        env_prefix="POSTGREST_",
        extra="ignore"
    )

    url: str = Field(
        ...,
        description="Base URL of the REST endpoint, e.g. https://xyz.supabase.co/rest/v1"
    )
    api_key: str = Field(
        ...,
        description="API key sent as both apikey and bearer token"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        le=120,
        description="Per-request timeout"
    )

    @field_validator('url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Minimum level for local structured logs"
    )

    # Ledger defaults
    default_saver_location: str = Field(
        default="outside",
        description="Location tag given to savers opened without one"
    )
    max_transaction_amount: int = Field(
        default=1_000_000_000,
        gt=0,
        description="Sanity ceiling for a single transaction amount"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily so a memory-backed setup
    # does not need remote credentials.

    @property
    def local(self) -> LocalStoreSettings:
        return LocalStoreSettings()

    @property
    def sync(self) -> SyncSettings:
        return SyncSettings()

    @property
    def remote(self) -> RemoteSettings:
        return RemoteSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def postgrest(self) -> PostgrestSettings:
        return PostgrestSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with a
    "<name>_error" entry for every group that failed to load.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("local", "sync", "remote", "google_sheets", "postgrest", "app"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
