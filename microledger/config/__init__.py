"""Configuration package."""

from microledger.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    LocalStoreSettings,
    PostgrestSettings,
    RemoteSettings,
    Settings,
    SyncSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "LocalStoreSettings",
    "PostgrestSettings",
    "RemoteSettings",
    "Settings",
    "SyncSettings",
    "get_settings",
    "validate_all_settings",
]
