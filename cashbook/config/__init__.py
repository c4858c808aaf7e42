"""Configuration package."""

from cashbook.config.settings import (
    AdminSettings,
    AppSettings,
    GoogleSheetsSettings,
    MasterDefaultsSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AdminSettings",
    "AppSettings",
    "GoogleSheetsSettings",
    "MasterDefaultsSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
