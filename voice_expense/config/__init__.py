"""Configuration package."""

from voice_expense.config.settings import (
    AppSettings,
    CaptureSettings,
    ClientSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "CaptureSettings",
    "ClientSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
