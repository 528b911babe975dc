"""Configuration package."""

from budget_planner.config.settings import (
    DEFAULT_VOICES,
    AppSettings,
    ElevenLabsSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "DEFAULT_VOICES",
    "AppSettings",
    "ElevenLabsSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
