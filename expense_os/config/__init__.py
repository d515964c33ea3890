"""Configuration package."""

from expense_os.config.settings import (
    AppSettings,
    GoogleSheetsSettings,
    LedgerSettings,
    ScoringPolicy,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GoogleSheetsSettings",
    "LedgerSettings",
    "ScoringPolicy",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
