"""
Configuration Management for Expense OS

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
Ledger preferences, scoring policy and the storage backend each get
their own settings class so they can be loaded (and overridden in tests)
independently.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    """
    Owner preferences that drive every engine computation.

    These mirror the settings screen of the app: currency, fiscal month
    start, zero-based budgeting and where savings carry-forward lands.
    """

    model_config = SettingsConfigDict(
        env_prefix="LEDGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    default_currency_code: str = Field(
        default="INR",
        min_length=3,
        max_length=3,
        description="ISO currency code used for every aggregate"
    )
    fiscal_month_start_day: int = Field(
        default=1,
        description="Day of month a budget period starts on (clamped to 1-28)"
    )
    zero_based_budget_enabled: bool = Field(
        default=False,
        description="Track unassigned income against planned budgets"
    )
    carry_forward_savings_goal_id: Optional[UUID] = Field(
        default=None,
        description="Goal credited by savings carry-forward"
    )
    timezone: Optional[str] = Field(
        default=None,
        description="IANA timezone for month buckets (None keeps timestamps as given)"
    )

    @field_validator('default_currency_code')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator('fiscal_month_start_day')
    @classmethod
    def clamp_start_day(cls, v: int) -> int:
        """Days 29-31 don't exist in every month, so they are clamped."""
        return max(1, min(28, v))

    @field_validator('timezone')
    @classmethod
    def validate_timezone(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        try:
            ZoneInfo(v.strip())
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone: {v}")
        return v.strip()

    @property
    def tz(self) -> Optional[ZoneInfo]:
        """Timezone object for bucketing, or None for naive/as-given."""
        return ZoneInfo(self.timezone) if self.timezone else None


class ScoringPolicy(BaseSettings):
    """
    Policy constants for the financial health score.

    DESIGN DECISION: The neutral baselines and thresholds are policy, not
    arithmetic. Keeping them here lets them be tuned and tested without
    touching the aggregation code.
    """

    model_config = SettingsConfigDict(
        env_prefix="SCORING_",
        extra="ignore"
    )

    # Weights of the composite score
    budget_adherence_weight: float = Field(default=0.35, ge=0.0, le=1.0)
    consistency_weight: float = Field(default=0.25, ge=0.0, le=1.0)
    savings_ratio_weight: float = Field(default=0.25, ge=0.0, le=1.0)
    volatility_weight: float = Field(default=0.15, ge=0.0, le=1.0)

    # Neutral baselines when there isn't enough data
    budget_adherence_baseline: int = Field(
        default=60,
        ge=0,
        le=100,
        description="Score when no budget (or an empty one) is set"
    )
    savings_ratio_baseline: int = Field(
        default=40,
        ge=0,
        le=100,
        description="Score when no income was recorded"
    )
    volatility_baseline: int = Field(
        default=70,
        ge=0,
        le=100,
        description="Score when too few spending days exist"
    )

    # Budget adherence penalties (points per 100% deviation)
    overspend_penalty: float = Field(default=60.0, ge=0.0)
    underspend_penalty: float = Field(default=20.0, ge=0.0)

    # Targets that earn a perfect sub-score
    consistency_target_ratio: float = Field(
        default=0.6,
        gt=0.0,
        le=1.0,
        description="Share of days with an expense logged for a perfect score"
    )
    savings_target_ratio: float = Field(
        default=0.2,
        gt=0.0,
        le=1.0,
        description="Savings rate for a perfect score"
    )

    # Volatility (coefficient of variation of daily totals)
    volatility_min_days: int = Field(default=5, ge=2)
    volatility_cv_good: float = Field(default=0.3, ge=0.0)
    volatility_cv_bad: float = Field(default=1.0, gt=0.0)

    @model_validator(mode='after')
    def validate_cv_bounds(self) -> 'ScoringPolicy':
        if self.volatility_cv_bad <= self.volatility_cv_good:
            raise ValueError("volatility_cv_bad must be greater than volatility_cv_good")
        return self


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets record store configuration."""

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

    # Worksheet names within the spreadsheet
    records_sheet_name: str = Field(default="Records")
    budgets_sheet_name: str = Field(default="Budgets")
    goals_sheet_name: str = Field(default="Goals")
    carry_forward_sheet_name: str = Field(default="CarryForward")
    scores_sheet_name: str = Field(default="Scores")
    templates_sheet_name: str = Field(default="Templates")
    timeline_sheet_name: str = Field(default="Timeline")
    audit_sheet_name: str = Field(default="AuditLog")

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the engine."
            )
        return v


class AppSettings(BaseSettings):
    """
    Process-level settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    storage_backend: str = Field(
        default="memory",
        pattern="^(memory|google_sheets)$",
        description="Which record store implementation to use"
    )
    export_file_name: str = Field(
        default="expense-os-export.json",
        description="Default file name for JSON exports"
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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def ledger(self) -> LedgerSettings:
        return LedgerSettings()

    @property
    def scoring(self) -> ScoringPolicy:
        return ScoringPolicy()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    for name in ("ledger", "scoring", "app", "google_sheets"):
        try:
            getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
