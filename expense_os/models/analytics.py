"""
Analytics Result Models

What the engine hands back to presentation code. None of these are
persisted except FinancialHealthScore (via FinancialScoreRecord).
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class FindingKind(str, Enum):
    """Kinds of data integrity findings."""
    POTENTIAL_DUPLICATE = "potential_duplicate"
    OUTLIER = "outlier"
    MONTHLY_HEALTH = "monthly_health"  # Synthetic "checked, clean" marker


class Finding(BaseModel):
    """A single data integrity finding for one month."""

    id: UUID = Field(default_factory=uuid4)
    kind: FindingKind
    title: str
    detail: str
    record_id: Optional[UUID] = Field(
        default=None,
        description="The record this finding points at, if any"
    )


class InsightKind(str, Enum):
    """Which rule produced an insight."""
    START_LOGGING = "start_logging"
    MOOD_CORRELATION = "mood_correlation"
    CATEGORY_CONCENTRATION = "category_concentration"
    CATEGORY_FRAGMENTATION = "category_fragmentation"
    VOLATILITY_INCREASE = "volatility_increase"


class Insight(BaseModel):
    """A human-readable, explainable finding about spending."""

    id: UUID = Field(default_factory=uuid4)
    kind: InsightKind
    title: str
    detail: str


class FinancialHealthScore(BaseModel):
    """Composite 0-100 score and its weighted breakdown."""

    month_key: datetime
    score: int = Field(..., ge=0, le=100)
    breakdown: dict[str, int] = Field(default_factory=dict)


class TimeBucket(str, Enum):
    """Part of day a record happened in."""
    MORNING = "morning"      # 05-12
    AFTERNOON = "afternoon"  # 12-17
    EVENING = "evening"      # 17-22
    NIGHT = "night"

    @classmethod
    def from_datetime(cls, moment: datetime) -> 'TimeBucket':
        hour = moment.hour
        if 5 <= hour < 12:
            return cls.MORNING
        if 12 <= hour < 17:
            return cls.AFTERNOON
        if 17 <= hour < 22:
            return cls.EVENING
        return cls.NIGHT


class SmartDefaults(BaseModel):
    """Suggested category and payment method for a new entry."""

    category: str
    payment_method: str
