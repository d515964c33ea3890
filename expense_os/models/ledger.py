"""
Core Ledger Models for Expense OS

These models define the strict schemas for every entity the engine reads
or writes. They are designed to:
1. Keep money exact (Decimal everywhere, never float)
2. Be immutable - updates return a new copy
3. Be serializable for storage and export
4. Carry their own natural keys so the store can enforce uniqueness

DESIGN DECISION: Mapping-typed fields (budget amounts, carry rules) are
read-only views on frozen models. There is no hidden encode/decode on
access; changing a budget means building a new Budget through a `with_*`
method.

Every timestamp is stored timezone-aware. A naive datetime handed to a
model is read as UTC.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)


ZERO = Decimal("0")

CARRY_FORWARD_GOAL_NAME = "Carry-forward Savings"


def utc_now() -> datetime:
    """Timezone-aware current time, used for bookkeeping timestamps."""
    return datetime.now(timezone.utc)


def ensure_aware(moment: datetime) -> datetime:
    """Attach UTC to a naive datetime; aware values pass through unchanged."""
    if moment.tzinfo is None or moment.utcoffset() is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def _aware_or_none(moment: Optional[datetime]) -> Optional[datetime]:
    return ensure_aware(moment) if moment is not None else None


def month_label(moment: datetime) -> str:
    """Render a month bucket as yyyy-MM."""
    return f"{moment.year:04d}-{moment.month:02d}"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionKind(str, Enum):
    """Direction of a money movement."""
    EXPENSE = "expense"
    INCOME = "income"


class ApprovalStatus(str, Enum):
    """
    Review state of a money record.

    Expenses start PENDING and only count once APPROVED.
    DISCARDED records are excluded from every aggregate.
    """
    PENDING = "pending"
    APPROVED = "approved"
    DISCARDED = "discarded"


class EmotionalTag(str, Enum):
    """How the owner felt when spending (used by mood insights)."""
    NONE = "none"
    NEUTRAL = "neutral"
    STRESSED = "stressed"
    HAPPY = "happy"


class CarryForwardDestination(str, Enum):
    """Where a category's unused budget goes at month end."""
    NEXT_MONTH = "nextMonth"
    SAVINGS = "savings"
    NONE = "none"


# Allowed approval transitions: from -> set of targets
APPROVAL_TRANSITIONS: dict[ApprovalStatus, frozenset[ApprovalStatus]] = {
    ApprovalStatus.PENDING: frozenset({ApprovalStatus.APPROVED, ApprovalStatus.DISCARDED}),
    ApprovalStatus.APPROVED: frozenset({ApprovalStatus.PENDING}),
    ApprovalStatus.DISCARDED: frozenset(),
}


# =============================================================================
# MONEY RECORDS
# =============================================================================

class MoneyRecord(BaseModel):
    """
    A single expense or income entry.

    CRITICAL: `occurred_at` is the economically relevant timestamp.
    Bucketing and range queries use it, never `created_at`.

    Text fields are stored exactly as entered.
    """
    model_config = ConfigDict(frozen=True)

    # Identity
    id: UUID = Field(default_factory=uuid4)
    created_at: datetime = Field(default_factory=utc_now)
    occurred_at: datetime = Field(
        ...,
        description="When the money actually moved"
    )

    kind: TransactionKind = Field(default=TransactionKind.EXPENSE)
    approval_status: ApprovalStatus = Field(default=ApprovalStatus.PENDING)

    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount in `currency_code`"
    )
    currency_code: str = Field(..., min_length=3, max_length=3)

    title: str = Field(default="", max_length=200)
    notes: Optional[str] = Field(default=None, max_length=1000)

    # Free text, case-sensitive
    category: str = Field(..., min_length=1, max_length=100)
    payment_method: str = Field(default="Cash", max_length=100)

    emotional_tag: EmotionalTag = Field(default=EmotionalTag.NONE)

    @field_validator('currency_code')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator('occurred_at', 'created_at')
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        return ensure_aware(v)

    @field_validator('category')
    @classmethod
    def category_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("category must not be blank")
        return v

    @property
    def is_approved_expense(self) -> bool:
        return (
            self.kind == TransactionKind.EXPENSE
            and self.approval_status == ApprovalStatus.APPROVED
        )

    def can_transition_to(self, status: ApprovalStatus) -> bool:
        return status in APPROVAL_TRANSITIONS[self.approval_status]

    def with_status(self, status: ApprovalStatus) -> 'MoneyRecord':
        """Return a copy with a new approval status (transition checked by caller)."""
        return self.model_copy(update={"approval_status": status})


class ExpenseTemplate(BaseModel):
    """A saved one-tap expense (e.g. "Coffee, 150, Food, Card")."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=100)
    payment_method: str = Field(default="Cash", max_length=100)
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# BUDGETS
# =============================================================================

class Budget(BaseModel):
    """
    Planned spending for one month bucket.

    At most one Budget exists per `month_key` (the store enforces it).
    `category_budgets` and `carry_rules` keys need not match; a category
    without a carry rule carries to next month. Both mappings are
    read-only views over a private copy of the input.
    """
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    month_key: datetime = Field(
        ...,
        description="Start of the month bucket this budget covers"
    )
    assigned_income: Decimal = Field(
        default=ZERO,
        ge=0,
        description="Income assigned for zero-based budgeting"
    )
    category_budgets: Mapping[str, Decimal] = Field(default_factory=dict, validate_default=True)
    carry_rules: Mapping[str, CarryForwardDestination] = Field(default_factory=dict, validate_default=True)

    @field_validator('month_key')
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        return ensure_aware(v)

    @field_validator('category_budgets', 'carry_rules')
    @classmethod
    def read_only(cls, v: Mapping) -> Mapping:
        return MappingProxyType(dict(v))

    @field_serializer('category_budgets', 'carry_rules')
    def plain_dict(self, v: Mapping) -> dict:
        return dict(v)

    @property
    def planned_total(self) -> Decimal:
        return sum(self.category_budgets.values(), ZERO)

    def carry_rule_for(self, category: str) -> CarryForwardDestination:
        return self.carry_rules.get(category, CarryForwardDestination.NEXT_MONTH)

    def with_category_amount(self, category: str, amount: Decimal) -> 'Budget':
        budgets = dict(self.category_budgets)
        budgets[category] = amount
        return self.model_copy(update={"category_budgets": MappingProxyType(budgets)})

    def add_to_category(self, category: str, amount: Decimal) -> 'Budget':
        current = self.category_budgets.get(category, ZERO)
        return self.with_category_amount(category, current + amount)

    def with_carry_rule(
        self,
        category: str,
        destination: CarryForwardDestination,
    ) -> 'Budget':
        rules = dict(self.carry_rules)
        rules[category] = destination
        return self.model_copy(update={"carry_rules": MappingProxyType(rules)})

    def revised(
        self,
        assigned_income: Decimal,
        category_budgets: Mapping[str, Decimal],
        carry_rules: Mapping[str, CarryForwardDestination],
    ) -> 'Budget':
        """Same budget row (id and month) with every editable field replaced."""
        return Budget(
            id=self.id,
            month_key=self.month_key,
            assigned_income=assigned_income,
            category_budgets=category_budgets,
            carry_rules=carry_rules,
        )


# =============================================================================
# GOALS
# =============================================================================

class SavingsGoal(BaseModel):
    """A savings target credited manually or by carry-forward."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: UUID = Field(default_factory=uuid4)
    name: str = Field(..., min_length=1, max_length=100)
    target_amount: Decimal = Field(default=ZERO, ge=0)
    current_amount: Decimal = Field(default=ZERO)
    deadline: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('deadline', 'created_at')
    @classmethod
    def require_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _aware_or_none(v)

    @property
    def progress(self) -> float:
        """Completion in [0, 1]; a goal without a target has no progress."""
        if self.target_amount == 0:
            return 0.0
        ratio = float(self.current_amount / self.target_amount)
        return max(0.0, min(1.0, ratio))

    def credited(self, amount: Decimal) -> 'SavingsGoal':
        return self.model_copy(update={"current_amount": self.current_amount + amount})


# =============================================================================
# CARRY-FORWARD LEDGER
# =============================================================================

class CarryForwardKey(BaseModel):
    """
    Natural key of a carry-forward application.

    DESIGN DECISION: Idempotency is enforced on this composite key by the
    store, not by comparing formatted strings. `legacy_id` is only a
    display/exchange rendering.
    """
    model_config = ConfigDict(frozen=True)

    from_month: datetime
    to_month: datetime
    category_slug: str = Field(..., min_length=1)
    destination: CarryForwardDestination

    @field_validator('from_month', 'to_month')
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        return ensure_aware(v)

    @staticmethod
    def normalize_category(category: str) -> str:
        return category.lower().replace(" ", "-")

    @classmethod
    def build(
        cls,
        from_month: datetime,
        to_month: datetime,
        category: str,
        destination: CarryForwardDestination,
    ) -> 'CarryForwardKey':
        return cls(
            from_month=from_month,
            to_month=to_month,
            category_slug=cls.normalize_category(category),
            destination=destination,
        )

    @property
    def legacy_id(self) -> str:
        return (
            f"cf_{month_label(self.from_month)}_{month_label(self.to_month)}"
            f"_{self.category_slug}_{self.destination.value}"
        )


class CarryForwardEvent(BaseModel):
    """
    Idempotency ledger entry for one applied carry-forward.

    Its existence is the only thing preventing a double credit.
    Immutable once created.
    """
    model_config = ConfigDict(frozen=True)

    key: CarryForwardKey
    category: str = Field(..., description="Category as written in the budget")
    amount: Decimal = Field(..., gt=0)
    applied_at: datetime = Field(default_factory=utc_now)

    @property
    def id(self) -> str:
        return self.key.legacy_id


# =============================================================================
# SCORES & TIMELINE
# =============================================================================

class FinancialScoreRecord(BaseModel):
    """Persisted health score, one row per month bucket (upserted)."""
    model_config = ConfigDict(frozen=True)

    month_key: datetime
    score: int
    breakdown: dict[str, int] = Field(default_factory=dict)
    computed_at: datetime = Field(default_factory=utc_now)

    @field_validator('month_key', 'computed_at')
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        return ensure_aware(v)

    @field_validator('score')
    @classmethod
    def clamp_score(cls, v: int) -> int:
        return max(0, min(100, v))


class BudgetChangeEvent(BaseModel):
    """Append-only timeline entry for a budget edit."""
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    month_key: datetime
    changed_at: datetime = Field(default_factory=utc_now)
    summary: str = Field(..., max_length=500)

    @field_validator('month_key', 'changed_at')
    @classmethod
    def require_timezone(cls, v: datetime) -> datetime:
        return ensure_aware(v)


class GoalAllocationEvent(BaseModel):
    """Append-only timeline entry for money moved into a goal."""
    model_config = ConfigDict(frozen=True)

    id: UUID = Field(default_factory=uuid4)
    goal_id: UUID
    goal_name: str
    amount: Decimal
    currency_code: str = Field(..., min_length=3, max_length=3)
    created_at: datetime = Field(default_factory=utc_now)
