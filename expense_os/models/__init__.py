"""
Data Models Package

This package contains all Pydantic models used by the Expense OS engine.
All data flowing through the engine must conform to these schemas.
"""

from expense_os.models.ledger import (
    APPROVAL_TRANSITIONS,
    CARRY_FORWARD_GOAL_NAME,
    ApprovalStatus,
    Budget,
    BudgetChangeEvent,
    CarryForwardDestination,
    CarryForwardEvent,
    CarryForwardKey,
    EmotionalTag,
    ExpenseTemplate,
    FinancialScoreRecord,
    GoalAllocationEvent,
    MoneyRecord,
    SavingsGoal,
    TransactionKind,
    month_label,
    utc_now,
)
from expense_os.models.analytics import (
    FinancialHealthScore,
    Finding,
    FindingKind,
    Insight,
    InsightKind,
    SmartDefaults,
    TimeBucket,
)
from expense_os.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "APPROVAL_TRANSITIONS",
    "CARRY_FORWARD_GOAL_NAME",
    "ApprovalStatus",
    "Budget",
    "BudgetChangeEvent",
    "CarryForwardDestination",
    "CarryForwardEvent",
    "CarryForwardKey",
    "EmotionalTag",
    "ExpenseTemplate",
    "FinancialScoreRecord",
    "GoalAllocationEvent",
    "MoneyRecord",
    "SavingsGoal",
    "TransactionKind",
    "month_label",
    "utc_now",
    # Analytics models
    "FinancialHealthScore",
    "Finding",
    "FindingKind",
    "Insight",
    "InsightKind",
    "SmartDefaults",
    "TimeBucket",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
