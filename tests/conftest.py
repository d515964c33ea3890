"""
Shared fixtures.

Tests run against the in-memory store; the Sheets tests use a fake
worksheet. Nothing touches the network.
Timestamps are UTC-aware throughout.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from expense_os.audit import AuditLogger
from expense_os.config import LedgerSettings, ScoringPolicy
from expense_os.models.ledger import (
    ApprovalStatus,
    EmotionalTag,
    MoneyRecord,
    TransactionKind,
)
from expense_os.services.storage import InMemoryAuditStorage, InMemoryRecordStore


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def settings() -> LedgerSettings:
    return LedgerSettings(
        default_currency_code="INR",
        fiscal_month_start_day=1,
        zero_based_budget_enabled=False,
        carry_forward_savings_goal_id=None,
        timezone=None,
    )


@pytest.fixture
def policy() -> ScoringPolicy:
    return ScoringPolicy()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage) -> AuditLogger:
    return AuditLogger(audit_storage)


@pytest.fixture
def add_expense(store):
    """Factory: insert an expense (approved by default) and return it."""

    def _add(
        amount,
        category: str,
        occurred_at: datetime,
        status: ApprovalStatus = ApprovalStatus.APPROVED,
        currency_code: str = "INR",
        payment_method: str = "Cash",
        emotional_tag: EmotionalTag = EmotionalTag.NONE,
    ) -> MoneyRecord:
        return store.add_record(MoneyRecord(
            occurred_at=occurred_at,
            kind=TransactionKind.EXPENSE,
            approval_status=status,
            amount=Decimal(str(amount)),
            currency_code=currency_code,
            category=category,
            payment_method=payment_method,
            emotional_tag=emotional_tag,
        ))

    return _add


@pytest.fixture
def add_income(store):
    """Factory: insert an approved income record and return it."""

    def _add(amount, occurred_at: datetime, currency_code: str = "INR") -> MoneyRecord:
        return store.add_record(MoneyRecord(
            occurred_at=occurred_at,
            kind=TransactionKind.INCOME,
            approval_status=ApprovalStatus.APPROVED,
            amount=Decimal(str(amount)),
            currency_code=currency_code,
            category="Salary",
        ))

    return _add
