"""
Abstract Storage Interface

DESIGN DECISION: The engine never talks to a database directly.
It sees the record store as a small capability:
query-by-filter, insert, update, upsert and count.

This allows us to:
1. Use in-memory storage for tests and single-process hosts
2. Keep a Google Sheets backend the owner can read directly
3. Keep every analytics rule decoupled from persistence

The interface is intentionally simple - we're not building a full ORM.
Just the operations the engine and its maintenance flow need.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from datetime import datetime
from typing import Optional
from uuid import UUID

from expense_os.models.audit import AuditEvent
from expense_os.models.ledger import (
    ApprovalStatus,
    Budget,
    BudgetChangeEvent,
    CarryForwardEvent,
    CarryForwardKey,
    ExpenseTemplate,
    FinancialScoreRecord,
    GoalAllocationEvent,
    MoneyRecord,
    SavingsGoal,
    TransactionKind,
)


class RecordStoreInterface(ABC):
    """
    Abstract interface for the ledger record store.

    Any storage implementation (in-memory, Google Sheets, ...)
    must implement these methods. Range filters on `occurred_at`
    are half-open: [occurred_from, occurred_to).
    """

    # -------------------------------------------------------------------------
    # Money records
    # -------------------------------------------------------------------------

    @abstractmethod
    def add_record(self, record: MoneyRecord) -> MoneyRecord:
        """
        Insert a money record.

        Raises:
            DuplicateError: If a record with the same id exists
        """

    @abstractmethod
    def update_record(self, record: MoneyRecord) -> MoneyRecord:
        """
        Replace an existing money record.

        Raises:
            NotFoundError: If the record doesn't exist
        """

    @abstractmethod
    def get_record(self, record_id: UUID) -> Optional[MoneyRecord]:
        """Retrieve a record by id, or None."""

    @abstractmethod
    def list_records(
        self,
        currency_code: Optional[str] = None,
        kind: Optional[TransactionKind] = None,
        statuses: Optional[set[ApprovalStatus]] = None,
        occurred_from: Optional[datetime] = None,
        occurred_to: Optional[datetime] = None,
        newest_first: bool = False,
    ) -> list[MoneyRecord]:
        """
        List records matching every given filter.

        Args:
            currency_code: Only records in this currency
            kind: Only expenses or only income
            statuses: Only records in one of these approval states
            occurred_from: Inclusive lower bound on occurred_at
            occurred_to: Exclusive upper bound on occurred_at
            newest_first: Sort by occurred_at descending instead of ascending

        Returns:
            Matching records sorted by occurred_at (empty list if none)
        """

    @abstractmethod
    def count_records(
        self,
        currency_code: Optional[str] = None,
        kind: Optional[TransactionKind] = None,
        statuses: Optional[set[ApprovalStatus]] = None,
        occurred_from: Optional[datetime] = None,
        occurred_to: Optional[datetime] = None,
    ) -> int:
        """Count records matching the same filters as list_records."""

    @abstractmethod
    def delete_all_records(self) -> int:
        """Bulk reset. Returns how many records were removed."""

    # -------------------------------------------------------------------------
    # Budgets (one per month key)
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_budget(self, month_key: datetime) -> Optional[Budget]:
        """Retrieve the budget for a month bucket, or None."""

    @abstractmethod
    def upsert_budget(self, budget: Budget) -> Budget:
        """Insert or replace the budget for `budget.month_key`."""

    @abstractmethod
    def list_budgets(self) -> list[Budget]:
        """All budgets, oldest month first."""

    # -------------------------------------------------------------------------
    # Savings goals
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_goal(self, goal_id: UUID) -> Optional[SavingsGoal]:
        """Retrieve a goal by id, or None."""

    @abstractmethod
    def find_goal_by_name(self, name: str) -> Optional[SavingsGoal]:
        """First goal with exactly this name, or None."""

    @abstractmethod
    def add_goal(self, goal: SavingsGoal) -> SavingsGoal:
        """Insert a goal."""

    @abstractmethod
    def update_goal(self, goal: SavingsGoal) -> SavingsGoal:
        """
        Replace an existing goal.

        Raises:
            NotFoundError: If the goal doesn't exist
        """

    @abstractmethod
    def list_goals(self) -> list[SavingsGoal]:
        """All goals in creation order."""

    # -------------------------------------------------------------------------
    # Carry-forward ledger
    # -------------------------------------------------------------------------

    @abstractmethod
    def carry_forward_event_exists(self, key: CarryForwardKey) -> bool:
        """
        Check the idempotency ledger.

        Implementations MUST raise StorageError on read failure rather
        than answer False.
        """

    @abstractmethod
    def add_carry_forward_event(self, event: CarryForwardEvent) -> CarryForwardEvent:
        """
        Append to the idempotency ledger.

        Raises:
            DuplicateError: If an event with the same key exists
        """

    @abstractmethod
    def list_carry_forward_events(
        self,
        to_month: Optional[datetime] = None,
    ) -> list[CarryForwardEvent]:
        """Ledger entries, optionally only those into one month."""

    # -------------------------------------------------------------------------
    # Financial scores (one per month key)
    # -------------------------------------------------------------------------

    @abstractmethod
    def get_financial_score(self, month_key: datetime) -> Optional[FinancialScoreRecord]:
        """Retrieve the stored score for a month, or None."""

    @abstractmethod
    def upsert_financial_score(self, record: FinancialScoreRecord) -> FinancialScoreRecord:
        """Insert or replace the score for `record.month_key`."""

    @abstractmethod
    def list_financial_scores(self) -> list[FinancialScoreRecord]:
        """All stored scores, oldest month first."""

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    @abstractmethod
    def add_template(self, template: ExpenseTemplate) -> ExpenseTemplate:
        """Insert an expense template."""

    @abstractmethod
    def get_template(self, template_id: UUID) -> Optional[ExpenseTemplate]:
        """Retrieve a template by id, or None."""

    @abstractmethod
    def list_templates(self) -> list[ExpenseTemplate]:
        """All templates in creation order."""

    # -------------------------------------------------------------------------
    # Timeline (append-only)
    # -------------------------------------------------------------------------

    @abstractmethod
    def add_budget_change_event(self, event: BudgetChangeEvent) -> BudgetChangeEvent:
        """Append a budget change to the timeline."""

    @abstractmethod
    def list_budget_change_events(
        self,
        month_key: Optional[datetime] = None,
    ) -> list[BudgetChangeEvent]:
        """Budget changes in chronological order."""

    @abstractmethod
    def add_goal_allocation_event(self, event: GoalAllocationEvent) -> GoalAllocationEvent:
        """Append a goal allocation to the timeline."""

    @abstractmethod
    def list_goal_allocation_events(
        self,
        goal_id: Optional[UUID] = None,
    ) -> list[GoalAllocationEvent]:
        """Goal allocations in chronological order."""

    # -------------------------------------------------------------------------
    # Units of work
    # -------------------------------------------------------------------------

    @abstractmethod
    def atomic(self) -> AbstractContextManager[None]:
        """
        Group several writes into one logical unit.

        Backends that support it roll back on exception; others
        document their ordering guarantees instead.
        """


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """

    @abstractmethod
    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events for one correlation id, in chronological order."""

    @abstractmethod
    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent audit events (newest first)."""


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
