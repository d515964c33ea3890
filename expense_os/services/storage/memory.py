"""
In-Memory Storage Implementation

Used by tests and by single-process hosts that persist through the JSON
export. Every entity is a frozen model, so a snapshot of the containers
is enough to roll back a unit of work.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Iterator, Optional
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
    ensure_aware,
)
from expense_os.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
)


def record_matches(
    record: MoneyRecord,
    currency_code: Optional[str] = None,
    kind: Optional[TransactionKind] = None,
    statuses: Optional[set[ApprovalStatus]] = None,
    occurred_from: Optional[datetime] = None,
    occurred_to: Optional[datetime] = None,
) -> bool:
    """Apply the list_records filters to one record. Naive bounds are read as UTC."""
    if currency_code and record.currency_code != currency_code.upper():
        return False
    if kind and record.kind != kind:
        return False
    if statuses is not None and record.approval_status not in statuses:
        return False
    if occurred_from and record.occurred_at < ensure_aware(occurred_from):
        return False
    if occurred_to and record.occurred_at >= ensure_aware(occurred_to):
        return False
    return True


class InMemoryRecordStore(RecordStoreInterface):
    """
    Dictionary-backed record store.

    Enforces the same uniqueness rules a database would:
    one budget per month, one score per month, one carry-forward
    event per key.
    """

    def __init__(self):
        self._records: dict[UUID, MoneyRecord] = {}
        self._budgets: dict[datetime, Budget] = {}
        self._goals: dict[UUID, SavingsGoal] = {}
        self._carry_events: dict[CarryForwardKey, CarryForwardEvent] = {}
        self._scores: dict[datetime, FinancialScoreRecord] = {}
        self._templates: dict[UUID, ExpenseTemplate] = {}
        self._budget_changes: list[BudgetChangeEvent] = []
        self._goal_allocations: list[GoalAllocationEvent] = []
        self._atomic_depth = 0

    # Money records

    def add_record(self, record: MoneyRecord) -> MoneyRecord:
        if record.id in self._records:
            raise DuplicateError(f"Record already exists: {record.id}")
        self._records[record.id] = record
        return record

    def update_record(self, record: MoneyRecord) -> MoneyRecord:
        if record.id not in self._records:
            raise NotFoundError(f"Record not found: {record.id}")
        self._records[record.id] = record
        return record

    def get_record(self, record_id: UUID) -> Optional[MoneyRecord]:
        return self._records.get(record_id)

    def list_records(
        self,
        currency_code: Optional[str] = None,
        kind: Optional[TransactionKind] = None,
        statuses: Optional[set[ApprovalStatus]] = None,
        occurred_from: Optional[datetime] = None,
        occurred_to: Optional[datetime] = None,
        newest_first: bool = False,
    ) -> list[MoneyRecord]:
        matching = [
            record
            for record in self._records.values()
            if record_matches(
                record,
                currency_code=currency_code,
                kind=kind,
                statuses=statuses,
                occurred_from=occurred_from,
                occurred_to=occurred_to,
            )
        ]
        matching.sort(key=lambda r: r.occurred_at, reverse=newest_first)
        return matching

    def count_records(
        self,
        currency_code: Optional[str] = None,
        kind: Optional[TransactionKind] = None,
        statuses: Optional[set[ApprovalStatus]] = None,
        occurred_from: Optional[datetime] = None,
        occurred_to: Optional[datetime] = None,
    ) -> int:
        return sum(
            1
            for record in self._records.values()
            if record_matches(
                record,
                currency_code=currency_code,
                kind=kind,
                statuses=statuses,
                occurred_from=occurred_from,
                occurred_to=occurred_to,
            )
        )

    def delete_all_records(self) -> int:
        removed = len(self._records)
        self._records.clear()
        return removed

    # Budgets

    def get_budget(self, month_key: datetime) -> Optional[Budget]:
        return self._budgets.get(ensure_aware(month_key))

    def upsert_budget(self, budget: Budget) -> Budget:
        self._budgets[budget.month_key] = budget
        return budget

    def list_budgets(self) -> list[Budget]:
        return sorted(self._budgets.values(), key=lambda b: b.month_key)

    # Goals

    def get_goal(self, goal_id: UUID) -> Optional[SavingsGoal]:
        return self._goals.get(goal_id)

    def find_goal_by_name(self, name: str) -> Optional[SavingsGoal]:
        for goal in self._goals.values():
            if goal.name == name:
                return goal
        return None

    def add_goal(self, goal: SavingsGoal) -> SavingsGoal:
        if goal.id in self._goals:
            raise DuplicateError(f"Goal already exists: {goal.id}")
        self._goals[goal.id] = goal
        return goal

    def update_goal(self, goal: SavingsGoal) -> SavingsGoal:
        if goal.id not in self._goals:
            raise NotFoundError(f"Goal not found: {goal.id}")
        self._goals[goal.id] = goal
        return goal

    def list_goals(self) -> list[SavingsGoal]:
        return list(self._goals.values())

    # Carry-forward ledger

    def carry_forward_event_exists(self, key: CarryForwardKey) -> bool:
        return key in self._carry_events

    def add_carry_forward_event(self, event: CarryForwardEvent) -> CarryForwardEvent:
        if event.key in self._carry_events:
            raise DuplicateError(f"Carry-forward already applied: {event.id}")
        self._carry_events[event.key] = event
        return event

    def list_carry_forward_events(
        self,
        to_month: Optional[datetime] = None,
    ) -> list[CarryForwardEvent]:
        return [
            event
            for event in self._carry_events.values()
            if to_month is None or event.key.to_month == ensure_aware(to_month)
        ]

    # Scores

    def get_financial_score(self, month_key: datetime) -> Optional[FinancialScoreRecord]:
        return self._scores.get(ensure_aware(month_key))

    def upsert_financial_score(self, record: FinancialScoreRecord) -> FinancialScoreRecord:
        self._scores[record.month_key] = record
        return record

    def list_financial_scores(self) -> list[FinancialScoreRecord]:
        return sorted(self._scores.values(), key=lambda s: s.month_key)

    # Templates

    def add_template(self, template: ExpenseTemplate) -> ExpenseTemplate:
        if template.id in self._templates:
            raise DuplicateError(f"Template already exists: {template.id}")
        self._templates[template.id] = template
        return template

    def get_template(self, template_id: UUID) -> Optional[ExpenseTemplate]:
        return self._templates.get(template_id)

    def list_templates(self) -> list[ExpenseTemplate]:
        return list(self._templates.values())

    # Timeline

    def add_budget_change_event(self, event: BudgetChangeEvent) -> BudgetChangeEvent:
        self._budget_changes.append(event)
        return event

    def list_budget_change_events(
        self,
        month_key: Optional[datetime] = None,
    ) -> list[BudgetChangeEvent]:
        return [
            event
            for event in self._budget_changes
            if month_key is None or event.month_key == ensure_aware(month_key)
        ]

    def add_goal_allocation_event(self, event: GoalAllocationEvent) -> GoalAllocationEvent:
        self._goal_allocations.append(event)
        return event

    def list_goal_allocation_events(
        self,
        goal_id: Optional[UUID] = None,
    ) -> list[GoalAllocationEvent]:
        return [
            event
            for event in self._goal_allocations
            if goal_id is None or event.goal_id == goal_id
        ]

    # Units of work

    def _snapshot(self) -> dict:
        return {
            "_records": dict(self._records),
            "_budgets": dict(self._budgets),
            "_goals": dict(self._goals),
            "_carry_events": dict(self._carry_events),
            "_scores": dict(self._scores),
            "_templates": dict(self._templates),
            "_budget_changes": list(self._budget_changes),
            "_goal_allocations": list(self._goal_allocations),
        }

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Roll every container back if the block raises. Nested blocks join the outer one."""
        if self._atomic_depth:
            self._atomic_depth += 1
            try:
                yield
            finally:
                self._atomic_depth -= 1
            return

        snapshot = self._snapshot()
        self._atomic_depth = 1
        try:
            yield
        except BaseException:
            for name, value in snapshot.items():
                setattr(self, name, value)
            raise
        finally:
            self._atomic_depth = 0


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only in-memory audit log."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._events if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return sorted(self._events, key=lambda e: e.timestamp, reverse=True)[:limit]
