"""
Main Orchestrator for Expense OS

This module ties together all the components and defines the
host-facing flows:
1. Month tick (bucket -> carry-forward -> score, as one unit)
2. Analytics (integrity check, insights, smart defaults)
3. Ledger maintenance (records, approvals, budgets, goals, exchange)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Only the month tick (carry-forward and scoring) writes derived state
- Analytics never mutate the ledger
- Every write is audited

The flows audit every write, with one correlation id per month tick.
"""

from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from expense_os.audit import AuditLogger, create_correlation_id
from expense_os.config import LedgerSettings, ScoringPolicy, get_settings
from expense_os.engine.bucketing import month_key as bucket_for
from expense_os.engine.carry_forward import CarryForwardEngine
from expense_os.engine.insights import InsightsGenerator
from expense_os.engine.integrity import DataIntegrityChecker
from expense_os.engine.scoring import FinancialHealthScorer
from expense_os.engine.smart_defaults import SmartDefaultsSuggester
from expense_os.models.analytics import Finding, Insight, SmartDefaults
from expense_os.models.audit import AuditEventBuilder
from expense_os.models.ledger import (
    ApprovalStatus,
    Budget,
    BudgetChangeEvent,
    CarryForwardDestination,
    CarryForwardEvent,
    EmotionalTag,
    ExpenseTemplate,
    FinancialScoreRecord,
    GoalAllocationEvent,
    MoneyRecord,
    SavingsGoal,
    TransactionKind,
    ZERO,
    ensure_aware,
    month_label,
    utc_now,
)
from expense_os.services.exchange import ImportSummary, import_records, write_export
from expense_os.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsRecordStore,
    InMemoryAuditStorage,
    InMemoryRecordStore,
    NotFoundError,
    RecordStoreInterface,
)


class LedgerError(Exception):
    """Base exception for ledger maintenance errors."""
    pass


class InvalidTransitionError(LedgerError):
    """The requested approval status change is not allowed."""

    def __init__(self, record_id: UUID, current: ApprovalStatus, target: ApprovalStatus):
        self.record_id = record_id
        self.current = current
        self.target = target
        super().__init__(
            f"Record {record_id} cannot move from {current.value} to {target.value}"
        )


class MonthTickResult(BaseModel):
    """What one month tick did."""

    month_key: datetime
    carry_forward_events: list[CarryForwardEvent] = Field(default_factory=list)
    score: FinancialScoreRecord


class MonthlyProcessingFlow:
    """
    Orchestrates the monthly reconciliation.

    Flow:
    1. Bucket -> Resolve the current month bucket
    2. Carry-forward -> Move last month's unused budget (idempotent)
    3. Score -> Upsert this month's health score

    Steps 2 and 3 run inside one `store.atomic()` block so the score
    always reflects the post-carry-forward budget.
    Same-month ticks must not run concurrently.
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        settings: Optional[LedgerSettings] = None,
        policy: Optional[ScoringPolicy] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._audit_logger = audit_logger
        self._carry_forward = CarryForwardEngine(store, self._settings, audit_logger)
        self._scorer = FinancialHealthScorer(store, self._settings, policy)

    def current_month_key(self, now: Optional[datetime] = None) -> datetime:
        return bucket_for(
            ensure_aware(now) if now else utc_now(),
            self._settings.fiscal_month_start_day,
            self._settings.tz,
        )

    def apply_carry_forward(
        self,
        into_month: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> list[CarryForwardEvent]:
        """Idempotent: a second call for the same month creates no events."""
        return self._carry_forward.apply(into_month, correlation_id)

    def upsert_financial_score(
        self,
        month_key: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> FinancialScoreRecord:
        record = self._scorer.upsert(month_key)
        if self._audit_logger:
            self._audit_logger.log(AuditEventBuilder.score_upserted(
                month=month_label(month_key),
                score=record.score,
                breakdown=record.breakdown,
                correlation_id=correlation_id,
            ))
        return record

    def run_month_tick(self, now: Optional[datetime] = None) -> MonthTickResult:
        """
        Run carry-forward then scoring for the bucket containing `now`.

        Any storage failure rolls the unit back (where the store supports
        it), is audited, and propagates to the host.
        """
        correlation_id = create_correlation_id()
        month = self.current_month_key(now)
        label = month_label(month)

        if self._audit_logger:
            self._audit_logger.log(AuditEventBuilder.month_tick_started(label, correlation_id))

        try:
            with self._store.atomic():
                events = self.apply_carry_forward(month, correlation_id)
                score = self.upsert_financial_score(month, correlation_id)
        except Exception as e:
            if self._audit_logger:
                self._audit_logger.log_error(
                    error_type="month_tick_failed",
                    error=e,
                    correlation_id=correlation_id,
                    details={"month": label},
                )
            raise

        if self._audit_logger:
            self._audit_logger.log(AuditEventBuilder.month_tick_completed(
                month=label,
                carried=len(events),
                score=score.score,
                correlation_id=correlation_id,
            ))

        return MonthTickResult(month_key=month, carry_forward_events=events, score=score)


class AnalyticsFlow:
    """
    Read-only analytics over the ledger.

    Nothing here writes to the record store.
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        settings = settings or get_settings().ledger
        self._integrity = DataIntegrityChecker(store)
        self._insights = InsightsGenerator(store, tz=settings.tz)
        self._smart_defaults = SmartDefaultsSuggester(store, tz=settings.tz)
        self._audit_logger = audit_logger

    def run_monthly_health_check(self, month_key: datetime, currency: str) -> list[Finding]:
        findings = self._integrity.run_monthly_health_check(month_key, currency)

        if self._audit_logger:
            counts: dict[str, int] = {}
            for finding in findings:
                counts[finding.kind.value] = counts.get(finding.kind.value, 0) + 1
            self._audit_logger.log(AuditEventBuilder.health_check_run(
                month=month_label(month_key),
                currency=currency,
                findings=counts,
            ))

        return findings

    def generate_insights(self, month_key: datetime, currency: str) -> list[Insight]:
        insights = self._insights.generate(month_key, currency)

        if self._audit_logger:
            self._audit_logger.log(AuditEventBuilder.insights_generated(
                month=month_label(month_key),
                currency=currency,
                kinds=[i.kind.value for i in insights],
            ))

        return insights

    def suggest_defaults(
        self,
        amount: Decimal,
        occurred_at: datetime,
        currency: str,
    ) -> SmartDefaults:
        return self._smart_defaults.suggest(amount, occurred_at, currency)


class LedgerMaintenanceFlow:
    """
    Everyday ledger edits: recording, review, budgets, goals, exchange.

    Approval transitions:
        pending  -> approved | discarded
        approved -> pending
    Anything else raises InvalidTransitionError.
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        settings: Optional[LedgerSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
        export_file_name: Optional[str] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._audit_logger = audit_logger
        self._export_file_name = export_file_name or get_settings().app.export_file_name

    def _audit(self, event) -> None:
        if self._audit_logger:
            self._audit_logger.log(event)

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def record_expense(
        self,
        amount: Decimal,
        category: str,
        occurred_at: datetime,
        currency_code: Optional[str] = None,
        title: str = "",
        notes: Optional[str] = None,
        payment_method: str = "Cash",
        emotional_tag: EmotionalTag = EmotionalTag.NONE,
    ) -> MoneyRecord:
        """New expenses wait in review (pending) until approved."""
        return self._add(MoneyRecord(
            occurred_at=occurred_at,
            kind=TransactionKind.EXPENSE,
            approval_status=ApprovalStatus.PENDING,
            amount=amount,
            currency_code=currency_code or self._settings.default_currency_code,
            title=title,
            notes=notes,
            category=category,
            payment_method=payment_method,
            emotional_tag=emotional_tag,
        ))

    def record_income(
        self,
        amount: Decimal,
        occurred_at: datetime,
        category: str = "Income",
        currency_code: Optional[str] = None,
        title: str = "",
        notes: Optional[str] = None,
        payment_method: str = "Bank",
    ) -> MoneyRecord:
        """Income is approved on entry."""
        return self._add(MoneyRecord(
            occurred_at=occurred_at,
            kind=TransactionKind.INCOME,
            approval_status=ApprovalStatus.APPROVED,
            amount=amount,
            currency_code=currency_code or self._settings.default_currency_code,
            title=title,
            notes=notes,
            category=category,
            payment_method=payment_method,
        ))

    def _add(self, record: MoneyRecord) -> MoneyRecord:
        saved = self._store.add_record(record)
        self._audit(AuditEventBuilder.record_created(
            record_id=saved.id,
            kind=saved.kind.value,
            amount=saved.amount,
            category=saved.category,
        ))
        return saved

    def approve(self, record_id: UUID) -> MoneyRecord:
        return self._transition(record_id, ApprovalStatus.APPROVED)

    def discard(self, record_id: UUID) -> MoneyRecord:
        return self._transition(record_id, ApprovalStatus.DISCARDED)

    def return_to_pending(self, record_id: UUID) -> MoneyRecord:
        return self._transition(record_id, ApprovalStatus.PENDING)

    def _transition(self, record_id: UUID, target: ApprovalStatus) -> MoneyRecord:
        record = self._store.get_record(record_id)
        if record is None:
            raise NotFoundError(f"Record not found: {record_id}")
        if not record.can_transition_to(target):
            raise InvalidTransitionError(record_id, record.approval_status, target)

        updated = self._store.update_record(record.with_status(target))
        self._audit(AuditEventBuilder.record_status_changed(
            record_id=record_id,
            old_status=record.approval_status.value,
            new_status=target.value,
        ))
        return updated

    def approve_all_pending(self) -> int:
        """Approve every pending expense. Returns how many were approved."""
        pending = self._store.list_records(
            kind=TransactionKind.EXPENSE,
            statuses={ApprovalStatus.PENDING},
        )
        for record in pending:
            self._transition(record.id, ApprovalStatus.APPROVED)
        return len(pending)

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    def add_template(
        self,
        name: str,
        amount: Decimal,
        category: str,
        payment_method: str = "Cash",
    ) -> ExpenseTemplate:
        return self._store.add_template(ExpenseTemplate(
            name=name,
            amount=amount,
            category=category,
            payment_method=payment_method,
        ))

    def record_from_template(self, template_id: UUID, occurred_at: datetime) -> MoneyRecord:
        template = self._store.get_template(template_id)
        if template is None:
            raise NotFoundError(f"Template not found: {template_id}")
        return self.record_expense(
            amount=template.amount,
            category=template.category,
            occurred_at=occurred_at,
            title=template.name,
            payment_method=template.payment_method,
        )

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    def save_budget(
        self,
        month_key: datetime,
        assigned_income: Decimal,
        category_budgets: dict[str, Decimal],
        carry_rules: Optional[dict[str, CarryForwardDestination]] = None,
    ) -> Budget:
        """
        Create or replace the budget for a month.

        Blank category names are dropped. A BudgetChangeEvent is appended
        on creation and on any real change, never for a no-op save.
        """
        budgets = {
            name.strip(): amount
            for name, amount in category_budgets.items()
            if name.strip()
        }
        rules = {
            name.strip(): destination
            for name, destination in (carry_rules or {}).items()
            if name.strip()
        }

        existing = self._store.get_budget(month_key)
        if existing is None:
            saved = self._store.upsert_budget(Budget(
                month_key=month_key,
                assigned_income=assigned_income,
                category_budgets=budgets,
                carry_rules=rules,
            ))
            summary = "Created budget"
        else:
            unchanged = (
                existing.category_budgets == budgets
                and existing.carry_rules == rules
                and existing.assigned_income == assigned_income
            )
            if unchanged:
                return existing
            saved = self._store.upsert_budget(existing.revised(assigned_income, budgets, rules))
            summary = f"Updated budget: {len(budgets)} categories"

        self._store.add_budget_change_event(BudgetChangeEvent(month_key=month_key, summary=summary))
        self._audit(AuditEventBuilder.budget_saved(month_label(month_key), summary))
        return saved

    def unassigned_income(self, month_key: datetime) -> Decimal:
        """Zero-based budgeting: income not yet given a job."""
        if not self._settings.zero_based_budget_enabled:
            return ZERO
        budget = self._store.get_budget(month_key)
        if budget is None:
            return ZERO
        return max(ZERO, budget.assigned_income - budget.planned_total)

    # -------------------------------------------------------------------------
    # Goals
    # -------------------------------------------------------------------------

    def create_goal(
        self,
        name: str,
        target_amount: Decimal,
        deadline: Optional[datetime] = None,
    ) -> SavingsGoal:
        return self._store.add_goal(SavingsGoal(
            name=name,
            target_amount=target_amount,
            deadline=deadline,
        ))

    def allocate_to_goal(self, goal_id: UUID, amount: Decimal) -> SavingsGoal:
        goal = self._store.get_goal(goal_id)
        if goal is None:
            raise NotFoundError(f"Goal not found: {goal_id}")

        updated = self._store.update_goal(goal.credited(amount))
        self._store.add_goal_allocation_event(GoalAllocationEvent(
            goal_id=goal.id,
            goal_name=goal.name,
            amount=amount,
            currency_code=self._settings.default_currency_code,
        ))
        self._audit(AuditEventBuilder.goal_allocated(goal.id, goal.name, amount))
        return updated

    # -------------------------------------------------------------------------
    # Bulk operations
    # -------------------------------------------------------------------------

    def reset_ledger(self) -> int:
        """Delete every money record. Budgets, goals and history stay."""
        removed = self._store.delete_all_records()
        self._audit(AuditEventBuilder.ledger_reset(removed))
        return removed

    def export_ledger(self, directory: Union[str, Path]) -> Path:
        path = write_export(self._store, Path(directory) / self._export_file_name)
        self._audit(AuditEventBuilder.export_generated(self._store.count_records()))
        return path

    def import_ledger(self, payload: Union[str, bytes]) -> ImportSummary:
        summary = import_records(payload, self._store)
        self._audit(AuditEventBuilder.import_completed(summary.imported, summary.skipped))
        return summary


def create_engine_components(
    store: Optional[RecordStoreInterface] = None,
    settings: Optional[LedgerSettings] = None,
) -> tuple[MonthlyProcessingFlow, AnalyticsFlow, LedgerMaintenanceFlow]:
    """
    Factory function to create all engine components.

    Args:
        store: Record store to use. When None the backend is chosen by
               the `storage_backend` app setting.
        settings: Ledger settings. Defaults to the environment.

    Returns:
        (monthly_processing_flow, analytics_flow, ledger_maintenance_flow)
    """
    app_settings = get_settings().app
    settings = settings or get_settings().ledger

    if store is None and app_settings.storage_backend == "google_sheets":
        sheets_client = GoogleSheetsClient()
        store = GoogleSheetsRecordStore(sheets_client)
        audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
    else:
        store = store or InMemoryRecordStore()
        audit_logger = AuditLogger(InMemoryAuditStorage())

    monthly_flow = MonthlyProcessingFlow(
        store=store,
        settings=settings,
        policy=get_settings().scoring,
        audit_logger=audit_logger,
    )

    analytics_flow = AnalyticsFlow(
        store=store,
        settings=settings,
        audit_logger=audit_logger,
    )

    maintenance_flow = LedgerMaintenanceFlow(
        store=store,
        settings=settings,
        audit_logger=audit_logger,
        export_file_name=app_settings.export_file_name,
    )

    return monthly_flow, analytics_flow, maintenance_flow
