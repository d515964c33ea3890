"""
Carry-Forward Engine

Reconciles one month's unused category budget into the next month's
budget or into a savings goal.

GUARANTEE: applying carry-forward into the same month any number of
times leaves the same state as applying it once, as long as the source
month's budget and approved expenses haven't changed in between.
Each (from-month, to-month, category, destination) is applied at most
once; the CarryForwardEvent ledger is the only gate.

IMPORTANT: A source month is never re-reconciled. If expenses in a
past month are edited after its carry-forward ran, the earlier amount
stands.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from expense_os.audit import AuditLogger
from expense_os.config import LedgerSettings
from expense_os.engine.bucketing import bucket_end, previous_bucket
from expense_os.models.audit import AuditEventBuilder
from expense_os.models.ledger import (
    CARRY_FORWARD_GOAL_NAME,
    ZERO,
    ApprovalStatus,
    Budget,
    CarryForwardDestination,
    CarryForwardEvent,
    CarryForwardKey,
    SavingsGoal,
    TransactionKind,
)
from expense_os.services.storage import RecordStoreInterface


logger = structlog.get_logger(__name__)


class CarryForwardEngine:
    """
    Moves unused budget from the previous month bucket into `into_month`.

    Storage failures while reading or writing the carry-forward ledger
    propagate to the caller. A missed check could double-credit a goal.
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        settings: LedgerSettings,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._settings = settings
        self._audit_logger = audit_logger

    def apply(
        self,
        into_month: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> list[CarryForwardEvent]:
        """
        Apply carry-forward into `into_month` (a month bucket start).

        Returns:
            The ledger events created by this call (empty on a re-run)
        """
        from_month = previous_bucket(into_month)

        from_budget = self._store.get_budget(from_month)
        if from_budget is None:
            logger.debug("carry_forward_no_source_budget", from_month=from_month.isoformat())
            return []

        actuals = self.actual_spent_by_category(from_month)
        applied: list[CarryForwardEvent] = []

        for category, planned in from_budget.category_budgets.items():
            unused = planned - actuals.get(category, ZERO)
            if unused <= 0:
                continue

            destination = from_budget.carry_rule_for(category)
            if destination == CarryForwardDestination.NONE:
                continue

            key = CarryForwardKey.build(from_month, into_month, category, destination)
            if self._store.carry_forward_event_exists(key):
                if self._audit_logger:
                    self._audit_logger.log(AuditEventBuilder.carry_forward_skipped(
                        event_id=key.legacy_id,
                        category=category,
                        correlation_id=correlation_id,
                    ))
                continue

            if destination == CarryForwardDestination.NEXT_MONTH:
                self._credit_next_month(into_month, category, unused)
            else:
                self._credit_savings_goal(unused)

            event = self._store.add_carry_forward_event(CarryForwardEvent(
                key=key,
                category=category,
                amount=unused,
            ))
            applied.append(event)

            if self._audit_logger:
                self._audit_logger.log(AuditEventBuilder.carry_forward_applied(
                    event_id=event.id,
                    category=category,
                    destination=destination.value,
                    amount=unused,
                    correlation_id=correlation_id,
                ))

        return applied

    def actual_spent_by_category(self, month_start: datetime) -> dict[str, Decimal]:
        """Approved expense totals per category for one bucket, default currency only."""
        expenses = self._store.list_records(
            currency_code=self._settings.default_currency_code,
            kind=TransactionKind.EXPENSE,
            statuses={ApprovalStatus.APPROVED},
            occurred_from=month_start,
            occurred_to=bucket_end(month_start),
        )
        totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
        for expense in expenses:
            totals[expense.category] += expense.amount
        return dict(totals)

    def _credit_next_month(self, into_month: datetime, category: str, amount: Decimal) -> None:
        existing = self._store.get_budget(into_month)
        if existing is None:
            budget = Budget(month_key=into_month, category_budgets={category: amount})
        else:
            budget = existing.add_to_category(category, amount)
        self._store.upsert_budget(budget)

    def _credit_savings_goal(self, amount: Decimal) -> None:
        goal_id = self._settings.carry_forward_savings_goal_id
        if goal_id is not None:
            goal = self._store.get_goal(goal_id)
            if goal is not None:
                self._store.update_goal(goal.credited(amount))
                return
            logger.warning("carry_forward_goal_missing", goal_id=str(goal_id))

        goal = self._store.find_goal_by_name(CARRY_FORWARD_GOAL_NAME)
        if goal is not None:
            self._store.update_goal(goal.credited(amount))
        else:
            self._store.add_goal(SavingsGoal(
                name=CARRY_FORWARD_GOAL_NAME,
                target_amount=ZERO,
                current_amount=amount,
            ))


def apply_carry_forward(
    into_month: datetime,
    store: RecordStoreInterface,
    settings: LedgerSettings,
) -> list[CarryForwardEvent]:
    """Functional entry point: see CarryForwardEngine.apply."""
    return CarryForwardEngine(store, settings).apply(into_month)
