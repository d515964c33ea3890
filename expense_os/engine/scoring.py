"""
Financial Health Scorer

A 0-100 monthly score derived from local data only. Four independent
sub-scores, each clamped to [0, 100], blended with fixed weights:

    budget adherence 35% + consistency 25% + savings ratio 25% + volatility 15%

Every input is filtered to approved records in the default currency.
Thresholds and neutral baselines come from ScoringPolicy.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from expense_os.config import LedgerSettings, ScoringPolicy
from expense_os.engine.bucketing import bucket_end, day_of, days_in_bucket
from expense_os.engine.stats import clamp_score, daily_cv, round_half_up, total
from expense_os.models.analytics import FinancialHealthScore
from expense_os.models.ledger import (
    ApprovalStatus,
    Budget,
    FinancialScoreRecord,
    MoneyRecord,
    TransactionKind,
)
from expense_os.services.storage import RecordStoreInterface


BUDGET_ADHERENCE = "Budget adherence"
CONSISTENCY = "Consistency"
SAVINGS_RATIO = "Savings ratio"
VOLATILITY = "Volatility"


class FinancialHealthScorer:
    """Computes (and optionally persists) the monthly health score."""

    def __init__(
        self,
        store: RecordStoreInterface,
        settings: LedgerSettings,
        policy: Optional[ScoringPolicy] = None,
    ):
        self._store = store
        self._settings = settings
        self._policy = policy or ScoringPolicy()

    def score(self, month_key: datetime) -> FinancialHealthScore:
        """Score one month bucket without writing anything."""
        month_end = bucket_end(month_key)
        expenses = self._fetch(TransactionKind.EXPENSE, month_key, month_end)
        income = self._fetch(TransactionKind.INCOME, month_key, month_end)

        budget = self._store.get_budget(month_key)

        breakdown = {
            BUDGET_ADHERENCE: self.budget_adherence_score(expenses, budget),
            CONSISTENCY: self.consistency_score(expenses, month_key),
            SAVINGS_RATIO: self.savings_ratio_score(total(income), total(expenses)),
            VOLATILITY: self.volatility_score(expenses),
        }

        p = self._policy
        weights = {
            BUDGET_ADHERENCE: p.budget_adherence_weight,
            CONSISTENCY: p.consistency_weight,
            SAVINGS_RATIO: p.savings_ratio_weight,
            VOLATILITY: p.volatility_weight,
        }
        # Decimal weights keep x.5 totals exact before rounding
        weighted = sum(
            (Decimal(str(weights[name])) * value for name, value in breakdown.items()),
            Decimal("0"),
        )

        return FinancialHealthScore(
            month_key=month_key,
            score=clamp_score(round_half_up(float(weighted))),
            breakdown=breakdown,
        )

    def upsert(self, month_key: datetime) -> FinancialScoreRecord:
        """Score the month and replace its stored FinancialScoreRecord."""
        result = self.score(month_key)
        return self._store.upsert_financial_score(FinancialScoreRecord(
            month_key=month_key,
            score=result.score,
            breakdown=result.breakdown,
        ))

    def _fetch(
        self,
        kind: TransactionKind,
        start: datetime,
        end: datetime,
    ) -> list[MoneyRecord]:
        return self._store.list_records(
            currency_code=self._settings.default_currency_code,
            kind=kind,
            statuses={ApprovalStatus.APPROVED},
            occurred_from=start,
            occurred_to=end,
        )

    # -------------------------------------------------------------------------
    # Sub-scores
    # -------------------------------------------------------------------------

    def budget_adherence_score(
        self,
        expenses: list[MoneyRecord],
        budget: Optional[Budget],
    ) -> int:
        """
        How close actual spend in budgeted categories landed to the plan.

        Overspending is penalized 3x harder than underspending.
        """
        p = self._policy
        if budget is None or not budget.category_budgets:
            return p.budget_adherence_baseline

        planned_total = budget.planned_total
        if planned_total <= 0:
            return p.budget_adherence_baseline

        budgeted = set(budget.category_budgets)
        actual_total = total(e for e in expenses if e.category in budgeted)

        ratio = float(actual_total / planned_total)
        penalty = (
            max(0.0, ratio - 1.0) * p.overspend_penalty
            + max(0.0, 1.0 - ratio) * p.underspend_penalty
        )
        return clamp_score(100 - round_half_up(penalty))

    def consistency_score(self, expenses: list[MoneyRecord], month_key: datetime) -> int:
        """Share of days in the bucket with at least one expense logged."""
        days = days_in_bucket(month_key)
        distinct_days = len({day_of(e.occurred_at, self._settings.tz) for e in expenses})
        ratio = distinct_days / days
        return clamp_score(round_half_up(
            min(1.0, ratio / self._policy.consistency_target_ratio) * 100
        ))

    def savings_ratio_score(self, total_income: Decimal, total_expenses: Decimal) -> int:
        """Savings rate against the target rate."""
        if total_income <= 0:
            return self._policy.savings_ratio_baseline
        savings = max(Decimal("0"), total_income - total_expenses)
        ratio = float(savings / total_income)
        return clamp_score(round_half_up(
            min(1.0, ratio / self._policy.savings_target_ratio) * 100
        ))

    def volatility_score(self, expenses: list[MoneyRecord]) -> int:
        """Lower day-to-day swing in spending scores higher."""
        p = self._policy
        cv = daily_cv(expenses, min_days=p.volatility_min_days, tz=self._settings.tz)
        if cv is None:
            return p.volatility_baseline

        span = p.volatility_cv_bad - p.volatility_cv_good
        normalized = 1.0 - min(1.0, max(0.0, (cv - p.volatility_cv_good) / span))
        return clamp_score(round_half_up(normalized * 100))


def score_month(
    month_key: datetime,
    store: RecordStoreInterface,
    settings: LedgerSettings,
    policy: Optional[ScoringPolicy] = None,
) -> FinancialHealthScore:
    """Functional entry point: see FinancialHealthScorer.score."""
    return FinancialHealthScorer(store, settings, policy).score(month_key)


def upsert_financial_score(
    month_key: datetime,
    store: RecordStoreInterface,
    settings: LedgerSettings,
    policy: Optional[ScoringPolicy] = None,
) -> FinancialScoreRecord:
    """Functional entry point: see FinancialHealthScorer.upsert."""
    return FinancialHealthScorer(store, settings, policy).upsert(month_key)
