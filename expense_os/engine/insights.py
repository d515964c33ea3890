"""
Insights Generator

Explainable, rule-based observations about one month of approved
expenses. Every rule runs independently and the results are
concatenated; an empty month short-circuits to a single prompt to
start logging.
"""

from datetime import datetime, tzinfo
from typing import Optional

from expense_os.engine.bucketing import bucket_end, previous_bucket
from expense_os.engine.stats import daily_cv, round_half_up, total
from expense_os.models.analytics import Insight, InsightKind
from expense_os.models.ledger import (
    ApprovalStatus,
    EmotionalTag,
    MoneyRecord,
    TransactionKind,
)
from expense_os.services.storage import RecordStoreInterface


FOOD_CATEGORIES = frozenset({"Food", "Dining", "Snacks"})

MOOD_MIN_STRESSED = 3
MOOD_FOOD_SHARE_THRESHOLD = 0.55

CONCENTRATED_MAX_CATEGORIES = 4
FRAGMENTED_MIN_CATEGORIES = 10

VOLATILITY_MIN_EXPENSES = 10
VOLATILITY_INCREASE_THRESHOLD = 0.18


class InsightsGenerator:
    """Runs the insight rules for a month bucket. Days are read in `tz`."""

    def __init__(self, store: RecordStoreInterface, tz: Optional[tzinfo] = None):
        self._store = store
        self._tz = tz

    def generate(self, month_key: datetime, currency_code: str) -> list[Insight]:
        expenses = self._approved_expenses(month_key, currency_code)
        if not expenses:
            return [Insight(
                kind=InsightKind.START_LOGGING,
                title="Start logging daily",
                detail="Add at least one expense per day to unlock meaningful insights.",
            )]

        insights: list[Insight] = []
        insights.extend(self.mood_correlation(expenses))
        insights.extend(self.category_breadth(expenses))
        insights.extend(self.volatility_change(month_key, currency_code, expenses))
        return insights

    def _approved_expenses(self, month_key: datetime, currency_code: str) -> list[MoneyRecord]:
        return self._store.list_records(
            currency_code=currency_code,
            kind=TransactionKind.EXPENSE,
            statuses={ApprovalStatus.APPROVED},
            occurred_from=month_key,
            occurred_to=bucket_end(month_key),
        )

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    def mood_correlation(self, expenses: list[MoneyRecord]) -> list[Insight]:
        """Does food spending cluster on stressed entries?"""
        stressed = [e for e in expenses if e.emotional_tag == EmotionalTag.STRESSED]
        if len(stressed) < MOOD_MIN_STRESSED:
            return []

        stressed_food = total(e for e in stressed if e.category in FOOD_CATEGORIES)
        all_food = total(e for e in expenses if e.category in FOOD_CATEGORIES)

        if all_food > 0 and float(stressed_food / all_food) > MOOD_FOOD_SHARE_THRESHOLD:
            return [Insight(
                kind=InsightKind.MOOD_CORRELATION,
                title="Stress spending increases food expenses",
                detail=(
                    "More than half of your Food spending happened on days "
                    "marked as Stressed."
                ),
            )]
        return []

    def category_breadth(self, expenses: list[MoneyRecord]) -> list[Insight]:
        count = len({e.category for e in expenses})

        if count <= CONCENTRATED_MAX_CATEGORIES:
            return [Insight(
                kind=InsightKind.CATEGORY_CONCENTRATION,
                title="You save better in months with fewer categories",
                detail=(
                    f"This month your spending is concentrated across {count} "
                    "categories, which often correlates with higher savings."
                ),
            )]
        if count >= FRAGMENTED_MIN_CATEGORIES:
            return [Insight(
                kind=InsightKind.CATEGORY_FRAGMENTATION,
                title="Spending is fragmented",
                detail=(
                    f"You used {count} categories this month. Consider "
                    "consolidating categories to spot patterns faster."
                ),
            )]
        return []

    def volatility_change(
        self,
        month_key: datetime,
        currency_code: str,
        current: list[MoneyRecord],
    ) -> list[Insight]:
        """Compare daily spending volatility with the previous bucket."""
        previous = self._approved_expenses(previous_bucket(month_key), currency_code)
        if len(previous) < VOLATILITY_MIN_EXPENSES or len(current) < VOLATILITY_MIN_EXPENSES:
            return []

        prev_cv = daily_cv(previous, tz=self._tz) or 0.0
        curr_cv = daily_cv(current, tz=self._tz) or 0.0
        if prev_cv <= 0:
            return []

        change = (curr_cv - prev_cv) / prev_cv
        if change < VOLATILITY_INCREASE_THRESHOLD:
            return []

        pct = round_half_up(change * 100)
        return [Insight(
            kind=InsightKind.VOLATILITY_INCREASE,
            title=f"Your spending volatility increased {pct}%",
            detail=(
                "Your day-to-day spending swings are larger than last month. "
                "Try setting smaller daily caps."
            ),
        )]


def generate_insights(
    month_key: datetime,
    store: RecordStoreInterface,
    currency_code: str,
    tz: Optional[tzinfo] = None,
) -> list[Insight]:
    """Functional entry point: see InsightsGenerator.generate."""
    return InsightsGenerator(store, tz).generate(month_key, currency_code)
