"""
Smart Defaults Suggester

Pre-fills category and payment method for a new expense from the last
45 days of local history. Rules, in order:

1. The most recent expense in the same part of the day whose amount
   falls in the input's amount band.
2. The most frequent category among expenses in the amount band.
3. General / Cash.

"Most frequent" ties go to whichever value appears first in the
most-recent-first candidate list.
"""

from collections import Counter
from datetime import datetime, timedelta, tzinfo
from decimal import Decimal
from typing import Callable, Optional

from expense_os.engine.bucketing import localize
from expense_os.models.analytics import SmartDefaults, TimeBucket
from expense_os.models.ledger import ApprovalStatus, MoneyRecord, TransactionKind, ensure_aware
from expense_os.services.storage import RecordStoreInterface


LOOKBACK = timedelta(days=45)

DEFAULT_CATEGORY = "General"
DEFAULT_PAYMENT_METHOD = "Cash"

# (exclusive upper bound of the input amount, inclusive band)
AMOUNT_BANDS: list[tuple[Optional[Decimal], tuple[Decimal, Decimal]]] = [
    (Decimal("100"), (Decimal("0"), Decimal("120"))),
    (Decimal("300"), (Decimal("80"), Decimal("360"))),
    (Decimal("1000"), (Decimal("240"), Decimal("1200"))),
    (Decimal("5000"), (Decimal("800"), Decimal("6000"))),
    (None, (Decimal("4000"), Decimal("2000000"))),
]


def amount_band(amount: Decimal) -> tuple[Decimal, Decimal]:
    for upper, band in AMOUNT_BANDS:
        if upper is None or amount < upper:
            return band
    raise AssertionError("unreachable: last band is open-ended")


def _most_common(values: list[str]) -> Optional[str]:
    if not values:
        return None
    return Counter(values).most_common(1)[0][0]


class SmartDefaultsSuggester:
    """
    Suggests defaults from recent expense history.

    Part of day is read on the ledger clock (`tz`), not the offset each
    record happens to carry.
    """

    def __init__(self, store: RecordStoreInterface, tz: Optional[tzinfo] = None):
        self._store = store
        self._tz = tz

    def time_bucket(self, moment: datetime) -> TimeBucket:
        return TimeBucket.from_datetime(localize(moment, self._tz))

    def candidates(self, occurred_at: datetime, currency_code: str) -> list[MoneyRecord]:
        """Non-discarded expenses from the lookback window, newest first."""
        return self._store.list_records(
            currency_code=currency_code,
            kind=TransactionKind.EXPENSE,
            statuses={ApprovalStatus.PENDING, ApprovalStatus.APPROVED},
            occurred_from=occurred_at - LOOKBACK,
            newest_first=True,
        )

    def suggest(
        self,
        amount: Decimal,
        occurred_at: datetime,
        currency_code: str,
    ) -> SmartDefaults:
        occurred_at = ensure_aware(occurred_at)
        pool = self.candidates(occurred_at, currency_code)
        low, high = amount_band(amount)
        bucket = self.time_bucket(occurred_at)

        def in_band(record: MoneyRecord) -> bool:
            return low <= record.amount <= high

        match = next(
            (r for r in pool if in_band(r) and self.time_bucket(r.occurred_at) == bucket),
            None,
        )
        if match is not None:
            return SmartDefaults(
                category=match.category,
                payment_method=self._payment_method_for(match.category, pool) or match.payment_method,
            )

        category = self._most_common_category(pool, in_band)
        if category is not None:
            return SmartDefaults(
                category=category,
                payment_method=self._payment_method_for(category, pool) or DEFAULT_PAYMENT_METHOD,
            )

        return SmartDefaults(category=DEFAULT_CATEGORY, payment_method=DEFAULT_PAYMENT_METHOD)

    @staticmethod
    def _most_common_category(
        pool: list[MoneyRecord],
        predicate: Callable[[MoneyRecord], bool],
    ) -> Optional[str]:
        return _most_common([r.category for r in pool if predicate(r)])

    @staticmethod
    def _payment_method_for(category: str, pool: list[MoneyRecord]) -> Optional[str]:
        return _most_common([r.payment_method for r in pool if r.category == category])


def suggest_defaults(
    amount: Decimal,
    occurred_at: datetime,
    store: RecordStoreInterface,
    currency_code: str,
    tz: Optional[tzinfo] = None,
) -> SmartDefaults:
    """Functional entry point: see SmartDefaultsSuggester.suggest."""
    return SmartDefaultsSuggester(store, tz).suggest(amount, occurred_at, currency_code)
