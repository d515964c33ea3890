"""
Data Integrity Checker

Two independent detectors over one month of records:

1. Duplicates - temporally adjacent expenses with the same category and
   amount logged within 5 minutes of each other. Only neighbours are
   compared, so three identical entries in a row produce two findings.
2. Outliers - approved expenses far above their category's upper
   quartile (Tukey-style high fence with a 2.5x IQR multiplier).

An empty result is never returned from the monthly check: a clean month
yields one MONTHLY_HEALTH finding so callers can tell "checked" from
"not checked".
"""

from collections import defaultdict
from datetime import datetime, timedelta

from expense_os.engine.bucketing import bucket_end
from expense_os.engine.stats import percentile
from expense_os.models.analytics import Finding, FindingKind
from expense_os.models.ledger import ApprovalStatus, MoneyRecord, TransactionKind
from expense_os.services.storage import RecordStoreInterface


DUPLICATE_WINDOW = timedelta(minutes=5)
OUTLIER_MIN_ENTRIES = 8
OUTLIER_IQR_MULTIPLIER = 2.5
IQR_EPSILON = 1e-9


class DataIntegrityChecker:
    """Flags likely duplicates and outliers for review."""

    def __init__(self, store: RecordStoreInterface):
        self._store = store

    def run_monthly_health_check(self, month_key: datetime, currency_code: str) -> list[Finding]:
        findings = self.detect_duplicates(month_key, currency_code)
        findings.extend(self.detect_outliers(month_key, currency_code))

        if not findings:
            findings.append(Finding(
                kind=FindingKind.MONTHLY_HEALTH,
                title="Data looks healthy",
                detail="No duplicates or outliers detected for this month.",
            ))

        return findings

    def detect_duplicates(self, month_key: datetime, currency_code: str) -> list[Finding]:
        """
        Compare each expense with the next one in time.

        Pending and approved expenses are both checked, since a duplicate
        is most useful to catch before approval. Discarded ones are not.
        """
        expenses = self._store.list_records(
            currency_code=currency_code,
            kind=TransactionKind.EXPENSE,
            statuses={ApprovalStatus.PENDING, ApprovalStatus.APPROVED},
            occurred_from=month_key,
            occurred_to=bucket_end(month_key),
        )

        findings = []
        for earlier, later in zip(expenses, expenses[1:]):
            if is_potential_duplicate(earlier, later):
                findings.append(Finding(
                    kind=FindingKind.POTENTIAL_DUPLICATE,
                    title=f"Possible duplicate: {later.category}",
                    detail=(
                        "Two entries with the same amount within 5 minutes. "
                        "Review and discard if needed."
                    ),
                    record_id=later.id,
                ))
        return findings

    def detect_outliers(self, month_key: datetime, currency_code: str) -> list[Finding]:
        expenses = self._store.list_records(
            currency_code=currency_code,
            kind=TransactionKind.EXPENSE,
            statuses={ApprovalStatus.APPROVED},
            occurred_from=month_key,
            occurred_to=bucket_end(month_key),
        )

        by_category: dict[str, list[MoneyRecord]] = defaultdict(list)
        for expense in expenses:
            by_category[expense.category].append(expense)

        findings = []
        for category, items in by_category.items():
            if len(items) < OUTLIER_MIN_ENTRIES:
                continue

            fence = high_fence([float(item.amount) for item in items])
            for item in items:
                if float(item.amount) > fence:
                    findings.append(Finding(
                        kind=FindingKind.OUTLIER,
                        title=f"Outlier in {category}",
                        detail=(
                            "This expense is unusually high compared to your "
                            f"typical {category} spending."
                        ),
                        record_id=item.id,
                    ))
        return findings


def is_potential_duplicate(a: MoneyRecord, b: MoneyRecord) -> bool:
    return (
        a.category == b.category
        and a.amount == b.amount
        and abs(b.occurred_at - a.occurred_at) <= DUPLICATE_WINDOW
    )


def high_fence(values: list[float]) -> float:
    """Q3 + 2.5 * IQR, with the IQR floored at a tiny epsilon."""
    ordered = sorted(values)
    q1 = percentile(ordered, 0.25)
    q3 = percentile(ordered, 0.75)
    iqr = max(IQR_EPSILON, q3 - q1)
    return q3 + OUTLIER_IQR_MULTIPLIER * iqr


def run_monthly_health_check(
    month_key: datetime,
    store: RecordStoreInterface,
    currency_code: str,
) -> list[Finding]:
    """Functional entry point: see DataIntegrityChecker.run_monthly_health_check."""
    return DataIntegrityChecker(store).run_monthly_health_check(month_key, currency_code)
