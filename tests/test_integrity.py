"""Tests for the data integrity checker."""

from datetime import datetime, timedelta, timezone

from expense_os.engine.integrity import (
    DataIntegrityChecker,
    high_fence,
    run_monthly_health_check,
)
from expense_os.models.analytics import FindingKind
from expense_os.models.ledger import ApprovalStatus


UTC = timezone.utc
APRIL = datetime(2024, 4, 1, tzinfo=UTC)


def april(day: int, hour: int = 12, minute: int = 0, second: int = 0) -> datetime:
    return datetime(2024, 4, day, hour, minute, second, tzinfo=UTC)


class TestDuplicateDetector:
    """Tests for adjacent-pair duplicate detection."""

    def test_flags_only_the_close_pair(self, store, add_expense):
        """Ten identical expenses far apart, one pair 4 minutes apart -> one finding."""
        for day in range(1, 18, 2):
            add_expense(150, "Food", april(day), payment_method="Card")
        later = add_expense(150, "Food", april(7, minute=4), payment_method="Card")

        findings = DataIntegrityChecker(store).detect_duplicates(APRIL, "INR")

        assert len(findings) == 1
        assert findings[0].kind == FindingKind.POTENTIAL_DUPLICATE
        assert findings[0].record_id == later.id
        assert findings[0].title == "Possible duplicate: Food"

    def test_chain_of_three_yields_two(self, store, add_expense):
        """Only neighbours are compared: a run of three gives two findings."""
        add_expense(200, "Food", april(3, minute=0))
        second = add_expense(200, "Food", april(3, minute=2))
        third = add_expense(200, "Food", april(3, minute=4))

        findings = DataIntegrityChecker(store).detect_duplicates(APRIL, "INR")

        assert [f.record_id for f in findings] == [second.id, third.id]

    def test_window_boundary(self, store, add_expense):
        add_expense(99, "Taxi", april(10, minute=0))
        at_limit = add_expense(99, "Taxi", april(10, minute=5))
        add_expense(99, "Taxi", april(10, minute=10, second=1))

        findings = DataIntegrityChecker(store).detect_duplicates(APRIL, "INR")

        assert [f.record_id for f in findings] == [at_limit.id]

    def test_different_category_or_amount_not_flagged(self, store, add_expense):
        add_expense(100, "Food", april(5, minute=0))
        add_expense(100, "Snacks", april(5, minute=1))
        add_expense(101, "Snacks", april(5, minute=2))

        assert DataIntegrityChecker(store).detect_duplicates(APRIL, "INR") == []

    def test_never_flags_pairs_far_apart(self, store, add_expense):
        """Identical entries 301 seconds apart are never flagged."""
        for i in range(20):
            add_expense(100, "Food", APRIL + timedelta(seconds=301 * i))

        assert DataIntegrityChecker(store).detect_duplicates(APRIL, "INR") == []

    def test_pending_checked_discarded_ignored(self, store, add_expense):
        add_expense(100, "Food", april(5, minute=0), status=ApprovalStatus.PENDING)
        pending = add_expense(100, "Food", april(5, minute=1), status=ApprovalStatus.PENDING)
        add_expense(300, "Fuel", april(6, minute=0))
        add_expense(300, "Fuel", april(6, minute=1), status=ApprovalStatus.DISCARDED)

        findings = DataIntegrityChecker(store).detect_duplicates(APRIL, "INR")

        assert [f.record_id for f in findings] == [pending.id]

    def test_other_currency_and_month_ignored(self, store, add_expense):
        add_expense(100, "Food", april(5, minute=0))
        add_expense(100, "Food", april(5, minute=1), currency_code="USD")
        add_expense(100, "Food", datetime(2024, 5, 1, tzinfo=UTC))
        add_expense(100, "Food", datetime(2024, 5, 1, 0, 1, tzinfo=UTC))

        assert DataIntegrityChecker(store).detect_duplicates(APRIL, "INR") == []


class TestOutlierDetector:
    """Tests for IQR outlier detection."""

    def test_flags_value_above_fence(self, store, add_expense):
        for day in range(1, 8):
            add_expense(100, "Food", april(day))
        spike = add_expense(10000, "Food", april(9))

        findings = DataIntegrityChecker(store).detect_outliers(APRIL, "INR")

        assert len(findings) == 1
        assert findings[0].kind == FindingKind.OUTLIER
        assert findings[0].record_id == spike.id
        assert findings[0].title == "Outlier in Food"

    def test_small_categories_never_flagged(self, store, add_expense):
        for day in range(1, 7):
            add_expense(100, "Food", april(day))
        add_expense(100000, "Food", april(8))

        assert DataIntegrityChecker(store).detect_outliers(APRIL, "INR") == []

    def test_pending_expenses_not_counted(self, store, add_expense):
        """Eight entries, but one is pending, so the category is below the floor."""
        for day in range(1, 8):
            add_expense(100, "Food", april(day))
        add_expense(10000, "Food", april(9), status=ApprovalStatus.PENDING)

        assert DataIntegrityChecker(store).detect_outliers(APRIL, "INR") == []

    def test_spread_values_not_flagged(self, store, add_expense):
        for i, amount in enumerate(range(100, 900, 100), start=1):
            add_expense(amount, "Food", april(i))

        assert DataIntegrityChecker(store).detect_outliers(APRIL, "INR") == []

    def test_high_fence_interpolates(self):
        """Q1=275, Q3=625 for 100..800 -> fence 625 + 2.5*350."""
        assert high_fence([float(v) for v in range(100, 900, 100)]) == 1500.0


class TestMonthlyHealthCheck:
    """Tests for the combined check."""

    def test_empty_month_is_healthy(self, store):
        findings = run_monthly_health_check(APRIL, store, "INR")

        assert len(findings) == 1
        assert findings[0].kind == FindingKind.MONTHLY_HEALTH
        assert findings[0].record_id is None

    def test_findings_replace_healthy_marker(self, store, add_expense):
        add_expense(100, "Food", april(5, minute=0))
        add_expense(100, "Food", april(5, minute=1))

        findings = run_monthly_health_check(APRIL, store, "INR")

        assert [f.kind for f in findings] == [FindingKind.POTENTIAL_DUPLICATE]
