"""
Tests for Expense OS models and settings

Test strategy:
1. Unit tests for individual models (validators, copy-on-write helpers)
2. Engine tests live in their own modules and run on the in-memory store
3. No real API calls in tests
"""

import pytest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import uuid4

from pydantic import ValidationError

from expense_os.audit import AuditLogger
from expense_os.config import AppSettings, LedgerSettings, ScoringPolicy
from expense_os.models.analytics import FinancialHealthScore
from expense_os.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from expense_os.models.ledger import (
    ApprovalStatus,
    Budget,
    CarryForwardDestination,
    CarryForwardKey,
    FinancialScoreRecord,
    MoneyRecord,
    SavingsGoal,
    TransactionKind,
    month_label,
)


UTC = timezone.utc
APRIL = datetime(2024, 4, 1, tzinfo=UTC)
MAY = datetime(2024, 5, 1, tzinfo=UTC)


class TestMoneyRecord:
    """Tests for money record validation and transitions."""

    def test_defaults(self):
        record = MoneyRecord(
            occurred_at=APRIL,
            amount=Decimal("100"),
            currency_code="inr",
            category="Food",
        )
        assert record.kind == TransactionKind.EXPENSE
        assert record.approval_status == ApprovalStatus.PENDING
        assert record.currency_code == "INR"
        assert record.category == "Food"
        assert record.payment_method == "Cash"
        assert record.is_approved_expense is False

    def test_rejects_negative_amount(self):
        with pytest.raises(ValueError):
            MoneyRecord(
                occurred_at=APRIL,
                amount=Decimal("-1"),
                currency_code="INR",
                category="Food",
            )

    def test_rejects_empty_category(self):
        with pytest.raises(ValueError):
            MoneyRecord(
                occurred_at=APRIL,
                amount=Decimal("1"),
                currency_code="INR",
                category="   ",
            )

    @pytest.mark.parametrize("category", ["food", "  Food  ", "FOOD"])
    def test_category_kept_verbatim(self, category):
        record = MoneyRecord(occurred_at=APRIL, amount=Decimal("1"), currency_code="INR", category=category)
        assert record.category == category

    def test_naive_timestamps_read_as_utc(self):
        record = MoneyRecord(
            occurred_at=datetime(2024, 4, 3, 12),
            created_at=datetime(2024, 4, 3, 12, 5),
            amount=Decimal("1"),
            currency_code="INR",
            category="Food",
        )
        assert record.occurred_at == datetime(2024, 4, 3, 12, tzinfo=UTC)
        assert record.created_at.tzinfo is not None

    def test_aware_timestamp_keeps_offset(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        moment = datetime(2024, 4, 3, 8, tzinfo=ist)
        record = MoneyRecord(occurred_at=moment, amount=Decimal("1"), currency_code="INR", category="Food")
        assert record.occurred_at.utcoffset() == timedelta(hours=5, minutes=30)

    def test_records_are_frozen(self):
        record = MoneyRecord(occurred_at=APRIL, amount=Decimal("1"), currency_code="INR", category="Food")
        with pytest.raises(ValidationError):
            record.amount = Decimal("2")

    @pytest.mark.parametrize("current,target,allowed", [
        (ApprovalStatus.PENDING, ApprovalStatus.APPROVED, True),
        (ApprovalStatus.PENDING, ApprovalStatus.DISCARDED, True),
        (ApprovalStatus.APPROVED, ApprovalStatus.PENDING, True),
        (ApprovalStatus.APPROVED, ApprovalStatus.DISCARDED, False),
        (ApprovalStatus.DISCARDED, ApprovalStatus.PENDING, False),
        (ApprovalStatus.DISCARDED, ApprovalStatus.APPROVED, False),
    ])
    def test_transitions(self, current, target, allowed):
        record = MoneyRecord(
            occurred_at=APRIL,
            amount=Decimal("1"),
            currency_code="INR",
            category="Food",
            approval_status=current,
        )
        assert record.can_transition_to(target) is allowed

    def test_with_status_returns_copy(self):
        record = MoneyRecord(occurred_at=APRIL, amount=Decimal("1"), currency_code="INR", category="Food")
        approved = record.with_status(ApprovalStatus.APPROVED)

        assert approved.id == record.id
        assert approved.is_approved_expense is True
        assert record.approval_status == ApprovalStatus.PENDING


class TestBudget:
    """Tests for copy-on-write budget edits."""

    def test_add_to_category_leaves_original(self):
        budget = Budget(month_key=MAY, category_budgets={"Food": Decimal("500")})

        updated = budget.add_to_category("Food", Decimal("250")).add_to_category("Fuel", Decimal("100"))

        assert budget.category_budgets == {"Food": Decimal("500")}
        assert updated.category_budgets == {"Food": Decimal("750"), "Fuel": Decimal("100")}
        assert updated.planned_total == Decimal("850")

    def test_carry_rule_defaults_to_next_month(self):
        budget = Budget(month_key=APRIL).with_carry_rule("Travel", CarryForwardDestination.SAVINGS)

        assert budget.carry_rule_for("Travel") == CarryForwardDestination.SAVINGS
        assert budget.carry_rule_for("Food") == CarryForwardDestination.NEXT_MONTH

    def test_empty_planned_total(self):
        assert Budget(month_key=APRIL).planned_total == Decimal("0")

    def test_mappings_are_read_only(self):
        source = {"Food": Decimal("500")}
        budget = Budget(month_key=APRIL, category_budgets=source)

        with pytest.raises(TypeError):
            budget.category_budgets["Food"] = Decimal("1")
        with pytest.raises(TypeError):
            budget.carry_rules["Food"] = CarryForwardDestination.SAVINGS
        source["Food"] = Decimal("1")
        assert budget.category_budgets == {"Food": Decimal("500")}

    def test_copies_stay_read_only(self):
        updated = Budget(month_key=APRIL).add_to_category("Food", Decimal("5"))
        with pytest.raises(TypeError):
            updated.category_budgets["Food"] = Decimal("1")

    def test_revised_keeps_identity(self):
        budget = Budget(month_key=APRIL, category_budgets={"Food": Decimal("500")})

        revised = budget.revised(Decimal("900"), {"Rent": Decimal("400")}, {"Rent": CarryForwardDestination.NONE})

        assert revised.id == budget.id
        assert revised.month_key == APRIL
        assert revised.assigned_income == Decimal("900")
        assert revised.category_budgets == {"Rent": Decimal("400")}
        assert revised.carry_rule_for("Rent") == CarryForwardDestination.NONE

    def test_dump_gives_plain_dicts(self):
        dumped = Budget(month_key=APRIL, category_budgets={"Food": Decimal("5")}).model_dump()
        assert dumped["category_budgets"] == {"Food": Decimal("5")}
        assert type(dumped["category_budgets"]) is dict

    def test_naive_month_key_read_as_utc(self):
        assert Budget(month_key=datetime(2024, 4, 1)).month_key == APRIL


class TestCarryForwardKey:
    """Tests for the composite idempotency key."""

    def test_category_normalized(self):
        key = CarryForwardKey.build(APRIL, MAY, "Eating Out", CarryForwardDestination.SAVINGS)

        assert key.category_slug == "eating-out"
        assert key.legacy_id == "cf_2024-04_2024-05_eating-out_savings"

    def test_equal_keys_hash_equal(self):
        a = CarryForwardKey.build(APRIL, MAY, "Food", CarryForwardDestination.NEXT_MONTH)
        b = CarryForwardKey.build(APRIL, MAY, "food", CarryForwardDestination.NEXT_MONTH)

        assert a == b
        assert len({a, b}) == 1

    def test_month_label(self):
        assert month_label(datetime(2024, 12, 31, 23, 59)) == "2024-12"


class TestSavingsGoal:
    """Tests for goal progress."""

    @pytest.mark.parametrize("target,current,progress", [
        ("0", "100", 0.0),
        ("1000", "250", 0.25),
        ("1000", "1500", 1.0),
        ("1000", "-10", 0.0),
    ])
    def test_progress_clamped(self, target, current, progress):
        goal = SavingsGoal(name="Bike", target_amount=Decimal(target), current_amount=Decimal(current))
        assert goal.progress == progress

    def test_credited_returns_copy(self):
        goal = SavingsGoal(name="Bike", current_amount=Decimal("100"))

        assert goal.credited(Decimal("50")).current_amount == Decimal("150")
        assert goal.current_amount == Decimal("100")


class TestScoreModels:
    """Tests for score bounds."""

    def test_record_clamps(self):
        assert FinancialScoreRecord(month_key=APRIL, score=140).score == 100
        assert FinancialScoreRecord(month_key=APRIL, score=-3).score == 0

    def test_health_score_rejects_out_of_range(self):
        with pytest.raises(ValueError):
            FinancialHealthScore(month_key=APRIL, score=101)


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        event = AuditEvent(
            event_type=AuditEventType.BUDGET_SAVED,
            description="Created budget",
        )
        assert event.severity == AuditSeverity.INFO
        assert event.correlation_id is None

    def test_audit_event_to_log_dict(self):
        event = AuditEvent(
            event_type=AuditEventType.CARRY_FORWARD_APPLIED,
            description="Carried 2000 of Food",
            details={"category": "Food", "amount": "2000"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "carry_forward_applied"
        assert log_dict["details"]["category"] == "Food"

    def test_audit_event_to_sheets_row(self):
        event = AuditEvent(
            event_type=AuditEventType.LEDGER_RESET,
            description="Ledger reset",
            is_user_action=True,
        )
        row = event.to_sheets_row()
        assert len(row) == 11
        assert row[2] == "ledger_reset"
        assert row[10] == "True"

    def test_builder_month_tick_started(self):
        correlation_id = uuid4()

        event = AuditEventBuilder.month_tick_started("2024-05", correlation_id)

        assert event.event_type == AuditEventType.MONTH_TICK_STARTED
        assert event.entity_id == "2024-05"
        assert event.correlation_id == correlation_id
        assert event.is_user_action is False

    def test_builder_import_with_skips_warns(self):
        assert AuditEventBuilder.import_completed(3, 0).severity == AuditSeverity.INFO
        assert AuditEventBuilder.import_completed(3, 2).severity == AuditSeverity.WARNING

    def test_builder_record_status_changed(self):
        record_id = uuid4()

        event = AuditEventBuilder.record_status_changed(record_id, "pending", "approved")

        assert event.entity_id == str(record_id)
        assert event.details == {"from": "pending", "to": "approved"}
        assert event.is_user_action is True


class TestSettings:
    """Tests for settings validators."""

    @pytest.mark.parametrize("day,expected", [(0, 1), (1, 1), (15, 15), (28, 28), (31, 28)])
    def test_start_day_clamped(self, day, expected):
        assert LedgerSettings(fiscal_month_start_day=day).fiscal_month_start_day == expected

    def test_currency_normalized(self):
        assert LedgerSettings(default_currency_code="usd").default_currency_code == "USD"

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValueError):
            LedgerSettings(timezone="Mars/Olympus_Mons")

    def test_blank_timezone_means_none(self):
        settings = LedgerSettings(timezone="  ")
        assert settings.timezone is None
        assert settings.tz is None

    def test_app_settings_fields(self):
        assert set(AppSettings.model_fields) == {"storage_backend", "export_file_name"}

    def test_volatility_bounds_ordered(self):
        with pytest.raises(ValueError):
            ScoringPolicy(volatility_cv_good=1.0, volatility_cv_bad=0.5)

    def test_default_weights_sum_to_one(self):
        policy = ScoringPolicy()
        total = (
            policy.budget_adherence_weight
            + policy.consistency_weight
            + policy.savings_ratio_weight
            + policy.volatility_weight
        )
        assert total == pytest.approx(1.0)


class TestAuditLogger:
    """Tests for the audit logger's persistence handling."""

    def test_persists_to_storage(self, audit_logger, audit_storage):
        assert audit_logger.log(AuditEventBuilder.ledger_reset(2)) is True
        assert len(audit_storage.get_recent_events()) == 1

    def test_storage_failure_is_swallowed(self):
        storage = MagicMock()
        storage.append_event.side_effect = RuntimeError("sheet unavailable")

        assert AuditLogger(storage).log(AuditEventBuilder.ledger_reset(2)) is False

    def test_works_without_storage(self):
        assert AuditLogger().log(AuditEventBuilder.export_generated(0)) is True
