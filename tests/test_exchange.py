"""Tests for the JSON export/import."""

import json
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from expense_os.models.ledger import ApprovalStatus, EmotionalTag, MoneyRecord, TransactionKind
from expense_os.services.exchange import (
    DEFAULT_EXPORT_FILE_NAME,
    ExchangeError,
    export_records,
    import_records,
    write_export,
)
from expense_os.services.storage import InMemoryRecordStore


UTC = timezone.utc
OCCURRED = datetime(2024, 4, 5, 12, 30, tzinfo=UTC)


def sample_record(**overrides) -> MoneyRecord:
    fields = dict(
        occurred_at=OCCURRED,
        kind=TransactionKind.EXPENSE,
        approval_status=ApprovalStatus.APPROVED,
        amount=Decimal("149.90"),
        currency_code="INR",
        title="Lunch",
        notes="with team",
        category="Dining",
        payment_method="Card",
        emotional_tag=EmotionalTag.HAPPY,
    )
    fields.update(overrides)
    return MoneyRecord(**fields)


def valid_row(**overrides) -> dict:
    row = {
        "id": "6f1c1c55-6a4e-4c56-9d0f-6bb0c4e0f0a1",
        "createdAt": OCCURRED.timestamp(),
        "occurredAt": OCCURRED.timestamp(),
        "kind": "expense",
        "approval": "pending",
        "amount": "80.25",
        "currency": "INR",
        "title": "",
        "notes": "",
        "category": "Snacks",
        "paymentMethod": "UPI",
        "emotionalTag": "none",
    }
    row.update(overrides)
    return row


class TestExport:
    """Tests for the export encoding."""

    def test_field_names_and_encodings(self, store):
        record = store.add_record(sample_record())

        rows = json.loads(export_records(store))

        assert len(rows) == 1
        row = rows[0]
        assert set(row) == {
            "id", "createdAt", "occurredAt", "kind", "approval", "amount",
            "currency", "title", "notes", "category", "paymentMethod", "emotionalTag",
        }
        assert row["id"] == str(record.id)
        assert row["occurredAt"] == OCCURRED.timestamp()
        assert row["amount"] == "149.90"
        assert row["approval"] == "approved"
        assert row["emotionalTag"] == "happy"

    def test_records_oldest_first(self, store):
        store.add_record(sample_record(occurred_at=datetime(2024, 4, 9, tzinfo=UTC), title="later"))
        store.add_record(sample_record(occurred_at=datetime(2024, 4, 1, tzinfo=UTC), title="earlier"))

        assert [r["title"] for r in json.loads(export_records(store))] == ["earlier", "later"]

    def test_empty_ledger(self, store):
        assert json.loads(export_records(store)) == []

    def test_write_into_directory_uses_default_name(self, store, tmp_path):
        store.add_record(sample_record())

        path = write_export(store, tmp_path)

        assert path == tmp_path / DEFAULT_EXPORT_FILE_NAME
        assert len(json.loads(path.read_text())) == 1
        assert list(tmp_path.glob("*.tmp")) == []

    def test_write_replaces_existing_file(self, store, tmp_path):
        target = tmp_path / "backup.json"
        target.write_text("stale")

        write_export(store, target)

        assert json.loads(target.read_text()) == []


class TestImport:
    """Tests for the lenient importer."""

    def test_export_then_import_preserves_fields(self, store):
        original = store.add_record(sample_record())
        other = InMemoryRecordStore()

        summary = import_records(export_records(store), other)

        assert summary.imported == 1
        assert summary.skipped == 0
        restored = other.get_record(original.id)
        assert restored.amount == Decimal("149.90")
        assert restored.occurred_at == OCCURRED
        assert restored.notes == "with team"
        assert restored.emotional_tag == EmotionalTag.HAPPY

    def test_malformed_rows_skipped(self, store):
        payload = json.dumps([
            valid_row(),
            valid_row(id="not-a-uuid"),
            valid_row(id="0d9f3b7e-55a2-4c1e-8f7e-2f4f0d5a9c10", amount="lots"),
            valid_row(id="3b0f0b8e-1c7d-4f4e-a2b6-0a4d2b9f7e11", kind="transfer"),
            {"id": "9a1e2d3c-4b5a-4968-8776-655443322110"},
            "just a string",
        ])

        summary = import_records(payload, store)

        assert summary.imported == 1
        assert summary.skipped == 5
        assert len(summary.errors) == 5
        assert store.count_records() == 1

    def test_negative_amount_skipped(self, store):
        summary = import_records(json.dumps([valid_row(amount="-5")]), store)

        assert summary.imported == 0
        assert summary.skipped == 1

    def test_existing_ids_skipped(self, store):
        payload = json.dumps([valid_row()])

        import_records(payload, store)
        summary = import_records(payload, store)

        assert summary.imported == 0
        assert summary.skipped == 1
        assert store.count_records() == 1

    def test_optional_fields_default(self, store):
        row = valid_row()
        for key in ("createdAt", "title", "notes", "paymentMethod", "emotionalTag"):
            del row[key]

        import_records(json.dumps([row]), store)

        record = store.list_records()[0]
        assert record.payment_method == "Cash"
        assert record.emotional_tag == EmotionalTag.NONE
        assert record.notes is None
        assert record.created_at == record.occurred_at

    @pytest.mark.parametrize("payload", ["{not json", '{"id": "x"}', "42"])
    def test_unreadable_payload_raises(self, store, payload):
        with pytest.raises(ExchangeError):
            import_records(payload, store)
