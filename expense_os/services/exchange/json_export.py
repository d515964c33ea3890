"""
JSON Data Exchange

The only persisted external representation of the ledger: a JSON array
of money records. Field names and encodings are a stable contract:

    id, createdAt, occurredAt  - uuid string, epoch seconds (float)
    kind, approval             - enum raw values
    amount                     - decimal as string (never float)
    currency, title, notes, category, paymentMethod, emotionalTag

Import is lenient: a row that cannot be decoded is skipped and counted,
never fatal. An unreadable payload as a whole raises ExchangeError.
"""

import json
import os
import tempfile
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, Field, ValidationError

from expense_os.models.ledger import (
    ApprovalStatus,
    EmotionalTag,
    MoneyRecord,
    TransactionKind,
)
from expense_os.services.storage import DuplicateError, RecordStoreInterface


logger = structlog.get_logger(__name__)

DEFAULT_EXPORT_FILE_NAME = "expense-os-export.json"


class ExchangeError(Exception):
    """The payload is not a JSON array of records."""
    pass


class ImportSummary(BaseModel):
    """Outcome of an import run."""

    imported: int = 0
    skipped: int = 0
    errors: list[str] = Field(default_factory=list)


def record_to_dict(record: MoneyRecord) -> dict[str, Any]:
    return {
        "id": str(record.id),
        "createdAt": record.created_at.timestamp(),
        "occurredAt": record.occurred_at.timestamp(),
        "kind": record.kind.value,
        "approval": record.approval_status.value,
        "amount": str(record.amount),
        "currency": record.currency_code,
        "title": record.title,
        "notes": record.notes or "",
        "category": record.category,
        "paymentMethod": record.payment_method,
        "emotionalTag": record.emotional_tag.value,
    }


def record_from_dict(row: dict[str, Any]) -> MoneyRecord:
    """
    Decode one exported row.

    Raises:
        KeyError, ValueError, TypeError, InvalidOperation or ValidationError
        when the row is malformed.
    """
    notes = row.get("notes") or None
    return MoneyRecord(
        id=UUID(row["id"]),
        created_at=_from_epoch(row.get("createdAt", row["occurredAt"])),
        occurred_at=_from_epoch(row["occurredAt"]),
        kind=TransactionKind(row["kind"]),
        approval_status=ApprovalStatus(row["approval"]),
        amount=Decimal(str(row["amount"])),
        currency_code=row["currency"],
        title=row.get("title", ""),
        notes=notes,
        category=row["category"],
        payment_method=row.get("paymentMethod") or "Cash",
        emotional_tag=EmotionalTag(row.get("emotionalTag") or EmotionalTag.NONE.value),
    )


def _from_epoch(value: Union[int, float, str]) -> datetime:
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


def export_records(store: RecordStoreInterface) -> str:
    """Serialize every money record, oldest first, as pretty-printed JSON."""
    payload = [record_to_dict(record) for record in store.list_records()]
    return json.dumps(payload, indent=2)


def write_export(store: RecordStoreInterface, path: Union[str, Path]) -> Path:
    """
    Write the export to `path`, replacing any existing file atomically.

    If `path` is a directory the default file name is used inside it.

    Returns:
        The path of the written file
    """
    target = Path(path)
    if target.is_dir():
        target = target / DEFAULT_EXPORT_FILE_NAME

    content = export_records(store)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(tmp_name, target)
    except OSError:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info("export_written", path=str(target))
    return target


def import_records(payload: Union[str, bytes], store: RecordStoreInterface) -> ImportSummary:
    """
    Add records from an export payload to the store.

    Rows whose id already exists are skipped, so re-importing the same
    file is harmless.
    """
    try:
        rows = json.loads(payload)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ExchangeError(f"Payload is not valid JSON: {e}")

    if not isinstance(rows, list):
        raise ExchangeError("Payload must be a JSON array of records")

    summary = ImportSummary()
    for index, row in enumerate(rows):
        try:
            if not isinstance(row, dict):
                raise TypeError("row is not an object")
            record = record_from_dict(row)
        except (KeyError, ValueError, TypeError, InvalidOperation, ValidationError) as e:
            summary.skipped += 1
            summary.errors.append(f"row {index}: {e}")
            logger.warning("import_row_skipped", row=index, error=str(e))
            continue

        try:
            store.add_record(record)
        except DuplicateError:
            summary.skipped += 1
            summary.errors.append(f"row {index}: record {record.id} already exists")
            continue

        summary.imported += 1

    return summary
