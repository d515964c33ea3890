"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a persistent backend because:
1. The owner can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

TRADEOFFS:
- Not suitable for high-volume data (a personal ledger is fine)
- No transactions: writes are ordered so a crash never double-credits
  (carry-forward effects are written before their ledger row, and the
  host re-runs the month tick after a failure only once it has looked)
- Limited query capabilities (we filter in Python)

Each entity type lives in its own worksheet, one entity per row.
Mapping-typed fields are JSON-serialized with decimals as strings.
"""

import json
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Callable, Iterator, Optional, TypeVar
from uuid import UUID

import gspread
import structlog
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from expense_os.config import GoogleSheetsSettings, get_settings
from expense_os.models.audit import AuditEvent, AuditEventType, AuditSeverity
from expense_os.models.ledger import (
    ApprovalStatus,
    Budget,
    BudgetChangeEvent,
    CarryForwardDestination,
    CarryForwardEvent,
    CarryForwardKey,
    EmotionalTag,
    ExpenseTemplate,
    FinancialScoreRecord,
    GoalAllocationEvent,
    MoneyRecord,
    SavingsGoal,
    TransactionKind,
    ensure_aware,
)
from expense_os.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
)
from expense_os.services.storage.memory import record_matches


logger = structlog.get_logger(__name__)

T = TypeVar("T")

RECORD_COLUMNS = [
    "id",
    "created_at",
    "occurred_at",
    "kind",
    "approval_status",
    "amount",
    "currency_code",
    "title",
    "notes",
    "category",
    "payment_method",
    "emotional_tag",
]

BUDGET_COLUMNS = [
    "id",
    "month_key",
    "assigned_income",
    "category_budgets_json",
    "carry_rules_json",
]

GOAL_COLUMNS = [
    "id",
    "name",
    "target_amount",
    "current_amount",
    "deadline",
    "created_at",
]

CARRY_FORWARD_COLUMNS = [
    "event_id",
    "from_month",
    "to_month",
    "category_slug",
    "destination",
    "category",
    "amount",
    "applied_at",
]

SCORE_COLUMNS = [
    "month_key",
    "score",
    "breakdown_json",
    "computed_at",
]

TEMPLATE_COLUMNS = [
    "id",
    "name",
    "amount",
    "category",
    "payment_method",
    "created_at",
]

# Budget changes and goal allocations share the timeline sheet
TIMELINE_COLUMNS = [
    "entry_type",
    "id",
    "created_at",
    "month_key",
    "goal_id",
    "goal_name",
    "amount",
    "currency_code",
    "summary",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _cell(row: list, index: int, default: str = "") -> str:
    """Handle short rows gracefully."""
    try:
        return row[index] if row[index] else default
    except IndexError:
        return default


def _optional_datetime(value: str) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets

    @property
    def settings(self) -> GoogleSheetsSettings:
        return self._settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        """Get or create a worksheet with the given header row."""
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=1000,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet


class GoogleSheetsRecordStore(RecordStoreInterface):
    """
    Google Sheets implementation of the record store.

    Reads pull the whole worksheet and filter in Python.
    Rows that can't be decoded (bad decimals, unknown enums) are skipped
    with a warning rather than failing the whole query.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()
        self._names = self._client.settings

    # -------------------------------------------------------------------------
    # Row plumbing
    # -------------------------------------------------------------------------

    def _sheet(self, title: str, columns: list[str]) -> gspread.Worksheet:
        return self._client.get_worksheet(title, columns)

    def _rows(self, title: str, columns: list[str]) -> list[list]:
        try:
            return self._sheet(title, columns).get_all_values()[1:]
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to read {title}: {e}")

    def _decode_all(
        self,
        title: str,
        columns: list[str],
        decode: Callable[[list], T],
    ) -> list[T]:
        items = []
        for row in self._rows(title, columns):
            if not row or not row[0]:
                continue
            try:
                items.append(decode(row))
            except (ValueError, ArithmeticError) as e:
                logger.warning("sheets_row_skipped", sheet=title, row_id=row[0], error=str(e))
        return items

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _append(self, title: str, columns: list[str], row: list) -> None:
        try:
            self._sheet(title, columns).append_row(row, value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to append to {title}: {e}")

    def _find_row_index(self, title: str, columns: list[str], key_col: int, key: str) -> Optional[int]:
        """1-based sheet row index (header is row 1) of the first match."""
        for idx, row in enumerate(self._rows(title, columns), start=2):
            if _cell(row, key_col) == key:
                return idx
        return None

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _write_row(self, title: str, columns: list[str], index: int, row: list) -> None:
        try:
            self._sheet(title, columns).update(range_name=f"A{index}", values=[row])
        except Exception as e:
            raise StorageError(f"Failed to update {title}: {e}")

    def _upsert(self, title: str, columns: list[str], key_col: int, key: str, row: list) -> None:
        index = self._find_row_index(title, columns, key_col, key)
        if index is None:
            self._append(title, columns, row)
        else:
            self._write_row(title, columns, index, row)

    def _replace(self, title: str, columns: list[str], key: str, row: list) -> None:
        index = self._find_row_index(title, columns, 0, key)
        if index is None:
            raise NotFoundError(f"Not found in {title}: {key}")
        self._write_row(title, columns, index, row)

    # -------------------------------------------------------------------------
    # Codecs
    # -------------------------------------------------------------------------

    @staticmethod
    def _record_to_row(record: MoneyRecord) -> list:
        return [
            str(record.id),
            record.created_at.isoformat(),
            record.occurred_at.isoformat(),
            record.kind.value,
            record.approval_status.value,
            str(record.amount),
            record.currency_code,
            record.title,
            record.notes or "",
            record.category,
            record.payment_method,
            record.emotional_tag.value,
        ]

    @staticmethod
    def _row_to_record(row: list) -> MoneyRecord:
        return MoneyRecord(
            id=UUID(_cell(row, 0)),
            created_at=datetime.fromisoformat(_cell(row, 1)),
            occurred_at=datetime.fromisoformat(_cell(row, 2)),
            kind=TransactionKind(_cell(row, 3)),
            approval_status=ApprovalStatus(_cell(row, 4)),
            amount=Decimal(_cell(row, 5)),
            currency_code=_cell(row, 6),
            title=_cell(row, 7),
            notes=_cell(row, 8) or None,
            category=_cell(row, 9),
            payment_method=_cell(row, 10, "Cash"),
            emotional_tag=EmotionalTag(_cell(row, 11, "none")),
        )

    @staticmethod
    def _budget_to_row(budget: Budget) -> list:
        return [
            str(budget.id),
            budget.month_key.isoformat(),
            str(budget.assigned_income),
            json.dumps({k: str(v) for k, v in budget.category_budgets.items()}),
            json.dumps({k: v.value for k, v in budget.carry_rules.items()}),
        ]

    @staticmethod
    def _row_to_budget(row: list) -> Budget:
        raw_budgets = json.loads(_cell(row, 3, "{}"))
        raw_rules = json.loads(_cell(row, 4, "{}"))
        return Budget(
            id=UUID(_cell(row, 0)),
            month_key=datetime.fromisoformat(_cell(row, 1)),
            assigned_income=Decimal(_cell(row, 2, "0")),
            category_budgets={k: Decimal(v) for k, v in raw_budgets.items()},
            carry_rules={k: CarryForwardDestination(v) for k, v in raw_rules.items()},
        )

    @staticmethod
    def _goal_to_row(goal: SavingsGoal) -> list:
        return [
            str(goal.id),
            goal.name,
            str(goal.target_amount),
            str(goal.current_amount),
            goal.deadline.isoformat() if goal.deadline else "",
            goal.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_goal(row: list) -> SavingsGoal:
        return SavingsGoal(
            id=UUID(_cell(row, 0)),
            name=_cell(row, 1),
            target_amount=Decimal(_cell(row, 2, "0")),
            current_amount=Decimal(_cell(row, 3, "0")),
            deadline=_optional_datetime(_cell(row, 4)),
            created_at=datetime.fromisoformat(_cell(row, 5)),
        )

    @staticmethod
    def _carry_event_to_row(event: CarryForwardEvent) -> list:
        return [
            event.id,
            event.key.from_month.isoformat(),
            event.key.to_month.isoformat(),
            event.key.category_slug,
            event.key.destination.value,
            event.category,
            str(event.amount),
            event.applied_at.isoformat(),
        ]

    @staticmethod
    def _row_to_carry_event(row: list) -> CarryForwardEvent:
        return CarryForwardEvent(
            key=CarryForwardKey(
                from_month=datetime.fromisoformat(_cell(row, 1)),
                to_month=datetime.fromisoformat(_cell(row, 2)),
                category_slug=_cell(row, 3),
                destination=CarryForwardDestination(_cell(row, 4)),
            ),
            category=_cell(row, 5),
            amount=Decimal(_cell(row, 6)),
            applied_at=datetime.fromisoformat(_cell(row, 7)),
        )

    @staticmethod
    def _score_to_row(record: FinancialScoreRecord) -> list:
        return [
            record.month_key.isoformat(),
            str(record.score),
            json.dumps(record.breakdown),
            record.computed_at.isoformat(),
        ]

    @staticmethod
    def _row_to_score(row: list) -> FinancialScoreRecord:
        return FinancialScoreRecord(
            month_key=datetime.fromisoformat(_cell(row, 0)),
            score=int(_cell(row, 1, "0")),
            breakdown=json.loads(_cell(row, 2, "{}")),
            computed_at=datetime.fromisoformat(_cell(row, 3)),
        )

    @staticmethod
    def _template_to_row(template: ExpenseTemplate) -> list:
        return [
            str(template.id),
            template.name,
            str(template.amount),
            template.category,
            template.payment_method,
            template.created_at.isoformat(),
        ]

    @staticmethod
    def _row_to_template(row: list) -> ExpenseTemplate:
        return ExpenseTemplate(
            id=UUID(_cell(row, 0)),
            name=_cell(row, 1),
            amount=Decimal(_cell(row, 2)),
            category=_cell(row, 3),
            payment_method=_cell(row, 4, "Cash"),
            created_at=datetime.fromisoformat(_cell(row, 5)),
        )

    # -------------------------------------------------------------------------
    # Money records
    # -------------------------------------------------------------------------

    def add_record(self, record: MoneyRecord) -> MoneyRecord:
        title = self._names.records_sheet_name
        if self._find_row_index(title, RECORD_COLUMNS, 0, str(record.id)) is not None:
            raise DuplicateError(f"Record already exists: {record.id}")
        self._append(title, RECORD_COLUMNS, self._record_to_row(record))
        return record

    def update_record(self, record: MoneyRecord) -> MoneyRecord:
        self._replace(
            self._names.records_sheet_name,
            RECORD_COLUMNS,
            str(record.id),
            self._record_to_row(record),
        )
        return record

    def get_record(self, record_id: UUID) -> Optional[MoneyRecord]:
        for record in self._all_records():
            if record.id == record_id:
                return record
        return None

    def _all_records(self) -> list[MoneyRecord]:
        return self._decode_all(
            self._names.records_sheet_name,
            RECORD_COLUMNS,
            self._row_to_record,
        )

    def list_records(
        self,
        currency_code: Optional[str] = None,
        kind: Optional[TransactionKind] = None,
        statuses: Optional[set[ApprovalStatus]] = None,
        occurred_from: Optional[datetime] = None,
        occurred_to: Optional[datetime] = None,
        newest_first: bool = False,
    ) -> list[MoneyRecord]:
        records = [
            record
            for record in self._all_records()
            if record_matches(
                record,
                currency_code=currency_code,
                kind=kind,
                statuses=statuses,
                occurred_from=occurred_from,
                occurred_to=occurred_to,
            )
        ]
        records.sort(key=lambda r: r.occurred_at, reverse=newest_first)
        return records

    def count_records(
        self,
        currency_code: Optional[str] = None,
        kind: Optional[TransactionKind] = None,
        statuses: Optional[set[ApprovalStatus]] = None,
        occurred_from: Optional[datetime] = None,
        occurred_to: Optional[datetime] = None,
    ) -> int:
        return len(self.list_records(
            currency_code=currency_code,
            kind=kind,
            statuses=statuses,
            occurred_from=occurred_from,
            occurred_to=occurred_to,
        ))

    def delete_all_records(self) -> int:
        title = self._names.records_sheet_name
        rows = self._rows(title, RECORD_COLUMNS)
        if not rows:
            return 0
        try:
            self._sheet(title, RECORD_COLUMNS).delete_rows(2, len(rows) + 1)
        except Exception as e:
            raise StorageError(f"Failed to reset {title}: {e}")
        return len(rows)

    # -------------------------------------------------------------------------
    # Budgets
    # -------------------------------------------------------------------------

    def get_budget(self, month_key: datetime) -> Optional[Budget]:
        for budget in self.list_budgets():
            if budget.month_key == ensure_aware(month_key):
                return budget
        return None

    def upsert_budget(self, budget: Budget) -> Budget:
        self._upsert(
            self._names.budgets_sheet_name,
            BUDGET_COLUMNS,
            1,
            budget.month_key.isoformat(),
            self._budget_to_row(budget),
        )
        return budget

    def list_budgets(self) -> list[Budget]:
        budgets = self._decode_all(
            self._names.budgets_sheet_name,
            BUDGET_COLUMNS,
            self._row_to_budget,
        )
        return sorted(budgets, key=lambda b: b.month_key)

    # -------------------------------------------------------------------------
    # Goals
    # -------------------------------------------------------------------------

    def get_goal(self, goal_id: UUID) -> Optional[SavingsGoal]:
        for goal in self.list_goals():
            if goal.id == goal_id:
                return goal
        return None

    def find_goal_by_name(self, name: str) -> Optional[SavingsGoal]:
        for goal in self.list_goals():
            if goal.name == name:
                return goal
        return None

    def add_goal(self, goal: SavingsGoal) -> SavingsGoal:
        self._append(self._names.goals_sheet_name, GOAL_COLUMNS, self._goal_to_row(goal))
        return goal

    def update_goal(self, goal: SavingsGoal) -> SavingsGoal:
        self._replace(
            self._names.goals_sheet_name,
            GOAL_COLUMNS,
            str(goal.id),
            self._goal_to_row(goal),
        )
        return goal

    def list_goals(self) -> list[SavingsGoal]:
        return self._decode_all(
            self._names.goals_sheet_name,
            GOAL_COLUMNS,
            self._row_to_goal,
        )

    # -------------------------------------------------------------------------
    # Carry-forward ledger
    # -------------------------------------------------------------------------

    def carry_forward_event_exists(self, key: CarryForwardKey) -> bool:
        # Compare on the stored id column so a malformed amount can't hide a row
        wanted = key.legacy_id
        rows = self._rows(self._names.carry_forward_sheet_name, CARRY_FORWARD_COLUMNS)
        return any(_cell(row, 0) == wanted for row in rows)

    def add_carry_forward_event(self, event: CarryForwardEvent) -> CarryForwardEvent:
        if self.carry_forward_event_exists(event.key):
            raise DuplicateError(f"Carry-forward already applied: {event.id}")
        self._append(
            self._names.carry_forward_sheet_name,
            CARRY_FORWARD_COLUMNS,
            self._carry_event_to_row(event),
        )
        return event

    def list_carry_forward_events(
        self,
        to_month: Optional[datetime] = None,
    ) -> list[CarryForwardEvent]:
        events = self._decode_all(
            self._names.carry_forward_sheet_name,
            CARRY_FORWARD_COLUMNS,
            self._row_to_carry_event,
        )
        return [e for e in events if to_month is None or e.key.to_month == ensure_aware(to_month)]

    # -------------------------------------------------------------------------
    # Scores
    # -------------------------------------------------------------------------

    def get_financial_score(self, month_key: datetime) -> Optional[FinancialScoreRecord]:
        for record in self.list_financial_scores():
            if record.month_key == ensure_aware(month_key):
                return record
        return None

    def upsert_financial_score(self, record: FinancialScoreRecord) -> FinancialScoreRecord:
        self._upsert(
            self._names.scores_sheet_name,
            SCORE_COLUMNS,
            0,
            record.month_key.isoformat(),
            self._score_to_row(record),
        )
        return record

    def list_financial_scores(self) -> list[FinancialScoreRecord]:
        scores = self._decode_all(
            self._names.scores_sheet_name,
            SCORE_COLUMNS,
            self._row_to_score,
        )
        return sorted(scores, key=lambda s: s.month_key)

    # -------------------------------------------------------------------------
    # Templates
    # -------------------------------------------------------------------------

    def add_template(self, template: ExpenseTemplate) -> ExpenseTemplate:
        self._append(
            self._names.templates_sheet_name,
            TEMPLATE_COLUMNS,
            self._template_to_row(template),
        )
        return template

    def get_template(self, template_id: UUID) -> Optional[ExpenseTemplate]:
        for template in self.list_templates():
            if template.id == template_id:
                return template
        return None

    def list_templates(self) -> list[ExpenseTemplate]:
        return self._decode_all(
            self._names.templates_sheet_name,
            TEMPLATE_COLUMNS,
            self._row_to_template,
        )

    # -------------------------------------------------------------------------
    # Timeline
    # -------------------------------------------------------------------------

    def add_budget_change_event(self, event: BudgetChangeEvent) -> BudgetChangeEvent:
        self._append(self._names.timeline_sheet_name, TIMELINE_COLUMNS, [
            "budget_change",
            str(event.id),
            event.changed_at.isoformat(),
            event.month_key.isoformat(),
            "",
            "",
            "",
            "",
            event.summary,
        ])
        return event

    def list_budget_change_events(
        self,
        month_key: Optional[datetime] = None,
    ) -> list[BudgetChangeEvent]:
        def decode(row: list) -> BudgetChangeEvent:
            return BudgetChangeEvent(
                id=UUID(_cell(row, 1)),
                changed_at=datetime.fromisoformat(_cell(row, 2)),
                month_key=datetime.fromisoformat(_cell(row, 3)),
                summary=_cell(row, 8),
            )

        rows = [
            row for row in self._rows(self._names.timeline_sheet_name, TIMELINE_COLUMNS)
            if _cell(row, 0) == "budget_change"
        ]
        events = []
        for row in rows:
            try:
                events.append(decode(row))
            except ValueError as e:
                logger.warning("sheets_row_skipped", sheet="timeline", error=str(e))
        return [e for e in events if month_key is None or e.month_key == ensure_aware(month_key)]

    def add_goal_allocation_event(self, event: GoalAllocationEvent) -> GoalAllocationEvent:
        self._append(self._names.timeline_sheet_name, TIMELINE_COLUMNS, [
            "goal_allocation",
            str(event.id),
            event.created_at.isoformat(),
            "",
            str(event.goal_id),
            event.goal_name,
            str(event.amount),
            event.currency_code,
            "",
        ])
        return event

    def list_goal_allocation_events(
        self,
        goal_id: Optional[UUID] = None,
    ) -> list[GoalAllocationEvent]:
        def decode(row: list) -> GoalAllocationEvent:
            return GoalAllocationEvent(
                id=UUID(_cell(row, 1)),
                created_at=datetime.fromisoformat(_cell(row, 2)),
                goal_id=UUID(_cell(row, 4)),
                goal_name=_cell(row, 5),
                amount=Decimal(_cell(row, 6)),
                currency_code=_cell(row, 7),
            )

        rows = [
            row for row in self._rows(self._names.timeline_sheet_name, TIMELINE_COLUMNS)
            if _cell(row, 0) == "goal_allocation"
        ]
        events = []
        for row in rows:
            try:
                events.append(decode(row))
            except (ValueError, ArithmeticError) as e:
                logger.warning("sheets_row_skipped", sheet="timeline", error=str(e))
        return [e for e in events if goal_id is None or e.goal_id == goal_id]

    # -------------------------------------------------------------------------
    # Units of work
    # -------------------------------------------------------------------------

    @contextmanager
    def atomic(self) -> Iterator[None]:
        """Sheets has no transactions; writes land in call order."""
        yield


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _sheet(self) -> gspread.Worksheet:
        return self._client.get_worksheet(self._client.settings.audit_sheet_name, AUDIT_COLUMNS)

    def _row_to_event(self, row: list) -> AuditEvent:
        """Convert a spreadsheet row to an AuditEvent."""
        return AuditEvent(
            event_id=UUID(_cell(row, 0)),
            timestamp=datetime.fromisoformat(_cell(row, 1)),
            event_type=AuditEventType(_cell(row, 2)),
            severity=AuditSeverity(_cell(row, 3)),
            entity_type=_cell(row, 4) or None,
            entity_id=_cell(row, 5) or None,
            correlation_id=UUID(_cell(row, 6)) if _cell(row, 6) else None,
            description=_cell(row, 7),
            details=json.loads(_cell(row, 8)) if _cell(row, 8) else {},
            error_message=_cell(row, 9) or None,
            is_user_action=_cell(row, 10).lower() == "true",
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def append_event(self, event: AuditEvent) -> bool:
        """Append an audit event."""
        try:
            self._sheet().append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            # Audit logging should not break the main flow
            logger.warning("audit_append_failed", error=str(e), event_id=str(event.event_id))
            return False

    def _all_events(self) -> list[AuditEvent]:
        try:
            rows = self._sheet().get_all_values()[1:]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")

        events = []
        for row in rows:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue
        return events

    def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        events = [e for e in self._all_events() if e.correlation_id == correlation_id]
        events.sort(key=lambda e: e.timestamp)
        return events

    def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        events = self._all_events()
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
