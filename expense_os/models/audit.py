"""
Audit Models for Expense OS

Every write the engine performs is logged for audit purposes.
This provides:
1. Traceability of every budget, goal and ledger change
2. Debugging information when a month tick misbehaves
3. Ability to reconstruct how a balance was reached

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from expense_os.models.ledger import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every engine operation has its own event type.
    """
    # Month tick
    MONTH_TICK_STARTED = "month_tick_started"
    MONTH_TICK_COMPLETED = "month_tick_completed"

    # Carry-forward
    CARRY_FORWARD_APPLIED = "carry_forward_applied"
    CARRY_FORWARD_SKIPPED = "carry_forward_skipped"

    # Scoring
    SCORE_UPSERTED = "score_upserted"

    # Read-only analytics
    HEALTH_CHECK_RUN = "health_check_run"
    INSIGHTS_GENERATED = "insights_generated"

    # Ledger maintenance
    RECORD_CREATED = "record_created"
    RECORD_STATUS_CHANGED = "record_status_changed"
    BUDGET_SAVED = "budget_saved"
    GOAL_ALLOCATED = "goal_allocated"
    LEDGER_RESET = "ledger_reset"

    # Data exchange
    EXPORT_GENERATED = "export_generated"
    IMPORT_COMPLETED = "import_completed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every engine write creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'record', 'budget', 'goal')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one month tick)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.carry_forward_applied(legacy_id, "Food", ...)
        event = AuditEventBuilder.score_upserted("2024-05", 82, correlation_id)
    """

    @staticmethod
    def month_tick_started(month: str, correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MONTH_TICK_STARTED,
            entity_type="month",
            entity_id=month,
            correlation_id=correlation_id,
            description=f"Month tick started for {month}",
        )

    @staticmethod
    def month_tick_completed(
        month: str,
        carried: int,
        score: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MONTH_TICK_COMPLETED,
            entity_type="month",
            entity_id=month,
            correlation_id=correlation_id,
            description=f"Month tick completed for {month}: {carried} carry-forwards, score {score}",
            details={
                "carry_forwards_applied": carried,
                "score": score,
            },
        )

    @staticmethod
    def carry_forward_applied(
        event_id: str,
        category: str,
        destination: str,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARRY_FORWARD_APPLIED,
            entity_type="carry_forward",
            entity_id=event_id,
            correlation_id=correlation_id,
            description=f"Carried {amount} of unused {category} budget to {destination}",
            details={
                "category": category,
                "destination": destination,
                "amount": str(amount),
            },
        )

    @staticmethod
    def carry_forward_skipped(
        event_id: str,
        category: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARRY_FORWARD_SKIPPED,
            severity=AuditSeverity.DEBUG,
            entity_type="carry_forward",
            entity_id=event_id,
            correlation_id=correlation_id,
            description=f"Carry-forward for {category} already applied",
        )

    @staticmethod
    def score_upserted(
        month: str,
        score: int,
        breakdown: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCORE_UPSERTED,
            entity_type="financial_score",
            entity_id=month,
            correlation_id=correlation_id,
            description=f"Financial health score for {month}: {score}",
            details={
                "score": score,
                "breakdown": breakdown,
            },
        )

    @staticmethod
    def health_check_run(month: str, currency: str, findings: dict[str, int]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HEALTH_CHECK_RUN,
            severity=AuditSeverity.DEBUG,
            entity_type="month",
            entity_id=month,
            description=f"Data integrity check for {month} ({currency})",
            details={"currency": currency, "findings": findings},
        )

    @staticmethod
    def insights_generated(month: str, currency: str, kinds: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSIGHTS_GENERATED,
            severity=AuditSeverity.DEBUG,
            entity_type="month",
            entity_id=month,
            description=f"Generated {len(kinds)} insights for {month} ({currency})",
            details={"currency": currency, "kinds": kinds},
        )

    @staticmethod
    def record_created(record_id: UUID, kind: str, amount: Decimal, category: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            entity_type="record",
            entity_id=str(record_id),
            description=f"Recorded {kind}: {category} {amount}",
            details={"kind": kind, "amount": str(amount), "category": category},
            is_user_action=True,
        )

    @staticmethod
    def record_status_changed(
        record_id: UUID,
        old_status: str,
        new_status: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_STATUS_CHANGED,
            entity_type="record",
            entity_id=str(record_id),
            description=f"Record moved from {old_status} to {new_status}",
            details={"from": old_status, "to": new_status},
            is_user_action=True,
        )

    @staticmethod
    def budget_saved(month: str, summary: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BUDGET_SAVED,
            entity_type="budget",
            entity_id=month,
            description=summary,
            is_user_action=True,
        )

    @staticmethod
    def goal_allocated(goal_id: UUID, goal_name: str, amount: Decimal) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_ALLOCATED,
            entity_type="goal",
            entity_id=str(goal_id),
            description=f"Allocated {amount} to {goal_name}",
            details={"amount": str(amount)},
            is_user_action=True,
        )

    @staticmethod
    def ledger_reset(removed: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_RESET,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            description=f"Ledger reset: {removed} records removed",
            details={"removed": removed},
            is_user_action=True,
        )

    @staticmethod
    def export_generated(record_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPORT_GENERATED,
            entity_type="ledger",
            description=f"JSON export generated with {record_count} records",
            details={"record_count": record_count},
            is_user_action=True,
        )

    @staticmethod
    def import_completed(imported: int, skipped: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_COMPLETED,
            severity=AuditSeverity.WARNING if skipped else AuditSeverity.INFO,
            entity_type="ledger",
            description=f"JSON import: {imported} imported, {skipped} skipped",
            details={"imported": imported, "skipped": skipped},
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
