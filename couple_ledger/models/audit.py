"""
Audit Models for Couple Ledger

Every mutation of a shared financial record is logged. Two people write
to the same group, so the audit trail answers "who changed this and when".

Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Session
    USER_SIGNED_IN = "user_signed_in"
    USER_SIGNED_OUT = "user_signed_out"
    COUPLE_LINKED = "couple_linked"
    DEFAULT_CATEGORIES_SEEDED = "default_categories_seeded"

    # Record lifecycle
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"

    # Receipt scanning
    RECEIPT_SCANNED = "receipt_scanned"
    RECEIPT_SCAN_FAILED = "receipt_scan_failed"

    # Validation
    VALIDATION_FAILED = "validation_failed"


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

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What record is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Collection of the record (e.g. 'transactions', 'goals')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Document ID of the record"
    )
    group_id: Optional[str] = None
    actor_id: Optional[str] = Field(
        default=None,
        description="UID of the user who triggered the event"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

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
            "group_id": self.group_id,
            "actor_id": self.actor_id,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         group_id, actor_id, description, details_json, error_message]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            self.group_id or "",
            self.actor_id or "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_created("goals", goal_id, group_id, uid)
    """

    @staticmethod
    def user_signed_in(uid: str, method: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_SIGNED_IN,
            entity_type="users",
            entity_id=uid,
            actor_id=uid,
            description=f"User signed in with {method}",
            details={"method": method},
        )

    @staticmethod
    def user_signed_out(uid: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_SIGNED_OUT,
            entity_type="users",
            entity_id=uid,
            actor_id=uid,
            description="User signed out",
        )

    @staticmethod
    def couple_linked(couple_id: str, members: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.COUPLE_LINKED,
            entity_type="couples",
            entity_id=couple_id,
            group_id=couple_id,
            actor_id=members[0],
            description="Two users linked into a couple",
            details={"members": members},
        )

    @staticmethod
    def default_categories_seeded(
        group_id: str,
        actor_id: str,
        count: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DEFAULT_CATEGORIES_SEEDED,
            entity_type="categories",
            group_id=group_id,
            actor_id=actor_id,
            description=f"Seeded {count} default categories",
            details={"count": count},
        )

    @staticmethod
    def record_created(
        collection: str,
        record_id: str,
        group_id: str,
        actor_id: Optional[str],
        summary: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            entity_type=collection,
            entity_id=record_id,
            group_id=group_id,
            actor_id=actor_id,
            description=f"Created {collection} record {record_id}",
            details=summary or {},
        )

    @staticmethod
    def record_updated(
        collection: str,
        record_id: str,
        group_id: str,
        actor_id: Optional[str],
        changed_fields: list[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            entity_type=collection,
            entity_id=record_id,
            group_id=group_id,
            actor_id=actor_id,
            description=f"Updated {collection} record {record_id}",
            details={"changed_fields": changed_fields},
        )

    @staticmethod
    def record_deleted(
        collection: str,
        record_id: str,
        group_id: str,
        actor_id: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_DELETED,
            severity=AuditSeverity.WARNING,
            entity_type=collection,
            entity_id=record_id,
            group_id=group_id,
            actor_id=actor_id,
            description=f"Deleted {collection} record {record_id}",
        )

    @staticmethod
    def receipt_scanned(
        actor_id: Optional[str],
        merchant: str,
        amount: str,
        item_count: int,
        mock: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_SCANNED,
            entity_type="receipts",
            actor_id=actor_id,
            description=f"Receipt scanned: {merchant} - {amount}",
            details={
                "merchant": merchant,
                "amount": amount,
                "item_count": item_count,
                "mock": mock,
            },
        )

    @staticmethod
    def receipt_scan_failed(
        actor_id: Optional[str],
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_SCAN_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="receipts",
            actor_id=actor_id,
            description="Receipt scan failed",
            error_message=error_message,
        )

    @staticmethod
    def validation_failed(
        collection: str,
        group_id: str,
        actor_id: Optional[str],
        issues: list[dict],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type=collection,
            group_id=group_id,
            actor_id=actor_id,
            description=f"Validation failed with {len(issues)} issues",
            details={"issues": issues},
        )
