"""
Audit Logger

Two partners write to the same group, so every change to a shared record
is logged. The audit logger:
- Always writes a structured local log line
- Persists the event when an audit store is configured
- Never raises: a failed audit write must not undo a saved record
"""

from typing import Any, Optional

import structlog

from couple_ledger.models.audit import AuditEvent, AuditEventBuilder
from couple_ledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit store (for persistence and the activity history)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("couple_ledger.audit")

    @property
    def storage(self) -> Optional[AuditStorageInterface]:
        return self._storage

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns True if the storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_signed_in(self, uid: str, method: str) -> None:
        await self.log(AuditEventBuilder.user_signed_in(uid, method))

    async def log_signed_out(self, uid: str) -> None:
        await self.log(AuditEventBuilder.user_signed_out(uid))

    async def log_couple_linked(self, couple_id: str, members: list[str]) -> None:
        await self.log(AuditEventBuilder.couple_linked(couple_id, members))

    async def log_defaults_seeded(self, group_id: str, actor_id: str, count: int) -> None:
        await self.log(
            AuditEventBuilder.default_categories_seeded(group_id, actor_id, count)
        )

    async def log_record_created(
        self,
        collection: str,
        record_id: str,
        group_id: str,
        actor_id: Optional[str],
        summary: Optional[dict[str, Any]] = None,
    ) -> None:
        """Log creation of a transaction, category, budget or goal."""
        await self.log(AuditEventBuilder.record_created(
            collection=collection,
            record_id=record_id,
            group_id=group_id,
            actor_id=actor_id,
            summary=summary,
        ))

    async def log_record_updated(
        self,
        collection: str,
        record_id: str,
        group_id: str,
        actor_id: Optional[str],
        changed_fields: list[str],
    ) -> None:
        await self.log(AuditEventBuilder.record_updated(
            collection=collection,
            record_id=record_id,
            group_id=group_id,
            actor_id=actor_id,
            changed_fields=changed_fields,
        ))

    async def log_record_deleted(
        self,
        collection: str,
        record_id: str,
        group_id: str,
        actor_id: Optional[str],
    ) -> None:
        await self.log(AuditEventBuilder.record_deleted(
            collection=collection,
            record_id=record_id,
            group_id=group_id,
            actor_id=actor_id,
        ))

    async def log_receipt_scanned(
        self,
        actor_id: Optional[str],
        merchant: str,
        amount: str,
        item_count: int,
        mock: bool,
    ) -> None:
        await self.log(AuditEventBuilder.receipt_scanned(
            actor_id=actor_id,
            merchant=merchant,
            amount=amount,
            item_count=item_count,
            mock=mock,
        ))

    async def log_receipt_scan_failed(self, actor_id: Optional[str], error_message: str) -> None:
        await self.log(AuditEventBuilder.receipt_scan_failed(actor_id, error_message))

    async def log_validation_failed(
        self,
        collection: str,
        group_id: str,
        actor_id: Optional[str],
        issues: list[dict],
    ) -> None:
        """Log a draft the validator refused to save."""
        await self.log(AuditEventBuilder.validation_failed(
            collection=collection,
            group_id=group_id,
            actor_id=actor_id,
            issues=issues,
        ))
