"""Audit logging package."""

from couple_ledger.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
