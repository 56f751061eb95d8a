"""
Data Models Package

Pydantic models for every record the app stores and every summary it
derives.
"""

from couple_ledger.models.finance import (
    DEFAULT_CATEGORIES,
    AuthUser,
    Budget,
    BudgetPeriod,
    Category,
    Couple,
    FilterOptions,
    FinancialStats,
    Goal,
    LineItem,
    MonthlyFinancialData,
    ProgressTier,
    ReceiptData,
    RecurringInterval,
    Transaction,
    TransactionType,
    UserProfile,
    ValidationIssue,
    ValidationResult,
    line_items_total,
)
from couple_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "DEFAULT_CATEGORIES",
    "AuthUser",
    "Budget",
    "BudgetPeriod",
    "Category",
    "Couple",
    "FilterOptions",
    "FinancialStats",
    "Goal",
    "LineItem",
    "MonthlyFinancialData",
    "ProgressTier",
    "ReceiptData",
    "RecurringInterval",
    "Transaction",
    "TransactionType",
    "UserProfile",
    "ValidationIssue",
    "ValidationResult",
    "line_items_total",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
