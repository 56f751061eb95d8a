"""
Two-Stage Transaction Validation

STAGE 1 - SCHEMA VALIDATION:
- Description, amount and category are present
- Amount is greater than zero

STAGE 2 - SEMANTIC VALIDATION:
- Date not too far in the future, not suspiciously old
- Category type agrees with the transaction type
- Recurring transactions say how often they recur
- Unusually large amounts

Stage 2 only runs when stage 1 passes. Validation NEVER silently fixes
a draft; it reports issues, and the workspace refuses to save a draft
with errors. Warnings are shown but don't block.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional

from couple_ledger.config import get_settings
from couple_ledger.models.finance import (
    Category,
    Transaction,
    ValidationIssue,
    ValidationResult,
)


class TransactionRejectedError(Exception):
    """A transaction draft failed validation with errors."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(issue.message for issue in result.errors)
        super().__init__(f"Transaction rejected: {messages}")


class TransactionValidator:
    """Validates transaction drafts before they are saved."""

    def __init__(self):
        self._settings = get_settings().app

    def _validate_schema(
        self,
        tx: Transaction,
    ) -> tuple[bool, list[ValidationIssue]]:
        """Stage 1. Returns: (is_valid, list_of_issues)"""
        issues = []

        if not tx.description.strip():
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Description is required",
                severity="error",
            ))

        if tx.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Amount must be greater than zero",
                severity="error",
            ))

        if not tx.category and not tx.category_id:
            issues.append(ValidationIssue(
                field="category",
                issue_type="missing",
                message="Category is required",
                severity="error",
                suggested_fix="Pick a category from the list",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def _validate_semantic(
        self,
        tx: Transaction,
        categories: Optional[list[Category]],
        today: date,
    ) -> tuple[bool, list[ValidationIssue]]:
        """Stage 2. Returns: (is_valid, list_of_issues)"""
        issues = []

        max_future_date = today + timedelta(days=self._settings.future_date_tolerance_days)
        if tx.date > max_future_date:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message=f"Date ({tx.date}) is too far in the future",
                severity="error",
                suggested_fix="Please verify the date is correct",
            ))

        oldest_expected = today - timedelta(days=self._settings.stale_date_warning_days)
        if tx.date < oldest_expected:
            issues.append(ValidationIssue(
                field="date",
                issue_type="suspicious_date",
                message=f"Date ({tx.date}) seems unusually old",
                severity="warning",
                suggested_fix="Please verify the date",
            ))

        if categories:
            category = next(
                (
                    c for c in categories
                    if (tx.category_id and c.id == tx.category_id) or c.name == tx.category
                ),
                None,
            )
            if category is not None and category.type != tx.type:
                issues.append(ValidationIssue(
                    field="category",
                    issue_type="inconsistent",
                    message=(
                        f"'{category.name}' is an {category.type.value} category "
                        f"but this is an {tx.type.value}"
                    ),
                    severity="warning",
                    suggested_fix="Check the transaction type",
                ))

        if tx.is_recurring and tx.recurring_interval is None:
            issues.append(ValidationIssue(
                field="recurring_interval",
                issue_type="missing",
                message="Recurring transactions need an interval",
                severity="error",
                suggested_fix="Choose daily, weekly, monthly or yearly",
            ))

        max_amount = Decimal(str(self._settings.max_transaction_amount))
        if tx.amount > max_amount:
            symbol = self._settings.currency_symbol
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=f"Amount ({symbol}{tx.amount:,.2f}) seems unusually high",
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def validate(
        self,
        tx: Transaction,
        categories: Optional[list[Category]] = None,
        today: Optional[date] = None,
    ) -> ValidationResult:
        """
        Run the two-stage pipeline.

        Args:
            tx: The draft to validate
            categories: The group's categories, for the type check
            today: Reference date for the date checks
        """
        today = today or date.today()
        all_issues = []

        schema_valid, schema_issues = self._validate_schema(tx)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_semantic(tx, categories, today)
            all_issues.extend(semantic_issues)

        return ValidationResult(
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=[i.message for i in all_issues if i.severity == "warning"],
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Summary shown under the transaction form."""
        if result.is_valid and not result.warnings:
            return "✅ All checks passed!"

        lines = []
        if result.errors:
            lines.append("❌ Please fix the following:")
            for issue in result.errors:
                lines.append(f"   • {issue.message}")
                if issue.suggested_fix:
                    lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
