"""
Core Data Models for Couple Ledger

These models define the schemas for every document the app stores and
every summary it derives. They are designed to:
1. Enforce the entity invariants at construction time
2. Provide clear validation error messages to the forms
3. Be serializable for the document store and the audit log

Invariants enforced here rather than in the services:
- Transaction.amount equals the sum of its line items when it has any
- Budget.remaining is always amount - spent
- Goal.is_completed is always current_amount >= target_amount
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class TransactionType(str, Enum):
    """Direction of money for a transaction or category."""
    INCOME = "income"
    EXPENSE = "expense"


class RecurringInterval(str, Enum):
    """How often a recurring transaction repeats."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class BudgetPeriod(str, Enum):
    """Length of a budget period."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ProgressTier(str, Enum):
    """Display tier for a progress bar. Presentational only."""
    LOW = "low"        # under 50%
    MEDIUM = "medium"  # under 80%
    HIGH = "high"      # 80% and above


# =============================================================================
# TRANSACTIONS
# =============================================================================

class LineItem(BaseModel):
    """
    One item of a split transaction or a scanned receipt.

    The line total is price * quantity.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Item name"
    )
    price: Decimal = Field(
        ...,
        ge=0,
        description="Unit price"
    )
    quantity: Decimal = Field(
        default=Decimal("1"),
        ge=0,
        description="Number of units"
    )

    @property
    def total(self) -> Decimal:
        return self.price * self.quantity


def line_items_total(items: list[LineItem]) -> Decimal:
    """Sum of price * quantity over a list of line items."""
    return sum((item.total for item in items), Decimal("0"))


class Transaction(BaseModel):
    """
    A single income or expense record.

    Owned by exactly one group (a couple or a personal group).
    When `items` is non-empty the transaction is in split mode and
    `amount` must equal the items' total.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    # Identity (assigned by the document store)
    id: Optional[str] = None

    type: TransactionType
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Amount, always non-negative; direction comes from type"
    )
    description: str = Field(
        default="",
        max_length=500
    )
    category: str = Field(
        default="",
        max_length=100,
        description="Category name, denormalized for reporting"
    )
    category_id: str = Field(default="")
    date: date

    # Ownership
    owner_id: str = Field(
        ...,
        description="UID of the partner this transaction belongs to"
    )
    owner_name: Optional[str] = Field(
        default=None,
        description="Display name or email of the partner who recorded it"
    )
    group_id: str
    is_shared: bool = False

    tags: list[str] = Field(default_factory=list)
    is_recurring: bool = False
    recurring_interval: Optional[RecurringInterval] = None
    items: list[LineItem] = Field(default_factory=list)

    notes: Optional[str] = Field(default=None, max_length=1000)
    receipt_url: Optional[str] = None
    location: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator('tags')
    @classmethod
    def normalize_tags(cls, v: list[str]) -> list[str]:
        """Drop blank tags and duplicates, keeping first-seen order."""
        seen = []
        for tag in v:
            tag = tag.strip()
            if tag and tag not in seen:
                seen.append(tag)
        return seen

    @model_validator(mode='after')
    def validate_split_total(self) -> 'Transaction':
        """A split transaction's amount must match its items."""
        if self.items:
            expected = line_items_total(self.items)
            if self.amount.quantize(Decimal("0.01")) != expected.quantize(Decimal("0.01")):
                raise ValueError(
                    f"Transaction amount ({self.amount}) must equal the sum "
                    f"of its line items ({expected})"
                )
        return self

    @property
    def is_income(self) -> bool:
        return self.type == TransactionType.INCOME

    @property
    def is_expense(self) -> bool:
        return self.type == TransactionType.EXPENSE


# =============================================================================
# CATEGORIES, BUDGETS, GOALS
# =============================================================================

class Category(BaseModel):
    """A spending or income category, scoped to a group."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType = TransactionType.EXPENSE
    is_default: bool = False
    group_id: str
    owner_id: Optional[str] = None

    icon: Optional[str] = None
    color: Optional[str] = None
    parent_id: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# Seeded the first time a group has no categories
DEFAULT_CATEGORIES: list[tuple[str, TransactionType]] = [
    ("Groceries", TransactionType.EXPENSE),
    ("Rent/Mortgage", TransactionType.EXPENSE),
    ("Utilities", TransactionType.EXPENSE),
    ("Transportation", TransactionType.EXPENSE),
    ("Dining Out", TransactionType.EXPENSE),
    ("Entertainment", TransactionType.EXPENSE),
    ("Healthcare", TransactionType.EXPENSE),
    ("Shopping", TransactionType.EXPENSE),
    ("Other Expense", TransactionType.EXPENSE),
    ("Salary", TransactionType.INCOME),
    ("Freelance", TransactionType.INCOME),
    ("Investment", TransactionType.INCOME),
    ("Other Income", TransactionType.INCOME),
]


class Budget(BaseModel):
    """
    Spending limit for one category over a period.

    `remaining` is derived: any value passed in is replaced with
    amount - spent.
    """

    id: Optional[str] = None
    category_id: str
    category: str = Field(default="", description="Category name")
    group_id: str

    amount: Decimal = Field(..., ge=0)
    spent: Decimal = Field(default=Decimal("0"), ge=0)
    remaining: Decimal = Field(default=Decimal("0"))

    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: date
    end_date: date

    # UI toggle; no carry-forward is computed from it
    rollover: bool = False

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode='after')
    def derive_remaining(self) -> 'Budget':
        if self.end_date < self.start_date:
            raise ValueError("Budget end date cannot be before start date")
        self.remaining = self.amount - self.spent
        return self


class Goal(BaseModel):
    """
    A savings goal.

    `is_completed` is derived from the amounts on every construction.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    group_id: str

    target_amount: Decimal = Field(..., gt=0)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    start_date: date
    target_date: Optional[date] = None
    is_completed: bool = False

    category: Optional[str] = None
    category_id: Optional[str] = None
    icon_emoji: Optional[str] = None
    color: str = "purple"

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode='after')
    def derive_completion(self) -> 'Goal':
        if self.target_date and self.target_date < self.start_date:
            raise ValueError("Goal target date cannot be before start date")
        self.is_completed = self.current_amount >= self.target_amount
        return self


# =============================================================================
# USERS AND COUPLES
# =============================================================================

class AuthUser(BaseModel):
    """The signed-in user as reported by the identity provider."""

    uid: str
    email: str = ""
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    is_anonymous: bool = False
    group_id: Optional[str] = None

    @property
    def label(self) -> str:
        """Name shown next to the transactions this user records."""
        return self.display_name or self.email or self.uid


class UserProfile(BaseModel):
    """User document kept in the store, separate from the auth account."""

    uid: str
    email: str = ""
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    group_id: Optional[str] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Couple(BaseModel):
    """Two users sharing one group. Membership is fixed once created."""

    id: Optional[str] = None
    members: list[str]
    created_at: Optional[datetime] = None

    @field_validator('members')
    @classmethod
    def validate_members(cls, v: list[str]) -> list[str]:
        if len(v) != 2:
            raise ValueError("A couple has exactly two members")
        if v[0] == v[1]:
            raise ValueError("A user cannot be linked to themself")
        return v


# =============================================================================
# FILTERS AND SUMMARIES
# =============================================================================

class FilterOptions(BaseModel):
    """
    Transaction list filters.

    "All Time", "All" and "all" are the UI's "no filter" values.
    `month` is the month number as a string ("1".."12").
    """

    year: Optional[str] = "All Time"
    month: Optional[str] = "All"
    category: Optional[str] = None
    user: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    type: Optional[str] = Field(
        default="all",
        pattern="^(income|expense|all)$"
    )
    tags: list[str] = Field(default_factory=list)
    min_amount: Optional[Decimal] = None
    max_amount: Optional[Decimal] = None


class MonthlyFinancialData(BaseModel):
    """Income and expenses for one calendar month."""

    month: str
    income: Decimal = Decimal("0")
    expenses: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")


class FinancialStats(BaseModel):
    """Summary figures for a list of transactions."""

    total_income: Decimal = Decimal("0")
    total_expenses: Decimal = Decimal("0")
    balance: Decimal = Decimal("0")
    savings_rate: float = 0.0
    expenses_by_category: dict[str, Decimal] = Field(default_factory=dict)
    income_by_category: dict[str, Decimal] = Field(default_factory=dict)
    monthly_data: list[MonthlyFinancialData] = Field(default_factory=list)


# =============================================================================
# RECEIPTS
# =============================================================================

class ReceiptData(BaseModel):
    """
    What the image-understanding API read off a receipt.

    PROPOSED data: the user reviews it before a transaction is created.
    """
    model_config = ConfigDict(str_strip_whitespace=True, populate_by_name=True)

    merchant: str = Field(default="", max_length=200)
    amount: Decimal = Field(..., ge=0)
    receipt_date: Optional[date] = Field(default=None, alias="date")
    category: Optional[str] = None
    items: list[LineItem] = Field(default_factory=list)


# =============================================================================
# VALIDATION
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'future_date', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation of a transaction draft.

    Stage 1: Schema validation (required fields)
    Stage 2: Semantic validation (dates, category type, limits)
    """

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool = Field(
        ...,
        description="True when no issue has severity 'error'"
    )

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list,
        description="Messages of warning-level issues"
    )

    @property
    def errors(self) -> list[ValidationIssue]:
        return [issue for issue in self.issues if issue.severity == "error"]
