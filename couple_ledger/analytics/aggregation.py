"""
Financial Aggregation

Read-only summaries derived from in-memory transaction lists: totals,
balance, per-category and per-month breakdowns, savings rate and
progress percentages for budgets and goals.

Everything here is DETERMINISTIC and side-effect free. Inputs are the
already-loaded lists for one group, so every operation is a linear scan.
Division by zero is guarded by returning 0; no function raises on
well-formed input.
"""

import calendar
from collections.abc import Iterable
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from couple_ledger.models.finance import (
    Budget,
    FilterOptions,
    FinancialStats,
    MonthlyFinancialData,
    ProgressTier,
    Transaction,
    TransactionType,
)


ZERO = Decimal("0")

# Filter values that mean "don't filter"
_ANY = {None, "", "All", "All Time", "all"}


def _sum_amounts(transactions: Iterable[Transaction], tx_type: TransactionType) -> Decimal:
    return sum(
        (tx.amount for tx in transactions if tx.type == tx_type),
        ZERO,
    )


def total_income(transactions: Iterable[Transaction] = ()) -> Decimal:
    """Sum of amounts of income transactions."""
    return _sum_amounts(transactions, TransactionType.INCOME)


def total_expenses(transactions: Iterable[Transaction] = ()) -> Decimal:
    """Sum of amounts of expense transactions."""
    return _sum_amounts(transactions, TransactionType.EXPENSE)


def balance(transactions: Iterable[Transaction] = ()) -> Decimal:
    """Total income minus total expenses."""
    transactions = list(transactions)
    return total_income(transactions) - total_expenses(transactions)


def _group_by_category(
    transactions: Iterable[Transaction],
    tx_type: TransactionType,
) -> dict[str, Decimal]:
    groups: dict[str, Decimal] = {}
    for tx in transactions:
        if tx.type != tx_type:
            continue
        groups[tx.category] = groups.get(tx.category, ZERO) + tx.amount
    return groups


def group_by_category(transactions: Iterable[Transaction] = ()) -> dict[str, Decimal]:
    """
    Expense totals keyed by category name.

    Income transactions never contribute, not even as zero entries.
    """
    return _group_by_category(transactions, TransactionType.EXPENSE)


def income_by_category(transactions: Iterable[Transaction] = ()) -> dict[str, Decimal]:
    """Income totals keyed by category name."""
    return _group_by_category(transactions, TransactionType.INCOME)


def savings_rate(income: Decimal, expenses: Decimal) -> float:
    """Share of income left after expenses, as a percentage. 0 without income."""
    if income <= 0:
        return 0.0
    return float((Decimal(income) - Decimal(expenses)) / Decimal(income) * 100)


def budget_progress(spent: Decimal, amount: Decimal) -> float:
    """Percentage of a budget used, clamped to 100. 0 for an empty budget."""
    if amount <= 0:
        return 0.0
    return min(float(Decimal(spent) / Decimal(amount) * 100), 100.0)


def progress_tier(percentage: float) -> ProgressTier:
    """Display tier for a progress percentage (<50, <80, >=80)."""
    if percentage < 50:
        return ProgressTier.LOW
    if percentage < 80:
        return ProgressTier.MEDIUM
    return ProgressTier.HIGH


def goal_progress(current: Decimal, target: Decimal) -> int:
    """Whole-number percentage towards a goal, clamped to 100."""
    if target <= 0:
        return 0
    ratio = Decimal(current) / Decimal(target) * 100
    return min(100, int(ratio.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def days_remaining(target_date: Optional[date], today: Optional[date] = None) -> Optional[int]:
    """Days until a goal deadline; negative once it has passed, None without one."""
    if target_date is None:
        return None
    today = today or date.today()
    return (target_date - today).days


def budget_totals(budgets: Iterable[Budget]) -> dict[str, Decimal]:
    """Sum of amount, spent and remaining across budgets."""
    totals = {"amount": ZERO, "spent": ZERO, "remaining": ZERO}
    for budget in budgets:
        totals["amount"] += budget.amount
        totals["spent"] += budget.spent
        totals["remaining"] += budget.remaining
    return totals


def monthly_breakdown(
    transactions: Iterable[Transaction],
    year: int,
) -> list[MonthlyFinancialData]:
    """Income, expenses and balance for each month of `year`."""
    income = [ZERO] * 12
    expenses = [ZERO] * 12

    for tx in transactions:
        if tx.date.year != year:
            continue
        idx = tx.date.month - 1
        if tx.type == TransactionType.INCOME:
            income[idx] += tx.amount
        else:
            expenses[idx] += tx.amount

    return [
        MonthlyFinancialData(
            month=calendar.month_name[idx + 1],
            income=income[idx],
            expenses=expenses[idx],
            balance=income[idx] - expenses[idx],
        )
        for idx in range(12)
    ]


def totals_by_owner(transactions: Iterable[Transaction]) -> dict[str, dict[str, Decimal]]:
    """Income and expenses keyed by the partner who owns each transaction."""
    result: dict[str, dict[str, Decimal]] = {}
    for tx in transactions:
        owner = result.setdefault(tx.owner_id, {"income": ZERO, "expenses": ZERO})
        if tx.type == TransactionType.INCOME:
            owner["income"] += tx.amount
        else:
            owner["expenses"] += tx.amount
    return result


def filter_transactions(
    transactions: Iterable[Transaction],
    filters: FilterOptions,
) -> list[Transaction]:
    """Apply list filters. Order of the input is preserved."""
    filtered = list(transactions)

    if filters.year not in _ANY:
        filtered = [t for t in filtered if str(t.date.year) == filters.year]
        # A month only narrows within a chosen year
        if filters.month not in _ANY:
            filtered = [t for t in filtered if str(t.date.month) == str(int(filters.month))]
    if filters.category not in _ANY:
        filtered = [t for t in filtered if t.category == filters.category]
    if filters.type not in _ANY:
        filtered = [t for t in filtered if t.type.value == filters.type]
    if filters.user not in _ANY:
        filtered = [t for t in filtered if t.owner_id == filters.user]
    if filters.start_date:
        filtered = [t for t in filtered if t.date >= filters.start_date]
    if filters.end_date:
        filtered = [t for t in filtered if t.date <= filters.end_date]
    if filters.tags:
        wanted = set(filters.tags)
        filtered = [t for t in filtered if wanted.intersection(t.tags)]
    if filters.min_amount is not None:
        filtered = [t for t in filtered if t.amount >= filters.min_amount]
    if filters.max_amount is not None:
        filtered = [t for t in filtered if t.amount <= filters.max_amount]

    return filtered


def compute_financial_stats(
    transactions: Iterable[Transaction],
    year: Optional[int] = None,
) -> FinancialStats:
    """
    All summary figures for a list of transactions.

    Monthly data is included only when a year is given.
    """
    transactions = list(transactions)
    income = total_income(transactions)
    expenses = total_expenses(transactions)

    return FinancialStats(
        total_income=income,
        total_expenses=expenses,
        balance=income - expenses,
        savings_rate=savings_rate(income, expenses),
        expenses_by_category=group_by_category(transactions),
        income_by_category=income_by_category(transactions),
        monthly_data=monthly_breakdown(transactions, year) if year else [],
    )
