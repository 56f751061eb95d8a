"""Financial aggregation package."""

from couple_ledger.analytics.aggregation import (
    balance,
    budget_progress,
    budget_totals,
    compute_financial_stats,
    days_remaining,
    filter_transactions,
    goal_progress,
    group_by_category,
    income_by_category,
    monthly_breakdown,
    progress_tier,
    savings_rate,
    total_expenses,
    total_income,
    totals_by_owner,
)

__all__ = [
    "balance",
    "budget_progress",
    "budget_totals",
    "compute_financial_stats",
    "days_remaining",
    "filter_transactions",
    "goal_progress",
    "group_by_category",
    "income_by_category",
    "monthly_breakdown",
    "progress_tier",
    "savings_rate",
    "total_expenses",
    "total_income",
    "totals_by_owner",
]
