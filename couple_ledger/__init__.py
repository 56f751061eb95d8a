"""
Couple Ledger - Source Package

Shared personal finance for couples: transactions, categories, budgets
and savings goals kept in one group that both partners write to.

DESIGN PRINCIPLES:
1. AI and voice only draft → Human reviews → System validates
2. Fail visibly; loaded data never changes on a failed call
3. Derived figures are computed, never stored by hand
4. Every change to a shared record is audited
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Couple Ledger Team"
