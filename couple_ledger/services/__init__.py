"""
Services Package

Data access for the group-scoped collections, user profiles and couples,
and the authentication gateway.
"""

from couple_ledger.services.collections import (
    BudgetService,
    CategoryService,
    CollectionService,
    GoalService,
    TransactionService,
)
from couple_ledger.services.couples import (
    CoupleService,
    UserProfileService,
    personal_group_id,
    resolve_group_id,
)

__all__ = [
    "BudgetService",
    "CategoryService",
    "CollectionService",
    "GoalService",
    "TransactionService",
    "CoupleService",
    "UserProfileService",
    "personal_group_id",
    "resolve_group_id",
]
