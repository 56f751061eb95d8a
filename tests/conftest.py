"""
Shared fixtures.

No test talks to Firebase, Google Sheets or Gemini: settings are pinned
to offline values and every backend is in-memory or a mock.
"""

import asyncio

import pytest

from couple_ledger.audit import AuditLogger
from couple_ledger.config import get_settings
from couple_ledger.models import AuthUser
from couple_ledger.orchestrator import FinanceWorkspace
from couple_ledger.services import (
    BudgetService,
    CategoryService,
    CoupleService,
    GoalService,
    TransactionService,
    UserProfileService,
)
from couple_ledger.services.storage import InMemoryAuditStorage, InMemoryCollectionStorage


@pytest.fixture(autouse=True)
def offline_settings(monkeypatch, tmp_path):
    """Run every test from an empty directory with no service keys."""
    monkeypatch.chdir(tmp_path)
    for name in ("GEMINI_API_KEY", "FIREBASE_API_KEY", "STORAGE_BACKEND"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class Backend:
    """In-memory stores and services wired the way the app wires them."""

    def __init__(self):
        self.audit_storage = InMemoryAuditStorage()
        self.audit_logger = AuditLogger(self.audit_storage)
        self.profiles = UserProfileService(InMemoryCollectionStorage("users"))
        self.couples = CoupleService(InMemoryCollectionStorage("couples"), self.profiles)
        self.transactions = TransactionService(InMemoryCollectionStorage("transactions"))
        self.categories = CategoryService(InMemoryCollectionStorage("categories"))
        self.budgets = BudgetService(InMemoryCollectionStorage("budgets"))
        self.goals = GoalService(InMemoryCollectionStorage("goals"))

    def workspace(self, user: AuthUser, **kwargs) -> FinanceWorkspace:
        return FinanceWorkspace(
            user=user,
            transaction_service=self.transactions,
            category_service=self.categories,
            budget_service=self.budgets,
            goal_service=self.goals,
            couple_service=self.couples,
            audit_logger=self.audit_logger,
            **kwargs,
        )


@pytest.fixture
def backend():
    return Backend()


@pytest.fixture
def alice():
    return AuthUser(uid="alice", email="alice@example.com", display_name="Alice")


@pytest.fixture
def workspace(backend, alice):
    ws = backend.workspace(alice)
    asyncio.run(ws.load_all())
    return ws
