"""Tests for in-memory storage and the typed collection services."""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from couple_ledger.models import Budget, Category, Goal, Transaction, TransactionType
from couple_ledger.services import (
    BudgetService,
    CategoryService,
    GoalService,
    TransactionService,
)
from couple_ledger.services.storage import InMemoryCollectionStorage, NotFoundError


def make_tx(description="Lunch", amount="40", group_id="g1", on=date(2024, 3, 10), owner="alice"):
    return Transaction(
        type=TransactionType.EXPENSE,
        amount=Decimal(amount),
        description=description,
        category="Dining Out",
        date=on,
        owner_id=owner,
        group_id=group_id,
    )


class TestInMemoryCollectionStorage:

    def test_add_get_roundtrip_includes_id(self):
        store = InMemoryCollectionStorage("things")

        async def scenario():
            doc_id = await store.add({"name": "a", "group_id": "g"})
            return doc_id, await store.get(doc_id)

        doc_id, doc = asyncio.run(scenario())
        assert doc["id"] == doc_id
        assert doc["name"] == "a"
        assert doc["created_at"]

    def test_get_missing_returns_none(self):
        assert asyncio.run(InMemoryCollectionStorage("x").get("nope")) is None

    def test_returned_documents_are_copies(self):
        store = InMemoryCollectionStorage("things")

        async def scenario():
            doc_id = await store.add({"tags": ["a"]})
            doc = await store.get(doc_id)
            doc["tags"].append("b")
            return await store.get(doc_id)

        assert asyncio.run(scenario())["tags"] == ["a"]

    def test_update_missing_raises(self):
        with pytest.raises(NotFoundError):
            asyncio.run(InMemoryCollectionStorage("x").update("nope", {"a": 1}))

    def test_delete_missing_is_noop(self):
        asyncio.run(InMemoryCollectionStorage("x").delete("nope"))

    def test_list_where_is_newest_first(self):
        store = InMemoryCollectionStorage("things")

        async def scenario():
            await store.add({"n": 1, "group_id": "g"})
            await store.add({"n": 2, "group_id": "other"})
            await store.add({"n": 3, "group_id": "g"})
            return await store.list_where("group_id", "g")

        assert [d["n"] for d in asyncio.run(scenario())] == [3, 1]

    def test_list_where_contains(self):
        store = InMemoryCollectionStorage("couples")

        async def scenario():
            await store.add({"members": ["a", "b"]})
            return (
                await store.list_where_contains("members", "b"),
                await store.list_where_contains("members", "z"),
            )

        found, missing = asyncio.run(scenario())
        assert len(found) == 1
        assert missing == []


class TestTransactionService:

    def test_add_and_list_scoped_to_group(self):
        service = TransactionService(InMemoryCollectionStorage("transactions"))

        async def scenario():
            first = await service.add(make_tx("First"))
            await service.add(make_tx("Elsewhere", group_id="g2"))
            second = await service.add(make_tx("Second"))
            return first, second, await service.list("g1")

        first, second, listed = asyncio.run(scenario())
        assert [t.id for t in listed] == [second, first]
        assert listed[0].amount == Decimal("40")
        assert listed[0].created_at is not None

    def test_update_revalidates(self):
        service = TransactionService(InMemoryCollectionStorage("transactions"))

        async def scenario():
            tx_id = await service.add(make_tx())
            updated = await service.update(tx_id, {"amount": Decimal("55.5")})
            return updated, await service.get(tx_id)

        updated, stored = asyncio.run(scenario())
        assert updated.amount == Decimal("55.5")
        assert stored.amount == Decimal("55.5")
        assert stored.updated_at is not None

    def test_update_rejects_invalid_changes(self):
        service = TransactionService(InMemoryCollectionStorage("transactions"))
        tx_id = asyncio.run(service.add(make_tx()))

        with pytest.raises(ValueError):
            asyncio.run(service.update(tx_id, {"amount": Decimal("-5")}))
        assert asyncio.run(service.get(tx_id)).amount == Decimal("40")

    def test_update_missing_raises_not_found(self):
        service = TransactionService(InMemoryCollectionStorage("transactions"))
        with pytest.raises(NotFoundError):
            asyncio.run(service.update("missing", {"description": "x"}))

    def test_list_by_month_and_owner(self):
        service = TransactionService(InMemoryCollectionStorage("transactions"))

        async def scenario():
            await service.add(make_tx(on=date(2024, 3, 1)))
            await service.add(make_tx(on=date(2024, 4, 1), owner="bob"))
            return (
                await service.list_by_month("g1", 2024, 3),
                await service.list_by_owner("g1", "bob"),
            )

        march, bobs = asyncio.run(scenario())
        assert len(march) == 1
        assert bobs[0].owner_id == "bob"

    def test_delete(self):
        service = TransactionService(InMemoryCollectionStorage("transactions"))

        async def scenario():
            tx_id = await service.add(make_tx())
            await service.delete(tx_id)
            await service.delete(tx_id)
            return await service.get(tx_id)

        assert asyncio.run(scenario()) is None


class TestBudgetService:

    def make_budget(self, spent="0"):
        return Budget(
            category_id="c1",
            category="Groceries",
            group_id="g1",
            amount=Decimal("500"),
            spent=Decimal(spent),
            start_date=date(2024, 1, 1),
            end_date=date(2024, 1, 31),
        )

    def test_new_budget_starts_unspent(self):
        service = BudgetService(InMemoryCollectionStorage("budgets"))

        async def scenario():
            budget_id = await service.add(self.make_budget(spent="123"))
            return await service.get(budget_id)

        budget = asyncio.run(scenario())
        assert budget.spent == 0
        assert budget.remaining == Decimal("500")

    def test_record_spending_recomputes_remaining(self):
        service = BudgetService(InMemoryCollectionStorage("budgets"))

        async def scenario():
            budget_id = await service.add(self.make_budget())
            await service.record_spending(budget_id, Decimal("120"))
            return await service.get(budget_id)

        budget = asyncio.run(scenario())
        assert budget.spent == Decimal("120")
        assert budget.remaining == Decimal("380")

    def test_amount_change_recomputes_remaining(self):
        service = BudgetService(InMemoryCollectionStorage("budgets"))

        async def scenario():
            budget_id = await service.add(self.make_budget())
            await service.record_spending(budget_id, Decimal("100"))
            await service.update(budget_id, {"amount": Decimal("150")})
            return await service.get(budget_id)

        assert asyncio.run(scenario()).remaining == Decimal("50")

    def test_toggle_rollover(self):
        service = BudgetService(InMemoryCollectionStorage("budgets"))

        async def scenario():
            budget_id = await service.add(self.make_budget())
            first = await service.toggle_rollover(budget_id)
            second = await service.toggle_rollover(budget_id)
            return first.rollover, second.rollover

        assert asyncio.run(scenario()) == (True, False)


class TestGoalService:

    def test_new_goal_starts_at_zero(self):
        service = GoalService(InMemoryCollectionStorage("goals"))
        goal = Goal(
            name="Holiday",
            group_id="g1",
            target_amount=Decimal("100"),
            current_amount=Decimal("100"),
            start_date=date(2024, 1, 1),
        )

        async def scenario():
            return await service.get(await service.add(goal))

        stored = asyncio.run(scenario())
        assert stored.current_amount == 0
        assert stored.is_completed is False

    def test_contribute_completes_goal(self):
        service = GoalService(InMemoryCollectionStorage("goals"))
        goal = Goal(name="Bike", group_id="g1", target_amount=Decimal("100"), start_date=date(2024, 1, 1))

        async def scenario():
            goal_id = await service.add(goal)
            partial = await service.contribute(goal_id, Decimal("60"))
            full = await service.contribute(goal_id, Decimal("40"))
            return partial, full, await service.get(goal_id)

        partial, full, stored = asyncio.run(scenario())
        assert partial.is_completed is False
        assert full.is_completed is True
        assert stored.is_completed is True
        assert stored.current_amount == Decimal("100")


class TestCategoryService:

    def test_categories_scoped_to_group(self):
        service = CategoryService(InMemoryCollectionStorage("categories"))

        async def scenario():
            await service.add(Category(name="Pets", group_id="g1"))
            await service.add(Category(name="Salary", type=TransactionType.INCOME, group_id="g2"))
            return await service.list("g1")

        categories = asyncio.run(scenario())
        assert [c.name for c in categories] == ["Pets"]
        assert categories[0].type == TransactionType.EXPENSE
