"""
Collection Services

Typed access to the four group-scoped collections: transactions,
categories, budgets and goals.

The storage layer deals in plain dicts. These services turn documents
into pydantic models on the way out and back into JSON-safe dicts on the
way in, so Decimal and date values survive any document backend.

Partial updates are applied by rebuilding the whole model from the
stored document plus the changes. That re-runs every validator, which
keeps derived fields (Budget.remaining, Goal.is_completed) consistent
with what was written.
"""

from decimal import Decimal
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

from couple_ledger.models.finance import Budget, Category, Goal, Transaction
from couple_ledger.services.storage import CollectionStorageInterface, NotFoundError


ModelT = TypeVar("ModelT", bound=BaseModel)

# Set by the storage layer, never by callers
_STAMPED_FIELDS = {"id", "created_at", "updated_at"}


class CollectionService(Generic[ModelT]):
    """
    CRUD for one collection of group-owned records.

    Subclasses set `collection` and `model`.
    """

    collection: str = ""
    model: type[ModelT]

    def __init__(self, storage: CollectionStorageInterface):
        self._storage = storage

    def _to_model(self, doc: dict[str, Any]) -> ModelT:
        return self.model.model_validate(doc)

    def _to_document(self, item: ModelT) -> dict[str, Any]:
        return item.model_dump(mode="json", exclude=_STAMPED_FIELDS)

    async def add(self, item: ModelT) -> str:
        """Store a new record and return its generated ID."""
        return await self._storage.add(self._to_document(item))

    async def get(self, record_id: str) -> Optional[ModelT]:
        doc = await self._storage.get(record_id)
        return self._to_model(doc) if doc else None

    async def list(self, group_id: str) -> list[ModelT]:
        """All records of a group, newest first."""
        docs = await self._storage.list_where("group_id", group_id)
        return [self._to_model(doc) for doc in docs]

    async def update(self, record_id: str, changes: dict[str, Any]) -> ModelT:
        """
        Apply a partial update and return the record as stored.

        Raises:
            NotFoundError: If the record doesn't exist
            pydantic.ValidationError: If the result is not a valid record
        """
        current = await self.get(record_id)
        if current is None:
            raise NotFoundError(f"{self.collection} record not found: {record_id}")

        changes = {k: v for k, v in changes.items() if k not in _STAMPED_FIELDS}
        updated = self.model.model_validate({**current.model_dump(), **changes})

        await self._storage.update(record_id, self._to_document(updated))
        return updated.model_copy(update={"id": record_id})

    async def delete(self, record_id: str) -> None:
        """Delete a record. Deleting a missing record is a no-op."""
        await self._storage.delete(record_id)


class TransactionService(CollectionService[Transaction]):
    collection = "transactions"
    model = Transaction

    async def list_by_month(self, group_id: str, year: int, month: int) -> list[Transaction]:
        return [
            tx for tx in await self.list(group_id)
            if tx.date.year == year and tx.date.month == month
        ]

    async def list_by_owner(self, group_id: str, owner_id: str) -> list[Transaction]:
        return [tx for tx in await self.list(group_id) if tx.owner_id == owner_id]


class CategoryService(CollectionService[Category]):
    collection = "categories"
    model = Category


class BudgetService(CollectionService[Budget]):
    """Budgets. `remaining` is recomputed on every write."""

    collection = "budgets"
    model = Budget

    async def add(self, item: Budget) -> str:
        # A new budget has spent nothing yet
        fresh = Budget.model_validate({**item.model_dump(), "spent": Decimal("0")})
        return await super().add(fresh)

    async def record_spending(self, budget_id: str, spent: Decimal) -> Budget:
        """Set the amount spent so far."""
        return await self.update(budget_id, {"spent": spent})

    async def toggle_rollover(self, budget_id: str) -> Budget:
        budget = await self.get(budget_id)
        if budget is None:
            raise NotFoundError(f"{self.collection} record not found: {budget_id}")
        return await self.update(budget_id, {"rollover": not budget.rollover})


class GoalService(CollectionService[Goal]):
    """Savings goals. `is_completed` is recomputed on every write."""

    collection = "goals"
    model = Goal

    async def add(self, item: Goal) -> str:
        fresh = Goal.model_validate({**item.model_dump(), "current_amount": Decimal("0")})
        return await super().add(fresh)

    async def contribute(self, goal_id: str, amount: Decimal) -> Goal:
        """Add `amount` to a goal's saved total."""
        goal = await self.get(goal_id)
        if goal is None:
            raise NotFoundError(f"{self.collection} record not found: {goal_id}")
        return await self.update(
            goal_id,
            {"current_amount": goal.current_amount + Decimal(amount)},
        )
