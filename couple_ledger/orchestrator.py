"""
Main Orchestrator for Couple Ledger

Ties the services together into the workspace a signed-in user works in:
their group's categories, transactions, budgets and goals, the list
filters, and the receipt and voice drafting flows.

DESIGN DECISION: Every mutation follows the same sequence:
1. Validate (transactions go through the two-stage validator)
2. Call the data service
3. Audit
4. Reload the affected collection

If step 1 or 2 raises, the exception propagates and the loaded lists are
left exactly as they were. There are no optimistic updates and no retries.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union

import structlog

from couple_ledger.agents import (
    ReceiptAnalysisError,
    ReceiptImageError,
    ReceiptScanAgent,
    image_to_base64,
    parse_transcript,
    suggest_category,
)
from couple_ledger.analytics import (
    budget_totals,
    compute_financial_stats,
    filter_transactions,
)
from couple_ledger.audit import AuditLogger
from couple_ledger.config import get_settings, validate_all_settings
from couple_ledger.models.finance import (
    DEFAULT_CATEGORIES,
    AuthUser,
    Budget,
    Category,
    FilterOptions,
    FinancialStats,
    Goal,
    ReceiptData,
    Transaction,
    TransactionType,
    ValidationResult,
    line_items_total,
)
from couple_ledger.services import (
    BudgetService,
    CategoryService,
    CoupleService,
    GoalService,
    TransactionService,
    UserProfileService,
    resolve_group_id,
)
from couple_ledger.services.auth import (
    AuthGateway,
    FirebaseAuthGateway,
    InMemoryAuthGateway,
)
from couple_ledger.services.storage import (
    AuditStorageInterface,
    CollectionStorageInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsCollectionStorage,
    InMemoryAuditStorage,
    InMemoryCollectionStorage,
    NotFoundError,
)
from couple_ledger.validation import TransactionRejectedError, TransactionValidator


logger = structlog.get_logger("couple_ledger.orchestrator")

Draft = Union[dict[str, Any], Transaction]


class WorkspaceError(Exception):
    """The workspace can't perform the operation in its current state."""
    pass


class FinanceWorkspace:
    """
    One signed-in user's view of their group.

    Holds the loaded collections; callers read `transactions`,
    `categories`, `budgets` and `goals` directly and mutate through the
    methods below.
    """

    def __init__(
        self,
        user: AuthUser,
        transaction_service: TransactionService,
        category_service: CategoryService,
        budget_service: BudgetService,
        goal_service: GoalService,
        couple_service: Optional[CoupleService] = None,
        receipt_agent: Optional[ReceiptScanAgent] = None,
        validator: Optional[TransactionValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        if user is None:
            raise WorkspaceError("No signed-in user")

        self.user = user
        self._transactions = transaction_service
        self._categories = category_service
        self._budgets = budget_service
        self._goals = goal_service
        self._couples = couple_service
        self._receipt_agent = receipt_agent
        self._validator = validator or TransactionValidator()
        self._audit = audit_logger or AuditLogger()

        self.transactions: list[Transaction] = []
        self.categories: list[Category] = []
        self.budgets: list[Budget] = []
        self.goals: list[Goal] = []
        self.filters = FilterOptions()

    @property
    def group_id(self) -> str:
        return resolve_group_id(self.user)

    # =========================================================================
    # LOADING
    # =========================================================================

    async def load_all(self) -> None:
        """Load every collection, seeding default categories for a new group."""
        await self.reload_categories()
        if not self.categories:
            await self._seed_default_categories()
        await self.reload_transactions()
        await self.reload_budgets()
        await self.reload_goals()

    async def _seed_default_categories(self) -> None:
        for name, category_type in DEFAULT_CATEGORIES:
            await self._categories.add(Category(
                name=name,
                type=category_type,
                is_default=True,
                group_id=self.group_id,
                owner_id=self.user.uid,
            ))
        await self._audit.log_defaults_seeded(
            self.group_id, self.user.uid, len(DEFAULT_CATEGORIES)
        )
        await self.reload_categories()

    async def reload_transactions(self) -> None:
        self.transactions = await self._transactions.list(self.group_id)

    async def reload_categories(self) -> None:
        self.categories = await self._categories.list(self.group_id)

    async def reload_budgets(self) -> None:
        self.budgets = await self._budgets.list(self.group_id)

    async def reload_goals(self) -> None:
        self.goals = await self._goals.list(self.group_id)

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def _build_transaction(
        self,
        draft: Draft,
        is_shared: bool,
        owner_id: Optional[str],
    ) -> Transaction:
        data = draft.model_dump() if isinstance(draft, Transaction) else dict(draft)
        data.pop("id", None)
        data.update({
            "group_id": self.group_id,
            "owner_id": owner_id or data.get("owner_id") or self.user.uid,
            "is_shared": is_shared,
        })
        if data["owner_id"] == self.user.uid:
            data["owner_name"] = self.user.label
        if not data.get("category") and data.get("category_id"):
            category = self._find(self.categories, data["category_id"])
            data["category"] = category.name if category else ""
        return Transaction.model_validate(data)

    def validation_summary(self, result: ValidationResult) -> str:
        return self._validator.get_user_friendly_summary(result)

    async def _check_transaction(self, tx: Transaction) -> None:
        result = self._validator.validate(tx, self.categories)
        if not result.is_valid:
            await self._audit.log_validation_failed(
                collection="transactions",
                group_id=self.group_id,
                actor_id=self.user.uid,
                issues=[issue.model_dump() for issue in result.errors],
            )
            raise TransactionRejectedError(result)

    async def add_transaction(
        self,
        draft: Draft,
        is_shared: bool = False,
        owner_id: Optional[str] = None,
    ) -> str:
        """
        Validate and save a new transaction.

        Raises:
            pydantic.ValidationError: The draft is not a valid transaction
            TransactionRejectedError: The draft failed validation
        """
        tx = self._build_transaction(draft, is_shared, owner_id)
        await self._check_transaction(tx)

        tx_id = await self._transactions.add(tx)
        await self._audit.log_record_created(
            collection="transactions",
            record_id=tx_id,
            group_id=self.group_id,
            actor_id=self.user.uid,
            summary={
                "type": tx.type.value,
                "amount": str(tx.amount),
                "category": tx.category,
            },
        )
        await self.reload_transactions()
        return tx_id

    async def update_transaction(self, tx_id: str, changes: dict[str, Any]) -> None:
        self._check_changes(changes, movable=("owner_id",))
        if "owner_id" in changes and "owner_name" not in changes:
            is_self = changes["owner_id"] == self.user.uid
            changes = {**changes, "owner_name": self.user.label if is_self else None}
        current = await self._get_owned(self._transactions, tx_id)
        merged = Transaction.model_validate({**current.model_dump(), **changes})
        await self._check_transaction(merged)

        await self._transactions.update(tx_id, changes)
        await self._audit.log_record_updated(
            "transactions", tx_id, self.group_id, self.user.uid, sorted(changes)
        )
        await self.reload_transactions()

    async def delete_transaction(self, tx_id: str) -> None:
        await self._ensure_not_foreign(self._transactions, tx_id)
        await self._transactions.delete(tx_id)
        await self._audit.log_record_deleted(
            "transactions", tx_id, self.group_id, self.user.uid
        )
        await self.reload_transactions()

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    async def add_category(
        self,
        name: str,
        category_type: TransactionType = TransactionType.EXPENSE,
        **fields: Any,
    ) -> str:
        category = Category(
            **fields,
            name=name,
            type=category_type,
            group_id=self.group_id,
            owner_id=self.user.uid,
        )
        category_id = await self._categories.add(category)
        await self._audit.log_record_created(
            "categories", category_id, self.group_id, self.user.uid,
            {"name": category.name, "type": category.type.value},
        )
        await self.reload_categories()
        return category_id

    async def update_category(self, category_id: str, changes: dict[str, Any]) -> None:
        self._check_changes(changes)
        await self._get_owned(self._categories, category_id)
        await self._categories.update(category_id, changes)
        await self._audit.log_record_updated(
            "categories", category_id, self.group_id, self.user.uid, sorted(changes)
        )
        await self.reload_categories()

    async def delete_category(self, category_id: str) -> None:
        await self._ensure_not_foreign(self._categories, category_id)
        await self._categories.delete(category_id)
        await self._audit.log_record_deleted(
            "categories", category_id, self.group_id, self.user.uid
        )
        await self.reload_categories()

    # =========================================================================
    # BUDGETS
    # =========================================================================

    async def add_budget(self, draft: dict[str, Any]) -> str:
        """Save a new budget. It starts with nothing spent."""
        data = {**draft, "group_id": self.group_id}
        if not data.get("category") and data.get("category_id"):
            category = self._find(self.categories, data["category_id"])
            data["category"] = category.name if category else ""
        budget = Budget.model_validate(data)

        budget_id = await self._budgets.add(budget)
        await self._audit.log_record_created(
            "budgets", budget_id, self.group_id, self.user.uid,
            {"category": budget.category, "amount": str(budget.amount)},
        )
        await self.reload_budgets()
        return budget_id

    async def update_budget(self, budget_id: str, changes: dict[str, Any]) -> None:
        self._check_changes(changes)
        await self._get_owned(self._budgets, budget_id)
        await self._budgets.update(budget_id, changes)
        await self._audit.log_record_updated(
            "budgets", budget_id, self.group_id, self.user.uid, sorted(changes)
        )
        await self.reload_budgets()

    async def delete_budget(self, budget_id: str) -> None:
        await self._ensure_not_foreign(self._budgets, budget_id)
        await self._budgets.delete(budget_id)
        await self._audit.log_record_deleted(
            "budgets", budget_id, self.group_id, self.user.uid
        )
        await self.reload_budgets()

    async def record_budget_spending(self, budget_id: str, spent: Decimal) -> None:
        await self._get_owned(self._budgets, budget_id)
        await self._budgets.record_spending(budget_id, Decimal(spent))
        await self._audit.log_record_updated(
            "budgets", budget_id, self.group_id, self.user.uid, ["remaining", "spent"]
        )
        await self.reload_budgets()

    async def toggle_rollover(self, budget_id: str) -> None:
        await self._get_owned(self._budgets, budget_id)
        await self._budgets.toggle_rollover(budget_id)
        await self._audit.log_record_updated(
            "budgets", budget_id, self.group_id, self.user.uid, ["rollover"]
        )
        await self.reload_budgets()

    # =========================================================================
    # GOALS
    # =========================================================================

    async def add_goal(self, draft: dict[str, Any]) -> str:
        """Save a new goal. It starts at zero and not completed."""
        data = {"start_date": date.today(), **draft, "group_id": self.group_id}
        goal = Goal.model_validate(data)

        goal_id = await self._goals.add(goal)
        await self._audit.log_record_created(
            "goals", goal_id, self.group_id, self.user.uid,
            {"name": goal.name, "target_amount": str(goal.target_amount)},
        )
        await self.reload_goals()
        return goal_id

    async def update_goal(self, goal_id: str, changes: dict[str, Any]) -> None:
        self._check_changes(changes)
        await self._get_owned(self._goals, goal_id)
        await self._goals.update(goal_id, changes)
        await self._audit.log_record_updated(
            "goals", goal_id, self.group_id, self.user.uid, sorted(changes)
        )
        await self.reload_goals()

    async def delete_goal(self, goal_id: str) -> None:
        await self._ensure_not_foreign(self._goals, goal_id)
        await self._goals.delete(goal_id)
        await self._audit.log_record_deleted(
            "goals", goal_id, self.group_id, self.user.uid
        )
        await self.reload_goals()

    async def contribute_to_goal(self, goal_id: str, amount: Decimal) -> Goal:
        """
        Add money to a goal.

        Raises:
            ValueError: If the amount is not positive
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise ValueError("Contribution must be greater than zero")

        await self._get_owned(self._goals, goal_id)
        goal = await self._goals.contribute(goal_id, amount)
        await self._audit.log_record_updated(
            "goals", goal_id, self.group_id, self.user.uid,
            ["current_amount", "is_completed"],
        )
        await self.reload_goals()
        return goal

    # =========================================================================
    # FILTERS AND SUMMARIES
    # =========================================================================

    def set_filters(self, **changes: Any) -> FilterOptions:
        """Merge filter changes; unmentioned filters keep their values."""
        self.filters = FilterOptions.model_validate({**self.filters.model_dump(), **changes})
        return self.filters

    def reset_filters(self) -> FilterOptions:
        self.filters = FilterOptions()
        return self.filters

    def filtered_transactions(self) -> list[Transaction]:
        return filter_transactions(self.transactions, self.filters)

    def stats(self, year: Optional[int] = None, filtered: bool = False) -> FinancialStats:
        """Summary figures for all loaded transactions, or the filtered list."""
        transactions = self.filtered_transactions() if filtered else self.transactions
        return compute_financial_stats(transactions, year)

    def owner_stats(self, owner_id: str, year: Optional[int] = None) -> FinancialStats:
        """Summary figures for one partner's transactions."""
        return compute_financial_stats(
            [tx for tx in self.transactions if tx.owner_id == owner_id],
            year,
        )

    def budget_summary(self) -> dict[str, Decimal]:
        return budget_totals(self.budgets)

    # =========================================================================
    # DRAFTING: RECEIPTS AND VOICE
    # =========================================================================

    async def scan_receipt(self, image_bytes: bytes) -> ReceiptData:
        """
        Read a receipt photo.

        Raises:
            ReceiptImageError: The file is not a usable image
            ReceiptAnalysisError: The receipt could not be read
        """
        if self._receipt_agent is None:
            raise WorkspaceError("Receipt scanning is not configured")

        try:
            image_base64 = image_to_base64(image_bytes)
            receipt = await self._receipt_agent.analyze_receipt_image(image_base64)
        except (ReceiptImageError, ReceiptAnalysisError) as e:
            await self._audit.log_receipt_scan_failed(self.user.uid, str(e))
            raise

        await self._audit.log_receipt_scanned(
            actor_id=self.user.uid,
            merchant=receipt.merchant,
            amount=str(receipt.amount),
            item_count=len(receipt.items),
            mock=self._receipt_agent.mock_mode,
        )
        return receipt

    def _category_named(self, name: Optional[str]) -> Optional[Category]:
        if not name:
            return None
        return next(
            (c for c in self.categories if c.name.lower() == name.lower()),
            None,
        )

    def receipt_to_draft(self, receipt: ReceiptData) -> dict[str, Any]:
        """
        Draft expense for the user to review.

        Items become split lines when they add up to the receipt total.
        Otherwise the total wins and the items are listed in the notes.
        """
        category_name = receipt.category or suggest_category(
            receipt.merchant, [item.name for item in receipt.items]
        )
        category = self._category_named(category_name)

        draft: dict[str, Any] = {
            "type": TransactionType.EXPENSE,
            "amount": receipt.amount,
            "description": receipt.merchant or "Receipt",
            "category": category.name if category else category_name,
            "category_id": category.id if category and category.id else "",
            "date": receipt.receipt_date or date.today(),
            "items": [],
        }

        if receipt.items:
            items_total = line_items_total(receipt.items)
            if items_total.quantize(Decimal("0.01")) == receipt.amount.quantize(Decimal("0.01")):
                draft["items"] = [item.model_dump() for item in receipt.items]
            else:
                draft["notes"] = "\n".join(
                    f"{item.name} x{item.quantity} @ {item.price}"
                    for item in receipt.items
                )
        return draft

    def transcript_to_draft(self, text: str) -> Optional[dict[str, Any]]:
        """Draft from a voice transcript, or None if no amount was spoken."""
        draft = parse_transcript(text)
        if draft is None:
            return None
        category = self._category_named(draft["category"])
        draft["category_id"] = category.id if category and category.id else ""
        return draft

    # =========================================================================
    # COUPLES
    # =========================================================================

    async def link_partner(self, partner_uid: str) -> str:
        """
        Link the signed-in user with a partner and switch to the shared group.

        Records already in the personal group stay there.
        """
        if self._couples is None:
            raise WorkspaceError("Couple linking is not configured")

        couple_id = await self._couples.create_couple_and_link_users(
            self.user.uid, partner_uid
        )
        await self._audit.log_couple_linked(couple_id, [self.user.uid, partner_uid])

        self.user = self.user.model_copy(update={"group_id": couple_id})
        await self.load_all()
        return couple_id

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _find(records: list, record_id: str):
        return next((r for r in records if r.id == record_id), None)

    @staticmethod
    def _check_changes(changes: dict[str, Any], movable: tuple = ()) -> None:
        """Refuse updates that would hand a record to another group or user."""
        locked = ({"group_id", "owner_id"} - set(movable)).intersection(changes)
        if locked:
            fields = ", ".join(sorted(locked))
            raise WorkspaceError(f"Cannot change {fields} of an existing record")

    async def _ensure_not_foreign(self, service, record_id: str) -> None:
        """Refuse to touch another group's record. Missing records are fine."""
        record = await service.get(record_id)
        if record is not None and record.group_id != self.group_id:
            raise NotFoundError(f"{service.collection} record not found: {record_id}")

    async def _get_owned(self, service, record_id: str):
        """Fetch a record, treating other groups' records as missing."""
        record = await service.get(record_id)
        if record is None or record.group_id != self.group_id:
            raise NotFoundError(f"{service.collection} record not found: {record_id}")
        return record


class AppComponents:
    """Everything a UI session needs, built once per process."""

    def __init__(
        self,
        auth: AuthGateway,
        profiles: UserProfileService,
        couples: CoupleService,
        transactions: TransactionService,
        categories: CategoryService,
        budgets: BudgetService,
        goals: GoalService,
        receipt_agent: ReceiptScanAgent,
        audit_logger: AuditLogger,
        sheets_client: Optional[GoogleSheetsClient] = None,
    ):
        self.auth = auth
        self.profiles = profiles
        self.couples = couples
        self.transactions = transactions
        self.categories = categories
        self.budgets = budgets
        self.goals = goals
        self.receipt_agent = receipt_agent
        self.audit_logger = audit_logger
        self.sheets_client = sheets_client

    async def sign_in(self, email: str, password: str) -> AuthUser:
        user = await self.auth.sign_in(email, password)
        await self.audit_logger.log_signed_in(user.uid, "password")
        return user

    async def sign_up(
        self,
        email: str,
        password: str,
        display_name: Optional[str] = None,
    ) -> AuthUser:
        """Create an account; the new user is signed in straight away."""
        user = await self.auth.sign_up(email, password, display_name)
        await self.audit_logger.log_signed_in(user.uid, "sign_up")
        return user

    def workspace_for(self, user: AuthUser) -> FinanceWorkspace:
        return FinanceWorkspace(
            user=user,
            transaction_service=self.transactions,
            category_service=self.categories,
            budget_service=self.budgets,
            goal_service=self.goals,
            couple_service=self.couples,
            receipt_agent=self.receipt_agent,
            audit_logger=self.audit_logger,
        )


def create_app_components(use_storage: bool = True) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use the configured document store.
                    Set to False for in-memory storage regardless of settings.
    """
    settings = get_settings()
    sheets_client = None
    audit_storage: AuditStorageInterface

    def memory_store(collection: str) -> CollectionStorageInterface:
        return InMemoryCollectionStorage(collection)

    store = memory_store
    audit_storage = InMemoryAuditStorage()

    if use_storage and settings.app.storage_backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.get_spreadsheet()

            def sheets_store(collection: str) -> CollectionStorageInterface:
                return GoogleSheetsCollectionStorage(collection, sheets_client)

            store = sheets_store
            audit_storage = GoogleSheetsAuditStorage(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", backend="google_sheets", error=str(e))
            sheets_client = None

    audit_logger = AuditLogger(audit_storage)
    profiles = UserProfileService(store("users"))

    if validate_all_settings()["firebase"]:
        auth: AuthGateway = FirebaseAuthGateway(profiles)
    else:
        logger.warning("auth_not_configured", fallback="in_memory")
        auth = InMemoryAuthGateway(profiles)

    return AppComponents(
        auth=auth,
        profiles=profiles,
        couples=CoupleService(store("couples"), profiles),
        transactions=TransactionService(store("transactions")),
        categories=CategoryService(store("categories")),
        budgets=BudgetService(store("budgets")),
        goals=GoalService(store("goals")),
        receipt_agent=ReceiptScanAgent(),
        audit_logger=audit_logger,
        sheets_client=sheets_client,
    )
