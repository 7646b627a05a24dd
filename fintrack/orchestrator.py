"""
Service Layer for the Financial Tracking Engine

This module ties the pure engines to the persistence collaborator and
defines the end-to-end flows for:
1. Transactions (installment deletes, installment bookings, group summaries)
2. Goals (lifecycle transitions, contributions, summaries)
3. Budgets (create / edit / delete, period views and overviews, alerts)

DESIGN DECISION: The flows enforce the boundaries:
- Engines compute, flows load and commit
- Every mutation goes through a command, and every commit is audited
- Only transient storage failures are retried; domain errors never are

Goal mutations are serialized per goal id, and the goal classification
is refreshed after each one. Budget creates are serialized per budget key.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import AsyncIterator, Callable, Hashable, Iterable, Optional, Union
from uuid import UUID

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fintrack.audit import AuditLogger, configure_logging, create_correlation_id
from fintrack.config import AppSettings, get_settings
from fintrack.engine import (
    BudgetPeriodAggregator,
    ClassificationScheduler,
    Command,
    ConflictError,
    DeleteBudget,
    DeleteGoal,
    DeleteTransaction,
    DeletionPlan,
    EngineError,
    GoalClassification,
    GoalLifecycleEngine,
    InstallmentGroupManager,
    NotFoundError,
    SaveBudget,
    SaveGoal,
    SaveTransaction,
    ValidationError,
)
from fintrack.models.audit import AuditEventBuilder
from fintrack.models.budget import Budget, BudgetInput, BudgetOverview, BudgetView
from fintrack.models.goal import (
    Goal,
    GoalCategory,
    GoalInput,
    GoalProgress,
    GoalStatus,
    GoalSummary,
    GoalUpdate,
)
from fintrack.models.transaction import (
    InstallmentDeleteMode,
    InstallmentGroupSummary,
    InstallmentPurchaseInput,
    Transaction,
)
from fintrack.services.storage import (
    BudgetStorageInterface,
    DuplicateKeyError,
    GoalStorageInterface,
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryGoalStorage,
    InMemoryTransactionStorage,
    StorageError,
    TransactionStorageInterface,
    TransientStorageError,
)

Clock = Callable[[], date]


class _LockSlot:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class KeyedLocks:
    """
    One asyncio.Lock per key, created on first use.

    Locks are scoped to the running event loop, and an entry is dropped as
    soon as no coroutine holds or waits for it. A flow can therefore be
    driven by successive asyncio.run calls, and the registry only holds
    keys that are in use.
    """

    def __init__(self):
        self._slots: dict[tuple[int, Hashable], _LockSlot] = {}

    def __len__(self) -> int:
        return len(self._slots)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        slot_key = (id(asyncio.get_running_loop()), key)
        slot = self._slots.get(slot_key)
        if slot is None:
            slot = self._slots[slot_key] = _LockSlot()

        slot.users += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._slots[slot_key]


class CommandApplier:
    """
    Applies engine commands through the storage interfaces.

    Each command is committed on its own. A TransientStorageError is
    retried with exponential backoff; anything else, or the last failed
    attempt, is logged and re-raised.
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        goal_storage: GoalStorageInterface,
        budget_storage: BudgetStorageInterface,
        audit_logger: AuditLogger,
        settings: Optional[AppSettings] = None,
    ):
        self._transactions = transaction_storage
        self._goals = goal_storage
        self._budgets = budget_storage
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().app

    async def apply(
        self,
        commands: Iterable[Command],
        correlation_id: UUID,
    ) -> list[UUID]:
        """
        Apply commands in order.

        Deletes of ids that are already gone are skipped, not failed.

        Returns:
            The ids whose delete found nothing to remove
        """
        skipped: list[UUID] = []
        for command in commands:
            try:
                applied = await self._commit(command)
            except StorageError as e:
                await self._audit_logger.log_storage_error(
                    operation=type(command).__name__,
                    error_message=str(e),
                    correlation_id=correlation_id,
                )
                raise

            if not applied and isinstance(command, DeleteTransaction):
                skipped.append(command.transaction_id)
                await self._audit_logger.log(
                    AuditEventBuilder.installment_already_absent(
                        transaction_id=command.transaction_id,
                        correlation_id=correlation_id,
                    )
                )
        return skipped

    async def _commit(self, command: Command) -> bool:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._settings.storage_retry_attempts),
            wait=wait_exponential(
                multiplier=0.5,
                max=self._settings.storage_retry_max_wait_seconds,
            ),
            retry=retry_if_exception_type(TransientStorageError),
            reraise=True,
        ):
            with attempt:
                return await self._dispatch(command)

    async def _dispatch(self, command: Command) -> bool:
        if isinstance(command, SaveTransaction):
            return await self._transactions.save_transaction(command.transaction)
        if isinstance(command, DeleteTransaction):
            return await self._transactions.delete_transaction(command.transaction_id)
        if isinstance(command, SaveGoal):
            return await self._goals.save_goal(command.goal)
        if isinstance(command, DeleteGoal):
            return await self._goals.delete_goal(command.goal_id)
        if isinstance(command, SaveBudget):
            return await self._budgets.save_budget(command.budget)
        if isinstance(command, DeleteBudget):
            return await self._budgets.delete_budget(command.budget_id)
        raise TypeError(f"Unsupported command: {type(command).__name__}")


async def _report_rejection(
    audit_logger: AuditLogger,
    entity_type: str,
    entity_id: Optional[UUID],
    error: EngineError,
    correlation_id: UUID,
) -> None:
    """Audit a domain error before it propagates to the caller."""
    if isinstance(error, ValidationError):
        await audit_logger.log_validation_failed(
            entity_type=entity_type,
            issues=error.issues,
            correlation_id=correlation_id,
        )
    else:
        await audit_logger.log_operation_rejected(
            entity_type=entity_type,
            entity_id=entity_id,
            reason=str(error),
            correlation_id=correlation_id,
        )


class TransactionFlow:
    """
    Orchestrates transaction deletes and installment bookings.

    Delete flow:
    1. Load the target (NotFoundError if it is gone)
    2. Load its installment siblings
    3. Plan the cascade (pure)
    4. Apply deletes, then survivor rewrites
    5. Audit the outcome
    """

    def __init__(
        self,
        transaction_storage: TransactionStorageInterface,
        applier: CommandApplier,
        audit_logger: AuditLogger,
        manager: Optional[InstallmentGroupManager] = None,
        clock: Clock = date.today,
    ):
        self._storage = transaction_storage
        self._applier = applier
        self._audit_logger = audit_logger
        self._manager = manager or InstallmentGroupManager()
        self._clock = clock

    async def delete_transaction(
        self,
        transaction_id: UUID,
        mode: Union[InstallmentDeleteMode, str] = InstallmentDeleteMode.ALL,
        correlation_id: Optional[UUID] = None,
    ) -> DeletionPlan:
        """
        Delete a transaction and, depending on mode, its installment siblings.

        Returns:
            The applied plan

        Raises:
            NotFoundError: If the transaction does not exist
        """
        correlation_id = correlation_id or create_correlation_id()
        mode = InstallmentDeleteMode(mode)

        transaction = await self._storage.find_transaction(transaction_id)
        if transaction is None:
            error = NotFoundError("transaction", transaction_id)
            await _report_rejection(
                self._audit_logger, "transaction", transaction_id, error, correlation_id
            )
            raise error

        siblings: list[Transaction] = []
        if transaction.is_installment:
            siblings = await self._storage.find_group_siblings(
                transaction.installment_group_id
            )

        plan = self._manager.plan_deletion(transaction, siblings, mode)
        skipped = await self._applier.apply(plan.commands(), correlation_id)

        await self._audit_logger.log(
            AuditEventBuilder.transactions_deleted(
                transaction_id=transaction_id,
                mode=mode.value,
                deleted_ids=[i for i in plan.delete_ids if i not in skipped],
                updated_ids=[survivor.id for survivor in plan.survivors],
                correlation_id=correlation_id,
            )
        )
        return plan

    async def book_installment_purchase(
        self,
        purchase: InstallmentPurchaseInput,
        correlation_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Split a purchase into monthly installments and store them.

        Raises:
            ValidationError: If the amount or series length is out of range
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            series = self._manager.plan_installment_series(purchase)
        except ValidationError as e:
            await _report_rejection(
                self._audit_logger, "installment_group", None, e, correlation_id
            )
            raise

        await self._applier.apply(
            [SaveTransaction(transaction=t) for t in series],
            correlation_id,
        )
        await self._audit_logger.log(
            AuditEventBuilder.installments_created(
                group_id=series[0].installment_group_id,
                installments=len(series),
                total_amount=str(purchase.total_amount),
                correlation_id=correlation_id,
            )
        )
        return series

    async def installment_groups(
        self,
        active_only: bool = False,
    ) -> list[InstallmentGroupSummary]:
        """Summaries of the stored installment groups as of today."""
        transactions = await self._storage.list_installment_transactions()
        return self._manager.summarize_installment_groups(
            transactions,
            today=self._clock(),
            active_only=active_only,
        )


class GoalFlow:
    """
    Orchestrates goal lifecycle operations.

    Every mutation runs under the goal's lock, is committed, audited and
    followed by a classification refresh.
    """

    def __init__(
        self,
        goal_storage: GoalStorageInterface,
        applier: CommandApplier,
        audit_logger: AuditLogger,
        engine: Optional[GoalLifecycleEngine] = None,
        scheduler: Optional[ClassificationScheduler] = None,
        clock: Clock = date.today,
    ):
        self._storage = goal_storage
        self._applier = applier
        self._audit_logger = audit_logger
        self._engine = engine or GoalLifecycleEngine()
        self._scheduler = scheduler or ClassificationScheduler(self._engine)
        self._clock = clock
        self._locks = KeyedLocks()

    @property
    def scheduler(self) -> ClassificationScheduler:
        return self._scheduler

    # =========================================================================
    # MUTATIONS
    # =========================================================================

    async def create(
        self,
        goal_input: GoalInput,
        correlation_id: Optional[UUID] = None,
    ) -> Goal:
        """
        Create and store a new active goal.

        Raises:
            ValidationError: With every rule the input breaks
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            goal = self._engine.create(goal_input, today=self._clock())
        except ValidationError as e:
            await _report_rejection(self._audit_logger, "goal", None, e, correlation_id)
            raise

        await self._applier.apply([SaveGoal(goal=goal)], correlation_id)
        await self._audit_logger.log(
            AuditEventBuilder.goal_created(
                goal_id=goal.id,
                name=goal.name,
                target_amount=str(goal.target_amount),
                correlation_id=correlation_id,
            )
        )
        await self.refresh_classification(correlation_id)
        return goal

    async def update(
        self,
        goal_id: UUID,
        changes: GoalUpdate,
        correlation_id: Optional[UUID] = None,
    ) -> Goal:
        """
        Edit a goal's fields.

        Raises:
            NotFoundError: If the goal does not exist
            ValidationError: If the edited goal would break a rule
        """
        correlation_id = correlation_id or create_correlation_id()

        async with self._locks.hold(goal_id):
            goal = await self._load(goal_id, correlation_id)
            try:
                updated = self._engine.update(goal, changes)
            except ValidationError as e:
                await _report_rejection(self._audit_logger, "goal", goal_id, e, correlation_id)
                raise

            await self._applier.apply([SaveGoal(goal=updated)], correlation_id)

        await self._audit_logger.log(
            AuditEventBuilder.goal_updated(
                goal_id=goal_id,
                changed_fields=sorted(changes.model_dump(exclude_unset=True)),
                correlation_id=correlation_id,
            )
        )
        await self.refresh_classification(correlation_id)
        return updated

    async def add_contribution(
        self,
        goal_id: UUID,
        amount: Union[Decimal, int, str],
        correlation_id: Optional[UUID] = None,
    ) -> Goal:
        """
        Add money to an active goal, completing it when the target is reached.

        Raises:
            NotFoundError: If the goal does not exist
            ValidationError: If amount is not positive
            InvalidStateError: If the goal is not active
        """
        correlation_id = correlation_id or create_correlation_id()

        async with self._locks.hold(goal_id):
            goal = await self._load(goal_id, correlation_id)
            try:
                updated = self._engine.add_contribution(goal, amount)
            except EngineError as e:
                await _report_rejection(self._audit_logger, "goal", goal_id, e, correlation_id)
                raise

            await self._applier.apply([SaveGoal(goal=updated)], correlation_id)

        await self._audit_logger.log(
            AuditEventBuilder.goal_contribution_added(
                goal_id=goal_id,
                amount=str(updated.current_amount - goal.current_amount),
                new_current=str(updated.current_amount),
                correlation_id=correlation_id,
            )
        )
        if updated.status == GoalStatus.COMPLETED:
            await self._audit_logger.log(
                AuditEventBuilder.goal_completed(
                    goal_id=goal_id,
                    current_amount=str(updated.current_amount),
                    manual=False,
                    correlation_id=correlation_id,
                )
            )
        await self.refresh_classification(correlation_id)
        return updated

    async def mark_completed(
        self,
        goal_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Goal:
        correlation_id = correlation_id or create_correlation_id()

        async with self._locks.hold(goal_id):
            goal = await self._load(goal_id, correlation_id)
            try:
                updated = self._engine.mark_completed(goal)
            except EngineError as e:
                await _report_rejection(self._audit_logger, "goal", goal_id, e, correlation_id)
                raise

            await self._applier.apply([SaveGoal(goal=updated)], correlation_id)

        await self._audit_logger.log(
            AuditEventBuilder.goal_completed(
                goal_id=goal_id,
                current_amount=str(updated.current_amount),
                manual=True,
                correlation_id=correlation_id,
            )
        )
        await self.refresh_classification(correlation_id)
        return updated

    async def cancel(
        self,
        goal_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> Goal:
        correlation_id = correlation_id or create_correlation_id()

        async with self._locks.hold(goal_id):
            goal = await self._load(goal_id, correlation_id)
            try:
                updated = self._engine.cancel(goal)
            except EngineError as e:
                await _report_rejection(self._audit_logger, "goal", goal_id, e, correlation_id)
                raise

            await self._applier.apply([SaveGoal(goal=updated)], correlation_id)

        await self._audit_logger.log(
            AuditEventBuilder.goal_cancelled(goal_id=goal_id, correlation_id=correlation_id)
        )
        await self.refresh_classification(correlation_id)
        return updated

    async def delete(
        self,
        goal_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Raises:
            NotFoundError: If the goal does not exist
        """
        correlation_id = correlation_id or create_correlation_id()

        async with self._locks.hold(goal_id):
            await self._load(goal_id, correlation_id)
            await self._applier.apply([DeleteGoal(goal_id=goal_id)], correlation_id)

        await self._audit_logger.log(
            AuditEventBuilder.goal_deleted(goal_id=goal_id, correlation_id=correlation_id)
        )
        await self.refresh_classification(correlation_id)

    # =========================================================================
    # READS
    # =========================================================================

    async def get_progress(self, goal_id: UUID) -> GoalProgress:
        goal = await self._storage.find_goal(goal_id)
        if goal is None:
            raise NotFoundError("goal", goal_id)
        return self._engine.with_progress(goal, self._clock())

    async def list_goals(
        self,
        status: Optional[GoalStatus] = None,
        category: Optional[GoalCategory] = None,
        target_date_start: Optional[date] = None,
        target_date_end: Optional[date] = None,
    ) -> list[GoalProgress]:
        """Goals matching the filters, with progress, soonest deadline first."""
        goals = self._engine.filter_goals(
            await self._storage.list_goals(),
            status=status,
            category=category,
            target_date_start=target_date_start,
            target_date_end=target_date_end,
        )
        today = self._clock()
        return [self._engine.with_progress(goal, today) for goal in goals]

    async def summary(self) -> GoalSummary:
        return self._engine.summarize(await self._storage.list_goals())

    async def refresh_classification(
        self,
        correlation_id: Optional[UUID] = None,
    ) -> GoalClassification:
        """Recompute the at-risk and near-completion sets from storage."""
        goals = await self._storage.list_goals()
        snapshot = self._scheduler.refresh(goals, self._clock())
        await self._audit_logger.log(
            AuditEventBuilder.goals_classified(
                at_risk=len(snapshot.at_risk),
                near_completion=len(snapshot.near_completion),
                correlation_id=correlation_id,
            )
        )
        return snapshot

    async def _load(self, goal_id: UUID, correlation_id: UUID) -> Goal:
        goal = await self._storage.find_goal(goal_id)
        if goal is None:
            error = NotFoundError("goal", goal_id)
            await _report_rejection(self._audit_logger, "goal", goal_id, error, correlation_id)
            raise error
        return goal


class BudgetFlow:
    """Orchestrates budget records and their period figures."""

    def __init__(
        self,
        budget_storage: BudgetStorageInterface,
        transaction_storage: TransactionStorageInterface,
        applier: CommandApplier,
        audit_logger: AuditLogger,
        aggregator: Optional[BudgetPeriodAggregator] = None,
        clock: Clock = date.today,
    ):
        self._storage = budget_storage
        self._transactions = transaction_storage
        self._applier = applier
        self._audit_logger = audit_logger
        self._aggregator = aggregator or BudgetPeriodAggregator()
        self._clock = clock
        self._locks = KeyedLocks()

    async def create(
        self,
        budget_input: BudgetInput,
        correlation_id: Optional[UUID] = None,
    ) -> Budget:
        """
        Create a budget for a category (or general spending) and period.

        The duplicate check and the save run under a lock on the budget
        key, so concurrent creates for the same key cannot both succeed.

        Raises:
            ValidationError: If the amount or period is invalid
            ConflictError: If the category already has a budget for the period
        """
        correlation_id = correlation_id or create_correlation_id()
        key = (budget_input.category_id, budget_input.month, budget_input.year)

        async with self._locks.hold(key):
            existing = await self._storage.find_budgets_for_period(
                budget_input.month, budget_input.year
            )
            try:
                budget = self._aggregator.create_budget(budget_input, existing)
            except ConflictError:
                await self._log_conflict(budget_input, correlation_id)
                raise
            except ValidationError as e:
                await _report_rejection(self._audit_logger, "budget", None, e, correlation_id)
                raise

            try:
                await self._applier.apply([SaveBudget(budget=budget)], correlation_id)
            except DuplicateKeyError as e:
                # Another writer took the key outside this flow
                await self._log_conflict(budget_input, correlation_id)
                raise ConflictError(str(e)) from e

        await self._audit_logger.log(
            AuditEventBuilder.budget_created(
                budget_id=budget.id,
                month=budget.month,
                year=budget.year,
                amount=str(budget.amount),
                correlation_id=correlation_id,
            )
        )
        return budget

    async def update_amount(
        self,
        budget_id: UUID,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> Budget:
        correlation_id = correlation_id or create_correlation_id()

        budget = await self._load(budget_id, correlation_id)
        try:
            updated = self._aggregator.update_amount(budget, amount)
        except ValidationError as e:
            await _report_rejection(self._audit_logger, "budget", budget_id, e, correlation_id)
            raise

        await self._applier.apply([SaveBudget(budget=updated)], correlation_id)
        await self._audit_logger.log(
            AuditEventBuilder.budget_updated(
                budget_id=budget_id,
                amount=str(updated.amount),
                correlation_id=correlation_id,
            )
        )
        return updated

    async def delete(
        self,
        budget_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        correlation_id = correlation_id or create_correlation_id()

        await self._load(budget_id, correlation_id)
        await self._applier.apply([DeleteBudget(budget_id=budget_id)], correlation_id)
        await self._audit_logger.log(
            AuditEventBuilder.budget_deleted(budget_id=budget_id, correlation_id=correlation_id)
        )

    async def view(self, budget_id: UUID) -> BudgetView:
        budget = await self._storage.find_budget(budget_id)
        if budget is None:
            raise NotFoundError("budget", budget_id)
        transactions = await self._transactions.find_transactions_for_period(
            budget.month, budget.year
        )
        return self._aggregator.compute_budget_view(budget, transactions)

    async def overview(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> BudgetOverview:
        """Overview of one period; defaults to the current month."""
        today = self._clock()
        month = month or today.month
        year = year or today.year

        budgets = await self._storage.find_budgets_for_period(month, year)
        transactions = await self._transactions.find_transactions_for_period(month, year)
        return self._aggregator.compute_overview(budgets, transactions, month=month, year=year)

    async def alerts(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
        threshold: Optional[int] = None,
    ) -> list[BudgetView]:
        overview = await self.overview(month, year)
        return self._aggregator.budget_alerts(overview.budgets, threshold)

    async def _load(self, budget_id: UUID, correlation_id: UUID) -> Budget:
        budget = await self._storage.find_budget(budget_id)
        if budget is None:
            error = NotFoundError("budget", budget_id)
            await _report_rejection(self._audit_logger, "budget", budget_id, error, correlation_id)
            raise error
        return budget

    async def _log_conflict(self, budget_input: BudgetInput, correlation_id: UUID) -> None:
        await self._audit_logger.log(
            AuditEventBuilder.budget_conflict(
                category_id=budget_input.category_id,
                month=budget_input.month,
                year=budget_input.year,
                correlation_id=correlation_id,
            )
        )


def create_app_components(
    settings: Optional[AppSettings] = None,
    clock: Clock = date.today,
) -> tuple[TransactionFlow, GoalFlow, BudgetFlow]:
    """
    Factory function to create all application components.

    Wires the flows to in-memory storage with a shared audit logger.

    Returns:
        (transaction_flow, goal_flow, budget_flow)
    """
    configure_logging(settings.log_level if settings else None)

    transaction_storage = InMemoryTransactionStorage()
    goal_storage = InMemoryGoalStorage()
    budget_storage = InMemoryBudgetStorage()
    audit_logger = AuditLogger(InMemoryAuditStorage())

    applier = CommandApplier(
        transaction_storage=transaction_storage,
        goal_storage=goal_storage,
        budget_storage=budget_storage,
        audit_logger=audit_logger,
        settings=settings,
    )

    transaction_flow = TransactionFlow(
        transaction_storage=transaction_storage,
        applier=applier,
        audit_logger=audit_logger,
        clock=clock,
    )
    goal_flow = GoalFlow(
        goal_storage=goal_storage,
        applier=applier,
        audit_logger=audit_logger,
        clock=clock,
    )
    budget_flow = BudgetFlow(
        budget_storage=budget_storage,
        transaction_storage=transaction_storage,
        applier=applier,
        audit_logger=audit_logger,
        clock=clock,
    )

    return transaction_flow, goal_flow, budget_flow
