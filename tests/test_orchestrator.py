"""
Integration tests for the service layer flows.

Flows run against in-memory storage; async calls are driven with
asyncio.run so no async test plugin is needed.
"""

import asyncio
import pytest
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

from fintrack.audit import AuditLogger
from fintrack.config import AppSettings
from fintrack.engine import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    add_months,
)
from fintrack.models.audit import AuditEventType
from fintrack.models.budget import Budget, BudgetInput
from fintrack.models.goal import GoalCategory, GoalInput, GoalStatus, GoalUpdate
from fintrack.models.transaction import (
    InstallmentPurchaseInput,
    Transaction,
    TransactionKind,
)
from fintrack.orchestrator import (
    BudgetFlow,
    CommandApplier,
    GoalFlow,
    TransactionFlow,
    create_app_components,
)
from fintrack.services.storage import (
    InMemoryAuditStorage,
    InMemoryBudgetStorage,
    InMemoryGoalStorage,
    InMemoryTransactionStorage,
    StorageError,
    TransientStorageError,
)

TODAY = date(2026, 6, 1)
NO_WAIT = AppSettings(storage_retry_attempts=3, storage_retry_max_wait_seconds=0)


def make_group(size=6):
    group_id = uuid4()
    return [
        Transaction(
            amount=Decimal("50.00"),
            occurred_on=add_months(date(2026, 4, 5), position),
            kind=TransactionKind.EXPENSE,
            installment_group_id=group_id,
            installment_index=position + 1,
            installment_total=size,
        )
        for position in range(size)
    ]


class StaleSiblingStorage(InMemoryTransactionStorage):
    """Returns group members that another writer already removed."""

    def __init__(self, transactions, ghosts):
        super().__init__(transactions)
        self._ghosts = ghosts

    async def find_group_siblings(self, group_id):
        siblings = await super().find_group_siblings(group_id)
        return siblings + [g for g in self._ghosts if g.installment_group_id == group_id]


class FlakyTransactionStorage(InMemoryTransactionStorage):
    """Fails the first deletes with a transient error."""

    def __init__(self, transactions, failures):
        super().__init__(transactions)
        self.failures = failures
        self.calls = 0

    async def delete_transaction(self, transaction_id):
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise TransientStorageError("connection reset")
        return await super().delete_transaction(transaction_id)


class FailingSaveTransactionStorage(InMemoryTransactionStorage):
    """Rejects every save while broken is set."""

    def __init__(self, transactions):
        super().__init__(transactions)
        self.broken = True

    async def save_transaction(self, transaction):
        if self.broken:
            raise StorageError("disk full")
        return await super().save_transaction(transaction)


class YieldingGoalStorage(InMemoryGoalStorage):
    """Hands control back to the loop on every read and write."""

    async def find_goal(self, goal_id):
        await asyncio.sleep(0)
        return await super().find_goal(goal_id)

    async def save_goal(self, goal):
        await asyncio.sleep(0)
        return await super().save_goal(goal)


class YieldingBudgetStorage(InMemoryBudgetStorage):
    """Hands control back to the loop between the period lookup and the save."""

    async def find_budgets_for_period(self, month, year):
        await asyncio.sleep(0)
        return await super().find_budgets_for_period(month, year)


class BlindBudgetStorage(InMemoryBudgetStorage):
    """Period lookups miss budgets written by someone else."""

    async def find_budgets_for_period(self, month, year):
        return []


class Components:
    """Flows wired to inspectable in-memory storage."""

    def __init__(
        self,
        transaction_storage=None,
        settings=NO_WAIT,
        goal_storage=None,
        budget_storage=None,
    ):
        self.transactions = transaction_storage or InMemoryTransactionStorage()
        self.goals = goal_storage or InMemoryGoalStorage()
        self.budgets = budget_storage or InMemoryBudgetStorage()
        self.audit = InMemoryAuditStorage()
        audit_logger = AuditLogger(self.audit)

        applier = CommandApplier(
            transaction_storage=self.transactions,
            goal_storage=self.goals,
            budget_storage=self.budgets,
            audit_logger=audit_logger,
            settings=settings,
        )
        clock = lambda: TODAY  # noqa: E731
        self.transaction_flow = TransactionFlow(self.transactions, applier, audit_logger, clock=clock)
        self.goal_flow = GoalFlow(self.goals, applier, audit_logger, clock=clock)
        self.budget_flow = BudgetFlow(
            self.budgets, self.transactions, applier, audit_logger, clock=clock
        )

    def event_types(self):
        return [event.event_type for event in self.audit.events]


def goal_input(**overrides):
    fields = dict(
        name="Holiday",
        target_amount=Decimal("1000.00"),
        current_amount=Decimal("0.00"),
        target_date=TODAY + timedelta(days=180),
    )
    fields.update(overrides)
    return GoalInput(**fields)


class TestTransactionFlow:
    """Tests for cascading deletes and installment bookings."""

    def test_future_delete_truncates_series(self):
        group = make_group()
        app = Components(InMemoryTransactionStorage(group))

        plan = asyncio.run(app.transaction_flow.delete_transaction(group[2].id, "future"))

        assert len(plan.delete_ids) == 4
        assert len(app.transactions) == 2
        for original in group[:2]:
            stored = asyncio.run(app.transactions.find_transaction(original.id))
            assert stored.installment_total == 2
        assert AuditEventType.TRANSACTIONS_DELETED in app.event_types()

    def test_single_delete_leaves_gap(self):
        group = make_group()
        app = Components(InMemoryTransactionStorage(group))

        asyncio.run(app.transaction_flow.delete_transaction(group[2].id, "single"))

        remaining = asyncio.run(app.transactions.find_group_siblings(group[0].installment_group_id))
        assert sorted(t.installment_index for t in remaining) == [1, 2, 4, 5, 6]
        assert {t.installment_total for t in remaining} == {5}

    def test_default_delete_removes_whole_group(self):
        group = make_group()
        app = Components(InMemoryTransactionStorage(group))

        asyncio.run(app.transaction_flow.delete_transaction(group[0].id))

        assert len(app.transactions) == 0

    def test_missing_transaction_raises_not_found(self):
        app = Components()

        with pytest.raises(NotFoundError):
            asyncio.run(app.transaction_flow.delete_transaction(uuid4()))
        assert app.event_types() == [AuditEventType.OPERATION_REJECTED]

    def test_cascade_skips_already_deleted_members(self):
        group = make_group()
        storage = StaleSiblingStorage(group[:4], ghosts=group[4:])
        app = Components(storage)

        asyncio.run(app.transaction_flow.delete_transaction(group[0].id, "all"))

        assert len(storage) == 0
        assert app.event_types().count(AuditEventType.INSTALLMENT_ALREADY_ABSENT) == 2
        deleted_event = app.audit.events[-1]
        assert len(deleted_event.details["deleted_ids"]) == 4

    def test_transient_failures_are_retried(self):
        group = make_group(size=2)
        storage = FlakyTransactionStorage(group, failures=2)
        app = Components(storage)

        asyncio.run(app.transaction_flow.delete_transaction(group[0].id, "all"))

        assert len(storage) == 0
        assert storage.calls == 4

    def test_exhausted_retries_reraise(self):
        group = make_group(size=2)
        storage = FlakyTransactionStorage(group, failures=5)
        settings = AppSettings(storage_retry_attempts=2, storage_retry_max_wait_seconds=0)
        app = Components(storage, settings=settings)

        with pytest.raises(TransientStorageError):
            asyncio.run(app.transaction_flow.delete_transaction(group[0].id, "all"))
        assert AuditEventType.STORAGE_ERROR in app.event_types()
        assert len(storage) == 2

    def test_retry_after_failed_rewrite_recounts_totals(self):
        group = make_group()
        storage = FailingSaveTransactionStorage(group)
        app = Components(storage)

        with pytest.raises(StorageError):
            asyncio.run(app.transaction_flow.delete_transaction(group[2].id, "single"))
        # The delete went through; the survivors still claim six members.
        assert len(storage) == 5

        storage.broken = False
        asyncio.run(app.transaction_flow.delete_transaction(group[0].id, "single"))

        remaining = asyncio.run(storage.find_group_siblings(group[0].installment_group_id))
        assert sorted(t.installment_index for t in remaining) == [2, 4, 5, 6]
        assert {t.installment_total for t in remaining} == {4}

    def test_book_purchase_and_summarize(self):
        app = Components()
        purchase = InstallmentPurchaseInput(
            total_amount=Decimal("300.00"),
            installments=3,
            first_date=date(2026, 5, 20),
            description="Sofa",
        )

        series = asyncio.run(app.transaction_flow.book_installment_purchase(purchase))
        summaries = asyncio.run(app.transaction_flow.installment_groups())

        assert len(series) == 3
        assert len(app.transactions) == 3
        assert summaries[0].paid_installments == 1
        assert summaries[0].remaining_amount == Decimal("200.00")
        assert AuditEventType.INSTALLMENTS_CREATED in app.event_types()

    def test_invalid_purchase_is_audited(self):
        app = Components()
        purchase = InstallmentPurchaseInput(
            total_amount=Decimal("300.00"),
            installments=1,
            first_date=TODAY,
        )

        with pytest.raises(ValidationError):
            asyncio.run(app.transaction_flow.book_installment_purchase(purchase))
        assert app.event_types() == [AuditEventType.VALIDATION_FAILED]
        assert len(app.transactions) == 0


class TestGoalFlow:
    """Tests for goal lifecycle orchestration."""

    def test_create_and_complete_through_contributions(self):
        app = Components()

        goal = asyncio.run(app.goal_flow.create(goal_input()))
        asyncio.run(app.goal_flow.add_contribution(goal.id, Decimal("400.00")))
        completed = asyncio.run(app.goal_flow.add_contribution(goal.id, Decimal("600.00")))

        assert completed.status == GoalStatus.COMPLETED
        stored = asyncio.run(app.goals.find_goal(goal.id))
        assert stored.current_amount == Decimal("1000.00")
        assert AuditEventType.GOAL_COMPLETED in app.event_types()

    def test_contribution_on_completed_goal_leaves_store_unchanged(self):
        app = Components()
        goal = asyncio.run(app.goal_flow.create(goal_input()))
        completed = asyncio.run(app.goal_flow.mark_completed(goal.id))

        with pytest.raises(InvalidStateError):
            asyncio.run(app.goal_flow.add_contribution(goal.id, Decimal("10.00")))

        assert asyncio.run(app.goals.find_goal(goal.id)) == completed
        assert app.event_types()[-1] == AuditEventType.OPERATION_REJECTED

    def test_concurrent_contributions_are_serialized(self):
        app = Components(goal_storage=YieldingGoalStorage())
        goal = asyncio.run(app.goal_flow.create(goal_input()))

        async def contribute_many():
            await asyncio.gather(*[
                app.goal_flow.add_contribution(goal.id, Decimal("10.00"))
                for _ in range(20)
            ])

        # Each asyncio.run starts a fresh event loop.
        asyncio.run(contribute_many())
        assert asyncio.run(app.goals.find_goal(goal.id)).current_amount == Decimal("200.00")
        assert len(app.goal_flow._locks) == 0

        asyncio.run(contribute_many())
        assert asyncio.run(app.goals.find_goal(goal.id)).current_amount == Decimal("400.00")
        assert len(app.goal_flow._locks) == 0

    def test_deleted_goal_leaves_no_lock_behind(self):
        app = Components()
        goals = [asyncio.run(app.goal_flow.create(goal_input())) for _ in range(3)]

        for goal in goals:
            asyncio.run(app.goal_flow.delete(goal.id))

        assert len(app.goal_flow._locks) == 0

    def test_mutations_refresh_classification(self):
        app = Components()
        snapshots = []
        app.goal_flow.scheduler.subscribe(snapshots.append)

        goal = asyncio.run(app.goal_flow.create(
            goal_input(target_date=TODAY + timedelta(days=10))
        ))
        assert goal.id in app.goal_flow.scheduler.latest.at_risk_ids

        asyncio.run(app.goal_flow.add_contribution(goal.id, Decimal("950.00")))
        latest = app.goal_flow.scheduler.latest
        assert goal.id not in latest.at_risk_ids
        assert goal.id in latest.near_completion_ids

        asyncio.run(app.goal_flow.delete(goal.id))
        assert app.goal_flow.scheduler.latest.near_completion_ids == set()
        assert len(snapshots) == 3

    def test_create_rejects_past_date_but_edit_accepts_it(self):
        app = Components()

        with pytest.raises(ValidationError):
            asyncio.run(app.goal_flow.create(goal_input(target_date=TODAY)))

        goal = asyncio.run(app.goal_flow.create(goal_input()))
        edited = asyncio.run(app.goal_flow.update(
            goal.id, GoalUpdate(target_date=TODAY - timedelta(days=1))
        ))
        progress = asyncio.run(app.goal_flow.get_progress(goal.id))

        assert edited.target_date == TODAY - timedelta(days=1)
        assert progress.days_remaining == -1
        assert progress.is_at_risk is True

    def test_cancel_and_summary(self):
        app = Components()
        keep = asyncio.run(app.goal_flow.create(goal_input(current_amount=Decimal("500.00"))))
        drop = asyncio.run(app.goal_flow.create(goal_input(name="Bike")))

        asyncio.run(app.goal_flow.cancel(drop.id))
        summary = asyncio.run(app.goal_flow.summary())
        active = asyncio.run(app.goal_flow.list_goals(status=GoalStatus.ACTIVE))

        assert summary.by_status[GoalStatus.CANCELLED].count == 1
        assert [view.goal.id for view in active] == [keep.id]
        assert active[0].progress_percentage == 50

    def test_list_goals_filters_by_category_and_date(self):
        app = Components()
        late = asyncio.run(app.goal_flow.create(goal_input(
            category=GoalCategory.TRAVEL, target_date=TODAY + timedelta(days=300)
        )))
        soon = asyncio.run(app.goal_flow.create(goal_input(
            category=GoalCategory.TRAVEL, target_date=TODAY + timedelta(days=40)
        )))
        asyncio.run(app.goal_flow.create(goal_input(
            category=GoalCategory.EDUCATION, target_date=TODAY + timedelta(days=60)
        )))

        travel = asyncio.run(app.goal_flow.list_goals(category=GoalCategory.TRAVEL))
        window = asyncio.run(app.goal_flow.list_goals(
            target_date_start=TODAY + timedelta(days=30),
            target_date_end=TODAY + timedelta(days=90),
        ))

        assert [view.goal.id for view in travel] == [soon.id, late.id]
        assert len(window) == 2
        assert late.id not in {view.goal.id for view in window}

    def test_unknown_goal(self):
        app = Components()
        with pytest.raises(NotFoundError):
            asyncio.run(app.goal_flow.add_contribution(uuid4(), Decimal("1.00")))


class TestBudgetFlow:
    """Tests for budget orchestration."""

    def test_overview_and_alerts(self):
        group_a = uuid4()
        group_b = uuid4()
        transactions = [
            Transaction(amount=Decimal("200.00"), occurred_on=date(2026, 6, 3),
                        kind=TransactionKind.EXPENSE, category_id=group_a),
            Transaction(amount=Decimal("310.00"), occurred_on=date(2026, 6, 4),
                        kind=TransactionKind.EXPENSE, category_id=group_b),
        ]
        app = Components(InMemoryTransactionStorage(transactions))

        asyncio.run(app.budget_flow.create(
            BudgetInput(amount=Decimal("500.00"), category_id=group_a, month=6, year=2026)
        ))
        asyncio.run(app.budget_flow.create(
            BudgetInput(amount=Decimal("300.00"), category_id=group_b, month=6, year=2026)
        ))

        overview = asyncio.run(app.budget_flow.overview())
        alerts = asyncio.run(app.budget_flow.alerts())

        assert (overview.month, overview.year) == (6, 2026)
        assert overview.total_budget == Decimal("800.00")
        assert overview.total_spent == Decimal("510.00")
        assert overview.total_remaining == Decimal("290.00")
        assert overview.percentage == 64
        assert [view.budget.category_id for view in alerts] == [group_b]

    def test_duplicate_budget_conflicts(self):
        app = Components()
        budget_input = BudgetInput(amount=Decimal("100.00"), month=6, year=2026)

        asyncio.run(app.budget_flow.create(budget_input))
        with pytest.raises(ConflictError):
            asyncio.run(app.budget_flow.create(budget_input))
        assert app.event_types()[-1] == AuditEventType.BUDGET_CONFLICT

    def test_concurrent_creates_for_one_key_store_one_budget(self):
        storage = YieldingBudgetStorage()
        app = Components(budget_storage=storage)
        budget_input = BudgetInput(amount=Decimal("100.00"), month=6, year=2026)

        async def create_twice():
            return await asyncio.gather(
                app.budget_flow.create(budget_input),
                app.budget_flow.create(budget_input),
                return_exceptions=True,
            )

        results = asyncio.run(create_twice())

        assert sum(isinstance(r, Budget) for r in results) == 1
        assert sum(isinstance(r, ConflictError) for r in results) == 1
        assert len(asyncio.run(storage.find_budgets_for_period(6, 2026))) == 1
        assert len(app.budget_flow._locks) == 0

    def test_storage_key_guard_surfaces_as_conflict(self):
        storage = BlindBudgetStorage()
        app = Components(budget_storage=storage)
        budget_input = BudgetInput(amount=Decimal("100.00"), month=6, year=2026)

        first = asyncio.run(app.budget_flow.create(budget_input))
        with pytest.raises(ConflictError):
            asyncio.run(app.budget_flow.create(budget_input))

        assert asyncio.run(storage.find_budget(first.id)) == first
        assert app.event_types()[-1] == AuditEventType.BUDGET_CONFLICT

    def test_update_view_and_delete(self):
        app = Components()
        budget = asyncio.run(app.budget_flow.create(
            BudgetInput(amount=Decimal("100.00"), month=6, year=2026)
        ))

        asyncio.run(app.budget_flow.update_amount(budget.id, Decimal("250.00")))
        view = asyncio.run(app.budget_flow.view(budget.id))
        assert view.budget.amount == Decimal("250.00")
        assert view.spent == Decimal("0.00")

        asyncio.run(app.budget_flow.delete(budget.id))
        with pytest.raises(NotFoundError):
            asyncio.run(app.budget_flow.view(budget.id))


class TestAppComponents:
    """Tests for the component factory."""

    def test_factory_wires_shared_storage(self):
        transaction_flow, goal_flow, budget_flow = create_app_components(
            settings=NO_WAIT, clock=lambda: TODAY
        )

        asyncio.run(transaction_flow.book_installment_purchase(
            InstallmentPurchaseInput(
                total_amount=Decimal("120.00"),
                installments=2,
                first_date=TODAY,
            )
        ))
        asyncio.run(budget_flow.create(
            BudgetInput(amount=Decimal("100.00"), month=6, year=2026)
        ))

        overview = asyncio.run(budget_flow.overview())
        assert overview.total_spent == Decimal("60.00")
        assert asyncio.run(goal_flow.summary()).total_target == Decimal("0.00")
