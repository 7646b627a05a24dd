"""
Installment Group Manager

Resolves how far a delete request against a recurring transaction reaches,
books new installment purchases and summarizes running series.

SERIES POLICY:
- installment_index is a historical position and is never renumbered.
  Deleting one installment leaves a gap in the series.
- installment_total always equals the number of members still stored.
  Whenever members are removed, the members that stay behind get their
  total recounted from the members actually left, so a total left stale
  by an earlier interrupted delete is corrected by the next one.

Everything here is pure: the manager takes records and returns ids,
transactions or commands. The service layer does the lookups and writes.
"""

import calendar
from collections import defaultdict
from datetime import date
from typing import Iterable, Optional, Union
from uuid import UUID, uuid4

from fintrack.config import InstallmentSettings, get_settings
from fintrack.engine.commands import DeletionPlan
from fintrack.engine.errors import ValidationError
from fintrack.engine.money import split_evenly, sum_money
from fintrack.models.transaction import (
    InstallmentDeleteMode,
    InstallmentGroupSummary,
    InstallmentPurchaseInput,
    Transaction,
)
from fintrack.validation import InstallmentValidator


def add_months(start: date, months: int) -> date:
    """
    Move a date by whole calendar months.

    The day is clamped to the last day of the target month, so Jan 31
    plus one month is Feb 28 (or 29).
    """
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class InstallmentGroupManager:
    """
    Works out the blast radius of installment deletes.

    Modes:
    - single: only the target; the others are recounted
    - future: the target and every member at or after its position
    - all:    every member of the group, already paid or not
    """

    def __init__(self, settings: Optional[InstallmentSettings] = None):
        self._settings = settings or get_settings().installments
        self._validator = InstallmentValidator(self._settings)

    @staticmethod
    def _group_members(
        transaction: Transaction,
        siblings: Iterable[Transaction],
    ) -> list[Transaction]:
        """Members of the target's group, target included, ordered by position."""
        members = {transaction.id: transaction}
        for sibling in siblings:
            if sibling.installment_group_id == transaction.installment_group_id:
                members.setdefault(sibling.id, sibling)
        return sorted(
            members.values(),
            key=lambda member: (member.installment_index, member.occurred_on),
        )

    def resolve_deletion_set(
        self,
        transaction: Transaction,
        siblings: Iterable[Transaction],
        mode: Union[InstallmentDeleteMode, str] = InstallmentDeleteMode.ALL,
    ) -> tuple[UUID, ...]:
        """
        Ids to remove for a delete request, ordered by installment position.

        A transaction without a group always resolves to itself.
        """
        mode = InstallmentDeleteMode(mode)

        if not transaction.is_installment or mode == InstallmentDeleteMode.SINGLE:
            return (transaction.id,)

        members = self._group_members(transaction, siblings)
        if mode == InstallmentDeleteMode.FUTURE:
            members = [
                member for member in members
                if member.installment_index >= transaction.installment_index
            ]
        return tuple(member.id for member in members)

    def plan_deletion(
        self,
        transaction: Transaction,
        siblings: Iterable[Transaction],
        mode: Union[InstallmentDeleteMode, str] = InstallmentDeleteMode.ALL,
    ) -> DeletionPlan:
        """
        Full outcome of a delete request: the ids to remove and the
        rewritten members that survive it.

        Survivors carry the number of survivors as their total, whatever
        total they were stored with.
        """
        mode = InstallmentDeleteMode(mode)
        siblings = list(siblings)
        delete_ids = self.resolve_deletion_set(transaction, siblings, mode)

        survivors: tuple[Transaction, ...] = ()
        if transaction.is_installment:
            removed = set(delete_ids)
            remaining = [
                member
                for member in self._group_members(transaction, siblings)
                if member.id not in removed
            ]
            survivors = tuple(
                member.model_copy(update={"installment_total": len(remaining)})
                for member in remaining
            )

        return DeletionPlan(
            transaction_id=transaction.id,
            mode=mode,
            delete_ids=delete_ids,
            survivors=survivors,
        )

    def plan_installment_series(
        self,
        purchase: InstallmentPurchaseInput,
        group_id: Optional[UUID] = None,
    ) -> list[Transaction]:
        """
        Build the transactions of a purchase split into monthly installments.

        Raises:
            ValidationError: If the amount or the number of installments
                             is out of range
        """
        result = self._validator.validate(purchase)
        if result.has_errors:
            raise ValidationError(result.issues)

        group_id = group_id or uuid4()
        shares = split_evenly(purchase.total_amount, purchase.installments)

        return [
            Transaction(
                amount=share,
                occurred_on=add_months(purchase.first_date, position),
                kind=purchase.kind,
                category_id=purchase.category_id,
                description=purchase.description,
                installment_group_id=group_id,
                installment_index=position + 1,
                installment_total=purchase.installments,
            )
            for position, share in enumerate(shares)
        ]

    def summarize_installment_groups(
        self,
        transactions: Iterable[Transaction],
        today: date,
        active_only: bool = False,
    ) -> list[InstallmentGroupSummary]:
        """
        One summary per installment group, ordered by first date.

        A member counts as paid once its date is on or before today.
        With active_only, fully paid groups are left out.
        """
        groups: dict[UUID, list[Transaction]] = defaultdict(list)
        for transaction in transactions:
            if transaction.is_installment:
                groups[transaction.installment_group_id].append(transaction)

        summaries = []
        for group_id, members in groups.items():
            members.sort(key=lambda member: (member.installment_index, member.occurred_on))
            unpaid = [member for member in members if member.occurred_on > today]
            first = members[0]

            summary = InstallmentGroupSummary(
                installment_group_id=group_id,
                description=first.description,
                category_id=first.category_id,
                kind=first.kind,
                total_installments=len(members),
                paid_installments=len(members) - len(unpaid),
                monthly_amount=members[-1].amount,
                total_amount=sum_money(member.amount for member in members),
                remaining_amount=sum_money(member.amount for member in unpaid),
                first_date=min(member.occurred_on for member in members),
                last_date=max(member.occurred_on for member in members),
            )
            if active_only and summary.is_fully_paid:
                continue
            summaries.append(summary)

        summaries.sort(key=lambda summary: summary.first_date)
        return summaries
