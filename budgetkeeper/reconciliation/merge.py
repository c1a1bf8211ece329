"""
Merge-on-Read

Ledger transactions recorded directly (not through a budget entry) still
belong in the week's picture. When a budget is read, every unlinked expense
transaction in the week is folded in as a synthetic paid entry.

DESIGN DECISION: The merge works on a deep copy and is never persisted.
The stored budget stays a projection of schedules; the merged view is
recomputed on every read. Because each synthetic entry links its
transaction id, merging an already merged view adds nothing.
"""

from typing import Iterable, Mapping, Optional
from uuid import UUID

from budgetkeeper.models.ledger import (
    BudgetCategory,
    Category,
    EntryRef,
    PaymentEntry,
    PaymentStatus,
    SourceKind,
    Transaction,
    TransactionType,
    WeeklyBudget,
)


def entry_from_transaction(
    transaction: Transaction,
    category: Optional[Category],
    owner_id: UUID,
) -> PaymentEntry:
    """
    Synthesize a paid entry for a raw transaction.

    The entry takes the transaction's id, so it stays addressable across
    reads (deleting it deletes the transaction).
    """
    category_name = category.name if category else "Uncategorized"
    return PaymentEntry(
        id=transaction.id,
        name=transaction.description or f"{category_name} expense",
        amount=transaction.amount,
        scheduled_date=transaction.transaction_date,
        status=PaymentStatus.PAID,
        paid_date=transaction.transaction_date,
        paid_by=owner_id,
        notes="From transaction",
        ref=EntryRef.transaction(transaction.id),
        transaction_id=transaction.id,
        from_transaction=True,
    )


def merge_transactions(
    budget: WeeklyBudget,
    transactions: Iterable[Transaction],
    categories: Mapping[UUID, Category],
) -> WeeklyBudget:
    """
    Return a copy of `budget` with unlinked transactions folded in.

    Args:
        budget: Stored budget (left untouched)
        transactions: Candidate ledger transactions for the budget's week
        categories: Category lookup for the transactions' categories

    Returns:
        The merged view
    """
    merged = budget.model_copy(deep=True)
    linked = merged.linked_transaction_ids()

    for transaction in transactions:
        if transaction.id in linked:
            continue
        if transaction.type != TransactionType.EXPENSE:
            continue
        # Paid through a budget entry, which already references it.
        if transaction.source.kind != SourceKind.NONE:
            continue
        if not merged.covers(transaction.transaction_date):
            continue

        category = categories.get(transaction.category_id)
        # Instant payments are always pre-linked; anything else in a system
        # category is not ours to fold in.
        if category is not None and category.is_system:
            continue

        budget_category = merged.find_category(transaction.category_id)
        if budget_category is None:
            budget_category = BudgetCategory(category_id=transaction.category_id)
            merged.categories.append(budget_category)

        budget_category.payments.append(
            entry_from_transaction(transaction, category, merged.user_id)
        )
        linked.add(transaction.id)

        if budget_category.allocation == 0:
            budget_category.allocation = budget_category.scheduled

    return merged
