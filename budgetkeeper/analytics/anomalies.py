"""
Anomaly Detection

Tukey's rule per category: a transaction is an outlier when it falls
below Q1 - 1.5 * IQR or above Q3 + 1.5 * IQR of its category's amounts.
"""

from typing import Iterable, Mapping
from uuid import UUID

from budgetkeeper.analytics.patterns import build_pattern, group_by_category
from budgetkeeper.models.analytics import Anomaly, AnomalyDirection, AnomalyReport
from budgetkeeper.models.ledger import Category, Transaction


def detect(
    transactions: Iterable[Transaction],
    categories: Mapping[UUID, Category],
    min_points: int = 5,
    limit: int = 10,
) -> AnomalyReport:
    """
    Find outlying expense transactions.

    Categories with fewer than `min_points` transactions are skipped.
    The report lists the `limit` most recent anomalies; its counts cover
    all of them.
    """
    anomalies: list[Anomaly] = []
    for category_id, items in group_by_category(transactions).items():
        if len(items) < min_points:
            continue
        category = categories.get(category_id)
        pattern = build_pattern(
            category_id, category.name if category else "Uncategorized", items
        )

        for t in items:
            direction = pattern.classify(float(t.amount))
            if direction is None:
                continue
            anomalies.append(Anomaly(
                transaction_id=t.id,
                category_id=category_id,
                category_name=pattern.category_name,
                amount=float(t.amount),
                transaction_date=t.transaction_date,
                description=t.description,
                direction=direction,
                typical_min=pattern.q1,
                typical_max=pattern.q3,
            ))

    anomalies.sort(key=lambda a: a.transaction_date, reverse=True)
    high = sum(1 for a in anomalies if a.direction == AnomalyDirection.UNUSUALLY_HIGH)
    return AnomalyReport(
        anomalies=anomalies[:limit],
        total=len(anomalies),
        high=high,
        low=len(anomalies) - high,
    )
