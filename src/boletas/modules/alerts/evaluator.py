"""
Spending-pattern statistics and alert-rule evaluation.

Pure functions over in-memory data: nothing here touches the database, so the
same code serves receipt saves, the background re-evaluation task and tests.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any

DEFAULT_SIGMA = 2.0

TIMEFRAME_DAYS: dict[str, int] = {
    "DAILY": 1,
    "WEEKLY": 7,
    "MONTHLY": 30,
}


@dataclass(frozen=True)
class SpendingPattern:
    average: float
    standard_deviation: float


@dataclass(frozen=True)
class ReceiptPoint:
    total: int
    date: date
    category: str | None = None
    vendor: str | None = None


def calculate_spending_pattern(receipts: Iterable[ReceiptPoint]) -> SpendingPattern:
    amounts = [float(r.total) for r in receipts]
    if not amounts:
        return SpendingPattern(average=0.0, standard_deviation=0.0)
    average = sum(amounts) / len(amounts)
    # Population variance: divide by N.
    variance = sum((a - average) ** 2 for a in amounts) / len(amounts)
    return SpendingPattern(average=average, standard_deviation=math.sqrt(variance))


def is_unusual_spending(
    amount: float, pattern: SpendingPattern, *, sigma: float = DEFAULT_SIGMA
) -> bool:
    if pattern.standard_deviation == 0:
        return False
    z_score = abs(amount - pattern.average) / pattern.standard_deviation
    return z_score > sigma


def calculate_category_pattern(
    receipts: Iterable[ReceiptPoint], category: str
) -> SpendingPattern:
    return calculate_spending_pattern(r for r in receipts if r.category == category)


def calculate_frequency_pattern(
    receipts: Iterable[ReceiptPoint], timeframe: str, *, today: date | None = None
) -> int:
    """Receipts dated within the last N calendar days (1/7/30), today being the last."""
    today = today or date.today()
    days = TIMEFRAME_DAYS.get(str(timeframe), TIMEFRAME_DAYS["MONTHLY"])
    start = today - timedelta(days=days - 1)
    return sum(1 for r in receipts if start <= r.date <= today)


def check_alert_rule(
    rule: Any,
    receipts: Sequence[ReceiptPoint],
    new_receipt: ReceiptPoint,
    *,
    sigma: float = DEFAULT_SIGMA,
    today: date | None = None,
) -> bool:
    """
    Whether ``new_receipt`` triggers ``rule`` given the owner's history.

    ``rule`` needs ``type``, ``threshold``, ``category`` and ``timeframe``
    attributes. An unknown type never triggers.
    """
    rule_type = getattr(rule.type, "value", rule.type)
    if rule_type == "AMOUNT":
        pattern = calculate_spending_pattern(receipts)
        return is_unusual_spending(new_receipt.total, pattern, sigma=sigma)
    if rule_type == "CATEGORY":
        if not rule.category:
            return False
        pattern = calculate_category_pattern(receipts, rule.category)
        return new_receipt.category == rule.category and is_unusual_spending(
            new_receipt.total, pattern, sigma=sigma
        )
    if rule_type == "FREQUENCY":
        timeframe = getattr(rule.timeframe, "value", rule.timeframe)
        count = calculate_frequency_pattern(receipts, timeframe, today=today)
        return count > float(rule.threshold)
    return False
