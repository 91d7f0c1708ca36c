from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta

import pytest

from boletas.modules.alerts.evaluator import (
    ReceiptPoint,
    SpendingPattern,
    calculate_category_pattern,
    calculate_frequency_pattern,
    calculate_spending_pattern,
    check_alert_rule,
    is_unusual_spending,
)
from boletas.modules.alerts.models import AlertTimeframe, AlertType

TODAY = date(2024, 6, 15)


@dataclass
class Rule:
    type: object
    threshold: float = 0
    category: str | None = None
    timeframe: object = None


def _points(*totals, category=None):
    return [ReceiptPoint(total=t, date=TODAY, category=category) for t in totals]


def test_empty_history_has_zero_pattern():
    pattern = calculate_spending_pattern([])
    assert pattern == SpendingPattern(average=0.0, standard_deviation=0.0)


def test_population_standard_deviation():
    pattern = calculate_spending_pattern(_points(2, 4, 4, 4, 5, 5, 7, 9))
    assert pattern.average == pytest.approx(5.0)
    assert pattern.standard_deviation == pytest.approx(2.0)


def test_zero_deviation_is_never_unusual():
    pattern = calculate_spending_pattern(_points(1000, 1000, 1000))
    assert not is_unusual_spending(1_000_000, pattern)


def test_unusual_spending_uses_strict_sigma():
    pattern = SpendingPattern(average=100.0, standard_deviation=10.0)
    assert is_unusual_spending(121, pattern)
    assert not is_unusual_spending(120, pattern)
    assert is_unusual_spending(79, pattern)
    assert is_unusual_spending(116, pattern, sigma=1.5)


def test_category_pattern_only_counts_that_category():
    history = _points(100, 200, category="Salud") + _points(99999, category="Hogar")
    pattern = calculate_category_pattern(history, "Salud")
    assert pattern.average == pytest.approx(150.0)


def test_frequency_window_ends_today():
    history = [
        ReceiptPoint(total=1, date=TODAY),
        ReceiptPoint(total=1, date=TODAY - timedelta(days=1)),
        ReceiptPoint(total=1, date=TODAY - timedelta(days=6)),
        ReceiptPoint(total=1, date=TODAY - timedelta(days=7)),
        ReceiptPoint(total=1, date=TODAY - timedelta(days=29)),
        ReceiptPoint(total=1, date=TODAY - timedelta(days=30)),
        ReceiptPoint(total=1, date=TODAY + timedelta(days=1)),
    ]
    assert calculate_frequency_pattern(history, "DAILY", today=TODAY) == 1
    assert calculate_frequency_pattern(history, "WEEKLY", today=TODAY) == 3
    assert calculate_frequency_pattern(history, "MONTHLY", today=TODAY) == 5


def test_yesterday_is_outside_the_daily_window():
    history = [ReceiptPoint(total=1, date=TODAY - timedelta(days=1))]
    assert calculate_frequency_pattern(history, "DAILY", today=TODAY) == 0


def test_amount_rule():
    rule = Rule(type=AlertType.AMOUNT)
    history = _points(1000, 1200, 1100)
    assert check_alert_rule(rule, history, ReceiptPoint(total=50000, date=TODAY))
    assert not check_alert_rule(rule, history, ReceiptPoint(total=1150, date=TODAY))
    assert not check_alert_rule(rule, [], ReceiptPoint(total=50000, date=TODAY))


def test_category_rule_requires_matching_category():
    rule = Rule(type=AlertType.CATEGORY, category="Salud")
    history = _points(1000, 1200, 1100, category="Salud")

    assert check_alert_rule(rule, history, ReceiptPoint(total=50000, date=TODAY, category="Salud"))
    assert not check_alert_rule(
        rule, history, ReceiptPoint(total=50000, date=TODAY, category="Hogar")
    )


def test_frequency_rule_compares_against_threshold():
    rule = Rule(type=AlertType.FREQUENCY, threshold=3, timeframe=AlertTimeframe.DAILY)
    new = ReceiptPoint(total=1, date=TODAY)

    assert check_alert_rule(rule, _points(1, 1, 1, 1), new, today=TODAY)
    assert not check_alert_rule(rule, _points(1, 1), new, today=TODAY)


def test_unknown_rule_type_never_triggers():
    rule = Rule(type="WEEKEND")
    assert not check_alert_rule(rule, _points(1, 2, 3), ReceiptPoint(total=10**6, date=TODAY))
