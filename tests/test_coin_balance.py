"""
Tests for the coin balance calculator (period coins plus adjustments).
"""

import itertools

from app.utils.coin_balance import (
    Adjustment,
    PeriodCoins,
    calculate_balance,
    calculate_balance_breakdown,
    calculate_balances,
    split_adjustments,
)
from app.utils.constants import GLOBAL_SCOPE


def test_balance_example_clamps_to_zero():
    records = [PeriodCoins("periodA", "default", 5), PeriodCoins("periodB", "default", 3)]
    adjustments = [Adjustment(-2, "periodA", "default"), Adjustment(-20, GLOBAL_SCOPE)]

    breakdown = calculate_balance_breakdown(records, adjustments)

    assert breakdown.raw_balance == -14
    assert breakdown.balance == 0
    assert breakdown.period_totals == {("periodA", "default"): 3, ("periodB", "default"): 3}
    assert breakdown.global_adjustment == -20


def test_period_adjustment_without_record_adds_nothing():
    records = [PeriodCoins("periodA", "default", 5)]
    adjustments = [Adjustment(50, "periodZ", "default")]

    assert calculate_balance(records, adjustments) == 5


def test_global_adjustments_apply_without_records():
    assert calculate_balance([], [Adjustment(7)]) == 7


def test_inactive_adjustments_are_ignored():
    records = [PeriodCoins("periodA", "default", 5)]
    adjustments = [Adjustment(-5, GLOBAL_SCOPE, is_active=False), Adjustment(2, "periodA", "default", is_active=False)]

    assert calculate_balance(records, adjustments) == 5


def test_sections_are_separate_scopes():
    records = [PeriodCoins("periodA", "101", 4), PeriodCoins("periodA", "102", 6)]
    adjustments = [Adjustment(3, "periodA", "101"), Adjustment(10, "periodA", "103")]

    breakdown = calculate_balance_breakdown(records, adjustments)

    assert breakdown.period_totals == {("periodA", "101"): 7, ("periodA", "102"): 6}
    assert breakdown.balance == 13


def test_missing_section_means_default_section():
    records = [PeriodCoins("periodA", "default", 4)]
    assert calculate_balance(records, [Adjustment(2, "periodA", None)]) == 6


def test_split_adjustments_totals():
    global_total, by_scope = split_adjustments([
        Adjustment(-10),
        Adjustment(-20, GLOBAL_SCOPE, "101"),
        Adjustment(4, "periodA", "default"),
        Adjustment(1, "periodA", "default"),
    ])

    assert global_total == -30
    assert by_scope == {("periodA", "default"): 5}


def test_calculate_balances_for_many_students():
    balances = calculate_balances(
        ["ada", "grace", "nobody"],
        {"ada": [PeriodCoins("periodA", "default", 9)], "grace": [PeriodCoins("periodA", "default", 2)]},
        {"ada": [Adjustment(-10)], "grace": [Adjustment(5, "periodA", "default")]},
    )

    assert balances == {"ada": 0, "grace": 7, "nobody": 0}


def test_balance_is_never_negative():
    coin_values = [0, 1, 5, 20]
    amounts = [-50, -7, 0, 3]
    for coins, global_amount, scoped_amount in itertools.product(coin_values, amounts, amounts):
        balance = calculate_balance(
            [PeriodCoins("periodA", "default", coins)],
            [Adjustment(global_amount), Adjustment(scoped_amount, "periodA", "default")],
        )
        assert balance >= 0
        assert balance == max(0, coins + global_amount + scoped_amount)
