"""
Coin Balance Calculator - combines period coins with manual adjustments.

A student's balance is the sum over every period/section they appear in of
(period coins + adjustments scoped to that period/section), plus adjustments
in the global scope, clamped at zero.

Reference rules:
- Period-scoped adjustments for a period the student has no record in add nothing
- Global adjustments (redemptions, manual corrections) always apply
- Inactive (soft-deleted) adjustments are ignored
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from app.utils.constants import DEFAULT_SECTION, GLOBAL_SCOPE

ScopeKey = Tuple[str, str]


def scope_key(period_key: str, section_id: Optional[str]) -> ScopeKey:
    """Key identifying one period/section partition."""
    return (period_key, section_id or DEFAULT_SECTION)


@dataclass(frozen=True)
class PeriodCoins:
    """Post-override coin total for one student in one period/section."""
    period_key: str
    section_id: str
    coins: int

    @property
    def scope(self) -> ScopeKey:
        return scope_key(self.period_key, self.section_id)


@dataclass(frozen=True)
class Adjustment:
    """A signed manual correction to a student's coins."""
    amount: int
    period_key: Optional[str] = GLOBAL_SCOPE
    section_id: Optional[str] = None
    is_active: bool = True

    @property
    def is_global(self) -> bool:
        return self.period_key is None or self.period_key == GLOBAL_SCOPE

    @property
    def scope(self) -> ScopeKey:
        return scope_key(self.period_key, self.section_id)


@dataclass
class BalanceBreakdown:
    """Balance with the per-period totals that produced it"""
    balance: int
    raw_balance: int
    period_totals: Dict[ScopeKey, int] = field(default_factory=dict)
    global_adjustment: int = 0


def split_adjustments(adjustments: Iterable[Adjustment]) -> Tuple[int, Dict[ScopeKey, int]]:
    """Return (global total, period-scoped totals) for the active adjustments."""
    global_total = 0
    by_scope: Dict[ScopeKey, int] = defaultdict(int)
    for adjustment in adjustments:
        if not adjustment.is_active:
            continue
        if adjustment.is_global:
            global_total += adjustment.amount
        else:
            by_scope[adjustment.scope] += adjustment.amount
    return global_total, dict(by_scope)


def calculate_balance_breakdown(
    period_records: Iterable[PeriodCoins],
    adjustments: Iterable[Adjustment],
) -> BalanceBreakdown:
    global_total, by_scope = split_adjustments(adjustments)

    coins_by_scope: Dict[ScopeKey, int] = defaultdict(int)
    for record in period_records:
        coins_by_scope[record.scope] += record.coins

    period_totals = {
        scope: coins + by_scope.get(scope, 0)
        for scope, coins in coins_by_scope.items()
    }

    raw_balance = sum(period_totals.values()) + global_total
    return BalanceBreakdown(
        balance=max(0, raw_balance),
        raw_balance=raw_balance,
        period_totals=period_totals,
        global_adjustment=global_total,
    )


def calculate_balance(period_records: Iterable[PeriodCoins], adjustments: Iterable[Adjustment]) -> int:
    """Final non-negative balance for one student."""
    return calculate_balance_breakdown(period_records, adjustments).balance


def calculate_balances(
    student_ids: Iterable[str],
    records_by_student: Mapping[str, List[PeriodCoins]],
    adjustments_by_student: Mapping[str, List[Adjustment]],
) -> Dict[str, int]:
    """
    Balances for many students at once.

    Students with no records and no adjustments get 0. The caller is
    responsible for passing complete adjustment data for every student; a
    failed lookup must abort the whole call rather than reach this point.
    """
    return {
        student_id: calculate_balance(
            records_by_student.get(student_id, []),
            adjustments_by_student.get(student_id, []),
        )
        for student_id in student_ids
    }
