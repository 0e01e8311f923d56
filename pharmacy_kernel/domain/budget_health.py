"""
Budget health -- derived budget fields, computed on read.

Nothing here is stored: percentage used, remaining amount and status are
recomputed from the latest allocated/spent values every time a budget is
read, so they can never disagree with spent_amount.

Pure domain: no I/O.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from pharmacy_kernel.domain.dtos import BudgetStatus

_ZERO = Decimal("0")
_HUNDRED = Decimal("100")
_PCT_QUANTUM = Decimal("0.01")


@dataclass(frozen=True)
class BudgetHealth:
    percentage_used: Decimal
    remaining_amount: Decimal
    status: BudgetStatus


def assess_budget(
    allocated: Decimal,
    spent: Decimal,
    warning_pct: Decimal,
    over_budget_pct: Decimal,
) -> BudgetHealth:
    """
    Derive percentage used, remaining amount and status.

    Status is ``over_budget`` at or above over_budget_pct, ``warning`` at or
    above warning_pct, otherwise ``healthy``.  A zero allocation reports 0 %
    used; any spend against it is over budget.
    """
    remaining = allocated - spent

    if allocated == _ZERO:
        status = BudgetStatus.OVER_BUDGET if spent > _ZERO else BudgetStatus.HEALTHY
        return BudgetHealth(_ZERO.quantize(_PCT_QUANTUM), remaining, status)

    pct = spent / allocated * _HUNDRED
    if pct >= over_budget_pct:
        status = BudgetStatus.OVER_BUDGET
    elif pct >= warning_pct:
        status = BudgetStatus.WARNING
    else:
        status = BudgetStatus.HEALTHY

    return BudgetHealth(
        percentage_used=pct.quantize(_PCT_QUANTUM, rounding=ROUND_HALF_UP),
        remaining_amount=remaining,
        status=status,
    )
