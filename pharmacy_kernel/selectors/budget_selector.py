"""
BudgetSelector -- budgets with derived health.

percentage_used, remaining_amount and status are computed here on every
read from the stored allocated/spent values and the policy thresholds.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmacy_kernel.db.types import round_money
from pharmacy_kernel.domain.budget_health import assess_budget
from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.domain.dtos import BudgetView, ExpenseView
from pharmacy_kernel.domain.policy import PipelinePolicy
from pharmacy_kernel.exceptions import ReferenceNotFoundError
from pharmacy_kernel.models.budget import Budget, Expense
from pharmacy_kernel.selectors.base import BaseSelector


class BudgetSelector(BaseSelector):
    """
    Budget and expense reads.

    Args:
        session: Caller's session.
        policy: Supplies the warning / over-budget thresholds and currency
            precision.  Defaults to PipelinePolicy.with_defaults().
    """

    def __init__(self, session: Session, policy: PipelinePolicy | None = None):
        super().__init__(session)
        self._policy = policy or PipelinePolicy.with_defaults()

    def _to_view(self, budget: Budget) -> BudgetView:
        places = self._policy.minor_units
        allocated = round_money(budget.allocated_amount, places)
        spent = round_money(budget.spent_amount, places)
        health = assess_budget(
            allocated,
            spent,
            warning_pct=self._policy.budget_warning_pct,
            over_budget_pct=self._policy.budget_over_pct,
        )
        return BudgetView(
            id=budget.id,
            year=budget.year,
            month=budget.month,
            category=budget.category,
            currency=budget.currency,
            allocated_amount=allocated,
            spent_amount=spent,
            remaining_amount=health.remaining_amount,
            percentage_used=health.percentage_used,
            status=health.status,
        )

    def get_budget(self, ctx: TenantContext, budget_id: UUID) -> BudgetView:
        budget = self.session.execute(
            select(Budget)
            .where(Budget.id == budget_id, Budget.tenant_id == ctx.tenant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if budget is None:
            raise ReferenceNotFoundError("Budget", str(budget_id))
        return self._to_view(budget)

    def list_for_period(self, ctx: TenantContext, year: int, month: int) -> list[BudgetView]:
        stmt = (
            select(Budget)
            .where(
                Budget.tenant_id == ctx.tenant_id,
                Budget.year == year,
                Budget.month == month,
            )
            .order_by(Budget.category)
            .execution_options(populate_existing=True)
        )
        return [self._to_view(b) for b in self.session.scalars(stmt)]

    def get_expense(self, ctx: TenantContext, expense_id: UUID) -> ExpenseView:
        expense = self.session.execute(
            select(Expense)
            .where(Expense.id == expense_id, Expense.tenant_id == ctx.tenant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if expense is None:
            raise ReferenceNotFoundError("Expense", str(expense_id))
        return ExpenseView(
            id=expense.id,
            description=expense.description,
            amount=round_money(expense.amount, self._policy.minor_units),
            category=expense.category,
            expense_date=expense.expense_date,
            payment_method=expense.payment_method,
            status=expense.status,
            recorded_by_id=expense.created_by_id,
            approved_by_id=expense.approved_by_id,
            approved_at=expense.approved_at,
            budget_id=expense.budget_id,
        )
