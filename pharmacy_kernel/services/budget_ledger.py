"""
BudgetLedger -- period budgets and atomic spend posting.

Responsibility:
    ``post_spending`` is the only writer of ``Budget.spent_amount`` and does
    it in one statement:

        UPDATE budgets SET spent_amount = spent_amount + :amount
        WHERE id = :id AND tenant_id = :tenant

    Two concurrent postings therefore both land; neither overwrites the
    other with a stale total.  spent_amount never decreases here.

Architecture position:
    Kernel > Services.  Flushes only.  Called by OrderCoordinator (budget
    tracked orders) and ExpenseService (approval).

Failure modes:
    - ValidationError: non-positive or float amount, bad period.
    - ReferenceNotFoundError: budget absent in the tenant.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from pharmacy_kernel.db.types import to_decimal
from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.exceptions import ReferenceNotFoundError, ValidationError
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.budget import Budget
from pharmacy_kernel.services.base import BaseService

logger = get_logger("services.budget_ledger")


def _amount(value, field: str) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError as exc:
        raise ValidationError(field, str(exc)) from exc
    return amount


class BudgetLedger(BaseService):
    """Budget allocation lookup and spend posting."""

    def create_budget(
        self,
        ctx: TenantContext,
        year: int,
        month: int,
        category: str,
        allocated_amount: Decimal,
        currency: str = "USD",
    ) -> UUID:
        """
        Allocate a budget for one category and month.

        Raises:
            ValidationError: bad month, negative allocation, or a budget for
                this period and category already exists.
        """
        if not 1 <= month <= 12:
            raise ValidationError("month", f"must be between 1 and 12, got {month}")
        allocated = _amount(allocated_amount, "allocated_amount")
        if allocated < 0:
            raise ValidationError("allocated_amount", "must not be negative")

        budget = Budget(
            tenant_id=ctx.tenant_id,
            year=year,
            month=month,
            category=category,
            allocated_amount=allocated,
            spent_amount=Decimal("0"),
            currency=currency,
            created_at=self.clock.now(),
            created_by_id=ctx.actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(budget)
            self.session.flush()
            savepoint.commit()
        except IntegrityError as exc:
            savepoint.rollback()
            raise ValidationError(
                "category",
                f"budget for {category} in {year}-{month:02d} already exists",
            ) from exc

        logger.info(
            "budget_created",
            extra={
                "budget_id": str(budget.id),
                "category": category,
                "period": f"{year}-{month:02d}",
                "allocated_amount": str(allocated),
            },
        )
        return budget.id

    def find_budget_id(
        self,
        ctx: TenantContext,
        year: int,
        month: int,
        category: str,
    ) -> UUID | None:
        return self.session.execute(
            select(Budget.id).where(
                Budget.tenant_id == ctx.tenant_id,
                Budget.year == year,
                Budget.month == month,
                Budget.category == category,
            )
        ).scalar_one_or_none()

    def find_budget_for_date(
        self,
        ctx: TenantContext,
        on: date,
        category: str,
    ) -> UUID | None:
        """Budget covering the month of ``on`` for ``category``."""
        return self.find_budget_id(ctx, on.year, on.month, category)

    def post_spending(
        self,
        ctx: TenantContext,
        budget_id: UUID,
        amount: Decimal,
    ) -> Decimal:
        """
        Add ``amount`` to the budget's spent_amount.

        Returns:
            spent_amount after the increment.
        """
        amount = _amount(amount, "amount")
        if amount <= 0:
            raise ValidationError("amount", f"must be positive, got {amount}")

        result = self.session.execute(
            update(Budget)
            .where(Budget.id == budget_id, Budget.tenant_id == ctx.tenant_id)
            .values(spent_amount=Budget.spent_amount + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ReferenceNotFoundError("Budget", str(budget_id))

        spent = self.session.execute(
            select(Budget.spent_amount).where(Budget.id == budget_id)
        ).scalar_one()
        logger.info(
            "budget_spending_posted",
            extra={
                "budget_id": str(budget_id),
                "amount": str(amount),
                "spent_amount": str(spent),
            },
        )
        return spent
