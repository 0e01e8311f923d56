"""
ExpenseService -- expense recording, approval and budget allocation.

Responsibility:
    Records operating expenses as pending, approves or rejects them, and
    allocates the monthly category budgets they are charged against.
    Approval is the only point where an expense reaches a budget's
    spent_amount.

Architecture position:
    Modules > Expense.  Owns its transaction boundaries: each public method
    commits on success and rolls back on any error.  Kernel services it
    calls (BudgetLedger, AuditLogger) only flush.

Invariants enforced:
    - Recording an expense never touches spent_amount.
    - ``pending -> approved`` and ``pending -> rejected`` are single
      conditional UPDATEs; of two concurrent approvals exactly one wins.
    - The status transition and the spend increment commit together.

Failure modes:
    - ValidationError: blank description, non-positive or float amount.
    - ReferenceNotFoundError: expense absent in the tenant.
    - ExpenseStateError: the expense is no longer pending.

Audit relevance:
    CREATE on record, APPROVE / REJECT on decision, CREATE on budget
    allocation.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from pharmacy_kernel.db.types import round_money, to_decimal
from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.domain.dtos import BudgetView, ExpenseView
from pharmacy_kernel.domain.policy import PipelinePolicy
from pharmacy_kernel.exceptions import (
    ExpenseStateError,
    ReferenceNotFoundError,
    ValidationError,
)
from pharmacy_kernel.logging_config import LogContext, get_logger
from pharmacy_kernel.models.audit_entry import AuditAction
from pharmacy_kernel.models.budget import Expense, ExpenseStatus
from pharmacy_kernel.selectors.budget_selector import BudgetSelector
from pharmacy_kernel.services.audit_logger import AuditLogger
from pharmacy_kernel.services.budget_ledger import BudgetLedger
from pharmacy_modules._policy import load_policy

logger = get_logger("modules.expense.service")


class ExpenseService:
    """
    Orchestrates expense and budget operations.

    Args:
        session: SQLAlchemy session; this service commits and rolls it back.
        policy: Pipeline policy (currency precision, budget thresholds).
        clock: Time source.  Defaults to SystemClock.
    """

    def __init__(
        self,
        session: Session,
        policy: PipelinePolicy | None = None,
        clock: Clock | None = None,
    ):
        self._session = session
        self._policy = policy or load_policy()
        self._clock = clock or SystemClock()
        self._budgets = BudgetLedger(session, self._clock)
        self._audit = AuditLogger(session, self._clock)
        self._selector = BudgetSelector(session, self._policy)

    # =========================================================================
    # Budgets
    # =========================================================================

    def allocate_budget(
        self,
        ctx: TenantContext,
        year: int,
        month: int,
        category: str,
        allocated_amount: Decimal,
    ) -> BudgetView:
        """Create the budget for one category and month."""
        with LogContext.bind(tenant_id=ctx.tenant_id, actor_id=ctx.actor_id):
            try:
                budget_id = self._budgets.create_budget(
                    ctx,
                    year,
                    month,
                    category,
                    allocated_amount,
                    currency=self._policy.currency,
                )
                self._audit.record(
                    ctx,
                    AuditAction.CREATE,
                    "budget",
                    budget_id,
                    {
                        "year": year,
                        "month": month,
                        "category": category,
                        "allocated_amount": allocated_amount,
                    },
                )
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise
        return self._selector.get_budget(ctx, budget_id)

    def budget_status(self, ctx: TenantContext, budget_id: UUID) -> BudgetView:
        return self._selector.get_budget(ctx, budget_id)

    # =========================================================================
    # Expenses
    # =========================================================================

    def create_expense(
        self,
        ctx: TenantContext,
        description: str,
        amount: Decimal,
        category: str,
        expense_date: date | None = None,
        payment_method: str | None = None,
    ) -> ExpenseView:
        """
        Record a pending expense.

        The budget is not charged until the expense is approved.
        """
        if not description or not description.strip():
            raise ValidationError("description", "is required")
        if not category or not category.strip():
            raise ValidationError("category", "is required")
        try:
            value = round_money(to_decimal(amount), self._policy.minor_units)
        except ValueError as exc:
            raise ValidationError("amount", str(exc)) from exc
        if value <= 0:
            raise ValidationError("amount", f"must be positive, got {value}")

        with LogContext.bind(tenant_id=ctx.tenant_id, actor_id=ctx.actor_id):
            try:
                expense = Expense(
                    tenant_id=ctx.tenant_id,
                    description=description.strip(),
                    amount=value,
                    category=category,
                    expense_date=expense_date or self._clock.today(),
                    payment_method=payment_method,
                    status=ExpenseStatus.PENDING.value,
                    created_at=self._clock.now(),
                    created_by_id=ctx.actor_id,
                )
                self._session.add(expense)
                self._session.flush()
                self._audit.record(
                    ctx,
                    AuditAction.CREATE,
                    "expense",
                    expense.id,
                    {
                        "description": expense.description,
                        "amount": value,
                        "category": category,
                        "expense_date": expense.expense_date,
                    },
                )
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "expense_recorded",
                extra={
                    "expense_id": str(expense.id),
                    "amount": str(value),
                    "category": category,
                },
            )
        return self._selector.get_expense(ctx, expense.id)

    def approve_expense(self, ctx: TenantContext, expense_id: UUID) -> ExpenseView:
        """
        Approve a pending expense and charge it to its budget.

        The budget is the one for the expense's category and the month of
        its expense_date.  With no such budget the expense is still approved
        and nothing is charged.
        """
        with LogContext.bind(tenant_id=ctx.tenant_id, actor_id=ctx.actor_id):
            try:
                expense = self._load(ctx, expense_id)
                budget_id = self._budgets.find_budget_for_date(
                    ctx, expense.expense_date, expense.category
                )
                self._transition(
                    ctx,
                    expense_id,
                    ExpenseStatus.APPROVED,
                    "approve",
                    approved_by_id=ctx.actor_id,
                    approved_at=self._clock.now(),
                    budget_id=budget_id,
                )

                spent = None
                if budget_id is not None:
                    spent = self._budgets.post_spending(ctx, budget_id, expense.amount)
                else:
                    logger.warning(
                        "expense_approved_without_budget",
                        extra={
                            "expense_id": str(expense_id),
                            "category": expense.category,
                            "period": expense.expense_date.strftime("%Y-%m"),
                        },
                    )

                self._audit.record(
                    ctx,
                    AuditAction.APPROVE,
                    "expense",
                    expense_id,
                    {
                        "amount": expense.amount,
                        "budget_id": budget_id,
                        "budget_spent_amount": spent,
                    },
                )
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                "expense_approved",
                extra={
                    "expense_id": str(expense_id),
                    "budget_id": str(budget_id) if budget_id else None,
                },
            )
        return self._selector.get_expense(ctx, expense_id)

    def reject_expense(
        self,
        ctx: TenantContext,
        expense_id: UUID,
        reason: str | None = None,
    ) -> ExpenseView:
        """Reject a pending expense.  No budget is touched."""
        with LogContext.bind(tenant_id=ctx.tenant_id, actor_id=ctx.actor_id):
            try:
                self._load(ctx, expense_id)
                self._transition(
                    ctx,
                    expense_id,
                    ExpenseStatus.REJECTED,
                    "reject",
                    approved_by_id=ctx.actor_id,
                    approved_at=self._clock.now(),
                )
                self._audit.record(
                    ctx,
                    AuditAction.REJECT,
                    "expense",
                    expense_id,
                    {"reason": reason},
                )
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise

            logger.info("expense_rejected", extra={"expense_id": str(expense_id)})
        return self._selector.get_expense(ctx, expense_id)

    def get_expense(self, ctx: TenantContext, expense_id: UUID) -> ExpenseView:
        return self._selector.get_expense(ctx, expense_id)

    # =========================================================================
    # Internals
    # =========================================================================

    def _load(self, ctx: TenantContext, expense_id: UUID) -> Expense:
        expense = self._session.execute(
            select(Expense)
            .where(Expense.id == expense_id, Expense.tenant_id == ctx.tenant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if expense is None:
            raise ReferenceNotFoundError("Expense", str(expense_id))
        return expense

    def _transition(
        self,
        ctx: TenantContext,
        expense_id: UUID,
        target: ExpenseStatus,
        attempted: str,
        **values,
    ) -> None:
        result = self._session.execute(
            update(Expense)
            .where(
                Expense.id == expense_id,
                Expense.tenant_id == ctx.tenant_id,
                Expense.status == ExpenseStatus.PENDING.value,
            )
            .values(status=target.value, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = self._session.execute(
                select(Expense.status).where(
                    Expense.id == expense_id, Expense.tenant_id == ctx.tenant_id
                )
            ).scalar_one()
            raise ExpenseStateError(str(expense_id), current, attempted)
