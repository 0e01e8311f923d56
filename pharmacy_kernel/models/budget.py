"""
Module: pharmacy_kernel.models.budget
Responsibility: ORM persistence for period budgets and expenses.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One budget per (tenant, year, month, category).
    - spent_amount only grows, and only through BudgetLedger's atomic
      increment.  ORM attribute writes to it are rejected.
    - An expense's amount reaches spent_amount at approval, never at creation.

Derived values (percentage used, remaining, status) are not stored; see
domain/budget_health.py.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pharmacy_kernel.db.base import TenantScopedMixin, TrackedBase, UUIDString


class ExpenseStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class Budget(TenantScopedMixin, TrackedBase):
    """Spending allocation for one category in one month."""

    __tablename__ = "budgets"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "year", "month", "category",
            name="uq_budget_tenant_period_category",
        ),
        CheckConstraint("month >= 1 AND month <= 12", name="ck_budget_month_range"),
        CheckConstraint("allocated_amount >= 0", name="ck_budget_allocated_non_negative"),
        CheckConstraint("spent_amount >= 0", name="ck_budget_spent_non_negative"),
    )

    year: Mapped[int] = mapped_column(nullable=False)

    month: Mapped[int] = mapped_column(nullable=False)

    category: Mapped[str] = mapped_column(String(50), nullable=False)

    allocated_amount: Mapped[Decimal] = mapped_column(nullable=False)

    spent_amount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    def __repr__(self) -> str:
        return (
            f"<Budget {self.year}-{self.month:02d} {self.category}: "
            f"{self.spent_amount}/{self.allocated_amount}>"
        )


class Expense(TenantScopedMixin, TrackedBase):
    """
    Recorded expense awaiting (or past) approval.

    created_by_id is the user who recorded it.  budget_id is set when
    approval posts the amount to a budget.
    """

    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_expense_amount_positive"),
        Index("idx_expense_tenant_status", "tenant_id", "status"),
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    category: Mapped[str] = mapped_column(String(50), nullable=False)

    expense_date: Mapped[date] = mapped_column(Date, nullable=False)

    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ExpenseStatus.PENDING.value,
    )

    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    approved_at: Mapped[datetime | None] = mapped_column(nullable=True)

    budget_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("budgets.id"),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Expense {self.category} {self.amount} ({self.status})>"
