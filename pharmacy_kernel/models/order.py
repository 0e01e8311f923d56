"""
Module: pharmacy_kernel.models.order
Responsibility: ORM persistence for orders (sales, customer orders and
    procurement orders) and their lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - total_amount equals the sum of line total_price values.  Both are
      computed once by LinePricer at the currency's minor-unit precision and
      written by OrderCoordinator; neither is recomputed afterwards.
    - Orders and lines are never updated (db/immutability.py).
    - Lines are never deleted; an order may only be deleted while it has no
      lines (discarding an orphaned header).
    - invoice_number is unique per tenant.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pharmacy_kernel.db.base import Base, TenantScopedMixin, TrackedBase, UUIDString


class OrderKind(str, Enum):
    """Which call site created the order."""

    SALE = "sale"
    ORDER = "order"
    PROCUREMENT = "procurement"


class PaymentStatus(str, Enum):
    PAID = "paid"
    PENDING = "pending"
    CANCELLED = "cancelled"


class Order(TenantScopedMixin, TrackedBase):
    """
    Order header.

    created_by_id is the acting user; customer_ref and prescription_ref are
    weak references (no foreign key), matching how a walk-in sale may name a
    patient that lives in another system.
    """

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("tenant_id", "invoice_number", name="uq_order_tenant_invoice"),
        CheckConstraint("total_amount >= 0", name="ck_order_total_non_negative"),
        Index("idx_order_tenant_kind_created", "tenant_id", "kind", "created_at"),
    )

    kind: Mapped[str] = mapped_column(String(20), nullable=False)

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)

    customer_ref: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    customer_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    prescription_ref: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Supplier name or reference for procurement orders
    vendor_ref: Mapped[str | None] = mapped_column(String(200), nullable=True)

    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    total_amount: Mapped[Decimal] = mapped_column(nullable=False)

    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)

    payment_status: Mapped[str] = mapped_column(String(20), nullable=False)

    budget_category: Mapped[str | None] = mapped_column(String(50), nullable=True)

    lines: Mapped[list["OrderLine"]] = relationship(
        back_populates="order",
        order_by="OrderLine.line_no",
        # Lines are never deleted, least of all through their header.
        cascade="save-update, merge",
        passive_deletes="all",
    )

    def __repr__(self) -> str:
        return f"<Order {self.invoice_number} ({self.kind}) total={self.total_amount}>"


class OrderLine(TenantScopedMixin, Base):
    """
    One item-quantity-price entry within an order.

    unit_price is a snapshot of the catalog price when the order was priced.
    total_price = round(quantity * unit_price - discount).
    """

    __tablename__ = "order_lines"

    __table_args__ = (
        UniqueConstraint("order_id", "line_no", name="uq_order_line_no"),
        CheckConstraint("quantity > 0", name="ck_order_line_quantity_positive"),
        CheckConstraint("discount >= 0", name="ck_order_line_discount_non_negative"),
        Index("idx_order_line_item", "catalog_item_id"),
    )

    order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(nullable=False)

    catalog_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("catalog_items.id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(nullable=False)

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    discount: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    total_price: Mapped[Decimal] = mapped_column(nullable=False)

    order: Mapped[Order] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<OrderLine {self.line_no}: {self.quantity} x {self.unit_price}>"
