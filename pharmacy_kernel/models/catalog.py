"""
Module: pharmacy_kernel.models.catalog
Responsibility: ORM persistence for sellable catalog items and the append-only
    stock movement trail written by the inventory ledger.
Architecture position: Kernel > Models.  May import from db/base.py and
    db/types.py only.

Invariants enforced:
    - stock_quantity >= 0 (DB CHECK constraint; the ledger's conditional
      UPDATE never produces a negative value in the first place).
    - stock_quantity is never written through the ORM after insert
      (db/immutability.py); InventoryLedger issues atomic UPDATEs instead.
    - sku is unique per tenant.
    - StockMovement rows are never updated or deleted.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from pharmacy_kernel.db.base import Base, TenantScopedMixin, TrackedBase, UUIDString


class StockMovementReason(str, Enum):
    """Why a ledger stock change happened."""

    SALE = "sale"
    RESTORE = "restore"
    RECEIPT = "receipt"


class CatalogItem(TenantScopedMixin, TrackedBase):
    """
    A stock-bearing product (medicine or supply) available for sale.

    unit_price is the current list price.  Order lines snapshot it at order
    time, so later price changes never alter historical orders.
    """

    __tablename__ = "catalog_items"

    __table_args__ = (
        UniqueConstraint("tenant_id", "sku", name="uq_catalog_item_tenant_sku"),
        CheckConstraint("stock_quantity >= 0", name="ck_catalog_item_stock_non_negative"),
        CheckConstraint("unit_price >= 0", name="ck_catalog_item_price_non_negative"),
        Index("idx_catalog_item_tenant_category", "tenant_id", "category"),
    )

    sku: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")

    unit_price: Mapped[Decimal] = mapped_column(nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    stock_quantity: Mapped[int] = mapped_column(nullable=False, default=0)

    # Low-stock threshold: an item is low when stock_quantity < reorder_level
    reorder_level: Mapped[int] = mapped_column(nullable=False, default=0)

    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<CatalogItem {self.sku}: {self.name} stock={self.stock_quantity}>"

    @property
    def is_low_stock(self) -> bool:
        return self.stock_quantity < self.reorder_level


class StockMovement(TenantScopedMixin, Base):
    """One atomic stock change, signed (negative for sales)."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        Index("idx_stock_movement_item", "tenant_id", "catalog_item_id"),
        Index("idx_stock_movement_order", "order_id"),
    )

    catalog_item_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("catalog_items.id"),
        nullable=False,
    )

    # Order that caused the change (None for procurement receipts)
    order_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    quantity_delta: Mapped[int] = mapped_column(nullable=False)

    reason: Mapped[str] = mapped_column(String(20), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<StockMovement {self.reason} {self.quantity_delta:+d} item={self.catalog_item_id}>"
