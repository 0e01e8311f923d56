"""
Module: pharmacy_kernel.models.repair
Responsibility: One row per repair action taken on an order.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - (tenant_id, order_id, action) is unique.  OrderRepairService inserts
      the row before acting, so of two concurrent repairs of the same order
      only the one whose insert lands goes on to touch stock.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from pharmacy_kernel.db.base import Base, TenantScopedMixin, UUIDString


class OrderRepairClaim(TenantScopedMixin, Base):
    __tablename__ = "order_repair_claims"

    __table_args__ = (
        UniqueConstraint("tenant_id", "order_id", "action", name="uq_order_repair_claim"),
    )

    # No foreign key: a discarded header leaves its claims behind.
    order_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[str] = mapped_column(String(30), nullable=False)

    claimed_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    claimed_at: Mapped[datetime] = mapped_column(nullable=False)
