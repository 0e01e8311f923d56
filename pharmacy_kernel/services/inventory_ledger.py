"""
InventoryLedger -- atomic stock adjustments.

Responsibility:
    The only writer of ``CatalogItem.stock_quantity``.  Every change is one
    SQL statement evaluated by the database against the current row:

        decrement:  UPDATE catalog_items
                    SET stock_quantity = stock_quantity - :qty
                    WHERE id = :id AND tenant_id = :tenant AND stock_quantity >= :qty

        restore / receive:
                    UPDATE catalog_items
                    SET stock_quantity = stock_quantity + :qty
                    WHERE id = :id AND tenant_id = :tenant

    There is no read-then-write window, so concurrent decrements of the same
    item can never both pass and drive stock below zero.  Each successful
    change appends a StockMovement row in the same transaction.

Architecture position:
    Kernel > Services.  Flushes only; OrderCoordinator commits each line's
    decrement as its own step.

Failure modes:
    - ValidationError: quantity is not a positive whole number.
    - ReferenceNotFoundError: item absent in the tenant.
    - ConcurrencyConflictError: the item exists but its current stock is
      below the requested quantity (a concurrent order consumed it).
"""

from uuid import UUID

from sqlalchemy import select, update

from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.exceptions import (
    ConcurrencyConflictError,
    ReferenceNotFoundError,
    ValidationError,
)
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.catalog import CatalogItem, StockMovement, StockMovementReason
from pharmacy_kernel.services.base import BaseService

logger = get_logger("services.inventory_ledger")


def _require_positive(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity", f"must be a positive whole number, got {quantity!r}")


class InventoryLedger(BaseService):
    """
    Atomic stock ledger.

    Each method returns the item's stock after the change, read within the
    same transaction.
    """

    def decrement(
        self,
        ctx: TenantContext,
        item_id: UUID,
        quantity: int,
        order_id: UUID,
    ) -> int:
        """
        Consume ``quantity`` units for ``order_id``; all or nothing.
        """
        _require_positive(quantity)

        result = self.session.execute(
            update(CatalogItem)
            .where(
                CatalogItem.id == item_id,
                CatalogItem.tenant_id == ctx.tenant_id,
                CatalogItem.stock_quantity >= quantity,
            )
            .values(stock_quantity=CatalogItem.stock_quantity - quantity)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            self._ensure_exists(ctx, item_id)
            logger.warning(
                "stock_decrement_conflict",
                extra={
                    "item_id": str(item_id),
                    "requested_quantity": quantity,
                    "order_id": str(order_id),
                },
            )
            raise ConcurrencyConflictError(
                item_id=str(item_id),
                requested_quantity=quantity,
                order_id=str(order_id),
            )

        self._record_movement(ctx, item_id, -quantity, StockMovementReason.SALE, order_id)
        remaining = self._current(ctx, item_id)
        logger.info(
            "stock_decremented",
            extra={
                "item_id": str(item_id),
                "quantity": quantity,
                "remaining": remaining,
                "order_id": str(order_id),
            },
        )
        return remaining

    def restore(
        self,
        ctx: TenantContext,
        item_id: UUID,
        quantity: int,
        order_id: UUID,
    ) -> int:
        """Give back ``quantity`` units previously consumed by ``order_id``."""
        return self._increment(ctx, item_id, quantity, StockMovementReason.RESTORE, order_id)

    def receive(
        self,
        ctx: TenantContext,
        item_id: UUID,
        quantity: int,
        order_id: UUID | None = None,
    ) -> int:
        """Add received goods to stock (procurement receiving)."""
        return self._increment(ctx, item_id, quantity, StockMovementReason.RECEIPT, order_id)

    def _increment(
        self,
        ctx: TenantContext,
        item_id: UUID,
        quantity: int,
        reason: StockMovementReason,
        order_id: UUID | None,
    ) -> int:
        _require_positive(quantity)

        result = self.session.execute(
            update(CatalogItem)
            .where(CatalogItem.id == item_id, CatalogItem.tenant_id == ctx.tenant_id)
            .values(stock_quantity=CatalogItem.stock_quantity + quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ReferenceNotFoundError("CatalogItem", str(item_id))

        self._record_movement(ctx, item_id, quantity, reason, order_id)
        current = self._current(ctx, item_id)
        logger.info(
            "stock_incremented",
            extra={
                "item_id": str(item_id),
                "quantity": quantity,
                "reason": reason.value,
                "stock_quantity": current,
            },
        )
        return current

    def _record_movement(
        self,
        ctx: TenantContext,
        item_id: UUID,
        delta: int,
        reason: StockMovementReason,
        order_id: UUID | None,
    ) -> None:
        self.session.add(
            StockMovement(
                tenant_id=ctx.tenant_id,
                catalog_item_id=item_id,
                order_id=order_id,
                quantity_delta=delta,
                reason=reason.value,
                actor_id=ctx.actor_id,
                occurred_at=self.clock.now(),
            )
        )
        self.session.flush()

    def _current(self, ctx: TenantContext, item_id: UUID) -> int:
        return self.session.execute(
            select(CatalogItem.stock_quantity)
            .where(CatalogItem.id == item_id, CatalogItem.tenant_id == ctx.tenant_id)
        ).scalar_one()

    def _ensure_exists(self, ctx: TenantContext, item_id: UUID) -> None:
        found = self.session.execute(
            select(CatalogItem.id)
            .where(CatalogItem.id == item_id, CatalogItem.tenant_id == ctx.tenant_id)
        ).scalar_one_or_none()
        if found is None:
            raise ReferenceNotFoundError("CatalogItem", str(item_id))
