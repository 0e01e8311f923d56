"""
OrderRepairService -- compensation for orders left partial by the saga.

Responsibility:
    Acts on the order id carried by a PersistencePartialFailure:

    - ``discard_orphaned_header`` removes a header whose lines never
      persisted.  It counts the lines itself before deleting, so an order
      with lines is refused whether or not the ORM listeners in
      db/immutability.py are registered.
    - ``restore_stock`` gives back every unit the order consumed that has
      not already been given back, through InventoryLedger's atomic
      increment.  It first inserts an OrderRepairClaim; the unique key lets
      exactly one call per order through, so concurrent or repeated calls
      restore nothing more.

    Both record an audit entry.  Flushes only; the caller commits.

Failure modes:
    - ReferenceNotFoundError: order absent in the tenant.
    - ImmutabilityViolationError: discarding an order that has lines.
"""

from collections import defaultdict
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.dialects import postgresql, sqlite

from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.exceptions import ImmutabilityViolationError, ReferenceNotFoundError
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.audit_entry import AuditAction
from pharmacy_kernel.models.catalog import StockMovement, StockMovementReason
from pharmacy_kernel.models.order import Order, OrderLine
from pharmacy_kernel.models.prescription import Prescription, PrescriptionStatus
from pharmacy_kernel.models.repair import OrderRepairClaim
from pharmacy_kernel.services.audit_logger import AuditLogger
from pharmacy_kernel.services.base import BaseService
from pharmacy_kernel.services.inventory_ledger import InventoryLedger

logger = get_logger("services.order_repair")

_RESTORE_STOCK = "restore_stock"


@dataclass(frozen=True)
class StockRestoration:
    catalog_item_id: UUID
    quantity: int
    stock_quantity: int


class OrderRepairService(BaseService):

    def _load_order(self, ctx: TenantContext, order_id: UUID) -> Order:
        order = self.session.execute(
            select(Order).where(Order.id == order_id, Order.tenant_id == ctx.tenant_id)
        ).scalar_one_or_none()
        if order is None:
            raise ReferenceNotFoundError("Order", str(order_id))
        return order

    def _claim(self, ctx: TenantContext, order_id: UUID, action: str) -> bool:
        """
        Insert the claim row for ``action``; False if one already exists.

        A concurrent claimer blocks on the unique key until the first
        transaction ends, then inserts nothing.
        """
        dialect = postgresql if self.session.get_bind().dialect.name == "postgresql" else sqlite
        result = self.session.execute(
            dialect.insert(OrderRepairClaim.__table__)
            .values(
                tenant_id=ctx.tenant_id,
                order_id=order_id,
                action=action,
                claimed_by_id=ctx.actor_id,
                claimed_at=self.clock.now(),
            )
            .on_conflict_do_nothing()
        )
        return result.rowcount == 1

    def discard_orphaned_header(self, ctx: TenantContext, order_id: UUID) -> None:
        """
        Delete a header that has no persisted lines.

        A prescription the header claimed is returned to active so it can be
        dispensed again.
        """
        order = self._load_order(ctx, order_id)
        line_count = self.session.execute(
            select(func.count())
            .select_from(OrderLine)
            .where(OrderLine.order_id == order_id)
        ).scalar_one()
        if line_count:
            logger.warning(
                "order_discard_refused",
                extra={"order_id": str(order_id), "line_count": line_count},
            )
            raise ImmutabilityViolationError(
                "Order",
                str(order_id),
                f"Order has {line_count} persisted lines; only orphaned headers can be discarded",
            )

        invoice_number = order.invoice_number
        self.session.delete(order)
        self.session.flush()

        released = 0
        if order.prescription_ref is not None:
            released = self.session.execute(
                update(Prescription)
                .where(
                    Prescription.id == order.prescription_ref,
                    Prescription.tenant_id == ctx.tenant_id,
                    Prescription.dispensed_order_id == order_id,
                )
                .values(status=PrescriptionStatus.ACTIVE.value, dispensed_order_id=None)
                .execution_options(synchronize_session=False)
            ).rowcount

        logger.warning(
            "orphaned_order_discarded",
            extra={"order_id": str(order_id), "invoice_number": invoice_number},
        )
        AuditLogger(self.session, self.clock).record(
            ctx,
            AuditAction.DISCARD,
            "order",
            order_id,
            {
                "invoice_number": invoice_number,
                "reason": "header without lines",
                "prescription_released": bool(released),
            },
        )

    def restore_stock(self, ctx: TenantContext, order_id: UUID) -> list[StockRestoration]:
        """
        Restore the net stock the order still holds, item by item.

        Returns:
            One entry per item actually restored (empty when nothing is owed
            or another call already restored this order).
        """
        self._load_order(ctx, order_id)
        if not self._claim(ctx, order_id, _RESTORE_STOCK):
            logger.info(
                "order_stock_restore_already_claimed",
                extra={"order_id": str(order_id)},
            )
            return []

        rows = self.session.execute(
            select(StockMovement.catalog_item_id, func.sum(StockMovement.quantity_delta))
            .where(
                StockMovement.tenant_id == ctx.tenant_id,
                StockMovement.order_id == order_id,
                StockMovement.reason.in_(
                    [StockMovementReason.SALE.value, StockMovementReason.RESTORE.value]
                ),
            )
            .group_by(StockMovement.catalog_item_id)
        ).all()
        owed: dict[UUID, int] = defaultdict(int)
        for item_id, net in rows:
            if net is not None and net < 0:
                owed[item_id] = -int(net)

        ledger = InventoryLedger(self.session, self.clock)
        restored = [
            StockRestoration(
                catalog_item_id=item_id,
                quantity=qty,
                stock_quantity=ledger.restore(ctx, item_id, qty, order_id),
            )
            for item_id, qty in sorted(owed.items(), key=lambda kv: str(kv[0]))
        ]

        if restored:
            AuditLogger(self.session, self.clock).record(
                ctx,
                AuditAction.RESTORE_STOCK,
                "order",
                order_id,
                {
                    "items": [
                        {"catalog_item_id": r.catalog_item_id, "quantity": r.quantity}
                        for r in restored
                    ],
                },
            )
        logger.info(
            "order_stock_restored",
            extra={"order_id": str(order_id), "restored_items": len(restored)},
        )
        return restored

