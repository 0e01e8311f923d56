"""
ProcurementService -- purchase orders and goods receiving.

Responsibility:
    ``create_purchase_order`` submits under the ``procurement`` flow: no
    stock check or decrement, vendor unit prices may override catalog
    prices, and the total is posted against the procurement budget (or the
    named tracked category) for the order's month.

    ``receive_goods`` books delivered units into stock through the
    InventoryLedger's atomic increment and commits.

Failure modes:
    - As OrderCoordinator.submit for purchase orders.
    - ValidationError / ReferenceNotFoundError from receiving.
"""

from collections.abc import Callable, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from pharmacy_kernel.domain.cancellation import CancellationToken
from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.domain.dtos import LineRequest, OrderReceipt, OrderRequest
from pharmacy_kernel.domain.policy import PipelinePolicy
from pharmacy_kernel.logging_config import LogContext, get_logger
from pharmacy_kernel.models.audit_entry import AuditAction
from pharmacy_kernel.services.audit_logger import AuditLogger
from pharmacy_kernel.services.inventory_ledger import InventoryLedger
from pharmacy_kernel.services.order_coordinator import OrderCoordinator
from pharmacy_modules._policy import load_policy

logger = get_logger("modules.procurement.service")

PROCUREMENT_FLOW = "procurement"


class ProcurementService:
    """
    Purchasing from vendors.

    Args:
        session_factory: Callable returning a new Session.
        policy: Pipeline policy.  Defaults to the active configuration.
        clock: Time source.  Defaults to SystemClock.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        policy: PipelinePolicy | None = None,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._policy = policy or load_policy()
        self._clock = clock or SystemClock()
        self._coordinator = OrderCoordinator(session_factory, self._policy, self._clock)

    def create_purchase_order(
        self,
        ctx: TenantContext,
        lines: Sequence[LineRequest],
        vendor_ref: str,
        payment_method: str,
        payment_status: str = "pending",
        budget_category: str | None = None,
        budget_amount=None,
        cancel_token: CancellationToken | None = None,
    ) -> OrderReceipt:
        request = OrderRequest(
            payment_method=payment_method,
            payment_status=payment_status,
            lines=tuple(lines),
            vendor_ref=vendor_ref,
            budget_category=budget_category,
            budget_amount=budget_amount,
        )
        receipt = self._coordinator.submit(ctx, PROCUREMENT_FLOW, request, cancel_token)
        logger.info(
            "purchase_order_created",
            extra={
                "order_id": str(receipt.order_id),
                "invoice_number": receipt.invoice_number,
                "vendor_ref": vendor_ref,
                "total_amount": str(receipt.total_amount),
            },
        )
        return receipt

    def receive_goods(
        self,
        ctx: TenantContext,
        catalog_item_id: UUID,
        quantity: int,
        order_id: UUID | None = None,
    ) -> int:
        """
        Add delivered units to stock.

        Returns:
            The item's stock after receiving.
        """
        with LogContext.bind(
            correlation_id=ctx.correlation_id,
            tenant_id=ctx.tenant_id,
            actor_id=ctx.actor_id,
        ):
            session = self._session_factory()
            try:
                stock = InventoryLedger(session, self._clock).receive(
                    ctx, catalog_item_id, quantity, order_id
                )
                AuditLogger(session, self._clock).record(
                    ctx,
                    AuditAction.UPDATE,
                    "catalog_item",
                    catalog_item_id,
                    {
                        "event": "goods_received",
                        "quantity": quantity,
                        "order_id": order_id,
                        "stock_quantity": stock,
                    },
                )
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
        return stock
