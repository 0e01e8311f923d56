"""
OrdersService -- customer orders placed ahead of pickup or delivery.

Same pipeline as a sale under the ``order`` flow: stock is checked and
decremented when the order is placed, the invoice number comes from the
ORD sequence, and payment is usually still pending.
"""

from collections.abc import Callable, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from pharmacy_kernel.domain.cancellation import CancellationToken
from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.domain.dtos import LineRequest, OrderReceipt, OrderRequest, OrderView
from pharmacy_kernel.domain.policy import PipelinePolicy
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.selectors.order_selector import OrderSelector
from pharmacy_kernel.services.order_coordinator import OrderCoordinator
from pharmacy_modules._policy import load_policy

logger = get_logger("modules.orders.service")

ORDER_FLOW = "order"


class OrdersService:

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

    def create_order(
        self,
        ctx: TenantContext,
        lines: Sequence[LineRequest],
        payment_method: str,
        payment_status: str = "pending",
        customer_ref: UUID | None = None,
        customer_name: str | None = None,
        share_code: str | None = None,
        budget_category: str | None = None,
        budget_amount=None,
        cancel_token: CancellationToken | None = None,
    ) -> OrderReceipt:
        request = OrderRequest(
            payment_method=payment_method,
            payment_status=payment_status,
            lines=tuple(lines),
            customer_ref=customer_ref,
            customer_name=customer_name,
            share_code=share_code,
            budget_category=budget_category,
            budget_amount=budget_amount,
        )
        receipt = self._coordinator.submit(ctx, ORDER_FLOW, request, cancel_token)
        logger.info(
            "customer_order_placed",
            extra={
                "order_id": str(receipt.order_id),
                "invoice_number": receipt.invoice_number,
                "payment_status": payment_status,
            },
        )
        return receipt

    def get_order(self, ctx: TenantContext, order_id: UUID) -> OrderView:
        session = self._session_factory()
        try:
            return OrderSelector(session).get_order(ctx, order_id)
        finally:
            session.close()
