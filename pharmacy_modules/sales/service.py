"""
SalesService -- point-of-sale orders.

Responsibility:
    Submits counter sales through the kernel's OrderCoordinator under the
    ``sale`` flow.  A sale is either a manual cart or a prescription
    redeemed by share code; the coordinator resolves, prices, claims and
    persists it.

    ``verify_share_code`` is the counter's lookup before checkout: it
    resolves and prices a share code without writing anything.

Architecture position:
    Modules > Sales.  Owns no transaction itself; each submission runs in a
    fresh session from ``session_factory``.
"""

from collections.abc import Callable, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from pharmacy_kernel.domain.cancellation import CancellationToken
from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.domain.dtos import (
    LineRequest,
    OrderReceipt,
    OrderRequest,
    PricedCart,
    ResolvedPrescription,
)
from pharmacy_kernel.domain.policy import PipelinePolicy
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.services.line_pricer import LinePricer
from pharmacy_kernel.services.order_coordinator import OrderCoordinator
from pharmacy_kernel.services.share_code_resolver import ShareCodeResolver
from pharmacy_modules._policy import load_policy

logger = get_logger("modules.sales.service")

SALE_FLOW = "sale"


class SalesService:
    """
    Counter sales.

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

    def create_sale(
        self,
        ctx: TenantContext,
        lines: Sequence[LineRequest],
        payment_method: str,
        payment_status: str = "paid",
        customer_ref: UUID | None = None,
        customer_name: str | None = None,
        budget_category: str | None = None,
        budget_amount=None,
        cancel_token: CancellationToken | None = None,
    ) -> OrderReceipt:
        """Sell a manual cart."""
        request = OrderRequest(
            payment_method=payment_method,
            payment_status=payment_status,
            lines=tuple(lines),
            customer_ref=customer_ref,
            customer_name=customer_name,
            budget_category=budget_category,
            budget_amount=budget_amount,
        )
        return self.submit(ctx, request, cancel_token)

    def sell_prescription(
        self,
        ctx: TenantContext,
        share_code: str,
        payment_method: str,
        payment_status: str = "paid",
        budget_category: str | None = None,
        budget_amount=None,
        cancel_token: CancellationToken | None = None,
    ) -> OrderReceipt:
        """Dispense and sell the prescription behind ``share_code``."""
        request = OrderRequest(
            payment_method=payment_method,
            payment_status=payment_status,
            share_code=share_code,
            budget_category=budget_category,
            budget_amount=budget_amount,
        )
        return self.submit(ctx, request, cancel_token)

    def submit(
        self,
        ctx: TenantContext,
        request: OrderRequest,
        cancel_token: CancellationToken | None = None,
    ) -> OrderReceipt:
        receipt = self._coordinator.submit(ctx, SALE_FLOW, request, cancel_token)
        logger.info(
            "sale_completed",
            extra={
                "order_id": str(receipt.order_id),
                "invoice_number": receipt.invoice_number,
                "from_prescription": request.share_code is not None,
            },
        )
        return receipt

    def verify_share_code(
        self,
        ctx: TenantContext,
        share_code: str,
    ) -> tuple[ResolvedPrescription, PricedCart]:
        """
        Resolve and price a share code without dispensing it.

        Raises:
            ShareCodeInvalidError: the code cannot be redeemed.
            InsufficientStockError: a prescribed item is short right now.
        """
        session = self._session_factory()
        try:
            resolved = ShareCodeResolver(session, self._clock).resolve(ctx, share_code)
            priced = LinePricer(session, self._policy).price(ctx, resolved.lines)
            session.rollback()
        finally:
            session.close()
        return resolved, priced
