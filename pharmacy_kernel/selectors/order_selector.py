"""
OrderSelector -- orders with their lines.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.domain.dtos import OrderLineView, OrderView
from pharmacy_kernel.exceptions import ReferenceNotFoundError
from pharmacy_kernel.models.order import Order
from pharmacy_kernel.selectors.base import BaseSelector


def _to_view(order: Order) -> OrderView:
    return OrderView(
        id=order.id,
        kind=order.kind,
        invoice_number=order.invoice_number,
        customer_ref=order.customer_ref,
        customer_name=order.customer_name,
        prescription_ref=order.prescription_ref,
        vendor_ref=order.vendor_ref,
        currency=order.currency,
        total_amount=order.total_amount,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        budget_category=order.budget_category,
        created_by_id=order.created_by_id,
        created_at=order.created_at,
        lines=tuple(
            OrderLineView(
                line_no=line.line_no,
                catalog_item_id=line.catalog_item_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount=line.discount,
                total_price=line.total_price,
            )
            for line in order.lines
        ),
    )


class OrderSelector(BaseSelector):
    """Read-only queries for orders."""

    def get_order(self, ctx: TenantContext, order_id: UUID) -> OrderView:
        """
        Load one order with its lines.

        Raises:
            ReferenceNotFoundError: order absent in the tenant.
        """
        order = self.session.execute(
            select(Order)
            .where(Order.id == order_id, Order.tenant_id == ctx.tenant_id)
            .options(selectinload(Order.lines))
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if order is None:
            raise ReferenceNotFoundError("Order", str(order_id))
        return _to_view(order)

    def list_orders(
        self,
        ctx: TenantContext,
        kind: str | None = None,
        payment_status: str | None = None,
        created_from: datetime | None = None,
        created_to: datetime | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[OrderView]:
        """Newest first, with optional kind / status / date filters."""
        stmt = (
            select(Order)
            .where(Order.tenant_id == ctx.tenant_id)
            .options(selectinload(Order.lines))
            .order_by(Order.created_at.desc(), Order.invoice_number.desc())
            .limit(limit)
            .offset(offset)
            .execution_options(populate_existing=True)
        )
        if kind is not None:
            stmt = stmt.where(Order.kind == kind)
        if payment_status is not None:
            stmt = stmt.where(Order.payment_status == payment_status)
        if created_from is not None:
            stmt = stmt.where(Order.created_at >= created_from)
        if created_to is not None:
            stmt = stmt.where(Order.created_at < created_to)
        return [_to_view(o) for o in self.session.scalars(stmt)]
