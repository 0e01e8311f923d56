"""
CatalogSelector -- read access to catalog items and stock levels.

stock_level() always issues a fresh column query, so a caller sees stock
committed by other sessions even when its own identity map holds an older
CatalogItem instance.
"""

from collections.abc import Iterable
from datetime import date
from uuid import UUID

from sqlalchemy import select

from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.domain.dtos import CatalogItemView
from pharmacy_kernel.exceptions import ReferenceNotFoundError
from pharmacy_kernel.models.catalog import CatalogItem
from pharmacy_kernel.selectors.base import BaseSelector


def _to_view(item: CatalogItem) -> CatalogItemView:
    return CatalogItemView(
        id=item.id,
        sku=item.sku,
        name=item.name,
        category=item.category,
        unit_price=item.unit_price,
        currency=item.currency,
        stock_quantity=item.stock_quantity,
        reorder_level=item.reorder_level,
        expiry_date=item.expiry_date,
        is_active=item.is_active,
    )


class CatalogSelector(BaseSelector):
    """Catalog reads, scoped to one tenant per call."""

    def get_item(self, ctx: TenantContext, item_id: UUID) -> CatalogItemView:
        """
        Raises:
            ReferenceNotFoundError: item absent in the tenant.
        """
        item = self.session.execute(
            select(CatalogItem)
            .where(CatalogItem.id == item_id, CatalogItem.tenant_id == ctx.tenant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if item is None:
            raise ReferenceNotFoundError("CatalogItem", str(item_id))
        return _to_view(item)

    def get_items(
        self,
        ctx: TenantContext,
        item_ids: Iterable[UUID],
        active_only: bool = True,
    ) -> dict[UUID, CatalogItemView]:
        """Snapshot the requested items; ids outside the tenant are simply absent."""
        ids = list(dict.fromkeys(item_ids))
        if not ids:
            return {}
        stmt = (
            select(CatalogItem)
            .where(CatalogItem.tenant_id == ctx.tenant_id, CatalogItem.id.in_(ids))
            .execution_options(populate_existing=True)
        )
        if active_only:
            stmt = stmt.where(CatalogItem.is_active.is_(True))
        return {item.id: _to_view(item) for item in self.session.scalars(stmt)}

    def stock_level(self, ctx: TenantContext, item_id: UUID) -> int:
        qty = self.session.execute(
            select(CatalogItem.stock_quantity)
            .where(CatalogItem.id == item_id, CatalogItem.tenant_id == ctx.tenant_id)
        ).scalar_one_or_none()
        if qty is None:
            raise ReferenceNotFoundError("CatalogItem", str(item_id))
        return qty

    def low_stock_items(self, ctx: TenantContext) -> list[CatalogItemView]:
        """Active items whose stock is below their reorder level."""
        stmt = (
            select(CatalogItem)
            .where(
                CatalogItem.tenant_id == ctx.tenant_id,
                CatalogItem.is_active.is_(True),
                CatalogItem.stock_quantity < CatalogItem.reorder_level,
            )
            .order_by(CatalogItem.stock_quantity, CatalogItem.name)
            .execution_options(populate_existing=True)
        )
        return [_to_view(i) for i in self.session.scalars(stmt)]

    def expiring_before(self, ctx: TenantContext, cutoff: date) -> list[CatalogItemView]:
        stmt = (
            select(CatalogItem)
            .where(
                CatalogItem.tenant_id == ctx.tenant_id,
                CatalogItem.expiry_date.is_not(None),
                CatalogItem.expiry_date < cutoff,
            )
            .order_by(CatalogItem.expiry_date)
            .execution_options(populate_existing=True)
        )
        return [_to_view(i) for i in self.session.scalars(stmt)]

