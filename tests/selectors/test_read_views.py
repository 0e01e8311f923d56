"""
Read-side selectors: catalog, orders and budgets.

Every selector is tenant-scoped; rows of another pharmacy are invisible.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest

from pharmacy_kernel.domain.dtos import BudgetStatus, LineRequest, OrderRequest
from pharmacy_kernel.exceptions import ReferenceNotFoundError
from pharmacy_kernel.selectors.budget_selector import BudgetSelector
from pharmacy_kernel.selectors.catalog_selector import CatalogSelector
from pharmacy_kernel.selectors.order_selector import OrderSelector
from pharmacy_kernel.services.order_coordinator import OrderCoordinator


class TestCatalogSelector:

    def test_get_item_view(self, session, ctx, create_item):
        item_id = create_item(stock=7, price="4.25", name="Paracetamol 500mg", reorder_level=10)
        view = CatalogSelector(session).get_item(ctx, item_id)
        assert view.name == "Paracetamol 500mg"
        assert view.unit_price == Decimal("4.25")
        assert view.stock_quantity == 7
        assert view.category == "general"
        assert view.is_low_stock

    def test_other_tenant_invisible(self, session, ctx, other_ctx, create_item):
        item_id = create_item(context=other_ctx)
        selector = CatalogSelector(session)
        with pytest.raises(ReferenceNotFoundError):
            selector.get_item(ctx, item_id)
        with pytest.raises(ReferenceNotFoundError):
            selector.stock_level(ctx, item_id)
        assert selector.get_items(ctx, [item_id]) == {}

    def test_get_items_skips_inactive_by_default(self, session, ctx, create_item):
        active = create_item()
        retired = create_item(is_active=False)
        selector = CatalogSelector(session)

        assert set(selector.get_items(ctx, [active, retired, active])) == {active}
        assert set(selector.get_items(ctx, [active, retired], active_only=False)) == {active, retired}
        assert selector.get_items(ctx, []) == {}

    def test_stock_level_sees_other_sessions(self, session, ctx, create_item, set_stock):
        item_id = create_item(stock=3)
        selector = CatalogSelector(session)
        assert selector.get_item(ctx, item_id).stock_quantity == 3

        set_stock(item_id, 11)
        assert selector.stock_level(ctx, item_id) == 11
        assert selector.get_item(ctx, item_id).stock_quantity == 11

    def test_low_stock_items(self, session, ctx, create_item):
        create_item(stock=20, reorder_level=5)
        critical = create_item(stock=0, reorder_level=5, name="Insulin")
        low = create_item(stock=3, reorder_level=5, name="Amoxicillin")
        create_item(stock=1, reorder_level=5, is_active=False)

        result = CatalogSelector(session).low_stock_items(ctx)
        assert [v.id for v in result] == [critical, low]

    def test_expiring_before(self, session, ctx, create_item):
        soon = create_item(expiry_date=date(2024, 2, 1))
        sooner = create_item(expiry_date=date(2024, 1, 20))
        create_item(expiry_date=date(2025, 1, 1))
        create_item(expiry_date=None)

        result = CatalogSelector(session).expiring_before(ctx, date(2024, 3, 1))
        assert [v.id for v in result] == [sooner, soon]


class TestOrderSelector:

    @pytest.fixture
    def place(self, session_factory, policy, deterministic_clock, ctx, create_item):
        """Factory: submit an order of ``flow``; the clock advances one hour each time."""
        item = create_item(stock=100, price="2.00")
        coordinator = OrderCoordinator(session_factory, policy, deterministic_clock)

        def _place(flow="sale", payment_status="paid", quantity=1, context=None):
            deterministic_clock.advance(3600)
            return coordinator.submit(
                context or ctx,
                flow,
                OrderRequest(
                    payment_method="cash",
                    payment_status=payment_status,
                    lines=(LineRequest(item, quantity),),
                ),
            )

        return _place

    def test_get_unknown_order(self, session, ctx):
        with pytest.raises(ReferenceNotFoundError):
            OrderSelector(session).get_order(ctx, uuid4())

    def test_list_newest_first(self, session, ctx, place):
        first = place()
        second = place()
        third = place()
        orders = OrderSelector(session).list_orders(ctx)
        assert [o.id for o in orders] == [third.order_id, second.order_id, first.order_id]
        assert all(o.total_amount == o.lines_total for o in orders)

    def test_filters(self, session, ctx, place):
        sale = place("sale")
        pending = place("order", payment_status="pending")
        selector = OrderSelector(session)

        assert [o.id for o in selector.list_orders(ctx, kind="order")] == [pending.order_id]
        assert [o.id for o in selector.list_orders(ctx, payment_status="paid")] == [sale.order_id]

    def test_date_window(self, session, ctx, place):
        place()
        second = place()
        third = place()

        # orders are an hour apart
        placed_at = OrderSelector(session).get_order(ctx, second.order_id).created_at
        window = OrderSelector(session).list_orders(
            ctx,
            created_from=placed_at + timedelta(minutes=30),
            created_to=placed_at + timedelta(hours=2),
        )
        assert [o.id for o in window] == [third.order_id]

    def test_pagination(self, session, ctx, place):
        receipts = [place() for _ in range(5)]
        page = OrderSelector(session).list_orders(ctx, limit=2, offset=1)
        assert [o.id for o in page] == [receipts[3].order_id, receipts[2].order_id]

    def test_tenant_isolation(self, session, ctx, other_ctx, place):
        place()
        assert OrderSelector(session).list_orders(other_ctx) == []


class TestBudgetSelector:

    def test_list_for_period_sorted_by_category(self, session, ctx, create_budget):
        create_budget(category="procurement")
        create_budget(category="insurance")
        create_budget(category="insurance", month=2)

        views = BudgetSelector(session).list_for_period(ctx, 2024, 1)
        assert [v.category for v in views] == ["insurance", "procurement"]

    def test_over_budget_view(self, session, ctx, create_budget):
        budget_id = create_budget(allocated="200.00", spent="250.00")
        view = BudgetSelector(session).get_budget(ctx, budget_id)
        assert view.status == BudgetStatus.OVER_BUDGET
        assert view.remaining_amount == Decimal("-50.00")
        assert view.percentage_used == Decimal("125.00")

    def test_other_tenant_budget_invisible(self, session, ctx, other_ctx, create_budget):
        budget_id = create_budget(context=other_ctx)
        with pytest.raises(ReferenceNotFoundError):
            BudgetSelector(session).get_budget(ctx, budget_id)

    def test_unknown_expense(self, session, ctx):
        with pytest.raises(ReferenceNotFoundError):
            BudgetSelector(session).get_expense(ctx, uuid4())
