"""
Property-based tests for the pure pricing and budget-health functions.

Properties:
- The cart total always equals the sum of the rounded line totals.
- Every line total is round(quantity * unit_price - discount).
- Stock is checked against the quantity aggregated per item.
- Budget status is monotone in spend and remaining = allocated - spent.
"""

from collections import defaultdict
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import assume, given, settings
from hypothesis import strategies as st

from pharmacy_kernel.db.types import round_money
from pharmacy_kernel.domain.budget_health import assess_budget
from pharmacy_kernel.domain.dtos import BudgetStatus, CatalogItemView, LineRequest
from pharmacy_kernel.domain.pricing import price_lines
from pharmacy_kernel.exceptions import InsufficientStockError

prices = st.decimals(min_value=Decimal("0"), max_value=Decimal("9999.999"), places=3)
quantities = st.integers(min_value=1, max_value=500)


def _item(price: Decimal, stock: int) -> CatalogItemView:
    return CatalogItemView(
        id=uuid4(),
        sku="SKU",
        name="Item",
        category="general",
        unit_price=price,
        currency="USD",
        stock_quantity=stock,
        reorder_level=0,
        expiry_date=None,
        is_active=True,
    )


@st.composite
def carts(draw):
    """A catalog of 1-5 items and 1-8 lines drawn from it, with valid discounts."""
    catalog = [
        _item(draw(prices), draw(st.integers(min_value=0, max_value=5000)))
        for _ in range(draw(st.integers(min_value=1, max_value=5)))
    ]
    lines = []
    for _ in range(draw(st.integers(min_value=1, max_value=8))):
        item = draw(st.sampled_from(catalog))
        qty = draw(quantities)
        gross = round_money(item.unit_price) * qty
        discount = draw(
            st.decimals(min_value=Decimal("0"), max_value=gross, places=2)
        )
        lines.append(LineRequest(item.id, qty, discount=discount))
    return {i.id: i for i in catalog}, lines


class TestPricingProperties:

    @given(cart=carts())
    @settings(max_examples=200)
    def test_total_is_sum_of_line_totals(self, cart):
        catalog, lines = cart
        priced = price_lines(lines, catalog, currency="USD", minor_units=2, check_stock=False)

        assert priced.total_amount == sum((l.total_price for l in priced.lines), Decimal("0"))
        assert priced.total_amount >= 0
        assert [l.line_no for l in priced.lines] == list(range(1, len(lines) + 1))

    @given(cart=carts())
    @settings(max_examples=200)
    def test_line_total_formula(self, cart):
        catalog, lines = cart
        priced = price_lines(lines, catalog, currency="USD", minor_units=2, check_stock=False)

        for request, line in zip(lines, priced.lines):
            unit = round_money(catalog[request.catalog_item_id].unit_price)
            assert line.unit_price == unit
            assert line.total_price == round_money(unit * request.quantity - request.discount)
            assert line.total_price == line.total_price.quantize(Decimal("0.01"))

    @given(cart=carts())
    @settings(max_examples=200)
    def test_stock_checked_on_aggregate(self, cart):
        catalog, lines = cart
        requested = defaultdict(int)
        for line in lines:
            requested[line.catalog_item_id] += line.quantity
        short = any(qty > catalog[i].stock_quantity for i, qty in requested.items())

        if short:
            with pytest.raises(InsufficientStockError):
                price_lines(lines, catalog, currency="USD", minor_units=2)
        else:
            price_lines(lines, catalog, currency="USD", minor_units=2)


amounts = st.decimals(min_value=Decimal("0"), max_value=Decimal("1000000"), places=2)

_RANK = {BudgetStatus.HEALTHY: 0, BudgetStatus.WARNING: 1, BudgetStatus.OVER_BUDGET: 2}


class TestBudgetHealthProperties:

    @given(allocated=amounts, spent=amounts)
    @settings(max_examples=300)
    def test_remaining(self, allocated, spent):
        health = assess_budget(allocated, spent, Decimal("90"), Decimal("100"))
        assert health.remaining_amount == allocated - spent

    @given(allocated=amounts, spent=amounts, extra=amounts)
    @settings(max_examples=300)
    def test_status_monotone_in_spend(self, allocated, spent, extra):
        low = assess_budget(allocated, spent, Decimal("90"), Decimal("100"))
        high = assess_budget(allocated, spent + extra, Decimal("90"), Decimal("100"))
        assert _RANK[high.status] >= _RANK[low.status]

    @given(allocated=amounts, spent=amounts)
    @settings(max_examples=300)
    def test_over_budget_iff_spent_reaches_allocation(self, allocated, spent):
        assume(allocated > 0)
        health = assess_budget(allocated, spent, Decimal("90"), Decimal("100"))
        assert (health.status == BudgetStatus.OVER_BUDGET) == (spent >= allocated)
