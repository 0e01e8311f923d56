"""
Pricing -- pure line validation and pricing.

Responsibility:
    Turns requested lines plus catalog snapshots into a PricedCart:
    validates quantities and discounts, resolves items, checks stock at
    validation time, and computes rounded line totals and the order total.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  LinePricer (service)
    loads the catalog snapshots and calls price_lines().

Invariants enforced:
    - Money is Decimal end to end; floats are rejected.
    - total_price = round_money(quantity * unit_price - discount).
    - total_amount = sum of the already-rounded line totals, so it matches
      the persisted lines exactly.
    - Stock is checked against the aggregated quantity when one item
      appears on several lines.

Failure modes (checked in this order, first offending line wins):
    - ValidationError: empty cart, non-integer or non-positive quantity,
      bad discount, disallowed or negative price override.
    - ReferenceNotFoundError: item missing or inactive in the tenant.
    - InsufficientStockError: quantity above known stock.
"""

from collections import defaultdict
from collections.abc import Mapping, Sequence
from decimal import Decimal
from uuid import UUID

from pharmacy_kernel.db.types import round_money, to_decimal
from pharmacy_kernel.domain.dtos import CatalogItemView, LineRequest, PricedCart, PricedLine
from pharmacy_kernel.exceptions import (
    InsufficientStockError,
    ReferenceNotFoundError,
    ValidationError,
)

_ZERO = Decimal("0")


def validate_lines(
    lines: Sequence[LineRequest],
    allow_price_override: bool = False,
) -> None:
    """Shape checks that need no catalog data."""
    if not lines:
        raise ValidationError("lines", "order must contain at least one line")

    for idx, line in enumerate(lines, start=1):
        qty = line.quantity
        if isinstance(qty, bool) or not isinstance(qty, int):
            raise ValidationError(
                f"lines[{idx}].quantity", f"must be a whole number, got {qty!r}"
            )
        if qty <= 0:
            raise ValidationError(f"lines[{idx}].quantity", f"must be positive, got {qty}")

        try:
            discount = to_decimal(line.discount)
        except ValueError as exc:
            raise ValidationError(f"lines[{idx}].discount", str(exc)) from exc
        if discount < _ZERO:
            raise ValidationError(f"lines[{idx}].discount", "must not be negative")

        if line.unit_price is not None:
            if not allow_price_override:
                raise ValidationError(
                    f"lines[{idx}].unit_price", "price override not allowed for this flow"
                )
            try:
                override = to_decimal(line.unit_price)
            except ValueError as exc:
                raise ValidationError(f"lines[{idx}].unit_price", str(exc)) from exc
            if override < _ZERO:
                raise ValidationError(f"lines[{idx}].unit_price", "must not be negative")


def price_lines(
    lines: Sequence[LineRequest],
    catalog: Mapping[UUID, CatalogItemView],
    *,
    currency: str,
    minor_units: int,
    check_stock: bool = True,
    allow_price_override: bool = False,
) -> PricedCart:
    """
    Validate and price ``lines`` against ``catalog`` snapshots.

    Args:
        lines: Requested lines in cart order.
        catalog: Active items of the caller's tenant, keyed by id.  Missing
            keys are reported as ReferenceNotFoundError.
        currency: Order currency (ISO 4217).
        minor_units: Decimal places of the currency.
        check_stock: False for flows that do not consume stock.
        allow_price_override: True for flows that carry their own unit price.

    Returns:
        PricedCart whose total equals the sum of its line totals.
    """
    validate_lines(lines, allow_price_override=allow_price_override)

    for line in lines:
        if line.catalog_item_id not in catalog:
            raise ReferenceNotFoundError("CatalogItem", str(line.catalog_item_id))

    if check_stock:
        requested: dict[UUID, int] = defaultdict(int)
        for line in lines:
            requested[line.catalog_item_id] += line.quantity
        for line in lines:
            item = catalog[line.catalog_item_id]
            total_qty = requested[line.catalog_item_id]
            if total_qty > item.stock_quantity:
                raise InsufficientStockError(
                    item_id=str(item.id),
                    item_name=item.name,
                    requested_quantity=total_qty,
                    available_quantity=item.stock_quantity,
                )

    priced: list[PricedLine] = []
    for idx, line in enumerate(lines, start=1):
        item = catalog[line.catalog_item_id]
        if line.unit_price is not None:
            unit_price = round_money(to_decimal(line.unit_price), minor_units)
        else:
            unit_price = round_money(to_decimal(item.unit_price), minor_units)
        discount = round_money(to_decimal(line.discount), minor_units)
        gross = unit_price * line.quantity
        if discount > gross:
            raise ValidationError(
                f"lines[{idx}].discount",
                f"discount {discount} exceeds line amount {gross}",
            )
        priced.append(
            PricedLine(
                line_no=idx,
                catalog_item_id=item.id,
                item_name=item.name,
                quantity=line.quantity,
                unit_price=unit_price,
                discount=discount,
                total_price=round_money(gross - discount, minor_units),
            )
        )

    total = sum((p.total_price for p in priced), _ZERO)
    return PricedCart(lines=tuple(priced), total_amount=total, currency=currency)
