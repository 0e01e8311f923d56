"""
LinePricer -- validate requested lines and price them against the catalog.

Responsibility:
    Loads catalog snapshots for the caller's tenant and delegates to the pure
    ``domain.pricing.price_lines``.  Read-only: it never mutates stock and
    never flushes.

Failure modes:
    - ValidationError, ReferenceNotFoundError, InsufficientStockError (see
      domain/pricing.py).  All are pre-commit.
"""

from collections.abc import Sequence

from sqlalchemy.orm import Session

from pharmacy_kernel.domain.context import TenantContext
from pharmacy_kernel.domain.dtos import LineRequest, PricedCart
from pharmacy_kernel.domain.policy import PipelinePolicy
from pharmacy_kernel.domain.pricing import price_lines, validate_lines
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.selectors.catalog_selector import CatalogSelector

logger = get_logger("services.line_pricer")


class LinePricer:
    """
    Price a cart for one tenant.

    Stock is checked against what is committed right now; a later decrement
    may still lose a race, which InventoryLedger reports separately.
    """

    def __init__(self, session: Session, policy: PipelinePolicy):
        self.session = session
        self._policy = policy
        self._catalog = CatalogSelector(session)

    def price(
        self,
        ctx: TenantContext,
        lines: Sequence[LineRequest],
        check_stock: bool = True,
        allow_price_override: bool = False,
    ) -> PricedCart:
        validate_lines(lines, allow_price_override=allow_price_override)
        catalog = self._catalog.get_items(ctx, (l.catalog_item_id for l in lines))
        priced = price_lines(
            lines,
            catalog,
            currency=self._policy.currency,
            minor_units=self._policy.minor_units,
            check_stock=check_stock,
            allow_price_override=allow_price_override,
        )
        logger.debug(
            "cart_priced",
            extra={
                "line_count": len(priced.lines),
                "total_amount": str(priced.total_amount),
                "check_stock": check_stock,
            },
        )
        return priced
