"""
Cart -- mutable line collection a terminal builds before submission.

A cart holds manual lines until a prescription is applied.  Applying a
resolved share code replaces every manual line with the prescription's fixed
lines; the two are never merged.

Pure domain: no I/O.
"""

from decimal import Decimal
from uuid import UUID

from pharmacy_kernel.domain.dtos import LineRequest, OrderRequest, ResolvedPrescription


class Cart:
    """
    Ordered list of requested lines plus the customer / prescription refs.

    Usage:
        cart = Cart()
        cart.add_line(item_id, 2)
        cart.apply_prescription(resolved)   # manual lines discarded
        request = cart.to_request(payment_method="cash")
    """

    def __init__(self, lines: tuple[LineRequest, ...] | list[LineRequest] = ()):
        self._lines: list[LineRequest] = list(lines)
        self.customer_ref: UUID | None = None
        self.customer_name: str | None = None
        self.prescription_ref: UUID | None = None
        self.share_code: str | None = None

    @property
    def lines(self) -> tuple[LineRequest, ...]:
        return tuple(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    @property
    def from_prescription(self) -> bool:
        return self.prescription_ref is not None

    def add_line(
        self,
        catalog_item_id: UUID,
        quantity: int,
        discount: Decimal = Decimal("0"),
        unit_price: Decimal | None = None,
    ) -> LineRequest:
        line = LineRequest(
            catalog_item_id=catalog_item_id,
            quantity=quantity,
            discount=discount,
            unit_price=unit_price,
        )
        self._lines.append(line)
        return line

    def remove_item(self, catalog_item_id: UUID) -> int:
        """Drop every line for an item; returns how many were removed."""
        before = len(self._lines)
        self._lines = [l for l in self._lines if l.catalog_item_id != catalog_item_id]
        return before - len(self._lines)

    def clear(self) -> None:
        self._lines.clear()

    def apply_prescription(self, resolved: ResolvedPrescription) -> None:
        """Replace all lines with the prescription's lines and take its patient."""
        self._lines = list(resolved.lines)
        self.prescription_ref = resolved.prescription_id
        self.customer_ref = resolved.patient_id
        self.customer_name = resolved.patient_name
        self.share_code = resolved.share_code

    def to_request(
        self,
        payment_method: str,
        payment_status: str = "paid",
        **kwargs,
    ) -> OrderRequest:
        """Build the OrderRequest for submission."""
        return OrderRequest(
            payment_method=payment_method,
            payment_status=payment_status,
            lines=self.lines,
            customer_ref=kwargs.pop("customer_ref", self.customer_ref),
            customer_name=kwargs.pop("customer_name", self.customer_name),
            prescription_ref=self.prescription_ref,
            share_code=kwargs.pop("share_code", self.share_code),
            **kwargs,
        )
